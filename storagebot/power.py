#!/usr/bin/env python3
"""
Power-Cycle Coordinator

Resets the system that owns a storage controller so an OnReset change takes
effect, then waits for the system to come back to the expected power state.

State machine:
    Requested -> Reset-Issued -> Polling-Power-State -> Reached-Expected-State
                                                     -> Timed-Out
"""

import time
import logging
from typing import Callable, List, Optional

from .errors import PreconditionError, PowerOperationError, TRANSIENT_ERRORS
from .models import PowerResult, RESET_TYPES
from .redfish_client import RedfishClient

DEFAULT_POWER_POLL_INTERVAL = 10

# Power state each reset type should settle in
EXPECTED_POWER_STATE = {
    'ForceRestart': 'On',
    'GracefulRestart': 'On',
    'PowerCycle': 'On',
}


class PowerCycleCoordinator:
    """Issue one reset and wait for the expected power state."""

    def __init__(self, client: RedfishClient, interval: float = DEFAULT_POWER_POLL_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def power_cycle(self, system_uri: str, reset_type: str, timeout: float) -> PowerResult:
        """
        Reset a system and wait until it reports the expected power state.

        A powered-off system cannot be restarted, so it is powered on instead.

        Args:
            system_uri: URI of the computer system to reset
            reset_type: ForceRestart, GracefulRestart or PowerCycle
            timeout: Maximum seconds to wait for the expected power state

        Returns:
            PowerResult describing the observed transitions

        Raises:
            PreconditionError: If the reset type is not supported
            PowerOperationError: If the reset is rejected or the state is not reached in time
        """
        if reset_type not in RESET_TYPES:
            raise PreconditionError(f"Unsupported reset type: {reset_type}", stage='power',
                                    detail=f"supported values: {', '.join(RESET_TYPES)}")

        expected = EXPECTED_POWER_STATE[reset_type]
        self.logger.info(f"Power cycle requested for {system_uri} ({reset_type}, timeout: {timeout}s)")

        # 1. Issue the reset
        issued = reset_type
        try:
            current = self.client.get_power_state(system_uri)
            self.logger.info(f"Current power state: {current}")
            if current == 'Off':
                issued = 'On'
                self.logger.info("System is powered off, powering on instead of restarting")
            self.client.perform_reset(system_uri, issued)
        except TRANSIENT_ERRORS as e:
            self.logger.error(f"Failed to reset system {system_uri}: {e}")
            raise PowerOperationError(f"Reset {issued} of {system_uri} was rejected",
                                      stage='power', detail=str(e))
        self.logger.info(f"Reset {issued} issued for {system_uri}")

        # 2. Wait for the expected power state
        start = self._clock()
        deadline = start + timeout
        transitions: List[str] = []
        polls = 0

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                break

            self._sleep(min(self.interval, remaining))
            polls += 1

            try:
                state = self.client.get_power_state(system_uri)
            except TRANSIENT_ERRORS as e:
                # Controller may be unreachable mid-reboot
                self.logger.debug(f"Power state unavailable, system still rebooting: {e}")
                continue

            if not transitions or transitions[-1] != state:
                transitions.append(state)
                self.logger.info(f"Power state of {system_uri}: {state}")

            if state == expected:
                self.logger.info(f"System {system_uri} reached power state {expected}")
                return {
                    'system_uri': system_uri,
                    'reset_type': reset_type,
                    'issued_reset_type': issued,
                    'final_state': state,
                    'transitions': transitions,
                    'polls': polls,
                    'elapsed': self._clock() - start,
                }

        self.logger.error(f"Timeout waiting for {system_uri} to reach power state {expected} "
                          f"(waited {timeout} seconds)")
        raise PowerOperationError(
            f"System {system_uri} did not reach power state {expected} within {timeout} seconds",
            stage='power',
            detail=f"observed: {' -> '.join(transitions) or 'no power state'}"
        )
