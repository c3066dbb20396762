#!/usr/bin/env python3
"""
Endpoint Mutex Registry

Serializes lifecycle operations that target the same management controller.
The controller runs configuration jobs one at a time, so an operation holds
its endpoint for its whole duration: submission, power cycle, polling and
reconciliation.

Each endpoint gets a ticket lock: waiters are served in arrival order and
operations on different endpoints never wait on each other. The registry is
constructed explicitly and handed to every component that needs it.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator, Optional, Set


class _EndpointSlot:
    """Ticket lock state for a single endpoint."""

    def __init__(self) -> None:
        self.condition = threading.Condition()
        self.next_ticket = 0
        self.serving = 0
        self.abandoned: Set[int] = set()

    @property
    def held(self) -> bool:
        return self.next_ticket != self.serving

    def advance(self) -> None:
        """Serve the next live ticket. Caller holds the condition."""
        self.serving += 1
        while self.serving in self.abandoned:
            self.abandoned.discard(self.serving)
            self.serving += 1
        self.condition.notify_all()


class EndpointLease:
    """Handle returned by EndpointMutexRegistry.acquire."""

    def __init__(self, endpoint: str, slot: _EndpointSlot, logger: logging.Logger) -> None:
        self.endpoint = endpoint
        self._slot = slot
        self._logger = logger
        self._released = False
        self._release_guard = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Release the endpoint. Calling this more than once has no effect."""
        with self._release_guard:
            if self._released:
                return
            self._released = True

        with self._slot.condition:
            self._slot.advance()
        self._logger.debug(f"Released endpoint lock for {self.endpoint}")

    def __enter__(self) -> 'EndpointLease':
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class EndpointMutexRegistry:
    """
    Process-wide map from endpoint identity to a mutual-exclusion lock.

    Safe for concurrent acquire/release from many threads. The registry guard
    is only held while looking up a slot, never while waiting for one.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._slots: Dict[str, _EndpointSlot] = {}
        self._guard = threading.Lock()
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def normalize(endpoint: str) -> str:
        """
        Return the stable key for an endpoint address.

        A bare host gets the https scheme RedfishClient would add, and the key
        is lower-cased, so every spelling of one controller shares a lock.
        """
        if not endpoint or not endpoint.strip():
            raise ValueError("Endpoint identity is required")
        key = endpoint.strip().rstrip('/')
        if not key.lower().startswith(('http://', 'https://')):
            key = f"https://{key}"
        return key.lower()

    def _get_slot(self, key: str) -> _EndpointSlot:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = _EndpointSlot()
                self._slots[key] = slot
            return slot

    def acquire(self, endpoint: str) -> EndpointLease:
        """
        Block until no other operation holds the endpoint.

        Args:
            endpoint: Management controller address

        Returns:
            A lease whose release() frees the endpoint
        """
        key = self.normalize(endpoint)
        slot = self._get_slot(key)

        with slot.condition:
            ticket = slot.next_ticket
            slot.next_ticket += 1
            if slot.serving != ticket:
                self.logger.info(f"Waiting for endpoint lock on {key}")
            try:
                while slot.serving != ticket:
                    slot.condition.wait()
            except BaseException:
                # Interrupted waiter gives up its place in the queue
                if slot.serving == ticket:
                    slot.advance()
                else:
                    slot.abandoned.add(ticket)
                raise

        self.logger.debug(f"Acquired endpoint lock for {key}")
        return EndpointLease(key, slot, self.logger)

    @contextmanager
    def locked(self, endpoint: str) -> Generator[EndpointLease, None, None]:
        """Hold the endpoint for the duration of the with-block."""
        lease = self.acquire(endpoint)
        try:
            yield lease
        finally:
            lease.release()

    def is_locked(self, endpoint: str) -> bool:
        """Return whether any operation currently holds the endpoint."""
        key = self.normalize(endpoint)
        with self._guard:
            slot = self._slots.get(key)
        if slot is None:
            return False
        with slot.condition:
            return slot.held
