#!/usr/bin/env python3
"""
Unit tests for the PowerCycleCoordinator.
"""

import os
import sys

import pytest
import requests

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../../../')))

from conftest import make_response, SYSTEM_URI
from storagebot.errors import PreconditionError, PowerOperationError
from storagebot.power import PowerCycleCoordinator


class TestPowerCycleCoordinator:
    """Tests for PowerCycleCoordinator.power_cycle"""

    @pytest.fixture
    def coordinator(self, fake_idrac, fake_clock, mock_logger):
        return PowerCycleCoordinator(fake_idrac.client, interval=10, sleep=fake_clock.sleep,
                                     clock=fake_clock.monotonic, logger=mock_logger)

    def test_restart_goes_off_then_on(self, coordinator, fake_idrac, fake_clock):
        fake_idrac.power_sequence = ['Off', 'On']

        result = coordinator.power_cycle(SYSTEM_URI, 'ForceRestart', timeout=120)

        assert fake_idrac.reset_types == ['ForceRestart']
        assert result['final_state'] == 'On'
        assert result['transitions'] == ['Off', 'On']
        assert result['issued_reset_type'] == 'ForceRestart'
        assert result['polls'] == 2
        assert result['elapsed'] == 20
        assert fake_clock.sleeps == [10, 10]

    def test_powered_off_system_is_powered_on(self, coordinator, fake_idrac):
        fake_idrac.power_state = 'Off'
        fake_idrac.power_sequence = ['Off', 'PoweringOn', 'On']

        result = coordinator.power_cycle(SYSTEM_URI, 'GracefulRestart', timeout=120)

        assert fake_idrac.reset_types == ['On']
        assert result['reset_type'] == 'GracefulRestart'
        assert result['issued_reset_type'] == 'On'
        assert result['transitions'] == ['Off', 'PoweringOn', 'On']

    def test_unreachable_controller_during_reboot(self, coordinator, fake_idrac):
        fake_idrac.power_sequence = [requests.exceptions.ConnectionError("connection reset"), 'On']

        result = coordinator.power_cycle(SYSTEM_URI, 'PowerCycle', timeout=120)

        assert result['polls'] == 2
        assert result['transitions'] == ['On']

    def test_rejected_reset(self, coordinator, fake_idrac, fake_clock):
        fake_idrac.session.post.side_effect = lambda url, json=None, **kwargs: make_response(400, {})

        with pytest.raises(PowerOperationError) as excinfo:
            coordinator.power_cycle(SYSTEM_URI, 'ForceRestart', timeout=120)

        assert excinfo.value.stage == 'power'
        assert fake_clock.sleeps == []

    def test_timeout(self, coordinator, fake_idrac, fake_clock):
        fake_idrac.power_sequence = ['Off']

        with pytest.raises(PowerOperationError) as excinfo:
            coordinator.power_cycle(SYSTEM_URI, 'ForceRestart', timeout=45)

        assert 'did not reach power state On within 45 seconds' in excinfo.value.message
        assert excinfo.value.detail == 'observed: Off'
        assert sum(fake_clock.sleeps) == 45

    def test_invalid_reset_type(self, coordinator, fake_idrac):
        with pytest.raises(PreconditionError):
            coordinator.power_cycle(SYSTEM_URI, 'Nmi', timeout=120)

        assert fake_idrac.calls == []
