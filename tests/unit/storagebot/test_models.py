#!/usr/bin/env python3
"""
Unit tests for the volume data model and the error types.
"""

import os
import sys
import json
from unittest.mock import MagicMock

import pytest

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../../../')))

from storagebot.errors import StorageBotError, JobFailedError, PreconditionError, extract_redfish_message
from storagebot.models import (
    with_defaults, resolve_raid_type, parse_import_id,
    DEFAULT_RESET_TIMEOUT, DEFAULT_VOLUME_JOB_TIMEOUT
)


class TestDefaults:
    """Tests for default handling"""

    def test_with_defaults_fills_unset_fields(self):
        state = with_defaults({'volume_name': 'data', 'capacity_bytes': None})

        assert state['volume_name'] == 'data'
        assert state['settings_apply_time'] == 'Immediate'
        assert state['reset_type'] == 'ForceRestart'
        assert state['reset_timeout'] == DEFAULT_RESET_TIMEOUT
        assert state['volume_job_timeout'] == DEFAULT_VOLUME_JOB_TIMEOUT
        assert state['encrypted'] is False
        assert 'capacity_bytes' not in state

    def test_with_defaults_keeps_given_values(self):
        original = {'settings_apply_time': 'OnReset', 'encrypted': True}
        state = with_defaults(original)

        assert state['settings_apply_time'] == 'OnReset'
        assert state['encrypted'] is True
        assert original == {'settings_apply_time': 'OnReset', 'encrypted': True}

    def test_with_defaults_maps_deprecated_volume_type(self):
        state = with_defaults({'volume_name': 'data', 'volume_type': 'Mirrored'})

        assert state['raid_type'] == 'RAID1'
        assert with_defaults(state)['raid_type'] == 'RAID1'
        assert with_defaults({'raid_type': 'RAID6', 'volume_type': 'Mirrored'})['raid_type'] == 'RAID6'
        assert with_defaults({})['raid_type'] == 'RAID0'

    @pytest.mark.parametrize("state,expected", [
        ({'raid_type': 'RAID6'}, 'RAID6'),
        ({'volume_type': 'Mirrored'}, 'RAID1'),
        ({'volume_type': 'SpannedStripesWithParity'}, 'RAID50'),
        ({'raid_type': 'RAID5', 'volume_type': 'Mirrored'}, 'RAID5'),
        ({}, 'RAID0'),
    ])
    def test_resolve_raid_type(self, state, expected):
        assert resolve_raid_type(state) == expected


class TestParseImportId:
    """Tests for the import identity parser"""

    def test_parse_full_document(self):
        import_id = json.dumps({
            'username': 'root',
            'password': 'calvin',
            'endpoint': 'https://192.168.2.230',
            'ssl_insecure': True,
            'id': '/redfish/v1/Systems/System.Embedded.1/Storage/RAID.Integrated.1-1/Volumes/Disk.Virtual.0',
            'system_id': 'System.Embedded.1',
        })

        server, state = parse_import_id(import_id)

        assert server['endpoint'] == 'https://192.168.2.230'
        assert server['username'] == 'root'
        assert server['ssl_insecure'] is True
        assert state['id'].endswith('Disk.Virtual.0')
        assert state['system_id'] == 'System.Embedded.1'
        assert state['reset_timeout'] == 120
        assert state['volume_job_timeout'] == 1200
        assert state['reset_type'] == 'ForceRestart'
        assert state['settings_apply_time'] == 'Immediate'

    @pytest.mark.parametrize("import_id", [
        'not json',
        '["a", "list"]',
        '{"username": "root"}',
    ])
    def test_parse_rejects_bad_documents(self, import_id):
        with pytest.raises(PreconditionError) as excinfo:
            parse_import_id(import_id)
        assert excinfo.value.stage == 'import'


class TestErrors:
    """Tests for error rendering"""

    def test_str_includes_stage_and_detail(self):
        error = StorageBotError("Volume create failed", stage='process', detail='HTTP 400')
        assert str(error) == '[process] Volume create failed: HTTP 400'

    def test_job_error_defaults_to_poll_stage(self):
        error = JobFailedError("Job failed", job_ref='/redfish/v1/TaskService/Tasks/J1')
        assert error.stage == 'poll'
        assert error.job_ref == '/redfish/v1/TaskService/Tasks/J1'

    def test_extract_redfish_message(self):
        response = MagicMock()
        response.json.return_value = {'error': {'@Message.ExtendedInfo': [
            {'Message': 'Unable to create the virtual disk.', 'Resolution': 'Retry the operation.'}
        ]}}
        assert extract_redfish_message(response) == 'Unable to create the virtual disk. Retry the operation.'

    def test_extract_redfish_message_without_json(self):
        response = MagicMock()
        response.json.side_effect = ValueError("no json")
        response.text = 'Internal Server Error'
        assert extract_redfish_message(response) == 'Internal Server Error'
