#!/usr/bin/env python3
"""
Pytest configuration for storagebot tests.

This file contains shared fixtures: a fake clock for the wait loops and a
fake iDRAC that answers a mocked requests Session.
"""

import os
import sys
import copy
import logging
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../')))

from storagebot.mutex import EndpointMutexRegistry
from storagebot.redfish_client import RedfishClient

IDRAC_HOST = '192.168.2.230'
BASE_URL = f'https://{IDRAC_HOST}'
SYSTEM_URI = '/redfish/v1/Systems/System.Embedded.1'
STORAGE_URI = f'{SYSTEM_URI}/Storage/RAID.Integrated.1-1'
VOLUMES_URI = f'{STORAGE_URI}/Volumes'
RESET_URI = f'{SYSTEM_URI}/Actions/ComputerSystem.Reset'
DRIVE_NAMES = ['Physical Disk 0:1:0', 'Physical Disk 0:1:1', 'Physical Disk 0:1:2']


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def monotonic(self) -> float:
        return self.now


def make_response(status_code: int = 200, body: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> MagicMock:
    """Build a mock requests Response."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = body if body is not None else {}
    response.text = str(body or '')
    return response


def not_found(uri: str) -> MagicMock:
    return make_response(404, {'error': {'@Message.ExtendedInfo': [
        {'Message': f'The resource at {uri} was not found.', 'Resolution': 'Check the URI.',
         'MessageId': 'Base.1.12.ResourceNotFound'}
    ]}})


class FakeIdrac:
    """
    In-memory iDRAC that answers a mocked requests Session.

    Task states are consumed one per poll (the last one repeats); an entry
    that is an exception instance is raised instead. Power states after a
    reset are consumed the same way.
    """

    def __init__(self, model: str = '14G Monolithic',
                 apply_times: Optional[List[str]] = None) -> None:
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.task_states: Dict[str, List[Any]] = {}
        self.task_hooks: Dict[str, Callable[[], None]] = {}
        self.power_state = 'On'
        self.power_sequence: List[Any] = []
        self.reset_issued = False
        self.reset_types: List[str] = []
        self.submit_status = 202
        self.job_location: Optional[str] = '/redfish/v1/TaskService/Tasks/J1'

        self.session = MagicMock()
        self.session.headers = {}
        self.session.get.side_effect = self._get
        self.session.post.side_effect = self._post
        self.session.patch.side_effect = self._patch
        self.session.delete.side_effect = self._delete

        self._build_topology(model, apply_times or ['Immediate', 'OnReset'])

    def _build_topology(self, model: str, apply_times: List[str]) -> None:
        self.resources['/redfish/v1/Managers'] = {
            'Members': [{'@odata.id': '/redfish/v1/Managers/iDRAC.Embedded.1'}]
        }
        self.resources['/redfish/v1/Managers/iDRAC.Embedded.1'] = {
            '@odata.id': '/redfish/v1/Managers/iDRAC.Embedded.1', 'Model': model
        }
        self.resources['/redfish/v1/Systems'] = {'Members': [{'@odata.id': SYSTEM_URI}]}
        self.resources[SYSTEM_URI] = {
            '@odata.id': SYSTEM_URI,
            'Id': 'System.Embedded.1',
            'Storage': {'@odata.id': f'{SYSTEM_URI}/Storage'},
            'Actions': {'#ComputerSystem.Reset': {'target': RESET_URI}},
        }
        self.resources[f'{SYSTEM_URI}/Storage'] = {'Members': [{'@odata.id': STORAGE_URI}]}

        drive_refs = []
        for index, name in enumerate(DRIVE_NAMES):
            uri = f'{SYSTEM_URI}/Storage/Drives/Disk.Bay.{index}:Enclosure.Internal.0-1:RAID.Integrated.1-1'
            self.resources[uri] = {'@odata.id': uri, 'Id': f'Disk.Bay.{index}', 'Name': name}
            drive_refs.append({'@odata.id': uri})

        self.resources[STORAGE_URI] = {
            '@odata.id': STORAGE_URI, 'Id': 'RAID.Integrated.1-1', 'Drives': drive_refs
        }
        self.resources[VOLUMES_URI] = {
            'Members': [],
            '@Redfish.OperationApplyTimeSupport': {'SupportedValues': list(apply_times)},
        }

    @property
    def client(self) -> RedfishClient:
        return RedfishClient(IDRAC_HOST, username='root', password='calvin', session=self.session)

    def drive_uri(self, name: str) -> str:
        for uri, resource in self.resources.items():
            if resource.get('Name') == name and '/Drives/' in uri:
                return uri
        raise KeyError(name)

    def add_volume(self, name: str, drive_names: List[str], index: int = 0, **fields: Any) -> str:
        uri = f'{VOLUMES_URI}/Disk.Virtual.{index}:RAID.Integrated.1-1'
        volume = {
            '@odata.id': uri,
            'Id': f'Disk.Virtual.{index}:RAID.Integrated.1-1',
            'Name': name,
            'CapacityBytes': 999653638144,
            'OptimumIOSizeBytes': 65536,
            'ReadCachePolicy': 'Off',
            'WriteCachePolicy': 'UnprotectedWriteBack',
            'VolumeType': 'Mirrored',
            'RAIDType': 'RAID1',
            'Encrypted': False,
            'Links': {'Drives': [{'@odata.id': self.drive_uri(d)} for d in drive_names]},
            'Oem': {'Dell': {'DellVolume': {'DiskCachePolicy': 'Enabled'}}},
        }
        volume.update(fields)
        self.resources[uri] = volume
        self.resources[VOLUMES_URI]['Members'].append({'@odata.id': uri})
        return uri

    def remove_volume(self, uri: str) -> None:
        self.resources.pop(uri, None)
        members = self.resources[VOLUMES_URI]['Members']
        self.resources[VOLUMES_URI]['Members'] = [m for m in members if m['@odata.id'] != uri]

    def calls_for(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    @staticmethod
    def _path(url: str) -> str:
        return url[len(BASE_URL):] if url.startswith(BASE_URL) else url

    @staticmethod
    def _next(sequence: List[Any]) -> Any:
        return sequence.pop(0) if len(sequence) > 1 else sequence[0]

    def _get(self, url: str, **kwargs: Any) -> MagicMock:
        path = self._path(url)
        self.calls.append(('GET', path, None))

        if path in self.task_states:
            state = self._next(self.task_states[path])
            if isinstance(state, Exception):
                raise state
            if isinstance(state, int):
                return make_response(state, {})
            if state == 'Completed' and path in self.task_hooks:
                self.task_hooks.pop(path)()
            return make_response(200, {'TaskState': state, 'PercentComplete': 100 if state == 'Completed' else 50})

        if path == SYSTEM_URI:
            if self.reset_issued and self.power_sequence:
                state = self._next(self.power_sequence)
                if isinstance(state, Exception):
                    raise state
                self.power_state = state
            body = copy.deepcopy(self.resources[SYSTEM_URI])
            body['PowerState'] = self.power_state
            return make_response(200, body)

        if path not in self.resources:
            return not_found(path)
        return make_response(200, copy.deepcopy(self.resources[path]))

    def _accepted(self) -> MagicMock:
        headers = {'Location': self.job_location} if self.job_location is not None else {}
        return make_response(self.submit_status, {}, headers)

    def _post(self, url: str, json: Optional[Dict[str, Any]] = None, **kwargs: Any) -> MagicMock:
        path = self._path(url)
        self.calls.append(('POST', path, json))
        if path == RESET_URI:
            self.reset_issued = True
            self.reset_types.append(json['ResetType'])
            return make_response(204)
        return self._accepted()

    def _patch(self, url: str, json: Optional[Dict[str, Any]] = None, **kwargs: Any) -> MagicMock:
        self.calls.append(('PATCH', self._path(url), json))
        return self._accepted()

    def _delete(self, url: str, **kwargs: Any) -> MagicMock:
        self.calls.append(('DELETE', self._path(url), None))
        return self._accepted()


@pytest.fixture
def mock_logger():
    """Fixture providing a mock logger that won't output during tests."""
    logger = MagicMock(spec=logging.Logger)
    return logger


@pytest.fixture
def fake_clock():
    """Fixture providing a clock that advances only through sleep()."""
    return FakeClock()


@pytest.fixture
def fake_idrac():
    """Fixture providing a 14th generation iDRAC advertising Immediate and OnReset."""
    return FakeIdrac()


@pytest.fixture
def registry():
    """Fixture providing a fresh endpoint mutex registry."""
    return EndpointMutexRegistry()


@pytest.fixture
def storage_test_config():
    """Fixture providing a test configuration for StorageVolumeComponent."""
    return {
        'component_id': 'storage-volume-test-component',
        'endpoint': IDRAC_HOST,
        'username': 'root',
        'password': 'calvin',
        'job_poll_interval': 10,
        'power_poll_interval': 10,
        'settle_delay': 60,
        'delete_reset_grace_period': 30,
    }


@pytest.fixture
def desired_volume():
    """Fixture providing a desired RAID1 volume on two drives."""
    return {
        'storage_controller_id': 'RAID.Integrated.1-1',
        'volume_name': 'TestVolume',
        'raid_type': 'RAID1',
        'drives': ['Physical Disk 0:1:0', 'Physical Disk 0:1:1'],
        'settings_apply_time': 'Immediate',
        'volume_job_timeout': 1200,
    }
