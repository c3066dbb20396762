#!/usr/bin/env python3
"""
Data Model for Storage Volume Orchestration

TypedDict definitions for the declarative volume state, the tagged request
structures sent to the controller, and the results produced by the job
poller and power-cycle coordinator.
"""

import json
from typing import Dict, List, Any, Optional, Tuple, TypedDict, Literal

from .errors import PreconditionError


ApplyTime = Literal['Immediate', 'OnReset']
ResetType = Literal['ForceRestart', 'GracefulRestart', 'PowerCycle']
JobOutcome = Literal['Succeeded', 'Failed', 'TimedOut']

APPLY_TIME_IMMEDIATE: ApplyTime = 'Immediate'
APPLY_TIME_ON_RESET: ApplyTime = 'OnReset'

RESET_TYPES: Tuple[str, ...] = ('ForceRestart', 'GracefulRestart', 'PowerCycle')

JOB_SUCCEEDED: JobOutcome = 'Succeeded'
JOB_FAILED: JobOutcome = 'Failed'
JOB_TIMED_OUT: JobOutcome = 'TimedOut'

# Deprecated volume_type values and the RAID level each one stands for
VOLUME_TYPE_TO_RAID: Dict[str, str] = {
    'NonRedundant': 'RAID0',
    'Mirrored': 'RAID1',
    'StripedWithParity': 'RAID5',
    'SpannedMirrors': 'RAID10',
    'SpannedStripesWithParity': 'RAID50',
}

DEFAULT_RESET_TIMEOUT = 120
DEFAULT_VOLUME_JOB_TIMEOUT = 1200


class ServerConfig(TypedDict, total=False):
    """Connection details for one management controller."""
    endpoint: str
    username: str
    password: str
    ssl_insecure: bool
    redfish_alias: str


class VolumeState(TypedDict, total=False):
    """Declarative state of one storage volume."""
    id: str
    system_id: str
    storage_controller_id: str
    volume_name: str
    drives: List[str]
    raid_type: str
    volume_type: str
    capacity_bytes: Optional[int]
    optimum_io_size_bytes: Optional[int]
    read_cache_policy: str
    write_cache_policy: str
    disk_cache_policy: str
    encrypted: bool
    settings_apply_time: ApplyTime
    reset_type: ResetType
    reset_timeout: int
    volume_job_timeout: int


VOLUME_DEFAULTS: VolumeState = {
    'raid_type': 'RAID0',
    'read_cache_policy': 'Off',
    'write_cache_policy': 'UnprotectedWriteBack',
    'disk_cache_policy': 'Enabled',
    'encrypted': False,
    'settings_apply_time': APPLY_TIME_IMMEDIATE,
    'reset_type': 'ForceRestart',
    'reset_timeout': DEFAULT_RESET_TIMEOUT,
    'volume_job_timeout': DEFAULT_VOLUME_JOB_TIMEOUT,
}


class CreateVolumeRequest(TypedDict):
    """Everything needed to POST a new volume."""
    kind: Literal['create']
    name: str
    raid_type: str
    read_cache_policy: str
    write_cache_policy: str
    disk_cache_policy: str
    capacity_bytes: int
    optimum_io_size_bytes: int
    encrypted: bool
    apply_time: ApplyTime
    drive_uris: List[str]


class UpdateVolumeRequest(TypedDict):
    """Everything needed to PATCH an existing volume's settings."""
    kind: Literal['update']
    volume_uri: str
    name: str
    read_cache_policy: str
    write_cache_policy: str
    disk_cache_policy: str
    encrypted: bool
    apply_time: ApplyTime


class DeleteVolumeRequest(TypedDict):
    """Target of a volume deletion."""
    kind: Literal['delete']
    volume_uri: str
    apply_time: ApplyTime


class TaskStatus(TypedDict, total=False):
    """One observation of a remote task."""
    state: Optional[str]
    percent_complete: Optional[int]
    message: Optional[str]


class JobResult(TypedDict):
    """Terminal result of polling one job."""
    job_ref: str
    outcome: JobOutcome
    state: Optional[str]
    percent_complete: Optional[int]
    message: Optional[str]
    polls: int
    elapsed: float


class PowerResult(TypedDict):
    """Result of a completed power cycle."""
    system_uri: str
    reset_type: str
    issued_reset_type: str
    final_state: str
    transitions: List[str]
    polls: int
    elapsed: float


def with_defaults(state: VolumeState) -> VolumeState:
    """
    Fill unset optional fields with their schema defaults.

    The RAID level is resolved from the given state before defaults apply,
    so a deprecated volume_type still maps when raid_type is unset.

    Args:
        state: Desired or prior volume state

    Returns:
        A new state with defaults applied
    """
    merged: VolumeState = dict(VOLUME_DEFAULTS)  # type: ignore[assignment]
    merged.update({k: v for k, v in state.items() if v is not None})  # type: ignore[typeddict-item]
    merged['raid_type'] = resolve_raid_type(state)
    return merged


def resolve_raid_type(state: VolumeState) -> str:
    """Map the deprecated volume_type to a RAID level; raid_type wins when set."""
    raid_type = state.get('raid_type')
    if raid_type:
        return raid_type
    return VOLUME_TYPE_TO_RAID.get(state.get('volume_type') or '', VOLUME_DEFAULTS['raid_type'])


def parse_import_id(import_id: str) -> Tuple[ServerConfig, VolumeState]:
    """
    Parse the JSON identity used to adopt an existing volume.

    The document carries the controller credentials and the volume URI,
    e.g. {"username": "root", "password": "calvin", "endpoint": "https://10.0.0.5",
    "ssl_insecure": true, "id": "/redfish/v1/.../Volumes/Disk.Virtual.0", "system_id": ""}.

    Args:
        import_id: JSON document describing the volume to adopt

    Returns:
        Tuple of (server connection, volume state with lifecycle defaults)

    Raises:
        PreconditionError: If the document is not a JSON object or has no volume id
    """
    try:
        document = json.loads(import_id)
    except (TypeError, ValueError) as e:
        raise PreconditionError("Error while unmarshalling import id", stage='import', detail=str(e))

    if not isinstance(document, dict):
        raise PreconditionError("Import id must be a JSON object", stage='import')
    if not document.get('id'):
        raise PreconditionError("Import id does not name a volume", stage='import')

    server: ServerConfig = {
        'endpoint': document.get('endpoint', ''),
        'username': document.get('username', ''),
        'password': document.get('password', ''),
        'ssl_insecure': bool(document.get('ssl_insecure', False)),
        'redfish_alias': document.get('redfish_alias', ''),
    }

    state: VolumeState = {
        'id': document['id'],
        'system_id': document.get('system_id', ''),
        'reset_timeout': DEFAULT_RESET_TIMEOUT,
        'reset_type': 'ForceRestart',
        'volume_job_timeout': DEFAULT_VOLUME_JOB_TIMEOUT,
        'settings_apply_time': APPLY_TIME_IMMEDIATE,
    }
    return server, state
