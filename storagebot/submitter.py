#!/usr/bin/env python3
"""
Change Submitter

Builds the request for a volume create, update or delete and sends exactly
one mutating call to the controller. An accepted call yields the job handle
from the Location header; anything else is a SubmissionError. Nothing here
retries, since re-sending a hardware change is not safely idempotent.
"""

import logging
from typing import Dict, List, Any, Optional

import requests

from .errors import SubmissionError, extract_redfish_message
from .models import (
    CreateVolumeRequest, UpdateVolumeRequest, DeleteVolumeRequest,
    VolumeState, with_defaults, resolve_raid_type
)
from .redfish_client import RedfishClient

# Only encryption type iDRAC still accepts
ENCRYPTION_TYPES = ['NativeDriveEncryption']


def build_create_request(state: VolumeState, drive_uris: List[str]) -> CreateVolumeRequest:
    state = with_defaults(state)
    return {
        'kind': 'create',
        'name': state['volume_name'],
        'raid_type': resolve_raid_type(state),
        'read_cache_policy': state['read_cache_policy'],
        'write_cache_policy': state['write_cache_policy'],
        'disk_cache_policy': state['disk_cache_policy'],
        'capacity_bytes': int(state.get('capacity_bytes') or 0),
        'optimum_io_size_bytes': int(state.get('optimum_io_size_bytes') or 0),
        'encrypted': bool(state['encrypted']),
        'apply_time': state['settings_apply_time'],
        'drive_uris': list(drive_uris),
    }


def build_update_request(state: VolumeState, volume_uri: str) -> UpdateVolumeRequest:
    state = with_defaults(state)
    return {
        'kind': 'update',
        'volume_uri': volume_uri,
        'name': state['volume_name'],
        'read_cache_policy': state['read_cache_policy'],
        'write_cache_policy': state['write_cache_policy'],
        'disk_cache_policy': state['disk_cache_policy'],
        'encrypted': bool(state['encrypted']),
        'apply_time': state['settings_apply_time'],
    }


def build_delete_request(state: VolumeState) -> DeleteVolumeRequest:
    state = with_defaults(state)
    return {
        'kind': 'delete',
        'volume_uri': state['id'],
        'apply_time': state['settings_apply_time'],
    }


def _dell_oem(disk_cache_policy: str) -> Dict[str, Any]:
    return {'Dell': {'DellVolume': {'DiskCachePolicy': disk_cache_policy}}}


def create_payload(request: CreateVolumeRequest, drives_in_links: bool) -> Dict[str, Any]:
    """
    Render a create request as the JSON body POSTed to the volume collection.

    Args:
        request: The create request
        drives_in_links: True for 17th generation servers and newer, which
            expect the drives under Links.Drives instead of a top-level Drives

    Returns:
        Payload dictionary
    """
    payload: Dict[str, Any] = {
        'DisplayName': request['name'],
        'Name': request['name'],
        'ReadCachePolicy': request['read_cache_policy'],
        'WriteCachePolicy': request['write_cache_policy'],
        'CapacityBytes': request['capacity_bytes'],
        'OptimumIOSizeBytes': request['optimum_io_size_bytes'],
        'RAIDType': request['raid_type'],
        'Encrypted': request['encrypted'],
        'Oem': _dell_oem(request['disk_cache_policy']),
        '@Redfish.OperationApplyTime': request['apply_time'],
    }

    drives = [{'@odata.id': uri} for uri in request['drive_uris']]
    if drives_in_links:
        payload['Links'] = {'Drives': drives}
    else:
        payload['Drives'] = drives
    return payload


def update_payload(request: UpdateVolumeRequest) -> Dict[str, Any]:
    return {
        'ReadCachePolicy': request['read_cache_policy'],
        'WriteCachePolicy': request['write_cache_policy'],
        'DisplayName': request['name'],
        'Name': request['name'],
        'Encrypted': request['encrypted'],
        'EncryptionTypes': list(ENCRYPTION_TYPES),
        'Oem': _dell_oem(request['disk_cache_policy']),
        '@Redfish.SettingsApplyTime': {'ApplyTime': request['apply_time']},
    }


class ChangeSubmitter:
    """Sends one mutating volume request and returns its job handle."""

    def __init__(self, client: RedfishClient, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    def submit_create(self, storage_uri: str, request: CreateVolumeRequest, drives_in_links: bool) -> str:
        payload = create_payload(request, drives_in_links)
        self.logger.info(f"Submitting creation of volume {request['name']} on {storage_uri} "
                         f"({request['raid_type']}, {len(request['drive_uris'])} drives, "
                         f"apply time {request['apply_time']})")
        return self._submit('create', 'POST', f"{storage_uri}/Volumes", payload)

    def submit_update(self, request: UpdateVolumeRequest) -> str:
        payload = update_payload(request)
        self.logger.info(f"Submitting settings update for volume {request['volume_uri']} "
                         f"(apply time {request['apply_time']})")
        return self._submit('update', 'PATCH', f"{request['volume_uri']}/Settings", payload)

    def submit_delete(self, request: DeleteVolumeRequest) -> str:
        self.logger.info(f"Submitting deletion of volume {request['volume_uri']}")
        return self._submit('delete', 'DELETE', request['volume_uri'])

    def _submit(self, kind: str, method: str, uri: str, payload: Optional[Dict[str, Any]] = None) -> str:
        """
        Send the request and extract the job handle.

        Raises:
            SubmissionError: On transport failure, a status other than 202,
                or an accepted response without a Location header
        """
        try:
            if method == 'POST':
                response = self.client.post(uri, payload or {})
            elif method == 'PATCH':
                response = self.client.patch(uri, payload or {})
            else:
                response = self.client.delete(uri)
        except requests.exceptions.RequestException as e:
            raise SubmissionError(f"Error while sending the volume {kind} request to {uri}",
                                  stage='process', detail=str(e))

        if response.status_code != 202:
            self.logger.error(f"Volume {kind} request failed: {response.status_code}")
            raise SubmissionError(
                f"The volume {kind} request was not accepted. "
                f"Return code {response.status_code} was different from 202 ACCEPTED",
                stage='process',
                detail=extract_redfish_message(response)
            )

        job_ref = response.headers.get('Location', '')
        if not job_ref:
            raise SubmissionError(f"No job reference returned for the accepted volume {kind} request",
                                  stage='process')

        self.logger.info(f"Job for volume {kind}: {job_ref}")
        return job_ref
