#!/usr/bin/env python3
"""
Redfish Client for iDRAC Storage Operations

Thin wrapper around a requests Session that exposes only the reads and
writes the volume lifecycle needs: capability probes, discovery of systems,
storage controllers and drives, task status, power state and reset.
"""

import re
import logging
from typing import Dict, List, Any, Optional

import requests
import urllib3

from .errors import RedfishRequestError, extract_redfish_message
from .models import TaskStatus

SERVICE_ROOT = '/redfish/v1'


class RedfishClient:
    """
    Client for a single management controller.

    Mutating calls (post/patch/delete) return the raw response so the caller
    can decide what counts as accepted. Reads raise RedfishRequestError on a
    non-success status.
    """

    def __init__(self, endpoint: str, username: Optional[str] = None, password: Optional[str] = None,
                 verify_cert: bool = False, timeout: float = 30,
                 session: Optional[requests.Session] = None,
                 logger: Optional[logging.Logger] = None) -> None:
        """
        Initialize the client.

        Args:
            endpoint: Controller address, with or without scheme
            username: Redfish username
            password: Redfish password
            verify_cert: Whether to verify the controller's TLS certificate
            timeout: Per-request timeout in seconds
            session: Optional pre-built session
            logger: Optional logger instance
        """
        if not endpoint:
            raise ValueError("Redfish endpoint is required")

        endpoint = endpoint.strip().rstrip('/')
        if not endpoint.startswith(('http://', 'https://')):
            endpoint = f"https://{endpoint}"
        self.base_url = endpoint
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

        self.session = session or requests.Session()
        self.session.verify = verify_cert
        if username is not None:
            self.session.auth = (username, password or '')
        self.session.headers.update({'content-type': 'application/json'})

        if not verify_cert:
            # Self-signed iDRAC certificates
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def url(self, uri: str) -> str:
        """Turn a resource path into an absolute URL."""
        if uri.startswith(('http://', 'https://')):
            return uri
        if not uri.startswith('/'):
            uri = f"/{uri}"
        return f"{self.base_url}{uri}"

    # Raw requests
    def get(self, uri: str) -> Dict[str, Any]:
        """
        GET a resource.

        Raises:
            RedfishRequestError: On a non-200 status
            requests.exceptions.RequestException: On transport failure
        """
        response = self.session.get(self.url(uri), timeout=self.timeout)
        if response.status_code != 200:
            raise RedfishRequestError(
                f"GET request to {uri} failed with status {response.status_code}",
                status_code=response.status_code,
                uri=uri,
                detail=extract_redfish_message(response)
            )
        return response.json()

    def post(self, uri: str, payload: Dict[str, Any]) -> requests.Response:
        self.logger.debug(f"POST {uri}")
        return self.session.post(self.url(uri), json=payload, timeout=self.timeout)

    def patch(self, uri: str, payload: Dict[str, Any]) -> requests.Response:
        self.logger.debug(f"PATCH {uri}")
        return self.session.patch(self.url(uri), json=payload, timeout=self.timeout)

    def delete(self, uri: str) -> requests.Response:
        self.logger.debug(f"DELETE {uri}")
        return self.session.delete(self.url(uri), timeout=self.timeout)

    # Resource reads
    def get_resource(self, uri: str) -> Dict[str, Any]:
        return self.get(uri)

    def resource_exists(self, uri: str) -> bool:
        """
        Check whether a resource exists.

        Returns:
            False on 404, True on 200

        Raises:
            RedfishRequestError: On any other status
        """
        try:
            self.get(uri)
        except RedfishRequestError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def get_collection_members(self, uri: str) -> List[Dict[str, Any]]:
        """Fetch every member of a collection."""
        collection = self.get(uri)
        members = []
        for member in collection.get('Members', []):
            member_uri = member.get('@odata.id')
            if member_uri:
                members.append(self.get(member_uri))
        return members

    def get_system(self, system_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a computer system by id, or the first system when no id is given.

        Raises:
            RedfishRequestError: If the system does not exist or no system is listed
        """
        if system_id:
            return self.get(f"{SERVICE_ROOT}/Systems/{system_id}")

        collection = self.get(f"{SERVICE_ROOT}/Systems")
        members = collection.get('Members', [])
        if not members:
            raise RedfishRequestError("No computer systems found", status_code=404,
                                      uri=f"{SERVICE_ROOT}/Systems")
        return self.get(members[0]['@odata.id'])

    def get_storage_controllers(self, system: Dict[str, Any]) -> List[Dict[str, Any]]:
        storage_uri = system.get('Storage', {}).get('@odata.id')
        if not storage_uri:
            storage_uri = f"{system['@odata.id']}/Storage"
        return self.get_collection_members(storage_uri)

    def get_storage_controller(self, system: Dict[str, Any], controller_id: str) -> Optional[Dict[str, Any]]:
        """Return the system's storage controller with the given Id, or None."""
        for controller in self.get_storage_controllers(system):
            if controller.get('Id') == controller_id:
                return controller
        return None

    def get_drives(self, storage: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Fetch the drives attached to a storage controller."""
        return [self.get(ref['@odata.id']) for ref in storage.get('Drives', []) if '@odata.id' in ref]

    def get_volumes(self, storage_uri: str) -> List[Dict[str, Any]]:
        return self.get_collection_members(f"{storage_uri}/Volumes")

    # Capability probes
    def get_supported_apply_times(self, storage_uri: str) -> List[str]:
        """
        Read the apply times a controller advertises for volume operations.

        Returns:
            SupportedValues of the volume collection's OperationApplyTimeSupport
        """
        volumes = self.get(f"{storage_uri}/Volumes")
        support = volumes.get('@Redfish.OperationApplyTimeSupport', {})
        return list(support.get('SupportedValues', []))

    def server_generation(self) -> Optional[int]:
        """Return the PowerEdge generation from the manager model, e.g. 14 for '14G Monolithic'."""
        managers = self.get(f"{SERVICE_ROOT}/Managers").get('Members', [])
        if not managers:
            return None
        model = self.get(managers[0]['@odata.id']).get('Model', '') or ''
        match = re.search(r'(\d+)G', model)
        if not match:
            self.logger.warning(f"Unknown server generation: {model}")
            return None
        return int(match.group(1))

    def is_generation_seventeen_and_above(self) -> bool:
        generation = self.server_generation()
        return generation is not None and generation >= 17

    # Jobs and power
    def get_task_status(self, job_ref: str) -> TaskStatus:
        """
        Read the state of a task or Dell job.

        Raises:
            RedfishRequestError: On a status other than 200/202
        """
        response = self.session.get(self.url(job_ref), timeout=self.timeout)
        if response.status_code not in (200, 202):
            raise RedfishRequestError(
                f"Failed to check job status: {response.status_code}",
                status_code=response.status_code,
                uri=job_ref,
                detail=extract_redfish_message(response)
            )
        data = response.json()

        message = data.get('Message')
        if not message and data.get('Messages'):
            message = data['Messages'][0].get('Message')
        return {
            'state': data.get('TaskState') or data.get('JobState'),
            'percent_complete': data.get('PercentComplete'),
            'message': message,
        }

    def get_power_state(self, system_uri: str) -> Optional[str]:
        return self.get(system_uri).get('PowerState')

    def perform_reset(self, system_uri: str, reset_type: str) -> None:
        """
        Issue a ComputerSystem.Reset action.

        Raises:
            RedfishRequestError: If the controller rejects the reset
        """
        system = self.get(system_uri)
        action = system.get('Actions', {}).get('#ComputerSystem.Reset', {})
        target = action.get('target') or f"{system_uri}/Actions/ComputerSystem.Reset"

        response = self.post(target, {'ResetType': reset_type})
        if response.status_code not in (200, 202, 204):
            raise RedfishRequestError(
                f"Failed to reset system: {response.status_code}",
                status_code=response.status_code,
                uri=target,
                detail=extract_redfish_message(response)
            )
