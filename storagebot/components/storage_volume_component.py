#!/usr/bin/env python3
"""
Storage Volume Component for Discovery-Processing-Housekeeping Pattern

Creates, reads, updates and deletes RAID volumes on a Dell iDRAC storage
controller through the Redfish API. Each lifecycle operation holds the
controller's endpoint lock for its whole duration:

    discover  - generation probe, system/controller/drive lookup, apply-time check
    process   - one mutating request, then a power cycle for OnReset changes
    housekeep - job polling, settle delay, read-back into the volume state
"""

import time
import logging
from typing import Dict, List, Any, Optional, Tuple, Callable

from ..base_component import BaseComponent, Phase
from ..apply_time import check_apply_time
from ..errors import PreconditionError, RedfishRequestError, VolumeNotFoundError
from ..job_poller import JobPoller, raise_for_outcome
from ..models import (
    VolumeState, ServerConfig, JobResult, PowerResult,
    APPLY_TIME_ON_RESET, with_defaults, parse_import_id
)
from ..mutex import EndpointMutexRegistry
from ..power import PowerCycleCoordinator
from ..reconciler import StateReconciler, DEFAULT_RECONCILE_FIELDS
from ..redfish_client import RedfishClient
from ..submitter import (
    ChangeSubmitter, build_create_request, build_update_request, build_delete_request
)


class StorageVolumeComponent(BaseComponent):
    """
    Component for managing storage volumes on one management controller.

    The endpoint registry is shared by every component in the process and
    must be passed in explicitly.
    """

    # Default configuration
    DEFAULT_CONFIG = {
        'endpoint': None,
        'username': 'root',
        'password': None,
        'verify_cert': False,
        'request_timeout': 30,
        'job_poll_interval': 10,
        'power_poll_interval': 10,
        'settle_delay': 60,  # after a create or update job
        'delete_reset_grace_period': 30,  # before the reset that follows a delete
        'reconcile_fields': list(DEFAULT_RECONCILE_FIELDS),
        'preserve_fields': [],
    }

    def __init__(self, config: Dict[str, Any], registry: EndpointMutexRegistry,
                 client: Optional[RedfishClient] = None,
                 logger: Optional[logging.Logger] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the storage volume component.

        Args:
            config: Configuration dictionary for the component
            registry: Process-wide endpoint mutex registry
            client: Optional Redfish client (built from config if omitted)
            logger: Optional logger instance
            sleep: Blocking wait function used by every delay and poll loop
            clock: Monotonic clock used for deadlines
        """
        # Merge provided config with defaults
        merged_config = {**self.DEFAULT_CONFIG, **{k: v for k, v in config.items() if v is not None}}

        super().__init__(merged_config, logger)

        if not self.config.get('endpoint'):
            raise ValueError("Redfish endpoint is required")

        self.endpoint: str = self.config['endpoint']
        self.registry = registry
        self._sleep = sleep

        self.client = client or RedfishClient(
            self.endpoint,
            username=self.config.get('username'),
            password=self.config.get('password'),
            verify_cert=self.config.get('verify_cert', False),
            timeout=self.config.get('request_timeout', 30),
            logger=self.logger
        )
        self.submitter = ChangeSubmitter(self.client, logger=self.logger)
        self.poller = JobPoller(self.client, interval=self.config['job_poll_interval'],
                                sleep=sleep, clock=clock, logger=self.logger)
        self.power = PowerCycleCoordinator(self.client, interval=self.config['power_poll_interval'],
                                           sleep=sleep, clock=clock, logger=self.logger)
        self.reconciler = StateReconciler(self.client,
                                          fields=self.config['reconcile_fields'],
                                          preserve_fields=self.config['preserve_fields'],
                                          logger=self.logger)

        self._clear_operation()
        self.logger.info(f"StorageVolumeComponent initialized for endpoint {self.endpoint}")

    def _clear_operation(self) -> None:
        self.operation: Optional[str] = None
        self.desired: VolumeState = {}
        self.prior: VolumeState = {}
        self.discovery_results: Dict[str, Any] = {}
        self.processing_results: Dict[str, Any] = {}
        self.housekeeping_results: Dict[str, Any] = {}
        self.result: Optional[VolumeState] = None
        self.found: bool = True

    # Lifecycle verbs
    def create(self, desired: VolumeState) -> VolumeState:
        """
        Create a volume and return its reconciled state.

        Args:
            desired: Desired volume state; volume_name, storage_controller_id and drives are required

        Returns:
            The reconciled state with the id assigned by the controller
        """
        result, _ = self._run_operation('create', desired)
        return result

    def read(self, state: VolumeState) -> Tuple[VolumeState, bool]:
        """
        Refresh a volume's state from the controller.

        Returns:
            Tuple of (state, found). When the volume no longer exists the
            given state (with defaults filled in) is returned with found=False.
        """
        return self._run_operation('read', state, phases=['housekeep'])

    def update(self, desired: VolumeState, prior: VolumeState) -> VolumeState:
        """
        Apply new settings to an existing volume.

        Raises:
            PreconditionError: If the update would disable encryption
        """
        desired_full = with_defaults(desired)
        prior_full = with_defaults(prior)
        if not desired_full['encrypted'] and prior_full['encrypted']:
            raise PreconditionError(
                "Invalid Configuration. Cannot disable encryption, once a disk is encrypted "
                "it cannot be transformed back into an non-encrypted state.",
                stage='discover'
            )
        result, _ = self._run_operation('update', desired, prior)
        return result

    def delete(self, state: VolumeState) -> None:
        """Delete a volume and confirm it is gone."""
        self._run_operation('delete', state)

    @staticmethod
    def import_state(import_id: str) -> Tuple[ServerConfig, VolumeState]:
        """
        Adopt an existing volume from a JSON import identity.

        Returns:
            Tuple of (server connection, volume state to pass to read())
        """
        return parse_import_id(import_id)

    def _run_operation(self, operation: str, desired: VolumeState,
                       prior: Optional[VolumeState] = None,
                       phases: Optional[List[Phase]] = None) -> Tuple[Optional[VolumeState], bool]:
        self.logger.info(f"Starting volume {operation} on {self.endpoint}")
        with self.registry.locked(self.endpoint):
            self._clear_operation()
            self.operation = operation
            self.desired = with_defaults(desired)
            self.prior = with_defaults(prior or {})
            self.execute(phases)
            return self.result, self.found

    # Phases
    def discover(self) -> None:
        """Locate the system, controller and drives; gate the apply time."""
        if self.operation == 'create':
            self._discover_for_create()
        elif self.operation == 'update':
            if not self.prior.get('id'):
                raise PreconditionError("Cannot update a volume without its id")
            self._discover_controller(self.desired.get('system_id'), self.desired.get('storage_controller_id'))
        elif self.operation == 'delete':
            self._discover_for_delete()

    def process(self) -> None:
        """Submit the change and power-cycle the system when the change applies on reset."""
        apply_time = self.desired['settings_apply_time']

        if self.operation == 'create':
            request = build_create_request(self.desired, self.discovery_results['drive_uris'])
            job_ref = self.submitter.submit_create(self.discovery_results['storage_uri'], request,
                                                   self.discovery_results['drives_in_links'])
        elif self.operation == 'update':
            request = build_update_request(self.desired, self.prior['id'])
            job_ref = self.submitter.submit_update(request)
        else:
            request = build_delete_request(self.desired)
            job_ref = self.submitter.submit_delete(request)

        self.processing_results['job_id'] = job_ref
        self.processing_results['reboot_triggered'] = False

        if apply_time == APPLY_TIME_ON_RESET:
            if self.operation == 'delete':
                grace = self.config['delete_reset_grace_period']
                self.logger.info(f"Waiting {grace}s before reset so the delete job is not disturbed")
                self._sleep(grace)
            result: PowerResult = self.power.power_cycle(
                self.discovery_results['system_uri'],
                self.desired['reset_type'],
                self.desired['reset_timeout']
            )
            self.processing_results['reboot_triggered'] = True
            self.processing_results['power'] = result

    def housekeep(self) -> None:
        """Wait for the job, then read the volume back or confirm its removal."""
        if self.operation == 'read':
            self._refresh()
            return

        job_ref = self.processing_results.get('job_id')
        result: JobResult = self.poller.wait(job_ref, self.desired['volume_job_timeout'])
        self.housekeeping_results['job'] = result
        raise_for_outcome(result)

        if self.operation == 'delete':
            self.reconciler.confirm_absent(self.desired['id'])
            self.result = None
            return

        settle = self.config['settle_delay']
        self.logger.info(f"Waiting {settle}s for the controller to settle")
        self._sleep(settle)

        volume = self.reconciler.find_volume(self.discovery_results['storage_uri'],
                                             self.desired['volume_name'])
        state = dict(self.desired)
        state['system_id'] = self.discovery_results['system_id']
        self.result = self.reconciler.reconcile(state, volume)  # type: ignore[arg-type]

    # Discovery helpers
    def _discover_for_create(self) -> None:
        drive_names: List[str] = list(self.desired.get('drives') or [])
        if not drive_names:
            raise PreconditionError("At least one drive is required to create a volume")
        if not self.desired.get('volume_name'):
            raise PreconditionError("A volume name is required to create a volume")

        # Resolve once which drive addressing the controller expects
        drives_in_links = self.client.is_generation_seventeen_and_above()
        self.discovery_results['drives_in_links'] = drives_in_links
        self.logger.info(f"Drives attached via {'Links.Drives' if drives_in_links else 'Drives'}")

        storage = self._discover_controller(self.desired.get('system_id'),
                                            self.desired.get('storage_controller_id'))

        drives = self._match_drives(self.client.get_drives(storage), drive_names)
        self.discovery_results['drive_uris'] = [drive['@odata.id'] for drive in drives]

    def _discover_for_delete(self) -> None:
        volume_uri = self.desired.get('id')
        if not volume_uri:
            raise PreconditionError("Cannot delete a volume without its id")

        # The volume URI sits under its controller and system
        storage_uri = _parent_uri(volume_uri, '/Volumes/')
        system_uri = _parent_uri(storage_uri, '/Storage/')
        if self.desired.get('system_id'):
            system_uri = self._get_system(self.desired['system_id'])['@odata.id']

        self.discovery_results.update({
            'system_uri': system_uri,
            'storage_uri': storage_uri,
        })
        check_apply_time(self.client.get_supported_apply_times(storage_uri),
                         self.desired['settings_apply_time'], storage_uri)

    def _discover_controller(self, system_id: Optional[str], controller_id: Optional[str]) -> Dict[str, Any]:
        if not controller_id:
            raise PreconditionError("A storage controller id is required")

        system = self._get_system(system_id)
        self.discovery_results['system_id'] = system.get('Id')
        self.discovery_results['system_uri'] = system['@odata.id']
        self.logger.info(f"Using system {system.get('Id')}")

        storage = self.client.get_storage_controller(system, controller_id)
        if storage is None:
            raise PreconditionError(f"Couldn't find the storage controller {controller_id}")

        self.discovery_results['storage_uri'] = storage['@odata.id']

        supported = self.client.get_supported_apply_times(storage['@odata.id'])
        self.discovery_results['supported_apply_times'] = supported
        check_apply_time(supported, self.desired['settings_apply_time'], controller_id)
        return storage

    def _get_system(self, system_id: Optional[str]) -> Dict[str, Any]:
        try:
            return self.client.get_system(system_id or None)
        except RedfishRequestError as e:
            if e.status_code == 404:
                raise PreconditionError(f"Couldn't find the computer system {system_id or ''}".strip(),
                                        detail=e.detail)
            raise

    def _match_drives(self, drives: List[Dict[str, Any]], drive_names: List[str]) -> List[Dict[str, Any]]:
        """Return the controller drives named in the desired state; every name must match."""
        matched = [drive for drive in drives if drive.get('Name') in drive_names]
        if len(matched) != len(drive_names):
            found = {drive.get('Name') for drive in matched}
            missing = [name for name in drive_names if name not in found]
            raise PreconditionError("Any of the drives you inserted doesn't exist",
                                    detail=f"not found: {', '.join(missing) or 'duplicate names'}")
        self.logger.info(f"Matched drives: {', '.join(drive_names)}")
        return matched

    def _refresh(self) -> None:
        volume_uri = self.desired.get('id')
        if not volume_uri:
            raise PreconditionError("Cannot read a volume without its id")

        try:
            volume = self.reconciler.read_volume(volume_uri)
        except VolumeNotFoundError:
            self.logger.warning(f"Volume {volume_uri} doesn't exist, removing it from state")
            self.found = False
            self.result = self.desired
            return

        self.result = self.reconciler.reconcile(self.desired, volume)


def _parent_uri(uri: str, marker: str) -> str:
    """Cut a Redfish URI at the last occurrence of a collection marker."""
    index = uri.rfind(marker)
    if index <= 0:
        raise PreconditionError(f"Malformed resource URI: {uri}")
    return uri[:index]
