#!/usr/bin/env python3
"""
State Reconciler

Reads a volume back from the controller after its job finished and copies
the reported properties into the declarative model.

Which model fields are written back is configurable. By default the RAID
level, encryption flag and disk cache policy are never overwritten from the
controller, so a value the controller reports mid-transition does not show
up as drift.
"""

import logging
from typing import Dict, List, Any, Callable, Iterable, Optional

from .errors import RedfishRequestError, ReconciliationError, VolumeNotFoundError
from .models import VolumeState
from .redfish_client import RedfishClient


def _dell_disk_cache_policy(volume: Dict[str, Any]) -> Optional[str]:
    return volume.get('Oem', {}).get('Dell', {}).get('DellVolume', {}).get('DiskCachePolicy')


# Model field -> extractor over the Redfish volume (drives are resolved separately)
FIELD_MAP: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    'capacity_bytes': lambda v: v.get('CapacityBytes'),
    'optimum_io_size_bytes': lambda v: v.get('OptimumIOSizeBytes'),
    'read_cache_policy': lambda v: v.get('ReadCachePolicy'),
    'volume_name': lambda v: v.get('Name'),
    'volume_type': lambda v: v.get('VolumeType'),
    'write_cache_policy': lambda v: v.get('WriteCachePolicy'),
    'raid_type': lambda v: v.get('RAIDType'),
    'encrypted': lambda v: v.get('Encrypted'),
    'disk_cache_policy': _dell_disk_cache_policy,
}

DEFAULT_RECONCILE_FIELDS = (
    'capacity_bytes',
    'optimum_io_size_bytes',
    'read_cache_policy',
    'volume_name',
    'volume_type',
    'write_cache_policy',
    'drives',
)


class StateReconciler:
    """Map a volume resource back onto a VolumeState."""

    def __init__(self, client: RedfishClient,
                 fields: Iterable[str] = DEFAULT_RECONCILE_FIELDS,
                 preserve_fields: Iterable[str] = (),
                 logger: Optional[logging.Logger] = None) -> None:
        """
        Initialize the reconciler.

        Args:
            client: Redfish client used for read-back
            fields: Model fields that may be written back (allow list)
            preserve_fields: Model fields that are never written back (deny list)
            logger: Optional logger instance
        """
        self.client = client
        self.fields = tuple(fields)
        self.preserve_fields = frozenset(preserve_fields)
        self.logger = logger or logging.getLogger(__name__)

        unknown = [f for f in self.fields if f not in FIELD_MAP and f != 'drives']
        if unknown:
            raise ValueError(f"Unknown reconcile fields: {', '.join(unknown)}")

    @property
    def writable_fields(self) -> List[str]:
        return [f for f in self.fields if f not in self.preserve_fields]

    def read_volume(self, volume_uri: str) -> Dict[str, Any]:
        """
        Fetch a volume resource.

        Raises:
            VolumeNotFoundError: If the controller answers 404
            RedfishRequestError: On any other failed read
        """
        try:
            return self.client.get_resource(volume_uri)
        except RedfishRequestError as e:
            if e.status_code == 404:
                raise VolumeNotFoundError(f"Volume {volume_uri} doesn't exist", stage='housekeep')
            raise

    def find_volume(self, storage_uri: str, volume_name: str) -> Dict[str, Any]:
        """Return the first volume on a controller whose name matches."""
        for volume in self.client.get_volumes(storage_uri):
            if volume.get('Name') == volume_name:
                self.logger.info(f"Found volume {volume_name} at {volume.get('@odata.id')}")
                return volume
        raise ReconciliationError(f"Couldn't find a volume with the provided name: {volume_name}",
                                  stage='housekeep')

    def confirm_absent(self, volume_uri: str) -> None:
        """Succeed when a deleted volume is gone, fail when it is still listed."""
        if self.client.resource_exists(volume_uri):
            raise ReconciliationError(f"Volume {volume_uri} still exists after deletion",
                                      stage='housekeep')
        self.logger.info(f"Volume {volume_uri} no longer exists")

    def drive_names(self, volume: Dict[str, Any]) -> List[str]:
        """Names of the drives backing a volume."""
        refs = volume.get('Links', {}).get('Drives') or volume.get('Drives') or []
        names = []
        for ref in refs:
            uri = ref.get('@odata.id')
            if uri:
                names.append(self.client.get_resource(uri).get('Name'))
        return names

    def reconcile(self, state: VolumeState, volume: Dict[str, Any]) -> VolumeState:
        """
        Copy reported properties into a new state.

        Args:
            state: Current model state; fields outside the writable set are kept
            volume: Redfish volume resource

        Returns:
            The reconciled state, with id set to the volume's URI
        """
        result: VolumeState = dict(state)  # type: ignore[assignment]
        result['id'] = volume['@odata.id']

        changed = []
        for field in self.writable_fields:
            if field == 'drives':
                value: Any = self.drive_names(volume)
            else:
                value = FIELD_MAP[field](volume)
            if result.get(field) != value:
                changed.append(field)
            result[field] = value  # type: ignore[literal-required]

        if changed:
            self.logger.info(f"Reconciled fields from {result['id']}: {', '.join(changed)}")
        return result
