"""
storagebot Package

Orchestrates storage volume changes on Dell iDRAC controllers through the
Redfish API: submit, power-cycle when required, poll the job and reconcile
the hardware state, one operation per endpoint at a time.
"""

from .base_component import BaseComponent
from .mutex import EndpointMutexRegistry
from .components import StorageVolumeComponent

__all__ = ['BaseComponent', 'EndpointMutexRegistry', 'StorageVolumeComponent']
