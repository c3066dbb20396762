"""
Components Package for storagebot

This package contains the lifecycle components that implement the
discovery-processing-housekeeping pattern for storage resources.
"""

from .storage_volume_component import StorageVolumeComponent

__all__ = ['StorageVolumeComponent']
