#!/usr/bin/env python3
"""
Configuration Loading

Builds the component configuration from a YAML file and STORAGEBOT_*
environment variables, and reads desired volume states from YAML.
"""

import os
import logging
from typing import Dict, Any, List, Mapping, Optional, Tuple, Callable, TypedDict

import yaml

from .models import VolumeState

logger = logging.getLogger(__name__)


class OrchestratorConfig(TypedDict, total=False):
    """Configuration accepted by StorageVolumeComponent."""
    component_id: str
    log_level: str
    endpoint: str
    username: str
    password: str
    verify_cert: bool
    request_timeout: float
    job_poll_interval: float
    power_poll_interval: float
    settle_delay: float
    delete_reset_grace_period: float
    reconcile_fields: List[str]
    preserve_fields: List[str]


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _as_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


# Environment variable -> (config key, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    'STORAGEBOT_ENDPOINT': ('endpoint', str),
    'STORAGEBOT_USERNAME': ('username', str),
    'STORAGEBOT_PASSWORD': ('password', str),
    'STORAGEBOT_VERIFY_CERT': ('verify_cert', _as_bool),
    'STORAGEBOT_LOG_LEVEL': ('log_level', str),
    'STORAGEBOT_REQUEST_TIMEOUT': ('request_timeout', float),
    'STORAGEBOT_JOB_POLL_INTERVAL': ('job_poll_interval', float),
    'STORAGEBOT_POWER_POLL_INTERVAL': ('power_poll_interval', float),
    'STORAGEBOT_SETTLE_DELAY': ('settle_delay', float),
    'STORAGEBOT_DELETE_RESET_GRACE_PERIOD': ('delete_reset_grace_period', float),
    'STORAGEBOT_PRESERVE_FIELDS': ('preserve_fields', _as_list),
}

TIMING_KEYS = (
    'request_timeout',
    'job_poll_interval',
    'power_poll_interval',
    'settle_delay',
    'delete_reset_grace_period',
)


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (FileNotFoundError, yaml.YAMLError) as e:
        raise ValueError(f"Error loading configuration file {path}: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def load_config(path: Optional[str] = None,
                overrides: Optional[Mapping[str, Any]] = None,
                environ: Optional[Mapping[str, str]] = None) -> OrchestratorConfig:
    """
    Load component configuration.

    Precedence, lowest first: YAML file, environment, explicit overrides.

    Args:
        path: Optional YAML file
        overrides: Optional values that win over everything else
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Configuration dictionary

    Raises:
        ValueError: If the file is unreadable or a timing is negative
    """
    config: Dict[str, Any] = {}

    if path:
        config.update(_read_yaml(path))
        logger.debug(f"Loaded configuration from {path}")

    environ = os.environ if environ is None else environ
    for variable, (key, convert) in ENV_OVERRIDES.items():
        if variable in environ:
            try:
                config[key] = convert(environ[variable])
            except ValueError as e:
                raise ValueError(f"Invalid value for {variable}: {e}")

    if overrides:
        config.update({k: v for k, v in overrides.items() if v is not None})

    for key in TIMING_KEYS:
        if key in config and float(config[key]) < 0:
            raise ValueError(f"{key} must not be negative")

    return config  # type: ignore[return-value]


def load_volume_state(path: str) -> VolumeState:
    """Read a desired volume state from a YAML document."""
    data = _read_yaml(path)
    # Allow the state to sit under a top-level 'volume' key
    if 'volume' in data and isinstance(data['volume'], dict):
        data = data['volume']
    return data  # type: ignore[return-value]
