#!/usr/bin/env python3
"""
Apply-Time Negotiation

Controllers differ in which apply times they accept for volume operations:
some only Immediate, some only OnReset. A change is only submitted when the
requested apply time is one the controller advertises.
"""

import logging
from typing import Iterable, Optional

from .errors import PreconditionError

logger = logging.getLogger(__name__)


def is_apply_time_supported(supported: Iterable[str], requested: str) -> bool:
    """Return True when the requested apply time appears in the advertised set."""
    return any(requested == value for value in supported)


def check_apply_time(supported: Iterable[str], requested: str,
                     controller: Optional[str] = None) -> None:
    """
    Fail fast when the controller does not advertise the requested apply time.

    Args:
        supported: Apply-time values advertised by the storage controller
        requested: Apply time the caller asked for
        controller: Controller identifier used in the error message

    Raises:
        PreconditionError: If the requested value is not advertised
    """
    advertised = list(supported)
    if not is_apply_time_supported(advertised, requested):
        target = f" {controller}" if controller else ""
        raise PreconditionError(
            f"Storage controller{target} does not support settings_apply_time: {requested}",
            stage='discover',
            detail=f"supported values: {', '.join(advertised) or 'none'}"
        )
    logger.debug(f"Apply time {requested} accepted (supported: {advertised})")
