#!/usr/bin/env python3
"""
Error Types for Storage Volume Orchestration

Every failure raised by the orchestration engine derives from StorageBotError
and records the stage that failed, so callers can decide whether to re-run
the whole lifecycle operation.
"""

from typing import Any, Dict, Optional

import requests


class StorageBotError(Exception):
    """Base class for all orchestration errors."""

    def __init__(self, message: str, stage: Optional[str] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.detail = detail

    def __str__(self) -> str:
        text = self.message
        if self.detail:
            text = f"{text}: {self.detail}"
        if self.stage:
            text = f"[{self.stage}] {text}"
        return text


class PreconditionError(StorageBotError):
    """Raised before any side effect when an operation cannot be attempted."""


class SubmissionError(StorageBotError):
    """Raised when the mutating request was not accepted or returned no job."""


class PowerOperationError(StorageBotError):
    """Raised when a reset is rejected or the expected power state is not reached."""


class JobError(StorageBotError):
    """Base class for failures observed while tracking a remote job."""

    def __init__(self, message: str, job_ref: Optional[str] = None,
                 stage: Optional[str] = 'poll', detail: Optional[str] = None) -> None:
        super().__init__(message, stage=stage, detail=detail)
        self.job_ref = job_ref


class JobFailedError(JobError):
    """The remote job reached a failed terminal state."""


class JobTimeoutError(JobError):
    """The remote job was not terminal before the local deadline."""


class ReconciliationError(StorageBotError):
    """Raised when the hardware state cannot be read back into the model."""


class VolumeNotFoundError(ReconciliationError):
    """The volume resource does not exist on the controller."""


class RedfishRequestError(StorageBotError):
    """A Redfish read returned a non-success status code."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 uri: Optional[str] = None, detail: Optional[str] = None) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code
        self.uri = uri


# Exceptions that a poll loop treats as transient
TRANSIENT_ERRORS = (requests.exceptions.RequestException, RedfishRequestError)


def extract_redfish_message(response: requests.Response) -> str:
    """
    Pull a readable message out of a Redfish error body.

    Args:
        response: The failed HTTP response

    Returns:
        The first extended message with its resolution, or the raw body text
    """
    try:
        body: Dict[str, Any] = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    error = body.get('error', body) if isinstance(body, dict) else {}
    extended = error.get('@Message.ExtendedInfo') or []
    if extended:
        info = extended[0]
        message = info.get('Message') or info.get('MessageId', '')
        resolution = info.get('Resolution')
        return f"{message} {resolution}".strip() if resolution else message
    return error.get('message') or response.text or f"HTTP {response.status_code}"
