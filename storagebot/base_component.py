#!/usr/bin/env python3
"""
Base Component Class for Discovery-Processing-Housekeeping Pattern

Every lifecycle operation runs as up to three phases:

- discover: probe capabilities and locate the resources involved, no side effects
- process: submit the change and power-cycle the system when required
- housekeep: wait for the job and read the hardware state back

A failing phase records which stage failed and re-raises, so a caller never
receives a partial result.
"""

import logging
import json
import datetime
import uuid
from typing import Dict, List, Any, Optional, TypedDict, Literal, Callable

import requests

from .errors import (
    StorageBotError, PreconditionError, SubmissionError, ReconciliationError
)

Phase = Literal["discover", "process", "housekeep"]
ALL_PHASES: List[Phase] = ["discover", "process", "housekeep"]

# Error raised when an unexpected transport failure escapes a phase
PHASE_ERRORS: Dict[str, type] = {
    'discover': PreconditionError,
    'process': SubmissionError,
    'housekeep': ReconciliationError,
}


class ComponentConfig(TypedDict, total=False):
    """TypedDict for component configuration."""
    component_id: str
    log_level: str


class TimestampData(TypedDict):
    """TypedDict for tracking execution timestamps."""
    start: Optional[str]
    discover_start: Optional[str]
    discover_end: Optional[str]
    process_start: Optional[str]
    process_end: Optional[str]
    housekeep_start: Optional[str]
    housekeep_end: Optional[str]
    end: Optional[str]


class StatusData(TypedDict):
    """TypedDict for component execution status."""
    success: bool
    error: Optional[str]
    message: Optional[str]
    stage: Optional[str]


class ExecutionSummary(TypedDict):
    """TypedDict for execution summary."""
    component_id: str
    component_name: str
    status: StatusData
    timestamps: TimestampData
    phases_executed: Dict[str, bool]


class BaseComponent:
    """
    Base class for lifecycle components.

    Subclasses override discover(), process() and housekeep(); the base class
    takes care of timestamps, phase tracking, logging and error context.
    """

    def __init__(self, config: ComponentConfig, logger: Optional[logging.Logger] = None) -> None:
        """
        Initialize a new component instance.

        Args:
            config: Configuration dictionary for the component
            logger: Optional logger instance (if not provided, a new one will be created)
        """
        self.config = config
        self.component_id: str = config.get('component_id') or str(uuid.uuid4())
        self.component_name: str = self.__class__.__name__

        self.logger: logging.Logger = logger or self._setup_logger()
        self._reset_execution_state()

        self.logger.info(f"Initialized {self.component_name} (ID: {self.component_id})")

    def _setup_logger(self) -> logging.Logger:
        """
        Set up a logger for this component.

        Returns:
            A configured logger instance
        """
        logger = logging.getLogger(self.component_name)
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.config.get('log_level', 'INFO'))
        return logger

    def _reset_execution_state(self) -> None:
        self.phases_executed: Dict[str, bool] = {
            'discover': False,
            'process': False,
            'housekeep': False
        }
        self.timestamps: TimestampData = {
            'start': None,
            'discover_start': None,
            'discover_end': None,
            'process_start': None,
            'process_end': None,
            'housekeep_start': None,
            'housekeep_end': None,
            'end': None
        }
        self.status: StatusData = {
            'success': False,
            'error': None,
            'message': None,
            'stage': None
        }

    def discover(self) -> None:
        """Discovery phase: examine the environment without making changes."""

    def process(self) -> None:
        """Processing phase: perform the change."""

    def housekeep(self) -> None:
        """Housekeeping phase: wait for the change and verify the result."""

    def _run_phase(self, phase: Phase, action: Callable[[], None]) -> None:
        label = {'discover': 'discovery', 'process': 'processing', 'housekeep': 'housekeeping'}[phase]
        self.timestamps[f'{phase}_start'] = datetime.datetime.now().isoformat()  # type: ignore[literal-required]
        self.logger.info(f"Starting {label} phase for {self.component_name}")

        try:
            action()
        except StorageBotError as e:
            if e.stage is None:
                e.stage = phase
            self._record_failure(label, e)
            raise
        except requests.exceptions.RequestException as e:
            wrapped = PHASE_ERRORS[phase](f"Redfish request failed during {label}", stage=phase, detail=str(e))
            self._record_failure(label, wrapped)
            raise wrapped from e
        finally:
            # Update timestamp even on failure
            self.timestamps[f'{phase}_end'] = datetime.datetime.now().isoformat()  # type: ignore[literal-required]

        self.phases_executed[phase] = True
        self.logger.info(f"{label.capitalize()} phase completed for {self.component_name}")

    def _record_failure(self, label: str, error: StorageBotError) -> None:
        self.logger.error(f"Error during {label} phase: {error}")
        self.status['success'] = False
        self.status['error'] = str(error)
        self.status['stage'] = error.stage
        self.status['message'] = f"{label.capitalize()} phase failed: {error.message}"

    def execute(self, phases: Optional[List[Phase]] = None) -> None:
        """
        Execute the component lifecycle phases in order.

        Args:
            phases: Phases to execute (default: all phases)

        Raises:
            StorageBotError: From the first phase that fails, with its stage set
        """
        phases = list(ALL_PHASES) if phases is None else phases
        self._reset_execution_state()
        self.timestamps['start'] = datetime.datetime.now().isoformat()
        self.logger.info(f"Executing {self.component_name} with phases: {', '.join(phases)}")

        actions = {'discover': self.discover, 'process': self.process, 'housekeep': self.housekeep}
        try:
            for phase in ALL_PHASES:
                if phase in phases:
                    self._run_phase(phase, actions[phase])

            self.status['success'] = True
            self.status['message'] = "Execution completed successfully"
        finally:
            self.timestamps['end'] = datetime.datetime.now().isoformat()
            self.logger.info(f"Execution of {self.component_name} completed with status: {self.status['success']}")

    def get_execution_summary(self) -> ExecutionSummary:
        """
        Get a summary of this component's last execution.

        Returns:
            Dictionary with execution summary
        """
        return {
            "component_id": self.component_id,
            "component_name": self.component_name,
            "status": self.status,
            "timestamps": self.timestamps,
            "phases_executed": self.phases_executed
        }

    def to_json(self) -> str:
        """Convert the execution summary to a JSON string."""
        return json.dumps(self.get_execution_summary(), indent=2)
