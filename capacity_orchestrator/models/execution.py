"""
Execution models for Capacity Orchestrator

Defines the workflow state machine, the per-run execution record and the
result reported by job executors.
"""

import time
from enum import Enum
from datetime import datetime
from typing import Optional, Dict, Any
from dataclasses import dataclass, field

from ..core.exceptions import InvalidTransitionError


class WorkflowState(Enum):
    """States of one orchestration run."""
    SUBMITTED = "submitted"
    SCALING_UP = "scaling_up"
    EXECUTING = "executing"
    SCALING_DOWN = "scaling_down"
    COMPENSATING_SCALE_DOWN = "compensating_scale_down"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowEvent(Enum):
    """Events that move a run between states."""
    SCALE_UP = "scale_up"
    READY = "ready"
    POLL_TIMED_OUT = "poll_timed_out"
    EXECUTION_SUCCEEDED = "execution_succeeded"
    FAILED = "failed"
    SCALE_DOWN_ATTEMPTED = "scale_down_attempted"


WORKFLOW_TRANSITIONS = {
    (WorkflowState.SUBMITTED, WorkflowEvent.SCALE_UP): WorkflowState.SCALING_UP,
    (WorkflowState.SCALING_UP, WorkflowEvent.READY): WorkflowState.EXECUTING,
    (WorkflowState.SCALING_UP, WorkflowEvent.POLL_TIMED_OUT): WorkflowState.SCALING_UP,
    (WorkflowState.SCALING_UP, WorkflowEvent.FAILED): WorkflowState.COMPENSATING_SCALE_DOWN,
    (WorkflowState.EXECUTING, WorkflowEvent.EXECUTION_SUCCEEDED): WorkflowState.SCALING_DOWN,
    (WorkflowState.EXECUTING, WorkflowEvent.FAILED): WorkflowState.COMPENSATING_SCALE_DOWN,
    (WorkflowState.SCALING_DOWN, WorkflowEvent.SCALE_DOWN_ATTEMPTED): WorkflowState.SUCCEEDED,
    (WorkflowState.COMPENSATING_SCALE_DOWN, WorkflowEvent.SCALE_DOWN_ATTEMPTED): WorkflowState.FAILED,
}

TERMINAL_WORKFLOW_STATES = (WorkflowState.SUCCEEDED, WorkflowState.FAILED)


def next_state(state: WorkflowState, event: WorkflowEvent) -> WorkflowState:
    """Return the state reached from `state` on `event`, or raise InvalidTransitionError."""
    try:
        return WORKFLOW_TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state.value, event.value, subject="workflow") from None


def generate_execution_id(job_id: str) -> str:
    return f"process-{job_id}-{int(time.time() * 1000)}"


class ExecutionStatus(Enum):
    """Outcome reported by a job executor."""
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ExecutionResult:
    """Result of running a job through an executor."""

    job_id: str
    status: ExecutionStatus
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    failed_stage: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    execution_time_seconds: float = 0.0
    resource_usage: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "result": self.result,
            "error_message": self.error_message,
            "failed_stage": self.failed_stage,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "execution_time_seconds": self.execution_time_seconds,
            "resource_usage": self.resource_usage,
            "metadata": self.metadata
        }


@dataclass
class Execution:
    """One run of the orchestration workflow for one job."""

    execution_id: str
    job_id: str
    pool_id: str
    state: WorkflowState = WorkflowState.SUBMITTED

    # Timing
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    # Capacity bookkeeping
    scale_up_requested: bool = False
    scale_down_issued: bool = False
    poll_rounds: int = 0

    # Outcome
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    def advance(self, event: WorkflowEvent) -> WorkflowState:
        """Apply an event to the run and return the new state."""
        self.state = next_state(self.state, event)
        if self.state in TERMINAL_WORKFLOW_STATES:
            self.finished_at = datetime.utcnow()
        return self.state

    def is_finished(self) -> bool:
        return self.state in TERMINAL_WORKFLOW_STATES

    def outcome(self) -> Dict[str, Any]:
        """The {status, result | error} record handed back to the trigger boundary."""
        outcome = {
            "execution_id": self.execution_id,
            "job_id": self.job_id,
            "status": self.state.value,
        }
        if self.state == WorkflowState.SUCCEEDED:
            outcome["result"] = self.result
        elif self.state == WorkflowState.FAILED:
            outcome["error"] = self.error
            outcome["error_code"] = self.error_code
        return outcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "job_id": self.job_id,
            "pool_id": self.pool_id,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "scale_up_requested": self.scale_up_requested,
            "scale_down_issued": self.scale_down_issued,
            "poll_rounds": self.poll_rounds,
            "result": self.result,
            "error": self.error,
            "error_code": self.error_code
        }
