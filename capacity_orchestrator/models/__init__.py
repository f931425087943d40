"""
Data models for Capacity Orchestrator

This module contains the data models used throughout the orchestrator:
capacity targets, jobs and workflow executions.
"""

# Capacity models
from .capacity import CapacityTarget

# Job models
from .job import (
    Job,
    JobStatus,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JOB_STATUS_TRANSITIONS,
    can_transition_to,
    get_valid_transitions,
    generate_job_id
)

# Execution models
from .execution import (
    Execution,
    ExecutionResult,
    ExecutionStatus,
    WorkflowState,
    WorkflowEvent,
    WORKFLOW_TRANSITIONS,
    next_state
)

__all__ = [
    # Capacity models
    "CapacityTarget",

    # Job models
    "Job",
    "JobStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "JOB_STATUS_TRANSITIONS",
    "can_transition_to",
    "get_valid_transitions",
    "generate_job_id",

    # Execution models
    "Execution",
    "ExecutionResult",
    "ExecutionStatus",
    "WorkflowState",
    "WorkflowEvent",
    "WORKFLOW_TRANSITIONS",
    "next_state"
]
