"""
Job-related data models for Capacity Orchestrator

Defines the job record persisted in the job store and its status rules.
"""

import random
import string
import time
from enum import Enum
from datetime import datetime
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field


class JobStatus(Enum):
    """Job status enumeration."""
    SUBMITTED = "submitted"
    SCALING_UP = "scaling_up"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Statuses during which an execution owns the job
ACTIVE_STATUSES = (JobStatus.SCALING_UP, JobStatus.PROCESSING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)

_DATETIME_FIELDS = ("created_at", "updated_at", "started_at", "completed_at", "failed_at")


def generate_job_id() -> str:
    """Generate a job id of the form job_<epoch ms>_<7 random chars>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"job_{int(time.time() * 1000)}_{suffix}"


@dataclass
class Job:
    """Core job data model."""

    # Primary identification
    job_id: str
    pool_id: str
    job_name: str = ""

    # Opaque job input handed to the executor
    config: Dict[str, Any] = field(default_factory=dict)

    # Status tracking
    status: JobStatus = JobStatus.SUBMITTED

    # Metadata
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    # Lifecycle timestamps
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    # Outcome
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    # Execution bookkeeping
    execution_id: Optional[str] = None
    retry_of: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "pool_id": self.pool_id,
            "job_name": self.job_name,
            "config": self.config,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "result": self.result,
            "error": self.error,
            "execution_id": self.execution_id,
            "retry_of": self.retry_of
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Create job from dictionary."""
        data = dict(data)
        for field_name in _DATETIME_FIELDS:
            if isinstance(data.get(field_name), str):
                data[field_name] = datetime.fromisoformat(data[field_name])

        if "status" in data and not isinstance(data["status"], JobStatus):
            data["status"] = JobStatus(data["status"])

        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})

    def is_active(self) -> bool:
        """Check if an execution currently owns the job."""
        return self.status in ACTIVE_STATUSES

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def get_duration(self) -> Optional[float]:
        """Get job duration in seconds once it has finished."""
        finished = self.completed_at or self.failed_at
        if self.started_at and finished:
            return (finished - self.started_at).total_seconds()
        return None


# Job status transition rules
JOB_STATUS_TRANSITIONS = {
    JobStatus.SUBMITTED: [JobStatus.SCALING_UP],
    JobStatus.SCALING_UP: [JobStatus.PROCESSING, JobStatus.FAILED],
    JobStatus.PROCESSING: [JobStatus.COMPLETED, JobStatus.FAILED],
    JobStatus.COMPLETED: [],  # Terminal state
    JobStatus.FAILED: [],  # Terminal state
}


def can_transition_to(current_status: JobStatus, target_status: JobStatus) -> bool:
    """Check if a job can transition from current status to target status."""
    return target_status in JOB_STATUS_TRANSITIONS.get(current_status, [])


def get_valid_transitions(current_status: JobStatus) -> List[JobStatus]:
    """Get list of valid status transitions from current status."""
    return list(JOB_STATUS_TRANSITIONS.get(current_status, []))
