"""
Capacity Orchestrator

Provisions on-demand compute capacity for batch jobs, runs each job once
its capacity is confirmed ready and releases the capacity afterwards,
whether the job succeeded or failed.

Usage:
    from capacity_orchestrator import CapacityOrchestrator, OrchestratorConfig

    orchestrator = CapacityOrchestrator(OrchestratorConfig(high_min_units=2, high_max_units=5))
    await orchestrator.start()

    # Submit a job and process it
    job = await orchestrator.submit_job("Summer Vacation 2024", config={
        "source_url": "s3://demo-bucket/videos/summer-vacation.mp4"
    })
    execution_id = await orchestrator.request_processing(job.job_id)

    # Wait for the outcome
    outcome = await orchestrator.wait_for_execution(execution_id)
    print(f"Job finished: {outcome['status']}")

    await orchestrator.stop()
"""

__version__ = "1.0.0"
__author__ = "Capacity Orchestrator Team"
__license__ = "MIT"

# Core orchestrator
from .core.orchestrator import CapacityOrchestrator
from .core.config import OrchestratorConfig

# Data models
from .models.capacity import CapacityTarget
from .models.job import Job, JobStatus
from .models.execution import Execution, ExecutionResult, ExecutionStatus, WorkflowState, WorkflowEvent

# Services (for advanced usage)
from .services.capacity_controller import CapacityController
from .services.readiness_poller import ReadinessPoller, PollResult, PollOutcome
from .services.job_manager import JobManager
from .services.fault_tolerance import FaultToleranceService
from .services.workflow import OrchestrationWorkflow

# Backends and executors
from .capacity.base import BaseCapacityBackend
from .capacity.simulated import SimulatedCapacityBackend
from .executors.base import BaseJobExecutor
from .executors.local_executor import LocalJobExecutor

# Utilities
from .utils.database import JobStore, InMemoryJobStore, DatabaseManager
from .utils.logger import setup_logger, get_logger

# Exceptions
from .core.exceptions import (
    CapacityOrchestratorError,
    InvalidTargetError,
    JobNotFoundError,
    ConflictError,
    ReadinessTimeoutError,
    ExecutionError,
    ExecutionTimeoutError,
    ScaleDownError,
    CapacityBackendError,
    ConfigurationError,
    DatabaseError
)

__all__ = [
    # Core
    "CapacityOrchestrator",
    "OrchestratorConfig",

    # Models
    "CapacityTarget",
    "Job",
    "JobStatus",
    "Execution",
    "ExecutionResult",
    "ExecutionStatus",
    "WorkflowState",
    "WorkflowEvent",

    # Services (for advanced usage)
    "CapacityController",
    "ReadinessPoller",
    "PollResult",
    "PollOutcome",
    "JobManager",
    "FaultToleranceService",
    "OrchestrationWorkflow",

    # Backends and executors
    "BaseCapacityBackend",
    "SimulatedCapacityBackend",
    "BaseJobExecutor",
    "LocalJobExecutor",

    # Utilities
    "JobStore",
    "InMemoryJobStore",
    "DatabaseManager",
    "setup_logger",
    "get_logger",

    # Exceptions
    "CapacityOrchestratorError",
    "InvalidTargetError",
    "JobNotFoundError",
    "ConflictError",
    "ReadinessTimeoutError",
    "ExecutionError",
    "ExecutionTimeoutError",
    "ScaleDownError",
    "CapacityBackendError",
    "ConfigurationError",
    "DatabaseError",

    # Package metadata
    "__version__",
    "__author__",
    "__license__"
]

# Package-level configuration
import logging
logging.getLogger(__name__).addHandler(logging.NullHandler())
