"""
Services package for Capacity Orchestrator

Contains the components of the capacity control loop.
"""

from .capacity_controller import CapacityController
from .readiness_poller import ReadinessPoller, PollResult, PollOutcome
from .job_manager import JobManager
from .fault_tolerance import FaultToleranceService, RetryPolicy, CapacityAlarm
from .workflow import OrchestrationWorkflow

__all__ = [
    "CapacityController",
    "ReadinessPoller",
    "PollResult",
    "PollOutcome",
    "JobManager",
    "FaultToleranceService",
    "RetryPolicy",
    "CapacityAlarm",
    "OrchestrationWorkflow"
]
