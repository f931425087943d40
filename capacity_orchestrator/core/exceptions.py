"""
Exception classes for Capacity Orchestrator

Provides the hierarchy of exceptions raised while requesting capacity,
polling for readiness, executing jobs and releasing capacity again.
"""

from typing import Optional, Dict, Any


class CapacityOrchestratorError(Exception):
    """Base exception for all capacity orchestrator errors."""

    retryable = False

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


class InvalidTargetError(CapacityOrchestratorError):
    """Raised when capacity bounds are malformed (min > max or negative)."""

    def __init__(self, pool_id: str, min_units: Any, max_units: Any, reason: Optional[str] = None):
        message = reason or f"minUnits ({min_units}) must not exceed maxUnits ({max_units})"
        super().__init__(
            f"Invalid capacity target for pool {pool_id}: {message}",
            error_code="INVALID_TARGET",
            details={"pool_id": pool_id, "min_units": min_units, "max_units": max_units}
        )


class JobNotFoundError(CapacityOrchestratorError):
    """Raised when a requested job cannot be found."""

    def __init__(self, job_id: str):
        super().__init__(
            f"Job {job_id} not found",
            error_code="JOB_NOT_FOUND",
            details={"job_id": job_id}
        )


class ConflictError(CapacityOrchestratorError):
    """Raised when a job already has an active execution or cannot be run again."""

    def __init__(self, job_id: str, status: str, message: Optional[str] = None):
        super().__init__(
            message or f"Job {job_id} is already being processed",
            error_code="CONFLICT",
            details={"job_id": job_id, "status": status}
        )


class ReadinessTimeoutError(CapacityOrchestratorError):
    """Raised when the workflow deadline passes before capacity became ready."""

    def __init__(self, pool_id: str, timeout_seconds: float, applied: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Capacity for pool {pool_id} was not ready within {timeout_seconds:g} seconds",
            error_code="READINESS_TIMEOUT",
            details={"pool_id": pool_id, "timeout_seconds": timeout_seconds, "applied": applied}
        )


class ExecutionError(CapacityOrchestratorError):
    """Raised when a job stage fails. The stage error message is kept unmodified."""

    def __init__(self, job_id: str, message: str, stage: Optional[str] = None):
        super().__init__(
            message,
            error_code="EXECUTION_ERROR",
            details={"job_id": job_id, "stage": stage}
        )
        self.stage = stage


class ExecutionTimeoutError(ExecutionError):
    """Raised when the workflow deadline passes while the job is still executing."""

    def __init__(self, job_id: str, timeout_seconds: float):
        super().__init__(
            job_id,
            f"Job {job_id} did not finish within the workflow deadline of {timeout_seconds:g} seconds",
            stage="deadline"
        )
        self.error_code = "EXECUTION_TIMEOUT"


class ScaleDownError(CapacityOrchestratorError):
    """Raised when releasing a pool back to idle fails."""

    def __init__(self, pool_id: str, message: str):
        super().__init__(
            f"Scale-down of pool {pool_id} failed: {message}",
            error_code="SCALE_DOWN_ERROR",
            details={"pool_id": pool_id}
        )


class CapacityBackendError(CapacityOrchestratorError):
    """Raised when the capacity backend call fails transiently."""

    retryable = True

    def __init__(self, operation: str, pool_id: str, message: str):
        super().__init__(
            f"Capacity backend operation '{operation}' failed for pool {pool_id}: {message}",
            error_code="CAPACITY_BACKEND_ERROR",
            details={"operation": operation, "pool_id": pool_id}
        )


class InvalidTransitionError(CapacityOrchestratorError):
    """Raised when a workflow state or job status transition is not allowed."""

    def __init__(self, current: str, target: str, subject: str = "state"):
        super().__init__(
            f"Invalid {subject} transition from {current} to {target}",
            error_code="INVALID_TRANSITION",
            details={"current": current, "target": target}
        )


class ExecutionNotFoundError(CapacityOrchestratorError):
    """Raised when an execution id is unknown to this orchestrator."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution {execution_id} not found",
            error_code="EXECUTION_NOT_FOUND",
            details={"execution_id": execution_id}
        )


class ExecutionCancelledError(CapacityOrchestratorError):
    """Recorded when an execution is cancelled before it finished."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution {execution_id} was cancelled",
            error_code="CANCELLED",
            details={"execution_id": execution_id}
        )


class ConfigurationError(CapacityOrchestratorError):
    """Raised when there's an error in configuration."""

    def __init__(self, config_key: str, message: str):
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            error_code="CONFIGURATION_ERROR",
            details={"config_key": config_key}
        )


class DatabaseError(CapacityOrchestratorError):
    """Raised when job store operations fail."""

    def __init__(self, operation: str, message: str, table: Optional[str] = None):
        super().__init__(
            f"Database operation '{operation}' failed: {message}",
            error_code="DATABASE_ERROR",
            details={"operation": operation, "table": table}
        )


class OrchestratorError(CapacityOrchestratorError):
    """Raised when orchestrator-level operations fail."""

    def __init__(self, message: str):
        super().__init__(
            f"Orchestrator error: {message}",
            error_code="ORCHESTRATOR_ERROR"
        )


# Global error registry for tracking patterns
class ErrorRegistry:
    """Registry for tracking and analyzing errors."""

    def __init__(self):
        self.error_counts = {}

    def record_error(self, error: CapacityOrchestratorError):
        """Record an error for analysis."""
        error_type = error.__class__.__name__
        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error statistics for monitoring."""
        return {
            "total_errors": sum(self.error_counts.values()),
            "error_counts": dict(self.error_counts),
            "most_common_error": max(self.error_counts.items(), key=lambda x: x[1])[0] if self.error_counts else None
        }

    def reset(self):
        """Forget all recorded errors."""
        self.error_counts.clear()


# Global error registry instance
error_registry = ErrorRegistry()
