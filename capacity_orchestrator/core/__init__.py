"""
Core package for Capacity Orchestrator

Contains the exception hierarchy. The orchestrator and its configuration
live in capacity_orchestrator.core.orchestrator and
capacity_orchestrator.core.config.
"""

from .exceptions import (
    CapacityOrchestratorError,
    InvalidTargetError,
    JobNotFoundError,
    ConflictError,
    ReadinessTimeoutError,
    ExecutionError,
    ExecutionTimeoutError,
    ExecutionCancelledError,
    ExecutionNotFoundError,
    ScaleDownError,
    CapacityBackendError,
    InvalidTransitionError,
    ConfigurationError,
    DatabaseError,
    OrchestratorError,
    error_registry
)

__all__ = [
    "CapacityOrchestratorError",
    "InvalidTargetError",
    "JobNotFoundError",
    "ConflictError",
    "ReadinessTimeoutError",
    "ExecutionError",
    "ExecutionTimeoutError",
    "ExecutionCancelledError",
    "ExecutionNotFoundError",
    "ScaleDownError",
    "CapacityBackendError",
    "InvalidTransitionError",
    "ConfigurationError",
    "DatabaseError",
    "OrchestratorError",
    "error_registry"
]
