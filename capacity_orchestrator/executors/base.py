"""
Base job executor interface.

Defines the common interface that all job executors must implement.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from ..models.job import Job
from ..models.execution import ExecutionResult


class BaseJobExecutor(ABC):
    """
    Abstract base class for all job executors.

    An executor runs one opaque, possibly long-running job against ready
    capacity. It does not retry: a failed job is reported with the stage
    error unmodified and without partial results.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the job executor.

        Args:
            config: Executor-specific configuration
        """
        self.config = config or {}
        self._is_initialized = False

    @abstractmethod
    async def initialize(self) -> bool:
        """
        Initialize the executor.

        Returns:
            True if initialization successful
        """
        pass

    @abstractmethod
    async def shutdown(self) -> bool:
        """
        Shutdown the executor and clean up resources.

        Returns:
            True if shutdown successful
        """
        pass

    @abstractmethod
    async def execute(self, job: Job) -> ExecutionResult:
        """
        Execute a job.

        Args:
            job: Job to execute

        Returns:
            ExecutionResult with the job outcome
        """
        pass

    @abstractmethod
    async def get_resource_usage(self) -> Dict[str, Any]:
        """
        Get current resource usage of the executor.

        Returns:
            Resource usage statistics
        """
        pass

    @property
    def is_initialized(self) -> bool:
        """Check if executor is initialized."""
        return self._is_initialized

    @property
    def executor_name(self) -> str:
        """Get the name of this executor."""
        return self.__class__.__name__
