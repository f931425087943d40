"""
Main CapacityOrchestrator class that coordinates all services

Provides the primary interface for job submission, processing requests,
capacity inspection and system health. Each processing request runs the
orchestration workflow as its own asyncio task.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Any, Union

from .config import OrchestratorConfig
from ..capacity.base import BaseCapacityBackend
from ..capacity.simulated import SimulatedCapacityBackend
from ..executors.base import BaseJobExecutor
from ..executors.local_executor import LocalJobExecutor
from ..models.capacity import CapacityTarget
from ..models.execution import Execution
from ..models.job import Job, JobStatus
from ..services.capacity_controller import CapacityController
from ..services.fault_tolerance import FaultToleranceService
from ..services.job_manager import JobManager
from ..services.readiness_poller import ReadinessPoller
from ..services.workflow import OrchestrationWorkflow, RESUMABLE_STATES
from ..utils.database import JobStore, InMemoryJobStore, DatabaseManager
from ..utils.logger import get_logger
from ..core.exceptions import (
    CapacityOrchestratorError,
    ExecutionNotFoundError,
    OrchestratorError,
    error_registry
)


def create_capacity_backend(config: OrchestratorConfig) -> BaseCapacityBackend:
    """Build the capacity backend named in the configuration."""
    if config.capacity_backend == "lambda":
        # boto3 is only required when the Lambda backend is selected
        from ..capacity.aws_lambda import LambdaCapacityBackend
        return LambdaCapacityBackend(region_name=config.lambda_region)
    return SimulatedCapacityBackend(provisioning_delay=config.simulated_provisioning_delay_seconds)


def create_job_store(config: OrchestratorConfig) -> JobStore:
    """PostgreSQL when a database URL is configured, in-memory otherwise."""
    if config.database_url:
        return DatabaseManager(config.database_url)
    return InMemoryJobStore()


class CapacityOrchestrator:
    """
    Main orchestrator class that coordinates all services.

    Provides a unified interface for:
    - Job submission, lookup and retry
    - Processing requests, each running the capacity workflow in a task
    - Recovery of executions interrupted by a restart
    - Capacity inspection and manual targets
    - System health and operational alarms
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        job_store: Optional[JobStore] = None,
        capacity_backend: Optional[BaseCapacityBackend] = None,
        executor: Optional[BaseJobExecutor] = None,
        fault_tolerance: Optional[FaultToleranceService] = None
    ):
        """
        Initialize the CapacityOrchestrator.

        Args:
            config: Orchestrator configuration; defaults are used when omitted
            job_store: Job record store; built from the configuration when omitted
            capacity_backend: Capacity backend; built from the configuration when omitted
            executor: Job executor; a LocalJobExecutor when omitted
            fault_tolerance: Retry and alarm service
        """
        self.config = config or OrchestratorConfig()

        self.store = job_store or create_job_store(self.config)
        self.capacity_backend = capacity_backend or create_capacity_backend(self.config)
        self.executor = executor or LocalJobExecutor({
            "max_workers": self.config.executor_max_workers,
            "stage_durations": self.config.stage_durations
        })
        self.fault_tolerance = fault_tolerance or FaultToleranceService(
            self.config.scale_retry.model_dump()
        )

        # Services
        self.job_manager = JobManager(self.store)
        self.controller = CapacityController(self.capacity_backend)
        self.poller = ReadinessPoller(self.controller)
        self.workflow = OrchestrationWorkflow(
            job_manager=self.job_manager,
            controller=self.controller,
            poller=self.poller,
            executor=self.executor,
            fault_tolerance=self.fault_tolerance,
            config=self.config
        )

        # Execution tracking
        self._executions: Dict[str, Execution] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

        # State tracking
        self._is_running = False
        self._started_at: Optional[datetime] = None

        # Logger
        self.logger = get_logger(__name__)

    async def start(self) -> int:
        """
        Start the orchestrator and recover interrupted executions.

        Returns:
            Number of executions resumed
        """
        self.logger.info("Starting CapacityOrchestrator", extra={
            "capacity_backend": self.capacity_backend.backend_name,
            "executor": self.executor.executor_name,
            "job_store": self.store.__class__.__name__
        })

        try:
            await self.store.initialize()
            await self.executor.initialize()
            self._is_running = True
            self._started_at = datetime.utcnow()

            resumed = await self._recover_executions()

        except Exception as e:
            self.logger.error("Failed to start CapacityOrchestrator", exc_info=True)
            await self.stop()
            raise OrchestratorError(f"Failed to start orchestrator: {str(e)}") from e

        self.logger.info("CapacityOrchestrator started successfully", extra={"resumed": resumed})
        return resumed

    async def stop(self):
        """Stop the orchestrator, cancelling running executions."""
        self.logger.info("Stopping CapacityOrchestrator", extra={"running": len(self._tasks)})

        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            # Cancelled executions still release capacity and fail their jobs
            await asyncio.gather(*tasks, return_exceptions=True)

        for name, close in (
            ("executor", self.executor.shutdown),
            ("capacity_backend", self.capacity_backend.close),
            ("job_store", self.store.close)
        ):
            try:
                await close()
            except Exception:
                self.logger.error(f"Error stopping {name}", exc_info=True)

        self._is_running = False
        self.logger.info("CapacityOrchestrator stopped")

    async def _recover_executions(self) -> int:
        resumed = 0
        for status in RESUMABLE_STATES:
            for job in await self.job_manager.list_jobs(status):
                self._launch(self.workflow.resume(job))
                resumed += 1
        return resumed

    def _ensure_running(self):
        if not self._is_running:
            raise OrchestratorError("Orchestrator is not running")

    # Job Management Interface
    async def submit_job(
        self,
        job_name: str,
        pool_id: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None
    ) -> Job:
        """
        Submit a new job. The job waits in `submitted` until processing is requested.

        Args:
            job_name: Human-readable job name
            pool_id: Compute pool to run on; the configured default when omitted
            config: Opaque job configuration handed to the executor

        Returns:
            The persisted job
        """
        self._ensure_running()
        return await self.job_manager.create_job(
            pool_id=pool_id or self.config.default_pool_id,
            job_name=job_name,
            config=config
        )

    async def get_job(self, job_id: str) -> Job:
        """Get a job or raise JobNotFoundError."""
        return await self.job_manager.get_job(job_id)

    async def list_jobs(self, status: Optional[Union[JobStatus, str]] = None) -> List[Job]:
        """List all jobs, or those in one status."""
        if isinstance(status, str):
            status = JobStatus(status)
        return await self.job_manager.list_jobs(status)

    async def retry_job(self, job_id: str) -> Job:
        """Submit a failed job again as a new job."""
        self._ensure_running()
        return await self.job_manager.retry_job(job_id)

    # Processing Interface
    async def request_processing(self, job_id: str) -> str:
        """
        Start the capacity workflow for a submitted job.

        Returns:
            Execution ID of the started workflow

        Raises:
            JobNotFoundError: If the job does not exist
            ConflictError: If the job already has an active execution or is finished
        """
        self._ensure_running()
        execution = await self.workflow.claim(job_id)
        self._launch(execution)

        self.logger.info("Processing requested", extra={
            "job_id": job_id,
            "execution_id": execution.execution_id
        })
        return execution.execution_id

    async def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for an execution to finish and return its outcome.

        Raises:
            ExecutionNotFoundError: If the execution is unknown
            asyncio.TimeoutError: If it is still running after `timeout` seconds
        """
        execution = self._get_execution(execution_id)
        task = self._tasks.get(execution_id)
        if task is not None:
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                raise asyncio.TimeoutError(f"Execution {execution_id} still running")
        return execution.outcome()

    async def process_job(self, job_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Request processing and wait for the outcome."""
        execution_id = await self.request_processing(job_id)
        return await self.wait_for_execution(execution_id, timeout)

    async def cancel_execution(self, execution_id: str) -> bool:
        """
        Cancel a running execution. Capacity is released and the job fails,
        unless it already finished executing and is only releasing capacity.

        Returns:
            True if a running execution was cancelled
        """
        self._get_execution(execution_id)
        task = self._tasks.get(execution_id)
        if task is None or task.done():
            return False

        self.logger.info("Cancelling execution", extra={"execution_id": execution_id})
        task.cancel()
        await asyncio.wait({task})
        return True

    def get_execution(self, execution_id: str) -> Dict[str, Any]:
        """Get the current view of an execution."""
        return self._get_execution(execution_id).to_dict()

    def list_executions(self, running_only: bool = False) -> List[Dict[str, Any]]:
        return [
            execution.to_dict() for execution_id, execution in self._executions.items()
            if not running_only or execution_id in self._tasks
        ]

    def _get_execution(self, execution_id: str) -> Execution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def _launch(self, execution: Execution) -> asyncio.Task:
        execution_id = execution.execution_id
        task = asyncio.create_task(self.workflow.run(execution), name=f"execution-{execution_id}")
        self._executions[execution_id] = execution
        self._tasks[execution_id] = task

        def _finished(finished: asyncio.Task):
            self._tasks.pop(execution_id, None)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                self.logger.error("Execution task crashed", exc_info=error, extra={
                    "execution_id": execution_id
                })

        task.add_done_callback(_finished)
        return task

    # Capacity Interface
    async def get_capacity(self, pool_id: Optional[str] = None) -> Dict[str, Any]:
        """Get the applied capacity of a pool."""
        pool_id = pool_id or self.config.default_pool_id
        applied = await self.controller.get_applied_target(pool_id)
        return {
            "pool_id": pool_id,
            "applied": applied.to_dict(),
            "ready": applied.is_ready,
            "idle": applied.is_idle
        }

    async def set_capacity(self, pool_id: str, min_units: int, max_units: int) -> Dict[str, Any]:
        """Request a capacity target for a pool directly."""
        return await self.controller.request_target(pool_id, CapacityTarget(pool_id, min_units, max_units))

    # Monitoring Interface
    async def get_system_health(self) -> Dict[str, Any]:
        """
        Get system health.

        Returns:
            System health dictionary with store, execution, job and alarm status
        """
        try:
            store_healthy = await self.store.is_healthy()
            alarms = self.fault_tolerance.get_alarms()

            if not self._is_running or not store_healthy:
                overall_status = "critical"
            elif alarms:
                overall_status = "degraded"
            else:
                overall_status = "healthy"

            uptime = (datetime.utcnow() - self._started_at).total_seconds() if self._started_at else 0.0

            return {
                "overall_status": overall_status,
                "running": self._is_running,
                "job_store": {
                    "type": self.store.__class__.__name__,
                    "healthy": store_healthy
                },
                "capacity_backend": self.capacity_backend.backend_name,
                "running_executions": len(self._tasks),
                "jobs": await self.job_manager.get_job_statistics() if store_healthy else {},
                "alarms": alarms,
                "errors": error_registry.get_error_statistics(),
                "executor": await self.executor.get_resource_usage(),
                "uptime_seconds": uptime,
                "timestamp": datetime.utcnow().isoformat()
            }

        except CapacityOrchestratorError as e:
            self.logger.error("Error getting system health", exc_info=True)
            return {
                "overall_status": "unknown",
                "error": e.message
            }

    async def health_check(self) -> bool:
        """
        Perform a health check.

        Returns:
            True if system is healthy
        """
        if not self._is_running:
            return False
        health = await self.get_system_health()
        return health.get("overall_status") not in ["critical", "unknown"]

    # Utility Methods
    def is_running(self) -> bool:
        """Check if orchestrator is running."""
        return self._is_running

    def get_alarms(self, alarm_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.fault_tolerance.get_alarms(alarm_type)
