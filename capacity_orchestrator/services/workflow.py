"""
Orchestration workflow for Capacity Orchestrator

Drives one execution of a job through the capacity control loop:

    SUBMITTED -> SCALING_UP -> EXECUTING -> SCALING_DOWN -> SUCCEEDED
                     |             |
                     +-------------+--> COMPENSATING_SCALE_DOWN -> FAILED

Capacity is released to idle exactly once per execution, whatever the
outcome, and a failed release never changes the job verdict.
"""

import asyncio
from typing import Dict, Any, Optional

from .capacity_controller import CapacityController
from .readiness_poller import ReadinessPoller
from .job_manager import JobManager
from .fault_tolerance import FaultToleranceService
from ..executors.base import BaseJobExecutor
from ..models.capacity import CapacityTarget
from ..models.execution import Execution, WorkflowEvent, WorkflowState, generate_execution_id
from ..models.job import Job, JobStatus
from ..core.config import OrchestratorConfig
from ..core.exceptions import (
    CapacityOrchestratorError,
    ExecutionCancelledError,
    ExecutionError,
    ExecutionTimeoutError,
    OrchestratorError,
    ReadinessTimeoutError,
    ScaleDownError,
    error_registry
)
from ..utils.logger import LoggerContext, get_logger

# Job statuses an interrupted execution can be resumed from
RESUMABLE_STATES = {
    JobStatus.SCALING_UP: WorkflowState.SCALING_UP,
    JobStatus.PROCESSING: WorkflowState.EXECUTING,
}


class OrchestrationWorkflow:
    """
    Runs executions of the scale-up, execute, scale-down control loop.

    The workflow keeps no state between executions: each Execution carries
    its own bookkeeping and the durable view lives in the job record and in
    the pool's applied target.
    """

    def __init__(
        self,
        job_manager: JobManager,
        controller: CapacityController,
        poller: ReadinessPoller,
        executor: BaseJobExecutor,
        fault_tolerance: FaultToleranceService,
        config: OrchestratorConfig
    ):
        self.job_manager = job_manager
        self.controller = controller
        self.poller = poller
        self.executor = executor
        self.fault_tolerance = fault_tolerance
        self.config = config
        self.logger = get_logger(__name__)

    async def claim(self, job_id: str) -> Execution:
        """
        Claim a submitted job and open an execution for it.

        Raises:
            JobNotFoundError: If the job does not exist
            ConflictError: If the job already has an active execution or is finished
        """
        execution_id = generate_execution_id(job_id)
        job = await self.job_manager.claim_for_processing(job_id, execution_id)

        execution = Execution(execution_id=execution_id, job_id=job_id, pool_id=job.pool_id)
        self._advance(execution, WorkflowEvent.SCALE_UP)
        return execution

    def resume(self, job: Job) -> Execution:
        """Rebuild the execution of an interrupted job from its durable status."""
        state = RESUMABLE_STATES.get(job.status)
        if state is None:
            raise OrchestratorError(f"job {job.job_id} in status {job.status.value} cannot be resumed")

        execution = Execution(
            execution_id=job.execution_id or generate_execution_id(job.job_id),
            job_id=job.job_id,
            pool_id=job.pool_id,
            state=state,
            scale_up_requested=True
        )
        self.logger.info("Resuming execution", extra={
            "job_id": job.job_id,
            "execution_id": execution.execution_id,
            "state": state.value
        })
        return execution

    async def run(self, execution: Execution) -> Dict[str, Any]:
        """
        Drive an execution to SUCCEEDED or FAILED and return its outcome.

        Failures are reported in the outcome, never raised. Cancellation
        still releases capacity and fails the job before propagating.
        """
        with LoggerContext(job_id=execution.job_id, execution_id=execution.execution_id,
                           pool_id=execution.pool_id):
            return await self._drive(execution)

    async def _drive(self, execution: Execution) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.workflow_timeout_seconds
        failure: Optional[CapacityOrchestratorError] = None
        cancelled = False

        try:
            if execution.state == WorkflowState.SCALING_UP:
                await self._scale_up(execution, deadline)
                self._advance(execution, WorkflowEvent.READY)
                job = await self.job_manager.mark_processing(execution.job_id)
            else:
                job = await self.job_manager.get_job(execution.job_id)

            if execution.state == WorkflowState.EXECUTING:
                execution.result = await self._execute(execution, job, deadline)
                self._advance(execution, WorkflowEvent.EXECUTION_SUCCEEDED)

        except asyncio.CancelledError:
            cancelled = True
            failure = ExecutionCancelledError(execution.execution_id)
        except CapacityOrchestratorError as e:
            failure = e
        except Exception as e:
            self.logger.exception("Unexpected error in workflow", extra={
                "job_id": execution.job_id,
                "execution_id": execution.execution_id
            })
            failure = OrchestratorError(str(e))

        if failure is not None:
            self._fail(execution, failure)

        # The finalizer runs to completion even if cancellation arrives meanwhile
        finalizer = asyncio.ensure_future(self._finalize(execution))
        while True:
            try:
                await asyncio.shield(finalizer)
                break
            except asyncio.CancelledError:
                if finalizer.cancelled():
                    raise
                cancelled = True
                self.logger.warning("Cancellation deferred until capacity is released", extra={
                    "job_id": execution.job_id,
                    "execution_id": execution.execution_id,
                    "state": execution.state.value
                })

        if cancelled:
            raise asyncio.CancelledError()
        return execution.outcome()

    async def _finalize(self, execution: Execution):
        """Release capacity, close the state machine and record the verdict."""
        await self._release_capacity(execution)
        self._advance(execution, WorkflowEvent.SCALE_DOWN_ATTEMPTED)
        await self._record_outcome(execution)

    async def _scale_up(self, execution: Execution, deadline: float):
        """Request the high target and wait for it, re-polling until the deadline."""
        loop = asyncio.get_running_loop()
        pool_id = execution.pool_id
        target = self.config.high_target(pool_id)

        while True:
            # Re-asserting the target is idempotent and undoes a concurrent release
            await self._request(pool_id, target, "scale_up")
            execution.scale_up_requested = True

            remaining = deadline - loop.time()
            poll = await self.poller.await_ready(
                pool_id,
                target,
                poll_interval=self.config.poll_interval_seconds,
                timeout=min(self.config.poll_timeout_seconds, max(remaining, 0.0))
            )
            execution.poll_rounds += 1
            if poll.ready:
                return

            if deadline - loop.time() <= 0:
                raise ReadinessTimeoutError(
                    pool_id,
                    self.config.workflow_timeout_seconds,
                    applied=poll.applied.to_dict() if poll.applied else None
                )
            self._advance(execution, WorkflowEvent.POLL_TIMED_OUT)

    async def _execute(self, execution: Execution, job: Job, deadline: float) -> Dict[str, Any]:
        """Run the job, bounded by the workflow deadline."""
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(self.executor.execute(job))

        try:
            # asyncio.wait never cancels the task, so a late result can still be observed
            done, _ = await asyncio.wait({task}, timeout=max(deadline - loop.time(), 0.0))
        except asyncio.CancelledError:
            task.add_done_callback(self._discard_late_result(execution))
            raise

        if not done:
            task.add_done_callback(self._discard_late_result(execution))
            raise ExecutionTimeoutError(job.job_id, self.config.workflow_timeout_seconds)

        try:
            result = task.result()
        except CapacityOrchestratorError:
            raise
        except Exception as e:
            raise ExecutionError(job.job_id, str(e), stage=getattr(e, "stage", None)) from e

        if not result.succeeded:
            raise ExecutionError(job.job_id, result.error_message or "job failed", stage=result.failed_stage)
        return result.result or {}

    def _discard_late_result(self, execution: Execution):
        def _discard(task: asyncio.Future):
            if task.cancelled():
                return
            error = task.exception()
            self.logger.warning("Discarding late executor result", extra={
                "job_id": execution.job_id,
                "execution_id": execution.execution_id,
                "late_status": "error" if error else task.result().status.value
            })
        return _discard

    async def _release_capacity(self, execution: Execution):
        """Scale the pool to idle. Issued at most once per execution."""
        if execution.scale_down_issued:
            return
        execution.scale_down_issued = True

        pool_id = execution.pool_id
        try:
            await self._request(pool_id, CapacityTarget.idle(pool_id), "scale_down")
        except Exception as e:
            error = ScaleDownError(pool_id, str(e))
            self.fault_tolerance.raise_alarm(
                "capacity_leak",
                error.message,
                pool_id=pool_id,
                job_id=execution.job_id,
                execution_id=execution.execution_id,
                error=error,
                verdict="succeeded" if execution.state == WorkflowState.SCALING_DOWN else "failed"
            )

    async def _request(self, pool_id: str, target: CapacityTarget, operation: str):
        await self.fault_tolerance.execute_with_retry(
            self.controller.request_target,
            pool_id,
            target,
            operation=operation,
            retry_policy_name="capacity_backend"
        )

    def _fail(self, execution: Execution, failure: CapacityOrchestratorError):
        error_registry.record_error(failure)
        execution.error = failure.message
        execution.error_code = failure.error_code
        self.logger.error("Execution failed", extra={
            "job_id": execution.job_id,
            "execution_id": execution.execution_id,
            "state": execution.state.value,
            "error_code": failure.error_code,
            "error": failure.message
        })
        self._advance(execution, WorkflowEvent.FAILED)

    async def _record_outcome(self, execution: Execution):
        """Write the verdict to the job record."""
        try:
            if execution.state == WorkflowState.SUCCEEDED:
                await self.job_manager.mark_completed(execution.job_id, execution.result or {})
            else:
                await self.job_manager.mark_failed(execution.job_id, execution.error or "job failed")
        except CapacityOrchestratorError as e:
            self.fault_tolerance.raise_alarm(
                "job_record_not_updated",
                e.message,
                pool_id=execution.pool_id,
                job_id=execution.job_id,
                execution_id=execution.execution_id,
                error=e,
                verdict=execution.state.value
            )

    def _advance(self, execution: Execution, event: WorkflowEvent) -> WorkflowState:
        previous = execution.state
        state = execution.advance(event)
        self.logger.info(f"Workflow {previous.value} -> {state.value}", extra={
            "job_id": execution.job_id,
            "execution_id": execution.execution_id,
            "event": event.value
        })
        return state
