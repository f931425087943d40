"""
JobManager service for Capacity Orchestrator

Manages job records: creation, lookup, listing and the status transitions
driven by the orchestration workflow.
"""

from datetime import datetime
from typing import Dict, List, Optional, Any

from ..models.job import Job, JobStatus, JOB_STATUS_TRANSITIONS, generate_job_id
from ..utils.database import JobStore
from ..utils.logger import get_logger
from ..core.exceptions import JobNotFoundError, ConflictError, InvalidTransitionError


def _sources_of(target: JobStatus) -> List[JobStatus]:
    """Statuses from which `target` may be entered."""
    return [status for status, targets in JOB_STATUS_TRANSITIONS.items() if target in targets]


class JobManager:
    """
    Manages job lifecycle state.

    Provides capabilities for:
    - Job creation and persistence
    - Job lookup and listing by status
    - Guarded status transitions (only submitted -> scaling_up ->
      processing -> completed | failed, plus scaling_up -> failed)
    - Retrying failed jobs as new jobs
    """

    def __init__(self, job_store: JobStore):
        """
        Initialize JobManager.

        Args:
            job_store: Job record store
        """
        self.store = job_store
        self.logger = get_logger(__name__)

    async def create_job(
        self,
        pool_id: str,
        job_name: str = "",
        config: Optional[Dict[str, Any]] = None,
        retry_of: Optional[str] = None
    ) -> Job:
        """Create and persist a job in `submitted` status."""
        job = Job(
            job_id=generate_job_id(),
            pool_id=pool_id,
            job_name=job_name,
            config=dict(config or {}),
            retry_of=retry_of
        )
        await self.store.put_job(job)

        self.logger.info("Job submitted", extra={
            "job_id": job.job_id,
            "pool_id": pool_id,
            "job_name": job_name,
            "retry_of": retry_of
        })
        return job

    async def get_job(self, job_id: str) -> Job:
        """Get a job or raise JobNotFoundError."""
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        """List jobs, all of them or those in one status."""
        if status is not None:
            return await self.store.query_by_status(status)
        return await self.store.list_all()

    async def claim_for_processing(self, job_id: str, execution_id: str) -> Job:
        """
        Move a submitted job to scaling_up on behalf of an execution.

        The update is conditional on the job still being submitted, so of two
        concurrent claims only one can win.

        Raises:
            JobNotFoundError: If the job does not exist
            ConflictError: If the job is active or already finished
        """
        job = await self.get_job(job_id)

        if job.is_active():
            raise ConflictError(job_id, job.status.value)
        if job.is_terminal():
            raise ConflictError(
                job_id, job.status.value,
                f"Job {job_id} already {job.status.value}; retry it as a new job"
            )

        claimed = await self.store.update_job(
            job_id,
            {"status": JobStatus.SCALING_UP, "execution_id": execution_id},
            expected_status=JobStatus.SUBMITTED
        )

        self.logger.info("Job claimed for processing", extra={
            "job_id": job_id,
            "execution_id": execution_id
        })
        return claimed

    async def transition(self, job_id: str, status: JobStatus, **fields) -> Job:
        """
        Move a job to `status`, merging extra fields.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidTransitionError: If the current status cannot reach `status`
        """
        try:
            job = await self.store.update_job(
                job_id,
                {"status": status, **fields},
                expected_status=_sources_of(status)
            )
        except ConflictError as e:
            raise InvalidTransitionError(e.details.get("status"), status.value, subject="job status") from e

        self.logger.info(f"Job status -> {status.value}", extra={
            "job_id": job_id,
            "status": status.value
        })
        return job

    async def mark_processing(self, job_id: str) -> Job:
        return await self.transition(job_id, JobStatus.PROCESSING, started_at=datetime.utcnow())

    async def mark_completed(self, job_id: str, result: Dict[str, Any]) -> Job:
        return await self.transition(
            job_id, JobStatus.COMPLETED,
            result=result,
            error=None,
            completed_at=datetime.utcnow()
        )

    async def mark_failed(self, job_id: str, error: str) -> Job:
        return await self.transition(
            job_id, JobStatus.FAILED,
            error=error,
            failed_at=datetime.utcnow()
        )

    async def retry_job(self, job_id: str) -> Job:
        """
        Create a new submitted job from a failed one.

        Raises:
            JobNotFoundError: If the job does not exist
            ConflictError: If the job has not failed
        """
        original = await self.get_job(job_id)
        if original.status != JobStatus.FAILED:
            raise ConflictError(
                job_id, original.status.value,
                f"Only failed jobs can be retried; job {job_id} is {original.status.value}"
            )

        retry = await self.create_job(
            pool_id=original.pool_id,
            job_name=original.job_name,
            config=original.config,
            retry_of=job_id
        )

        self.logger.info("Job retry submitted", extra={
            "original_job_id": job_id,
            "retry_job_id": retry.job_id
        })
        return retry

    async def get_job_statistics(self) -> Dict[str, int]:
        return await self.store.get_job_statistics()
