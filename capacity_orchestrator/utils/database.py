"""
Job store utilities for Capacity Orchestrator

Defines the record-store contract the orchestrator relies on and provides an
in-memory implementation plus a PostgreSQL implementation built on asyncpg.
"""

import copy
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Any, Iterable, Union
from contextlib import asynccontextmanager

import asyncpg

from ..models.job import Job, JobStatus
from ..core.exceptions import DatabaseError, JobNotFoundError, ConflictError

ExpectedStatus = Optional[Union[JobStatus, Iterable[JobStatus]]]

# Columns the orchestrator may change after a job was created
UPDATABLE_FIELDS = {
    "status", "job_name", "config", "started_at", "completed_at", "failed_at",
    "result", "error", "execution_id"
}


def _expected_set(expected_status: ExpectedStatus) -> Optional[set]:
    if expected_status is None:
        return None
    if isinstance(expected_status, JobStatus):
        return {expected_status}
    return set(expected_status)


def _check_fields(fields: Dict[str, Any]):
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise DatabaseError("update_job", f"fields not updatable: {sorted(unknown)}", table="jobs")


class JobStore(ABC):
    """
    Key-value job store contract.

    update_job merges only the given fields, stamps updated_at on every call
    and can be made conditional on the current status, which is how an
    execution claims a job.
    """

    async def initialize(self) -> None:
        """Prepare the store for use."""

    async def close(self) -> None:
        """Release store resources."""

    async def is_healthy(self) -> bool:
        return True

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID, or None if absent."""

    @abstractmethod
    async def put_job(self, job: Job) -> None:
        """Insert or fully replace a job."""

    @abstractmethod
    async def update_job(
        self,
        job_id: str,
        fields: Dict[str, Any],
        expected_status: ExpectedStatus = None
    ) -> Job:
        """
        Merge fields into a job and return the updated job.

        Raises:
            JobNotFoundError: If the job does not exist
            ConflictError: If expected_status is given and does not match
        """

    @abstractmethod
    async def query_by_status(self, status: JobStatus) -> List[Job]:
        """Get all jobs currently in a status."""

    @abstractmethod
    async def list_all(self) -> List[Job]:
        """Get all jobs, newest first."""

    async def get_job_statistics(self) -> Dict[str, int]:
        """Count jobs per status."""
        stats = {"total": 0}
        for job in await self.list_all():
            stats[job.status.value] = stats.get(job.status.value, 0) + 1
            stats["total"] += 1
        return stats


class InMemoryJobStore(JobStore):
    """Job store kept in process memory. Returned jobs are copies."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}

    async def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def put_job(self, job: Job) -> None:
        self._jobs[job.job_id] = copy.deepcopy(job)

    async def update_job(
        self,
        job_id: str,
        fields: Dict[str, Any],
        expected_status: ExpectedStatus = None
    ) -> Job:
        _check_fields(fields)
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        expected = _expected_set(expected_status)
        if expected is not None and job.status not in expected:
            raise ConflictError(job_id, job.status.value)

        for key, value in fields.items():
            setattr(job, key, copy.deepcopy(value))
        job.updated_at = datetime.utcnow()
        return copy.deepcopy(job)

    async def query_by_status(self, status: JobStatus) -> List[Job]:
        return [copy.deepcopy(job) for job in self._sorted() if job.status == status]

    async def list_all(self) -> List[Job]:
        return [copy.deepcopy(job) for job in self._sorted()]

    def _sorted(self) -> List[Job]:
        return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)


SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS jobs (
        job_id TEXT PRIMARY KEY,
        pool_id TEXT NOT NULL,
        job_name TEXT NOT NULL DEFAULT '',
        config JSONB NOT NULL DEFAULT '{}'::jsonb,
        status TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL,
        started_at TIMESTAMP,
        completed_at TIMESTAMP,
        failed_at TIMESTAMP,
        result JSONB,
        error TEXT,
        execution_id TEXT,
        retry_of TEXT
    );
    CREATE INDEX IF NOT EXISTS jobs_status_idx ON jobs (status);
"""


class DatabaseManager(JobStore):
    """
    PostgreSQL job store.

    Provides connection pooling and the job store operations on a single
    `jobs` table with a status index for status queries.
    """

    def __init__(self, connection_string: str, pool_size: int = 10, max_overflow: int = 20):
        """
        Initialize database manager.

        Args:
            connection_string: PostgreSQL connection string
            pool_size: Base connection pool size
            max_overflow: Maximum additional connections
        """
        self.connection_string = connection_string
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        """Initialize database connection pool and schema."""
        if self.pool:
            return
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=1,
                max_size=self.pool_size + self.max_overflow,
                command_timeout=60,
                init=self._init_connection
            )
            async with self.get_connection() as conn:
                await conn.execute(SCHEMA_SQL)
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError("initialization", f"Failed to create connection pool: {str(e)}")

    @staticmethod
    async def _init_connection(conn) -> None:
        await conn.set_type_codec(
            "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
        )

    async def close(self) -> None:
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def is_healthy(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.get_connection() as connection:
                await connection.execute("SELECT 1")
                return True
        except Exception:
            return False

    @asynccontextmanager
    async def get_connection(self):
        """Get a database connection from the pool."""
        if not self.pool:
            raise DatabaseError("connection", "Database pool not initialized")

        async with self.pool.acquire() as connection:
            yield connection

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        try:
            async with self.get_connection() as conn:
                row = await conn.fetchrow("SELECT * FROM jobs WHERE job_id = $1", job_id)
                return Job.from_dict(dict(row)) if row else None
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError("get_job", str(e), table="jobs")

    async def put_job(self, job: Job) -> None:
        """Insert or replace a job."""
        try:
            async with self.get_connection() as conn:
                await conn.execute("""
                    INSERT INTO jobs (
                        job_id, pool_id, job_name, config, status, created_at,
                        updated_at, started_at, completed_at, failed_at, result,
                        error, execution_id, retry_of
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                    ON CONFLICT (job_id) DO UPDATE SET
                        pool_id = EXCLUDED.pool_id,
                        job_name = EXCLUDED.job_name,
                        config = EXCLUDED.config,
                        status = EXCLUDED.status,
                        updated_at = EXCLUDED.updated_at,
                        started_at = EXCLUDED.started_at,
                        completed_at = EXCLUDED.completed_at,
                        failed_at = EXCLUDED.failed_at,
                        result = EXCLUDED.result,
                        error = EXCLUDED.error,
                        execution_id = EXCLUDED.execution_id,
                        retry_of = EXCLUDED.retry_of
                """,
                job.job_id, job.pool_id, job.job_name, job.config, job.status.value,
                job.created_at, job.updated_at, job.started_at, job.completed_at,
                job.failed_at, job.result, job.error, job.execution_id, job.retry_of)
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError("put_job", str(e), table="jobs")

    async def update_job(
        self,
        job_id: str,
        fields: Dict[str, Any],
        expected_status: ExpectedStatus = None
    ) -> Job:
        """Merge fields into a job with an optional status precondition."""
        _check_fields(fields)

        values: List[Any] = []
        assignments = []
        for key, value in fields.items():
            values.append(value.value if isinstance(value, JobStatus) else value)
            assignments.append(f"{key} = ${len(values)}")

        values.append(datetime.utcnow())
        assignments.append(f"updated_at = ${len(values)}")

        values.append(job_id)
        where = f"job_id = ${len(values)}"

        expected = _expected_set(expected_status)
        if expected is not None:
            values.append(sorted(status.value for status in expected))
            where += f" AND status = ANY(${len(values)}::text[])"

        query = f"UPDATE jobs SET {', '.join(assignments)} WHERE {where} RETURNING *"

        try:
            async with self.get_connection() as conn:
                row = await conn.fetchrow(query, *values)
                if row:
                    return Job.from_dict(dict(row))

                current = await conn.fetchval("SELECT status FROM jobs WHERE job_id = $1", job_id)
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError("update_job", str(e), table="jobs")

        if current is None:
            raise JobNotFoundError(job_id)
        raise ConflictError(job_id, current)

    async def query_by_status(self, status: JobStatus) -> List[Job]:
        """Get jobs in a status through the status index."""
        try:
            async with self.get_connection() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM jobs WHERE status = $1 ORDER BY created_at DESC", status.value
                )
                return [Job.from_dict(dict(row)) for row in rows]
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError("query_by_status", str(e), table="jobs")

    async def list_all(self) -> List[Job]:
        """Get all jobs."""
        try:
            async with self.get_connection() as conn:
                rows = await conn.fetch("SELECT * FROM jobs ORDER BY created_at DESC")
                return [Job.from_dict(dict(row)) for row in rows]
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError("list_all", str(e), table="jobs")

    async def get_job_statistics(self) -> Dict[str, int]:
        """Get job statistics."""
        try:
            async with self.get_connection() as conn:
                rows = await conn.fetch("""
                    SELECT status, COUNT(*) as count
                    FROM jobs
                    GROUP BY status
                """)
                stats = {"total": 0}
                for row in rows:
                    stats[row['status']] = row['count']
                    stats["total"] += row['count']
                return stats
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError("get_job_statistics", str(e), table="jobs")
