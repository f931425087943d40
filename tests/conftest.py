"""Shared fixtures for the capacity orchestrator test suite."""

import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from capacity_orchestrator.capacity.simulated import SimulatedCapacityBackend
from capacity_orchestrator.core.config import OrchestratorConfig
from capacity_orchestrator.core.exceptions import CapacityBackendError, error_registry
from capacity_orchestrator.executors.base import BaseJobExecutor
from capacity_orchestrator.models.execution import ExecutionResult, ExecutionStatus
from capacity_orchestrator.models.job import Job
from capacity_orchestrator.services.capacity_controller import CapacityController
from capacity_orchestrator.services.fault_tolerance import FaultToleranceService
from capacity_orchestrator.services.job_manager import JobManager
from capacity_orchestrator.services.readiness_poller import ReadinessPoller
from capacity_orchestrator.services.workflow import OrchestrationWorkflow
from capacity_orchestrator.utils.database import InMemoryJobStore

POOL = "video-processor"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock for the simulated backend."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingBackend(SimulatedCapacityBackend):
    """Simulated backend that writes every accepted request to a shared timeline."""

    def __init__(self, timeline: List[str], fail_idle_requests: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.timeline = timeline
        self.fail_idle_requests = fail_idle_requests
        self.idle_attempts = 0

    async def put_scaling_config(self, pool_id: str, min_units: int, max_units: int) -> Dict[str, Any]:
        if min_units == 0 and max_units == 0:
            self.idle_attempts += 1
            if self.fail_idle_requests:
                raise CapacityBackendError("put", pool_id, "throttled")
        response = await super().put_scaling_config(pool_id, min_units, max_units)
        self.timeline.append(f"scale:{min_units},{max_units}")
        return response

    def idle_requests(self, pool_id: str = POOL) -> int:
        return sum(1 for target in self.requests_for(pool_id) if target.is_idle)


class RecordingJobStore(InMemoryJobStore):
    """In-memory store that writes every status change to a shared timeline."""

    def __init__(self, timeline: List[str]):
        super().__init__()
        self.timeline = timeline

    async def update_job(self, job_id, fields, expected_status=None) -> Job:
        job = await super().update_job(job_id, fields, expected_status)
        if "status" in fields:
            self.timeline.append(f"status:{job.status.value}")
        return job

    def statuses(self) -> List[str]:
        return [entry.split(":", 1)[1] for entry in self.timeline if entry.startswith("status:")]


class ScriptedExecutor(BaseJobExecutor):
    """
    Executor whose outcome is fixed up front.

    outcome is "succeed", "fail" (reports a failed stage) or "raise" (the
    executor call itself throws).
    """

    def __init__(self, outcome: str = "succeed", delay: float = 0.0,
                 error: str = "transcoding failed: codec not supported", stage: str = "transcoding"):
        super().__init__()
        self.outcome = outcome
        self.delay = delay
        self.error = error
        self.stage = stage
        self.calls: List[str] = []
        self.finished: List[str] = []

    async def initialize(self) -> bool:
        self._is_initialized = True
        return True

    async def shutdown(self) -> bool:
        self._is_initialized = False
        return True

    async def execute(self, job: Job) -> ExecutionResult:
        self.calls.append(job.job_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.finished.append(job.job_id)

        if self.outcome == "raise":
            raise RuntimeError(self.error)
        if self.outcome == "fail":
            return ExecutionResult(
                job_id=job.job_id,
                status=ExecutionStatus.FAILED,
                error_message=self.error,
                failed_stage=self.stage
            )
        return ExecutionResult(
            job_id=job.job_id,
            status=ExecutionStatus.COMPLETED,
            result={"output": f"s3://results/{job.job_id}", "processing_time_ms": 5}
        )

    async def get_resource_usage(self) -> Dict[str, Any]:
        return {"active_jobs": len(self.calls) - len(self.finished)}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_error_registry():
    error_registry.reset()
    yield
    error_registry.reset()


@pytest.fixture
def fast_config() -> OrchestratorConfig:
    """Small targets and short timings so workflows finish in milliseconds."""
    return OrchestratorConfig(
        default_pool_id=POOL,
        high_min_units=2,
        high_max_units=5,
        simulated_provisioning_delay_seconds=0.0,
        poll_interval_seconds=0.01,
        poll_timeout_seconds=0.2,
        workflow_timeout_seconds=2.0,
        scale_retry={"max_attempts": 3, "initial_delay": 0.0, "max_delay": 0.0, "jitter": False},
        stage_durations={"thumbnail": 0, "transcoding": 0, "analysis": 0, "subtitles": 0}
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_env(fast_config):
    """
    Factory for a fully wired workflow.

    Returns a namespace holding the timeline, store, backend, executor,
    services and the workflow itself.
    """

    def _make(
        executor: Optional[BaseJobExecutor] = None,
        config: Optional[OrchestratorConfig] = None,
        provisioning_delay: float = 0.0,
        fail_idle_requests: bool = False
    ) -> SimpleNamespace:
        config = config or fast_config
        timeline: List[str] = []
        store = RecordingJobStore(timeline)
        backend = RecordingBackend(
            timeline,
            fail_idle_requests=fail_idle_requests,
            provisioning_delay=provisioning_delay
        )
        executor = executor or ScriptedExecutor()
        fault_tolerance = FaultToleranceService(config.scale_retry.model_dump())
        job_manager = JobManager(store)
        controller = CapacityController(backend)
        poller = ReadinessPoller(controller)
        workflow = OrchestrationWorkflow(
            job_manager=job_manager,
            controller=controller,
            poller=poller,
            executor=executor,
            fault_tolerance=fault_tolerance,
            config=config
        )
        return SimpleNamespace(
            config=config,
            timeline=timeline,
            store=store,
            backend=backend,
            executor=executor,
            fault_tolerance=fault_tolerance,
            job_manager=job_manager,
            controller=controller,
            poller=poller,
            workflow=workflow
        )

    return _make


@pytest.fixture
def scripted_executor():
    """The ScriptedExecutor class, for tests that need custom outcomes."""
    return ScriptedExecutor
