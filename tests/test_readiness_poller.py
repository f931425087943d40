"""Tests for ReadinessPoller."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from capacity_orchestrator.capacity.simulated import SimulatedCapacityBackend
from capacity_orchestrator.core.exceptions import CapacityBackendError, ConfigurationError, InvalidTargetError
from capacity_orchestrator.models.capacity import CapacityTarget
from capacity_orchestrator.services.capacity_controller import CapacityController
from capacity_orchestrator.services.readiness_poller import PollOutcome, ReadinessPoller

POOL = "video-processor"
TARGET = CapacityTarget(POOL, 2, 5)


def _controller_returning(*applied) -> MagicMock:
    controller = MagicMock(spec=CapacityController)
    controller.get_applied_target = AsyncMock(side_effect=list(applied))
    return controller


class TestAwaitReady:
    @pytest.mark.asyncio
    async def test_ready_on_first_attempt(self):
        poller = ReadinessPoller(_controller_returning(TARGET))

        result = await poller.await_ready(POOL, TARGET, poll_interval=0.01, timeout=1.0)

        assert result.outcome == PollOutcome.READY
        assert result.ready
        assert result.attempts == 1
        assert result.applied == TARGET

    @pytest.mark.asyncio
    async def test_ready_after_provisioning(self):
        backend = SimulatedCapacityBackend(provisioning_delay=0.05)
        controller = CapacityController(backend)
        await controller.request_target(POOL, TARGET)

        result = await ReadinessPoller(controller).await_ready(POOL, TARGET, poll_interval=0.01, timeout=1.0)

        assert result.ready
        assert result.attempts > 1

    @pytest.mark.asyncio
    async def test_times_out_without_raising(self):
        backend = SimulatedCapacityBackend()
        backend.stall_pool(POOL)
        controller = CapacityController(backend)
        await controller.request_target(POOL, TARGET)

        result = await ReadinessPoller(controller).await_ready(POOL, TARGET, poll_interval=0.01, timeout=0.05)

        assert result.outcome == PollOutcome.TIMED_OUT
        assert not result.ready
        assert result.applied.is_idle
        assert result.attempts >= 2
        assert result.elapsed_seconds >= 0.05
        assert result.elapsed_seconds < 0.5

    @pytest.mark.asyncio
    async def test_polls_at_fixed_interval_without_spinning(self):
        backend = SimulatedCapacityBackend()
        backend.stall_pool(POOL)
        poller = ReadinessPoller(CapacityController(backend))

        result = await poller.await_ready(POOL, TARGET, poll_interval=0.02, timeout=0.1)

        # One attempt per interval plus the final one at the deadline
        assert 2 <= result.attempts <= 7

    @pytest.mark.asyncio
    async def test_partial_capacity_is_not_ready(self):
        partial = CapacityTarget(POOL, 0, 5)
        poller = ReadinessPoller(_controller_returning(partial, partial, TARGET))

        result = await poller.await_ready(POOL, TARGET, poll_interval=0.01, timeout=1.0)

        assert result.ready
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_clamped_envelope_is_ready(self):
        clamped = CapacityTarget(POOL, 2, 3)
        poller = ReadinessPoller(_controller_returning(clamped))

        result = await poller.await_ready(POOL, TARGET, poll_interval=0.01, timeout=1.0)

        assert result.outcome == PollOutcome.READY
        assert result.attempts == 1
        assert result.applied == clamped

    @pytest.mark.asyncio
    async def test_zero_timeout_checks_once(self):
        poller = ReadinessPoller(_controller_returning(CapacityTarget.idle(POOL)))

        result = await poller.await_ready(POOL, TARGET, poll_interval=1.0, timeout=0)

        assert result.outcome == PollOutcome.TIMED_OUT
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_never_sleeps_past_deadline(self, monkeypatch):
        sleeps = []
        real_sleep = asyncio.sleep

        async def recording_sleep(delay):
            sleeps.append(delay)
            await real_sleep(delay)

        monkeypatch.setattr("capacity_orchestrator.services.readiness_poller.asyncio.sleep", recording_sleep)
        backend = SimulatedCapacityBackend()
        backend.stall_pool(POOL)
        poller = ReadinessPoller(CapacityController(backend))

        await poller.await_ready(POOL, TARGET, poll_interval=10.0, timeout=0.05)

        assert sleeps
        assert all(0 < delay <= 0.05 for delay in sleeps)

    @pytest.mark.asyncio
    async def test_transient_read_errors_count_as_not_ready(self):
        controller = _controller_returning(
            CapacityBackendError("get", POOL, "throttled"),
            TARGET
        )
        poller = ReadinessPoller(controller)

        result = await poller.await_ready(POOL, TARGET, poll_interval=0.01, timeout=1.0)

        assert result.ready
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_idle_target_is_rejected(self):
        poller = ReadinessPoller(_controller_returning())

        with pytest.raises(InvalidTargetError):
            await poller.await_ready(POOL, CapacityTarget.idle(POOL))

    @pytest.mark.asyncio
    async def test_non_positive_interval_is_rejected(self):
        poller = ReadinessPoller(_controller_returning())

        with pytest.raises(ConfigurationError):
            await poller.await_ready(POOL, TARGET, poll_interval=0)
