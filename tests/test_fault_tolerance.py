"""Tests for retry and alarm handling."""

from unittest.mock import AsyncMock

import pytest

from capacity_orchestrator.core.exceptions import (
    CapacityBackendError,
    InvalidTargetError,
    ScaleDownError,
    error_registry
)
from capacity_orchestrator.services.fault_tolerance import FaultToleranceService, RetryPolicy

POOL = "video-processor"


def _service(**config) -> FaultToleranceService:
    settings = {"max_attempts": 3, "initial_delay": 1.0, "jitter": False}
    settings.update(config)
    return FaultToleranceService(settings, sleep=AsyncMock())


class TestRetry:
    @pytest.mark.asyncio
    async def test_transient_errors_are_retried_with_backoff(self):
        service = _service()
        func = AsyncMock(side_effect=[
            CapacityBackendError("put", POOL, "throttled"),
            CapacityBackendError("put", POOL, "throttled"),
            {"ok": True}
        ])

        result = await service.execute_with_retry(func, POOL, operation="request", retry_policy_name="capacity_backend")

        assert result == {"ok": True}
        assert func.await_count == 3
        assert [call.args[0] for call in service._sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_errors_fail_immediately(self):
        service = _service()
        func = AsyncMock(side_effect=InvalidTargetError(POOL, 5, 2))

        with pytest.raises(InvalidTargetError):
            await service.execute_with_retry(func)

        assert func.await_count == 1
        service._sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        service = _service()
        func = AsyncMock(side_effect=CapacityBackendError("put", POOL, "throttled"))

        with pytest.raises(CapacityBackendError):
            await service.execute_with_retry(func)

        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_no_retry_policy(self):
        service = _service()
        func = AsyncMock(side_effect=CapacityBackendError("put", POOL, "throttled"))

        with pytest.raises(CapacityBackendError):
            await service.execute_with_retry(func, retry_policy_name="no_retry")

        assert func.await_count == 1

    def test_delay_is_capped(self):
        policy = RetryPolicy(initial_delay=1.0, max_delay=5.0, exponential_base=2.0, jitter=False)

        assert [policy.delay_for(attempt) for attempt in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(initial_delay=4.0, jitter=True)

        for _ in range(20):
            assert 2.0 <= policy.delay_for(1) <= 4.0


class TestAlarms:
    def test_raise_alarm_records_error(self):
        service = _service()
        error = ScaleDownError(POOL, "throttled")

        alarm = service.raise_alarm("capacity_leak", "pool left scaled up", pool_id=POOL,
                                    job_id="job_1_abcdefg", error=error, verdict="succeeded")

        assert alarm.details["verdict"] == "succeeded"
        assert alarm.details["error"]["error_code"] == "SCALE_DOWN_ERROR"
        assert error_registry.get_error_statistics()["error_counts"] == {"ScaleDownError": 1}
        assert service.get_alarms()[0]["pool_id"] == POOL

    def test_alarms_are_bounded(self):
        service = _service(max_alarms=2)
        for index in range(3):
            service.raise_alarm("capacity_leak", f"alarm {index}")

        assert [alarm["message"] for alarm in service.get_alarms()] == ["alarm 1", "alarm 2"]

    def test_filter_and_clear(self):
        service = _service()
        service.raise_alarm("capacity_leak", "leak")
        service.raise_alarm("job_record_not_updated", "stale record")

        assert len(service.get_alarms("capacity_leak")) == 1
        assert service.clear_alarms() == 2
        assert service.get_alarms() == []
