"""Tests for structured logging and the task-local log context."""

import asyncio
import json
import logging

import pytest

from capacity_orchestrator.utils.logger import (
    JobContextFilter,
    LoggerContext,
    StructuredFormatter,
    clear_log_context,
    get_log_context,
    set_log_context
)


def _record(message="Workflow scaling_up -> executing", **extra):
    record = logging.LogRecord("capacity_orchestrator.services.workflow", logging.INFO,
                               __file__, 10, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def _render(record) -> dict:
    JobContextFilter().filter(record)
    return json.loads(StructuredFormatter().format(record))


class TestStructuredLogging:
    def test_json_fields(self):
        entry = _render(_record(pool_id="video-processor"))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "capacity_orchestrator.services.workflow"
        assert entry["message"] == "Workflow scaling_up -> executing"
        assert entry["extra"] == {"pool_id": "video-processor"}

    def test_context_fields_are_added(self):
        with LoggerContext(job_id="job_1_abcdefg", execution_id="process-job_1_abcdefg-1"):
            entry = _render(_record())

        assert entry["extra"]["job_id"] == "job_1_abcdefg"
        assert entry["extra"]["execution_id"] == "process-job_1_abcdefg-1"
        assert get_log_context() == {}

    def test_explicit_extra_wins_over_context(self):
        with LoggerContext(job_id="job_1_abcdefg"):
            entry = _render(_record(job_id="job_2_hijklmn"))

        assert entry["extra"]["job_id"] == "job_2_hijklmn"

    def test_set_and_clear(self):
        set_log_context(component="orchestrator")
        assert get_log_context() == {"component": "orchestrator"}

        clear_log_context()
        assert get_log_context() == {}

    @pytest.mark.asyncio
    async def test_concurrent_tasks_keep_their_own_context(self):
        async def tagged(job_id):
            with LoggerContext(job_id=job_id):
                await asyncio.sleep(0.01)
                return _render(_record())["extra"]["job_id"]

        results = await asyncio.gather(tagged("job_1_aaaaaaa"), tagged("job_2_bbbbbbb"))

        assert results == ["job_1_aaaaaaa", "job_2_bbbbbbb"]
