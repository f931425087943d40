"""Tests for capacity targets, job records and the workflow state machine."""

from datetime import datetime

import pytest

from capacity_orchestrator.core.exceptions import InvalidTargetError, InvalidTransitionError
from capacity_orchestrator.models.capacity import CapacityTarget
from capacity_orchestrator.models.execution import (
    WORKFLOW_TRANSITIONS,
    Execution,
    WorkflowEvent,
    WorkflowState,
    next_state
)
from capacity_orchestrator.models.job import (
    Job,
    JobStatus,
    can_transition_to,
    generate_job_id,
    get_valid_transitions
)


class TestCapacityTarget:
    def test_valid_target(self):
        target = CapacityTarget("video-processor", 2, 5).validate()
        assert target.is_ready
        assert not target.is_idle
        assert str(target) == "video-processor{2,5}"

    def test_min_above_max_is_rejected(self):
        with pytest.raises(InvalidTargetError) as exc_info:
            CapacityTarget("video-processor", 5, 2).validate()
        assert exc_info.value.error_code == "INVALID_TARGET"
        assert exc_info.value.details == {"pool_id": "video-processor", "min_units": 5, "max_units": 2}

    @pytest.mark.parametrize("min_units,max_units", [(-1, 2), (1, -2), (1.5, 2), (True, 2), ("1", 2)])
    def test_malformed_bounds_are_rejected(self, min_units, max_units):
        with pytest.raises(InvalidTargetError):
            CapacityTarget("video-processor", min_units, max_units).validate()

    def test_idle_target_is_never_ready(self):
        idle = CapacityTarget.idle("video-processor").validate()
        assert idle.is_idle
        assert not idle.is_ready

    def test_partially_zero_target_is_not_ready(self):
        assert not CapacityTarget("video-processor", 0, 5).is_ready
        assert not CapacityTarget("video-processor", 0, 0).is_ready

    def test_any_positive_envelope_is_ready(self):
        assert CapacityTarget("video-processor", 1, 1).is_ready
        assert CapacityTarget("video-processor", 2, 3).is_ready

    def test_dict_conversion(self):
        target = CapacityTarget("video-processor", 2, 5)
        assert CapacityTarget.from_dict(target.to_dict()) == target


class TestJob:
    def test_generated_ids_are_unique(self):
        ids = {generate_job_id() for _ in range(50)}
        assert len(ids) == 50

    def test_round_trip_through_dict(self):
        job = Job(
            job_id="job_1_abcdefg",
            pool_id="video-processor",
            job_name="Summer Vacation 2024",
            config={"source_url": "s3://demo-bucket/videos/summer-vacation.mp4"},
            status=JobStatus.FAILED,
            started_at=datetime(2024, 6, 1, 12, 0, 0),
            failed_at=datetime(2024, 6, 1, 12, 5, 0),
            error="transcoding failed"
        )

        restored = Job.from_dict(job.to_dict())

        assert restored == job
        assert restored.get_duration() == 300.0

    def test_from_dict_ignores_unknown_columns(self):
        job = Job.from_dict({"job_id": "job_1_abcdefg", "pool_id": "p", "status": "submitted", "extra": 1})
        assert job.status == JobStatus.SUBMITTED

    def test_active_and_terminal(self):
        assert Job("a", "p", status=JobStatus.SCALING_UP).is_active()
        assert Job("a", "p", status=JobStatus.PROCESSING).is_active()
        assert Job("a", "p", status=JobStatus.COMPLETED).is_terminal()
        assert not Job("a", "p").is_active()

    def test_status_path(self):
        assert get_valid_transitions(JobStatus.SUBMITTED) == [JobStatus.SCALING_UP]
        assert can_transition_to(JobStatus.SCALING_UP, JobStatus.FAILED)
        assert can_transition_to(JobStatus.PROCESSING, JobStatus.COMPLETED)
        assert not can_transition_to(JobStatus.SUBMITTED, JobStatus.PROCESSING)
        assert not can_transition_to(JobStatus.SCALING_UP, JobStatus.COMPLETED)
        assert not can_transition_to(JobStatus.COMPLETED, JobStatus.SCALING_UP)
        assert get_valid_transitions(JobStatus.FAILED) == []


class TestWorkflowStateMachine:
    def test_success_path(self):
        execution = Execution("process-a-1", "a", "video-processor")
        for event in (WorkflowEvent.SCALE_UP, WorkflowEvent.POLL_TIMED_OUT, WorkflowEvent.READY,
                      WorkflowEvent.EXECUTION_SUCCEEDED, WorkflowEvent.SCALE_DOWN_ATTEMPTED):
            execution.advance(event)

        assert execution.state == WorkflowState.SUCCEEDED
        assert execution.is_finished()
        assert execution.finished_at is not None

    @pytest.mark.parametrize("failing_state", [WorkflowState.SCALING_UP, WorkflowState.EXECUTING])
    def test_failures_go_through_compensation(self, failing_state):
        assert next_state(failing_state, WorkflowEvent.FAILED) == WorkflowState.COMPENSATING_SCALE_DOWN
        assert next_state(
            WorkflowState.COMPENSATING_SCALE_DOWN, WorkflowEvent.SCALE_DOWN_ATTEMPTED
        ) == WorkflowState.FAILED

    def test_every_other_pair_is_rejected(self):
        for state in WorkflowState:
            for event in WorkflowEvent:
                if (state, event) in WORKFLOW_TRANSITIONS:
                    continue
                with pytest.raises(InvalidTransitionError):
                    next_state(state, event)

    def test_terminal_states_have_no_exits(self):
        for (state, _event) in WORKFLOW_TRANSITIONS:
            assert state not in (WorkflowState.SUCCEEDED, WorkflowState.FAILED)

    def test_outcome(self):
        execution = Execution("process-a-1", "a", "video-processor", state=WorkflowState.COMPENSATING_SCALE_DOWN)
        execution.error = "boom"
        execution.error_code = "EXECUTION_ERROR"
        execution.advance(WorkflowEvent.SCALE_DOWN_ATTEMPTED)

        assert execution.outcome() == {
            "execution_id": "process-a-1",
            "job_id": "a",
            "status": "failed",
            "error": "boom",
            "error_code": "EXECUTION_ERROR"
        }
