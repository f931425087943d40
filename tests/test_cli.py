"""Tests for the click command line interface."""

import logging
import os

import pytest
from click.testing import CliRunner

from capacity_orchestrator.cli.main import cli
from capacity_orchestrator.core.config import ENV_PREFIX
from capacity_orchestrator.core.orchestrator import CapacityOrchestrator

NO_DELAY = {"thumbnail": 0, "transcoding": 0, "analysis": 0, "subtitles": 0}


def fast_orchestrator(config):
    """Build an orchestrator that provisions and processes instantly."""
    return CapacityOrchestrator(config.with_overrides(
        high_min_units=2,
        high_max_units=5,
        poll_interval_seconds=0.01,
        simulated_provisioning_delay_seconds=0,
        stage_durations=NO_DELAY
    ))


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)
    yield
    logger = logging.getLogger("capacity_orchestrator")
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def invoke(*args):
    return CliRunner().invoke(
        cli, ["--log-level", "ERROR", *args], obj={"orchestrator_factory": fast_orchestrator}
    )


class TestJobCommands:
    def test_submit_only(self):
        result = invoke("job", "submit", "Summer Vacation 2024", "--pool", "video-processor")

        assert result.exit_code == 0, result.output
        assert "Job submitted successfully!" in result.output
        assert "Job ID: job_" in result.output
        assert "Pool: video-processor" in result.output

    def test_submit_and_process(self):
        result = invoke("job", "submit", "Summer Vacation 2024", "--process")

        assert result.exit_code == 0, result.output
        assert "Outcome: succeeded" in result.output
        assert "Processing time:" in result.output

    def test_failed_processing_exits_with_two(self):
        result = invoke("job", "submit", "Broken Upload", "--process",
                        "--config-json", '{"fail_at_stage": "transcoding"}')

        assert result.exit_code == 2
        assert "Outcome: failed" in result.output
        assert "Error: transcoding failed for job job_" in result.output

    def test_submit_with_config_file(self, tmp_path):
        path = tmp_path / "job.json"
        path.write_text('{"source_url": "s3://demo-bucket/videos/product-demo.mp4"}')

        result = invoke("--verbose", "job", "submit", "Product Demo", "--config-file", str(path))

        assert result.exit_code == 0, result.output
        assert "product-demo.mp4" in result.output

    def test_status_of_missing_job(self):
        result = invoke("job", "status", "job_0_missing")

        assert result.exit_code == 1
        assert "Job job_0_missing not found" in result.output

    def test_status_without_jobs(self):
        result = invoke("job", "status", "--status", "failed")

        assert result.exit_code == 0, result.output
        assert "No jobs found" in result.output

    def test_retry_of_missing_job(self):
        result = invoke("job", "retry", "job_0_missing")

        assert result.exit_code == 1
        assert "Error retrying job" in result.output


class TestCapacityCommands:
    def test_get_idle_pool(self):
        result = invoke("capacity", "get", "video-processor")

        assert result.exit_code == 0, result.output
        assert "Applied: min=0 max=0" in result.output
        assert "Ready: no" in result.output

    def test_set_capacity(self):
        result = invoke("capacity", "set", "video-processor", "2", "5")

        assert result.exit_code == 0, result.output
        assert "Requested capacity for video-processor: min=2 max=5" in result.output

    def test_set_rejects_min_above_max(self):
        result = invoke("capacity", "set", "video-processor", "5", "2")

        assert result.exit_code == 1
        assert "must not exceed" in result.output


class TestMonitorAndDemo:
    def test_health(self):
        result = invoke("monitor", "health")

        assert result.exit_code == 0, result.output
        assert "Overall Status: HEALTHY" in result.output
        assert "Alarms: 0" in result.output

    def test_demo(self):
        result = invoke("demo", "--provisioning-delay", "0", "--stage-seconds", "0")

        assert result.exit_code == 0, result.output
        assert "Outcome: succeeded" in result.output
        assert "Applied: min=0 max=0" in result.output
        assert "Demo complete!" in result.output

    def test_demo_with_failing_stage(self):
        result = invoke("demo", "--provisioning-delay", "0", "--stage-seconds", "0",
                        "--fail-at-stage", "analysis")

        assert result.exit_code == 0, result.output
        assert "Outcome: failed" in result.output
        assert "Applied: min=0 max=0" in result.output


class TestConfiguration:
    def test_invalid_config_file(self, tmp_path):
        path = tmp_path / "orchestrator.yaml"
        path.write_text("high_min_units: 10\nhigh_max_units: 5\n")

        result = invoke("--config", str(path), "monitor", "health")

        assert result.exit_code == 1
        assert "Error loading configuration" in result.output

    def test_environment_configuration(self, monkeypatch):
        monkeypatch.setenv(ENV_PREFIX + "DEFAULT_POOL_ID", "video-processor")

        result = invoke("capacity", "get")

        assert result.exit_code == 0, result.output
        assert "Pool: video-processor" in result.output
