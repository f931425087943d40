"""
Local job executor.

Runs a job as a sequence of named stages in a thread pool. The default
stages model a media processing pipeline (thumbnail, transcoding, content
analysis, subtitles); real stage functions can be passed in instead.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional, Tuple

import psutil

from .base import BaseJobExecutor
from ..models.job import Job
from ..models.execution import ExecutionResult, ExecutionStatus
from ..utils.logger import get_logger
from ..core.exceptions import ExecutionError

StageFunction = Callable[[Job], Dict[str, Any]]

# Seconds each simulated stage takes unless configured otherwise
DEFAULT_STAGE_DURATIONS = {
    "thumbnail": 2.0,
    "transcoding": 8.0,
    "analysis": 3.0,
    "subtitles": 4.0,
}

CDN_BASE_URL = "https://cdn.example.com"


def _simulate(job: Job, stage: str, duration: float):
    """Block the worker thread for `duration` seconds, failing on request."""
    if job.config.get("fail_at_stage") == stage:
        raise ExecutionError(job.job_id, f"{stage} failed for job {job.job_id}", stage=stage)
    if duration > 0:
        time.sleep(duration)


def media_stages(durations: Optional[Dict[str, float]] = None) -> List[Tuple[str, StageFunction]]:
    """Build the simulated media pipeline with the given stage durations."""
    timings = dict(DEFAULT_STAGE_DURATIONS)
    timings.update(durations or {})

    def thumbnail(job: Job) -> Dict[str, Any]:
        _simulate(job, "thumbnail", timings["thumbnail"])
        return {
            "url": f"{CDN_BASE_URL}/thumbnails/{job.job_id}.jpg",
            "width": 1920,
            "height": 1080,
            "capture_time": "00:00:05"
        }

    def transcoding(job: Job) -> Dict[str, Any]:
        _simulate(job, "transcoding", timings["transcoding"])
        return {
            "formats": [
                {"quality": quality, "url": f"{CDN_BASE_URL}/videos/{job.job_id}/{quality}.mp4",
                 "size": size, "bitrate": bitrate}
                for quality, size, bitrate in (
                    ("1080p", 524288000, 8000),
                    ("720p", 262144000, 4000),
                    ("480p", 131072000, 2000),
                )
            ],
            "duration": 300
        }

    def analysis(job: Job) -> Dict[str, Any]:
        _simulate(job, "analysis", timings["analysis"])
        return {
            "detected": ["person", "outdoor", "landscape", "daytime"],
            "sentiment": "positive",
            "categories": ["travel", "nature", "adventure"],
            "confidence": 0.89,
            "scenes": 12
        }

    def subtitles(job: Job) -> Dict[str, Any]:
        _simulate(job, "subtitles", timings["subtitles"])
        return {
            "languages": ["en", "es", "fr", "de"],
            "vtt_url": f"{CDN_BASE_URL}/subtitles/{job.job_id}/subtitles.vtt",
            "srt_url": f"{CDN_BASE_URL}/subtitles/{job.job_id}/subtitles.srt",
            "word_count": 450
        }

    return [
        ("thumbnail", thumbnail),
        ("transcoding", transcoding),
        ("analysis", analysis),
        ("subtitles", subtitles),
    ]


class LocalJobExecutor(BaseJobExecutor):
    """
    Executes jobs stage by stage in a local thread pool.

    Each stage runs off the event loop and is awaited through its future, so
    a long stage never blocks other executions. Stages run strictly in
    sequence and the first failure ends the job.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        stages: Optional[List[Tuple[str, StageFunction]]] = None
    ):
        """
        Initialize local job executor.

        Args:
            config: Executor configuration (max_workers, stage_durations)
            stages: Named stage functions; defaults to the media pipeline
        """
        super().__init__(config)
        self.max_workers = self.config.get("max_workers", 4)
        self.stages = stages or media_stages(self.config.get("stage_durations"))
        self.thread_executor: Optional[ThreadPoolExecutor] = None
        self.active_jobs: Dict[str, Dict[str, Any]] = {}
        self.logger = get_logger(__name__)

    async def initialize(self) -> bool:
        """Initialize the thread pool."""
        if self._is_initialized:
            return True
        self.thread_executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="job-stage"
        )
        self._is_initialized = True
        self.logger.info("Local job executor initialized", extra={"max_workers": self.max_workers})
        return True

    async def shutdown(self) -> bool:
        """Shutdown the thread pool without waiting for running stages."""
        if self.thread_executor:
            self.thread_executor.shutdown(wait=False)
            self.thread_executor = None
        self._is_initialized = False
        self.logger.info("Local job executor shut down")
        return True

    async def execute(self, job: Job) -> ExecutionResult:
        """Run all stages for a job and report the outcome."""
        if not self._is_initialized:
            await self.initialize()

        job_id = job.job_id
        start_time = datetime.utcnow()
        started = time.monotonic()
        loop = asyncio.get_running_loop()
        results: Dict[str, Any] = {}
        stage_name = None

        self.active_jobs[job_id] = {"start_time": start_time, "stage": None}
        self.logger.info("Starting job execution", extra={"job_id": job_id, "stages": len(self.stages)})

        try:
            for stage_name, stage in self.stages:
                self.active_jobs[job_id]["stage"] = stage_name
                results[stage_name] = await loop.run_in_executor(self.thread_executor, stage, job)
                self.logger.info(f"Stage {stage_name} completed", extra={"job_id": job_id})

        except Exception as e:
            self.logger.error(f"Stage {stage_name} failed", extra={
                "job_id": job_id,
                "stage": stage_name,
                "error": str(e)
            })
            return ExecutionResult(
                job_id=job_id,
                status=ExecutionStatus.FAILED,
                error_message=str(e),
                failed_stage=getattr(e, "stage", None) or stage_name,
                start_time=start_time,
                end_time=datetime.utcnow(),
                execution_time_seconds=time.monotonic() - started,
                metadata={"executor": "local"}
            )

        finally:
            self.active_jobs.pop(job_id, None)

        elapsed = time.monotonic() - started
        results["processing_time_ms"] = int(elapsed * 1000)

        self.logger.info("Job execution completed", extra={
            "job_id": job_id,
            "execution_time_seconds": elapsed
        })

        return ExecutionResult(
            job_id=job_id,
            status=ExecutionStatus.COMPLETED,
            result=results,
            start_time=start_time,
            end_time=datetime.utcnow(),
            execution_time_seconds=elapsed,
            resource_usage=await self._get_job_resource_usage(),
            metadata={"executor": "local"}
        )

    async def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get status of a running job."""
        job_info = self.active_jobs.get(job_id)
        if not job_info:
            return None

        return {
            "job_id": job_id,
            "stage": job_info["stage"],
            "runtime_seconds": (datetime.utcnow() - job_info["start_time"]).total_seconds(),
            "start_time": job_info["start_time"].isoformat()
        }

    async def get_resource_usage(self) -> Dict[str, Any]:
        """Get current local resource usage."""
        try:
            return {
                "cpu_percent": psutil.cpu_percent(),
                "memory_percent": psutil.virtual_memory().percent,
                "active_jobs": len(self.active_jobs),
                "max_workers": self.max_workers
            }
        except Exception as e:
            self.logger.error(f"Error getting local resource usage: {str(e)}")
            return {}

    async def _get_job_resource_usage(self) -> Dict[str, Any]:
        try:
            return {
                "cpu_percent": psutil.cpu_percent(),
                "memory_mb": psutil.virtual_memory().used // 1024 // 1024,
                "execution_method": "local"
            }
        except Exception:
            return {"execution_method": "local"}
