"""
ReadinessPoller service for Capacity Orchestrator

Waits until the applied capacity of a pool is ready for a requested target.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .capacity_controller import CapacityController
from ..models.capacity import CapacityTarget
from ..utils.logger import get_logger
from ..core.exceptions import CapacityBackendError, ConfigurationError, InvalidTargetError


class PollOutcome(Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass
class PollResult:
    """Result of one await_ready call."""
    outcome: PollOutcome
    attempts: int
    applied: Optional[CapacityTarget]
    elapsed_seconds: float

    @property
    def ready(self) -> bool:
        return self.outcome == PollOutcome.READY


class ReadinessPoller:
    """
    Fixed-interval readiness polling.

    Every attempt re-queries the applied target; nothing is cached between
    attempts. The loop always suspends between attempts and never runs past
    its deadline. Timing out is reported as a result, not raised: the caller
    decides whether it is fatal.
    """

    def __init__(self, controller: CapacityController):
        self.controller = controller
        self.logger = get_logger(__name__)

    async def await_ready(
        self,
        pool_id: str,
        target: CapacityTarget,
        poll_interval: float = 1.0,
        timeout: float = 60.0
    ) -> PollResult:
        """
        Poll until the applied target of `pool_id` is ready (both bounds positive).

        Args:
            pool_id: Pool to poll
            target: Requested (non-idle) target to wait for
            poll_interval: Seconds to sleep between attempts
            timeout: Seconds after which TIMED_OUT is returned

        Returns:
            PollResult with READY or TIMED_OUT
        """
        if poll_interval <= 0:
            raise ConfigurationError("poll_interval", "must be greater than zero")
        if not target.is_ready:
            raise InvalidTargetError(
                pool_id, target.min_units, target.max_units,
                reason="an idle target can never become ready"
            )

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + max(timeout, 0.0)
        attempts = 0
        applied: Optional[CapacityTarget] = None

        while True:
            attempts += 1
            try:
                applied = await self.controller.get_applied_target(pool_id)
            except CapacityBackendError as e:
                # A failed read only means "not known to be ready yet"
                self.logger.warning("Readiness check failed", extra={
                    "pool_id": pool_id,
                    "attempt": attempts,
                    "error": str(e)
                })
            else:
                if applied.is_ready:
                    self.logger.info("Capacity ready", extra={
                        "pool_id": pool_id,
                        "attempts": attempts,
                        "applied": str(applied)
                    })
                    return PollResult(PollOutcome.READY, attempts, applied, loop.time() - started)

            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning("Capacity not ready before deadline", extra={
                    "pool_id": pool_id,
                    "attempts": attempts,
                    "applied": str(applied) if applied else None,
                    "requested": str(target)
                })
                return PollResult(PollOutcome.TIMED_OUT, attempts, applied, loop.time() - started)

            await asyncio.sleep(min(poll_interval, remaining))
