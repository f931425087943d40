"""
Simulated capacity backend.

An in-process stand-in for a capacity platform. Requested configurations
become applied once a provisioning delay has elapsed, which is enough to
drive the orchestration workflow locally, in the demo and in tests.
"""

import time
from typing import Callable, Dict, Any, List, Optional, Set, Tuple

from .base import BaseCapacityBackend
from ..models.capacity import CapacityTarget
from ..utils.logger import get_logger
from ..core.exceptions import CapacityBackendError


class SimulatedCapacityBackend(BaseCapacityBackend):
    """
    Capacity platform simulated in memory.

    Supports:
    - A fixed provisioning delay before a request becomes applied
    - Stalled pools whose requests never apply
    - Injected transient failures per operation
    - A log of every accepted request for inspection
    """

    def __init__(
        self,
        provisioning_delay: float = 0.0,
        clock: Optional[Callable[[], float]] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        super().__init__(config)
        self.provisioning_delay = provisioning_delay
        self._clock = clock or time.monotonic

        self._requested: Dict[str, Tuple[int, int]] = {}
        self._requested_at: Dict[str, float] = {}
        self._applied: Dict[str, Tuple[int, int]] = {}
        self._pending_failures: Dict[str, int] = {"put": 0, "get": 0}

        self.stalled_pools: Set[str] = set()
        self.request_log: List[CapacityTarget] = []

        self.logger = get_logger(__name__)

    async def put_scaling_config(self, pool_id: str, min_units: int, max_units: int) -> Dict[str, Any]:
        self._maybe_fail("put", pool_id)

        bounds = (min_units, max_units)
        self.request_log.append(CapacityTarget(pool_id, min_units, max_units))

        # An unchanged request must not restart provisioning
        if self._requested.get(pool_id) != bounds:
            self._requested[pool_id] = bounds
            self._requested_at[pool_id] = self._clock()

        self.logger.debug("Simulated scaling config accepted", extra={
            "pool_id": pool_id,
            "min_units": min_units,
            "max_units": max_units
        })

        return {
            "pool_id": pool_id,
            "requested": {"min_units": min_units, "max_units": max_units}
        }

    async def get_applied_scaling_config(self, pool_id: str) -> Tuple[int, int]:
        self._maybe_fail("get", pool_id)
        self._reconcile(pool_id)
        return self._applied.get(pool_id, (0, 0))

    def _reconcile(self, pool_id: str):
        """Promote the requested bounds to applied once provisioning finished."""
        if pool_id in self.stalled_pools or pool_id not in self._requested:
            return
        if self._clock() - self._requested_at[pool_id] >= self.provisioning_delay:
            self._applied[pool_id] = self._requested[pool_id]

    def _maybe_fail(self, operation: str, pool_id: str):
        if self._pending_failures[operation] > 0:
            self._pending_failures[operation] -= 1
            raise CapacityBackendError(operation, pool_id, "simulated transient failure")

    # Test and demo controls
    def inject_failures(self, operation: str, count: int = 1):
        """Make the next `count` calls of `operation` ("put" or "get") fail."""
        if operation not in self._pending_failures:
            raise ValueError(f"Unknown operation {operation!r}")
        self._pending_failures[operation] += count

    def stall_pool(self, pool_id: str):
        """Stop applying requests for a pool until resume_pool is called."""
        self.stalled_pools.add(pool_id)

    def resume_pool(self, pool_id: str):
        self.stalled_pools.discard(pool_id)

    def requested_target(self, pool_id: str) -> CapacityTarget:
        """Last requested bounds for a pool, {0,0} if never requested."""
        min_units, max_units = self._requested.get(pool_id, (0, 0))
        return CapacityTarget(pool_id, min_units, max_units)

    def requests_for(self, pool_id: str) -> List[CapacityTarget]:
        return [target for target in self.request_log if target.pool_id == pool_id]
