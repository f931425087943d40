"""
CapacityController service for Capacity Orchestrator

Requests capacity targets for compute pools and reads back what the
platform actually applied.
"""

from typing import Dict, Any

from ..capacity.base import BaseCapacityBackend
from ..models.capacity import CapacityTarget
from ..utils.logger import get_logger
from ..core.exceptions import InvalidTargetError, error_registry


class CapacityController:
    """
    Idempotent capacity requests against a pluggable backend.

    Holds no in-process memory of pools: every call is a fresh command or
    query against the backend, so concurrent callers for the same pool get
    last-write-wins on requests and consistent snapshots on reads.
    """

    def __init__(self, backend: BaseCapacityBackend):
        """
        Initialize CapacityController.

        Args:
            backend: Capacity backend that owns the pools
        """
        self.backend = backend
        self.logger = get_logger(__name__)

    async def request_target(self, pool_id: str, target: CapacityTarget) -> Dict[str, Any]:
        """
        Request a capacity target for a pool.

        Returns once the backend accepted the request; provisioning continues
        asynchronously. Repeating an identical request is a no-op.

        Raises:
            InvalidTargetError: If the bounds are malformed or name another pool
            CapacityBackendError: If the backend call failed
        """
        if target.pool_id != pool_id:
            raise InvalidTargetError(
                pool_id, target.min_units, target.max_units,
                reason=f"target belongs to pool {target.pool_id}"
            )
        try:
            target.validate()
        except InvalidTargetError as e:
            error_registry.record_error(e)
            self.logger.warning("Rejected capacity target", extra={
                "pool_id": pool_id,
                "min_units": target.min_units,
                "max_units": target.max_units
            })
            raise

        self.logger.info("Requesting capacity target", extra={
            "pool_id": pool_id,
            "min_units": target.min_units,
            "max_units": target.max_units
        })

        response = await self.backend.put_scaling_config(pool_id, target.min_units, target.max_units)

        return {
            "pool_id": pool_id,
            "requested": target.to_dict(),
            "backend": self.backend.backend_name,
            "response": response
        }

    async def get_applied_target(self, pool_id: str) -> CapacityTarget:
        """
        Read the target the platform currently has live for a pool.

        May lag the last requested target; {0,0} if nothing was ever applied.
        """
        min_units, max_units = await self.backend.get_applied_scaling_config(pool_id)
        applied = CapacityTarget(pool_id, min_units, max_units)

        self.logger.debug("Applied capacity target", extra={
            "pool_id": pool_id,
            "min_units": min_units,
            "max_units": max_units,
            "ready": applied.is_ready
        })
        return applied
