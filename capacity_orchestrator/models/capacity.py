"""
Capacity data models for Capacity Orchestrator

Defines the concurrency envelope of a compute pool and the readiness rules
derived from it.
"""

from dataclasses import dataclass
from typing import Dict, Any

from ..core.exceptions import InvalidTargetError


@dataclass(frozen=True)
class CapacityTarget:
    """Desired or applied concurrency bounds for a named compute pool."""

    pool_id: str
    min_units: int
    max_units: int

    @classmethod
    def idle(cls, pool_id: str) -> "CapacityTarget":
        """The {0,0} target of a pool that is intentionally idle."""
        return cls(pool_id=pool_id, min_units=0, max_units=0)

    def validate(self) -> "CapacityTarget":
        """Raise InvalidTargetError unless 0 <= min_units <= max_units."""
        for name, value in (("minUnits", self.min_units), ("maxUnits", self.max_units)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidTargetError(
                    self.pool_id, self.min_units, self.max_units,
                    reason=f"{name} must be an integer, got {value!r}"
                )
            if value < 0:
                raise InvalidTargetError(
                    self.pool_id, self.min_units, self.max_units,
                    reason=f"{name} must not be negative"
                )
        if self.min_units > self.max_units:
            raise InvalidTargetError(self.pool_id, self.min_units, self.max_units)
        return self

    @property
    def is_ready(self) -> bool:
        """Both bounds strictly positive. An idle pool is never ready."""
        return self.min_units > 0 and self.max_units > 0

    @property
    def is_idle(self) -> bool:
        return self.min_units == 0 and self.max_units == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_id": self.pool_id,
            "min_units": self.min_units,
            "max_units": self.max_units
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapacityTarget":
        return cls(
            pool_id=data["pool_id"],
            min_units=int(data.get("min_units", 0)),
            max_units=int(data.get("max_units", 0))
        )

    def __str__(self) -> str:
        return f"{self.pool_id}{{{self.min_units},{self.max_units}}}"
