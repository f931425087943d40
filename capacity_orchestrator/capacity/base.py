"""
Base capacity backend interface.

Defines the two operations every capacity platform must offer: accept a
requested scaling configuration and report the configuration that is live.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Tuple


class BaseCapacityBackend(ABC):
    """
    Abstract base class for capacity backends.

    Implementations hold no cached view of the platform: every call is a
    fresh command or query against the platform that owns the pool.
    """

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}

    @abstractmethod
    async def put_scaling_config(self, pool_id: str, min_units: int, max_units: int) -> Dict[str, Any]:
        """
        Record a requested scaling configuration for a pool.

        Returns as soon as the platform accepted the request; provisioning
        happens asynchronously.

        Raises:
            CapacityBackendError: If the platform call failed
        """
        pass

    @abstractmethod
    async def get_applied_scaling_config(self, pool_id: str) -> Tuple[int, int]:
        """
        Read the (min, max) bounds the platform currently has live.

        Returns (0, 0) for a pool that never had a configuration applied.

        Raises:
            CapacityBackendError: If the platform call failed
        """
        pass

    async def close(self) -> None:
        """Release any client resources held by the backend."""

    @property
    def backend_name(self) -> str:
        """Get the name of this backend."""
        return self.__class__.__name__
