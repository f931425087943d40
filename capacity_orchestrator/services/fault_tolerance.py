"""
Fault tolerance mechanisms.

Provides:
- Retry with exponential backoff for transient capacity backend failures
- Operational alarms for capacity that could not be released
"""

import asyncio
import random
from datetime import datetime
from typing import Dict, List, Optional, Any, Callable
from dataclasses import dataclass, field

from ..utils.logger import get_logger
from ..core.exceptions import CapacityOrchestratorError, error_registry


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        delay = min(
            self.initial_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)  # 50%-100% of calculated delay
        return delay


@dataclass
class CapacityAlarm:
    """An operational alarm raised when capacity may have leaked."""
    alarm_type: str
    message: str
    pool_id: Optional[str] = None
    job_id: Optional[str] = None
    execution_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    raised_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alarm_type": self.alarm_type,
            "message": self.message,
            "pool_id": self.pool_id,
            "job_id": self.job_id,
            "execution_id": self.execution_id,
            "details": self.details,
            "raised_at": self.raised_at.isoformat()
        }


def _is_retryable(error: BaseException) -> bool:
    return getattr(error, "retryable", False)


class FaultToleranceService:
    """
    Retry and alarm service used by the orchestration workflow.

    Capacity requests and reads are retried when the backend reports a
    transient error; everything else propagates on the first failure.
    Alarms collect failures that must not change a job verdict but need
    operator attention, such as a pool that could not be scaled to idle.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, sleep: Callable = asyncio.sleep):
        """
        Initialize fault tolerance service.

        Args:
            config: Fault tolerance configuration
            sleep: Coroutine used to wait between attempts
        """
        self.config = config or {}
        self.retry_policies: Dict[str, RetryPolicy] = {}
        self.alarms: List[CapacityAlarm] = []
        self._sleep = sleep
        self.logger = get_logger(__name__)

        self._initialize_retry_policies()

    def _initialize_retry_policies(self):
        """Initialize retry policies."""
        default_policy = RetryPolicy(
            max_attempts=self.config.get("max_attempts", 3),
            initial_delay=self.config.get("initial_delay", 1.0),
            max_delay=self.config.get("max_delay", 60.0),
            exponential_base=self.config.get("exponential_base", 2.0),
            jitter=self.config.get("jitter", True)
        )

        self.retry_policies = {
            "default": default_policy,
            "capacity_backend": default_policy,
            "no_retry": RetryPolicy(max_attempts=1)
        }

    def register_policy(self, name: str, policy: RetryPolicy):
        self.retry_policies[name] = policy

    async def execute_with_retry(
        self,
        func: Callable,
        *args,
        operation: str = "operation",
        retry_policy_name: str = "default",
        **kwargs
    ) -> Any:
        """
        Execute a coroutine function, retrying retryable errors.

        Args:
            func: Coroutine function to execute
            operation: Name used in log messages
            retry_policy_name: Name of retry policy to use

        Returns:
            Function result
        """
        policy = self.retry_policies.get(retry_policy_name, self.retry_policies["default"])
        attempt = 0

        while True:
            try:
                result = await func(*args, **kwargs)
                if attempt > 0:
                    self.logger.info(f"{operation} succeeded on attempt {attempt + 1}")
                return result

            except Exception as e:
                attempt += 1

                if not _is_retryable(e):
                    raise

                if attempt >= policy.max_attempts:
                    self.logger.error(f"{operation} failed after {attempt} attempts: {e}")
                    raise

                delay = policy.delay_for(attempt)
                self.logger.warning(
                    f"{operation} failed on attempt {attempt}, retrying in {delay:.2f} seconds",
                    extra={"error": str(e)}
                )
                await self._sleep(delay)

    def raise_alarm(
        self,
        alarm_type: str,
        message: str,
        pool_id: Optional[str] = None,
        job_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        error: Optional[CapacityOrchestratorError] = None,
        **details
    ) -> CapacityAlarm:
        """Record an operational alarm."""
        if error is not None:
            error_registry.record_error(error)
            details.setdefault("error", error.to_dict())

        alarm = CapacityAlarm(
            alarm_type=alarm_type,
            message=message,
            pool_id=pool_id,
            job_id=job_id,
            execution_id=execution_id,
            details=details
        )
        self.alarms.append(alarm)

        max_alarms = self.config.get("max_alarms", 1000)
        if len(self.alarms) > max_alarms:
            self.alarms.pop(0)  # Remove oldest entry

        self.logger.error(f"ALARM {alarm_type}: {message}", extra={
            "pool_id": pool_id,
            "job_id": job_id,
            "execution_id": execution_id
        })
        return alarm

    def get_alarms(self, alarm_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get current alarms, optionally of a single type."""
        return [
            alarm.to_dict() for alarm in self.alarms
            if alarm_type is None or alarm.alarm_type == alarm_type
        ]

    def clear_alarms(self) -> int:
        """Clear all alarms."""
        count = len(self.alarms)
        self.alarms.clear()
        self.logger.info(f"Cleared {count} alarms")
        return count
