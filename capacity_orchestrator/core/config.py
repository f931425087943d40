"""
Configuration for Capacity Orchestrator

Settings can come from a YAML or JSON file, a plain dictionary or
CAPACITY_ORCHESTRATOR_* environment variables. Invalid values raise
ConfigurationError.
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator

from ..models.capacity import CapacityTarget
from .exceptions import ConfigurationError, InvalidTargetError

ENV_PREFIX = "CAPACITY_ORCHESTRATOR_"


class RetrySettings(BaseModel):
    """Backoff for transient capacity backend failures."""
    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=60.0, ge=0)
    exponential_base: float = Field(default=2.0, ge=1)
    jitter: bool = True


class OrchestratorConfig(BaseModel):
    """Settings for the orchestrator, its workflow and its backends."""

    # Capacity
    default_pool_id: str = "batch-processor"
    high_min_units: int = Field(default=100, ge=1)
    high_max_units: int = Field(default=100, ge=1)
    capacity_backend: str = Field(default="simulated", pattern="^(simulated|lambda)$")
    simulated_provisioning_delay_seconds: float = Field(default=5.0, ge=0)
    lambda_region: Optional[str] = None

    # Workflow timing
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    poll_timeout_seconds: float = Field(default=60.0, gt=0)
    workflow_timeout_seconds: float = Field(default=600.0, gt=0)
    scale_retry: RetrySettings = Field(default_factory=RetrySettings)

    # Job store
    database_url: Optional[str] = None

    # Executor
    executor_max_workers: int = Field(default=4, ge=1)
    stage_durations: Dict[str, float] = Field(default_factory=dict)

    # Logging
    log_level: str = "INFO"
    structured_logs: bool = True

    @model_validator(mode="after")
    def _check_high_target(self):
        try:
            self.high_target(self.default_pool_id)
        except InvalidTargetError as e:
            raise ValueError(e.message) from e
        return self

    def high_target(self, pool_id: str) -> CapacityTarget:
        """The fixed target requested before a batch runs."""
        return CapacityTarget(pool_id, self.high_min_units, self.high_max_units).validate()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OrchestratorConfig":
        try:
            return cls(**(data or {}))
        except PydanticValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first.get("loc", ())) or "config"
            raise ConfigurationError(key, first.get("msg", str(e))) from e

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "OrchestratorConfig":
        """Load settings from a .yaml/.yml or .json file."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(str(path), f"cannot read file: {e}") from e

        try:
            if path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(str(path), f"cannot parse file: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(str(path), "top level must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Dict[str, str]] = None,
        base: Optional[Dict[str, Any]] = None
    ) -> "OrchestratorConfig":
        """Overlay CAPACITY_ORCHESTRATOR_<FIELD> variables on `base`."""
        environ = os.environ if environ is None else environ
        data = dict(base or {})
        for name in cls.model_fields:
            value = environ.get(ENV_PREFIX + name.upper())
            if value is None:
                continue
            if name in ("scale_retry", "stage_durations"):
                try:
                    data[name] = json.loads(value)
                except ValueError as e:
                    raise ConfigurationError(name, f"expected JSON: {e}") from e
            else:
                data[name] = value
        return cls.from_dict(data)

    def with_overrides(self, **overrides) -> "OrchestratorConfig":
        """Return a copy with the non-None overrides applied and validated."""
        data = self.model_dump()
        data.update({key: value for key, value in overrides.items() if value is not None})
        return self.from_dict(data)
