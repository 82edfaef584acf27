"""Engine configuration.

Settings are read from ``BASELINE_*`` environment variables (and a ``.env``
file in the working directory) and can be overridden by CLI flags::

    BASELINE_CONCURRENCY=8 BASELINE_TIMEOUT=300 baseline check profiles/linux-baseline
"""

import logging
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Run settings with their defaults."""

    # Scheduling
    concurrency: int = Field(default=4, ge=1, le=64, description="Rules evaluated in parallel")
    timeout: Optional[float] = Field(default=None, gt=0, description="Run deadline in seconds")
    command_timeout: float = Field(default=30, gt=0, description="Per-command timeout in seconds")
    stop_on_first_failure: bool = False

    # Exit behaviour
    no_fail: bool = Field(default=False, description="Always exit 0; the report still classifies the run")

    # Connection defaults
    user: Optional[str] = None
    key_path: Optional[str] = None
    sudo: bool = False

    log_level: str = "WARNING"

    model_config = SettingsConfigDict(env_prefix="BASELINE_", env_file=".env", extra="ignore")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level

    def with_overrides(self, **overrides: Any) -> "EngineSettings":
        """Copy with CLI overrides applied; ``None`` means "not given"."""
        update = {k: v for k, v in overrides.items() if v is not None}
        return self.model_validate({**self.model_dump(), **update}) if update else self
