"""Engine settings using Pydantic Settings.

Centralized configuration for the eligibility and credit engine. Values are
read from environment variables prefixed with ``WOTC_`` (or a ``.env`` file),
e.g. ``WOTC_MINIMUM_HOURS=120`` or ``WOTC_REFERENCE_YEAR=2024``.
"""

import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_DIR = Path(__file__).parent / "reference_data"


class EngineSettings(BaseSettings):
    """Settings for hour tiers, reference data and batch execution."""

    model_config = SettingsConfigDict(
        env_prefix="WOTC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hour tiers shared by WOTC and tiered state programs
    minimum_hours: int = Field(default=120, ge=0, description="Hours before any credit is earned")
    full_rate_hours: int = Field(default=400, ge=0, description="Hours at which the full rate applies")
    partial_rate: Decimal = Field(default=Decimal("0.25"), ge=0, le=1, description="Rate below full_rate_hours")
    full_rate: Decimal = Field(default=Decimal("0.40"), ge=0, le=1, description="Rate at or above full_rate_hours")

    # Reference data
    reference_year: int = Field(default=2024, description="Year of the target group tables to load")
    reference_data_dir: Optional[Path] = Field(
        default=None,
        description="Directory with target_groups_<year>.yaml / programs_<year>.yaml",
    )

    # Batch recalculation
    batch_max_workers: int = Field(default=1, ge=1, description="Worker threads for batch recalculation")

    log_level: str = Field(default="INFO", description="Log level used by the CLI")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _check_tiers(self) -> "EngineSettings":
        if self.full_rate_hours < self.minimum_hours:
            raise ValueError("full_rate_hours must be >= minimum_hours")
        return self

    @property
    def reference_dir(self) -> Path:
        """Resolved reference data directory."""
        return self.reference_data_dir or DEFAULT_REFERENCE_DIR


@lru_cache
def get_settings() -> EngineSettings:
    """
    Get cached engine settings instance.

    Returns:
        EngineSettings: Cached settings loaded from environment.
    """
    return EngineSettings()
