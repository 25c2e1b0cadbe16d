"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.exceptions import ConfigurationError
from .domain.models import IntervalConfig
from .domain.time_arithmetic import CALENDAR_TIMEZONE, minutes_to_time_of_day


class CacheSettings(BaseModel):
    """TTLs for the three cache views and the sweep period, in seconds."""
    availability_ttl_seconds: float = 5 * 60
    blocked_slots_ttl_seconds: float = 2 * 60
    bookings_ttl_seconds: float = 10 * 60
    sweep_interval_seconds: float = 5 * 60

    @field_validator(
        "availability_ttl_seconds",
        "blocked_slots_ttl_seconds",
        "bookings_ttl_seconds",
        "sweep_interval_seconds",
    )
    @classmethod
    def validate_positive(cls, value: float) -> float:
        """TTLs and periods must be positive."""
        if value <= 0:
            raise ValueError("cache durations must be greater than zero")
        return value


class EngineConfig(BaseModel):
    """Engine configuration."""
    timezone: str = CALENDAR_TIMEZONE
    slot_granularity_minutes: int = 30
    interval: Optional[IntervalConfig] = None
    business_hours: Optional[IntervalConfig] = None
    cache: CacheSettings = Field(default_factory=CacheSettings)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the calendar zone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @field_validator("interval", "business_hours", mode="before")
    @classmethod
    def coerce_yaml_times(cls, value):
        """Accept unquoted YAML times, which arrive as base-60 integers."""
        if isinstance(value, dict):
            return {
                key: minutes_to_time_of_day(item)
                if isinstance(item, int) and not isinstance(item, bool)
                else item
                for key, item in value.items()
            }
        return value

    @field_validator("slot_granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Slots must tile an hour evenly."""
        if value <= 0 or 60 % value != 0:
            raise ValueError(
                f"slot_granularity_minutes must be a positive divisor of 60, got {value}"
            )
        return value

    @model_validator(mode="after")
    def validate_interval_within_hours(self) -> "EngineConfig":
        """A blocking interval outside business hours is almost certainly a typo."""
        if self.interval is not None and self.business_hours is not None:
            if (
                self.interval.start_time < self.business_hours.start_time
                or self.interval.end_time > self.business_hours.end_time
            ):
                raise ValueError(
                    f"interval {self.interval.label()} lies outside business hours "
                    f"{self.business_hours.label()}"
                )
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            EngineConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping at the root level.")

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}:\n{exc}") from exc


# Day-board grid when no business hours are configured.
DEFAULT_OPENING_HOURS = IntervalConfig(start_time="08:00", end_time="18:00")


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load an explicit config file, else ./config.yaml if present, else defaults.
    """
    if config_path is not None:
        return EngineConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return EngineConfig.load_from_yaml(default_path)

    return EngineConfig()
