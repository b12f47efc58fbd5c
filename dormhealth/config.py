"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Thresholds are frozen once loaded, never mutated at runtime
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Load environment variables from .env file
load_dotenv()

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ScoringConfig(BaseModel):
    """Trend score weights that are tunable without touching the formula."""

    model_config = ConfigDict(frozen=True)

    top_symptom_count: int = Field(default=5, gt=0, description="Labels kept in top symptoms")
    concentration_threshold: float = Field(
        default=0.7, gt=0.0, lt=1.0, description="Category share above which the bonus applies"
    )
    concentration_bonus: float = Field(
        default=10.0, ge=0.0, description="Points added when one category dominates"
    )
    diversity_weight: float = Field(
        default=20.0, ge=0.0, description="Scale of the telemetry-only diversity term"
    )


class AlertConfig(BaseModel):
    """Alert thresholds for both triggers plus the deduplication window."""

    model_config = ConfigDict(frozen=True)

    high_threshold: float = Field(default=70.0, gt=0.0, le=100.0)
    medium_threshold: float = Field(default=55.0, gt=0.0, le=100.0)
    batch_floor: float = Field(
        default=40.0, ge=0.0, le=100.0, description="Minimum trend score the batch alerts on"
    )
    on_demand_medium_threshold: float = Field(default=40.0, ge=0.0, le=100.0)
    on_demand_sick_pct_floor: float = Field(
        default=0.15, ge=0.0, le=1.0, description="Sick share that still earns a low alert"
    )
    dedup_window_days: int = Field(default=7, gt=0)

    @model_validator(mode="after")
    def thresholds_are_ordered(self) -> "AlertConfig":
        """Severity buckets must not overlap."""
        if not self.batch_floor <= self.medium_threshold <= self.high_threshold:
            raise ValueError("alert thresholds must satisfy batch_floor <= medium <= high")
        if self.on_demand_medium_threshold > self.high_threshold:
            raise ValueError("on-demand medium threshold cannot exceed high threshold")
        return self


class AnalysisConfig(BaseModel):
    """Weekly batch behaviour."""

    model_config = ConfigDict(frozen=True)

    prediction_window_weeks: int = Field(default=8, ge=2)
    min_prediction_points: int = Field(default=3, ge=2)
    insights_weeks: int = Field(default=4, gt=0)
    max_concurrent_units: int = Field(
        default=8, gt=0, description="Units analyzed concurrently in one batch"
    )
    serialize_unit_alerts: bool = Field(
        default=True, description="Hold a per-unit lock across the dedup check and insert"
    )


class DatabaseConfig(BaseModel):
    """SQLite store configuration."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(default="sqlite:///./health_data.db", description="Database URL")
    echo: bool = Field(default=False, description="Echo SQL statements")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    model_config = ConfigDict(frozen=True)

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    alerts: AlertConfig = Field(default_factory=AlertConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
    v = val.strip().lower()
    if v in {"dev", "development"}:
        return "development"
    if v in {"stage", "staging"}:
        return "staging"
    return "production"


def _level_to_literal(val: str) -> LogLevel:
    v = val.strip().upper()
    return cast(LogLevel, v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO")


def _parse_bool(val: str | None, default: bool) -> bool:
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    analysis_config = AnalysisConfig(
        prediction_window_weeks=int(os.getenv("PREDICTION_WINDOW_WEEKS", "8")),
        max_concurrent_units=int(os.getenv("MAX_CONCURRENT_UNITS", "8")),
        serialize_unit_alerts=_parse_bool(os.getenv("SERIALIZE_UNIT_ALERTS"), True),
    )

    alert_config = AlertConfig(
        dedup_window_days=int(os.getenv("ALERT_DEDUP_DAYS", "7")),
    )

    database_config = DatabaseConfig(
        url=os.getenv("DATABASE_URL", "sqlite:///./health_data.db"),
        echo=_parse_bool(os.getenv("DATABASE_ECHO"), False),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        analysis=analysis_config,
        alerts=alert_config,
        database=database_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()
