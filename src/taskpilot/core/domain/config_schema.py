"""
Configuration Schema Validation

Pydantic models for validating engine configuration profiles.
Provides clear error messages with file and field context.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class LoggingConfigSchema(BaseModel):
    """Schema for logging configuration."""

    model_config = ConfigDict(extra="forbid")

    level: str = Field("INFO", description="Log level name")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class EngineConfigSchema(BaseModel):
    """
    Schema for the automation engine configuration.

    Every field has a default so an empty profile is valid.
    """

    model_config = ConfigDict(extra="forbid")

    max_cascade_depth: int = Field(
        5,
        ge=1,
        le=50,
        description="Events at or beyond this depth match no rules",
    )
    tick_interval_seconds: int = Field(
        60,
        ge=1,
        description="Seconds between scheduler ticks",
    )
    min_interval_minutes: int = Field(
        5,
        ge=1,
        description="Smallest interval schedule accepted by validation",
    )
    timezone: str = Field(
        "UTC",
        description="IANA timezone cron schedules and calendar filters are evaluated in",
    )
    logging: LoggingConfigSchema = Field(default_factory=LoggingConfigSchema)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v}") from exc
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class ConfigValidationError(Exception):
    """Raised when a configuration profile fails schema validation."""

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        errors: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        self.file_path = file_path
        self.errors = errors or []
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.file_path:
            parts.append(f"File: {self.file_path}")
        for error in self.errors:
            loc = ".".join(str(x) for x in error.get("loc", ()))
            parts.append(f"  - {loc}: {error.get('msg', '')}")
        return "\n".join(parts)


def validate_engine_config(
    data: dict[str, Any], file_path: Optional[Path] = None
) -> EngineConfigSchema:
    """Validate a raw configuration dict.

    Raises:
        ConfigValidationError: If the data does not match the schema.
    """
    try:
        return EngineConfigSchema.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(
            "Invalid engine configuration",
            file_path=file_path,
            errors=[dict(e) for e in exc.errors()],
        ) from exc
