"""Application settings management using Pydantic Settings."""

import re
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_db_path() -> str:
    """Get default database path in the working directory."""
    return str(Path.cwd() / "data" / "point_art_hub.db")


def _get_default_backup_dir() -> str:
    """Get default directory for exported backup files."""
    return str(Path.cwd() / "backups")


_OFFSET_PATTERN = re.compile(r"^([+-])(\d{2}):(\d{2})$")


def _parse_timezone(name: str) -> tzinfo:
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    match = _OFFSET_PATTERN.match(name)
    if match:
        sign, hours, minutes = match.groups()
        offset = timedelta(hours=int(hours), minutes=int(minutes))
        return timezone(-offset if sign == "-" else offset)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


class Settings(BaseSettings):
    """Application configuration settings.

    All settings can be configured via environment variables with the
    prefix `POINT_ART_HUB_`. For example, `POINT_ART_HUB_DATABASE_PATH`.
    """

    # Database
    database_path: str = Field(
        default_factory=_get_default_db_path,
        description="SQLite database file path",
    )

    # Backup
    backup_dir: str = Field(
        default_factory=_get_default_backup_dir,
        description="Directory where backup files are written",
    )
    restore_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Number of records inserted per batch during restore",
    )

    # Notifications
    notification_retention: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Number of most recent notifications kept in the log",
    )
    backup_reminder_days: int = Field(
        default=7,
        ge=1,
        description="Days without a backup before a reminder is raised",
    )

    # Sales targets (UGX)
    daily_sales_target: float = Field(default=500_000, gt=0)
    weekly_sales_target: float = Field(default=3_000_000, gt=0)
    monthly_sales_target: float = Field(default=12_000_000, gt=0)
    revenue_milestones: list[float] = Field(
        default_factory=lambda: [1_000_000, 5_000_000, 10_000_000, 20_000_000, 50_000_000],
        description="Lifetime revenue milestones, ascending",
    )
    timezone: str | None = Field(
        default=None,
        description=(
            "Timezone that decides which calendar day a sale belongs to: an IANA name "
            "(Africa/Kampala), UTC or a fixed offset (+03:00). Unset means server local time"
        ),
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_prefix="POINT_ART_HUB_", env_file=".env", env_file_encoding="utf-8"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Reject timezone names that cannot be resolved."""
        if v is not None:
            _parse_timezone(v)
        return v

    @model_validator(mode="after")
    def validate_targets(self) -> Self:
        """Validate sales target configuration."""
        if not self.daily_sales_target <= self.weekly_sales_target <= self.monthly_sales_target:
            raise ValueError(
                "Sales targets must satisfy daily <= weekly <= monthly "
                f"(got {self.daily_sales_target}, {self.weekly_sales_target}, "
                f"{self.monthly_sales_target})"
            )
        if any(m <= 0 for m in self.revenue_milestones):
            raise ValueError("revenue_milestones must all be positive")
        self.revenue_milestones = sorted(set(self.revenue_milestones))
        return self

    def get_timezone(self) -> tzinfo:
        """Resolve the configured timezone, falling back to server local time."""
        if self.timezone is None:
            return datetime.now().astimezone().tzinfo or timezone.utc
        return _parse_timezone(self.timezone)
