"""Notification models."""

import itertools
import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from point_art_hub.models.collection import Collection


class NotificationType(str, Enum):
    """Notification category."""

    LOW_STOCK = "low_stock"
    SALES_MILESTONE = "sales_milestone"
    SYSTEM_EVENT = "system_event"
    BACKUP_REMINDER = "backup_reminder"


class NotificationPriority(str, Enum):
    """Notification urgency."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationFrequency(str, Enum):
    """Delivery cadence for email digests."""

    IMMEDIATE = "immediate"
    HOURLY = "hourly"
    DAILY = "daily"


_sequence = itertools.count(1)


def generate_notification_id() -> str:
    """Generate a notification id.

    The per-process sequence number makes ids unique within a session; the
    random suffix keeps them distinct across sessions sharing a log.
    """
    return f"notif_{int(time.time() * 1000)}_{next(_sequence)}_{secrets.token_hex(4)}"


class NotificationEvent(BaseModel):
    """A single user-facing alert."""

    id: str = Field(default_factory=generate_notification_id)
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.MEDIUM
    title: str
    message: str
    read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    dedup_key: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class NotificationSettings(BaseModel):
    """Notification preferences (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    email_enabled: bool = Field(default=False, alias="emailEnabled")
    low_stock_threshold: int = Field(default=10, ge=0, alias="lowStockThreshold")
    low_stock_alerts: bool = Field(default=True, alias="lowStockAlerts")
    sales_milestone_alerts: bool = Field(default=True, alias="salesMilestoneAlerts")
    system_maintenance_alerts: bool = Field(default=True, alias="systemMaintenanceAlerts")
    daily_reports: bool = Field(default=False, alias="dailyReports")
    weekly_reports: bool = Field(default=False, alias="weeklyReports")
    monthly_reports: bool = Field(default=False, alias="monthlyReports")
    email_address: str = Field(default="", alias="emailAddress")
    notification_frequency: NotificationFrequency = Field(
        default=NotificationFrequency.IMMEDIATE, alias="notificationFrequency"
    )


class LowStockItem(BaseModel):
    """An inventory item at or below the stock threshold."""

    id: str
    item_name: str
    current_stock: float
    threshold: int
    category: str | None = None
    collection: Collection

    @property
    def dedup_key(self) -> str:
        return f"{NotificationType.LOW_STOCK.value}:{self.collection.value}:{self.id}"


class MilestoneType(str, Enum):
    """Kinds of sales milestone."""

    DAILY_TARGET = "daily_target"
    WEEKLY_TARGET = "weekly_target"
    MONTHLY_TARGET = "monthly_target"
    REVENUE_MILESTONE = "revenue_milestone"


class SalesTotals(BaseModel):
    """Aggregate sales amounts for the current periods."""

    daily: float = 0
    weekly: float = 0
    monthly: float = 0
    lifetime: float = 0
    day: str
    week_start: str
    month: str


class SalesMilestone(BaseModel):
    """A sales boundary that has been crossed."""

    type: MilestoneType
    target: float
    achieved: float
    percentage: float
    period: str
    key: str
