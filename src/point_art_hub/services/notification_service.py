"""Service for generating and managing user notifications."""

import json
import logging
from datetime import date, datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from point_art_hub.config.settings import Settings
from point_art_hub.db.repositories.collection_repository import CollectionRepository
from point_art_hub.db.repositories.kv_repository import KeyValueRepository
from point_art_hub.exceptions import ValidationError
from point_art_hub.models.collection import (
    INVENTORY_RECORD_TYPES,
    SALES_COLLECTIONS,
    Collection,
    InventoryItem,
    SaleRecord,
)
from point_art_hub.models.notification import (
    LowStockItem,
    NotificationEvent,
    NotificationPriority,
    NotificationSettings,
    NotificationType,
    SalesTotals,
)
from point_art_hub.utils.alert_rules import (
    evaluate_low_stock,
    evaluate_sales_milestones,
    find_low_stock_items,
    milestone_event,
    period_keys,
    prune_reached,
)

logger = logging.getLogger(__name__)

NO_BACKUP_DAYS = 999


class NotificationService:
    """Service for notification settings, evaluation and the local event log."""

    SETTINGS_KEY = "notification_settings"
    LOG_KEY = "notifications"
    MILESTONES_KEY = "milestones_reached"
    LAST_BACKUP_KEY = "last_backup_date"

    def __init__(
        self,
        collection_repository: CollectionRepository,
        kv_repository: KeyValueRepository,
        settings: Settings | None = None,
    ) -> None:
        """Initialize notification service.

        Args:
            collection_repository: Read access to inventory and sales
            kv_repository: Local storage for settings and the event log
            settings: Application settings (targets, retention)
        """
        self.collection_repository = collection_repository
        self.kv_repository = kv_repository
        self.settings = settings or Settings()

    # Settings

    async def get_settings(self) -> NotificationSettings:
        """Load notification settings; absent fields take their defaults."""
        try:
            stored = await self.kv_repository.get(self.SETTINGS_KEY, {})
            return NotificationSettings.model_validate(stored or {})
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Ignoring unreadable notification settings: %s", e)
            return NotificationSettings()

    async def save_settings(self, settings: NotificationSettings) -> NotificationSettings:
        """Persist notification settings as a single unit."""
        await self.kv_repository.set(
            self.SETTINGS_KEY, settings.model_dump(mode="json", by_alias=True)
        )
        return settings

    async def update_settings(self, changes: dict[str, Any]) -> NotificationSettings:
        """Merge `changes` (camelCase or snake_case keys) into the stored settings.

        Raises:
            ValidationError: If a value is invalid
        """
        current = await self.get_settings()
        merged = current.model_dump(by_alias=True)
        aliases = {
            name: field.alias for name, field in NotificationSettings.model_fields.items()
        }
        for key, value in changes.items():
            name = aliases.get(key, key)
            if name not in merged:
                raise ValidationError(f"Unknown notification setting: {key}")
            merged[name] = value
        try:
            updated = NotificationSettings.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid notification settings: {e}") from e
        return await self.save_settings(updated)

    async def reset_settings(self) -> NotificationSettings:
        """Restore default notification settings."""
        return await self.save_settings(NotificationSettings())

    # Event log

    async def list_notifications(
        self, unread_only: bool = False, limit: int | None = None
    ) -> list[NotificationEvent]:
        """Notifications, newest first."""
        try:
            stored = await self.kv_repository.get(self.LOG_KEY, [])
            events = [NotificationEvent.model_validate(e) for e in stored or []]
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Ignoring unreadable notification log: %s", e)
            events = []

        if unread_only:
            events = [e for e in events if not e.read]
        if limit is not None:
            events = events[:limit]
        return events

    async def _write_log(self, events: list[NotificationEvent]) -> None:
        retained = events[: self.settings.notification_retention]
        await self.kv_repository.set(
            self.LOG_KEY, [e.model_dump(mode="json") for e in retained]
        )

    async def add_notifications(self, events: list[NotificationEvent]) -> list[NotificationEvent]:
        """Append events to the log; the oldest beyond the retention window are dropped."""
        if not events:
            return []
        existing = await self.list_notifications()
        await self._write_log([*reversed(events), *existing])
        for event in events:
            logger.info("Notification %s [%s] %s", event.type.value, event.priority.value, event.title)
        return events

    async def add_notification(self, event: NotificationEvent) -> NotificationEvent:
        """Append a single event to the log."""
        await self.add_notifications([event])
        return event

    async def mark_as_read(self, notification_id: str) -> bool:
        """Mark one notification read.

        Returns:
            True if the notification exists
        """
        events = await self.list_notifications()
        found = False
        for event in events:
            if event.id == notification_id:
                event.read = True
                found = True
        if found:
            await self._write_log(events)
        return found

    async def mark_all_as_read(self) -> int:
        """Mark every notification read.

        Returns:
            Number of notifications that were unread
        """
        events = await self.list_notifications()
        changed = sum(1 for e in events if not e.read)
        for event in events:
            event.read = True
        if changed:
            await self._write_log(events)
        return changed

    async def clear_all(self) -> None:
        """Remove every notification."""
        await self.kv_repository.remove(self.LOG_KEY)

    async def unread_count(self) -> int:
        """Number of unread notifications."""
        return len(await self.list_notifications(unread_only=True))

    # Low stock

    async def load_inventory(self) -> dict[Collection, list[InventoryItem]]:
        """Read inventory collections as typed records.

        Unreadable collections and malformed records are logged and skipped.
        """
        inventory: dict[Collection, list[InventoryItem]] = {}
        for collection, record_type in INVENTORY_RECORD_TYPES.items():
            try:
                records = await self.collection_repository.select_all(collection)
            except Exception as e:
                logger.error("Error checking low stock items in %s: %s", collection.value, e)
                continue

            items: list[InventoryItem] = []
            for record in records:
                try:
                    items.append(record_type.model_validate(record))
                except PydanticValidationError as e:
                    logger.warning(
                        "Skipping malformed %s record %s: %s", collection.value, record.get("id"), e
                    )
            inventory[collection] = items
        return inventory

    async def check_low_stock_items(self, threshold: int | None = None) -> list[LowStockItem]:
        """Inventory items at or below the configured threshold."""
        if threshold is None:
            threshold = (await self.get_settings()).low_stock_threshold
        return find_low_stock_items(await self.load_inventory(), threshold)

    async def generate_low_stock_notifications(self) -> list[NotificationEvent]:
        """Evaluate inventory and log new low stock notifications.

        Returns:
            The notifications created by this pass
        """
        settings = await self.get_settings()
        if not settings.low_stock_alerts:
            return []

        events = evaluate_low_stock(
            await self.load_inventory(),
            settings.low_stock_threshold,
            await self.list_notifications(),
        )
        return await self.add_notifications(events)

    # Sales milestones

    async def compute_sales_totals(self, today: date | None = None) -> SalesTotals:
        """Sum sales for today, this week, this month and all time.

        Days follow the configured shop timezone, so a timestamped sale
        counts toward the local calendar day it happened on.
        """
        tz = self.settings.get_timezone()
        today = today or datetime.now(tz).date()
        day, week_start, month = period_keys(today)
        week_start_date = date.fromisoformat(week_start)
        totals = SalesTotals(day=day, week_start=week_start, month=month)

        for collection in SALES_COLLECTIONS:
            try:
                records = await self.collection_repository.select_all(collection)
            except Exception as e:
                logger.error("Error checking sales milestones in %s: %s", collection.value, e)
                continue

            for record in records:
                try:
                    sale = SaleRecord.model_validate(record, context={"tz": tz})
                except PydanticValidationError as e:
                    logger.warning("Skipping malformed sale %s: %s", record.get("id"), e)
                    continue
                totals.lifetime += sale.total_amount
                if sale.sale_date.strftime("%Y-%m") == month:
                    totals.monthly += sale.total_amount
                if week_start_date <= sale.sale_date <= today:
                    totals.weekly += sale.total_amount
                if sale.sale_date == today:
                    totals.daily += sale.total_amount
        return totals

    async def generate_sales_milestone_notifications(
        self, today: date | None = None
    ) -> list[NotificationEvent]:
        """Log a notification for each milestone crossed for the first time."""
        settings = await self.get_settings()
        if not settings.sales_milestone_alerts:
            return []

        totals = await self.compute_sales_totals(today)
        stored = set(await self.kv_repository.get(self.MILESTONES_KEY, []) or [])
        reached = prune_reached(stored, totals)
        milestones = evaluate_sales_milestones(
            totals,
            self.settings.daily_sales_target,
            self.settings.weekly_sales_target,
            self.settings.monthly_sales_target,
            self.settings.revenue_milestones,
            reached,
        )
        reached.update(m.key for m in milestones)
        if reached != stored:
            await self.kv_repository.set(self.MILESTONES_KEY, sorted(reached))
        if not milestones:
            return []
        return await self.add_notifications([milestone_event(m) for m in milestones])

    # System events and reminders

    async def generate_system_event(
        self,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        data: dict[str, Any] | None = None,
    ) -> NotificationEvent | None:
        """Log a system event unless system alerts are switched off."""
        settings = await self.get_settings()
        if not settings.system_maintenance_alerts:
            return None
        return await self.add_notification(
            NotificationEvent(
                type=NotificationType.SYSTEM_EVENT,
                priority=NotificationPriority(priority),
                title=title,
                message=message,
                data=data or {},
            )
        )

    async def send_test_notification(self) -> NotificationEvent:
        """Log a low priority test notification."""
        return await self.add_notification(
            NotificationEvent(
                type=NotificationType.SYSTEM_EVENT,
                priority=NotificationPriority.LOW,
                title="🧪 Test Notification",
                message=(
                    "This is a test notification to verify your notification "
                    "system is working correctly."
                ),
                data={"test": True, "timestamp": datetime.now(timezone.utc).isoformat()},
            )
        )

    async def generate_backup_reminder(self, now: datetime | None = None) -> NotificationEvent | None:
        """Remind the user to back up when the last backup is too old.

        No reminder is added while an earlier one is still unread.
        """
        now = now or datetime.now(timezone.utc)
        last_backup = await self.kv_repository.get(self.LAST_BACKUP_KEY)
        if last_backup:
            days_since = (now - datetime.fromisoformat(last_backup)).days
        else:
            days_since = NO_BACKUP_DAYS

        if days_since < self.settings.backup_reminder_days:
            return None

        dedup_key = NotificationType.BACKUP_REMINDER.value
        unread = await self.list_notifications(unread_only=True)
        if any(e.dedup_key == dedup_key for e in unread):
            return None

        return await self.add_notification(
            NotificationEvent(
                type=NotificationType.BACKUP_REMINDER,
                priority=NotificationPriority.MEDIUM,
                title="🗄️ Backup Reminder",
                message=(
                    f"It's been {days_since} days since your last backup. "
                    "Consider creating a backup to protect your data."
                ),
                dedup_key=dedup_key,
                data={"daysSinceBackup": days_since, "lastBackup": last_backup},
            )
        )

    async def run_checks(
        self, today: date | None = None, now: datetime | None = None
    ) -> dict[str, list[NotificationEvent]]:
        """Run every evaluation once, as on page load or after saving settings."""
        reminder = await self.generate_backup_reminder(now)
        return {
            "low_stock": await self.generate_low_stock_notifications(),
            "sales_milestone": await self.generate_sales_milestone_notifications(today),
            "backup_reminder": [reminder] if reminder else [],
        }
