"""Data models for Point Art Hub."""

from point_art_hub.models.backup import (
    BackupHistoryEntry,
    BackupMetadata,
    BackupSettings,
    BackupSnapshot,
    BackupType,
    CollectionFailure,
    ExportResult,
    RestorePayload,
    RestoreResult,
)
from point_art_hub.models.collection import (
    BACKUP_COLLECTIONS,
    Collection,
    GiftStoreItem,
    InventoryItem,
    SaleRecord,
    StationeryItem,
)
from point_art_hub.models.notification import (
    LowStockItem,
    NotificationEvent,
    NotificationFrequency,
    NotificationPriority,
    NotificationSettings,
    NotificationType,
    SalesMilestone,
    SalesTotals,
)
from point_art_hub.models.session import UserRole, UserSession

__all__ = [
    # Collection models
    "Collection",
    "BACKUP_COLLECTIONS",
    "InventoryItem",
    "StationeryItem",
    "GiftStoreItem",
    "SaleRecord",
    # Backup models
    "BackupMetadata",
    "BackupSnapshot",
    "BackupSettings",
    "BackupHistoryEntry",
    "BackupType",
    "CollectionFailure",
    "ExportResult",
    "RestorePayload",
    "RestoreResult",
    # Notification models
    "NotificationEvent",
    "NotificationType",
    "NotificationPriority",
    "NotificationFrequency",
    "NotificationSettings",
    "LowStockItem",
    "SalesMilestone",
    "SalesTotals",
    # Session models
    "UserRole",
    "UserSession",
]
