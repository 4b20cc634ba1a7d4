"""Service layer for business logic."""

from point_art_hub.services.backup_service import BackupService
from point_art_hub.services.notification_service import NotificationService
from point_art_hub.services.session_service import SessionManager

__all__ = ["BackupService", "NotificationService", "SessionManager"]
