"""MCP server implementation for Point Art Hub."""

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from point_art_hub.config import set_settings
from point_art_hub.config.settings import Settings
from point_art_hub.db.database import Database
from point_art_hub.db.repositories.collection_repository import CollectionRepository
from point_art_hub.db.repositories.kv_repository import KeyValueRepository
from point_art_hub.services.backup_service import BackupService
from point_art_hub.services.notification_service import NotificationService
from point_art_hub.services.session_service import SessionManager
from point_art_hub.tools import backup_tools, notification_tools, session_tools

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("point-art-hub")

# Global service instances (initialized in main)
backup_service: BackupService | None = None
notification_service: NotificationService | None = None
session_manager: SessionManager | None = None
db: Database | None = None


async def initialize_services(settings: Settings) -> None:
    """Initialize all services and database.

    Args:
        settings: Application settings
    """
    global backup_service, notification_service, session_manager, db

    set_settings(settings)

    # Initialize database
    db = Database(settings.database_path)
    await db.connect()
    await db.migrate()

    # Initialize services
    collection_repo = CollectionRepository(db)
    kv_repo = KeyValueRepository(db)

    backup_service = BackupService(
        collection_repo,
        kv_repo,
        backup_dir=settings.backup_dir,
        batch_size=settings.restore_batch_size,
    )
    notification_service = NotificationService(collection_repo, kv_repo, settings)
    session_manager = SessionManager()

    logger.info("Services initialized (database: %s)", settings.database_path)


async def shutdown_services() -> None:
    """Shutdown all services and close database."""
    global db
    if db:
        await db.close()
        db = None


def _require_backup() -> tuple[BackupService, SessionManager]:
    if not backup_service or not session_manager:
        raise RuntimeError("Services not initialized")
    return backup_service, session_manager


def _require_notifications() -> NotificationService:
    if not notification_service:
        raise RuntimeError("Services not initialized")
    return notification_service


# Session Tools
@mcp.tool()
async def session_login(
    user_id: str,
    email: str | None = None,
    role: str = "user",
) -> dict[str, Any]:
    """Start a session for a user authenticated by the host application.

    Args:
        user_id: User identifier
        email: User email address
        role: User role (admin/user)

    Returns:
        The active session
    """
    if not session_manager:
        raise RuntimeError("Services not initialized")
    return await session_tools.session_login(session_manager, user_id, email, role)


@mcp.tool()
async def session_logout() -> dict[str, Any]:
    """End the current session.

    Returns:
        Whether a session was active
    """
    if not session_manager:
        raise RuntimeError("Services not initialized")
    return await session_tools.session_logout(session_manager)


@mcp.tool()
async def session_info() -> dict[str, Any]:
    """Describe the current session.

    Returns:
        Session details, or {"active": false}
    """
    if not session_manager:
        raise RuntimeError("Services not initialized")
    return await session_tools.session_info(session_manager)


# Backup Tools
@mcp.tool()
async def backup_create(
    description: str | None = None,
    output_dir: str | None = None,
) -> dict[str, Any]:
    """Export every collection to a timestamped JSON backup file (admin only).

    Args:
        description: Optional backup description
        output_dir: Output directory (default: configured backup dir)

    Returns:
        File path, size, checksum and per-collection record counts
    """
    service, sessions = _require_backup()
    return await backup_tools.backup_create(service, sessions, description, output_dir)


@mcp.tool()
async def backup_restore(
    input_path: str,
    confirmation: str | None = None,
) -> dict[str, Any]:
    """Replace collection contents with a backup file's records (admin only).

    This overwrites existing data. The restore runs only when confirmation
    is exactly "RESTORE BACKUP"; it is not transactional and reports
    per-collection failures.

    Args:
        input_path: Backup file path
        confirmation: Confirmation phrase

    Returns:
        Restored record counts and failures
    """
    service, sessions = _require_backup()
    return await backup_tools.backup_restore(service, sessions, input_path, confirmation)


@mcp.tool()
async def backup_validate(input_path: str) -> dict[str, Any]:
    """Check a backup file's structure without restoring it.

    Args:
        input_path: Backup file path

    Returns:
        is_valid flag with errors and warnings
    """
    service, _ = _require_backup()
    return await backup_tools.backup_validate(service, input_path)


@mcp.tool()
async def backup_history() -> dict[str, Any]:
    """List previously exported backups, newest first.

    Returns:
        History entries
    """
    service, _ = _require_backup()
    return await backup_tools.backup_history(service)


@mcp.tool()
async def backup_history_remove(backup_id: str) -> dict[str, Any]:
    """Remove an entry from the backup history.

    Args:
        backup_id: History entry ID

    Returns:
        Removal status
    """
    service, _ = _require_backup()
    return await backup_tools.backup_history_remove(service, backup_id)


@mcp.tool()
async def backup_settings_get() -> dict[str, Any]:
    """Get automatic backup settings.

    Returns:
        Backup settings (camelCase keys)
    """
    service, _ = _require_backup()
    return await backup_tools.backup_settings_get(service)


@mcp.tool()
async def backup_settings_update(changes: dict[str, Any]) -> dict[str, Any]:
    """Update automatic backup settings (admin only).

    Args:
        changes: Settings to change, e.g. {"autoBackupEnabled": true, "maxBackups": 5}

    Returns:
        Saved backup settings
    """
    service, sessions = _require_backup()
    return await backup_tools.backup_settings_update(service, sessions, changes)


@mcp.tool()
async def backup_status() -> dict[str, Any]:
    """Report the last backup time and whether an automatic backup is due.

    Returns:
        Last backup timestamp and due flag
    """
    service, _ = _require_backup()
    return await backup_tools.backup_status(service)


# Notification Tools
@mcp.tool()
async def notification_settings_get() -> dict[str, Any]:
    """Get notification settings.

    Returns:
        Notification settings (camelCase keys)
    """
    return await notification_tools.notification_settings_get(_require_notifications())


@mcp.tool()
async def notification_settings_update(
    changes: dict[str, Any] | None = None,
    reset: bool = False,
) -> dict[str, Any]:
    """Update or reset notification settings, then run the checks.

    Args:
        changes: Settings to change, e.g. {"lowStockThreshold": 5}
        reset: Restore defaults instead of applying changes

    Returns:
        Saved settings and generated notifications
    """
    return await notification_tools.notification_settings_update(
        _require_notifications(), changes, reset
    )


@mcp.tool()
async def notification_list(
    unread_only: bool = False,
    limit: int | None = None,
) -> dict[str, Any]:
    """List notifications, newest first.

    Args:
        unread_only: Only return unread notifications
        limit: Maximum number of notifications

    Returns:
        Notifications with the unread count
    """
    return await notification_tools.notification_list(
        _require_notifications(), unread_only, limit
    )


@mcp.tool()
async def notification_mark_read(id: str) -> dict[str, Any]:
    """Mark a notification as read.

    Args:
        id: Notification ID

    Returns:
        Read status
    """
    return await notification_tools.notification_mark_read(_require_notifications(), id)


@mcp.tool()
async def notification_mark_all_read() -> dict[str, Any]:
    """Mark every notification as read.

    Returns:
        Number of notifications marked
    """
    return await notification_tools.notification_mark_all_read(_require_notifications())


@mcp.tool()
async def notification_clear() -> dict[str, Any]:
    """Delete every notification.

    Returns:
        Clear status
    """
    return await notification_tools.notification_clear(_require_notifications())


@mcp.tool()
async def notification_run_checks() -> dict[str, Any]:
    """Run low stock, sales milestone and backup reminder checks.

    Returns:
        Generated notifications grouped by check
    """
    return await notification_tools.notification_run_checks(_require_notifications())


@mcp.tool()
async def notification_test() -> dict[str, Any]:
    """Send a test notification.

    Returns:
        The created notification
    """
    return await notification_tools.notification_test(_require_notifications())


def create_server() -> FastMCP:
    """Create and return MCP server instance.

    Returns:
        FastMCP server instance
    """
    return mcp
