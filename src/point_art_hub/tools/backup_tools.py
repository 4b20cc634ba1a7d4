"""Backup and restore MCP tools."""

import logging
from typing import Any

from point_art_hub.exceptions import (
    BackupFormatError,
    BackupSerializationError,
    PermissionDeniedError,
    RestoreCancelledError,
    ValidationError,
)
from point_art_hub.services.backup_service import BackupService
from point_art_hub.services.session_service import SessionManager
from point_art_hub.tools import create_cancelled_response, create_error_response

logger = logging.getLogger(__name__)


async def backup_create(
    service: BackupService,
    sessions: SessionManager,
    description: str | None = None,
    output_dir: str | None = None,
) -> dict[str, Any]:
    """Create a full backup file.

    Args:
        service: Backup service instance
        sessions: Session manager (admin required)
        description: Optional backup description
        output_dir: Output directory (default: configured backup dir)

    Returns:
        Export summary, or an error response
    """
    try:
        sessions.require_admin()
    except PermissionDeniedError as e:
        return create_error_response(message=str(e), error_type="PermissionDeniedError")

    progress: list[float] = []
    try:
        result = await service.export_backup(
            output_dir=output_dir,
            description=description,
            progress=progress.append,
        )
    except BackupSerializationError as e:
        logger.error("Backup serialization failed: %s", e)
        return create_error_response(message=str(e), error_type="SerializationError")
    except ValueError as e:
        return create_error_response(message=str(e), error_type="ValidationError")
    except OSError as e:
        logger.error("Backup write failed: %s", e, exc_info=True)
        return create_error_response(message=str(e), error_type="IOError")

    response = result.model_dump(mode="json")
    response["summary"] = (
        f"Full system backup created with {result.total_records} records "
        f"across {len(result.counts)} tables"
    )
    response["progress"] = progress
    return response


async def backup_restore(
    service: BackupService,
    sessions: SessionManager,
    input_path: str,
    confirmation: str | None = None,
) -> dict[str, Any]:
    """Restore collections from a backup file.

    Args:
        service: Backup service instance
        sessions: Session manager (admin required)
        input_path: Backup file path
        confirmation: Must be the exact phrase "RESTORE BACKUP"

    Returns:
        Restore summary, a cancellation notice, or an error response
    """
    try:
        sessions.require_admin()
    except PermissionDeniedError as e:
        return create_error_response(message=str(e), error_type="PermissionDeniedError")

    if not input_path:
        return create_error_response(
            message="input_path is required",
            error_type="ValidationError",
        )

    try:
        result = await service.restore_from_file(input_path, confirmation)
    except RestoreCancelledError as e:
        return create_cancelled_response(str(e))
    except BackupFormatError as e:
        return create_error_response(
            message=str(e),
            error_type="BackupFormatError",
            details={"errors": e.errors},
        )
    except ValueError as e:
        return create_error_response(message=str(e), error_type="ValidationError")
    except OSError as e:
        return create_error_response(message=str(e), error_type="IOError")

    response = result.model_dump(mode="json")
    response["summary"] = (
        f"Restored {result.restored_records} records across "
        f"{result.collections_touched} tables"
    )
    if result.partial:
        response["summary"] += f" with {len(result.failures)} failures"
    return response


async def backup_validate(service: BackupService, input_path: str) -> dict[str, Any]:
    """Check a backup file's structure without restoring it."""
    try:
        validation = await service.validate_file(input_path)
    except ValueError as e:
        return create_error_response(message=str(e), error_type="ValidationError")
    except OSError as e:
        return create_error_response(message=str(e), error_type="IOError")
    return validation.model_dump()


async def backup_history(service: BackupService) -> dict[str, Any]:
    """List previously exported backups, newest first."""
    history = await service.get_history()
    return {
        "backups": [entry.model_dump(mode="json") for entry in history],
        "total": len(history),
    }


async def backup_history_remove(service: BackupService, backup_id: str) -> dict[str, Any]:
    """Remove an entry from the backup history."""
    if not await service.remove_from_history(backup_id):
        return create_error_response(
            message=f"Backup not found in history: {backup_id}",
            error_type="NotFoundError",
        )
    return {"removed": True, "id": backup_id}


async def backup_settings_get(service: BackupService) -> dict[str, Any]:
    """Get automatic backup settings."""
    settings = await service.get_backup_settings()
    return settings.model_dump(mode="json", by_alias=True)


async def backup_settings_update(
    service: BackupService,
    sessions: SessionManager,
    changes: dict[str, Any],
) -> dict[str, Any]:
    """Update automatic backup settings (admin only)."""
    try:
        sessions.require_admin()
        settings = await service.update_backup_settings(changes)
    except PermissionDeniedError as e:
        return create_error_response(message=str(e), error_type="PermissionDeniedError")
    except ValidationError as e:
        return create_error_response(message=str(e), error_type="ValidationError")
    return settings.model_dump(mode="json", by_alias=True)


async def backup_status(service: BackupService) -> dict[str, Any]:
    """Report the last backup time and whether an automatic backup is due."""
    last_backup = await service.get_last_backup_date()
    return {
        "last_backup": last_backup.isoformat() if last_backup else None,
        "auto_backup_due": await service.is_backup_due(),
    }
