"""Notification MCP tools."""

from typing import Any

from point_art_hub.exceptions import ValidationError
from point_art_hub.services.notification_service import NotificationService
from point_art_hub.tools import create_error_response


async def notification_settings_get(service: NotificationService) -> dict[str, Any]:
    """Get notification settings."""
    settings = await service.get_settings()
    return settings.model_dump(mode="json", by_alias=True)


async def notification_settings_update(
    service: NotificationService,
    changes: dict[str, Any] | None = None,
    reset: bool = False,
) -> dict[str, Any]:
    """Update or reset notification settings.

    Saving settings triggers an evaluation pass, as the settings screen does.

    Args:
        service: Notification service instance
        changes: Settings to change (camelCase keys)
        reset: Restore defaults instead of applying changes

    Returns:
        Saved settings and any notifications generated
    """
    try:
        if reset:
            settings = await service.reset_settings()
        else:
            settings = await service.update_settings(changes or {})
    except ValidationError as e:
        return create_error_response(message=str(e), error_type="ValidationError")

    generated = await service.run_checks()
    return {
        "settings": settings.model_dump(mode="json", by_alias=True),
        "generated": {
            kind: [e.model_dump(mode="json") for e in events]
            for kind, events in generated.items()
        },
    }


async def notification_list(
    service: NotificationService,
    unread_only: bool = False,
    limit: int | None = None,
) -> dict[str, Any]:
    """List notifications, newest first."""
    if limit is not None and limit < 1:
        return create_error_response(
            message="limit must be at least 1",
            error_type="ValidationError",
        )
    events = await service.list_notifications(unread_only=unread_only, limit=limit)
    return {
        "notifications": [e.model_dump(mode="json") for e in events],
        "total": len(events),
        "unread_count": await service.unread_count(),
    }


async def notification_mark_read(service: NotificationService, id: str) -> dict[str, Any]:
    """Mark a notification as read."""
    if not await service.mark_as_read(id):
        return create_error_response(
            message=f"Notification not found: {id}",
            error_type="NotFoundError",
        )
    return {"id": id, "read": True}


async def notification_mark_all_read(service: NotificationService) -> dict[str, Any]:
    """Mark every notification as read."""
    return {"marked": await service.mark_all_as_read()}


async def notification_clear(service: NotificationService) -> dict[str, Any]:
    """Delete every notification."""
    await service.clear_all()
    return {"cleared": True}


async def notification_run_checks(service: NotificationService) -> dict[str, Any]:
    """Run low stock, sales milestone and backup reminder checks."""
    generated = await service.run_checks()
    return {
        "generated": {
            kind: [e.model_dump(mode="json") for e in events]
            for kind, events in generated.items()
        },
        "total": sum(len(events) for events in generated.values()),
        "unread_count": await service.unread_count(),
    }


async def notification_test(service: NotificationService) -> dict[str, Any]:
    """Send a test notification."""
    event = await service.send_test_notification()
    return event.model_dump(mode="json")
