"""MCP tool functions.

Tools never raise to the client. Failures come back as an error payload
from `create_error_response`; a declined restore comes back from
`create_cancelled_response`, which is not an error.
"""

from datetime import datetime, timezone
from typing import Any

__all__ = ["create_cancelled_response", "create_error_response"]


def create_error_response(
    message: str,
    error_type: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the error payload returned by every tool.

    Args:
        message: Text shown to the shop user
        error_type: Exception family, e.g. BackupFormatError,
            PermissionDeniedError or IOError
        details: Extra structured data, such as the full list of
            backup format problems

    Returns:
        Dict with `error`, `message`, `error_type`, `timestamp` and,
        when given, `details`
    """
    response = {
        "error": True,
        "message": message,
        "error_type": error_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        response["details"] = details
    return response


def create_cancelled_response(message: str) -> dict[str, Any]:
    """Payload for an operation the user declined; nothing was modified."""
    return {"cancelled": True, "message": message}
