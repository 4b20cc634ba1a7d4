"""Session MCP tools."""

from typing import Any

from point_art_hub.exceptions import ValidationError
from point_art_hub.models.session import UserRole
from point_art_hub.services.session_service import SessionManager
from point_art_hub.tools import create_error_response


async def session_login(
    sessions: SessionManager,
    user_id: str,
    email: str | None = None,
    role: str = "user",
) -> dict[str, Any]:
    """Start a session for an already authenticated user."""
    try:
        user_role = UserRole(role)
    except ValueError:
        return create_error_response(
            message=f"Invalid role: {role}. Must be one of: admin, user",
            error_type="ValidationError",
        )

    try:
        session = sessions.login(user_id, email=email, role=user_role)
    except ValidationError as e:
        return create_error_response(message=str(e), error_type="ValidationError")
    return session.model_dump(mode="json")


async def session_logout(sessions: SessionManager) -> dict[str, Any]:
    """End the current session."""
    return {"logged_out": sessions.logout()}


async def session_info(sessions: SessionManager) -> dict[str, Any]:
    """Describe the current session."""
    session = sessions.current
    if session is None:
        return {"active": False}
    return {"active": True, **session.model_dump(mode="json"), "is_admin": session.is_admin}
