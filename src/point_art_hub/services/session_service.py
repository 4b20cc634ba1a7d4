"""Session management for the authenticated user."""

import logging

from point_art_hub.exceptions import PermissionDeniedError, ValidationError
from point_art_hub.models.session import UserRole, UserSession

logger = logging.getLogger(__name__)


class SessionManager:
    """Holds the current user session between login and logout."""

    def __init__(self) -> None:
        self._session: UserSession | None = None

    @property
    def current(self) -> UserSession | None:
        return self._session

    def login(self, user_id: str, email: str | None = None, role: UserRole = UserRole.USER) -> UserSession:
        """Start a session, replacing any existing one.

        Args:
            user_id: Authenticated user id
            email: User email
            role: Role granted by the identity provider

        Returns:
            The new session
        """
        if not user_id or not user_id.strip():
            raise ValidationError("user_id must be a non-empty string")
        if self._session is not None:
            logger.info("Replacing session for %s", self._session.user_id)
        self._session = UserSession(user_id=user_id.strip(), email=email, role=UserRole(role))
        logger.info("Session started for %s (%s)", self._session.user_id, self._session.role.value)
        return self._session

    def logout(self) -> bool:
        """End the current session.

        Returns:
            True if a session was active
        """
        if self._session is None:
            return False
        logger.info("Session ended for %s", self._session.user_id)
        self._session = None
        return True

    def require_admin(self) -> UserSession:
        """Return the current session if it belongs to an administrator.

        Raises:
            PermissionDeniedError: If nobody is logged in or the user is not an admin
        """
        if self._session is None:
            raise PermissionDeniedError("No active session")
        if not self._session.is_admin:
            raise PermissionDeniedError("Only administrators can manage backups")
        return self._session
