"""Custom exceptions for point-art-hub."""


class PointArtHubError(Exception):
    """Base class for all point-art-hub errors."""

    pass


class NotFoundError(PointArtHubError):
    """Raised when a requested resource is not found."""

    pass


class ValidationError(PointArtHubError, ValueError):
    """Raised when validation fails."""

    pass


class PermissionDeniedError(PointArtHubError):
    """Raised when the active session lacks the required role."""

    pass


class BackupFormatError(ValidationError):
    """Raised when a backup document is malformed.

    Always raised before any collection is modified.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class BackupSerializationError(PointArtHubError):
    """Raised when a snapshot cannot be serialized to JSON."""

    pass


class RestoreCancelledError(PointArtHubError):
    """Raised when the restore confirmation phrase was not given.

    This is a cancellation, not a failure: nothing was modified.
    """

    pass
