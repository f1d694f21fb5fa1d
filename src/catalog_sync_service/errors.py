"""Error taxonomy shared by the sync services and the API layer.

Every error carries a stable HTTP-style status code and a message that is safe
to hand back to callers.
"""

from typing import Any


class CatalogSyncError(Exception):
    """Base class for all expected failures."""

    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status_code, "success": False, "message": self.message}


class ValidationError(CatalogSyncError):
    """Bad or missing input. Raised before any side effect."""

    status_code = 400
    default_message = "Invalid request"


class ConflictError(CatalogSyncError):
    """Duplicate name, already-synced record and similar state conflicts."""

    status_code = 409
    default_message = "Conflict"


class NotFoundError(CatalogSyncError):
    """Missing local row or missing remote entity."""

    status_code = 404
    default_message = "Not found"


class RemoteMutationError(CatalogSyncError):
    """The remote call went through but reported user errors."""

    status_code = 500
    default_message = "Remote catalog rejected the change"

    def __init__(
        self,
        message: str | None = None,
        user_errors: list[dict[str, Any]] | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, status_code)
        self.user_errors = user_errors or []


class TransportError(CatalogSyncError):
    """The remote call failed outright (network, timeout, top-level errors)."""

    status_code = 502
    default_message = "Remote catalog request failed"


class PersistenceError(CatalogSyncError):
    """A local transaction failed."""

    status_code = 500
    default_message = "Failed to persist changes"
