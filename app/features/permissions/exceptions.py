"""
Errors raised by the permission core.

Each error carries the HTTP status the API layer answers with; the core
itself never builds responses.
"""


class PermissionManagementError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PermissionNotFoundError(PermissionManagementError):
    """A single-permission request referenced a permission missing from the catalog."""
    status_code = 404
    default_message = "Permission not found"


class UserNotFoundError(PermissionManagementError):
    """Raised only when unknown users are not mapped to a default role."""
    status_code = 404
    default_message = "User not found"


class OverrideValidationError(PermissionManagementError):
    """Malformed mutation request, rejected before touching storage."""
    status_code = 400
    default_message = "Invalid permission update request"


class StorageUnavailableError(PermissionManagementError):
    """The relational store could not be reached. Not retried."""
    status_code = 503
    default_message = "Permission store unavailable"
