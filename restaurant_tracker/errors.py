"""
Error taxonomy shared by the repository, auth flow and HTTP routes.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class; `status_code` is the HTTP status the API maps it to."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TrackerError):
    status_code = 400
    default_message = "Invalid request"


class AuthError(TrackerError):
    status_code = 401
    default_message = "Unauthorized"


class NotFoundError(TrackerError):
    status_code = 404
    default_message = "Not found"


class StorageError(TrackerError):
    status_code = 500
    default_message = "Storage error"


class UpstreamServiceError(TrackerError):
    status_code = 500
    default_message = "Upstream service error"


class ConfigurationError(TrackerError):
    status_code = 500
    default_message = "Server configuration error"
