"""
Application error types.
Each error carries the HTTP status it is reported with; the handler in
main.py renders them as {"error": <message>}.
"""
from fastapi import status


class CMSError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CMSError):
    """Missing or invalid input; the request is rejected with no state change."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(CMSError):
    """Referenced gallery, image or slug does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class SlugConflictError(CMSError):
    """No free slug could be allocated within the configured bounds."""

    status_code = status.HTTP_409_CONFLICT


class ExternalServiceError(CMSError):
    """Remote image host unreachable or returned a failure."""

    status_code = status.HTTP_502_BAD_GATEWAY


class StorageError(CMSError):
    """Local file storage failed."""


class PersistenceError(CMSError):
    """Database operation failed."""
