"""Errors rendered as JSON responses by the error middleware.

Only endpoints and request dependencies raise these. Services declare
their own exceptions, which the endpoints translate where a client
needs to see them.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """An error the API reports to the client.

    Attributes:
        message: Text placed in the ``error`` field of the response.
        status_code: Response status.
        details: Extra fields placed under ``details``.
    """

    def __init__(
        self,
        message: str = "Photobook request failed",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundException(AppException):
    """404 for unknown photos and blobs."""

    def __init__(self, message: str = "Photo not found", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status_code=404, details=details)


class ValidationException(AppException):
    """422 for a malformed upload request or owner header."""

    def __init__(self, message: str = "Invalid upload request", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status_code=422, details=details)


class ForbiddenException(AppException):
    """403 for a signed link that is invalid or has expired."""

    def __init__(self, message: str = "Invalid or expired link", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status_code=403, details=details)
