"""
Domain errors raised by services and rendered by the API as
``{"success": false, "message": ...}``.
"""

from typing import Optional

from fastapi import status


class CowTrackerError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {"success": False, "message": self.message}


class InvalidArgument(CowTrackerError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid argument"


class Unauthorized(CowTrackerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class Forbidden(CowTrackerError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(CowTrackerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(CowTrackerError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class Upstream(CowTrackerError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Upstream service failure"
