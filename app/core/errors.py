"""Typed failures returned to request handlers.

Each error carries the HTTP status and the short message a guest or host
sees. The internal message (``str(exc)``) is only logged.
"""

from fastapi import status


class BookingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    public_message: str = "Something went wrong"

    def __init__(self, message: str = "", public_message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Not found"


class InactiveError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    public_message = "This event type is no longer available"


class ConflictError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    public_message = "This time is no longer available"


class ValidationFailedError(BookingError):
    status_code = 422
    public_message = "Invalid input"
