# roomshare/core/errors.py

from __future__ import annotations


class RoomShareError(Exception):
    """
    Base class for every error a room session can surface.

    Each subclass carries the HTTP status the gateway answers with and a
    short title used for user-visible notices.
    """

    status_code: int = 400
    title: str = "Error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.title)
        self.message = message or self.title


class NotFound(RoomShareError):
    status_code = 404
    title = "Room not found"


class NameTaken(RoomShareError):
    status_code = 409
    title = "Display name already taken"


class CreationFailed(RoomShareError):
    status_code = 503
    title = "Failed to create room"


class DeleteFailed(RoomShareError):
    status_code = 403
    title = "Message could not be deleted"


class TransientBackendError(RoomShareError):
    """Network or backend failure reported by a store."""

    status_code = 502
    title = "Backend unavailable"


class ConstraintViolation(RoomShareError):
    """A unique constraint rejected a write."""

    status_code = 409
    title = "Duplicate value"

    def __init__(self, message: str = "", constraint: str = "") -> None:
        super().__init__(message)
        self.constraint = constraint


class NoActiveSession(RoomShareError):
    status_code = 409
    title = "Not in a room"


class SessionBusy(RoomShareError):
    status_code = 409
    title = "Another room change is in progress"


class MessageTooLong(RoomShareError):
    status_code = 422
    title = "Message too long"


class InvalidInput(RoomShareError):
    status_code = 422
    title = "Invalid input"
