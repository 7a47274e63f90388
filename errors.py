"""Domain exceptions.

Every error a domain operation can surface to the HTTP layer derives from
``DomainError`` and carries the status code it maps to. Notification and push
failures use ``NotificationDispatchError`` and are always caught and logged at
the point of failure.
"""

from typing import Optional


class DomainError(Exception):
    """Base class for errors raised by domain operations."""

    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = {"status": "error", "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(DomainError):
    """Malformed or missing input."""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)


class NotFoundError(DomainError):
    """Referenced entity is absent or outside the caller's scope."""

    status_code = 404


class InvalidStateError(DomainError):
    """Operation is not allowed for the entity's current state."""

    status_code = 400


class PersistenceError(DomainError):
    """Underlying store failure."""

    status_code = 500


class NotificationDispatchError(DomainError):
    """Failure while recording or delivering a notification."""

    status_code = 500
