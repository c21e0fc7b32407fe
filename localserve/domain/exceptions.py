"""Domain error taxonomy shared by the services and the HTTP layer."""

from __future__ import annotations

from typing import Dict, List, Optional


class LocalServeError(Exception):
    """Base class for every error raised by the subscription core."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LocalServeError):
    kind = "not_found"
    status_code = 404


class ConflictError(LocalServeError):
    """The entity is in a state that forbids the requested change."""

    kind = "conflict"
    status_code = 400


class IllegalTransitionError(ConflictError):
    kind = "illegal_transition"

    def __init__(self, operation: str, current_status: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Cannot {operation} a subscription that is {current_status}")
        self.operation = operation
        self.current_status = current_status


class ConcurrentModificationError(ConflictError):
    kind = "concurrent_modification"
    status_code = 409

    def __init__(self, subscription_id: int) -> None:
        super().__init__(
            f"Subscription {subscription_id} was modified by another request. Reload and try again."
        )
        self.subscription_id = subscription_id


class AccessDeniedError(LocalServeError):
    kind = "access_denied"
    status_code = 403

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class ValidationError(LocalServeError):
    kind = "validation"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class PartialUpdateError(LocalServeError):
    """A denormalized counter could not be written alongside its subscription."""

    kind = "partial_update"
    status_code = 500
