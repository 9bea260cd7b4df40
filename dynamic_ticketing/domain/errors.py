"""Domain error codes for the ticketing core."""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    TRANSIENT_STORAGE = "TRANSIENT_STORAGE"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def retryable(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class EventNotFoundError(DomainError):
    """Raised when the referenced event does not exist."""

    code = ErrorCode.EVENT_NOT_FOUND

    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class InsufficientInventoryError(DomainError):
    """Raised when fewer tickets remain than were requested.

    ``remaining`` is the count observed under the event lock at the moment of
    rejection.
    """

    code = ErrorCode.INSUFFICIENT_INVENTORY

    def __init__(self, event_id: int, remaining: int, requested: int) -> None:
        super().__init__(
            f"Not enough tickets available. Only {remaining} ticket(s) remaining."
        )
        self.event_id = event_id
        self.remaining = remaining
        self.requested = requested


class InvalidConfigurationError(DomainError):
    """Raised at event creation when capacity or pricing bounds are invalid."""

    code = ErrorCode.INVALID_CONFIGURATION

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class TransientStorageError(DomainError):
    """Raised when the store fails in a way that is safe to retry.

    The unit of work has been rolled back; no partial state survives.
    """

    code = ErrorCode.TRANSIENT_STORAGE

    @property
    def retryable(self) -> bool:
        return True


class LockTimeoutError(TransientStorageError):
    """Raised when waiting for the per-event lock exceeds the configured timeout."""

    code = ErrorCode.LOCK_TIMEOUT

    def __init__(self, event_id: int, timeout_ms: int) -> None:
        super().__init__(f"Timed out after {timeout_ms}ms waiting for event {event_id}")
        self.event_id = event_id
        self.timeout_ms = timeout_ms


__all__ = [
    "ErrorCode",
    "DomainError",
    "EventNotFoundError",
    "InsufficientInventoryError",
    "InvalidConfigurationError",
    "TransientStorageError",
    "LockTimeoutError",
]
