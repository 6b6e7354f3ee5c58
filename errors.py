"""Domain error codes for the booking backend."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"


@dataclass(eq=False)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """Raised when a booking or museum id does not exist."""

    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{kind.capitalize()} not found",
        )
        self.kind = kind
        self.item_id = item_id


class InvalidInputError(DomainError):
    """Raised when input cannot be processed at all."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.INVALID_INPUT, message=message)


class BackendUnavailableError(DomainError):
    """Raised when the persistence backend cannot serve a call."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            code=ErrorCode.BACKEND_UNAVAILABLE,
            message="Booking service is temporarily unavailable. Please try again.",
        )
        self.operation = operation


class InvalidTransitionError(DomainError):
    """Raised when a wizard action does not match the current stage."""

    def __init__(self, action: str, stage: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot {action} while at stage '{stage}'",
        )
        self.action = action
        self.stage = stage


class SlotUnavailableError(DomainError):
    """Raised when a time slot is unknown or already full."""

    def __init__(self, time: str) -> None:
        super().__init__(
            code=ErrorCode.SLOT_UNAVAILABLE,
            message=f"Time slot {time} is not available",
        )
        self.time = time


class NotAuthenticatedError(DomainError):
    """Raised when an admin-only operation runs without the admin flag."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.NOT_AUTHENTICATED,
            message="Admin login required",
        )
