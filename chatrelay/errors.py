"""Error taxonomy shared by the orchestration components."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ChatRelayError(Exception):
    """Base class for errors raised inside chatrelay."""


class TransientCollaboratorError(ChatRelayError):
    """A store or configuration lookup failed; callers degrade to a safe default."""


class DeliveryError(ChatRelayError):
    """The messaging transport did not accept a message."""

    def __init__(self, recipient: str, reason: str):
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Delivery to {recipient} failed: {reason}")


class MalformedInputError(ChatRelayError):
    """Input that cannot be interpreted (bad due date, empty question set)."""


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
