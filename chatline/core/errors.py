"""Failure taxonomy for the chat client.

Client-side operations never raise these past their boundary. They are
wrapped in a ``Result`` so callers can surface ``reason`` without crashing.
"""

from dataclasses import dataclass
from typing import Any


class ChatError(Exception):
    """Base class. ``reason`` is the user-visible text."""
    code = "CHAT_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class SessionNotFound(ChatError):
    code = "SESSION_NOT_FOUND"


class MessageNotFound(ChatError):
    code = "MESSAGE_NOT_FOUND"


class MessageNotEditable(ChatError):
    """Only user-authored messages can be edited."""
    code = "MESSAGE_NOT_EDITABLE"


class InvalidResponseFormat(ChatError):
    """Model reply was not a usable string (includes safety-filtered replies)."""
    code = "INVALID_RESPONSE_FORMAT"


class ModelInvocationError(ChatError):
    code = "MODEL_INVOCATION_ERROR"


class PersistenceError(ChatError):
    code = "PERSISTENCE_ERROR"


class Unauthorized(ChatError):
    code = "UNAUTHORIZED"


class EditInProgress(ChatError):
    code = "EDIT_IN_PROGRESS"


class Cancelled(ChatError):
    """Caller abandoned the round trip; a late reply was discarded."""
    code = "CANCELLED"


@dataclass
class Result:
    """Outcome of a client operation: a value or an error, never both."""
    value: Any = None
    error: ChatError | None = None

    def __post_init__(self):
        if self.value is not None and self.error is not None:
            raise ValueError("Result cannot carry both a value and an error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> str:
        return self.error.reason if self.error else ""

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ChatError) -> "Result":
        return cls(error=error)
