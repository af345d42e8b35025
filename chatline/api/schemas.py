"""Pydantic models for chat sessions and the session API.

The same models are used on both sides of the wire: the FastAPI backend
validates request bodies with them and the client keeps them in its store.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


def coerce_text(value: Any) -> str:
    """Return a string form of a message text, JSON-encoding anything else."""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class Message(BaseModel):
    """Single chat message inside a session."""
    id: str = Field(..., min_length=1, description="Unique within its session")
    sender: Literal["user", "ai"]
    text: str

    @field_validator("text", mode="before")
    @classmethod
    def _text_as_string(cls, value: Any) -> str:
        return coerce_text(value)


class ChatSession(BaseModel):
    """One conversation thread."""
    id: str = Field(..., min_length=1, description="Matches the chat route segment")
    messages: list[Message] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_message_ids(self) -> "ChatSession":
        seen: set[str] = set()
        for msg in self.messages:
            if msg.id in seen:
                raise ValueError(f"Duplicate message id {msg.id!r} in session {self.id!r}")
            seen.add(msg.id)
        return self


class SessionsPayload(BaseModel):
    """Body of GET/POST /sessions."""
    sessions: list[ChatSession] = Field(default_factory=list)


class SaveResponse(BaseModel):
    status: str = "ok"
    saved: int
