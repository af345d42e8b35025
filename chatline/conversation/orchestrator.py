"""Conversation round trip: session state + prompt -> one model call -> AI message.

``submit_prompt`` reads the store but never writes to it. The caller decides
what to do with the returned message.
"""

import time
from typing import Any
from uuid import uuid4

import structlog

from chatline.api.schemas import Message
from chatline.conversation.session_store import SessionStore
from chatline.core.errors import (
    Cancelled,
    InvalidResponseFormat,
    ModelInvocationError,
    Result,
    SessionNotFound,
)
from chatline.core.history import build_prompt_input, format_history

logger = structlog.get_logger(__name__)

DEFAULT_FAILURE_REASON = "An unexpected error occurred contacting the AI."
INVALID_FORMAT_REASON = "Received invalid response format from AI."
CANCELLED_REASON = "Request was cancelled; late reply discarded."


class CancellationToken:
    """Flag a caller sets to abandon an in-flight round trip."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def new_ai_message_id() -> str:
    """``ai-<epoch ms>-<6 hex>``."""
    return f"ai-{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def _history_window(messages: list[Message], is_edited: bool, edited_message_id: str | None) -> list[Message]:
    """Messages up to and including the edited one; all of them otherwise."""
    if not is_edited:
        return messages
    for idx, msg in enumerate(messages):
        if msg.id == edited_message_id:
            return messages[: idx + 1]
    return messages


async def submit_prompt(
    store: SessionStore,
    chain: Any,
    prompt: str,
    *,
    is_edited: bool = False,
    edited_message_id: str | None = None,
    image: str | None = None,
    cancel_token: CancellationToken | None = None,
) -> Result:
    """Send ``prompt`` plus the active session's history to the chain.

    Args:
        store: Session store; only read.
        chain: Runnable-like object exposing ``ainvoke``.
        prompt: The user's new (or edited) text.
        is_edited: True when regenerating after an edit.
        edited_message_id: Message being edited, kept out of the history.
        image: Accepted but not forwarded; multimodal input is unsupported.
        cancel_token: When cancelled before the reply lands, the reply is
            discarded.

    Returns:
        Result with the new AI ``Message`` or one of ``SessionNotFound``,
        ``InvalidResponseFormat``, ``ModelInvocationError``, ``Cancelled``.
    """
    session = store.current_session()
    if session is None:
        logger.warning("orchestrator.no_session", session_id=store.current_session_id)
        return Result.failure(SessionNotFound("No current session found"))

    window = _history_window(session.messages, is_edited, edited_message_id)
    history = format_history(window, is_edited=is_edited, edited_message_id=edited_message_id)

    if image:
        logger.warning("orchestrator.image_unsupported", session_id=session.id)

    chain_input = build_prompt_input(prompt, history)
    logger.info("orchestrator.invoke", session_id=session.id, history_len=len(history),
                prompt_len=len(prompt), is_edited=is_edited)

    try:
        reply = await chain.ainvoke(chain_input)
    except Exception as e:
        if cancel_token is not None and cancel_token.cancelled:
            logger.info("orchestrator.stale_discarded", session_id=session.id, error=str(e))
            return Result.failure(Cancelled(CANCELLED_REASON))
        reason = str(e) or DEFAULT_FAILURE_REASON
        logger.error("orchestrator.invoke_failed", session_id=session.id, error=reason)
        return Result.failure(ModelInvocationError(reason))

    if cancel_token is not None and cancel_token.cancelled:
        logger.info("orchestrator.stale_discarded", session_id=session.id)
        return Result.failure(Cancelled(CANCELLED_REASON))

    if not isinstance(reply, str) or not reply:
        # Safety-filtered replies come back empty or as non-strings.
        logger.error("orchestrator.invalid_reply", session_id=session.id,
                     reply_type=type(reply).__name__)
        return Result.failure(InvalidResponseFormat(INVALID_FORMAT_REASON))

    message = Message(id=new_ai_message_id(), sender="ai", text=reply)
    logger.info("orchestrator.reply", session_id=session.id, message_id=message.id,
                reply_len=len(reply))
    return Result.success(message)
