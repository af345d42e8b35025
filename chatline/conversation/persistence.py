"""Bulk save of the whole session collection."""

import structlog

from chatline.api.schemas import ChatSession
from chatline.conversation.session_api import SessionAPIClient
from chatline.conversation.session_store import SessionStore
from chatline.core.errors import Result

logger = structlog.get_logger(__name__)


def find_invalid_texts(sessions: list[ChatSession]) -> list[tuple[str, str]]:
    """(session_id, message_id) pairs whose text is not a string."""
    return [
        (session.id, msg.id)
        for session in sessions
        for msg in session.messages
        if not isinstance(msg.text, str)
    ]


async def persist_sessions(store: SessionStore, api: SessionAPIClient) -> Result:
    """Send every session to the backend in one write.

    Non-string texts are logged but do not block the save.
    """
    sessions = store.sessions()
    invalid = find_invalid_texts(sessions)
    if invalid:
        logger.error("persistence.invalid_text", count=len(invalid), messages=invalid)

    result = await api.save_sessions(sessions)
    if not result.ok:
        logger.error("persistence.failed", reason=result.reason)
    return result
