"""Client-side owner of all chat sessions.

Every mutation goes through one method on ``SessionStore``; every read hands
back a deep copy, so nothing outside the store can change its state in place.
"""

from uuid import uuid4

import structlog

from chatline.api.schemas import ChatSession, Message
from chatline.core.errors import MessageNotFound, SessionNotFound

logger = structlog.get_logger(__name__)


class SessionStore:
    """Ordered collection of sessions plus the currently selected id."""

    def __init__(self, sessions: list[ChatSession] | None = None):
        self._sessions: list[ChatSession] = [s.model_copy(deep=True) for s in sessions or []]
        self.current_session_id: str | None = None

    # Reads

    def sessions(self) -> list[ChatSession]:
        return [s.model_copy(deep=True) for s in self._sessions]

    def get_session(self, session_id: str | None) -> ChatSession | None:
        session = self._find(session_id)
        return session.model_copy(deep=True) if session else None

    def current_session(self) -> ChatSession | None:
        return self.get_session(self.current_session_id)

    # Mutations

    def load(self, sessions: list[ChatSession]) -> None:
        """Replace the whole collection (bulk load from the backend)."""
        self._sessions = [s.model_copy(deep=True) for s in sessions]
        if self._find(self.current_session_id) is None:
            self.current_session_id = None
        logger.info("store.loaded", sessions=len(self._sessions))

    def create_session(self, session_id: str | None = None) -> ChatSession:
        session_id = session_id or str(uuid4())
        if self._find(session_id) is not None:
            raise ValueError(f"Session {session_id} already exists")
        session = ChatSession(id=session_id)
        self._sessions.append(session)
        logger.debug("store.session_created", session_id=session_id)
        return session.model_copy(deep=True)

    def select(self, session_id: str) -> None:
        if self._find(session_id) is None:
            raise SessionNotFound(f"Session {session_id} not found")
        self.current_session_id = session_id

    def append_message(self, session_id: str, message: Message) -> None:
        session = self._require(session_id)
        if any(msg.id == message.id for msg in session.messages):
            raise ValueError(f"Message {message.id} already exists in session {session_id}")
        session.messages.append(message.model_copy(deep=True))
        logger.debug("store.message_appended", session_id=session_id,
                     message_id=message.id, sender=message.sender)

    def update_message_text(self, session_id: str, message_id: str, text: str) -> None:
        session = self._require(session_id)
        for idx, msg in enumerate(session.messages):
            if msg.id == message_id:
                # Re-validate so the text invariant holds for edits too.
                session.messages[idx] = Message(id=msg.id, sender=msg.sender, text=text)
                logger.debug("store.message_updated", session_id=session_id, message_id=message_id)
                return
        raise MessageNotFound("Message not found for update")

    def _find(self, session_id: str | None) -> ChatSession | None:
        if not session_id:
            return None
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def _require(self, session_id: str) -> ChatSession:
        session = self._find(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return session
