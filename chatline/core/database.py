"""SQLAlchemy persistence for chat sessions.

Sessions are stored per user and replaced wholesale on every save, matching
the bulk GET/POST contract of the session API.
"""

import os
from datetime import datetime, timezone

import structlog
from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from chatline.api.schemas import ChatSession, Message

logger = structlog.get_logger(__name__)

Base = declarative_base()


class ChatSessionRow(Base):
    """One conversation thread owned by a user."""
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    session_id = Column(String, nullable=False)
    position = Column(Integer, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class MessageRow(Base):
    """Persistent chat message row."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    session_id = Column(String, index=True, nullable=False)
    message_id = Column(String, nullable=False)
    sender = Column(String, nullable=False)  # "user" or "ai"
    text = Column(Text, nullable=False)
    position = Column(Integer, nullable=False)


_engine = None
_SessionLocal = None


def init_db(database_url: str | None = None) -> None:
    """Create engine + tables. Call once at startup.

    Args:
        database_url: SQLAlchemy connection string. Defaults to DATABASE_URL env var.
    """
    global _engine, _SessionLocal

    url = database_url or os.environ.get("DATABASE_URL", "sqlite:///chatline.sqlite")
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection so every thread sees the same in-memory database.
        _engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        _engine = create_engine(url, echo=False)
    _SessionLocal = sessionmaker(bind=_engine)

    Base.metadata.create_all(_engine)
    logger.info("db.initialized", url=url.split("///")[0] + "///***")


def get_session() -> Session:
    """Get a new database session."""
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _SessionLocal()


def replace_sessions(user_id: str, sessions: list[ChatSession]) -> int:
    """Replace every stored session of ``user_id`` with ``sessions``.

    Args:
        user_id: Owner of the collection.
        sessions: Full collection, in display order.

    Returns:
        Number of sessions written.
    """
    now = datetime.now(timezone.utc)
    with get_session() as db:
        db.query(MessageRow).filter(MessageRow.user_id == user_id).delete()
        db.query(ChatSessionRow).filter(ChatSessionRow.user_id == user_id).delete()

        for s_pos, chat in enumerate(sessions):
            db.add(ChatSessionRow(user_id=user_id, session_id=chat.id, position=s_pos, updated_at=now))
            for m_pos, msg in enumerate(chat.messages):
                db.add(MessageRow(
                    user_id=user_id,
                    session_id=chat.id,
                    message_id=msg.id,
                    sender=msg.sender,
                    text=msg.text,
                    position=m_pos,
                ))
        db.commit()

    logger.debug("db.sessions_replaced", user_id=user_id, sessions=len(sessions))
    return len(sessions)


def load_sessions(user_id: str) -> list[ChatSession]:
    """Fetch the full session collection of ``user_id``.

    Returns:
        Sessions in saved order, each with its messages in saved order.
    """
    with get_session() as db:
        session_rows = (
            db.query(ChatSessionRow)
            .filter(ChatSessionRow.user_id == user_id)
            .order_by(ChatSessionRow.position.asc())
            .all()
        )
        message_rows = (
            db.query(MessageRow)
            .filter(MessageRow.user_id == user_id)
            .order_by(MessageRow.session_id, MessageRow.position.asc())
            .all()
        )

        by_session: dict[str, list[Message]] = {}
        for row in message_rows:
            by_session.setdefault(row.session_id, []).append(_row_to_message(row))

        return [
            ChatSession(id=row.session_id, messages=by_session.get(row.session_id, []))
            for row in session_rows
        ]


def _row_to_message(row: MessageRow) -> Message:
    """Convert a SQLAlchemy row to a pydantic Message."""
    return Message(id=row.message_id, sender=row.sender, text=row.text)
