"""FastAPI endpoints for the session backend.

GET /sessions - full session collection of the caller
POST /sessions - replace the caller's session collection
GET /health - component health check
"""

import structlog
from fastapi import APIRouter, Header, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from chatline.api.schemas import SaveResponse, SessionsPayload
from chatline.core.database import get_session, load_sessions, replace_sessions

logger = structlog.get_logger(__name__)

router = APIRouter()


def _require_user(x_user_id: str | None) -> str:
    """Identity comes from the upstream auth proxy via X-User-Id."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


@router.get("/sessions", response_model=SessionsPayload)
def get_sessions(x_user_id: str | None = Header(default=None)):
    """Return every session of the caller."""
    user_id = _require_user(x_user_id)
    try:
        sessions = load_sessions(user_id)
    except SQLAlchemyError as e:
        logger.error("sessions.load_failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load sessions")

    logger.info("sessions.loaded", user_id=user_id, sessions=len(sessions))
    return SessionsPayload(sessions=sessions)


@router.post("/sessions", response_model=SaveResponse)
def post_sessions(payload: SessionsPayload, x_user_id: str | None = Header(default=None)):
    """Replace the caller's whole session collection."""
    user_id = _require_user(x_user_id)
    ids = [s.id for s in payload.sessions]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=422, detail="Duplicate session ids")

    try:
        saved = replace_sessions(user_id, payload.sessions)
    except SQLAlchemyError as e:
        logger.error("sessions.save_failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to save sessions")

    logger.info("sessions.saved", user_id=user_id, sessions=saved)
    return SaveResponse(saved=saved)


@router.get("/health")
def health():
    """Check health of the storage backend."""
    components = {}
    try:
        with get_session() as db:
            db.execute(text("SELECT 1"))
        components["database"] = "ok"
    except Exception:
        components["database"] = "error"

    status = "healthy" if all(v == "ok" for v in components.values()) else "unhealthy"
    return {"status": status, "components": components}


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms like Render."""
    return {"status": "ok", "service": "chatline-api"}
