"""Async HTTP client for the session backend (GET/POST /sessions)."""

import os

import httpx
import structlog
from pydantic import ValidationError

from chatline.api.schemas import ChatSession, SessionsPayload
from chatline.core.errors import PersistenceError, Result, Unauthorized

logger = structlog.get_logger(__name__)

UNAUTHORIZED_REASON = "Unauthorized. Please log in."
FETCH_FAILED_REASON = "Failed to fetch chats sessions"
SAVE_FAILED_REASON = "Failed to save chat"


class SessionFetchError(PersistenceError):
    code = "SESSION_FETCH_ERROR"


class SessionAPIClient:
    """Bulk load/save of the session collection.

    Args:
        base_url: Backend root. Defaults to SESSION_API_URL.
        user_id: Sent as ``X-User-Id``; the backend answers 401 without it.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        user_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or os.environ.get("SESSION_API_URL", "http://localhost:8000")
        self.timeout = float(os.environ.get("SESSION_API_TIMEOUT", "10"))
        self.user_id = user_id
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"X-User-Id": self.user_id} if self.user_id else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def fetch_sessions(self) -> Result:
        """GET /sessions.

        Returns:
            Result with ``list[ChatSession]``, ``Unauthorized`` on 401, or
            ``SessionFetchError`` for anything else.
        """
        try:
            async with self._client() as client:
                resp = await client.get("/sessions")
                resp.raise_for_status()
            payload = SessionsPayload.model_validate(resp.json())
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("session_api.fetch_failed", status=status)
            if status == 401:
                return Result.failure(Unauthorized(UNAUTHORIZED_REASON))
            return Result.failure(SessionFetchError(FETCH_FAILED_REASON))
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.error("session_api.fetch_failed", error=str(e))
            return Result.failure(SessionFetchError(FETCH_FAILED_REASON))

        logger.info("session_api.fetched", sessions=len(payload.sessions))
        return Result.success(payload.sessions)

    async def save_sessions(self, sessions: list[ChatSession]) -> Result:
        """POST /sessions with the whole collection.

        Returns:
            Empty success, or ``PersistenceError`` carrying status and body.
        """
        body = {"sessions": [s.model_dump(mode="json") for s in sessions]}
        try:
            async with self._client() as client:
                resp = await client.post("/sessions", json=body)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = e.response.text or e.response.reason_phrase
            logger.error("session_api.save_failed", status=e.response.status_code)
            return Result.failure(
                PersistenceError(f"{SAVE_FAILED_REASON}: {e.response.status_code} {detail}")
            )
        except httpx.HTTPError as e:
            logger.error("session_api.save_failed", error=str(e))
            return Result.failure(PersistenceError(SAVE_FAILED_REASON))

        logger.info("session_api.saved", sessions=len(sessions))
        return Result.success()
