"""Shared fixtures for all tests."""

import asyncio
import json

import httpx
import pytest

from chatline.api.schemas import ChatSession, Message
from chatline.conversation.session_api import SessionAPIClient
from chatline.conversation.session_store import SessionStore


class StubChain:
    """Stands in for the model chain: records inputs, replies or raises."""

    def __init__(self, reply=None, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.reply = reply
        self.error = error
        self.gate = gate
        self.calls: list[dict] = []

    async def ainvoke(self, chain_input):
        self.calls.append(chain_input)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


class RecordingBackend:
    """httpx.MockTransport handler that records POST bodies."""

    def __init__(self, get_status: int = 200, post_status: int = 200, sessions: list | None = None,
                 post_body: str = ""):
        self.get_status = get_status
        self.post_status = post_status
        self.sessions = sessions or []
        self.post_body = post_body
        self.posted: list[dict] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            if self.get_status != 200:
                return httpx.Response(self.get_status, json={"detail": "nope"})
            return httpx.Response(200, json={"sessions": self.sessions})
        self.posted.append(json.loads(request.content))
        if self.post_status >= 400:
            return httpx.Response(self.post_status, text=self.post_body)
        return httpx.Response(self.post_status, json={"status": "ok", "saved": len(self.posted[-1]["sessions"])})


@pytest.fixture
def sample_sessions() -> list[ChatSession]:
    """Two sessions; s1 holds one user/ai exchange."""
    return [
        ChatSession(
            id="s1",
            messages=[
                Message(id="m1", sender="user", text="Hi"),
                Message(id="m2", sender="ai", text="Hello"),
            ],
        ),
        ChatSession(id="s2", messages=[]),
    ]


@pytest.fixture
def store(sample_sessions) -> SessionStore:
    s = SessionStore(sample_sessions)
    s.select("s1")
    return s


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def api(backend) -> SessionAPIClient:
    return SessionAPIClient(
        base_url="http://chatline.test",
        user_id="user-1",
        transport=httpx.MockTransport(backend),
    )


@pytest.fixture
def make_chain():
    return StubChain


@pytest.fixture
def make_backend():
    return RecordingBackend
