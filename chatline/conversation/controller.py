"""UI-facing chat operations and the edit-and-regenerate state machine.

    IDLE -> EDITING(message_id) -> SUBMITTING -> IDLE | ERROR

The controller is the only caller that writes to the ``SessionStore``. One
submission may be in flight per session; a second one is rejected with
``EditInProgress`` until the first settles. The controller holds a single edit,
so only one edit submission runs at a time.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

import structlog

from chatline.api.schemas import ChatSession, Message
from chatline.conversation.orchestrator import CancellationToken, submit_prompt
from chatline.conversation.persistence import persist_sessions
from chatline.conversation.session_api import SessionAPIClient
from chatline.conversation.session_store import SessionStore
from chatline.core.errors import (
    Cancelled,
    ChatError,
    EditInProgress,
    MessageNotEditable,
    MessageNotFound,
    Result,
    SessionNotFound,
)
from chatline.core.llm_adapter import LLMAdapter

logger = structlog.get_logger(__name__)


class EditState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SUBMITTING = "submitting"
    ERROR = "error"


class RequestStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass
class GenerationRequest:
    """Everything needed to re-run a generation without re-editing."""
    session_id: str
    prompt: str
    is_edited: bool = False
    edited_message_id: str | None = None
    image: str | None = None


def new_user_message_id() -> str:
    return f"user-{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def _editable_error(session: ChatSession | None, message_id: str) -> ChatError | None:
    """Why ``message_id`` cannot be edited, or None when it can."""
    if session is None:
        return SessionNotFound("Session not found for update")
    for msg in session.messages:
        if msg.id == message_id:
            if msg.sender != "user":
                return MessageNotEditable("Only your own messages can be edited")
            return None
    return MessageNotFound("Message not found for update")


class ChatController:
    """Drives the store, the model chain and the session backend.

    Args:
        store: Session store this controller owns writes for.
        chain: Runnable-like object with ``ainvoke`` (see ``LLMAdapter.build_chain``).
        api: Session backend client; persistence is skipped when None.
    """

    def __init__(self, store: SessionStore, chain: Any, api: SessionAPIClient | None = None):
        self.store = store
        self.chain = chain
        self.api = api

        self.edit_state = EditState.IDLE
        self.editing_message_id: str | None = None
        self.draft_text = ""

        self.status = RequestStatus.IDLE
        self.error: str | None = None
        self.pending_retry: GenerationRequest | None = None

        self._in_flight: set[str] = set()
        self._edit_token: CancellationToken | None = None

    # Sessions

    async def load_sessions(self) -> Result:
        """Fetch every session from the backend into the store."""
        if self.api is None:
            return Result.success(self.store.sessions())
        self.status = RequestStatus.PENDING
        result = await self.api.fetch_sessions()
        if not result.ok:
            return self._reject(result.error)
        self.store.load(result.value)
        self._fulfil()
        return result

    def start_session(self, session_id: str | None = None) -> ChatSession:
        session = self.store.create_session(session_id)
        self.store.select(session.id)
        return session

    def select_session(self, session_id: str) -> Result:
        try:
            self.store.select(session_id)
        except SessionNotFound as e:
            return Result.failure(e)
        return Result.success(session_id)

    async def save(self) -> Result:
        """Explicit bulk save, e.g. after a failed automatic one."""
        if self.api is None:
            return Result.success()
        result = await persist_sessions(self.store, self.api)
        if not result.ok:
            return self._reject(result.error)
        self._fulfil()
        return result

    # Prompts

    async def send_prompt(self, prompt: str, image: str | None = None) -> Result:
        """Normal turn: on success append the user message and the reply."""
        session_id = self.store.current_session_id
        if not session_id or self.store.get_session(session_id) is None:
            return self._reject(SessionNotFound("No current session found"))
        request = GenerationRequest(session_id=session_id, prompt=prompt, image=image)
        return await self._generate(request)

    async def retry(self) -> Result:
        """Re-run the last failed generation."""
        if self.pending_retry is None:
            return Result.failure(ChatError("Nothing to retry"))
        return await self._generate(self.pending_retry)

    # Editing

    def begin_edit(self, message_id: str, current_text: str) -> Result:
        """Start editing a user message of the current session."""
        session_id = self.store.current_session_id
        if session_id in self._in_flight or self._edit_token is not None:
            return Result.failure(EditInProgress("A reply is still being generated"))
        error = _editable_error(self.store.get_session(session_id), message_id)
        if error is not None:
            return Result.failure(error)
        self.edit_state = EditState.EDITING
        self.editing_message_id = message_id
        self.draft_text = current_text
        return Result.success(message_id)

    def update_draft(self, text: str) -> None:
        self.draft_text = text

    def cancel_edit(self) -> None:
        """Drop the scratch state; an in-flight edit reply is discarded when it lands."""
        if self._edit_token is not None:
            self._edit_token.cancel()
            self._edit_token = None
        self._clear_edit()

    async def save_edit(self, session_id: str, message_id: str, new_text: str | None = None) -> Result:
        """Commit the edited text, regenerate the reply, then save everything.

        The edited text stays committed when generation or saving fails;
        ``retry()`` regenerates without editing again.
        """
        text = self.draft_text if new_text is None else new_text

        if session_id in self._in_flight or self._edit_token is not None:
            return Result.failure(EditInProgress("A reply is still being generated"))

        error = _editable_error(self.store.get_session(session_id), message_id)
        if error is not None:
            result = self._reject(error, edit=True)
            self._drop_scratch()
            return result

        self.store.update_message_text(session_id, message_id, text)

        logger.info("controller.edit_submitted", session_id=session_id, message_id=message_id)
        request = GenerationRequest(
            session_id=session_id,
            prompt=text,
            is_edited=True,
            edited_message_id=message_id,
        )
        return await self._generate(request)

    # Internals

    async def _generate(self, request: GenerationRequest) -> Result:
        if request.session_id in self._in_flight:
            return Result.failure(EditInProgress("A reply is still being generated"))
        if request.is_edited and self._edit_token is not None:
            return Result.failure(EditInProgress("Another edit is still being submitted"))
        # The orchestrator works on the selected session.
        try:
            self.store.select(request.session_id)
        except SessionNotFound as e:
            return self._reject(e, edit=request.is_edited)

        self._in_flight.add(request.session_id)
        token = CancellationToken()
        self.status = RequestStatus.PENDING
        if request.is_edited:
            self._edit_token = token
            self.edit_state = EditState.SUBMITTING
        try:
            result = await submit_prompt(
                self.store,
                self.chain,
                request.prompt,
                is_edited=request.is_edited,
                edited_message_id=request.edited_message_id,
                image=request.image,
                cancel_token=token,
            )
            if isinstance(result.error, Cancelled):
                # The caller walked away; nothing to report or retry.
                logger.info("controller.cancelled", session_id=request.session_id)
                if self._in_flight == {request.session_id}:
                    self.status = RequestStatus.IDLE
                return result

            is_live_edit = request.is_edited and self._edit_token is token
            if not result.ok:
                self.pending_retry = request
                return self._reject(result.error, edit=is_live_edit)

            if self.pending_retry is not None and self.pending_retry.session_id == request.session_id:
                self.pending_retry = None
            if not request.is_edited:
                self.store.append_message(
                    request.session_id,
                    Message(id=new_user_message_id(), sender="user", text=request.prompt),
                )
            self.store.append_message(request.session_id, result.value)

            if self.api is not None:
                saved = await persist_sessions(self.store, self.api)
                if not saved.ok:
                    return self._reject(saved.error, edit=is_live_edit)

            self._fulfil()
            return result
        finally:
            self._in_flight.discard(request.session_id)
            if request.is_edited and self._edit_token is token:
                self._edit_token = None
                if self.edit_state == EditState.ERROR:
                    self._drop_scratch()
                else:
                    self._clear_edit()

    def _fulfil(self) -> None:
        self.status = RequestStatus.FULFILLED
        self.error = None

    def _reject(self, error: ChatError, edit: bool = False) -> Result:
        self.status = RequestStatus.REJECTED
        self.error = error.reason
        if edit:
            self.edit_state = EditState.ERROR
        logger.warning("controller.rejected", code=error.code, reason=error.reason)
        return Result.failure(error)

    def _drop_scratch(self) -> None:
        self.editing_message_id = None
        self.draft_text = ""

    def _clear_edit(self) -> None:
        self.edit_state = EditState.IDLE
        self._drop_scratch()


def create_controller(user_id: str | None = None, llm_adapter: LLMAdapter | None = None) -> ChatController:
    """Wire an empty store, the model chain and the session API client.

    Args:
        user_id: Identity forwarded to the session backend.
        llm_adapter: Defaults to one built from the environment.

    Returns:
        Controller ready for ``load_sessions()``.
    """
    adapter = llm_adapter or LLMAdapter()
    controller = ChatController(SessionStore(), adapter.build_chain(), SessionAPIClient(user_id=user_id))
    logger.info("controller.created", llm_healthy=adapter.is_healthy())
    return controller
