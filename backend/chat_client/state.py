"""
Chat Session State - client-side state machine for a Polychat conversation.

Holds the message list, mentor selection, ids and model catalog for one
signed-in user, and drives the API client:
- send_message appends an optimistic user message, then replaces the list
  with the server's history on success or removes it on failure
- catalog add/remove apply locally first and roll back on error
- conversation list and health refreshes run as tracked background tasks
  whose failures are logged, never raised

Only one send may be in flight at a time.

Usage:
    session = ChatSessionState(ChatApiClient(base_url), JsonFileSessionStore(path))
    await session.initialize_from_storage()
    await session.send_message("What does John 3:16 mean?")
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Literal, Optional, Sequence, Set

from chat_client.api import ChatApiClient
from chat_client.optimistic import OptimisticUpdate, replace_attribute
from chat_client.session_store import InMemorySessionStore, SessionIds, SessionStore
from errors import ConflictError, ErrorCode, ValidationError
from mentors import DEFAULT_MENTOR_ID, FileMeta, SelectionMode, route_mentor
from services.chat_models import (
    DEFAULT_CHAT_MODEL_CATALOG,
    DUPLICATE_MODEL_MESSAGE,
    LAST_MODEL_MESSAGE,
    ChatModelEntry,
    normalize_catalog,
)

logger = logging.getLogger(__name__)

SEND_ERROR_MESSAGE = "Unable to send message. Please try again."
LOAD_ERROR_MESSAGE = "Unable to load previous session. Starting a new chat."
CATALOG_ERROR_MESSAGE = "Unable to update your model list. Please try again."

SendStatus = Literal["idle", "sending", "error"]


@dataclass
class ChatMessage:
    id: str
    role: str
    content: str
    created_at: str
    mentor: Optional[str] = None
    files: Optional[List[Dict[str, Any]]] = None
    model: Optional[str] = None

    @classmethod
    def from_history(cls, item: Dict[str, Any], default_mentor: Optional[str] = None) -> "ChatMessage":
        return cls(
            id=item.get("id") or str(uuid.uuid4()),
            role=item.get("role", "assistant"),
            content=item.get("content", ""),
            created_at=item.get("createdAt") or _now_iso(),
            mentor=item.get("mentor") or default_mentor,
            files=item.get("files"),
            model=item.get("model"),
        )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatSessionState:
    def __init__(
        self,
        api: ChatApiClient,
        session_store: Optional[SessionStore] = None,
        user_id: Optional[str] = None,
    ):
        self.api = api
        self.session_store = session_store or InMemorySessionStore()

        self.messages: List[ChatMessage] = []
        self.active_mentor: str = DEFAULT_MENTOR_ID
        self.selection_mode: SelectionMode = "auto"
        self.locked_mentor_id: Optional[str] = None
        self.status: SendStatus = "idle"
        self.session_id: Optional[str] = None
        self.user_id: Optional[str] = user_id
        self.error: Optional[str] = None

        self.conversations: List[Dict[str, Any]] = []
        self.conversations_loading = False

        # None until the first health probe finishes
        self.api_online: Optional[bool] = None
        self.last_health_check_at: Optional[datetime] = None

        self.chat_models: List[ChatModelEntry] = list(DEFAULT_CHAT_MODEL_CATALOG)
        self.selected_model: Optional[str] = self.chat_models[0].id

        self._background: Set[asyncio.Task] = set()
        self._health_monitor: Optional[asyncio.Task] = None

    @property
    def is_sending(self) -> bool:
        return self.status == "sending"

    # === Background work ===

    def _spawn(self, coro: Awaitable, label: str) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)

        def _done(t: asyncio.Task) -> None:
            self._background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.warning(f"Background {label} failed: {exc}")

        task.add_done_callback(_done)
        return task

    async def wait_for_background(self) -> None:
        """Wait until every pending background refresh has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def start_health_monitor(self, interval_s: float = 30.0) -> asyncio.Task:
        """Probe /health every interval_s seconds until aclose()."""

        async def _loop():
            while True:
                await self.check_health()
                await asyncio.sleep(interval_s)

        if self._health_monitor is None or self._health_monitor.done():
            self._health_monitor = asyncio.create_task(_loop())
        return self._health_monitor

    async def aclose(self) -> None:
        if self._health_monitor is not None:
            self._health_monitor.cancel()
            await asyncio.gather(self._health_monitor, return_exceptions=True)
            self._health_monitor = None
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)

    def _persist(self) -> None:
        self.session_store.save(SessionIds(session_id=self.session_id, user_id=self.user_id))

    # === Startup ===

    async def initialize_from_storage(self) -> None:
        """Restore ids, reload the stored conversation, then refresh lists in the background."""
        ids = self.session_store.load()
        if ids.user_id:
            self.user_id = ids.user_id
        if ids.session_id:
            self.session_id = ids.session_id
            await self.select_conversation(ids.session_id)

        if self.user_id:
            self._spawn(self.load_conversations(), "conversation refresh")
            self._spawn(self.load_chat_models(), "catalog refresh")
        self._spawn(self.check_health(), "health check")

    # === Mentor selection ===

    def set_mentor(self, mentor_id: str) -> None:
        """Manually pick a mentor; it stays locked until auto mode is restored."""
        self.active_mentor = mentor_id
        self.selection_mode = "manual"
        self.locked_mentor_id = mentor_id

    def set_selection_mode(self, mode: SelectionMode) -> None:
        if mode not in ("auto", "manual"):
            raise ValidationError(
                f"Unknown selection mode: {mode}",
                parameter="mode",
                expected="auto | manual",
                received=str(mode),
            )
        self.selection_mode = mode
        self.locked_mentor_id = self.active_mentor if mode == "manual" else None

    def select_model(self, model_id: str) -> None:
        if not any(entry.id == model_id for entry in self.chat_models):
            raise ValidationError(f"Model not in your list: {model_id}", parameter="model_id")
        self.selected_model = model_id

    # === Sending ===

    async def send_message(
        self,
        content: str,
        files: Optional[Sequence[FileMeta]] = None,
        system_prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a message and adopt the server's view of the conversation.

        Raises:
            ValidationError: empty message, no user id, or a send already in flight.
                No request is made.
            ApiError: the request failed. The optimistic message is removed,
                api_online is set False and error holds a generic message.
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty", parameter="message")
        if not self.user_id:
            raise ValidationError("Sign in before sending messages", parameter="userId")
        if self.is_sending:
            raise ValidationError("A message is already being sent", code=ErrorCode.VALIDATION_BUSY)

        files = list(files or [])
        mentor = route_mentor(text, files, self.selection_mode, self.locked_mentor_id)
        self.active_mentor = mentor

        optimistic = ChatMessage(
            id=str(uuid.uuid4()),
            role="user",
            content=text,
            created_at=_now_iso(),
            mentor=mentor,
            files=[f.model_dump(by_alias=True, exclude_none=True) for f in files] or None,
            model=self.selected_model,
        )

        def _remove_optimistic(message_id: str) -> None:
            self.messages = [m for m in self.messages if m.id != message_id]

        update = OptimisticUpdate(
            snapshot=lambda: optimistic.id,
            apply=lambda: self.messages.append(optimistic),
            revert=_remove_optimistic,
        )

        payload = {
            "message": text,
            "mentorId": mentor,
            "sessionId": self.session_id,
            "userId": self.user_id,
            "files": optimistic.files,
            "model": self.selected_model,
            "systemPrompt": system_prompt,
        }

        self.status = "sending"
        self.error = None
        try:
            data = await update.run(lambda: self.api.send_chat(payload))
        except asyncio.CancelledError:
            self.status = "idle"
            raise
        except Exception:
            self.error = SEND_ERROR_MESSAGE
            self.api_online = False
            self.status = "error"
            raise

        self.api_online = True
        self.status = "idle"
        self.session_id = data.get("conversationId") or self.session_id
        self.user_id = data.get("userId") or self.user_id
        self.active_mentor = data.get("mentorId") or mentor
        history = data.get("history") or []
        self.messages = [ChatMessage.from_history(item, self.active_mentor) for item in history]
        self._persist()
        self._spawn(self.load_conversations(), "conversation refresh")
        return data

    def reset_chat(self) -> None:
        """Start over locally: clear messages and session, back to auto mentor selection."""
        self.messages = []
        self.session_id = None
        self.error = None
        self.status = "idle"
        self.active_mentor = DEFAULT_MENTOR_ID
        self.selection_mode = "auto"
        self.locked_mentor_id = None
        self.session_store.clear(clear_user=False)

    def sign_out(self) -> None:
        self.reset_chat()
        self.user_id = None
        self.conversations = []
        self.chat_models = list(DEFAULT_CHAT_MODEL_CATALOG)
        self.selected_model = self.chat_models[0].id
        self.session_store.clear(clear_user=True)

    # === Health ===

    async def check_health(self) -> bool:
        try:
            await self.api.health()
            self.api_online = True
        except Exception as e:
            logger.debug(f"Health check failed: {e}")
            self.api_online = False
        finally:
            self.last_health_check_at = datetime.now(timezone.utc)
        return self.api_online

    # === Conversations ===

    async def load_conversations(self, q: Optional[str] = None) -> List[Dict[str, Any]]:
        if not self.user_id:
            self.conversations = []
            return self.conversations

        self.conversations_loading = True
        try:
            data = await self.api.list_conversations(self.user_id, q=q)
            self.conversations = list(data.get("conversations") or [])
        finally:
            self.conversations_loading = False
        return self.conversations

    async def start_new_conversation(self, mentor_id: Optional[str] = None) -> Dict[str, Any]:
        mentor = mentor_id or self.active_mentor
        summary = await self.api.create_conversation(user_id=self.user_id, mentor_id=mentor)
        self.session_id = summary["id"]
        self.user_id = summary.get("userId") or self.user_id
        self.active_mentor = summary.get("mentorId") or mentor
        self.messages = []
        self.error = None
        self.status = "idle"
        self._persist()
        await self.load_conversations()
        return summary

    async def select_conversation(self, conversation_id: str) -> bool:
        """
        Load an existing conversation.

        On failure the stored session is cleared and the state falls back to a
        fresh chat with error set; returns False instead of raising.
        """
        try:
            data = await self.api.get_conversation(conversation_id, self.user_id)
        except Exception as e:
            logger.info(f"Could not load conversation {conversation_id}: {e}")
            self.error = LOAD_ERROR_MESSAGE
            self.api_online = False
            self.session_id = None
            self.messages = []
            self.session_store.clear(clear_user=False)
            return False

        self.session_id = data.get("conversationId") or conversation_id
        self.user_id = data.get("userId") or self.user_id
        self.active_mentor = data.get("mentorId") or DEFAULT_MENTOR_ID
        self.messages = [
            ChatMessage.from_history(item, self.active_mentor) for item in data.get("history") or []
        ]
        self.error = None
        self.api_online = True
        self._persist()
        return True

    async def rename_conversation(self, conversation_id: str, title: str) -> Dict[str, Any]:
        if not self.user_id:
            raise ValidationError("Sign in before renaming conversations", parameter="userId")
        summary = await self.api.rename_conversation(self.user_id, conversation_id, title)
        self.conversations = [summary if c.get("id") == conversation_id else c for c in self.conversations]
        return summary

    async def delete_conversation(self, conversation_id: str) -> None:
        if not self.user_id:
            raise ValidationError("Sign in before deleting conversations", parameter="userId")
        await self.api.delete_conversation(self.user_id, conversation_id)
        self.conversations = [c for c in self.conversations if c.get("id") != conversation_id]
        if self.session_id == conversation_id:
            self.reset_chat()

    # === Model catalog ===

    def _sync_selected_model(self) -> None:
        ids = [entry.id for entry in self.chat_models]
        if self.selected_model not in ids:
            self.selected_model = ids[0] if ids else None

    async def load_chat_models(self) -> List[ChatModelEntry]:
        if not self.user_id:
            self.chat_models = list(DEFAULT_CHAT_MODEL_CATALOG)
        else:
            data = await self.api.list_chat_models(self.user_id)
            self.chat_models = normalize_catalog(data.get("models") or [])
        self._sync_selected_model()
        return self.chat_models

    async def add_chat_model(self, model_id: str, label: str) -> List[ChatModelEntry]:
        model_id = (model_id or "").strip()
        label = (label or "").strip()
        if not self.user_id:
            raise ValidationError("Sign in before editing your models", parameter="userId")
        if not model_id or not label:
            raise ValidationError("Model id and label are required", parameter="modelId")
        if any(entry.id == model_id for entry in self.chat_models):
            raise ConflictError(DUPLICATE_MODEL_MESSAGE, model_id=model_id)

        next_position = max((entry.position for entry in self.chat_models), default=-1) + 1
        proposed = self.chat_models + [ChatModelEntry(model_id, label, next_position)]
        update = replace_attribute(
            self,
            "chat_models",
            proposed,
            commit=lambda data: normalize_catalog(data.get("models") or []),
        )
        try:
            await update.run(lambda: self.api.add_chat_model(self.user_id, model_id, label))
        except Exception:
            self.error = CATALOG_ERROR_MESSAGE
            raise
        self._sync_selected_model()
        return self.chat_models

    async def remove_chat_model(self, model_id: str) -> List[ChatModelEntry]:
        if not self.user_id:
            raise ValidationError("Sign in before editing your models", parameter="userId")
        if len(self.chat_models) <= 1:
            raise ValidationError(LAST_MODEL_MESSAGE, code=ErrorCode.VALIDATION_CATALOG_EMPTY)

        proposed = [entry for entry in self.chat_models if entry.id != model_id]
        update = replace_attribute(
            self,
            "chat_models",
            proposed,
            commit=lambda data: normalize_catalog(data.get("models") or []),
        )
        try:
            await update.run(lambda: self.api.remove_chat_model(self.user_id, model_id))
        except Exception:
            self.error = CATALOG_ERROR_MESSAGE
            raise
        self._sync_selected_model()
        return self.chat_models
