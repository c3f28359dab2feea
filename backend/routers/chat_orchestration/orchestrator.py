"""
Polychat Chat Orchestrator - the send-message state machine.

One orchestrated send walks these states:

    routing -> rate-limit-check -> persist-user-message -> update-preview
            -> generate-reply -> persist-assistant-message -> touch-timestamp
            -> respond

Failure semantics:
- rate-limit-check fails before anything is written
- generate-reply failures keep the user message (no server-side rollback)
  and write no assistant message
- every error propagates typed; nothing is swallowed here

get_conversation is the separate read path.
"""

import logging
from typing import Any, Dict, Optional, Sequence

from config import runtime_config
from errors import NotFoundOrForbiddenError, ValidationError
from logging_config import log_message_in, log_message_out
from mentors import FileMeta, classify, resolve_mentor_id
from services.conversation_store import ConversationStore, history_payload, require_read_access

from .session import SendSession, SendState

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """Composes classifier, store, rate limiter and reply generator.

    Args:
        store: ConversationStore
        rate_limiter: object with ``async enforce(conversation_id)``
        reply_generator: ReplyGenerator
        overrides: optional MentorOverrideStore for saved per-user prompts
    """

    def __init__(self, store: ConversationStore, rate_limiter, reply_generator, overrides=None, config=None):
        self.store = store
        self.rate_limiter = rate_limiter
        self.reply_generator = reply_generator
        self.overrides = overrides
        self.config = config or runtime_config

    def route(self, message: str, mentor_id: Optional[str], files: Sequence[FileMeta]) -> str:
        """Explicit mentorId wins (unknown tags become general); otherwise classify."""
        if mentor_id:
            return resolve_mentor_id(mentor_id)
        return classify(message, files)

    async def _resolve_override(self, session: SendSession) -> Optional[str]:
        if session.system_prompt and session.system_prompt.strip():
            return session.system_prompt
        if self.overrides is None or not session.user_id:
            return None
        return await self.overrides.get(session.user_id, session.mentor)

    async def send_message(
        self,
        message: str,
        mentor_id: Optional[str] = None,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        files: Optional[Sequence[FileMeta]] = None,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Handle one POST /chat.

        Returns:
            {conversationId, userId, mentorId, reply, history}
        """
        text = (message or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty", parameter="message")

        files = list(files or [])
        session = SendSession(
            message=text,
            requested_mentor=mentor_id,
            session_id=session_id,
            user_id=user_id,
            files=[f.model_dump(by_alias=True, exclude_none=True) for f in files],
            model=model,
            system_prompt=system_prompt,
        )

        session.advance(SendState.ROUTING)
        session.mentor = self.route(text, mentor_id, files)
        log_message_in(logger, text, mentor=session.mentor, conversation=session_id or "new", files=len(files))

        # A new conversation has no history to count, so only a supplied id is checked
        session.advance(SendState.RATE_LIMIT_CHECK)
        if session_id:
            await self.rate_limiter.enforce(session_id)

        session.advance(SendState.PERSIST_USER_MESSAGE)
        session.user_id = await self.store.ensure_user(user_id)
        ensured = await self.store.ensure_conversation(session.user_id, session.mentor, session_id)
        session.conversation_id = ensured.id
        user_message = await self.store.append_message(
            session.conversation_id, "user", text, session.mentor, files=session.files, model=model
        )
        session.user_message_id = user_message.id

        session.advance(SendState.UPDATE_PREVIEW)
        if ensured.was_just_created:
            await self.store.update_preview_if_unset(session.conversation_id, text)

        session.advance(SendState.GENERATE_REPLY)
        override = await self._resolve_override(session)
        session.reply = await self.reply_generator.generate(
            session.mentor, text, override_prompt=override, model_id=model
        )

        session.advance(SendState.PERSIST_ASSISTANT_MESSAGE)
        assistant_message = await self.store.append_message(
            session.conversation_id, "assistant", session.reply, session.mentor, model=model
        )
        session.assistant_message_id = assistant_message.id

        session.advance(SendState.TOUCH_TIMESTAMP)
        await self.store.touch_last_message_at(session.conversation_id)

        session.advance(SendState.RESPOND)
        history = await self.store.list_messages(session.conversation_id, limit=self.config.history_limit)
        log_message_out(logger, mentor=session.mentor, chars=len(session.reply))
        logger.debug(f"Send complete: {session.to_dict()}")

        return {
            "conversationId": session.conversation_id,
            "userId": session.user_id,
            "mentorId": session.mentor,
            "reply": session.reply,
            "history": history_payload(history),
        }

    async def get_conversation(self, conversation_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Load a conversation and its ordered history.

        A supplied user_id must own the conversation. A missing user_id skips
        the check unless require_owner_on_read is enabled.
        """
        record = await self.store.get_conversation(conversation_id)
        if record is None:
            raise NotFoundOrForbiddenError(
                "Conversation not found",
                resource_type="conversation",
                resource_id=conversation_id,
            )

        require_read_access(record, user_id, require_user=self.config.require_owner_on_read)

        history = await self.store.list_messages(record.id, limit=self.config.history_limit)
        return {
            "conversationId": record.id,
            "userId": record.user_id,
            "mentorId": record.mentor,
            "history": history_payload(history),
        }
