"""
Tests for the send-message state machine and the conversation read path.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from errors import (
    ForbiddenError,
    NotFoundOrForbiddenError,
    ProviderUnavailable,
    RateLimitExceeded,
    ValidationError,
)
from mentors import FileMeta, get_default_prompt
from middleware import ConversationRateLimiter
from routers.chat_orchestration import ChatOrchestrator, SendSession, SendState
from services.reply_generator import ReplyGenerator


def _orchestrator(store, provider, overrides=None, max_messages=20, config=None):
    return ChatOrchestrator(
        store=store,
        rate_limiter=ConversationRateLimiter(store, max_messages=max_messages, window_seconds=60),
        reply_generator=ReplyGenerator(provider, timeout_s=2, default_model="openai/gpt-4o-mini"),
        overrides=overrides,
        config=config,
    )


class TestSendSession:
    def test_states_only_move_forward(self):
        session = SendSession(message="hi")
        session.advance(SendState.ROUTING)
        session.advance(SendState.RATE_LIMIT_CHECK)
        with pytest.raises(RuntimeError):
            session.advance(SendState.ROUTING)

    def test_visited_states_recorded(self):
        session = SendSession(message="hi")
        session.advance(SendState.ROUTING)
        session.advance(SendState.PERSIST_USER_MESSAGE)
        assert session.to_dict()["visited"] == ["routing", "persist-user-message"]


class TestSendMessage:
    def test_scripture_question_end_to_end(self, store, provider):
        orchestrator = _orchestrator(store, provider)

        async def scenario():
            first = await orchestrator.send_message("What does John 3:16 say?")
            second = await orchestrator.send_message(
                "And the next verse?", session_id=first["conversationId"], user_id=first["userId"]
            )
            record = await store.get_conversation(first["conversationId"])
            return first, second, record

        first, second, record = asyncio.run(scenario())

        assert first["mentorId"] == "bible"
        assert first["userId"]
        assert first["reply"] == "This is the mentor's answer."
        assert [m["role"] for m in first["history"]] == ["user", "assistant"]
        assert first["history"][0]["mentor"] == "bible"

        assert second["conversationId"] == first["conversationId"]
        assert [m["role"] for m in second["history"]] == ["user", "assistant", "user", "assistant"]
        assert record.user_id == first["userId"]
        assert record.mentor == "bible"
        assert record.preview == "What does John 3:16 say?"
        assert provider.calls[0]["system_prompt"] == get_default_prompt("bible")

    def test_guest_user_created_when_missing(self, store, provider):
        result = asyncio.run(_orchestrator(store, provider).send_message("hello there"))
        assert result["userId"]
        assert result["mentorId"] == "general"

    def test_explicit_mentor_wins_and_unknown_becomes_general(self, store, provider):
        orchestrator = _orchestrator(store, provider)
        chess = asyncio.run(orchestrator.send_message("What does John 3:16 mean?", mentor_id="chess"))
        unknown = asyncio.run(orchestrator.send_message("What does John 3:16 mean?", mentor_id="astrology"))
        assert chess["mentorId"] == "chess"
        assert unknown["mentorId"] == "general"

    def test_files_route_and_are_stored(self, store, provider):
        files = [FileMeta(name="board.png", type="image/png", size=1024)]
        result = asyncio.run(_orchestrator(store, provider).send_message("Any ideas?", files=files))
        assert result["mentorId"] == "chess"
        assert result["history"][0]["files"] == [{"name": "board.png", "type": "image/png", "size": 1024}]

    def test_stale_session_id_starts_new_conversation(self, store, provider):
        result = asyncio.run(
            _orchestrator(store, provider).send_message("hello", session_id="gone", user_id="user-1")
        )
        assert result["conversationId"] != "gone"
        assert len(result["history"]) == 2

    def test_other_users_session_id_starts_their_own_conversation(self, store, provider):
        orchestrator = _orchestrator(store, provider)

        async def scenario():
            alice = await orchestrator.send_message("my secret diary", user_id="alice")
            mallory = await orchestrator.send_message(
                "hi", session_id=alice["conversationId"], user_id="mallory"
            )
            alice_messages = await store.list_messages(alice["conversationId"])
            return alice, mallory, alice_messages

        alice, mallory, alice_messages = asyncio.run(scenario())
        assert mallory["conversationId"] != alice["conversationId"]
        assert [m["content"] for m in mallory["history"]] == ["hi", "This is the mentor's answer."]
        assert [m.content for m in alice_messages] == ["my secret diary", "This is the mentor's answer."]

    def test_blank_message_rejected_before_any_write(self, store, provider, db):
        with pytest.raises(ValidationError):
            asyncio.run(_orchestrator(store, provider).send_message("   ", user_id="user-1"))
        assert asyncio.run(db.fetchval("SELECT COUNT(*) FROM messages")) == 0
        assert provider.calls == []

    def test_rate_limited_send_writes_nothing(self, store, provider, db):
        orchestrator = _orchestrator(store, provider, max_messages=1)
        first = asyncio.run(orchestrator.send_message("hello", user_id="user-1"))

        with pytest.raises(RateLimitExceeded):
            asyncio.run(
                orchestrator.send_message("again", session_id=first["conversationId"], user_id="user-1")
            )
        assert asyncio.run(db.fetchval("SELECT COUNT(*) FROM messages")) == 2
        assert len(provider.calls) == 1

    def test_provider_failure_keeps_user_message(self, store, make_provider):
        provider = make_provider(error=ProviderUnavailable())
        orchestrator = _orchestrator(store, provider)

        with pytest.raises(ProviderUnavailable):
            asyncio.run(orchestrator.send_message("What does John 3:16 mean?", user_id="user-1"))

        conversations = asyncio.run(store.list_conversations("user-1"))
        assert len(conversations) == 1
        messages = asyncio.run(store.list_messages(conversations[0].id))
        assert [(m.role, m.content) for m in messages] == [("user", "What does John 3:16 mean?")]
        assert conversations[0].preview == "What does John 3:16 mean?"


class TestSystemPromptPrecedence:
    def test_request_prompt_beats_saved_override(self, store, provider, overrides):
        asyncio.run(overrides.set("user-1", "general", "Saved prompt."))
        orchestrator = _orchestrator(store, provider, overrides=overrides)
        asyncio.run(orchestrator.send_message("hello", user_id="user-1", system_prompt="Request prompt."))
        assert provider.calls[0]["system_prompt"] == "Request prompt."

    def test_saved_override_beats_default(self, store, provider, overrides):
        asyncio.run(overrides.set("user-1", "general", "Saved prompt."))
        orchestrator = _orchestrator(store, provider, overrides=overrides)
        asyncio.run(orchestrator.send_message("hello", user_id="user-1"))
        assert provider.calls[0]["system_prompt"] == "Saved prompt."

    def test_override_for_other_mentor_ignored(self, store, provider, overrides):
        asyncio.run(overrides.set("user-1", "chess", "Chess prompt."))
        orchestrator = _orchestrator(store, provider, overrides=overrides)
        asyncio.run(orchestrator.send_message("hello", user_id="user-1"))
        assert provider.calls[0]["system_prompt"] == get_default_prompt("general")


class TestGetConversation:
    def test_returns_history(self, store, provider):
        orchestrator = _orchestrator(store, provider)

        async def scenario():
            sent = await orchestrator.send_message("Is this checkmate?", user_id="user-1")
            return sent, await orchestrator.get_conversation(sent["conversationId"], user_id="user-1")

        sent, loaded = asyncio.run(scenario())
        assert loaded["mentorId"] == "chess"
        assert loaded["history"] == sent["history"]

    def test_unknown_conversation_not_found(self, store, provider):
        with pytest.raises(NotFoundOrForbiddenError):
            asyncio.run(_orchestrator(store, provider).get_conversation("missing"))

    def test_other_user_forbidden(self, store, provider):
        orchestrator = _orchestrator(store, provider)
        sent = asyncio.run(orchestrator.send_message("hello", user_id="user-1"))
        with pytest.raises(ForbiddenError):
            asyncio.run(orchestrator.get_conversation(sent["conversationId"], user_id="user-2"))

    def test_missing_user_id_allowed_unless_required(self, store, provider):
        sent = asyncio.run(_orchestrator(store, provider).send_message("hello", user_id="user-1"))

        open_read = asyncio.run(_orchestrator(store, provider).get_conversation(sent["conversationId"]))
        assert open_read["userId"] == "user-1"

        strict = MagicMock(require_owner_on_read=True, history_limit=200)
        with pytest.raises(ForbiddenError):
            asyncio.run(_orchestrator(store, provider, config=strict).get_conversation(sent["conversationId"]))


class TestOrderingWithMocks:
    def test_rate_limit_runs_before_persistence(self, provider):
        store = MagicMock()
        store.ensure_user = AsyncMock()
        limiter = MagicMock()
        limiter.enforce = AsyncMock(side_effect=RateLimitExceeded(limit=1, window_seconds=60))
        orchestrator = ChatOrchestrator(store, limiter, ReplyGenerator(provider, timeout_s=1, default_model="m"))

        with pytest.raises(RateLimitExceeded):
            asyncio.run(orchestrator.send_message("hi", session_id="c1", user_id="u1"))
        store.ensure_user.assert_not_called()
