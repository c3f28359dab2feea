"""
Tests for the chat client: API error mapping, session persistence and the
client-side session state machine (optimistic sends and catalog edits).

A scripted fake server sits behind httpx.MockTransport.
"""

import asyncio
import inspect
import json

import httpx
import pytest

from chat_client import (
    LOAD_ERROR_MESSAGE,
    SEND_ERROR_MESSAGE,
    ChatApiClient,
    ChatSessionState,
    InMemorySessionStore,
    JsonFileSessionStore,
    OptimisticUpdate,
    SessionIds,
)
from errors import ApiError, ConflictError, ErrorCode, ValidationError


class FakeServer:
    """Routes (method, path) to handlers; records every request."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, handler):
        if isinstance(handler, httpx.Response):
            template = handler

            def handler(request):
                return httpx.Response(template.status_code, content=template.content, headers=template.headers)

        self.routes[(method, path)] = handler

    async def __call__(self, request):
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": True, "message": "Not found"})
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def paths(self):
        return [(r.method, r.url.path) for r in self.requests]


def _history(*pairs):
    return [
        {"id": f"m{i}", "role": role, "content": content, "createdAt": "2026-01-01T00:00:00+00:00", "mentor": "bible"}
        for i, (role, content) in enumerate(pairs)
    ]


def _chat_reply(request):
    body = json.loads(request.content)
    return httpx.Response(
        200,
        json={
            "conversationId": "conv-1",
            "userId": body["userId"],
            "mentorId": body["mentorId"],
            "reply": "Answer",
            "history": _history(("user", body["message"]), ("assistant", "Answer")),
        },
    )


CATALOG = [
    {"id": "a/one", "label": "One", "position": 0},
    {"id": "b/two", "label": "Two", "position": 1},
]


@pytest.fixture
def server():
    server = FakeServer()
    server.on("GET", "/health", httpx.Response(200, json={"status": "ok"}))
    server.on("GET", "/conversations", httpx.Response(200, json={"conversations": [{"id": "conv-1"}]}))
    server.on("GET", "/chat-models", httpx.Response(200, json={"models": CATALOG}))
    return server


@pytest.fixture
def api(server):
    return ChatApiClient("http://polychat.test", transport=httpx.MockTransport(server))


@pytest.fixture
def session_store():
    return InMemorySessionStore(SessionIds(user_id="user-1"))


@pytest.fixture
def session(api, session_store):
    return ChatSessionState(api, session_store, user_id="user-1")


class TestChatApiClient:
    def test_error_body_message_and_status(self, server, api):
        server.on("POST", "/chat", httpx.Response(429, json={"error": True, "message": "Too many messages"}))
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(api.send_chat({"message": "hi"}))
        assert exc_info.value.status == 429
        assert exc_info.value.message == "Too many messages"

    def test_non_json_error_uses_default_message(self, server, api):
        server.on("GET", "/health", httpx.Response(503, text="maintenance"))
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(api.health())
        assert exc_info.value.status == 503
        assert "503" in exc_info.value.message

    def test_transport_failure_has_no_status(self, server, api):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        server.on("GET", "/health", refuse)
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(api.health())
        assert exc_info.value.status is None

    def test_none_values_are_dropped(self, server, api):
        server.on("DELETE", "/conversations", httpx.Response(200, json={"success": True}))
        asyncio.run(api.delete_conversation("user-1", "conv-1"))
        asyncio.run(api.list_conversations("user-1"))

        delete_request, list_request = server.requests
        assert json.loads(delete_request.content) == {"userId": "user-1", "conversationId": "conv-1"}
        assert dict(list_request.url.params) == {"userId": "user-1"}


class TestSessionStores:
    def test_in_memory_clear_keeps_user(self):
        store = InMemorySessionStore()
        store.save(SessionIds(session_id="conv-1", user_id="user-1"))
        store.clear(clear_user=False)
        assert store.load() == SessionIds(session_id=None, user_id="user-1")

    def test_json_file_round_trip(self, tmp_path):
        path = tmp_path / "state" / "session.json"
        store = JsonFileSessionStore(path)
        assert store.load() == SessionIds()

        store.save(SessionIds(session_id="conv-1", user_id="user-1"))
        store.save(SessionIds(session_id="conv-2"))
        assert JsonFileSessionStore(path).load() == SessionIds(session_id="conv-2", user_id="user-1")

        store.clear()
        assert store.load() == SessionIds()

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json")
        assert JsonFileSessionStore(path).load() == SessionIds()


class TestOptimisticUpdate:
    def test_reverts_on_failure(self):
        state = {"items": [1, 2]}

        async def failing():
            raise RuntimeError("offline")

        update = OptimisticUpdate(
            snapshot=lambda: list(state["items"]),
            apply=lambda: state["items"].append(3),
            revert=lambda saved: state.update(items=saved),
        )
        with pytest.raises(RuntimeError):
            asyncio.run(update.run(failing))
        assert state["items"] == [1, 2]

    def test_commit_on_success(self):
        state = {"items": [1]}

        async def ok():
            return [1, 2, 99]

        update = OptimisticUpdate(
            snapshot=lambda: list(state["items"]),
            apply=lambda: state["items"].append(2),
            revert=lambda saved: state.update(items=saved),
            commit=lambda result: state.update(items=result),
        )
        assert asyncio.run(update.run(ok)) == [1, 2, 99]
        assert state["items"] == [1, 2, 99]


class TestSendMessage:
    def test_success_adopts_server_history(self, server, session, session_store):
        server.on("POST", "/chat", _chat_reply)

        async def scenario():
            await session.send_message("What does John 3:16 mean?")
            await session.wait_for_background()

        asyncio.run(scenario())

        assert [m.content for m in session.messages] == ["What does John 3:16 mean?", "Answer"]
        assert session.session_id == "conv-1"
        assert session.active_mentor == "bible"
        assert session.api_online is True
        assert session.status == "idle"
        assert session.error is None
        assert session.conversations == [{"id": "conv-1"}]
        assert session_store.load() == SessionIds(session_id="conv-1", user_id="user-1")

        sent = json.loads(server.requests[0].content)
        assert sent["mentorId"] == "bible"
        assert sent["model"] == session.selected_model
        assert "sessionId" not in sent

    def test_failure_rolls_back_optimistic_message(self, server, session, session_store):
        server.on("POST", "/chat", httpx.Response(500, json={"error": True, "message": "Unexpected error"}))

        with pytest.raises(ApiError):
            asyncio.run(session.send_message("hello"))

        assert session.messages == []
        assert session.error == SEND_ERROR_MESSAGE
        assert session.api_online is False
        assert session.status == "error"
        assert session_store.load().session_id is None

    def test_rate_limited_send_rolls_back(self, server, session):
        server.on("POST", "/chat", httpx.Response(429, json={"error": True, "message": "Too many messages"}))

        with pytest.raises(ApiError) as exc_info:
            asyncio.run(session.send_message("hello"))

        assert exc_info.value.status == 429
        assert session.error == SEND_ERROR_MESSAGE
        assert len(session.messages) == 0

    def test_empty_message_makes_no_request(self, server, session):
        with pytest.raises(ValidationError):
            asyncio.run(session.send_message("   "))
        assert server.requests == []

    def test_missing_user_makes_no_request(self, server, api):
        anonymous = ChatSessionState(api)
        with pytest.raises(ValidationError):
            asyncio.run(anonymous.send_message("hello"))
        assert server.requests == []

    def test_concurrent_send_rejected_and_optimistic_message_visible(self, server, session):
        release = asyncio.Event()

        async def slow_reply(request):
            await release.wait()
            return _chat_reply(request)

        server.on("POST", "/chat", slow_reply)

        async def scenario():
            first = asyncio.create_task(session.send_message("hello"))
            while not server.requests:
                await asyncio.sleep(0)

            in_flight = [(m.role, m.content) for m in session.messages]
            with pytest.raises(ValidationError) as exc_info:
                await session.send_message("second")

            release.set()
            await first
            await session.wait_for_background()
            return in_flight, exc_info.value.code

        in_flight, code = asyncio.run(scenario())
        assert in_flight == [("user", "hello")]
        assert code == ErrorCode.VALIDATION_BUSY
        assert [m.content for m in session.messages] == ["hello", "Answer"]

    def test_cancelled_send_frees_the_session(self, server, session):
        never = asyncio.Event()

        async def hang(request):
            await never.wait()

        server.on("POST", "/chat", hang)

        async def scenario():
            pending = asyncio.create_task(session.send_message("hello"))
            while not server.requests:
                await asyncio.sleep(0)
            pending.cancel()
            with pytest.raises(asyncio.CancelledError):
                await pending
            after_cancel = (session.status, list(session.messages))

            server.on("POST", "/chat", _chat_reply)
            await session.send_message("again")
            await session.wait_for_background()
            return after_cancel

        status, messages = asyncio.run(scenario())
        assert status == "idle"
        assert messages == []
        assert session.status == "idle"
        assert [m.content for m in session.messages] == ["again", "Answer"]

    def test_manual_mentor_lock_is_sent(self, server, session):
        server.on("POST", "/chat", _chat_reply)
        session.set_mentor("chess")

        async def scenario():
            await session.send_message("What does John 3:16 mean?")
            await session.wait_for_background()

        asyncio.run(scenario())
        assert json.loads(server.requests[0].content)["mentorId"] == "chess"
        assert session.active_mentor == "chess"


class TestResetAndHealth:
    def test_reset_returns_to_auto_selection(self, session, session_store):
        session_store.save(SessionIds(session_id="conv-1"))
        session.session_id = "conv-1"
        session.error = "old error"
        session.set_mentor("bible")

        session.reset_chat()

        assert session.messages == []
        assert session.session_id is None
        assert session.error is None
        assert session.selection_mode == "auto"
        assert session.locked_mentor_id is None
        assert session.active_mentor == "general"
        assert session_store.load() == SessionIds(session_id=None, user_id="user-1")

    def test_sign_out_clears_user(self, session, session_store):
        session.sign_out()
        assert session.user_id is None
        assert session_store.load() == SessionIds()

    def test_selection_mode_toggle(self, session):
        session.active_mentor = "stock"
        session.set_selection_mode("manual")
        assert session.locked_mentor_id == "stock"
        session.set_selection_mode("auto")
        assert session.locked_mentor_id is None
        with pytest.raises(ValidationError):
            session.set_selection_mode("random")

    def test_health_ok(self, session):
        assert asyncio.run(session.check_health()) is True
        assert session.api_online is True
        assert session.last_health_check_at is not None

    def test_health_failure_marks_offline(self, server, session):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        server.on("GET", "/health", refuse)
        assert asyncio.run(session.check_health()) is False
        assert session.api_online is False
        assert session.last_health_check_at is not None

    def test_health_monitor_probes_until_closed(self, server, session):
        async def scenario():
            monitor = session.start_health_monitor(interval_s=60)
            assert session.start_health_monitor(interval_s=60) is monitor
            while session.last_health_check_at is None:
                await asyncio.sleep(0)
            await session.aclose()
            return monitor

        monitor = asyncio.run(scenario())
        assert monitor.done()
        assert session.api_online is True
        assert server.paths() == [("GET", "/health")]


class TestConversations:
    def test_load_without_user_is_empty(self, server, api):
        anonymous = ChatSessionState(api)
        assert asyncio.run(anonymous.load_conversations()) == []
        assert server.requests == []

    def test_start_new_conversation(self, server, session, session_store):
        server.on(
            "POST",
            "/conversations",
            httpx.Response(200, json={"id": "conv-9", "userId": "user-1", "mentorId": "chess"}),
        )
        session.messages = ["stale"]
        asyncio.run(session.start_new_conversation("chess"))

        assert session.session_id == "conv-9"
        assert session.active_mentor == "chess"
        assert session.messages == []
        assert session_store.load().session_id == "conv-9"
        assert ("GET", "/conversations") in server.paths()

    def test_select_conversation_failure_starts_fresh(self, server, session, session_store):
        server.on("GET", "/chat", httpx.Response(404, json={"error": True, "message": "Conversation not found"}))
        session_store.save(SessionIds(session_id="conv-1"))

        assert asyncio.run(session.select_conversation("conv-1")) is False
        assert session.error == LOAD_ERROR_MESSAGE
        assert session.api_online is False
        assert session.session_id is None
        assert session_store.load() == SessionIds(session_id=None, user_id="user-1")

    def test_initialize_from_storage(self, server, api):
        server.on(
            "GET",
            "/chat",
            httpx.Response(
                200,
                json={
                    "conversationId": "conv-1",
                    "userId": "user-1",
                    "mentorId": "bible",
                    "history": _history(("user", "q"), ("assistant", "a")),
                },
            ),
        )
        store = InMemorySessionStore(SessionIds(session_id="conv-1", user_id="user-1"))
        session = ChatSessionState(api, store)

        async def scenario():
            await session.initialize_from_storage()
            await session.wait_for_background()

        asyncio.run(scenario())

        assert session.user_id == "user-1"
        assert session.active_mentor == "bible"
        assert [m.content for m in session.messages] == ["q", "a"]
        assert session.conversations == [{"id": "conv-1"}]
        assert [m.id for m in session.chat_models] == ["a/one", "b/two"]
        assert session.api_online is True

    def test_background_failure_is_swallowed(self, server, session):
        server.on("GET", "/conversations", httpx.Response(500, json={"error": True, "message": "boom"}))

        async def scenario():
            await session.initialize_from_storage()
            await session.wait_for_background()

        asyncio.run(scenario())
        assert session.conversations == []
        assert session.conversations_loading is False


class TestChatModelCatalog:
    def _load(self, session):
        asyncio.run(session.load_chat_models())

    def test_load_selects_first_model(self, session):
        self._load(session)
        assert session.selected_model == "a/one"

    def test_add_is_optimistic_then_committed(self, server, session):
        self._load(session)
        release = asyncio.Event()
        committed = CATALOG + [{"id": "c/three", "label": "Three", "position": 2}]

        async def slow_add(request):
            await release.wait()
            return httpx.Response(200, json={"models": committed})

        server.on("POST", "/chat-models", slow_add)

        async def scenario():
            task = asyncio.create_task(session.add_chat_model("c/three", "Three"))
            while len(server.requests) < 2:
                await asyncio.sleep(0)
            during = [m.id for m in session.chat_models]
            release.set()
            await task
            return during

        during = asyncio.run(scenario())
        assert during == ["a/one", "b/two", "c/three"]
        assert [m.id for m in session.chat_models] == ["a/one", "b/two", "c/three"]

    def test_add_failure_rolls_back(self, server, session):
        self._load(session)
        server.on("POST", "/chat-models", httpx.Response(500, json={"error": True, "message": "boom"}))

        with pytest.raises(ApiError):
            asyncio.run(session.add_chat_model("c/three", "Three"))
        assert [m.id for m in session.chat_models] == ["a/one", "b/two"]

    def test_add_duplicate_rejected_locally(self, server, session):
        self._load(session)
        with pytest.raises(ConflictError):
            asyncio.run(session.add_chat_model("a/one", "One again"))
        assert ("POST", "/chat-models") not in server.paths()

    def test_remove_failure_rolls_back(self, server, session):
        self._load(session)
        server.on("DELETE", "/chat-models", httpx.Response(500, json={"error": True, "message": "boom"}))

        with pytest.raises(ApiError):
            asyncio.run(session.remove_chat_model("a/one"))
        assert [m.id for m in session.chat_models] == ["a/one", "b/two"]
        assert session.selected_model == "a/one"

    def test_remove_selected_model_moves_selection(self, server, session):
        self._load(session)
        server.on("DELETE", "/chat-models", httpx.Response(200, json={"models": CATALOG[1:]}))

        asyncio.run(session.remove_chat_model("a/one"))
        assert [m.id for m in session.chat_models] == ["b/two"]
        assert session.selected_model == "b/two"

    def test_remove_last_model_rejected_locally(self, server, session):
        server.on("GET", "/chat-models", httpx.Response(200, json={"models": CATALOG[:1]}))
        self._load(session)

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(session.remove_chat_model("a/one"))
        assert exc_info.value.code == ErrorCode.VALIDATION_CATALOG_EMPTY
        assert ("DELETE", "/chat-models") not in server.paths()
