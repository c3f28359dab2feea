"""
Polychat chat client - async API client plus client-side session state.
"""

from chat_client.api import ChatApiClient
from chat_client.optimistic import OptimisticUpdate, replace_attribute
from chat_client.session_store import (
    InMemorySessionStore,
    JsonFileSessionStore,
    SessionIds,
    SessionStore,
)
from chat_client.state import (
    LOAD_ERROR_MESSAGE,
    SEND_ERROR_MESSAGE,
    ChatMessage,
    ChatSessionState,
)

__all__ = [
    "ChatApiClient",
    "OptimisticUpdate",
    "replace_attribute",
    "SessionStore",
    "SessionIds",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "ChatMessage",
    "ChatSessionState",
    "SEND_ERROR_MESSAGE",
    "LOAD_ERROR_MESSAGE",
]
