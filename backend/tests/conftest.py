"""
Shared pytest fixtures for the Polychat backend tests.

Persistence runs against an in-memory SQLiteDatabase (same query interface
as the PostgreSQL manager); the language-model provider is replaced by a
scripted fake.
"""

import asyncio

import pytest

from services.chat_models import ChatModelCatalog
from services.conversation_store import ConversationStore
from services.database import SQLiteDatabase
from services.llm_client import CompletionProvider
from services.mentor_overrides import MentorOverrideStore


class FakeProvider(CompletionProvider):
    """Records every call and answers with a fixed reply (or raises)."""

    def __init__(self, reply="This is the mentor's answer.", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def complete(self, system_prompt, message, model, timeout=None):
        self.calls.append(
            {"system_prompt": system_prompt, "message": message, "model": model, "timeout": timeout}
        )
        if self.error is not None:
            raise self.error
        return self.reply


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def db():
    """Connected in-memory database with the full schema."""
    database = SQLiteDatabase(":memory:")
    run(database.connect())
    yield database
    run(database.disconnect())


@pytest.fixture
def store(db):
    return ConversationStore(db, guest_email_domain="test.local")


@pytest.fixture
def catalog(db):
    return ChatModelCatalog(db, member_email_domain="test.local")


@pytest.fixture
def overrides(db):
    return MentorOverrideStore(db)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_provider():
    """Factory for providers with a custom reply or error."""
    return FakeProvider
