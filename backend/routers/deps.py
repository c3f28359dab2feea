"""
Shared FastAPI dependencies for the Polychat routers.

Each store is built per request on top of the database singleton; the
completion provider lives on app.state (created in the lifespan).
Tests swap any of these through app.dependency_overrides.
"""

import logging

from fastapi import Depends, Request

from errors import PersistenceError
from middleware.rate_limit import ConversationRateLimiter
from routers.chat_orchestration import ChatOrchestrator
from services.chat_models import ChatModelCatalog
from services.conversation_store import ConversationStore
from services.database import get_database
from services.llm_client import CompletionProvider, build_provider
from services.mentor_overrides import MentorOverrideStore
from services.reply_generator import ReplyGenerator

logger = logging.getLogger(__name__)


async def get_db():
    try:
        return await get_database()
    except Exception as e:
        logger.error(f"Database unavailable: {e}")
        raise PersistenceError("Database is unavailable", operation="connect") from e


def get_provider(request: Request) -> CompletionProvider:
    provider = getattr(request.app.state, "provider", None)
    if provider is None:
        provider = build_provider()
        request.app.state.provider = provider
    return provider


def get_store(db=Depends(get_db)) -> ConversationStore:
    return ConversationStore(db)


def get_catalog(db=Depends(get_db)) -> ChatModelCatalog:
    return ChatModelCatalog(db)


def get_overrides(db=Depends(get_db)) -> MentorOverrideStore:
    return MentorOverrideStore(db)


def get_orchestrator(
    store: ConversationStore = Depends(get_store),
    overrides: MentorOverrideStore = Depends(get_overrides),
    provider: CompletionProvider = Depends(get_provider),
) -> ChatOrchestrator:
    return ChatOrchestrator(
        store=store,
        rate_limiter=ConversationRateLimiter(store),
        reply_generator=ReplyGenerator(provider),
        overrides=overrides,
    )
