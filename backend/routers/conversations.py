"""
Polychat Conversations Router
Conversation list and management for a user.

GET    /conversations           - list (search, paging)
POST   /conversations           - start a new conversation (guest user if needed)
PATCH  /conversations           - rename
DELETE /conversations           - delete (owner only)
GET    /conversations/messages  - paged message history
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from config import runtime_config
from errors import NotFoundOrForbiddenError, success_response
from mentors import DEFAULT_MENTOR_ID, resolve_mentor_id
from routers.deps import get_store
from services.conversation_store import TITLE_MAX_LENGTH, ConversationStore, history_payload, require_read_access

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateConversationRequest(BaseModel):
    userId: Optional[str] = None
    mentorId: Optional[str] = None


class RenameConversationRequest(BaseModel):
    userId: str = Field(min_length=1)
    conversationId: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)


class DeleteConversationRequest(BaseModel):
    userId: str = Field(min_length=1)
    conversationId: str = Field(min_length=1)


@router.get("/conversations")
async def list_conversations(
    userId: str = Query(min_length=1),
    q: Optional[str] = Query(default=None, max_length=200),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    store: ConversationStore = Depends(get_store),
):
    """List a user's conversations, most recently active first."""
    records = await store.list_conversations(userId, q=q, limit=limit, offset=offset)
    return {"conversations": [record.to_summary() for record in records]}


@router.post("/conversations")
async def create_conversation(
    payload: CreateConversationRequest,
    store: ConversationStore = Depends(get_store),
):
    user_id = await store.ensure_user(payload.userId)
    mentor = resolve_mentor_id(payload.mentorId) if payload.mentorId else DEFAULT_MENTOR_ID
    record = await store.create_conversation(user_id, mentor)
    return record.to_summary()


@router.patch("/conversations")
async def rename_conversation(
    payload: RenameConversationRequest,
    store: ConversationStore = Depends(get_store),
):
    record = await store.rename_conversation(payload.userId, payload.conversationId, payload.title)
    return record.to_summary()


@router.delete("/conversations")
async def delete_conversation(
    payload: DeleteConversationRequest,
    store: ConversationStore = Depends(get_store),
):
    await store.delete_conversation(payload.userId, payload.conversationId)
    return success_response()


@router.get("/conversations/messages")
async def list_conversation_messages(
    conversationId: str = Query(min_length=1),
    userId: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    before: Optional[datetime] = Query(default=None),
    store: ConversationStore = Depends(get_store),
):
    """Page backwards through a conversation: the `limit` messages older than `before`."""
    record = await store.get_conversation(conversationId)
    if record is None:
        raise NotFoundOrForbiddenError(
            "Conversation not found", resource_type="conversation", resource_id=conversationId
        )
    require_read_access(record, userId, require_user=runtime_config.require_owner_on_read)

    if before is not None and before.tzinfo is None:
        before = before.replace(tzinfo=timezone.utc)
    messages = await store.list_messages(conversationId, limit=limit, before=before)
    return {"conversationId": conversationId, "messages": history_payload(messages)}
