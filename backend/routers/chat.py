"""
Polychat Chat Router

POST /chat  - send one message, get the mentor reply and the full history
GET  /chat  - load a conversation's history
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from mentors import FileMeta
from routers.chat_orchestration import ChatOrchestrator
from routers.deps import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=20000)
    mentorId: Optional[str] = None
    sessionId: Optional[str] = None
    userId: Optional[str] = None
    files: List[FileMeta] = Field(default_factory=list, max_length=10)
    model: Optional[str] = None
    systemPrompt: Optional[str] = None


@router.post("/chat")
async def send_chat_message(
    payload: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Send a message and return {conversationId, userId, mentorId, reply, history}."""
    return await orchestrator.send_message(
        payload.message,
        mentor_id=payload.mentorId,
        session_id=payload.sessionId,
        user_id=payload.userId,
        files=payload.files,
        model=payload.model,
        system_prompt=payload.systemPrompt,
    )


@router.get("/chat")
async def get_chat_conversation(
    conversationId: str = Query(min_length=1),
    userId: Optional[str] = Query(default=None),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Return {conversationId, userId, mentorId, history} for one conversation."""
    return await orchestrator.get_conversation(conversationId, user_id=userId)
