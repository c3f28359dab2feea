"""
Polychat Chat Models Router
Per-user model catalog.

GET    /chat-models  - list (seeds defaults on first access)
POST   /chat-models  - add (409 on duplicate)
DELETE /chat-models  - remove (400 when it would empty the list)
"""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from routers.deps import get_catalog
from services.chat_models import ChatModelCatalog, catalog_payload

logger = logging.getLogger(__name__)

router = APIRouter()


class AddChatModelRequest(BaseModel):
    userId: str = Field(min_length=1)
    modelId: str = Field(min_length=1, max_length=200)
    label: str = Field(min_length=1, max_length=200)


class RemoveChatModelRequest(BaseModel):
    userId: str = Field(min_length=1)
    modelId: str = Field(min_length=1)


@router.get("/chat-models")
async def list_chat_models(
    userId: str = Query(min_length=1),
    catalog: ChatModelCatalog = Depends(get_catalog),
):
    return catalog_payload(await catalog.list_models(userId))


@router.post("/chat-models")
async def add_chat_model(
    payload: AddChatModelRequest,
    catalog: ChatModelCatalog = Depends(get_catalog),
):
    models = await catalog.add_model(payload.userId, payload.modelId, payload.label)
    logger.info(f"[chat-models] {payload.userId} added {payload.modelId}")
    return catalog_payload(models)


@router.delete("/chat-models")
async def remove_chat_model(
    payload: RemoveChatModelRequest,
    catalog: ChatModelCatalog = Depends(get_catalog),
):
    models = await catalog.remove_model(payload.userId, payload.modelId)
    logger.info(f"[chat-models] {payload.userId} removed {payload.modelId}")
    return catalog_payload(models)
