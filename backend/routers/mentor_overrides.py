"""
Polychat Mentor Overrides Router
Per-user system prompt overrides, keyed by the routed mentor id
(unknown tags fall back to general, as in routing).

GET    /mentor-overrides  - {mentorId, systemPrompt|null}
POST   /mentor-overrides  - upsert
DELETE /mentor-overrides  - clear
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from mentors import DEFAULT_MENTOR_ID, resolve_mentor_id
from routers.deps import get_overrides
from services.mentor_overrides import MentorOverrideStore, override_payload

router = APIRouter()


class MentorOverrideKey(BaseModel):
    userId: str = Field(min_length=1)
    mentorId: str = Field(default=DEFAULT_MENTOR_ID, min_length=1)


class SaveMentorOverrideRequest(MentorOverrideKey):
    systemPrompt: str = Field(min_length=1, max_length=8000)


@router.get("/mentor-overrides")
async def get_mentor_override(
    userId: str = Query(min_length=1),
    mentorId: str = Query(default=DEFAULT_MENTOR_ID, min_length=1),
    overrides: MentorOverrideStore = Depends(get_overrides),
):
    mentor_id = resolve_mentor_id(mentorId)
    return override_payload(mentor_id, await overrides.get(userId, mentor_id))


@router.post("/mentor-overrides")
async def save_mentor_override(
    payload: SaveMentorOverrideRequest,
    overrides: MentorOverrideStore = Depends(get_overrides),
):
    mentor_id = resolve_mentor_id(payload.mentorId)
    prompt = await overrides.set(payload.userId, mentor_id, payload.systemPrompt)
    return override_payload(mentor_id, prompt)


@router.delete("/mentor-overrides")
async def delete_mentor_override(
    payload: MentorOverrideKey,
    overrides: MentorOverrideStore = Depends(get_overrides),
):
    mentor_id = resolve_mentor_id(payload.mentorId)
    await overrides.delete(payload.userId, mentor_id)
    return override_payload(mentor_id, None)
