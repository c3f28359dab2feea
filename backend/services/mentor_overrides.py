"""
Mentor Overrides - per-user, per-mentor system prompt overrides.

When a user has saved an override for a mentor, the orchestrator sends it
in place of the mentor's default system prompt.
"""

import logging
from typing import Any, Dict, Optional

from errors import PersistenceError, PolychatError, ValidationError
from services.database import utcnow

logger = logging.getLogger(__name__)


class MentorOverrideStore:
    def __init__(self, db):
        self.db = db

    async def _call(self, operation: str, method: str, query: str, *args) -> Any:
        try:
            return await getattr(self.db, method)(query, *args)
        except PolychatError:
            raise
        except Exception as e:
            logger.error(f"[mentor-overrides] {operation} failed: {e}")
            raise PersistenceError(f"Failed to {operation}", operation=operation) from e

    async def get(self, user_id: str, mentor_id: str) -> Optional[str]:
        return await self._call(
            "load mentor override",
            "fetchval",
            "SELECT system_prompt FROM mentor_overrides WHERE user_id = $1 AND mentor_id = $2",
            user_id,
            mentor_id,
        )

    async def set(self, user_id: str, mentor_id: str, system_prompt: str) -> str:
        prompt = (system_prompt or "").strip()
        if not prompt:
            raise ValidationError("System prompt cannot be empty", parameter="systemPrompt")

        await self._call(
            "save mentor override",
            "execute",
            """
            INSERT INTO mentor_overrides (user_id, mentor_id, system_prompt, updated_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id, mentor_id)
            DO UPDATE SET system_prompt = excluded.system_prompt, updated_at = excluded.updated_at
            """,
            user_id,
            mentor_id,
            prompt,
            utcnow(),
        )
        logger.info(f"[mentor-overrides] saved override for {mentor_id} ({len(prompt)} chars)")
        return prompt

    async def delete(self, user_id: str, mentor_id: str) -> None:
        await self._call(
            "delete mentor override",
            "execute",
            "DELETE FROM mentor_overrides WHERE user_id = $1 AND mentor_id = $2",
            user_id,
            mentor_id,
        )


def override_payload(mentor_id: str, system_prompt: Optional[str]) -> Dict[str, Any]:
    return {"mentorId": mentor_id, "systemPrompt": system_prompt}
