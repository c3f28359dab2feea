"""
Chat Model Catalog - per-user ordered list of selectable models.

Each user gets their own list, seeded on first access from the
chat_model_defaults table (or the built-in catalog when that table is
empty). A user-initiated removal may never empty the list; if it ends up
empty anyway it is reseeded.

Usage:
    catalog = ChatModelCatalog(db)
    models = await catalog.list_models(user_id)
    models = await catalog.add_model(user_id, "openai/gpt-4o", "OpenAI: GPT-4o")
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from errors import ConflictError, ErrorCode, PersistenceError, PolychatError, ValidationError
from services.database import affected_rows, utcnow

logger = logging.getLogger(__name__)

DUPLICATE_MODEL_MESSAGE = "That model is already in your list."
LAST_MODEL_MESSAGE = "At least one model must remain available."


@dataclass
class ChatModelEntry:
    id: str
    label: str
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_CHAT_MODEL_CATALOG: List[ChatModelEntry] = [
    ChatModelEntry("openai/gpt-4o-mini", "OpenAI: GPT-4o Mini", 0),
    ChatModelEntry("openai/gpt-4.1-mini", "OpenAI: GPT-4.1 Mini", 1),
    ChatModelEntry("openai/gpt-5-mini", "OpenAI: GPT-5 Mini", 2),
    ChatModelEntry("google/gemini-2.5-flash-lite", "Google: Gemini 2.5 Flash Lite", 3),
    ChatModelEntry("xai/grok-4-fast", "xAI: Grok 4 Fast", 4),
    ChatModelEntry("deepseek/deepseek-chat-v3.1:free", "DeepSeek Chat v3.1 (Free)", 5),
    ChatModelEntry("minimax/minimax-m2:free", "MiniMax M2 (Free)", 6),
]


def normalize_catalog(rows: Iterable[Any]) -> List[ChatModelEntry]:
    """
    Coerce rows (dicts or entries) into a clean, sorted catalog.

    Rows without an id or label are dropped. A missing or non-numeric
    position falls back to the row's index. Sorting is stable, so equal
    positions keep their input order.
    """
    entries = []
    for index, row in enumerate(rows):
        if isinstance(row, ChatModelEntry):
            row = row.to_dict()
        model_id = str(row.get("model_id") or row.get("id") or "").strip()
        label = str(row.get("label") or "").strip()
        if not model_id or not label:
            continue
        position = row.get("position")
        if isinstance(position, bool) or not isinstance(position, (int, float)):
            position = index
        entries.append(ChatModelEntry(id=model_id, label=label, position=int(position)))
    return sorted(entries, key=lambda entry: entry.position)


class ChatModelCatalog:
    """Per-user catalog stored in user_chat_models."""

    def __init__(self, db, member_email_domain: Optional[str] = None):
        self.db = db
        if member_email_domain is None:
            from config import runtime_config

            member_email_domain = runtime_config.guest_email_domain
        self.member_email_domain = member_email_domain

    async def _call(self, operation: str, method: str, query: str, *args) -> Any:
        try:
            return await getattr(self.db, method)(query, *args)
        except PolychatError:
            raise
        except Exception as e:
            logger.error(f"[chat-models] {operation} failed: {e}")
            raise PersistenceError(f"Unable to {operation}", operation=operation) from e

    async def ensure_user_record(self, user_id: str) -> None:
        """Create a users row for an externally-authenticated id on first use."""
        existing = await self._call(
            "load user profile", "fetchval", "SELECT id FROM users WHERE id = $1", user_id
        )
        if existing is not None:
            return
        await self._call(
            "ensure user profile",
            "execute",
            "INSERT INTO users (id, email, created_at) VALUES ($1, $2, $3) ON CONFLICT DO NOTHING",
            user_id,
            f"member-{user_id}@{self.member_email_domain}",
            utcnow(),
        )
        logger.debug(f"[chat-models] created user record {user_id}")

    async def _fetch_user_models(self, user_id: str) -> List[ChatModelEntry]:
        rows = await self._call(
            "load models",
            "fetch",
            """
            SELECT model_id, label, position FROM user_chat_models
            WHERE user_id = $1
            ORDER BY position ASC, seq ASC
            """,
            user_id,
        )
        return normalize_catalog(rows)

    async def _load_defaults(self) -> List[ChatModelEntry]:
        try:
            rows = await self.db.fetch(
                "SELECT model_id, label, position FROM chat_model_defaults ORDER BY position ASC"
            )
        except Exception as e:
            logger.warning(f"[chat-models] unable to load defaults from table: {e}")
            rows = []
        defaults = normalize_catalog(rows)
        return defaults or normalize_catalog(DEFAULT_CHAT_MODEL_CATALOG)

    async def seed_defaults(self, user_id: str) -> List[ChatModelEntry]:
        await self.ensure_user_record(user_id)
        catalog = await self._load_defaults()
        now = utcnow()
        await self._call(
            "seed default models",
            "executemany",
            """
            INSERT INTO user_chat_models (user_id, model_id, label, position, updated_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id, model_id)
            DO UPDATE SET label = excluded.label, position = excluded.position,
                          updated_at = excluded.updated_at
            """,
            [(user_id, entry.id, entry.label, entry.position, now) for entry in catalog],
        )
        logger.info(f"[chat-models] seeded {len(catalog)} models for {user_id}")
        return await self._fetch_user_models(user_id)

    async def list_models(self, user_id: str) -> List[ChatModelEntry]:
        await self.ensure_user_record(user_id)
        models = await self._fetch_user_models(user_id)
        if models:
            return models
        return await self.seed_defaults(user_id)

    async def add_model(self, user_id: str, model_id: str, label: str) -> List[ChatModelEntry]:
        """Append a model after the current last position."""
        model_id = (model_id or "").strip()
        label = (label or "").strip()
        if not model_id or not label:
            raise ValidationError(
                "Model id and label are required",
                parameter="modelId" if not model_id else "label",
            )

        await self.ensure_user_record(user_id)
        existing = await self._fetch_user_models(user_id)
        if any(model.id == model_id for model in existing):
            raise ConflictError(DUPLICATE_MODEL_MESSAGE, model_id=model_id)

        next_position = max((model.position for model in existing), default=-1) + 1
        status = await self._call(
            "add model",
            "execute",
            """
            INSERT INTO user_chat_models (user_id, model_id, label, position, updated_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id, model_id) DO NOTHING
            """,
            user_id,
            model_id,
            label,
            next_position,
            utcnow(),
        )
        # Zero rows: a concurrent add inserted the same model first
        if affected_rows(status) == 0:
            raise ConflictError(DUPLICATE_MODEL_MESSAGE, model_id=model_id)
        return await self._fetch_user_models(user_id)

    async def remove_model(self, user_id: str, model_id: str) -> List[ChatModelEntry]:
        """
        Remove a model. Rejected when it would leave the list empty; an absent
        model id returns the list unchanged.
        """
        await self.ensure_user_record(user_id)
        existing = await self._fetch_user_models(user_id)
        if len(existing) <= 1:
            raise ValidationError(
                LAST_MODEL_MESSAGE, code=ErrorCode.VALIDATION_CATALOG_EMPTY, parameter="modelId"
            )
        if not any(model.id == model_id for model in existing):
            return existing

        await self._call(
            "remove model",
            "execute",
            "DELETE FROM user_chat_models WHERE user_id = $1 AND model_id = $2",
            user_id,
            model_id,
        )
        remaining = await self._fetch_user_models(user_id)
        return remaining if remaining else await self.seed_defaults(user_id)


def catalog_payload(models: Iterable[ChatModelEntry]) -> Dict[str, Any]:
    return {"models": [model.to_dict() for model in models]}
