"""
Conversation Store - users, conversations and messages.

Owns the idempotent "ensure" operations used by the chat orchestrator and
the read/write paths behind the conversation endpoints. All SQL goes
through the generic query interface of services.database, so the store
runs unchanged on PostgreSQL and SQLite.

Every driver failure is re-raised as PersistenceError; ownership failures
raise NotFoundOrForbiddenError.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from config import runtime_config
from errors import (
    ForbiddenError,
    NotFoundOrForbiddenError,
    PersistenceError,
    PolychatError,
    ValidationError,
)
from services.database import affected_rows, utcnow

logger = logging.getLogger(__name__)

PREVIEW_MAX_LENGTH = 80
TITLE_MAX_LENGTH = 200
MESSAGE_ROLES = ("user", "assistant", "system")

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_preview(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace and cut to PREVIEW_MAX_LENGTH with a trailing ellipsis."""
    if not value:
        return None
    normalized = _WHITESPACE_RE.sub(" ", value).strip()
    if not normalized:
        return None
    if len(normalized) <= PREVIEW_MAX_LENGTH:
        return normalized
    return normalized[: PREVIEW_MAX_LENGTH - 1] + "…"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class ConversationRecord:
    id: str
    user_id: str
    mentor: str
    title: Optional[str]
    preview: Optional[str]
    created_at: datetime
    last_message_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ConversationRecord":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            mentor=row["mentor"],
            title=row.get("title"),
            preview=row.get("preview"),
            created_at=row["created_at"],
            last_message_at=row.get("last_message_at"),
        )

    def to_summary(self) -> Dict[str, Any]:
        """JSON shape served by the conversation endpoints."""
        summary: Dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "mentorId": self.mentor,
            "title": self.title,
            "createdAt": _iso(self.created_at),
        }
        preview = normalize_preview(self.preview or self.title)
        if preview:
            summary["preview"] = preview
        if self.last_message_at:
            summary["lastMessageAt"] = _iso(self.last_message_at)
        return summary


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    role: str
    content: str
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MessageRecord":
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except ValueError:
                logger.warning(f"Message {row['id']} has unreadable metadata, ignoring")
                metadata = {}
        return cls(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            created_at=row["created_at"],
            metadata=metadata if isinstance(metadata, dict) else {},
        )

    @property
    def mentor(self) -> Optional[str]:
        return self.metadata.get("mentor")

    def to_history_item(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "createdAt": _iso(self.created_at),
        }
        for key in ("mentor", "files", "model"):
            value = self.metadata.get(key)
            if value:
                item[key] = value
        return item


@dataclass
class EnsuredConversation:
    """Result of ensure_conversation."""

    id: str
    was_just_created: bool


class ConversationStore:
    """Persistence operations for users, conversations and messages."""

    def __init__(self, db, guest_email_domain: Optional[str] = None):
        self.db = db
        self.guest_email_domain = guest_email_domain or runtime_config.guest_email_domain

    async def _call(self, operation: str, method: str, query: str, *args) -> Any:
        """Run one query, translating driver errors into PersistenceError."""
        try:
            return await getattr(self.db, method)(query, *args)
        except PolychatError:
            raise
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise PersistenceError(f"Failed to {operation}", operation=operation) from e

    # =========================================================================
    # USERS
    # =========================================================================

    async def ensure_user(self, existing_id: Optional[str] = None) -> str:
        """Return existing_id as-is, or create a guest user and return its id."""
        if existing_id:
            return existing_id

        user_id = str(uuid.uuid4())
        email = f"guest-{uuid.uuid4()}@{self.guest_email_domain}"
        await self._call(
            "create user",
            "execute",
            "INSERT INTO users (id, email, created_at) VALUES ($1, $2, $3)",
            user_id,
            email,
            utcnow(),
        )
        logger.info(f"Created guest user {user_id}")
        return user_id

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================

    async def create_conversation(self, user_id: str, mentor: str) -> ConversationRecord:
        now = utcnow()
        record = ConversationRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            mentor=mentor,
            title=None,
            preview=None,
            created_at=now,
            last_message_at=now,
        )
        await self._call(
            "create conversation",
            "execute",
            """
            INSERT INTO conversations (id, user_id, mentor, title, preview, created_at, last_message_at)
            VALUES ($1, $2, $3, NULL, NULL, $4, $5)
            """,
            record.id,
            record.user_id,
            record.mentor,
            record.created_at,
            record.last_message_at,
        )
        logger.info(f"Created conversation {record.id} (mentor={mentor})")
        return record

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        row = await self._call(
            "load conversation",
            "fetchrow",
            """
            SELECT id, user_id, mentor, title, preview, created_at, last_message_at
            FROM conversations WHERE id = $1
            """,
            conversation_id,
        )
        return ConversationRecord.from_row(row) if row else None

    async def ensure_conversation(
        self,
        user_id: str,
        mentor: str,
        existing_id: Optional[str] = None,
    ) -> EnsuredConversation:
        """
        Reuse a conversation or create one.

        An unknown existing_id (stale client state), or one owned by another
        user, falls back to creating a new conversation instead of failing.
        was_just_created is true while the conversation has no preview yet.
        When the routed mentor differs from the stored one, the stored mentor
        follows the routing.
        """
        if existing_id:
            existing = await self.get_conversation(existing_id)
            if existing and existing.user_id != user_id:
                logger.warning(f"Conversation {existing_id} belongs to another user")
                existing = None
            if existing:
                if existing.mentor != mentor:
                    await self._call(
                        "update conversation mentor",
                        "execute",
                        "UPDATE conversations SET mentor = $1 WHERE id = $2",
                        mentor,
                        existing.id,
                    )
                    logger.debug(f"Conversation {existing.id} mentor {existing.mentor} -> {mentor}")
                return EnsuredConversation(id=existing.id, was_just_created=existing.preview is None)
            logger.info(f"Conversation {existing_id} not found, starting a new one")

        created = await self.create_conversation(user_id, mentor)
        return EnsuredConversation(id=created.id, was_just_created=True)

    async def update_preview_if_unset(self, conversation_id: str, content: str) -> bool:
        """Set preview and title from content unless a preview already exists (first write wins)."""
        preview = normalize_preview(content)
        if not preview:
            return False
        status = await self._call(
            "update conversation preview",
            "execute",
            "UPDATE conversations SET preview = $1, title = $1 WHERE id = $2 AND preview IS NULL",
            preview,
            conversation_id,
        )
        return affected_rows(status) > 0

    async def touch_last_message_at(self, conversation_id: str) -> None:
        await self._call(
            "touch conversation",
            "execute",
            "UPDATE conversations SET last_message_at = $1 WHERE id = $2",
            utcnow(),
            conversation_id,
        )

    async def list_conversations(
        self,
        user_id: str,
        q: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ConversationRecord]:
        """A user's conversations, most recently active first (never-touched last)."""
        args: List[Any] = [user_id]
        where = "user_id = $1"
        if q and q.strip():
            args.append(f"%{q.strip().lower()}%")
            where += f" AND LOWER(title) LIKE ${len(args)}"
        args.extend([limit, offset])

        rows = await self._call(
            "list conversations",
            "fetch",
            f"""
            SELECT id, user_id, mentor, title, preview, created_at, last_message_at
            FROM conversations
            WHERE {where}
            ORDER BY last_message_at DESC NULLS LAST, created_at DESC
            LIMIT ${len(args) - 1} OFFSET ${len(args)}
            """,
            *args,
        )
        return [ConversationRecord.from_row(row) for row in rows]

    async def rename_conversation(self, user_id: str, conversation_id: str, title: str) -> ConversationRecord:
        cleaned = (title or "").strip()
        if not cleaned or len(cleaned) > TITLE_MAX_LENGTH:
            raise ValidationError(
                f"Title must be 1-{TITLE_MAX_LENGTH} characters",
                parameter="title",
                expected=f"1-{TITLE_MAX_LENGTH} characters",
                received=str(len(cleaned)),
            )

        status = await self._call(
            "rename conversation",
            "execute",
            "UPDATE conversations SET title = $1 WHERE id = $2 AND user_id = $3",
            cleaned,
            conversation_id,
            user_id,
        )
        if affected_rows(status) == 0:
            raise NotFoundOrForbiddenError(
                "Conversation not found or does not belong to the user",
                resource_type="conversation",
                resource_id=conversation_id,
            )
        record = await self.get_conversation(conversation_id)
        if record is None:
            raise NotFoundOrForbiddenError(
                "Conversation not found", resource_type="conversation", resource_id=conversation_id
            )
        return record

    async def delete_conversation(self, user_id: str, conversation_id: str) -> None:
        """Delete a conversation and its messages after verifying ownership."""
        owner = await self._call(
            "verify conversation ownership",
            "fetchval",
            "SELECT user_id FROM conversations WHERE id = $1 AND user_id = $2",
            conversation_id,
            user_id,
        )
        if owner is None:
            raise NotFoundOrForbiddenError(
                "Conversation not found or does not belong to the user",
                resource_type="conversation",
                resource_id=conversation_id,
            )

        await self._call(
            "delete conversation messages",
            "execute",
            "DELETE FROM messages WHERE conversation_id = $1",
            conversation_id,
        )
        await self._call(
            "delete conversation",
            "execute",
            "DELETE FROM conversations WHERE id = $1 AND user_id = $2",
            conversation_id,
            user_id,
        )
        logger.info(f"Deleted conversation {conversation_id}")

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        mentor: str,
        files: Optional[Sequence[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> MessageRecord:
        """Insert one message. Messages are never updated or deleted individually."""
        if role not in MESSAGE_ROLES:
            raise ValidationError(
                f"Unknown message role: {role}",
                parameter="role",
                expected=" | ".join(MESSAGE_ROLES),
                received=role,
            )

        metadata: Dict[str, Any] = {"mentor": mentor}
        if files:
            metadata["files"] = list(files)
        if model:
            metadata["model"] = model

        record = MessageRecord(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=utcnow(),
            metadata=metadata,
        )
        await self._call(
            f"insert {role} message",
            "execute",
            """
            INSERT INTO messages (id, conversation_id, role, content, metadata, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            record.id,
            record.conversation_id,
            record.role,
            record.content,
            json.dumps(metadata),
            record.created_at,
        )
        return record

    async def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
    ) -> List[MessageRecord]:
        """
        The most recent `limit` messages (older than `before` when given),
        returned oldest first. Ties on created_at keep insertion order.
        """
        limit = limit or runtime_config.history_limit
        args: List[Any] = [conversation_id]
        where = "conversation_id = $1"
        if before is not None:
            args.append(before)
            where += f" AND created_at < ${len(args)}"
        args.append(limit)

        rows = await self._call(
            "load conversation messages",
            "fetch",
            f"""
            SELECT id, conversation_id, role, content, metadata, created_at
            FROM messages
            WHERE {where}
            ORDER BY created_at DESC, seq DESC
            LIMIT ${len(args)}
            """,
            *args,
        )
        return [MessageRecord.from_row(row) for row in reversed(rows)]

    async def count_user_messages_since(self, conversation_id: str, since: datetime) -> int:
        """Number of user-role messages in a conversation created at or after `since`."""
        count = await self._call(
            "count recent messages",
            "fetchval",
            """
            SELECT COUNT(*) FROM messages
            WHERE conversation_id = $1 AND role = 'user' AND created_at >= $2
            """,
            conversation_id,
            since,
        )
        return int(count or 0)


def require_owner(record: ConversationRecord, user_id: Optional[str]) -> None:
    """Hard ownership check used by read paths that receive a user id."""
    if user_id is not None and record.user_id != user_id:
        raise ForbiddenError(
            "Conversation does not belong to the supplied user",
            resource_type="conversation",
            resource_id=record.id,
        )


def require_read_access(
    record: ConversationRecord, user_id: Optional[str], require_user: bool = False
) -> None:
    """
    Ownership rule shared by every history read path.

    A missing user_id is allowed unless require_user is set (the
    require_owner_on_read setting); a supplied one must own the record.
    """
    if user_id is None and require_user:
        raise ForbiddenError(
            "A userId is required to read this conversation",
            resource_type="conversation",
            resource_id=record.id,
        )
    require_owner(record, user_id)


def history_payload(messages: Sequence[MessageRecord]) -> List[Dict[str, Any]]:
    return [message.to_history_item() for message in messages]
