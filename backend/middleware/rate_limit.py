"""
Rate Limiting - per-conversation sliding window.

Counts user-role messages stored for a conversation within the trailing
window (default 60s) and rejects the send when the count has reached the
maximum (default 20). The count comes straight from the message log, so
no separate counter store is needed.

When the count query itself fails the limiter fails open: the error is
logged and the request is allowed.

Usage:
    limiter = ConversationRateLimiter(store)
    await limiter.enforce(conversation_id)   # raises RateLimitExceeded
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from errors import RateLimitExceeded
from services.database import utcnow

logger = logging.getLogger(__name__)


class ConversationRateLimiter:
    """Sliding-window limit on user messages per conversation."""

    def __init__(
        self,
        store,
        max_messages: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        self.store = store
        self._max_messages = max_messages
        self._window_seconds = window_seconds

    @property
    def max_messages(self) -> int:
        if self._max_messages is not None:
            return self._max_messages
        from config import runtime_config

        return runtime_config.rate_limit_max_messages

    @property
    def window_seconds(self) -> int:
        if self._window_seconds is not None:
            return self._window_seconds
        from config import runtime_config

        return runtime_config.rate_limit_window_s

    async def check(self, conversation_id: str) -> Tuple[bool, int, int]:
        """
        Check a conversation against the limit.

        Returns:
            Tuple of (allowed, current_count, limit)
        """
        limit = self.max_messages
        window = self.window_seconds
        since = utcnow() - timedelta(seconds=window)

        try:
            count = await self.store.count_user_messages_since(conversation_id, since)
        except Exception as e:
            logger.warning(f"Rate limit check failed: {e}, allowing request")
            return (True, 0, limit)

        allowed = count < limit
        if not allowed:
            logger.warning(
                f"Rate limit exceeded for conversation {conversation_id} "
                f"({count}/{limit} in {window}s)"
            )
        return (allowed, count, limit)

    async def enforce(self, conversation_id: str) -> None:
        """Raise RateLimitExceeded when the conversation is at or over the limit."""
        allowed, _, limit = await self.check(conversation_id)
        if not allowed:
            raise RateLimitExceeded(limit=limit, window_seconds=self.window_seconds)
