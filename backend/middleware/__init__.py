"""
Polychat Middleware - Request processing guards.

- rate_limit: per-conversation sliding-window limit on user messages
"""

from .rate_limit import ConversationRateLimiter

__all__ = ["ConversationRateLimiter"]
