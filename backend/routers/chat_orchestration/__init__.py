"""
Polychat Chat Orchestration - server side of the send-message flow.

Components:
- SendSession / SendState: per-request state for one orchestrated send
- ChatOrchestrator: classifier + conversation store + rate limiter +
  reply generator composed into send_message and get_conversation

Failure semantics:
    1. Rate limit hit        -> nothing written
    2. Provider failure      -> user message kept, no assistant message
    3. Persistence failure   -> send aborted at the failing write
"""

from .session import SendSession, SendState
from .orchestrator import ChatOrchestrator

__all__ = [
    "SendSession",
    "SendState",
    "ChatOrchestrator",
]
