"""
Polychat Send Session - per-request state for one orchestrated send.

Dataclass holding everything a single POST /chat accumulates while it
walks the send states.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class SendState(str, Enum):
    """Send states, in the order a successful request visits them."""

    ROUTING = "routing"
    RATE_LIMIT_CHECK = "rate-limit-check"
    PERSIST_USER_MESSAGE = "persist-user-message"
    UPDATE_PREVIEW = "update-preview"
    GENERATE_REPLY = "generate-reply"
    PERSIST_ASSISTANT_MESSAGE = "persist-assistant-message"
    TOUCH_TIMESTAMP = "touch-timestamp"
    RESPOND = "respond"


SEND_STATE_ORDER = list(SendState)


@dataclass
class SendSession:
    """Holds state for a single orchestrated send.

    Attributes:
        message: Trimmed user message
        requested_mentor: mentorId from the request (None lets the classifier decide)
        session_id: Client-held conversation id, possibly stale
        user_id: Caller-supplied user id (None for guests)
        files: Attachment metadata dicts as stored with the message
        model: Requested model id
        system_prompt: Per-request system prompt override

        Filled in while the send progresses:
        mentor: Routed mentor tag
        conversation_id: Conversation the messages were written to
        user_message_id / assistant_message_id: Ids of the persisted pair
        reply: Assistant reply text
        state: Current send state
        visited: States visited so far, in order
    """

    message: str
    requested_mentor: Optional[str] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    files: List[Dict[str, Any]] = field(default_factory=list)
    model: Optional[str] = None
    system_prompt: Optional[str] = None

    mentor: str = ""
    conversation_id: Optional[str] = None
    user_message_id: Optional[str] = None
    assistant_message_id: Optional[str] = None
    reply: str = ""
    state: Optional[SendState] = None
    visited: List[SendState] = field(default_factory=list)

    def advance(self, state: SendState) -> None:
        """Move to the next state. States may only move forward."""
        if self.state is not None and SEND_STATE_ORDER.index(state) <= SEND_STATE_ORDER.index(self.state):
            raise RuntimeError(f"Send state cannot move from {self.state.value} to {state.value}")
        self.state = state
        self.visited.append(state)
        logger.debug(f"send[{self.conversation_id or 'new'}] -> {state.value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "mentor": self.mentor,
            "state": self.state.value if self.state else None,
            "visited": [state.value for state in self.visited],
        }
