"""
Mentor Registry - static persona definitions.

Each mentor is a tag plus a default system prompt and routing keywords.
Configs are pydantic models with an open schema: known fields are typed,
unknown fields (tool settings, metadata added by newer config files) are
preserved as-is so older code can round-trip newer configs.

Usage:
    from mentors import get_mentor, resolve_mentor_id

    mentor = get_mentor(resolve_mentor_id("chess"))
    prompt = mentor.persona.system_prompt
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_MENTOR_ID = "general"


class ToolConfig(BaseModel):
    """Tool toggle. Tool-specific settings live in ``config`` or as extra keys."""

    model_config = ConfigDict(extra="allow")

    id: str
    enabled: bool = False
    config: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)


class Persona(BaseModel):
    model_config = ConfigDict(extra="allow")

    system_prompt: str = Field(min_length=1)
    style_guidelines: List[str] = Field(default_factory=list)
    response_format: Literal["plain", "markdown", "json", "html"] = "markdown"
    starter_prompts: List[str] = Field(default_factory=list)
    disclaimer: Optional[str] = None


class ModelSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    provider: str = "openrouter"
    model_id: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)


class RuntimeSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    timeout_ms: int = Field(default=15000, gt=0)
    retries: int = Field(default=0, ge=0)


class MentorConfig(BaseModel):
    """Complete mentor definition. Unknown top-level keys are kept verbatim."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    persona: Persona
    keywords: List[str] = Field(default_factory=list)
    model: ModelSettings = Field(default_factory=ModelSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    tools: List[ToolConfig] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


_DEFAULT_MENTORS: List[Dict[str, Any]] = [
    {
        "id": "general",
        "name": "General Mentor",
        "persona": {
            "system_prompt": (
                "You are a thoughtful, encouraging general-purpose mentor. Answer clearly and "
                "concisely, ask a clarifying question when the request is ambiguous, and suggest "
                "a concrete next step when it helps."
            ),
            "starter_prompts": ["Help me plan my week", "Explain a concept simply"],
        },
        "keywords": [],
    },
    {
        "id": "bible",
        "name": "Bible Mentor",
        "persona": {
            "system_prompt": (
                "You are a respectful Bible study mentor. Quote scripture accurately with book, "
                "chapter and verse, explain historical and literary context, and note where "
                "traditions interpret a passage differently. Do not invent verses."
            ),
            "starter_prompts": ["What does John 3:16 say?", "Summarize the book of Ruth"],
        },
        "keywords": ["bible", "verse", "scripture"],
    },
    {
        "id": "chess",
        "name": "Chess Coach",
        "persona": {
            "system_prompt": (
                "You are a patient chess coach. When given a position (FEN or a board image), "
                "describe the key features, candidate moves and plans. Explain tactics and "
                "strategy in plain language suited to the player's level."
            ),
            "starter_prompts": ["What is the best move here?", "Explain the Sicilian Defense"],
        },
        "keywords": ["chess", "stockfish", "best move", "mate", "checkmate", "fen"],
        "tools": [{"id": "stockfish", "enabled": False, "config": {"depth": 18}}],
    },
    {
        "id": "stock",
        "name": "Markets Mentor",
        "persona": {
            "system_prompt": (
                "You are an educational markets mentor. Explain tickers, technical indicators "
                "(RSI, MACD, moving averages) and earnings data. Be explicit about uncertainty "
                "and never present analysis as personalized financial advice."
            ),
            "disclaimer": "Educational content only, not financial advice.",
            "starter_prompts": ["What does RSI measure?", "Explain a moving average crossover"],
        },
        "keywords": ["rsi", "macd", "moving average", "indicator", "stocks", "price", "earnings"],
    },
    {
        "id": "math",
        "name": "Math Tutor",
        "persona": {
            "system_prompt": (
                "You are a step-by-step math tutor. Show your reasoning, check each step, and "
                "prefer guiding questions over handing out final answers when the user is "
                "practicing."
            ),
            "starter_prompts": ["Help me factor a quadratic", "What is a derivative?"],
        },
        "keywords": ["math", "equation", "algebra", "calculus"],
    },
]

_registry: Optional[Dict[str, MentorConfig]] = None


def load_mentor_registry(definitions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, MentorConfig]:
    """Validate mentor definitions and index them by id."""
    registry: Dict[str, MentorConfig] = {}
    for raw in definitions if definitions is not None else _DEFAULT_MENTORS:
        mentor = MentorConfig.model_validate(raw)
        registry[mentor.id] = mentor
    logger.debug(f"Mentor registry loaded: {', '.join(registry)}")
    return registry


def _get_registry() -> Dict[str, MentorConfig]:
    global _registry
    if _registry is None:
        _registry = load_mentor_registry()
    return _registry


def resolve_mentor_id(mentor_id: Optional[str]) -> str:
    """Map a caller-supplied tag onto a known mentor. Unknown tags become general."""
    if mentor_id:
        tag = mentor_id.strip().lower()
        if tag in _get_registry():
            return tag
    return DEFAULT_MENTOR_ID


def get_mentor(mentor_id: Optional[str]) -> MentorConfig:
    return _get_registry()[resolve_mentor_id(mentor_id)]


def get_default_prompt(mentor_id: Optional[str]) -> str:
    """Static default system prompt for a mentor tag."""
    return get_mentor(mentor_id).persona.system_prompt
