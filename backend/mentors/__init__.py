"""
Polychat Mentors - persona registry and message routing.

- registry: mentor configs (open schema) and default system prompts
- classifier: text/file heuristics that pick a mentor tag
"""

from .registry import (
    DEFAULT_MENTOR_ID,
    MentorConfig,
    get_default_prompt,
    get_mentor,
    resolve_mentor_id,
)
from .classifier import FileMeta, SelectionMode, classify, classify_file, route_mentor

__all__ = [
    "DEFAULT_MENTOR_ID",
    "MentorConfig",
    "get_default_prompt",
    "get_mentor",
    "resolve_mentor_id",
    "FileMeta",
    "SelectionMode",
    "classify",
    "classify_file",
    "route_mentor",
]
