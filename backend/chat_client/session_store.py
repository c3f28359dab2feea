"""
Session id persistence for the chat client.

Lifecycle: load on startup, save after every successful mutation, clear on
explicit reset (session only) or sign-out (session and user).
"""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class SessionIds:
    session_id: Optional[str] = None
    user_id: Optional[str] = None


class SessionStore:
    """Interface for persisting the active session and user ids."""

    def load(self) -> SessionIds:
        raise NotImplementedError

    def save(self, ids: SessionIds) -> None:
        """Persist the ids that are set; unset ids leave stored values alone."""
        raise NotImplementedError

    def clear(self, clear_user: bool = True) -> None:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    def __init__(self, ids: Optional[SessionIds] = None):
        self._ids = ids or SessionIds()

    def load(self) -> SessionIds:
        return SessionIds(**asdict(self._ids))

    def save(self, ids: SessionIds) -> None:
        if ids.session_id:
            self._ids.session_id = ids.session_id
        if ids.user_id:
            self._ids.user_id = ids.user_id

    def clear(self, clear_user: bool = True) -> None:
        self._ids.session_id = None
        if clear_user:
            self._ids.user_id = None


class JsonFileSessionStore(SessionStore):
    """Ids kept in a small JSON file ({"sessionId": ..., "userId": ...})."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to read session file {self.path}: {e}")
            return {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def load(self) -> SessionIds:
        data = self._read()
        return SessionIds(session_id=data.get("sessionId"), user_id=data.get("userId"))

    def save(self, ids: SessionIds) -> None:
        data = self._read()
        if ids.session_id:
            data["sessionId"] = ids.session_id
        if ids.user_id:
            data["userId"] = ids.user_id
        self._write(data)

    def clear(self, clear_user: bool = True) -> None:
        data = self._read()
        data.pop("sessionId", None)
        if clear_user:
            data.pop("userId", None)
        self._write(data)
