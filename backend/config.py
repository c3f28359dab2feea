"""
Runtime Configuration for Polychat.

Provides a singleton RuntimeConfig class whose values default from
environment variables and can be adjusted at runtime without a restart.

Usage:
    from config import runtime_config
    timeout = runtime_config.llm_timeout_s
    runtime_config.update(rate_limit_max_messages=40)
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List
from threading import Lock
from urllib.parse import quote_plus

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_bool(key: str, default: str = "false") -> bool:
    return os.environ.get(key, default).lower() == "true"


def _build_database_url_default() -> str:
    """
    Build a PostgreSQL URL from env vars when DATABASE_URL is not explicitly set.

    Password is URL-encoded to avoid auth breakage with special characters.
    """
    explicit = os.environ.get("DATABASE_URL", "").strip()
    if explicit:
        return explicit

    user = os.environ.get("POSTGRES_USER", "polychat").strip() or "polychat"
    password = os.environ.get("POSTGRES_PASSWORD", "polychat-local-dev")
    host = os.environ.get("POSTGRES_HOST", "localhost").strip() or "localhost"
    port = os.environ.get("POSTGRES_PORT", "5432").strip() or "5432"
    db = os.environ.get("POSTGRES_DB", "polychat").strip() or "polychat"

    safe_password = quote_plus(password)
    return f"postgresql://{user}:{safe_password}@{host}:{port}/{db}"


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # Environment mode (development, staging, production)
    polychat_env: str = field(default_factory=lambda: os.environ.get("POLYCHAT_ENV", "development"))
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper())

    # Persistence
    database_backend: str = field(
        default_factory=lambda: os.environ.get("DATABASE_BACKEND", "postgres").strip().lower()
    )  # postgres | sqlite
    database_url: str = field(default_factory=_build_database_url_default)
    database_enabled: bool = field(default_factory=lambda: _env_bool("DATABASE_ENABLED", "true"))
    database_pool_size: int = field(
        default_factory=lambda: int(os.environ.get("DATABASE_POOL_SIZE", "10"))
    )
    sqlite_path: str = field(
        default_factory=lambda: os.environ.get("SQLITE_PATH", "data/polychat.sqlite")
    )

    # Language-model provider (OpenAI-compatible chat completions API)
    llm_base_url: str = field(
        default_factory=lambda: _first_env(
            "LLM_BASE_URL",
            "OPENROUTER_BASE_URL",
            default="https://openrouter.ai/api/v1",
        ).rstrip("/")
    )
    llm_api_key: str = field(
        default_factory=lambda: _first_env("LLM_API_KEY", "OPENROUTER_API_KEY", default="")
    )
    default_chat_model: str = field(
        default_factory=lambda: _first_env("DEFAULT_CHAT_MODEL", default="openai/gpt-4o-mini")
    )
    llm_timeout_s: float = field(
        default_factory=lambda: float(os.environ.get("LLM_TIMEOUT_S", "15"))
    )
    llm_temperature: float = field(
        default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7"))
    )

    # Per-conversation sliding window rate limit
    rate_limit_window_s: int = field(
        default_factory=lambda: int(os.environ.get("RATE_LIMIT_WINDOW_S", "60"))
    )
    rate_limit_max_messages: int = field(
        default_factory=lambda: int(os.environ.get("RATE_LIMIT_MAX_MESSAGES", "20"))
    )

    # Conversations
    guest_email_domain: str = field(
        default_factory=lambda: os.environ.get("GUEST_EMAIL_DOMAIN", "polychat.local")
    )
    history_limit: int = field(default_factory=lambda: int(os.environ.get("HISTORY_LIMIT", "200")))
    require_owner_on_read: bool = field(
        default_factory=lambda: _env_bool("REQUIRE_OWNER_ON_READ", "false")
    )  # GET /chat without userId: skip the ownership check (false) or deny (true)

    # HTTP
    cors_origins: List[str] = field(
        default_factory=lambda: _split_csv(
            os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
        )
    )

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "database_pool_size": (1, 200),
        "llm_timeout_s": (1.0, 300.0),
        "llm_temperature": (0.0, 2.0),
        "rate_limit_window_s": (1, 3600),
        "rate_limit_max_messages": (1, 1000),
        "history_limit": (1, 1000),
    }, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., llm_timeout_s=20)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown or invalid keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_"):
                    ignored.append(key)
                    continue

                if not hasattr(self, key):
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")
                    continue

                if key == "llm_base_url" and isinstance(value, str):
                    cleaned = value.strip()
                    if not cleaned.startswith(("http://", "https://")):
                        ignored.append(key)
                        logger.warning(f"Config rejected invalid URL: {key}={value!r}")
                        continue
                    value = cleaned.rstrip("/")

                if key == "database_backend" and value not in ("postgres", "sqlite"):
                    ignored.append(key)
                    logger.warning(f"Config rejected unknown database backend: {value!r}")
                    continue

                # Validate numeric ranges
                if key in self._VALIDATION_RANGES:
                    lo, hi = self._VALIDATION_RANGES[key]
                    if not (lo <= value <= hi):
                        ignored.append(key)
                        logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                        continue

                old_value = getattr(self, key)
                setattr(self, key, value)
                updated.append(key)
                if key == "llm_api_key":
                    logger.info("Config updated: llm_api_key")
                else:
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored}

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields and secrets)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if field_info.name.startswith("_") or field_info.name == "llm_api_key":
                continue
            result[field_info.name] = getattr(self, field_info.name)
        return result


# Singleton instance
runtime_config = RuntimeConfig()


def get_config() -> RuntimeConfig:
    """Get the singleton config instance."""
    return runtime_config
