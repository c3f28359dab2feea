"""
Polychat Services - persistence and provider layers.

- database: asyncpg / sqlite3 query interface and the database singleton
- conversation_store: users, conversations, messages
- chat_models: per-user model catalog
- mentor_overrides: per-user system prompt overrides
- llm_client: completion provider interface and OpenAI-compatible provider
- reply_generator: one mentor reply per call, with timeout and error translation
"""

from .database import DatabaseManager, SQLiteDatabase, get_database, close_database

__all__ = ["DatabaseManager", "SQLiteDatabase", "get_database", "close_database"]
