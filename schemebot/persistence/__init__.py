"""Session persistence and retry policy."""

from schemebot.persistence.retry import with_retries
from schemebot.persistence.sessions import InMemorySessionStore, RedisSessionStore, SessionStore

__all__ = ["InMemorySessionStore", "RedisSessionStore", "SessionStore", "with_retries"]
