"""
auth/tokens.py -- Short-lived key/value store for password-reset tokens.

Two interchangeable backends implement the TokenStore protocol:

  RedisTokenStore: redis-py. TTL is enforced by Redis itself (SET ... EX) and
       take() maps to GETDEL, which is atomic on the server. Used when
       REDIS_URL is configured.

  SQLTokenStore: SQLAlchemy Core table with an expires_at column. Expired
       rows behave as absent and are trimmed by purge_expired(). take() is
       race-free because the row is only handed out to the caller whose
       DELETE actually removed it -- a concurrent taker sees rowcount 0.

Reset tokens are secrets.token_urlsafe(32): 256 bits of entropy, URL-safe so
they can be embedded directly in the reset link path.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Protocol

import redis
from sqlalchemy import Column, Float, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.store import create_store_engine
from core.config import get_settings

logger = logging.getLogger("threadline.auth.tokens")

RESET_PREFIX = "reset:"


def generate_reset_token() -> str:
    """Return a new unguessable reset token."""
    return secrets.token_urlsafe(32)


def reset_key(token: str) -> str:
    return f"{RESET_PREFIX}{token}"


class TokenStore(Protocol):
    def put(self, key: str, value: str, ttl: int) -> None: ...

    def get(self, key: str) -> str | None: ...

    def delete(self, key: str) -> None: ...

    def take(self, key: str) -> str | None: ...

    def purge_expired(self) -> int: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# SQL backend
# ---------------------------------------------------------------------------

_metadata = MetaData()

_tokens = Table(
    "tokens",
    _metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
    Column("expires_at", Float, nullable=False),
)


class SQLTokenStore:
    """TokenStore backed by the application database.

    Usage:
        tokens = SQLTokenStore()
        tokens.put("reset:abc", "42", ttl=3600)
        tokens.take("reset:abc")   # "42"
        tokens.take("reset:abc")   # None
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_store_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def put(self, key: str, value: str, ttl: int) -> None:
        """Store value under key for ttl seconds, replacing any existing entry."""
        with self.engine.begin() as conn:
            conn.execute(_tokens.delete().where(_tokens.c.key == key))
            conn.execute(_tokens.insert().values(key=key, value=value, expires_at=time.time() + ttl))

    def get(self, key: str) -> str | None:
        """Return the live value for key, or None if absent or expired."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _tokens.select().where((_tokens.c.key == key) & (_tokens.c.expires_at > time.time()))
            ).fetchone()
        return row.value if row is not None else None

    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is a no-op."""
        with self.engine.connect() as conn:
            conn.execute(_tokens.delete().where(_tokens.c.key == key))
            conn.commit()

    def take(self, key: str) -> str | None:
        """Atomically read and delete key. At most one concurrent caller gets the value."""
        with self.engine.begin() as conn:
            row = conn.execute(
                _tokens.select().where((_tokens.c.key == key) & (_tokens.c.expires_at > time.time()))
            ).fetchone()
            if row is None:
                return None
            result = conn.execute(_tokens.delete().where(_tokens.c.key == key))
            if result.rowcount != 1:
                # Another request consumed it between our SELECT and DELETE.
                return None
        return row.value

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.expires_at <= time.time()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisTokenStore:
    """TokenStore backed by Redis.

    The client is injectable so tests can pass a MagicMock; production code
    passes nothing and a client is built from REDIS_URL. RedisError is not
    caught here -- an unreachable store is an infrastructure failure.
    """

    def __init__(self, redis_url: str | None = None, client: redis.Redis | None = None) -> None:
        if client is None:
            client = redis.Redis.from_url(redis_url or get_settings().redis_url, decode_responses=True)
        self._client = client

    def put(self, key: str, value: str, ttl: int) -> None:
        self._client.set(key, value, ex=ttl)

    def get(self, key: str) -> str | None:
        return _as_text(self._client.get(key))

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def take(self, key: str) -> str | None:
        # GETDEL (Redis >= 6.2) reads and removes in one server-side step.
        return _as_text(self._client.getdel(key))

    def purge_expired(self) -> int:
        # Redis expires keys on its own.
        return 0

    def close(self) -> None:
        self._client.close()


def _as_text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def build_token_store() -> TokenStore:
    """Pick the backend from settings: Redis when REDIS_URL is set, SQL otherwise."""
    settings = get_settings()
    if settings.redis_url:
        logger.info("Reset tokens stored in Redis")
        return RedisTokenStore(settings.redis_url)
    logger.info("Reset tokens stored in the application database")
    return SQLTokenStore(settings.database_url)
