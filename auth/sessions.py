"""
auth/sessions.py -- Server-side session store and session cookie helpers.

The browser only ever holds an opaque session id (cookie, httpOnly); the
payload (user_id) lives in the sessions table. Expiry is rolling: every
request that binds to a session pushes expires_at forward by the configured
lifetime, and the cookie max_age is renewed to match.

Persistence:
  Anonymous sessions live only in memory for the request that made them.
  A row is written when set_user_id() first binds a user, and only rows
  that already exist are renewed by touch(). Requests without a cookie
  therefore cost no storage.

Concurrency:
  No lock is held across requests. set_user_id() is an UPDATE-or-INSERT in
  one transaction, so two racing writers resolve as last-writer-wins. The
  write is committed before the call returns, so the next request carrying
  the same cookie sees it.

Destroy failures:
  destroy() reports store failure as False (and logs it) instead of raising,
  so logout can still clear the cookie and answer the client.

Layer rule: no imports from api/. The cookie helpers take any
Starlette-compatible response object (anything with set_cookie/delete_cookie).
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Session
from auth.store import create_store_engine
from core.config import get_settings

logger = logging.getLogger("threadline.auth.sessions")

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("session_id", String(64), primary_key=True),
    Column("user_id", Integer),  # NULL after set_user_id(s, None)
    Column("created_at", String(32), nullable=False),
    Column("expires_at", Float, nullable=False),
)


class SessionStore:
    """Repository for Session state.

    Usage:
        sessions = SessionStore()
        s = sessions.create()
        sessions.set_user_id(s, 42)
        sessions.load(s.session_id).user_id   # 42
        sessions.destroy(s)                   # True
    """

    def __init__(self, db_url: str | None = None, max_age: int | None = None) -> None:
        settings = get_settings()
        self.engine: Engine = create_store_engine(db_url or settings.database_url)
        self.max_age = max_age if max_age is not None else settings.session_max_age_seconds
        _metadata.create_all(self.engine)

    def create(self) -> Session:
        """Start a new anonymous session.

        Nothing is written yet: a session row exists only once set_user_id()
        binds a user to it, so cookie-less traffic never grows the table.
        """
        return Session(session_id=secrets.token_urlsafe(32), expires_at=time.time() + self.max_age)

    def load(self, session_id: str) -> Session | None:
        """Return the live session for session_id, or None if unknown or expired."""
        if not session_id:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select().where(
                    (_sessions.c.session_id == session_id) & (_sessions.c.expires_at > time.time())
                )
            ).fetchone()
        if row is None:
            return None
        return Session(session_id=row.session_id, user_id=row.user_id, expires_at=row.expires_at)

    def touch(self, session: Session) -> None:
        """Push the rolling expiry forward by max_age. Unsaved sessions stay unsaved."""
        session.expires_at = time.time() + self.max_age
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.update()
                .where(_sessions.c.session_id == session.session_id)
                .values(expires_at=session.expires_at)
            )
            conn.commit()

    def set_user_id(self, session: Session, user_id: int | None) -> None:
        """Bind the session to user_id (None makes it anonymous again).

        Upsert: the row is inserted the first time a user is bound to a
        session that has only lived in memory so far.
        """
        session.expires_at = time.time() + self.max_age
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where(_sessions.c.session_id == session.session_id)
                .values(user_id=user_id, expires_at=session.expires_at)
            )
            if result.rowcount == 0 and user_id is not None:
                conn.execute(
                    _sessions.insert().values(
                        session_id=session.session_id,
                        user_id=user_id,
                        created_at=datetime.now(timezone.utc).isoformat(),
                        expires_at=session.expires_at,
                    )
                )
        session.user_id = user_id

    def destroy(self, session: Session) -> bool:
        """Delete the session row.

        Returns True when the row is gone afterwards (a row that was already
        gone counts), False when the store could not be reached.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(_sessions.delete().where(_sessions.c.session_id == session.session_id))
                conn.commit()
        except SQLAlchemyError:
            logger.exception("Session destroy failed")
            return False
        session.user_id = None
        return True

    def purge_expired(self) -> int:
        """Delete all expired sessions. Returns number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= time.time()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: HTTPS only outside development mode (see Settings).
    max_age: the session lifetime, renewed on every response.
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_max_age_seconds,
    )


def clear_session_cookie(response) -> None:
    settings = get_settings()
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )
