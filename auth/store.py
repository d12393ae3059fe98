"""
auth/store.py -- SQLAlchemy Core persistence layer for users (the user directory).

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Service and route
code never touches SQL directly.

Uniqueness:
  username and email are UNIQUE at the database level. Concurrent
  registrations for the same name are settled by the constraint, not by
  locking in the service. create_user() turns the IntegrityError into a
  UniqueViolation value so callers inspect a result instead of catching a
  storage exception.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: auth/threadline_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import UniqueViolation, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine construction (shared by the session and token stores)
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    """Build an Engine with the SQLite tweaks every store needs.

    check_same_thread=False because FastAPI runs sync handlers in a thread
    pool and pooled connections move between threads.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        result = store.create_user("alice", "alice@example.com", hash_password("secret"))
        user = store.get_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_store_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, username: str, email: str, hashed_password: str) -> User | UniqueViolation:
        """Insert a new user and return it, or a UniqueViolation if the name/email is taken.

        The INSERT is a single statement in its own transaction: it either
        commits a complete row or nothing at all.
        """
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=username,
                        email=email,
                        hashed_password=hashed_password,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            return UniqueViolation(field="email" if "email" in str(exc.orig).lower() else "username")
        return User(
            id=result.inserted_primary_key[0],
            username=username,
            email=email,
            hashed_password=hashed_password,
            created_at=now,
            updated_at=now,
        )

    def update_password(self, user_id: int, hashed_password: str) -> User | None:
        """Replace the stored hash and bump updated_at.

        Returns the refreshed User, or None if user_id no longer exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(hashed_password=hashed_password, updated_at=_now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email address. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        """Return the number of registered users. Cheap enough for health checks."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
