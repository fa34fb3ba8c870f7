"""
auth/store.py -- Persistence contract and SQLAlchemy Core implementation.

Pattern: Repository + Data Mapper.
AuthStore is the contract the service and gate depend on; SQLAuthStore is the
repository; _row_to_user is the mapper. Service and route
code never touches SQL directly, and tests may inject any object that
satisfies AuthStore (see tests/fakes.py).

Security:
  All queries use bound parameters. No f-strings in SQL.
  session_token and email carry UNIQUE constraints. Token uniqueness is the
  only concurrency safeguard sessions need: two concurrent logins append two
  independent rows.

Timestamps:
  Stored as ISO 8601 UTC text with fixed microsecond precision, so string
  comparison in SQL (expires_at > :now) matches temporal order.

Failures:
  Every SQLAlchemyError is re-raised as StoreError (IntegrityError on insert
  as DuplicateRecordError) with the cause chained. Nothing is retried.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateRecordError, StoreError
from auth.models import Session, User

logger = logging.getLogger("sessionauth.store")

# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class AuthStore(Protocol):
    """Operations the authentication core needs from persistent storage.

    Each call is a single-row atomic read or write. Implementations raise
    StoreError for connectivity, timeout, and constraint failures.
    """

    def create_user(self, name: str, email: str, password_hash: str) -> User: ...

    def find_user_by_email(self, email: str) -> User | None: ...

    def get_user(self, user_id: int) -> User | None: ...

    def create_session(self, user_id: int, token: str, expires_at: datetime) -> Session: ...

    def find_session_with_user(self, token: str, now: datetime | None = None) -> tuple[Session, User] | None: ...

    def delete_session(self, token: str) -> bool: ...

    def purge_expired_sessions(self, now: datetime | None = None) -> int: ...

    def ping(self) -> bool: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # stored lowercase
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("session_token", String(255), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

Index("ix_sessions_user_id", _sessions.c.user_id)
Index("ix_sessions_expires_at", _sessions.c.expires_at)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection and are not inherited from the pool.
    foreign_keys is off by default in SQLite; without it ON DELETE CASCADE
    is ignored.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _engine_options(db_url: str, timeout: float) -> tuple[dict, dict]:
    """Return (connect_args, engine kwargs) that bound waiting by `timeout`.

    SQLite: busy timeout on a locked database file.
    PostgreSQL/MySQL: driver connect timeout plus pool checkout timeout.
    Other backends: pool checkout timeout only.
    Statement execution time is not bounded here; that is a server-side
    setting (e.g. PostgreSQL statement_timeout).
    """
    backend = make_url(db_url).get_backend_name()
    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": timeout}, {}
    connect_args: dict = {}
    if backend in ("postgresql", "mysql", "mariadb"):
        # libpq and the MySQL drivers take whole seconds.
        connect_args["connect_timeout"] = max(1, int(timeout))
    return connect_args, {"pool_timeout": timeout, "pool_pre_ping": True}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLAuthStore:
    """SQLAlchemy Core repository for User and Session records.

    Usage:
        store = SQLAuthStore("sqlite:///auth.db")
        user = store.create_user("Ann", "ann@x.com", hash_password("secret1"))
        store.create_session(user.id, generate_session_token(), session_expiration())
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 5.0) -> None:
        connect_args, engine_kwargs = _engine_options(db_url, timeout)
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _configure_sqlite)
        with self._translate_errors("create schema"):
            _metadata.create_all(self.engine)

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            logger.warning("Constraint violation during %s", operation)
            raise DuplicateRecordError(f"{operation}: constraint violation") from exc
        except SQLAlchemyError as exc:
            logger.error("Store failure during %s: %s", operation, exc.__class__.__name__)
            raise StoreError(f"{operation} failed") from exc

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, name: str, email: str, password_hash: str) -> User:
        """Insert a user and return the stored record.

        Raises DuplicateRecordError if the email is already registered. The
        service checks first; this catches the race where two signups for the
        same email pass the check concurrently.
        """
        now = _utcnow()
        stamp = _to_iso(now)
        with self._translate_errors("create user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=name,
                    email=email,
                    password_hash=password_hash,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        return User(
            id=user_id,
            name=name,
            email=email,
            password_hash=password_hash,
            created_at=_from_iso(stamp),
            updated_at=_from_iso(stamp),
        )

    def find_user_by_email(self, email: str) -> User | None:
        """Look up a user by exact (already normalized) email."""
        with self._translate_errors("find user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user(self, user_id: int) -> User | None:
        with self._translate_errors("get user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: int, token: str, expires_at: datetime) -> Session:
        """Append a session row.

        A token collision surfaces as DuplicateRecordError (a StoreError). The
        caller treats it as an internal failure, not a conflict.
        """
        created = _to_iso(_utcnow())
        expires = _to_iso(expires_at)
        with self._translate_errors("create session"), self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    user_id=user_id,
                    session_token=token,
                    expires_at=expires,
                    created_at=created,
                )
            )
            conn.commit()
            session_id = result.inserted_primary_key[0]
        return Session(
            id=session_id,
            user_id=user_id,
            token=token,
            expires_at=_from_iso(expires),
            created_at=_from_iso(created),
        )

    def find_session_with_user(self, token: str, now: datetime | None = None) -> tuple[Session, User] | None:
        """Resolve a token to its live session and owning user in one query.

        The inner join drops sessions whose user row is gone; the expires_at
        filter drops expired sessions. Unknown, expired, and orphaned tokens
        all return None.
        """
        cutoff = _to_iso(now or _utcnow())
        stmt = (
            select(
                _sessions.c.id.label("session_id"),
                _sessions.c.user_id,
                _sessions.c.session_token,
                _sessions.c.expires_at,
                _sessions.c.created_at.label("session_created_at"),
                _users.c.name,
                _users.c.email,
                _users.c.password_hash,
                _users.c.created_at,
                _users.c.updated_at,
            )
            .select_from(_sessions.join(_users, _sessions.c.user_id == _users.c.id))
            .where((_sessions.c.session_token == token) & (_sessions.c.expires_at > cutoff))
        )
        with self._translate_errors("find session"), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            return None
        session = Session(
            id=row.session_id,
            user_id=row.user_id,
            token=row.session_token,
            expires_at=_from_iso(row.expires_at),
            created_at=_from_iso(row.session_created_at),
        )
        user = User(
            id=row.user_id,
            name=row.name,
            email=row.email,
            password_hash=row.password_hash,
            created_at=_from_iso(row.created_at),
            updated_at=_from_iso(row.updated_at),
        )
        return session, user

    def delete_session(self, token: str) -> bool:
        """Delete the session bound to token. Returns False if there was none."""
        with self._translate_errors("delete session"), self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.session_token == token))
            conn.commit()
        return result.rowcount > 0

    def purge_expired_sessions(self, now: datetime | None = None) -> int:
        """Delete every session whose expiry has passed. Returns rows removed."""
        cutoff = _to_iso(now or _utcnow())
        with self._translate_errors("purge sessions"), self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            logger.warning("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )

