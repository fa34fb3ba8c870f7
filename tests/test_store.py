"""Unit tests for auth/store.py -- SQLAuthStore against in-memory SQLite.

Covers:
- create_user / find_user_by_email / get_user
- UNIQUE email -> DuplicateRecordError
- find_session_with_user joins the owning user and filters expired rows
- multiple concurrent sessions per user
- token collision -> StoreError
- delete_session is idempotent
- purge_expired_sessions removes only expired rows
- connectivity failure surfaces as StoreError
- engine options bound connect and checkout waits per backend
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import DuplicateRecordError, StoreError
from auth.passwords import hash_password
from auth.store import _engine_options
from auth.tokens import generate_session_token
from conftest import make_sql_store

_HASH = hash_password("secret1")


@pytest.fixture
def user(sql_store):
    return sql_store.create_user("Ann", "ann@x.com", _HASH)


class TestUsers:
    def test_create_user_returns_record(self, sql_store):
        created = sql_store.create_user("Ann", "ann@x.com", _HASH)
        assert created.id is not None
        assert created.email == "ann@x.com"
        assert created.created_at is not None
        assert created.created_at == created.updated_at

    def test_find_by_email(self, sql_store, user):
        found = sql_store.find_user_by_email("ann@x.com")
        assert found is not None
        assert found.id == user.id
        assert found.password_hash == _HASH

    def test_find_unknown_email(self, sql_store):
        assert sql_store.find_user_by_email("nobody@x.com") is None

    def test_get_user(self, sql_store, user):
        assert sql_store.get_user(user.id).name == "Ann"
        assert sql_store.get_user(9999) is None

    def test_duplicate_email_rejected(self, sql_store, user):
        with pytest.raises(DuplicateRecordError):
            sql_store.create_user("Other", "ann@x.com", _HASH)


class TestSessions:
    def test_find_session_with_user(self, sql_store, user):
        token = generate_session_token()
        expires = datetime.now(timezone.utc) + timedelta(days=7)
        sql_store.create_session(user.id, token, expires)

        resolved = sql_store.find_session_with_user(token)
        assert resolved is not None
        session, owner = resolved
        assert session.token == token
        assert session.user_id == user.id
        assert owner.email == "ann@x.com"
        assert abs(session.expires_at - expires) < timedelta(milliseconds=1)

    def test_unknown_token(self, sql_store, user):
        assert sql_store.find_session_with_user("deadbeef") is None

    def test_expired_session_not_found(self, sql_store, user):
        token = generate_session_token()
        sql_store.create_session(user.id, token, datetime.now(timezone.utc) - timedelta(seconds=1))
        assert sql_store.find_session_with_user(token) is None

    def test_expiry_is_strict(self, sql_store, user):
        """A session whose expires_at equals the check time is already invalid."""
        token = generate_session_token()
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        sql_store.create_session(user.id, token, expires)
        assert sql_store.find_session_with_user(token, now=expires - timedelta(microseconds=1)) is not None
        assert sql_store.find_session_with_user(token, now=expires) is None

    def test_multiple_sessions_per_user(self, sql_store, user):
        expires = datetime.now(timezone.utc) + timedelta(days=1)
        first, second = generate_session_token(), generate_session_token()
        sql_store.create_session(user.id, first, expires)
        sql_store.create_session(user.id, second, expires)
        assert sql_store.find_session_with_user(first) is not None
        assert sql_store.find_session_with_user(second) is not None

    def test_token_collision_is_store_error(self, sql_store, user):
        token = generate_session_token()
        expires = datetime.now(timezone.utc) + timedelta(days=1)
        sql_store.create_session(user.id, token, expires)
        with pytest.raises(StoreError):
            sql_store.create_session(user.id, token, expires)

    def test_delete_session_idempotent(self, sql_store, user):
        token = generate_session_token()
        sql_store.create_session(user.id, token, datetime.now(timezone.utc) + timedelta(days=1))
        assert sql_store.delete_session(token) is True
        assert sql_store.delete_session(token) is False
        assert sql_store.delete_session("never-issued") is False
        assert sql_store.find_session_with_user(token) is None

    def test_purge_expired_sessions(self, sql_store, user):
        now = datetime.now(timezone.utc)
        live, stale = generate_session_token(), generate_session_token()
        sql_store.create_session(user.id, live, now + timedelta(days=1))
        sql_store.create_session(user.id, stale, now - timedelta(hours=1))

        assert sql_store.purge_expired_sessions(now) == 1
        assert sql_store.find_session_with_user(live) is not None
        assert sql_store.purge_expired_sessions(now) == 0


class TestFailures:
    def test_closed_connection_raises_store_error(self, sql_store, monkeypatch):
        from sqlalchemy.exc import OperationalError

        def broken_connect():
            raise OperationalError("SELECT 1", {}, Exception("database is unreachable"))

        monkeypatch.setattr(sql_store.engine, "connect", broken_connect)
        with pytest.raises(StoreError):
            sql_store.find_user_by_email("ann@x.com")
        assert sql_store.ping() is False

    def test_ping(self):
        store = make_sql_store()
        try:
            assert store.ping() is True
        finally:
            store.close()


class TestEngineOptions:
    def test_sqlite_uses_busy_timeout(self):
        connect_args, engine_kwargs = _engine_options("sqlite:///auth.db", 2.5)
        assert connect_args == {"check_same_thread": False, "timeout": 2.5}
        assert engine_kwargs == {}

    @pytest.mark.parametrize(
        "url",
        ["postgresql+psycopg2://u:p@db/auth", "postgresql://u:p@db/auth", "mysql+pymysql://u:p@db/auth"],
    )
    def test_server_backends_bound_connect_and_checkout(self, url):
        connect_args, engine_kwargs = _engine_options(url, 2.5)
        assert connect_args == {"connect_timeout": 2}
        assert engine_kwargs["pool_timeout"] == 2.5
        assert engine_kwargs["pool_pre_ping"] is True

    def test_sub_second_connect_timeout_rounds_up(self):
        connect_args, _ = _engine_options("postgresql://u:p@db/auth", 0.2)
        assert connect_args["connect_timeout"] == 1
