"""Unit tests for UserService.

Tests user CRUD operations with mocked asyncpg database.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import asyncpg
import pytest

from src.models.user import User, UserRole
from src.services.auth_errors import EmailAlreadyExists
from src.services.user_service import UserService


# ---------------------------------------------------------------------------
# asyncpg mock helpers
# ---------------------------------------------------------------------------

class MockConnection:
    """Mock asyncpg connection with common query methods."""

    def __init__(self):
        self.execute = AsyncMock()
        self.fetchrow = AsyncMock()
        self.fetchval = AsyncMock()
        self.fetch = AsyncMock()


class MockPool:
    """Mock asyncpg pool with acquire() context manager."""

    def __init__(self, conn: MockConnection):
        self._conn = conn

    def acquire(self):
        return _MockPoolAcquire(self._conn)


class _MockPoolAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *args):
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_pool():
    """Return (pool, connection) pair for database mocking."""
    conn = MockConnection()
    pool = MockPool(conn)
    return pool, conn


@pytest.fixture
def user_service():
    return UserService()


def _make_user_row(
    user_id=None,
    name="Test User",
    email="test@example.com",
    password_hash="$2b$12$hashedpasswordhere000000000000000000000000000000000000",
    role="user",
    email_verified=False,
):
    """Create a dict that mimics an asyncpg Record for a users row."""
    now = datetime.now(timezone.utc)
    return {
        "id": user_id or uuid4(),
        "name": name,
        "email": email,
        "password_hash": password_hash,
        "role": role,
        "email_verified": email_verified,
        "created_at": now,
        "updated_at": now,
    }


# ---------------------------------------------------------------------------
# create_user
# ---------------------------------------------------------------------------

class TestCreateUser:
    """Tests for UserService.create_user."""

    async def test_inserts_row_and_returns_user(self, user_service, mock_pool):
        pool, conn = mock_pool

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            user = await user_service.create_user(
                name="Alice",
                email="alice@example.com",
                password_hash="$2b$12$hash",
            )

        assert isinstance(user, User)
        assert user.email == "alice@example.com"
        assert user.role == UserRole.USER
        assert user.email_verified is False
        assert isinstance(user.id, UUID)
        assert user.created_at == user.updated_at

        conn.execute.assert_awaited_once()
        sql = conn.execute.call_args[0][0]
        assert "INSERT INTO users" in sql
        args = conn.execute.call_args[0][1:]
        assert "$2b$12$hash" in args
        assert "user" in args

    async def test_creates_verified_admin(self, user_service, mock_pool):
        pool, conn = mock_pool

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            user = await user_service.create_user(
                name="Admin",
                email="admin@example.com",
                password_hash="$2b$12$hash",
                role=UserRole.ADMIN,
                email_verified=True,
            )

        assert user.role == UserRole.ADMIN
        assert user.email_verified is True

    async def test_unique_violation_maps_to_email_already_exists(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.execute.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            with pytest.raises(EmailAlreadyExists):
                await user_service.create_user(
                    name="Alice",
                    email="alice@example.com",
                    password_hash="$2b$12$hash",
                )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

class TestGetByEmail:
    """Tests for UserService.get_by_email."""

    async def test_returns_user_and_hash_when_found(self, user_service, mock_pool):
        pool, conn = mock_pool
        row = _make_user_row(email="alice@example.com", password_hash="$2b$12$stored")
        conn.fetchrow.return_value = row

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            result = await user_service.get_by_email("alice@example.com")

        assert result is not None
        user, pw_hash = result
        assert user.id == row["id"]
        assert user.email == "alice@example.com"
        assert pw_hash == "$2b$12$stored"

    async def test_returns_none_when_not_found(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            result = await user_service.get_by_email("nobody@example.com")

        assert result is None

    async def test_query_is_exact_match(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            await user_service.get_by_email("Alice@Example.com")

        sql = conn.fetchrow.call_args[0][0]
        assert "WHERE email = $1" in sql
        assert "LOWER" not in sql
        assert conn.fetchrow.call_args[0][1] == "Alice@Example.com"


class TestGetById:
    """Tests for UserService.get_by_id."""

    async def test_returns_user_when_found(self, user_service, mock_pool):
        pool, conn = mock_pool
        user_id = uuid4()
        conn.fetchrow.return_value = _make_user_row(user_id=user_id, role="admin")

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            user = await user_service.get_by_id(user_id)

        assert user is not None
        assert user.id == user_id
        assert user.role == UserRole.ADMIN

    async def test_returns_none_when_not_found(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            assert await user_service.get_by_id(uuid4()) is None


class TestListUsers:
    """Tests for UserService.list_users."""

    async def test_returns_list_of_users(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [
            _make_user_row(email="a@example.com"),
            _make_user_row(email="b@example.com"),
        ]

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            users = await user_service.list_users()

        assert [u.email for u in users] == ["a@example.com", "b@example.com"]
        assert "ORDER BY created_at" in conn.fetch.call_args[0][0]


# ---------------------------------------------------------------------------
# update_user
# ---------------------------------------------------------------------------

class TestUpdateUser:
    """Tests for UserService.update_user and its helpers."""

    async def test_updates_only_provided_fields(self, user_service, mock_pool):
        pool, conn = mock_pool
        user_id = uuid4()
        conn.fetchrow.return_value = _make_user_row(user_id=user_id, name="New Name")

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            user = await user_service.update_user(user_id, name="New Name")

        assert user.name == "New Name"
        sql = conn.fetchrow.call_args[0][0]
        assert "name = $1" in sql
        assert "email =" not in sql
        assert "updated_at = $2" in sql
        assert "WHERE id = $3" in sql
        assert conn.fetchrow.call_args[0][-1] == user_id

    async def test_mark_email_verified(self, user_service, mock_pool):
        pool, conn = mock_pool
        user_id = uuid4()
        conn.fetchrow.return_value = _make_user_row(user_id=user_id, email_verified=True)

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            user = await user_service.mark_email_verified(user_id)

        assert user.email_verified is True
        sql = conn.fetchrow.call_args[0][0]
        assert "email_verified = $1" in sql
        assert conn.fetchrow.call_args[0][1] is True

    async def test_update_password_stores_hash(self, user_service, mock_pool):
        pool, conn = mock_pool
        user_id = uuid4()
        conn.fetchrow.return_value = _make_user_row(user_id=user_id)

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            await user_service.update_password(user_id, "$2b$12$newhash")

        assert "password_hash = $1" in conn.fetchrow.call_args[0][0]
        assert conn.fetchrow.call_args[0][1] == "$2b$12$newhash"

    async def test_role_is_stored_as_value(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = _make_user_row(role="admin")

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            await user_service.update_user(uuid4(), role=UserRole.ADMIN)

        assert conn.fetchrow.call_args[0][1] == "admin"

    async def test_returns_none_when_not_found(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            assert await user_service.update_user(uuid4(), name="X") is None

    async def test_no_fields_returns_current_user(self, user_service, mock_pool):
        pool, conn = mock_pool
        user_id = uuid4()
        conn.fetchrow.return_value = _make_user_row(user_id=user_id)

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            user = await user_service.update_user(user_id)

        assert user.id == user_id
        assert "UPDATE" not in conn.fetchrow.call_args[0][0]

    async def test_duplicate_email_maps_to_email_already_exists(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            with pytest.raises(EmailAlreadyExists):
                await user_service.update_user(uuid4(), email="taken@example.com")


# ---------------------------------------------------------------------------
# delete_user / count_users
# ---------------------------------------------------------------------------

class TestDeleteUser:
    """Tests for UserService.delete_user."""

    async def test_returns_true_when_deleted(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.execute.return_value = "DELETE 1"

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            assert await user_service.delete_user(uuid4()) is True

    async def test_returns_false_when_not_found(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.execute.return_value = "DELETE 0"

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            assert await user_service.delete_user(uuid4()) is False


class TestCountUsers:
    """Tests for UserService.count_users."""

    async def test_returns_count(self, user_service, mock_pool):
        pool, conn = mock_pool
        conn.fetchval.return_value = 5

        with patch("src.services.user_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = pool
            assert await user_service.count_users() == 5
