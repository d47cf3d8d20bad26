"""Tests for UserRepository and UserUpdate.

UserUpdate tests are pure; repository tests run against PostgreSQL and are
skipped when it is not available.
"""

import uuid
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User, UserStatus
from app.repositories.user_repository import UNSET, UserRepository, UserUpdate

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")
_TEST_EMAIL = "test@example.com"
_TEST_HASH = "$2b$04$" + "a" * 53  # nosec B105  # gitleaks:allow


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = await UserRepository.create(
        db_session, email=_TEST_EMAIL, name="Test User", password_hash=_TEST_HASH
    )
    await db_session.commit()
    return user


# =============================================================================
# UserUpdate
# =============================================================================


class TestUserUpdate:
    """Test UserUpdate.assignments()."""

    def test_empty_update_has_no_assignments(self):
        assert UserUpdate().assignments() == {}
        assert UserUpdate().is_empty

    def test_only_given_fields_are_assigned(self):
        assert UserUpdate(name="New").assignments() == {"name": "New"}

    def test_status_is_stored_as_plain_value(self):
        assert UserUpdate(status=UserStatus.ACTIVE).assignments() == {
            "status": "active"
        }

    def test_none_clears_nullable_column(self):
        changes = UserUpdate(token_invalidated_before=None)
        assert changes.assignments() == {"token_invalidated_before": None}
        assert UserUpdate().token_invalidated_before is UNSET


# =============================================================================
# Reads
# =============================================================================


class TestGetById:
    """Test UserRepository.get_by_id()."""

    async def test_returns_user_when_found(self, db_session: AsyncSession, test_user):
        user = await UserRepository.get_by_id(db_session, test_user.id)
        assert user is not None
        assert user.email == _TEST_EMAIL

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        assert await UserRepository.get_by_id(db_session, _MISSING_UUID) is None

    async def test_includes_soft_deleted_users(
        self, db_session: AsyncSession, test_user
    ):
        await UserRepository.soft_delete(db_session, test_user.id)
        user = await UserRepository.get_by_id(db_session, test_user.id)
        assert user is not None
        assert user.is_deleted


class TestGetByEmail:
    """Test UserRepository.get_by_email()."""

    async def test_lookup_is_case_insensitive(
        self, db_session: AsyncSession, test_user
    ):
        user = await UserRepository.get_by_email(db_session, "  TEST@Example.COM ")
        assert user is not None
        assert user.id == test_user.id

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        assert await UserRepository.get_by_email(db_session, "nobody@example.com") is None


# =============================================================================
# Writes
# =============================================================================


class TestCreate:
    """Test UserRepository.create()."""

    async def test_defaults_to_inactive(self, db_session: AsyncSession):
        user = await UserRepository.create(db_session, email="New@Example.com")
        assert user.email == "new@example.com"
        assert user.status == "inactive"
        assert not user.is_active
        assert user.password_hash is None
        assert user.token_invalidated_before is None
        assert user.created_at is not None

    async def test_duplicate_email_raises(self, db_session: AsyncSession, test_user):
        with pytest.raises(IntegrityError):
            await UserRepository.create(db_session, email=_TEST_EMAIL)


class TestUpdate:
    """Test UserRepository.update() and its wrappers."""

    async def test_updates_name(self, db_session: AsyncSession, test_user):
        user = await UserRepository.update(
            db_session, test_user.id, UserUpdate(name="Renamed")
        )
        assert user is not None
        assert user.name == "Renamed"

    async def test_empty_update_raises(self, db_session: AsyncSession, test_user):
        with pytest.raises(ValueError, match="No fields"):
            await UserRepository.update(db_session, test_user.id, UserUpdate())

    async def test_missing_user_returns_none(self, db_session: AsyncSession):
        result = await UserRepository.update(
            db_session, _MISSING_UUID, UserUpdate(name="x")
        )
        assert result is None

    async def test_update_status(self, db_session: AsyncSession, test_user):
        user = await UserRepository.update_status(
            db_session, test_user.id, UserStatus.ACTIVE
        )
        assert user is not None
        assert user.is_active

    async def test_update_password_hash_sets_cutoff(
        self, db_session: AsyncSession, test_user
    ):
        before = datetime.now(UTC)
        user = await UserRepository.update_password_hash(
            db_session, test_user.id, "new-hash"
        )
        assert user is not None
        assert user.password_hash == "new-hash"
        assert user.token_invalidated_before is not None
        assert user.token_invalidated_before >= before

    async def test_update_password_hash_can_keep_sessions(
        self, db_session: AsyncSession, test_user
    ):
        user = await UserRepository.update_password_hash(
            db_session, test_user.id, "new-hash", invalidate_sessions=False
        )
        assert user is not None
        assert user.token_invalidated_before is None

    async def test_rollback_discards_update(self, db_session: AsyncSession, test_user):
        await UserRepository.update_status(db_session, test_user.id, UserStatus.ACTIVE)
        await db_session.rollback()

        user = await UserRepository.get_by_id(db_session, test_user.id)
        assert user is not None
        assert user.status == "inactive"
