"""Tests for EphemeralTokenStore against PostgreSQL.

Covers issuance (supersede, one unused token per user), validation,
atomic consumption across concurrent sessions, and expiry cleanup.
Skipped when PostgreSQL is not available.
"""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.ephemeral_token import ActivationToken, PasswordResetToken
from app.models.user import User
from app.repositories.ephemeral_token_repository import (
    EphemeralTokenStore,
    TokenPurpose,
    generate_token,
    hash_token,
)
from app.repositories.user_repository import UserRepository

_EMAIL = "holder@example.com"


@pytest.fixture
def store() -> EphemeralTokenStore:
    return EphemeralTokenStore(
        TokenPurpose.ACTIVATION, ActivationToken, ttl=timedelta(hours=24)
    )


@pytest.fixture
def expired_store() -> EphemeralTokenStore:
    return EphemeralTokenStore(
        TokenPurpose.ACTIVATION, ActivationToken, ttl=timedelta(seconds=-1)
    )


@pytest_asyncio.fixture
async def holder(db_session: AsyncSession) -> User:
    user = await UserRepository.create(db_session, email=_EMAIL)
    await db_session.commit()
    return user


async def _unused_count(db: AsyncSession, model: type, user: User) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(model)
        .where(model.user_id == user.id, model.used_at.is_(None))
    )
    return result.scalar_one()


# =============================================================================
# Helpers
# =============================================================================


class TestTokenGeneration:
    """Tests for generate_token() and hash_token()."""

    def test_plain_token_is_url_safe_and_hashed(self):
        plain, token_hash = generate_token()
        assert len(plain) >= 43
        assert all(c.isalnum() or c in "-_" for c in plain)
        assert token_hash == hash_token(plain)
        assert len(token_hash) == 64

    def test_tokens_are_unique(self):
        assert len({generate_token()[0] for _ in range(50)}) == 50


# =============================================================================
# issue / validate
# =============================================================================


class TestIssue:
    """Tests for EphemeralTokenStore.issue()."""

    async def test_stores_only_the_hash(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        plain = await store.issue(db_session, user_id=holder.id, email=_EMAIL)

        row = await db_session.get(ActivationToken, hash_token(plain))
        assert row is not None
        assert row.email == _EMAIL
        assert row.used_at is None
        assert await db_session.get(ActivationToken, plain) is None

    async def test_new_token_supersedes_unused_one(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        first = await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        second = await store.issue(db_session, user_id=holder.id, email=_EMAIL)

        assert await store.validate(db_session, first) is None
        assert await store.validate(db_session, second) is not None
        assert await _unused_count(db_session, ActivationToken, holder) == 1

    async def test_used_tokens_are_kept(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        first = await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        await store.consume(db_session, first)
        await store.issue(db_session, user_id=holder.id, email=_EMAIL)

        assert await db_session.get(ActivationToken, hash_token(first)) is not None

    async def test_purposes_are_independent(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        reset_store = EphemeralTokenStore(
            TokenPurpose.PASSWORD_RESET, PasswordResetToken, ttl=timedelta(hours=1)
        )
        activation = await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        reset = await reset_store.issue(db_session, user_id=holder.id, email=_EMAIL)

        assert await store.validate(db_session, activation) is not None
        assert await store.validate(db_session, reset) is None
        assert await reset_store.validate(db_session, reset) is not None

    async def test_concurrent_issue_leaves_one_unused_token(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: EphemeralTokenStore,
        holder,
    ):
        async def issue_and_commit() -> str:
            async with session_factory() as session:
                plain = await store.issue(session, user_id=holder.id, email=_EMAIL)
                await session.commit()
                return plain

        tokens = await asyncio.gather(*(issue_and_commit() for _ in range(3)))

        async with session_factory() as session:
            assert await _unused_count(session, ActivationToken, holder) == 1
            live = [t for t in tokens if await store.validate(session, t)]
        assert len(live) == 1


class TestValidate:
    """Tests for EphemeralTokenStore.validate()."""

    async def test_returns_record(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        plain = await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        record = await store.validate(db_session, plain)

        assert record is not None
        assert record.purpose is TokenPurpose.ACTIVATION
        assert record.user_id == holder.id
        assert record.email == _EMAIL

    async def test_does_not_consume(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        plain = await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        await store.validate(db_session, plain)
        assert await store.consume(db_session, plain) is not None

    async def test_unknown_token(self, db_session: AsyncSession, store):
        assert await store.validate(db_session, "unknown") is None

    async def test_expired_token(
        self, db_session: AsyncSession, expired_store: EphemeralTokenStore, holder
    ):
        plain = await expired_store.issue(db_session, user_id=holder.id, email=_EMAIL)
        assert await expired_store.validate(db_session, plain) is None

    async def test_used_token_after_consume_in_same_session(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        plain = await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        assert await store.validate(db_session, plain) is not None
        await store.consume(db_session, plain)
        assert await store.validate(db_session, plain) is None


# =============================================================================
# consume / mark_used
# =============================================================================


class TestConsume:
    """Tests for EphemeralTokenStore.consume() and mark_used()."""

    async def test_second_consume_fails(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        plain = await store.issue(db_session, user_id=holder.id, email=_EMAIL)

        record = await store.consume(db_session, plain)
        assert record is not None
        assert record.used_at is not None
        assert await store.consume(db_session, plain) is None

    async def test_expired_token_cannot_be_consumed(
        self, db_session: AsyncSession, expired_store: EphemeralTokenStore, holder
    ):
        plain = await expired_store.issue(db_session, user_id=holder.id, email=_EMAIL)
        assert await expired_store.consume(db_session, plain) is None

    async def test_rollback_restores_token(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: EphemeralTokenStore,
        holder,
    ):
        async with session_factory() as session:
            plain = await store.issue(session, user_id=holder.id, email=_EMAIL)
            await session.commit()

        async with session_factory() as session:
            assert await store.consume(session, plain) is not None
            await session.rollback()

        async with session_factory() as session:
            assert await store.validate(session, plain) is not None

    async def test_concurrent_consume_has_one_winner(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: EphemeralTokenStore,
        holder,
    ):
        async with session_factory() as session:
            plain = await store.issue(session, user_id=holder.id, email=_EMAIL)
            await session.commit()

        async def consume_and_commit():
            async with session_factory() as session:
                record = await store.consume(session, plain)
                await session.commit()
                return record

        results = await asyncio.gather(*(consume_and_commit() for _ in range(5)))
        assert sum(r is not None for r in results) == 1

    async def test_mark_used(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        plain = await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        await store.mark_used(db_session, plain)

        assert await store.validate(db_session, plain) is None
        assert not await store.has_active_token(db_session, holder.id)


# =============================================================================
# has_active_token / purge_expired
# =============================================================================


class TestHousekeeping:
    """Tests for has_active_token() and purge_expired()."""

    async def test_has_active_token(
        self, db_session: AsyncSession, store: EphemeralTokenStore, holder
    ):
        assert not await store.has_active_token(db_session, holder.id)
        await store.issue(db_session, user_id=holder.id, email=_EMAIL)
        assert await store.has_active_token(db_session, holder.id)

    async def test_expired_token_is_not_active(
        self, db_session: AsyncSession, expired_store: EphemeralTokenStore, holder
    ):
        await expired_store.issue(db_session, user_id=holder.id, email=_EMAIL)
        assert not await expired_store.has_active_token(db_session, holder.id)

    async def test_purge_removes_only_expired_unused(
        self,
        db_session: AsyncSession,
        store: EphemeralTokenStore,
        expired_store: EphemeralTokenStore,
        holder,
    ):
        other = await UserRepository.create(db_session, email="other@example.com")
        live = await store.issue(db_session, user_id=other.id, email=other.email)
        stale = await expired_store.issue(db_session, user_id=holder.id, email=_EMAIL)

        assert await store.purge_expired(db_session) == 1
        assert await db_session.get(ActivationToken, hash_token(stale)) is None
        assert await store.validate(db_session, live) is not None
