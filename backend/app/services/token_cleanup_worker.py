"""Expired token cleanup background worker.

asyncio background task started from the FastAPI lifespan. Each pass
deletes expired, never-used tokens from every purpose table. Expiry is
enforced at validation time regardless; this only keeps the tables small.
"""

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.repositories.ephemeral_token_repository import (
    activation_tokens,
    password_reset_tokens,
)
from app.services.account_protocols import TokenStore

logger = logging.getLogger(__name__)

# Default interval: 1 hour
DEFAULT_INTERVAL_SECONDS = 60 * 60


@dataclass
class CleanupPassResult:
    """Statistics from one cleanup pass.

    Attributes:
        purged: Deleted row count per token purpose.
        finished_at: When the pass committed.
    """

    purged: dict[str, int] = field(default_factory=dict)
    finished_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total(self) -> int:
        """Rows deleted across all purposes."""
        return sum(self.purged.values())


class TokenCleanupWorker:
    """Purges expired activation and reset tokens on a fixed interval.

    The lifespan calls start() once the pool is open and stop() before it
    is drained. run_once() purges synchronously with no task involved.

    Args:
        session_factory: Async session factory for DB access.
        stores: Token stores to purge. Defaults to every purpose.
        interval_seconds: Seconds between cleanup passes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        stores: Sequence[TokenStore] | None = None,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._stores: Sequence[TokenStore] = (
            stores if stores is not None else (activation_tokens, password_reset_tokens)
        )
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed pass."""
        return self._last_run_at

    def start(self) -> None:
        """Schedule the purge loop on the running event loop.

        Calling start() on a worker whose task is alive changes nothing.
        """
        if self.is_running:
            logger.warning("Token cleanup worker already running")
            return

        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Token cleanup worker started (interval=%ds)", self._interval_seconds
        )

    async def stop(self) -> None:
        """Cancel the purge loop. A pass in flight is rolled back."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Token cleanup worker stopped")

    async def run_once(self) -> CleanupPassResult:
        """Execute a single cleanup pass in one transaction.

        Returns:
            CleanupPassResult with per-purpose deletion counts.
        """
        purged: dict[str, int] = {}
        async with self._session_factory() as db:
            for store in self._stores:
                purged[store.purpose.value] = await store.purge_expired(db)
            await db.commit()
        result = CleanupPassResult(purged=purged)
        self._last_run_at = result.finished_at
        return result

    async def _purge_and_log(self) -> None:
        try:
            result = await self.run_once()
        except Exception:  # noqa: BLE001
            # Retried on the next pass
            logger.exception("Error in token cleanup pass")
            return
        if result.total:
            logger.info("Token cleanup pass: %d expired tokens purged", result.total)
        else:
            logger.debug("Token cleanup pass: nothing to purge")

    async def _run_loop(self) -> None:
        while True:
            await self._purge_and_log()
            await asyncio.sleep(self._interval_seconds)
