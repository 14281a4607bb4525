"""Housekeeping service purging stale session-order records."""

import asyncio
import contextlib
import logging
from datetime import UTC, datetime, timedelta

from order_chatbot.exceptions import OrderStoreError
from order_chatbot.observability import metrics
from order_chatbot.repositories.base_store import OrderStore

logger = logging.getLogger(__name__)


class HousekeepingService:
    """Periodically removes session records older than the retention window.

    Placed orders are never touched. Runs once when started and then every
    interval until stopped.
    """

    def __init__(
        self,
        store: OrderStore,
        retention: timedelta = timedelta(hours=24),
        interval_seconds: float = 3600,
    ) -> None:
        """Initialize the HousekeepingService.

        Args:
            store: Order store holding the session records
            retention: Age after which a session record is purged
            interval_seconds: Seconds between purge runs
        """
        self.store = store
        self.retention = retention
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    async def purge_once(self) -> int:
        """Purge expired session records.

        Returns:
            Number of records removed

        Raises:
            OrderStoreError: If the store fails
        """
        cutoff = datetime.now(UTC) - self.retention
        purged = await self.store.purge_expired_sessions(cutoff)
        metrics.record_sessions_purged(purged)
        if purged:
            logger.info(f"Purged {purged} session records created before {cutoff.isoformat()}")
        return purged

    async def run_forever(self) -> None:
        while True:
            try:
                await self.purge_once()
            except OrderStoreError as e:
                logger.error(f"Session purge failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
            logger.info(f"Housekeeping started, purging every {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Housekeeping stopped")
