"""Background task that periodically reconciles catalog and blob storage."""

import asyncio
from typing import Optional

from common.logging_config import get_logger
from engine.lifecycle import StorageLifecycleManager

logger = get_logger(__name__)


class ReconcileTask:
    """
    Background task that periodically removes orphaned blobs and dangling
    descriptors left behind by interrupted operations.
    """

    def __init__(self, storage: StorageLifecycleManager, interval_seconds: int):
        """
        Initialize reconcile task.

        Args:
            storage: Lifecycle manager to reconcile
            interval_seconds: Time between cycles; zero or less disables the task
        """
        self.storage = storage
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background reconcile task."""
        if self.interval_seconds <= 0:
            logger.info("Periodic reconcile disabled")
            return

        if self._running:
            logger.warning("Reconcile task already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started reconcile task (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background reconcile task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Stopped reconcile task")

    async def _run(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                await self.run_cycle()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in reconcile task: {e}", exc_info=True)

    async def run_cycle(self) -> None:
        """Execute one reconcile cycle off the event loop."""
        report = await asyncio.to_thread(self.storage.reconcile)
        if report.orphaned_blobs or report.dangling_descriptors:
            logger.info(
                f"Reconcile cycle complete: {report.orphaned_blobs} orphaned blobs, "
                f"{report.dangling_descriptors} dangling descriptors removed"
            )
        else:
            logger.debug("Reconcile cycle complete: storage consistent")
