"""
Queue worker: claims due jobs one at a time and processes them.
"""

from typing import Callable, Optional
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, system_clock
from core.config import settings
from pipeline.extractors.courtlistener import UpstreamClient
from pipeline.queue_manager import SyncQueueManager

logger = logging.getLogger(__name__)


class QueueWorker:
    """
    Single-consumer polling loop over the sync queue.

    Each iteration opens its own session, claims at most one due job and
    processes it. When the queue is empty the worker waits
    poll_interval_seconds on the injected clock, or until stop() is called.
    Errors raised by an iteration are logged and the loop keeps going.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        client: UpstreamClient,
        clock: Optional[Clock] = None,
        poll_interval_seconds: Optional[float] = None
    ):
        self.session_factory = session_factory
        self.client = client
        self.clock = clock or system_clock
        self.poll_interval_seconds = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.SYNC_QUEUE_POLL_SECONDS
        )
        self._stop = asyncio.Event()
        self.jobs_processed = 0

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self):
        self._stop.set()
        logger.info("Queue worker stop requested")

    async def run_once(self) -> bool:
        """Process the next due job. Returns False when none was due."""
        async with self.session_factory() as session:
            queue = SyncQueueManager(session, self.client, self.clock)
            job = await queue.get_next_job()
            if job is None:
                return False

            await queue.process_job(job)
            self.jobs_processed += 1
            return True

    async def run(self, max_iterations: Optional[int] = None):
        logger.info(f"Queue worker started (poll interval {self.poll_interval_seconds}s)")
        iterations = 0

        while not self.stopped:
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1

            try:
                processed = await self.run_once()
            except Exception:
                logger.exception("Queue worker iteration failed")
                processed = False

            if not processed and not self.stopped:
                await self._wait(self.poll_interval_seconds)

        logger.info(f"Queue worker stopped after {self.jobs_processed} jobs")

    async def _wait(self, seconds: float):
        sleeper = asyncio.ensure_future(self.clock.sleep(seconds))
        stopper = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                if not task.done():
                    task.cancel()
