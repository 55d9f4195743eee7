"""
Event closer service: moves ended events from hold to closed.

Background worker that sweeps every EVENT_CLOSE_INTERVAL_SECONDS (default
one hour). Each sweep is a single conditional UPDATE, so it is idempotent and
never reopens an event.
"""

import asyncio
import logging
import os
from typing import Optional

from courtside.database import db
from courtside.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# How often the worker closes expired events (seconds)
POLL_INTERVAL_SECONDS = int(os.getenv("EVENT_CLOSE_INTERVAL_SECONDS", "3600"))


class EventCloserService:
    """Background service that closes events whose end time has passed."""

    def __init__(self, interval_seconds: Optional[float] = None):
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else POLL_INTERVAL_SECONDS
        )
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def start(self) -> None:
        """Start the background closer worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info(f"Event closer worker started (every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop the background closer worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Event closer worker stopped")

    def is_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    async def _poll_loop(self) -> None:
        """Main loop: close expired events, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in event closer worker: {e}", exc_info=True)

            # Wait for poll interval or until stop is signalled
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> int:
        """
        Run a single sweep in its own database session.

        Returns:
            Number of events closed
        """
        # Import here to avoid circular import
        from courtside.services.event_service import close_expired

        async with db.AsyncSessionLocal() as session:
            try:
                return await close_expired(session, now=utcnow())
            except Exception:
                await session.rollback()
                raise


# Global singleton
_closer_service: Optional[EventCloserService] = None


def get_event_closer_service() -> EventCloserService:
    """Get the global event closer service instance."""
    global _closer_service
    if _closer_service is None:
        _closer_service = EventCloserService()
    return _closer_service
