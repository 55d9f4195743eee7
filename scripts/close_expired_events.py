#!/usr/bin/env python3
"""
Close every held event whose end time has passed, then exit.

Meant for an external scheduler (cron, Cloud Scheduler) when the API's
in-process closer worker is not running.

Usage (local, from repo root):
  python -m scripts.close_expired_events
"""

import asyncio
import logging
import os

from courtside.database import db
from courtside.services.event_closer_service import EventCloserService

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> int:
    try:
        closed = await EventCloserService().run_once()
        logger.info(f"Closed {closed} expired event(s)")
        return closed
    finally:
        await db.engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
