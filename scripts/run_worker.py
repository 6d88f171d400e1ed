"""
Script to run the queue-polling ingestion worker until interrupted
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.logging import setup_logging
from ingestion.scheduler import QueuePoller

logger = logging.getLogger(__name__)


async def run_worker():
    """Poll immediately, then on the configured interval"""
    try:
        poller = QueuePoller()
    except ValueError as e:
        logger.error(f"Worker not started: {e}")
        sys.exit(1)

    try:
        await poller.run_poll_job()
        poller.start()
        await asyncio.Event().wait()
    finally:
        await poller.close()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
