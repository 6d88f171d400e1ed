"""
Queue-triggered entry point.

``handler(event, context)`` receives a batch of queue records, processes
them one at a time and returns a summary. Each invocation builds its own
engine and disposes of it before returning, so no pool outlives the event.
"""

import asyncio
import logging
from typing import Any, Dict

from core.database import create_engine_from_settings
from core.logging import setup_logging
from ingestion.runner import IngestionRunner

logger = logging.getLogger(__name__)


async def process_event(event: Dict[str, Any], s3_client=None) -> Dict[str, Any]:
    engine = create_engine_from_settings()
    try:
        runner = IngestionRunner.from_engine(engine, s3_client=s3_client)
        return await runner.handle_event(event)
    finally:
        await engine.dispose()


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    setup_logging()
    request_id = getattr(context, "aws_request_id", None)
    logger.info(f"Received event with {len(event.get('Records') or [])} records (request_id={request_id})")
    return asyncio.run(process_event(event))
