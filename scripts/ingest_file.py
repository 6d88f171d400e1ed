"""
Script to ingest a single uploaded file by bucket and key

Usage:
    python scripts/ingest_file.py <bucket> <key>
"""

import argparse
import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import create_engine_from_settings
from core.logging import setup_logging
from ingestion.runner import IngestionRunner
from schemas.catalog import ObjectNotification

logger = logging.getLogger(__name__)


async def ingest_file(bucket: str, key: str) -> dict:
    engine = create_engine_from_settings()
    try:
        runner = IngestionRunner.from_engine(engine)
        return await runner.process_notification(ObjectNotification(bucket=bucket, key=key))
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Ingest one catalog CSV from the object store")
    parser.add_argument("bucket", help="Bucket holding the upload")
    parser.add_argument("key", help="Object key, tenant_id/list_id/filename.csv")
    args = parser.parse_args(argv)

    result = asyncio.run(ingest_file(args.bucket, args.key))
    print(json.dumps(result, indent=2, default=str))
    return 0 if result["status"] == "completed" else 1


if __name__ == "__main__":
    setup_logging()
    sys.exit(main())
