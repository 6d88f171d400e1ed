"""
Load batch artifacts into the partitioned products table with upsert logic (idempotency)
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence
from sqlalchemy import Column, Integer, MetaData, String, Table, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from core.database import close_quietly, connect_with_retry
from core.exceptions import BatchLoadError, IngestionError
from ingestion.tracker import MetadataTracker
from ingestion.transformers.batcher import read_batch
from models.product import PRODUCTS_TABLE
import logging

logger = logging.getLogger(__name__)

STAGING_TABLE_NAME = "staging_products"

staging_products = Table(
    STAGING_TABLE_NAME,
    MetaData(),
    Column("name", String),
    Column("image_url", String),
    Column("brand", String),
    Column("barcode", String),
    Column("tenant_id", Integer),
    Column("list_id", Integer),
)

CREATE_STAGING_SQL = text(
    f"""
    CREATE TEMP TABLE {STAGING_TABLE_NAME} (
        name TEXT NOT NULL,
        image_url TEXT,
        brand TEXT,
        barcode TEXT NOT NULL,
        tenant_id INTEGER NOT NULL,
        list_id INTEGER NOT NULL
    ) ON COMMIT DROP
    """
)

# has_image comes from the incoming image_url, never from the stored row
UPSERT_SQL = text(
    f"""
    INSERT INTO {PRODUCTS_TABLE} (
        tenant_id, list_id, name, image_url, brand, barcode,
        has_image, is_ai_enriched, created_at, updated_at
    )
    SELECT
        tenant_id, list_id, name, image_url, brand, barcode,
        COALESCE(image_url, '') <> '',
        false,
        EXTRACT(EPOCH FROM CURRENT_TIMESTAMP)::BIGINT,
        EXTRACT(EPOCH FROM CURRENT_TIMESTAMP)::BIGINT
    FROM {STAGING_TABLE_NAME}
    ON CONFLICT (tenant_id, list_id, barcode) DO UPDATE SET
        name = EXCLUDED.name,
        image_url = EXCLUDED.image_url,
        brand = EXCLUDED.brand,
        has_image = EXCLUDED.has_image,
        updated_at = EXCLUDED.updated_at
    """
)


class BatchLoader:
    """
    Load batches one transaction at a time.

    Ensures:
    - No duplicate products on repeated runs (upsert on tenant/list/barcode)
    - Each batch and its processed_batches increment commit together
    - The first failing batch stops the job; committed batches stay committed
    """

    def __init__(
        self,
        engine: AsyncEngine,
        tracker: MetadataTracker,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None
    ):
        self.engine = engine
        self.tracker = tracker
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def load_batches(self, tenant_id: int, list_id: int, batch_paths: Sequence[Path]) -> int:
        """
        Load every batch in order.

        Returns:
            Number of product rows inserted or updated

        Raises:
            BatchLoadError: A batch failed; ``processed_batches`` tells how
                many batches were committed before it
        """
        total = len(batch_paths)
        processed = 0
        rows_loaded = 0

        for batch_number, path in enumerate(batch_paths, start=1):
            logger.info(f"Processing batch file {batch_number}/{total}: {path}")

            try:
                count = await self.load_batch(tenant_id, list_id, path)
            except Exception as e:
                reason = e.message if isinstance(e, IngestionError) else str(e)
                raise BatchLoadError(
                    f"Failed to process batch {batch_number} of {total}: {reason}",
                    context={
                        "tenant_id": tenant_id,
                        "list_id": list_id,
                        "batch_path": str(path),
                        "operation": "UPSERT",
                        "table_name": PRODUCTS_TABLE
                    },
                    original_exception=e,
                    batch_number=batch_number,
                    processed_batches=processed
                )

            processed += 1
            rows_loaded += count
            logger.info(f"Batch {batch_number}/{total}: upserted {count} products")

        logger.info(f"All {total} batches loaded for tenant={tenant_id} list={list_id}")
        return rows_loaded

    async def load_batch(self, tenant_id: int, list_id: int, path: Path) -> int:
        """Load one batch artifact in a single transaction"""
        records = self._prepare_records(read_batch(path), tenant_id, list_id)

        conn = await connect_with_retry(self.engine, self.max_attempts, self.base_delay)
        try:
            await conn.execute(CREATE_STAGING_SQL)
            if records:
                await conn.execute(staging_products.insert(), records)
            result = await conn.execute(UPSERT_SQL)
            await self.tracker.increment_processed_batches(conn, tenant_id, list_id)
            await conn.commit()
        except Exception:
            await self._rollback(conn, path)
            raise
        finally:
            await close_quietly(conn)

        return result.rowcount

    @staticmethod
    def _prepare_records(records: List[Dict[str, object]], tenant_id: int, list_id: int) -> List[Dict[str, object]]:
        """Rows always land in the job's own tenant and list"""
        for record in records:
            record["tenant_id"] = tenant_id
            record["list_id"] = list_id
        return records

    @staticmethod
    async def _rollback(conn: AsyncConnection, path: Path):
        try:
            await conn.rollback()
            logger.error(f"Transaction rolled back for batch {path}")
        except Exception as e:
            logger.error(f"Failed to roll back transaction for batch {path}: {e}")
