"""
Unit tests for the batch loader
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from core.exceptions import BatchLoadError, DatabaseConnectionError
from ingestion.loaders.batch_loader import BatchLoader
from ingestion.transformers.batcher import Batcher
from schemas.catalog import CatalogRow


def make_conn(fail_on_upsert: bool = False, rowcount: int = 2) -> AsyncMock:
    conn = AsyncMock()

    async def execute(statement, params=None):
        if fail_on_upsert and "ON CONFLICT" in str(statement):
            raise RuntimeError("deadlock detected")
        result = MagicMock()
        result.rowcount = rowcount
        return result

    conn.execute = AsyncMock(side_effect=execute)
    return conn


@pytest.fixture
def batch_paths(tmp_path):
    rows = [
        CatalogRow(product_name=f"Item {n}", brand="Acme", barcode=str(n), tenant_id=1, list_id=7)
        for n in range(10)
    ]
    return Batcher(batch_size=2).write_batches(rows, tmp_path).paths


class TestBatchLoader:
    """Test per-batch transactions and partial progress"""

    @pytest.mark.asyncio
    async def test_loads_every_batch_in_its_own_transaction(self, batch_paths):
        conns = [make_conn() for _ in batch_paths]
        tracker = AsyncMock()

        with patch("ingestion.loaders.batch_loader.connect_with_retry", new=AsyncMock(side_effect=conns)):
            rows_loaded = await BatchLoader(MagicMock(), tracker).load_batches(1, 7, batch_paths)

        assert rows_loaded == 10
        for conn in conns:
            conn.commit.assert_awaited_once()
            conn.rollback.assert_not_awaited()
            conn.close.assert_awaited_once()
        assert tracker.increment_processed_batches.await_count == 5

    @pytest.mark.asyncio
    async def test_batch_statements_in_order(self, batch_paths):
        conn = make_conn()
        tracker = AsyncMock()

        with patch("ingestion.loaders.batch_loader.connect_with_retry", new=AsyncMock(return_value=conn)):
            await BatchLoader(MagicMock(), tracker).load_batch(1, 7, batch_paths[0])

        statements = [str(c.args[0]) for c in conn.execute.await_args_list]
        assert "CREATE TEMP TABLE staging_products" in statements[0]
        assert "ON COMMIT DROP" in statements[0]
        assert "VARCHAR" not in statements[0]
        assert "name TEXT NOT NULL" in statements[0]
        assert statements[1].startswith("INSERT INTO staging_products")
        assert "ON CONFLICT (tenant_id, list_id, barcode) DO UPDATE" in statements[2]
        assert conn.execute.await_args_list[1].args[1] == [
            {"name": "Item 0", "image_url": "", "brand": "Acme", "barcode": "0", "tenant_id": 1, "list_id": 7},
            {"name": "Item 1", "image_url": "", "brand": "Acme", "barcode": "1", "tenant_id": 1, "list_id": 7},
        ]
        tracker.increment_processed_batches.assert_awaited_once_with(conn, 1, 7)

    @pytest.mark.asyncio
    async def test_upsert_keeps_created_at(self, batch_paths):
        conn = make_conn()

        with patch("ingestion.loaders.batch_loader.connect_with_retry", new=AsyncMock(return_value=conn)):
            await BatchLoader(MagicMock(), AsyncMock()).load_batch(1, 7, batch_paths[0])

        upsert = str(conn.execute.await_args_list[2].args[0])
        update_clause = upsert.split("DO UPDATE SET", 1)[1]
        assert "created_at" not in update_clause
        assert "updated_at = EXCLUDED.updated_at" in update_clause
        assert "has_image = EXCLUDED.has_image" in update_clause

    @pytest.mark.asyncio
    async def test_failure_at_batch_three_of_five(self, batch_paths):
        conns = [make_conn(), make_conn(), make_conn(fail_on_upsert=True), make_conn(), make_conn()]
        tracker = AsyncMock()
        connect = AsyncMock(side_effect=conns)

        with patch("ingestion.loaders.batch_loader.connect_with_retry", new=connect):
            with pytest.raises(BatchLoadError) as exc_info:
                await BatchLoader(MagicMock(), tracker).load_batches(1, 7, batch_paths)

        error = exc_info.value
        assert error.batch_number == 3
        assert error.processed_batches == 2
        assert error.message == "Failed to process batch 3 of 5: deadlock detected"
        conns[2].rollback.assert_awaited_once()
        conns[2].commit.assert_not_awaited()
        conns[2].close.assert_awaited_once()
        assert connect.await_count == 3
        assert tracker.increment_processed_batches.await_count == 2

    @pytest.mark.asyncio
    async def test_connection_exhaustion_reported_as_batch_failure(self, batch_paths):
        connect = AsyncMock(side_effect=DatabaseConnectionError("Failed to acquire database connection: refused"))

        with patch("ingestion.loaders.batch_loader.connect_with_retry", new=connect):
            with pytest.raises(BatchLoadError) as exc_info:
                await BatchLoader(MagicMock(), AsyncMock()).load_batches(1, 7, batch_paths)

        assert exc_info.value.batch_number == 1
        assert exc_info.value.processed_batches == 0
        assert "Failed to acquire database connection" in exc_info.value.message
