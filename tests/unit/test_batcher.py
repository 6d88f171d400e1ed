"""
Unit tests for batch artifact writing
"""

import pytest
from unittest.mock import patch
from core.exceptions import BatchWriteError, HeaderMismatchError
from ingestion.transformers.batcher import Batcher, read_batch
from schemas.catalog import CatalogRow


def make_rows(count: int, tenant_id: int = 1, list_id: int = 7):
    return [
        CatalogRow(
            product_name=f"Item {n}",
            image_url="https://img/x.png" if n % 2 == 0 else "",
            brand="Acme",
            barcode=str(1000 + n),
            tenant_id=tenant_id,
            list_id=list_id
        )
        for n in range(count)
    ]


class TestBatcher:

    def test_splits_into_fixed_size_batches(self, tmp_path):
        plan = Batcher(batch_size=10).write_batches(make_rows(25), tmp_path / "batches")

        assert plan.total_batches == 3
        assert plan.total_rows == 25
        assert [path.name for path in plan.paths] == ["batch_1.csv", "batch_2.csv", "batch_3.csv"]
        assert [len(read_batch(path)) for path in plan.paths] == [10, 10, 5]

    def test_exact_multiple_has_no_empty_trailing_batch(self, tmp_path):
        plan = Batcher(batch_size=5).write_batches(make_rows(10), tmp_path)

        assert plan.total_batches == 2

    def test_no_rows_no_batches(self, tmp_path):
        plan = Batcher(batch_size=5).write_batches(iter([]), tmp_path / "batches")

        assert plan.total_batches == 0
        assert plan.total_rows == 0

    def test_artifacts_have_no_header(self, tmp_path):
        plan = Batcher(batch_size=10).write_batches(make_rows(1), tmp_path)

        content = plan.paths[0].read_text().splitlines()
        assert content == ["Item 0,https://img/x.png,Acme,1000,1,7"]

    def test_read_batch_preserves_rows(self, tmp_path):
        rows = [CatalogRow(product_name="Widget, large", image_url="", brand="",
                           barcode="0042", tenant_id=3, list_id=9)]
        plan = Batcher(batch_size=10).write_batches(rows, tmp_path)

        assert read_batch(plan.paths[0]) == [{
            "name": "Widget, large",
            "image_url": "",
            "brand": "",
            "barcode": "0042",
            "tenant_id": 3,
            "list_id": 9,
        }]

    def test_long_values_survive_round_trip(self, tmp_path):
        rows = [CatalogRow(product_name="N" * 300, image_url="https://img/" + "p" * 2100, brand="B" * 300,
                           barcode="9" * 300, tenant_id=1, list_id=7)]
        plan = Batcher(batch_size=10).write_batches(rows, tmp_path)

        [loaded] = read_batch(plan.paths[0])

        assert loaded["name"] == "N" * 300
        assert len(loaded["image_url"]) == len("https://img/") + 2100
        assert loaded["brand"] == "B" * 300
        assert loaded["barcode"] == "9" * 300

    def test_iterator_error_discards_written_batches(self, tmp_path):
        def rows():
            yield from make_rows(4)
            raise HeaderMismatchError("bad file")

        with pytest.raises(HeaderMismatchError):
            Batcher(batch_size=2).write_batches(rows(), tmp_path / "batches")

        assert list((tmp_path / "batches").iterdir()) == []

    def test_write_failure_raises_batch_write_error(self, tmp_path):
        with patch("ingestion.transformers.batcher.pd.DataFrame.to_csv", side_effect=OSError("disk full")):
            with pytest.raises(BatchWriteError) as exc_info:
                Batcher(batch_size=2).write_batches(make_rows(3), tmp_path)

        assert "disk full" in exc_info.value.message

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValueError):
            Batcher(batch_size=-1)
