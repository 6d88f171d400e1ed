"""
Split the validated row stream into fixed-size batch artifacts
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from core.config import settings
from core.exceptions import BatchWriteError
from schemas.catalog import CatalogRow

logger = logging.getLogger(__name__)

# Column order of a batch artifact; artifacts carry no header row
BATCH_COLUMNS: List[str] = ["name", "image_url", "brand", "barcode", "tenant_id", "list_id"]


@dataclass
class BatchPlan:
    """Ordered batch artifacts produced for one job"""
    directory: Path
    paths: List[Path] = field(default_factory=list)
    total_rows: int = 0

    @property
    def total_batches(self) -> int:
        return len(self.paths)


class Batcher:
    """
    Materialize rows into ``batch_<n>.csv`` files of at most ``batch_size`` rows.

    Only one batch is held in memory at a time, which also bounds the size of
    each load transaction.
    """

    def __init__(self, batch_size: Optional[int] = None):
        self.batch_size = batch_size or settings.INGESTION_BATCH_SIZE
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    def write_batches(self, rows: Iterable[CatalogRow], directory) -> BatchPlan:
        """
        Consume ``rows`` and write batch artifacts into ``directory``.

        Errors raised by the row iterator (header or parse failures)
        propagate unchanged after already written artifacts are removed.

        Raises:
            BatchWriteError: An artifact could not be written
        """
        plan = BatchPlan(directory=Path(directory))
        plan.directory.mkdir(parents=True, exist_ok=True)

        pending: List[Dict[str, object]] = []
        try:
            for row in rows:
                pending.append(self._to_record(row))
                if len(pending) >= self.batch_size:
                    self._flush(plan, pending)
                    pending = []

            if pending:
                self._flush(plan, pending)
        except Exception:
            self.discard(plan)
            raise

        logger.info(
            f"Split {plan.total_rows} rows into {plan.total_batches} batches "
            f"in {plan.directory}"
        )
        return plan

    def _flush(self, plan: BatchPlan, records: List[Dict[str, object]]):
        batch_number = plan.total_batches + 1
        path = plan.directory / f"batch_{batch_number}.csv"

        try:
            frame = pd.DataFrame.from_records(records, columns=BATCH_COLUMNS)
            frame.to_csv(path, header=False, index=False)
        except OSError as e:
            raise BatchWriteError(
                f"Failed to write batch file {path.name}: {e}",
                context={"batch_number": batch_number, "batch_path": str(path)},
                original_exception=e
            )

        plan.paths.append(path)
        plan.total_rows += len(records)
        logger.debug(f"Created batch file {path} with {len(records)} rows")

    @staticmethod
    def _to_record(row: CatalogRow) -> Dict[str, object]:
        return {
            "name": row.product_name,
            "image_url": row.image_url,
            "brand": row.brand,
            "barcode": row.barcode,
            "tenant_id": row.tenant_id,
            "list_id": row.list_id,
        }

    @staticmethod
    def discard(plan: BatchPlan):
        """Remove the artifacts of ``plan``"""
        for path in plan.paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Failed to clean up batch file {path}: {e}")
        plan.paths.clear()
        plan.total_rows = 0


def read_batch(path) -> List[Dict[str, object]]:
    """Read a batch artifact back into load-ready records"""
    frame = pd.read_csv(
        path,
        header=None,
        names=BATCH_COLUMNS,
        dtype=str,
        keep_default_na=False,
        na_filter=False
    )
    records = []
    for name, image_url, brand, barcode, tenant_id, list_id in frame.itertuples(index=False, name=None):
        records.append({
            "name": name,
            "image_url": image_url,
            "brand": brand,
            "barcode": barcode,
            "tenant_id": int(tenant_id),
            "list_id": int(list_id),
        })
    return records
