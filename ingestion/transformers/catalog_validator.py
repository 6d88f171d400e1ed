"""
Streaming CSV validation and barcode deduplication for catalog uploads
"""

import pandas as pd
from pandas.errors import EmptyDataError, ParserError
from pydantic import ValidationError as PydanticValidationError
from typing import Any, Dict, Iterator, List, Optional, Set
from pathlib import Path
from core.config import settings
from core.exceptions import HeaderMismatchError, InputFormatError, NoValidRowsError
from schemas.catalog import CatalogRow
import logging

logger = logging.getLogger(__name__)

EXPECTED_HEADER: List[str] = ["ProductName", "ImageUrl", "Brand", "Barcode"]


class CatalogValidator:
    """
    Validate a staged catalog CSV row by row.

    Supports:
    - Strict header check (exact column names, exact order)
    - Chunked reads so memory stays proportional to the chunk size
    - Per-row keep rule: non-empty ProductName, numeric Barcode
    - First-occurrence-wins deduplication on Barcode across the whole file

    Counters are updated as rows stream through ``iter_rows``.
    """

    def __init__(
        self,
        file_path,
        tenant_id: int,
        list_id: int,
        chunk_size: Optional[int] = None
    ):
        self.file_path = Path(file_path)
        self.tenant_id = tenant_id
        self.list_id = list_id
        self.chunk_size = chunk_size or settings.CSV_READ_CHUNK_SIZE

        self.total_rows_processed = 0
        self.rows_kept = 0
        self.rows_invalid = 0
        self.rows_duplicate = 0

        self._seen_barcodes: Set[str] = set()
        self._header_valid = False

    def validate_header(self):
        """
        Check the header before any row is counted.

        Raises:
            HeaderMismatchError: Empty file or header other than
                ProductName,ImageUrl,Brand,Barcode
        """
        try:
            header = pd.read_csv(
                self.file_path,
                nrows=0,
                dtype=str,
                encoding="utf-8-sig"
            )
        except EmptyDataError as e:
            raise HeaderMismatchError(
                "CSV file is empty. Expected header: " + ",".join(EXPECTED_HEADER),
                context={"file_path": str(self.file_path)},
                original_exception=e
            )
        except (ParserError, UnicodeDecodeError) as e:
            raise HeaderMismatchError(
                f"Could not read CSV header: {e}",
                context={"file_path": str(self.file_path)},
                original_exception=e
            )

        actual = [str(column) for column in header.columns]
        if actual != EXPECTED_HEADER:
            raise HeaderMismatchError(
                f"Invalid CSV headers. Expected: {','.join(EXPECTED_HEADER)}. "
                f"Actual: {','.join(actual)}",
                context={
                    "file_path": str(self.file_path),
                    "expected": EXPECTED_HEADER,
                    "actual": actual
                }
            )

        self._header_valid = True
        logger.debug(f"CSV header validated for {self.file_path}")

    def iter_rows(self) -> Iterator[CatalogRow]:
        """
        Yield kept rows in file order.

        Rows failing the keep rule or repeating an earlier barcode are
        counted and dropped; neither is an error.
        """
        if not self._header_valid:
            self.validate_header()

        logger.info(f"Validating CSV rows from {self.file_path}")

        try:
            reader = pd.read_csv(
                self.file_path,
                dtype=str,
                keep_default_na=False,
                na_filter=False,
                chunksize=self.chunk_size,
                encoding="utf-8-sig",
                on_bad_lines="skip"
            )
            with reader:
                for chunk in reader:
                    chunk = chunk.fillna("")
                    for values in chunk[EXPECTED_HEADER].itertuples(index=False, name=None):
                        row = self._check_row(*values)
                        if row is not None:
                            yield row
        except (ParserError, UnicodeDecodeError) as e:
            raise InputFormatError(
                f"Error processing CSV: {e}",
                context={
                    "file_path": str(self.file_path),
                    "rows_processed": self.total_rows_processed
                },
                original_exception=e
            )

        logger.info(
            f"CSV validation complete: processed={self.total_rows_processed}, "
            f"kept={self.rows_kept}, invalid={self.rows_invalid}, "
            f"duplicates={self.rows_duplicate}"
        )

    def _check_row(self, product_name: Any, image_url: Any, brand: Any, barcode: Any) -> Optional[CatalogRow]:
        self.total_rows_processed += 1

        try:
            row = CatalogRow(
                product_name=product_name,
                image_url=image_url,
                brand=brand,
                barcode=barcode,
                tenant_id=self.tenant_id,
                list_id=self.list_id
            )
        except PydanticValidationError:
            self.rows_invalid += 1
            return None

        if row.barcode in self._seen_barcodes:
            self.rows_duplicate += 1
            return None

        self._seen_barcodes.add(row.barcode)
        self.rows_kept += 1
        return row

    def ensure_rows_kept(self):
        """
        Raises:
            NoValidRowsError: The file produced zero kept rows
        """
        if self.rows_kept == 0:
            raise NoValidRowsError(
                "No valid rows found in the CSV file after refinement. "
                f"Processed {self.total_rows_processed} rows but all were invalid.",
                context=self.stats()
            )

    def stats(self) -> Dict[str, Any]:
        return {
            "file_path": str(self.file_path),
            "total_rows_processed": self.total_rows_processed,
            "rows_kept": self.rows_kept,
            "rows_invalid": self.rows_invalid,
            "rows_duplicate": self.rows_duplicate,
        }
