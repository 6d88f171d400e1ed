# ============================================================================
# File: ingestion/runner.py
# Description: Catalog ingestion orchestrator with per-job status tracking
# ============================================================================
"""
Ingestion Runner - Orchestrates Fetch, Validate, Batch, Load for one upload.

This module provides:
- Sequential stage execution for each notification
- Conversion of every stage failure into a recorded job status
- Isolation between messages (one bad message never aborts the rest)
- Per-job staging directories that are removed on every exit path
"""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import settings
from core.database import create_session_factory
from core.exceptions import (
    IngestionError,
    InvalidObjectKeyError,
    MessageFormatError,
    StagingError,
)
from ingestion.extractors.object_fetcher import ObjectFetcher
from ingestion.loaders.batch_loader import BatchLoader
from ingestion.loaders.partition_manager import PartitionManager
from ingestion.notifications import parse_message_body, parse_object_key
from ingestion.tracker import MetadataTracker
from ingestion.transformers.batcher import Batcher, BatchPlan
from ingestion.transformers.catalog_validator import CatalogValidator
from models.base import JobStatus
from schemas.catalog import ObjectNotification

logger = logging.getLogger(__name__)

SOURCE_FILE_NAME = "source.csv"
BATCH_DIR_NAME = "batches"


class IngestionRunner:
    """
    Catalog ingestion orchestrator

    Responsibilities:
    - Parse tenant/list identity from the object key
    - Drive fetch → validate/dedupe → batch → partition → load
    - Record pending, processing, completed and failed states
    - Keep staged files only for the lifetime of the job
    """

    def __init__(
        self,
        tracker: MetadataTracker,
        fetcher: ObjectFetcher,
        partition_manager: PartitionManager,
        loader: BatchLoader,
        batcher: Optional[Batcher] = None,
        staging_dir: Optional[str] = None,
        keep_staged_files: Optional[bool] = None
    ):
        self.tracker = tracker
        self.fetcher = fetcher
        self.partition_manager = partition_manager
        self.loader = loader
        self.batcher = batcher or Batcher()
        self.staging_dir = Path(staging_dir or settings.STAGING_DIR)
        self.keep_staged_files = (
            settings.KEEP_STAGED_FILES if keep_staged_files is None else keep_staged_files
        )

    @classmethod
    def from_engine(cls, engine: AsyncEngine, s3_client=None) -> "IngestionRunner":
        """Wire a runner whose stages share one engine"""
        tracker = MetadataTracker(create_session_factory(engine))
        return cls(
            tracker=tracker,
            fetcher=ObjectFetcher(s3_client),
            partition_manager=PartitionManager(engine),
            loader=BatchLoader(engine, tracker),
        )

    async def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process a batch of queue records one at a time.

        Args:
            event: ``{"Records": [{"messageId": ..., "body": ...}, ...]}``

        Returns:
            Summary with counts of completed, failed and skipped messages
            plus the per-message results
        """
        records = event.get("Records") or []
        summary: Dict[str, Any] = {
            "messages": len(records),
            "completed": 0,
            "failed": 0,
            "skipped": 0,
            "results": [],
        }

        for record in records:
            record = record if isinstance(record, dict) else {"body": record}
            message_id = record.get("messageId")

            try:
                notification = parse_message_body(record.get("body"), message_id)
            except MessageFormatError as e:
                # No tenant/list to record against
                logger.error(
                    f"Skipping message {message_id}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                summary["skipped"] += 1
                summary["results"].append({
                    "message_id": message_id,
                    "status": "skipped",
                    "error": e.message,
                })
                continue

            result = await self.process_notification(notification)
            summary[result["status"]] += 1
            summary["results"].append(result)

        logger.info(
            f"Event processed: {summary['messages']} messages, "
            f"{summary['completed']} completed, {summary['failed']} failed, "
            f"{summary['skipped']} skipped"
        )
        return summary

    async def process_notification(self, notification: ObjectNotification) -> Dict[str, Any]:
        """
        Run every stage for one uploaded file.

        Never raises; the outcome is recorded on the job and returned.
        """
        bucket, key = notification.bucket, notification.key
        logger.info(f"Processing file s3://{bucket}/{key}")

        try:
            tenant_id, list_id = parse_object_key(key)
        except InvalidObjectKeyError as e:
            logger.error(f"{e.message} Key: {key}")
            await self.tracker.upsert_status(
                e.tenant_id,
                e.list_id,
                source_path=key,
                status=JobStatus.FAILED,
                total_batches=0,
                processed_batches=0,
                error=e.message
            )
            return self._result(notification, e.tenant_id, e.list_id, JobStatus.FAILED, error=e.message)

        job_dir: Optional[Path] = None
        plan: Optional[BatchPlan] = None

        try:
            await self.tracker.upsert_status(
                tenant_id,
                list_id,
                source_path=key,
                status=JobStatus.PENDING,
                total_batches=0,
                processed_batches=0
            )

            job_dir = self._create_job_dir(tenant_id, list_id)

            # --------------------------------------------------
            # FETCH → VALIDATE → BATCH
            # --------------------------------------------------
            source_file = await self.fetcher.fetch(bucket, key, job_dir / SOURCE_FILE_NAME)

            validator = CatalogValidator(source_file, tenant_id, list_id)
            plan = await asyncio.to_thread(self._stage_batches, validator, job_dir / BATCH_DIR_NAME)
            stats = validator.stats()

            await self.tracker.upsert_status(
                tenant_id,
                list_id,
                status=JobStatus.PROCESSING,
                staged_batches_path=str(plan.directory),
                total_batches=plan.total_batches,
                processed_batches=0
            )

            # --------------------------------------------------
            # PARTITION → LOAD
            # --------------------------------------------------
            await self.partition_manager.ensure_partition(tenant_id)
            rows_loaded = await self.loader.load_batches(tenant_id, list_id, plan.paths)

            await self.tracker.upsert_status(
                tenant_id,
                list_id,
                status=JobStatus.COMPLETED,
                processed_batches=plan.total_batches
            )

            logger.info(
                f"Ingestion completed for tenant={tenant_id} list={list_id}: "
                f"{plan.total_batches} batches, {rows_loaded} products upserted"
            )
            return self._result(
                notification,
                tenant_id,
                list_id,
                JobStatus.COMPLETED,
                total_batches=plan.total_batches,
                processed_batches=plan.total_batches,
                rows_loaded=rows_loaded,
                stats=stats
            )

        except IngestionError as e:
            logger.error(
                f"Ingestion failed for tenant={tenant_id} list={list_id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await self._record_failure(tenant_id, list_id, e.message, plan)
            return self._result(
                notification,
                tenant_id,
                list_id,
                JobStatus.FAILED,
                total_batches=plan.total_batches if plan else 0,
                processed_batches=getattr(e, "processed_batches", 0),
                error=e.message
            )

        except Exception as e:
            logger.exception(f"Unexpected error ingesting tenant={tenant_id} list={list_id}")
            message = f"Unexpected error: {e}"
            await self._record_failure(tenant_id, list_id, message, plan)
            return self._result(notification, tenant_id, list_id, JobStatus.FAILED, error=message)

        finally:
            self._cleanup(job_dir)

    def _stage_batches(self, validator: CatalogValidator, batch_dir: Path) -> BatchPlan:
        """Blocking part of the pipeline; runs in a worker thread"""
        validator.validate_header()
        plan = self.batcher.write_batches(validator.iter_rows(), batch_dir)
        try:
            validator.ensure_rows_kept()
        except IngestionError:
            self.batcher.discard(plan)
            raise
        return plan

    async def _record_failure(
        self,
        tenant_id: int,
        list_id: int,
        message: str,
        plan: Optional[BatchPlan]
    ):
        # Once batches are staged the loader owns processed_batches
        fields: Dict[str, Any] = {"status": JobStatus.FAILED, "error": message}
        if plan is None:
            fields.update(total_batches=0, processed_batches=0)
        await self.tracker.upsert_status(tenant_id, list_id, **fields)

    def _create_job_dir(self, tenant_id: int, list_id: int) -> Path:
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(
                prefix=f"tenant{tenant_id}_list{list_id}_",
                dir=self.staging_dir
            ))
        except OSError as e:
            raise StagingError(
                f"Failed to create staging directory: {e}",
                context={"staging_dir": str(self.staging_dir)},
                original_exception=e
            )

    def _cleanup(self, job_dir: Optional[Path]):
        if job_dir is None:
            return
        if self.keep_staged_files:
            logger.info(f"Keeping staged files in {job_dir}")
            return
        try:
            shutil.rmtree(job_dir)
            logger.debug(f"Removed staging directory {job_dir}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to clean up staging directory {job_dir}: {e}")

    @staticmethod
    def _result(
        notification: ObjectNotification,
        tenant_id: int,
        list_id: int,
        status: JobStatus,
        total_batches: int = 0,
        processed_batches: int = 0,
        rows_loaded: int = 0,
        error: Optional[str] = None,
        stats: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "message_id": notification.message_id,
            "bucket": notification.bucket,
            "key": notification.key,
            "tenant_id": tenant_id,
            "list_id": list_id,
            "status": status.value,
            "total_batches": total_batches,
            "processed_batches": processed_batches,
            "rows_loaded": rows_loaded,
            "error": error,
        }
        if stats:
            result["stats"] = stats
        return result
