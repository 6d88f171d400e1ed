"""
Per-job status tracking for catalog ingestion
"""

from typing import Any, Dict, Optional
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, async_sessionmaker
from models.base import JobStatus, epoch_now
from models.ingestion_job import IngestionJob
import logging

logger = logging.getLogger(__name__)

TRACKED_FIELDS = frozenset({
    "source_path",
    "staged_batches_path",
    "status",
    "total_batches",
    "processed_batches",
})


async def fetch_job(session: AsyncSession, tenant_id: int, list_id: int) -> Optional[IngestionJob]:
    """Load the job record for a tenant/list pair"""
    result = await session.execute(
        select(IngestionJob).where(
            IngestionJob.tenant_id == tenant_id,
            IngestionJob.list_id == list_id
        )
    )
    return result.scalar_one_or_none()


class MetadataTracker:
    """
    Persist job status records.

    Responsibilities:
    - Insert-or-update the (tenant_id, list_id) record at every stage
    - Count committed batches inside the loader's transaction
    - Never let a failed status write mask the failure being reported
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def upsert_status(self, tenant_id: int, list_id: int, **fields: Any) -> Optional[IngestionJob]:
        """
        Insert or update the job record, touching only the supplied fields.

        ``error`` is always written, so omitting it clears a previous error.
        Runs in its own short transaction.

        Returns:
            The stored record, or None when the write could not be made
        """
        unknown = set(fields) - TRACKED_FIELDS - {"error"}
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")

        error = fields.pop("error", None)
        if "status" in fields:
            fields["status"] = JobStatus(fields["status"])

        now = epoch_now()
        changes: Dict[str, Any] = {
            **fields,
            "error": error,
            "last_processed_at": now,
            "updated_at": now,
        }

        stmt = insert(IngestionJob).values(tenant_id=tenant_id, list_id=list_id, **changes)
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "list_id"],
            set_=changes
        ).returning(IngestionJob)

        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                job = result.scalar_one_or_none()
                await session.commit()
            except Exception as e:
                logger.error(
                    f"Job status update failed for tenant={tenant_id} list={list_id}: "
                    f"{type(e).__name__}: {e}",
                    extra={"unsaved_status": {"tenant_id": tenant_id, "list_id": list_id, **changes}}
                )
                await self._safe_rollback(session)
                return None

        logger.debug(f"Job tenant={tenant_id} list={list_id} updated: {fields}, error={error}")
        return job

    async def increment_processed_batches(
        self,
        connection: AsyncConnection,
        tenant_id: int,
        list_id: int
    ) -> Optional[int]:
        """
        Add one committed batch to the job.

        Executes on the caller's connection so it commits or rolls back
        together with the batch itself.
        """
        now = epoch_now()
        result = await connection.execute(
            update(IngestionJob)
            .where(
                IngestionJob.tenant_id == tenant_id,
                IngestionJob.list_id == list_id
            )
            .values(
                processed_batches=IngestionJob.processed_batches + 1,
                last_processed_at=now,
                updated_at=now
            )
            .returning(IngestionJob.processed_batches)
        )
        return result.scalar_one_or_none()

    async def get_job(self, tenant_id: int, list_id: int) -> Optional[IngestionJob]:
        async with self.session_factory() as session:
            return await fetch_job(session, tenant_id, list_id)

    @staticmethod
    async def _safe_rollback(session: AsyncSession):
        try:
            await session.rollback()
        except Exception as e:
            logger.error(f"Failed to roll back job status transaction: {e}")
