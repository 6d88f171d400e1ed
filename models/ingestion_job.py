from sqlalchemy import Column, BigInteger, Integer, String, Enum, Text, Index
from models.base import Base, JobStatus, enum_values, epoch_now


class IngestionJob(Base):
    """
    Tracks one ingestion attempt per tenant/list pair.

    Purpose:
    - Durable job status visible to the status API
    - Progress tracking (processed_batches vs total_batches)
    - Error reporting for failed uploads

    Design:
    - One row per (tenant_id, list_id), upserted repeatedly across the lifecycle
    - Timestamps are epoch seconds
    - error is cleared by any later successful stage
    """
    __tablename__ = "ingestion_job"

    id = Column(BigInteger, primary_key=True, autoincrement=True)

    # Identity
    tenant_id = Column(Integer, nullable=False)
    list_id = Column(Integer, nullable=False)

    # Files
    source_path = Column(String(1024), nullable=True)  # Object key of the upload
    staged_batches_path = Column(String(1024), nullable=True)

    # Status
    status = Column(
        Enum(JobStatus, name="ingestion_job_status", values_callable=enum_values),
        default=JobStatus.PENDING,
        nullable=False,
    )
    total_batches = Column(Integer, nullable=False, default=0)
    processed_batches = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)

    # Timestamps (epoch seconds)
    last_processed_at = Column(BigInteger, nullable=False, default=epoch_now)
    updated_at = Column(BigInteger, nullable=False, default=epoch_now, onupdate=epoch_now)

    __table_args__ = (
        Index("idx_ingestion_job_tenant_list", "tenant_id", "list_id", unique=True),
        Index("idx_ingestion_job_status", "status"),
    )
