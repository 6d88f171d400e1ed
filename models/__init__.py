"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, JobStatus enum and epoch helpers
    ingestion_job: Per tenant/list ingestion status record
    product: Tenant-partitioned catalog products

Database Schema:
    ``ingestion_job`` is a plain table keyed by (tenant_id, list_id).
    ``products`` is declared ``PARTITION BY LIST (tenant_id)``; its
    per-tenant partitions (``products_tenant_<id>``) are created at ingestion
    time by ``ingestion.loaders.partition_manager``.

Usage:
    from models.base import Base, JobStatus
    from models.ingestion_job import IngestionJob
    from models.product import Product
"""

__all__ = [
    "Base",
    "JobStatus",
    "IngestionJob",
    "Product",
]
