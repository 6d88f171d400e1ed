from sqlalchemy import Column, BigInteger, Integer, Text, Boolean, Index, UniqueConstraint, false
from models.base import Base, epoch_now

PRODUCTS_TABLE = "products"
PRODUCTS_UNIQUE_CONSTRAINT = "uq_products_tenant_list_barcode"


class Product(Base):
    """
    Catalog product, partitioned by tenant.

    Design Decisions:
    - LIST partitioning on tenant_id; one physical partition per tenant,
      created on demand by the partition manager
    - The primary key includes tenant_id because PostgreSQL requires the
      partition key in every unique index of a partitioned table
    - (tenant_id, list_id, barcode) is the upsert key; re-ingesting a barcode
      updates name/image_url/brand/has_image/updated_at and keeps created_at
    - is_ai_enriched is owned by the enrichment feature; ingestion only sets
      it to false on insert
    """
    __tablename__ = PRODUCTS_TABLE

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, primary_key=True)
    list_id = Column(Integer, nullable=False)

    name = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    brand = Column(Text, nullable=True)
    barcode = Column(Text, nullable=False)

    has_image = Column(Boolean, nullable=False, default=False)
    is_ai_enriched = Column(Boolean, nullable=False, default=False, server_default=false())

    # Timestamps (epoch seconds)
    created_at = Column(BigInteger, nullable=False, default=epoch_now)
    updated_at = Column(BigInteger, nullable=False, default=epoch_now, onupdate=epoch_now)

    __table_args__ = (
        UniqueConstraint("tenant_id", "list_id", "barcode", name=PRODUCTS_UNIQUE_CONSTRAINT),
        Index("idx_products_tenant_list", "tenant_id", "list_id"),
        {"postgresql_partition_by": "LIST (tenant_id)"},
    )
