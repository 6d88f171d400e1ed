"""initial schema: ingestion_job and tenant-partitioned products

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        DO $$
        BEGIN
          CREATE TYPE ingestion_job_status AS ENUM ('pending', 'processing', 'completed', 'failed');
        EXCEPTION
          WHEN duplicate_object THEN NULL;
        END $$;
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS ingestion_job (
          id                  BIGSERIAL PRIMARY KEY,
          tenant_id           INTEGER NOT NULL,
          list_id             INTEGER NOT NULL,
          source_path         VARCHAR(1024),
          staged_batches_path VARCHAR(1024),
          status              ingestion_job_status NOT NULL DEFAULT 'pending',
          total_batches       INTEGER NOT NULL DEFAULT 0,
          processed_batches   INTEGER NOT NULL DEFAULT 0,
          error               TEXT,
          last_processed_at   BIGINT NOT NULL DEFAULT EXTRACT(EPOCH FROM now())::BIGINT,
          updated_at          BIGINT NOT NULL DEFAULT EXTRACT(EPOCH FROM now())::BIGINT
        );
        """
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_ingestion_job_tenant_list "
        "ON ingestion_job (tenant_id, list_id);"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_ingestion_job_status "
        "ON ingestion_job (status);"
    )
    # Tenant partitions are created on demand during ingestion
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS products (
          id              BIGSERIAL NOT NULL,
          tenant_id       INTEGER NOT NULL,
          list_id         INTEGER NOT NULL,
          name            TEXT NOT NULL,
          image_url       TEXT,
          brand           TEXT,
          barcode         TEXT NOT NULL,
          has_image       BOOLEAN NOT NULL DEFAULT false,
          is_ai_enriched  BOOLEAN NOT NULL DEFAULT false,
          created_at      BIGINT NOT NULL,
          updated_at      BIGINT NOT NULL,
          PRIMARY KEY (id, tenant_id),
          CONSTRAINT uq_products_tenant_list_barcode UNIQUE (tenant_id, list_id, barcode)
        ) PARTITION BY LIST (tenant_id);
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_products_tenant_list "
        "ON products (tenant_id, list_id);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS products CASCADE;")
    op.execute("DROP TABLE IF EXISTS ingestion_job;")
    op.execute("DROP TYPE IF EXISTS ingestion_job_status;")
