"""
Tenant partitions of the products table
"""

from typing import Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from core.database import close_quietly, connect_with_retry, sqlstate_of
from core.exceptions import IngestionError, PartitionError
from models.product import PRODUCTS_TABLE
import logging

logger = logging.getLogger(__name__)

# First key of the two-key advisory lock taken while creating a partition
PARTITION_LOCK_NAMESPACE = 7001

DUPLICATE_TABLE = "42P07"
UNIQUE_VIOLATION = "23505"

FIND_PARTITION_SQL = text(
    """
    SELECT child.relname
    FROM pg_inherits inh
    JOIN pg_class child ON child.oid = inh.inhrelid
    JOIN pg_class parent ON parent.oid = inh.inhparent
    WHERE parent.relname = :parent
      AND pg_get_expr(child.relpartbound, child.oid) = :bound
    """
)


def validate_tenant_id(tenant_id) -> int:
    """
    Only plain non-negative integers may reach an identifier position.

    Raises:
        PartitionError: tenant_id is not a non-negative int
    """
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id < 0:
        raise PartitionError(
            f"Invalid tenant_id for partitioning: {tenant_id!r}",
            context={"tenant_id": repr(tenant_id)}
        )
    return tenant_id


def partition_name(tenant_id: int) -> str:
    return f"{PRODUCTS_TABLE}_tenant_{validate_tenant_id(tenant_id)}"


def partition_bound(tenant_id: int) -> str:
    """Bound expression as rendered by pg_get_expr"""
    return f"FOR VALUES IN ({validate_tenant_id(tenant_id)})"


class PartitionManager:
    """
    Make sure a tenant's products partition exists before loading.

    Safe under concurrent workers: creators serialize on an advisory lock,
    and a creation race that still slips through resolves to a no-op.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None
    ):
        self.engine = engine
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def ensure_partition(self, tenant_id: int) -> str:
        """
        Create ``products_tenant_<id>`` unless the tenant already has a partition.

        Returns:
            Name of the tenant's partition

        Raises:
            PartitionError: Partition could not be verified or created
        """
        tenant_id = validate_tenant_id(tenant_id)
        name = partition_name(tenant_id)
        context = {"tenant_id": tenant_id, "partition_name": name}

        try:
            conn = await connect_with_retry(self.engine, self.max_attempts, self.base_delay)
        except IngestionError as e:
            raise PartitionError(
                f"Could not connect to ensure partition {name}: {e.message}",
                context=context,
                original_exception=e
            )

        try:
            await conn.execute(
                text("SELECT pg_advisory_xact_lock(:namespace, :tenant_id)"),
                {"namespace": PARTITION_LOCK_NAMESPACE, "tenant_id": tenant_id}
            )

            existing = await self._find_partition(conn, tenant_id)
            if existing:
                await conn.commit()
                logger.debug(f"Partition {existing} already exists for tenant {tenant_id}")
                return existing

            await conn.execute(text(
                f"CREATE TABLE IF NOT EXISTS {name} "
                f"PARTITION OF {PRODUCTS_TABLE} {partition_bound(tenant_id)}"
            ))
            await conn.commit()
            logger.info(f"Created partition {name} for tenant {tenant_id}")
            return name

        except Exception as e:
            await conn.rollback()

            if sqlstate_of(e) in (DUPLICATE_TABLE, UNIQUE_VIOLATION):
                try:
                    existing = await self._find_partition(conn, tenant_id)
                    await conn.rollback()
                except Exception as recheck_error:
                    logger.error(f"Partition re-check failed for tenant {tenant_id}: {recheck_error}")
                    existing = None
                if existing:
                    logger.info(f"Partition {existing} was created concurrently for tenant {tenant_id}")
                    return existing

            logger.error(f"Failed to ensure partition {name}: {e}")
            raise PartitionError(
                f"Failed to ensure partition {name}: {e}",
                context=context,
                original_exception=e
            )

        finally:
            await close_quietly(conn)

    @staticmethod
    async def _find_partition(conn: AsyncConnection, tenant_id: int) -> Optional[str]:
        result = await conn.execute(
            FIND_PARTITION_SQL,
            {"parent": PRODUCTS_TABLE, "bound": partition_bound(tenant_id)}
        )
        return result.scalar_one_or_none()
