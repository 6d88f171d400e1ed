"""
Read-only ingestion job status
"""

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db
from ingestion.tracker import fetch_job
from schemas.api import IngestionJobResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("/{tenant_id}/{list_id}", response_model=IngestionJobResponse)
async def get_job_status(
    tenant_id: int = Path(..., ge=0, description="Tenant identifier"),
    list_id: int = Path(..., ge=0, description="Product list identifier"),
    db: AsyncSession = Depends(get_db)
):
    """Current status of the ingestion job for a tenant's product list"""
    job = await fetch_job(db, tenant_id, list_id)
    if job is None:
        raise HTTPException(
            status_code=404,
            detail=f"No ingestion job for tenant {tenant_id}, list {list_id}"
        )
    return IngestionJobResponse.model_validate(job)
