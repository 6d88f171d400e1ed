"""
Pydantic schemas for the status API
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional
from datetime import datetime, timezone
from models.base import JobStatus


class IngestionJobResponse(BaseModel):
    """Ingestion job status as seen by the CRUD API and UI"""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    tenant_id: int
    list_id: int
    source_path: Optional[str] = None
    staged_batches_path: Optional[str] = None
    status: JobStatus
    total_batches: int = 0
    processed_batches: int = 0
    error: Optional[str] = None
    last_processed_at: Optional[int] = None
    updated_at: Optional[int] = None

    @property
    def progress(self) -> float:
        if not self.total_batches:
            return 0.0
        return self.processed_batches / self.total_batches


class HealthCheckResponse(BaseModel):
    """Health check response model"""

    status: str = Field("healthy", description="Overall status: healthy, unhealthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    database_connected: bool
    request_id: Optional[str] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Unhealthy whenever the database is unreachable"""
        self.status = "healthy" if self.database_connected else "unhealthy"
        return self
