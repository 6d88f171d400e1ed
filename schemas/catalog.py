"""
Pydantic schemas for catalog rows and ingestion notifications
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

BARCODE_PATTERN = re.compile(r"^\d+$", re.ASCII)


class CatalogRow(BaseModel):
    """
    One validated input record, annotated with its tenant and list.

    Ensures:
    - product_name is non-empty after trimming
    - barcode is a non-empty numeric string after trimming
    - optional fields default to empty strings
    """

    model_config = ConfigDict(frozen=True)

    product_name: str
    image_url: str = ""
    brand: str = ""
    barcode: str
    tenant_id: int = Field(..., ge=0)
    list_id: int = Field(..., ge=0)

    @field_validator("product_name", "image_url", "brand", "barcode", mode="before")
    @classmethod
    def strip_text(cls, v):
        """Trim surrounding whitespace; missing values become empty strings"""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("product_name")
    @classmethod
    def require_product_name(cls, v):
        if not v:
            raise ValueError("ProductName is required")
        return v

    @field_validator("barcode")
    @classmethod
    def require_numeric_barcode(cls, v):
        if not v:
            raise ValueError("Barcode is required")
        if not BARCODE_PATTERN.fullmatch(v):
            raise ValueError("Barcode must contain digits only")
        return v

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)


class ObjectNotification(BaseModel):
    """Reference to a newly uploaded object"""

    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)
    message_id: Optional[str] = None
