"""
Pydantic schemas for data validation and serialization.

Schemas:
    catalog: CatalogRow (one validated CSV record) and ObjectNotification
    api: Status API response models

Usage:
    from schemas.catalog import CatalogRow, ObjectNotification
    from schemas.api import IngestionJobResponse, HealthCheckResponse

Example:
    row = CatalogRow(
        product_name=" Widget ",
        image_url="http://x/a.png",
        brand="Acme",
        barcode="100",
        tenant_id=1,
        list_id=7,
    )
    assert row.product_name == "Widget"
    assert row.has_image is True

Validation:
    CatalogRow enforces the per-row keep rule (non-empty name, numeric
    barcode); a pydantic ValidationError means the row is dropped.
"""

__all__ = [
    "CatalogRow",
    "ObjectNotification",
    "IngestionJobResponse",
    "HealthCheckResponse",
]
