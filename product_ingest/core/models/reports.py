"""
Read-side report models returned to status pollers and operators.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from .batch import BatchStatus, UploadBatch
from .product import CanonicalProduct


class InvalidRow(BaseModel):
    """A staging row that failed validation."""

    row_number: int
    product_id: str
    errors: list[str] = Field(default_factory=list)


class ChunkStatistics(BaseModel):
    """Chunk progress for the latest processing attempt."""

    total_chunks: int = 0
    chunks_completed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0


class BatchStatusReport(BaseModel):
    batch_id: str
    status: BatchStatus
    file_name: str
    total_records: int
    valid_records: int
    invalid_records: int
    processed_records: int
    progress_percentage: int
    chunk_stats: ChunkStatistics
    uploaded_at: datetime
    uploaded_by: str
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None


class FieldChange(BaseModel):
    before: Any = None
    after: Any = None


class CreatedProduct(BaseModel):
    product_id: str
    product_name: str | None = None
    price: Decimal | None = None


class UpdatedProduct(BaseModel):
    product_id: str
    product_name: str | None = None
    changes: dict[str, FieldChange] = Field(default_factory=dict)


class ReconciliationSummary(BaseModel):
    total_records: int
    created: int
    updated: int
    unchanged: int
    invalid: int


class ReconciliationReport(BaseModel):
    """Outcome of a completed batch: what was created, updated, left alone."""

    batch_id: str
    status: BatchStatus
    summary: ReconciliationSummary
    created_products: list[CreatedProduct] = Field(default_factory=list)
    updated_products: list[UpdatedProduct] = Field(default_factory=list)
    invalid_products: list[InvalidRow] = Field(default_factory=list)
    processing_time_ms: int = 0


class ValidationSummary(BaseModel):
    batch_id: str
    file_name: str
    status: BatchStatus
    total_records: int
    valid_records: int
    invalid_records: int
    uploaded_at: datetime
    uploaded_by: str
    invalid_sample: list[InvalidRow] = Field(default_factory=list)


class UploadStats(BaseModel):
    total_uploads: int = 0
    total_records: int = 0
    total_valid_records: int = 0
    total_invalid_records: int = 0


class Pagination(BaseModel):
    page: int
    page_size: int
    total_records: int
    total_pages: int


class BatchPage(BaseModel):
    data: list[UploadBatch]
    pagination: Pagination


class ProductPage(BaseModel):
    data: list[CanonicalProduct]
    pagination: Pagination
