"""
Batch, staging row and processing log models.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .product import AttributeValue, ProductRecord, utc_now


class BatchStatus(str, Enum):
    """Lifecycle status of an upload batch."""

    UPLOADED = "UPLOADED"
    VALIDATING = "VALIDATING"
    VALIDATED = "VALIDATED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ValidationState(str, Enum):
    """Validation state of a single staging row."""

    PENDING = "PENDING"
    VALID = "VALID"
    INVALID = "INVALID"
    PROCESSED = "PROCESSED"


class UploadBatch(BaseModel):
    """
    One upload, tracked end to end through its lifecycle.

    Attributes:
        batch_id: Unique identifier generated at ingest
        file_name: Original file name
        uploaded_by: Uploader identity
        total_records: Number of staged rows
        valid_records: Rows that passed validation (VALID or PROCESSED)
        invalid_records: Rows that failed validation
        processed_records: Rows reconciled into the catalog (recount)
        status: Lifecycle status
        uploaded_at: Ingest timestamp
        processing_started_at: Start of the latest processing attempt
        processing_completed_at: End of the latest processing attempt
        processing_attempt: Number of times processing has been started
    """

    batch_id: str
    file_name: str
    uploaded_by: str
    total_records: int = Field(0, ge=0)
    valid_records: int = Field(0, ge=0)
    invalid_records: int = Field(0, ge=0)
    processed_records: int = Field(0, ge=0)
    status: BatchStatus = BatchStatus.UPLOADED
    uploaded_at: datetime = Field(default_factory=utc_now)
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processing_attempt: int = Field(0, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "batch_id": "6f1c2a57-3a43-4d0f-9d43-2f1f0d5cf0a1",
                "file_name": "products_2025_01.xlsx",
                "uploaded_by": "pricing.team",
                "total_records": 1200,
                "valid_records": 1190,
                "invalid_records": 10,
                "processed_records": 500,
                "status": "PROCESSING",
                "processing_attempt": 1,
            }
        }


class StagingRow(BaseModel):
    """
    A parsed record waiting for validation and reconciliation.

    staging_id is assigned by the store on insert and is the stable
    insertion-order key used for chunk selection.
    """

    staging_id: int | None = None
    batch_id: str
    row_number: int
    product_id: str
    attributes: dict[str, AttributeValue] = Field(default_factory=dict)
    validation_state: ValidationState = ValidationState.PENDING
    validation_errors: str | None = None
    processed_at: datetime | None = None
    uploaded_by: str

    def to_record(self) -> ProductRecord:
        return ProductRecord(
            product_id=self.product_id,
            attributes=dict(self.attributes),
            row_number=self.row_number,
        )


class ChunkLog(BaseModel):
    """Processing log entry written once per committed chunk."""

    log_id: int | None = None
    batch_id: str
    attempt: int
    chunk_index: int = Field(..., ge=0)
    records_processed: int = Field(..., ge=0)
    records_created: int = Field(0, ge=0)
    records_updated: int = Field(0, ge=0)
    records_skipped: int = Field(0, ge=0)
    processing_time_ms: int = Field(0, ge=0)
    logged_at: datetime = Field(default_factory=utc_now)
