"""
Core data models for the product ingestion pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .audit_log import AuditEntry, ChangeType
from .batch import BatchStatus, ChunkLog, StagingRow, UploadBatch, ValidationState
from .product import AttributeValue, CanonicalProduct, ProductRecord, utc_now
from .reports import (
    BatchPage,
    BatchStatusReport,
    ChunkStatistics,
    CreatedProduct,
    FieldChange,
    InvalidRow,
    Pagination,
    ProductPage,
    ReconciliationReport,
    ReconciliationSummary,
    UpdatedProduct,
    UploadStats,
    ValidationSummary,
)
from .validation_result import ValidationResult

__all__ = [
    "AttributeValue",
    "ProductRecord",
    "CanonicalProduct",
    "UploadBatch",
    "StagingRow",
    "ChunkLog",
    "BatchStatus",
    "ValidationState",
    "ValidationResult",
    "AuditEntry",
    "ChangeType",
    "InvalidRow",
    "ChunkStatistics",
    "BatchStatusReport",
    "FieldChange",
    "CreatedProduct",
    "UpdatedProduct",
    "ReconciliationSummary",
    "ReconciliationReport",
    "ValidationSummary",
    "UploadStats",
    "Pagination",
    "BatchPage",
    "ProductPage",
    "utc_now",
]
