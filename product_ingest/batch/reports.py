"""
Read-side batch reporting: status, reconciliation report, listings.
"""

import math

from product_ingest.core.exceptions import InvalidStateTransition, NotFoundFailure
from product_ingest.core.models import (
    BatchPage,
    BatchStatus,
    BatchStatusReport,
    ChangeType,
    ChunkStatistics,
    CreatedProduct,
    FieldChange,
    Pagination,
    ReconciliationReport,
    ReconciliationSummary,
    UpdatedProduct,
    UploadBatch,
    UploadStats,
)
from product_ingest.warehouse.store import CatalogStore

from .validation import ValidationEngine


def progress_percentage(batch: UploadBatch) -> int:
    """round(processed / valid * 100), 0 when there are no valid rows."""
    if batch.valid_records <= 0:
        return 0
    return round(batch.processed_records / batch.valid_records * 100)


def paginate(page: int, page_size: int, total: int) -> Pagination:
    return Pagination(
        page=page,
        page_size=page_size,
        total_records=total,
        total_pages=math.ceil(total / page_size) if page_size else 0,
    )


def check_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")


class BatchReporter:
    """
    Builds status and reconciliation reports from persisted batch state.

    The validation engine is only needed for reconciliation reports.
    """

    def __init__(self, store: CatalogStore, validation: ValidationEngine | None, chunk_size: int):
        self.store = store
        self.validation = validation
        self.chunk_size = chunk_size

    def _load(self, batch_id: str) -> UploadBatch:
        with self.store.unit_of_work() as uow:
            batch = uow.get_batch(batch_id)
        if batch is None:
            raise NotFoundFailure(f"Batch {batch_id} not found", batch_id=batch_id)
        return batch

    def batch_status(self, batch_id: str) -> BatchStatusReport:
        """
        Current status, counts, progress and chunk statistics of the latest
        processing attempt.

        Raises:
            NotFoundFailure: Unknown batch
        """
        with self.store.unit_of_work() as uow:
            batch = uow.get_batch(batch_id)
            if batch is None:
                raise NotFoundFailure(f"Batch {batch_id} not found", batch_id=batch_id)
            logs = uow.list_chunk_logs(batch_id, attempt=batch.processing_attempt) if batch.processing_attempt else []

        chunk_stats = ChunkStatistics(
            total_chunks=math.ceil(batch.valid_records / self.chunk_size),
            chunks_completed=len(logs),
            created=sum(log.records_created for log in logs),
            updated=sum(log.records_updated for log in logs),
            skipped=sum(log.records_skipped for log in logs),
        )
        return BatchStatusReport(
            batch_id=batch.batch_id,
            status=batch.status,
            file_name=batch.file_name,
            total_records=batch.total_records,
            valid_records=batch.valid_records,
            invalid_records=batch.invalid_records,
            processed_records=batch.processed_records,
            progress_percentage=progress_percentage(batch),
            chunk_stats=chunk_stats,
            uploaded_at=batch.uploaded_at,
            uploaded_by=batch.uploaded_by,
            processing_started_at=batch.processing_started_at,
            processing_completed_at=batch.processing_completed_at,
        )

    def reconciliation(self, batch_id: str) -> ReconciliationReport:
        """
        What a completed batch created, updated and left unchanged.

        Built from the batch's history entries, so changes committed by an
        earlier failed attempt are included.

        Raises:
            NotFoundFailure: Unknown batch
            InvalidStateTransition: Batch is not COMPLETED
        """
        batch = self._load(batch_id)
        if batch.status != BatchStatus.COMPLETED:
            raise InvalidStateTransition(
                f"Reconciliation report is only available for COMPLETED batches (batch {batch_id} is {batch.status.value})",
                batch_id=batch_id,
                current_status=batch.status.value,
                requested_status=BatchStatus.COMPLETED.value,
            )

        with self.store.unit_of_work() as uow:
            entries = uow.list_audit(batch_id=batch_id)

        created = [
            CreatedProduct(product_id=e.product_id, product_name=e.product_name, price=e.new_price)
            for e in entries
            if e.change_type == ChangeType.INSERT
        ]
        updated = [
            UpdatedProduct(
                product_id=e.product_id,
                product_name=e.product_name,
                changes={
                    name: FieldChange(before=change.get("from"), after=change.get("to"))
                    for name, change in e.changes.items()
                },
            )
            for e in entries
            if e.change_type == ChangeType.UPDATE
        ]
        invalid = self.validation.invalid_rows(batch_id)

        processing_time_ms = 0
        if batch.processing_started_at and batch.processing_completed_at:
            elapsed = batch.processing_completed_at - batch.processing_started_at
            processing_time_ms = int(elapsed.total_seconds() * 1000)

        return ReconciliationReport(
            batch_id=batch_id,
            status=batch.status,
            summary=ReconciliationSummary(
                total_records=batch.total_records,
                created=len(created),
                updated=len(updated),
                unchanged=max(batch.valid_records - len(created) - len(updated), 0),
                invalid=batch.invalid_records,
            ),
            created_products=created,
            updated_products=updated,
            invalid_products=invalid,
            processing_time_ms=processing_time_ms,
        )

    def list_batches(self, page: int = 1, page_size: int = 20, uploaded_by: str | None = None) -> BatchPage:
        """Batches newest first with pagination metadata."""
        check_page(page, page_size)
        with self.store.unit_of_work() as uow:
            total = uow.count_batches(uploaded_by)
            batches = uow.list_batches((page - 1) * page_size, page_size, uploaded_by)
        return BatchPage(data=batches, pagination=paginate(page, page_size, total))

    def upload_stats(self, uploaded_by: str | None = None) -> UploadStats:
        with self.store.unit_of_work() as uow:
            return uow.upload_stats(uploaded_by)
