"""
Chunked reconciliation processor.

Walks a batch's validated staging rows in fixed-size chunks and applies each
chunk to the canonical product table in one unit of work: insert new
products, update changed ones, skip identical ones, write history, mark the
rows processed and log the chunk.
"""

import math
import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from product_ingest.core.exceptions import ChunkFailure, InvalidStateTransition
from product_ingest.core.models import (
    AttributeValue,
    AuditEntry,
    BatchStatus,
    CanonicalProduct,
    ChangeType,
    ChunkLog,
    StagingRow,
    ValidationState,
    utc_now,
)
from product_ingest.core.schema import CatalogSchema
from product_ingest.ingest.coercion import to_json_value
from product_ingest.observability.logger import get_logger
from product_ingest.observability.metrics import chunks_processed_total, increment_counter, record_chunk
from product_ingest.warehouse.store import CatalogStore, UnitOfWork

from .lifecycle import BatchTracker

logger = get_logger("product-ingest.batch")

DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_TIMEOUT_SECONDS = 30.0
VALIDATED_STATES = [ValidationState.VALID, ValidationState.PROCESSED]


@dataclass
class ChunkResult:
    chunk_index: int
    rows: int
    created: int = 0
    updated: int = 0
    elapsed_ms: int = 0

    @property
    def skipped(self) -> int:
        return self.rows - self.created - self.updated


@dataclass
class ProcessingOutcome:
    """What one processing attempt did."""

    batch_id: str
    attempt: int
    total_chunks: int
    final_status: BatchStatus
    chunks: list[ChunkResult] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(c.created for c in self.chunks)

    @property
    def updated(self) -> int:
        return sum(c.updated for c in self.chunks)

    @property
    def skipped(self) -> int:
        return sum(c.skipped for c in self.chunks)


def values_equal(old: AttributeValue, new: AttributeValue) -> bool:
    """Null-safe equality: null equals null, a value never equals null."""
    if old is None or new is None:
        return old is None and new is None
    return old == new


def diff_attributes(schema: CatalogSchema, old: dict[str, AttributeValue], new: dict[str, AttributeValue]) -> dict[str, dict[str, Any]]:
    """
    Compared fields whose values differ, as {field: {"from": .., "to": ..}}.

    Values are rendered in their JSON form (decimals as strings).
    """
    changes = {}
    for name in schema.diff_fields():
        before, after = old.get(name), new.get(name)
        if not values_equal(before, after):
            changes[name] = {"from": to_json_value(before), "to": to_json_value(after)}
    return changes


def as_price(value: AttributeValue) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def is_active(schema: CatalogSchema, attributes: dict[str, AttributeValue], today: date | None = None) -> bool:
    """A product is active until its withdrawal date has passed."""
    if not schema.withdrawal_field:
        return True
    withdrawn = attributes.get(schema.withdrawal_field)
    if not isinstance(withdrawn, str):
        return True
    try:
        return date.fromisoformat(withdrawn) > (today or date.today())
    except ValueError:
        return True


class ChunkProcessor:
    """
    Reconciles validated staging rows into the canonical product table.

    Chunks run strictly in order. A failing chunk is rolled back on its own;
    chunks committed before it stay committed and the batch is marked FAILED.
    """

    def __init__(
        self,
        store: CatalogStore,
        tracker: BatchTracker,
        schema: CatalogSchema,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_timeout_seconds: float = DEFAULT_CHUNK_TIMEOUT_SECONDS,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.store = store
        self.tracker = tracker
        self.schema = schema
        self.chunk_size = chunk_size
        self.chunk_timeout_seconds = chunk_timeout_seconds

    def total_chunks(self, valid_records: int) -> int:
        return math.ceil(valid_records / self.chunk_size)

    def process_batch(self, batch_id: str, actor: str) -> ProcessingOutcome:
        """
        Run one processing attempt over a VALIDATED batch.

        Args:
            batch_id: Batch to reconcile
            actor: Recorded as created_by/updated_by/changed_by

        Returns:
            ProcessingOutcome; final_status is COMPLETED, or FAILED when the
            batch was cancelled between chunks

        Raises:
            InvalidStateTransition: Batch is not VALIDATED
            ChunkFailure: A chunk failed; the batch has been marked FAILED
        """
        batch = self.tracker.start_processing(batch_id)
        attempt = batch.processing_attempt

        with self.store.unit_of_work() as uow:
            valid = uow.count_staging(batch_id, VALIDATED_STATES)
        total_chunks = self.total_chunks(valid)

        outcome = ProcessingOutcome(
            batch_id=batch_id,
            attempt=attempt,
            total_chunks=total_chunks,
            final_status=BatchStatus.PROCESSING,
        )
        logger.info(
            f"Processing batch {batch_id}: {valid} rows in {total_chunks} chunks",
            extra={"batch_id": batch_id, "attempt": attempt, "valid_records": valid, "total_chunks": total_chunks},
        )

        for chunk_index in range(total_chunks):
            current = self.tracker.get_batch(batch_id)
            if current.status != BatchStatus.PROCESSING:
                logger.info(
                    f"Batch {batch_id} is {current.status.value}; stopping before chunk {chunk_index}",
                    extra={"batch_id": batch_id, "chunk_index": chunk_index, "current_status": current.status.value},
                )
                outcome.final_status = current.status
                return outcome

            try:
                result = self._process_chunk(batch_id, attempt, chunk_index, actor)
            except Exception as e:
                increment_counter(chunks_processed_total, 1, status="failed")
                self.tracker.fail(batch_id, f"chunk {chunk_index} failed: {e}")
                raise ChunkFailure(
                    f"Chunk {chunk_index} of batch {batch_id} failed: {e}",
                    batch_id=batch_id,
                    chunk_index=chunk_index,
                ) from e

            outcome.chunks.append(result)
            record_chunk(result.created, result.updated, result.skipped, result.elapsed_ms / 1000)

        try:
            self.tracker.complete(batch_id)
            outcome.final_status = BatchStatus.COMPLETED
        except InvalidStateTransition as e:
            # Cancelled while the last chunk was running
            outcome.final_status = BatchStatus(e.current_status)

        logger.info(
            f"Batch {batch_id} finished processing as {outcome.final_status.value}",
            extra={
                "batch_id": batch_id,
                "attempt": attempt,
                "records_created": outcome.created,
                "records_updated": outcome.updated,
                "records_skipped": outcome.skipped,
            },
        )
        return outcome

    def _process_chunk(self, batch_id: str, attempt: int, chunk_index: int, actor: str) -> ChunkResult:
        started = time.monotonic()

        with self.store.unit_of_work(timeout_seconds=self.chunk_timeout_seconds) as uow:
            rows = uow.list_staging_rows(
                batch_id,
                VALIDATED_STATES,
                offset=chunk_index * self.chunk_size,
                limit=self.chunk_size,
            )
            result = ChunkResult(chunk_index=chunk_index, rows=len(rows))

            pending = [row for row in rows if row.validation_state == ValidationState.VALID]
            # Only the last valid occurrence of an identifier in the batch is applied
            latest = uow.latest_staging_ids(batch_id, [row.product_id for row in pending], VALIDATED_STATES)
            applied = [row for row in pending if latest.get(row.product_id) == row.staging_id]
            current = uow.get_products([row.product_id for row in applied], for_update=True)

            now = utc_now()
            for row in applied:
                change = self._reconcile_row(uow, row, current, batch_id, actor)
                if change == ChangeType.INSERT:
                    result.created += 1
                elif change == ChangeType.UPDATE:
                    result.updated += 1

            uow.mark_processed([row.staging_id for row in pending], now)

            result.elapsed_ms = int((time.monotonic() - started) * 1000)
            uow.append_chunk_log(
                ChunkLog(
                    batch_id=batch_id,
                    attempt=attempt,
                    chunk_index=chunk_index,
                    records_processed=result.rows,
                    records_created=result.created,
                    records_updated=result.updated,
                    records_skipped=result.skipped,
                    processing_time_ms=result.elapsed_ms,
                )
            )
            uow.update_batch(batch_id, processed_records=uow.count_staging(batch_id, [ValidationState.PROCESSED]))

        logger.info(
            f"Committed chunk {chunk_index} of batch {batch_id}",
            extra={
                "batch_id": batch_id,
                "attempt": attempt,
                "chunk_index": chunk_index,
                "records_processed": result.rows,
                "records_created": result.created,
                "records_updated": result.updated,
                "records_skipped": result.skipped,
                "processing_time_ms": result.elapsed_ms,
            },
        )
        return result

    def _reconcile_row(
        self,
        uow: UnitOfWork,
        row: StagingRow,
        current: dict[str, CanonicalProduct],
        batch_id: str,
        actor: str,
    ) -> ChangeType | None:
        """Apply one staging row; returns the change made, or None when skipped."""
        schema = self.schema
        attributes = dict(row.attributes)
        existing = current.get(row.product_id)
        now = utc_now()

        if existing is None:
            product = CanonicalProduct(
                product_id=row.product_id,
                attributes=attributes,
                is_active=is_active(schema, attributes),
                created_at=now,
                created_by=actor,
            )
            if uow.insert_product(product):
                uow.append_audit(self._audit_entry(ChangeType.INSERT, row, None, attributes, {}, batch_id, actor))
                current[row.product_id] = product
                return ChangeType.INSERT

            # Another batch inserted this identifier after our read; diff against its row
            existing = uow.get_products([row.product_id], for_update=True)[row.product_id]
            logger.info(
                f"Product {row.product_id} was inserted concurrently; updating instead",
                extra={"batch_id": batch_id, "product_id": row.product_id},
            )

        changes = diff_attributes(schema, existing.attributes, attributes)
        if not changes:
            return None

        product = existing.model_copy(
            update={
                "attributes": attributes,
                "is_active": is_active(schema, attributes),
                "updated_at": now,
                "updated_by": actor,
            }
        )
        uow.update_product(product)
        uow.append_audit(
            self._audit_entry(ChangeType.UPDATE, row, existing.attributes, attributes, changes, batch_id, actor)
        )
        current[row.product_id] = product
        return ChangeType.UPDATE

    def _audit_entry(
        self,
        change_type: ChangeType,
        row: StagingRow,
        before: dict[str, AttributeValue] | None,
        after: dict[str, AttributeValue],
        changes: dict[str, dict[str, Any]],
        batch_id: str,
        actor: str,
    ) -> AuditEntry:
        schema = self.schema
        before = before or {}
        name = after.get(schema.name_field) if schema.name_field else None
        return AuditEntry(
            product_id=row.product_id,
            product_name=name if isinstance(name, str) else None,
            batch_id=batch_id,
            change_type=change_type,
            old_price=as_price(before.get(schema.price_field)) if schema.price_field else None,
            new_price=as_price(after.get(schema.price_field)) if schema.price_field else None,
            old_withdrawn_date=before.get(schema.withdrawal_field) if schema.withdrawal_field else None,
            new_withdrawn_date=after.get(schema.withdrawal_field) if schema.withdrawal_field else None,
            changes=changes,
            changed_by=actor,
        )
