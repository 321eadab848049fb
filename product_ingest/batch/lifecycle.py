"""
Batch lifecycle tracker.

The upload_batch row is the single source of truth for what may happen to a
batch next. Every status change is a compare-and-set on the locked batch row
inside one unit of work.
"""

from typing import Any

from product_ingest.core.exceptions import InvalidStateTransition, NotFoundFailure
from product_ingest.core.models import BatchStatus, UploadBatch, ValidationState, utc_now
from product_ingest.observability.logger import get_logger
from product_ingest.observability.metrics import batches_finished_total, increment_counter
from product_ingest.warehouse.store import CatalogStore, UnitOfWork

logger = get_logger("product-ingest.batch")

ALLOWED_TRANSITIONS: dict[BatchStatus, set[BatchStatus]] = {
    BatchStatus.UPLOADED: {BatchStatus.VALIDATING},
    BatchStatus.VALIDATING: {BatchStatus.VALIDATED, BatchStatus.FAILED},
    BatchStatus.VALIDATED: {BatchStatus.VALIDATING, BatchStatus.PROCESSING, BatchStatus.FAILED},
    BatchStatus.PROCESSING: {BatchStatus.COMPLETED, BatchStatus.FAILED},
    BatchStatus.FAILED: {BatchStatus.VALIDATED},
    BatchStatus.COMPLETED: set(),
}

CANCELLABLE = {BatchStatus.VALIDATING, BatchStatus.VALIDATED, BatchStatus.PROCESSING}


def can_transition(current: BatchStatus, target: BatchStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class BatchTracker:
    """
    Persisted batch state machine.

    UPLOADED -> VALIDATING -> VALIDATED -> PROCESSING -> COMPLETED, with
    FAILED reachable from VALIDATING, VALIDATED and PROCESSING, and
    FAILED -> VALIDATED only through retry.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    def get_batch(self, batch_id: str) -> UploadBatch:
        """
        Fetch a batch.

        Raises:
            NotFoundFailure: If the batch does not exist
        """
        with self.store.unit_of_work() as uow:
            batch = uow.get_batch(batch_id)
        if batch is None:
            raise NotFoundFailure(f"Batch {batch_id} not found", batch_id=batch_id)
        return batch

    def transition(
        self,
        batch_id: str,
        target: BatchStatus,
        allowed_from: set[BatchStatus] | None = None,
        **changes: Any,
    ) -> UploadBatch:
        """
        Move a batch to a new status in its own unit of work.

        Args:
            batch_id: Batch to move
            target: Requested status
            allowed_from: Further restricts the legal source statuses
            **changes: Other batch fields written in the same unit of work

        Returns:
            The batch as it was before the transition

        Raises:
            NotFoundFailure: Unknown batch
            InvalidStateTransition: Transition not allowed from the current status
        """
        with self.store.unit_of_work() as uow:
            return self.transition_in(uow, batch_id, target, allowed_from, **changes)

    def transition_in(
        self,
        uow: UnitOfWork,
        batch_id: str,
        target: BatchStatus,
        allowed_from: set[BatchStatus] | None = None,
        **changes: Any,
    ) -> UploadBatch:
        """Same as transition() but inside the caller's unit of work."""
        batch = uow.get_batch(batch_id, for_update=True)
        if batch is None:
            raise NotFoundFailure(f"Batch {batch_id} not found", batch_id=batch_id)

        current = batch.status
        legal = can_transition(current, target) and (allowed_from is None or current in allowed_from)
        if not legal:
            raise InvalidStateTransition(
                f"Cannot move batch {batch_id} from {current.value} to {target.value}",
                batch_id=batch_id,
                current_status=current.value,
                requested_status=target.value,
            )

        uow.update_batch(batch_id, status=target, **changes)
        logger.info(
            f"Batch {batch_id}: {current.value} -> {target.value}",
            extra={"batch_id": batch_id, "from_status": current.value, "to_status": target.value},
        )
        if target in (BatchStatus.COMPLETED, BatchStatus.FAILED):
            increment_counter(batches_finished_total, 1, status=target.value)
        return batch

    def start_processing(self, batch_id: str) -> UploadBatch:
        """
        VALIDATED -> PROCESSING, opening a new processing attempt.

        Returns:
            The batch after the transition
        """
        with self.store.unit_of_work() as uow:
            batch = uow.get_batch(batch_id, for_update=True)
            if batch is None:
                raise NotFoundFailure(f"Batch {batch_id} not found", batch_id=batch_id)
            self.transition_in(
                uow,
                batch_id,
                BatchStatus.PROCESSING,
                processing_started_at=utc_now(),
                processing_completed_at=None,
                processing_attempt=batch.processing_attempt + 1,
            )
            return uow.get_batch(batch_id)

    def complete(self, batch_id: str) -> UploadBatch:
        """PROCESSING -> COMPLETED with the end timestamp."""
        return self.transition(batch_id, BatchStatus.COMPLETED, processing_completed_at=utc_now())

    def fail(self, batch_id: str, reason: str) -> bool:
        """
        Mark a batch FAILED if its current status allows it.

        Returns:
            True if the batch moved to FAILED, False if it was already
            FAILED or COMPLETED
        """
        try:
            self.transition(batch_id, BatchStatus.FAILED)
        except InvalidStateTransition as e:
            logger.warning(
                f"Batch {batch_id} not marked FAILED from {e.current_status}: {reason}",
                extra={"batch_id": batch_id, "current_status": e.current_status},
            )
            return False

        logger.error(f"Batch {batch_id} failed: {reason}", extra={"batch_id": batch_id, "reason": reason})
        return True

    def cancel(self, batch_id: str) -> UploadBatch:
        """
        Cancel a batch that is validating, validated or processing.

        Chunks already committed stay committed; the processor stops before
        its next chunk.

        Raises:
            InvalidStateTransition: Batch is UPLOADED, COMPLETED or FAILED
        """
        previous = self.transition(batch_id, BatchStatus.FAILED, allowed_from=CANCELLABLE)
        logger.info(f"Batch {batch_id} cancelled", extra={"batch_id": batch_id, "from_status": previous.status.value})
        return self.get_batch(batch_id)

    def prepare_retry(self, batch_id: str) -> UploadBatch:
        """
        FAILED -> VALIDATED, resetting processing progress.

        Processed rows go back to VALID so the next attempt walks the full
        validated set again; rows already applied to the catalog will diff
        equal and be skipped.

        Raises:
            InvalidStateTransition: Batch is not FAILED
        """
        with self.store.unit_of_work() as uow:
            self.transition_in(
                uow,
                batch_id,
                BatchStatus.VALIDATED,
                allowed_from={BatchStatus.FAILED},
                processed_records=0,
                processing_started_at=None,
                processing_completed_at=None,
            )
            reverted = uow.revert_processed(batch_id)
            batch = uow.get_batch(batch_id)

        logger.info(
            f"Batch {batch_id} reset for retry",
            extra={"batch_id": batch_id, "rows_reverted": reverted},
        )
        return batch

    def has_pending_rows(self, batch_id: str) -> bool:
        with self.store.unit_of_work() as uow:
            return uow.count_staging(batch_id, [ValidationState.PENDING]) > 0
