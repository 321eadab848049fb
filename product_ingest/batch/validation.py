"""
Validation engine: scores every staging row of a batch against the rule set.
"""

from collections import Counter
from typing import Any

from product_ingest.core.exceptions import NotFoundFailure, PipelineError, ValidationFailure
from product_ingest.core.models import BatchStatus, InvalidRow, ValidationState, ValidationSummary
from product_ingest.core.rules import RuleEngine
from product_ingest.observability.logger import get_logger, log_operation
from product_ingest.observability.metrics import record_validation
from product_ingest.warehouse.store import CatalogStore

from .lifecycle import BatchTracker

logger = get_logger("product-ingest.batch")

SCORED_STATES = [ValidationState.PENDING, ValidationState.VALID, ValidationState.INVALID]
VALIDATED_STATES = [ValidationState.VALID, ValidationState.PROCESSED]
SUMMARY_SAMPLE_SIZE = 5


class ValidationEngine:
    """
    Applies the ordered rule set to a batch's staging rows.

    Validation is idempotent: every row not yet PROCESSED is rescored from
    scratch, so running it twice yields identical states and error texts.
    """

    def __init__(self, store: CatalogStore, rule_engine: RuleEngine, tracker: BatchTracker):
        self.store = store
        self.rule_engine = rule_engine
        self.tracker = tracker

    def validate(self, batch_id: str) -> dict[str, int]:
        """
        Validate a batch.

        UPLOADED/VALIDATED -> VALIDATING, score every row, then in one unit of
        work write row states, recount the batch and set VALIDATED. If the
        batch was cancelled meanwhile, nothing is written.

        Args:
            batch_id: Batch to validate

        Returns:
            {"valid": n, "invalid": m} as recounted from staging

        Raises:
            NotFoundFailure: Unknown batch
            InvalidStateTransition: Batch is not UPLOADED or VALIDATED
            ValidationFailure: Unexpected error; the batch is marked FAILED
        """
        self.tracker.transition(
            batch_id,
            BatchStatus.VALIDATING,
            allowed_from={BatchStatus.UPLOADED, BatchStatus.VALIDATED},
        )

        try:
            with log_operation("Validating batch", logger=logger, batch_id=batch_id):
                return self._score_and_record(batch_id)
        except PipelineError:
            raise
        except Exception as e:
            self.tracker.fail(batch_id, f"validation error: {e}")
            raise ValidationFailure(f"Validation of batch {batch_id} failed: {e}", batch_id=batch_id) from e

    def _score_and_record(self, batch_id: str) -> dict[str, int]:
        with self.store.unit_of_work() as uow:
            rows = uow.list_staging_rows(batch_id, SCORED_STATES)

        updates = []
        failed_rules: Counter = Counter()
        for row in rows:
            result = self.rule_engine.validate_record(row.to_record())
            if result.passed:
                updates.append((row.staging_id, ValidationState.VALID, None))
            else:
                updates.append((row.staging_id, ValidationState.INVALID, result.error_message))
                failed_rules[result.failed_rules[0]] += 1

        with self.store.unit_of_work() as uow:
            batch = uow.get_batch(batch_id, for_update=True)
            if batch is None or batch.status != BatchStatus.VALIDATING:
                status = batch.status.value if batch else None
                logger.warning(
                    f"Batch {batch_id} left VALIDATING during validation ({status}); discarding results",
                    extra={"batch_id": batch_id, "current_status": status},
                )
                return {"valid": batch.valid_records if batch else 0, "invalid": batch.invalid_records if batch else 0}

            uow.update_validation(updates)
            valid = uow.count_staging(batch_id, VALIDATED_STATES)
            invalid = uow.count_staging(batch_id, [ValidationState.INVALID])
            self.tracker.transition_in(
                uow,
                batch_id,
                BatchStatus.VALIDATED,
                valid_records=valid,
                invalid_records=invalid,
            )

        record_validation(
            valid=sum(1 for u in updates if u[1] == ValidationState.VALID),
            invalid=sum(1 for u in updates if u[1] == ValidationState.INVALID),
            failed_rules=dict(failed_rules),
        )
        logger.info(
            f"Validated batch {batch_id}: {valid} valid, {invalid} invalid",
            extra={"batch_id": batch_id, "valid_records": valid, "invalid_records": invalid},
        )
        return {"valid": valid, "invalid": invalid}

    def invalid_rows(self, batch_id: str, limit: int | None = None) -> list[InvalidRow]:
        """
        INVALID staging rows of a batch ordered by sheet row.

        Raises:
            NotFoundFailure: Unknown batch
        """
        with self.store.unit_of_work() as uow:
            if uow.get_batch(batch_id) is None:
                raise NotFoundFailure(f"Batch {batch_id} not found", batch_id=batch_id)
            rows = uow.list_staging_rows(batch_id, [ValidationState.INVALID])

        rows.sort(key=lambda r: (r.row_number, r.staging_id))
        if limit is not None:
            rows = rows[:limit]
        return [
            InvalidRow(
                row_number=row.row_number,
                product_id=row.product_id,
                errors=[row.validation_errors] if row.validation_errors else [],
            )
            for row in rows
        ]

    def validation_summary(self, batch_id: str) -> ValidationSummary:
        """Counts, status and the first few invalid rows of a batch."""
        batch = self.tracker.get_batch(batch_id)
        return ValidationSummary(
            batch_id=batch.batch_id,
            file_name=batch.file_name,
            status=batch.status,
            total_records=batch.total_records,
            valid_records=batch.valid_records,
            invalid_records=batch.invalid_records,
            uploaded_at=batch.uploaded_at,
            uploaded_by=batch.uploaded_by,
            invalid_sample=self.invalid_rows(batch_id, limit=SUMMARY_SAMPLE_SIZE),
        )

    def rule_catalog(self) -> dict[str, Any]:
        """Human readable list of active rules plus summary counts."""
        return {
            "rules": self.rule_engine.describe_rules(),
            "summary": self.rule_engine.get_rule_summary(),
        }
