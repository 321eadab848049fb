"""
Staging store writer: one batch header plus one staging row per record.
"""

import uuid

from product_ingest.core.exceptions import StagingFailure
from product_ingest.core.models import BatchStatus, ProductRecord, StagingRow, UploadBatch, ValidationState
from product_ingest.observability.logger import get_logger
from product_ingest.observability.metrics import batch_size, increment_counter, observe_histogram, records_staged_total
from product_ingest.warehouse.store import CatalogStore

logger = get_logger("product-ingest.batch")


class StagingService:
    """
    Writes a parsed upload into the staging area in a single unit of work.

    No validation happens here: every row is staged as PENDING.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    def stage_batch(self, file_name: str, uploaded_by: str, records: list[ProductRecord]) -> str:
        """
        Create a batch and stage its records.

        Args:
            file_name: Original file name
            uploaded_by: Uploader identity
            records: Parsed records in sheet order

        Returns:
            The new batch id

        Raises:
            StagingFailure: No records, or the batch/staging write failed
                (nothing is left behind)
        """
        if not records:
            raise StagingFailure("Cannot stage an upload with no records")

        batch_id = str(uuid.uuid4())
        batch = UploadBatch(
            batch_id=batch_id,
            file_name=file_name,
            uploaded_by=uploaded_by,
            total_records=len(records),
            status=BatchStatus.UPLOADED,
        )
        rows = [
            StagingRow(
                batch_id=batch_id,
                row_number=record.row_number if record.row_number is not None else position + 2,
                product_id=record.product_id,
                attributes=record.attributes,
                validation_state=ValidationState.PENDING,
                uploaded_by=uploaded_by,
            )
            for position, record in enumerate(records)
        ]

        try:
            with self.store.unit_of_work() as uow:
                uow.insert_batch(batch)
                uow.insert_staging_rows(rows)
        except Exception as e:
            logger.error(
                f"Failed to stage {file_name}: {e}",
                extra={"batch_id": batch_id, "file_name": file_name, "error_type": type(e).__name__},
            )
            raise StagingFailure(f"Failed to stage upload {file_name}: {e}", batch_id=batch_id) from e

        increment_counter(records_staged_total, len(rows))
        observe_histogram(batch_size, len(rows))
        logger.info(
            f"Staged {len(rows)} records from {file_name}",
            extra={"batch_id": batch_id, "file_name": file_name, "uploaded_by": uploaded_by, "record_count": len(rows)},
        )
        return batch_id
