"""
Ingestion service orchestration.

Coordinates the flow: parse -> stage -> validate -> process, with validation
and processing running on a background worker pool. Callers get the batch id
back as soon as the upload is staged and follow progress through the status
operations.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from product_ingest.config import PipelineSettings
from product_ingest.core.exceptions import InvalidStateTransition, PipelineError
from product_ingest.core.models import (
    BatchPage,
    BatchStatus,
    BatchStatusReport,
    InvalidRow,
    ReconciliationReport,
    UploadBatch,
    UploadStats,
    ValidationSummary,
)
from product_ingest.core.rules import RuleConfigLoader, RuleEngine, build_default_rules
from product_ingest.core.schema import CatalogSchema, get_schema
from product_ingest.ingest.parser import RecordParser
from product_ingest.observability.logger import get_logger
from product_ingest.observability.metrics import batches_in_flight, record_error
from product_ingest.warehouse.store import CatalogStore

from .lifecycle import BatchTracker
from .processor import ChunkProcessor, ProcessingOutcome
from .reports import BatchReporter
from .staging import StagingService
from .validation import ValidationEngine

logger = get_logger("product-ingest.pipeline")


def load_rule_engine(schema: CatalogSchema, rules_path: str | None = None) -> RuleEngine:
    """
    Rule engine for a catalog.

    Args:
        schema: Catalog schema
        rules_path: Optional YAML rule file; the schema's default rule set
            is used when omitted
    """
    if rules_path:
        rules = RuleConfigLoader(rules_path).load_rules()
        logger.info(f"Loaded {len(rules)} validation rules from {rules_path}")
    else:
        rules = build_default_rules(schema)
    return RuleEngine(rules, identifier_column=schema.identifier_column)


class IngestionService:
    """
    Front door of the ingestion pipeline.

    Flow:
    1. Parse the uploaded workbook (synchronous, all-or-nothing)
    2. Stage every record under a new batch (synchronous)
    3. Validate the batch (background)
    4. Reconcile valid rows chunk by chunk (background)

    Background failures never reach the caller: they are logged and left
    on the batch as FAILED.
    """

    def __init__(
        self,
        store: CatalogStore,
        settings: PipelineSettings | None = None,
        rule_engine: RuleEngine | None = None,
    ):
        """
        Initialize the service.

        Args:
            store: Catalog store (PostgreSQL or in-memory)
            settings: Pipeline settings; defaults when omitted
            rule_engine: Overrides the rule engine derived from settings
        """
        self.settings = settings or PipelineSettings()
        self.store = store
        self.schema = store.schema

        self.parser = RecordParser(self.schema, max_reported_errors=self.settings.max_reported_errors)
        self.staging = StagingService(store)
        self.tracker = BatchTracker(store)
        self.rule_engine = rule_engine or load_rule_engine(self.schema, self.settings.validation_rules_path)
        self.validation = ValidationEngine(store, self.rule_engine, self.tracker)
        self.processor = ChunkProcessor(
            store,
            self.tracker,
            self.schema,
            chunk_size=self.settings.chunk_size,
            chunk_timeout_seconds=self.settings.chunk_timeout_seconds,
        )
        self.reporter = BatchReporter(store, self.validation, self.settings.chunk_size)

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.worker_threads,
            thread_name_prefix="product-ingest",
        )
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: PipelineSettings, store: CatalogStore | None = None) -> "IngestionService":
        """Build a service on a PostgreSQL store unless one is given."""
        if store is None:
            from product_ingest.warehouse.postgres_store import PostgresCatalogStore

            store = PostgresCatalogStore(settings.create_pool(), get_schema(settings.catalog_schema))
        return cls(store, settings)

    # ---- write side ----

    def ingest(self, buffer: bytes, file_name: str, uploaded_by: str) -> str:
        """
        Parse and stage an upload, then validate and process it in the
        background.

        Args:
            buffer: Raw file bytes (.xlsx/.xlsm/.csv)
            file_name: Original file name
            uploaded_by: Uploader identity, also recorded as the actor of
                every catalog change made by this batch

        Returns:
            The new batch id

        Raises:
            ParseFailure: File unreadable or any row failed to parse; nothing staged
            StagingFailure: Staging write failed; nothing staged
        """
        records = self.parser.parse(buffer, file_name)
        batch_id = self.staging.stage_batch(file_name, uploaded_by, records)
        self._submit(batch_id, self._run, batch_id, uploaded_by, True)
        return batch_id

    def retry(self, batch_id: str) -> UploadBatch:
        """
        Re-run a FAILED batch.

        The batch goes back to VALIDATED and a new processing attempt starts
        in the background; rows never validated are validated first.

        Raises:
            NotFoundFailure: Unknown batch
            InvalidStateTransition: Batch is not FAILED
        """
        self._ensure_idle(batch_id)
        batch = self.tracker.prepare_retry(batch_id)
        revalidate = self.tracker.has_pending_rows(batch_id)
        self._submit(batch_id, self._run, batch_id, batch.uploaded_by, revalidate)
        logger.info(
            f"Retry scheduled for batch {batch_id}",
            extra={"batch_id": batch_id, "revalidate": revalidate},
        )
        return batch

    def cancel(self, batch_id: str) -> UploadBatch:
        """
        Cancel a batch that is validating, validated or processing.

        Raises:
            NotFoundFailure: Unknown batch
            InvalidStateTransition: Batch cannot be cancelled from its status
        """
        return self.tracker.cancel(batch_id)

    def _ensure_idle(self, batch_id: str) -> None:
        with self._lock:
            self._check_idle(batch_id)

    def _check_idle(self, batch_id: str) -> None:
        previous = self._futures.get(batch_id)
        if previous is not None and not previous.done():
            raise InvalidStateTransition(
                f"Batch {batch_id} still has background work running",
                batch_id=batch_id,
            )

    def _submit(self, batch_id: str, fn, *args: Any) -> None:
        with self._lock:
            self._check_idle(batch_id)
            batches_in_flight.inc()
            future = self._executor.submit(fn, *args)
            self._futures[batch_id] = future
        future.add_done_callback(lambda done: self._finished(batch_id, done))

    def _finished(self, batch_id: str, future: Future) -> None:
        batches_in_flight.dec()
        with self._lock:
            if self._futures.get(batch_id) is future:
                del self._futures[batch_id]

    def _run(self, batch_id: str, actor: str, validate: bool) -> ProcessingOutcome | None:
        """Background job: validate (if needed) then process. Never raises."""
        try:
            if validate:
                self.validation.validate(batch_id)
            return self.processor.process_batch(batch_id, actor)
        except InvalidStateTransition as e:
            # Cancelled or otherwise moved on before this step started
            logger.warning(
                f"Batch {batch_id} stopped: {e}",
                extra={"batch_id": batch_id, "current_status": e.current_status},
            )
        except PipelineError as e:
            record_error(type(e).__name__, "pipeline")
            logger.error(f"Batch {batch_id} failed: {e}", extra={"batch_id": batch_id, "error_type": type(e).__name__})
        except Exception as e:
            record_error(type(e).__name__, "pipeline")
            logger.error(
                f"Unexpected error running batch {batch_id}: {e}",
                exc_info=True,
                extra={"batch_id": batch_id, "error_type": type(e).__name__},
            )
            self.tracker.fail(batch_id, f"unexpected error: {e}")
        return None

    def wait_for(self, batch_id: str, timeout: float | None = None) -> UploadBatch:
        """
        Block until the batch's background work has finished.

        Returns:
            The batch as persisted afterwards

        Raises:
            TimeoutError: Work still running after timeout seconds
        """
        with self._lock:
            future = self._futures.get(batch_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeoutError:
                raise TimeoutError(f"Batch {batch_id} still running after {timeout}s") from None
        return self.tracker.get_batch(batch_id)

    # ---- read side ----

    def get_batch_status(self, batch_id: str) -> BatchStatusReport:
        return self.reporter.batch_status(batch_id)

    def get_reconciliation(self, batch_id: str) -> ReconciliationReport:
        return self.reporter.reconciliation(batch_id)

    def invalid_rows(self, batch_id: str, limit: int | None = None) -> list[InvalidRow]:
        return self.validation.invalid_rows(batch_id, limit)

    def validation_summary(self, batch_id: str) -> ValidationSummary:
        return self.validation.validation_summary(batch_id)

    def validation_rules(self) -> dict[str, Any]:
        return self.validation.rule_catalog()

    def list_batches(self, page: int = 1, page_size: int = 20, uploaded_by: str | None = None) -> BatchPage:
        return self.reporter.list_batches(page, page_size, uploaded_by)

    def upload_stats(self, uploaded_by: str | None = None) -> UploadStats:
        return self.reporter.upload_stats(uploaded_by)

    def is_finished(self, batch_id: str) -> bool:
        return self.tracker.get_batch(batch_id).status in (BatchStatus.COMPLETED, BatchStatus.FAILED)

    # ---- lifecycle ----

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("Ingestion service stopped")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
