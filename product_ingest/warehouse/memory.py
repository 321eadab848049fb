"""
In-memory catalog store.

Implements the same UnitOfWork contract as the PostgreSQL store. Units of
work are serialized by one lock and run against a private copy of the state
that replaces the committed state only when the block exits cleanly.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from product_ingest.core.models import (
    AuditEntry,
    CanonicalProduct,
    ChangeType,
    ChunkLog,
    StagingRow,
    UploadBatch,
    UploadStats,
    ValidationState,
)
from product_ingest.core.schema import CatalogSchema

from .store import CatalogStore, UnitOfWork, ValidationUpdate


@dataclass
class _State:
    batches: dict[str, UploadBatch] = field(default_factory=dict)
    staging: dict[int, StagingRow] = field(default_factory=dict)
    products: dict[str, CanonicalProduct] = field(default_factory=dict)
    history: list[AuditEntry] = field(default_factory=list)
    chunk_logs: list[ChunkLog] = field(default_factory=list)
    next_staging_id: int = 1
    next_history_id: int = 1
    next_log_id: int = 1


def _copy(model):
    return model.model_copy(deep=True)


class InMemoryUnitOfWork(UnitOfWork):

    def __init__(self, state: _State, schema: CatalogSchema):
        self.state = state
        self.schema = schema

    # ---- batches ----

    def insert_batch(self, batch: UploadBatch) -> None:
        if batch.batch_id in self.state.batches:
            raise ValueError(f"Batch {batch.batch_id} already exists")
        self.state.batches[batch.batch_id] = _copy(batch)

    def get_batch(self, batch_id: str, for_update: bool = False) -> UploadBatch | None:
        batch = self.state.batches.get(batch_id)
        return _copy(batch) if batch else None

    def update_batch(self, batch_id: str, **changes: Any) -> None:
        batch = self.state.batches.get(batch_id)
        if batch is None:
            raise KeyError(f"Batch {batch_id} not found")
        self.state.batches[batch_id] = batch.model_copy(update=changes)

    def _batches_for(self, uploaded_by: str | None) -> list[UploadBatch]:
        return [b for b in self.state.batches.values() if uploaded_by is None or b.uploaded_by == uploaded_by]

    def list_batches(self, offset: int, limit: int, uploaded_by: str | None = None) -> list[UploadBatch]:
        batches = sorted(self._batches_for(uploaded_by), key=lambda b: b.uploaded_at, reverse=True)
        return [_copy(b) for b in batches[offset:offset + limit]]

    def count_batches(self, uploaded_by: str | None = None) -> int:
        return len(self._batches_for(uploaded_by))

    def upload_stats(self, uploaded_by: str | None = None) -> UploadStats:
        batches = self._batches_for(uploaded_by)
        return UploadStats(
            total_uploads=len(batches),
            total_records=sum(b.total_records for b in batches),
            total_valid_records=sum(b.valid_records for b in batches),
            total_invalid_records=sum(b.invalid_records for b in batches),
        )

    # ---- staging ----

    def insert_staging_rows(self, rows: list[StagingRow]) -> int:
        for row in rows:
            if row.batch_id not in self.state.batches:
                raise KeyError(f"Batch {row.batch_id} not found")
            staged = row.model_copy(update={"staging_id": self.state.next_staging_id}, deep=True)
            self.state.staging[staged.staging_id] = staged
            self.state.next_staging_id += 1
        return len(rows)

    def _rows_for(self, batch_id: str, states: list[ValidationState] | None) -> list[StagingRow]:
        rows = [
            r for r in self.state.staging.values()
            if r.batch_id == batch_id and (states is None or r.validation_state in states)
        ]
        return sorted(rows, key=lambda r: r.staging_id)

    def list_staging_rows(
        self,
        batch_id: str,
        states: list[ValidationState] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[StagingRow]:
        rows = self._rows_for(batch_id, states)
        end = None if limit is None else offset + limit
        return [_copy(r) for r in rows[offset:end]]

    def count_staging(self, batch_id: str, states: list[ValidationState] | None = None) -> int:
        return len(self._rows_for(batch_id, states))

    def latest_staging_ids(self, batch_id: str, product_ids: list[str], states: list[ValidationState]) -> dict[str, int]:
        wanted = set(product_ids)
        latest: dict[str, int] = {}
        for r in self._rows_for(batch_id, states):
            if r.product_id in wanted:
                latest[r.product_id] = r.staging_id
        return latest

    def update_validation(self, updates: list[ValidationUpdate]) -> None:
        for staging_id, state, errors in updates:
            row = self.state.staging[staging_id]
            self.state.staging[staging_id] = row.model_copy(
                update={"validation_state": state, "validation_errors": errors}
            )

    def mark_processed(self, staging_ids: list[int], processed_at: datetime) -> None:
        for staging_id in staging_ids:
            row = self.state.staging[staging_id]
            self.state.staging[staging_id] = row.model_copy(
                update={"validation_state": ValidationState.PROCESSED, "processed_at": processed_at}
            )

    def revert_processed(self, batch_id: str) -> int:
        reverted = 0
        for row in self._rows_for(batch_id, [ValidationState.PROCESSED]):
            self.state.staging[row.staging_id] = row.model_copy(
                update={"validation_state": ValidationState.VALID, "processed_at": None}
            )
            reverted += 1
        return reverted

    # ---- products ----

    def get_products(self, product_ids: list[str], for_update: bool = False) -> dict[str, CanonicalProduct]:
        return {
            pid: _copy(self.state.products[pid])
            for pid in product_ids
            if pid in self.state.products
        }

    def insert_product(self, product: CanonicalProduct) -> bool:
        if product.product_id in self.state.products:
            return False
        self.state.products[product.product_id] = _copy(product)
        return True

    def update_product(self, product: CanonicalProduct) -> None:
        if product.product_id not in self.state.products:
            raise KeyError(f"Product {product.product_id} not found")
        self.state.products[product.product_id] = _copy(product)

    def _matching_products(self, search: str | None, active_only: bool) -> list[CanonicalProduct]:
        needle = search.lower() if search else None
        name_field = self.schema.name_field

        def matches(product: CanonicalProduct) -> bool:
            if active_only and not product.is_active:
                return False
            if needle is None:
                return True
            name = product.get(name_field) if name_field else None
            return needle in product.product_id.lower() or (isinstance(name, str) and needle in name.lower())

        products = [p for p in self.state.products.values() if matches(p)]
        return sorted(products, key=lambda p: p.product_id)

    def list_products(
        self,
        offset: int,
        limit: int,
        search: str | None = None,
        active_only: bool = False,
    ) -> list[CanonicalProduct]:
        products = self._matching_products(search, active_only)
        return [_copy(p) for p in products[offset:offset + limit]]

    def count_products(self, search: str | None = None, active_only: bool = False) -> int:
        return len(self._matching_products(search, active_only))

    # ---- history ----

    def append_audit(self, entry: AuditEntry) -> int:
        history_id = self.state.next_history_id
        self.state.history.append(entry.model_copy(update={"history_id": history_id}, deep=True))
        self.state.next_history_id += 1
        return history_id

    def list_audit(
        self,
        product_id: str | None = None,
        batch_id: str | None = None,
        change_type: ChangeType | None = None,
        since: datetime | None = None,
    ) -> list[AuditEntry]:
        return [
            _copy(e) for e in self.state.history
            if (product_id is None or e.product_id == product_id)
            and (batch_id is None or e.batch_id == batch_id)
            and (change_type is None or e.change_type == change_type)
            and (since is None or e.changed_at >= since)
        ]

    # ---- processing log ----

    def append_chunk_log(self, log: ChunkLog) -> None:
        duplicate = any(
            (logged.batch_id, logged.attempt, logged.chunk_index) == (log.batch_id, log.attempt, log.chunk_index)
            for logged in self.state.chunk_logs
        )
        if duplicate:
            raise ValueError(f"Chunk {log.chunk_index} of attempt {log.attempt} already logged")
        self.state.chunk_logs.append(log.model_copy(update={"log_id": self.state.next_log_id}, deep=True))
        self.state.next_log_id += 1

    def list_chunk_logs(self, batch_id: str, attempt: int | None = None) -> list[ChunkLog]:
        logs = [
            logged for logged in self.state.chunk_logs
            if logged.batch_id == batch_id and (attempt is None or logged.attempt == attempt)
        ]
        return [_copy(logged) for logged in sorted(logs, key=lambda entry: (entry.attempt, entry.chunk_index))]


class InMemoryCatalogStore(CatalogStore):
    """
    Process-local store used by tests and dry runs.
    """

    def __init__(self, schema: CatalogSchema):
        super().__init__(schema)
        self._state = _State()
        self._lock = threading.RLock()

    @contextmanager
    def unit_of_work(self, timeout_seconds: float | None = None):
        with self._lock:
            working = copy.deepcopy(self._state)
            yield InMemoryUnitOfWork(working, self.schema)
            self._state = working
