"""
Catalog store interface.

Every read and write of batches, staging rows, products, history and chunk
logs goes through a UnitOfWork. A unit of work is one atomic transaction:
everything written inside it commits together or not at all.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
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

# (staging_id, new state, error text)
ValidationUpdate = tuple[int, ValidationState, str | None]


class UnitOfWork(ABC):
    """Operations available inside one transaction."""

    # ---- batches ----

    @abstractmethod
    def insert_batch(self, batch: UploadBatch) -> None:
        pass

    @abstractmethod
    def get_batch(self, batch_id: str, for_update: bool = False) -> UploadBatch | None:
        """Fetch a batch; for_update locks the row until the unit of work ends."""

    @abstractmethod
    def update_batch(self, batch_id: str, **changes: Any) -> None:
        """Set the given UploadBatch fields on one batch."""

    @abstractmethod
    def list_batches(self, offset: int, limit: int, uploaded_by: str | None = None) -> list[UploadBatch]:
        """Batches newest first."""

    @abstractmethod
    def count_batches(self, uploaded_by: str | None = None) -> int:
        pass

    @abstractmethod
    def upload_stats(self, uploaded_by: str | None = None) -> UploadStats:
        pass

    # ---- staging ----

    @abstractmethod
    def insert_staging_rows(self, rows: list[StagingRow]) -> int:
        """Bulk insert; staging ids are assigned in list order."""

    @abstractmethod
    def list_staging_rows(
        self,
        batch_id: str,
        states: list[ValidationState] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[StagingRow]:
        """Staging rows of a batch ordered by staging id."""

    @abstractmethod
    def count_staging(self, batch_id: str, states: list[ValidationState] | None = None) -> int:
        pass

    @abstractmethod
    def latest_staging_ids(
        self, batch_id: str, product_ids: list[str], states: list[ValidationState]
    ) -> dict[str, int]:
        """Highest staging id per product id among the batch's rows in the given states."""

    @abstractmethod
    def update_validation(self, updates: list[ValidationUpdate]) -> None:
        pass

    @abstractmethod
    def mark_processed(self, staging_ids: list[int], processed_at: datetime) -> None:
        pass

    @abstractmethod
    def revert_processed(self, batch_id: str) -> int:
        """Return PROCESSED rows of a batch to VALID; returns rows changed."""

    # ---- products ----

    @abstractmethod
    def get_products(self, product_ids: list[str], for_update: bool = False) -> dict[str, CanonicalProduct]:
        pass

    @abstractmethod
    def insert_product(self, product: CanonicalProduct) -> bool:
        """Insert a new product; returns False, writing nothing, if the identifier exists."""

    @abstractmethod
    def update_product(self, product: CanonicalProduct) -> None:
        pass

    @abstractmethod
    def list_products(
        self,
        offset: int,
        limit: int,
        search: str | None = None,
        active_only: bool = False,
    ) -> list[CanonicalProduct]:
        """Products ordered by identifier; search matches identifier or display name."""

    @abstractmethod
    def count_products(self, search: str | None = None, active_only: bool = False) -> int:
        pass

    # ---- history ----

    @abstractmethod
    def append_audit(self, entry: AuditEntry) -> int:
        """Append a history entry; returns its history_id."""

    @abstractmethod
    def list_audit(
        self,
        product_id: str | None = None,
        batch_id: str | None = None,
        change_type: ChangeType | None = None,
        since: datetime | None = None,
    ) -> list[AuditEntry]:
        """History entries in insertion order."""

    # ---- processing log ----

    @abstractmethod
    def append_chunk_log(self, log: ChunkLog) -> None:
        pass

    @abstractmethod
    def list_chunk_logs(self, batch_id: str, attempt: int | None = None) -> list[ChunkLog]:
        """Chunk logs ordered by attempt then chunk index."""


class CatalogStore(ABC):
    """
    Persistence for one product catalog.

    Attributes:
        schema: Catalog schema used to rebuild typed attribute values
    """

    def __init__(self, schema: CatalogSchema):
        self.schema = schema

    @abstractmethod
    def unit_of_work(self, timeout_seconds: float | None = None) -> AbstractContextManager[UnitOfWork]:
        """
        Open a unit of work.

        Args:
            timeout_seconds: Statement timeout bounding each statement run
                inside the unit of work

        Returns:
            Context manager yielding a UnitOfWork; leaving the block with an
            exception rolls everything back
        """

    def close(self) -> None:
        """Release resources held by the store."""
