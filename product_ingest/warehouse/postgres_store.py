"""
PostgreSQL catalog store.

Each unit of work is one transaction on one pooled connection. Batch rows
and canonical product rows can be locked with SELECT ... FOR UPDATE for the
duration of the unit of work.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any

import psycopg
from psycopg import Cursor

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
from product_ingest.observability.logger import get_logger

from . import audit, upsert
from .connection import DatabaseConnectionPool
from .store import CatalogStore, UnitOfWork, ValidationUpdate

logger = get_logger("product-ingest.warehouse")

BATCH_COLUMNS = (
    "batch_id", "file_name", "uploaded_by", "total_records", "valid_records",
    "invalid_records", "processed_records", "status", "uploaded_at",
    "processing_started_at", "processing_completed_at", "processing_attempt",
)
UPDATABLE_BATCH_COLUMNS = set(BATCH_COLUMNS) - {"batch_id"}

STAGING_COLUMNS = """
    staging_id, batch_id, row_number, product_id, attributes,
    validation_state, validation_errors, processed_at, uploaded_by
"""

CHUNK_LOG_COLUMNS = """
    log_id, batch_id, attempt, chunk_index, records_processed, records_created,
    records_updated, records_skipped, processing_time_ms, logged_at
"""


def _state_values(states: list[ValidationState] | None) -> list[str] | None:
    return [s.value for s in states] if states is not None else None


class PostgresUnitOfWork(UnitOfWork):

    def __init__(self, cur: Cursor, schema: CatalogSchema):
        self.cur = cur
        self.schema = schema

    # ---- batches ----

    def insert_batch(self, batch: UploadBatch) -> None:
        columns = ", ".join(BATCH_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in BATCH_COLUMNS)
        params = batch.model_dump()
        params["status"] = batch.status.value
        self.cur.execute(f"INSERT INTO upload_batch ({columns}) VALUES ({placeholders})", params)

    def get_batch(self, batch_id: str, for_update: bool = False) -> UploadBatch | None:
        query = f"SELECT {', '.join(BATCH_COLUMNS)} FROM upload_batch WHERE batch_id = %s"
        if for_update:
            query += " FOR UPDATE"
        self.cur.execute(query, (batch_id,))
        row = self.cur.fetchone()
        return UploadBatch(**row) if row else None

    def update_batch(self, batch_id: str, **changes: Any) -> None:
        unknown = set(changes) - UPDATABLE_BATCH_COLUMNS
        if unknown:
            raise ValueError(f"Unknown batch columns: {', '.join(sorted(unknown))}")
        if not changes:
            return

        params = {k: (v.value if hasattr(v, "value") else v) for k, v in changes.items()}
        assignments = ", ".join(f"{column} = %({column})s" for column in changes)
        params["batch_id"] = batch_id
        self.cur.execute(f"UPDATE upload_batch SET {assignments} WHERE batch_id = %(batch_id)s", params)
        if self.cur.rowcount != 1:
            raise LookupError(f"Batch {batch_id} not found")

    def list_batches(self, offset: int, limit: int, uploaded_by: str | None = None) -> list[UploadBatch]:
        where = "WHERE uploaded_by = %(uploaded_by)s" if uploaded_by else ""
        self.cur.execute(
            f"""
            SELECT {', '.join(BATCH_COLUMNS)}
            FROM upload_batch
            {where}
            ORDER BY uploaded_at DESC, batch_id
            OFFSET %(offset)s LIMIT %(limit)s
            """,
            {"uploaded_by": uploaded_by, "offset": offset, "limit": limit},
        )
        return [UploadBatch(**row) for row in self.cur.fetchall()]

    def count_batches(self, uploaded_by: str | None = None) -> int:
        where = "WHERE uploaded_by = %(uploaded_by)s" if uploaded_by else ""
        self.cur.execute(f"SELECT COUNT(*) AS total FROM upload_batch {where}", {"uploaded_by": uploaded_by})
        return self.cur.fetchone()["total"]

    def upload_stats(self, uploaded_by: str | None = None) -> UploadStats:
        where = "WHERE uploaded_by = %(uploaded_by)s" if uploaded_by else ""
        self.cur.execute(
            f"""
            SELECT
                COUNT(*) AS total_uploads,
                COALESCE(SUM(total_records), 0) AS total_records,
                COALESCE(SUM(valid_records), 0) AS total_valid_records,
                COALESCE(SUM(invalid_records), 0) AS total_invalid_records
            FROM upload_batch
            {where}
            """,
            {"uploaded_by": uploaded_by},
        )
        return UploadStats(**self.cur.fetchone())

    # ---- staging ----

    def insert_staging_rows(self, rows: list[StagingRow]) -> int:
        if not rows:
            return 0

        # executemany preserves order so BIGSERIAL ids follow row order
        self.cur.executemany(
            """
            INSERT INTO product_staging (
                batch_id, row_number, product_id, attributes,
                validation_state, validation_errors, uploaded_by
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (
                    row.batch_id,
                    row.row_number,
                    row.product_id,
                    upsert.encode_attributes(row.attributes),
                    row.validation_state.value,
                    row.validation_errors,
                    row.uploaded_by,
                )
                for row in rows
            ],
        )
        return len(rows)

    def _staging_from_row(self, row: dict[str, Any]) -> StagingRow:
        return StagingRow(
            staging_id=row["staging_id"],
            batch_id=row["batch_id"],
            row_number=row["row_number"],
            product_id=row["product_id"],
            attributes=upsert.decode_attributes(self.schema, row["attributes"]),
            validation_state=ValidationState(row["validation_state"]),
            validation_errors=row["validation_errors"],
            processed_at=row["processed_at"],
            uploaded_by=row["uploaded_by"],
        )

    def list_staging_rows(
        self,
        batch_id: str,
        states: list[ValidationState] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[StagingRow]:
        query = f"""
            SELECT {STAGING_COLUMNS}
            FROM product_staging
            WHERE batch_id = %(batch_id)s
              AND (%(states)s::text[] IS NULL OR validation_state = ANY(%(states)s::text[]))
            ORDER BY staging_id
            OFFSET %(offset)s
        """
        params = {"batch_id": batch_id, "states": _state_values(states), "offset": offset}
        if limit is not None:
            query += " LIMIT %(limit)s"
            params["limit"] = limit

        self.cur.execute(query, params)
        return [self._staging_from_row(row) for row in self.cur.fetchall()]

    def count_staging(self, batch_id: str, states: list[ValidationState] | None = None) -> int:
        self.cur.execute(
            """
            SELECT COUNT(*) AS total
            FROM product_staging
            WHERE batch_id = %(batch_id)s
              AND (%(states)s::text[] IS NULL OR validation_state = ANY(%(states)s::text[]))
            """,
            {"batch_id": batch_id, "states": _state_values(states)},
        )
        return self.cur.fetchone()["total"]

    def latest_staging_ids(self, batch_id: str, product_ids: list[str], states: list[ValidationState]) -> dict[str, int]:
        if not product_ids:
            return {}
        self.cur.execute(
            """
            SELECT product_id, MAX(staging_id) AS staging_id
            FROM product_staging
            WHERE batch_id = %(batch_id)s
              AND product_id = ANY(%(product_ids)s)
              AND validation_state = ANY(%(states)s::text[])
            GROUP BY product_id
            """,
            {"batch_id": batch_id, "product_ids": list(product_ids), "states": _state_values(states)},
        )
        return {row["product_id"]: row["staging_id"] for row in self.cur.fetchall()}

    def update_validation(self, updates: list[ValidationUpdate]) -> None:
        if not updates:
            return
        self.cur.executemany(
            """
            UPDATE product_staging
            SET validation_state = %s, validation_errors = %s
            WHERE staging_id = %s
            """,
            [(state.value, errors, staging_id) for staging_id, state, errors in updates],
        )

    def mark_processed(self, staging_ids: list[int], processed_at: datetime) -> None:
        if not staging_ids:
            return
        self.cur.execute(
            """
            UPDATE product_staging
            SET validation_state = 'PROCESSED', processed_at = %s
            WHERE staging_id = ANY(%s)
            """,
            (processed_at, staging_ids),
        )

    def revert_processed(self, batch_id: str) -> int:
        self.cur.execute(
            """
            UPDATE product_staging
            SET validation_state = 'VALID', processed_at = NULL
            WHERE batch_id = %s AND validation_state = 'PROCESSED'
            """,
            (batch_id,),
        )
        return self.cur.rowcount

    # ---- products ----

    def get_products(self, product_ids: list[str], for_update: bool = False) -> dict[str, CanonicalProduct]:
        return upsert.select_products(self.cur, self.schema, product_ids, for_update=for_update)

    def insert_product(self, product: CanonicalProduct) -> bool:
        return upsert.insert_product(self.cur, product)

    def update_product(self, product: CanonicalProduct) -> None:
        upsert.update_product(self.cur, product)

    def list_products(
        self,
        offset: int,
        limit: int,
        search: str | None = None,
        active_only: bool = False,
    ) -> list[CanonicalProduct]:
        return upsert.list_products(self.cur, self.schema, offset, limit, search=search, active_only=active_only)

    def count_products(self, search: str | None = None, active_only: bool = False) -> int:
        return upsert.count_products(self.cur, self.schema, search=search, active_only=active_only)

    # ---- history ----

    def append_audit(self, entry: AuditEntry) -> int:
        return audit.insert_audit_entry(self.cur, entry)

    def list_audit(
        self,
        product_id: str | None = None,
        batch_id: str | None = None,
        change_type: ChangeType | None = None,
        since: datetime | None = None,
    ) -> list[AuditEntry]:
        return audit.query_audit_entries(
            self.cur, product_id=product_id, batch_id=batch_id, change_type=change_type, since=since
        )

    # ---- processing log ----

    def append_chunk_log(self, log: ChunkLog) -> None:
        self.cur.execute(
            """
            INSERT INTO processing_log (
                batch_id, attempt, chunk_index, records_processed, records_created,
                records_updated, records_skipped, processing_time_ms, logged_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                log.batch_id,
                log.attempt,
                log.chunk_index,
                log.records_processed,
                log.records_created,
                log.records_updated,
                log.records_skipped,
                log.processing_time_ms,
                log.logged_at,
            ),
        )

    def list_chunk_logs(self, batch_id: str, attempt: int | None = None) -> list[ChunkLog]:
        self.cur.execute(
            f"""
            SELECT {CHUNK_LOG_COLUMNS}
            FROM processing_log
            WHERE batch_id = %(batch_id)s
              AND (%(attempt)s::integer IS NULL OR attempt = %(attempt)s::integer)
            ORDER BY attempt, chunk_index
            """,
            {"batch_id": batch_id, "attempt": attempt},
        )
        return [ChunkLog(**row) for row in self.cur.fetchall()]


class PostgresCatalogStore(CatalogStore):
    """
    Catalog store backed by PostgreSQL through DatabaseConnectionPool.
    """

    def __init__(self, pool: DatabaseConnectionPool, schema: CatalogSchema):
        """
        Initialize the store.

        Args:
            pool: Connection pool (opened on first use if needed)
            schema: Catalog schema for attribute decoding
        """
        super().__init__(schema)
        self.pool = pool

    @contextmanager
    def unit_of_work(self, timeout_seconds: float | None = None):
        if not self.pool.is_open:
            self.pool.open()

        try:
            with self.pool.transaction(statement_timeout=timeout_seconds) as cur:
                yield PostgresUnitOfWork(cur, self.schema)
        except psycopg.DatabaseError as e:
            logger.error(f"Unit of work rolled back: {e}", extra={"error_type": type(e).__name__})
            raise

    def close(self) -> None:
        self.pool.close()
