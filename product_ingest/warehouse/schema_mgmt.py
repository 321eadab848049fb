"""
Schema management operations for the product catalog database.

Owns the DDL for the batch, staging, product, history and processing log
tables.
"""

from .connection import DatabaseConnectionPool

TABLES = ("processing_log", "product_history", "product", "product_staging", "upload_batch")

CREATE_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS upload_batch (
        batch_id TEXT PRIMARY KEY,
        file_name TEXT NOT NULL,
        uploaded_by TEXT NOT NULL,
        total_records INTEGER NOT NULL DEFAULT 0 CHECK (total_records >= 0),
        valid_records INTEGER NOT NULL DEFAULT 0 CHECK (valid_records >= 0),
        invalid_records INTEGER NOT NULL DEFAULT 0 CHECK (invalid_records >= 0),
        processed_records INTEGER NOT NULL DEFAULT 0 CHECK (processed_records >= 0),
        status TEXT NOT NULL CHECK (
            status IN ('UPLOADED', 'VALIDATING', 'VALIDATED', 'PROCESSING', 'COMPLETED', 'FAILED')
        ),
        uploaded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        processing_started_at TIMESTAMPTZ,
        processing_completed_at TIMESTAMPTZ,
        processing_attempt INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_upload_batch_uploaded_by ON upload_batch (uploaded_by, uploaded_at DESC)",
    """
    CREATE TABLE IF NOT EXISTS product_staging (
        staging_id BIGSERIAL PRIMARY KEY,
        batch_id TEXT NOT NULL REFERENCES upload_batch (batch_id),
        row_number INTEGER NOT NULL,
        product_id VARCHAR(50) NOT NULL,
        attributes JSONB NOT NULL DEFAULT '{}'::jsonb,
        validation_state TEXT NOT NULL DEFAULT 'PENDING' CHECK (
            validation_state IN ('PENDING', 'VALID', 'INVALID', 'PROCESSED')
        ),
        validation_errors TEXT,
        processed_at TIMESTAMPTZ,
        uploaded_by TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_product_staging_batch ON product_staging (batch_id, staging_id)",
    "CREATE INDEX IF NOT EXISTS idx_product_staging_state ON product_staging (batch_id, validation_state)",
    "CREATE INDEX IF NOT EXISTS idx_product_staging_product ON product_staging (batch_id, product_id, staging_id)",
    """
    CREATE TABLE IF NOT EXISTS product (
        product_id VARCHAR(50) PRIMARY KEY,
        attributes JSONB NOT NULL DEFAULT '{}'::jsonb,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        created_by TEXT NOT NULL,
        updated_at TIMESTAMPTZ,
        updated_by TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_history (
        history_id BIGSERIAL PRIMARY KEY,
        product_id VARCHAR(50) NOT NULL,
        product_name TEXT,
        batch_id TEXT,
        change_type TEXT NOT NULL CHECK (change_type IN ('INSERT', 'UPDATE')),
        old_price NUMERIC(12, 2),
        new_price NUMERIC(12, 2),
        old_withdrawn_date DATE,
        new_withdrawn_date DATE,
        changes JSONB NOT NULL DEFAULT '{}'::jsonb,
        changed_by TEXT NOT NULL,
        changed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_product_history_product ON product_history (product_id, changed_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_product_history_batch ON product_history (batch_id)",
    """
    CREATE TABLE IF NOT EXISTS processing_log (
        log_id BIGSERIAL PRIMARY KEY,
        batch_id TEXT NOT NULL REFERENCES upload_batch (batch_id),
        attempt INTEGER NOT NULL,
        chunk_index INTEGER NOT NULL CHECK (chunk_index >= 0),
        records_processed INTEGER NOT NULL,
        records_created INTEGER NOT NULL DEFAULT 0,
        records_updated INTEGER NOT NULL DEFAULT 0,
        records_skipped INTEGER NOT NULL DEFAULT 0,
        processing_time_ms INTEGER NOT NULL DEFAULT 0,
        logged_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (batch_id, attempt, chunk_index)
    )
    """,
]


class SchemaManager:
    """
    Creates and drops the catalog tables.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize schema manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def create_tables(self) -> None:
        """Create all tables and indexes (idempotent)."""
        with self.pool.transaction() as cur:
            for statement in CREATE_STATEMENTS:
                cur.execute(statement)

    def drop_tables(self) -> None:
        """Drop all tables, dependents first."""
        with self.pool.transaction() as cur:
            for table in TABLES:
                cur.execute(f"DROP TABLE IF EXISTS {table} CASCADE")

    def truncate_tables(self) -> None:
        """Remove every row, keeping the tables (used between tests)."""
        with self.pool.transaction() as cur:
            cur.execute(f"TRUNCATE {', '.join(TABLES)} RESTART IDENTITY CASCADE")

    def existing_tables(self) -> list[str]:
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = current_schema() AND table_name = ANY(%s)
            ORDER BY table_name
        """
        rows = self.pool.fetch_all(query, (list(TABLES),))
        return [row["table_name"] for row in rows]
