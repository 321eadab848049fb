"""
PostgreSQL connection pool for the catalog store.

Wraps psycopg_pool.ConnectionPool with dict rows, a connect-retry loop and
a transaction helper that can scope a statement timeout to one chunk.
Pools are built by PipelineSettings.create_pool() and handed to the stores;
nothing here reads the environment.
"""
import time
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from product_ingest.observability.logger import get_logger

logger = get_logger("product-ingest.warehouse")

APPLICATION_NAME = "product-ingest"


class DatabaseConnectionPool:
    """
    Lazily opened pool of psycopg3 connections to the product catalog.

    Every borrowed connection returns rows as dictionaries.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "product_catalog",
        user: str = "ingest",
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 4,
        connect_timeout: float = 10.0,
        conninfo: str | None = None,
    ) -> None:
        """
        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Database user
            password: Database password; required unless conninfo is given
            min_size: Minimum pool size
            max_size: Maximum pool size
            connect_timeout: Seconds to wait for a connection
            conninfo: Full libpq connection string; overrides the parts above

        Raises:
            ValueError: No password and no conninfo
        """
        self.min_size = min_size
        self.max_size = max_size
        self.connect_timeout = connect_timeout
        self._pool: ConnectionPool | None = None

        if conninfo:
            self.conninfo = conninfo
            self.database = None
            return

        if not password:
            raise ValueError("Database password must be provided (set DB_PASSWORD)")

        self.database = database
        self.conninfo = make_conninfo(
            host=host,
            port=port,
            dbname=database,
            user=user,
            password=password,
            connect_timeout=int(connect_timeout),
            application_name=APPLICATION_NAME,
        )

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the pool, retrying while the database comes up.

        Raises:
            OperationalError: Still unreachable after max_retries attempts
        """
        if self._pool is not None:
            return

        pool = ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.connect_timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

        for attempt in range(1, max_retries + 1):
            try:
                pool.open(wait=True, timeout=self.connect_timeout)
            except (OperationalError, TimeoutError) as e:
                logger.warning(
                    f"Catalog database unreachable (attempt {attempt}/{max_retries}): {e}",
                    extra={"attempt": attempt, "database": self.database},
                )
                if attempt == max_retries:
                    pool.close()
                    raise OperationalError(f"Could not reach the catalog database after {max_retries} attempts: {e}") from e
                time.sleep(retry_delay)
            else:
                self._pool = pool
                logger.debug("Connection pool opened", extra={"database": self.database, "max_size": self.max_size})
                return

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def connection(self):
        """
        Borrow a connection. It commits on normal exit and rolls back on error.

        Raises:
            RuntimeError: Pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def transaction(self, statement_timeout: float | None = None):
        """
        Run a block in one database transaction.

        Args:
            statement_timeout: Optional per-statement timeout in seconds,
                scoped to this transaction only

        Yields:
            psycopg.Cursor bound to the transaction
        """
        with self.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    if statement_timeout:
                        cur.execute(
                            "SELECT set_config('statement_timeout', %s, true)",
                            (str(int(statement_timeout * 1000)),),
                        )
                    yield cur

    def fetch_all(self, query: str, params: tuple | None = None) -> list[dict]:
        """Run a read-only query outside any caller transaction."""
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
