"""
Pytest configuration and fixtures for product-ingest tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import io
import os
from collections.abc import Callable
from typing import Generator

import pytest
from dotenv import dotenv_values
from openpyxl import Workbook

from product_ingest.config import PipelineSettings
from product_ingest.core.schema import LOAN_SCHEMA, MORTGAGE_SCHEMA, CatalogSchema
from product_ingest.warehouse import InMemoryCatalogStore

LOAN_HEADER = ["ProductID", "ProductName", "LoanStartDate", "WithdrawnDate", "Pricing"]


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that exercise several components together"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# WORKBOOK FIXTURES
# =======================

def build_workbook(header: list, rows: list[list], sheet_title: str = "Products") -> bytes:
    """
    Build an .xlsx file in memory

    Args:
        header: Header row
        rows: Data rows
        sheet_title: Worksheet title

    Returns:
        Workbook bytes
    """
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append(header)
    for row in rows:
        ws.append(row)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_csv(header: list[str], rows: list[list]) -> bytes:
    lines = [",".join(header)]
    lines += [",".join("" if v is None else str(v) for v in row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def loan_row(product_id, name="Fixed Rate Loan", start="2024-01-15", withdrawn=None, pricing=4.25) -> list:
    return [product_id, name, start, withdrawn, pricing]


@pytest.fixture
def workbook_builder() -> Callable[..., bytes]:
    return build_workbook


@pytest.fixture
def loan_workbook() -> Callable[[list[list]], bytes]:
    """Builds a loan catalog workbook from data rows"""
    def _build(rows: list[list]) -> bytes:
        return build_workbook(LOAN_HEADER, rows)
    return _build


# =======================
# STORE FIXTURES
# =======================

@pytest.fixture
def loan_schema() -> CatalogSchema:
    return LOAN_SCHEMA


@pytest.fixture
def mortgage_schema() -> CatalogSchema:
    return MORTGAGE_SCHEMA


@pytest.fixture
def memory_store(loan_schema) -> InMemoryCatalogStore:
    """Fresh in-memory loan catalog"""
    return InMemoryCatalogStore(loan_schema)


@pytest.fixture
def loan_settings() -> PipelineSettings:
    return PipelineSettings(catalog_schema="loan", chunk_size=2, worker_threads=2)


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        PostgresContainer instance
    """
    postgres_module = pytest.importorskip("testcontainers.postgres")

    container = postgres_module.PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_ingest",
        password="test_password",
        dbname="test_product_catalog",
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker not available for PostgreSQL container: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def pg_pool(postgres_container):
    """Connection pool against the test container with all tables created"""
    from product_ingest.warehouse.connection import DatabaseConnectionPool
    from product_ingest.warehouse.schema_mgmt import SchemaManager

    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_product_catalog",
        user="test_ingest",
        password="test_password",
        min_size=1,
        max_size=4,
    )
    pool.open()
    SchemaManager(pool).create_tables()

    yield pool

    pool.close()


@pytest.fixture
def clean_db(pg_pool):
    """
    Provide a clean database by truncating all tables before each test

    Yields:
        DatabaseConnectionPool with empty tables
    """
    from product_ingest.warehouse.schema_mgmt import SchemaManager

    SchemaManager(pg_pool).truncate_tables()
    yield pg_pool


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture(scope="session")
def config_dir() -> str:
    """
    Get path to the repository config directory

    Returns:
        Path to config/
    """
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "config")


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture
def test_env_vars(monkeypatch, config_dir) -> Generator[dict, None, None]:
    """
    Set test environment variables

    This fixture loads config/test.env into the environment for one test
    """
    values = dotenv_values(os.path.join(config_dir, "test.env"))
    for key, value in values.items():
        if value is not None:
            monkeypatch.setenv(key, value)
    yield values
