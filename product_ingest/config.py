"""
Pipeline configuration.

Settings come from environment variables, optionally loaded from a .env
file with python-dotenv, and are validated by a pydantic model.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from product_ingest.core.schema import available_schemas
from product_ingest.warehouse.connection import DatabaseConnectionPool


class DatabaseSettings(BaseModel):
    host: str = "localhost"
    port: int = Field(5432, gt=0)
    name: str = "product_catalog"
    user: str = "ingest"
    password: str | None = None
    pool_min: int = Field(2, ge=1)
    pool_max: int = Field(10, ge=1)


class PipelineSettings(BaseModel):
    """
    Runtime settings for the ingestion pipeline.

    Attributes:
        database: PostgreSQL connection settings
        chunk_size: Validated rows reconciled per chunk
        chunk_timeout_seconds: Statement timeout for each unit of work
        max_reported_errors: Parser row errors listed in a ParseFailure
        catalog_schema: Catalog schema name (mortgage or loan)
        validation_rules_path: Optional YAML rule file replacing the
            schema's default rule set
        worker_threads: Background threads validating/processing batches
        log_level: Pipeline log level
    """

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chunk_size: int = 500
    chunk_timeout_seconds: float = 30.0
    max_reported_errors: int = Field(10, ge=1)
    catalog_schema: str = "mortgage"
    validation_rules_path: str | None = None
    worker_threads: int = Field(2, ge=1)
    log_level: str = "INFO"

    @field_validator("chunk_size")
    @classmethod
    def check_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"chunk_size must be positive, got {v}")
        return v

    @field_validator("chunk_timeout_seconds")
    @classmethod
    def check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"chunk_timeout_seconds must be positive, got {v}")
        return v

    @field_validator("catalog_schema")
    @classmethod
    def check_catalog_schema(cls, v: str) -> str:
        if v not in available_schemas():
            raise ValueError(f"Unknown catalog schema '{v}' (available: {', '.join(available_schemas())})")
        return v

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "PipelineSettings":
        """
        Build settings from the environment.

        Args:
            env_file: Optional .env file loaded first; existing environment
                variables take precedence over it

        Returns:
            Validated PipelineSettings
        """
        if env_file and Path(env_file).exists():
            load_dotenv(env_file, override=False)

        env = os.environ
        database = DatabaseSettings(
            host=env.get("DB_HOST", "localhost"),
            port=int(env.get("DB_PORT", "5432")),
            name=env.get("DB_NAME", "product_catalog"),
            user=env.get("DB_USER", "ingest"),
            password=env.get("DB_PASSWORD"),
            pool_min=int(env.get("DB_POOL_MIN", "2")),
            pool_max=int(env.get("DB_POOL_MAX", "10")),
        )
        return cls(
            database=database,
            chunk_size=int(env.get("CHUNK_SIZE", "500")),
            chunk_timeout_seconds=float(env.get("CHUNK_TIMEOUT_SECONDS", "30")),
            max_reported_errors=int(env.get("MAX_REPORTED_ERRORS", "10")),
            catalog_schema=env.get("CATALOG_SCHEMA", "mortgage"),
            validation_rules_path=env.get("VALIDATION_RULES_PATH") or None,
            worker_threads=int(env.get("WORKER_THREADS", "2")),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )

    def create_pool(self) -> DatabaseConnectionPool:
        """Connection pool for these settings (not yet opened)."""
        db = self.database
        return DatabaseConnectionPool(
            host=db.host,
            port=db.port,
            database=db.name,
            user=db.user,
            password=db.password,
            min_size=db.pool_min,
            max_size=db.pool_max,
        )
