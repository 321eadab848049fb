"""
Unit tests for structured logging and Prometheus metrics
"""
import json

import pytest

from product_ingest.observability import REGISTRY, generate_metrics
from product_ingest.observability.logger import get_logger, log_operation, setup_logger
from product_ingest.observability.metrics import record_chunk, record_error, record_validation


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def log_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@pytest.fixture
def json_logger(capsys):
    logger = setup_logger("observability-test", level="DEBUG", json_format=True)
    yield logger
    logger.handlers.clear()


@pytest.mark.unit
class TestLogger:
    def test_json_record_carries_extra_fields(self, json_logger, capsys):
        json_logger.info("Committed chunk", extra={"batch_id": "b-1", "chunk_index": 3})

        (entry,) = log_lines(capsys.readouterr().err)
        assert entry["message"] == "Committed chunk"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "observability-test"
        assert entry["batch_id"] == "b-1"
        assert entry["chunk_index"] == 3
        assert entry["timestamp"]

    def test_level_filters_records(self, capsys):
        logger = setup_logger("observability-quiet", level="warning", json_format=True)
        logger.info("hidden")
        logger.warning("shown")

        assert [e["message"] for e in log_lines(capsys.readouterr().err)] == ["shown"]
        logger.handlers.clear()

    def test_child_loggers_share_pipeline_handler(self):
        parent = get_logger()
        child = get_logger("product-ingest.unit")

        assert parent.handlers
        assert not child.handlers
        assert child.parent is parent

    def test_log_operation_success(self, json_logger, capsys):
        with log_operation("Validating batch", logger=json_logger, batch_id="b-2"):
            pass

        start, done = log_lines(capsys.readouterr().err)
        assert start["message"] == "Starting: Validating batch"
        assert done["status"] == "success"
        assert done["batch_id"] == "b-2"
        assert done["duration_seconds"] >= 0

    def test_log_operation_reraises(self, json_logger, capsys):
        with pytest.raises(ValueError):
            with log_operation("Validating batch", logger=json_logger):
                raise ValueError("rule crashed")

        failed = log_lines(capsys.readouterr().err)[-1]
        assert failed["status"] == "error"
        assert failed["error_type"] == "ValueError"


@pytest.mark.unit
class TestMetrics:
    def test_record_chunk(self):
        before_insert = sample("ingest_products_changed_total", change_type="insert")
        before_skip = sample("ingest_products_changed_total", change_type="skip")
        before_chunks = sample("ingest_chunks_processed_total", status="committed")

        record_chunk(created=2, updated=0, skipped=1, duration_seconds=0.02)

        assert sample("ingest_products_changed_total", change_type="insert") == before_insert + 2
        assert sample("ingest_products_changed_total", change_type="skip") == before_skip + 1
        assert sample("ingest_chunks_processed_total", status="committed") == before_chunks + 1

    def test_record_validation_counts_failed_rules(self):
        before = sample("ingest_validation_failures_total", rule_name="Pricing_percentage")

        record_validation(valid=3, invalid=2, failed_rules={"Pricing_percentage": 2})

        assert sample("ingest_validation_failures_total", rule_name="Pricing_percentage") == before + 2

    def test_record_error(self):
        before = sample("ingest_errors_total", error_type="ChunkFailure", component="pipeline")
        record_error("ChunkFailure", "pipeline")
        assert sample("ingest_errors_total", error_type="ChunkFailure", component="pipeline") == before + 1

    def test_exposition_lists_pipeline_metrics(self):
        text = generate_metrics().decode()

        assert "ingest_chunks_processed_total" in text
        assert "ingest_batches_in_flight" in text
