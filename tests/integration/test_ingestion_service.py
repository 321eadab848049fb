"""
Integration tests for the ingestion service over the in-memory store.

Each test drives the full flow: workbook -> parse -> stage -> validate ->
chunked reconciliation -> reports.
"""

import logging
from decimal import Decimal

import pytest

from product_ingest.batch import IngestionService
from product_ingest.catalog import ProductCatalog
from product_ingest.config import PipelineSettings
from product_ingest.core.exceptions import EmptyFile, InvalidStateTransition, NotFoundFailure, ParseFailure
from product_ingest.core.models import BatchStatus, ChangeType
from product_ingest.warehouse import InMemoryCatalogStore

WAIT_SECONDS = 10


def row(product_id, name="Fixed Rate Loan", start="2024-01-15", withdrawn=None, pricing=4.25):
    return [product_id, name, start, withdrawn, pricing]


@pytest.fixture
def service(memory_store, loan_settings):
    with IngestionService(memory_store, loan_settings) as svc:
        yield svc


@pytest.mark.integration
class TestIngestFlow:
    """Upload to completed batch"""

    def test_upload_completes_with_counts(self, service, loan_workbook):
        buffer = loan_workbook([row("LN-1"), row("LN-2", pricing=150), row("LN-3"), row("LN-4")])

        batch_id = service.ingest(buffer, "loans.xlsx", "alice")
        batch = service.wait_for(batch_id, timeout=WAIT_SECONDS)

        assert batch.status == BatchStatus.COMPLETED
        assert (batch.total_records, batch.valid_records, batch.invalid_records) == (4, 3, 1)
        assert batch.processed_records == 3

        status = service.get_batch_status(batch_id)
        assert status.progress_percentage == 100
        assert status.chunk_stats.total_chunks == 2
        assert status.chunk_stats.chunks_completed == 2
        assert status.chunk_stats.created == 3

    def test_completes_with_info_logging(self, service, loan_workbook, caplog):
        """Test that chunk and batch log events at INFO do not break processing"""
        caplog.set_level(logging.INFO, logger="product-ingest")

        batch_id = service.ingest(loan_workbook([row("LN-1"), row("LN-2"), row("LN-3")]), "loans.xlsx", "alice")
        batch = service.wait_for(batch_id, timeout=WAIT_SECONDS)

        assert batch.status == BatchStatus.COMPLETED
        assert batch.processed_records == 3
        assert service.get_batch_status(batch_id).chunk_stats.chunks_completed == 2

    def test_finished_batches_release_their_futures(self, service, loan_workbook):
        batch_ids = [
            service.ingest(loan_workbook([row(f"LN-{i}")]), f"v{i}.xlsx", "alice") for i in range(3)
        ]

        service.shutdown(wait=True)

        assert service._futures == {}
        assert all(service.is_finished(batch_id) for batch_id in batch_ids)
        assert service.wait_for(batch_ids[0]).status == BatchStatus.COMPLETED

    def test_reconciliation_report(self, service, loan_workbook):
        first = service.ingest(loan_workbook([row("LN-1"), row("LN-2")]), "v1.xlsx", "alice")
        service.wait_for(first, timeout=WAIT_SECONDS)

        second = service.ingest(
            loan_workbook([row("LN-1", pricing=3.99), row("LN-2"), row("LN-3"), row("LN-4", pricing=-5)]),
            "v2.xlsx",
            "bob",
        )
        service.wait_for(second, timeout=WAIT_SECONDS)

        report = service.get_reconciliation(second)

        assert report.summary.model_dump() == {
            "total_records": 4,
            "created": 1,
            "updated": 1,
            "unchanged": 1,
            "invalid": 1,
        }
        assert [p.product_id for p in report.created_products] == ["LN-3"]
        assert report.created_products[0].price == Decimal("4.25")
        updated = report.updated_products[0]
        assert updated.product_id == "LN-1"
        assert updated.changes["Pricing"].before == "4.25"
        assert updated.changes["Pricing"].after == "3.99"
        assert [(r.row_number, r.errors) for r in report.invalid_products] == [
            (5, ["Pricing must be between 0 and 100"])
        ]
        assert report.processing_time_ms >= 0

    def test_unchanged_reupload_writes_no_history(self, service, memory_store, loan_workbook):
        rows = [row(f"LN-{i}") for i in range(1, 6)]
        first = service.ingest(loan_workbook(rows), "v1.xlsx", "alice")
        service.wait_for(first, timeout=WAIT_SECONDS)

        second = service.ingest(loan_workbook(rows), "v1-again.xlsx", "alice")
        assert service.wait_for(second, timeout=WAIT_SECONDS).status == BatchStatus.COMPLETED

        with memory_store.unit_of_work() as uow:
            assert len(uow.list_audit(batch_id=second)) == 0
        summary = service.get_reconciliation(second).summary
        assert (summary.created, summary.updated, summary.unchanged) == (0, 0, 5)
        assert service.get_batch_status(second).chunk_stats.skipped == 5

    def test_reconciliation_requires_completed_batch(self, service, memory_store):
        from product_ingest.batch import StagingService
        from product_ingest.core.models import ProductRecord

        batch_id = StagingService(memory_store).stage_batch("x.xlsx", "alice", [ProductRecord(product_id="LN-1")])

        with pytest.raises(InvalidStateTransition):
            service.get_reconciliation(batch_id)

    def test_parse_failure_stages_nothing(self, service, loan_workbook):
        buffer = loan_workbook([row("LN-1"), row(None), row("LN-3", start="someday")])

        with pytest.raises(ParseFailure) as exc_info:
            service.ingest(buffer, "loans.xlsx", "alice")

        assert str(exc_info.value) == (
            "Validation failed: Row 3: Missing ProductID; "
            "Row 4: Invalid date in LoanStartDate: 'someday' is not a recognised date"
        )
        assert service.list_batches().pagination.total_records == 0

    def test_empty_workbook(self, service, loan_workbook):
        with pytest.raises(EmptyFile):
            service.ingest(loan_workbook([]), "loans.xlsx", "alice")

    def test_unknown_batch(self, service):
        with pytest.raises(NotFoundFailure):
            service.get_batch_status("no-such-batch")

    def test_invalid_rows_and_summary(self, service, loan_workbook):
        batch_id = service.ingest(
            loan_workbook([row("LN-1", name=None), row("LN-2"), row("LN-3", pricing=101)]),
            "loans.xlsx",
            "alice",
        )
        service.wait_for(batch_id, timeout=WAIT_SECONDS)

        invalid = service.invalid_rows(batch_id)
        summary = service.validation_summary(batch_id)

        assert [(r.product_id, r.errors[0]) for r in invalid] == [
            ("LN-1", "ProductName is required"),
            ("LN-3", "Pricing must be between 0 and 100"),
        ]
        assert summary.invalid_records == 2
        assert len(summary.invalid_sample) == 2

    def test_validation_rules_listing(self, service):
        rules = service.validation_rules()

        assert rules["summary"]["total_rules"] == 5
        assert rules["rules"][-1]["rule_name"] == "Pricing_percentage"


@pytest.mark.integration
class TestListingsAndCatalog:
    """Batch listings, upload stats and product queries"""

    def test_batch_listing_and_stats(self, service, loan_workbook):
        for user in ("alice", "alice", "bob"):
            batch_id = service.ingest(loan_workbook([row("LN-1"), row("LN-2", pricing=500)]), "loans.xlsx", user)
            service.wait_for(batch_id, timeout=WAIT_SECONDS)

        page = service.list_batches(page=1, page_size=2)
        assert page.pagination.model_dump() == {"page": 1, "page_size": 2, "total_records": 3, "total_pages": 2}
        assert len(page.data) == 2

        stats = service.upload_stats("alice")
        assert (stats.total_uploads, stats.total_records, stats.total_valid_records, stats.total_invalid_records) == (2, 4, 2, 2)

    def test_bad_page(self, service):
        with pytest.raises(ValueError):
            service.list_batches(page=0)

    def test_product_catalog(self, service, memory_store, loan_workbook):
        batch_id = service.ingest(
            loan_workbook([
                row("LN-1", name="Two Year Fixed"),
                row("LN-2", name="Tracker"),
                row("LN-3", name="Old Fixed", withdrawn="2020-01-01"),
            ]),
            "loans.xlsx",
            "alice",
        )
        service.wait_for(batch_id, timeout=WAIT_SECONDS)
        catalog = ProductCatalog(memory_store)

        page = catalog.list_products(search="fixed")
        assert [p.product_id for p in page.data] == ["LN-1", "LN-3"]
        assert [p.product_id for p in catalog.list_products(search="fixed", active_only=True).data] == ["LN-1"]

        product = catalog.get_product("LN-3")
        assert product.is_active is False
        assert product.get("WithdrawnDate") == "2020-01-01"

        with pytest.raises(NotFoundFailure):
            catalog.get_product("LN-9")

    def test_product_history_newest_first(self, service, memory_store, loan_workbook):
        for pricing in (4.25, 4.10, 3.95):
            batch_id = service.ingest(loan_workbook([row("LN-1", pricing=pricing)]), "loans.xlsx", "alice")
            service.wait_for(batch_id, timeout=WAIT_SECONDS)

        history = ProductCatalog(memory_store).get_product_history("LN-1")

        assert [e.change_type for e in history] == [ChangeType.UPDATE, ChangeType.UPDATE, ChangeType.INSERT]
        assert [e.new_price for e in history] == [Decimal("3.95"), Decimal("4.10"), Decimal("4.25")]

        with pytest.raises(ValueError):
            ProductCatalog(memory_store).get_product_history("LN-1", months_back=0)


@pytest.mark.integration
class TestSettings:
    """Settings from the environment"""

    def test_from_env(self, test_env_vars):
        settings = PipelineSettings.from_env()

        assert settings.catalog_schema == "loan"
        assert settings.chunk_size == 2
        assert settings.database.name == "product_catalog_test"
        assert settings.database.password == "test_password"
        assert settings.log_level == "WARNING"

    def test_rejects_bad_values(self):
        with pytest.raises(ValueError):
            PipelineSettings(chunk_size=0)
        with pytest.raises(ValueError):
            PipelineSettings(catalog_schema="credit-card")

    def test_yaml_rules_path(self, config_dir, loan_schema):
        settings = PipelineSettings(catalog_schema="loan", validation_rules_path=f"{config_dir}/validation_rules.yaml")
        store = InMemoryCatalogStore(loan_schema)

        with IngestionService(store, settings) as svc:
            assert svc.validation_rules()["summary"]["total_rules"] == 5
