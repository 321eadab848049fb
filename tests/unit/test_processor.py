"""
Unit tests for validation scoring and chunked reconciliation.
"""

import math
from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from product_ingest.batch import BatchTracker, ChunkProcessor, StagingService, ValidationEngine
from product_ingest.batch.processor import diff_attributes, is_active, values_equal
from product_ingest.core.exceptions import ChunkFailure, InvalidStateTransition
from product_ingest.core.models import BatchStatus, CanonicalProduct, ChangeType, ProductRecord, ValidationState
from product_ingest.core.rules import RuleEngine, build_default_rules
from product_ingest.core.schema import LOAN_SCHEMA
from product_ingest.warehouse import InMemoryCatalogStore
from product_ingest.warehouse.memory import InMemoryUnitOfWork


def loan(product_id: str, pricing="4.25", name="Fixed", withdrawn=None, row=2) -> ProductRecord:
    return ProductRecord(
        product_id=product_id,
        attributes={
            "ProductName": name,
            "LoanStartDate": "2024-01-15",
            "WithdrawnDate": withdrawn,
            "Pricing": Decimal(pricing) if pricing is not None else None,
        },
        row_number=row,
    )


def loan_product(product_id: str, pricing: str) -> CanonicalProduct:
    return CanonicalProduct(product_id=product_id, attributes=dict(loan(product_id, pricing).attributes), created_by="carol")


class Harness:
    """Wires the batch components over one in-memory store"""

    def __init__(self, store, chunk_size=2):
        self.store = store
        self.tracker = BatchTracker(store)
        self.staging = StagingService(store)
        self.validation = ValidationEngine(
            store, RuleEngine(build_default_rules(LOAN_SCHEMA), "ProductID"), self.tracker
        )
        self.processor = ChunkProcessor(store, self.tracker, LOAN_SCHEMA, chunk_size=chunk_size)

    def stage(self, records, user="alice"):
        return self.staging.stage_batch("loans.xlsx", user, records)

    def run(self, records, user="alice"):
        batch_id = self.stage(records, user)
        self.validation.validate(batch_id)
        return batch_id, self.processor.process_batch(batch_id, user)


@pytest.fixture
def harness(memory_store):
    return Harness(memory_store)


@pytest.mark.unit
class TestDiff:
    """Tests for null-safe attribute comparison"""

    def test_values_equal(self):
        assert values_equal(None, None)
        assert not values_equal(None, Decimal("0"))
        assert not values_equal("", None)
        assert values_equal(Decimal("4.2"), Decimal("4.20"))

    def test_diff_only_compared_fields(self):
        old = {"Pricing": Decimal("4.25"), "WithdrawnDate": None, "ProductName": "A", "LoanStartDate": "2024-01-01"}
        new = {"Pricing": Decimal("4.10"), "WithdrawnDate": "2025-03-31", "ProductName": "A", "LoanStartDate": "2024-01-01"}

        assert diff_attributes(LOAN_SCHEMA, old, new) == {
            "Pricing": {"from": "4.25", "to": "4.10"},
            "WithdrawnDate": {"from": None, "to": "2025-03-31"},
        }

    def test_is_active_follows_withdrawal_date(self):
        today = date(2025, 1, 1)
        assert is_active(LOAN_SCHEMA, {"WithdrawnDate": None}, today)
        assert is_active(LOAN_SCHEMA, {"WithdrawnDate": "2025-06-30"}, today)
        assert not is_active(LOAN_SCHEMA, {"WithdrawnDate": "2025-01-01"}, today)
        assert not is_active(LOAN_SCHEMA, {"WithdrawnDate": "2020-01-01"}, today)


@pytest.mark.unit
class TestValidationEngine:
    """Tests for validation scoring"""

    def test_scores_rows_and_counts(self, harness, memory_store):
        batch_id = harness.stage([loan("A"), loan("B", pricing="150", row=3), loan("C", name=None, row=4)])

        counts = harness.validation.validate(batch_id)

        assert counts == {"valid": 1, "invalid": 2}
        batch = harness.tracker.get_batch(batch_id)
        assert batch.status == BatchStatus.VALIDATED
        assert (batch.valid_records, batch.invalid_records) == (1, 2)

        invalid = harness.validation.invalid_rows(batch_id)
        assert [(r.row_number, r.product_id, r.errors) for r in invalid] == [
            (3, "B", ["Pricing must be between 0 and 100"]),
            (4, "C", ["ProductName is required"]),
        ]

    def test_validation_is_idempotent(self, harness):
        batch_id = harness.stage([loan("A"), loan("B", pricing="-1", row=3)])

        first = harness.validation.validate(batch_id)
        second = harness.validation.validate(batch_id)

        assert first == second == {"valid": 1, "invalid": 1}

    def test_cannot_revalidate_completed_batch(self, harness):
        batch_id, _ = harness.run([loan("A")])

        with pytest.raises(InvalidStateTransition):
            harness.validation.validate(batch_id)

    def test_summary_samples_invalid_rows(self, harness):
        batch_id = harness.stage([loan(f"X{i}", pricing="200", row=i + 2) for i in range(7)])
        harness.validation.validate(batch_id)

        summary = harness.validation.validation_summary(batch_id)

        assert summary.invalid_records == 7
        assert len(summary.invalid_sample) == 5

    def test_rule_catalog(self, harness):
        catalog = harness.validation.rule_catalog()
        assert catalog["summary"]["total_rules"] == 5
        assert catalog["rules"][0]["field_name"] == "ProductID"


@pytest.mark.unit
class TestChunkProcessor:
    """Tests for chunked reconciliation"""

    def test_total_chunks(self, memory_store):
        processor = ChunkProcessor(memory_store, BatchTracker(memory_store), LOAN_SCHEMA, chunk_size=500)
        assert processor.total_chunks(0) == 0
        assert processor.total_chunks(500) == 1
        assert processor.total_chunks(501) == 2

    @settings(max_examples=40, deadline=None)
    @given(st.integers(min_value=1, max_value=30), st.integers(min_value=1, max_value=7))
    def test_property_chunk_counts_add_up(self, volume, chunk_size):
        """Property test: every valid row lands in exactly one chunk as created, updated or skipped"""
        store = InMemoryCatalogStore(LOAN_SCHEMA)
        harness = Harness(store, chunk_size=chunk_size)
        seeded = volume // 2
        if seeded:
            harness.run([loan(f"P{i}", row=i + 2) for i in range(seeded)])

        batch_id, outcome = harness.run(
            [loan(f"P{i}", pricing="5.00" if i % 3 == 0 else "4.25", row=i + 2) for i in range(volume)]
        )

        assert outcome.total_chunks == math.ceil(volume / chunk_size)
        assert [c.rows for c in outcome.chunks] == [
            min(chunk_size, volume - i * chunk_size) for i in range(outcome.total_chunks)
        ]
        for chunk in outcome.chunks:
            assert chunk.created + chunk.updated + chunk.skipped == chunk.rows
        assert outcome.created + outcome.updated + outcome.skipped == volume
        assert outcome.created == volume - seeded
        assert outcome.updated == len([i for i in range(seeded) if i % 3 == 0])
        with store.unit_of_work() as uow:
            assert uow.count_staging(batch_id, [ValidationState.PROCESSED]) == volume

    def test_chunk_size_must_be_positive(self, memory_store):
        with pytest.raises(ValueError):
            ChunkProcessor(memory_store, BatchTracker(memory_store), LOAN_SCHEMA, chunk_size=0)

    def test_inserts_new_products(self, harness, memory_store):
        batch_id, outcome = harness.run([loan("A", row=2), loan("B", row=3), loan("C", row=4)])

        assert outcome.final_status == BatchStatus.COMPLETED
        assert outcome.total_chunks == 2
        assert (outcome.created, outcome.updated, outcome.skipped) == (3, 0, 0)

        with memory_store.unit_of_work() as uow:
            products = uow.get_products(["A", "B", "C"])
            history = uow.list_audit(batch_id=batch_id)
            logs = uow.list_chunk_logs(batch_id)
            batch = uow.get_batch(batch_id)

        assert products["A"].created_by == "alice"
        assert products["A"].get("Pricing") == Decimal("4.25")
        assert [e.change_type for e in history] == [ChangeType.INSERT] * 3
        assert history[0].new_price == Decimal("4.25")
        assert history[0].old_price is None
        assert history[0].product_name == "Fixed"
        assert [(log.chunk_index, log.records_processed) for log in logs] == [(0, 2), (1, 1)]
        assert batch.processed_records == 3

    def test_updates_changed_and_skips_identical(self, harness, memory_store):
        harness.run([loan("A"), loan("B")])

        batch_id, outcome = harness.run([loan("A", pricing="3.99"), loan("B")], user="bob")

        assert (outcome.created, outcome.updated, outcome.skipped) == (0, 1, 1)
        with memory_store.unit_of_work() as uow:
            product = uow.get_products(["A"])["A"]
            history = uow.list_audit(product_id="A", change_type=ChangeType.UPDATE)

        assert product.get("Pricing") == Decimal("3.99")
        assert product.updated_by == "bob"
        assert product.created_by == "alice"
        assert len(history) == 1
        assert history[0].old_price == Decimal("4.25")
        assert history[0].new_price == Decimal("3.99")
        assert history[0].changes == {"Pricing": {"from": "4.25", "to": "3.99"}}
        assert history[0].batch_id == batch_id

    def test_null_to_value_is_a_change(self, harness, memory_store):
        harness.run([loan("A")])

        _, outcome = harness.run([loan("A", withdrawn="2020-01-01")])

        assert outcome.updated == 1
        with memory_store.unit_of_work() as uow:
            product = uow.get_products(["A"])["A"]
        assert product.is_active is False

    def test_duplicate_identifier_in_one_batch(self, harness, memory_store):
        batch_id, outcome = harness.run([loan("A", pricing="1.00"), loan("A", pricing="2.00", row=3)])

        assert (outcome.created, outcome.updated, outcome.skipped) == (1, 0, 1)
        with memory_store.unit_of_work() as uow:
            history = uow.list_audit(batch_id=batch_id)
            assert uow.get_products(["A"])["A"].get("Pricing") == Decimal("2.00")
            assert uow.count_staging(batch_id, [ValidationState.PROCESSED]) == 2

        assert [(e.change_type, e.new_price) for e in history] == [(ChangeType.INSERT, Decimal("2.00"))]

    def test_duplicate_across_chunks_applies_last_row(self, harness, memory_store):
        harness.run([loan("A", pricing="1.00")])

        batch_id, outcome = harness.run(
            [loan("A", pricing="2.00"), loan("B", row=3), loan("A", pricing="3.00", row=4)], user="bob"
        )

        assert [(c.created, c.updated, c.skipped) for c in outcome.chunks] == [(1, 0, 1), (0, 1, 0)]
        with memory_store.unit_of_work() as uow:
            history = uow.list_audit(product_id="A", batch_id=batch_id)
        assert [(e.old_price, e.new_price) for e in history] == [(Decimal("1.00"), Decimal("3.00"))]

    def test_insert_raced_by_another_batch_becomes_update(self, harness, memory_store, monkeypatch):
        original = InMemoryUnitOfWork.get_products
        raced = []

        def get_products(self, product_ids, for_update=False):
            if "A" in product_ids and not raced:
                # Another batch commits A between our read and our insert
                raced.append(True)
                self.state.products["A"] = loan_product("A", "1.00")
                return {}
            return original(self, product_ids, for_update)

        monkeypatch.setattr(InMemoryUnitOfWork, "get_products", get_products)

        batch_id, outcome = harness.run([loan("A", pricing="2.00")])

        assert outcome.final_status == BatchStatus.COMPLETED
        assert (outcome.created, outcome.updated) == (0, 1)
        with memory_store.unit_of_work() as uow:
            history = uow.list_audit(batch_id=batch_id)
            assert uow.get_products(["A"])["A"].get("Pricing") == Decimal("2.00")
        assert [(e.change_type, e.old_price) for e in history] == [(ChangeType.UPDATE, Decimal("1.00"))]

    def test_invalid_rows_never_reach_catalog(self, harness, memory_store):
        harness.run([loan("A"), loan("B", pricing="500", row=3)])

        with memory_store.unit_of_work() as uow:
            assert set(uow.get_products(["A", "B"])) == {"A"}

    def test_no_valid_rows_completes_immediately(self, harness):
        batch_id, outcome = harness.run([loan("A", pricing="500")])

        assert outcome.total_chunks == 0
        assert outcome.final_status == BatchStatus.COMPLETED

    def test_failed_chunk_keeps_earlier_chunks(self, harness, memory_store, monkeypatch):
        original = InMemoryUnitOfWork.insert_product

        def failing_insert(self, product):
            if product.product_id == "C":
                raise RuntimeError("constraint violated")
            return original(self, product)

        monkeypatch.setattr(InMemoryUnitOfWork, "insert_product", failing_insert)
        batch_id = harness.stage([loan("A"), loan("B", row=3), loan("C", row=4), loan("D", row=5)])
        harness.validation.validate(batch_id)

        with pytest.raises(ChunkFailure) as exc_info:
            harness.processor.process_batch(batch_id, "alice")

        assert exc_info.value.chunk_index == 1
        batch = harness.tracker.get_batch(batch_id)
        assert batch.status == BatchStatus.FAILED
        assert batch.processed_records == 2
        with memory_store.unit_of_work() as uow:
            assert set(uow.get_products(["A", "B", "C", "D"])) == {"A", "B"}
            assert uow.count_staging(batch_id, [ValidationState.PROCESSED]) == 2
            assert len(uow.list_chunk_logs(batch_id)) == 1

    def test_cancelled_batch_stops_before_next_chunk(self, harness, monkeypatch):
        batch_id = harness.stage([loan(c, row=i + 2) for i, c in enumerate("ABCD")])
        harness.validation.validate(batch_id)
        original = ChunkProcessor._process_chunk

        def cancel_after_first(self, batch_id, attempt, chunk_index, actor):
            result = original(self, batch_id, attempt, chunk_index, actor)
            if chunk_index == 0:
                self.tracker.cancel(batch_id)
            return result

        monkeypatch.setattr(ChunkProcessor, "_process_chunk", cancel_after_first)

        outcome = harness.processor.process_batch(batch_id, "alice")

        assert outcome.final_status == BatchStatus.FAILED
        assert len(outcome.chunks) == 1
        assert harness.tracker.get_batch(batch_id).processed_records == 2

    def test_processing_requires_validated_batch(self, harness):
        batch_id = harness.stage([loan("A")])

        with pytest.raises(InvalidStateTransition):
            harness.processor.process_batch(batch_id, "alice")
