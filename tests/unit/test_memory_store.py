"""
Unit tests for the in-memory catalog store.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from product_ingest.core.models import (
    AuditEntry,
    BatchStatus,
    CanonicalProduct,
    ChangeType,
    ChunkLog,
    StagingRow,
    UploadBatch,
    ValidationState,
    utc_now,
)


def batch(batch_id: str, user: str = "alice", **fields) -> UploadBatch:
    return UploadBatch(batch_id=batch_id, file_name=f"{batch_id}.xlsx", uploaded_by=user, **fields)


def product(product_id: str, name: str, withdrawn=None, active=True) -> CanonicalProduct:
    return CanonicalProduct(
        product_id=product_id,
        attributes={"ProductName": name, "Pricing": Decimal("1.00"), "WithdrawnDate": withdrawn},
        is_active=active,
        created_by="alice",
    )


@pytest.mark.unit
class TestUnitOfWork:
    """Tests for commit and rollback semantics"""

    def test_commit_on_clean_exit(self, memory_store):
        with memory_store.unit_of_work() as uow:
            uow.insert_batch(batch("b1"))

        with memory_store.unit_of_work() as uow:
            assert uow.get_batch("b1").file_name == "b1.xlsx"

    def test_rollback_on_error(self, memory_store):
        with pytest.raises(RuntimeError):
            with memory_store.unit_of_work() as uow:
                uow.insert_batch(batch("b1"))
                raise RuntimeError("boom")

        with memory_store.unit_of_work() as uow:
            assert uow.get_batch("b1") is None

    def test_returned_models_are_copies(self, memory_store):
        with memory_store.unit_of_work() as uow:
            uow.insert_batch(batch("b1"))
            fetched = uow.get_batch("b1")
            fetched.total_records = 99
            assert uow.get_batch("b1").total_records == 0


@pytest.mark.unit
class TestBatchQueries:
    """Tests for batch listing and statistics"""

    def test_list_newest_first_with_filter(self, memory_store):
        now = utc_now()
        with memory_store.unit_of_work() as uow:
            uow.insert_batch(batch("old", uploaded_at=now - timedelta(hours=2), total_records=5, valid_records=4, invalid_records=1))
            uow.insert_batch(batch("new", uploaded_at=now, total_records=3, valid_records=3))
            uow.insert_batch(batch("other", user="bob", uploaded_at=now - timedelta(hours=1), total_records=1))

            assert [b.batch_id for b in uow.list_batches(0, 10)] == ["new", "other", "old"]
            assert [b.batch_id for b in uow.list_batches(0, 10, uploaded_by="alice")] == ["new", "old"]
            assert uow.count_batches("bob") == 1

            stats = uow.upload_stats("alice")
            assert (stats.total_uploads, stats.total_records) == (2, 8)
            assert (stats.total_valid_records, stats.total_invalid_records) == (7, 1)

    def test_update_batch(self, memory_store):
        with memory_store.unit_of_work() as uow:
            uow.insert_batch(batch("b1"))
            uow.update_batch("b1", status=BatchStatus.VALIDATING)
            assert uow.get_batch("b1").status == BatchStatus.VALIDATING


@pytest.mark.unit
class TestStagingQueries:
    """Tests for staging row state handling"""

    def test_offset_limit_over_states(self, memory_store):
        with memory_store.unit_of_work() as uow:
            uow.insert_batch(batch("b1"))
            uow.insert_staging_rows([
                StagingRow(batch_id="b1", row_number=i + 2, product_id=f"P{i}", uploaded_by="alice")
                for i in range(5)
            ])
            rows = uow.list_staging_rows("b1")
            uow.update_validation([
                (row.staging_id, ValidationState.INVALID if i == 1 else ValidationState.VALID, "bad" if i == 1 else None)
                for i, row in enumerate(rows)
            ])

            valid = uow.list_staging_rows("b1", [ValidationState.VALID], offset=1, limit=2)
            assert [r.product_id for r in valid] == ["P2", "P3"]
            assert uow.count_staging("b1", [ValidationState.INVALID]) == 1

            uow.mark_processed([rows[0].staging_id], utc_now())
            assert uow.count_staging("b1", [ValidationState.PROCESSED]) == 1
            assert uow.revert_processed("b1") == 1
            assert uow.count_staging("b1", [ValidationState.VALID]) == 4

    def test_latest_staging_id_per_product(self, memory_store):
        with memory_store.unit_of_work() as uow:
            uow.insert_batch(batch("b1"))
            uow.insert_staging_rows([
                StagingRow(batch_id="b1", row_number=i + 2, product_id=pid, uploaded_by="alice")
                for i, pid in enumerate(["A", "B", "A", "A"])
            ])
            rows = uow.list_staging_rows("b1")
            uow.update_validation([
                (row.staging_id, ValidationState.INVALID if i == 3 else ValidationState.VALID, None)
                for i, row in enumerate(rows)
            ])

            latest = uow.latest_staging_ids("b1", ["A", "B", "C"], [ValidationState.VALID, ValidationState.PROCESSED])

        assert latest == {"A": rows[2].staging_id, "B": rows[1].staging_id}

    def test_rows_require_batch(self, memory_store):
        with pytest.raises(KeyError):
            with memory_store.unit_of_work() as uow:
                uow.insert_staging_rows([StagingRow(batch_id="nope", row_number=2, product_id="P", uploaded_by="a")])


@pytest.mark.unit
class TestProductQueries:
    """Tests for product storage and search"""

    def test_insert_existing_identifier_is_a_no_op(self, memory_store):
        with memory_store.unit_of_work() as uow:
            assert uow.insert_product(product("A", "Alpha")) is True
            assert uow.insert_product(product("A", "Alpha again")) is False

        with memory_store.unit_of_work() as uow:
            assert uow.get_products(["A"])["A"].get("ProductName") == "Alpha"

    def test_search_and_active_filter(self, memory_store):
        with memory_store.unit_of_work() as uow:
            uow.insert_product(product("LN-2", "Tracker"))
            uow.insert_product(product("LN-1", "Two Year Fixed"))
            uow.insert_product(product("XX-9", "Old Fixed", withdrawn="2020-01-01", active=False))

            assert [p.product_id for p in uow.list_products(0, 10)] == ["LN-1", "LN-2", "XX-9"]
            assert [p.product_id for p in uow.list_products(0, 10, search="fixed")] == ["LN-1", "XX-9"]
            assert [p.product_id for p in uow.list_products(0, 10, search="ln-")] == ["LN-1", "LN-2"]
            assert uow.count_products(search="fixed", active_only=True) == 1
            assert set(uow.get_products(["LN-1", "missing"])) == {"LN-1"}


@pytest.mark.unit
class TestHistoryAndLogs:
    """Tests for audit entries and chunk logs"""

    def test_audit_ids_and_filters(self, memory_store):
        with memory_store.unit_of_work() as uow:
            first = uow.append_audit(AuditEntry(product_id="A", batch_id="b1", change_type=ChangeType.INSERT, changed_by="alice"))
            second = uow.append_audit(AuditEntry(product_id="A", batch_id="b2", change_type=ChangeType.UPDATE, changed_by="bob"))

            assert (first, second) == (1, 2)
            assert [e.history_id for e in uow.list_audit(product_id="A")] == [1, 2]
            assert [e.batch_id for e in uow.list_audit(change_type=ChangeType.UPDATE)] == ["b2"]
            assert uow.list_audit(since=utc_now() + timedelta(minutes=1)) == []

    def test_chunk_log_is_unique_per_attempt(self, memory_store):
        with memory_store.unit_of_work() as uow:
            uow.append_chunk_log(ChunkLog(batch_id="b1", attempt=1, chunk_index=0, records_processed=2))
            uow.append_chunk_log(ChunkLog(batch_id="b1", attempt=2, chunk_index=0, records_processed=2))

            assert len(uow.list_chunk_logs("b1")) == 2
            assert len(uow.list_chunk_logs("b1", attempt=2)) == 1

            with pytest.raises(ValueError):
                uow.append_chunk_log(ChunkLog(batch_id="b1", attempt=1, chunk_index=0, records_processed=2))
