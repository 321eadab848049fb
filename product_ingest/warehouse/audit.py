"""
Product history (audit log) operations.

History rows are append-only: this module only inserts and queries.
"""

from datetime import date, datetime
from typing import Any

from psycopg import Cursor
from psycopg.types.json import Jsonb

from product_ingest.core.models import AuditEntry, ChangeType
from product_ingest.observability.logger import get_logger

logger = get_logger("product-ingest.warehouse.audit")

HISTORY_COLUMNS = """
    history_id, product_id, product_name, batch_id, change_type,
    old_price, new_price, old_withdrawn_date, new_withdrawn_date,
    changes, changed_by, changed_at
"""


def _to_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _entry_from_row(row: dict[str, Any]) -> AuditEntry:
    return AuditEntry(
        history_id=row["history_id"],
        product_id=row["product_id"],
        product_name=row["product_name"],
        batch_id=row["batch_id"],
        change_type=ChangeType(row["change_type"]),
        old_price=row["old_price"],
        new_price=row["new_price"],
        old_withdrawn_date=row["old_withdrawn_date"].isoformat() if row["old_withdrawn_date"] else None,
        new_withdrawn_date=row["new_withdrawn_date"].isoformat() if row["new_withdrawn_date"] else None,
        changes=row["changes"] or {},
        changed_by=row["changed_by"],
        changed_at=row["changed_at"],
    )


def insert_audit_entry(cur: Cursor, entry: AuditEntry) -> int:
    """
    Insert a single history entry.

    Args:
        cur: Cursor inside the chunk's transaction
        entry: AuditEntry model instance

    Returns:
        history_id: Generated history ID
    """
    cur.execute(
        """
        INSERT INTO product_history (
            product_id, product_name, batch_id, change_type,
            old_price, new_price, old_withdrawn_date, new_withdrawn_date,
            changes, changed_by, changed_at
        ) VALUES (
            %(product_id)s, %(product_name)s, %(batch_id)s, %(change_type)s,
            %(old_price)s, %(new_price)s, %(old_withdrawn_date)s, %(new_withdrawn_date)s,
            %(changes)s, %(changed_by)s, %(changed_at)s
        ) RETURNING history_id
        """,
        {
            "product_id": entry.product_id,
            "product_name": entry.product_name,
            "batch_id": entry.batch_id,
            "change_type": entry.change_type.value,
            "old_price": entry.old_price,
            "new_price": entry.new_price,
            "old_withdrawn_date": _to_date(entry.old_withdrawn_date),
            "new_withdrawn_date": _to_date(entry.new_withdrawn_date),
            "changes": Jsonb(entry.changes),
            "changed_by": entry.changed_by,
            "changed_at": entry.changed_at,
        },
    )
    history_id = cur.fetchone()["history_id"]

    logger.debug(
        f"Inserted history entry: history_id={history_id}, "
        f"product_id={entry.product_id}, type={entry.change_type.value}"
    )
    return history_id


def query_audit_entries(
    cur: Cursor,
    product_id: str | None = None,
    batch_id: str | None = None,
    change_type: ChangeType | None = None,
    since: datetime | None = None,
) -> list[AuditEntry]:
    """
    Query history entries by product, batch, change type and age.

    Returns:
        Matching entries in insertion order
    """
    clauses: list[str] = []
    params: dict[str, Any] = {}

    if product_id is not None:
        clauses.append("product_id = %(product_id)s")
        params["product_id"] = product_id
    if batch_id is not None:
        clauses.append("batch_id = %(batch_id)s")
        params["batch_id"] = batch_id
    if change_type is not None:
        clauses.append("change_type = %(change_type)s")
        params["change_type"] = change_type.value
    if since is not None:
        clauses.append("changed_at >= %(since)s")
        params["since"] = since

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    cur.execute(
        f"""
        SELECT {HISTORY_COLUMNS}
        FROM product_history
        {where}
        ORDER BY history_id
        """,
        params,
    )
    return [_entry_from_row(row) for row in cur.fetchall()]
