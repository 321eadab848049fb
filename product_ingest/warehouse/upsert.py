"""
Canonical product writes and reads for PostgreSQL.

Attributes are stored as JSONB. Decimal values are written as strings so
2dp prices survive the JSON round trip exactly, and are rebuilt with the
catalog schema's column kinds on read.
"""

from typing import Any

from psycopg import Cursor
from psycopg.types.json import Jsonb

from product_ingest.core.models import AttributeValue, CanonicalProduct
from product_ingest.core.schema import CatalogSchema
from product_ingest.ingest.coercion import restore_value, to_json_value


def encode_attributes(attributes: dict[str, AttributeValue]) -> Jsonb:
    return Jsonb({name: to_json_value(value) for name, value in attributes.items()})


def decode_attributes(schema: CatalogSchema, data: dict[str, Any] | None) -> dict[str, AttributeValue]:
    return {name: restore_value(schema.kind_of(name), value) for name, value in (data or {}).items()}


def _product_from_row(schema: CatalogSchema, row: dict[str, Any]) -> CanonicalProduct:
    return CanonicalProduct(
        product_id=row["product_id"],
        attributes=decode_attributes(schema, row["attributes"]),
        is_active=row["is_active"],
        created_at=row["created_at"],
        created_by=row["created_by"],
        updated_at=row["updated_at"],
        updated_by=row["updated_by"],
    )


PRODUCT_COLUMNS = "product_id, attributes, is_active, created_at, created_by, updated_at, updated_by"


def select_products(
    cur: Cursor,
    schema: CatalogSchema,
    product_ids: list[str],
    for_update: bool = False,
) -> dict[str, CanonicalProduct]:
    """
    Fetch canonical products by identifier.

    Args:
        cur: Cursor inside the caller's transaction
        schema: Catalog schema for attribute decoding
        product_ids: Identifiers to fetch
        for_update: Lock the rows until the transaction ends

    Returns:
        Mapping of identifier to product for the identifiers that exist
    """
    if not product_ids:
        return {}

    # Lock in a stable order so concurrent chunks cannot deadlock
    query = f"""
        SELECT {PRODUCT_COLUMNS}
        FROM product
        WHERE product_id = ANY(%s)
        ORDER BY product_id
    """
    if for_update:
        query += " FOR UPDATE"

    cur.execute(query, (sorted(set(product_ids)),))
    return {row["product_id"]: _product_from_row(schema, row) for row in cur.fetchall()}


def insert_product(cur: Cursor, product: CanonicalProduct) -> bool:
    """Insert a new product; False when the identifier already exists."""
    cur.execute(
        f"""
        INSERT INTO product ({PRODUCT_COLUMNS})
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (product_id) DO NOTHING
        """,
        (
            product.product_id,
            encode_attributes(product.attributes),
            product.is_active,
            product.created_at,
            product.created_by,
            product.updated_at,
            product.updated_by,
        ),
    )
    return cur.rowcount == 1


def update_product(cur: Cursor, product: CanonicalProduct) -> None:
    cur.execute(
        """
        UPDATE product
        SET attributes = %s, is_active = %s, updated_at = %s, updated_by = %s
        WHERE product_id = %s
        """,
        (
            encode_attributes(product.attributes),
            product.is_active,
            product.updated_at,
            product.updated_by,
            product.product_id,
        ),
    )
    if cur.rowcount != 1:
        raise LookupError(f"Product {product.product_id} not found for update")


def _product_filters(schema: CatalogSchema, search: str | None, active_only: bool) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if active_only:
        clauses.append("is_active")
    if search:
        pattern = f"%{search}%"
        if schema.name_field:
            clauses.append("(product_id ILIKE %s OR attributes->>%s ILIKE %s)")
            params += [pattern, schema.name_field, pattern]
        else:
            clauses.append("product_id ILIKE %s")
            params.append(pattern)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def list_products(
    cur: Cursor,
    schema: CatalogSchema,
    offset: int,
    limit: int,
    search: str | None = None,
    active_only: bool = False,
) -> list[CanonicalProduct]:
    where, params = _product_filters(schema, search, active_only)
    cur.execute(
        f"""
        SELECT {PRODUCT_COLUMNS}
        FROM product
        {where}
        ORDER BY product_id
        OFFSET %s LIMIT %s
        """,
        (*params, offset, limit),
    )
    return [_product_from_row(schema, row) for row in cur.fetchall()]


def count_products(cur: Cursor, schema: CatalogSchema, search: str | None = None, active_only: bool = False) -> int:
    where, params = _product_filters(schema, search, active_only)
    cur.execute(f"SELECT COUNT(*) AS total FROM product {where}", tuple(params))
    return cur.fetchone()["total"]
