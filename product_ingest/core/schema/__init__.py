"""
Catalog schemas: column lists, kinds and validation roles.
"""

from .catalog import (
    BoundedPair,
    CatalogSchema,
    FieldKind,
    FieldRole,
    FieldSpec,
    available_schemas,
    get_schema,
    register_schema,
)
from .loan import LOAN_SCHEMA
from .mortgage import MORTGAGE_SCHEMA

__all__ = [
    "CatalogSchema",
    "FieldSpec",
    "FieldKind",
    "FieldRole",
    "BoundedPair",
    "get_schema",
    "register_schema",
    "available_schemas",
    "LOAN_SCHEMA",
    "MORTGAGE_SCHEMA",
]
