"""
Persistence: connection pool, DDL and catalog store implementations.
"""

from .memory import InMemoryCatalogStore
from .store import CatalogStore, UnitOfWork

__all__ = [
    "CatalogStore",
    "UnitOfWork",
    "InMemoryCatalogStore",
]
