"""
Canonical product catalog queries.
"""

from .products import ProductCatalog

__all__ = ["ProductCatalog"]
