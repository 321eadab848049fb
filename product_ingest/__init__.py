"""
product-ingest: batch ingestion and reconciliation of product pricing
spreadsheets into a canonical product catalog with a full audit trail.
"""

__version__ = "0.1.0"
