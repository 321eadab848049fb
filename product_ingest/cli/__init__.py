"""
Command-line entry points: product-ingest and product-ingest-admin.
"""
