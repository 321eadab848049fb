"""
Admin CLI for the product catalog database.

Usage:
    product-ingest-admin init-db
    product-ingest-admin drop-db --yes
    product-ingest-admin batches [--user <name>] [--page N] [--page-size N]
    product-ingest-admin stats [--user <name>]
    product-ingest-admin products [--search <text>] [--active-only] [--page N]
    product-ingest-admin product <product_id>
    product-ingest-admin history <product_id> [--months N]
"""

import argparse
import sys
from datetime import datetime

from product_ingest.batch.reports import BatchReporter
from product_ingest.catalog import ProductCatalog
from product_ingest.cli.batch_cli import print_json
from product_ingest.config import PipelineSettings
from product_ingest.core.exceptions import PipelineError
from product_ingest.core.models import AuditEntry
from product_ingest.core.schema import get_schema
from product_ingest.observability.logger import get_logger, setup_logger
from product_ingest.warehouse.connection import DatabaseConnectionPool
from product_ingest.warehouse.postgres_store import PostgresCatalogStore
from product_ingest.warehouse.schema_mgmt import SchemaManager

logger = get_logger("product-ingest.cli")


def format_timestamp(ts: datetime | None) -> str:
    """Format timestamp for display."""
    return ts.strftime("%Y-%m-%d %H:%M:%S") if ts else "N/A"


def init_db_command(pool: DatabaseConnectionPool, args) -> int:
    manager = SchemaManager(pool)
    manager.create_tables()
    print(f"Tables ready: {', '.join(manager.existing_tables())}")
    return 0


def drop_db_command(pool: DatabaseConnectionPool, args) -> int:
    if not args.yes:
        print("Refusing to drop tables without --yes", file=sys.stderr)
        return 1
    SchemaManager(pool).drop_tables()
    print("All pipeline tables dropped")
    return 0


def history_command(catalog: ProductCatalog, args) -> int:
    """
    Print the change history of one product, newest first.

    Args:
        catalog: Product catalog
        args: Command line arguments
    """
    entries: list[AuditEntry] = catalog.get_product_history(args.product_id, months_back=args.months)
    if args.json:
        print_json(entries)
        return 0

    if not entries:
        print(f"\nNo history found for product {args.product_id} in the last {args.months} months")
        return 0

    print(f"\n{'=' * 80}")
    print(f"HISTORY FOR PRODUCT: {args.product_id}")
    print(f"{'=' * 80}\n")
    print(f"{'Changed at':<20} {'Type':<8} {'By':<15} {'Details'}")
    print(f"{'-' * 80}")

    for entry in entries:
        if entry.changes:
            details = ", ".join(f"{name}: {c.get('from')} → {c.get('to')}" for name, c in entry.changes.items())
        else:
            details = f"created (price {entry.new_price})"
        print(f"{format_timestamp(entry.changed_at):<20} {entry.change_type.value:<8} {entry.changed_by:<15} {details}")

    print(f"\n{'=' * 80}\n")
    return 0


def run(args) -> int:
    settings = PipelineSettings.from_env(args.env_file)
    setup_logger(level=settings.log_level)

    pool = settings.create_pool()
    try:
        pool.open()

        if args.command == "init-db":
            return init_db_command(pool, args)
        if args.command == "drop-db":
            return drop_db_command(pool, args)

        store = PostgresCatalogStore(pool, get_schema(settings.catalog_schema))
        catalog = ProductCatalog(store)
        if args.command == "history":
            return history_command(catalog, args)
        if args.command == "products":
            print_json(catalog.list_products(args.page, args.page_size, args.search, args.active_only))
        elif args.command == "product":
            print_json(catalog.get_product(args.product_id))
        elif args.command == "batches":
            reporter = BatchReporter(store, validation=None, chunk_size=settings.chunk_size)
            print_json(reporter.list_batches(args.page, args.page_size, args.user))
        elif args.command == "stats":
            reporter = BatchReporter(store, validation=None, chunk_size=settings.chunk_size)
            print_json(reporter.upload_stats(args.user))
        return 0

    except PipelineError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Admin command {args.command} failed: {e}", exc_info=True)
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    finally:
        pool.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="product-ingest-admin",
        description="Manage the product catalog database",
    )
    parser.add_argument("--env-file", default=".env", help="dotenv file with DB_* settings (default: .env)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create pipeline tables")
    drop_parser = subparsers.add_parser("drop-db", help="Drop pipeline tables")
    drop_parser.add_argument("--yes", action="store_true", help="Confirm dropping every table")

    batches_parser = subparsers.add_parser("batches", help="List upload batches, newest first")
    batches_parser.add_argument("--user", help="Only batches uploaded by this user")
    batches_parser.add_argument("--page", type=int, default=1)
    batches_parser.add_argument("--page-size", type=int, default=20)

    stats_parser = subparsers.add_parser("stats", help="Upload statistics")
    stats_parser.add_argument("--user", help="Only batches uploaded by this user")

    products_parser = subparsers.add_parser("products", help="List catalog products")
    products_parser.add_argument("--search", help="Substring of product id or name")
    products_parser.add_argument("--active-only", action="store_true", help="Hide withdrawn products")
    products_parser.add_argument("--page", type=int, default=1)
    products_parser.add_argument("--page-size", type=int, default=20)

    product_parser = subparsers.add_parser("product", help="Show one product")
    product_parser.add_argument("product_id")

    history_parser = subparsers.add_parser("history", help="Show a product's change history")
    history_parser.add_argument("product_id")
    history_parser.add_argument("--months", type=int, default=12, help="Months of history (default: 12)")
    history_parser.add_argument("--json", action="store_true", help="Print entries as JSON")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
