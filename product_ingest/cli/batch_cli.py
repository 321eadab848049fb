"""
Command-line interface for batch uploads.

Usage:
    product-ingest ingest <file> --user <name> [--wait] [--dry-run]
    product-ingest status <batch_id>
    product-ingest summary <batch_id>
    product-ingest reconcile <batch_id>
    product-ingest invalid <batch_id> [--limit N]
    product-ingest retry <batch_id> [--wait]
    product-ingest cancel <batch_id>
    product-ingest rules
"""

import argparse
import json
import sys
from pathlib import Path

from pydantic import BaseModel

from product_ingest.batch import IngestionService
from product_ingest.config import PipelineSettings
from product_ingest.core.exceptions import PipelineError
from product_ingest.core.models import BatchStatus
from product_ingest.core.schema import available_schemas, get_schema
from product_ingest.observability.logger import get_logger, setup_logger
from product_ingest.observability.metrics import start_metrics_server
from product_ingest.warehouse import InMemoryCatalogStore

logger = get_logger("product-ingest.cli")


def print_json(value) -> None:
    """Print a model, a list of models or plain data as indented JSON."""
    if isinstance(value, BaseModel):
        print(value.model_dump_json(indent=2))
    elif isinstance(value, list):
        print(json.dumps([v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value], indent=2))
    else:
        print(json.dumps(value, indent=2, default=str))


def load_settings(args) -> PipelineSettings:
    settings = PipelineSettings.from_env(args.env_file)
    if args.catalog:
        settings = settings.model_copy(update={"catalog_schema": args.catalog})
    return settings


def ingest_command(service: IngestionService, args) -> int:
    """
    Upload a spreadsheet.

    Args:
        service: Ingestion service
        args: Command-line arguments
    """
    input_path = Path(args.file)
    if not input_path.exists():
        logger.error(f"Input file not found: {args.file}")
        return 1

    batch_id = service.ingest(input_path.read_bytes(), input_path.name, args.user)
    print_json({"batch_id": batch_id, "file_name": input_path.name})

    if args.wait or args.dry_run:
        batch = service.wait_for(batch_id, timeout=args.timeout)
        if args.dry_run:
            print_json(service.validation_summary(batch_id))
        else:
            print_json(service.get_batch_status(batch_id))
        return 0 if batch.status == BatchStatus.COMPLETED else 1
    return 0


def retry_command(service: IngestionService, args) -> int:
    batch = service.retry(args.batch_id)
    print_json({"batch_id": batch.batch_id, "status": batch.status.value})
    if args.wait:
        batch = service.wait_for(args.batch_id, timeout=args.timeout)
        print_json(service.get_batch_status(args.batch_id))
        return 0 if batch.status == BatchStatus.COMPLETED else 1
    return 0


def build_service(args) -> IngestionService:
    settings = load_settings(args)
    setup_logger(level=settings.log_level)
    if getattr(args, "dry_run", False):
        # Dry runs reconcile into a throwaway catalog
        logger.info("DRY RUN MODE: nothing will be written to the database")
        return IngestionService(InMemoryCatalogStore(get_schema(settings.catalog_schema)), settings)
    return IngestionService.from_settings(settings)


def dispatch(service: IngestionService, args) -> int:
    try:
        if args.command == "ingest":
            return ingest_command(service, args)
        if args.command == "retry":
            return retry_command(service, args)
        if args.command == "status":
            print_json(service.get_batch_status(args.batch_id))
        elif args.command == "summary":
            print_json(service.validation_summary(args.batch_id))
        elif args.command == "reconcile":
            print_json(service.get_reconciliation(args.batch_id))
        elif args.command == "invalid":
            print_json(service.invalid_rows(args.batch_id, limit=args.limit))
        elif args.command == "cancel":
            batch = service.cancel(args.batch_id)
            print_json({"batch_id": batch.batch_id, "status": batch.status.value})
        elif args.command == "rules":
            print_json(service.validation_rules())
        return 0
    except PipelineError as e:
        logger.error(f"{type(e).__name__}: {e}", extra={"batch_id": e.batch_id})
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    except TimeoutError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1


def run(args) -> int:
    service = build_service(args)
    if args.metrics_port:
        start_metrics_server(args.metrics_port)
    try:
        # Leaving the block waits for background validation and processing
        with service:
            return dispatch(service, args)
    finally:
        service.store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="product-ingest",
        description="Upload product spreadsheets and follow their batches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload a mortgage product sheet and wait for it to finish
  product-ingest ingest data/products.xlsx --user alice --wait

  # Validate and reconcile against an empty in-memory catalog
  product-ingest ingest data/products.xlsx --user alice --dry-run

  # Inspect a batch
  product-ingest status 5c0e8a4e-...
  product-ingest reconcile 5c0e8a4e-...
        """,
    )
    parser.add_argument("--env-file", default=".env", help="dotenv file with DB_* and pipeline settings (default: .env)")
    parser.add_argument("--catalog", choices=available_schemas(), help="Catalog schema (overrides CATALOG_SCHEMA)")
    parser.add_argument("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port while running")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ingest_parser = subparsers.add_parser("ingest", help="Upload a spreadsheet (.xlsx, .xlsm or .csv)")
    ingest_parser.add_argument("file", help="Path to the spreadsheet")
    ingest_parser.add_argument("--user", required=True, help="Uploader identity")
    ingest_parser.add_argument("--wait", action="store_true", help="Wait for the batch and print its status")
    ingest_parser.add_argument("--dry-run", action="store_true", help="Run against an in-memory catalog")
    ingest_parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait (default: no limit)")

    for name, help_text in [
        ("status", "Show batch status and progress"),
        ("summary", "Show validation summary"),
        ("reconcile", "Show the reconciliation report of a completed batch"),
        ("cancel", "Cancel a running batch"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("batch_id", help="Batch id")

    invalid_parser = subparsers.add_parser("invalid", help="List invalid rows of a batch")
    invalid_parser.add_argument("batch_id", help="Batch id")
    invalid_parser.add_argument("--limit", type=int, default=None, help="Maximum rows to list")

    retry_parser = subparsers.add_parser("retry", help="Retry a failed batch")
    retry_parser.add_argument("batch_id", help="Batch id")
    retry_parser.add_argument("--wait", action="store_true", help="Wait for the retry and print its status")
    retry_parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait (default: no limit)")

    subparsers.add_parser("rules", help="List active validation rules")
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
