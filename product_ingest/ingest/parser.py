"""
Record parser: uploaded spreadsheet -> typed product records.

Parsing is all-or-nothing. Every row is converted; if any row fails, the
first errors are aggregated into a single ParseFailure and no records are
returned.
"""

from decimal import Decimal
from typing import Any

from pydantic import ValidationError as ModelValidationError

from product_ingest.core.exceptions import EmptyFile, EmptySheet, ParseFailure
from product_ingest.core.models import ProductRecord
from product_ingest.core.schema import CatalogSchema, FieldKind
from product_ingest.observability.logger import get_logger
from product_ingest.observability.metrics import increment_counter, parse_failures_total, records_parsed_total

from .coercion import CoercionError, clean_string, coerce
from .readers import FileReader, RawRow

logger = get_logger("product-ingest.parser")

DEFAULT_MAX_REPORTED_ERRORS = 10


class RowError(Exception):
    """A single sheet row cannot become a ProductRecord."""


class RecordParser:
    """
    Converts uploaded files into ProductRecords for one catalog schema.

    Unknown columns are ignored; schema columns missing from the header are
    read as null.
    """

    def __init__(self, schema: CatalogSchema, max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS):
        self.schema = schema
        self.max_reported_errors = max_reported_errors
        self.reader = FileReader()

    def parse(self, buffer: bytes, file_name: str) -> list[ProductRecord]:
        """
        Parse an uploaded file.

        Args:
            buffer: Raw file bytes (.xlsx or .csv)
            file_name: Original file name

        Returns:
            ProductRecords in sheet order

        Raises:
            EmptySheet: Workbook has no sheets
            EmptyFile: No non-blank data rows
            ParseFailure: Unreadable file or one or more row errors
        """
        try:
            sheet = self.reader.read(buffer, file_name)
        except EmptySheet:
            self._count_failure("empty_sheet")
            raise
        except ParseFailure:
            self._count_failure("unreadable")
            raise

        if not sheet.rows:
            self._count_failure("empty_file")
            raise EmptyFile("Excel file is empty")

        missing = [name for name in [self.schema.identifier_column, *self.schema.field_names] if name not in sheet.header]
        if self.schema.identifier_column in missing:
            logger.warning(
                f"Identifier column '{self.schema.identifier_column}' not found in header",
                extra={"file_name": file_name, "catalog": self.schema.name},
            )
        elif missing:
            logger.debug(
                f"{len(missing)} schema columns absent from file; reading them as null",
                extra={"file_name": file_name, "missing_columns": missing[:20]},
            )

        records: list[ProductRecord] = []
        errors: list[tuple[int, str]] = []

        for raw in sheet.rows:
            try:
                records.append(self.parse_row(raw))
            except RowError as e:
                errors.append((raw.row_number, str(e)))

        if errors:
            self._count_failure("row_errors")
            raise ParseFailure(self._summarise(errors), row_errors=errors)

        increment_counter(records_parsed_total, len(records), catalog=self.schema.name)
        logger.info(
            f"Parsed {len(records)} records from {file_name}",
            extra={"file_name": file_name, "sheet": sheet.sheet_name, "record_count": len(records)},
        )
        return records

    def parse_row(self, raw: RawRow) -> ProductRecord:
        """
        Convert one raw row.

        Raises:
            RowError: Identifier missing or too long, bad date, over-long text
        """
        product_id = self._parse_identifier(raw.values.get(self.schema.identifier_column))

        attributes: dict[str, Any] = {}
        for spec in self.schema.fields:
            value = raw.values.get(spec.name)
            try:
                coerced = coerce(spec.kind, value)
            except CoercionError as e:
                raise RowError(f"Invalid date in {spec.name}: {e}") from e

            if spec.kind == FieldKind.STRING and spec.max_length and coerced and len(coerced) > spec.max_length:
                raise RowError(f"{spec.name} too long (max {spec.max_length} characters)")
            attributes[spec.name] = coerced

        try:
            return ProductRecord(product_id=product_id, attributes=attributes, row_number=raw.row_number)
        except ModelValidationError as e:
            raise RowError(f"Invalid record: {e.errors()[0]['msg']}") from e

    def _parse_identifier(self, value: Any) -> str:
        # Numeric product codes come back from Excel as numbers
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        elif isinstance(value, Decimal) and value == value.to_integral_value():
            value = int(value)

        product_id = clean_string(value)
        if not product_id:
            raise RowError(f"Missing {self.schema.identifier_column}")

        limit = self.schema.identifier_max_length
        if len(product_id) > limit:
            raise RowError(f"{self.schema.identifier_column} too long (max {limit} characters)")
        return product_id

    def _summarise(self, errors: list[tuple[int, str]]) -> str:
        shown = errors[: self.max_reported_errors]
        message = "; ".join(f"Row {row}: {msg}" for row, msg in shown)
        remaining = len(errors) - len(shown)
        if remaining > 0:
            message += f" ... and {remaining} more errors"
        return f"Validation failed: {message}"

    def _count_failure(self, reason: str) -> None:
        increment_counter(parse_failures_total, 1, catalog=self.schema.name, reason=reason)
