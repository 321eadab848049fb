"""
Cell coercion for spreadsheet values.

Every coercer accepts the raw cell value as delivered by the reader (str,
int, float, datetime, date, Decimal or None) and returns the typed attribute
value. String, integer and decimal coercers never fail: unusable input
becomes None. Date coercion raises CoercionError for text that is not a date.
"""

import math
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from product_ingest.core.models import AttributeValue
from product_ingest.core.schema import FieldKind

EXCEL_EPOCH = date(1899, 12, 30)
MAX_EXCEL_SERIAL = 2958465  # 9999-12-31
CENT = Decimal("0.01")

_LEADING_INT = re.compile(r"^[+-]?\d+")
_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_SERIAL = re.compile(r"^\d{1,7}(?:\.\d+)?$")

DATE_FORMATS = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y/%m/%d",
)


class CoercionError(ValueError):
    """A cell value cannot be converted to the column's kind."""


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _numeric_text(value: Any) -> str:
    return str(value).replace(",", "").strip()


def clean_string(value: Any) -> str | None:
    """Trim a cell to text; empty or whitespace-only becomes None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        value = int(value)

    text = str(value).strip()
    return text or None


def parse_integer(value: Any) -> int | None:
    """
    Parse a leading base-10 integer after stripping thousands separators.

    "1,250" -> 1250, "12abc" -> 12, "7.9" -> 7, "abc" -> None.
    """
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, Decimal):
        return int(value) if value.is_finite() else None

    match = _LEADING_INT.match(_numeric_text(value))
    return int(match.group()) if match else None


def round_decimal(value: Decimal) -> Decimal:
    """Round to 2 decimal places, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_decimal(value: Any) -> Decimal | None:
    """
    Parse a leading decimal number rounded to 2 decimal places.

    "4.255" -> Decimal("4.26"), "1,000.5" -> Decimal("1000.50"),
    "3.5%" -> Decimal("3.50"), "n/a" -> None. Numbers too large to
    round to cents (1e30) are None as well.
    """
    if _is_blank(value) or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int | float):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        # str() keeps the shortest repr so 4.255 is not read as 4.25499...
        number = Decimal(str(value))
    else:
        match = _LEADING_FLOAT.match(_numeric_text(value))
        if not match:
            return None
        try:
            number = Decimal(match.group())
        except InvalidOperation:
            return None

    if not number.is_finite():
        return None
    try:
        return round_decimal(number)
    except InvalidOperation:
        return None


def excel_serial_to_date(serial: float) -> date:
    """Convert an Excel serial day number (1900 date system) to a date."""
    if serial < 1 or serial > MAX_EXCEL_SERIAL:
        raise CoercionError(f"Excel date serial {serial} is out of range")
    return EXCEL_EPOCH + timedelta(days=int(serial))


def parse_date(value: Any) -> str | None:
    """
    Parse a date cell into an ISO "YYYY-MM-DD" string.

    Accepts native date/datetime values, Excel serial numbers and text in
    ISO or one of DATE_FORMATS.

    Raises:
        CoercionError: If the value is not blank and cannot be read as a date
    """
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        raise CoercionError(f"'{value}' is not a date")
    if isinstance(value, int | float | Decimal):
        return excel_serial_to_date(float(value)).isoformat()

    text = str(value).strip()
    if _SERIAL.match(text):
        return excel_serial_to_date(float(text)).isoformat()

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    raise CoercionError(f"'{text}' is not a recognised date")


COERCERS = {
    FieldKind.STRING: clean_string,
    FieldKind.INTEGER: parse_integer,
    FieldKind.DECIMAL: parse_decimal,
    FieldKind.DATE: parse_date,
}


def coerce(kind: FieldKind, value: Any) -> AttributeValue:
    """Apply the coercer registered for a column kind."""
    return COERCERS[kind](value)


def restore_value(kind: FieldKind | None, value: Any) -> AttributeValue:
    """
    Rebuild a typed attribute from its JSON form.

    Decimals are persisted as strings so they survive JSON without float
    drift; everything else round-trips as-is.
    """
    if value is None:
        return None
    if kind == FieldKind.DECIMAL:
        return Decimal(str(value))
    if kind == FieldKind.INTEGER and not isinstance(value, bool):
        return int(value)
    return value


def to_json_value(value: AttributeValue) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value
