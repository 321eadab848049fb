"""
Unit tests for spreadsheet cell coercion.

Includes property-based testing with hypothesis for the numeric parsers.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from product_ingest.core.schema import FieldKind
from product_ingest.ingest.coercion import (
    CoercionError,
    clean_string,
    coerce,
    excel_serial_to_date,
    parse_date,
    parse_decimal,
    parse_integer,
    restore_value,
    to_json_value,
)


@pytest.mark.unit
class TestCleanString:
    """Tests for string trimming"""

    def test_trims_whitespace(self):
        assert clean_string("  Two Year Fixed  ") == "Two Year Fixed"

    def test_blank_becomes_none(self):
        assert clean_string("   ") is None
        assert clean_string("") is None
        assert clean_string(None) is None

    def test_integral_float_has_no_fraction(self):
        assert clean_string(12345.0) == "12345"

    def test_dates_render_as_iso(self):
        assert clean_string(datetime(2024, 3, 1, 10, 30)) == "2024-03-01"
        assert clean_string(date(2024, 3, 1)) == "2024-03-01"


@pytest.mark.unit
class TestParseInteger:
    """Tests for leading-integer parsing"""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1,250", 1250),
            ("12abc", 12),
            ("7.9", 7),
            ("-3", -3),
            (" 42 ", 42),
            ("abc", None),
            ("", None),
            (None, None),
            (7.9, 7),
            (Decimal("99"), 99),
        ],
    )
    def test_parse_integer(self, raw, expected):
        assert parse_integer(raw) == expected

    def test_bool_is_not_a_number(self):
        assert parse_integer(True) is None

    def test_non_finite_float_is_none(self):
        assert parse_integer(float("inf")) is None
        assert parse_integer(float("nan")) is None

    @given(st.integers(min_value=-10**12, max_value=10**12))
    def test_property_integer_text_round_trips(self, value):
        """Property test: the text of any integer parses back to it"""
        assert parse_integer(str(value)) == value


@pytest.mark.unit
class TestParseDecimal:
    """Tests for 2dp decimal parsing"""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("4.255", Decimal("4.26")),
            ("1,000.5", Decimal("1000.50")),
            ("3.5%", Decimal("3.50")),
            (4.255, Decimal("4.26")),
            (2, Decimal("2.00")),
            ("-1.005", Decimal("-1.01")),
            (".5", Decimal("0.50")),
        ],
    )
    def test_parse_decimal(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize("raw", ["n/a", "", "   ", None, True, float("nan")])
    def test_unusable_values_are_none(self, raw):
        assert parse_decimal(raw) is None

    @pytest.mark.parametrize("raw", ["1e30", 1e30, Decimal("1e30"), "9" * 40])
    def test_values_too_large_for_cents_are_none(self, raw):
        assert parse_decimal(raw) is None

    def test_result_has_two_places(self):
        assert parse_decimal("7").as_tuple().exponent == -2

    @given(st.decimals(min_value=-10**6, max_value=10**6, places=2, allow_nan=False, allow_infinity=False))
    def test_property_two_place_values_are_unchanged(self, value):
        """Property test: values already at 2dp survive parsing exactly"""
        assert parse_decimal(str(value)) == value


@pytest.mark.unit
class TestParseDate:
    """Tests for date parsing"""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2024-01-15", "2024-01-15"),
            ("15/01/2024", "2024-01-15"),
            ("15-01-2024", "2024-01-15"),
            ("15 Jan 2024", "2024-01-15"),
            ("2024/01/15", "2024-01-15"),
            ("2024-01-15T09:30:00", "2024-01-15"),
            (datetime(2024, 1, 15, 9, 30), "2024-01-15"),
            (date(2024, 1, 15), "2024-01-15"),
            (45306, "2024-01-15"),
            ("45306", "2024-01-15"),
        ],
    )
    def test_parse_date(self, raw, expected):
        assert parse_date(raw) == expected

    def test_blank_is_none(self):
        assert parse_date(None) is None
        assert parse_date("  ") is None

    def test_text_that_is_not_a_date_raises(self):
        with pytest.raises(CoercionError) as exc_info:
            parse_date("next tuesday")
        assert "next tuesday" in str(exc_info.value)

    def test_serial_out_of_range_raises(self):
        with pytest.raises(CoercionError):
            excel_serial_to_date(0)
        with pytest.raises(CoercionError):
            parse_date(3_000_000)

    def test_excel_epoch(self):
        assert excel_serial_to_date(1) == date(1899, 12, 31)
        assert excel_serial_to_date(60.75) == date(1900, 2, 28)


@pytest.mark.unit
class TestCoerceAndRestore:
    """Tests for kind dispatch and JSON restoration"""

    def test_coerce_dispatches_on_kind(self):
        assert coerce(FieldKind.STRING, " x ") == "x"
        assert coerce(FieldKind.INTEGER, "5") == 5
        assert coerce(FieldKind.DECIMAL, "5") == Decimal("5.00")
        assert coerce(FieldKind.DATE, "01/02/2024") == "2024-02-01"

    def test_decimals_serialise_as_strings(self):
        assert to_json_value(Decimal("4.25")) == "4.25"
        assert to_json_value(3) == 3
        assert to_json_value(None) is None

    def test_restore_value(self):
        assert restore_value(FieldKind.DECIMAL, "4.25") == Decimal("4.25")
        assert restore_value(FieldKind.INTEGER, 7) == 7
        assert restore_value(FieldKind.DATE, "2024-01-15") == "2024-01-15"
        assert restore_value(FieldKind.DECIMAL, None) is None
