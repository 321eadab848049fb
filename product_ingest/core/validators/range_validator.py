"""
RangeValidator - validates numeric values are within a specified range.
"""

from typing import Any

from .base_validator import BaseValidator, format_number, to_decimal


class RangeValidator(BaseValidator):
    """
    Validates that a numeric field is within a specified range.

    Parameters:
    - min: Minimum value (inclusive)
    - max: Maximum value (inclusive)
    - min_exclusive: Minimum value (exclusive)
    - max_exclusive: Maximum value (exclusive)

    Bounds are compared as Decimal so 2dp prices are never subject to float
    rounding.
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        self.min_value = to_decimal(self.parameters.get("min"))
        self.max_value = to_decimal(self.parameters.get("max"))
        self.min_exclusive = to_decimal(self.parameters.get("min_exclusive"))
        self.max_exclusive = to_decimal(self.parameters.get("max_exclusive"))

        if all(v is None for v in [self.min_value, self.max_value, self.min_exclusive, self.max_exclusive]):
            raise ValueError("RangeValidator requires at least one of: min, max, min_exclusive, max_exclusive")

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        """
        Validate that the value is within the specified range.

        Args:
            value: The field value to validate
            record: The entire record

        Raises:
            ValidationError: If value is outside the range or not numeric
        """
        # Null is the required_field rule's concern
        if value is None:
            return

        number = to_decimal(value) if not isinstance(value, str) else None
        if number is None:
            raise self.fail(f"{self.field_name} must be numeric, got {type(value).__name__}")

        if (
            (self.min_value is not None and number < self.min_value)
            or (self.min_exclusive is not None and number <= self.min_exclusive)
            or (self.max_value is not None and number > self.max_value)
            or (self.max_exclusive is not None and number >= self.max_exclusive)
        ):
            raise self.fail(self.describe())

    def describe(self) -> str:
        name = self.field_name
        if self.min_value is not None and self.max_value is not None:
            return f"{name} must be between {format_number(self.min_value)} and {format_number(self.max_value)}"
        if self.min_exclusive is not None and self.max_value is None and self.max_exclusive is None:
            if self.min_exclusive == 0:
                return f"{name} must be positive"
            return f"{name} must be greater than {format_number(self.min_exclusive)}"
        if self.min_value is not None and self.max_value is None and self.max_exclusive is None:
            if self.min_value == 0:
                return f"{name} cannot be negative"
            return f"{name} cannot be less than {format_number(self.min_value)}"

        parts = []
        if self.min_value is not None:
            parts.append(f"at least {format_number(self.min_value)}")
        if self.min_exclusive is not None:
            parts.append(f"greater than {format_number(self.min_exclusive)}")
        if self.max_value is not None:
            parts.append(f"at most {format_number(self.max_value)}")
        if self.max_exclusive is not None:
            parts.append(f"less than {format_number(self.max_exclusive)}")
        return f"{name} must be " + " and ".join(parts)

    @property
    def rule_type(self) -> str:
        return "range"
