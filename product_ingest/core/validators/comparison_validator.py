"""
ComparisonValidator - checks a minimum column does not exceed its maximum column.
"""

from typing import Any

from .base_validator import BaseValidator, to_decimal


class ComparisonValidator(BaseValidator):
    """
    Validates that field_name <= parameters["max_field"] within one record.

    The rule is skipped when either side is null.
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.max_field = self.parameters.get("max_field")
        if not self.max_field:
            raise ValueError("ComparisonValidator requires a 'max_field' parameter")

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        low = to_decimal(value)
        high = to_decimal(record.get(self.max_field))
        if low is None or high is None:
            return

        if low > high:
            raise self.fail(f"{self.field_name} cannot be greater than {self.max_field}")

    def describe(self) -> str:
        return f"{self.field_name} cannot be greater than {self.max_field}"

    @property
    def rule_type(self) -> str:
        return "comparison"
