"""
RequiredFieldValidator - ensures a field is present and not null/empty.
"""

from typing import Any

from .base_validator import BaseValidator


class RequiredFieldValidator(BaseValidator):
    """
    Validates that a required field is present and not null/empty.

    Fails if:
    - Field is missing from the record
    - Field value is None
    - Field value is a blank string
    """

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        """
        Validate that the field is present and not null/empty.

        Args:
            value: The field value to validate
            record: The entire record

        Raises:
            ValidationError: If field is missing, None, or blank
        """
        if self.field_name not in record or value is None:
            raise self.fail(f"{self.field_name} is required")

        if isinstance(value, str) and value.strip() == "":
            raise self.fail(f"{self.field_name} is required")

    def describe(self) -> str:
        return f"{self.field_name} must be present"

    @property
    def rule_type(self) -> str:
        return "required_field"
