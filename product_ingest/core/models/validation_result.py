"""
ValidationResult model representing the outcome of validating one staging row (ephemeral).
"""

from pydantic import BaseModel, Field, field_validator


class ValidationResult(BaseModel):
    """
    Outcome of running the rule set over one staged record.

    Not persisted: the validation engine turns it into the row's
    validation_state and validation_errors.

    Attributes:
        product_id: Identifier of the validated record
        row_number: Sheet row of the record
        passed: True when no error-severity rule failed
        failed_rules: Error-severity rules that failed, in rule order
        warnings: Warning-severity rules that failed (do not fail the row)
        error_message: Message of the first failed rule
    """

    product_id: str
    row_number: int | None = None
    passed: bool
    failed_rules: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error_message: str | None = None

    @field_validator("failed_rules")
    @classmethod
    def check_passed_consistency(cls, v, info):
        """Validate that passed=True implies failed_rules is empty."""
        if info.data.get("passed") and len(v) > 0:
            raise ValueError("passed=True but failed_rules is not empty")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "LN-0002",
                "row_number": 3,
                "passed": False,
                "failed_rules": ["Pricing_percentage"],
                "warnings": [],
                "error_message": "Pricing must be between 0 and 100",
            }
        }
