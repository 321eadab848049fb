"""
Rule engine for orchestrating validation rules on product records.

The rule engine builds validators from rule configurations, applies them to
records in order, and reports the first failing rule's message as the row's
error text.
"""

from typing import Any

from product_ingest.core.models import ProductRecord, ValidationResult
from product_ingest.core.validators import (
    BaseValidator,
    ComparisonValidator,
    RangeValidator,
    RequiredFieldValidator,
    ValidationError,
)


class RuleEngine:
    """
    Orchestrates validation rules on product records.

    Rules are evaluated in list order; the list order is the precedence used
    to pick the error text of a failing row.
    """

    VALIDATOR_REGISTRY = {
        "required_field": RequiredFieldValidator,
        "range": RangeValidator,
        "comparison": ComparisonValidator,
    }

    def __init__(self, rules: list[dict[str, Any]], identifier_column: str):
        """
        Initialize the rule engine with validation rules.

        Args:
            rules: List of rule configurations, each containing:
                   - rule_name: str
                   - rule_type: str (required_field, range, comparison)
                   - field_name: str
                   - parameters: Dict[str, Any] (optional)
                   - severity: str (error or warning)
                   - enabled: bool (default True)
            identifier_column: Column name the record identifier is exposed
                   under, so rules can address it like any attribute
        """
        self.rules = rules
        self.identifier_column = identifier_column
        self.validators: list[tuple[str, str, BaseValidator]] = []
        self._build_validators()

    def _build_validators(self) -> None:
        """Build validator instances from rule configurations."""
        for rule in self.rules:
            if not rule.get("enabled", True):
                continue

            rule_name = rule["rule_name"]
            rule_type = rule["rule_type"]
            field_name = rule["field_name"]
            parameters = rule.get("parameters", {})
            severity = rule.get("severity", "error")

            validator_class = self.VALIDATOR_REGISTRY.get(rule_type)
            if not validator_class:
                raise ValueError(f"Unknown rule type: {rule_type}")

            try:
                validator = validator_class(field_name, parameters)
            except ValueError as e:
                raise ValueError(f"Failed to create validator for rule '{rule_name}': {e}") from e
            self.validators.append((rule_name, severity, validator))

    def payload_for(self, record: ProductRecord) -> dict[str, Any]:
        payload: dict[str, Any] = dict(record.attributes)
        payload[self.identifier_column] = record.product_id
        return payload

    def validate_record(self, record: ProductRecord) -> ValidationResult:
        """
        Validate a product record against all rules.

        Args:
            record: The ProductRecord to validate

        Returns:
            ValidationResult with the first failing rule's message as
            error_message
        """
        failed_rules = []
        warnings = []
        error_message = None

        payload = self.payload_for(record)

        for rule_name, severity, validator in self.validators:
            value = payload.get(validator.field_name)

            try:
                validator.validate(value, payload)
            except ValidationError as e:
                if severity == "error":
                    failed_rules.append(rule_name)
                    if error_message is None:
                        error_message = e.message
                else:
                    warnings.append(rule_name)

        return ValidationResult(
            product_id=record.product_id,
            row_number=record.row_number,
            passed=not failed_rules,
            failed_rules=failed_rules,
            warnings=warnings,
            error_message=error_message,
        )

    def validate_batch(self, records: list[ProductRecord]) -> list[ValidationResult]:
        return [self.validate_record(record) for record in records]

    def describe_rules(self) -> list[dict[str, Any]]:
        """
        Human readable catalog of the active rules, in precedence order.

        Returns:
            List of {rule_name, rule_type, field_name, severity, description}
        """
        return [
            {
                "rule_name": rule_name,
                "rule_type": validator.rule_type,
                "field_name": validator.field_name,
                "severity": severity,
                "description": validator.describe(),
            }
            for rule_name, severity, validator in self.validators
        ]

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of loaded rules.

        Returns:
            Dictionary with rule counts and types
        """
        return {
            "total_rules": len(self.validators),
            "rules_by_type": self._count_by_type(),
            "rules_by_severity": self._count_by_severity(),
        }

    def _count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for _, _, validator in self.validators:
            rule_type = validator.rule_type
            counts[rule_type] = counts.get(rule_type, 0) + 1
        return counts

    def _count_by_severity(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for _, severity, _ in self.validators:
            counts[severity] = counts.get(severity, 0) + 1
        return counts
