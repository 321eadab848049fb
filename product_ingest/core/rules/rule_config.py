"""
Rule configuration management.

Loads validation rules from YAML files, builds rule configurations
programmatically, and derives the default rule set from a catalog schema.
"""

from pathlib import Path
from typing import Any

import yaml

from product_ingest.core.schema import CatalogSchema, FieldRole

MISSING_IDENTIFIER_MESSAGE = "Missing or empty ProductID"


class RuleConfigLoader:
    """
    Loads validation rules from YAML configuration files.

    Two layouts are accepted. Rules grouped per field:
    ```yaml
    rules:
      Pricing:
        - type: required_field
        - type: range
          params:
            min: 0
            max: 100
    ```

    or a flat list, where list order is the evaluation order:
    ```yaml
    rules:
      - field: ProductID
        type: required_field
        params:
          message: Missing or empty ProductID
      - field: Pricing
        type: range
        params: {min: 0, max: 100}
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the rule config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Rule configuration file not found: {config_path}")

    def load_rules(self) -> list[dict[str, Any]]:
        """
        Load and parse validation rules from YAML file.

        Returns:
            List of rule dictionaries suitable for RuleEngine

        Raises:
            ValueError: If YAML is invalid or missing required fields
        """
        with open(self.config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if not config or "rules" not in config:
            raise ValueError("Configuration file must contain 'rules' section")

        field_rules = config["rules"]
        rules = []

        if isinstance(field_rules, list):
            for idx, rule_def in enumerate(field_rules):
                if not isinstance(rule_def, dict) or "field" not in rule_def:
                    raise ValueError(f"Rule #{idx} must be a mapping with a 'field' key")
                rules.append(self._parse_rule(rule_def["field"], rule_def, idx))
            return rules

        if not isinstance(field_rules, dict):
            raise ValueError("'rules' must be a mapping of field names or a list of rules")

        for field_name, field_rule_list in field_rules.items():
            if not isinstance(field_rule_list, list):
                raise ValueError(f"Rules for field '{field_name}' must be a list")

            for idx, rule_def in enumerate(field_rule_list):
                rules.append(self._parse_rule(field_name, rule_def, idx))

        return rules

    def _parse_rule(self, field_name: str, rule_def: dict[str, Any], idx: int) -> dict[str, Any]:
        """
        Parse a single rule definition.

        Args:
            field_name: The field this rule applies to
            rule_def: The rule definition from YAML
            idx: Index of this rule (for naming)

        Returns:
            Parsed rule dictionary

        Raises:
            ValueError: If rule definition is invalid
        """
        if "type" not in rule_def:
            raise ValueError(f"Rule for field '{field_name}' is missing 'type'")

        rule_type = rule_def["type"]
        rule_name = rule_def.get("name", f"{field_name}_{rule_type}_{idx}")
        parameters = rule_def.get("params", rule_def.get("parameters", {})) or {}

        severity = rule_def.get("severity", "error")
        if severity not in ("error", "warning"):
            raise ValueError(f"Invalid severity '{severity}' for rule '{rule_name}'. Must be 'error' or 'warning'")

        return {
            "rule_name": rule_name,
            "rule_type": rule_type,
            "field_name": field_name,
            "parameters": parameters,
            "severity": severity,
            "enabled": rule_def.get("enabled", True),
        }


class RuleConfigBuilder:
    """
    Programmatically build rule configurations (for default rules and tests).
    """

    def __init__(self):
        self.rules: list[dict[str, Any]] = []

    def _add(self, rule_name: str, rule_type: str, field_name: str, parameters: dict[str, Any]) -> "RuleConfigBuilder":
        self.rules.append({
            "rule_name": rule_name,
            "rule_type": rule_type,
            "field_name": field_name,
            "parameters": parameters,
            "severity": "error",
            "enabled": True,
        })
        return self

    def add_required_field(self, field_name: str, message: str | None = None) -> "RuleConfigBuilder":
        """Add a required field rule."""
        params = {"message": message} if message else {}
        return self._add(f"{field_name}_required", "required_field", field_name, params)

    def add_range(
        self,
        field_name: str,
        min_value: float | None = None,
        max_value: float | None = None,
        min_exclusive: float | None = None,
        rule_name: str | None = None,
    ) -> "RuleConfigBuilder":
        """Add a range validation rule."""
        params: dict[str, Any] = {}
        if min_value is not None:
            params["min"] = min_value
        if max_value is not None:
            params["max"] = max_value
        if min_exclusive is not None:
            params["min_exclusive"] = min_exclusive
        return self._add(rule_name or f"{field_name}_range", "range", field_name, params)

    def add_percentage(self, field_name: str) -> "RuleConfigBuilder":
        return self.add_range(field_name, min_value=0, max_value=100, rule_name=f"{field_name}_percentage")

    def add_positive(self, field_name: str) -> "RuleConfigBuilder":
        return self.add_range(field_name, min_exclusive=0, rule_name=f"{field_name}_positive")

    def add_non_negative(self, field_name: str) -> "RuleConfigBuilder":
        return self.add_range(field_name, min_value=0, rule_name=f"{field_name}_non_negative")

    def add_comparison(self, min_field: str, max_field: str) -> "RuleConfigBuilder":
        """Add a min <= max rule over two columns of the same record."""
        return self._add(f"{min_field}_le_{max_field}", "comparison", min_field, {"max_field": max_field})

    def build(self) -> list[dict[str, Any]]:
        return self.rules


def build_default_rules(schema: CatalogSchema) -> list[dict[str, Any]]:
    """
    Derive the default ordered rule set from a catalog schema.

    Order: identifier present, required attributes, percentage bounds,
    positive terms, non-negative fees and amounts, min/max pairs.
    """
    builder = RuleConfigBuilder()
    builder.add_required_field(schema.identifier_column, message=MISSING_IDENTIFIER_MESSAGE)

    for spec in schema.required_fields():
        builder.add_required_field(spec.name)
    for spec in schema.fields_with_role(FieldRole.PERCENTAGE):
        builder.add_percentage(spec.name)
    for spec in schema.fields_with_role(FieldRole.TERM):
        builder.add_positive(spec.name)
    for spec in schema.fields_with_role(FieldRole.FEE):
        builder.add_non_negative(spec.name)
    for pair in schema.bounded_pairs:
        builder.add_comparison(pair.min_field, pair.max_field)

    return builder.build()
