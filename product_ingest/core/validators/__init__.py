"""
Validation rule implementations.

Provides validators for required fields, numeric ranges and min/max column
comparisons.
"""

from .base_validator import BaseValidator, ValidationError
from .comparison_validator import ComparisonValidator
from .range_validator import RangeValidator
from .required_field_validator import RequiredFieldValidator

__all__ = [
    "BaseValidator",
    "ValidationError",
    "RequiredFieldValidator",
    "RangeValidator",
    "ComparisonValidator",
]
