"""
Catalog schema definitions.

A catalog schema names the identifier column, every attribute column with its
kind, and the validation roles that drive the default rule set.
"""

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class FieldKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"


class FieldRole(str, Enum):
    """Validation role of an attribute in the default rule set."""

    PERCENTAGE = "percentage"
    TERM = "term"
    FEE = "fee"


class FieldSpec(BaseModel):
    """
    One attribute column of a catalog.

    Attributes:
        name: Column header as it appears in the spreadsheet
        kind: Coercion applied by the record parser
        required: Whether validation rejects rows where the value is null
        max_length: Parser rejects longer strings (STRING only)
        role: Optional validation role (percentage, term, fee)
    """

    name: str = Field(..., min_length=1)
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    max_length: int | None = Field(None, gt=0)
    role: FieldRole | None = None


class BoundedPair(BaseModel):
    """A min/max column pair where min must not exceed max."""

    min_field: str
    max_field: str


class CatalogSchema(BaseModel):
    """
    Column list, kinds and validation roles for one product catalog.

    Attributes:
        name: Schema name used for lookup (CATALOG_SCHEMA)
        identifier_column: Header of the product identifier column
        identifier_max_length: Longest identifier accepted by the parser
        fields: Ordered attribute columns
        bounded_pairs: Min/max pairs checked by validation
        price_field: Attribute reported as old/new price in audit entries
        withdrawal_field: Attribute reported as old/new withdrawal date
        name_field: Attribute used as the product's display name
        display_fields: Extra attributes shown in product listings
        compared_fields: Attributes diffed during reconciliation; every
            attribute when left empty
    """

    name: str
    identifier_column: str
    identifier_max_length: int = 50
    fields: list[FieldSpec]
    bounded_pairs: list[BoundedPair] = Field(default_factory=list)
    price_field: str | None = None
    withdrawal_field: str | None = None
    name_field: str | None = None
    display_fields: list[str] = Field(default_factory=list)
    compared_fields: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_field_references(self) -> "CatalogSchema":
        names = {spec.name for spec in self.fields}
        if len(names) != len(self.fields):
            raise ValueError(f"Schema '{self.name}' declares a column twice")
        if self.identifier_column in names:
            raise ValueError(f"Identifier column '{self.identifier_column}' cannot also be an attribute")

        referenced = [self.price_field, self.withdrawal_field, self.name_field]
        referenced += self.display_fields + self.compared_fields
        for pair in self.bounded_pairs:
            referenced += [pair.min_field, pair.max_field]

        unknown = sorted({ref for ref in referenced if ref and ref not in names})
        if unknown:
            raise ValueError(f"Schema '{self.name}' references unknown columns: {', '.join(unknown)}")
        return self

    @property
    def field_names(self) -> list[str]:
        return [spec.name for spec in self.fields]

    def get_field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def fields_with_role(self, role: FieldRole) -> list[FieldSpec]:
        return [spec for spec in self.fields if spec.role == role]

    def required_fields(self) -> list[FieldSpec]:
        return [spec for spec in self.fields if spec.required]

    def diff_fields(self) -> list[str]:
        """Attributes compared during reconciliation, in column order."""
        return list(self.compared_fields) if self.compared_fields else self.field_names

    def kind_of(self, name: str) -> FieldKind | None:
        spec = self.get_field(name)
        return spec.kind if spec else None


_REGISTRY: dict[str, CatalogSchema] = {}


def register_schema(schema: CatalogSchema) -> CatalogSchema:
    _REGISTRY[schema.name] = schema
    return schema


def get_schema(name: str) -> CatalogSchema:
    """
    Look up a registered catalog schema.

    Args:
        name: Schema name (e.g. "loan", "mortgage")

    Returns:
        The registered CatalogSchema

    Raises:
        KeyError: If no schema is registered under that name
    """
    try:
        return _REGISTRY[name]
    except KeyError:
        available = ", ".join(sorted(_REGISTRY)) or "none"
        raise KeyError(f"Unknown catalog schema '{name}' (available: {available})") from None


def available_schemas() -> list[str]:
    return sorted(_REGISTRY)
