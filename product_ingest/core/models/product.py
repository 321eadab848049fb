"""
Product models: the parsed/staged record shape and the canonical catalog entry.
"""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field

# Attribute values after coercion: trimmed strings, integers, 2dp decimals
# and ISO calendar dates (stored as "YYYY-MM-DD" strings).
AttributeValue = str | int | Decimal | None


def utc_now() -> datetime:
    """Timezone-aware current time used for every persisted timestamp."""
    return datetime.now(timezone.utc)


class ProductRecord(BaseModel):
    """
    One typed product row produced by the record parser.

    Attributes:
        product_id: Catalog identifier (required, max 50 characters)
        attributes: Ordered mapping of column name to coerced value; every
            attribute is independently nullable
        row_number: Sheet row the record came from (header is row 1)
    """

    product_id: str = Field(..., min_length=1, max_length=50)
    attributes: dict[str, AttributeValue] = Field(default_factory=dict)
    row_number: int | None = None

    def get(self, field_name: str) -> AttributeValue:
        """Return an attribute value, or None when the column is absent."""
        return self.attributes.get(field_name)

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "LN-0001",
                "attributes": {
                    "ProductName": "Two Year Fixed",
                    "LoanStartDate": "2025-01-01",
                    "WithdrawnDate": None,
                    "Pricing": "4.25",
                },
                "row_number": 2,
            }
        }


class CanonicalProduct(BaseModel):
    """
    Current state of a product in the system of record.

    Attributes:
        product_id: Catalog identifier (primary key)
        attributes: Current attribute set
        is_active: Whether the product is offered
        created_at: When the product was first inserted
        created_by: Actor that inserted the product
        updated_at: Last reconciliation update
        updated_by: Actor of the last update
    """

    product_id: str = Field(..., min_length=1, max_length=50)
    attributes: dict[str, AttributeValue] = Field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    created_by: str
    updated_at: datetime | None = None
    updated_by: str | None = None

    def get(self, field_name: str) -> AttributeValue:
        return self.attributes.get(field_name)
