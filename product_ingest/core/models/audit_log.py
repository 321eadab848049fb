"""
AuditEntry model representing one insert or update of a canonical product.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .product import utc_now


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class AuditEntry(BaseModel):
    """
    Immutable history record of a canonical product change.

    The product is referenced by identifier value only, so history stays
    valid if the product later changes.

    Attributes:
        history_id: Auto-increment primary key
        product_id: Which product changed
        product_name: Display name at the time of the change
        batch_id: Batch whose reconciliation produced the change
        change_type: INSERT or UPDATE
        old_price: Price/rate before the change (None for inserts)
        new_price: Price/rate after the change
        old_withdrawn_date: Withdrawal date before the change
        new_withdrawn_date: Withdrawal date after the change
        changes: Every compared field that changed, as {"from": .., "to": ..}
        changed_by: Actor that ran the reconciliation
        changed_at: When the change was committed
    """

    history_id: int | None = None
    product_id: str
    product_name: str | None = None
    batch_id: str | None = None
    change_type: ChangeType
    old_price: Decimal | None = None
    new_price: Decimal | None = None
    old_withdrawn_date: str | None = None
    new_withdrawn_date: str | None = None
    changes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    changed_by: str
    changed_at: datetime = Field(default_factory=utc_now)

    class Config:
        json_schema_extra = {
            "example": {
                "history_id": 1,
                "product_id": "LN-0001",
                "product_name": "Two Year Fixed",
                "batch_id": "6f1c2a57-3a43-4d0f-9d43-2f1f0d5cf0a1",
                "change_type": "UPDATE",
                "old_price": "4.25",
                "new_price": "4.10",
                "old_withdrawn_date": None,
                "new_withdrawn_date": "2025-03-31",
                "changes": {"Pricing": {"from": "4.25", "to": "4.10"}},
                "changed_by": "pricing.team",
            }
        }
