"""Content library items that can be bought one by one.

The library itself (media, categories, authoring) lives elsewhere; this
module only reads what a purchase needs: whether the item is premium and
its price.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from src.courses.models import ensure_utc_aware


CONTENT_ITEMS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_items (
    id UUID PRIMARY KEY,
    title TEXT,
    is_premium BOOLEAN,
    price DECIMAL,
    currency TEXT,
    created_at TIMESTAMP
)
"""

CONTENT_TABLES_CQL = [
    CONTENT_ITEMS_TABLE_CQL,
]


@dataclass
class ContentItem:
    id: UUID
    title: str
    is_premium: bool = False
    price: Decimal = Decimal(0)
    currency: str = "INR"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_purchasable(self) -> bool:
        """Free items (not premium, or priced at zero) are never sold."""
        return self.is_premium and self.price > 0

    @classmethod
    def from_row(cls, row: Any) -> "ContentItem":
        return cls(
            id=row.id,
            title=row.title or "",
            is_premium=bool(row.is_premium),
            price=row.price if row.price is not None else Decimal(0),
            currency=row.currency or "INR",
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
        )
