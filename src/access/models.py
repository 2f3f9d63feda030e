"""Subscription model and access decision types.

Cassandra table definitions for:
- subscriptions: one row per user, rewritten with ``IF version = ?``
"""

import calendar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from src.courses.models import ensure_utc_aware


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    LIFETIME = "lifetime"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class AccessReason(str, Enum):
    """Why access to a course was granted."""

    ADMIN_ROLE = "admin_role"
    FREE_COURSE = "free_course"
    COURSE_PAYMENT = "course_payment"
    SUBSCRIPTION = "subscription"


SUBSCRIPTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.subscriptions (
    user_id UUID PRIMARY KEY,
    tier TEXT,
    status TEXT,
    started_at TIMESTAMP,
    ends_at TIMESTAMP,
    applied_payments SET<TEXT>,
    version INT
)
"""

ACCESS_TABLES_CQL = [
    SUBSCRIPTIONS_TABLE_CQL,
]


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of the month."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


@dataclass
class Subscription:
    """A user's subscription.

    Attributes:
        ends_at: End of the paid period, None for lifetime
        applied_payments: Gateway correlation ids already used to extend it
    """

    user_id: UUID
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    started_at: datetime | None = None
    ends_at: datetime | None = None
    applied_payments: set[str] = field(default_factory=set)
    version: int = 0

    def is_active(self, now: datetime | None = None) -> bool:
        """Active status, a paying tier and not past its end date."""
        now = now or datetime.now(UTC)
        if self.status != SubscriptionStatus.ACTIVE:
            return False
        if self.tier == SubscriptionTier.FREE:
            return False
        return self.ends_at is None or self.ends_at > now

    def qualifies_for(self, tiers: tuple[str, ...], now: datetime | None = None) -> bool:
        return self.is_active(now) and self.tier.value in tiers

    @classmethod
    def from_row(cls, row: Any) -> "Subscription":
        """Create Subscription instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            tier=SubscriptionTier(row.tier or SubscriptionTier.FREE.value),
            status=SubscriptionStatus(row.status or SubscriptionStatus.INACTIVE.value),
            started_at=ensure_utc_aware(row.started_at),
            ends_at=ensure_utc_aware(row.ends_at),
            applied_payments=set(row.applied_payments or ()),
            version=row.version or 0,
        )

    def __repr__(self) -> str:
        return (
            f"<Subscription user={self.user_id} {self.tier.value} "
            f"{self.status.value} until={self.ends_at}>"
        )


@dataclass(frozen=True)
class AccessDecision:
    has_access: bool
    reason: AccessReason | None = None
    requires_payment: bool = False
