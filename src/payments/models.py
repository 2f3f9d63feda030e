"""Payment models.

A payment is created ``pending`` when a checkout order is opened at the
gateway and only moves forward:

    pending -> completed   (gateway signature verified)
    pending -> failed      (gateway rejected the payment)
    completed -> refunded  (explicit admin action)

Cassandra table definitions for:
- payments: main table
- payments_by_order: lookup by gateway order id (the correlation key)
- payments_by_user: payment history per user
- payment_applications: one row per applied payment (bridge idempotency)
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from src.courses.models import ensure_utc_aware


class PaymentType(str, Enum):
    COURSE = "course"
    CONTENT = "content"
    SUBSCRIPTION = "subscription"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class SubscriptionDuration(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


class ApplicationOutcome(str, Enum):
    """What the payment bridge did with a verified payment."""

    ENROLLMENT_CREATED = "enrollment_created"
    PAYMENT_RELINKED = "payment_relinked"
    ACCESS_ALREADY_GRANTED = "access_already_granted"
    SUBSCRIPTION_EXTENDED = "subscription_extended"
    RECORDED = "recorded"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PAYMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.payments (
    id UUID PRIMARY KEY,
    user_id UUID,
    payment_type TEXT,
    status TEXT,
    amount DECIMAL,
    currency TEXT,
    item_type TEXT,
    item_id UUID,
    plan TEXT,
    duration TEXT,
    gateway_order_id TEXT,
    gateway_payment_id TEXT,
    gateway_signature TEXT,
    failure_reason TEXT,
    refund_reason TEXT,
    created_at TIMESTAMP,
    completed_at TIMESTAMP,
    failed_at TIMESTAMP,
    refunded_at TIMESTAMP
)
"""

PAYMENTS_BY_ORDER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.payments_by_order (
    gateway_order_id TEXT PRIMARY KEY,
    payment_id UUID
)
"""

PAYMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.payments_by_user (
    user_id UUID,
    created_at TIMESTAMP,
    payment_id UUID,
    PRIMARY KEY (user_id, created_at, payment_id)
) WITH CLUSTERING ORDER BY (created_at DESC, payment_id ASC)
"""

# Written IF NOT EXISTS after a verified payment took effect
PAYMENT_APPLICATIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.payment_applications (
    correlation_id TEXT PRIMARY KEY,
    payment_id UUID,
    user_id UUID,
    payment_type TEXT,
    outcome TEXT,
    enrollment_id UUID,
    subscription_ends_at TIMESTAMP,
    applied_at TIMESTAMP
)
"""

PAYMENTS_TABLES_CQL = [
    PAYMENTS_TABLE_CQL,
    PAYMENTS_BY_ORDER_TABLE_CQL,
    PAYMENTS_BY_USER_TABLE_CQL,
    PAYMENT_APPLICATIONS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Payment:
    """Payment entity.

    Attributes:
        item_type / item_id: What was bought (course id for course payments,
            None for subscriptions)
        gateway_order_id: Unique gateway correlation id
        plan / duration: Subscription plan bought (subscriptions only)
    """

    user_id: UUID
    payment_type: PaymentType
    amount: Decimal
    gateway_order_id: str
    id: UUID = field(default_factory=uuid4)
    status: PaymentStatus = PaymentStatus.PENDING
    currency: str = "INR"
    item_type: str | None = None
    item_id: UUID | None = None
    plan: str | None = None
    duration: SubscriptionDuration | None = None
    gateway_payment_id: str | None = None
    gateway_signature: str | None = None
    failure_reason: str | None = None
    refund_reason: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    refunded_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    def can_transition(self, target: PaymentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def is_for_course(self, user_id: UUID, course_id: UUID) -> bool:
        """Whether this is the given user's payment for the given course."""
        return (
            self.payment_type == PaymentType.COURSE
            and self.user_id == user_id
            and self.item_id == course_id
        )

    @classmethod
    def from_row(cls, row: Any) -> "Payment":
        """Create Payment instance from Cassandra row."""
        return cls(
            id=row.id,
            user_id=row.user_id,
            payment_type=PaymentType(row.payment_type),
            status=PaymentStatus(row.status),
            amount=row.amount or Decimal(0),
            currency=row.currency or "INR",
            item_type=row.item_type,
            item_id=row.item_id,
            plan=row.plan,
            duration=SubscriptionDuration(row.duration) if row.duration else None,
            gateway_order_id=row.gateway_order_id,
            gateway_payment_id=row.gateway_payment_id,
            gateway_signature=row.gateway_signature,
            failure_reason=row.failure_reason,
            refund_reason=row.refund_reason,
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            completed_at=ensure_utc_aware(row.completed_at),
            failed_at=ensure_utc_aware(row.failed_at),
            refunded_at=ensure_utc_aware(row.refunded_at),
        )

    def __repr__(self) -> str:
        return (
            f"<Payment {self.id} {self.payment_type.value} "
            f"{self.status.value} {self.amount} {self.currency}>"
        )


@dataclass
class PaymentApplication:
    """Record of a verified payment having been applied.

    ``enrollment`` is populated by the bridge for course payments and is not
    persisted.
    """

    correlation_id: str
    payment_id: UUID
    user_id: UUID
    payment_type: PaymentType
    outcome: ApplicationOutcome
    enrollment_id: UUID | None = None
    subscription_ends_at: datetime | None = None
    applied_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    enrollment: Any = None

    @classmethod
    def from_row(cls, row: Any) -> "PaymentApplication":
        return cls(
            correlation_id=row.correlation_id,
            payment_id=row.payment_id,
            user_id=row.user_id,
            payment_type=PaymentType(row.payment_type),
            outcome=ApplicationOutcome(row.outcome),
            enrollment_id=row.enrollment_id,
            subscription_ends_at=ensure_utc_aware(row.subscription_ends_at),
            applied_at=ensure_utc_aware(row.applied_at) or datetime.now(UTC),
        )


def create_course_payment(
    user_id: UUID,
    course_id: UUID,
    amount: Decimal,
    currency: str,
    gateway_order_id: str,
) -> Payment:
    """Factory for a pending course purchase."""
    return Payment(
        user_id=user_id,
        payment_type=PaymentType.COURSE,
        amount=amount,
        currency=currency,
        item_type="course",
        item_id=course_id,
        gateway_order_id=gateway_order_id,
    )


def create_subscription_payment(
    user_id: UUID,
    plan: str,
    duration: SubscriptionDuration,
    amount: Decimal,
    currency: str,
    gateway_order_id: str,
) -> Payment:
    """Factory for a pending subscription purchase."""
    return Payment(
        user_id=user_id,
        payment_type=PaymentType.SUBSCRIPTION,
        amount=amount,
        currency=currency,
        item_type="subscription",
        plan=plan,
        duration=duration,
        gateway_order_id=gateway_order_id,
    )


def create_content_payment(
    user_id: UUID,
    content_id: UUID,
    amount: Decimal,
    currency: str,
    gateway_order_id: str,
) -> Payment:
    """Factory for a pending single content item purchase."""
    return Payment(
        user_id=user_id,
        payment_type=PaymentType.CONTENT,
        amount=amount,
        currency=currency,
        item_type="content",
        item_id=content_id,
        gateway_order_id=gateway_order_id,
    )
