"""Pydantic schemas for payments.

Request and response models for:
- Checkout orders (course, content item, subscription) and the public key
- Verification callback and webhook results
- Payment history
- Admin payment overview and refunds
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from src.progress.schemas import EnrollmentResponse

from .gateway import GatewayOrder
from .models import (
    ApplicationOutcome,
    Payment,
    PaymentApplication,
    PaymentStatus,
    PaymentType,
    SubscriptionDuration,
)
from .service import PaymentOverview


# ==============================================================================
# Request Schemas
# ==============================================================================


class CreateCourseOrderRequest(BaseModel):
    course_id: UUID = Field(..., description="Course to buy")


class CreateContentOrderRequest(BaseModel):
    content_id: UUID = Field(..., description="Content item to buy")


class CreateSubscriptionOrderRequest(BaseModel):
    plan: str = Field("premium", description="Subscription plan")
    duration: SubscriptionDuration = Field(
        SubscriptionDuration.MONTHLY, description="Billing period"
    )


class VerifyPaymentRequest(BaseModel):
    """Checkout callback fields returned by the gateway to the client."""

    payment_id: UUID
    gateway_order_id: str = Field(..., min_length=1)
    gateway_payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


# ==============================================================================
# Response Schemas
# ==============================================================================


class PaymentResponse(BaseModel):
    """Payment response (gateway signature is never returned)."""

    id: UUID
    user_id: UUID
    payment_type: PaymentType
    status: PaymentStatus
    amount: Decimal
    currency: str
    item_type: str | None = None
    item_id: UUID | None = None
    plan: str | None = None
    duration: SubscriptionDuration | None = None
    gateway_order_id: str
    gateway_payment_id: str | None = None
    failure_reason: str | None = None
    refund_reason: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    refunded_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Payment) -> "PaymentResponse":
        """Create response from entity."""
        return cls(
            id=entity.id,
            user_id=entity.user_id,
            payment_type=entity.payment_type,
            status=entity.status,
            amount=entity.amount,
            currency=entity.currency,
            item_type=entity.item_type,
            item_id=entity.item_id,
            plan=entity.plan,
            duration=entity.duration,
            gateway_order_id=entity.gateway_order_id,
            gateway_payment_id=entity.gateway_payment_id,
            failure_reason=entity.failure_reason,
            refund_reason=entity.refund_reason,
            created_at=entity.created_at,
            completed_at=entity.completed_at,
            failed_at=entity.failed_at,
            refunded_at=entity.refunded_at,
        )


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]
    total: int


class OrderResponse(BaseModel):
    """Data the client needs to open the gateway checkout."""

    payment: PaymentResponse
    order_id: str
    amount: Decimal
    currency: str
    key_id: str | None = None

    @classmethod
    def from_entities(cls, payment: Payment, order: GatewayOrder) -> "OrderResponse":
        return cls(
            payment=PaymentResponse.from_entity(payment),
            order_id=order.order_id,
            amount=order.amount,
            currency=order.currency,
            key_id=order.key_id,
        )


class PaymentApplicationResponse(BaseModel):
    """What a verified payment resulted in."""

    correlation_id: str
    outcome: ApplicationOutcome
    enrollment_id: UUID | None = None
    subscription_ends_at: datetime | None = None
    enrollment: EnrollmentResponse | None = None

    @classmethod
    def from_entity(cls, entity: PaymentApplication) -> "PaymentApplicationResponse":
        return cls(
            correlation_id=entity.correlation_id,
            outcome=entity.outcome,
            enrollment_id=entity.enrollment_id,
            subscription_ends_at=entity.subscription_ends_at,
            enrollment=EnrollmentResponse.from_entity(entity.enrollment)
            if entity.enrollment
            else None,
        )


class VerifyPaymentResponse(BaseModel):
    payment: PaymentResponse
    application: PaymentApplicationResponse


class WebhookResponse(BaseModel):
    received: bool = True
    outcome: ApplicationOutcome | None = None


class CheckoutKeyResponse(BaseModel):
    key_id: str | None = Field(None, description="Public gateway key id")


# ==============================================================================
# Admin Schemas
# ==============================================================================


class StatusTotalResponse(BaseModel):
    status: PaymentStatus
    count: int
    total_amount: Decimal


class PaymentOverviewResponse(BaseModel):
    """All users' payments, one page, with per-status totals."""

    items: list[PaymentResponse]
    total: int
    page: int
    pages: int
    statistics: list[StatusTotalResponse]

    @classmethod
    def from_overview(cls, overview: PaymentOverview) -> "PaymentOverviewResponse":
        return cls(
            items=[PaymentResponse.from_entity(p) for p in overview.items],
            total=overview.total,
            page=overview.page,
            pages=overview.pages,
            statistics=[
                StatusTotalResponse(
                    status=s.status, count=s.count, total_amount=s.total_amount
                )
                for s in overview.statistics
            ],
        )
