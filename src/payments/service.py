"""Payment service.

Business logic for:
- Creating checkout orders for courses, content items and subscriptions
- Verifying client callbacks and gateway webhooks
- Payment history
- Admin payment overview and refunds

Status changes are guarded transitions (``IF status = ?``); every path that
ends in a completed payment hands it to the PaymentBridge.
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import orjson
import structlog

from src.core.errors import (
    ConflictError,
    ExternalVerificationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)

from .models import (
    Payment,
    PaymentApplication,
    PaymentStatus,
    PaymentType,
    SubscriptionDuration,
    create_content_payment,
    create_course_payment,
    create_subscription_payment,
)


if TYPE_CHECKING:
    from src.access.service import AccessEvaluator
    from src.auth.schemas import AuthenticatedUser
    from src.config.settings import Settings
    from src.content.repository import ContentRepository
    from src.courses.repository import CourseRepository

    from .bridge import PaymentBridge
    from .gateway import GatewayOrder, PaymentGateway
    from .repository import PaymentRepository


logger = structlog.get_logger(__name__)

HANDLED_WEBHOOK_EVENTS = frozenset({"payment.captured", "order.paid"})


def _new_receipt() -> str:
    return f"rcpt_{uuid4().hex[:24]}"


@dataclass
class StatusTotal:
    status: PaymentStatus
    count: int = 0
    total_amount: Decimal = field(default_factory=Decimal)


@dataclass
class PaymentOverview:
    items: list[Payment]
    total: int
    page: int
    pages: int
    statistics: list[StatusTotal]


class PaymentService:
    """Checkout, verification and refund of payments."""

    def __init__(
        self,
        payments: "PaymentRepository",
        courses: "CourseRepository",
        gateway: "PaymentGateway",
        bridge: "PaymentBridge",
        access: "AccessEvaluator",
        settings: "Settings",
        content: "ContentRepository",
    ):
        self.payments = payments
        self.courses = courses
        self.content = content
        self.gateway = gateway
        self.bridge = bridge
        self.access = access
        self.settings = settings

    # ==========================================================================
    # Checkout
    # ==========================================================================

    async def create_course_order(
        self, user: "AuthenticatedUser", course_id: UUID
    ) -> tuple[Payment, "GatewayOrder"]:
        """Create a gateway order and a pending payment for a course.

        Raises:
            NotFoundError: If the course does not exist or is not published
            ValidationError: If the course is free
            ExternalVerificationError: If the gateway cannot create the order
        """
        course = await self.courses.get(course_id)
        if course is None or not course.is_published:
            msg = f"Course {course_id} not found"
            raise NotFoundError(msg)
        if course.is_free:
            msg = "Free courses do not require payment"
            raise ValidationError(msg)

        amount = course.pricing.effective_price
        currency = course.pricing.currency or self.settings.payment_currency
        order = await self.gateway.create_order(
            amount,
            currency,
            _new_receipt(),
            notes={"user_id": str(user.id), "course_id": str(course.id)},
        )
        payment = create_course_payment(
            user.id, course.id, amount, currency, order.order_id
        )
        await self.payments.create(payment)

        logger.info(
            "payment_order_created",
            payment_id=str(payment.id),
            payment_type=payment.payment_type.value,
            course_id=str(course.id),
            amount=str(amount),
        )
        return payment, order

    async def create_content_order(
        self, user: "AuthenticatedUser", content_id: UUID
    ) -> tuple[Payment, "GatewayOrder"]:
        """Create a gateway order and a pending payment for one content item.

        Raises:
            NotFoundError: If the content item does not exist
            ValidationError: If the item is free
        """
        item = await self.content.get(content_id)
        if item is None:
            msg = f"Content {content_id} not found"
            raise NotFoundError(msg)
        if not item.is_purchasable:
            msg = "This content is free"
            raise ValidationError(msg)

        currency = item.currency or self.settings.payment_currency
        order = await self.gateway.create_order(
            item.price,
            currency,
            _new_receipt(),
            notes={"user_id": str(user.id), "content_id": str(item.id)},
        )
        payment = create_content_payment(
            user.id, item.id, item.price, currency, order.order_id
        )
        await self.payments.create(payment)

        logger.info(
            "payment_order_created",
            payment_id=str(payment.id),
            payment_type=payment.payment_type.value,
            content_id=str(item.id),
            amount=str(item.price),
        )
        return payment, order

    async def create_subscription_order(
        self,
        user: "AuthenticatedUser",
        plan: str,
        duration: SubscriptionDuration,
    ) -> tuple[Payment, "GatewayOrder"]:
        """Create a gateway order and a pending payment for a subscription.

        Raises:
            ValidationError: If the plan/duration has no price
        """
        price = self.settings.subscription_price(plan, duration.value)
        if price is None:
            msg = f"Unknown subscription plan: {plan}/{duration.value}"
            raise ValidationError(msg)

        amount = Decimal(price)
        currency = self.settings.payment_currency
        order = await self.gateway.create_order(
            amount,
            currency,
            _new_receipt(),
            notes={"user_id": str(user.id), "plan": plan, "duration": duration.value},
        )
        payment = create_subscription_payment(
            user.id, plan, duration, amount, currency, order.order_id
        )
        await self.payments.create(payment)

        logger.info(
            "payment_order_created",
            payment_id=str(payment.id),
            payment_type=payment.payment_type.value,
            plan=plan,
            duration=duration.value,
            amount=str(amount),
        )
        return payment, order

    # ==========================================================================
    # Verification
    # ==========================================================================

    async def verify_payment(
        self,
        user: "AuthenticatedUser",
        payment_id: UUID,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> tuple[Payment, PaymentApplication]:
        """Verify a checkout callback and apply the payment.

        A payment that is already completed is applied again (idempotent) so
        client retries are safe.

        Raises:
            NotFoundError: If the payment does not exist
            ForbiddenError: If the payment belongs to another user
            ValidationError: If the order id does not match or the payment
                already failed or was refunded
            ExternalVerificationError: If the signature is rejected (payment
                becomes failed) or the verifier errors (payment stays pending)
        """
        payment = await self._get_owned_payment(user, payment_id)
        if payment.gateway_order_id != gateway_order_id:
            msg = "Order id does not match the payment"
            raise ValidationError(msg)

        if payment.status == PaymentStatus.PENDING:
            verified = await self.gateway.verify_signature(
                gateway_order_id, gateway_payment_id, signature
            )
            if not verified:
                await self._fail(payment, "signature_mismatch")
                msg = "Payment signature verification failed"
                raise ExternalVerificationError(msg)

        payment = await self._complete(payment, gateway_payment_id, signature)
        application = await self.bridge.on_payment_verified(payment)
        return payment, application

    async def handle_webhook(
        self, body: bytes, signature: str
    ) -> PaymentApplication | None:
        """Handle a gateway webhook delivery.

        Returns:
            The application for handled events, None for ignored ones

        Raises:
            ExternalVerificationError: If the webhook signature is invalid
            ValidationError: If the body is not a valid event
        """
        if not await self.gateway.verify_webhook(body, signature):
            msg = "Webhook signature verification failed"
            raise ExternalVerificationError(msg)

        try:
            event: dict[str, Any] = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            msg = "Webhook body is not valid JSON"
            raise ValidationError(msg) from e

        event_type = event.get("event")
        if event_type not in HANDLED_WEBHOOK_EVENTS:
            logger.info("payment_webhook_ignored", event_type=event_type)
            return None

        payload = event.get("payload") or {}
        entity = (payload.get("payment") or {}).get("entity") or {}
        order_id = entity.get("order_id") or (
            (payload.get("order") or {}).get("entity") or {}
        ).get("id")
        if not order_id:
            msg = "Webhook event has no order id"
            raise ValidationError(msg)

        payment = await self.payments.get_by_order(order_id)
        if payment is None:
            logger.warning("payment_webhook_unknown_order", order_id=order_id)
            return None

        if payment.status in (PaymentStatus.FAILED, PaymentStatus.REFUNDED):
            logger.info(
                "payment_webhook_ignored",
                event_type=event_type,
                payment_id=str(payment.id),
                status=payment.status.value,
            )
            return None

        payment = await self._complete(payment, entity.get("id") or "", None)
        return await self.bridge.on_payment_verified(payment)

    async def _complete(
        self,
        payment: Payment,
        gateway_payment_id: str,
        signature: str | None,
    ) -> Payment:
        """Move a verified payment to completed (no-op when already there)."""
        if payment.status == PaymentStatus.COMPLETED:
            return payment
        if payment.status != PaymentStatus.PENDING:
            msg = f"Payment is {payment.status.value}"
            raise ValidationError(msg)

        now = datetime.now(UTC)
        applied = await self.payments.mark_completed(
            payment.id, gateway_payment_id, signature, now
        )
        if not applied:
            # Lost the race to another verification path; trust the stored state
            current = await self.payments.get(payment.id)
            if current is None or current.status != PaymentStatus.COMPLETED:
                status = current.status.value if current else "missing"
                msg = f"Payment is {status}"
                raise ValidationError(msg)
            return current

        payment.status = PaymentStatus.COMPLETED
        payment.gateway_payment_id = gateway_payment_id
        payment.gateway_signature = signature
        payment.completed_at = now
        logger.info(
            "payment_verified",
            payment_id=str(payment.id),
            payment_type=payment.payment_type.value,
        )
        return payment

    async def _fail(self, payment: Payment, reason: str) -> None:
        now = datetime.now(UTC)
        if await self.payments.mark_failed(payment.id, reason, now):
            payment.status = PaymentStatus.FAILED
            payment.failure_reason = reason
            payment.failed_at = now
        logger.warning(
            "payment_verification_failed",
            payment_id=str(payment.id),
            reason=reason,
        )

    # ==========================================================================
    # History
    # ==========================================================================

    async def list_payments(
        self,
        user: "AuthenticatedUser",
        status: PaymentStatus | None = None,
        payment_type: PaymentType | None = None,
    ) -> list[Payment]:
        payments = await self.payments.list_for_user(user.id)
        if status is not None:
            payments = [p for p in payments if p.status == status]
        if payment_type is not None:
            payments = [p for p in payments if p.payment_type == payment_type]
        return payments

    async def get_payment(self, user: "AuthenticatedUser", payment_id: UUID) -> Payment:
        return await self._get_owned_payment(user, payment_id)

    async def _get_owned_payment(
        self, user: "AuthenticatedUser", payment_id: UUID
    ) -> Payment:
        payment = await self.payments.get(payment_id)
        if payment is None:
            msg = f"Payment {payment_id} not found"
            raise NotFoundError(msg)
        if payment.user_id != user.id and not user.is_admin:
            msg = "Not your payment"
            raise ForbiddenError(msg)
        return payment

    @property
    def checkout_key_id(self) -> str | None:
        """Public gateway key the client needs to open the checkout."""
        return self.settings.razorpay_key_id

    # ==========================================================================
    # Admin
    # ==========================================================================

    async def list_all_payments(
        self,
        admin: "AuthenticatedUser",
        status: PaymentStatus | None = None,
        payment_type: PaymentType | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> PaymentOverview:
        """Payments of every user, newest first, with per-status totals.

        Totals cover every payment matching the filters, not only the page.

        Raises:
            ForbiddenError: If the caller is not an admin
        """
        if not admin.is_admin:
            msg = "Admin role required"
            raise ForbiddenError(msg)

        payments = await self.payments.list_recent(
            self.settings.admin_payment_scan_limit
        )
        if status is not None:
            payments = [p for p in payments if p.status == status]
        if payment_type is not None:
            payments = [p for p in payments if p.payment_type == payment_type]

        totals: dict[PaymentStatus, StatusTotal] = {}
        for payment in payments:
            entry = totals.setdefault(payment.status, StatusTotal(payment.status))
            entry.count += 1
            entry.total_amount += payment.amount

        start = (page - 1) * limit
        return PaymentOverview(
            items=payments[start : start + limit],
            total=len(payments),
            page=page,
            pages=math.ceil(len(payments) / limit),
            statistics=list(totals.values()),
        )

    async def refund(
        self,
        admin: "AuthenticatedUser",
        payment_id: UUID,
        reason: str | None = None,
    ) -> Payment:
        """Refund a completed payment and revoke the access it granted.

        The enrollment and its progress are kept.

        Raises:
            ForbiddenError: If the caller is not an admin
            NotFoundError: If the payment does not exist
            ValidationError: If the payment is not completed
            ConflictError: If the payment changed status concurrently
        """
        if not admin.is_admin:
            msg = "Admin role required"
            raise ForbiddenError(msg)

        payment = await self.payments.get(payment_id)
        if payment is None:
            msg = f"Payment {payment_id} not found"
            raise NotFoundError(msg)
        if not payment.can_transition(PaymentStatus.REFUNDED):
            msg = f"Cannot refund a {payment.status.value} payment"
            raise ValidationError(msg)

        now = datetime.now(UTC)
        if not await self.payments.mark_refunded(payment.id, reason, now):
            msg = "Payment status changed concurrently"
            raise ConflictError(msg)

        payment.status = PaymentStatus.REFUNDED
        payment.refund_reason = reason
        payment.refunded_at = now

        course_id = payment.item_id if payment.payment_type == PaymentType.COURSE else None
        await self.access.invalidate(payment.user_id, course_id)

        logger.info(
            "payment_refunded",
            payment_id=str(payment.id),
            admin_id=str(admin.id),
            payment_type=payment.payment_type.value,
        )
        return payment
