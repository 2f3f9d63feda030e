"""Payment-to-enrollment bridge.

Turns a verified (completed) payment into its effect exactly once per
gateway correlation id:

- course payment: create the enrollment linked to the payment, or link
  the payment to an existing enrollment that holds no completed purchase
- subscription payment: extend the subscription by the purchased period
- content payment: recorded only

Every effect is idempotent on its own (``IF NOT EXISTS`` on the
deterministic enrollment id, applied-payment set on the subscription), and
the ``payment_applications`` row written afterwards short-circuits
redeliveries such as webhook retries.
"""

import copy
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from src.access.models import (
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
    add_months,
)
from src.core.errors import ConflictError, NotFoundError, ValidationError
from src.core.logging import get_logger
from src.progress.ledger import recompute
from src.progress.models import Enrollment, new_enrollment
from src.progress.repository import update_enrollment

from .models import (
    ApplicationOutcome,
    Payment,
    PaymentApplication,
    PaymentType,
    SubscriptionDuration,
)


if TYPE_CHECKING:
    from src.access.repository import SubscriptionRepository
    from src.access.service import AccessEvaluator
    from src.courses.repository import CourseRepository
    from src.progress.repository import EnrollmentRepository

    from .repository import PaymentRepository


logger = get_logger(__name__)

DURATION_MONTHS = {
    SubscriptionDuration.MONTHLY: 1,
    SubscriptionDuration.YEARLY: 12,
}


class PaymentBridge:
    """Applies verified payments to enrollments and subscriptions."""

    def __init__(
        self,
        payments: "PaymentRepository",
        enrollments: "EnrollmentRepository",
        courses: "CourseRepository",
        subscriptions: "SubscriptionRepository",
        access: "AccessEvaluator",
        max_retries: int = 5,
    ):
        self.payments = payments
        self.enrollments = enrollments
        self.courses = courses
        self.subscriptions = subscriptions
        self.access = access
        self.max_retries = max_retries

    async def on_payment_verified(self, payment: Payment) -> PaymentApplication:
        """Apply a completed payment once per gateway correlation id.

        Returns:
            The application record; ``enrollment`` is set for course payments

        Raises:
            ValidationError: If the payment is not completed
            NotFoundError: If the purchased course does not exist
        """
        if not payment.is_completed:
            msg = f"Payment {payment.id} is {payment.status.value}, not completed"
            raise ValidationError(msg)

        correlation_id = payment.gateway_order_id
        existing = await self.payments.get_application(correlation_id)
        if existing is not None:
            logger.info(
                "payment_application_skipped",
                payment_id=str(payment.id),
                correlation_id=correlation_id,
                outcome=existing.outcome.value,
            )
            if existing.enrollment_id is not None:
                existing.enrollment = await self.enrollments.get(existing.enrollment_id)
            return existing

        now = datetime.now(UTC)
        match payment.payment_type:
            case PaymentType.COURSE:
                application = await self._apply_course_payment(payment, now)
            case PaymentType.SUBSCRIPTION:
                application = await self._apply_subscription_payment(payment, now)
            case _:
                application = self._application(
                    payment, ApplicationOutcome.RECORDED, now
                )

        if not await self.payments.record_application(application):
            # A concurrent delivery recorded it first; effects above were no-ops
            logger.info(
                "payment_application_raced",
                payment_id=str(payment.id),
                correlation_id=correlation_id,
            )

        course_id = payment.item_id if payment.payment_type == PaymentType.COURSE else None
        await self.access.invalidate(payment.user_id, course_id)

        logger.info(
            "payment_applied",
            payment_id=str(payment.id),
            correlation_id=correlation_id,
            payment_type=payment.payment_type.value,
            outcome=application.outcome.value,
        )
        return application

    async def _apply_course_payment(
        self, payment: Payment, now: datetime
    ) -> PaymentApplication:
        if payment.item_id is None:
            msg = f"Payment {payment.id} has no course"
            raise ValidationError(msg)
        course = await self.courses.get(payment.item_id)
        if course is None:
            msg = f"Course {payment.item_id} not found"
            raise NotFoundError(msg)

        enrollment = new_enrollment(
            payment.user_id,
            course.id,
            now=now,
            payment_id=payment.id,
            payment_correlation_id=payment.gateway_order_id,
        )
        recompute(enrollment, course, now)

        if await self.enrollments.create(enrollment):
            await self.courses.increment_enrollment_count(course.id)
            logger.info(
                "enrollment_created",
                enrollment_id=str(enrollment.id),
                user_id=str(payment.user_id),
                course_id=str(course.id),
                source="payment",
            )
            return self._application(
                payment, ApplicationOutcome.ENROLLMENT_CREATED, now, enrollment
            )

        existing = await self.enrollments.get(enrollment.id)
        if existing is None:
            msg = f"Enrollment {enrollment.id} not found"
            raise NotFoundError(msg)

        if existing.payment_correlation_id == payment.gateway_order_id or (
            await self._holds_completed_purchase(existing)
        ):
            return self._application(
                payment, ApplicationOutcome.ACCESS_ALREADY_GRANTED, now, existing
            )

        # No purchase on record (enrolled via subscription) or the linked one
        # was refunded: link the new payment, leave the ledger untouched
        def relink(candidate: Enrollment) -> None:
            candidate.payment_id = payment.id
            candidate.payment_correlation_id = payment.gateway_order_id
            if candidate.access_granted_at is None:
                candidate.access_granted_at = now

        relinked, _ = await update_enrollment(
            self.enrollments, existing, relink, max_retries=self.max_retries
        )
        logger.info(
            "enrollment_payment_relinked",
            enrollment_id=str(relinked.id),
            payment_id=str(payment.id),
        )
        return self._application(
            payment, ApplicationOutcome.PAYMENT_RELINKED, now, relinked
        )

    async def _holds_completed_purchase(self, enrollment: Enrollment) -> bool:
        if enrollment.payment_id is None:
            return False
        linked = await self.payments.get(enrollment.payment_id)
        return (
            linked is not None
            and linked.is_completed
            and linked.is_for_course(enrollment.user_id, enrollment.course_id)
        )

    async def _apply_subscription_payment(
        self, payment: Payment, now: datetime
    ) -> PaymentApplication:
        correlation_id = payment.gateway_order_id
        months = DURATION_MONTHS[payment.duration or SubscriptionDuration.MONTHLY]
        try:
            tier = SubscriptionTier(payment.plan or SubscriptionTier.PREMIUM.value)
        except ValueError:
            tier = SubscriptionTier.PREMIUM

        for _ in range(self.max_retries):
            current = await self.subscriptions.get(payment.user_id)

            if current is None:
                created = Subscription(
                    user_id=payment.user_id,
                    tier=tier,
                    status=SubscriptionStatus.ACTIVE,
                    started_at=now,
                    ends_at=add_months(now, months),
                    applied_payments={correlation_id},
                )
                if await self.subscriptions.create(created):
                    return self._subscription_applied(payment, created, now)
                continue

            if correlation_id in current.applied_payments:
                return self._application(
                    payment,
                    ApplicationOutcome.SUBSCRIPTION_EXTENDED,
                    now,
                    subscription_ends_at=current.ends_at,
                )

            updated = copy.deepcopy(current)
            updated.applied_payments.add(correlation_id)
            updated.version = current.version + 1
            if current.tier != SubscriptionTier.LIFETIME:
                still_running = current.is_active(now) and current.ends_at is not None
                base = current.ends_at if still_running else now
                updated.ends_at = add_months(base, months)
                updated.tier = tier
                updated.status = SubscriptionStatus.ACTIVE
                if not still_running:
                    updated.started_at = now

            if await self.subscriptions.compare_and_set(
                updated, expected_version=current.version
            ):
                return self._subscription_applied(payment, updated, now)

        msg = "Subscription was modified concurrently, please retry"
        raise ConflictError(msg)

    def _subscription_applied(
        self, payment: Payment, subscription: Subscription, now: datetime
    ) -> PaymentApplication:
        logger.info(
            "subscription_extended",
            user_id=str(payment.user_id),
            tier=subscription.tier.value,
            ends_at=subscription.ends_at.isoformat() if subscription.ends_at else None,
        )
        return self._application(
            payment,
            ApplicationOutcome.SUBSCRIPTION_EXTENDED,
            now,
            subscription_ends_at=subscription.ends_at,
        )

    @staticmethod
    def _application(
        payment: Payment,
        outcome: ApplicationOutcome,
        now: datetime,
        enrollment: Enrollment | None = None,
        subscription_ends_at: datetime | None = None,
    ) -> PaymentApplication:
        return PaymentApplication(
            correlation_id=payment.gateway_order_id,
            payment_id=payment.id,
            user_id=payment.user_id,
            payment_type=payment.payment_type,
            outcome=outcome,
            enrollment_id=enrollment.id if enrollment else None,
            subscription_ends_at=subscription_ends_at,
            applied_at=now,
            enrollment=enrollment,
        )
