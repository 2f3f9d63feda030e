"""Course access evaluation.

Decides whether a user may see a course's non-preview content:

1. ADMIN role: always
2. Free course: always
3. Premium course: active subscription of a qualifying tier
4. Paid or premium course: the user is enrolled and holds a completed
   payment for this course, normally the one linked to the enrollment
   (refunded payments do not count)

Decisions for paid/premium courses are cached in Redis per (user, course)
and invalidated whenever a payment is applied or refunded.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.core.logging import get_logger
from src.core.redis import access_cache_key
from src.courses.models import Course, PricingType
from src.progress.models import Enrollment

from .models import AccessDecision, AccessReason


if TYPE_CHECKING:
    from redis.asyncio import Redis

    from src.auth.schemas import AuthenticatedUser
    from src.payments.repository import PaymentRepository
    from src.progress.repository import EnrollmentRepository

    from .repository import SubscriptionRepository


logger = get_logger(__name__)

_NO_ACCESS = "none"


class AccessEvaluator:
    """Read-only access decisions for (user, course) pairs."""

    def __init__(
        self,
        enrollments: "EnrollmentRepository",
        payments: "PaymentRepository",
        subscriptions: "SubscriptionRepository",
        redis: "Redis | None" = None,
        cache_ttl_seconds: int = 300,
    ):
        self.enrollments = enrollments
        self.payments = payments
        self.subscriptions = subscriptions
        self.redis = redis
        self.cache_ttl_seconds = cache_ttl_seconds

    async def has_access(
        self,
        user: "AuthenticatedUser",
        course: Course,
        *,
        enrollment: Enrollment | None = None,
        use_cache: bool = True,
    ) -> bool:
        """Check if user has access to the course's non-preview content.

        Args:
            user: Authenticated caller
            course: Course to check
            enrollment: The caller's enrollment when already loaded
            use_cache: Set False where a stale decision could double-grant
        """
        decision = await self.check_access(
            user, course, enrollment=enrollment, use_cache=use_cache
        )
        return decision.has_access

    async def check_access(
        self,
        user: "AuthenticatedUser",
        course: Course,
        *,
        enrollment: Enrollment | None = None,
        use_cache: bool = True,
    ) -> AccessDecision:
        """Access decision with the reason it was granted."""
        if user.is_admin:
            return AccessDecision(has_access=True, reason=AccessReason.ADMIN_ROLE)
        if course.is_free:
            return AccessDecision(has_access=True, reason=AccessReason.FREE_COURSE)

        cache_key = access_cache_key(user.id, course.id)
        if use_cache and self.redis:
            cached = await self.redis.get(cache_key)
            if cached is not None:
                if cached == _NO_ACCESS:
                    return AccessDecision(has_access=False, requires_payment=True)
                return AccessDecision(has_access=True, reason=AccessReason(cached))

        decision = await self._evaluate(user.id, course, enrollment)

        if self.redis:
            await self.redis.setex(
                cache_key,
                self.cache_ttl_seconds,
                decision.reason.value if decision.reason else _NO_ACCESS,
            )
        return decision

    async def _evaluate(
        self, user_id: UUID, course: Course, enrollment: Enrollment | None
    ) -> AccessDecision:
        if course.pricing.type == PricingType.PREMIUM:
            subscription = await self.subscriptions.get(user_id)
            if subscription and subscription.qualifies_for(
                course.pricing.subscription_tiers, datetime.now(UTC)
            ):
                return AccessDecision(has_access=True, reason=AccessReason.SUBSCRIPTION)

        if await self._has_completed_course_payment(user_id, course, enrollment):
            return AccessDecision(has_access=True, reason=AccessReason.COURSE_PAYMENT)

        return AccessDecision(has_access=False, requires_payment=True)

    async def _has_completed_course_payment(
        self, user_id: UUID, course: Course, enrollment: Enrollment | None
    ) -> bool:
        if enrollment is None:
            enrollment = await self.enrollments.get_for_user_course(user_id, course.id)
        if enrollment is None:
            return False

        if enrollment.payment_id is not None:
            linked = await self.payments.get(enrollment.payment_id)
            if (
                linked is not None
                and linked.is_completed
                and linked.is_for_course(user_id, course.id)
            ):
                return True

        # Linked payment missing or refunded: any other completed purchase
        # of this course still counts
        return any(
            payment.is_completed and payment.is_for_course(user_id, course.id)
            for payment in await self.payments.list_for_user(user_id)
        )

    async def invalidate(self, user_id: UUID, course_id: UUID | None = None) -> None:
        """Drop cached decisions for one course, or all courses of a user."""
        if not self.redis:
            return
        if course_id is not None:
            await self.redis.delete(access_cache_key(user_id, course_id))
            return

        keys = [key async for key in self.redis.scan_iter(match=f"access:{user_id}:*")]
        if keys:
            await self.redis.delete(*keys)
        logger.debug("access_cache_invalidated", user_id=str(user_id), keys=len(keys))
