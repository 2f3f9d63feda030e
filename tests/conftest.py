"""Shared fixtures: in-memory repositories, fake gateway/Redis and an app client."""

import copy
import os
import tempfile
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from decimal import Decimal
from fnmatch import fnmatch
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "stillpoint-test-logs"))

import pytest
from fastapi.testclient import TestClient

from src.access.models import Subscription
from src.access.service import AccessEvaluator
from src.auth.permissions import UserRole
from src.auth.schemas import AuthenticatedUser
from src.auth.security import create_access_token
from src.config.settings import Settings
from src.content.models import ContentItem
from src.courses.models import (
    ContentType,
    Course,
    CourseRating,
    CourseStatus,
    Lesson,
    LessonContent,
    Module,
    Pricing,
    PricingType,
    Quiz,
    QuizQuestion,
)
from src.courses.service import CatalogService
from src.payments.bridge import PaymentBridge
from src.payments.gateway import GatewayOrder
from src.payments.models import Payment, PaymentApplication, PaymentStatus
from src.payments.service import PaymentService
from src.progress.models import Enrollment, enrollment_id_for
from src.progress.service import EnrollmentService


# ==============================================================================
# In-memory repositories
# ==============================================================================


class InMemoryCourseRepository:
    def __init__(self) -> None:
        self.courses: dict[UUID, Course] = {}
        self.ratings: dict[tuple[UUID, UUID], CourseRating] = {}
        self.enrollment_counts: dict[UUID, int] = {}

    async def get(self, course_id: UUID) -> Course | None:
        course = self.courses.get(course_id)
        return copy.deepcopy(course) if course else None

    async def save(self, course: Course) -> None:
        self.courses[course.id] = copy.deepcopy(course)

    async def upsert_rating(self, rating: CourseRating) -> None:
        self.ratings[(rating.course_id, rating.user_id)] = rating

    async def list_ratings(self, course_id: UUID) -> list[CourseRating]:
        return [r for (cid, _), r in self.ratings.items() if cid == course_id]

    async def update_rating_summary(
        self, course_id: UUID, average: Decimal, count: int
    ) -> None:
        course = self.courses[course_id]
        course.rating_average = average
        course.rating_count = count

    async def increment_enrollment_count(self, course_id: UUID) -> None:
        self.enrollment_counts[course_id] = self.enrollment_counts.get(course_id, 0) + 1

    async def get_enrollment_count(self, course_id: UUID) -> int:
        return self.enrollment_counts.get(course_id, 0)


class InMemoryEnrollmentRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, Enrollment] = {}
        self.cas_failures = 0

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        row = self.rows.get(enrollment_id)
        return copy.deepcopy(row) if row else None

    async def get_for_user_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        return await self.get(enrollment_id_for(user_id, course_id))

    async def list_for_user(self, user_id: UUID) -> list[Enrollment]:
        rows = [copy.deepcopy(e) for e in self.rows.values() if e.user_id == user_id]
        return sorted(rows, key=lambda e: e.enrolled_at, reverse=True)

    async def create(self, enrollment: Enrollment) -> bool:
        if enrollment.id in self.rows:
            return False
        self.rows[enrollment.id] = copy.deepcopy(enrollment)
        return True

    async def compare_and_set(
        self, enrollment: Enrollment, expected_version: int
    ) -> bool:
        if self.cas_failures > 0:
            self.cas_failures -= 1
            return False
        stored = self.rows.get(enrollment.id)
        if stored is None or stored.version != expected_version:
            return False
        self.rows[enrollment.id] = copy.deepcopy(enrollment)
        return True


class InMemoryPaymentRepository:
    def __init__(self) -> None:
        self.payments: dict[UUID, Payment] = {}
        self.applications: dict[str, PaymentApplication] = {}

    async def get(self, payment_id: UUID) -> Payment | None:
        payment = self.payments.get(payment_id)
        return copy.deepcopy(payment) if payment else None

    async def get_by_order(self, gateway_order_id: str) -> Payment | None:
        for payment in self.payments.values():
            if payment.gateway_order_id == gateway_order_id:
                return copy.deepcopy(payment)
        return None

    async def list_for_user(self, user_id: UUID) -> list[Payment]:
        rows = [copy.deepcopy(p) for p in self.payments.values() if p.user_id == user_id]
        return sorted(rows, key=lambda p: p.created_at, reverse=True)

    async def list_recent(self, limit: int) -> list[Payment]:
        rows = [copy.deepcopy(p) for p in self.payments.values()][:limit]
        return sorted(rows, key=lambda p: p.created_at, reverse=True)

    async def create(self, payment: Payment) -> None:
        self.payments[payment.id] = copy.deepcopy(payment)

    def _transition(self, payment_id: UUID, expected: PaymentStatus) -> Payment | None:
        payment = self.payments.get(payment_id)
        if payment is None or payment.status != expected:
            return None
        return payment

    async def mark_completed(
        self,
        payment_id: UUID,
        gateway_payment_id: str,
        gateway_signature: str | None,
        at: datetime,
    ) -> bool:
        payment = self._transition(payment_id, PaymentStatus.PENDING)
        if payment is None:
            return False
        payment.status = PaymentStatus.COMPLETED
        payment.gateway_payment_id = gateway_payment_id
        payment.gateway_signature = gateway_signature
        payment.completed_at = at
        return True

    async def mark_failed(self, payment_id: UUID, reason: str, at: datetime) -> bool:
        payment = self._transition(payment_id, PaymentStatus.PENDING)
        if payment is None:
            return False
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason
        payment.failed_at = at
        return True

    async def mark_refunded(
        self, payment_id: UUID, reason: str | None, at: datetime
    ) -> bool:
        payment = self._transition(payment_id, PaymentStatus.COMPLETED)
        if payment is None:
            return False
        payment.status = PaymentStatus.REFUNDED
        payment.refund_reason = reason
        payment.refunded_at = at
        return True

    async def get_application(self, correlation_id: str) -> PaymentApplication | None:
        application = self.applications.get(correlation_id)
        return copy.deepcopy(application) if application else None

    async def record_application(self, application: PaymentApplication) -> bool:
        if application.correlation_id in self.applications:
            return False
        stored = copy.deepcopy(application)
        stored.enrollment = None
        self.applications[application.correlation_id] = stored
        return True


class InMemoryContentRepository:
    def __init__(self) -> None:
        self.items: dict[UUID, ContentItem] = {}

    async def get(self, content_id: UUID) -> ContentItem | None:
        return self.items.get(content_id)


class InMemorySubscriptionRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, Subscription] = {}

    async def get(self, user_id: UUID) -> Subscription | None:
        row = self.rows.get(user_id)
        return copy.deepcopy(row) if row else None

    async def create(self, subscription: Subscription) -> bool:
        if subscription.user_id in self.rows:
            return False
        self.rows[subscription.user_id] = copy.deepcopy(subscription)
        return True

    async def compare_and_set(
        self, subscription: Subscription, expected_version: int
    ) -> bool:
        stored = self.rows.get(subscription.user_id)
        if stored is None or stored.version != expected_version:
            return False
        self.rows[subscription.user_id] = copy.deepcopy(subscription)
        return True


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the access cache."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def scan_iter(self, match: str = "*"):
        for key in list(self.store):
            if fnmatch(key, match):
                yield key


class FakeGateway:
    """Payment gateway double: verdicts are set by the test."""

    def __init__(self) -> None:
        self.orders: list[GatewayOrder] = []
        self.signature_valid = True
        self.webhook_valid = True
        self.error: Exception | None = None

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        if self.error:
            raise self.error
        order = GatewayOrder(
            order_id=f"order_{len(self.orders) + 1}",
            amount=amount,
            currency=currency,
            receipt=receipt,
            key_id="rzp_test_key",
        )
        self.orders.append(order)
        return order

    async def verify_signature(
        self, order_id: str, payment_id: str, signature: str
    ) -> bool:
        if self.error:
            raise self.error
        return self.signature_valid

    async def verify_webhook(self, body: bytes, signature: str) -> bool:
        return self.webhook_valid


# ==============================================================================
# Course builders
# ==============================================================================


def build_quiz(passing_score: int | None = 50) -> Quiz:
    return Quiz(
        questions=[
            QuizQuestion(
                question="Where does attention rest?",
                options=["Breath", "Phone"],
                correct_answer=0,
            ),
            QuizQuestion(
                question="Mind wanders, then?",
                options=["Quit", "Return"],
                correct_answer=1,
                explanation="Notice and return.",
            ),
        ],
        passing_score=passing_score,
    )


def build_lesson(
    content_type: ContentType,
    *,
    order: int = 1,
    duration: int = 0,
    is_preview: bool = False,
    quiz: Quiz | None = None,
) -> Lesson:
    return Lesson(
        id=uuid4(),
        title=f"{content_type.value} lesson {order}",
        order=order,
        duration=duration,
        is_preview=is_preview,
        content=LessonContent(type=content_type, quiz=quiz),
    )


def build_course(
    pricing_type: PricingType = PricingType.FREE,
    *,
    amount: Decimal = Decimal("999.00"),
    status: CourseStatus = CourseStatus.PUBLISHED,
    modules: list[Module] | None = None,
) -> Course:
    """Two modules, four lessons: preview video, text | audio, quiz."""
    if modules is None:
        modules = [
            Module(
                id=uuid4(),
                title="Arriving",
                order=1,
                lessons=[
                    build_lesson(ContentType.VIDEO, order=1, duration=100, is_preview=True),
                    build_lesson(ContentType.TEXT, order=2),
                ],
            ),
            Module(
                id=uuid4(),
                title="Practice",
                order=2,
                lessons=[
                    build_lesson(ContentType.AUDIO, order=1, duration=60),
                    build_lesson(ContentType.QUIZ, order=2, quiz=build_quiz()),
                ],
            ),
        ]
    return Course(
        id=uuid4(),
        title=f"{pricing_type.value} course",
        modules=modules,
        status=status,
        pricing=Pricing(
            type=pricing_type,
            amount=Decimal(0) if pricing_type == PricingType.FREE else amount,
        ),
    )


@pytest.fixture
def course_factory() -> Callable[..., Course]:
    return build_course


@pytest.fixture
def lesson_factory() -> Callable[..., Lesson]:
    return build_lesson


@pytest.fixture
def quiz_factory() -> Callable[..., Quiz]:
    return build_quiz


# ==============================================================================
# Principals
# ==============================================================================


@pytest.fixture
def student() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), email="student@example.com", role=UserRole.USER)


@pytest.fixture
def other_student() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), email="other@example.com", role=UserRole.USER)


@pytest.fixture
def admin() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), email="admin@example.com", role=UserRole.ADMIN)


# ==============================================================================
# Repositories and services
# ==============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="testing",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="rzp_test_secret",
        razorpay_webhook_secret="whsec_test",
    )


@pytest.fixture
def course_repo() -> InMemoryCourseRepository:
    return InMemoryCourseRepository()


@pytest.fixture
def enrollment_repo() -> InMemoryEnrollmentRepository:
    return InMemoryEnrollmentRepository()


@pytest.fixture
def payment_repo() -> InMemoryPaymentRepository:
    return InMemoryPaymentRepository()


@pytest.fixture
def content_repo() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture
def subscription_repo() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def access_evaluator(
    enrollment_repo, payment_repo, subscription_repo, fake_redis
) -> AccessEvaluator:
    return AccessEvaluator(
        enrollment_repo, payment_repo, subscription_repo, redis=fake_redis
    )


@pytest.fixture
def bridge(
    payment_repo, enrollment_repo, course_repo, subscription_repo, access_evaluator
) -> PaymentBridge:
    return PaymentBridge(
        payment_repo, enrollment_repo, course_repo, subscription_repo, access_evaluator
    )


@pytest.fixture
def enrollment_service(
    enrollment_repo, course_repo, payment_repo, access_evaluator, bridge
) -> EnrollmentService:
    return EnrollmentService(
        enrollment_repo,
        course_repo,
        payment_repo,
        access_evaluator,
        bridge,
        default_passing_score=70,
        attempt_history_limit=3,
        max_retries=3,
    )


@pytest.fixture
def payment_service(
    payment_repo, course_repo, gateway, bridge, access_evaluator, settings, content_repo
) -> PaymentService:
    return PaymentService(
        payment_repo,
        course_repo,
        gateway,
        bridge,
        access_evaluator,
        settings,
        content_repo,
    )


@pytest.fixture
def catalog_service(course_repo, enrollment_repo, access_evaluator) -> CatalogService:
    return CatalogService(course_repo, enrollment_repo, access_evaluator)


@pytest.fixture
def free_course(course_repo) -> Course:
    course = build_course(PricingType.FREE)
    course_repo.courses[course.id] = course
    return course


@pytest.fixture
def paid_course(course_repo) -> Course:
    course = build_course(PricingType.PAID)
    course_repo.courses[course.id] = course
    return course


@pytest.fixture
def premium_course(course_repo) -> Course:
    course = build_course(PricingType.PREMIUM)
    course_repo.courses[course.id] = course
    return course


@pytest.fixture
def now() -> datetime:
    return datetime.now(UTC)


# ==============================================================================
# HTTP client
# ==============================================================================


@pytest.fixture
def client(
    access_evaluator,
    bridge,
    catalog_service,
    enrollment_service,
    payment_service,
) -> Iterator[TestClient]:
    """App with in-memory services and no database/Redis startup."""
    from src.main import create_app

    app = create_app(use_lifespan=False)
    app.state.access_evaluator = access_evaluator
    app.state.payment_bridge = bridge
    app.state.catalog_service = catalog_service
    app.state.enrollment_service = enrollment_service
    app.state.payment_service = payment_service

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[AuthenticatedUser], dict[str, str]]:
    def _headers(user: AuthenticatedUser) -> dict[str, Any]:
        token = create_access_token(user.id, user.role.value, email=user.email)
        return {"Authorization": f"Bearer {token}"}

    return _headers
