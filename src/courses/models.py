"""Course catalog models.

A course is read-mostly reference data for the enrollment engine. It is
stored as a single Cassandra row whose module/lesson tree is serialized as
JSON, so one read returns the whole ordered structure.

Cassandra table definitions for:
- courses: course document with pricing and rating summary
- course_ratings: one rating per (course, user)
- course_enrollment_counts: enrollment counter per course
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import orjson

from src.core.errors import NotFoundError, ValidationError


class CourseStatus(str, Enum):
    """Course publication status."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class PricingType(str, Enum):
    """How access to a course is obtained."""

    FREE = "free"
    PAID = "paid"  # one-off purchase
    PREMIUM = "premium"  # subscription (or one-off purchase)


class ContentType(str, Enum):
    """Lesson content type."""

    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"
    QUIZ = "quiz"


# Subscription tiers unlocking a premium course unless the course says otherwise
DEFAULT_SUBSCRIPTION_TIERS = ("premium", "lifetime")


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    status TEXT,
    pricing_type TEXT,
    price DECIMAL,
    discount_price DECIMAL,
    currency TEXT,
    subscription_tiers SET<TEXT>,
    modules TEXT,
    rating_average DECIMAL,
    rating_count INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# One row per (course, user): re-rating replaces the previous rating
COURSE_RATINGS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_ratings (
    course_id UUID,
    user_id UUID,
    rating INT,
    review TEXT,
    rated_at TIMESTAMP,
    PRIMARY KEY (course_id, user_id)
)
"""

COURSE_ENROLLMENT_COUNTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_enrollment_counts (
    course_id UUID PRIMARY KEY,
    enrollments COUNTER
)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    COURSE_RATINGS_TABLE_CQL,
    COURSE_ENROLLMENT_COUNTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


def _check_unique_order(items: list[Any], parent: str) -> None:
    seen: set[int] = set()
    for item in items:
        if item.order in seen:
            msg = f"Duplicate order {item.order} in {parent}"
            raise ValidationError(msg)
        seen.add(item.order)


@dataclass
class QuizQuestion:
    question: str
    options: list[str]
    correct_answer: int
    explanation: str | None = None


@dataclass
class Quiz:
    """Quiz definition attached to a quiz lesson.

    ``passing_score`` is None when the author did not set one; the grader
    then falls back to the configured default.
    """

    questions: list[QuizQuestion] = field(default_factory=list)
    passing_score: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Quiz":
        return cls(
            questions=[
                QuizQuestion(
                    question=q["question"],
                    options=list(q.get("options", [])),
                    correct_answer=int(q["correct_answer"]),
                    explanation=q.get("explanation"),
                )
                for q in data.get("questions", [])
            ],
            passing_score=data.get("passing_score"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "questions": [
                {
                    "question": q.question,
                    "options": q.options,
                    "correct_answer": q.correct_answer,
                    "explanation": q.explanation,
                }
                for q in self.questions
            ],
            "passing_score": self.passing_score,
        }


@dataclass
class LessonContent:
    type: ContentType
    url: str | None = None
    text: str | None = None
    quiz: Quiz | None = None


@dataclass
class Lesson:
    """Lesson inside a module.

    Attributes:
        duration: Length in seconds (meaningful for video/audio only)
        is_preview: Preview lessons are visible without access
        order: Position within the module (unique, not necessarily contiguous)
    """

    id: UUID
    title: str
    order: int
    content: LessonContent
    duration: int = 0
    is_preview: bool = False

    @property
    def content_type(self) -> ContentType:
        return self.content.type

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lesson":
        content = data.get("content") or {}
        quiz = content.get("quiz")
        return cls(
            id=UUID(str(data["id"])),
            title=data.get("title", ""),
            order=int(data["order"]),
            duration=int(data.get("duration") or 0),
            is_preview=bool(data.get("is_preview", False)),
            content=LessonContent(
                type=ContentType(content.get("type", ContentType.VIDEO.value)),
                url=content.get("url"),
                text=content.get("text"),
                quiz=Quiz.from_dict(quiz) if quiz is not None else None,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "order": self.order,
            "duration": self.duration,
            "is_preview": self.is_preview,
            "content": {
                "type": self.content.type.value,
                "url": self.content.url,
                "text": self.content.text,
                "quiz": self.content.quiz.to_dict() if self.content.quiz else None,
            },
        }


@dataclass
class Module:
    """Module of a course: an ordered group of lessons."""

    id: UUID
    title: str
    order: int
    lessons: list[Lesson] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_unique_order(self.lessons, f"module {self.id}")
        self.lessons.sort(key=lambda lesson: lesson.order)

    def find_lesson(self, lesson_id: UUID) -> Lesson | None:
        return next((lesson for lesson in self.lessons if lesson.id == lesson_id), None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Module":
        return cls(
            id=UUID(str(data["id"])),
            title=data.get("title", ""),
            order=int(data["order"]),
            lessons=[Lesson.from_dict(lesson) for lesson in data.get("lessons", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "order": self.order,
            "lessons": [lesson.to_dict() for lesson in self.lessons],
        }


@dataclass
class Pricing:
    type: PricingType = PricingType.FREE
    amount: Decimal = Decimal(0)
    currency: str = "INR"
    discount_price: Decimal | None = None
    subscription_tiers: tuple[str, ...] = DEFAULT_SUBSCRIPTION_TIERS

    @property
    def effective_price(self) -> Decimal:
        """Price charged at checkout (discount price when set)."""
        if self.discount_price is not None:
            return self.discount_price
        return self.amount


@dataclass
class Course:
    """Course entity with its full module/lesson tree.

    Modules and lessons are kept sorted by ``order``; duplicate order values
    within one parent are rejected when the course is built.
    """

    id: UUID
    title: str
    modules: list[Module] = field(default_factory=list)
    description: str | None = None
    status: CourseStatus = CourseStatus.PUBLISHED
    pricing: Pricing = field(default_factory=Pricing)
    rating_average: Decimal = Decimal(0)
    rating_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        _check_unique_order(self.modules, f"course {self.id}")
        self.modules.sort(key=lambda module: module.order)

    @property
    def is_published(self) -> bool:
        return self.status == CourseStatus.PUBLISHED

    @property
    def is_free(self) -> bool:
        return self.pricing.type == PricingType.FREE

    def iter_lessons(self) -> Iterator[tuple[Module, Lesson]]:
        """Yield (module, lesson) pairs in traversal order."""
        for module in self.modules:
            for lesson in module.lessons:
                yield module, lesson

    def total_lessons(self) -> int:
        return sum(len(module.lessons) for module in self.modules)

    def preview_lessons(self) -> list[tuple[Module, Lesson]]:
        return [(m, lesson) for m, lesson in self.iter_lessons() if lesson.is_preview]

    def find_module(self, module_id: UUID) -> Module:
        """Get a module of this course.

        Raises:
            NotFoundError: If the module does not belong to the course
        """
        for module in self.modules:
            if module.id == module_id:
                return module
        msg = f"Module {module_id} not found in course {self.id}"
        raise NotFoundError(msg)

    def find_lesson(self, module_id: UUID, lesson_id: UUID) -> tuple[Module, Lesson]:
        """Get a lesson by its module and lesson ids.

        Raises:
            NotFoundError: If the module is not in the course or the lesson
                is not in that module
        """
        module = self.find_module(module_id)
        lesson = module.find_lesson(lesson_id)
        if lesson is None:
            msg = f"Lesson {lesson_id} not found in module {module_id}"
            raise NotFoundError(msg)
        return module, lesson

    def modules_json(self) -> str:
        return orjson.dumps([module.to_dict() for module in self.modules]).decode()

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        modules = orjson.loads(row.modules) if row.modules else []
        return cls(
            id=row.id,
            title=row.title,
            description=row.description,
            status=CourseStatus(row.status or CourseStatus.DRAFT.value),
            pricing=Pricing(
                type=PricingType(row.pricing_type or PricingType.FREE.value),
                amount=row.price or Decimal(0),
                currency=row.currency or "INR",
                discount_price=row.discount_price,
                subscription_tiers=tuple(
                    sorted(row.subscription_tiers or DEFAULT_SUBSCRIPTION_TIERS)
                ),
            ),
            modules=[Module.from_dict(m) for m in modules],
            rating_average=row.rating_average or Decimal(0),
            rating_count=row.rating_count or 0,
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            updated_at=ensure_utc_aware(row.updated_at),
        )

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Course":
        """Build a course from an authoring document (seed files, fixtures)."""
        pricing = data.get("pricing") or {}
        discount = pricing.get("discount_price")
        return cls(
            id=UUID(str(data["id"])),
            title=data["title"],
            description=data.get("description"),
            status=CourseStatus(data.get("status", CourseStatus.PUBLISHED.value)),
            pricing=Pricing(
                type=PricingType(pricing.get("type", PricingType.FREE.value)),
                amount=Decimal(str(pricing.get("amount", 0))),
                currency=pricing.get("currency", "INR"),
                discount_price=Decimal(str(discount)) if discount is not None else None,
                subscription_tiers=tuple(
                    pricing.get("subscription_tiers", DEFAULT_SUBSCRIPTION_TIERS)
                ),
            ),
            modules=[Module.from_dict(m) for m in data.get("modules", [])],
        )

    def __repr__(self) -> str:
        return f"<Course {self.id} {self.title!r} {self.pricing.type.value}>"


@dataclass
class CourseRating:
    course_id: UUID
    user_id: UUID
    rating: int
    review: str | None = None
    rated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: Any) -> "CourseRating":
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            rating=row.rating,
            review=row.review,
            rated_at=ensure_utc_aware(row.rated_at) or datetime.now(UTC),
        )
