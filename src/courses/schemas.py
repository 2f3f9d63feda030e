"""Pydantic schemas for the course catalog.

Response models for:
- Course overview (public structure, access decision, enrollment summary)
- Lesson content (quiz answers are never exposed)
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from src.access.models import AccessReason
from src.progress.models import EnrollmentStatus

from .models import ContentType, CourseStatus, Lesson, Module, PricingType
from .service import CourseOverview


# ==============================================================================
# Course Overview Schemas
# ==============================================================================


class PricingResponse(BaseModel):
    type: PricingType
    amount: Decimal
    currency: str
    discount_price: Decimal | None = None
    subscription_tiers: list[str] = Field(default_factory=list)


class LessonSummaryResponse(BaseModel):
    """Lesson as listed in the course outline (no content)."""

    id: UUID
    title: str
    order: int
    content_type: ContentType
    duration: int
    is_preview: bool

    @classmethod
    def from_entity(cls, lesson: Lesson) -> "LessonSummaryResponse":
        return cls(
            id=lesson.id,
            title=lesson.title,
            order=lesson.order,
            content_type=lesson.content_type,
            duration=lesson.duration,
            is_preview=lesson.is_preview,
        )


class ModuleSummaryResponse(BaseModel):
    id: UUID
    title: str
    order: int
    lessons: list[LessonSummaryResponse]

    @classmethod
    def from_entity(cls, module: Module) -> "ModuleSummaryResponse":
        return cls(
            id=module.id,
            title=module.title,
            order=module.order,
            lessons=[LessonSummaryResponse.from_entity(lesson) for lesson in module.lessons],
        )


class CourseAccessResponse(BaseModel):
    has_access: bool
    reason: AccessReason | None = None
    requires_payment: bool = False


class EnrollmentSummaryResponse(BaseModel):
    id: UUID
    status: EnrollmentStatus
    percentage: int
    enrolled_at: datetime


class CourseOverviewResponse(BaseModel):
    """Course overview for the calling user."""

    id: UUID
    title: str
    description: str | None = None
    status: CourseStatus
    pricing: PricingResponse
    modules: list[ModuleSummaryResponse]
    total_lessons: int
    rating_average: Decimal
    rating_count: int
    enrollment_count: int
    access: CourseAccessResponse
    enrollment: EnrollmentSummaryResponse | None = None

    @classmethod
    def from_overview(cls, overview: CourseOverview) -> "CourseOverviewResponse":
        course = overview.course
        enrollment = overview.enrollment
        return cls(
            id=course.id,
            title=course.title,
            description=course.description,
            status=course.status,
            pricing=PricingResponse(
                type=course.pricing.type,
                amount=course.pricing.amount,
                currency=course.pricing.currency,
                discount_price=course.pricing.discount_price,
                subscription_tiers=list(course.pricing.subscription_tiers),
            ),
            modules=[ModuleSummaryResponse.from_entity(m) for m in course.modules],
            total_lessons=course.total_lessons(),
            rating_average=course.rating_average,
            rating_count=course.rating_count,
            enrollment_count=overview.enrollment_count,
            access=CourseAccessResponse(
                has_access=overview.access.has_access,
                reason=overview.access.reason,
                requires_payment=overview.access.requires_payment,
            ),
            enrollment=EnrollmentSummaryResponse(
                id=enrollment.id,
                status=enrollment.status,
                percentage=enrollment.progress.percentage,
                enrolled_at=enrollment.enrolled_at,
            )
            if enrollment
            else None,
        )


# ==============================================================================
# Lesson Content Schemas
# ==============================================================================


class QuizQuestionResponse(BaseModel):
    """Quiz question without the correct answer."""

    question: str
    options: list[str]


class LessonContentResponse(BaseModel):
    id: UUID
    module_id: UUID
    title: str
    order: int
    content_type: ContentType
    duration: int
    is_preview: bool
    url: str | None = None
    text: str | None = None
    questions: list[QuizQuestionResponse] | None = None
    passing_score: int | None = None

    @classmethod
    def from_entity(cls, module: Module, lesson: Lesson) -> "LessonContentResponse":
        quiz = lesson.content.quiz
        return cls(
            id=lesson.id,
            module_id=module.id,
            title=lesson.title,
            order=lesson.order,
            content_type=lesson.content_type,
            duration=lesson.duration,
            is_preview=lesson.is_preview,
            url=lesson.content.url,
            text=lesson.content.text,
            questions=[
                QuizQuestionResponse(question=q.question, options=list(q.options))
                for q in quiz.questions
            ]
            if quiz
            else None,
            passing_score=quiz.passing_score if quiz else None,
        )
