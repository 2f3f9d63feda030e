"""Pydantic schemas for enrollments and progress.

Request and response models for:
- Enrollment
- Lesson progress and explicit completion
- Quiz submission
- Course rating
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from src.courses.models import Course

from .models import (
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    ProgressSummary,
    QuizAttempt,
)
from .quiz import QuizGrade


# ==============================================================================
# Request Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    """Request to enroll in a course."""

    course_id: UUID = Field(..., description="Course UUID to enroll in")
    payment_id: UUID | None = Field(
        None, description="Completed payment for a paid course"
    )


class RecordProgressRequest(BaseModel):
    """Watch time / position report (sent periodically by the player)."""

    watch_time: int | None = Field(None, description="Seconds watched so far")
    position: int | None = Field(None, description="Playback position in seconds")
    mark_complete: bool = Field(False, description="Explicit completion (text lessons)")


class SubmitQuizRequest(BaseModel):
    answers: list[int | None] = Field(
        ..., description="Selected option index per question (null = unanswered)"
    )


class RateCourseRequest(BaseModel):
    rating: int = Field(..., description="Rating from 1 to 5")
    review: str | None = Field(None, max_length=2000, description="Optional review")


# ==============================================================================
# Progress Schemas
# ==============================================================================


class QuizAttemptResponse(BaseModel):
    score: int
    passed: bool
    attempted_at: datetime

    @classmethod
    def from_entity(cls, entity: QuizAttempt) -> "QuizAttemptResponse":
        return cls(
            score=entity.score,
            passed=entity.passed,
            attempted_at=entity.attempted_at,
        )


class LessonProgressResponse(BaseModel):
    """Progress record of one lesson."""

    module_id: UUID
    lesson_id: UUID
    completed: bool
    completed_at: datetime | None = None
    watch_time: int = 0
    last_position: int = 0
    marked_complete: bool = False
    quiz_result: QuizAttemptResponse | None = None
    best_score: int | None = None
    attempt_count: int = 0
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(
        cls, module_id: UUID | str, lesson_id: UUID | str, entity: LessonProgress
    ) -> "LessonProgressResponse":
        return cls(
            module_id=UUID(str(module_id)),
            lesson_id=UUID(str(lesson_id)),
            completed=entity.completed,
            completed_at=entity.completed_at,
            watch_time=entity.watch_time,
            last_position=entity.last_position,
            marked_complete=entity.marked_complete,
            quiz_result=QuizAttemptResponse.from_entity(entity.quiz_result)
            if entity.quiz_result
            else None,
            best_score=entity.best_score,
            attempt_count=len(entity.attempts),
            last_accessed_at=entity.last_accessed_at,
        )


class ProgressSummaryResponse(BaseModel):
    percentage: int = Field(description="0-100, rounded half up")
    completed_lessons: int
    total_lessons: int
    completed_modules: int
    total_modules: int
    total_watch_time: int
    module_percentages: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, entity: ProgressSummary) -> "ProgressSummaryResponse":
        return cls(**entity.to_dict())


class ResumePointResponse(BaseModel):
    module_id: UUID
    lesson_id: UUID
    position: int = 0


class EnrollmentRatingResponse(BaseModel):
    rating: int
    review: str | None = None
    rated_at: datetime


class EnrollmentResponse(BaseModel):
    """Enrollment snapshot including the full progress ledger."""

    id: UUID
    user_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    progress: ProgressSummaryResponse
    lessons: list[LessonProgressResponse] = Field(default_factory=list)
    current_lesson: ResumePointResponse | None = None
    enrolled_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    payment_id: UUID | None = None
    access_granted_at: datetime | None = None
    rating: EnrollmentRatingResponse | None = None

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        current = entity.current_lesson
        return cls(
            id=entity.id,
            user_id=entity.user_id,
            course_id=entity.course_id,
            status=entity.status,
            progress=ProgressSummaryResponse.from_entity(entity.progress),
            lessons=[
                LessonProgressResponse.from_entity(module_id, lesson_id, record)
                for module_id, lessons in entity.modules_progress.items()
                for lesson_id, record in lessons.items()
            ],
            current_lesson=ResumePointResponse(
                module_id=current.module_id,
                lesson_id=current.lesson_id,
                position=current.position,
            )
            if current
            else None,
            enrolled_at=entity.enrolled_at,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
            last_accessed_at=entity.last_accessed_at,
            payment_id=entity.payment_id,
            access_granted_at=entity.access_granted_at,
            rating=EnrollmentRatingResponse(
                rating=entity.rating.rating,
                review=entity.rating.review,
                rated_at=entity.rating.rated_at,
            )
            if entity.rating
            else None,
        )


class EnrollmentListResponse(BaseModel):
    """List of user enrollments."""

    items: list[EnrollmentResponse]
    total: int


class LessonUpdateResponse(BaseModel):
    """Result of a progress report or explicit completion."""

    lesson: LessonProgressResponse
    enrollment: EnrollmentResponse


# ==============================================================================
# Quiz Schemas
# ==============================================================================


class QuestionResultResponse(BaseModel):
    index: int
    selected: int | None = None
    correct: bool
    explanation: str | None = None


class QuizResultResponse(BaseModel):
    score: int
    passed: bool
    correct_count: int
    total_questions: int
    passing_score: int
    questions: list[QuestionResultResponse]
    enrollment: EnrollmentResponse

    @classmethod
    def from_grade(
        cls, result: QuizGrade, enrollment: Enrollment
    ) -> "QuizResultResponse":
        return cls(
            score=result.score,
            passed=result.passed,
            correct_count=result.correct_count,
            total_questions=result.total_questions,
            passing_score=result.passing_score,
            questions=[
                QuestionResultResponse(
                    index=q.index,
                    selected=q.selected,
                    correct=q.correct,
                    explanation=q.explanation,
                )
                for q in result.per_question
            ],
            enrollment=EnrollmentResponse.from_entity(enrollment),
        )


# ==============================================================================
# Rating Schemas
# ==============================================================================


class RatingResponse(BaseModel):
    course_id: UUID
    rating_average: Decimal
    rating_count: int
    enrollment: EnrollmentResponse

    @classmethod
    def from_entities(cls, enrollment: Enrollment, course: Course) -> "RatingResponse":
        return cls(
            course_id=course.id,
            rating_average=course.rating_average,
            rating_count=course.rating_count,
            enrollment=EnrollmentResponse.from_entity(enrollment),
        )
