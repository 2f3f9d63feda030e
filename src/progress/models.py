"""Enrollment and progress ledger models.

One enrollment row holds the whole nested ledger (module -> lesson ->
progress record) as JSON plus a ``version`` column. Every mutation rewrites
the row with ``IF version = ?`` so concurrent lesson updates for the same
enrollment cannot overwrite each other.

Cassandra table definitions for:
- enrollments: main table, one row per (user, course) via a deterministic id
- enrollments_by_user: lookup for "which courses is this user enrolled in?"
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid5

import orjson

from src.courses.models import ensure_utc_aware


class EnrollmentStatus(str, Enum):
    """Course enrollment status. Never leaves COMPLETED."""

    ENROLLED = "enrolled"  # Enrolled, no lesson completed yet
    IN_PROGRESS = "in_progress"  # At least one lesson completed
    COMPLETED = "completed"  # Percentage reached 100


# Namespace for deterministic enrollment ids (one enrollment per user/course)
ENROLLMENT_NAMESPACE = UUID("7d3c2a5e-4b1f-5c86-9a0e-2f6b8d41c3a7")


def enrollment_id_for(user_id: UUID, course_id: UUID) -> UUID:
    """Deterministic enrollment id of a (user, course) pair."""
    return uuid5(ENROLLMENT_NAMESPACE, f"{user_id}:{course_id}")


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _parse_dt(value: str | None) -> datetime | None:
    return ensure_utc_aware(datetime.fromisoformat(value)) if value else None


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    id UUID PRIMARY KEY,
    user_id UUID,
    course_id UUID,
    status TEXT,
    ledger TEXT,
    percentage INT,
    enrolled_at TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    payment_id UUID,
    payment_correlation_id TEXT,
    access_granted_at TIMESTAMP,
    rating INT,
    review TEXT,
    rated_at TIMESTAMP,
    version INT
)
"""

ENROLLMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_user (
    user_id UUID,
    course_id UUID,
    enrollment_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

PROGRESS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_USER_TABLE_CQL,
]


# ==============================================================================
# Ledger Records
# ==============================================================================


@dataclass
class QuizAttempt:
    """One graded quiz submission."""

    score: int
    passed: bool
    attempted_at: datetime
    answers: list[int | None] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "passed": self.passed,
            "attempted_at": _iso(self.attempted_at),
            "answers": self.answers,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuizAttempt":
        return cls(
            score=data["score"],
            passed=data["passed"],
            attempted_at=_parse_dt(data["attempted_at"]) or datetime.now(UTC),
            answers=list(data.get("answers", [])),
        )


@dataclass
class LessonProgress:
    """Progress record of one lesson inside an enrollment.

    Attributes:
        completed: Sticky completion flag
        watch_time: Highest reported watch time in seconds (never decreases)
        last_position: Last playback position, for resuming
        marked_complete: Explicit "mark complete" action (text lessons)
        quiz_result: Latest quiz attempt (decides quiz completion)
        best_score: Highest quiz score so far
        attempts: Most recent quiz attempts, oldest first
    """

    completed: bool = False
    completed_at: datetime | None = None
    watch_time: int = 0
    last_position: int = 0
    marked_complete: bool = False
    quiz_result: QuizAttempt | None = None
    best_score: int | None = None
    attempts: list[QuizAttempt] = field(default_factory=list)
    last_accessed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "completed_at": _iso(self.completed_at),
            "watch_time": self.watch_time,
            "last_position": self.last_position,
            "marked_complete": self.marked_complete,
            "quiz_result": self.quiz_result.to_dict() if self.quiz_result else None,
            "best_score": self.best_score,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "last_accessed_at": _iso(self.last_accessed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LessonProgress":
        quiz_result = data.get("quiz_result")
        return cls(
            completed=data.get("completed", False),
            completed_at=_parse_dt(data.get("completed_at")),
            watch_time=data.get("watch_time", 0),
            last_position=data.get("last_position", 0),
            marked_complete=data.get("marked_complete", False),
            quiz_result=QuizAttempt.from_dict(quiz_result) if quiz_result else None,
            best_score=data.get("best_score"),
            attempts=[QuizAttempt.from_dict(a) for a in data.get("attempts", [])],
            last_accessed_at=_parse_dt(data.get("last_accessed_at")),
        )


@dataclass
class ProgressSummary:
    """Aggregates derived from the ledger and the current course structure."""

    percentage: int = 0
    completed_lessons: int = 0
    total_lessons: int = 0
    completed_modules: int = 0
    total_modules: int = 0
    total_watch_time: int = 0
    module_percentages: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "percentage": self.percentage,
            "completed_lessons": self.completed_lessons,
            "total_lessons": self.total_lessons,
            "completed_modules": self.completed_modules,
            "total_modules": self.total_modules,
            "total_watch_time": self.total_watch_time,
            "module_percentages": self.module_percentages,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressSummary":
        return cls(
            percentage=data.get("percentage", 0),
            completed_lessons=data.get("completed_lessons", 0),
            total_lessons=data.get("total_lessons", 0),
            completed_modules=data.get("completed_modules", 0),
            total_modules=data.get("total_modules", 0),
            total_watch_time=data.get("total_watch_time", 0),
            module_percentages=dict(data.get("module_percentages", {})),
        )


@dataclass
class ResumePoint:
    module_id: UUID
    lesson_id: UUID
    position: int = 0


@dataclass
class EnrollmentRating:
    rating: int
    review: str | None
    rated_at: datetime


# ==============================================================================
# Enrollment
# ==============================================================================


@dataclass
class Enrollment:
    """One user's relationship to one course: progress ledger plus access.

    ``progress`` is derived by ``src.progress.ledger.recompute`` after every
    mutation and is never written directly.
    """

    id: UUID
    user_id: UUID
    course_id: UUID
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    modules_progress: dict[str, dict[str, LessonProgress]] = field(
        default_factory=dict
    )
    progress: ProgressSummary = field(default_factory=ProgressSummary)
    enrolled_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    current_lesson: ResumePoint | None = None
    payment_id: UUID | None = None
    payment_correlation_id: str | None = None
    access_granted_at: datetime | None = None
    rating: EnrollmentRating | None = None
    version: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED

    def lesson_progress(self, module_id: UUID, lesson_id: UUID) -> LessonProgress | None:
        return self.modules_progress.get(str(module_id), {}).get(str(lesson_id))

    def ensure_lesson_progress(
        self, module_id: UUID, lesson_id: UUID
    ) -> LessonProgress:
        lessons = self.modules_progress.setdefault(str(module_id), {})
        return lessons.setdefault(str(lesson_id), LessonProgress())

    def ledger_json(self) -> str:
        """Serialize the nested ledger (lessons, aggregates, resume point)."""
        current = None
        if self.current_lesson is not None:
            current = {
                "module_id": str(self.current_lesson.module_id),
                "lesson_id": str(self.current_lesson.lesson_id),
                "position": self.current_lesson.position,
            }
        return orjson.dumps(
            {
                "modules": {
                    module_id: {
                        lesson_id: record.to_dict()
                        for lesson_id, record in lessons.items()
                    }
                    for module_id, lessons in self.modules_progress.items()
                },
                "progress": self.progress.to_dict(),
                "current_lesson": current,
            }
        ).decode()

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        ledger = orjson.loads(row.ledger) if row.ledger else {}
        current = ledger.get("current_lesson")
        rating = None
        if row.rating is not None:
            rating = EnrollmentRating(
                rating=row.rating,
                review=row.review,
                rated_at=ensure_utc_aware(row.rated_at) or datetime.now(UTC),
            )
        return cls(
            id=row.id,
            user_id=row.user_id,
            course_id=row.course_id,
            status=EnrollmentStatus(row.status or EnrollmentStatus.ENROLLED.value),
            modules_progress={
                module_id: {
                    lesson_id: LessonProgress.from_dict(record)
                    for lesson_id, record in lessons.items()
                }
                for module_id, lessons in ledger.get("modules", {}).items()
            },
            progress=ProgressSummary.from_dict(ledger.get("progress", {})),
            enrolled_at=ensure_utc_aware(row.enrolled_at) or datetime.now(UTC),
            started_at=ensure_utc_aware(row.started_at),
            completed_at=ensure_utc_aware(row.completed_at),
            last_accessed_at=ensure_utc_aware(row.last_accessed_at),
            current_lesson=ResumePoint(
                module_id=UUID(current["module_id"]),
                lesson_id=UUID(current["lesson_id"]),
                position=current.get("position", 0),
            )
            if current
            else None,
            payment_id=row.payment_id,
            payment_correlation_id=row.payment_correlation_id,
            access_granted_at=ensure_utc_aware(row.access_granted_at),
            rating=rating,
            version=row.version or 0,
        )

    def __repr__(self) -> str:
        return (
            f"<Enrollment user={self.user_id} course={self.course_id} "
            f"{self.status.value} {self.progress.percentage}%>"
        )


def new_enrollment(
    user_id: UUID,
    course_id: UUID,
    *,
    now: datetime | None = None,
    payment_id: UUID | None = None,
    payment_correlation_id: str | None = None,
) -> Enrollment:
    """Factory for a fresh enrollment that already has access."""
    now = now or datetime.now(UTC)
    return Enrollment(
        id=enrollment_id_for(user_id, course_id),
        user_id=user_id,
        course_id=course_id,
        enrolled_at=now,
        last_accessed_at=now,
        payment_id=payment_id,
        payment_correlation_id=payment_correlation_id,
        access_granted_at=now,
    )
