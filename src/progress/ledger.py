"""Progress ledger mutations and aggregation.

Pure functions over an ``Enrollment``: they mutate the in-memory aggregate
and leave persistence to the caller, which writes the whole row at once.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

import structlog

from src.courses.models import ContentType, Course, Lesson, Module

from .completion import is_lesson_complete, merge_watch_time
from .models import (
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    ProgressSummary,
    QuizAttempt,
    ResumePoint,
)
from .quiz import QuizGrade


logger = structlog.get_logger(__name__)


def round_half_up(numerator: int, denominator: int) -> int:
    """Nearest-integer percentage of numerator/denominator (0.5 rounds up)."""
    value = Decimal(100 * numerator) / Decimal(denominator)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _settle_completion(
    enrollment: Enrollment,
    module: Module,
    lesson: Lesson,
    record: LessonProgress,
    now: datetime,
) -> None:
    # Completion is sticky: a record is never switched back to incomplete
    if record.completed or not is_lesson_complete(lesson, record):
        return
    record.completed = True
    record.completed_at = now
    logger.info(
        "lesson_completed",
        enrollment_id=str(enrollment.id),
        module_id=str(module.id),
        lesson_id=str(lesson.id),
        content_type=lesson.content_type.value,
    )


def apply_lesson_update(
    enrollment: Enrollment,
    course: Course,
    module: Module,
    lesson: Lesson,
    *,
    now: datetime,
    watch_time: int | None = None,
    position: int | None = None,
    mark_complete: bool = False,
) -> LessonProgress:
    """Record watch time, playback position or an explicit completion.

    ``mark_complete`` only completes text lessons; video and audio lessons
    complete through watch time.
    """
    record = enrollment.ensure_lesson_progress(module.id, lesson.id)

    if watch_time is not None:
        record.watch_time = merge_watch_time(record.watch_time, watch_time)
    if position is not None:
        record.last_position = position
    if mark_complete and lesson.content_type == ContentType.TEXT:
        record.marked_complete = True

    record.last_accessed_at = now
    enrollment.last_accessed_at = now
    enrollment.current_lesson = ResumePoint(
        module_id=module.id,
        lesson_id=lesson.id,
        position=record.last_position,
    )

    _settle_completion(enrollment, module, lesson, record, now)
    recompute(enrollment, course, now)
    return record


def apply_quiz_result(
    enrollment: Enrollment,
    course: Course,
    module: Module,
    lesson: Lesson,
    result: QuizGrade,
    answers: Sequence[int | None],
    *,
    now: datetime,
    history_limit: int,
) -> LessonProgress:
    """Store a graded attempt as the latest result and append it to history.

    Only the latest attempt decides completion, but a lesson that is already
    complete stays complete after a lower-scoring attempt.
    """
    record = enrollment.ensure_lesson_progress(module.id, lesson.id)
    attempt = QuizAttempt(
        score=result.score,
        passed=result.passed,
        attempted_at=now,
        answers=list(answers),
    )

    record.quiz_result = attempt
    record.attempts.append(attempt)
    if len(record.attempts) > history_limit:
        record.attempts = record.attempts[-history_limit:]
    if record.best_score is None or result.score > record.best_score:
        record.best_score = result.score

    record.last_accessed_at = now
    enrollment.last_accessed_at = now
    enrollment.current_lesson = ResumePoint(module_id=module.id, lesson_id=lesson.id)

    _settle_completion(enrollment, module, lesson, record, now)
    recompute(enrollment, course, now)
    return record


def recompute(enrollment: Enrollment, course: Course, now: datetime) -> ProgressSummary:
    """Recompute aggregates and status against the current course structure.

    Only lessons that exist in the course right now are counted, so lessons
    added later lower the percentage. Ledger entries of removed lessons are
    kept but ignored.
    """
    completed_lessons = 0
    completed_modules = 0
    total_watch_time = 0
    module_percentages: dict[str, int] = {}

    for module in course.modules:
        done = 0
        for lesson in module.lessons:
            record = enrollment.lesson_progress(module.id, lesson.id)
            if record is None:
                continue
            total_watch_time += record.watch_time
            if record.completed:
                done += 1
        completed_lessons += done
        if module.lessons:
            module_percentages[str(module.id)] = round_half_up(done, len(module.lessons))
            if done == len(module.lessons):
                completed_modules += 1
        else:
            module_percentages[str(module.id)] = 0

    total_lessons = course.total_lessons()
    percentage = round_half_up(completed_lessons, total_lessons) if total_lessons else 0

    enrollment.progress = ProgressSummary(
        percentage=percentage,
        completed_lessons=completed_lessons,
        total_lessons=total_lessons,
        completed_modules=completed_modules,
        total_modules=len(course.modules),
        total_watch_time=total_watch_time,
        module_percentages=module_percentages,
    )
    _advance_status(enrollment, now)
    return enrollment.progress


def _advance_status(enrollment: Enrollment, now: datetime) -> None:
    """enrolled -> in_progress -> completed; nothing leaves completed."""
    if enrollment.status == EnrollmentStatus.COMPLETED:
        return

    summary = enrollment.progress
    if summary.completed_lessons > 0 and enrollment.started_at is None:
        enrollment.started_at = now

    if summary.percentage == 100:
        enrollment.status = EnrollmentStatus.COMPLETED
        enrollment.completed_at = now
        logger.info(
            "enrollment_completed",
            enrollment_id=str(enrollment.id),
            user_id=str(enrollment.user_id),
            course_id=str(enrollment.course_id),
        )
    elif summary.completed_lessons > 0:
        enrollment.status = EnrollmentStatus.IN_PROGRESS
