"""Per-content-type lesson completion rules."""

from src.core.errors import ValidationError
from src.courses.models import ContentType, Lesson

from .models import LessonProgress


def merge_watch_time(stored: int, reported: int) -> int:
    """Watch time never decreases: smaller reports are ignored.

    Raises:
        ValidationError: If the reported value is negative
    """
    if reported < 0:
        msg = "Watch time cannot be negative"
        raise ValidationError(msg)
    return max(stored, reported)


def is_lesson_complete(lesson: Lesson, record: LessonProgress) -> bool:
    """Whether a progress record satisfies the lesson's completion rule.

    - video/audio: watched up to the lesson duration (any watch time when the
      duration is 0, so malformed lessons stay completable)
    - text: explicitly marked complete
    - quiz: latest attempt passed
    """
    match lesson.content_type:
        case ContentType.VIDEO | ContentType.AUDIO:
            if lesson.duration <= 0:
                return record.watch_time > 0
            return record.watch_time >= lesson.duration
        case ContentType.TEXT:
            return record.marked_complete
        case ContentType.QUIZ:
            return record.quiz_result is not None and record.quiz_result.passed
    return False


def validate_progress_input(
    lesson: Lesson,
    *,
    watch_time: int | None = None,
    position: int | None = None,
    mark_complete: bool = False,
) -> None:
    """Reject malformed progress reports before anything is persisted.

    Raises:
        ValidationError: On negative watch time or position, or when a quiz
            lesson is marked complete directly
    """
    if watch_time is not None and watch_time < 0:
        msg = "Watch time cannot be negative"
        raise ValidationError(msg)
    if position is not None and position < 0:
        msg = "Position cannot be negative"
        raise ValidationError(msg)
    if mark_complete and lesson.content_type == ContentType.QUIZ:
        msg = "Quiz lessons are completed by passing the quiz"
        raise ValidationError(msg)
