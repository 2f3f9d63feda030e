"""Enrollment and progress tracking module.

Provides:
- Course enrollment with access checks
- Lesson progress ledger (watch time, completion, quiz attempts)
- Course percentage and status aggregation
- Quiz grading
"""

from .models import (
    PROGRESS_TABLES_CQL,
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    ProgressSummary,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Enrollment",
    "EnrollmentStatus",
    "LessonProgress",
    "ProgressSummary",
]
