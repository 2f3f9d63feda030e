"""Course catalog module.

Provides:
- Course, module and lesson structure (read-mostly reference data)
- Course ratings and enrollment counters
- Course overview and gated lesson content
"""

from .models import (
    COURSES_TABLES_CQL,
    ContentType,
    Course,
    Lesson,
    Module,
    PricingType,
)


__all__ = [
    "COURSES_TABLES_CQL",
    "ContentType",
    "Course",
    "Lesson",
    "Module",
    "PricingType",
]
