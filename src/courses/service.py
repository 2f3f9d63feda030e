"""Course catalog service.

Read side of the catalog: public course overview (with the caller's access
decision and enrollment) and access-gated lesson content.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.access.models import AccessDecision
from src.core.errors import ForbiddenError, NotFoundError
from src.progress.models import Enrollment

from .models import Course, Lesson, Module


if TYPE_CHECKING:
    from src.access.service import AccessEvaluator
    from src.auth.schemas import AuthenticatedUser
    from src.progress.repository import EnrollmentRepository

    from .repository import CourseRepository


logger = structlog.get_logger(__name__)


@dataclass
class CourseOverview:
    course: Course
    access: AccessDecision
    enrollment: Enrollment | None
    enrollment_count: int


class CatalogService:
    """Course lookup for learners."""

    def __init__(
        self,
        courses: "CourseRepository",
        enrollments: "EnrollmentRepository",
        access: "AccessEvaluator",
    ):
        self.courses = courses
        self.enrollments = enrollments
        self.access = access

    async def get_course(self, user: "AuthenticatedUser", course_id: UUID) -> Course:
        """Get a course visible to the user (drafts are admin-only).

        Raises:
            NotFoundError: If the course does not exist or is not visible
        """
        course = await self.courses.get(course_id)
        if course is None or (not course.is_published and not user.is_admin):
            msg = f"Course {course_id} not found"
            raise NotFoundError(msg)
        return course

    async def get_course_overview(
        self, user: "AuthenticatedUser", course_id: UUID
    ) -> CourseOverview:
        course = await self.get_course(user, course_id)
        enrollment = await self.enrollments.get_for_user_course(user.id, course.id)
        decision = await self.access.check_access(user, course, enrollment=enrollment)
        count = await self.courses.get_enrollment_count(course.id)
        return CourseOverview(
            course=course,
            access=decision,
            enrollment=enrollment,
            enrollment_count=count,
        )

    async def get_lesson_content(
        self,
        user: "AuthenticatedUser",
        course_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
    ) -> tuple[Module, Lesson]:
        """Get a lesson's content.

        Preview lessons are open to every authenticated user; other lessons
        require course access.

        Raises:
            NotFoundError: If the course, module or lesson does not exist
            ForbiddenError: If the lesson is not a preview and the user has
                no access
        """
        course = await self.get_course(user, course_id)
        module, lesson = course.find_lesson(module_id, lesson_id)
        if lesson.is_preview:
            return module, lesson

        if not await self.access.has_access(user, course):
            logger.info(
                "lesson_access_denied",
                course_id=str(course.id),
                lesson_id=str(lesson.id),
            )
            msg = "You do not have access to this lesson"
            raise ForbiddenError(msg)
        return module, lesson
