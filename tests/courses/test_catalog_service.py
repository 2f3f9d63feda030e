"""Tests for CatalogService course overview and gated lesson content."""

from uuid import uuid4

import pytest

from src.access.models import AccessReason
from src.core.errors import ForbiddenError, NotFoundError
from src.courses.models import CourseStatus
from src.courses.schemas import LessonContentResponse


class TestGetCourse:
    @pytest.mark.asyncio
    async def test_unknown_course(self, catalog_service, student) -> None:
        with pytest.raises(NotFoundError):
            await catalog_service.get_course(student, uuid4())

    @pytest.mark.asyncio
    async def test_draft_hidden_from_students(
        self, catalog_service, course_repo, course_factory, student, admin
    ) -> None:
        draft = course_factory(status=CourseStatus.DRAFT)
        course_repo.courses[draft.id] = draft

        with pytest.raises(NotFoundError):
            await catalog_service.get_course(student, draft.id)
        assert (await catalog_service.get_course(admin, draft.id)).id == draft.id


class TestOverview:
    @pytest.mark.asyncio
    async def test_paid_course_before_purchase(
        self, catalog_service, paid_course, student
    ) -> None:
        overview = await catalog_service.get_course_overview(student, paid_course.id)
        assert overview.access.has_access is False
        assert overview.access.requires_payment is True
        assert overview.enrollment is None
        assert overview.enrollment_count == 0

    @pytest.mark.asyncio
    async def test_enrolled_free_course(
        self, catalog_service, enrollment_service, free_course, student
    ) -> None:
        await enrollment_service.enroll(student, free_course.id)

        overview = await catalog_service.get_course_overview(student, free_course.id)

        assert overview.access.reason == AccessReason.FREE_COURSE
        assert overview.enrollment is not None
        assert overview.enrollment_count == 1


class TestLessonContent:
    @pytest.mark.asyncio
    async def test_preview_open_without_access(
        self, catalog_service, paid_course, student
    ) -> None:
        module, video = next(paid_course.iter_lessons())
        _, lesson = await catalog_service.get_lesson_content(
            student, paid_course.id, module.id, video.id
        )
        assert lesson.id == video.id

    @pytest.mark.asyncio
    async def test_gated_lesson_without_access(
        self, catalog_service, paid_course, student
    ) -> None:
        module, text = list(paid_course.iter_lessons())[1]
        with pytest.raises(ForbiddenError):
            await catalog_service.get_lesson_content(
                student, paid_course.id, module.id, text.id
            )

    @pytest.mark.asyncio
    async def test_admin_sees_gated_lesson(
        self, catalog_service, paid_course, admin
    ) -> None:
        module, text = list(paid_course.iter_lessons())[1]
        _, lesson = await catalog_service.get_lesson_content(
            admin, paid_course.id, module.id, text.id
        )
        assert lesson.id == text.id

    @pytest.mark.asyncio
    async def test_quiz_answers_are_not_exposed(
        self, catalog_service, free_course, student
    ) -> None:
        module, quiz = list(free_course.iter_lessons())[3]
        found_module, lesson = await catalog_service.get_lesson_content(
            student, free_course.id, module.id, quiz.id
        )

        response = LessonContentResponse.from_entity(found_module, lesson)

        dumped = response.model_dump()
        assert len(dumped["questions"]) == 2
        assert "correct_answer" not in dumped["questions"][0]
        assert dumped["passing_score"] == 50
