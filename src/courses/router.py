"""Course catalog API endpoints.

Provides routes for:
- Course overview with the caller's access and enrollment
- Access-gated lesson content
"""

from uuid import UUID

from fastapi import APIRouter

from src.auth.dependencies import CurrentUser

from .dependencies import CatalogServiceDep
from .schemas import CourseOverviewResponse, LessonContentResponse


router = APIRouter(prefix="/v1/courses", tags=["courses"])


@router.get(
    "/{course_id}",
    response_model=CourseOverviewResponse,
    summary="Get course overview",
)
async def get_course_overview(
    course_id: UUID,
    catalog_service: CatalogServiceDep,
    user: CurrentUser,
) -> CourseOverviewResponse:
    """Course outline, pricing, rating and the caller's access decision."""
    overview = await catalog_service.get_course_overview(user, course_id)
    return CourseOverviewResponse.from_overview(overview)


@router.get(
    "/{course_id}/modules/{module_id}/lessons/{lesson_id}",
    response_model=LessonContentResponse,
    summary="Get lesson content",
)
async def get_lesson_content(
    course_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    catalog_service: CatalogServiceDep,
    user: CurrentUser,
) -> LessonContentResponse:
    """Lesson content. Non-preview lessons require course access."""
    module, lesson = await catalog_service.get_lesson_content(
        user, course_id, module_id, lesson_id
    )
    return LessonContentResponse.from_entity(module, lesson)
