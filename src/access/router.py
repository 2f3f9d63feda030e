"""Course access API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from src.auth.dependencies import CurrentUser
from src.courses.dependencies import CatalogServiceDep

from .dependencies import AccessEvaluatorDep
from .schemas import CheckAccessResponse


router = APIRouter(prefix="/v1/access", tags=["access"])


@router.get(
    "/check/{course_id}",
    response_model=CheckAccessResponse,
    summary="Check course access",
)
async def check_course_access(
    course_id: UUID,
    catalog_service: CatalogServiceDep,
    access_evaluator: AccessEvaluatorDep,
    user: CurrentUser,
) -> CheckAccessResponse:
    """Whether the current user can open the course's non-preview lessons."""
    course = await catalog_service.get_course(user, course_id)
    decision = await access_evaluator.check_access(user, course)
    return CheckAccessResponse.from_decision(course.id, decision)
