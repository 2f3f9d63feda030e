"""Enrollment and progress API endpoints.

Provides routes for:
- Course enrollment (free, subscription or payment-backed)
- Lesson progress reports and explicit completion
- Quiz submission
- Course rating

Domain errors propagate to the application's DomainError handler, which maps
them to their HTTP status and error kind.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.dependencies import CurrentUser

from .dependencies import EnrollmentServiceDep
from .models import EnrollmentStatus
from .schemas import (
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    LessonProgressResponse,
    LessonUpdateResponse,
    QuizResultResponse,
    RateCourseRequest,
    RatingResponse,
    RecordProgressRequest,
    SubmitQuizRequest,
)


router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])

LESSON_PATH = "/{enrollment_id}/modules/{module_id}/lessons/{lesson_id}"


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in course",
)
async def enroll_in_course(
    data: EnrollRequest,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Enroll current user in a course.

    - Free courses and premium courses with a qualifying subscription:
      enrolled directly
    - Paid courses: requires ``payment_id`` of a completed payment
    """
    enrollment = await enrollment_service.enroll(user, data.course_id, data.payment_id)
    return EnrollmentResponse.from_entity(enrollment)


@router.get(
    "/my",
    response_model=EnrollmentListResponse,
    summary="Get my enrollments",
)
async def get_my_enrollments(
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
    status_filter: EnrollmentStatus | None = Query(None, alias="status"),
) -> EnrollmentListResponse:
    """Get all course enrollments for current user."""
    enrollments = await enrollment_service.list_enrollments(user, status_filter)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    enrollment_id: UUID,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Enrollment snapshot with the full progress ledger."""
    enrollment = await enrollment_service.get_enrollment(user, enrollment_id)
    return EnrollmentResponse.from_entity(enrollment)


# ==============================================================================
# Progress Endpoints
# ==============================================================================


@router.put(
    f"{LESSON_PATH}/progress",
    response_model=LessonUpdateResponse,
    summary="Record lesson progress",
)
async def record_lesson_progress(
    enrollment_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    data: RecordProgressRequest,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> LessonUpdateResponse:
    """Report watch time and playback position.

    Watch time only ever increases; video/audio lessons complete once it
    reaches the lesson duration.
    """
    enrollment, record = await enrollment_service.record_lesson_progress(
        user,
        enrollment_id,
        module_id,
        lesson_id,
        watch_time=data.watch_time,
        position=data.position,
        mark_complete=data.mark_complete,
    )
    return LessonUpdateResponse(
        lesson=LessonProgressResponse.from_entity(module_id, lesson_id, record),
        enrollment=EnrollmentResponse.from_entity(enrollment),
    )


@router.post(
    f"{LESSON_PATH}/complete",
    response_model=LessonUpdateResponse,
    summary="Mark lesson as complete",
)
async def mark_lesson_complete(
    enrollment_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> LessonUpdateResponse:
    """Explicitly complete a text lesson (ignored for video/audio)."""
    enrollment, record = await enrollment_service.mark_lesson_complete(
        user, enrollment_id, module_id, lesson_id
    )
    return LessonUpdateResponse(
        lesson=LessonProgressResponse.from_entity(module_id, lesson_id, record),
        enrollment=EnrollmentResponse.from_entity(enrollment),
    )


@router.post(
    f"{LESSON_PATH}/quiz",
    response_model=QuizResultResponse,
    summary="Submit quiz",
)
async def submit_quiz(
    enrollment_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    data: SubmitQuizRequest,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> QuizResultResponse:
    """Grade a quiz submission and record the attempt."""
    enrollment, result = await enrollment_service.submit_quiz(
        user, enrollment_id, module_id, lesson_id, data.answers
    )
    return QuizResultResponse.from_grade(result, enrollment)


# ==============================================================================
# Rating Endpoints
# ==============================================================================


@router.post(
    "/{enrollment_id}/rating",
    response_model=RatingResponse,
    summary="Rate course",
)
async def rate_course(
    enrollment_id: UUID,
    data: RateCourseRequest,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> RatingResponse:
    """Rate the enrolled course (replaces a previous rating)."""
    enrollment, course = await enrollment_service.rate(
        user, enrollment_id, data.rating, data.review
    )
    return RatingResponse.from_entities(enrollment, course)
