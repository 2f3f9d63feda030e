"""Enrollment orchestration.

Business logic for:
- Enrolling in a course (free, subscription or payment-backed)
- Recording lesson progress and explicit completion
- Quiz submission and grading
- Course rating

Every mutation validates references and input first, then applies the
ledger change as one compare-and-set of the enrollment row.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from src.courses.models import ContentType, Course, CourseRating, Lesson

from .completion import validate_progress_input
from .ledger import apply_lesson_update, apply_quiz_result, recompute
from .models import (
    Enrollment,
    EnrollmentRating,
    EnrollmentStatus,
    LessonProgress,
    new_enrollment,
)
from .quiz import DEFAULT_PASSING_SCORE, QuizGrade, grade
from .repository import update_enrollment


if TYPE_CHECKING:
    from src.access.service import AccessEvaluator
    from src.auth.schemas import AuthenticatedUser
    from src.courses.repository import CourseRepository
    from src.payments.bridge import PaymentBridge
    from src.payments.repository import PaymentRepository

    from .repository import EnrollmentRepository


logger = structlog.get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class EnrollmentService:
    """Facade over enrollments, the progress ledger and quiz grading."""

    def __init__(
        self,
        enrollments: "EnrollmentRepository",
        courses: "CourseRepository",
        payments: "PaymentRepository",
        access: "AccessEvaluator",
        bridge: "PaymentBridge",
        *,
        default_passing_score: int = DEFAULT_PASSING_SCORE,
        attempt_history_limit: int = 20,
        max_retries: int = 5,
    ):
        self.enrollments = enrollments
        self.courses = courses
        self.payments = payments
        self.access = access
        self.bridge = bridge
        self.default_passing_score = default_passing_score
        self.attempt_history_limit = attempt_history_limit
        self.max_retries = max_retries

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll(
        self,
        user: "AuthenticatedUser",
        course_id: UUID,
        payment_id: UUID | None = None,
    ) -> Enrollment:
        """Enroll the user in a course.

        Courses the user already has access to (free, qualifying subscription)
        are enrolled directly. Otherwise a completed payment of the user for
        this course must be supplied; it is applied through the payment
        bridge.

        Raises:
            NotFoundError: If the course does not exist or is not published
            ConflictError: If already enrolled (and no new payment supplied)
            ForbiddenError: If access requires a payment that is missing,
                not completed, or not for this course
        """
        course = await self._get_course(course_id)
        if not course.is_published:
            msg = f"Course {course_id} not found"
            raise NotFoundError(msg)

        existing = await self.enrollments.get_for_user_course(user.id, course_id)
        if existing is not None:
            if payment_id is not None and existing.payment_id == payment_id:
                return existing
            if payment_id is None:
                msg = "Already enrolled in this course"
                raise ConflictError(msg)
            return await self._enroll_with_payment(user, course, payment_id)

        decision = await self.access.check_access(user, course, use_cache=False)
        if not decision.has_access:
            if payment_id is None:
                msg = "Payment required to enroll in this course"
                raise ForbiddenError(msg)
            return await self._enroll_with_payment(user, course, payment_id)

        now = datetime.now(UTC)
        enrollment = new_enrollment(user.id, course.id, now=now)
        recompute(enrollment, course, now)
        if not await self.enrollments.create(enrollment):
            msg = "Already enrolled in this course"
            raise ConflictError(msg)

        await self.courses.increment_enrollment_count(course.id)
        logger.info(
            "enrollment_created",
            enrollment_id=str(enrollment.id),
            user_id=str(user.id),
            course_id=str(course.id),
            source=decision.reason.value if decision.reason else None,
        )
        return enrollment

    async def _enroll_with_payment(
        self, user: "AuthenticatedUser", course: Course, payment_id: UUID
    ) -> Enrollment:
        payment = await self.payments.get(payment_id)
        if payment is None or not payment.is_for_course(user.id, course.id):
            msg = "Payment does not belong to this course"
            raise ForbiddenError(msg)
        if not payment.is_completed:
            msg = f"Payment is {payment.status.value}"
            raise ForbiddenError(msg)

        application = await self.bridge.on_payment_verified(payment)
        enrollment = application.enrollment or await self.enrollments.get_for_user_course(
            user.id, course.id
        )
        if enrollment is None:
            msg = "Enrollment not found after applying payment"
            raise NotFoundError(msg)
        return enrollment

    async def list_enrollments(
        self,
        user: "AuthenticatedUser",
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        """The user's enrollments, most recent first."""
        enrollments = await self.enrollments.list_for_user(user.id)
        if status is not None:
            enrollments = [e for e in enrollments if e.status == status]
        return enrollments

    async def get_enrollment(
        self, user: "AuthenticatedUser", enrollment_id: UUID
    ) -> Enrollment:
        return await self._get_owned_enrollment(user, enrollment_id)

    # ==========================================================================
    # Progress Operations
    # ==========================================================================

    async def record_lesson_progress(
        self,
        user: "AuthenticatedUser",
        enrollment_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
        *,
        watch_time: int | None = None,
        position: int | None = None,
        mark_complete: bool = False,
    ) -> tuple[Enrollment, LessonProgress]:
        """Record watch time / position or an explicit completion of a lesson.

        Returns:
            Tuple of (updated enrollment, updated lesson record)

        Raises:
            NotFoundError: Unknown enrollment, or lesson not in the course
            ForbiddenError: Not the caller's enrollment, or no access to a
                non-preview lesson
            ValidationError: Negative watch time or position, or a quiz lesson
                marked complete
        """
        enrollment = await self._get_owned_enrollment(user, enrollment_id)
        course = await self._get_course(enrollment.course_id)
        module, lesson = course.find_lesson(module_id, lesson_id)
        validate_progress_input(
            lesson,
            watch_time=watch_time,
            position=position,
            mark_complete=mark_complete,
        )
        await self._ensure_lesson_access(user, course, lesson, enrollment)

        now = datetime.now(UTC)
        updated, record = await update_enrollment(
            self.enrollments,
            enrollment,
            lambda candidate: apply_lesson_update(
                candidate,
                course,
                module,
                lesson,
                now=now,
                watch_time=watch_time,
                position=position,
                mark_complete=mark_complete,
            ),
            max_retries=self.max_retries,
        )

        logger.info(
            "lesson_progress_recorded",
            enrollment_id=str(updated.id),
            lesson_id=str(lesson.id),
            watch_time=record.watch_time,
            completed=record.completed,
            percentage=updated.progress.percentage,
            status=updated.status.value,
        )
        return updated, record

    async def mark_lesson_complete(
        self,
        user: "AuthenticatedUser",
        enrollment_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
    ) -> tuple[Enrollment, LessonProgress]:
        """Explicit "mark complete" action (completes text lessons)."""
        return await self.record_lesson_progress(
            user, enrollment_id, module_id, lesson_id, mark_complete=True
        )

    async def submit_quiz(
        self,
        user: "AuthenticatedUser",
        enrollment_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
        answers: list[int | None],
    ) -> tuple[Enrollment, QuizGrade]:
        """Grade a quiz submission and record it in the ledger.

        Raises:
            ValidationError: If the lesson has no quiz, the quiz has no
                questions, or too many answers were submitted
        """
        enrollment = await self._get_owned_enrollment(user, enrollment_id)
        course = await self._get_course(enrollment.course_id)
        module, lesson = course.find_lesson(module_id, lesson_id)

        quiz = lesson.content.quiz
        if lesson.content_type != ContentType.QUIZ or quiz is None:
            msg = f"Lesson {lesson_id} has no quiz"
            raise ValidationError(msg)
        result = grade(quiz, answers, self.default_passing_score)

        await self._ensure_lesson_access(user, course, lesson, enrollment)

        now = datetime.now(UTC)
        updated, _ = await update_enrollment(
            self.enrollments,
            enrollment,
            lambda candidate: apply_quiz_result(
                candidate,
                course,
                module,
                lesson,
                result,
                answers,
                now=now,
                history_limit=self.attempt_history_limit,
            ),
            max_retries=self.max_retries,
        )

        logger.info(
            "quiz_submitted",
            enrollment_id=str(updated.id),
            lesson_id=str(lesson.id),
            score=result.score,
            passed=result.passed,
            percentage=updated.progress.percentage,
        )
        return updated, result

    # ==========================================================================
    # Rating
    # ==========================================================================

    async def rate(
        self,
        user: "AuthenticatedUser",
        enrollment_id: UUID,
        rating: int,
        review: str | None = None,
    ) -> tuple[Enrollment, Course]:
        """Rate the enrolled course, replacing the user's previous rating.

        Returns:
            Tuple of (updated enrollment, course with recomputed rating mean)

        Raises:
            ForbiddenError: If not the enrollment's owner or access was never
                granted for this enrollment
            ValidationError: If the rating is outside 1..5
        """
        enrollment = await self._get_owned_enrollment(user, enrollment_id)
        if enrollment.user_id != user.id:
            msg = "Only the enrolled user can rate the course"
            raise ForbiddenError(msg)
        if not MIN_RATING <= rating <= MAX_RATING:
            msg = f"Rating must be between {MIN_RATING} and {MAX_RATING}"
            raise ValidationError(msg)
        if enrollment.access_granted_at is None:
            msg = "Course access was never granted for this enrollment"
            raise ForbiddenError(msg)
        course = await self._get_course(enrollment.course_id)

        now = datetime.now(UTC)

        def set_rating(candidate: Enrollment) -> None:
            candidate.rating = EnrollmentRating(rating=rating, review=review, rated_at=now)

        updated, _ = await update_enrollment(
            self.enrollments, enrollment, set_rating, max_retries=self.max_retries
        )

        await self.courses.upsert_rating(
            CourseRating(
                course_id=course.id,
                user_id=user.id,
                rating=rating,
                review=review,
                rated_at=now,
            )
        )
        ratings = await self.courses.list_ratings(course.id)
        course.rating_count = len(ratings)
        course.rating_average = mean_rating([r.rating for r in ratings])
        await self.courses.update_rating_summary(
            course.id, course.rating_average, course.rating_count
        )

        logger.info(
            "course_rated",
            course_id=str(course.id),
            rating=rating,
            rating_average=str(course.rating_average),
            rating_count=course.rating_count,
        )
        return updated, course

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _get_owned_enrollment(
        self, user: "AuthenticatedUser", enrollment_id: UUID
    ) -> Enrollment:
        enrollment = await self.enrollments.get(enrollment_id)
        if enrollment is None:
            msg = f"Enrollment {enrollment_id} not found"
            raise NotFoundError(msg)
        if enrollment.user_id != user.id and not user.is_admin:
            msg = "Not your enrollment"
            raise ForbiddenError(msg)
        return enrollment

    async def _get_course(self, course_id: UUID) -> Course:
        course = await self.courses.get(course_id)
        if course is None:
            msg = f"Course {course_id} not found"
            raise NotFoundError(msg)
        return course

    async def _ensure_lesson_access(
        self,
        user: "AuthenticatedUser",
        course: Course,
        lesson: Lesson,
        enrollment: Enrollment,
    ) -> None:
        if lesson.is_preview:
            return
        if not await self.access.has_access(user, course, enrollment=enrollment):
            msg = "You do not have access to this lesson"
            raise ForbiddenError(msg)


def mean_rating(ratings: list[int]) -> Decimal:
    """Mean of the ratings rounded to one decimal (0 when there are none)."""
    if not ratings:
        return Decimal(0)
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
