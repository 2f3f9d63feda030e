"""Tests for progress ledger mutations and aggregation."""

from datetime import timedelta
from uuid import uuid4

import pytest

from src.courses.models import ContentType, Module
from src.progress.ledger import (
    apply_lesson_update,
    apply_quiz_result,
    recompute,
    round_half_up,
)
from src.progress.models import EnrollmentStatus, new_enrollment
from src.progress.quiz import grade


@pytest.fixture
def course(course_factory):
    return course_factory()


@pytest.fixture
def enrollment(course, now):
    enrollment = new_enrollment(uuid4(), course.id, now=now)
    recompute(enrollment, course, now)
    return enrollment


def lessons(course):
    """(module, lesson) pairs: video, text, audio, quiz."""
    return list(course.iter_lessons())


def complete_all(enrollment, course, now):
    (m1, video), (_, text), (m2, audio), (_, quiz) = lessons(course)
    apply_lesson_update(enrollment, course, m1, video, now=now, watch_time=100)
    apply_lesson_update(enrollment, course, m1, text, now=now, mark_complete=True)
    apply_lesson_update(enrollment, course, m2, audio, now=now, watch_time=60)
    result = grade(quiz.content.quiz, [0, 1])
    apply_quiz_result(enrollment, course, m2, quiz, result, [0, 1], now=now, history_limit=5)


class TestRoundHalfUp:
    """Tests for round_half_up()."""

    @pytest.mark.parametrize(
        ("numerator", "denominator", "expected"),
        [(1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 2, 50), (0, 5, 0), (5, 5, 100)],
    )
    def test_rounding(self, numerator, denominator, expected) -> None:
        assert round_half_up(numerator, denominator) == expected


class TestApplyLessonUpdate:
    """Tests for apply_lesson_update()."""

    def test_fresh_enrollment_is_enrolled(self, enrollment) -> None:
        assert enrollment.status == EnrollmentStatus.ENROLLED
        assert enrollment.progress.percentage == 0
        assert enrollment.progress.total_lessons == 4
        assert enrollment.started_at is None

    def test_partial_watch_keeps_lesson_incomplete(self, enrollment, course, now) -> None:
        module, video = lessons(course)[0]
        record = apply_lesson_update(
            enrollment, course, module, video, now=now, watch_time=40, position=40
        )
        assert record.completed is False
        assert record.watch_time == 40
        assert enrollment.progress.percentage == 0
        assert enrollment.status == EnrollmentStatus.ENROLLED
        assert enrollment.current_lesson.lesson_id == video.id
        assert enrollment.current_lesson.position == 40

    def test_watching_full_duration_completes_video(self, enrollment, course, now) -> None:
        module, video = lessons(course)[0]
        record = apply_lesson_update(enrollment, course, module, video, now=now, watch_time=100)
        assert record.completed is True
        assert record.completed_at == now
        assert enrollment.progress.percentage == 25
        assert enrollment.progress.completed_lessons == 1
        assert enrollment.status == EnrollmentStatus.IN_PROGRESS
        assert enrollment.started_at == now

    def test_smaller_watch_time_is_ignored(self, enrollment, course, now) -> None:
        module, video = lessons(course)[0]
        apply_lesson_update(enrollment, course, module, video, now=now, watch_time=80)
        record = apply_lesson_update(enrollment, course, module, video, now=now, watch_time=20)
        assert record.watch_time == 80

    def test_mark_complete_ignored_for_video(self, enrollment, course, now) -> None:
        module, video = lessons(course)[0]
        record = apply_lesson_update(
            enrollment, course, module, video, now=now, mark_complete=True
        )
        assert record.completed is False
        assert record.marked_complete is False

    def test_mark_complete_completes_text(self, enrollment, course, now) -> None:
        module, text = lessons(course)[1]
        record = apply_lesson_update(
            enrollment, course, module, text, now=now, mark_complete=True
        )
        assert record.completed is True
        assert enrollment.progress.module_percentages[str(module.id)] == 50

    def test_all_lessons_complete_the_enrollment(self, enrollment, course, now) -> None:
        complete_all(enrollment, course, now)
        assert enrollment.progress.percentage == 100
        assert enrollment.progress.completed_modules == 2
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.completed_at == now

    def test_total_watch_time_sums_lessons(self, enrollment, course, now) -> None:
        (m1, video), _, (m2, audio), _ = lessons(course)
        apply_lesson_update(enrollment, course, m1, video, now=now, watch_time=30)
        apply_lesson_update(enrollment, course, m2, audio, now=now, watch_time=15)
        assert enrollment.progress.total_watch_time == 45


class TestApplyQuizResult:
    """Tests for apply_quiz_result()."""

    def test_passing_attempt_completes_quiz(self, enrollment, course, now) -> None:
        module, quiz = lessons(course)[3]
        result = grade(quiz.content.quiz, [0, 1])
        record = apply_quiz_result(
            enrollment, course, module, quiz, result, [0, 1], now=now, history_limit=5
        )
        assert record.completed is True
        assert record.best_score == 100
        assert len(record.attempts) == 1

    def test_completion_is_sticky_after_failed_retry(self, enrollment, course, now) -> None:
        module, quiz = lessons(course)[3]
        passed = grade(quiz.content.quiz, [0, 1])
        failed = grade(quiz.content.quiz, [1, 0])
        apply_quiz_result(enrollment, course, module, quiz, passed, [0, 1], now=now, history_limit=5)
        record = apply_quiz_result(
            enrollment, course, module, quiz, failed, [1, 0], now=now, history_limit=5
        )
        assert record.quiz_result.score == 0
        assert record.completed is True
        assert record.best_score == 100
        assert enrollment.progress.completed_lessons == 1

    def test_history_is_capped(self, enrollment, course, now) -> None:
        module, quiz = lessons(course)[3]
        for i in range(5):
            result = grade(quiz.content.quiz, [1, 0])
            apply_quiz_result(
                enrollment,
                course,
                module,
                quiz,
                result,
                [1, 0],
                now=now + timedelta(seconds=i),
                history_limit=3,
            )
        record = enrollment.lesson_progress(module.id, quiz.id)
        assert len(record.attempts) == 3
        assert record.attempts[-1].attempted_at == now + timedelta(seconds=4)
        assert record.completed is False


class TestRecompute:
    """Aggregation against the current course structure."""

    def test_new_lesson_lowers_percentage_but_not_status(
        self, enrollment, course, now, lesson_factory
    ) -> None:
        complete_all(enrollment, course, now)
        course.modules[1].lessons.append(lesson_factory(ContentType.TEXT, order=3))

        recompute(enrollment, course, now + timedelta(days=1))

        assert enrollment.progress.percentage == 80
        assert enrollment.progress.completed_modules == 1
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.completed_at == now

    def test_removed_lesson_is_ignored(self, enrollment, course, now) -> None:
        module, video = lessons(course)[0]
        apply_lesson_update(enrollment, course, module, video, now=now, watch_time=100)
        course.modules[0].lessons.remove(video)

        recompute(enrollment, course, now)

        assert enrollment.progress.completed_lessons == 0
        assert enrollment.progress.total_lessons == 3
        assert enrollment.lesson_progress(module.id, video.id) is not None

    def test_one_of_three_rounds_to_33(self, course_factory, lesson_factory, now) -> None:
        module = Module(
            id=uuid4(),
            title="Only",
            order=1,
            lessons=[lesson_factory(ContentType.TEXT, order=i) for i in (1, 2, 3)],
        )
        course = course_factory(modules=[module])
        enrollment = new_enrollment(uuid4(), course.id, now=now)
        apply_lesson_update(
            enrollment, course, module, module.lessons[0], now=now, mark_complete=True
        )
        assert enrollment.progress.percentage == 33

    def test_empty_course_stays_enrolled(self, course_factory, now) -> None:
        course = course_factory(modules=[])
        enrollment = new_enrollment(uuid4(), course.id, now=now)
        summary = recompute(enrollment, course, now)
        assert summary.percentage == 0
        assert summary.total_lessons == 0
        assert enrollment.status == EnrollmentStatus.ENROLLED
