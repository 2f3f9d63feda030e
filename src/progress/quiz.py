"""Quiz grading.

Scores are integer percentages rounded down. Unanswered questions stay in
the denominator and count as wrong.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from src.core.errors import ValidationError
from src.courses.models import Quiz


DEFAULT_PASSING_SCORE = 70


@dataclass(frozen=True)
class QuestionResult:
    index: int
    selected: int | None
    correct: bool
    explanation: str | None = None


@dataclass(frozen=True)
class QuizGrade:
    score: int
    passed: bool
    correct_count: int
    total_questions: int
    passing_score: int
    per_question: tuple[QuestionResult, ...]


def grade(
    quiz: Quiz,
    answers: Sequence[int | None],
    default_passing_score: int = DEFAULT_PASSING_SCORE,
) -> QuizGrade:
    """Grade a submitted answer set against a quiz definition.

    Args:
        quiz: Quiz definition
        answers: Selected option index per question, by position. Missing
            trailing entries and None are unanswered.
        default_passing_score: Used when the quiz sets no passing score

    Returns:
        QuizGrade with score 0..100 and per-question correctness

    Raises:
        ValidationError: If the quiz has no questions or more answers than
            questions were submitted
    """
    total = len(quiz.questions)
    if total == 0:
        msg = "Quiz has no questions"
        raise ValidationError(msg)
    if len(answers) > total:
        msg = f"Submitted {len(answers)} answers for {total} questions"
        raise ValidationError(msg)

    results = []
    for index, question in enumerate(quiz.questions):
        selected = answers[index] if index < len(answers) else None
        # Out-of-range option indexes simply never match
        correct = selected is not None and selected == question.correct_answer
        results.append(
            QuestionResult(
                index=index,
                selected=selected,
                correct=correct,
                explanation=question.explanation,
            )
        )

    correct_count = sum(1 for result in results if result.correct)
    score = (100 * correct_count) // total
    passing_score = (
        quiz.passing_score if quiz.passing_score is not None else default_passing_score
    )

    return QuizGrade(
        score=score,
        passed=score >= passing_score,
        correct_count=correct_count,
        total_questions=total,
        passing_score=passing_score,
        per_question=tuple(results),
    )
