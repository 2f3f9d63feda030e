# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Course catalog persistence."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Course, CourseRating


if TYPE_CHECKING:
    from cassandra.cluster import Session


class CourseRepository(Protocol):
    async def get(self, course_id: UUID) -> Course | None: ...
    async def save(self, course: Course) -> None: ...
    async def upsert_rating(self, rating: CourseRating) -> None: ...
    async def list_ratings(self, course_id: UUID) -> list[CourseRating]: ...
    async def update_rating_summary(
        self, course_id: UUID, average: Decimal, count: int
    ) -> None: ...
    async def increment_enrollment_count(self, course_id: UUID) -> None: ...
    async def get_enrollment_count(self, course_id: UUID) -> int: ...


class CassandraCourseRepository:
    """Cassandra-backed course store."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE id = ?
        """)

        self._upsert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (id, title, description, status, pricing_type, price, discount_price,
             currency, subscription_tiers, modules, rating_average, rating_count,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._update_rating_summary = self.session.prepare(f"""
            UPDATE {self.keyspace}.courses
            SET rating_average = ?, rating_count = ?, updated_at = ?
            WHERE id = ?
        """)

        self._upsert_rating = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_ratings
            (course_id, user_id, rating, review, rated_at)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._get_ratings = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_ratings WHERE course_id = ?
        """)

        self._increment_enrollments = self.session.prepare(f"""
            UPDATE {self.keyspace}.course_enrollment_counts
            SET enrollments = enrollments + 1
            WHERE course_id = ?
        """)

        self._get_enrollments = self.session.prepare(f"""
            SELECT enrollments FROM {self.keyspace}.course_enrollment_counts
            WHERE course_id = ?
        """)

    async def get(self, course_id: UUID) -> Course | None:
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def save(self, course: Course) -> None:
        await self.session.aexecute(
            self._upsert_course,
            [
                course.id,
                course.title,
                course.description,
                course.status.value,
                course.pricing.type.value,
                course.pricing.amount,
                course.pricing.discount_price,
                course.pricing.currency,
                set(course.pricing.subscription_tiers),
                course.modules_json(),
                course.rating_average,
                course.rating_count,
                course.created_at,
                datetime.now(UTC),
            ],
        )

    async def upsert_rating(self, rating: CourseRating) -> None:
        await self.session.aexecute(
            self._upsert_rating,
            [
                rating.course_id,
                rating.user_id,
                rating.rating,
                rating.review,
                rating.rated_at,
            ],
        )

    async def list_ratings(self, course_id: UUID) -> list[CourseRating]:
        rows = await self.session.aexecute(self._get_ratings, [course_id])
        return [CourseRating.from_row(row) for row in rows]

    async def update_rating_summary(
        self, course_id: UUID, average: Decimal, count: int
    ) -> None:
        await self.session.aexecute(
            self._update_rating_summary,
            [average, count, datetime.now(UTC), course_id],
        )

    async def increment_enrollment_count(self, course_id: UUID) -> None:
        await self.session.aexecute(self._increment_enrollments, [course_id])

    async def get_enrollment_count(self, course_id: UUID) -> int:
        result = await self.session.aexecute(self._get_enrollments, [course_id])
        row = result.one()
        return row.enrollments if row else 0
