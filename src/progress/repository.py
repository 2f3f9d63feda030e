# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Enrollment persistence.

Enrollment rows are created with ``IF NOT EXISTS`` on the deterministic
(user, course) id and rewritten whole with ``IF version = ?``.
"""

import copy
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, TypeVar
from uuid import UUID

import structlog

from src.core.errors import ConflictError, NotFoundError

from .models import Enrollment, enrollment_id_for


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class EnrollmentRepository(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_for_user_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None: ...
    async def list_for_user(self, user_id: UUID) -> list[Enrollment]: ...
    async def create(self, enrollment: Enrollment) -> bool: ...
    async def compare_and_set(
        self, enrollment: Enrollment, expected_version: int
    ) -> bool: ...


class CassandraEnrollmentRepository:
    """Cassandra-backed enrollment store."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments WHERE id = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (id, user_id, course_id, status, ledger, percentage, enrolled_at,
             started_at, completed_at, last_accessed_at, payment_id,
             payment_correlation_id, access_granted_at, rating, review, rated_at,
             version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_enrollment = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET status = ?, ledger = ?, percentage = ?, started_at = ?,
                completed_at = ?, last_accessed_at = ?, payment_id = ?,
                payment_correlation_id = ?, access_granted_at = ?, rating = ?,
                review = ?, rated_at = ?, version = ?
            WHERE id = ?
            IF version = ?
        """)

        self._upsert_enrollment_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_user
            (user_id, course_id, enrollment_id, enrolled_at)
            VALUES (?, ?, ?, ?)
        """)

        self._get_user_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_user WHERE user_id = ?
        """)

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        result = await self.session.aexecute(self._get_enrollment, [enrollment_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_for_user_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        return await self.get(enrollment_id_for(user_id, course_id))

    async def list_for_user(self, user_id: UUID) -> list[Enrollment]:
        rows = await self.session.aexecute(self._get_user_enrollments, [user_id])
        enrollments = []
        for row in rows:
            enrollment = await self.get(row.enrollment_id)
            if enrollment is not None:
                enrollments.append(enrollment)
        enrollments.sort(key=lambda e: e.enrolled_at, reverse=True)
        return enrollments

    async def create(self, enrollment: Enrollment) -> bool:
        """Insert a new enrollment; False if one already exists for the pair."""
        rating = enrollment.rating
        result = await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.id,
                enrollment.user_id,
                enrollment.course_id,
                enrollment.status.value,
                enrollment.ledger_json(),
                enrollment.progress.percentage,
                enrollment.enrolled_at,
                enrollment.started_at,
                enrollment.completed_at,
                enrollment.last_accessed_at,
                enrollment.payment_id,
                enrollment.payment_correlation_id,
                enrollment.access_granted_at,
                rating.rating if rating else None,
                rating.review if rating else None,
                rating.rated_at if rating else None,
                enrollment.version,
            ],
        )
        if not result.was_applied:
            return False

        # Lookup row is idempotent, rewriting it is harmless
        await self.session.aexecute(
            self._upsert_enrollment_by_user,
            [
                enrollment.user_id,
                enrollment.course_id,
                enrollment.id,
                enrollment.enrolled_at,
            ],
        )
        return True

    async def compare_and_set(
        self, enrollment: Enrollment, expected_version: int
    ) -> bool:
        """Write the whole enrollment if nobody else wrote it since it was read."""
        rating = enrollment.rating
        result = await self.session.aexecute(
            self._update_enrollment,
            [
                enrollment.status.value,
                enrollment.ledger_json(),
                enrollment.progress.percentage,
                enrollment.started_at,
                enrollment.completed_at,
                enrollment.last_accessed_at,
                enrollment.payment_id,
                enrollment.payment_correlation_id,
                enrollment.access_granted_at,
                rating.rating if rating else None,
                rating.review if rating else None,
                rating.rated_at if rating else None,
                enrollment.version,
                enrollment.id,
                expected_version,
            ],
        )
        return bool(result.was_applied)


async def update_enrollment(
    repository: EnrollmentRepository,
    enrollment: Enrollment,
    mutate: Callable[[Enrollment], T],
    *,
    max_retries: int,
) -> tuple[Enrollment, T]:
    """Apply ``mutate`` as one atomic read-modify-write of the enrollment.

    The mutation runs on a copy; when another writer got there first the
    enrollment is re-read and the mutation re-applied.

    Returns:
        Tuple of (persisted enrollment, value returned by ``mutate``)

    Raises:
        NotFoundError: If the enrollment disappeared
        ConflictError: If every attempt lost the race
    """
    current = enrollment
    for attempt in range(1, max_retries + 1):
        candidate = copy.deepcopy(current)
        outcome = mutate(candidate)
        candidate.version = current.version + 1

        if await repository.compare_and_set(candidate, expected_version=current.version):
            return candidate, outcome

        logger.warning(
            "enrollment_update_conflict",
            enrollment_id=str(current.id),
            attempt=attempt,
            version=current.version,
        )
        reloaded = await repository.get(current.id)
        if reloaded is None:
            msg = f"Enrollment {current.id} not found"
            raise NotFoundError(msg)
        current = reloaded

    msg = "Enrollment was modified concurrently, please retry"
    raise ConflictError(msg)
