# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Subscription persistence."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Subscription


if TYPE_CHECKING:
    from cassandra.cluster import Session


class SubscriptionRepository(Protocol):
    async def get(self, user_id: UUID) -> Subscription | None: ...
    async def create(self, subscription: Subscription) -> bool: ...
    async def compare_and_set(
        self, subscription: Subscription, expected_version: int
    ) -> bool: ...


class CassandraSubscriptionRepository:
    """Cassandra-backed subscription store."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_subscription = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.subscriptions WHERE user_id = ?
        """)

        self._insert_subscription = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.subscriptions
            (user_id, tier, status, started_at, ends_at, applied_payments, version)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_subscription = self.session.prepare(f"""
            UPDATE {self.keyspace}.subscriptions
            SET tier = ?, status = ?, started_at = ?, ends_at = ?,
                applied_payments = ?, version = ?
            WHERE user_id = ?
            IF version = ?
        """)

    async def get(self, user_id: UUID) -> Subscription | None:
        result = await self.session.aexecute(self._get_subscription, [user_id])
        row = result.one()
        return Subscription.from_row(row) if row else None

    async def create(self, subscription: Subscription) -> bool:
        result = await self.session.aexecute(
            self._insert_subscription,
            [
                subscription.user_id,
                subscription.tier.value,
                subscription.status.value,
                subscription.started_at,
                subscription.ends_at,
                subscription.applied_payments,
                subscription.version,
            ],
        )
        return bool(result.was_applied)

    async def compare_and_set(
        self, subscription: Subscription, expected_version: int
    ) -> bool:
        result = await self.session.aexecute(
            self._update_subscription,
            [
                subscription.tier.value,
                subscription.status.value,
                subscription.started_at,
                subscription.ends_at,
                subscription.applied_payments,
                subscription.version,
                subscription.user_id,
                expected_version,
            ],
        )
        return bool(result.was_applied)
