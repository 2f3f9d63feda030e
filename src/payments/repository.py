# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Payment persistence.

Status changes are lightweight transactions guarded on the current status,
so two concurrent verifications cannot both move a payment forward.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Payment, PaymentApplication


if TYPE_CHECKING:
    from cassandra.cluster import Session


class PaymentRepository(Protocol):
    async def get(self, payment_id: UUID) -> Payment | None: ...
    async def get_by_order(self, gateway_order_id: str) -> Payment | None: ...
    async def list_for_user(self, user_id: UUID) -> list[Payment]: ...
    async def list_recent(self, limit: int) -> list[Payment]: ...
    async def create(self, payment: Payment) -> None: ...
    async def mark_completed(
        self,
        payment_id: UUID,
        gateway_payment_id: str,
        gateway_signature: str | None,
        at: datetime,
    ) -> bool: ...
    async def mark_failed(self, payment_id: UUID, reason: str, at: datetime) -> bool: ...
    async def mark_refunded(
        self, payment_id: UUID, reason: str | None, at: datetime
    ) -> bool: ...
    async def get_application(
        self, correlation_id: str
    ) -> PaymentApplication | None: ...
    async def record_application(self, application: PaymentApplication) -> bool: ...


class CassandraPaymentRepository:
    """Cassandra-backed payment store."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_payment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.payments WHERE id = ?
        """)

        self._insert_payment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.payments
            (id, user_id, payment_type, status, amount, currency, item_type,
             item_id, plan, duration, gateway_order_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._insert_by_order = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.payments_by_order
            (gateway_order_id, payment_id)
            VALUES (?, ?)
        """)

        self._get_by_order = self.session.prepare(f"""
            SELECT payment_id FROM {self.keyspace}.payments_by_order
            WHERE gateway_order_id = ?
        """)

        self._insert_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.payments_by_user
            (user_id, created_at, payment_id)
            VALUES (?, ?, ?)
        """)

        self._get_by_user = self.session.prepare(f"""
            SELECT payment_id FROM {self.keyspace}.payments_by_user
            WHERE user_id = ?
        """)

        self._mark_completed = self.session.prepare(f"""
            UPDATE {self.keyspace}.payments
            SET status = 'completed', gateway_payment_id = ?,
                gateway_signature = ?, completed_at = ?
            WHERE id = ?
            IF status = 'pending'
        """)

        self._mark_failed = self.session.prepare(f"""
            UPDATE {self.keyspace}.payments
            SET status = 'failed', failure_reason = ?, failed_at = ?
            WHERE id = ?
            IF status = 'pending'
        """)

        self._mark_refunded = self.session.prepare(f"""
            UPDATE {self.keyspace}.payments
            SET status = 'refunded', refund_reason = ?, refunded_at = ?
            WHERE id = ?
            IF status = 'completed'
        """)

        self._get_application = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.payment_applications
            WHERE correlation_id = ?
        """)

        self._insert_application = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.payment_applications
            (correlation_id, payment_id, user_id, payment_type, outcome,
             enrollment_id, subscription_ends_at, applied_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

    async def get(self, payment_id: UUID) -> Payment | None:
        result = await self.session.aexecute(self._get_payment, [payment_id])
        row = result.one()
        return Payment.from_row(row) if row else None

    async def get_by_order(self, gateway_order_id: str) -> Payment | None:
        result = await self.session.aexecute(self._get_by_order, [gateway_order_id])
        row = result.one()
        return await self.get(row.payment_id) if row else None

    async def list_for_user(self, user_id: UUID) -> list[Payment]:
        rows = await self.session.aexecute(self._get_by_user, [user_id])
        payments = []
        for row in rows:
            payment = await self.get(row.payment_id)
            if payment is not None:
                payments.append(payment)
        return payments

    async def list_recent(self, limit: int) -> list[Payment]:
        """Newest first among up to ``limit`` scanned payments (admin views only)."""
        cql = f"SELECT * FROM {self.keyspace}.payments LIMIT {int(limit)}"
        rows = await self.session.aexecute(cql)
        payments = [Payment.from_row(row) for row in rows]
        return sorted(payments, key=lambda p: p.created_at, reverse=True)

    async def create(self, payment: Payment) -> None:
        await self.session.aexecute(
            self._insert_payment,
            [
                payment.id,
                payment.user_id,
                payment.payment_type.value,
                payment.status.value,
                payment.amount,
                payment.currency,
                payment.item_type,
                payment.item_id,
                payment.plan,
                payment.duration.value if payment.duration else None,
                payment.gateway_order_id,
                payment.created_at,
            ],
        )
        await self.session.aexecute(
            self._insert_by_order, [payment.gateway_order_id, payment.id]
        )
        await self.session.aexecute(
            self._insert_by_user, [payment.user_id, payment.created_at, payment.id]
        )

    async def mark_completed(
        self,
        payment_id: UUID,
        gateway_payment_id: str,
        gateway_signature: str | None,
        at: datetime,
    ) -> bool:
        result = await self.session.aexecute(
            self._mark_completed,
            [gateway_payment_id, gateway_signature, at, payment_id],
        )
        return bool(result.was_applied)

    async def mark_failed(self, payment_id: UUID, reason: str, at: datetime) -> bool:
        result = await self.session.aexecute(
            self._mark_failed, [reason, at, payment_id]
        )
        return bool(result.was_applied)

    async def mark_refunded(
        self, payment_id: UUID, reason: str | None, at: datetime
    ) -> bool:
        result = await self.session.aexecute(
            self._mark_refunded, [reason, at, payment_id]
        )
        return bool(result.was_applied)

    async def get_application(self, correlation_id: str) -> PaymentApplication | None:
        result = await self.session.aexecute(self._get_application, [correlation_id])
        row = result.one()
        return PaymentApplication.from_row(row) if row else None

    async def record_application(self, application: PaymentApplication) -> bool:
        """Record an applied payment; False if it was already recorded."""
        result = await self.session.aexecute(
            self._insert_application,
            [
                application.correlation_id,
                application.payment_id,
                application.user_id,
                application.payment_type.value,
                application.outcome.value,
                application.enrollment_id,
                application.subscription_ends_at,
                application.applied_at,
            ],
        )
        return bool(result.was_applied)

