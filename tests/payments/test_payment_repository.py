"""Tests for CassandraPaymentRepository status transitions (mocked session)."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.payments.models import (
    ApplicationOutcome,
    PaymentApplication,
    PaymentStatus,
    PaymentType,
    create_course_payment,
)
from src.payments.repository import CassandraPaymentRepository


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: Mock(query=query))
    session.aexecute = AsyncMock(return_value=Mock(was_applied=True))
    return session


@pytest.fixture
def repository(mock_session) -> CassandraPaymentRepository:
    return CassandraPaymentRepository(mock_session, "test_keyspace")


class TestStatusTransitions:
    def test_transitions_are_guarded_by_current_status(self, repository) -> None:
        assert "IF status = 'pending'" in repository._mark_completed.query
        assert "IF status = 'pending'" in repository._mark_failed.query
        assert "IF status = 'completed'" in repository._mark_refunded.query

    @pytest.mark.asyncio
    async def test_mark_completed_applied(self, repository, mock_session) -> None:
        payment_id = uuid4()
        at = datetime.now(UTC)

        assert await repository.mark_completed(payment_id, "pay_1", "sig", at) is True
        mock_session.aexecute.assert_awaited_once_with(
            repository._mark_completed, ["pay_1", "sig", at, payment_id]
        )

    @pytest.mark.asyncio
    async def test_mark_refunded_not_applied(self, repository, mock_session) -> None:
        mock_session.aexecute.return_value = Mock(was_applied=False)
        assert (
            await repository.mark_refunded(uuid4(), "requested", datetime.now(UTC))
            is False
        )


class TestCreate:
    @pytest.mark.asyncio
    async def test_writes_lookup_rows(self, repository, mock_session) -> None:
        payment = create_course_payment(
            uuid4(), uuid4(), Decimal("999.00"), "INR", "order_1"
        )

        await repository.create(payment)

        statements = [call.args[0] for call in mock_session.aexecute.await_args_list]
        assert statements == [
            repository._insert_payment,
            repository._insert_by_order,
            repository._insert_by_user,
        ]
        assert mock_session.aexecute.await_args_list[1].args[1] == ["order_1", payment.id]

    @pytest.mark.asyncio
    async def test_get_by_unknown_order(self, repository, mock_session) -> None:
        result = Mock()
        result.one.return_value = None
        mock_session.aexecute.return_value = result
        assert await repository.get_by_order("order_x") is None


class TestApplications:
    @pytest.mark.asyncio
    async def test_record_application_once(self, repository, mock_session) -> None:
        application = PaymentApplication(
            correlation_id="order_1",
            payment_id=uuid4(),
            user_id=uuid4(),
            payment_type=PaymentType.COURSE,
            outcome=ApplicationOutcome.ENROLLMENT_CREATED,
            enrollment_id=uuid4(),
        )
        mock_session.aexecute.return_value = Mock(was_applied=False)

        assert await repository.record_application(application) is False
        params = mock_session.aexecute.call_args.args[1]
        assert params[0] == "order_1"
        assert params[4] == "enrollment_created"
        assert "IF NOT EXISTS" in repository._insert_application.query

    @pytest.mark.asyncio
    async def test_payment_row_round_trip(self, repository, mock_session) -> None:
        payment_id = uuid4()
        row = Mock(
            id=payment_id,
            user_id=uuid4(),
            payment_type="course",
            status="completed",
            amount=Decimal("999.00"),
            currency="INR",
            item_type="course",
            item_id=uuid4(),
            plan=None,
            duration=None,
            gateway_order_id="order_1",
            gateway_payment_id="pay_1",
            gateway_signature=None,
            failure_reason=None,
            refund_reason=None,
            created_at=datetime(2026, 1, 1),
            completed_at=datetime(2026, 1, 1, 0, 5),
            failed_at=None,
            refunded_at=None,
        )
        result = Mock()
        result.one.return_value = row
        mock_session.aexecute.return_value = result

        payment = await repository.get(payment_id)

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.is_completed
        assert payment.completed_at.tzinfo is not None


class TestListRecent:
    @pytest.mark.asyncio
    async def test_scan_is_bounded_and_sorted(self, repository, mock_session) -> None:
        def payment_row(created_at: datetime) -> Mock:
            return Mock(
                id=uuid4(),
                user_id=uuid4(),
                payment_type="course",
                status="pending",
                amount=Decimal("999.00"),
                currency="INR",
                item_type="course",
                item_id=uuid4(),
                plan=None,
                duration=None,
                gateway_order_id="order_1",
                gateway_payment_id=None,
                gateway_signature=None,
                failure_reason=None,
                refund_reason=None,
                created_at=created_at,
                completed_at=None,
                failed_at=None,
                refunded_at=None,
            )

        older, newer = payment_row(datetime(2026, 1, 1)), payment_row(datetime(2026, 2, 1))
        mock_session.aexecute.return_value = [older, newer]

        payments = await repository.list_recent(50)

        assert mock_session.aexecute.await_args.args[0] == (
            "SELECT * FROM test_keyspace.payments LIMIT 50"
        )
        assert [p.id for p in payments] == [newer.id, older.id]
