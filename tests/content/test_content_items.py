"""Tests for content items and their repository (mocked session)."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.content.models import ContentItem
from src.content.repository import CassandraContentRepository


@pytest.mark.parametrize(
    ("is_premium", "price", "expected"),
    [
        (True, Decimal("199.00"), True),
        (True, Decimal("0"), False),
        (False, Decimal("199.00"), False),
    ],
)
def test_is_purchasable(is_premium: bool, price: Decimal, expected: bool) -> None:
    item = ContentItem(id=uuid4(), title="Body scan", is_premium=is_premium, price=price)
    assert item.is_purchasable is expected


class TestCassandraContentRepository:
    @pytest.fixture
    def mock_session(self):
        session = Mock(spec=Session)
        session.prepare = Mock(side_effect=lambda query: Mock(query=query))
        session.aexecute = AsyncMock()
        return session

    @pytest.mark.asyncio
    async def test_get_converts_row(self, mock_session) -> None:
        row = Mock(
            id=uuid4(),
            title="Body scan",
            is_premium=True,
            price=Decimal("199.00"),
            currency=None,
            created_at=datetime(2026, 1, 5, 8, 0),
        )
        mock_session.aexecute.return_value = Mock(one=Mock(return_value=row))
        repository = CassandraContentRepository(mock_session, "test_keyspace")

        item = await repository.get(row.id)

        assert "test_keyspace.content_items" in repository._get_item.query
        assert item.is_purchasable is True
        assert item.currency == "INR"
        assert item.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_unknown(self, mock_session) -> None:
        mock_session.aexecute.return_value = Mock(one=Mock(return_value=None))
        repository = CassandraContentRepository(mock_session, "test_keyspace")
        assert await repository.get(uuid4()) is None
