# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Read access to purchasable content items."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import ContentItem


if TYPE_CHECKING:
    from cassandra.cluster import Session


class ContentRepository(Protocol):
    async def get(self, content_id: UUID) -> ContentItem | None: ...


class CassandraContentRepository:
    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._get_item = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.content_items WHERE id = ?
        """)

    async def get(self, content_id: UUID) -> ContentItem | None:
        result = await self.session.aexecute(self._get_item, [content_id])
        row = result.one()
        return ContentItem.from_row(row) if row else None
