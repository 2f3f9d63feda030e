"""Content library items sold individually (price lookup for checkout)."""

from .models import CONTENT_TABLES_CQL, ContentItem


__all__ = [
    "CONTENT_TABLES_CQL",
    "ContentItem",
]
