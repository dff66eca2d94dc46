"""Data models for rssfeed-sync."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

AUTHOR_SEPARATOR = ", "


@dataclass
class Feed:
    """Represents a registered RSS/Atom source."""

    url: str
    title: str | None = None
    created_at: int = 0
    id: int | None = None

    @property
    def display_name(self) -> str:
        return self.title or self.url


@dataclass
class FeedItem:
    """Represents a single entry ingested from a feed."""

    feed_id: int
    title: str | None = None
    link: str | None = None
    description: str | None = None
    authors: list[str] = field(default_factory=list)
    published: int | None = None
    is_read: bool = False
    created_at: int = 0
    id: int | None = None

    @property
    def author(self) -> str | None:
        """Authors as stored in the single ``author`` column."""
        return AUTHOR_SEPARATOR.join(self.authors) or None

    @property
    def published_at(self) -> datetime | None:
        if self.published is None:
            return None
        return datetime.fromtimestamp(self.published, tz=timezone.utc)
