"""SQLite feed store for rssfeed-sync."""

import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Sequence

from rssfeed_sync.errors import ConflictError, NotFoundError, StorageError
from rssfeed_sync.models import AUTHOR_SEPARATOR, Feed, FeedItem

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feed (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL UNIQUE,
    title TEXT,
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS feed_item (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL REFERENCES feed(id) ON DELETE CASCADE,
    title TEXT,
    link TEXT,
    description TEXT,
    author TEXT,
    published INTEGER,
    is_read INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    UNIQUE(feed_id, link)
);

-- SQLite treats NULLs as distinct in UNIQUE(feed_id, link); this index
-- makes a linkless item collide with the feed's other linkless item.
CREATE UNIQUE INDEX IF NOT EXISTS idx_feed_item_null_link
    ON feed_item(feed_id, IFNULL(link, ''));

CREATE INDEX IF NOT EXISTS idx_feed_item_feed_id ON feed_item(feed_id);
CREATE INDEX IF NOT EXISTS idx_feed_item_published ON feed_item(published);
"""

ITEM_COLUMNS = (
    "id, feed_id, title, link, description, author, published, is_read, created_at"
)


class Database:
    """SQLite database manager for feeds and feed items.

    A single connection is shared by every caller. All statements run
    under one lock, so writes from concurrent sync workers are applied
    one at a time and each commits before the call returns.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        path = self.db_path
        if path != ":memory:":
            path = str(Path(path).expanduser())
        try:
            if path != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"failed to open database {self.db_path}: {e}") from e
        logger.debug("Opened database %s", self.db_path)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Database":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def _write(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute one write statement and commit it."""
        with self._lock:
            try:
                cursor = self.conn.execute(sql, params)
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise
            return cursor

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"query failed: {e}") from e

    # --- Feed operations ---

    def create_feed(self, url: str, title: str | None = None) -> int:
        """Insert a new feed and return its id.

        Raises:
            ConflictError: If a feed with this URL already exists.
        """
        try:
            cursor = self._write(
                "INSERT INTO feed (url, title, created_at) VALUES (?, ?, ?)",
                (url, title, _now()),
            )
        except sqlite3.IntegrityError as e:
            if "feed.url" in str(e):
                raise ConflictError(f"feed already exists: {url}") from e
            raise StorageError(f"failed to add feed {url}: {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"failed to add feed {url}: {e}") from e
        logger.debug("Created feed %d for %s", cursor.lastrowid, url)
        return cursor.lastrowid

    def delete_feed(self, url: str) -> bool:
        """Delete a feed and its items (cascade). Returns True if deleted."""
        try:
            cursor = self._write("DELETE FROM feed WHERE url = ?", (url,))
        except sqlite3.Error as e:
            raise StorageError(f"failed to remove feed {url}: {e}") from e
        return cursor.rowcount > 0

    def list_feeds(self) -> list[Feed]:
        """Return all feeds."""
        rows = self._query("SELECT id, url, title, created_at FROM feed ORDER BY id")
        return [_row_to_feed(r) for r in rows]

    def get_feed_by_url(self, url: str) -> Feed | None:
        """Look up a feed by its URL."""
        rows = self._query(
            "SELECT id, url, title, created_at FROM feed WHERE url = ?", (url,)
        )
        return _row_to_feed(rows[0]) if rows else None

    def get_feed_by_id(self, feed_id: int) -> Feed | None:
        """Look up a feed by its id."""
        rows = self._query(
            "SELECT id, url, title, created_at FROM feed WHERE id = ?", (feed_id,)
        )
        return _row_to_feed(rows[0]) if rows else None

    # --- Item operations ---

    def insert_item_if_new(
        self,
        feed_id: int,
        title: str | None = None,
        link: str | None = None,
        description: str | None = None,
        authors: Sequence[str] = (),
        published: int | None = None,
    ) -> bool:
        """Insert an item unless (feed_id, link) is already stored.

        The check and the insert are one ``INSERT OR IGNORE`` statement, so
        overlapping sync runs cannot both insert the same link.

        Returns:
            True if a new row was inserted, False for a duplicate.

        Raises:
            StorageError: On any other database failure, including an
                unknown feed_id.
        """
        try:
            cursor = self._write(
                """INSERT OR IGNORE INTO feed_item (feed_id, title, link, description,
                   author, published, is_read, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, 0, ?)""",
                (
                    feed_id,
                    title,
                    link,
                    description,
                    AUTHOR_SEPARATOR.join(authors) or None,
                    published,
                    _now(),
                ),
            )
        except sqlite3.Error as e:
            raise StorageError(f"failed to add item {link!r} to feed {feed_id}: {e}") from e
        return cursor.rowcount > 0

    def list_items(self, feed_id: int) -> list[FeedItem]:
        """Get items for a feed, newest first; undated items sort last."""
        rows = self._query(
            f"""SELECT {ITEM_COLUMNS} FROM feed_item WHERE feed_id = ?
                ORDER BY published IS NULL, published DESC, id DESC""",
            (feed_id,),
        )
        return [_row_to_item(r) for r in rows]

    def mark_read(self, item_id: int) -> None:
        """Mark an item as read. Marking an already-read item is a no-op.

        Raises:
            NotFoundError: If no item has this id.
        """
        try:
            cursor = self._write(
                "UPDATE feed_item SET is_read = 1 WHERE id = ?", (item_id,)
            )
        except sqlite3.Error as e:
            raise StorageError(f"failed to mark item {item_id} read: {e}") from e
        if cursor.rowcount == 0:
            raise NotFoundError(f"no item with id {item_id}")

    def get_item_count_for_feed(self, feed_id: int) -> int:
        """Get the number of items stored for a feed."""
        rows = self._query(
            "SELECT COUNT(*) AS cnt FROM feed_item WHERE feed_id = ?", (feed_id,)
        )
        return rows[0]["cnt"]

    def get_unread_count(self, feed_id: int) -> int:
        """Get the number of unread items stored for a feed."""
        rows = self._query(
            "SELECT COUNT(*) AS cnt FROM feed_item WHERE feed_id = ? AND is_read = 0",
            (feed_id,),
        )
        return rows[0]["cnt"]


# --- Helper functions ---


def _now() -> int:
    return int(time.time())


def _split_authors(value: str | None) -> list[str]:
    if not value:
        return []
    return [a for a in value.split(AUTHOR_SEPARATOR) if a]


def _row_to_feed(row: sqlite3.Row) -> Feed:
    """Convert a database row to a Feed dataclass."""
    return Feed(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        created_at=row["created_at"],
    )


def _row_to_item(row: sqlite3.Row) -> FeedItem:
    """Convert a database row to a FeedItem dataclass."""
    return FeedItem(
        id=row["id"],
        feed_id=row["feed_id"],
        title=row["title"],
        link=row["link"],
        description=row["description"],
        authors=_split_authors(row["author"]),
        published=row["published"],
        is_read=bool(row["is_read"]),
        created_at=row["created_at"],
    )
