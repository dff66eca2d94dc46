"""Tests for the SQLite feed store."""

import sqlite3
import threading

import pytest

from rssfeed_sync.database import Database
from rssfeed_sync.errors import ConflictError, NotFoundError, StorageError

FEED_URL = "https://example.com/feed.xml"


@pytest.fixture
def feed_id(db):
    return db.create_feed(FEED_URL, "Test Feed")


class TestSchema:
    def test_connect_is_idempotent(self, tmp_db_path):
        for _ in range(2):
            database = Database(tmp_db_path)
            database.connect()
            database.close()

        with Database(tmp_db_path) as database:
            assert database.list_feeds() == []

    def test_data_survives_reconnect(self, tmp_db_path):
        with Database(tmp_db_path) as database:
            database.create_feed(FEED_URL, "Test Feed")

        with Database(tmp_db_path) as database:
            assert [f.url for f in database.list_feeds()] == [FEED_URL]

    def test_creates_missing_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "feeds.db"
        with Database(str(path)) as database:
            database.create_feed(FEED_URL)
        assert path.exists()

    def test_in_memory_database(self):
        with Database(":memory:") as database:
            database.create_feed(FEED_URL)
            assert len(database.list_feeds()) == 1

    def test_requires_connect(self):
        with pytest.raises(RuntimeError):
            Database(":memory:").list_feeds()


class TestFeeds:
    def test_add_and_list_feeds(self, db, feed_id):
        feeds = db.list_feeds()
        assert len(feeds) == 1
        assert feeds[0].id == feed_id
        assert feeds[0].url == FEED_URL
        assert feeds[0].title == "Test Feed"
        assert feeds[0].created_at > 0

    def test_title_is_optional(self, db):
        feed_id = db.create_feed(FEED_URL)
        assert db.get_feed_by_id(feed_id).title is None

    def test_duplicate_url_conflicts_and_keeps_original(self, db, feed_id):
        with pytest.raises(ConflictError):
            db.create_feed(FEED_URL, "Duplicate")

        feeds = db.list_feeds()
        assert len(feeds) == 1
        assert feeds[0].id == feed_id
        assert feeds[0].title == "Test Feed"

    def test_get_feed_by_url(self, db, feed_id):
        assert db.get_feed_by_url(FEED_URL).id == feed_id
        assert db.get_feed_by_url("https://nonexistent.com/feed.xml") is None

    def test_delete_feed(self, db, feed_id):
        assert db.delete_feed(FEED_URL) is True
        assert db.list_feeds() == []

    def test_delete_unknown_feed_returns_false(self, db):
        assert db.delete_feed("https://nonexistent.com/feed.xml") is False

    def test_delete_cascades_to_items(self, db, feed_id, tmp_db_path):
        db.insert_item_if_new(feed_id, "Item 1", "https://example.com/item1")
        db.insert_item_if_new(feed_id, "Item 2", "https://example.com/item2")
        assert db.get_item_count_for_feed(feed_id) == 2

        db.delete_feed(FEED_URL)

        assert db.list_items(feed_id) == []
        conn = sqlite3.connect(tmp_db_path)
        try:
            orphans = conn.execute(
                "SELECT COUNT(*) FROM feed_item WHERE feed_id = ?", (feed_id,)
            ).fetchone()[0]
        finally:
            conn.close()
        assert orphans == 0


class TestItems:
    def test_insert_new_item(self, db, feed_id):
        inserted = db.insert_item_if_new(
            feed_id,
            title="Test Item",
            link="https://example.com/item1",
            description="Item description",
            authors=["Alice", "Bob"],
            published=1234567890,
        )
        assert inserted is True

        items = db.list_items(feed_id)
        assert len(items) == 1
        item = items[0]
        assert item.title == "Test Item"
        assert item.link == "https://example.com/item1"
        assert item.description == "Item description"
        assert item.authors == ["Alice", "Bob"]
        assert item.author == "Alice, Bob"
        assert item.published == 1234567890
        assert item.is_read is False
        assert item.created_at > 0

    def test_duplicate_link_is_not_inserted(self, db, feed_id):
        assert db.insert_item_if_new(
            feed_id, "Test Item", "https://example.com/item1", "Description"
        )
        assert not db.insert_item_if_new(
            feed_id, "Different Title", "https://example.com/item1", "Different Description"
        )

        items = db.list_items(feed_id)
        assert len(items) == 1
        assert items[0].title == "Test Item"
        assert items[0].description == "Description"

    def test_same_link_in_different_feeds(self, db, feed_id):
        other_id = db.create_feed("https://other.example.com/feed.xml")
        link = "https://example.com/shared"
        assert db.insert_item_if_new(feed_id, "A", link)
        assert db.insert_item_if_new(other_id, "B", link)

    def test_only_one_linkless_item_per_feed(self, db, feed_id):
        assert db.insert_item_if_new(feed_id, "No link 1", None)
        assert not db.insert_item_if_new(feed_id, "No link 2", None)
        assert db.get_item_count_for_feed(feed_id) == 1

    def test_unknown_feed_is_a_storage_error(self, db):
        with pytest.raises(StorageError):
            db.insert_item_if_new(999, "Orphan", "https://example.com/orphan")

    def test_items_ordered_newest_first_undated_last(self, db, feed_id):
        db.insert_item_if_new(feed_id, "Old", "https://example.com/old", published=100)
        db.insert_item_if_new(feed_id, "Undated", "https://example.com/undated")
        db.insert_item_if_new(feed_id, "New", "https://example.com/new", published=300)
        db.insert_item_if_new(feed_id, "Middle", "https://example.com/middle", published=200)

        titles = [item.title for item in db.list_items(feed_id)]
        assert titles == ["New", "Middle", "Old", "Undated"]

    def test_list_items_for_unknown_feed_is_empty(self, db):
        assert db.list_items(12345) == []

    def test_concurrent_inserts_store_each_link_once(self, db, feed_id):
        results = []

        def insert_all():
            for n in range(20):
                results.append(
                    db.insert_item_if_new(feed_id, f"Item {n}", f"https://example.com/{n}")
                )

        threads = [threading.Thread(target=insert_all) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(results) == 20
        assert db.get_item_count_for_feed(feed_id) == 20


class TestMarkRead:
    def test_mark_item_read(self, db, feed_id):
        db.insert_item_if_new(feed_id, "Test Item", "https://example.com/item1")
        item = db.list_items(feed_id)[0]
        assert db.get_unread_count(feed_id) == 1

        db.mark_read(item.id)

        assert db.list_items(feed_id)[0].is_read is True
        assert db.get_unread_count(feed_id) == 0

    def test_mark_read_is_idempotent(self, db, feed_id):
        db.insert_item_if_new(feed_id, "Test Item", "https://example.com/item1")
        item = db.list_items(feed_id)[0]

        db.mark_read(item.id)
        db.mark_read(item.id)

        assert db.list_items(feed_id)[0].is_read is True

    def test_mark_unknown_item(self, db):
        with pytest.raises(NotFoundError):
            db.mark_read(424242)
