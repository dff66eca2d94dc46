"""Sync orchestration: fetch every feed and merge new items into the store."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from rssfeed_sync.config import DEFAULT_MAX_WORKERS
from rssfeed_sync.database import Database
from rssfeed_sync.errors import ConflictError, FetchFailedError, StorageError
from rssfeed_sync.feed_parser import ParsedFeed, ParsedItem, fetch_feed
from rssfeed_sync.models import Feed

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], ParsedFeed]


@dataclass
class FeedSyncResult:
    """Outcome of syncing one feed."""

    feed: Feed
    new_items: int = 0
    error: str | None = None
    failed_items: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncSummary:
    """Outcome of one sync run across all feeds."""

    results: list[FeedSyncResult] = field(default_factory=list)

    @property
    def total_new(self) -> int:
        return sum(r.new_items for r in self.results)

    @property
    def failures(self) -> list[FeedSyncResult]:
        return [r for r in self.results if not r.ok]


def merge_items(db: Database, feed_id: int, items: list[ParsedItem]) -> tuple[int, int]:
    """Insert unseen items for a feed.

    A storage failure on one item is logged and the rest are still tried.

    Returns:
        Tuple of (inserted count, failed count).
    """
    inserted = 0
    failed = 0
    for item in items:
        try:
            if db.insert_item_if_new(
                feed_id,
                title=item.title,
                link=item.link,
                description=item.description,
                authors=item.authors,
                published=item.published,
            ):
                inserted += 1
        except StorageError as e:
            failed += 1
            logger.warning("Failed to add item %r: %s", item.link, e)
    return inserted, failed


async def sync_all(
    db: Database,
    fetcher: Fetcher = fetch_feed,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> SyncSummary:
    """Fetch all registered feeds and store their new items.

    The feed list is read once at the start; feeds added while the run is
    in progress wait for the next run. Up to ``max_workers`` fetches run
    at a time in worker threads. Each completed fetch is merged in a worker
    thread and awaited before the next one starts, so one feed's writes
    never interleave with another's.
    """
    feeds = db.list_feeds()
    if not feeds:
        logger.info("No feeds to sync")
        return SyncSummary()

    logger.info("Syncing %d feeds", len(feeds))
    semaphore = asyncio.Semaphore(max(1, max_workers))

    async def fetch_one(feed: Feed) -> tuple[Feed, ParsedFeed | None, str | None]:
        async with semaphore:
            try:
                return feed, await asyncio.to_thread(fetcher, feed.url), None
            except FetchFailedError as e:
                return feed, None, str(e)
            except Exception as e:
                logger.exception("Unexpected error fetching %s", feed.url)
                return feed, None, f"unexpected error: {e}"

    results: dict[int, FeedSyncResult] = {}
    for next_done in asyncio.as_completed([fetch_one(f) for f in feeds]):
        feed, parsed, error = await next_done
        if error is not None:
            logger.warning("Feed '%s' failed: %s", feed.display_name, error)
            results[feed.id] = FeedSyncResult(feed=feed, error=error)
            continue

        inserted, failed = await asyncio.to_thread(merge_items, db, feed.id, parsed.items)
        logger.info("Feed '%s': %d new items", feed.display_name, inserted)
        results[feed.id] = FeedSyncResult(
            feed=feed, new_items=inserted, failed_items=failed
        )

    summary = SyncSummary(results=[results[f.id] for f in feeds])
    logger.info(
        "Sync complete: %d new items, %d feeds failed",
        summary.total_new,
        len(summary.failures),
    )
    return summary


def run_sync(db: Database, **kwargs) -> SyncSummary:
    """Run :func:`sync_all` to completion from synchronous code."""
    return asyncio.run(sync_all(db, **kwargs))


def add_feed(db: Database, url: str, fetcher: Fetcher = fetch_feed) -> tuple[Feed, int]:
    """Validate a feed by fetching it, then register it and ingest its items.

    Args:
        db: The feed store.
        url: The feed URL.
        fetcher: Callable used to fetch and parse the URL.

    Returns:
        Tuple of (saved Feed, count of ingested items).

    Raises:
        ConflictError: If the URL is already registered.
        FetchFailedError: If the feed cannot be fetched; nothing is stored.
    """
    if db.get_feed_by_url(url) is not None:
        raise ConflictError(f"feed already exists: {url}")

    logger.info("Fetching feed from %s", url)
    parsed = fetcher(url)

    feed_id = db.create_feed(url, parsed.title)
    feed = db.get_feed_by_id(feed_id)
    inserted, failed = merge_items(db, feed_id, parsed.items)
    logger.info("Added feed '%s' with %d items", feed.display_name, inserted)
    if failed:
        logger.warning(
            "Feed '%s': %d items could not be stored", feed.display_name, failed
        )
    return feed, inserted


def remove_feed(db: Database, url: str, resync: bool = False, **sync_kwargs) -> bool:
    """Remove a feed and its items. Returns False if the URL is unknown.

    With ``resync`` a full sync runs after a successful removal.
    """
    removed = db.delete_feed(url)
    if removed:
        logger.info("Removed feed %s", url)
        if resync:
            run_sync(db, **sync_kwargs)
    return removed


async def watch(
    db: Database,
    interval: int,
    fetcher: Fetcher = fetch_feed,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> None:
    """Run sync cycles indefinitely, ``interval`` seconds apart."""
    logger.info("Watcher started (interval: %ds)", interval)

    while True:
        try:
            summary = await sync_all(db, fetcher=fetcher, max_workers=max_workers)
            if summary.total_new > 0:
                logger.info("Sync cycle complete: %d new items", summary.total_new)
        except Exception as e:
            logger.error("Sync cycle failed: %s", e)

        await asyncio.sleep(interval)
