"""Command line interface for rssfeed-sync."""

import argparse
import asyncio
import functools
import logging
import sys

from rssfeed_sync.config import Config
from rssfeed_sync.database import Database
from rssfeed_sync.errors import NotFoundError, RssFeedSyncError
from rssfeed_sync.feed_parser import fetch_feed
from rssfeed_sync.scheduler import Scheduler, default_command
from rssfeed_sync.sync import add_feed, remove_feed, run_sync, watch

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rssfeed-sync",
        description="Fetch RSS/Atom feeds and keep their new items in a local database.",
    )
    parser.add_argument("--db", dest="db_path", help="Path to the SQLite database")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a feed")
    add.add_argument("url", help="The URL of the RSS/Atom resource")

    remove = sub.add_parser("remove", help="Remove a feed and its items")
    remove.add_argument("url", help="The URL of the RSS/Atom resource")
    remove.add_argument("--resync", action="store_true", help="Sync the remaining feeds afterwards")

    sub.add_parser("list", help="List registered feeds")

    items = sub.add_parser("items", help="List the stored items of a feed")
    items.add_argument("url", help="The URL of the RSS/Atom resource")
    items.add_argument("--unread", action="store_true", help="Only show unread items")

    read = sub.add_parser("read", help="Mark an item as read")
    read.add_argument("item_id", type=int)

    sync = sub.add_parser("sync", help="Fetch all feeds and store new items")
    sync.add_argument("--strict", action="store_true", help="Exit with status 1 if any feed failed")

    schedule = sub.add_parser("schedule", help="Run sync periodically via crontab")
    schedule.add_argument(
        "-m", "--minutes", type=int, default=60, metavar="MINUTES",
        help="Minutes between syncs, 1 to 1440 (default: 60)",
    )

    sub.add_parser("unschedule", help="Remove the crontab entry")

    watch_cmd = sub.add_parser("watch", help="Sync in a loop without cron")
    watch_cmd.add_argument("--interval", type=int, help="Seconds between syncs")

    return parser


def cmd_add(args, db: Database, config: Config) -> int:
    print(f"Fetching feed from {args.url}...")
    feed, count = add_feed(db, args.url, fetcher=_fetcher(config))
    print(f"Added feed: {feed.display_name}")
    print(f"Found {count} items")
    return 0


def cmd_remove(args, db: Database, config: Config) -> int:
    if remove_feed(db, args.url, resync=args.resync, **_sync_options(config)):
        print(f"Removed feed: {args.url}")
    else:
        print(f"Feed not found: {args.url}")
    return 0


def cmd_list(args, db: Database, config: Config) -> int:
    feeds = db.list_feeds()
    if not feeds:
        print("No feeds found. Add one with: rssfeed-sync add <url>")
        return 0

    print(f"Feeds ({len(feeds)})")
    print()
    for feed in feeds:
        print(f"  [{feed.id}] {feed.title or '(no title)'}")
        print(f"      URL: {feed.url}")
        print(
            f"      Items: {db.get_item_count_for_feed(feed.id)}"
            f" ({db.get_unread_count(feed.id)} unread)"
        )
        print()
    return 0


def cmd_items(args, db: Database, config: Config) -> int:
    feed = db.get_feed_by_url(args.url)
    if feed is None:
        raise NotFoundError(f"no feed with URL {args.url}")

    for item in db.list_items(feed.id):
        if args.unread and item.is_read:
            continue
        marker = " " if item.is_read else "*"
        date = item.published_at.strftime("%Y-%m-%d %H:%M") if item.published_at else "----"
        print(f"{marker} [{item.id}] {date}  {item.title or '(no title)'}")
        if item.link:
            print(f"      {item.link}")
    return 0


def cmd_read(args, db: Database, config: Config) -> int:
    db.mark_read(args.item_id)
    print(f"Marked item {args.item_id} as read")
    return 0


def cmd_sync(args, db: Database, config: Config) -> int:
    summary = run_sync(db, **_sync_options(config))
    if not summary.results:
        print("No feeds to sync. Add one with: rssfeed-sync add <url>")
        return 0

    for result in summary.results:
        if result.ok:
            line = f"{result.feed.display_name} ... ({result.new_items} new items)"
            if result.failed_items:
                line += f", {result.failed_items} items failed"
            print(line)
        else:
            print(f"{result.feed.display_name} ... failed: {result.error}")
    print()
    print(f"Sync complete. {summary.total_new} new items added.")
    return 1 if args.strict and summary.failures else 0


def cmd_schedule(args, db: Database, config: Config) -> int:
    scheduler = Scheduler(default_command(config.db_path))
    description = scheduler.install(args.minutes)
    print(f"Sync scheduled to run {description}")
    return 0


def cmd_unschedule(args, db: Database, config: Config) -> int:
    scheduler = Scheduler(default_command(config.db_path))
    if scheduler.uninstall():
        print("Scheduled sync removed")
    else:
        print("No scheduled sync found")
    return 0


def cmd_watch(args, db: Database, config: Config) -> int:
    interval = args.interval or config.poll_interval
    try:
        asyncio.run(watch(db, interval, **_sync_options(config)))
    except KeyboardInterrupt:
        print("\nGoodbye!")
    return 0


COMMANDS = {
    "add": cmd_add,
    "remove": cmd_remove,
    "list": cmd_list,
    "items": cmd_items,
    "read": cmd_read,
    "sync": cmd_sync,
    "schedule": cmd_schedule,
    "unschedule": cmd_unschedule,
    "watch": cmd_watch,
}


def main(argv: list[str] | None = None) -> int:
    """Run rssfeed-sync and return the process exit status."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        config = Config.from_env(args.db_path)
    except RssFeedSyncError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    db = Database(config.db_path)
    try:
        db.connect()
        return COMMANDS[args.command](args, db, config)
    except RssFeedSyncError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


def _fetcher(config: Config):
    return functools.partial(fetch_feed, timeout=config.fetch_timeout)


def _sync_options(config: Config) -> dict:
    return {"fetcher": _fetcher(config), "max_workers": config.max_workers}
