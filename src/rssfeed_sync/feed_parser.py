"""Fetching and normalizing RSS/Atom feeds using httpx and feedparser."""

import calendar
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import feedparser
import httpx

from rssfeed_sync.config import DEFAULT_FETCH_TIMEOUT
from rssfeed_sync.errors import FetchFailedError

logger = logging.getLogger(__name__)

REQUEST_HEADERS = {
    "User-Agent": "rssfeed-sync/0.1 (+https://pypi.org/project/rssfeed-sync/)",
    "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8",
}


@dataclass
class ParsedItem:
    """One normalized feed entry."""

    title: str | None = None
    link: str | None = None
    description: str | None = None
    authors: list[str] = field(default_factory=list)
    published: int | None = None


@dataclass
class ParsedFeed:
    """Result of fetching and parsing an RSS/Atom feed."""

    title: str | None
    items: list[ParsedItem]


def fetch_feed(
    url: str,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    client: httpx.Client | None = None,
) -> ParsedFeed:
    """Fetch and parse an RSS or Atom feed from a URL.

    Args:
        url: The feed URL to fetch and parse.
        timeout: Seconds to wait on the network before giving up.
        client: Optional httpx client to issue the request with.

    Returns:
        ParsedFeed with the feed title and its entries in document order.

    Raises:
        FetchFailedError: If the URL is invalid, unreachable, answers with
            an error status, or is not a valid feed.
    """
    _validate_url(url)
    content, content_type = _download(url, timeout, client)

    parsed = feedparser.parse(content, response_headers={"content-type": content_type})

    if not parsed.get("version") and not parsed.entries:
        raise FetchFailedError(url, "URL does not point to a valid RSS or Atom feed")
    if parsed.bozo and not parsed.entries and not parsed.feed.get("title"):
        raise FetchFailedError(url, f"malformed feed: {parsed.get('bozo_exception')}")
    if parsed.bozo:
        logger.debug("Feed %s has formatting issues: %s", url, parsed.get("bozo_exception"))

    return ParsedFeed(
        title=_clean(parsed.feed.get("title")),
        items=[_normalize_entry(entry) for entry in parsed.entries],
    )


def _validate_url(url: str) -> None:
    """Validate that the URL has a fetchable format."""
    try:
        result = urlparse(url)
    except ValueError:
        raise FetchFailedError(url, "invalid URL format")
    if result.scheme not in ("http", "https") or not result.netloc:
        raise FetchFailedError(url, "invalid URL format: only http and https are supported")


def _download(
    url: str, timeout: float, client: httpx.Client | None
) -> tuple[bytes, str]:
    """GET the URL and return the body and its content type.

    httpx applies ``timeout`` to each connect/read phase separately, so a
    server trickling bytes could hold the fetch open indefinitely. The body
    is streamed and the whole request is also held to ``timeout`` seconds.
    """
    deadline = time.monotonic() + timeout
    owns_client = client is None
    if owns_client:
        client = httpx.Client()
    try:
        with client.stream(
            "GET", url, headers=REQUEST_HEADERS, timeout=timeout, follow_redirects=True
        ) as response:
            if response.status_code >= 400:
                raise FetchFailedError(url, f"HTTP {response.status_code}")
            chunks = []
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if time.monotonic() > deadline:
                    raise FetchFailedError(url, f"timed out after {timeout:g}s")
            content_type = response.headers.get("content-type", "")
    except httpx.TimeoutException as e:
        raise FetchFailedError(url, f"timed out after {timeout:g}s") from e
    except httpx.HTTPError as e:
        raise FetchFailedError(url, str(e) or type(e).__name__) from e
    finally:
        if owns_client:
            client.close()

    return b"".join(chunks), content_type


def _normalize_entry(entry: dict) -> ParsedItem:
    """Turn a feedparser entry into a ParsedItem."""
    return ParsedItem(
        title=_clean(entry.get("title")),
        link=_entry_link(entry),
        description=_entry_description(entry),
        authors=_entry_authors(entry),
        published=_entry_timestamp(entry),
    )


def _entry_link(entry: dict) -> str | None:
    link = _clean(entry.get("link"))
    if link:
        return link
    for candidate in entry.get("links") or []:
        href = _clean(candidate.get("href"))
        if href:
            return href
    return None


def _entry_description(entry: dict) -> str | None:
    """Summary, else the first content body, else the content's src."""
    summary = _clean(entry.get("summary"))
    if summary:
        return summary
    for content in entry.get("content") or []:
        value = _clean(content.get("value")) or _clean(content.get("src"))
        if value:
            return value
    return None


def _entry_authors(entry: dict) -> list[str]:
    names = [_clean(a.get("name")) for a in entry.get("authors") or []]
    authors = [n for n in names if n]
    if not authors:
        single = _clean(entry.get("author"))
        if single:
            authors.append(single)
    return authors


def _entry_timestamp(entry: dict) -> int | None:
    """Published time, else updated time, as unix seconds."""
    for key in ("published_parsed", "updated_parsed"):
        value = entry.get(key)
        if isinstance(value, tuple):
            try:
                return calendar.timegm(value)
            except (ValueError, OverflowError, TypeError):
                continue
    return None


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None
