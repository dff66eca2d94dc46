"""Shared test fixtures for rssfeed-sync tests."""

import os
import tempfile

import httpx
import pytest

from rssfeed_sync.database import Database
from rssfeed_sync.feed_parser import ParsedFeed, ParsedItem


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article</title>
      <link>https://example.com/item1</link>
      <guid>article-1</guid>
      <description>Description of the first article</description>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/item2</link>
      <guid>article-2</guid>
      <description>Description of the second article</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <subtitle>A test Atom feed</subtitle>
  <id>urn:uuid:feed</id>
  <updated>2026-02-13T10:00:00Z</updated>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <author><name>  Alice  </name></author>
    <author><name>Bob</name></author>
    <summary>Summary of entry 1</summary>
    <published>2026-02-13T10:00:00Z</published>
    <updated>2026-02-14T10:00:00Z</updated>
  </entry>
  <entry>
    <title>Atom Entry 2</title>
    <link href="https://example.com/entry-2"/>
    <id>urn:uuid:entry-2</id>
    <content type="text">Body of entry 2</content>
    <updated>2026-02-12T08:30:00Z</updated>
  </entry>
</feed>"""

SAMPLE_NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def db(tmp_db_path):
    """A connected Database on a temporary file."""
    database = Database(tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def sample_rss_xml():
    """Sample valid RSS 2.0 XML."""
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    """Sample valid Atom XML."""
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_not_a_feed_xml():
    """Sample XML that is not a feed."""
    return SAMPLE_NOT_A_FEED_XML


@pytest.fixture
def mock_http_client():
    """Build an httpx client that answers every request with a fixed response."""
    clients = []

    def _make(body: str = "", status_code: int = 200, error: Exception | None = None):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if error is not None:
                raise error
            return httpx.Response(
                status_code,
                content=body.encode("utf-8"),
                headers={"content-type": "application/xml"},
            )

        client = httpx.Client(transport=httpx.MockTransport(handler))
        client.requests = requests
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


def make_parsed_feed(title: str | None, *links: str | None) -> ParsedFeed:
    """A ParsedFeed with one item per link, newest first."""
    return ParsedFeed(
        title=title,
        items=[
            ParsedItem(
                title=f"Item {n}",
                link=link,
                description=f"Description {n}",
                authors=["Author"],
                published=1770976800 - n * 3600,
            )
            for n, link in enumerate(links)
        ],
    )


class FakeFetcher:
    """Stands in for fetch_feed, serving canned feeds or errors by URL."""

    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[str] = []

    def __call__(self, url: str) -> ParsedFeed:
        self.calls.append(url)
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_fetcher():
    """Factory for FakeFetcher instances."""
    return FakeFetcher


@pytest.fixture
def parsed_feed():
    """Factory for ParsedFeed instances."""
    return make_parsed_feed
