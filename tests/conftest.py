"""Shared fixtures: sample feed documents, mocked HTTP transports, config builders."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

import httpx
import pytest

from feeds_to_pocket.config import ConfigStore, Configuration
from feeds_to_pocket.engine import FeedFetcher
from feeds_to_pocket.pocket import PocketClient, RetryPolicy


def rss_document(items: Sequence[Mapping[str, str]], title: str = "Example feed") -> str:
    """Render a minimal RSS 2.0 document; each item may carry guid, link and title."""

    rendered = []
    for item in items:
        parts = []
        if "title" in item:
            parts.append(f"<title>{item['title']}</title>")
        if "guid" in item:
            parts.append(f'<guid isPermaLink="false">{item["guid"]}</guid>')
        if "link" in item:
            parts.append(f"<link>{item['link']}</link>")
        rendered.append("<item>" + "".join(parts) + "</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://example.com/</link>"
        "<description>Sample</description>"
        + "".join(rendered)
        + "</channel></rss>"
    )


ATOM_DOCUMENT = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom sample</title>
  <id>urn:example:feed</id>
  <updated>2024-03-01T10:00:00Z</updated>
  <entry>
    <title>First</title>
    <id>urn:example:1</id>
    <link rel="alternate" href="https://example.org/posts/1"/>
    <link rel="edit" href="https://example.org/edit/1"/>
    <updated>2024-03-01T09:00:00Z</updated>
  </entry>
  <entry>
    <title>Second</title>
    <id>urn:example:2</id>
    <link href="/posts/2"/>
    <updated>2024-03-01T08:00:00Z</updated>
  </entry>
</feed>
"""

HTML_DOCUMENT = "<!doctype html><html><head><title>Not a feed</title></head><body><p>hello</p></body></html>"


@pytest.fixture
def abc_items() -> list[dict[str, str]]:
    return [
        {"guid": "a", "link": "https://example.com/a", "title": "A"},
        {"guid": "b", "link": "https://example.com/b", "title": "B"},
        {"guid": "c", "link": "https://example.com/c", "title": "C"},
    ]


class FeedServer:
    """httpx transport handler serving canned feed documents by URL."""

    def __init__(self, documents: Mapping[str, Any] | None = None) -> None:
        self.documents: dict[str, Any] = dict(documents or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        document = self.documents.get(str(request.url))
        if document is None:
            return httpx.Response(404, text="not found")
        if isinstance(document, Exception):
            raise document
        if isinstance(document, httpx.Response):
            return document
        return httpx.Response(
            200, text=document, headers={"Content-Type": "application/rss+xml; charset=utf-8"}
        )

    def fetcher(self) -> FeedFetcher:
        client = httpx.Client(transport=httpx.MockTransport(self), follow_redirects=True)
        return FeedFetcher(client=client)


class PocketServer:
    """httpx transport handler emulating the Pocket v3 endpoints.

    ``add_responses`` maps an item URL to a list of responses consumed one per
    attempt; once exhausted (or when absent) the add succeeds.
    """

    def __init__(self) -> None:
        self.added: list[dict[str, Any]] = []
        self.attempts: list[str] = []
        self.add_responses: dict[str, list[Any]] = {}
        self.request_code = "req-code"
        self.unapproved_conversions = 0
        self.access_token = "granted-token"
        self.username = "reader"
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        payload = json.loads(request.content or b"{}")
        path = request.url.path
        if path == "/v3/oauth/request":
            return httpx.Response(200, json={"code": self.request_code, "state": None})
        if path == "/v3/oauth/authorize":
            if self.unapproved_conversions > 0:
                self.unapproved_conversions -= 1
                return httpx.Response(
                    403, headers={"X-Error-Code": "158", "X-Error": "User rejected code."}
                )
            return httpx.Response(
                200, json={"access_token": self.access_token, "username": self.username}
            )
        if path == "/v3/add":
            url = payload["url"]
            self.attempts.append(url)
            queued = self.add_responses.get(url)
            if queued:
                outcome = queued.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
            self.added.append(payload)
            return httpx.Response(200, json={"item": {"given_url": url}, "status": 1})
        return httpx.Response(404)

    @property
    def added_urls(self) -> list[str]:
        return [item["url"] for item in self.added]

    def client(
        self,
        consumer_key: str = "consumer",
        access_token: str | None = "token",
        max_attempts: int = 3,
        sleeps: list[float] | None = None,
    ) -> PocketClient:
        recorded = sleeps if sleeps is not None else []
        return PocketClient(
            consumer_key,
            access_token,
            client=httpx.Client(transport=httpx.MockTransport(self)),
            retry=RetryPolicy(max_attempts=max_attempts, backoff_seconds=1.0),
            sleep=recorded.append,
        )

    def factory(self, sleeps: list[float] | None = None) -> Callable[[Configuration, bool], PocketClient]:
        """Build clients from a configuration the way the CLI does."""

        def _factory(config: Configuration, require_access_token: bool) -> PocketClient:
            recorded = sleeps if sleeps is not None else []
            return PocketClient.from_config(
                config,
                require_access_token=require_access_token,
                client=httpx.Client(transport=httpx.MockTransport(self)),
                sleep=recorded.append,
            )

        return _factory


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()


@pytest.fixture
def pocket_server() -> PocketServer:
    return PocketServer()


@pytest.fixture
def make_config() -> Callable[..., Configuration]:
    def _builder(
        feeds: Iterable[dict[str, Any]] = (),
        consumer_key: str | None = "consumer",
        access_token: str | None = "token",
        **extra: Any,
    ) -> Configuration:
        payload: dict[str, Any] = {
            "consumer_key": consumer_key,
            "access_token": access_token,
            "feeds": list(feeds),
        }
        payload.update(extra)
        return Configuration.model_validate(payload)

    return _builder


@pytest.fixture
def config_file(tmp_path: Path, make_config) -> Callable[..., Path]:
    """Write a configuration built by ``make_config`` and return its path."""

    def _writer(name: str = "feeds.yaml", **kwargs: Any) -> Path:
        path = tmp_path / name
        ConfigStore(path).save(make_config(**kwargs))
        return path

    return _writer


@pytest.fixture
def render_rss() -> Callable[..., str]:
    return rss_document


@pytest.fixture
def atom_document() -> str:
    return ATOM_DOCUMENT


@pytest.fixture
def html_document() -> str:
    return HTML_DOCUMENT
