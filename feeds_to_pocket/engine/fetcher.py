"""HTTP retrieval of feed documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

import httpx
import structlog

from .. import USER_AGENT
from .parser import FeedFormatError, FetchedEntry, ParsedFeed, parse_feed

DEFAULT_TIMEOUT = 30.0


class FetchError(Exception):
    """Base class for per-feed retrieval failures."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class FetchNetworkError(FetchError):
    """Connection, timeout or HTTP status failure."""

    def __init__(self, message: str, url: str, status_code: int | None = None) -> None:
        super().__init__(message, url)
        self.status_code = status_code


class FetchFormatError(FetchError):
    """The body was downloaded but is neither RSS nor Atom."""


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    content: bytes
    headers: Dict[str, str] = field(default_factory=dict)


class FeedFetcher:
    """Download feeds over HTTP(S) and hand them to the parser.

    No retries happen here; a failed feed is simply tried again on the next
    invocation.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = USER_AGENT,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.timeout = timeout
        self.logger = logger or structlog.get_logger("feeds_to_pocket.fetcher").bind(
            component="fetcher"
        )
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout)
        self._headers = {"User-Agent": user_agent}

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "FeedFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def download(self, url: str) -> FetchResponse:
        try:
            response = self._client.get(url, headers=self._headers, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise FetchNetworkError(f"failed to download feed at {url}: {exc}", url) from exc
        if not response.is_success:
            raise FetchNetworkError(
                f"the HTTP request to <{url}> didn't return a success status: "
                f"{response.status_code} {response.reason_phrase}",
                url,
                status_code=response.status_code,
            )
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
        )

    def fetch_parsed(self, url: str) -> ParsedFeed:
        response = self.download(url)
        try:
            parsed = parse_feed(
                response.content,
                base_url=response.url,
                content_type=response.headers.get("content-type"),
                logger=self.logger,
            )
        except FeedFormatError as exc:
            raise FetchFormatError(
                f"failed to parse feed at {url} as either RSS or Atom: {exc}", url
            ) from exc
        for warning in parsed.warnings:
            self.logger.warning("feed_bozo", url=url, warning=warning)
        return parsed

    def fetch(self, url: str) -> list[FetchedEntry]:
        """Return the entries of the feed at ``url`` in document order."""

        return self.fetch_parsed(url).entries


__all__ = [
    "FeedFetcher",
    "FetchError",
    "FetchFormatError",
    "FetchNetworkError",
    "FetchResponse",
]
