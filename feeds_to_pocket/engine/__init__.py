"""Engine components: fetch → parse → dedup."""

from .dedup import entry_identifier, new_entries
from .fetcher import FeedFetcher, FetchError, FetchFormatError, FetchNetworkError, FetchResponse
from .parser import (
    AtomFormat,
    FeedFormat,
    FeedFormatError,
    FetchedEntry,
    ParsedFeed,
    RssFormat,
    clean_link,
    parse_feed,
)

__all__ = [
    "AtomFormat",
    "FeedFetcher",
    "FeedFormat",
    "FeedFormatError",
    "FetchError",
    "FetchFormatError",
    "FetchNetworkError",
    "FetchResponse",
    "FetchedEntry",
    "ParsedFeed",
    "RssFormat",
    "clean_link",
    "entry_identifier",
    "new_entries",
    "parse_feed",
]
