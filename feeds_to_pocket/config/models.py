"""Pydantic models describing the persisted feeds configuration."""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationInfo,
    field_validator,
    model_validator,
)


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class SyncSettings(BaseModel):
    """Tunables for the sync pass and the Pocket submission retry loop."""

    model_config = ConfigDict(extra="allow")

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    request_timeout: float = 30.0
    # Policy for entries Pocket refuses (e.g. invalid URL): True keeps them
    # from being resubmitted on every run.
    mark_rejected_as_processed: bool = True

    @model_validator(mode="after")
    def _validate_bounds(self) -> "SyncSettings":
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_seconds < 0 or self.max_backoff_seconds < 0:
            raise ValueError("backoff values must be non-negative")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        return self


class Feed(BaseModel):
    """One monitored feed together with the entries already handled."""

    model_config = ConfigDict(extra="allow")

    url: str
    tags: list[str] = Field(default_factory=list)
    processed_entries: list[str] = Field(default_factory=list)

    _processed_index: set[str] = PrivateAttr(default_factory=set)

    @field_validator("url", mode="before")
    @classmethod
    def _strip_url(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("feed url cannot be empty")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            raise ValueError("tags expects a list of strings")
        tags = (str(tag).strip() for tag in value)
        return _unique(tag for tag in tags if tag)

    @field_validator("processed_entries", mode="before")
    @classmethod
    def _coerce_processed(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise ValueError("processed_entries expects a list of strings")
        return _unique(str(item) for item in value)

    def model_post_init(self, __context: Any) -> None:
        self._processed_index = set(self.processed_entries)

    @property
    def processed(self) -> frozenset[str]:
        return frozenset(self._processed_index)

    def is_processed(self, identifier: str) -> bool:
        return identifier in self._processed_index

    def mark_processed(self, identifier: str) -> bool:
        """Record ``identifier``; returns False when it was already known."""

        if identifier in self._processed_index:
            return False
        self._processed_index.add(identifier)
        self.processed_entries.append(identifier)
        return True


class Configuration(BaseModel):
    """Root persisted state: credentials, settings and the feed list."""

    model_config = ConfigDict(extra="allow")

    consumer_key: str | None = None
    access_token: str | None = None
    settings: SyncSettings = Field(default_factory=SyncSettings)
    feeds: list[Feed] = Field(default_factory=list)

    @field_validator("consumer_key", "access_token", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("settings", "feeds", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "settings" else []
        return value

    @model_validator(mode="after")
    def _validate_unique_feeds(self) -> "Configuration":
        seen: set[str] = set()
        for feed in self.feeds:
            if feed.url in seen:
                raise ValueError(f"duplicate feed url: {feed.url}")
            seen.add(feed.url)
        return self

    def find_feed(self, url: str) -> Feed | None:
        url = url.strip()
        return next((feed for feed in self.feeds if feed.url == url), None)

    def to_payload(self) -> dict[str, Any]:
        """Serialise for the configuration file, omitting unset/empty fields."""

        payload = self.model_dump(mode="json", exclude_none=True)
        if self.settings == SyncSettings():
            payload.pop("settings", None)
        feeds = []
        for feed in payload.pop("feeds", []):
            for key in ("tags", "processed_entries"):
                if not feed.get(key):
                    feed.pop(key, None)
            feeds.append(feed)
        if feeds:
            payload["feeds"] = feeds
        return payload


__all__ = ["Configuration", "Feed", "SyncSettings"]
