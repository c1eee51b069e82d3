"""Sync pass wiring together fetching, dedup, Pocket submission and progress."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import structlog

from .config import Configuration, Feed, SyncSettings
from .engine import FeedFetcher, FetchError, entry_identifier, new_entries
from .logging_conf import component_logger
from .pocket import PocketClient, SubmitRejectedError, SubmitTransientError
from .ui import SyncProgress


class FeedState(str, Enum):
    """Lifecycle of one feed within a sync pass."""

    IDLE = "idle"
    FETCHING = "fetching"
    DEDUPING = "deduping"
    SUBMITTING = "submitting"
    MARKING_PROCESSED = "marking_processed"
    DONE = "done"
    ERRORED = "errored"


@dataclass(slots=True)
class FeedReport:
    """Outcome counters for one feed."""

    url: str
    state: FeedState = FeedState.IDLE
    fetched: int = 0
    new: int = 0
    delivered: int = 0
    rejected: int = 0
    pending: int = 0
    skipped_without_link: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state is FeedState.ERRORED


@dataclass(slots=True)
class SyncSummary:
    reports: list[FeedReport] = field(default_factory=list)

    def total(self, counter: str) -> int:
        return sum(getattr(report, counter) for report in self.reports)

    @property
    def failed_feeds(self) -> list[FeedReport]:
        return [report for report in self.reports if report.failed]


class CredentialsRejectedError(Exception):
    """Pocket refused the access token or consumer key during a sync pass.

    Entries delivered before the refusal are already marked processed on the
    in-memory configuration, which callers should still save.
    """

    def __init__(self, message: str, report: FeedReport) -> None:
        super().__init__(message)
        self.report = report


class SyncOrchestrator:
    """Run feeds through fetch, dedup, submit and mark, one at a time."""

    def __init__(
        self,
        fetcher: FeedFetcher,
        progress: SyncProgress | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.progress = progress or SyncProgress(enabled=False)
        self.logger = logger or component_logger("orchestrator")

    # ------------------------------------------------------------------
    def process_feed(
        self,
        feed: Feed,
        pocket: PocketClient | None,
        settings: SyncSettings | None = None,
    ) -> FeedReport:
        """Deliver the new entries of ``feed`` and record them as processed.

        With ``pocket`` set to None every current entry is marked processed
        without being submitted.

        Raises:
            CredentialsRejectedError: Pocket rejected the credentials.
        """
        settings = settings or SyncSettings()
        report = FeedReport(url=feed.url)
        feed_log = self.logger.bind(feed=feed.url)

        report.state = FeedState.FETCHING
        self.progress.feed_started(feed.url)
        try:
            fetched = self.fetcher.fetch(feed.url)
        except FetchError as exc:
            report.state = FeedState.ERRORED
            report.error = str(exc)
            feed_log.warning("feed_fetch_failed", error=str(exc))
            return report
        report.fetched = len(fetched)

        report.state = FeedState.DEDUPING
        fresh = new_entries(fetched, feed.processed)
        report.new = len(fresh)

        report.state = FeedState.SUBMITTING
        for entry in fresh:
            identifier = entry_identifier(entry)
            if entry.link is None:
                report.skipped_without_link += 1
                feed_log.info("entry_skipped_without_link", entry=identifier)
                feed.mark_processed(identifier)
                continue
            if pocket is None:
                feed.mark_processed(identifier)
                continue

            self.progress.entry_pushed(entry.link)
            try:
                pocket.add_item(entry.link, tags=feed.tags)
            except SubmitTransientError as exc:
                report.pending += 1
                feed_log.warning(
                    "entry_pending", entry=identifier, attempts=exc.attempts, error=str(exc)
                )
                continue
            except SubmitRejectedError as exc:
                if exc.credentials:
                    report.state = FeedState.ERRORED
                    report.error = str(exc)
                    raise CredentialsRejectedError(str(exc), report) from exc
                report.rejected += 1
                feed_log.warning("entry_rejected", entry=identifier, error=str(exc))
                if settings.mark_rejected_as_processed:
                    feed.mark_processed(identifier)
                continue
            report.delivered += 1
            feed.mark_processed(identifier)

        report.state = FeedState.MARKING_PROCESSED
        feed_log.debug(
            "feed_processed",
            fetched=report.fetched,
            new=report.new,
            delivered=report.delivered,
            rejected=report.rejected,
            pending=report.pending,
        )
        report.state = FeedState.DONE
        return report

    def sync(self, config: Configuration, pocket: PocketClient) -> SyncSummary:
        """Process every configured feed in order; the caller saves afterwards."""

        summary = SyncSummary()
        try:
            for feed in config.feeds:
                summary.reports.append(self.process_feed(feed, pocket, config.settings))
        finally:
            self.progress.close()
        return summary

    def add_feed(
        self,
        config: Configuration,
        url: str,
        tags: Iterable[str] = (),
        pocket: PocketClient | None = None,
    ) -> FeedReport | None:
        """Register ``url`` and run its initial pass.

        Returns None, leaving ``config`` untouched, when the feed is already
        configured. When the initial fetch fails the feed is taken back out
        of ``config`` and the errored report is returned.
        """
        if config.find_feed(url) is not None:
            return None
        feed = Feed(url=url, tags=list(tags))
        config.feeds.append(feed)
        try:
            report = self.process_feed(feed, pocket, config.settings)
        finally:
            self.progress.close()
        if report.failed:
            config.feeds.remove(feed)
            self.logger.warning("feed_not_added", feed=feed.url, error=report.error)
        return report

    @staticmethod
    def remove_feed(config: Configuration, url: str) -> bool:
        feed = config.find_feed(url)
        if feed is None:
            return False
        config.feeds.remove(feed)
        return True


__all__ = [
    "CredentialsRejectedError",
    "FeedReport",
    "FeedState",
    "SyncOrchestrator",
    "SyncSummary",
]
