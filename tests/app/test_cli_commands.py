from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import yaml
from typer.testing import CliRunner

from feeds_to_pocket.app import AppState, app
from feeds_to_pocket.config import ConfigStore
from feeds_to_pocket.ui import SyncProgress

FEED_URL = "https://example.com/feed.xml"
OTHER_URL = "https://example.net/feed.xml"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    # handlers would otherwise bind to the runner's short-lived streams
    monkeypatch.setattr("feeds_to_pocket.app.configure_logging", lambda verbose=False: None)


@pytest.fixture
def stub_state(monkeypatch: pytest.MonkeyPatch, feed_server, pocket_server):
    def _build(config_path: Path, verbose: bool, quiet: bool) -> AppState:
        return AppState(
            store=ConfigStore(config_path),
            progress=SyncProgress(enabled=False),
            fetcher_factory=lambda config: feed_server.fetcher(),
            pocket_factory=pocket_server.factory(),
        )

    monkeypatch.setattr("feeds_to_pocket.app.build_state", _build)


def _read(path: Path) -> dict:
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def test_init_creates_empty_configuration(tmp_path: Path) -> None:
    path = tmp_path / "feeds.yaml"
    result = runner.invoke(app, [str(path), "init"])
    assert result.exit_code == 0, result.stdout
    assert path.exists()
    assert _read(path) == {}

    again = runner.invoke(app, [str(path), "init"])
    assert again.exit_code == 1
    assert "already exists" in again.stdout


def test_missing_configuration_is_fatal(tmp_path: Path) -> None:
    result = runner.invoke(app, [str(tmp_path / "missing.yaml"), "list"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_malformed_configuration_is_fatal(tmp_path: Path) -> None:
    path = tmp_path / "feeds.yaml"
    path.write_text("feeds: [unclosed", encoding="utf-8")
    result = runner.invoke(app, [str(path)])
    assert result.exit_code == 1


def test_global_switches_are_plain_flags(monkeypatch: pytest.MonkeyPatch, config_file) -> None:
    seen: list[tuple[bool, bool]] = []

    def _build(config_path: Path, verbose: bool, quiet: bool) -> AppState:
        seen.append((verbose, quiet))
        return AppState(
            store=ConfigStore(config_path),
            progress=SyncProgress(enabled=False),
            fetcher_factory=lambda config: None,
            pocket_factory=lambda config, require: None,
        )

    monkeypatch.setattr("feeds_to_pocket.app.build_state", _build)
    path = config_file()

    assert runner.invoke(app, ["--verbose", "--quiet", str(path), "list"]).exit_code == 0
    assert runner.invoke(app, [str(path), "list"]).exit_code == 0
    assert seen == [(True, True), (False, False)]


def test_set_customer_key_and_hidden_alias(config_file) -> None:
    path = config_file(consumer_key=None, access_token=None)
    result = runner.invoke(app, [str(path), "set-customer-key", " 1234-abcd "])
    assert result.exit_code == 0, result.stdout
    assert _read(path)["consumer_key"] == "1234-abcd"

    result = runner.invoke(app, [str(path), "set-consumer-key", "5678"])
    assert result.exit_code == 0, result.stdout
    assert _read(path)["consumer_key"] == "5678"

    help_result = runner.invoke(app, ["--help"])
    assert "set-customer-key" in help_result.stdout
    assert "set-consumer-key" not in help_result.stdout


def test_login_stores_access_token(stub_state, config_file) -> None:
    path = config_file(access_token=None)
    result = runner.invoke(app, [str(path), "login"], input="\n")
    assert result.exit_code == 0, result.stdout
    assert "Go to the following webpage to login" in result.stdout
    assert "There's already an access token" not in result.stdout
    assert _read(path)["access_token"] == "granted-token"


def test_login_retries_until_authorized(stub_state, pocket_server, config_file) -> None:
    pocket_server.unapproved_conversions = 1
    path = config_file(access_token="old-token")
    result = runner.invoke(app, [str(path), "login"], input="\n\n")
    assert result.exit_code == 0, result.stdout
    assert "There's already an access token" in result.stdout
    assert "Authorization failed" in result.stdout
    assert _read(path)["access_token"] == "granted-token"


def test_login_requires_consumer_key(stub_state, config_file) -> None:
    path = config_file(consumer_key=None, access_token=None)
    result = runner.invoke(app, [str(path), "login"], input="\n")
    assert result.exit_code == 1
    assert "set-customer-key" in result.stdout
    assert "access_token" not in _read(path)


def test_add_marks_current_entries_as_processed(
    stub_state, feed_server, pocket_server, render_rss, abc_items, config_file
) -> None:
    feed_server.documents[FEED_URL] = render_rss(abc_items)
    path = config_file()
    result = runner.invoke(app, [str(path), "add", "--tags", "comics, xkcd", FEED_URL])
    assert result.exit_code == 0, result.stdout
    assert pocket_server.added == []
    assert _read(path)["feeds"] == [
        {"url": FEED_URL, "tags": ["comics", "xkcd"], "processed_entries": ["a", "b", "c"]}
    ]


def test_add_unread_sends_current_entries(
    stub_state, feed_server, pocket_server, render_rss, abc_items, config_file
) -> None:
    feed_server.documents[FEED_URL] = render_rss(abc_items)
    path = config_file()
    result = runner.invoke(app, [str(path), "add", "--unread", FEED_URL])
    assert result.exit_code == 0, result.stdout
    assert len(pocket_server.added) == 3
    assert "3 sent to Pocket" in result.stdout


def test_add_unread_without_login_is_fatal(stub_state, config_file) -> None:
    path = config_file(access_token=None)
    result = runner.invoke(app, [str(path), "add", "--unread", FEED_URL])
    assert result.exit_code == 1
    assert "feeds" not in _read(path)


def test_add_existing_feed_reports_it(stub_state, feed_server, config_file) -> None:
    path = config_file(feeds=[{"url": FEED_URL, "processed_entries": ["x"]}])
    before = path.read_text(encoding="utf-8")
    result = runner.invoke(app, [str(path), "add", FEED_URL])
    assert result.exit_code == 0
    assert "already in your configuration" in result.stdout
    assert path.read_text(encoding="utf-8") == before
    assert feed_server.requests == []


def test_add_fails_without_saving_when_initial_fetch_fails(stub_state, config_file) -> None:
    path = config_file()
    before = path.read_text(encoding="utf-8")
    result = runner.invoke(app, [str(path), "add", FEED_URL])
    assert result.exit_code == 1
    assert "initial pass failed" in result.stdout
    assert path.read_text(encoding="utf-8") == before
    assert "feeds" not in _read(path)


def test_remove_feed(config_file) -> None:
    path = config_file(feeds=[{"url": FEED_URL}, {"url": OTHER_URL}])
    result = runner.invoke(app, [str(path), "remove", FEED_URL])
    assert result.exit_code == 0, result.stdout
    assert [feed["url"] for feed in _read(path)["feeds"]] == [OTHER_URL]

    missing = runner.invoke(app, [str(path), "remove", FEED_URL])
    assert missing.exit_code == 1
    assert "not in your configuration" in missing.stdout


def test_list_feeds(config_file) -> None:
    path = config_file(feeds=[{"url": FEED_URL, "tags": ["news"], "processed_entries": ["a", "b"]}])
    result = runner.invoke(app, [str(path), "list"])
    assert result.exit_code == 0, result.stdout
    assert "Feeds · 1 configured" in result.stdout
    assert "news" in result.stdout


def test_list_without_feeds(config_file) -> None:
    path = config_file()
    result = runner.invoke(app, [str(path), "list"])
    assert result.exit_code == 0
    assert "No feeds configured yet" in result.stdout


def test_sync_delivers_and_saves(
    stub_state, feed_server, pocket_server, render_rss, abc_items, config_file
) -> None:
    feed_server.documents[FEED_URL] = render_rss(abc_items)
    path = config_file(feeds=[{"url": FEED_URL, "processed_entries": ["a"]}])

    result = runner.invoke(app, [str(path)])

    assert result.exit_code == 0, result.stdout
    assert pocket_server.added_urls == ["https://example.com/b", "https://example.com/c"]
    assert _read(path)["feeds"][0]["processed_entries"] == ["a", "b", "c"]
    assert "2 entries sent to Pocket, 0 feed(s) skipped." in result.stdout

    rerun = runner.invoke(app, [str(path)])
    assert rerun.exit_code == 0
    assert len(pocket_server.added) == 2


def test_sync_succeeds_when_a_feed_fails(
    stub_state, feed_server, pocket_server, render_rss, abc_items, config_file
) -> None:
    feed_server.documents[FEED_URL] = httpx.Response(500)
    feed_server.documents[OTHER_URL] = render_rss(abc_items)
    path = config_file(feeds=[{"url": FEED_URL}, {"url": OTHER_URL}])

    result = runner.invoke(app, [str(path)])

    assert result.exit_code == 0, result.stdout
    assert "3 entries sent to Pocket, 1 feed(s) skipped." in result.stdout
    feeds = _read(path)["feeds"]
    assert "processed_entries" not in feeds[0]
    assert feeds[1]["processed_entries"] == ["a", "b", "c"]


def test_sync_without_access_token_is_fatal(stub_state, pocket_server, config_file) -> None:
    path = config_file(access_token=None, feeds=[{"url": FEED_URL}])
    result = runner.invoke(app, [str(path)])
    assert result.exit_code == 1
    assert "login" in result.stdout
    assert pocket_server.requests == []


def test_sync_saves_progress_before_credentials_failure(
    stub_state, feed_server, pocket_server, render_rss, abc_items, config_file
) -> None:
    feed_server.documents[FEED_URL] = render_rss(abc_items)
    pocket_server.add_responses["https://example.com/b"] = [httpx.Response(403)]
    path = config_file(feeds=[{"url": FEED_URL}])

    result = runner.invoke(app, [str(path)])

    assert result.exit_code == 1
    assert "rejected the credentials" in result.stdout
    assert _read(path)["feeds"][0]["processed_entries"] == ["a"]
