"""Typer CLI entrypoint for feeds-to-pocket."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, NoReturn, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigError, ConfigStore, Configuration
from .engine import FeedFetcher
from .logging_conf import component_logger, configure_logging
from .orchestrator import CredentialsRejectedError, FeedReport, SyncOrchestrator, SyncSummary
from .pocket import (
    AuthNotAuthorizedError,
    AuthRemoteError,
    PocketClient,
    PocketSetupError,
)
from .ui import SyncProgress

app = typer.Typer(
    help="Send entries from your RSS and Atom feeds to Pocket.",
    invoke_without_command=True,
    rich_markup_mode=None,
)

console = Console()

FetcherFactory = Callable[[Configuration], FeedFetcher]
PocketFactory = Callable[[Configuration, bool], PocketClient]


@dataclass
class AppState:
    store: ConfigStore
    progress: SyncProgress
    fetcher_factory: FetcherFactory
    pocket_factory: PocketFactory

    def orchestrator(self, config: Configuration) -> SyncOrchestrator:
        return SyncOrchestrator(self.fetcher_factory(config), progress=self.progress)


def _default_fetcher(config: Configuration) -> FeedFetcher:
    return FeedFetcher(
        timeout=config.settings.request_timeout,
        logger=component_logger("fetcher"),
    )


def _default_pocket(config: Configuration, require_access_token: bool) -> PocketClient:
    return PocketClient.from_config(
        config,
        require_access_token=require_access_token,
        logger=component_logger("pocket"),
    )


def build_state(config_path: Path, verbose: bool, quiet: bool) -> AppState:
    configure_logging(verbose=verbose)
    return AppState(
        store=ConfigStore(config_path, logger=component_logger("config")),
        progress=SyncProgress(enabled=not quiet, console=console),
        fetcher_factory=_default_fetcher,
        pocket_factory=_default_pocket,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        raise typer.Exit(code=1)
    return state


def _say(message: str, style: str | None = None) -> None:
    console.print(message, style=style, markup=False, highlight=False, soft_wrap=True)


def _fail(message: str) -> NoReturn:
    _say(message, style="red")
    raise typer.Exit(code=1)


def _load(state: AppState) -> Configuration:
    try:
        return state.store.load()
    except ConfigError as exc:
        _fail(f"error: {exc}")


def _save(state: AppState, config: Configuration) -> None:
    try:
        state.store.save(config)
    except ConfigError as exc:
        _fail(f"error: {exc}")


def _render_summary_table(summary: SyncSummary) -> Table:
    table = Table(
        title=f"Sync results · {len(summary.reports)} feed(s)",
        box=box.SIMPLE_HEAD,
    )
    table.add_column("Feed", style="cyan", overflow="fold")
    table.add_column("Status", style="magenta")
    table.add_column("New", justify="right")
    table.add_column("Sent", justify="right", style="green")
    table.add_column("Rejected", justify="right", style="red")
    table.add_column("Pending", justify="right", style="yellow")
    table.add_column("No link", justify="right", style="dim")
    for report in summary.reports:
        table.add_row(
            report.url,
            report.state.value,
            str(report.new),
            str(report.delivered),
            str(report.rejected),
            str(report.pending),
            str(report.skipped_without_link),
        )
    return table


def _print_summary(summary: SyncSummary) -> None:
    if summary.reports:
        console.print(_render_summary_table(summary))
    for report in summary.failed_feeds:
        _say(f"warning: skipped {report.url}: {report.error}", style="yellow")
    _say(
        f"{summary.total('delivered')} entries sent to Pocket, "
        f"{len(summary.failed_feeds)} feed(s) skipped."
    )


def _print_feed_report(report: FeedReport) -> None:
    _say(f"{report.fetched} entries found, {report.delivered} sent to Pocket.")


def _run_sync(state: AppState) -> None:
    config = _load(state)
    try:
        pocket = state.pocket_factory(config, True)
    except PocketSetupError as exc:
        _fail(f"error: unable to sync: {exc}")
    orchestrator = state.orchestrator(config)
    try:
        summary = orchestrator.sync(config, pocket)
    except CredentialsRejectedError as exc:
        _save(state, config)
        _fail(f"error: Pocket rejected the credentials: {exc}")
    finally:
        pocket.close()
        orchestrator.fetcher.close()
    _save(state, config)
    _print_summary(summary)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Path = typer.Argument(
        ...,
        metavar="CONFIG",
        help="Path to the configuration file (YAML, or JSON with a .json suffix).",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    quiet: bool = typer.Option(False, "--quiet", help="Hide download progress."),
) -> None:
    """Without a command, push new entries of every configured feed to Pocket."""

    ctx.obj = build_state(config_path, verbose, quiet)
    if ctx.invoked_subcommand is None:
        _run_sync(ctx.obj)


@app.command("init", help="Create an empty configuration file.")
def init(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        state.store.init()
    except ConfigError as exc:
        _fail(f"error: unable to create configuration: {exc}")
    _say(f"Created {state.store.path}.", style="green")


@app.command(
    "set-customer-key",
    help=(
        "Set the consumer key. Create an application at "
        "https://getpocket.com/developer/apps/new with the Add permission "
        "to obtain one."
    ),
)
def set_customer_key(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Consumer key of your Pocket application."),
) -> None:
    state = _get_state(ctx)
    key = key.strip()
    if not key:
        _fail("error: the consumer key cannot be empty.")
    config = _load(state)
    config.consumer_key = key
    _save(state, config)
    console.print("Consumer key saved.", style="green")


@app.command("set-consumer-key", hidden=True)
def legacy_set_consumer_key(ctx: typer.Context, key: str = typer.Argument(...)) -> None:
    set_customer_key(ctx, key=key)


@app.command("login", help="Authorize feeds-to-pocket to add items to your Pocket list.")
def login(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = _load(state)
    try:
        pocket = state.pocket_factory(config, False)
    except PocketSetupError as exc:
        _fail(f"error: unable to perform authorization: {exc}")

    with pocket:
        if config.access_token:
            _say(
                "note: There's already an access token in the configuration file. "
                "Proceeding will overwrite this access token.",
                style="yellow",
            )
        try:
            request_token = pocket.request_token()
        except AuthRemoteError as exc:
            _fail(f"error: unable to get authorization URL for Pocket: {exc}")
        auth_url = pocket.authorization_url(request_token)
        _say(f"Go to the following webpage to login: {auth_url}")
        while True:
            typer.prompt("Then, press Enter to continue", default="", show_default=False)
            try:
                grant = pocket.convert_token(request_token)
            except AuthNotAuthorizedError as exc:
                _say(
                    f"Authorization failed: {exc}\n"
                    "Make sure you authorized your application at the webpage linked above.\n"
                    "Press Enter to try again, or press Ctrl+C to exit.",
                    style="yellow",
                )
                continue
            except AuthRemoteError as exc:
                _fail(f"error: authorization failed: {exc}")
            break

    config.access_token = grant.access_token
    _save(state, config)
    who = f" as {grant.username}" if grant.username else ""
    _say(f"Logged in{who}.", style="green")


def _split_tags(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


@app.command("add", help="Add a feed to the configuration.")
def add(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL of the RSS or Atom feed."),
    unread: bool = typer.Option(
        False,
        "--unread",
        help="Send the feed's current entries to Pocket too, instead of only future ones.",
    ),
    tags: Optional[str] = typer.Option(
        None, "--tags", help="Comma separated tags applied to entries from this feed."
    ),
) -> None:
    state = _get_state(ctx)
    config = _load(state)
    url = url.strip()
    if config.find_feed(url) is not None:
        console.print("This feed is already in your configuration!", style="yellow")
        return

    pocket: PocketClient | None = None
    if unread:
        try:
            pocket = state.pocket_factory(config, True)
        except PocketSetupError as exc:
            _fail(f"error: unable to add feed: {exc}")

    orchestrator = state.orchestrator(config)
    try:
        report = orchestrator.add_feed(config, url, _split_tags(tags), pocket)
    except CredentialsRejectedError as exc:
        _save(state, config)
        _fail(f"error: Pocket rejected the credentials: {exc}")
    finally:
        if pocket is not None:
            pocket.close()
        orchestrator.fetcher.close()
    if report is not None and report.failed:
        _fail(f"error: unable to add feed: initial pass failed: {report.error}")
    _save(state, config)
    _say(f"Added {url}.", style="green")
    if report is not None:
        _print_feed_report(report)


@app.command("remove", help="Remove a feed from the configuration.")
def remove(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL of the feed to remove."),
) -> None:
    state = _get_state(ctx)
    config = _load(state)
    if not SyncOrchestrator.remove_feed(config, url):
        _fail(f"error: {url.strip()} is not in your configuration.")
    _save(state, config)
    _say(f"Removed {url.strip()}.", style="green")


@app.command("list", help="Show the configured feeds.")
def list_feeds(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = _load(state)
    if not config.feeds:
        console.print(
            "No feeds configured yet, use the `add` command to register one.", style="yellow"
        )
        return
    table = Table(title=f"Feeds · {len(config.feeds)} configured", box=box.SIMPLE_HEAD)
    table.add_column("URL", style="cyan", overflow="fold")
    table.add_column("Tags", style="magenta")
    table.add_column("Processed", justify="right", style="green")
    for feed in config.feeds:
        table.add_row(feed.url, ", ".join(feed.tags) or "-", str(len(feed.processed_entries)))
    console.print(table)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
