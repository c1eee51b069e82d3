"""Terminal progress feedback for sync passes."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.status import Status


class SyncProgress:
    """Report feed downloads and Pocket pushes.

    On an interactive terminal a Rich status spinner is updated in place;
    otherwise every step is printed as a plain line. Nothing is shown when
    disabled.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self.console = console or Console()
        self._status: Status | None = None

    def _show(self, message: str) -> None:
        if not self.enabled:
            return
        if not self.console.is_terminal:
            self.console.print(message, markup=False, highlight=False)
            return
        if self._status is None:
            self._status = self.console.status(escape(message))
            self._status.start()
        else:
            self._status.update(escape(message))

    def feed_started(self, url: str) -> None:
        self._show(f"downloading {url}")

    def entry_pushed(self, url: str) -> None:
        self._show(f"pushing {url} to Pocket")

    def close(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None


__all__ = ["SyncProgress"]
