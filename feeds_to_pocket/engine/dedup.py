"""Selection of entries not yet handled for a feed."""

from __future__ import annotations

from typing import AbstractSet, Iterable

from .parser import FetchedEntry


def entry_identifier(entry: FetchedEntry) -> str | None:
    """Stable identity of an entry: feed-provided ID, else its link, else None."""

    if entry.entry_id and entry.entry_id.strip():
        return entry.entry_id.strip()
    if entry.link and entry.link.strip():
        return entry.link.strip()
    return None


def new_entries(
    fetched: Iterable[FetchedEntry], processed: AbstractSet[str]
) -> list[FetchedEntry]:
    """Return entries whose identifier is not in ``processed``, in feed order.

    Entries without any identifier are never returned, and an identifier
    repeated within ``fetched`` only yields its first entry. ``processed`` is
    not modified.
    """

    seen: set[str] = set()
    result: list[FetchedEntry] = []
    for entry in fetched:
        identifier = entry_identifier(entry)
        if identifier is None or identifier in processed or identifier in seen:
            continue
        seen.add(identifier)
        result.append(entry)
    return result


__all__ = ["entry_identifier", "new_entries"]
