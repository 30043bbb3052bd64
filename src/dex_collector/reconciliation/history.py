"""Bounded, de-duplicated per-machine DEX history."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from dex_collector.ingestion.models import DecodedRecord
from dex_collector.reconciliation.models import DexHistoryEntry

HISTORY_LIMIT = 100
RECENT_HOURS = 4

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def history_entries_for(records: Iterable[DecodedRecord]) -> list[DexHistoryEntry]:
    return [DexHistoryEntry(dex_id=r.dex_id, created=r.created) for r in records]


def merge_history(
    existing: Iterable[DexHistoryEntry],
    new_entries: Iterable[DexHistoryEntry],
    limit: int = HISTORY_LIMIT,
) -> list[DexHistoryEntry]:
    """Union existing and new entries by dex_id, newest first, at most `limit`.

    An entry already in the history keeps its recorded `created`; among new
    entries the first occurrence of an id wins. Entries without a created
    time sort last. Merging the same input twice is a no-op.
    """
    merged: dict[str, DexHistoryEntry] = {}
    for entry in existing:
        merged.setdefault(entry.dex_id, entry)
    for entry in new_entries:
        if not entry.dex_id:
            continue
        merged.setdefault(entry.dex_id, entry)

    ordered = sorted(merged.values(), key=lambda e: _as_utc(e.created), reverse=True)
    return ordered[:limit]


def count_recent(
    history: Iterable[DexHistoryEntry],
    now: Optional[datetime] = None,
    hours: float = RECENT_HOURS,
) -> int:
    """Number of history entries created within the last `hours`."""
    cutoff = _as_utc(now or datetime.now(timezone.utc)) - timedelta(hours=hours)
    return sum(1 for e in history if e.created is not None and _as_utc(e.created) > cutoff)
