"""Incremental collection of new DEX records in bounded batches."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Mapping, Optional

from dex_collector.decoding.hybrid import HybridDecoder
from dex_collector.ingestion.models import (
    CandidateRecord,
    DecodedRecord,
    FetchFailure,
    MachineRef,
    PendingRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 15
DEFAULT_BATCH_DELAY = 1.0

FetchRaw = Callable[[str], str]


def select_new(
    candidates: Iterable[CandidateRecord],
    known_ids: set[str],
    machines: Mapping[str, MachineRef],
) -> list[PendingRecord]:
    """Candidates not yet captured, resolved to their machine.

    `machines` maps case serial -> MachineRef. Candidates lacking a dex id
    or row id, or whose serial is not a tracked machine, are skipped.
    """
    pending: list[PendingRecord] = []
    seen: set[str] = set()
    skipped = 0

    for candidate in candidates:
        if not candidate.dex_id or not candidate.row_id:
            skipped += 1
            continue
        if candidate.dex_id in known_ids or candidate.dex_id in seen:
            continue
        machine = machines.get(candidate.case_serial)
        if machine is None:
            skipped += 1
            continue
        seen.add(candidate.dex_id)
        pending.append(PendingRecord(candidate=candidate, machine=machine))

    if skipped:
        logger.debug("Skipped %d candidates without ids or a tracked machine", skipped)
    return pending


@dataclass
class BatchResult:
    """One page of a collection cycle."""

    batch: list[DecodedRecord] = field(default_factory=list)
    total_available: int = 0
    has_more: bool = False
    next_offset: Optional[int] = None
    errors: list[FetchFailure] = field(default_factory=list)


def _check_window(limit: int, offset: int) -> None:
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")
    if offset < 0:
        raise ValueError(f"offset must be non-negative, got {offset}")


class IncrementalCollector:
    """Fetches and decodes pending records one page at a time.

    `fetch_raw(dex_id)` returns the raw DEX text for a record. A failure to
    fetch or decode one record is recorded in the page's errors and does not
    stop the page.
    """

    def __init__(self, fetch_raw: FetchRaw, decoder: HybridDecoder | None = None) -> None:
        self._fetch_raw = fetch_raw
        self._decoder = decoder or HybridDecoder()

    def decode_pending(self, item: PendingRecord) -> DecodedRecord:
        raw = self._fetch_raw(item.dex_id)
        hybrid = self._decoder.decode(raw)
        return DecodedRecord(
            dex_id=item.dex_id,
            machine_id=item.machine.machine_id,
            case_serial=item.candidate.case_serial,
            company_id=item.machine.company_id,
            raw_content=raw if isinstance(raw, str) else "",
            created=item.candidate.created,
            hybrid=hybrid,
            failures=list(hybrid.failures),
        )

    def fetch_page(self, pending: list[PendingRecord], offset: int, limit: int) -> BatchResult:
        _check_window(limit, offset)
        total = len(pending)
        result = BatchResult(total_available=total)

        for item in pending[offset:offset + limit]:
            try:
                result.batch.append(self.decode_pending(item))
            except Exception as e:
                logger.warning("Failed to fetch DEX %s: %s", item.dex_id, e)
                result.errors.append(FetchFailure(dex_id=item.dex_id, error=str(e)))

        result.has_more = offset + limit < total
        result.next_offset = offset + limit if result.has_more else None
        return result

    def collect_batch(
        self,
        candidates: Iterable[CandidateRecord],
        known_ids: set[str],
        machines: Mapping[str, MachineRef],
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> BatchResult:
        """Select new candidates and fetch the page at offset.

        Callers paginating over a changing snapshot should use CollectionCycle
        so total_available stays fixed for the cycle.
        """
        _check_window(limit, offset)
        pending = select_new(candidates, known_ids, machines)
        return self.fetch_page(pending, offset, limit)


class CollectionCycle:
    """One pass over a frozen list of pending records."""

    def __init__(self, collector: IncrementalCollector, pending: Iterable[PendingRecord]) -> None:
        self._collector = collector
        self._pending = tuple(pending)

    @classmethod
    def start(
        cls,
        collector: IncrementalCollector,
        candidates: Iterable[CandidateRecord],
        known_ids: set[str],
        machines: Mapping[str, MachineRef],
    ) -> CollectionCycle:
        return cls(collector, select_new(candidates, known_ids, machines))

    @property
    def total_available(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> tuple[PendingRecord, ...]:
        return self._pending

    def page(self, offset: int = 0, limit: int = DEFAULT_LIMIT) -> BatchResult:
        return self._collector.fetch_page(list(self._pending), offset, limit)

    def iter_batches(
        self,
        limit: int = DEFAULT_LIMIT,
        delay: float = DEFAULT_BATCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Iterator[BatchResult]:
        """Yield pages until has_more is false, sleeping `delay` between them."""
        offset: Optional[int] = 0
        while offset is not None:
            result = self.page(offset, limit)
            logger.info(
                "Batch at offset %d: %d decoded, %d failed, %d available",
                offset, len(result.batch), len(result.errors), result.total_available,
            )
            yield result
            offset = result.next_offset
            if offset is not None and delay > 0:
                sleep(delay)
