"""Collection processor - pulls new DEX records per company and reconciles machines."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from dex_collector.collection.collector import CollectionCycle, IncrementalCollector
from dex_collector.collection.feed import LocalFeed
from dex_collector.config.settings import CollectorConfig
from dex_collector.decoding.hybrid import device_card
from dex_collector.ingestion.models import DecodedRecord, FetchFailure
from dex_collector.reconciliation.errors import extract_errors, merge_errors
from dex_collector.reconciliation.history import (
    count_recent,
    history_entries_for,
    merge_history,
)
from dex_collector.storage.database import Database
from dex_collector.storage.repositories import DexCaptureRepo, MachineRepo

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class CompanyResult:
    """Outcome of one company's collection cycle."""

    company_id: str
    total_available: int = 0
    collected: int = 0
    machines_updated: int = 0
    pruned: int = 0
    segment_failures: int = 0
    errors: list[FetchFailure] = field(default_factory=list)
    error: str = ""

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def ok(self) -> bool:
        return not self.error


def _created_key(record: DecodedRecord) -> datetime:
    if record.created is None:
        return _EPOCH
    if record.created.tzinfo is None:
        return record.created.replace(tzinfo=timezone.utc)
    return record.created


def latest_parsed(record: DecodedRecord) -> dict:
    """What the machine row keeps of its newest report."""
    hybrid = record.hybrid
    groups = {name: values for name, values in hybrid.groups.items() if name != "products"}
    return {
        "dex_id": record.dex_id,
        "created": record.created.isoformat() if record.created else None,
        "summary": asdict(hybrid.summary),
        "groups": groups,
        "card": device_card(hybrid),
    }


class DexProcessor:
    """Runs collection cycles against a feed and stores the results in DuckDB.

    Each batch is stored and its machines reconciled in one transaction, so
    a machine's history and error ledger are never half-written.
    """

    def __init__(
        self,
        db: Database,
        feed: LocalFeed,
        config: CollectorConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db = db
        self._feed = feed
        self._config = config or CollectorConfig()
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._machines = MachineRepo(db)
        self._captures = DexCaptureRepo(db)

    def collect_company(self, company_id: str, limit: Optional[int] = None) -> CompanyResult:
        result = CompanyResult(company_id=company_id)
        limit = limit or self._config.batch_limit

        try:
            machines = self._machines.by_serial_map(company_id)
            if not machines:
                logger.info("No active machines for company %s, skipping", company_id)
                return result

            known = self._captures.known_ids(company_id) | self._machines.history_ids(company_id)
            candidates = self._feed.candidates(company_id)
            collector = IncrementalCollector(self._feed.fetch_raw)
            cycle = CollectionCycle.start(collector, candidates, known, machines)
            result.total_available = cycle.total_available
            logger.info(
                "Company %s: %d candidates, %d known, %d new",
                company_id, len(candidates), len(known), cycle.total_available,
            )

            touched: set[str] = set()
            for batch in cycle.iter_batches(
                limit=limit, delay=self._config.batch_delay, sleep=self._sleep
            ):
                result.errors.extend(batch.errors)
                if not batch.batch:
                    continue
                touched.update(self._store_batch(batch.batch, result))
                result.collected += len(batch.batch)
            result.machines_updated = len(touched)

        except Exception as e:
            logger.error("Collection failed for company %s: %s", company_id, e, exc_info=True)
            result.error = str(e)

        logger.info(
            "Company %s: collected %d, failed %d, %d machines updated",
            company_id, result.collected, result.failed, result.machines_updated,
        )
        return result

    def _store_batch(self, records: list[DecodedRecord], result: CompanyResult) -> set[str]:
        grouped: dict[str, list[DecodedRecord]] = defaultdict(list)
        for record in records:
            grouped[record.machine_id].append(record)
            result.segment_failures += len(record.failures)

        with self._db.transaction():
            self._captures.insert_batch(records)
            for machine_id, machine_records in grouped.items():
                self._reconcile(machine_id, machine_records)
                result.pruned += self._captures.prune(
                    machine_id, keep=self._config.captures_per_machine
                )
        return set(grouped)

    def _reconcile(self, machine_id: str, records: list[DecodedRecord]) -> None:
        history = merge_history(
            self._machines.history(machine_id),
            history_entries_for(records),
            limit=self._config.history_limit,
        )
        errors = self._machines.errors(machine_id)
        parsed = None
        has_errors = self._has_errors(machine_id)

        # Stable sort: among equal created times the later record wins
        newest = sorted(records, key=_created_key)[-1]
        if history and history[0].dex_id == newest.dex_id:
            observations = extract_errors(newest.hybrid.key_value, newest.created)
            errors = merge_errors(errors, observations)
            parsed = latest_parsed(newest)
            has_errors = newest.has_errors
        else:
            logger.debug("Machine %s already has a newer report than this batch", machine_id)

        self._machines.save_reconciliation(
            machine_id,
            history=history,
            errors=errors,
            latest_parsed=parsed,
            recent_count=count_recent(history, self._clock(), self._config.recent_hours),
            has_errors=has_errors,
        )

    def _has_errors(self, machine_id: str) -> bool:
        row = self._machines.get(machine_id)
        return bool(row and row.get("dex_has_errors"))

    def collect_all(self, company_ids: Iterable[str] | None = None) -> list[CompanyResult]:
        """Collect each company in turn, pausing between companies."""
        ids = list(company_ids) if company_ids is not None else self._machines.companies()
        results = []
        for index, company_id in enumerate(ids):
            if index > 0 and self._config.company_delay > 0:
                self._sleep(self._config.company_delay)
            results.append(self.collect_company(company_id))
        return results

    def refresh_recent_counts(self, now: datetime | None = None) -> dict[str, int]:
        """Recompute every machine's recent-capture count from its history."""
        now = now or self._clock()
        counts = {
            row["machine_id"]: count_recent(
                self._machines.history(row["machine_id"]), now, self._config.recent_hours
            )
            for row in self._machines.all()
        }
        self._machines.update_recent_counts(counts)
        return counts
