"""Data access objects for machines and captured DEX reports."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

import polars as pl

from dex_collector.ingestion.models import DecodedRecord, MachineRef
from dex_collector.reconciliation.models import DexHistoryEntry, MachineErrorRecord
from dex_collector.storage.database import Database


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """DuckDB TIMESTAMP columns hold naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _records(cursor) -> list[dict]:
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _load_json(text: Optional[str], default):
    if not text:
        return default
    return json.loads(text)


class MachineRepo:
    """Operations on the machines table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def upsert(self, machine: MachineRef, status: str = "active") -> None:
        self._db.conn.execute(
            """INSERT INTO machines
               (machine_id, company_id, case_serial, machine_model, status,
                dex_history, latest_errors, updated_at)
               VALUES (?, ?, ?, ?, ?, '[]', '[]', now())
               ON CONFLICT (machine_id) DO UPDATE SET
                company_id = excluded.company_id,
                case_serial = excluded.case_serial,
                machine_model = excluded.machine_model,
                status = excluded.status,
                updated_at = now()""",
            [
                machine.machine_id,
                machine.company_id,
                machine.case_serial,
                machine.machine_model or None,
                status,
            ],
        )

    def get(self, machine_id: str) -> Optional[dict]:
        rows = _records(self._db.conn.execute(
            "SELECT * FROM machines WHERE machine_id = ?", [machine_id]
        ))
        return rows[0] if rows else None

    def by_company(self, company_id: str) -> list[dict]:
        return _records(self._db.conn.execute(
            "SELECT * FROM machines WHERE company_id = ? ORDER BY case_serial",
            [company_id],
        ))

    def all(self) -> list[dict]:
        return _records(self._db.conn.execute(
            "SELECT * FROM machines ORDER BY company_id, case_serial"
        ))

    def companies(self) -> list[str]:
        rows = self._db.conn.execute(
            "SELECT DISTINCT company_id FROM machines ORDER BY company_id"
        ).fetchall()
        return [row[0] for row in rows]

    def by_serial_map(self, company_id: str) -> dict[str, MachineRef]:
        """case_serial -> MachineRef for the company's active machines."""
        rows = self._db.conn.execute(
            """SELECT machine_id, case_serial, company_id, machine_model
               FROM machines WHERE company_id = ? AND status = 'active'""",
            [company_id],
        ).fetchall()
        return {
            row[1]: MachineRef(
                machine_id=row[0],
                case_serial=row[1],
                company_id=row[2],
                machine_model=row[3] or "",
            )
            for row in rows
        }

    def history(self, machine_id: str) -> list[DexHistoryEntry]:
        row = self._db.conn.execute(
            "SELECT dex_history FROM machines WHERE machine_id = ?", [machine_id]
        ).fetchone()
        if row is None:
            return []
        return [DexHistoryEntry.from_dict(d) for d in _load_json(row[0], [])]

    def history_ids(self, company_id: str) -> set[str]:
        """Every dex id already in a machine history for the company."""
        ids: set[str] = set()
        rows = self._db.conn.execute(
            "SELECT dex_history FROM machines WHERE company_id = ?", [company_id]
        ).fetchall()
        for (text,) in rows:
            ids.update(str(d["dex_id"]) for d in _load_json(text, []))
        return ids

    def errors(self, machine_id: str) -> list[MachineErrorRecord]:
        row = self._db.conn.execute(
            "SELECT latest_errors FROM machines WHERE machine_id = ?", [machine_id]
        ).fetchone()
        if row is None:
            return []
        return [MachineErrorRecord.from_dict(d) for d in _load_json(row[0], [])]

    def save_reconciliation(
        self,
        machine_id: str,
        history: list[DexHistoryEntry],
        errors: list[MachineErrorRecord],
        latest_parsed: Optional[dict],
        recent_count: int,
        has_errors: bool,
    ) -> None:
        """Write the merged history and error ledger for one machine."""
        latest = history[0].created if history else None
        self._db.conn.execute(
            """UPDATE machines SET
                dex_history = ?,
                latest_errors = ?,
                latest_dex_parsed = COALESCE(?, latest_dex_parsed),
                latest_dex_data = ?,
                dex_last_capture = ?,
                dex_recent_count = ?,
                dex_has_errors = ?,
                updated_at = now()
               WHERE machine_id = ?""",
            [
                json.dumps([e.to_dict() for e in history]),
                json.dumps([e.to_dict() for e in errors]),
                json.dumps(latest_parsed) if latest_parsed is not None else None,
                _naive_utc(latest),
                _naive_utc(latest),
                recent_count,
                has_errors,
                machine_id,
            ],
        )

    def update_errors(self, machine_id: str, errors: list[MachineErrorRecord]) -> None:
        self._db.conn.execute(
            """UPDATE machines SET latest_errors = ?, updated_at = now()
               WHERE machine_id = ?""",
            [json.dumps([e.to_dict() for e in errors]), machine_id],
        )

    def update_recent_counts(self, counts: dict[str, int]) -> None:
        for machine_id, count in counts.items():
            self._db.conn.execute(
                "UPDATE machines SET dex_recent_count = ? WHERE machine_id = ?",
                [count, machine_id],
            )


class DexCaptureRepo:
    """Batch operations on the dex_captures table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def known_ids(self, company_id: str) -> set[str]:
        rows = self._db.conn.execute(
            "SELECT dex_id FROM dex_captures WHERE company_id = ?", [company_id]
        ).fetchall()
        return {row[0] for row in rows}

    def insert_batch(self, records: list[DecodedRecord]) -> int:
        """Insert decoded records using Polars for fast bulk insert."""
        if not records:
            return 0

        df = pl.DataFrame(
            {
                "dex_id": [r.dex_id for r in records],
                "company_id": [r.company_id for r in records],
                "machine_id": [r.machine_id for r in records],
                "case_serial": [r.case_serial for r in records],
                "raw_content": [r.raw_content for r in records],
                "parsed_json": [json.dumps(r.hybrid.to_dict()) for r in records],
                "has_errors": [r.has_errors for r in records],
                "record_count": [r.record_count for r in records],
                "created_at": [_naive_utc(r.created) for r in records],
            },
            schema={
                "dex_id": pl.Utf8,
                "company_id": pl.Utf8,
                "machine_id": pl.Utf8,
                "case_serial": pl.Utf8,
                "raw_content": pl.Utf8,
                "parsed_json": pl.Utf8,
                "has_errors": pl.Boolean,
                "record_count": pl.Int32,
                "created_at": pl.Datetime("us"),
            },
        )
        self._db.conn.execute(
            """INSERT OR REPLACE INTO dex_captures
               (dex_id, company_id, machine_id, case_serial, raw_content,
                parsed_json, has_errors, record_count, created_at)
               SELECT * FROM df"""
        )
        return len(records)

    def prune(self, machine_id: str, keep: int = 10) -> int:
        """Delete all but the `keep` most recent captures of a machine."""
        stale = self._db.conn.execute(
            """SELECT dex_id, company_id FROM dex_captures
               WHERE machine_id = ?
               ORDER BY created_at DESC NULLS LAST, captured_at DESC
               OFFSET ?""",
            [machine_id, keep],
        ).fetchall()
        for dex_id, company_id in stale:
            self._db.conn.execute(
                "DELETE FROM dex_captures WHERE dex_id = ? AND company_id = ?",
                [dex_id, company_id],
            )
        return len(stale)

    def latest_for_machine(self, machine_id: str) -> Optional[dict]:
        rows = _records(self._db.conn.execute(
            """SELECT * FROM dex_captures WHERE machine_id = ?
               ORDER BY created_at DESC NULLS LAST, captured_at DESC
               LIMIT 1""",
            [machine_id],
        ))
        if not rows:
            return None
        row = rows[0]
        row["parsed"] = _load_json(row.pop("parsed_json"), {})
        return row

    def count_for_company(self, company_id: str) -> int:
        result = self._db.conn.execute(
            "SELECT COUNT(*) FROM dex_captures WHERE company_id = ?", [company_id]
        ).fetchone()
        return result[0]

    def ids_for_machine(self, machine_id: str) -> list[str]:
        rows = self._db.conn.execute(
            """SELECT dex_id FROM dex_captures WHERE machine_id = ?
               ORDER BY created_at DESC NULLS LAST""",
            [machine_id],
        ).fetchall()
        return [row[0] for row in rows]
