"""Data models for the ingestion layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp from the feed into an aware datetime.

    Values without an offset are taken as UTC. Returns None for blanks
    and unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class Segment:
    """One DEX line split into its '*'-delimited fields.

    fields[0] is the segment type; decode rules address the rest by
    1-based position.
    """

    line_number: int
    fields: list[str]

    @property
    def segment_type(self) -> str:
        return self.fields[0] if self.fields else ""

    @property
    def values(self) -> list[str]:
        """Fields after the segment type."""
        return self.fields[1:]

    def has_field(self, index: int) -> bool:
        return 0 < index < len(self.fields)

    def field(self, index: int) -> str:
        """Field at a 1-based position, '' when the field is absent."""
        if self.has_field(index):
            return self.fields[index]
        return ""

    @property
    def raw(self) -> str:
        return "*".join(self.fields)


@dataclass
class SegmentFailure:
    """A segment whose decode rule raised; it contributed nothing."""

    line_number: int
    segment_type: str
    raw: str
    reason: str


@dataclass
class MachineRef:
    """A tracked machine the feed's records can resolve to."""

    machine_id: str
    case_serial: str
    company_id: str = ""
    machine_model: str = ""


@dataclass
class CandidateRecord:
    """A DEX record as listed by the operator platform's feed."""

    dex_id: str
    row_id: str
    case_serial: str
    created: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_feed_row(cls, row: dict) -> CandidateRecord:
        """Build a candidate from a listing row.

        The listing row id (DT_RowId) and the raw record id (dexRaw.id) are
        distinct; the raw id is what identifies the record for fetching and
        de-duplication.
        """
        dex_raw = row.get("dexRaw") or {}
        devices = row.get("devices") or {}
        dex_id = dex_raw.get("id")
        row_id = row.get("DT_RowId") or row.get("id")
        case_serial = devices.get("caseSerial") or row.get("case_serial") or ""
        return cls(
            dex_id=str(dex_id) if dex_id not in (None, "") else "",
            row_id=str(row_id) if row_id not in (None, "") else "",
            case_serial=str(case_serial),
            created=parse_timestamp(dex_raw.get("created")),
            metadata=row,
        )


@dataclass
class PendingRecord:
    """A new candidate resolved to its owning machine, awaiting fetch."""

    candidate: CandidateRecord
    machine: MachineRef

    @property
    def dex_id(self) -> str:
        return self.candidate.dex_id


@dataclass
class DecodedRecord:
    """A fetched and decoded DEX record ready for storage."""

    dex_id: str
    machine_id: str
    case_serial: str
    company_id: str
    raw_content: str
    created: Optional[datetime]
    hybrid: Any  # decoding.hybrid.HybridDocument
    failures: list[SegmentFailure] = field(default_factory=list)

    @property
    def record_count(self) -> int:
        return len(self.raw_content.split("\n"))

    @property
    def has_errors(self) -> bool:
        return bool(self.hybrid.summary.has_ma5_errors)


@dataclass
class FetchFailure:
    """A candidate that could not be fetched or decoded."""

    dex_id: str
    error: str
