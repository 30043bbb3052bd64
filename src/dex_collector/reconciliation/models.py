"""Data models for per-machine history and the error ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dex_collector.ingestion.models import parse_timestamp

EA1 = "EA1"
MA5 = "MA5"
ERROR_TYPES = (EA1, MA5)


@dataclass(frozen=True)
class DexHistoryEntry:
    """One captured DEX record in a machine's history."""

    dex_id: str
    created: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "dex_id": self.dex_id,
            "created": self.created.isoformat() if self.created else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DexHistoryEntry:
        return cls(dex_id=str(data["dex_id"]), created=parse_timestamp(data.get("created")))


@dataclass
class MachineErrorRecord:
    """An error observed on a machine, with its acknowledgment status.

    EA1 errors carry the event's own date/time and a local timestamp built
    from them. MA5 errors carry the capture time of the report that listed
    them.
    """

    type: str  # EA1 or MA5
    code: str
    timestamp: str
    date: Optional[str] = None  # YYMMDD, EA1 only
    time: Optional[str] = None  # HHMM, EA1 only
    actioned: bool = False
    actioned_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "code": self.code,
            "timestamp": self.timestamp,
            "actioned": self.actioned,
            "actioned_at": self.actioned_at,
        }
        if self.date is not None:
            data["date"] = self.date
        if self.time is not None:
            data["time"] = self.time
        return data

    @classmethod
    def from_dict(cls, data: dict) -> MachineErrorRecord:
        return cls(
            type=str(data.get("type", "")),
            code=str(data.get("code", "")),
            timestamp=str(data.get("timestamp") or ""),
            date=data.get("date"),
            time=data.get("time"),
            actioned=bool(data.get("actioned", False)),
            actioned_at=data.get("actioned_at"),
        )
