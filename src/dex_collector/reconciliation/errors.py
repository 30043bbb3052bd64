"""Error ledger: extract error observations and merge them into a machine's ledger.

EA1 errors are persistent: each occurrence has its own timestamp and is a
separate record. MA5 errors are transient: identity is the code alone and a
code missing from the latest report is simply not carried forward.

An operator acknowledgment (actioned / actioned_at) survives re-ingestion
of the same data. A newer EA1 occurrence of an acknowledged code replaces
the acknowledged one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from dex_collector.reconciliation.models import EA1, MA5, MachineErrorRecord

logger = logging.getLogger(__name__)

EA1_DATE_KEY = re.compile(r"^ea1_event_(.+)_date$")


def normalize_timestamp(value: Optional[str]) -> str:
    """Drop a trailing UTC designator so '...T10:00:00Z' equals '...T10:00:00'."""
    if not value:
        return ""
    if value.endswith("Z"):
        return value[:-1]
    if value.endswith("+00:00"):
        return value[: -len("+00:00")]
    return value


def ea1_timestamp(date: str, time: str) -> str:
    """YYMMDD + HHMM -> 'YYYY-MM-DDTHH:MM:00' in machine local time."""
    year = "20" + date[0:2]
    month = date[2:4]
    day = date[4:6]
    hour = time[0:2].zfill(2)
    minute = time[2:4].zfill(2)
    return f"{year}-{month}-{day}T{hour}:{minute}:00"


def _capture_stamp(captured_at: Union[datetime, str, None]) -> str:
    if captured_at is None:
        return datetime.now(timezone.utc).isoformat()
    if isinstance(captured_at, datetime):
        if captured_at.tzinfo is None:
            captured_at = captured_at.replace(tzinfo=timezone.utc)
        return captured_at.isoformat()
    return str(captured_at)


def extract_errors(
    key_value: dict,
    captured_at: Union[datetime, str, None] = None,
) -> list[MachineErrorRecord]:
    """Error observations from one decoded report's key-value document."""
    observations: list[MachineErrorRecord] = []

    for name, date in key_value.items():
        match = EA1_DATE_KEY.match(name)
        if not match:
            continue
        code = match.group(1)
        time = key_value.get(f"ea1_event_{code}_time")
        if not date or not time:
            continue
        observations.append(MachineErrorRecord(
            type=EA1,
            code=code.upper(),
            date=date,
            time=time,
            timestamp=ea1_timestamp(date, time),
        ))

    codes = key_value.get("ma5_error_codes")
    if isinstance(codes, str) and codes:
        stamp = _capture_stamp(captured_at)
        for code in codes.split(","):
            if code:
                observations.append(MachineErrorRecord(type=MA5, code=code.upper(), timestamp=stamp))

    return observations


def _same_error(a: MachineErrorRecord, b: MachineErrorRecord) -> bool:
    if a.type != b.type or a.code != b.code:
        return False
    if a.type == EA1:
        return normalize_timestamp(a.timestamp) == normalize_timestamp(b.timestamp)
    return True


def merge_errors(
    existing: Iterable[MachineErrorRecord],
    observations: Iterable[MachineErrorRecord],
) -> list[MachineErrorRecord]:
    """Merge the latest observations into an existing ledger.

    Observations come first, each inheriting actioned / actioned_at from an
    existing record with the same identity, or starting unactioned. Then
    acknowledged EA1 records are kept when the observations have no EA1 of
    that code at all. Applying the same observations twice gives the same
    ledger.
    """
    existing = list(existing)
    observations = list(observations)
    merged: list[MachineErrorRecord] = []

    for obs in observations:
        previous = next((e for e in existing if _same_error(e, obs)), None)
        if previous is not None:
            merged.append(replace(obs, actioned=previous.actioned, actioned_at=previous.actioned_at))
        else:
            merged.append(replace(obs, actioned=False, actioned_at=None))

    for old in existing:
        if old.type != EA1 or not old.actioned:
            continue
        recurred = any(o.type == EA1 and o.code == old.code for o in observations)
        if recurred:
            if not any(_same_error(o, old) for o in observations):
                logger.debug("EA1 %s at %s superseded by a newer occurrence", old.code, old.timestamp)
            continue
        merged.append(old)

    return merged


def matches(record: MachineErrorRecord, code: str, timestamp: str) -> bool:
    return record.code == code and normalize_timestamp(record.timestamp) == normalize_timestamp(timestamp)


def set_actioned(
    errors: Iterable[MachineErrorRecord],
    code: str,
    timestamp: str,
    actioned: bool = True,
    now: Optional[datetime] = None,
) -> list[MachineErrorRecord]:
    """Acknowledge (or clear) the record with this code and timestamp."""
    stamp = (now or datetime.now(timezone.utc)).isoformat() if actioned else None
    return [
        replace(e, actioned=actioned, actioned_at=stamp) if matches(e, code, timestamp) else e
        for e in errors
    ]
