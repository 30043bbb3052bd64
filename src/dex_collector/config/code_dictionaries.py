"""Event and machine-diagnostic code descriptions.

The tables are loaded once at import and never mutated, so decoders can
share them across concurrent decode calls.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class CodePattern:
    """A numbered code family, e.g. CJ01..CJ99 for column jams."""

    pattern: re.Pattern
    family: str
    description: str


@dataclass(frozen=True)
class CodeDictionary:
    """Code -> description lookup with a non-empty fallback.

    Unknown codes describe as "Unknown <kind> (<code>)"; display code
    relies on never getting an empty description back.
    """

    kind: str
    codes: Mapping[str, str]
    patterns: tuple[CodePattern, ...] = field(default_factory=tuple)

    def lookup(self, code: str) -> str | None:
        if code in self.codes:
            return self.codes[code]
        for p in self.patterns:
            if p.pattern.match(code):
                return p.description
        return None

    def describe(self, code: str) -> str:
        description = self.lookup(code)
        if description:
            return description
        return f"Unknown {self.kind} ({code})"

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and self.lookup(code) is not None


# EA1 event codes
EVENT_CODES: Mapping[str, str] = MappingProxyType({
    "EGS": "Door Open",
    "EJB": "Motor Jam",
    "EJH": "Health Rules Violated",
    "EJL": "Delivery Sensor Error",
    "ENA": "Bill Validator Path Blocked",
    "ENE": "Cash Box Full",
    "ENF": "Cash Box not seated correctly",
    "EAR": "Coin Mech Error",
    "OCM": "Operating System Failure",
    "OFA": "Coin box emptied",
})

# MA5*ERROR codes. These clear from the report once the fault is fixed.
MA5_ERROR_CODES: Mapping[str, str] = MappingProxyType({
    "UA06": "Column 6 Error",
    "UA08": "Column 8 Error",
    "UA09": "Column 9 Error",
    "UA10": "Column 10 Error",
    "dS": "Door switch",
    "rAn": "RAM corrupted",
    "ACLo": "Rectified voltage under 20 VDC for more than 30 seconds",
    "SF": "Incompatible scaling factor",
    "IS": "Inlet sensor blocked",
    "Ib": "Inlet chute blocked",
    "CC": "Changer communication",
    "tS": "Changer tube sensor",
    "IC": "Inlet chute blocked",
    "CrCH": "Changer ROM checksum",
    "EE": "Excessive escrow",
    "nJ": "Acceptor coin jam",
    "LA": "Low acceptance rate",
    "CS": "Chute sensor active five minutes or more",
    "SEnS": "Temperature sensor",
    "COLd": "Temperature 1.5°C or more below cut-out",
    "HOt": "Temperature 1.5°C or more above cut-in",
    "CnPr": "Not cooling 0.5°C per hour or better",
    "Htr": "Not heating 0.5°C per hour or better",
})

# XX in the controller manual stands for a two-digit column/tube number
MA5_ERROR_PATTERNS: tuple[CodePattern, ...] = (
    CodePattern(re.compile(r"^SS(\d{2}|XX)$"), "SS", "Selection switch closed"),
    CodePattern(re.compile(r"^tJ(\d{2}|XX)$"), "tJ", "Changer tube jam"),
    CodePattern(re.compile(r"^CJ(\d{2}|XX)$"), "CJ", "Column jam"),
    CodePattern(re.compile(r"^UA(\d{2}|xx)$"), "UA", "Unassigned column"),
)

EVENTS = CodeDictionary(kind="Event", codes=EVENT_CODES)
MA5_ERRORS = CodeDictionary(
    kind="MA5 Error", codes=MA5_ERROR_CODES, patterns=MA5_ERROR_PATTERNS
)


def describe_event(code: str) -> str:
    """Describe an EA1 event code, e.g. 'EGS' -> 'Door Open'."""
    return EVENTS.describe(code)


def describe_ma5_error(code: str) -> str:
    """Describe an MA5 error code: exact match, then numbered family."""
    return MA5_ERRORS.describe(code)
