"""Line-level tokenizer for DEX (NAMA data exchange) reports."""

from __future__ import annotations

import re
from typing import Iterator

from dex_collector.ingestion.models import Segment

FIELD_DELIMITER = "*"

# Reports are CRLF separated; tolerate bare LF from re-saved files
LINE_BREAK = re.compile(r"\r?\n")


class SegmentTokenizer:
    """Splits raw DEX text into ordered segments.

    Blank lines are dropped. Segment types are not validated here; an
    unrecognized type simply matches no decode rule downstream.
    """

    def __init__(self, delimiter: str = FIELD_DELIMITER) -> None:
        self._delimiter = delimiter

    def iter_segments(self, raw: object) -> Iterator[Segment]:
        if not raw or not isinstance(raw, str):
            return
        for line_number, line in enumerate(LINE_BREAK.split(raw), start=1):
            line = line.rstrip("\r")
            if not line.strip():
                continue
            yield Segment(line_number=line_number, fields=line.split(self._delimiter))

    def tokenize(self, raw: object) -> list[Segment]:
        return list(self.iter_segments(raw))


def tokenize(raw: object) -> list[Segment]:
    """Tokenize a raw DEX document; empty or None input yields []."""
    return SegmentTokenizer().tokenize(raw)
