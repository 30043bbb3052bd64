"""Structured decoder: segment-type tree of sparse positional maps."""

from __future__ import annotations

from typing import Iterable, Union

from dex_collector.ingestion.models import Segment
from dex_collector.ingestion.tokenizer import SegmentTokenizer

PositionalMap = dict[str, str]
StructuredDocument = dict[str, Union[PositionalMap, list[PositionalMap]]]

# Types that legitimately occur more than once per report: product
# price/sales rows, coin tubes, and event/diagnostic records.
REPEATING_TYPES = frozenset({
    "PA1", "PA2", "PA3", "PA4", "PA5", "PA6", "PA7",
    "CA17",
    "EA1", "EA2",
    "MA5",
})


def positional_map(segment: Segment) -> PositionalMap:
    """Map 1-based field index -> value, omitting empty fields."""
    return {
        str(index): value
        for index, value in enumerate(segment.values, start=1)
        if value != ""
    }


class StructuredDecoder:
    """Builds a StructuredDocument preserving original field positions.

    Singleton types are last-write-wins within a document; repeating types
    accumulate a list in input order.
    """

    def __init__(
        self,
        repeating_types: Iterable[str] = REPEATING_TYPES,
        tokenizer: SegmentTokenizer | None = None,
    ) -> None:
        self._repeating = frozenset(repeating_types)
        self._tokenizer = tokenizer or SegmentTokenizer()

    def is_repeating(self, segment_type: str) -> bool:
        return segment_type in self._repeating

    def decode(self, raw: object) -> StructuredDocument:
        return self.decode_segments(self._tokenizer.iter_segments(raw))

    def decode_segments(self, segments: Iterable[Segment]) -> StructuredDocument:
        doc: StructuredDocument = {}
        for segment in segments:
            seg_type = segment.segment_type
            values = positional_map(segment)
            if self.is_repeating(seg_type):
                doc.setdefault(seg_type, []).append(values)
            else:
                doc[seg_type] = values
        return doc
