"""Key-value decoder: flat semantic keys with converted values.

Decoding is a single pass over the segment list. Most segment types map
fields by position through FIELD_RULES; product, event and diagnostic
segments have dedicated rules, and product sales rows depend on the price
row read before them, so the pass carries a DecodeState.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from dex_collector.config.code_dictionaries import describe_event, describe_ma5_error
from dex_collector.decoding.keys import cents_to_dollars, key, scaled_dollars, segment_key
from dex_collector.ingestion.models import Segment, SegmentFailure
from dex_collector.ingestion.tokenizer import SegmentTokenizer

logger = logging.getLogger(__name__)

KeyValueDocument = dict[str, object]

TEXT = "text"
TRIM = "trim"
MONEY = "money"

# segment type -> ((position, name, kind), ...)
FIELD_RULES: dict[str, tuple[tuple[int, str, str], ...]] = {
    "DXS": (
        (1, "machine_id", TEXT),
        (2, "state", TEXT),
        (3, "version", TEXT),
        (4, "transmission_number", TEXT),
    ),
    "ST": ((1, "start_code", TEXT), (2, "sequence", TEXT)),
    "ID1": (
        (1, "serial_number", TRIM),
        (2, "model", TRIM),
        (3, "asset_number", TEXT),
        (4, "location", TEXT),
        (5, "software_revision", TEXT),
        (6, "control_board", TEXT),
        (7, "communications_board", TEXT),
    ),
    "ID4": (
        (1, "decimal_point_position", TEXT),
        (2, "currency_code", TEXT),
        (3, "language", TEXT),
    ),
    "ID5": ((1, "date", TEXT), (2, "time", TEXT)),
    "CA1": ((1, "cash_sales_value", MONEY), (2, "cash_sales_count", TEXT)),
    "CA2": (
        (1, "cash_sales_reset", TEXT),
        (2, "cash_in_tube_reset", TEXT),
        (3, "cash_in_bills_reset", TEXT),
        (4, "cash_to_cassette_reset", TEXT),
    ),
    "CA3": (
        (1, "cash_sales_value", MONEY),
        (2, "cash_sales_count", TEXT),
        (3, "cash_in_tube", MONEY),
        (4, "cash_in_bills", MONEY),
        (5, "cash_sales_since_init", MONEY),
        (6, "cash_count_since_init", TEXT),
        (7, "cash_tube_since_init", MONEY),
        (8, "cash_bills_since_init", MONEY),
    ),
    "CA4": (
        (1, "cashless_sales_value", MONEY),
        (2, "cashless_sales_count", TEXT),
        (3, "cashless_value_since_init", MONEY),
        (4, "cashless_count_since_init", TEXT),
    ),
    "CA7": (
        (1, "discount_sales_value", MONEY),
        (2, "discount_sales_count", TEXT),
        (3, "discount_value_since_init", MONEY),
        (4, "discount_count_since_init", TEXT),
    ),
    "CA8": ((1, "surcharge_value", MONEY), (2, "surcharge_count", TEXT)),
    "CA9": ((1, "test_vend_value", MONEY), (2, "test_vend_count", TEXT)),
    "CA10": ((1, "pay_vend_value", MONEY), (2, "pay_vend_count", TEXT)),
    "CA14": (
        (1, "value_sales", MONEY),
        (2, "value_medium", TEXT),
        (3, "value_count", TEXT),
    ),
    "CA15": ((1, "cash_overpay", MONEY),),
    "CB1": ((3, "software_version", TEXT),),
    "BA1": ((1, "serial", TEXT), (2, "model", TEXT), (3, "software", TEXT)),
    "DA1": ((1, "cash_in_tubes", MONEY),),
    "DA2": (
        (1, "cash_in_cashbox", MONEY),
        (2, "cash_bills_in_cashbox", TEXT),
        (3, "cash_to_cashbox_value", MONEY),
        (4, "cash_to_cashbox_count", TEXT),
    ),
    "DA4": ((1, "cash_dispensed_value", MONEY), (2, "cash_dispensed_count", TEXT)),
    "TA2": ((1, "token_value", MONEY), (2, "token_count", TEXT)),
    "LS": ((1, "sequence", TEXT),),
    "LE": ((1, "sequence", TEXT),),
    "SD1": ((1, "serial_data", TEXT),),
    "VA1": (
        (1, "total_sales_value", MONEY),
        (2, "total_sales_count", TEXT),
        (3, "total_value_since_init", MONEY),
        (4, "total_count_since_init", TEXT),
    ),
    "VA2": (
        (1, "resets_total", TEXT),
        (2, "resets_service", TEXT),
        (3, "resets_since_power_up", TEXT),
        (4, "resets_since_cash_sale", TEXT),
    ),
    "VA3": (
        (1, "sales_since_cash", TEXT),
        (2, "sales_since_maintenance", TEXT),
        (3, "sales_since_reset", TEXT),
        (4, "sales_since_power_up", TEXT),
    ),
    "EA3": (
        (1, "machine_runtime", TEXT),
        (2, "runtime_date", TEXT),
        (3, "runtime_time", TEXT),
    ),
    "EA4": ((1, "event_date", TEXT), (2, "event_time", TEXT)),
    "EA5": ((1, "completion_date", TEXT), (2, "completion_time", TEXT)),
    "EA7": ((1, "significant_events", TEXT), (2, "total_events", TEXT)),
    "G85": ((1, "audit_number", TEXT),),
    "SE": ((1, "segment_count", TEXT), (2, "control_number", TEXT)),
    "DXE": ((1, "transmission_control", TEXT), (2, "audit_control", TEXT)),
}

# MA5 settings with dedicated key names
DESIRED_TEMPERATURE = "DESIRED TEMPERATURE"
DETECTED_TEMPERATURE = "DETECTED TEMPERATURE"
ERROR_SETTING = "ERROR"


@dataclass
class DecodeState:
    """State carried from one segment to the next within a document."""

    # Selection of the last PA1 not yet consumed by a PA2
    pending_selection: Optional[str] = None
    # MA5*ERROR codes seen so far, in first-seen order
    ma5_error_codes: list[str] = field(default_factory=list)


Rule = Callable[[Segment, DecodeState, dict], None]


def _put_fields(segment: Segment, out: dict) -> None:
    seg_type = segment.segment_type
    for position, name, kind in FIELD_RULES[seg_type]:
        if not segment.has_field(position):
            continue
        value = segment.field(position)
        if kind == MONEY:
            if value.strip():
                out[segment_key(seg_type, name)] = cents_to_dollars(value)
        elif kind == TRIM:
            out[segment_key(seg_type, name)] = value.strip()
        else:
            out[segment_key(seg_type, name)] = value


def _require(segment: Segment, position: int, what: str) -> str:
    value = segment.field(position).strip()
    if not value:
        raise ValueError(f"{segment.segment_type} missing {what}")
    return value


def _coin_tube(segment: Segment, state: DecodeState, out: dict) -> None:
    # CA17*{row}*{denomination_cents}*{count}
    row = _require(segment, 1, "tube row")
    denomination = _require(segment, 2, "denomination")
    count = _require(segment, 3, "coin count")
    out[key("tube", row, "denomination")] = cents_to_dollars(denomination)
    out[key("tube", row, "count")] = count
    out[key("tube", row, "total_value")] = scaled_dollars(denomination, count)


def _product_price(segment: Segment, state: DecodeState, out: dict) -> None:
    # PA1*{selection}*{price_cents}
    # A row without a selection still ends the previous pairing; one with
    # a bad price keeps its selection so the following PA2 is attributed.
    state.pending_selection = None
    selection = _require(segment, 1, "selection")
    state.pending_selection = selection
    price = segment.field(2)
    if price.strip():
        out[key("pa1_selection", selection, "price")] = cents_to_dollars(price)


def _product_sales(segment: Segment, state: DecodeState, out: dict) -> None:
    # PA2*{count}*{value_cents}*{count_since_reset}*{value_since_reset}
    selection = state.pending_selection
    if selection is None:
        logger.debug("PA2 on line %d has no preceding PA1, skipped", segment.line_number)
        return
    pairs = (
        (1, "sales_count", TEXT),
        (2, "sales_value", MONEY),
        (3, "sales_since_reset", TEXT),
        (4, "value_since_reset", MONEY),
    )
    for position, name, kind in pairs:
        if not segment.has_field(position):
            continue
        value = segment.field(position)
        if kind == MONEY:
            if value.strip():
                out[key("pa2_selection", selection, name)] = cents_to_dollars(value)
        else:
            out[key("pa2_selection", selection, name)] = value
    state.pending_selection = None


def _product_list_price(segment: Segment, state: DecodeState, out: dict) -> None:
    selection = _require(segment, 1, "selection")
    out[key("pa4_selection", selection, "price")] = cents_to_dollars(
        _require(segment, 2, "price")
    )


def _product_extended(segment: Segment, state: DecodeState, out: dict) -> None:
    selection = _require(segment, 1, "selection")
    out[key("pa5_selection", selection, "data")] = "*".join(segment.fields[2:])


def _event(segment: Segment, state: DecodeState, out: dict) -> None:
    # EA1*{event_code}*{YYMMDD}*{HHMM}
    code = _require(segment, 1, "event code")
    date = segment.field(2)
    time = segment.field(3)
    description = describe_event(code)

    if segment.has_field(2):
        out[key("ea1_event", code, "date")] = date
    if segment.has_field(3):
        out[key("ea1_event", code, "time")] = time

    out[key("event", code, "description")] = description
    out[key("event", code, "date")] = date
    out[key("event", code, "time")] = time
    out["latest_event_code"] = code
    out["latest_event_description"] = description

    # Datetime keys only when both parts are present
    if date.strip() and time.strip():
        out[key("event", code, "datetime")] = f"{date} {time}"
        out["latest_event_datetime"] = f"{date} {time}"


def _event_count(segment: Segment, state: DecodeState, out: dict) -> None:
    # EA2*{event_code}*{count}*{count_since_init}
    code = _require(segment, 1, "event code")
    if segment.has_field(2):
        out[key("ea2_event", code, "count")] = segment.field(2)
    if segment.has_field(3):
        out[key("ea2_event", code, "value")] = segment.field(3)


def _machine_setting(segment: Segment, state: DecodeState, out: dict) -> None:
    setting = _require(segment, 1, "setting name")

    if setting in (DESIRED_TEMPERATURE, DETECTED_TEMPERATURE):
        name = key("ma5", None, setting)
        if segment.has_field(2):
            out[name] = segment.field(2).strip()
        if segment.has_field(3):
            out[f"{name}_unit"] = segment.field(3)
        return

    if setting != ERROR_SETTING:
        out[key("ma5", None, setting)] = segment.field(2)
        return

    # MA5*ERROR*UA09*UA10 or MA5*ERROR*HOt
    codes = [value.strip() for value in segment.fields[2:] if value.strip()]
    if not codes:
        return
    accumulated = list(state.ma5_error_codes)
    for code in codes:
        if code not in accumulated:
            accumulated.append(code)
        description = describe_ma5_error(code)
        out[key("ma5_error", code, "description")] = description
        out[key("ma5_error", code, "active")] = "true"
        out["latest_ma5_error_code"] = code
        out["latest_ma5_error_description"] = description

    out["ma5_error_codes"] = ",".join(accumulated)
    for index, code in enumerate(accumulated, start=1):
        out[key("ma5_error", index)] = code
    state.ma5_error_codes = accumulated


RULES: dict[str, Rule] = {
    "CA17": _coin_tube,
    "PA1": _product_price,
    "PA2": _product_sales,
    "PA4": _product_list_price,
    "PA5": _product_extended,
    "EA1": _event,
    "EA2": _event_count,
    "MA5": _machine_setting,
}


def is_known_type(segment_type: str) -> bool:
    return segment_type in RULES or segment_type in FIELD_RULES


def _unknown(segment: Segment, doc: KeyValueDocument, out: dict) -> None:
    """Keep unmapped segments: every occurrence under <type>_raw."""
    raw_key = segment_key(segment.segment_type, "raw")
    previous = doc.get(raw_key)
    occurrences = list(previous) if isinstance(previous, list) else []
    occurrences.append(list(segment.values))
    out[raw_key] = occurrences
    out[segment_key(segment.segment_type, "data")] = "*".join(segment.values)


class KeyValueDecoder:
    """Decodes a DEX document into a flat KeyValueDocument.

    A segment whose rule raises contributes no keys; the failure is logged
    and returned alongside the document by decode_with_failures. The decoder
    holds no per-document state, so one instance can be shared.
    """

    def __init__(self, tokenizer: SegmentTokenizer | None = None) -> None:
        self._tokenizer = tokenizer or SegmentTokenizer()

    def decode(self, raw: object) -> KeyValueDocument:
        doc, _ = self.decode_with_failures(raw)
        return doc

    def decode_with_failures(
        self, raw: object
    ) -> tuple[KeyValueDocument, list[SegmentFailure]]:
        return self.decode_segments(self._tokenizer.iter_segments(raw))

    def decode_segments(
        self, segments: Iterable[Segment]
    ) -> tuple[KeyValueDocument, list[SegmentFailure]]:
        doc: KeyValueDocument = {}
        state = DecodeState()
        failures: list[SegmentFailure] = []

        for segment in segments:
            out: dict = {}
            seg_type = segment.segment_type
            try:
                if seg_type in RULES:
                    RULES[seg_type](segment, state, out)
                elif seg_type in FIELD_RULES:
                    _put_fields(segment, out)
                else:
                    _unknown(segment, doc, out)
            except (ValueError, IndexError) as e:
                logger.warning(
                    "Skipping malformed %s segment on line %d: %s",
                    seg_type, segment.line_number, e,
                )
                failures.append(SegmentFailure(
                    line_number=segment.line_number,
                    segment_type=seg_type,
                    raw=segment.raw,
                    reason=str(e),
                ))
                continue
            doc.update(out)

        return doc, failures


def decode_key_values(raw: object) -> KeyValueDocument:
    return KeyValueDecoder().decode(raw)


# Display groups, first matching prefix wins
GROUP_PREFIXES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("header", ("dxs_", "st_", "g85_", "se_", "dxe_")),
    ("machine_info", ("id1_", "id4_", "id5_")),
    ("sales", (
        "ca1_", "ca3_", "ca4_", "ca7_", "ca8_", "ca9_", "ca10_",
        "ca14_", "ca15_", "tube_", "ta2_",
    )),
    ("cash", ("da1_", "da2_", "da4_", "ba1_")),
    ("products", ("pa1_", "pa2_", "pa4_", "pa5_")),
    ("events", (
        "ea1_", "ea2_", "ea3_", "ea4_", "ea5_", "ea7_", "event_", "latest_event_",
    )),
    ("diagnostics", ("ma5_", "latest_ma5_", "cb1_")),
    ("totals", ("va1_", "va2_", "va3_")),
)


def group_key_values(doc: KeyValueDocument) -> dict[str, dict]:
    """Split a KeyValueDocument into display groups; unmatched keys go to 'other'."""
    groups: dict[str, dict] = {name: {} for name, _ in GROUP_PREFIXES}
    groups["other"] = {}
    for k, value in doc.items():
        for name, prefixes in GROUP_PREFIXES:
            if k.startswith(prefixes):
                groups[name][k] = value
                break
        else:
            groups["other"][k] = value
    return groups
