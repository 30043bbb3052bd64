"""Hybrid decoder: structured tree + key-value map + display summary."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from dex_collector.decoding.key_value import KeyValueDecoder, KeyValueDocument, group_key_values
from dex_collector.decoding.keys import key
from dex_collector.decoding.structured import StructuredDecoder, StructuredDocument, positional_map
from dex_collector.ingestion.models import Segment, SegmentFailure
from dex_collector.ingestion.tokenizer import SegmentTokenizer

TOP_PRODUCTS_LIMIT = 5


@dataclass
class Product:
    """A PA1 price row paired with the PA2 sales row that follows it."""

    selection: str
    price: str = "0.00"
    sales_count: str = "0"
    sales_value: str = "0.00"
    price_fields: dict = field(default_factory=dict)
    sales_fields: dict = field(default_factory=dict)

    @property
    def sales_amount(self) -> Decimal:
        try:
            return Decimal(self.sales_value)
        except InvalidOperation:
            return Decimal(0)


@dataclass
class DexSummary:
    """Fixed-shape record for device cards. Every field has a typed default."""

    total_sales: str = "0.00"
    total_vends: str = "0"
    cash_in_box: str = "0.00"
    temperature: Optional[str] = None
    temperature_unit: Optional[str] = None
    product_count: int = 0
    coin_tubes: int = 0
    machine_model: str = "Unknown"
    software_version: str = "Unknown"
    latest_event: Optional[str] = None
    latest_event_code: Optional[str] = None
    latest_event_time: Optional[str] = None
    has_events: bool = False
    latest_ma5_error: Optional[str] = None
    latest_ma5_error_code: Optional[str] = None
    has_ma5_errors: bool = False


@dataclass
class HybridDocument:
    structured: StructuredDocument
    key_value: KeyValueDocument
    summary: DexSummary
    products: list[Product] = field(default_factory=list)
    groups: dict[str, dict] = field(default_factory=dict)
    failures: list[SegmentFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "structured": self.structured,
            "key_value": self.key_value,
            "summary": asdict(self.summary),
            "products": [
                {
                    "selection": p.selection,
                    "price": p.price,
                    "sales_count": p.sales_count,
                    "sales_value": p.sales_value,
                    "PA1": p.price_fields,
                    "PA2": p.sales_fields,
                }
                for p in self.products
            ],
            "groups": self.groups,
        }


def _text(doc: KeyValueDocument, name: str, default: Optional[str]) -> Optional[str]:
    value = doc.get(name)
    if isinstance(value, str) and value != "":
        return value
    return default


def pair_products(segments: Iterable[Segment], doc: KeyValueDocument) -> list[Product]:
    """Pair each PA1 with the PA2 immediately following it among PA rows.

    Values come from the key-value document so both views agree on the
    converted amounts; the raw positional fields ride along.
    """
    products: list[Product] = []
    current: Optional[Product] = None

    for segment in segments:
        seg_type = segment.segment_type
        if seg_type == "PA1":
            selection = segment.field(1).strip()
            if not selection:
                current = None
                continue
            current = Product(
                selection=selection,
                price=_text(doc, key("pa1_selection", selection, "price"), "0.00"),
                price_fields=positional_map(segment),
            )
            products.append(current)
        elif seg_type == "PA2" and current is not None:
            current.sales_fields = positional_map(segment)
            current.sales_count = _text(
                doc, key("pa2_selection", current.selection, "sales_count"), "0"
            )
            current.sales_value = _text(
                doc, key("pa2_selection", current.selection, "sales_value"), "0.00"
            )
            current = None

    return products


def collect_prefix(doc: KeyValueDocument, prefix: str) -> dict:
    """Sub-map of every key starting with prefix, e.g. all tube_* keys."""
    return {k: v for k, v in doc.items() if k.startswith(prefix)}


def top_products(products: Iterable[Product], limit: int = TOP_PRODUCTS_LIMIT) -> list[dict]:
    """Best sellers by sales value; ties keep input order."""
    selling = [p for p in products if p.sales_amount > 0]
    ranked = sorted(selling, key=lambda p: p.sales_amount, reverse=True)
    return [
        {
            "selection": p.selection,
            "price": p.price,
            "sales": p.sales_value,
            "count": p.sales_count,
        }
        for p in ranked[:limit]
    ]


def build_summary(doc: KeyValueDocument, products: list[Product]) -> DexSummary:
    return DexSummary(
        total_sales=_text(doc, "va1_total_sales_value", "0.00"),
        total_vends=_text(doc, "va1_total_sales_count", "0"),
        cash_in_box=_text(doc, "da2_cash_in_cashbox", "0.00"),
        temperature=_text(doc, "ma5_detected_temperature", None),
        temperature_unit=_text(doc, "ma5_detected_temperature_unit", None),
        product_count=len(products),
        coin_tubes=sum(
            1 for k in doc if k.startswith("tube_") and k.endswith("_denomination")
        ),
        machine_model=_text(doc, "id1_model", "Unknown"),
        software_version=_text(doc, "cb1_software_version", "Unknown"),
        latest_event=_text(doc, "latest_event_description", None),
        latest_event_code=_text(doc, "latest_event_code", None),
        latest_event_time=_text(doc, "latest_event_datetime", None),
        has_events=any(k.startswith("event_") for k in doc),
        latest_ma5_error=_text(doc, "latest_ma5_error_description", None),
        latest_ma5_error_code=_text(doc, "latest_ma5_error_code", None),
        has_ma5_errors="ma5_error_codes" in doc,
    )


class HybridDecoder:
    """Runs the structured and key-value decoders over one tokenization."""

    def __init__(self) -> None:
        self._tokenizer = SegmentTokenizer()
        self._structured = StructuredDecoder(tokenizer=self._tokenizer)
        self._key_value = KeyValueDecoder(tokenizer=self._tokenizer)

    def decode(self, raw: object) -> HybridDocument:
        segments = self._tokenizer.tokenize(raw)
        structured = self._structured.decode_segments(segments)
        doc, failures = self._key_value.decode_segments(segments)
        products = pair_products(segments, doc)
        return HybridDocument(
            structured=structured,
            key_value=doc,
            summary=build_summary(doc, products),
            products=products,
            groups=group_key_values(doc),
            failures=failures,
        )


def decode_hybrid(raw: object) -> HybridDocument:
    return HybridDecoder().decode(raw)


def device_card(doc: HybridDocument) -> dict:
    """Display-ready view of one report for a machine card."""
    summary = doc.summary
    return {
        "total_sales": summary.total_sales,
        "total_vends": summary.total_vends,
        "cash_in_box": summary.cash_in_box,
        "temperature": summary.temperature,
        "machine_model": summary.machine_model,
        "coin_data": collect_prefix(doc.key_value, "tube_"),
        "event_data": collect_prefix(doc.key_value, "event_"),
        "latest_event": summary.latest_event,
        "ma5_error_data": collect_prefix(doc.key_value, "ma5_error_"),
        "latest_ma5_error": summary.latest_ma5_error,
        "top_products": top_products(doc.products),
    }
