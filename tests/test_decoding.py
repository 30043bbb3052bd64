"""Tests for the tokenizer, code dictionaries and the three decoders."""

from __future__ import annotations

import json

import pytest

from dex_collector.config.code_dictionaries import (
    EVENTS,
    MA5_ERRORS,
    describe_event,
    describe_ma5_error,
)
from dex_collector.decoding.hybrid import (
    DexSummary,
    HybridDecoder,
    collect_prefix,
    decode_hybrid,
    device_card,
    top_products,
)
from dex_collector.decoding.key_value import (
    KeyValueDecoder,
    decode_key_values,
    group_key_values,
)
from dex_collector.decoding.keys import cents_to_dollars, key, scaled_dollars
from dex_collector.decoding.structured import StructuredDecoder
from dex_collector.ingestion.tokenizer import SegmentTokenizer, tokenize
from tests.conftest import SAMPLE_DEX, dex


class TestTokenizer:
    """Test splitting raw text into segments."""

    def test_splits_lines_and_fields(self):
        segments = tokenize(dex("DXS*RST7654321*VA", "PA1*10*360"))
        assert [s.segment_type for s in segments] == ["DXS", "PA1"]
        assert segments[1].values == ["10", "360"]
        assert segments[1].line_number == 2

    def test_blank_lines_dropped(self):
        segments = tokenize("ID1*A\r\n\r\n   \r\nID4*2\r\n")
        assert [s.segment_type for s in segments] == ["ID1", "ID4"]
        assert segments[1].line_number == 4

    def test_bare_lf_tolerated(self):
        assert len(tokenize("ID1*A\nID4*2\n")) == 2

    @pytest.mark.parametrize("raw", ["", None, 42])
    def test_empty_or_non_text_input(self, raw):
        assert tokenize(raw) == []

    def test_missing_trailing_field_is_empty(self):
        segment = tokenize("PA1*10")[0]
        assert segment.field(2) == ""
        assert not segment.has_field(2)

    def test_custom_delimiter(self):
        segments = SegmentTokenizer(delimiter="|").tokenize("ID1|A|B")
        assert segments[0].values == ["A", "B"]


class TestCodeDictionaries:
    """Test code lookups and fallbacks."""

    def test_known_event(self):
        assert describe_event("EGS") == "Door Open"

    def test_unknown_event_fallback(self):
        assert describe_event("XYZ") == "Unknown Event (XYZ)"

    def test_exact_ma5_code(self):
        assert describe_ma5_error("UA09") == "Column 9 Error"
        assert describe_ma5_error("HOt") == "Temperature 1.5°C or more above cut-in"

    def test_numbered_ma5_family(self):
        assert describe_ma5_error("CJ07") == "Column jam"
        assert describe_ma5_error("tJ12") == "Changer tube jam"
        assert describe_ma5_error("UA11") == "Unassigned column"

    def test_unknown_ma5_fallback(self):
        assert describe_ma5_error("QQ") == "Unknown MA5 Error (QQ)"

    def test_contains(self):
        assert "EGS" in EVENTS
        assert "SS03" in MA5_ERRORS
        assert "QQ" not in MA5_ERRORS

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            EVENTS.codes["NEW"] = "Something"


class TestKeys:
    """Test key construction and currency conversion."""

    def test_key_builder(self):
        assert key("tube", "01", "count") == "tube_01_count"
        assert key("ma5_error", "UA09", "active") == "ma5_error_ua09_active"
        assert key("ma5", None, "DETECTED TEMPERATURE") == "ma5_detected_temperature"

    def test_cents_to_dollars(self):
        assert cents_to_dollars("166110") == "1661.10"
        assert cents_to_dollars("5") == "0.05"
        assert cents_to_dollars("0") == "0.00"
        assert cents_to_dollars(" 360 ") == "3.60"

    def test_cents_to_dollars_rejects_text(self):
        with pytest.raises(ValueError):
            cents_to_dollars("12x4")

    def test_scaled_dollars(self):
        assert scaled_dollars("25", "60") == "15.00"


class TestStructuredDecoder:
    """Test the positional tree."""

    def test_sparse_positional_maps(self, sample_dex):
        doc = StructuredDecoder().decode(sample_dex)
        assert doc["ID1"] == {"1": "WE31  ", "2": "VE5-ST   ", "3": "1234", "5": "0"}

    def test_repeating_types_are_lists(self, sample_dex):
        doc = StructuredDecoder().decode(sample_dex)
        assert len(doc["PA1"]) == 4
        assert doc["PA1"][0] == {"1": "10", "2": "360"}
        assert len(doc["CA17"]) == 3
        assert len(doc["MA5"]) == 2

    def test_singleton_last_write_wins(self):
        doc = StructuredDecoder().decode(dex("ID4*1", "ID4*2"))
        assert doc["ID4"] == {"1": "2"}

    def test_unknown_types_kept(self, sample_dex):
        doc = StructuredDecoder().decode(sample_dex)
        assert doc["ZZ9"] == {"1": "FOO", "2": "BAR"}


class TestKeyValueDecoder:
    """Test the flat semantic map."""

    def test_currency_fields(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["va1_total_sales_value"] == "1661.10"
        assert kv["va1_total_value_since_init"] == "1661.10"
        assert kv["ca3_cash_sales_value"] == "523.00"
        assert kv["da2_cash_in_cashbox"] == "42.50"

    def test_passthrough_fields(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["va1_total_sales_count"] == "451"
        assert kv["id1_serial_number"] == "WE31"
        assert kv["id1_model"] == "VE5-ST"
        assert kv["cb1_software_version"] == "3.05"
        assert kv["dxs_machine_id"] == "RST7654321"

    def test_coin_tubes(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["tube_00_denomination"] == "0.05"
        assert kv["tube_00_count"] == "40"
        assert kv["tube_00_total_value"] == "2.00"
        assert kv["tube_02_total_value"] == "15.00"

    def test_product_pairing(self):
        kv = decode_key_values(dex("PA1*10*360", "PA2*5*1800*5*1800*0*0"))
        assert kv["pa1_selection_10_price"] == "3.60"
        assert kv["pa2_selection_10_sales_count"] == "5"
        assert kv["pa2_selection_10_sales_value"] == "18.00"

    def test_pairing_follows_latest_price_row(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["pa2_selection_11_sales_value"] == "18.00"
        assert kv["pa2_selection_13_sales_value"] == "45.00"

    def test_bad_price_keeps_following_sales(self):
        decoder = KeyValueDecoder()
        kv, failures = decoder.decode_with_failures(dex("PA1*10*3x0", "PA2*5*1800*5*1800"))
        assert "pa1_selection_10_price" not in kv
        assert kv["pa2_selection_10_sales_count"] == "5"
        assert kv["pa2_selection_10_sales_value"] == "18.00"
        assert [f.segment_type for f in failures] == ["PA1"]

        doc = decode_hybrid(dex("PA1*10*3x0", "PA2*5*1800*5*1800"))
        assert [(p.selection, p.price, p.sales_value) for p in doc.products] == [
            ("10", "0.00", "18.00")
        ]
        assert doc.summary.product_count == 1

    def test_event_without_time_has_no_datetime(self):
        kv = decode_key_values("EA1*EGS")
        assert kv["latest_event_code"] == "EGS"
        assert "latest_event_datetime" not in kv
        assert "event_egs_datetime" not in kv
        assert decode_hybrid("EA1*EGS").summary.latest_event_time is None

    def test_orphan_sales_row_contributes_nothing(self):
        kv = decode_key_values(dex("PA2*5*1800", "PA1*10*360"))
        assert not any(k.startswith("pa2_") for k in kv)

    def test_events(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["ea1_event_egs_date"] == "250930"
        assert kv["ea1_event_egs_time"] == "1237"
        assert kv["event_egs_description"] == "Door Open"
        assert kv["latest_event_code"] == "EGS"
        assert kv["latest_event_datetime"] == "250930 1237"
        assert kv["ea2_event_egs_count"] == "3"

    def test_temperature(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["ma5_detected_temperature"] == "38"
        assert kv["ma5_detected_temperature_unit"] == "F"

    def test_ma5_errors(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["ma5_error_codes"] == "UA09,UA10"
        assert kv["ma5_error_ua09_active"] == "true"
        assert kv["ma5_error_ua10_description"] == "Column 10 Error"
        assert kv["latest_ma5_error_code"] == "UA10"
        assert kv["ma5_error_1"] == "UA09"
        assert kv["ma5_error_2"] == "UA10"

    def test_ma5_errors_accumulate_across_lines(self):
        kv = decode_key_values(dex("MA5*ERROR*UA09", "MA5*ERROR*HOt*UA09"))
        assert kv["ma5_error_codes"] == "UA09,HOt"
        assert kv["latest_ma5_error_code"] == "UA09"

    def test_unknown_ma5_code_description(self):
        kv = decode_key_values("MA5*ERROR*QQ")
        assert kv["ma5_error_qq_description"] == "Unknown MA5 Error (QQ)"

    def test_unknown_segment_fallback(self, sample_dex):
        kv = decode_key_values(sample_dex)
        assert kv["zz9_raw"] == [["FOO", "BAR"]]
        assert kv["zz9_data"] == "FOO*BAR"

    @pytest.mark.parametrize("line", ["QQ1*X", "ABC", "XY7**", "Z*1*2*3"])
    def test_every_unknown_type_yields_a_key(self, line):
        kv = decode_key_values(line)
        seg_type = line.split("*")[0].lower()
        assert f"{seg_type}_raw" in kv

    def test_repeated_unknown_segments_all_kept(self):
        kv = decode_key_values(dex("QQ1*A", "QQ1*B"))
        assert kv["qq1_raw"] == [["A"], ["B"]]

    def test_malformed_segment_is_skipped(self):
        decoder = KeyValueDecoder()
        kv, failures = decoder.decode_with_failures(dex("CA3*12x4*10", "VA1*166110*451"))
        assert "ca3_cash_sales_count" not in kv
        assert kv["va1_total_sales_value"] == "1661.10"
        assert len(failures) == 1
        failure = failures[0]
        assert failure.segment_type == "CA3"
        assert failure.line_number == 1

    def test_missing_selection_is_a_failure(self):
        kv, failures = KeyValueDecoder().decode_with_failures(dex("PA1**100", "PA2*1*100"))
        assert kv == {}
        assert failures[0].segment_type == "PA1"

    def test_empty_money_field_is_skipped(self):
        kv = decode_key_values("CA3**7")
        assert "ca3_cash_sales_value" not in kv
        assert kv["ca3_cash_sales_count"] == "7"

    def test_groups(self, sample_dex):
        groups = group_key_values(decode_key_values(sample_dex))
        assert groups["totals"]["va1_total_sales_value"] == "1661.10"
        assert "tube_01_count" in groups["sales"]
        assert "ea1_event_egs_date" in groups["events"]
        assert groups["diagnostics"]["ma5_error_codes"] == "UA09,UA10"
        assert "zz9_raw" in groups["other"]


class TestHybridDecoder:
    """Test summary, pairing and display helpers."""

    def test_summary(self, sample_dex):
        s = decode_hybrid(sample_dex).summary
        assert s.total_sales == "1661.10"
        assert s.total_vends == "451"
        assert s.cash_in_box == "42.50"
        assert s.temperature == "38"
        assert s.temperature_unit == "F"
        assert s.product_count == 4
        assert s.coin_tubes == 3
        assert s.machine_model == "VE5-ST"
        assert s.software_version == "3.05"
        assert s.latest_event == "Door Open"
        assert s.latest_event_code == "EGS"
        assert s.has_events
        assert s.latest_ma5_error == "Column 10 Error"
        assert s.has_ma5_errors

    def test_empty_document_defaults(self):
        doc = decode_hybrid("")
        assert doc.structured == {}
        assert doc.key_value == {}
        assert doc.summary == DexSummary()
        assert doc.summary.total_sales == "0.00"
        assert doc.summary.machine_model == "Unknown"
        assert doc.summary.latest_event is None

    def test_products_paired(self):
        doc = decode_hybrid(dex("PA1*10*360", "PA2*5*1800*5*1800*0*0"))
        product = doc.products[0]
        assert product.selection == "10"
        assert product.price == "3.60"
        assert product.sales_value == "18.00"
        assert product.sales_fields["2"] == "1800"

    def test_top_products_stable_ranking(self, sample_dex):
        top = top_products(decode_hybrid(sample_dex).products)
        assert [p["selection"] for p in top] == ["13", "10", "11"]
        assert top[0]["sales"] == "45.00"

    def test_top_products_capped(self):
        lines = []
        for i in range(1, 9):
            lines += [f"PA1*{i}*100", f"PA2*{i}*{i * 100}"]
        top = top_products(decode_hybrid(dex(*lines)).products)
        assert len(top) == 5
        assert top[0]["selection"] == "8"

    def test_collect_prefix(self, sample_dex):
        tubes = collect_prefix(decode_hybrid(sample_dex).key_value, "tube_")
        assert len(tubes) == 9
        assert all(k.startswith("tube_") for k in tubes)

    def test_device_card(self, sample_dex):
        card = device_card(decode_hybrid(sample_dex))
        assert card["total_sales"] == "1661.10"
        assert card["latest_ma5_error"] == "Column 10 Error"
        assert "event_egs_description" in card["event_data"]
        assert len(card["top_products"]) == 3

    def test_failures_exposed(self):
        doc = HybridDecoder().decode(dex("CA17*01*x*3", "VA1*100*1"))
        assert doc.summary.total_sales == "1.00"
        assert doc.summary.coin_tubes == 0
        assert len(doc.failures) == 1

    def test_shared_decoder_keeps_failures_per_document(self):
        decoder = HybridDecoder()
        bad = decoder.decode(dex("CA17*01*x*3", "CA3*1x*2"))
        good = decoder.decode(dex("VA1*100*1"))
        assert len(bad.failures) == 2
        assert good.failures == []

    def test_deterministic(self, sample_dex):
        first = json.dumps(decode_hybrid(sample_dex).to_dict(), sort_keys=True)
        second = json.dumps(decode_hybrid(sample_dex).to_dict(), sort_keys=True)
        assert first == second

    def test_json_serializable(self, sample_dex):
        data = json.loads(json.dumps(decode_hybrid(sample_dex).to_dict()))
        assert data["summary"]["total_sales"] == "1661.10"
        assert data["structured"]["PA1"][0]["2"] == "360"
