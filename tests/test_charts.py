"""Tests for legal_markup.charts: value parsing, builders, embedding, re-validation."""
from __future__ import annotations

import re

import orjson
import pytest

from legal_markup.blocks import extract_blocks
from legal_markup.charts import (
    INVALID_CHART_PLACEHOLDER,
    ChartConfigError,
    ChartSpec,
    build_chart,
    decode_chart_attribute,
    embed_chart,
    fallback_rows,
    parse_chart_value,
    render_chart,
    validate_chart_config,
)
from legal_markup.sanitize import MAX_ARRAY_LENGTH

_DATA_CHART_RE = re.compile(r'data-chart="([^"]*)"')


def _chart_block(text: str):
    blocks = [b for b in extract_blocks(text) if b.kind == "chart"]
    assert len(blocks) == 1
    return blocks[0]


def _embedded_config(markup: str) -> dict:
    m = _DATA_CHART_RE.search(markup)
    assert m is not None, markup
    return orjson.loads(decode_chart_attribute(m.group(1)))


class TestParseChartValue:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("$15,000", 15000.0),
            ("+25", 25.0),
            ("10-20", 15.0),
            ("$50,000 - $100,000", 75000.0),
            ("0 upfront/15000 contingency", 15000.0),
            ("about 42.5 hours", 42.5),
            ("N/A", 0.0),
            ("", 0.0),
            (None, 0.0),
            ("-3", -3.0),
        ],
    )
    def test_values(self, text: object, expected: float) -> None:
        assert parse_chart_value(text) == expected


class TestBarChart:
    def test_rows_and_subtitle(self) -> None:
        block = _chart_block(
            "CHART:BAR\n| Option | Cost |\n|---|---|\n| Hourly | $50,000 |\n| Contingency | $15,000 |"
        )
        spec = build_chart(block)
        assert spec is not None
        assert spec.type == "bar"
        assert spec.labels == ("Hourly", "Contingency")
        assert spec.data == (50000.0, 15000.0)
        assert spec.subtitle == "Cost"

    def test_zero_first_row_dropped_as_header(self) -> None:
        block = _chart_block(
            "CHART:BAR\n| Option | Cost |\n| Strategy | Amount |\n| Trial | $90,000 |\n| Settle | $20,000 |"
        )
        spec = build_chart(block)
        assert spec is not None
        assert spec.labels == ("Trial", "Settle")
        assert spec.data == (90000.0, 20000.0)

    def test_all_zero_returns_none(self) -> None:
        block = _chart_block("CHART:BAR\n| Option | Cost |\n| A | unknown |\n| B | tbd |")
        assert build_chart(block) is None

    def test_all_zero_renders_table(self) -> None:
        block = _chart_block("CHART:BAR\n| Option | Cost |\n| A | unknown |\n| B | tbd |")
        markup = render_chart(block)
        assert "legal-chart" not in markup
        assert "<table" in markup
        assert "<td>unknown</td>" in markup

    def test_row_count_capped(self) -> None:
        rows = "\n".join(f"| Row {i} | {i + 1} |" for i in range(150))
        block = _chart_block(f"CHART:BAR\n| Label | Value |\n{rows}")
        config = _embedded_config(render_chart(block))
        assert len(config["data"]) <= MAX_ARRAY_LENGTH
        assert len(config["labels"]) <= MAX_ARRAY_LENGTH

    def test_huge_values_clamped(self) -> None:
        block = _chart_block("CHART:BAR\n| Item | Value |\n| Big | 5000000000000 |\n| Small | 1 |")
        spec = build_chart(block)
        assert spec is not None
        assert spec.data[0] == 999_999_999


class TestPieChart:
    def test_basic(self) -> None:
        spec = build_chart(_chart_block("CHART:PIE\n- Wins: 60%\n- Losses: 40%\n"))
        assert spec is not None
        assert spec.type == "pie"
        assert spec.labels == ("Wins", "Losses")
        assert spec.data == (60.0, 40.0)

    def test_percentages_clamped(self) -> None:
        spec = build_chart(_chart_block("CHART:PIE\n- A: 140%\n- B: 20%"))
        assert spec is not None
        assert spec.data == (100.0, 20.0)

    def test_all_zero_falls_back_to_percentage_table(self) -> None:
        block = _chart_block("CHART:PIE\n- A: 0%\n- B: 0%")
        assert build_chart(block) is None
        assert fallback_rows(block) == (("Category", "Percentage"), ("A", "0%"), ("B", "0%"))


class TestLineChart:
    def test_basic(self) -> None:
        spec = build_chart(_chart_block("CHART:LINE\nVerdicts\n2021: 12\n2022: 15-25"))
        assert spec is not None
        assert spec.type == "line"
        assert spec.title == "Verdicts"
        assert spec.labels == ("2021", "2022")
        assert spec.data == (12.0, 20.0)

    def test_fallback_header_uses_title(self) -> None:
        block = _chart_block("CHART:LINE\nVerdicts\n2021: 0\n2022: $0")
        assert build_chart(block) is None
        assert fallback_rows(block)[0] == ("Year", "Verdicts")


class TestRenderChart:
    def test_embedded_json_is_escaped(self) -> None:
        markup = render_chart(_chart_block("CHART:PIE\n- Wins: 60%\n- Losses: 40%"))
        assert markup.startswith('<div class="legal-chart" data-chart-type="pie"')
        assert "&quot;" in markup
        assert _embedded_config(markup) == {
            "type": "pie", "data": [60, 40], "labels": ["Wins", "Losses"],
        }

    def test_suspicious_block_rejected(self) -> None:
        block = _chart_block("CHART:PIE\n- <script>alert(1)</script>Wins: 60%\n- Losses: 40%")
        assert render_chart(block) == INVALID_CHART_PLACEHOLDER

    def test_event_handler_rejected(self) -> None:
        block = _chart_block(
            'CHART:BAR\n| Option | Cost |\n| <img src=x onerror="a()"> | 10 |\n| B | 5 |'
        )
        assert render_chart(block) == INVALID_CHART_PLACEHOLDER

    def test_non_chart_block(self) -> None:
        block = extract_blocks("plain text")[0]
        assert build_chart(block) is None


class TestChartSpec:
    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="unknown chart type"):
            ChartSpec(type="radar", data=(1.0,))

    def test_too_many_points(self) -> None:
        with pytest.raises(ValueError, match="max is"):
            ChartSpec(type="bar", data=tuple(float(i) for i in range(MAX_ARRAY_LENGTH + 1)))

    def test_to_dict_integral_values(self) -> None:
        spec = ChartSpec(type="bar", data=(1.0, 2.5), labels=("a", "b"), title="T")
        assert spec.to_dict() == {"type": "bar", "title": "T", "data": [1, 2.5], "labels": ["a", "b"]}

    def test_embed_roundtrip(self) -> None:
        spec = ChartSpec(type="line", data=(3.0,), labels=('He said "hi"',))
        config = _embedded_config(embed_chart(spec))
        assert config["labels"] == ['He said "hi"']


class TestValidateChartConfig:
    def test_valid_json_text(self) -> None:
        spec = validate_chart_config('{"type": "bar", "data": [1, 2], "labels": ["a", "b"]}')
        assert spec.data == (1.0, 2.0)
        assert spec.labels == ("a", "b")

    def test_mapping_items_supply_labels(self) -> None:
        spec = validate_chart_config({
            "type": "DONUT",
            "data": [{"name": "Wins", "percentage": 130}, {"label": "Losses", "value": 20}],
        })
        assert spec.type == "donut"
        assert spec.data == (100.0, 20.0)
        assert spec.labels == ("Wins", "Losses")

    def test_bytes_accepted(self) -> None:
        spec = validate_chart_config(b'{"type": "pie", "data": [50, 50]}')
        assert spec.type == "pie"

    def test_labels_resanitized(self) -> None:
        spec = validate_chart_config({"type": "bar", "data": [1], "labels": ["<b>Fee</b>"]})
        assert spec.labels == ("Fee",)

    def test_data_truncated(self) -> None:
        spec = validate_chart_config({"type": "line", "data": list(range(300))})
        assert len(spec.data) == MAX_ARRAY_LENGTH

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            '{"type": "radar", "data": [1]}',
            '{"type": "bar", "data": []}',
            '{"type": "bar", "data": "1,2"}',
            '{"type": "bar", "data": [1], "labels": "a"}',
            '{"type": "bar", "data": [1], "labels": ["<script>x</script>"]}',
            '{"type": "bar", "data": [1], "title": "javascript:alert(1)"}',
        ],
    )
    def test_rejected(self, raw: str) -> None:
        with pytest.raises(ChartConfigError):
            validate_chart_config(raw)

    def test_roundtrip_from_rendered_attribute(self) -> None:
        markup = render_chart(_chart_block("CHART:PIE\n- Wins: 60%\n- Losses: 40%"))
        attribute = _DATA_CHART_RE.search(markup).group(1)
        spec = validate_chart_config(decode_chart_attribute(attribute))
        assert spec.data == (60.0, 40.0)
