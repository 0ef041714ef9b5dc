"""Chart config builder for ``CHART:`` blocks.

Turns a chart block found by ``legal_markup.blocks`` into a sanitized
``ChartSpec`` and embeds it, serialized with orjson and entity-escaped, as
the ``data-chart`` attribute of a placeholder element:

    <div class="legal-chart" data-chart-type="bar" data-chart="{...}"></div>

Degradation rules:
    - raw block text with script-like content  -> visible warning placeholder
    - every value zero (parse failure)          -> ordinary table

The host charting library must not trust the attribute blindly: it decodes
it with ``decode_chart_attribute`` and re-validates it with
``validate_chart_config`` before drawing anything.
"""
from __future__ import annotations

import html
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import orjson

from legal_markup.blocks import Block, TableRow, render_table
from legal_markup.sanitize import (
    MAX_ARRAY_LENGTH,
    detect_suspicious_patterns,
    escape_attribute,
    sanitize_array,
    sanitize_label,
    sanitize_percentage,
    sanitize_value,
)

log = logging.getLogger(__name__)

CHART_TYPES: frozenset[str] = frozenset({"bar", "pie", "donut", "line"})
PERCENT_TYPES: frozenset[str] = frozenset({"pie", "donut"})

INVALID_CHART_PLACEHOLDER = (
    '<div class="alert alert-warning chart-invalid" role="alert">'
    "Chart contains invalid data</div>"
)


class ChartConfigError(ValueError):
    """Raised when a serialized chart configuration fails re-validation."""


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChartSpec:
    """Sanitized, typed chart description handed to the charting library."""

    type: str
    data: tuple[float, ...]
    labels: tuple[str, ...] = ()
    title: str | None = None
    subtitle: str | None = None

    def __post_init__(self) -> None:
        if self.type not in CHART_TYPES:
            raise ValueError(f"unknown chart type: {self.type!r}")
        if len(self.data) > MAX_ARRAY_LENGTH:
            raise ValueError(f"data has {len(self.data)} entries, max is {MAX_ARRAY_LENGTH}")
        if len(self.labels) > MAX_ARRAY_LENGTH:
            raise ValueError(f"labels has {len(self.labels)} entries, max is {MAX_ARRAY_LENGTH}")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.title:
            payload["title"] = self.title
        if self.subtitle:
            payload["subtitle"] = self.subtitle
        payload["data"] = [_json_number(v) for v in self.data]
        payload["labels"] = list(self.labels)
        return payload


@dataclass(frozen=True, slots=True)
class BarRow:
    """One parsed bar chart row."""

    label: str
    display: str    # Cell text as written: "$15,000 contingency"
    value: float


def _json_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------

_RANGE_RE = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)\s*[-–]\s*(\d+(?:\.\d+)?)(?![\d.])")
_NUMBER_RE = re.compile(r"(?<![\d.])-?\d+(?:\.\d+)?")


def parse_chart_value(text: Any) -> float:
    """Parse the numeric value of a chart cell.

    ``$``, ``,`` and ``+`` are stripped first. Then, in order:
    an explicit range ``"A-B"`` gives the average; several numbers in one
    cell ("0 upfront/15000 contingency") give the maximum; a single number is
    returned as is. Anything else is 0.
    """
    if text is None:
        return 0.0
    cleaned = str(text).replace("$", "").replace(",", "").replace("+", "")
    range_match = _RANGE_RE.search(cleaned)
    if range_match:
        low, high = float(range_match.group(1)), float(range_match.group(2))
        return (low + high) / 2
    numbers = [float(n) for n in _NUMBER_RE.findall(cleaned)]
    if not numbers:
        return 0.0
    if len(numbers) > 1:
        return max(numbers)
    return numbers[0]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _bar_rows(rows: tuple[TableRow, ...]) -> tuple[list[BarRow], str]:
    """Parse table rows into bar rows; returns (rows, subtitle).

    The first table row is the header; its value column becomes the
    subtitle. Header heuristic: a first data row whose value is 0 followed
    by a nonzero row is taken to be a repeated header and dropped. A genuine
    first data row of 0 followed by a nonzero row is dropped too; that
    ambiguity is accepted.
    """
    header, body = rows[0], rows[1:]
    subtitle = header[1] if len(header) > 1 else ""
    parsed = [
        BarRow(
            label=cells[0] if cells else "",
            display=cells[1] if len(cells) > 1 else "",
            value=parse_chart_value(cells[1] if len(cells) > 1 else ""),
        )
        for cells in body
    ]
    if len(parsed) > 1 and parsed[0].value == 0 and parsed[1].value != 0:
        log.debug("Dropping bar row %r as a header artifact", parsed[0].label)
        parsed = parsed[1:]
    return parsed, subtitle


def _build_bar(block: Block) -> ChartSpec | None:
    rows, subtitle = _bar_rows(block.rows)
    rows = list(sanitize_array(rows))
    data = tuple(sanitize_value(r.value) for r in rows)
    if not data or all(v == 0 for v in data):
        return None
    return ChartSpec(
        type="bar",
        data=data,
        labels=tuple(sanitize_label(r.label) for r in rows),
        subtitle=sanitize_label(subtitle) or None,
    )


def _build_pie(block: Block) -> ChartSpec | None:
    entries = sanitize_array(block.entries)
    data = tuple(sanitize_percentage(parse_chart_value(value)) for _, value in entries)
    if not data or all(v == 0 for v in data):
        return None
    return ChartSpec(
        type="pie",
        data=data,
        labels=tuple(sanitize_label(label) for label, _ in entries),
    )


def _build_line(block: Block) -> ChartSpec | None:
    entries = sanitize_array(block.entries)
    data = tuple(sanitize_value(parse_chart_value(value)) for _, value in entries)
    if not data or all(v == 0 for v in data):
        return None
    return ChartSpec(
        type="line",
        data=data,
        labels=tuple(sanitize_label(year) for year, _ in entries),
        title=sanitize_label(block.chart_title) or None,
    )


def build_chart(block: Block) -> ChartSpec | None:
    """Build a sanitized ``ChartSpec`` from a chart block.

    Returns None when the block is not a chart or when every value is 0,
    which signals a parse failure rather than real data.
    """
    if block.kind != "chart":
        return None
    if block.chart_type == "bar":
        return _build_bar(block)
    if block.chart_type == "pie":
        return _build_pie(block)
    if block.chart_type == "line":
        return _build_line(block)
    return None


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def serialize_chart(spec: ChartSpec) -> str:
    """Serialize *spec* to compact JSON text."""
    return orjson.dumps(spec.to_dict()).decode("utf-8")


def embed_chart(spec: ChartSpec) -> str:
    """Return the placeholder element carrying the escaped configuration."""
    return (
        f'<div class="legal-chart" data-chart-type="{spec.type}" '
        f'data-chart="{escape_attribute(serialize_chart(spec))}"></div>'
    )


def fallback_rows(block: Block) -> tuple[TableRow, ...]:
    """Table rows used when a chart block cannot be rendered as a chart."""
    if block.chart_type == "bar":
        return block.rows
    if block.chart_type == "pie":
        header: TableRow = ("Category", "Percentage")
        return (header,) + tuple((label, f"{value}%") for label, value in block.entries)
    header = ("Year", block.chart_title or "Value")
    return (header,) + tuple(block.entries)


def render_chart(block: Block) -> str:
    """Render a chart block as a chart element, a table or a warning.

    The suspicious-content scan runs on the raw, unsanitized block text,
    before anything is parsed or serialized.
    """
    if detect_suspicious_patterns(block.text):
        log.warning(
            "Rejected %s chart at line %d: suspicious content in block",
            block.chart_type, block.start_line + 1,
        )
        return INVALID_CHART_PLACEHOLDER
    spec = build_chart(block)
    if spec is None:
        log.info(
            "%s chart at line %d has no nonzero values; rendering as table",
            block.chart_type, block.start_line + 1,
        )
        return render_table(fallback_rows(block))
    log.debug("Embedded %s chart with %d points", spec.type, len(spec.data))
    return embed_chart(spec)


# ---------------------------------------------------------------------------
# Re-validation on the charting side
# ---------------------------------------------------------------------------


def decode_chart_attribute(attribute: str) -> str:
    """Decode the entity-escaped ``data-chart`` attribute back to JSON text."""
    return html.unescape(attribute or "")


def validate_chart_config(raw: str | bytes | Mapping[str, Any]) -> ChartSpec:
    """Re-validate and re-sanitize a chart configuration.

    Accepts JSON text/bytes or an already decoded mapping. Data items may be
    plain numbers or ``{"label"|"name": ..., "value"|"percentage": ...}``
    objects; labels are taken from those objects when ``labels`` is absent.

    Raises:
        ChartConfigError: if the configuration has the wrong shape or
            carries script-like content.
    """
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        if detect_suspicious_patterns(text):
            raise ChartConfigError("chart configuration contains suspicious content")
        try:
            config = orjson.loads(text)
        except orjson.JSONDecodeError as exc:
            raise ChartConfigError(f"chart configuration is not valid JSON: {exc}") from exc
    else:
        config = raw

    if not isinstance(config, Mapping):
        raise ChartConfigError("chart configuration must be a JSON object")

    chart_type = config.get("type")
    if not isinstance(chart_type, str) or chart_type.lower() not in CHART_TYPES:
        raise ChartConfigError(f"unsupported chart type: {chart_type!r}")
    chart_type = chart_type.lower()

    data = config.get("data")
    if not isinstance(data, list) or not data:
        raise ChartConfigError("chart data must be a non-empty list")

    coerce = sanitize_percentage if chart_type in PERCENT_TYPES else sanitize_value
    values: list[float] = []
    derived_labels: list[str] = []
    for item in data[:MAX_ARRAY_LENGTH]:
        if isinstance(item, Mapping):
            values.append(coerce(item.get("value", item.get("percentage", 0))))
            derived_labels.append(sanitize_label(item.get("label", item.get("name", ""))))
        else:
            values.append(coerce(item))

    labels = config.get("labels")
    if labels is None:
        labels = derived_labels
    elif not isinstance(labels, list):
        raise ChartConfigError("chart labels must be a list")

    title = config.get("title")
    subtitle = config.get("subtitle")
    spec = ChartSpec(
        type=chart_type,
        data=tuple(values),
        labels=sanitize_array(sanitize_label(label) for label in labels),
        title=sanitize_label(title) or None if isinstance(title, str) else None,
        subtitle=sanitize_label(subtitle) or None if isinstance(subtitle, str) else None,
    )
    if detect_suspicious_patterns(serialize_chart(spec)):
        raise ChartConfigError("chart configuration contains suspicious content")
    return spec
