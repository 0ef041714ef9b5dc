"""Structural block extractor for AI-generated legal markdown.

Splits a document into an ordered sequence of blocks that exactly covers
its lines:

- **Table**: a run of lines that start and end with ``|``. Separator rows
  (``|---|:--:|``) are consumed but never stored.
- **Timeline**: three recognizers, tried in priority order:
    (a) a ``TIMELINE:`` marker followed by dated bullets
        (``- Jan 15, 2024 (tentative): Answer due``);
    (b) the same dated bullets without a marker, accepted when a bounded
        lookahead (10 lines, skipping blank lines and headings) finds at
        least two of them;
    (c) narrative form: a line holding only a date token opens an item and
        the following sub-bullets (``○ ◦ • - *``) become its description.
- **Chart**: ``CHART:BAR`` / ``CHART:PIE`` / ``CHART:LINE`` followed by a
  body of the expected shape. A body that does not match degrades: the
  marker line becomes plain text and scanning resumes on the next line.
- **Plain**: everything else, passed through verbatim.

``reconstruct(extract_blocks(text)) == text`` holds for every input.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass
from datetime import datetime

from legal_markup.sanitize import escape_text

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

BLOCK_KINDS: frozenset[str] = frozenset({"table", "timeline", "chart", "plain"})
CHART_KINDS: frozenset[str] = frozenset({"bar", "pie", "line"})

type TableRow = tuple[str, ...]


@dataclass(frozen=True, slots=True)
class TimelineItem:
    """One dated entry of a timeline."""

    date: str              # Literal date token as written: "Jan 15, 2024"
    description: str
    qualifier: str = ""    # "(tentative)" without the parentheses


@dataclass(frozen=True, slots=True)
class Block:
    """A contiguous run of source lines classified as one block kind."""

    kind: str                                  # table | timeline | chart | plain
    lines: tuple[str, ...]                     # Exact source lines
    start_line: int                            # 0-based index of lines[0]
    rows: tuple[TableRow, ...] = ()            # table, bar chart
    items: tuple[TimelineItem, ...] = ()       # timeline
    chart_type: str = ""                       # bar | pie | line
    chart_title: str = ""                      # line chart title line
    entries: tuple[tuple[str, str], ...] = ()  # pie/line (label, value text)

    def __post_init__(self) -> None:
        if self.kind not in BLOCK_KINDS:
            raise ValueError(f"unknown block kind: {self.kind!r}")
        if not self.lines:
            raise ValueError("a block must hold at least one line")
        if self.kind == "table" and not self.rows:
            raise ValueError("a table block needs at least one row")
        if self.kind == "timeline" and not self.items:
            raise ValueError("a timeline block needs at least one item")
        if self.kind == "chart" and self.chart_type not in CHART_KINDS:
            raise ValueError(f"unknown chart type: {self.chart_type!r}")

    @property
    def end_line(self) -> int:
        """Index one past the last line of the block."""
        return self.start_line + len(self.lines)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


# ---------------------------------------------------------------------------
# Line classifiers
# ---------------------------------------------------------------------------

_TABLE_SEPARATOR_RE = re.compile(r"^\|[\s\-:|]+\|$")
_HEADING_RE = re.compile(r"^\s*#{1,6}(?:\s|$)")

MONTHS = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
FULL_DATE = rf"{MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}"
_ISO_DATE = r"\d{4}-\d{2}-\d{2}"
_NUMERIC_DATE = r"\d{1,2}/\d{1,2}/\d{2,4}"
_QUARTER = r"Q[1-4][\s\-]\d{4}"
_MONTH_RANGE = rf"{MONTHS}\.?\s*[-–]\s*{MONTHS}\.?,?\s+\d{{4}}"
_MONTH_YEAR = rf"{MONTHS}\.?,?\s+\d{{4}}"
DATE_TOKEN = (
    rf"(?:{FULL_DATE}|{_ISO_DATE}|{_NUMERIC_DATE}|{_QUARTER}|"
    rf"{_MONTH_RANGE}|{_MONTH_YEAR})"
)

_TIMELINE_MARKER_RE = re.compile(
    r"^\s*(?:#{1,6}\s*)?(?:\*\*)?TIMELINE\s*:\s*(?:\*\*)?\s*$", re.IGNORECASE,
)
_DATED_BULLET_RE = re.compile(
    rf"^\s*[-*•]\s+(?:\*\*)?(?P<date>{DATE_TOKEN})(?:\*\*)?"
    r"(?:\s*\((?P<qualifier>[^)]{1,60})\))?\s*(?:\*\*)?:(?:\*\*)?\s*(?P<desc>\S.*?)\s*$",
    re.IGNORECASE,
)
_DATE_LINE_RE = re.compile(
    rf"^\s*(?:#{{1,6}}\s+)?(?:\*\*)?(?P<date>{DATE_TOKEN})(?:\*\*)?:?(?:\*\*)?\s*$",
    re.IGNORECASE,
)
_SUB_BULLET_RE = re.compile(
    r"^\s*(?:[○◦•]\s*|[-*]\s+)(?P<text>\S.*?)\s*$"
)

_CHART_MARKER_RE = re.compile(
    r"^\s*(?:\*\*)?CHART\s*:\s*(?P<kind>BAR|PIE|LINE)(?:\*\*)?\s*$", re.IGNORECASE,
)
_PIE_ENTRY_RE = re.compile(
    r"^\s*[-*•]\s+(?P<label>.+?)\s*:\s*(?P<value>[+\-]?\d[\d,]*(?:\.\d+)?)\s*%\s*$"
)
_LINE_ENTRY_RE = re.compile(
    r"^\s*(?:[-*•]\s+)?(?P<year>\d{4})\s*:\s*(?P<value>.*?\d.*?)\s*$"
)

TIMELINE_LOOKAHEAD = 10


def is_table_line(line: str) -> bool:
    """Return True if the trimmed line starts and ends with a pipe."""
    stripped = line.strip()
    return len(stripped) >= 2 and stripped.startswith("|") and stripped.endswith("|")


def is_separator_row(line: str) -> bool:
    """Return True for ``|---|---|`` style rows (alignment colons allowed)."""
    stripped = line.strip()
    return bool(_TABLE_SEPARATOR_RE.match(stripped)) and "-" in stripped


def parse_table_row(line: str) -> TableRow:
    """Split a ``| a | b |`` line into trimmed cells."""
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|"):
        stripped = stripped[:-1]
    return tuple(cell.strip() for cell in stripped.split("|"))


def _is_blank_or_heading(line: str) -> bool:
    return not line.strip() or bool(_HEADING_RE.match(line))


def _skip_blank(lines: list[str], start: int) -> int:
    j = start
    while j < len(lines) and not lines[j].strip():
        j += 1
    return j


# ---------------------------------------------------------------------------
# Table recognizer
# ---------------------------------------------------------------------------


def _match_table(lines: list[str], start: int) -> Block | None:
    if start >= len(lines) or not is_table_line(lines[start]):
        return None
    rows: list[TableRow] = []
    j = start
    while j < len(lines) and is_table_line(lines[j]):
        if not is_separator_row(lines[j]):
            rows.append(parse_table_row(lines[j]))
        j += 1
    if not rows:
        return None
    return Block("table", tuple(lines[start:j]), start, rows=tuple(rows))


# ---------------------------------------------------------------------------
# Chart recognizer
# ---------------------------------------------------------------------------


def _clean_title(line: str) -> str:
    return line.strip().strip("#*_ ").strip()


def _match_chart(lines: list[str], start: int) -> Block | None:
    marker = _CHART_MARKER_RE.match(lines[start])
    if marker is None:
        return None
    chart_type = marker.group("kind").lower()
    body = _skip_blank(lines, start + 1)

    if chart_type == "bar":
        table = _match_table(lines, body)
        if table is None or len(table.rows) < 2:
            return None
        return Block(
            "chart", tuple(lines[start:table.end_line]), start,
            rows=table.rows, chart_type="bar",
        )

    title = ""
    j = body
    if chart_type == "line" and j < len(lines):
        candidate = lines[j]
        if (
            not _LINE_ENTRY_RE.match(candidate)
            and not candidate.strip()[:1].isdigit()
            and not is_table_line(candidate)
            and _clean_title(candidate)
        ):
            title = _clean_title(candidate)
            j = _skip_blank(lines, j + 1)

    entry_re = _PIE_ENTRY_RE if chart_type == "pie" else _LINE_ENTRY_RE
    entries: list[tuple[str, str]] = []
    while j < len(lines):
        m = entry_re.match(lines[j])
        if m is None:
            break
        if chart_type == "pie":
            entries.append((m.group("label").strip(), m.group("value")))
        else:
            entries.append((m.group("year"), m.group("value")))
        j += 1
    if not entries:
        return None
    return Block(
        "chart", tuple(lines[start:j]), start,
        chart_type=chart_type, chart_title=title, entries=tuple(entries),
    )


# ---------------------------------------------------------------------------
# Timeline recognizer (state machine)
# ---------------------------------------------------------------------------


def count_dated_bullets(lines: list[str], start: int, window: int = TIMELINE_LOOKAHEAD) -> int:
    """Count dated bullets in a bounded forward window.

    Blank lines and headings are skipped (they still use up the window);
    any other line ends the scan.
    """
    count = 0
    end = min(len(lines), start + window)
    for j in range(start, end):
        line = lines[j]
        if _DATED_BULLET_RE.match(line):
            count += 1
        elif not _is_blank_or_heading(line):
            break
    return count


class _TimelineScanner:
    """Scan one candidate timeline starting at ``start``.

    States:
        ``idle``          nothing open yet.
        ``in_timeline``   collecting dated bullets, or sub-bullets of the
                          current narrative item.
        ``pending_date``  a narrative date line opened an item that has no
                          sub-bullet yet.

    Blank lines and headings never change state. The block ends at the
    last line that contributed content, so trailing blank lines and
    headings stay in the surrounding plain text.
    """

    def __init__(self, lines: list[str], start: int, skip: frozenset[str] = frozenset()) -> None:
        self.lines = lines
        self.start = start
        self.skip = skip
        self.state = "idle"
        self.end = start
        # Which scan ran ("marker", "bullets", "narrative") and where it stopped.
        self.kind = ""
        self.stop = start
        # (date, qualifier, description parts, line index)
        self._items: list[tuple[str, str, list[str], int]] = []

    def run(self) -> Block | None:
        first = self.lines[self.start]
        if _TIMELINE_MARKER_RE.match(first):
            self.kind = "marker"
            if self.kind in self.skip:
                return None
            self.state = "in_timeline"
            self._scan_bullets(self.start + 1)
        elif _DATED_BULLET_RE.match(first) and count_dated_bullets(self.lines, self.start) >= 2:
            self.kind = "bullets"
            self.state = "in_timeline"
            self._scan_bullets(self.start)
        elif _DATE_LINE_RE.match(first):
            self.kind = "narrative"
            if self.kind in self.skip:
                return None
            self._scan_narrative(self.start)
        else:
            return None

        items = tuple(
            TimelineItem(date=date, description=" • ".join(parts), qualifier=qualifier)
            for date, qualifier, parts, index in self._items
            if index < self.end
        )
        if not any(item.description for item in items):
            return None
        return Block("timeline", tuple(self.lines[self.start:self.end]), self.start, items=items)

    def _scan_bullets(self, j: int) -> None:
        while j < len(self.lines):
            line = self.lines[j]
            m = _DATED_BULLET_RE.match(line)
            if m:
                self._items.append((
                    m.group("date").strip(),
                    (m.group("qualifier") or "").strip(),
                    [m.group("desc").strip("* ")],
                    j,
                ))
                j += 1
                self.end = j
            elif _is_blank_or_heading(line):
                j += 1
            else:
                break
        self.stop = j
        self.state = "idle"

    def _scan_narrative(self, j: int) -> None:
        while j < len(self.lines):
            line = self.lines[j]
            date_match = _DATE_LINE_RE.match(line)
            if date_match:
                self._items.append((date_match.group("date").strip(), "", [], j))
                self.state = "pending_date"
                j += 1
                continue
            bullet = _SUB_BULLET_RE.match(line)
            if bullet and self.state in ("pending_date", "in_timeline"):
                self._items[-1][2].append(bullet.group("text"))
                self.state = "in_timeline"
                j += 1
                self.end = j
                continue
            if _is_blank_or_heading(line):
                j += 1
                continue
            break
        self.stop = j
        self.state = "idle"


def _match_timeline(lines: list[str], start: int, exhausted: dict[str, int]) -> Block | None:
    """Run the timeline scanner at *start*.

    *exhausted* maps a scan kind to the line where its last failed scan
    stopped. Every line before that point was already walked by that scan,
    and a scan of the same kind starting there would fail the same way, so
    it is not retried.
    """
    skip = frozenset(kind for kind, stop in exhausted.items() if start < stop)
    scanner = _TimelineScanner(lines, start, skip)
    block = scanner.run()
    if block is None and scanner.kind in ("marker", "narrative") and scanner.kind not in skip:
        exhausted[scanner.kind] = scanner.stop
    return block


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_blocks(
    text: str,
    *,
    timelines: bool = True,
    charts: bool = True,
) -> tuple[Block, ...]:
    """Split *text* into blocks covering every line exactly once.

    Args:
        text: Markdown-like source text.
        timelines: Run the timeline recognizers.
        charts: Recognize ``CHART:`` blocks. When False, chart markers are
            plain text and a bar chart body is read as an ordinary table.

    Returns:
        Blocks in source order.
    """
    lines = text.split("\n")
    blocks: list[Block] = []
    plain: list[str] = []
    plain_start = 0

    def flush_plain() -> None:
        if plain:
            blocks.append(Block("plain", tuple(plain), plain_start))
            plain.clear()

    exhausted: dict[str, int] = {}
    i = 0
    while i < len(lines):
        block = _match_chart(lines, i) if charts else None
        if block is None:
            block = _match_table(lines, i)
        if block is None and timelines:
            block = _match_timeline(lines, i, exhausted)
        if block is None:
            if not plain:
                plain_start = i
            plain.append(lines[i])
            i += 1
            continue
        flush_plain()
        blocks.append(block)
        i = block.end_line
    flush_plain()
    return tuple(blocks)


def reconstruct(blocks: tuple[Block, ...] | list[Block]) -> str:
    """Join the source lines of *blocks* back into one string."""
    return "\n".join(line for block in blocks for line in block.lines)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_table(rows: tuple[TableRow, ...] | list[TableRow]) -> str:
    """Render table rows (first row is the header) as a single-line fragment."""
    if not rows:
        return ""
    parts = [
        '<div class="table-responsive"><table class="table table-bordered '
        'table-striped table-hover align-middle mb-0"><thead class="table-light"><tr>'
    ]
    parts.extend(f'<th scope="col">{escape_text(cell)}</th>' for cell in rows[0])
    parts.append("</tr></thead>")
    if len(rows) > 1:
        parts.append("<tbody>")
        for row in rows[1:]:
            parts.append("<tr>")
            parts.extend(f"<td>{escape_text(cell)}</td>" for cell in row)
            parts.append("</tr>")
        parts.append("</tbody>")
    parts.append("</table></div>")
    return "".join(parts)


_ORDINAL_RE = re.compile(r"(\d)(?:st|nd|rd|th)\b", re.IGNORECASE)
_FULL_DATE_FORMATS = (
    "%B %d, %Y", "%b %d, %Y", "%B %d %Y", "%b %d %Y",
    "%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y",
)
_MONTH_FORMATS = ("%B %Y", "%b %Y", "%B, %Y", "%b, %Y")


def _normalize_date_token(token: str) -> str:
    text = _ORDINAL_RE.sub(r"\1", token.strip())
    text = re.sub(r"\bSept\b", "Sep", text, flags=re.IGNORECASE)
    text = re.sub(r"(?<=[A-Za-z])\.", "", text)
    return re.sub(r"\s+", " ", text)


def format_timeline_date(token: str) -> str:
    """Render a date token as a ``<time>`` element, or the escaped literal.

    Calendar dates and month-year tokens are normalized ("Jan 5, 2024",
    "March 2024"); anything unparseable (quarters, month ranges) is kept as
    written.
    """
    normalized = _normalize_date_token(token)
    for fmt in _FULL_DATE_FORMATS:
        try:
            parsed = datetime.strptime(normalized, fmt)
        except ValueError:
            continue
        display = f"{parsed:%b} {parsed.day}, {parsed.year}"
        return f'<time datetime="{parsed:%Y-%m-%d}">{display}</time>'
    for fmt in _MONTH_FORMATS:
        try:
            parsed = datetime.strptime(normalized, fmt)
        except ValueError:
            continue
        return f'<time datetime="{parsed:%Y-%m}">{parsed:%B} {parsed.year}</time>'
    return escape_text(token)


def render_timeline(items: tuple[TimelineItem, ...] | list[TimelineItem]) -> str:
    """Render timeline items, in order, as a single-line fragment."""
    parts = ['<div class="legal-timeline"><ol class="timeline-list">']
    for item in items:
        parts.append('<li class="timeline-item">')
        parts.append(f'<span class="timeline-date">{format_timeline_date(item.date)}</span>')
        if item.qualifier:
            parts.append(
                f'<span class="timeline-qualifier">({escape_text(item.qualifier)})</span>'
            )
        parts.append(f'<span class="timeline-description">{escape_text(item.description)}</span>')
        parts.append("</li>")
    parts.append("</ol></div>")
    return "".join(parts)


# ---------------------------------------------------------------------------
# Markdown tables embedded in HTML paragraphs
# ---------------------------------------------------------------------------

_PARAGRAPH_RE = re.compile(r"<p[^>]*>([\s\S]*?)</p>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")


def convert_tables_in_html(markup: str) -> str:
    """Convert runs of ``<p>| a | b |</p>`` paragraphs into table markup.

    Content outside the pipe paragraphs is preserved byte for byte.
    """
    result: list[str] = []
    rows: list[TableRow] = []
    table_start = -1
    last = 0

    def flush_table() -> None:
        # A run of separator paragraphs alone is not a table; keep it as is.
        if rows:
            result.append(render_table(rows))
        else:
            result.append(markup[table_start:last])
        rows.clear()

    for match in _PARAGRAPH_RE.finditer(markup):
        text_only = html.unescape(_TAG_RE.sub("", match.group(1))).strip()
        if is_table_line(text_only):
            if table_start < 0:
                result.append(markup[last:match.start()])
                table_start = match.start()
            if not is_separator_row(text_only):
                rows.append(parse_table_row(text_only))
            last = match.end()
            continue
        if table_start >= 0:
            flush_table()
            table_start = -1
        result.append(markup[last:match.end()])
        last = match.end()
    if table_start >= 0:
        flush_table()
    result.append(markup[last:])
    return "".join(result)
