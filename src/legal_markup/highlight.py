"""Term and severity highlighter.

Runs last over finished markup. The markup is split on tag boundaries and
only text runs are touched; text inside ``<a>``, ``<code>``, ``<pre>`` and
``<time>`` is left alone. Within each text run the passes are, in order:

    assumption badges -> severity meters -> bracketed category tags
    -> outcome badges -> judges/roles -> amounts -> dates -> legal terms

Every inserted span is parked in a ``MarkupStash`` until the run is done so
later passes never match inside markup produced by earlier ones.

Severity rule order matters: ``HIGH RISK`` must become one meter labelled
"HIGH RISK", not a "HIGH" meter followed by loose text, so the rule table
goes from most to least specific.
"""
from __future__ import annotations

import logging
import re
from collections import Counter

from legal_markup.blocks import FULL_DATE
from legal_markup.markdown import MarkupStash

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Severity meters
# ---------------------------------------------------------------------------

METER_BARS = 5

# Level word -> (css level, filled bars). MODERATE shares the medium meter.
SEVERITY_LEVELS: dict[str, tuple[str, int]] = {
    "CRITICAL": ("critical", 5),
    "HIGH": ("high", 4),
    "MODERATE": ("medium", 3),
    "MEDIUM": ("medium", 3),
    "LOW": ("low", 2),
}

_LEVEL = r"(?P<level>CRITICAL|HIGH|MODERATE|MEDIUM|LOW)"
_SUFFIX = r"(?P<suffix>SEVERITY|RISK|PRIORITY|EXPOSURE|IMPACT)"
_GLYPH = "\u26a0\ufe0f?"
# Start of a text run (or line), or just after a colon.
_LEAD = r"(?P<lead>^[ \t]*|:[ \t]*)"

SEVERITY_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("glyph_level_suffix", re.compile(rf"{_GLYPH}\s*\b{_LEVEL}\s+{_SUFFIX}\b")),
    ("glyph_level", re.compile(rf"{_GLYPH}\s*\b{_LEVEL}\b")),
    ("level_suffix", re.compile(rf"{_LEAD}\b{_LEVEL}\s+{_SUFFIX}\b", re.MULTILINE)),
    ("level", re.compile(rf"{_LEAD}\b{_LEVEL}\b(?![\w-])", re.MULTILINE)),
)


def severity_meter(level: str, label: str | None = None) -> str:
    """Return the five-bar meter markup for a severity level word."""
    css, filled = SEVERITY_LEVELS[level.upper()]
    text = label or level.upper()
    bars = "".join(
        '<span class="severity-bar filled"></span>' if i < filled
        else '<span class="severity-bar"></span>'
        for i in range(METER_BARS)
    )
    return (
        f'<span class="severity-meter severity-{css}" data-level="{filled}" '
        f'title="{text}">{bars}<span class="severity-label">{text}</span></span>'
    )


# ---------------------------------------------------------------------------
# Other patterns
# ---------------------------------------------------------------------------

ASSUMPTION_BADGE = '<span class="assumption-badge">\u26a0\ufe0f <strong>Assumption</strong>:</span>'
_ASSUMPTION_MARKUP_RE = re.compile(
    r'(?<!<span class="assumption-badge">)' + _GLYPH + r'\s*<strong>Assumption</strong>:'
)
_ASSUMPTION_TEXT_RE = re.compile(_GLYPH + r"\s*\*\*Assumption\*\*:")

_BRACKET_TAG_RE = re.compile(
    rf"\[(?P<category>[A-Z][A-Za-z &/]{{0,40}}?)\s*[-–—]\s*{_LEVEL}\]:"
)
_OUTCOME_RE = re.compile(r"(?P<glyph>✅|❌)(?:[ \t]*(?P<label>[A-Z][A-Za-z ]{0,40}?):)?")

_NAME = r"[A-Z](?:'[A-Z])?[A-Za-z]+(?:-[A-Z][A-Za-z]+)?"
_ROLE_RE = re.compile(rf"\b(?:Hon\.|Dr\.|Judge|Justice)\s+{_NAME}(?:\s+{_NAME})*(?:'s)?")

_AMOUNT = r"\$(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?(?:[KMB]\b|\s*(?i:thousand|million|billion)\b)?"
_AMOUNT_RE = re.compile(rf"{_AMOUNT}(?:\s*[-–]\s*(?:{_AMOUNT}|\d+(?:\.\d+)?(?:[KMB]\b)?))?")

_DATE_RE = re.compile(rf"\b{FULL_DATE}\b")
_YEAR_RANGE_RE = re.compile(r"\b\d{4}[-–]\d{4}\b")

LEGAL_TERMS: tuple[str, ...] = (
    "spoliation",
    "adverse inference",
    "trade secret",
    "summary judgment",
    "statute of limitations",
    "res judicata",
    "prima facie",
    "burden of proof",
)
_TERM_RE = re.compile(
    r"\b(?:" + "|".join(term.replace(" ", r"\s+") for term in LEGAL_TERMS) + r")s?\b",
    re.IGNORECASE,
)

_ORPHAN_GLYPH_RE = re.compile(
    rf'{_GLYPH}\s*((?:<strong>|<b>|<em>)?\s*<span class="severity-meter)'
)

_TAG_SPLIT_RE = re.compile(r"(<[^>]*>)")
_SKIP_OPEN_RE = re.compile(r"^<(a|code|pre|time)\b", re.IGNORECASE)
_SKIP_CLOSE_RE = re.compile(r"^</(a|code|pre|time)\s*>", re.IGNORECASE)

# (pattern, css class) pairs applied after the severity rules.
_SPAN_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (_ROLE_RE, "legal-judge"),
    (_AMOUNT_RE, "legal-amount"),
    (_DATE_RE, "legal-date"),
    (_YEAR_RANGE_RE, "legal-date"),
    (_TERM_RE, "legal-term"),
)


# ---------------------------------------------------------------------------
# Highlighting
# ---------------------------------------------------------------------------


def _bracket_tag(match: re.Match[str]) -> str:
    category = match.group("category").strip()
    return (
        f'<span class="severity-tag"><span class="severity-category">{category}</span> '
        f"{severity_meter(match.group('level'))}</span>:"
    )


def _outcome_badge(match: re.Match[str]) -> str:
    positive = match.group("glyph") == "✅"
    css = "outcome-positive" if positive else "outcome-negative"
    label = match.group("label")
    inner = f"{match.group('glyph')} <strong>{label}</strong>:" if label else match.group("glyph")
    return f'<span class="outcome-badge {css}">{inner}</span>'


def highlight_text(text: str, counts: Counter[str] | None = None) -> str:
    """Highlight one text run (no tags inside)."""
    if counts is None:
        counts = Counter()
    stash = MarkupStash()

    def park(fragment: str, name: str) -> str:
        counts[name] += 1
        return stash.put(fragment)

    text = _ASSUMPTION_TEXT_RE.sub(lambda m: park(ASSUMPTION_BADGE, "assumption"), text)

    for name, pattern in SEVERITY_RULES:
        def meter(m: re.Match[str], name: str = name) -> str:
            level = m.group("level")
            suffix = m.groupdict().get("suffix")
            label = f"{level} {suffix}" if suffix else level
            return (m.groupdict().get("lead") or "") + park(severity_meter(level, label), name)
        text = pattern.sub(meter, text)

    text = _BRACKET_TAG_RE.sub(lambda m: park(_bracket_tag(m), "bracket_tag"), text)
    text = _OUTCOME_RE.sub(lambda m: park(_outcome_badge(m), "outcome"), text)

    for pattern, css in _SPAN_RULES:
        text = pattern.sub(
            lambda m, css=css: park(f'<span class="{css}">{m.group(0)}</span>', css), text,
        )
    return stash.restore(text)


def highlight_legal_terms(markup: str) -> str:
    """Wrap severity indicators, outcomes, roles, amounts, dates and legal
    terms found in the text runs of *markup* in semantic spans."""
    if not markup:
        return ""
    markup = markup.replace("\x00", "")
    markup = _ASSUMPTION_MARKUP_RE.sub(ASSUMPTION_BADGE, markup)

    counts: Counter[str] = Counter()
    out: list[str] = []
    skip_depth = 0
    for segment in _TAG_SPLIT_RE.split(markup):
        if segment.startswith("<"):
            if _SKIP_OPEN_RE.match(segment):
                skip_depth += 1
            elif _SKIP_CLOSE_RE.match(segment):
                skip_depth = max(0, skip_depth - 1)
            out.append(segment)
        elif not segment or skip_depth:
            out.append(segment)
        else:
            out.append(highlight_text(segment, counts))

    if counts:
        log.debug("Highlighted: %s", dict(counts))
    return _ORPHAN_GLYPH_RE.sub(r"\1", "".join(out))
