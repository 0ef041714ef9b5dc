"""Markdown-to-markup converter for the opinionated legal markdown subset.

Conversion is an ordered sequence of regex passes over escaped text. The
order is load-bearing:

    1. strip stray backticks and bare code-fence lines
    2. structural blocks (tables, timelines, charts) -> fragments
    3. headings, deepest level first (``######`` before ``#``)
    4. blockquotes, horizontal rules
    5. inline code, emphasis (``***`` -> ``**`` -> ``*``), links
    6. ordered then unordered list items, wrapped and merged
    7. paragraphs for every remaining text line
    8. newlines -> ``<br>``, then ``<br>`` next to block tags removed

Source text is HTML-escaped before step 3, so only markup built by these
rules reaches tag or attribute position. Pre-built fragments (verified
citation spans, chart elements, code spans) sit in a ``MarkupStash`` behind
NUL-delimited tokens until the end.
"""
from __future__ import annotations

import html
import logging
import re

from legal_markup.blocks import extract_blocks, render_table, render_timeline
from legal_markup.charts import render_chart
from legal_markup.sanitize import escape_attribute, escape_text, safe_url

log = logging.getLogger(__name__)

LINK_ATTRIBUTES = 'target="_blank" rel="noopener noreferrer"'


# ---------------------------------------------------------------------------
# Placeholder stash
# ---------------------------------------------------------------------------


class MarkupStash:
    """Keep finished markup fragments out of reach of later regex passes.

    ``put`` returns a token (``\\x00N\\x00``) that is substituted back by
    ``restore``. Tokens survive HTML escaping and every conversion pass
    because no rule matches NUL characters; input text has NULs removed.
    """

    TOKEN_RE = re.compile(r"\x00(\d+)\x00")

    def __init__(self) -> None:
        self._fragments: list[str] = []
        self._block_tokens: set[str] = set()

    def __len__(self) -> int:
        return len(self._fragments)

    def put(self, fragment: str, *, block: bool = False) -> str:
        token = f"\x00{len(self._fragments)}\x00"
        self._fragments.append(fragment)
        if block:
            self._block_tokens.add(token)
        return token

    def is_block_token(self, line: str) -> bool:
        """True if *line* is exactly one block-level fragment token."""
        return line.strip() in self._block_tokens

    def restore(self, text: str) -> str:
        # Fragments can embed tokens of earlier fragments (a verified
        # citation inside a table cell), so substitute until none remain.
        for _ in range(len(self._fragments) + 1):
            if "\x00" not in text:
                break
            text = self.TOKEN_RE.sub(self._lookup, text)
        return text.replace("\x00", "")

    def _lookup(self, match: re.Match[str]) -> str:
        index = int(match.group(1))
        if index < len(self._fragments):
            return self._fragments[index]
        return ""


# ---------------------------------------------------------------------------
# Verified citation pre-marker
# ---------------------------------------------------------------------------

# Link target: one level of balanced parentheses is allowed.
_LINK_URL = r"((?:[^()\s]|\([^()\s]*\))+)"
_CHECKMARK_LINK_RE = re.compile(rf"✓\s*\[([^\]\n]+?)\]\({_LINK_URL}\)")
_VIEW_SUFFIX_RE = re.compile(r"\s*[-–—]\s*View\s*→?\s*$", re.IGNORECASE)


def mark_checkmark_citations(text: str, stash: MarkupStash) -> str:
    """Turn ``✓ [text](url)`` into a stashed verified-citation span.

    A trailing `` - View →`` is removed from the link text. Links with a
    disallowed URL scheme keep only their text.
    """

    def replace(match: re.Match[str]) -> str:
        label = _VIEW_SUFFIX_RE.sub("", match.group(1)).strip() or match.group(1).strip()
        url = safe_url(match.group(2))
        if url is None:
            log.warning("Dropped verified citation link with unsafe URL: %r", match.group(2))
            return f"✓ {label}"
        return stash.put(
            f'<span class="citation-verified">✓ <a href="{escape_attribute(url)}" '
            f'{LINK_ATTRIBUTES}>{escape_text(label)}</a></span>'
        )

    return _CHECKMARK_LINK_RE.sub(replace, text)


# ---------------------------------------------------------------------------
# Pattern table
# ---------------------------------------------------------------------------

_FENCE_LINE_RE = re.compile(r"^[ \t]*```[\w-]*[ \t]*$\n?", re.MULTILINE)
_LEADING_BACKTICKS_RE = re.compile(r"\A\s*`+")

_HEADING_RES: tuple[tuple[int, re.Pattern[str]], ...] = tuple(
    (
        level,
        re.compile(
            rf"^[ \t]*#(?:[ \t]*#){{{level - 1}}}[ \t]+(.+?)[ \t]*#*[ \t]*$",
            re.MULTILINE,
        ),
    )
    for level in range(6, 0, -1)
)

_BLOCKQUOTE_RE = re.compile(r"^[ \t]*&gt;[ \t]?(.*)$", re.MULTILINE)
_BLOCKQUOTE_JOIN_RE = re.compile(r"</blockquote>\n<blockquote>")
_HR_RE = re.compile(r"^[ \t]*(?:-{3,}|\*{3,}|_{3,})[ \t]*$", re.MULTILINE)

_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_BOLD_ITALIC_RE = re.compile(r"\*\*\*(?=\S)(.+?)(?<=\S)\*\*\*")
_BOLD_RE = re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*")
_ITALIC_RE = re.compile(r"(?<![*\w])\*(?=[^\s*])([^*\n]+?)(?<=[^\s*])\*(?![*\w])")
_LINK_RE = re.compile(rf"\[([^\]\n]+?)\]\({_LINK_URL}\)")

_ORDERED_ITEM_RE = re.compile(r"^[ \t]*\d+[.)][ \t]+(.+)$", re.MULTILINE)
_UNORDERED_ITEM_RE = re.compile(r"^[ \t]*[-*•][ \t]+(.+)$", re.MULTILINE)
_OL_JOIN_RE = re.compile(r"</ol>\s*<ol>")
_UL_JOIN_RE = re.compile(r"</ul>\s*<ul>")

_BLOCK_TAGS = "h[1-6]|p|ul|ol|li|blockquote|hr|div|table|pre"
_BLOCK_START_RE = re.compile(rf"^<(?:{_BLOCK_TAGS})\b", re.IGNORECASE)
_BR_BEFORE_BLOCK_RE = re.compile(rf"<br>\s*(<(?:{_BLOCK_TAGS})\b)", re.IGNORECASE)
_BR_AFTER_BLOCK_RE = re.compile(rf"(</(?:{_BLOCK_TAGS})>|<hr>)\s*<br>", re.IGNORECASE)
_BR_RUN_RE = re.compile(r"(?:<br>\s*){3,}")


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    """Remove bare ``` lines and stray backticks at the start of the text."""
    text = _FENCE_LINE_RE.sub("", text)
    return _LEADING_BACKTICKS_RE.sub("", text)


def _substitute_blocks(text: str, stash: MarkupStash, *, timelines: bool, charts: bool) -> str:
    parts: list[str] = []
    counts = {"table": 0, "timeline": 0, "chart": 0}
    for block in extract_blocks(text, timelines=timelines, charts=charts):
        if block.kind == "plain":
            parts.append(escape_text(block.text))
            continue
        counts[block.kind] += 1
        if block.kind == "table":
            parts.append(render_table(block.rows))
        elif block.kind == "timeline":
            parts.append(render_timeline(block.items))
        else:
            parts.append(stash.put(render_chart(block), block=True))
    if any(counts.values()):
        log.debug(
            "Structural blocks: %d tables, %d timelines, %d charts",
            counts["table"], counts["timeline"], counts["chart"],
        )
    return "\n".join(parts)


def convert_headings(text: str) -> str:
    for level, pattern in _HEADING_RES:
        text = pattern.sub(rf"<h{level}>\1</h{level}>", text)
    return text


def _replace_link(match: re.Match[str]) -> str:
    label, raw_url = match.group(1), match.group(2)
    url = safe_url(html.unescape(raw_url))
    if url is None:
        return label
    return f'<a href="{escape_attribute(url)}" {LINK_ATTRIBUTES}>{label}</a>'


def convert_inline(text: str, stash: MarkupStash) -> str:
    """Inline code, emphasis and links."""
    text = _INLINE_CODE_RE.sub(lambda m: stash.put(f"<code>{m.group(1)}</code>"), text)
    text = _BOLD_ITALIC_RE.sub(r"<strong><em>\1</em></strong>", text)
    text = _BOLD_RE.sub(r"<strong>\1</strong>", text)
    text = _ITALIC_RE.sub(r"<em>\1</em>", text)
    return _LINK_RE.sub(_replace_link, text)


def convert_lists(text: str) -> str:
    """Wrap ordered then unordered items; merge adjacent containers."""
    text = _ORDERED_ITEM_RE.sub(r"<ol><li>\1</li></ol>", text)
    text = _OL_JOIN_RE.sub("", text)
    text = _UNORDERED_ITEM_RE.sub(r"<ul><li>\1</li></ul>", text)
    return _UL_JOIN_RE.sub("", text)


def wrap_paragraphs(text: str, stash: MarkupStash) -> str:
    lines = text.split("\n")
    for index, line in enumerate(lines):
        stripped = line.strip()
        if not stripped or _BLOCK_START_RE.match(stripped) or stash.is_block_token(stripped):
            continue
        lines[index] = f"<p>{stripped}</p>"
    return "\n".join(lines)


def clean_line_breaks(markup: str) -> str:
    markup = markup.strip("\n").replace("\n", "<br>")
    previous = None
    while previous != markup:
        previous = markup
        markup = _BR_BEFORE_BLOCK_RE.sub(r"\1", markup)
        markup = _BR_AFTER_BLOCK_RE.sub(r"\1", markup)
    return _BR_RUN_RE.sub("<br><br>", markup)


def convert_markdown(
    text: str,
    *,
    stash: MarkupStash | None = None,
    timelines: bool = True,
    charts: bool = True,
) -> str:
    """Convert legal markdown to markup.

    Args:
        text: Markdown source. When *stash* is given, the text may already
            carry its tokens (see ``mark_checkmark_citations``).
        stash: Placeholder store shared with earlier pipeline stages.
        timelines: Detect timeline blocks.
        charts: Detect ``CHART:`` blocks.

    Returns:
        Markup with every stashed fragment restored.
    """
    if stash is None:
        stash = MarkupStash()
        text = text.replace("\x00", "")
    if not text or not text.strip():
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = strip_code_fences(text)
    text = _substitute_blocks(text, stash, timelines=timelines, charts=charts)
    text = convert_headings(text)
    text = _BLOCKQUOTE_RE.sub(r"<blockquote>\1</blockquote>", text)
    text = _BLOCKQUOTE_JOIN_RE.sub("<br>", text)
    text = _HR_RE.sub("<hr>", text)
    text = convert_inline(text, stash)
    text = convert_lists(text)
    text = wrap_paragraphs(text, stash)
    text = stash.restore(text)
    return clean_line_breaks(text)
