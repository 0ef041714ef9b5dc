"""End-to-end rendering: legal markdown in, trusted markup out.

Stages, in order:

    1. verified-citation pre-marker   (markdown.mark_checkmark_citations)
    2-4. blocks, charts, markdown      (markdown.convert_markdown)
    5. citation links                  (citations.linkify)
    6. term and severity highlighting  (highlight.highlight_legal_terms)
    7. trust boundary                  (TrustedMarkup)

Input that already is HTML skips markdown conversion: it is cleaned of
active content, pipe-table paragraphs are turned into tables, and only
stages 5 and 6 run.

``render`` never raises for string input; a failure inside a stage is
logged and the document is returned as escaped text.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from legal_markup.blocks import convert_tables_in_html
from legal_markup.citations import linkify
from legal_markup.highlight import highlight_legal_terms
from legal_markup.markdown import MarkupStash, convert_markdown, mark_checkmark_citations
from legal_markup.sanitize import clean_html_fragment, escape_text

log = logging.getLogger(__name__)


class TrustedMarkup(str):
    """Markup produced by ``render``; safe to inject without re-escaping.

    Implements ``__html__`` so template engines (Jinja2, MarkupSafe) treat
    it as already safe.
    """

    __slots__ = ()

    def __html__(self) -> str:
        return self


@dataclass(frozen=True, slots=True)
class RenderOptions:
    """Stage toggles for ``render``."""

    link_citations: bool = True
    highlight_terms: bool = True
    detect_timelines: bool = True
    render_charts: bool = True


DEFAULT_OPTIONS = RenderOptions()

_HTML_INPUT_RE = re.compile(r"<p[\s>]|<h1[\s>]|<div[\s>]", re.IGNORECASE)
_LITERAL_NEWLINE_RE = re.compile(r"\\r\\n|\\n")
_CHART_ELEMENT_RE = re.compile(r'<div class="legal-chart"')


def normalize_input(text: str) -> str:
    """Remove NULs, unify line endings, and decode literal ``\\n`` escapes.

    Literal escapes are only decoded when the text has no real newline,
    which is how double-encoded model output arrives.
    """
    text = text.replace("\x00", "")
    if "\n" not in text and "\\n" in text:
        text = _LITERAL_NEWLINE_RE.sub("\n", text)
    return text.replace("\r\n", "\n").replace("\r", "\n")


def looks_like_html(text: str) -> bool:
    """True if *text* already carries paragraph, heading or div markup."""
    return bool(_HTML_INPUT_RE.search(text))


def count_charts(markup: str) -> int:
    """Number of embedded chart elements in rendered markup."""
    return len(_CHART_ELEMENT_RE.findall(markup or ""))


def _render_markdown(text: str, options: RenderOptions) -> str:
    stash = MarkupStash()
    text = mark_checkmark_citations(text, stash)
    return convert_markdown(
        text,
        stash=stash,
        timelines=options.detect_timelines,
        charts=options.render_charts,
    )


def _render_html(text: str) -> str:
    return convert_tables_in_html(clean_html_fragment(text))


def _fallback(text: str) -> str:
    lines = (escape_text(line.strip()) for line in text.split("\n"))
    return "".join(f"<p>{line}</p>" for line in lines if line)


def render(markdown: str | None, options: RenderOptions | None = None) -> TrustedMarkup:
    """Render legal markdown (or HTML with embedded tables) to trusted markup."""
    options = options or DEFAULT_OPTIONS
    text = normalize_input(markdown if isinstance(markdown, str) else str(markdown or ""))
    if not text.strip():
        return TrustedMarkup("")

    try:
        if looks_like_html(text):
            log.debug("Input is HTML; converting embedded tables only")
            markup = _render_html(text)
        else:
            markup = _render_markdown(text, options)
        if options.link_citations:
            markup = linkify(markup)
        if options.highlight_terms:
            markup = highlight_legal_terms(markup)
    except Exception:
        log.exception("Rendering failed; returning escaped text (%d chars)", len(text))
        markup = _fallback(text)
    return TrustedMarkup(markup)
