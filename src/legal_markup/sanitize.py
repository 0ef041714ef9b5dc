"""Sanitization primitives for chart data and embedded HTML.

Every label, value and percentage that ends up inside a serialized chart
configuration passes through this module first:

- ``sanitize_label``: tag stripping (BeautifulSoup), script-scheme and
  event-handler removal, entity decoding, quote/bracket removal, truncation.
- ``sanitize_value``: numeric coercion clamped to +/- 999,999,999.
- ``sanitize_percentage``: numeric coercion clamped to [0, 100].
- ``sanitize_array``: length cap applied before serialization.
- ``detect_suspicious_patterns``: raw-input scan used to reject a whole
  chart block before anything is serialized.

``clean_html_fragment`` handles documents that arrive as HTML rather than
markdown: only an allowlist of display tags and attributes survives.
"""
from __future__ import annotations

import html
import math
import re
from collections.abc import Iterable
from typing import Any, TypeVar

from bs4 import BeautifulSoup
from bs4.element import PreformattedString, Tag

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

MAX_LABEL_LENGTH = 100
MAX_ARRAY_LENGTH = 100
MAX_ABS_VALUE = 999_999_999.0

_ELLIPSIS = "..."

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Label sanitization
# ---------------------------------------------------------------------------

_SCRIPT_SCHEME_RE = re.compile(r"(?:java|vb)script\s*:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_RESIDUAL_CHARS_RE = re.compile(r"[<>'\"]")
_WHITESPACE_RE = re.compile(r"\s+")


def _strip_tags(text: str) -> str:
    """Return the text content of *text* with every HTML tag removed."""
    if "<" not in text:
        return text
    soup = BeautifulSoup(text, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    return soup.get_text(separator="")


def sanitize_label(value: Any) -> str:
    """Return a display-safe chart label.

    Tags are stripped, ``javascript:`` schemes and ``on*=`` handlers are
    removed, entities are decoded (twice, to catch double encoding) and any
    residual ``< > ' "`` characters are dropped. The result is truncated to
    ``MAX_LABEL_LENGTH`` characters including the ellipsis marker.
    """
    if value is None:
        return ""
    text = str(value)
    text = _strip_tags(text)
    text = _SCRIPT_SCHEME_RE.sub("", text)
    text = _EVENT_HANDLER_RE.sub("", text)
    text = html.unescape(html.unescape(text))
    # Decoding can surface schemes that were hidden behind entities.
    text = _SCRIPT_SCHEME_RE.sub("", text)
    text = _EVENT_HANDLER_RE.sub("", text)
    text = _RESIDUAL_CHARS_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if len(text) > MAX_LABEL_LENGTH:
        text = text[: MAX_LABEL_LENGTH - len(_ELLIPSIS)].rstrip() + _ELLIPSIS
    return text


# ---------------------------------------------------------------------------
# Numeric sanitization
# ---------------------------------------------------------------------------


def sanitize_value(value: Any) -> float:
    """Coerce *value* to a finite float clamped to +/- ``MAX_ABS_VALUE``.

    Non-numeric input (including ``None``, booleans, NaN and infinities)
    becomes 0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(-MAX_ABS_VALUE, min(MAX_ABS_VALUE, number))


def sanitize_percentage(value: Any) -> float:
    """Coerce *value* to a float clamped to [0, 100]."""
    return max(0.0, min(100.0, sanitize_value(value)))


def sanitize_array(items: Iterable[T]) -> tuple[T, ...]:
    """Keep at most ``MAX_ARRAY_LENGTH`` leading entries of *items*."""
    kept: list[T] = []
    for item in items:
        if len(kept) >= MAX_ARRAY_LENGTH:
            break
        kept.append(item)
    return tuple(kept)


# ---------------------------------------------------------------------------
# Suspicious content detection
# ---------------------------------------------------------------------------

_SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<\s*script", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
    re.compile(r"<\s*iframe", re.IGNORECASE),
    re.compile(r"\beval\s*\(", re.IGNORECASE),
    re.compile(r"\bdocument\.", re.IGNORECASE),
    re.compile(r"\bwindow\.", re.IGNORECASE),
    re.compile(r"<\s*embed", re.IGNORECASE),
    re.compile(r"<\s*object", re.IGNORECASE),
)


def detect_suspicious_patterns(text: str) -> bool:
    """Return True if *text* contains script-like or active content markers."""
    if not text:
        return False
    return any(pattern.search(text) for pattern in _SUSPICIOUS_PATTERNS)


# ---------------------------------------------------------------------------
# Escaping helpers
# ---------------------------------------------------------------------------


def escape_text(text: str) -> str:
    """Escape ``& < >`` for element content. Quotes are left readable."""
    return html.escape(text, quote=False)


def escape_attribute(text: str) -> str:
    """Escape a string for use inside a double-quoted attribute value."""
    return html.escape(text, quote=True)


_SAFE_URL_RE = re.compile(r"^(?:https?://|mailto:|/|#|\.{1,2}/)", re.IGNORECASE)
_URL_CONTROL_RE = re.compile(r"[\x00-\x20\x7f]+")


def safe_url(url: str) -> str | None:
    """Return *url* if it uses an allowed scheme (or is relative), else None.

    Whitespace and control characters are removed before the scheme check so
    that ``java\\tscript:`` style obfuscation is caught.
    """
    candidate = _URL_CONTROL_RE.sub("", html.unescape(url or ""))
    if not candidate:
        return None
    if _SAFE_URL_RE.match(candidate):
        return candidate
    # Relative paths without a leading slash ("docs/brief.pdf").
    if ":" not in candidate.split("/", 1)[0]:
        return candidate
    return None


# ---------------------------------------------------------------------------
# HTML fragment cleaning
# ---------------------------------------------------------------------------

# Removed together with their contents.
_DROPPED_TAGS: list[str] = [
    "script", "style", "iframe", "frame", "frameset", "object", "embed", "applet",
    "noscript", "template", "svg", "math", "form", "input", "button", "select",
    "textarea", "base", "meta", "link", "title", "head",
]
# Kept as-is (with filtered attributes). Any other tag is unwrapped.
_ALLOWED_TAGS = frozenset({
    "p", "br", "hr", "h1", "h2", "h3", "h4", "h5", "h6",
    "strong", "b", "em", "i", "u", "s", "del", "ins", "mark", "small", "sub", "sup",
    "code", "pre", "blockquote", "q", "cite", "abbr",
    "ul", "ol", "li", "dl", "dt", "dd",
    "a", "span", "div", "time",
    "table", "thead", "tbody", "tfoot", "tr", "th", "td", "caption",
})
_GLOBAL_ATTRIBUTES = frozenset({"class", "title", "lang", "dir"})
_TAG_ATTRIBUTES: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "target", "rel"}),
    "td": frozenset({"colspan", "rowspan"}),
    "th": frozenset({"colspan", "rowspan", "scope"}),
    "ol": frozenset({"start"}),
    "time": frozenset({"datetime"}),
}


def _clean_attributes(tag: Tag) -> None:
    allowed = _GLOBAL_ATTRIBUTES | _TAG_ATTRIBUTES.get(tag.name, frozenset())
    for attr in list(tag.attrs):
        name = attr.lower()
        if name not in allowed:
            del tag.attrs[attr]
        elif name == "href" and safe_url(str(tag.attrs[attr])) is None:
            del tag.attrs[attr]


def clean_html_fragment(raw_html: str) -> str:
    """Reduce an HTML fragment to a fixed set of display tags and attributes.

    Active and foreign content (script, style, embeds, forms, SVG, MathML)
    is removed with everything inside it. Other unknown tags are unwrapped
    so their text survives. Comments and declarations are dropped, only
    allowlisted attributes are kept, and ``href`` must pass ``safe_url``.
    """
    if not raw_html:
        return ""
    soup = BeautifulSoup(raw_html, "html.parser")
    for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
        node.extract()
    for tag in soup.find_all(_DROPPED_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for tag in soup.find_all(True):
        if tag.name not in _ALLOWED_TAGS:
            tag.unwrap()
        else:
            _clean_attributes(tag)
    return str(soup)
