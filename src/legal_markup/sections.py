"""Section splitting over raw legal markdown.

Analysis documents use emoji-marked top-level headings:

    ## ⚡ EXECUTIVE BRIEF
    ## 🎯 CRITICAL WEAKNESSES IN PLAINTIFF'S CASE
    ## Follow-up Questions

The display layer turns these into tabs, so this module works on the
markdown *before* rendering, while the headings are still recognizable.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Section:
    """A ``#``/``##`` heading and the lines up to the next one."""

    title: str          # Heading text without marker or emphasis
    key: str            # Slug of the title: "executive-brief"
    level: int          # 1 or 2; 0 for text before the first heading
    body: str
    start_line: int     # 0-based line of the heading
    marker: str = ""    # Leading emoji such as "⚡"

    def __post_init__(self) -> None:
        if self.level not in (0, 1, 2):
            raise ValueError(f"section level must be 0, 1 or 2, got {self.level}")


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_SECTION_HEADING_RE = re.compile(r"^(#{1,2})[ \t]+(.+?)[ \t]*#*[ \t]*$")
_ANY_HEADING_RE = re.compile(r"^\s*#{1,6}\s")
_EXECUTIVE_RE = re.compile(r"^EXECUTIVE\b", re.IGNORECASE)
_FOLLOW_UP_RE = re.compile(r"^follow[\s-]*up\s+questions?\b", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")
_SLUG_RE = re.compile(r"[^a-z0-9]+")

# Emoji code points plus the joiners and variation selectors that follow them.
_MARKER_CATEGORIES = frozenset({"So", "Sk", "Mn", "Cf"})

EXECUTIVE_SUMMARY_LINES = 5
MIN_QUESTION_LENGTH = 40


def _split_marker(title: str) -> tuple[str, str]:
    i = 0
    while i < len(title) and unicodedata.category(title[i]) in _MARKER_CATEGORIES:
        i += 1
    return title[:i].strip(), title[i:].strip()


def _clean_title(text: str) -> str:
    return text.replace("**", "").replace("__", "").strip()


def slugify(title: str) -> str:
    return _SLUG_RE.sub("-", title.lower()).strip("-")


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------


def split_sections(markdown: str) -> tuple[Section, ...]:
    """Split *markdown* on ``#`` and ``##`` headings.

    Text before the first heading becomes a level-0 ``preamble`` section
    when it is not blank. Deeper headings stay inside their section body.
    """
    lines = (markdown or "").replace("\r\n", "\n").split("\n")
    sections: list[Section] = []
    heading: tuple[str, str, int, int] | None = None   # (marker, title, level, line)
    body: list[str] = []

    def flush() -> None:
        text = "\n".join(body).strip("\n")
        if heading is None:
            if text.strip():
                sections.append(Section("", "preamble", 0, text, 0))
            return
        marker, title, level, line_no = heading
        key = slugify(title) or f"section-{len(sections) + 1}"
        sections.append(Section(title, key, level, text, line_no, marker))

    for index, line in enumerate(lines):
        m = _SECTION_HEADING_RE.match(line)
        if m is None:
            body.append(line)
            continue
        flush()
        marker, title = _split_marker(_clean_title(m.group(2)))
        heading = (marker, title, len(m.group(1)), index)
        body = []
    flush()
    return tuple(sections)


def find_section(sections: tuple[Section, ...], pattern: re.Pattern[str]) -> Section | None:
    """Return the first section whose title matches *pattern*."""
    for section in sections:
        if pattern.search(section.title):
            return section
    return None


def _content_lines(body: str) -> list[str]:
    lines = []
    for line in body.split("\n"):
        if not line.strip() or _ANY_HEADING_RE.match(line):
            continue
        lines.append(_BULLET_RE.sub("", line).strip())
    return lines


def find_executive_summary(markdown: str) -> str | None:
    """Return the executive summary text, or None if there is no such section.

    The first heading starting with ``EXECUTIVE`` (``⚡`` marker optional)
    is used; up to five non-heading lines are joined with spaces, with
    bullet markers removed.
    """
    section = find_section(split_sections(markdown), _EXECUTIVE_RE)
    if section is None:
        return None
    lines = _content_lines(section.body)[:EXECUTIVE_SUMMARY_LINES]
    return " ".join(lines) or None


def extract_follow_up_questions(
    markdown: str, min_length: int = MIN_QUESTION_LENGTH,
) -> list[str]:
    """Return the bullet or numbered items of the ``Follow-up Questions`` section.

    Items shorter than *min_length* characters (fragments such as
    ``"trial?"`` or ``"---"``) are dropped.
    """
    section = find_section(split_sections(markdown), _FOLLOW_UP_RE)
    if section is None:
        return []
    questions = []
    for line in section.body.split("\n"):
        if not _BULLET_RE.match(line):
            continue
        item = _BULLET_RE.sub("", line).strip().strip("*").strip()
        if len(item) >= min_length and any(ch.isalpha() for ch in item):
            questions.append(item)
    return questions
