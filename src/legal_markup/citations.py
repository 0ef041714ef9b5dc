"""Legal citation recognition and linking.

Each ``CitationRule`` pairs a regex body with a URL builder. Rules live in
one ordered tuple, most specific first; when two rules match overlapping
text, the earlier rule wins. Every compiled pattern:

- accepts an optional ``✓`` prefix (a verified citation marker), which is
  kept outside the anchor;
- refuses to match when followed by ``<`` or a word character, so a
  citation is never cut short and never linked twice.

``linkify`` only scans text runs outside ``<a>`` elements, which makes it
idempotent. ``citation_coverage`` counts linked versus unlinked citations.
"""
from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from legal_markup.sanitize import escape_attribute

log = logging.getLogger(__name__)

MIN_ACCEPTABLE_COVERAGE = 90.0

CORNELL_USC = "https://www.law.cornell.edu/uscode/text"
CORNELL_CFR_26 = "https://www.law.cornell.edu/cfr/text/26"
CORNELL_FRCP = "https://www.law.cornell.edu/rules/frcp/rule_"
CORNELL_FRCRMP = "https://www.law.cornell.edu/rules/frcrmp/rule_"
MGL_BASE = "https://malegislature.gov/Laws/GeneralLaws"
MASS_CRIM_RULE_BASE = "https://www.mass.gov/rules-of-criminal-procedure/"
MASS_CRIM_RULES_INDEX = "https://www.mass.gov/law-library/massachusetts-rules-of-criminal-procedure"
MASS_CIV_RULES_INDEX = "https://www.mass.gov/law-library/massachusetts-rules-of-civil-procedure"
STANDING_ORDERS_GUIDE = "https://www.mass.gov/guides/massachusetts-rules-of-court-and-standing-orders"
TAX_COURT_RULES = "https://www.ustaxcourt.gov/rules.html"
ECFR_BASE = "https://www.ecfr.gov/current"
USSG_GUIDELINES = "https://www.ussc.gov/guidelines"
MASS_REGULATIONS = "https://www.mass.gov/regulations"

# Mass. R. Crim. P. rule number -> page slug on mass.gov.
MASS_CRIM_RULE_SLUGS: dict[str, str] = {
    "3": "criminal-procedure-rule-3-the-complaint-and-the-indictment-waiver-of-indictment",
    "4": "criminal-procedure-rule-4-form-of-complaint-and-indictment",
    "7": "criminal-procedure-rule-7-arraignment",
    "12": "criminal-procedure-rule-12-pleas-and-withdrawals-of-pleas",
    "14": "criminal-procedure-rule-14-pretrial-discovery",
    "14.1": "criminal-procedure-rule-141",
    "14.2": "criminal-procedure-rule-142",
    "17": "criminal-procedure-rule-17-summonses-for-witnesses",
    "30": "criminal-procedure-rule-30-postconviction-relief",
    "36": "criminal-procedure-rule-36-case-management",
}

LINK_ATTRIBUTES = 'target="_blank" rel="noopener noreferrer"'

# Parenthesized subsection tail: "(a)(1)(A)" or "(g) (3)".
_SUBSECTIONS = r"(?:\s*\([^)<>]+\))*"
_FIRST_SUBSECTION_RE = re.compile(r"\(([A-Za-z0-9]+)\)")


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CitationRule:
    """One citation format: a regex body and the URL it links to."""

    name: str
    body: str
    build_url: Callable[[re.Match[str]], str]
    flags: int = re.IGNORECASE
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("citation rule needs a name")
        object.__setattr__(
            self,
            "pattern",
            re.compile(rf"(?P<check>✓\s*)?(?P<cite>{self.body})(?![<\w])", self.flags),
        )


@dataclass(frozen=True, slots=True)
class CitationHit:
    """A citation located in a text run."""

    rule: str
    start: int     # Offset of the citation text, after any ✓ prefix
    end: int
    text: str
    url: str
    check: str = ""


@dataclass(frozen=True, slots=True)
class CitationCoverage:
    """How many recognized citations in a document are linked."""

    total: int
    linked: int
    unlinked: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.total < 0 or self.linked < 0 or self.linked > self.total:
            raise ValueError(f"invalid coverage counts: linked={self.linked} total={self.total}")

    @property
    def coverage_pct(self) -> float:
        if self.total == 0:
            return 100.0
        return round(100.0 * self.linked / self.total, 2)

    @property
    def is_acceptable(self) -> bool:
        return self.coverage_pct >= MIN_ACCEPTABLE_COVERAGE

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "linked": self.linked,
            "coverage_pct": self.coverage_pct,
            "is_acceptable": self.is_acceptable,
            "unlinked": list(self.unlinked),
        }


# ---------------------------------------------------------------------------
# URL builders
# ---------------------------------------------------------------------------


def _with_first_subsection(url: str, tail: str | None) -> str:
    sub = _FIRST_SUBSECTION_RE.search(tail or "")
    return f"{url}#{sub.group(1)}" if sub else url


def _irc_url(m: re.Match[str]) -> str:
    return _with_first_subsection(f"{CORNELL_USC}/26/{m.group('irc_section')}", m.group("irc_subs"))


def _treas_reg_url(m: re.Match[str]) -> str:
    return f"{CORNELL_CFR_26}/{m.group('reg')}"


def _mgl_url(m: re.Match[str]) -> str:
    chapter = m.group("chapter").upper()
    section = m.group("mgl_section")
    if section:
        return f"{MGL_BASE}/Chapter{chapter}/Section{section.upper()}"
    return f"{MGL_BASE}/Chapter{chapter}"


def _mass_crim_url(m: re.Match[str]) -> str:
    slug = MASS_CRIM_RULE_SLUGS.get(m.group("crim_rule") or "")
    return f"{MASS_CRIM_RULE_BASE}{slug}" if slug else MASS_CRIM_RULES_INDEX


def _frcp_url(m: re.Match[str]) -> str:
    return f"{CORNELL_FRCP}{m.group('civ_rule')}"


def _frcrmp_url(m: re.Match[str]) -> str:
    return f"{CORNELL_FRCRMP}{m.group('crim_rule')}"


def _usc_url(m: re.Match[str]) -> str:
    base = f"{CORNELL_USC}/{m.group('usc_title')}/{m.group('usc_section')}"
    return _with_first_subsection(base, m.group("usc_subs"))


def _cfr_url(m: re.Match[str]) -> str:
    return f"{ECFR_BASE}/title-{m.group('cfr_title')}/section-{m.group('cfr_section')}"


def _cmr_url(m: re.Match[str]) -> str:
    return f"{MASS_REGULATIONS}/{m.group('cmr_title')}-CMR-{m.group('cmr_section').replace('.', '')}"


def _constant(url: str) -> Callable[[re.Match[str]], str]:
    return lambda _match: url


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

CITATION_RULES: tuple[CitationRule, ...] = (
    CitationRule(
        "irc",
        rf"\bIRC\s*§\s*(?P<irc_section>\d+[A-Za-z]?)(?P<irc_subs>{_SUBSECTIONS})",
        _irc_url,
    ),
    CitationRule(
        "treas_reg",
        r"\bTreas(?:ury)?\.?\s*(?:Reg\.|Regulation)\s*§\s*"
        rf"(?P<reg>\d+(?:\.\d+)*[A-Za-z]*(?:-\d+[A-Za-z]*)*){_SUBSECTIONS}",
        _treas_reg_url,
    ),
    CitationRule(
        "mgl",
        r"\bM\.G\.L\.\s*c\.\s*(?P<chapter>\d+[A-Z]?)"
        rf"(?:,?\s*§§?\s*(?P<mgl_section>\d+[A-Z]*){_SUBSECTIONS})?",
        _mgl_url,
    ),
    CitationRule(
        "mass_crim_p",
        rf"\bMass\.?\s*R\.?\s*Crim\.?\s*P\.?(?:\s*(?P<crim_rule>\d+(?:\.\d+)?){_SUBSECTIONS})?",
        _mass_crim_url,
    ),
    CitationRule(
        "mass_civ_p",
        rf"\bMass\.?\s*R\.?\s*Civ\.?\s*P\.?(?:\s*\d+(?:\.\d+)?{_SUBSECTIONS})?",
        _constant(MASS_CIV_RULES_INDEX),
    ),
    CitationRule(
        "bmc",
        r"\bBMC\s+(?:Standing\s+Order\s+\d+-\d+|Local\s+Rule\s+\d+)",
        _constant(STANDING_ORDERS_GUIDE),
    ),
    CitationRule(
        "fed_civ_p",
        rf"\bFed\.?\s*R\.?\s*Civ\.?\s*P\.?\s*(?P<civ_rule>\d+){_SUBSECTIONS}",
        _frcp_url,
    ),
    CitationRule(
        "fed_crim_p",
        rf"\bFed\.?\s*R\.?\s*Crim\.?\s*P\.?\s*(?P<crim_rule>\d+){_SUBSECTIONS}",
        _frcrmp_url,
    ),
    CitationRule(
        "tax_court_rule",
        rf"\bTax\s+Court\s+Rule\s*\d+{_SUBSECTIONS}",
        _constant(TAX_COURT_RULES),
    ),
    CitationRule(
        "frcp",
        rf"\bFRCP\s*(?P<civ_rule>\d+){_SUBSECTIONS}",
        _frcp_url,
    ),
    CitationRule(
        "frcrp",
        rf"\bFRCrP\s*(?P<crim_rule>\d+){_SUBSECTIONS}",
        _frcrmp_url,
    ),
    CitationRule(
        "usc",
        r"\b(?P<usc_title>\d+)\s*U\.S\.C\.?\s*§§?\s*"
        r"(?P<usc_section>\d+[A-Za-z]*(?:-\d+)?)(?P<usc_subs>(?:\([A-Za-z0-9]+\))*)",
        _usc_url,
    ),
    CitationRule(
        "cfr",
        r"\b(?P<cfr_title>\d+)\s*C\.?F\.?R\.?\s*§\s*"
        rf"(?P<cfr_section>\d+(?:\.\d+)*[A-Za-z]*(?:-\d+)?){_SUBSECTIONS}",
        _cfr_url,
    ),
    CitationRule(
        "ussg",
        r"\bU\.S\.S\.G\.\s*§\s*[0-9A-Za-z]+(?:\.[0-9A-Za-z]+)*",
        _constant(USSG_GUIDELINES),
    ),
    CitationRule(
        "standing_order",
        r"\b(?:BLS|Superior\s+Court)\s+Standing\s+Order\s+\d+-\d+",
        _constant(STANDING_ORDERS_GUIDE),
    ),
    CitationRule(
        "cmr",
        r"\b(?P<cmr_title>\d+)\s*CMR\s*(?P<cmr_section>\d+(?:\.\d+)*)",
        _cmr_url,
    ),
)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

_TAG_SPLIT_RE = re.compile(r"(<[^>]*>)")
_ANCHOR_OPEN_RE = re.compile(r"^<a\b", re.IGNORECASE)
_ANCHOR_CLOSE_RE = re.compile(r"^</a\s*>", re.IGNORECASE)


def find_citations(
    text: str, rules: tuple[CitationRule, ...] = CITATION_RULES,
) -> list[CitationHit]:
    """Return non-overlapping citations in *text*, in text order.

    Rules are tried in priority order and a later rule never claims text
    already claimed by an earlier one.
    """
    hits: list[CitationHit] = []
    for rule in rules:
        for m in rule.pattern.finditer(text):
            if any(m.start() < hit.end and hit.start - len(hit.check) < m.end() for hit in hits):
                continue
            hits.append(CitationHit(
                rule=rule.name,
                start=m.start("cite"),
                end=m.end(),
                text=m.group("cite"),
                url=rule.build_url(m),
                check=m.group("check") or "",
            ))
    hits.sort(key=lambda hit: hit.start)
    return hits


def _text_runs(markup: str) -> Iterator[tuple[str, bool]]:
    """Yield ``(segment, inside_anchor)`` for every piece of *markup*."""
    depth = 0
    for segment in _TAG_SPLIT_RE.split(markup):
        if segment.startswith("<"):
            if _ANCHOR_OPEN_RE.match(segment):
                depth += 1
            elif _ANCHOR_CLOSE_RE.match(segment):
                depth = max(0, depth - 1)
        yield segment, depth > 0


def _link_text(text: str, counts: Counter[str]) -> str:
    hits = find_citations(text)
    if not hits:
        return text
    parts: list[str] = []
    cursor = 0
    for hit in hits:
        parts.append(text[cursor:hit.start])
        parts.append(
            f'<a href="{escape_attribute(hit.url)}" {LINK_ATTRIBUTES} '
            f'class="legal-link">{hit.text}</a>'
        )
        cursor = hit.end
        counts[hit.rule] += 1
    parts.append(text[cursor:])
    return "".join(parts)


def linkify(markup: str) -> str:
    """Rewrite recognized citations in *markup* text runs into anchors.

    Tags, attribute values and the text of existing anchors are left
    untouched, so ``linkify(linkify(x)) == linkify(x)``.
    """
    if not markup:
        return ""
    counts: Counter[str] = Counter()
    out: list[str] = []
    for segment, inside_anchor in _text_runs(markup):
        if segment.startswith("<") or inside_anchor or not segment:
            out.append(segment)
        else:
            out.append(_link_text(segment, counts))
    if counts:
        log.debug("Linked citations: %s", dict(counts))
    return "".join(out)


def citation_coverage(markup: str) -> CitationCoverage:
    """Count recognized citations in *markup* and how many sit inside anchors."""
    total = 0
    linked = 0
    unlinked: list[str] = []
    for segment, inside_anchor in _text_runs(markup or ""):
        if segment.startswith("<") or not segment:
            continue
        hits = find_citations(segment)
        total += len(hits)
        if inside_anchor:
            linked += len(hits)
        else:
            unlinked.extend(hit.text for hit in hits)
    coverage = CitationCoverage(total=total, linked=linked, unlinked=tuple(unlinked))
    if not coverage.is_acceptable:
        log.warning(
            "Citation coverage %.1f%% below %.0f%% (%d of %d linked)",
            coverage.coverage_pct, MIN_ACCEPTABLE_COVERAGE, linked, total,
        )
    return coverage
