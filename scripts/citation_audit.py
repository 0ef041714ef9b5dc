#!/usr/bin/env python3
"""Citation link coverage audit for a directory of legal markdown files.

For each file, counts recognized citations (IRC, Treas. Reg., M.G.L.,
court rules, U.S.C., CFR, CMR, ...) and how many of them already carry a
link in the source. A file passes when at least ``--min-coverage`` percent
of its citations are linked. With ``--linkify`` the automatic citation
linker runs first, which shows what the renderer would leave unlinked.

Usage:
    python3 scripts/citation_audit.py responses/
    python3 scripts/citation_audit.py responses/ --min-coverage 95 --fail-under
    python3 scripts/citation_audit.py answer.md --linkify

Structured JSON output goes to stdout; human messages go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from legal_markup.citations import MIN_ACCEPTABLE_COVERAGE, citation_coverage
from legal_markup.io_utils import dump_json, iter_markdown_files, read_text_file
from legal_markup.pipeline import RenderOptions, render

log = logging.getLogger("citation_audit")

_AUDIT_OPTIONS = RenderOptions(link_citations=False, highlight_terms=False)
_LINKIFY_OPTIONS = RenderOptions(link_citations=True, highlight_terms=False)


def audit_text(
    markdown: str,
    *,
    linkify: bool = False,
    min_coverage: float = MIN_ACCEPTABLE_COVERAGE,
) -> dict[str, Any]:
    """Coverage record for one document."""
    html = render(markdown, _LINKIFY_OPTIONS if linkify else _AUDIT_OPTIONS)
    coverage = citation_coverage(html)
    record = coverage.to_dict()
    record["passes"] = coverage.coverage_pct >= min_coverage
    return record


def summarize(records: list[dict[str, Any]], min_coverage: float) -> dict[str, Any]:
    """Roll per-file records up into corpus totals."""
    total = sum(r["total"] for r in records)
    linked = sum(r["linked"] for r in records)
    pct = 100.0 if total == 0 else round(100.0 * linked / total, 2)
    return {
        "files": len(records),
        "total": total,
        "linked": linked,
        "coverage_pct": pct,
        "min_coverage": min_coverage,
        "failing": [r["path"] for r in records if not r["passes"]],
    }


def audit_paths(
    root: Path,
    *,
    linkify: bool = False,
    min_coverage: float = MIN_ACCEPTABLE_COVERAGE,
) -> dict[str, Any]:
    records: list[dict[str, Any]] = []
    for path in iter_markdown_files(root):
        try:
            text = read_text_file(path)
        except OSError as e:
            log.warning("Skipping %s: %s", path, e)
            continue
        record = audit_text(text, linkify=linkify, min_coverage=min_coverage)
        record["path"] = str(path)
        records.append(record)
        log.debug(
            "%s: %d/%d linked (%.1f%%)",
            path, record["linked"], record["total"], record["coverage_pct"],
        )
    return {"summary": summarize(records, min_coverage), "files": records}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Report citation link coverage for legal markdown files.",
    )
    parser.add_argument("root", type=Path, help="Markdown file or directory")
    parser.add_argument(
        "--min-coverage",
        type=float,
        default=MIN_ACCEPTABLE_COVERAGE,
        help=f"Minimum linked percentage per file (default: {MIN_ACCEPTABLE_COVERAGE:g})",
    )
    parser.add_argument(
        "--linkify",
        action="store_true",
        help="Run automatic citation linking before measuring",
    )
    parser.add_argument(
        "--fail-under",
        action="store_true",
        help="Exit with status 1 if any file is below --min-coverage",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    args = parser.parse_args(argv)
    if not 0 <= args.min_coverage <= 100:
        parser.error("--min-coverage must be between 0 and 100")
    if not args.root.exists():
        parser.error(f"{args.root} does not exist")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    report = audit_paths(args.root, linkify=args.linkify, min_coverage=args.min_coverage)
    summary = report["summary"]
    log.info(
        "%d files, %d/%d citations linked (%.1f%%), %d below %.0f%%",
        summary["files"], summary["linked"], summary["total"],
        summary["coverage_pct"], len(summary["failing"]), args.min_coverage,
    )
    dump_json(report)
    if args.fail_under and summary["failing"]:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
