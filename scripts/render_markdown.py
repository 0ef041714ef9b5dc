#!/usr/bin/env python3
"""Render a legal markdown file to trusted HTML.

Reads the file with encoding fallback (UTF-8 -> CP1252), runs the full
rendering pipeline and writes HTML, or a JSON report with chart and citation
counts, to stdout or a file.

Usage:
    python3 scripts/render_markdown.py analysis.md > analysis.html
    python3 scripts/render_markdown.py analysis.md --format json --sections
    cat analysis.md | python3 scripts/render_markdown.py - --no-highlight

Structured output goes to stdout; human messages go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from legal_markup.citations import citation_coverage
from legal_markup.io_utils import dump_json, read_text_file, save_json
from legal_markup.pipeline import RenderOptions, count_charts, render
from legal_markup.sections import (
    extract_follow_up_questions,
    find_executive_summary,
    split_sections,
)

log = logging.getLogger("render_markdown")


def build_report(
    markdown: str,
    options: RenderOptions,
    *,
    source: str = "-",
    include_sections: bool = False,
) -> dict[str, Any]:
    """Render *markdown* and describe the result."""
    html = render(markdown, options)
    report: dict[str, Any] = {
        "source": source,
        "input_chars": len(markdown),
        "html": str(html),
        "charts": count_charts(html),
        "citations": citation_coverage(html).to_dict(),
    }
    if include_sections:
        report["sections"] = [
            {"key": s.key, "title": s.title, "marker": s.marker, "level": s.level}
            for s in split_sections(markdown)
        ]
        report["executive_summary"] = find_executive_summary(markdown)
        report["follow_up_questions"] = extract_follow_up_questions(markdown)
    return report


def read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return read_text_file(Path(source))


def options_from_args(args: argparse.Namespace) -> RenderOptions:
    return RenderOptions(
        link_citations=not args.no_citations,
        highlight_terms=not args.no_highlight,
        detect_timelines=not args.no_timelines,
        render_charts=not args.no_charts,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Render AI-generated legal markdown to HTML.",
    )
    parser.add_argument("input", help="Markdown file, or - for stdin")
    parser.add_argument(
        "--format",
        choices=("html", "json"),
        default="html",
        help="Output format (default: html)",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Write to this file instead of stdout",
    )
    parser.add_argument(
        "--sections",
        action="store_true",
        help="Include sections, executive summary and follow-up questions (json only)",
    )
    parser.add_argument("--no-citations", action="store_true", help="Skip citation linking")
    parser.add_argument("--no-highlight", action="store_true", help="Skip term highlighting")
    parser.add_argument("--no-timelines", action="store_true", help="Skip timeline detection")
    parser.add_argument("--no-charts", action="store_true", help="Render CHART: blocks as text")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    args = parser.parse_args(argv)
    if args.sections and args.format != "json":
        parser.error("--sections requires --format json")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    try:
        markdown = read_input(args.input)
    except OSError as e:
        log.error("Cannot read %s: %s", args.input, e)
        return 2

    report = build_report(
        markdown,
        options_from_args(args),
        source=args.input,
        include_sections=args.sections,
    )
    log.info(
        "Rendered %s: %d chars in, %d chars out, %d charts, %d/%d citations linked",
        args.input, report["input_chars"], len(report["html"]), report["charts"],
        report["citations"]["linked"], report["citations"]["total"],
    )

    if args.output is not None:
        if args.format == "json":
            save_json(report, args.output)
        else:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(report["html"], encoding="utf-8")
        log.info("Wrote %s", args.output)
    elif args.format == "json":
        dump_json(report)
    else:
        sys.stdout.write(report["html"])
        sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
