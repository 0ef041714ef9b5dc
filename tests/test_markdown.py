"""Tests for legal_markup.markdown conversion passes."""
from __future__ import annotations

import pytest

from legal_markup.markdown import (
    MarkupStash,
    clean_line_breaks,
    convert_headings,
    convert_lists,
    convert_markdown,
    mark_checkmark_citations,
    strip_code_fences,
)


class TestMarkupStash:
    def test_put_and_restore(self) -> None:
        stash = MarkupStash()
        token = stash.put("<b>x</b>")
        assert "\x00" in token
        assert stash.restore(f"a {token} b") == "a <b>x</b> b"
        assert len(stash) == 1

    def test_nested_tokens(self) -> None:
        stash = MarkupStash()
        inner = stash.put("<b>x</b>")
        outer = stash.put(f"<i>{inner}</i>")
        assert stash.restore(outer) == "<i><b>x</b></i>"

    def test_block_tokens(self) -> None:
        stash = MarkupStash()
        inline = stash.put("<code>x</code>")
        block = stash.put("<div>chart</div>", block=True)
        assert stash.is_block_token(f"  {block} ")
        assert not stash.is_block_token(inline)

    def test_unknown_token_dropped(self) -> None:
        assert MarkupStash().restore("a\x007\x00b") == "ab"


class TestHeadings:
    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("# Title", "<h1>Title</h1>"),
            ("## Title", "<h2>Title</h2>"),
            ("### Title", "<h3>Title</h3>"),
            ("###### Title", "<h6>Title</h6>"),
            ("# # Spaced", "<h2>Spaced</h2>"),
            ("# # # Spaced", "<h3>Spaced</h3>"),
            ("## Closed ##", "<h2>Closed</h2>"),
        ],
    )
    def test_levels(self, line: str, expected: str) -> None:
        assert convert_headings(line) == expected

    def test_hashtag_is_not_heading(self) -> None:
        assert convert_headings("#hashtag") == "#hashtag"


class TestLists:
    def test_unordered_merged(self) -> None:
        assert convert_lists("- a\n- b") == "<ul><li>a</li><li>b</li></ul>"

    def test_ordered_merged(self) -> None:
        assert convert_lists("1. a\n2) b") == "<ol><li>a</li><li>b</li></ol>"

    def test_separate_types_stay_separate(self) -> None:
        result = convert_lists("1. a\n- b")
        assert result == "<ol><li>a</li></ol>\n<ul><li>b</li></ul>"


class TestCodeFences:
    def test_fence_lines_removed(self) -> None:
        assert strip_code_fences("```markdown\n# T\n```") == "# T\n"

    def test_leading_backticks_removed(self) -> None:
        assert strip_code_fences("``# T") == "# T"


class TestLineBreaks:
    def test_breaks_next_to_blocks_removed(self) -> None:
        assert clean_line_breaks("<p>A</p>\n\n<p>B</p>") == "<p>A</p><p>B</p>"

    def test_break_runs_collapsed(self) -> None:
        assert clean_line_breaks("a\n\n\n\nb") == "a<br><br>b"


class TestConvertMarkdown:
    def test_empty(self) -> None:
        assert convert_markdown("") == ""
        assert convert_markdown("  \n\t") == ""

    def test_paragraphs(self) -> None:
        assert convert_markdown("Hello\nWorld") == "<p>Hello</p><p>World</p>"

    def test_blank_lines_between_paragraphs(self) -> None:
        assert convert_markdown("A\n\nB") == "<p>A</p><p>B</p>"

    def test_crlf(self) -> None:
        assert convert_markdown("A\r\nB") == "<p>A</p><p>B</p>"

    def test_heading_not_wrapped(self) -> None:
        assert convert_markdown("# Title\nBody") == "<h1>Title</h1><p>Body</p>"

    def test_emphasis_order(self) -> None:
        result = convert_markdown("***both*** **bold** *it*")
        assert result == (
            "<p><strong><em>both</em></strong> <strong>bold</strong> <em>it</em></p>"
        )

    def test_link(self) -> None:
        result = convert_markdown("See [the rule - full text](https://www.mass.gov/x).")
        assert (
            '<a href="https://www.mass.gov/x" target="_blank" rel="noopener noreferrer">'
            "the rule - full text</a>"
        ) in result

    def test_unsafe_link_keeps_text_only(self) -> None:
        result = convert_markdown("[click](javascript:alert(1))")
        assert "javascript" not in result
        assert "<a" not in result
        assert "click" in result

    def test_unsafe_link_with_parentheses_leaves_no_residue(self) -> None:
        assert convert_markdown("[l](javascript:alert(1))") == "<p>l</p>"

    def test_link_url_with_parentheses(self) -> None:
        result = convert_markdown("See [case](https://en.wikipedia.org/wiki/Erie_(doctrine)).")
        assert 'href="https://en.wikipedia.org/wiki/Erie_(doctrine)"' in result
        assert result.endswith(">case</a>.</p>")

    def test_link_inside_parentheses(self) -> None:
        result = convert_markdown("(see [rule](https://www.mass.gov/x))")
        assert '<a href="https://www.mass.gov/x"' in result
        assert result.endswith(">rule</a>)</p>")

    def test_raw_html_escaped(self) -> None:
        result = convert_markdown("<script>alert(1)</script>")
        assert "<script" not in result
        assert "&lt;script&gt;" in result

    def test_inline_code_protected(self) -> None:
        result = convert_markdown("Use `**x**` here")
        assert result == "<p>Use <code>**x**</code> here</p>"

    def test_blockquote_joined(self) -> None:
        assert convert_markdown("> a\n> b") == "<blockquote>a<br>b</blockquote>"

    def test_horizontal_rule(self) -> None:
        assert convert_markdown("A\n\n---\n\nB") == "<p>A</p><hr><p>B</p>"

    def test_lists(self) -> None:
        assert convert_markdown("- a\n- b") == "<ul><li>a</li><li>b</li></ul>"

    def test_code_fence_wrapped_document(self) -> None:
        assert convert_markdown("```markdown\n# T\n```") == "<h1>T</h1>"

    def test_table(self) -> None:
        result = convert_markdown("| A | B |\n|---|---|\n| **1** | 2 |")
        assert result.startswith('<div class="table-responsive">')
        assert "<td><strong>1</strong></td>" in result
        assert "<p>" not in result

    def test_chart_not_wrapped_in_paragraph(self) -> None:
        result = convert_markdown("Intro\nCHART:PIE\n- Wins: 60%\n- Losses: 40%")
        assert result.startswith("<p>Intro</p>")
        assert '<div class="legal-chart" data-chart-type="pie"' in result
        assert "<p><div" not in result

    def test_timeline(self) -> None:
        result = convert_markdown("- Jan 15, 2024: Filed complaint\n- Feb 1, 2024: Answer due\n")
        assert result.startswith('<div class="legal-timeline">')
        assert "<ul>" not in result
        assert result.index("Filed complaint") < result.index("Answer due")

    def test_timeline_disabled_renders_list(self) -> None:
        result = convert_markdown(
            "- Jan 15, 2024: Filed\n- Feb 1, 2024: Answer", timelines=False,
        )
        assert result == "<ul><li>Jan 15, 2024: Filed</li><li>Feb 1, 2024: Answer</li></ul>"

    def test_nul_characters_removed(self) -> None:
        assert convert_markdown("A\x00B") == "<p>AB</p>"


class TestCheckmarkCitations:
    def test_verified_span(self) -> None:
        stash = MarkupStash()
        text = mark_checkmark_citations(
            "✓ [IRC § 162 - View →](https://www.law.cornell.edu/uscode/text/26/162)", stash,
        )
        result = convert_markdown(text, stash=stash)
        assert result == (
            '<p><span class="citation-verified">✓ '
            '<a href="https://www.law.cornell.edu/uscode/text/26/162" '
            'target="_blank" rel="noopener noreferrer">IRC § 162</a></span></p>'
        )

    def test_unsafe_url_keeps_label(self) -> None:
        stash = MarkupStash()
        text = mark_checkmark_citations("✓ [Rule 7](javascript:void)", stash)
        assert text == "✓ Rule 7"
        assert len(stash) == 0

    def test_text_without_marker_untouched(self) -> None:
        stash = MarkupStash()
        assert mark_checkmark_citations("[a](https://x.org)", stash) == "[a](https://x.org)"
