"""Tests for legal_markup.sanitize."""
from __future__ import annotations

import math

import pytest

from legal_markup.sanitize import (
    MAX_ABS_VALUE,
    MAX_ARRAY_LENGTH,
    MAX_LABEL_LENGTH,
    clean_html_fragment,
    detect_suspicious_patterns,
    escape_attribute,
    escape_text,
    safe_url,
    sanitize_array,
    sanitize_label,
    sanitize_percentage,
    sanitize_value,
)


class TestSanitizeLabel:
    def test_plain_label_unchanged(self) -> None:
        assert sanitize_label("Contingency fee") == "Contingency fee"

    def test_none_is_empty(self) -> None:
        assert sanitize_label(None) == ""

    def test_script_element_removed_entirely(self) -> None:
        result = sanitize_label("Wins<script>alert(1)</script>")
        assert result == "Wins"

    def test_tags_stripped_text_kept(self) -> None:
        assert sanitize_label("<b>Bold</b> label") == "Bold label"

    def test_javascript_scheme_removed(self) -> None:
        assert "javascript" not in sanitize_label("javascript:alert(1)").lower()

    def test_event_handler_removed(self) -> None:
        assert "onclick" not in sanitize_label('x onclick="steal()"').lower()

    def test_double_encoded_entities_decoded_and_cleaned(self) -> None:
        result = sanitize_label("&amp;lt;img&amp;gt; Fees")
        assert "<" not in result and ">" not in result
        assert "Fees" in result

    def test_quotes_removed(self) -> None:
        assert sanitize_label('He said "no"') == "He said no"

    def test_truncated_with_ellipsis(self) -> None:
        result = sanitize_label("a" * 250)
        assert len(result) == MAX_LABEL_LENGTH
        assert result.endswith("...")

    def test_whitespace_collapsed(self) -> None:
        assert sanitize_label("  Motion \n  to   dismiss ") == "Motion to dismiss"


class TestSanitizeValue:
    @pytest.mark.parametrize("raw", [1e12, -1e12, "5000000000", float("inf")])
    def test_clamped(self, raw: object) -> None:
        value = sanitize_value(raw)
        assert -MAX_ABS_VALUE <= value <= MAX_ABS_VALUE

    def test_large_value_hits_bound(self) -> None:
        assert sanitize_value(1e12) == MAX_ABS_VALUE
        assert sanitize_value(-1e12) == -MAX_ABS_VALUE

    @pytest.mark.parametrize("raw", [None, "abc", float("nan"), True, [], {}])
    def test_non_numeric_is_zero(self, raw: object) -> None:
        value = sanitize_value(raw)
        assert value == 0.0
        assert not math.isnan(value)

    def test_numeric_string(self) -> None:
        assert sanitize_value("42.5") == 42.5


class TestSanitizePercentage:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(-5, 0.0), (0, 0.0), (55.5, 55.5), (100, 100.0), (250, 100.0), ("x", 0.0)],
    )
    def test_range(self, raw: object, expected: float) -> None:
        assert sanitize_percentage(raw) == expected


class TestSanitizeArray:
    def test_truncates(self) -> None:
        assert len(sanitize_array(range(500))) == MAX_ARRAY_LENGTH

    def test_short_kept(self) -> None:
        assert sanitize_array(["a", "b"]) == ("a", "b")

    def test_accepts_generator(self) -> None:
        assert sanitize_array(x * 2 for x in range(3)) == (0, 2, 4)


class TestDetectSuspiciousPatterns:
    @pytest.mark.parametrize(
        "text",
        [
            "<script>alert(1)</script>",
            "< SCRIPT src=x>",
            "javascript:void(0)",
            '<img src=x onerror="a()">',
            "<iframe src=x>",
            "eval (code)",
            "document.cookie",
            "window.location",
            "<embed src=x>",
            "<object data=x>",
        ],
    )
    def test_flags(self, text: str) -> None:
        assert detect_suspicious_patterns(text) is True

    @pytest.mark.parametrize(
        "text",
        ["", "Wins: 60%", "Settlement range $50K-$100K", "The document was filed."],
    )
    def test_clean(self, text: str) -> None:
        assert detect_suspicious_patterns(text) is False


class TestEscaping:
    def test_escape_text_leaves_quotes(self) -> None:
        assert escape_text('<b> & "q"') == '&lt;b&gt; &amp; "q"'

    def test_escape_attribute_escapes_quotes(self) -> None:
        assert escape_attribute('"x"') == "&quot;x&quot;"


class TestSafeUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.mass.gov/rules",
            "http://example.com",
            "mailto:clerk@example.com",
            "/relative/path",
            "#anchor",
            "docs/brief.pdf",
        ],
    )
    def test_allowed(self, url: str) -> None:
        assert safe_url(url) == url

    @pytest.mark.parametrize(
        "url",
        ["javascript:alert(1)", "java\tscript:alert(1)", "data:text/html,x", "vbscript:x", ""],
    )
    def test_rejected(self, url: str) -> None:
        assert safe_url(url) is None


class TestCleanHtmlFragment:
    def test_script_removed(self) -> None:
        result = clean_html_fragment("<p>Hi</p><script>alert(1)</script>")
        assert "<script" not in result
        assert "<p>Hi</p>" in result

    def test_event_handler_removed(self) -> None:
        result = clean_html_fragment('<p onclick="x()">Hi</p>')
        assert "onclick" not in result

    def test_unsafe_href_removed(self) -> None:
        result = clean_html_fragment('<a href="javascript:alert(1)">x</a>')
        assert "javascript" not in result
        assert ">x</a>" in result

    def test_safe_href_kept(self) -> None:
        result = clean_html_fragment('<a href="https://example.com">x</a>')
        assert 'href="https://example.com"' in result

    def test_empty(self) -> None:
        assert clean_html_fragment("") == ""

    def test_svg_animate_href_removed(self) -> None:
        payload = (
            '<p>x</p><svg><a><animate attributeName="href" '
            'values="javascript:alert(1)"/><text>click</text></a></svg>'
        )
        result = clean_html_fragment(payload)
        assert "javascript:" not in result
        assert "<svg" not in result
        assert "<animate" not in result
        assert "<p>x</p>" in result

    def test_math_removed(self) -> None:
        result = clean_html_fragment('<p>a</p><math><maction actiontype="statusline">b</maction></math>')
        assert result == "<p>a</p>"

    def test_unknown_tag_unwrapped(self) -> None:
        assert clean_html_fragment("<p><custom-el>kept text</custom-el></p>") == "<p>kept text</p>"

    def test_attributes_allowlisted(self) -> None:
        result = clean_html_fragment(
            '<p class="lead" style="color:red" id="main" data-x="1">Hi</p>'
            '<td colspan="2" formaction="https://x">c</td>'
        )
        assert 'class="lead"' in result
        assert 'colspan="2"' in result
        assert "style" not in result
        assert "id=" not in result
        assert "data-x" not in result
        assert "formaction" not in result

    def test_comments_dropped(self) -> None:
        assert clean_html_fragment("<p>a<!-- <script>x</script> --></p>") == "<p>a</p>"
