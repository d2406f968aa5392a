"""
Unit tests for the content cleaner.
"""

import pytest

from embedprep.models.preprocessing_models import CleanerConfig
from embedprep.preprocessing.cleaners import (
    EMAIL_PLACEHOLDER, ContentCleaner, clean_content, compile_custom_patterns,
    normalize_unicode, normalize_whitespace, redact_emails, remove_html_tags,
    remove_markdown_syntax, remove_noise_patterns, remove_urls
)


class TestCleanerStages:
    """Individual cleaning transforms."""

    def test_remove_html_drops_script_and_style(self):
        html = "<p>Hello</p><script>alert('x')</script><style>p{color:red}</style><b>world</b>"
        result = remove_html_tags(html)

        assert "alert" not in result
        assert "color" not in result
        assert "Hello" in result and "world" in result
        assert "<" not in result

    def test_remove_html_decodes_entities(self):
        assert remove_html_tags("Fish &amp; chips&nbsp;today").strip() == "Fish & chips today"

    def test_remove_noise_patterns(self):
        text = "Real content here.\nRead more\n© 2024 Example Corp. All rights reserved."
        result = remove_noise_patterns(text)

        assert "Read more" not in result
        assert "2024" not in result
        assert "Real content here." in result

    def test_remove_noise_patterns_cjk(self):
        result = remove_noise_patterns("這是一篇文章。閱讀更多")
        assert result == "這是一篇文章。"

    def test_remove_markdown_keeps_link_text(self):
        result = remove_markdown_syntax("See [the docs](https://example.com) and **bold** text")
        assert result == "See the docs and bold text"

    def test_remove_markdown_drops_images_entirely(self):
        result = remove_markdown_syntax("Before ![a photo](img.png) after")
        assert "photo" not in result
        assert "img.png" not in result

    def test_remove_markdown_heading_markers(self):
        assert remove_markdown_syntax("## Title\nBody") == "Title\nBody"
        assert remove_markdown_syntax("## Title\nBody", preserve_headings=True) == "## Title\nBody"

    def test_remove_markdown_lists_and_quotes(self):
        result = remove_markdown_syntax("- first\n* second\n1. third\n> quoted")
        assert result == "first\nsecond\nthird\nquoted"

    def test_remove_urls(self):
        assert remove_urls("visit https://example.com/page?x=1 today") == "visit  today"

    def test_redact_emails(self):
        assert redact_emails("mail jane.doe@example.org now") == f"mail {EMAIL_PLACEHOLDER} now"

    def test_normalize_unicode_fullwidth(self):
        assert normalize_unicode("ＡＢＣ１２３，好！") == "ABC123,好!"

    def test_normalize_whitespace(self):
        text = "  line one\r\n\r\n\r\n\r\nline\ttwo   spaced  "
        assert normalize_whitespace(text) == "line one\n\nline two spaced"

    def test_invalid_custom_pattern_is_skipped(self):
        compiled = compile_custom_patterns(["[unclosed", r"\d+"])
        assert [p.pattern for p in compiled] == [r"\d+"]


class TestContentCleaner:
    """Ordered pipeline and audit trail."""

    def test_records_only_stages_that_changed_text(self):
        result = ContentCleaner().clean("Plain text without markup.")

        assert result.cleaned == "Plain text without markup."
        assert result.removed_patterns == []
        assert result.cleaners_applied == ["WhitespaceNormalizer"]

    def test_full_pipeline(self):
        raw = (
            "<div><h1>Title</h1><p>Contact <b>me</b> at someone@example.com "
            "or https://example.com</p></div>\n\n\n\nRead more"
        )
        result = clean_content(raw)

        assert "<" not in result.cleaned
        assert "https://" not in result.cleaned
        assert EMAIL_PLACEHOLDER in result.cleaned
        assert "Read more" not in result.cleaned
        assert result.cleaners_applied[:2] == ["HtmlStripper", "NoiseFilter"]
        assert "EmailRedactor" in result.cleaners_applied
        assert result.cleaners_applied[-1] == "WhitespaceNormalizer"

    def test_disabled_stage_is_skipped(self):
        config = CleanerConfig(remove_markdown=False)
        result = ContentCleaner(config).clean("**bold** words")

        assert result.cleaned == "**bold** words"
        assert "MarkdownStripper" not in result.cleaners_applied

    def test_custom_patterns_run_last(self):
        config = CleanerConfig(custom_patterns=(r"SKU-\d+",))
        result = ContentCleaner(config).clean("Great lamp SKU-12345")

        assert result.cleaned == "Great lamp "
        assert result.cleaners_applied[-1] == "CustomPattern"
        assert result.removed_patterns[-1] == r"SKU-\d+"

    def test_metadata(self):
        result = clean_content("<p>abc</p>")
        metadata = result.metadata()

        assert metadata["original_length"] == len("<p>abc</p>")
        assert metadata["cleaned_length"] == 3
        assert metadata["cleaning_ratio"] == pytest.approx(3 / 10)

    @pytest.mark.parametrize("raw", ["", None])
    def test_empty_input(self, raw):
        result = clean_content(raw)
        assert result.cleaned == ""
        assert result.raw == ""
