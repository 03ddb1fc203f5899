"""Unit tests for text helpers."""

from notifier.utils.text import split_terms, truncate_text


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("Short text", max_length=50) == "Short text"

    def test_breaks_at_word_boundary(self):
        text = "This is a very long text that needs truncating"
        assert truncate_text(text, max_length=30) == "This is a very long text..."

    def test_result_never_exceeds_limit(self):
        result = truncate_text("x" * 500, max_length=200)

        assert len(result) == 200
        assert result.endswith("...")

    def test_empty(self):
        assert truncate_text("", max_length=10) == ""


class TestSplitTerms:
    def test_trims_lowercases_and_drops_blanks(self):
        assert split_terms(" React, NODE ,, ") == ["react", "node"]

    def test_none_and_empty(self):
        assert split_terms(None) == []
        assert split_terms("") == []

    def test_non_ascii_terms(self):
        assert split_terms("Yazılım, Geliştirici") == ["yazılım", "geliştirici"]
