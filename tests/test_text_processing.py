"""
Unit tests for text processing: clean_text, truncate_text and title helpers.
"""

import pytest

from assistant_gateway.services.text_processing import (
    DEFAULT_TITLE,
    ELLIPSIS,
    clean_text,
    local_title,
    truncate_text,
    truncate_title,
)


class TestCleanText:
    """Tests for clean_text()."""

    def test_empty_returns_empty(self) -> None:
        assert clean_text("") == ""
        assert clean_text("   ") == ""
        assert clean_text("\n\n") == ""

    def test_strips_outer_whitespace(self) -> None:
        assert clean_text("  hello  ") == "hello"
        assert clean_text("\n  hello  \n") == "hello"

    def test_normalizes_inner_lines_and_dedupes(self) -> None:
        # Consecutive duplicate lines become one; blank lines preserved between paragraphs
        assert clean_text("  hello   \n\n  world  ") == "hello\n\nworld"
        assert clean_text("line1\n  line1  \nline2") == "line1\nline2"

    def test_collapses_runs_of_blank_lines(self) -> None:
        assert clean_text("a\n\n\n\nb") == "a\n\nb"

    def test_nfkc_normalization(self) -> None:
        # fullwidth letters fold to ASCII
        assert clean_text("ｈｅｌｌｏ") == "hello"


class TestTruncateText:
    def test_short_text_is_untouched(self) -> None:
        assert truncate_text("short", 10) == ("short", False)

    def test_cuts_on_word_boundary(self) -> None:
        text, truncated = truncate_text("alpha beta gamma delta", 14)
        assert truncated
        assert text == "alpha beta"

    def test_single_long_word_is_cut_hard(self) -> None:
        assert truncate_text("abcdefghij", 4) == ("abcd", True)


class TestTruncateTitle:
    def test_short_title_is_kept(self) -> None:
        assert truncate_title("Plan a launch", 50) == "Plan a launch"

    def test_whitespace_is_collapsed(self) -> None:
        assert truncate_title("  Plan \n a   launch ", 50) == "Plan a launch"

    def test_long_title_ends_with_ellipsis_on_word_boundary(self) -> None:
        title = truncate_title("How should we plan the product launch for next quarter in Asia", 30)
        assert title.endswith(ELLIPSIS)
        assert len(title) <= 30
        assert title == "How should we plan the…"

    def test_cut_exactly_before_a_space_keeps_last_word(self) -> None:
        # "aaaa bbbb" + ellipsis fits in 10
        assert truncate_title("aaaa bbbb cccc", 10) == "aaaa bbbb…"

    def test_single_long_word_is_cut_hard(self) -> None:
        title = truncate_title("x" * 80, 20)
        assert title == "x" * 19 + ELLIPSIS

    @pytest.mark.parametrize("max_length", [1, 5, 12, 50])
    def test_never_exceeds_max_length(self, max_length: int) -> None:
        text = "Lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod"
        assert len(truncate_title(text, max_length)) <= max_length

    def test_never_splits_a_word(self) -> None:
        text = "Lorem ipsum dolor sit amet consectetur adipiscing elit"
        words = set(text.split())
        title = truncate_title(text, 25)
        assert all(w in words for w in title.rstrip(ELLIPSIS).split())


class TestLocalTitle:
    def test_markdown_noise_is_removed_and_capitalized(self) -> None:
        assert local_title("## **plan** a `launch`") == "Plan a launch"

    def test_empty_input_gives_default(self) -> None:
        assert local_title("") == DEFAULT_TITLE
        assert local_title("### ***") == DEFAULT_TITLE

    def test_long_input_is_truncated(self) -> None:
        title = local_title("word " * 40)
        assert len(title) <= 50
        assert title.endswith(ELLIPSIS)
