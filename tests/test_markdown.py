"""Tests for the markdown normalizer."""
import re

import pytest

from chainchat.services.markdown import clean_text, normalize


SAMPLES = [
    "Quantum tunneling lets particles cross barriers [1].\n\n1\n\nThey appear on the other side [2][3].",
    "# Heading\n\n* first\n* second\n\nSome *emphasis* and __strong__ text.",
    "| Name | Value |\n|---|---|\n| a | 1 |\n| b | 2 |",
    "Energy is $E=mc^2$.\n\n$$\n\\int_0^1 x\\,dx\n$$",
    "```python\nprint('hi')\n```\n\n\n\n\nTrailing   \nspaces   ",
    "1. step one\n2. step two\n\n> quoted [4] text",
    "As shown in [3]: the effect is real.",
    "See [3](https://example.com) for details.",
]


class TestCleanupRules:
    def test_digit_only_lines_are_removed(self):
        result = normalize("Intro paragraph\n12\nBody text\n  7  \nEnd")
        lines = [line.strip() for line in result.splitlines()]
        assert "12" not in lines
        assert "7" not in lines
        assert "Intro paragraph" in result
        assert "End" in result

    def test_citation_markers_are_removed(self):
        result = normalize("Water boils at 100 C [1]. It freezes at 0 C [2][3].")
        assert result == "Water boils at 100 C. It freezes at 0 C."

    def test_markers_before_colon_or_parenthesis_are_removed(self):
        assert normalize("As shown in [3]: the effect is real.") == "As shown in: the effect is real."
        assert "[3]" not in normalize("See [3](https://example.com) for details.")

    def test_blank_line_runs_collapse_to_one(self):
        assert normalize("alpha\n\n\n\n\nbeta") == "alpha\n\nbeta"

    def test_trailing_whitespace_before_newline_is_dropped(self):
        assert clean_text("a   \nb\t\n") == "a\nb\n"

    @pytest.mark.parametrize("raw", [None, "", "   \n\t"])
    def test_empty_input_returns_empty_string(self, raw):
        assert normalize(raw) == ""


class TestHouseStyle:
    def test_bullets_use_hyphens(self):
        assert normalize("* one\n* two") == "- one\n- two"

    def test_strong_uses_asterisks_and_emphasis_underscores(self):
        assert normalize("This is *important* and __bold__.") == "This is _important_ and **bold**."

    def test_intraword_emphasis_keeps_asterisks(self):
        assert normalize("un*frigging*believable") == "un*frigging*believable"

    def test_inline_and_block_math_pass_through(self):
        result = normalize("Energy is $E=mc^2$ here.\n\n$$\nx^2 + y^2 = z^2\n$$")
        assert "$E=mc^2$" in result
        assert "$$\nx^2 + y^2 = z^2\n$$" in result

    def test_dollar_amounts_are_not_math(self):
        assert normalize("It costs $5 and $10 today.") == "It costs $5 and $10 today."

    def test_code_blocks_are_fenced(self):
        result = normalize("```python\nprint('hi')\n```")
        assert result.startswith("```python")
        assert result.endswith("```")

    def test_tables_are_kept(self):
        result = normalize("| Name | Value |\n|---|---|\n| a | 1 |")
        assert result.splitlines()[0].startswith("| Name")
        assert "---" in result.splitlines()[1]


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


@pytest.mark.parametrize("raw", SAMPLES)
def test_no_citation_markers_remain(raw):
    assert not re.search(r"\[\d+\]", normalize(raw))
