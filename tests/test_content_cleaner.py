"""Tests for tools/content_cleaner.py — AI meta-commentary removal."""

from __future__ import annotations

from course_content_generator.tools.content_cleaner import detect_ai_patterns, sanitize_ai_patterns


class TestSanitizeAiPatterns:
    def test_removes_meta_commentary(self):
        text = "According to the transcript, recursion needs a base case."
        assert "transcript" not in sanitize_ai_patterns(text).lower()

    def test_removes_hedging_phrase(self):
        cleaned = sanitize_ai_patterns("It is important to note that stacks grow downward.")
        assert cleaned.startswith("stacks grow downward")

    def test_code_blocks_untouched(self):
        text = "Intro.\n\n```python\n# as we can see\nx = 1  # please note that\n```\n"
        cleaned = sanitize_ai_patterns(text)
        assert "# as we can see" in cleaned
        assert "x = 1  # please note that" in cleaned

    def test_nested_list_indentation_kept(self):
        text = "- item\n  - nested item"
        assert sanitize_ai_patterns(text) == text

    def test_clean_text_unchanged(self):
        text = "## Recursion\n\nA function that calls itself."
        assert sanitize_ai_patterns(text) == text

    def test_collapses_blank_lines(self):
        assert sanitize_ai_patterns("a\n\n\n\nb") == "a\n\nb"


class TestDetectAiPatterns:
    def test_detects(self):
        found = detect_ai_patterns("As an AI language model, I have generated this. Feel free to ask.")
        assert "As an AI language model" in found
        assert any(f.lower().startswith("feel free to") for f in found)

    def test_none_found(self):
        assert detect_ai_patterns("Plain technical prose.") == []
