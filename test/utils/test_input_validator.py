#!/usr/bin/env python3
"""
Tests for essay input screening with objective, measurable criteria.
"""

import pytest

from college_tracker.utils.input_validator import InputValidator, SuspiciousInputError


class TestInputValidatorLegitimateInput:
    """Normal essay drafts should pass validation"""

    def test_valid_essay_submission(self):
        InputValidator.validate_essay_input(
            title="Why Engineering",
            content="The first bridge I built was made of popsicle sticks and glue.\n\nIt collapsed.",
            prompt="Why do you want to study engineering at our university?",
            college_name="State University",
        )

    def test_optional_fields_can_be_missing(self):
        InputValidator.validate_essay_input(title="Untitled", content="A short draft.")

    def test_content_with_light_markdown(self):
        InputValidator.validate_field(
            "My grandmother's kitchen was *always* loud, and I learned to **listen** there.", "content"
        )

    def test_em_dashes_and_quotes_are_fine(self):
        InputValidator.validate_field('She said, "Try again" ... and so I did!', "content")

    def test_empty_string_passes(self):
        InputValidator.validate_field("", "content")


class TestInputValidatorLengthLimits:
    def test_title_too_long(self):
        with pytest.raises(SuspiciousInputError, match="exceeds maximum length"):
            InputValidator.validate_field("A" * 201, "title")

    def test_title_at_max_length(self):
        InputValidator.validate_field("A" * 200, "title")

    def test_college_name_too_long(self):
        with pytest.raises(SuspiciousInputError, match="exceeds maximum length"):
            InputValidator.validate_field("University " * 20, "college_name")

    def test_prompt_too_long(self):
        with pytest.raises(SuspiciousInputError, match="exceeds maximum length"):
            InputValidator.validate_essay_input(title="T", content="Draft", prompt="Describe " * 300)

    def test_content_too_long(self):
        with pytest.raises(SuspiciousInputError, match="content exceeds maximum length"):
            InputValidator.validate_field("word " * 3001, "content")

    def test_long_but_legal_essay(self):
        InputValidator.validate_field("This sentence is part of a long essay. " * 300, "content")

    def test_instruction_too_long(self):
        with pytest.raises(SuspiciousInputError, match="instruction exceeds maximum length"):
            InputValidator.validate_field("shorter " * 126, "instruction")

    def test_unknown_field_uses_default_limit(self):
        with pytest.raises(SuspiciousInputError, match="exceeds maximum length"):
            InputValidator.validate_field("x" * 2001, "mystery")


class TestInputValidatorStructuralLimits:
    def test_excessive_headers(self):
        with pytest.raises(SuspiciousInputError, match="too many section headers"):
            InputValidator.validate_field("### One\n### Two\n### Three\n### Four", "content")

    def test_three_headers_allowed(self):
        InputValidator.validate_field("### One\n### Two\n### Three", "content")

    def test_hash_scene_breaks_are_not_headers(self):
        text = "\n\n###\n\n".join(["First scene.", "Second scene.", "Third scene.", "Fourth scene.", "Fifth."])
        InputValidator.validate_field(text, "content")

    def test_inline_hashes_are_not_headers(self):
        InputValidator.validate_field("We trended as #1 ### #2 ### #3 ### #4 ### #5 that week.", "content")

    def test_code_block_markers(self):
        with pytest.raises(SuspiciousInputError, match="too many code block markers"):
            InputValidator.validate_field("```one``` and ```two``` and ```three```", "content")

    def test_single_code_block_allowed(self):
        InputValidator.validate_field("I wrote ```print('hello')``` on my first day.", "content")


class TestInputValidatorControlCharacters:
    def test_normal_whitespace_allowed(self):
        InputValidator.validate_field("Line 1\nLine 2\tTabbed\r\nLine 3", "content")

    def test_excessive_control_chars_blocked(self):
        # 10% bell characters
        text = "a" * 90 + "\x07" * 10
        with pytest.raises(SuspiciousInputError, match="too many control characters"):
            InputValidator.validate_field(text, "content")

    def test_few_control_chars_tolerated(self):
        InputValidator.validate_field("a" * 99 + "\x07", "content")

    def test_unicode_characters_allowed(self):
        InputValidator.validate_field("Mi abuela me enseñó a cocinar. 我喜欢学习。", "content")


class TestInputValidatorSpecialCharacters:
    def test_long_special_character_run_blocked(self):
        with pytest.raises(SuspiciousInputError, match="unusual character sequences"):
            InputValidator.validate_field("Ignore this: <|/}{[]>&^%$#@|>", "content")

    def test_ten_special_characters_allowed(self):
        InputValidator.validate_field("Wait.......!!!", "content")

    def test_dash_scene_break_allowed(self):
        InputValidator.validate_field("The lights went out.\n\n-----------------------\n\nMorning came.", "content")

    def test_long_ellipsis_allowed(self):
        InputValidator.validate_field("I waited..................... and waited?!?!", "content")

    def test_repeated_punctuation_counts_once(self):
        InputValidator.validate_field("No way!!!!!!!!!!!!!!!!!!!!!!!!", "content")
        InputValidator.validate_field("* * *\n\n**********\n\n~~~~~~~~~~~~", "content")

    def test_non_string_rejected(self):
        with pytest.raises(SuspiciousInputError, match="must be a string"):
            InputValidator.validate_field(42, "title")  # type: ignore[arg-type]

    def test_title_is_checked_in_essay_input(self):
        with pytest.raises(SuspiciousInputError, match="title"):
            InputValidator.validate_essay_input(title="!@#$%^&*()_+{}", content="Fine draft.")


class TestSanitizeForLogging:
    def test_short_text_unchanged(self):
        assert InputValidator.sanitize_for_logging("hello") == "hello"

    def test_long_text_truncated(self):
        sanitized = InputValidator.sanitize_for_logging("x" * 150)
        assert sanitized == "x" * 100 + "..."

    def test_custom_max_length(self):
        assert InputValidator.sanitize_for_logging("abcdef", max_length=3) == "abc..."
