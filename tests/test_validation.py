"""Tests for generator output validation."""

import pytest

from splitflap.content.types import GeneratedContent, GenerationMetadata, Layout
from splitflap.content.validation import (
    find_invalid_characters,
    normalize_text,
    validate_generator_output,
    validate_layout_content,
    validate_text_content,
)
from splitflap.errors import ContentValidationError


def test_valid_text_passes():
    result = validate_text_content("GOOD MORNING\nHAVE A NICE DAY!")
    assert result.valid
    assert result.line_count == 2
    assert result.max_line_length == len("HAVE A NICE DAY!")


def test_lowercase_is_accepted():
    assert validate_text_content("hello there").valid


def test_empty_text_rejected():
    result = validate_text_content("")
    assert not result.valid
    assert result.errors == ["text content cannot be empty"]


def test_too_many_lines_rejected():
    result = validate_text_content("\n".join(["LINE"] * 6))
    assert not result.valid
    assert "at most 5 lines" in result.errors[0]


def test_trailing_newline_does_not_count_as_line():
    assert validate_text_content("\n".join(["LINE"] * 5) + "\n").valid


def test_long_line_rejected():
    result = validate_text_content("X" * 22)
    assert not result.valid
    assert "exceeds 21 characters" in result.errors[0]


def test_invalid_characters_reported_once_each():
    assert find_invalid_characters("A~B~C<") == ["~", "<"]
    result = validate_text_content("HI ~ THERE")
    assert result.invalid_chars == ["~"]


def test_smart_punctuation_is_normalised():
    assert normalize_text("“CAFÉ” — IT’S…") == "\"CAFE\" - IT'S..."
    assert validate_text_content("“CAFÉ” — IT’S…").valid


def test_colour_emoji_allowed():
    assert validate_text_content("🟥 RED ALERT 🟥").valid
    assert validate_text_content("❤️ LOVE").valid


def _grid(rows=6, cols=22, fill=0):
    return [[fill] * cols for _ in range(rows)]


def test_valid_layout_passes():
    assert validate_layout_content(Layout(character_codes=_grid())).valid


def test_layout_wrong_row_count_rejected():
    result = validate_layout_content(Layout(character_codes=_grid(rows=5)))
    assert not result.valid
    assert "exactly 6 rows" in result.errors[0]


def test_layout_wrong_column_count_rejected():
    codes = _grid()
    codes[3] = [0] * 21
    result = validate_layout_content(Layout(character_codes=codes))
    assert "row 3 must have exactly 22 columns" in result.errors[0]


def test_layout_code_out_of_range_rejected():
    codes = _grid()
    codes[1][4] = 72
    result = validate_layout_content(Layout(character_codes=codes))
    assert "Invalid character code 72 at row 1, col 4" in result.errors[0]


def test_generator_output_rejection_keeps_content():
    content = GeneratedContent(
        text="THIS LINE IS MUCH TOO LONG FOR THE BOARD",
        metadata=GenerationMetadata(provider="openai", model="gpt"),
    )
    with pytest.raises(ContentValidationError) as excinfo:
        validate_generator_output(content)

    error = excinfo.value
    assert error.content is content
    diagnostics = error.diagnostics()
    assert diagnostics["rejected_text"] == content.text
    assert diagnostics["rejected_output_mode"] == "text"
    assert diagnostics["rejected_metadata"]["provider"] == "openai"


def test_layout_mode_without_layout_rejected():
    with pytest.raises(ContentValidationError, match="requires layout data"):
        validate_generator_output(GeneratedContent(text="", output_mode="layout"))


def test_layout_mode_output_passes():
    content = GeneratedContent(
        text="", output_mode="layout", layout=Layout(character_codes=_grid(fill=5)),
    )
    assert validate_generator_output(content).valid
