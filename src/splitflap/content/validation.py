"""Output validation against the board's physical limits.

Text content is shown inside a frame, so it may use at most
:data:`FRAMED_MAX_ROWS` lines of :data:`FRAMED_MAX_COLS` characters drawn
from the board's character set.  Layout content is dispatched verbatim and
must be exactly :data:`MAX_ROWS` x :data:`MAX_COLS` character codes.

Before checking, typographic characters that AI providers like to emit
(smart quotes, dashes, ellipses, accented vowels) are normalised to their
ASCII equivalents.  Nothing else is repaired: over-long or over-tall content
is rejected rather than truncated or re-wrapped.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from splitflap.content.types import GeneratedContent, Layout
from splitflap.errors import ContentValidationError

MAX_ROWS: int = 6
MAX_COLS: int = 22
FRAMED_MAX_ROWS: int = 5
"""Text rows available when the info-bar frame takes one row."""
FRAMED_MAX_COLS: int = 21

MAX_CHARACTER_CODE: int = 71

SUPPORTED_CHARS: frozenset[str] = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789 .,:;!?'\"-()+=/°@#$%&*"
)

COLOR_EMOJIS: frozenset[str] = frozenset(
    "🟥🔴❤🟧🟠🧡🟨🟡💛🟩🟢💚🟦🔵💙🟪🟣💜⬜⚪🤍⬛⚫🖤"
)
"""Emoji that map onto the board's colour tiles."""

_VARIATION_SELECTOR = "\ufe0f"

_NORMALIZATIONS: dict[str, str] = {
    "“": '"',
    "”": '"',
    "„": '"',
    "‘": "'",
    "’": "'",
    "‚": "'",
    "—": "-",
    "–": "-",
    "…": "...",
}
for _plain, _accented in {
    "A": "ÀÁÂÃÄÅàáâãäå",
    "E": "ÈÉÊËèéêë",
    "I": "ÌÍÎÏìíîï",
    "O": "ÒÓÔÕÖòóôõö",
    "U": "ÙÚÛÜùúûü",
    "Y": "Ýý",
    "N": "Ññ",
    "C": "Çç",
}.items():
    for _char in _accented:
        _NORMALIZATIONS[_char] = _plain


@dataclass(slots=True)
class ValidationResult:
    """Details of a validation pass."""

    valid: bool
    line_count: int
    max_line_length: int
    invalid_chars: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    normalized_text: str | None = None


def normalize_text(text: str) -> str:
    """Replace typographic characters with board-supported equivalents."""
    for source, target in _NORMALIZATIONS.items():
        text = text.replace(source, target)
    return text.replace(_VARIATION_SELECTOR, "")


def find_invalid_characters(text: str) -> list[str]:
    """Return unsupported characters in first-seen order."""
    invalid: dict[str, None] = {}
    for char in text.upper():
        if char in SUPPORTED_CHARS or char in COLOR_EMOJIS:
            continue
        invalid.setdefault(char, None)
    return list(invalid)


def validate_text_content(text: str) -> ValidationResult:
    if not text:
        return ValidationResult(
            valid=False,
            line_count=0,
            max_line_length=0,
            errors=["text content cannot be empty"],
        )

    normalized = normalize_text(text)
    lines = normalized.rstrip("\n").split("\n")
    line_count = len(lines)
    max_line_length = max((len(line) for line in lines), default=0)
    errors: list[str] = []

    if line_count > FRAMED_MAX_ROWS:
        errors.append(
            f"text mode content must have at most {FRAMED_MAX_ROWS} lines "
            f"(found: {line_count})"
        )

    for index, line in enumerate(lines):
        if len(line) > FRAMED_MAX_COLS:
            errors.append(
                f"text mode line {index} exceeds {FRAMED_MAX_COLS} characters "
                f"(found: {len(line)})"
            )
            break

    invalid_chars = find_invalid_characters("".join(lines))
    if invalid_chars:
        errors.append(f"text contains invalid characters: {', '.join(invalid_chars)}")

    return ValidationResult(
        valid=not errors,
        line_count=line_count,
        max_line_length=max_line_length,
        invalid_chars=invalid_chars,
        errors=errors,
        normalized_text="\n".join(lines),
    )


def validate_layout_content(layout: Layout) -> ValidationResult:
    codes = layout.character_codes
    if not codes:
        return ValidationResult(
            valid=False,
            line_count=0,
            max_line_length=0,
            errors=["layout mode requires character codes"],
        )

    errors: list[str] = []
    row_count = len(codes)
    max_row_length = max((len(row) for row in codes), default=0)

    if row_count != MAX_ROWS:
        errors.append(f"layout must have exactly {MAX_ROWS} rows (found: {row_count})")

    for index, row in enumerate(codes):
        if len(row) != MAX_COLS:
            errors.append(
                f"layout row {index} must have exactly {MAX_COLS} columns "
                f"(found: {len(row)})"
            )
            break

    bad = next(
        (
            (r, c, code)
            for r, row in enumerate(codes)
            for c, code in enumerate(row)
            if not 0 <= code <= MAX_CHARACTER_CODE
        ),
        None,
    )
    if bad is not None:
        row, col, code = bad
        errors.append(
            f"Invalid character code {code} at row {row}, col {col} "
            f"(must be 0-{MAX_CHARACTER_CODE})"
        )

    return ValidationResult(
        valid=not errors,
        line_count=row_count,
        max_line_length=max_row_length,
        errors=errors,
    )


def validate_generator_output(content: GeneratedContent) -> ValidationResult:
    """Validate *content* for its output mode.

    Raises:
        ContentValidationError: If the content cannot be shown.  The error
            carries the rejected content for diagnostics.
    """
    if content.output_mode == "text":
        result = validate_text_content(content.text)
    elif content.output_mode == "layout":
        if content.layout is None:
            raise ContentValidationError(
                "layout mode requires layout data", content=content,
            )
        result = validate_layout_content(content.layout)
    else:
        raise ContentValidationError(
            f"Invalid output mode: {content.output_mode}", content=content,
        )

    if not result.valid:
        raise ContentValidationError(
            result.errors[0],
            errors=result.errors,
            content=content,
            invalid_chars=result.invalid_chars,
            line_count=result.line_count,
            max_line_length=result.max_line_length,
        )
    return result
