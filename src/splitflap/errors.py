"""Error taxonomy for splitflap.

Errors fall into three groups:

- **Fatal configuration / cycle errors** -- :class:`ConfigurationError` and
  :class:`NoGeneratorAvailableError` propagate to the caller.
- **Provider failures** -- :class:`ProviderError` and its subclasses are raised
  by AI providers and generators.  They are absorbed by failover and the
  static fallback, never surfaced from a cycle.
- **Validation failures** -- :class:`ContentValidationError` rejects generated
  content that cannot be shown on the board.  It keeps the rejected content
  so the caller can record it before discarding it.

Display transport failures live in :mod:`splitflap.board.errors`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from splitflap.content.types import GeneratedContent


class ConfigurationError(Exception):
    """Raised at startup for invalid wiring, e.g. a duplicate generator id."""


class NoGeneratorAvailableError(RuntimeError):
    """Raised when the selector cannot return any generator for a context."""

    def __init__(self, message: str = "No content generator available for context") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Provider failures
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """Base error for AI provider failures.

    Attributes:
        message: Human-readable error description.
        provider: Name of the provider that failed (e.g. ``"openai"``).
        status_code: HTTP status code, when the failure came from a response.
        original: The underlying exception, if any.
    """

    is_transient: bool = False
    """Whether retrying against another provider may succeed."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status_code: int | None = None,
        original: BaseException | None = None,
    ) -> None:
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.original = original
        super().__init__(message)

    @property
    def kind(self) -> str:
        """Short error kind used in persisted records."""
        return type(self).__name__


class AuthenticationError(ProviderError):
    """The provider rejected our credentials (401/403)."""

    is_transient = True


class RateLimitError(ProviderError):
    """The provider throttled us (429).

    Attributes:
        retry_after: Seconds the provider asked us to wait, if given.
    """

    is_transient = True

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status_code: int | None = 429,
        original: BaseException | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, provider, status_code, original)
        self.retry_after = retry_after


class OverloadedError(ProviderError):
    """The provider returned a transient server error (5xx / overloaded)."""

    is_transient = True


class ProviderTimeoutError(ProviderError):
    """The provider did not answer in time."""

    is_transient = True


class ProviderConnectionError(ProviderError):
    """The provider could not be reached."""

    is_transient = True


class InvalidRequestError(ProviderError):
    """The request itself was rejected (400); another provider will not help."""


class CircuitOpenError(ProviderError):
    """The provider was skipped because its circuit is off."""

    is_transient = True


def is_failover_eligible(error: BaseException) -> bool:
    """Return ``True`` if *error* should trigger a retry on the alternate provider."""
    return isinstance(error, ProviderError) and error.is_transient


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ContentValidationError(Exception):
    """Generated content does not fit the board.

    Attributes:
        errors: Every validation problem found, first one is the message.
        content: The rejected content, kept for diagnostics.
        invalid_chars: Characters outside the board character set.
        line_count: Number of lines (or rows) found.
        max_line_length: Longest line (or row) found.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[str] | None = None,
        content: GeneratedContent | None = None,
        invalid_chars: list[str] | None = None,
        line_count: int | None = None,
        max_line_length: int | None = None,
    ) -> None:
        self.message = message
        self.errors = errors or [message]
        self.content = content
        self.invalid_chars = invalid_chars or []
        self.line_count = line_count
        self.max_line_length = max_line_length
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def diagnostics(self) -> dict[str, Any]:
        """Return the rejected text and metadata in a loggable form."""
        data: dict[str, Any] = {"errors": list(self.errors)}
        if self.content is not None:
            data["rejected_text"] = self.content.text
            data["rejected_output_mode"] = self.content.output_mode
            if self.content.metadata is not None:
                data["rejected_metadata"] = self.content.metadata.as_dict()
        return data
