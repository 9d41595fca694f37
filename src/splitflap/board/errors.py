"""Display transport failures.

Every failure raised by :class:`~splitflap.board.client.BoardHTTPClient` is a
:class:`BoardError` whose ``is_retryable`` flag drives the client's retry
loop.  The taxonomy is closed: authentication, rate limit, server error,
timeout, connection, and a generic HTTP error for any other status.
"""

from __future__ import annotations


class BoardError(Exception):
    """Base class for display transport failures.

    Attributes:
        message: Human-readable description.
        status_code: HTTP status, when the failure came from a response.
    """

    is_retryable: bool = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class BoardAuthenticationError(BoardError):
    """401/403, or a success response that reports an invalid API key."""

    is_retryable = False


class BoardRateLimitError(BoardError):
    """429 from the board.

    Attributes:
        retry_after: Seconds from the ``Retry-After`` header, or ``None``
            when the header is absent or unparseable.
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class BoardServerError(BoardError):
    """5xx from the board."""


class BoardTimeoutError(BoardError):
    """The request was aborted after the per-attempt timeout."""


class BoardConnectionError(BoardError):
    """The board could not be reached."""


class BoardHTTPError(BoardError):
    """Any other non-2xx status."""
