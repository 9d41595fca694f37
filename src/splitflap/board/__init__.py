"""Board transport.

- :mod:`~splitflap.board.client` -- :class:`BoardHTTPClient` (retry, backoff,
  failure classification) and the :class:`BoardClient` façade.
- :mod:`~splitflap.board.errors` -- The :class:`BoardError` taxonomy.
"""

from splitflap.board.client import AnimationOptions, BoardClient, BoardHTTPClient
from splitflap.board.errors import (
    BoardAuthenticationError,
    BoardConnectionError,
    BoardError,
    BoardHTTPError,
    BoardRateLimitError,
    BoardServerError,
    BoardTimeoutError,
)

__all__ = [
    "AnimationOptions",
    "BoardAuthenticationError",
    "BoardClient",
    "BoardConnectionError",
    "BoardError",
    "BoardHTTPClient",
    "BoardHTTPError",
    "BoardRateLimitError",
    "BoardServerError",
    "BoardTimeoutError",
]
