"""Async HTTP client for the board's local API.

The board sits on the local network and is reached over a small JSON API
authenticated with an API-key header.  The network is not reliable, so every
call runs through a bounded retry loop:

- Up to ``max_retries`` retries after the first attempt (default 2, so at
  most three requests).
- Each attempt is cut off after ``timeout_ms`` (default 5000 ms).
- Before retry *n* the client waits ``backoff_base_ms * 2 ** (n - 1)``
  (1s, 2s, 4s, ...), capped at ``backoff_max_ms``.
- Authentication failures are never retried.  Every other failure is.
- When retries run out, the **last** classified failure is raised.

Usage::

    async with BoardHTTPClient(api_key="...") as http:
        board = BoardClient(http)
        await board.send_layout(layout)

The client implements :meth:`__aenter__` / :meth:`__aexit__` so it can be used
as an async context manager, which ensures the underlying ``aiohttp`` session
is properly closed on exit.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import aiohttp

from splitflap.board.errors import (
    BoardAuthenticationError,
    BoardConnectionError,
    BoardError,
    BoardHTTPError,
    BoardRateLimitError,
    BoardServerError,
    BoardTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL: str = "http://vestaboard.local:7000"
"""Default local API address of the board."""

DEFAULT_TIMEOUT_MS: int = 5000
DEFAULT_MAX_RETRIES: int = 2
DEFAULT_BACKOFF_BASE_MS: int = 1000
DEFAULT_BACKOFF_MAX_MS: int = 10_000

_MESSAGE_PATH: str = "/local-api/message"
_API_KEY_HEADER: str = "X-Vestaboard-Local-Api-Key"
_INVALID_API_KEY_MARKER: str = "invalid api key"

Grid = list[list[int]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class AnimationOptions:
    """How the board should animate a transition.

    Attributes:
        strategy: Transition style, e.g. ``"column"``, ``"edges-to-center"``.
        step_interval_ms: Milliseconds between animation steps.
        step_size: Tiles changed per step.
    """

    strategy: str = "column"
    step_interval_ms: int = 100
    step_size: int = 1


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class BoardHTTPClient:
    """Resilient transport to the board.

    The HTTP session is created lazily on first use and reused for the
    lifetime of the client.  Call :meth:`close` (or use the client as an
    async context manager) to release the underlying connection pool.

    Args:
        api_key: Local API key for the board.
        base_url: Board address.  Override for testing.
        timeout_ms: Per-attempt timeout.
        max_retries: Retries after the first attempt.
        backoff_base_ms: Delay before the first retry; doubles each retry.
        backoff_max_ms: Upper bound for any single backoff delay.
        sleep: Coroutine used for backoff delays.  It must be cancellable;
            the default is :func:`asyncio.sleep`.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS,
        backoff_max_ms: int = DEFAULT_BACKOFF_MAX_MS,
        sleep: Sleep | None = None,
    ) -> None:
        self._api_key: str = api_key
        self._base_url: str = base_url.rstrip("/")
        self._timeout_ms: int = timeout_ms
        self._max_retries: int = max(max_retries, 0)
        self._backoff_base_ms: int = backoff_base_ms
        self._backoff_max_ms: int = backoff_max_ms
        self._sleep: Sleep = sleep or asyncio.sleep
        self._session: aiohttp.ClientSession | None = None

    # -- Async context manager ----------------------------------------------

    async def __aenter__(self) -> BoardHTTPClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    # -- Public API ---------------------------------------------------------

    async def post(self, layout: Grid) -> None:
        """Replace the board's message with *layout*."""
        await self._execute_with_retry(lambda: self._request("POST", layout))

    async def post_with_animation(
        self,
        layout: Grid,
        options: AnimationOptions | None = None,
    ) -> None:
        """Replace the board's message with an animated transition."""
        options = options or AnimationOptions()
        payload = {
            "characters": layout,
            "strategy": options.strategy,
            "step_interval_ms": options.step_interval_ms,
            "step_size": options.step_size,
        }
        await self._execute_with_retry(lambda: self._request("POST", payload))

    async def get(self) -> Grid:
        """Read the board's current message.

        The board answers with either a bare grid or ``{"message": grid}``.
        """
        return await self._execute_with_retry(self._read_message)

    async def _read_message(self) -> Grid:
        body = await self._request("GET")
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise BoardConnectionError(f"Connection error: {exc}") from exc
        if isinstance(data, dict) and "message" in data:
            data = data["message"]
        if not isinstance(data, list):
            raise BoardHTTPError(f"Unexpected message payload: {body[:120]}")
        return data

    async def close(self) -> None:
        """Close the HTTP session.  Safe to call multiple times."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # -- Retry machinery ----------------------------------------------------

    def backoff_delay_ms(self, retry: int) -> int:
        """Delay before retry number *retry* (1-based)."""
        return min(self._backoff_base_ms * (2 ** (retry - 1)), self._backoff_max_ms)

    async def _execute_with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        retry = 0
        while True:
            try:
                return await operation()
            except BoardError as exc:
                if not exc.is_retryable or retry >= self._max_retries:
                    raise
                retry += 1
                delay_ms = self.backoff_delay_ms(retry)
                logger.warning(
                    "Board request failed (%s). Retrying in %.1fs (retry %d/%d).",
                    exc,
                    delay_ms / 1000,
                    retry,
                    self._max_retries,
                )
                await self._sleep(delay_ms / 1000)

    # -- Single attempt -----------------------------------------------------

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Return the shared session, creating it lazily if needed.

        The session is created outside ``__init__`` to avoid requiring an
        active event loop at construction time.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={_API_KEY_HEADER: self._api_key},
            )
        return self._session

    async def _request(self, method: str, payload: Any | None = None) -> str:
        """Send one request and classify its outcome.

        Returns:
            The response body text on a 2xx response.

        Raises:
            BoardError: A classified failure.
        """
        session = await self._ensure_session()
        url = f"{self._base_url}{_MESSAGE_PATH}"
        timeout = aiohttp.ClientTimeout(total=self._timeout_ms / 1000)

        try:
            async with session.request(method, url, json=payload, timeout=timeout) as resp:
                body = await resp.text()
                self._raise_for_response(resp.status, resp.reason or "", resp.headers, body)
                return body
        except BoardError:
            raise
        except asyncio.TimeoutError as exc:
            raise BoardTimeoutError("Request timed out") from exc
        except Exception as exc:
            message = str(exc)
            if not message:
                raise BoardConnectionError("Unknown connection error") from exc
            raise BoardConnectionError(f"Connection error: {message}") from exc

    @staticmethod
    def _raise_for_response(
        status: int,
        reason: str,
        headers: Any,
        body: str,
    ) -> None:
        if status in (401, 403):
            raise BoardAuthenticationError(f"Authentication failed: {reason}", status)

        if 200 <= status < 300:
            if _INVALID_API_KEY_MARKER in body.lower():
                raise BoardAuthenticationError("Authentication failed: invalid API key", status)
            return

        if status == 429:
            raise BoardRateLimitError(
                f"Rate limit exceeded: {reason}",
                retry_after=_parse_retry_after(headers.get("Retry-After")),
            )

        if status >= 500:
            raise BoardServerError(f"Server error: {reason}", status)

        raise BoardHTTPError(f"HTTP error {status}: {reason}", status)

    def __repr__(self) -> str:
        return (
            f"BoardHTTPClient(base_url={self._base_url!r}, "
            f"timeout_ms={self._timeout_ms}, max_retries={self._max_retries})"
        )


def _parse_retry_after(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class BoardClient:
    """Board operations used by the rest of the application."""

    def __init__(self, http: BoardHTTPClient) -> None:
        self._http = http

    async def send_layout(self, layout: Grid) -> None:
        await self._http.post(layout)

    async def send_layout_with_animation(
        self,
        layout: Grid,
        options: AnimationOptions | None = None,
    ) -> None:
        await self._http.post_with_animation(layout, options)

    async def read_message(self) -> Grid:
        return await self._http.get()

    async def validate_connection(self) -> tuple[bool, float | None]:
        """Read the board once and report ``(connected, latency_ms)``."""
        started = time.monotonic()
        try:
            await self._http.get()
        except BoardError as exc:
            logger.warning("Board connection check failed: %s", exc)
            return False, None
        return True, (time.monotonic() - started) * 1000

    async def close(self) -> None:
        await self._http.close()
