"""Async OpenRouter provider for board content.

OpenRouter exposes many vendors' models behind one OpenAI-compatible chat
completions API.  Each :class:`OpenRouterProvider` instance stands for one
*vendor* (``openai``, ``anthropic``, ...) so that failover and provider
circuits see two distinct providers even though both calls go through the
same gateway.

Unlike a general-purpose client, this provider never retries on its own.
Every HTTP failure is classified into the :mod:`splitflap.errors` taxonomy
and raised, and :func:`~splitflap.content.retry.generate_with_retry` decides
whether the alternate provider gets a turn.

Usage::

    async with OpenRouterProvider(api_key="sk-or-...", name="openai") as openai:
        reply = await openai.complete(
            system_prompt="You write one-line jokes.",
            user_prompt="Tell me a joke about trains.",
            model_tier=ModelTier.LIGHT,
        )
        print(reply.text)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

import aiohttp

from splitflap.content.types import ModelTier
from splitflap.errors import (
    AuthenticationError,
    InvalidRequestError,
    OverloadedError,
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL: str = "https://openrouter.ai/api/v1"
"""Default OpenRouter API base URL."""

DEFAULT_TIMEOUT_S: float = 60.0

_HTTP_REFERER: str = "https://github.com/splitflap"
"""Value sent in the ``HTTP-Referer`` header for OpenRouter analytics."""

_X_TITLE: str = "Splitflap"
"""Value sent in the ``X-Title`` header for OpenRouter analytics."""

MODEL_TIERS: dict[str, dict[ModelTier, str]] = {
    "openai": {
        ModelTier.LIGHT: "openai/gpt-4.1-nano",
        ModelTier.MEDIUM: "openai/gpt-4.1-mini",
        ModelTier.HEAVY: "openai/gpt-4.1",
    },
    "anthropic": {
        ModelTier.LIGHT: "anthropic/claude-3.5-haiku",
        ModelTier.MEDIUM: "anthropic/claude-sonnet-4",
        ModelTier.HEAVY: "anthropic/claude-opus-4",
    },
}
"""OpenRouter model ids per vendor and tier."""


# ---------------------------------------------------------------------------
# Response dataclass
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    """Structured result from a completion request.

    Attributes:
        text: The assistant's reply text, stripped.
        model: Model that actually served the request.
        tokens_used: Total prompt + completion tokens, when reported.
        finish_reason: Why the model stopped generating.
    """

    text: str
    model: str
    tokens_used: int | None = None
    finish_reason: str = "unknown"


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class OpenRouterProvider:
    """One vendor's models, reached through OpenRouter.

    Args:
        api_key: OpenRouter API key (``sk-or-...``).
        name: Vendor name.  Used for failover metadata and circuit ids.
        models: Model id per tier.  Defaults to :data:`MODEL_TIERS` for
            *name*.
        model: Pin every tier to this one model id.
        base_url: API base URL.  Override for testing or proxying.
        timeout: Total seconds allowed per request.
    """

    def __init__(
        self,
        api_key: str,
        name: str = "openai",
        models: Mapping[ModelTier, str] | None = None,
        model: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.name: str = name
        self._api_key: str = api_key
        self._base_url: str = base_url.rstrip("/")
        self._timeout: float = timeout
        if model:
            self._models = {tier: model for tier in ModelTier}
        elif models is not None:
            self._models = dict(models)
        elif name in MODEL_TIERS:
            self._models = dict(MODEL_TIERS[name])
        else:
            raise ValueError(
                f"No default models for provider {name!r}; pass models= or model=."
            )
        self._session: aiohttp.ClientSession | None = None

    # -- Async context manager ----------------------------------------------

    async def __aenter__(self) -> OpenRouterProvider:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    # -- Internal helpers ---------------------------------------------------

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": _HTTP_REFERER,
            "X-Title": _X_TITLE,
        }

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._get_headers(),
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    def _classify(
        self,
        status: int,
        message: str,
        headers: Mapping[str, str] | None = None,
    ) -> ProviderError:
        """Map an HTTP status onto the provider error taxonomy."""
        if status in (401, 403):
            return AuthenticationError(message, self.name, status)
        if status == 429:
            retry_after = None
            raw = (headers or {}).get("Retry-After")
            if raw is not None and raw.strip().isdigit():
                retry_after = int(raw.strip())
            return RateLimitError(message, self.name, status, retry_after=retry_after)
        if status == 400:
            return InvalidRequestError(message, self.name, status)
        if status >= 500:
            return OverloadedError(message, self.name, status)
        return ProviderError(message, self.name, status)

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        session = await self._ensure_session()
        url = f"{self._base_url}{endpoint}"
        try:
            async with session.post(url, json=payload) as resp:
                body: Any = await resp.json(content_type=None)
                if not isinstance(body, dict):
                    body = {}

                # OpenRouter may embed error details inside the JSON body even
                # when the HTTP status indicates success.
                if "error" in body or resp.status >= 400:
                    err = body.get("error", {})
                    message = (
                        err.get("message", str(err))
                        if isinstance(err, dict)
                        else str(err)
                    ) or f"HTTP {resp.status}"
                    status = resp.status
                    if status < 400 and isinstance(err, dict):
                        code = err.get("code")
                        status = code if isinstance(code, int) else 502
                    raise self._classify(status, message, resp.headers)

                return body
        except ProviderError:
            raise
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(
                f"{self.name} request timed out", self.name, original=exc,
            ) from exc
        except aiohttp.ClientError as exc:
            raise ProviderConnectionError(
                f"{self.name} unreachable: {exc}", self.name, original=exc,
            ) from exc
        except ValueError as exc:
            raise OverloadedError(
                f"{self.name} returned an unparseable response", self.name, original=exc,
            ) from exc

    # -- Public API ---------------------------------------------------------

    def model_for(self, tier: ModelTier) -> str:
        """Return the model id this provider uses for *tier*."""
        return self._models.get(tier) or self._models[ModelTier.MEDIUM]

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model_tier: ModelTier = ModelTier.LIGHT,
        temperature: float = 0.9,
        max_tokens: int = 256,
    ) -> ProviderResponse:
        """Send one chat completion request.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: The request itself.
            model_tier: Which of this provider's models to use.
            temperature: Sampling temperature (0.0 -- 2.0).
            max_tokens: Maximum tokens to generate.

        Returns:
            The parsed :class:`ProviderResponse`.

        Raises:
            ProviderError: A classified failure (see :mod:`splitflap.errors`).
        """
        model = self.model_for(model_tier)
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        body = await self._post("/chat/completions", payload)

        choices: list[dict[str, Any]] = body.get("choices", [])
        if not choices:
            raise OverloadedError(
                "No choices returned in chat completion response.", self.name, 200,
            )

        first_choice = choices[0]
        text: str = (first_choice.get("message", {}).get("content") or "").strip()
        usage: dict[str, Any] = body.get("usage", {})
        total = usage.get("total_tokens")

        response = ProviderResponse(
            text=text,
            model=body.get("model", model),
            tokens_used=int(total) if total is not None else None,
            finish_reason=first_choice.get("finish_reason") or "unknown",
        )
        logger.debug(
            "Completion: provider=%s, model=%s, tokens=%s, finish=%s",
            self.name,
            response.model,
            response.tokens_used,
            response.finish_reason,
        )
        return response

    async def close(self) -> None:
        """Close the underlying HTTP session.  Safe to call multiple times."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def __repr__(self) -> str:
        return f"OpenRouterProvider(name={self.name!r}, models={self._models!r})"
