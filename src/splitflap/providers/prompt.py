"""Prompt-driven content generator.

:class:`PromptGenerator` sends a system and user prompt to one provider and
returns the reply as board text.  It is bound per provider, so the retry
pipeline can rebind it to the alternate provider on failover::

    factory = PromptGenerator.factory(system_prompt, user_prompt, ModelTier.LIGHT)
    registry.register(registration, factory(preferred), factory=factory)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from splitflap.content.types import (
    GeneratedContent,
    GenerationContext,
    GenerationMetadata,
    GeneratorFactory,
    GeneratorValidationResult,
    ModelTier,
)
from splitflap.providers.openrouter import ProviderResponse

log = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    name: str

    def model_for(self, tier: ModelTier) -> str: ...

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model_tier: ModelTier = ModelTier.LIGHT,
    ) -> ProviderResponse: ...


def load_prompt(path: str | Path) -> str:
    """Read a prompt file, stripping surrounding whitespace."""
    return Path(path).read_text(encoding="utf-8").strip()


class PromptGenerator:
    """Generate board text from a fixed pair of prompts.

    Args:
        provider: The provider this instance is bound to.
        system_prompt: Instructions for the model.
        user_prompt: The request.  The cycle context is appended to it.
        model_tier: Which of the provider's models to use.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        system_prompt: str,
        user_prompt: str,
        model_tier: ModelTier = ModelTier.LIGHT,
    ) -> None:
        self._provider = provider
        self._system_prompt = system_prompt
        self._user_prompt = user_prompt
        self._model_tier = model_tier

    @classmethod
    def factory(
        cls,
        system_prompt: str,
        user_prompt: str,
        model_tier: ModelTier = ModelTier.LIGHT,
    ) -> GeneratorFactory:
        """Return a binder suitable for :func:`generate_with_retry`."""

        def bind(provider: CompletionProvider) -> PromptGenerator:
            return cls(provider, system_prompt, user_prompt, model_tier)

        return bind  # type: ignore[return-value]

    def validate(self) -> GeneratorValidationResult:
        errors: list[str] = []
        if not self._system_prompt.strip():
            errors.append("System prompt is empty")
        if not self._user_prompt.strip():
            errors.append("User prompt is empty")
        return GeneratorValidationResult(valid=not errors, errors=errors)

    def format_user_prompt(self, context: GenerationContext) -> str:
        details = {
            "update_type": context.update_type,
            "timestamp": context.timestamp.isoformat(),
        }
        if context.inbound_event is not None and context.inbound_event.key:
            details["event"] = context.inbound_event.key
        return f"{self._user_prompt}\n\nContext: {json.dumps(details, indent=2)}"

    async def generate(self, context: GenerationContext) -> GeneratedContent:
        user_prompt = self.format_user_prompt(context)
        model = self._provider.model_for(self._model_tier)

        # Dry run: hand the prompts back without spending a provider call.
        if context.prompts_only:
            return GeneratedContent(
                text="",
                metadata=GenerationMetadata(
                    provider=self._provider.name,
                    model=model,
                    cost_tier=self._model_tier.value,
                    system_prompt=self._system_prompt,
                    user_prompt=user_prompt,
                ),
            )

        reply = await self._provider.complete(
            self._system_prompt, user_prompt, self._model_tier,
        )
        log.debug("Provider %s returned %d chars.", self._provider.name, len(reply.text))
        return GeneratedContent(
            text=reply.text,
            metadata=GenerationMetadata(
                provider=self._provider.name,
                model=reply.model,
                cost_tier=self._model_tier.value,
                tokens_used=reply.tokens_used,
                system_prompt=self._system_prompt,
                user_prompt=user_prompt,
            ),
        )
