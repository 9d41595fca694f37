"""AI providers and the prompt-driven generator built on them."""

from splitflap.providers.openrouter import (
    MODEL_TIERS,
    OpenRouterProvider,
    ProviderResponse,
)
from splitflap.providers.prompt import PromptGenerator, load_prompt

__all__ = [
    "MODEL_TIERS",
    "OpenRouterProvider",
    "PromptGenerator",
    "ProviderResponse",
    "load_prompt",
]
