"""Content pipeline: registry, selection, resilient generation and fallback.

- :mod:`~splitflap.content.types` -- Data model and collaborator protocols.
- :mod:`~splitflap.content.registry` -- :class:`GeneratorRegistry`.
- :mod:`~splitflap.content.selector` -- Tier-precedence :class:`ContentSelector`.
- :mod:`~splitflap.content.retry` -- Cross-provider :func:`generate_with_retry`.
- :mod:`~splitflap.content.validation` -- Board fit checks for generated output.
- :mod:`~splitflap.content.fallback` -- :class:`StaticFallbackGenerator`.
- :mod:`~splitflap.content.orchestrator` -- The per-cycle :class:`ContentOrchestrator`.
"""

from splitflap.content.fallback import StaticFallbackGenerator
from splitflap.content.orchestrator import ContentOrchestrator
from splitflap.content.registry import GeneratorRegistry
from splitflap.content.retry import generate_with_retry
from splitflap.content.selector import ContentSelector
from splitflap.content.types import (
    ContentPriority,
    GeneratedContent,
    GenerationContext,
    GenerationMetadata,
    GeneratorRegistration,
    InboundEvent,
    Layout,
    ModelTier,
    OrchestratorResult,
    RegisteredGenerator,
)
from splitflap.content.validation import validate_generator_output

__all__ = [
    "ContentOrchestrator",
    "ContentPriority",
    "ContentSelector",
    "GeneratedContent",
    "GenerationContext",
    "GenerationMetadata",
    "GeneratorRegistration",
    "GeneratorRegistry",
    "InboundEvent",
    "Layout",
    "ModelTier",
    "OrchestratorResult",
    "RegisteredGenerator",
    "StaticFallbackGenerator",
    "generate_with_retry",
    "validate_generator_output",
]
