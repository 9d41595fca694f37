"""Resilient generation across a preferred and an alternate AI provider.

:func:`generate_with_retry` runs an ordered pipeline of provider attempts.
Each step yields an :class:`AttemptOutcome` -- either content or a classified
failure -- so the "primary vs alternate" reasoning stays explicit:

1. Bind a generator for the preferred provider and attempt generation.
2. On a transient provider failure (rate limit, authentication, overloaded,
   timeout, connection) and only when an alternate provider exists, bind a
   generator for the alternate and try once more.  Successful content is
   tagged ``failed_over=True`` with the primary provider and its error.
3. Otherwise the most recent failure is raised unchanged.  The caller
   decides what to do (the orchestrator falls back to static content).

When a circuit breaker is supplied, a provider whose circuit is off is
skipped without being called, and every real attempt records a success or
failure against that provider's circuit.

Usage::

    content = await generate_with_retry(
        lambda provider: HaikuGenerator(provider),
        context,
        openai_provider,
        anthropic_provider,
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from splitflap.content.types import (
    AIProvider,
    GeneratedContent,
    GenerationContext,
    GenerationMetadata,
    GeneratorFactory,
)
from splitflap.errors import CircuitOpenError, is_failover_eligible

if TYPE_CHECKING:
    from splitflap.circuit.service import CircuitBreakerService

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AttemptOutcome:
    """Result of one provider attempt.

    Exactly one of ``content`` and ``error`` is set.

    Attributes:
        provider: Name of the provider the attempt was bound to.
        content: Generated content on success.
        error: Classified failure otherwise.
        skipped: ``True`` when the provider was not called (circuit off).
    """

    provider: str
    content: GeneratedContent | None = None
    error: Exception | None = None
    skipped: bool = False


def provider_name(provider: AIProvider) -> str:
    return getattr(provider, "name", None) or type(provider).__name__.lower()


async def generate_with_retry(
    factory: GeneratorFactory,
    context: GenerationContext,
    preferred_provider: AIProvider,
    alternate_provider: AIProvider | None = None,
    *,
    circuit_breaker: CircuitBreakerService | None = None,
) -> GeneratedContent:
    """Generate content, failing over to *alternate_provider* once.

    Args:
        factory: Binds a provider-specific generator instance.
        context: The generation context for this cycle.
        preferred_provider: Provider tried first.
        alternate_provider: Provider tried after a transient failure.
        circuit_breaker: Optional provider circuit tracking.

    Returns:
        The generated content, with failover metadata when the alternate
        provider produced it.

    Raises:
        Exception: The most recent failure when no attempt succeeds.
    """
    providers = [preferred_provider]
    if alternate_provider is not None:
        providers.append(alternate_provider)

    outcomes: list[AttemptOutcome] = []

    for provider in providers:
        name = provider_name(provider)

        if circuit_breaker is not None and not await _circuit_allows(circuit_breaker, name):
            log.warning("Skipping provider %s: circuit is off.", name)
            outcomes.append(
                AttemptOutcome(
                    provider=name,
                    error=CircuitOpenError(f"Circuit for provider {name} is off", provider=name),
                    skipped=True,
                )
            )
            continue

        outcome = await _attempt(factory, provider, context)
        outcomes.append(outcome)

        if outcome.content is not None:
            if circuit_breaker is not None:
                await circuit_breaker.record_provider_success(name)
            return _tag_content(
                name, outcome.content, outcomes, provider_name(preferred_provider),
            )

        error = outcome.error
        if error is None:
            raise RuntimeError(f"Attempt on {name} returned neither content nor an error")
        if circuit_breaker is not None and is_failover_eligible(error):
            await circuit_breaker.record_provider_failure(name, error)

        if not is_failover_eligible(error):
            log.warning(
                "Provider %s failed with non-transient %s; not failing over.",
                name,
                type(error).__name__,
            )
            break

        log.warning(
            "Provider %s failed with %s: %s",
            name,
            type(error).__name__,
            error,
        )

    last_error = outcomes[-1].error if outcomes else None
    if last_error is None:
        raise RuntimeError("No provider attempt was made")
    raise last_error


async def _attempt(
    factory: GeneratorFactory,
    provider: AIProvider,
    context: GenerationContext,
) -> AttemptOutcome:
    """Run one bound generation attempt and classify its result."""
    name = provider_name(provider)
    try:
        generator = factory(provider)
        content = await generator.generate(context)
    except Exception as exc:
        log.debug("Attempt on %s raised %r.", name, exc)
        return AttemptOutcome(provider=name, error=exc)
    return AttemptOutcome(provider=name, content=content)


async def _circuit_allows(circuit_breaker: CircuitBreakerService, name: str) -> bool:
    from splitflap.circuit.service import provider_circuit_id

    return await circuit_breaker.is_provider_available(provider_circuit_id(name))


def _tag_content(
    provider: str,
    content: GeneratedContent,
    outcomes: list[AttemptOutcome],
    preferred_name: str,
) -> GeneratedContent:
    """Attach provider and failover metadata to the successful content."""
    metadata = content.metadata or GenerationMetadata()
    failures = [o for o in outcomes if o.error is not None]

    updates: dict[str, object] = {}
    if metadata.provider is None:
        updates["provider"] = provider
    if failures:
        first = failures[0]
        updates.update(
            failed_over=True,
            primary_provider=preferred_name,
            primary_error=str(first.error),
            attempts=tuple((o.provider, str(o.error)) for o in failures),
        )
        log.info(
            "Failed over from %s to %s.",
            preferred_name,
            provider,
        )

    if not updates:
        return content
    return replace(content, metadata=replace(metadata, **updates))
