"""Wire the content pipeline from settings.

:func:`build_orchestrator` turns a :class:`~splitflap.config.SplitflapSettings`
and a caller-populated :class:`GeneratorRegistry` into a ready
:class:`Runtime`.  The frame decorator is always supplied by the caller; it
owns the board's character mapping and layout rules.

Usage::

    load_env()
    configure_logging()
    runtime = await build_orchestrator(registry, decorator)
    try:
        await runtime.orchestrator.generate_and_send(context)
    finally:
        await runtime.aclose()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from splitflap.board.client import BoardClient, BoardHTTPClient, Sleep
from splitflap.circuit.service import CircuitBreakerService
from splitflap.circuit.stores import CircuitStore, InMemoryCircuitStore, RedisCircuitStore
from splitflap.config import SplitflapSettings, get_settings
from splitflap.content.fallback import StaticFallbackGenerator
from splitflap.content.orchestrator import ContentOrchestrator
from splitflap.content.registry import GeneratorRegistry
from splitflap.content.selector import ContentSelector
from splitflap.content.types import (
    ContentDataProvider,
    ContentPriority,
    FrameDecorator,
    GeneratorRegistration,
    ModelTier,
)
from splitflap.errors import ConfigurationError
from splitflap.providers.openrouter import OpenRouterProvider
from splitflap.storage.postgres import PostgresContentRepository

log = logging.getLogger(__name__)

STATIC_FALLBACK_ID = "static-fallback"


@dataclass
class Runtime:
    """Everything :func:`build_orchestrator` created, for use and shutdown."""

    orchestrator: ContentOrchestrator
    board: BoardClient
    circuit_breaker: CircuitBreakerService
    circuit_store: CircuitStore
    providers: list[OpenRouterProvider] = field(default_factory=list)
    repository: PostgresContentRepository | None = None

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        await self.board.close()
        for provider in self.providers:
            await provider.close()
        if self.repository is not None:
            await self.repository.close()
        if isinstance(self.circuit_store, RedisCircuitStore):
            self.circuit_store.close()


def validate_registry(registry: GeneratorRegistry) -> None:
    """Fail fast on generators whose own self-check fails.

    Raises:
        ConfigurationError: Listing every invalid generator.
    """
    problems: list[str] = []
    for entry in registry.get_all():
        result = entry.generator.validate()
        if not result.valid:
            problems.append(f"{entry.registration.id}: {'; '.join(result.errors)}")
    if problems:
        raise ConfigurationError("Invalid generators: " + " | ".join(problems))


def _build_provider(api_key: str, name: str, model: str | None) -> OpenRouterProvider:
    try:
        return OpenRouterProvider(api_key=api_key, name=name, model=model)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


async def build_orchestrator(
    registry: GeneratorRegistry,
    decorator: FrameDecorator,
    settings: SplitflapSettings | None = None,
    *,
    data_provider: ContentDataProvider | None = None,
    sleep: Sleep | None = None,
) -> Runtime:
    """Assemble a :class:`ContentOrchestrator` and its collaborators.

    A ``static-fallback`` FALLBACK generator is registered when the registry
    has none, so selection always has a last resort.

    Args:
        registry: Generators to select from.
        decorator: Text-to-layout frame decorator.
        settings: Defaults to :func:`get_settings`.
        data_provider: Optional data fetched before major updates.
        sleep: Backoff sleep for the board client (tests).

    Raises:
        ConfigurationError: AI generators are registered without an
            ``OPENROUTER_API_KEY``, or a generator fails its self-check.
    """
    settings = settings or get_settings()

    fallback = StaticFallbackGenerator(settings.FALLBACK_DIRECTORY)
    if not registry.get_by_priority(ContentPriority.FALLBACK):
        registry.register(
            GeneratorRegistration(
                id=STATIC_FALLBACK_ID,
                name="Static Fallback",
                priority=ContentPriority.FALLBACK,
                model_tier=ModelTier.LIGHT,
            ),
            fallback,
        )
    validate_registry(registry)

    uses_ai = any(entry.factory is not None for entry in registry.get_all())
    api_key = settings.OPENROUTER_API_KEY or ""
    if uses_ai and not api_key:
        raise ConfigurationError("OPENROUTER_API_KEY is required for AI generators.")
    if not api_key:
        log.warning("OPENROUTER_API_KEY not set; only programmatic generators will run.")

    preferred = _build_provider(
        api_key, settings.PREFERRED_PROVIDER, settings.PREFERRED_PROVIDER_MODEL,
    )
    providers = [preferred]
    alternate: OpenRouterProvider | None = None
    if settings.ALTERNATE_PROVIDER:
        alternate = _build_provider(
            api_key, settings.ALTERNATE_PROVIDER, settings.ALTERNATE_PROVIDER_MODEL,
        )
        providers.append(alternate)

    store: CircuitStore
    if settings.REDIS_URL:
        store = RedisCircuitStore(settings.REDIS_URL)
    else:
        store = InMemoryCircuitStore()
    circuit_breaker = CircuitBreakerService(
        store,
        provider_names=settings.provider_names,
        failure_threshold=settings.PROVIDER_FAILURE_THRESHOLD,
    )
    await circuit_breaker.initialize()

    repository: PostgresContentRepository | None = None
    if settings.DATABASE_URL:
        candidate = PostgresContentRepository(settings.DATABASE_URL)
        try:
            await candidate.initialize()
            repository = candidate
        except Exception as exc:
            log.warning("Content history disabled; Postgres unavailable: %s", exc)

    board = BoardClient(
        BoardHTTPClient(
            api_key=settings.BOARD_API_KEY,
            base_url=settings.BOARD_URL,
            timeout_ms=settings.BOARD_TIMEOUT_MS,
            max_retries=settings.BOARD_MAX_RETRIES,
            backoff_base_ms=settings.BOARD_BACKOFF_BASE_MS,
            backoff_max_ms=settings.BOARD_BACKOFF_MAX_MS,
            sleep=sleep,
        )
    )

    orchestrator = ContentOrchestrator(
        selector=ContentSelector(registry),
        decorator=decorator,
        display=board,
        fallback_generator=fallback,
        preferred_provider=preferred,
        alternate_provider=alternate,
        data_provider=data_provider,
        content_repository=repository,
        circuit_breaker=circuit_breaker,
    )
    log.info(
        "Orchestrator ready: %d generators, providers=%s, circuits=%s, history=%s.",
        len(registry),
        settings.provider_names,
        "redis" if settings.REDIS_URL else "memory",
        "postgres" if repository is not None else "off",
    )
    return Runtime(
        orchestrator=orchestrator,
        board=board,
        circuit_breaker=circuit_breaker,
        circuit_store=store,
        providers=providers,
        repository=repository,
    )
