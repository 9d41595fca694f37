"""Per-cycle content pipeline.

:class:`ContentOrchestrator` runs one update cycle strictly in order::

    gate check -> select -> (provider check) -> generate with retry
        -> validate -> decorate or pass through -> dispatch -> persist

Any provider or validation failure switches the cycle to the static fallback
generator; the cycle still succeeds and shows something.  Two failures are
not absorbed:

- the selector finding no generator (:class:`NoGeneratorAvailableError`);
- the board transport failing after its own retries
  (:class:`~splitflap.board.errors.BoardError`).

Persistence runs as detached background tasks and never affects the result.

Lifecycle::

    orchestrator = ContentOrchestrator(
        selector=selector,
        decorator=decorator,
        display=board,
        fallback_generator=StaticFallbackGenerator(),
        preferred_provider=openai,
        alternate_provider=anthropic,
    )
    result = await orchestrator.generate_and_send(
        GenerationContext(update_type="major", timestamp=datetime.now(timezone.utc)),
    )
    await orchestrator.aclose()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Coroutine

from splitflap.circuit.service import MASTER_CIRCUIT, CircuitBreakerService
from splitflap.content.retry import generate_with_retry, provider_name
from splitflap.content.selector import ContentSelector
from splitflap.content.types import (
    AIProvider,
    CircuitBreaker,
    ContentDataProvider,
    ContentGenerator,
    ContentRepository,
    DisplayClient,
    FrameDecorator,
    GeneratedContent,
    GenerationContext,
    OrchestratorResult,
    RegisteredGenerator,
)
from splitflap.content.validation import validate_generator_output
from splitflap.errors import (
    CircuitOpenError,
    ContentValidationError,
    NoGeneratorAvailableError,
    ProviderError,
)
from splitflap.storage.records import ContentRecord

log = logging.getLogger(__name__)

MASTER_BLOCK_REASON = "master_circuit_off"


class ContentOrchestrator:
    """Coordinates selection, resilient generation, fallback and dispatch.

    Args:
        selector: Picks the generator for each cycle.
        decorator: Turns text into a framed board layout.
        display: Sends the finished layout to the board.
        fallback_generator: Always-available static content source.
        preferred_provider: AI provider tried first.
        alternate_provider: AI provider tried after a transient failure.
        data_provider: Optional source of data fetched before major updates
            and handed to the decorator.
        content_repository: Optional history store.  Only major updates
            are persisted.
        circuit_breaker: Optional gate.  Without it every check is skipped.
    """

    def __init__(
        self,
        selector: ContentSelector,
        decorator: FrameDecorator,
        display: DisplayClient,
        fallback_generator: ContentGenerator,
        preferred_provider: AIProvider,
        alternate_provider: AIProvider | None = None,
        *,
        data_provider: ContentDataProvider | None = None,
        content_repository: ContentRepository | None = None,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._selector = selector
        self._decorator = decorator
        self._display = display
        self._fallback = fallback_generator
        self._preferred = preferred_provider
        self._alternate = alternate_provider
        self._data_provider = data_provider
        self._repository = content_repository
        self._circuit_breaker = circuit_breaker
        self._cached_content: GeneratedContent | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def generate_and_send(self, context: GenerationContext) -> OrchestratorResult:
        """Run one full update cycle.

        Returns:
            ``success=True`` whenever something was shown, including
            fallback content.  ``blocked=True`` when the MASTER circuit
            stopped the cycle before selection.

        Raises:
            NoGeneratorAvailableError: The selector returned nothing.
            BoardError: The board could not be reached after retries.
        """
        if await self._master_blocked():
            log.warning("MASTER circuit is off; skipping %s update.", context.update_type)
            return OrchestratorResult(
                success=False,
                blocked=True,
                block_reason=MASTER_BLOCK_REASON,
                circuit_state={"master": False},
            )

        content_data = await self._prefetch_data(context)

        registered = self._selector.select(context)
        if registered is None:
            raise NoGeneratorAvailableError()
        log.info(
            "Selected generator %s (priority %s) for %s update.",
            registered.registration.id,
            registered.registration.priority.name,
            context.update_type,
        )

        content: GeneratedContent | None = None
        error: Exception | None = None

        if await self._providers_unavailable(registered):
            error = CircuitOpenError(
                "No provider circuit allows traffic",
                provider=provider_name(self._preferred),
            )
            log.warning(
                "Providers unavailable for %s; using fallback.", registered.registration.id,
            )
        else:
            try:
                content = await generate_with_retry(
                    registered.bind,
                    context,
                    self._preferred,
                    self._alternate,
                    circuit_breaker=self._retry_breaker(),
                )
                checked = validate_generator_output(content)
                if checked.normalized_text not in (None, content.text):
                    content = replace(content, text=checked.normalized_text)
            except ContentValidationError as exc:
                log.warning(
                    "Generator %s output rejected: %s",
                    registered.registration.id,
                    exc.diagnostics(),
                )
                content, error = None, exc
            except Exception as exc:
                log.warning(
                    "Generator %s failed, using fallback: %s",
                    registered.registration.id,
                    exc,
                )
                error = exc

        if error is not None:
            if context.update_type == "major":
                self._spawn(self._save(self._failed_record(context, registered, error)))
            content = await self._fallback.generate(context)

        if content is None:
            raise RuntimeError("Cycle produced no content to dispatch")
        layout = await self._render(
            content,
            context,
            content_data,
            registered if error is None else None,
        )

        await self._display.send_layout(layout)
        self._cached_content = content
        log.info(
            "Dispatched %s update from %s.",
            context.update_type,
            "fallback" if error is not None else registered.registration.id,
        )

        if error is None and context.update_type == "major":
            self._spawn(self._save(self._success_record(context, registered, content)))

        return OrchestratorResult(success=True, content=content)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def get_cached_content(self) -> GeneratedContent | None:
        """Content dispatched by the last successful cycle, if any."""
        return self._cached_content

    def clear_cache(self) -> None:
        self._cached_content = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait for pending persistence tasks to finish."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel pending persistence tasks."""
        for task in self._background_tasks:
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
            self._background_tasks.clear()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _master_blocked(self) -> bool:
        if self._circuit_breaker is None:
            return False
        return await self._circuit_breaker.is_circuit_open(MASTER_CIRCUIT)

    async def _providers_unavailable(self, registered: RegisteredGenerator) -> bool:
        if self._circuit_breaker is None:
            return False
        return not await self._circuit_breaker.is_provider_available(registered)

    def _retry_breaker(self) -> CircuitBreakerService | None:
        # Only the full service can record per-provider outcomes.
        if isinstance(self._circuit_breaker, CircuitBreakerService):
            return self._circuit_breaker
        return None

    async def _prefetch_data(self, context: GenerationContext) -> Any | None:
        if self._data_provider is None or context.update_type != "major":
            return None
        try:
            return await self._data_provider.fetch_data()
        except Exception as exc:
            log.warning("Content data pre-fetch failed; continuing without it: %s", exc)
            return None

    async def _render(
        self,
        content: GeneratedContent,
        context: GenerationContext,
        content_data: Any | None,
        registered: RegisteredGenerator | None,
    ) -> list[list[int]]:
        """Decorate text content, or pass layout character codes through."""
        if content.output_mode == "layout":
            if content.layout is None or not content.layout.character_codes:
                raise ContentValidationError(
                    "layout mode requires character codes", content=content,
                )
            return content.layout.character_codes

        format_options = registered.registration.format_options if registered else None
        frame = await self._decorator.decorate(
            content.text,
            context.timestamp,
            content_data,
            format_options,
        )
        for warning in frame.warnings:
            log.debug("Decorator: %s", warning)
        return frame.layout

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _success_record(
        self,
        context: GenerationContext,
        registered: RegisteredGenerator,
        content: GeneratedContent,
    ) -> ContentRecord:
        registration = registered.registration
        meta = content.metadata
        return ContentRecord(
            text=content.text,
            update_type=context.update_type,
            generated_at=context.timestamp,
            sent_at=datetime.now(timezone.utc),
            status="success",
            generator_id=registration.id,
            generator_name=registration.name,
            priority=int(registration.priority),
            provider=(meta.provider if meta else None) or "",
            model=meta.model if meta else None,
            model_tier=(meta.cost_tier if meta else None) or registration.model_tier.value,
            tokens_used=meta.tokens_used if meta else None,
            failed_over=meta.failed_over if meta else False,
            primary_provider=meta.primary_provider if meta else None,
            primary_error=meta.primary_error if meta else None,
            output_mode=content.output_mode,
            metadata=meta.as_dict() if meta else {},
        )

    def _failed_record(
        self,
        context: GenerationContext,
        registered: RegisteredGenerator,
        error: Exception,
    ) -> ContentRecord:
        registration = registered.registration
        attempted = provider_name(self._preferred)
        if isinstance(error, ProviderError):
            attempted = error.provider
        elif isinstance(error, ContentValidationError):
            # The provider that produced the rejected content.
            rejected = error.content.metadata if error.content is not None else None
            if rejected is not None and rejected.provider:
                attempted = rejected.provider
        metadata: dict[str, Any] = {}
        if isinstance(error, ContentValidationError):
            metadata.update(error.diagnostics())
        return ContentRecord(
            text="",
            update_type=context.update_type,
            generated_at=context.timestamp,
            status="failed",
            generator_id=registration.id,
            generator_name=registration.name,
            priority=int(registration.priority),
            provider=attempted,
            model_tier=registration.model_tier.value,
            error_type=getattr(error, "kind", type(error).__name__),
            error_message=str(error),
            output_mode=None,
            metadata=metadata,
        )

    async def _save(self, record: ContentRecord) -> None:
        if self._repository is None:
            return
        try:
            record_id = await self._repository.save_content(record)
            log.debug("Saved %s content record %s.", record.status, record_id)
        except Exception as exc:
            log.warning("Failed to save content record: %s", exc)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None] | None:
        """Create a tracked background task with error logging."""
        if self._repository is None:
            coro.close()
            return None
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception():
            log.error("Background task failed: %s", task.exception(), exc_info=task.exception())

    def __repr__(self) -> str:
        return (
            f"ContentOrchestrator(preferred={provider_name(self._preferred)!r}, "
            f"alternate={provider_name(self._alternate) if self._alternate else None!r}, "
            f"pending={len(self._background_tasks)})"
        )
