"""Core data model for the splitflap content pipeline.

Every type here is either created per cycle and discarded afterwards
(:class:`GenerationContext`, :class:`GeneratedContent`,
:class:`OrchestratorResult`) or created once at bootstrap and never mutated
(:class:`GeneratorRegistration`, :class:`RegisteredGenerator`).

The collaborator protocols at the bottom describe the narrow surfaces the
orchestrator consumes; concrete implementations live elsewhere in the
package or are supplied by the caller.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Callable, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from splitflap.storage.records import ContentRecord

UpdateType = Literal["major", "minor"]
OutputMode = Literal["text", "layout"]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ContentPriority(IntEnum):
    """Priority tier of a registered generator.  Lower values win."""

    NOTIFICATION = 0
    """P0 -- immediate, event-triggered content."""

    NORMAL = 2
    """P2 -- steady-state rotation."""

    FALLBACK = 3
    """P3 -- last-resort static content."""


class ModelTier(Enum):
    """Coarse class of AI model a generator should use."""

    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


# ---------------------------------------------------------------------------
# Per-cycle inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InboundEvent:
    """An external event that may trigger a notification.

    Attributes:
        type: Event type, e.g. ``"door.opened"``.
        entity_id: Entity that emitted the event, e.g. ``"sensor.front_door"``.
    """

    type: str | None = None
    entity_id: str | None = None

    @property
    def key(self) -> str | None:
        """The string matched against notification patterns (``type`` first)."""
        if self.type:
            return self.type
        if self.entity_id:
            return self.entity_id
        return None


@dataclass(frozen=True, slots=True)
class GenerationContext:
    """Inputs for one generation cycle, created by the scheduler.

    Attributes:
        update_type: ``"major"`` for new content, ``"minor"`` for a refresh.
        timestamp: When the cycle was triggered.
        inbound_event: Event that triggered the cycle, if any.
        generator_id: Explicit generator to use, bypassing tier selection.
        prompts_only: Ask generators to return their prompts without calling AI.
    """

    update_type: UpdateType
    timestamp: datetime
    inbound_event: InboundEvent | None = None
    generator_id: str | None = None
    prompts_only: bool = False


# ---------------------------------------------------------------------------
# Generated content
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Layout:
    """A pre-positioned board layout.

    Attributes:
        rows: Text rows, if the generator produced them.
        character_codes: Board character codes, one list per row.
    """

    rows: list[str] | None = None
    character_codes: list[list[int]] | None = None


@dataclass(frozen=True, slots=True)
class GenerationMetadata:
    """Provenance of a piece of generated content."""

    provider: str | None = None
    model: str | None = None
    cost_tier: str | None = None
    tokens_used: int | None = None
    failed_over: bool = False
    primary_provider: str | None = None
    primary_error: str | None = None
    user_prompt: str | None = None
    system_prompt: str | None = None
    attempts: tuple[tuple[str, str], ...] = ()
    """``(provider, error message)`` for every failed attempt before success."""
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["attempts"] = [list(a) for a in self.attempts]
        return {k: v for k, v in data.items() if v not in (None, {}, [])}


@dataclass(frozen=True, slots=True)
class GeneratedContent:
    """Output of a generator or of the fallback path.

    Attributes:
        text: Plain text to show (may be empty for pure layouts).
        output_mode: ``"text"`` is decorated before dispatch, ``"layout"``
            is dispatched verbatim from ``layout.character_codes``.
        layout: Pre-positioned layout for ``"layout"`` mode.
        metadata: Provider / model / failover provenance.
    """

    text: str
    output_mode: OutputMode = "text"
    layout: Layout | None = None
    metadata: GenerationMetadata | None = None


@dataclass(slots=True)
class GeneratorValidationResult:
    """Result of a generator's self-check."""

    valid: bool
    errors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GeneratorFormatOptions:
    """Per-generator hints for the frame decorator."""

    text_align: Literal["left", "center", "right"] = "center"
    word_wrap: bool = True
    max_lines: int | None = None


@dataclass(frozen=True, slots=True)
class GeneratorRegistration:
    """Static metadata describing a content source.

    Attributes:
        id: Globally unique generator id.
        name: Human-friendly display name.
        priority: Tier used by the selector.
        model_tier: Which AI model class the generator should use.
        apply_frame: Whether text output gets the info-bar frame.
        event_trigger_pattern: Regex matched against inbound event keys.
        format_options: Decorator hints passed through on text output.
        tags: Free-form labels.
    """

    id: str
    name: str
    priority: ContentPriority
    model_tier: ModelTier = ModelTier.LIGHT
    apply_frame: bool = True
    event_trigger_pattern: re.Pattern[str] | None = None
    format_options: GeneratorFormatOptions | None = None
    tags: tuple[str, ...] = ()

    def matches_event(self, key: str) -> bool:
        """Return ``True`` if this registration's pattern matches *key*."""
        if self.event_trigger_pattern is None:
            return False
        return self.event_trigger_pattern.search(key) is not None


@runtime_checkable
class ContentGenerator(Protocol):
    """A source of content for the board."""

    async def generate(self, context: GenerationContext) -> GeneratedContent: ...

    def validate(self) -> GeneratorValidationResult: ...


@runtime_checkable
class AIProvider(Protocol):
    """An AI backend.  Only its name and failure classification matter here."""

    name: str


GeneratorFactory = Callable[[AIProvider], ContentGenerator]
"""Binds a provider-specific generator instance for one attempt."""


@dataclass(frozen=True, slots=True)
class RegisteredGenerator:
    """A registration paired with its generator capability.

    Attributes:
        registration: Static metadata.
        generator: Default generator instance (used when no factory is set,
            e.g. for programmatic generators).
        factory: Optional provider binder used for failover.  When absent,
            ``generator`` is used for every provider.
    """

    registration: GeneratorRegistration
    generator: ContentGenerator
    factory: GeneratorFactory | None = None

    def bind(self, provider: AIProvider) -> ContentGenerator:
        if self.factory is None:
            return self.generator
        return self.factory(provider)


# ---------------------------------------------------------------------------
# Cycle result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OrchestratorResult:
    """Outcome of one :meth:`ContentOrchestrator.generate_and_send` cycle."""

    success: bool
    content: GeneratedContent | None = None
    blocked: bool = False
    block_reason: str | None = None
    circuit_state: dict[str, bool] | None = None


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class FrameResult:
    """Decorated, display-ready layout."""

    layout: list[list[int]]
    warnings: list[str] = field(default_factory=list)


class FrameDecorator(Protocol):
    async def decorate(
        self,
        text: str,
        timestamp: datetime | None = None,
        content_data: Any | None = None,
        format_options: GeneratorFormatOptions | None = None,
    ) -> FrameResult: ...


class CircuitBreaker(Protocol):
    async def is_circuit_open(self, circuit_id: str) -> bool: ...

    async def is_provider_available(self, target: RegisteredGenerator | str) -> bool: ...


class ContentRepository(Protocol):
    async def save_content(self, record: ContentRecord) -> int | None: ...


class ContentDataProvider(Protocol):
    async def fetch_data(self) -> Any: ...


class DisplayClient(Protocol):
    async def send_layout(self, layout: list[list[int]]) -> None: ...
