"""Generator registry for splitflap.

The registry is the in-memory catalogue of every content source known to the
process.  It is built once at bootstrap and passed by reference to the
selector and the orchestrator; it does no selection of its own.

Registrations keep their insertion order, which every lookup preserves.
That order is what makes notification matching and fallback selection
deterministic.

Usage::

    registry = GeneratorRegistry()
    registry.register(
        GeneratorRegistration(
            id="door-notification",
            name="Door Notification",
            priority=ContentPriority.NOTIFICATION,
            event_trigger_pattern=re.compile(r"^door\\."),
        ),
        DoorNotificationGenerator(),
    )
    registry.get_by_event_pattern("door.opened")
"""

from __future__ import annotations

import logging

from splitflap.content.types import (
    ContentGenerator,
    ContentPriority,
    GeneratorFactory,
    GeneratorRegistration,
    RegisteredGenerator,
)
from splitflap.errors import ConfigurationError

log = logging.getLogger(__name__)


class GeneratorRegistry:
    """Insertion-ordered catalogue of registered generators."""

    def __init__(self) -> None:
        self._generators: dict[str, RegisteredGenerator] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def register(
        self,
        registration: GeneratorRegistration,
        generator: ContentGenerator,
        factory: GeneratorFactory | None = None,
    ) -> RegisteredGenerator:
        """Register *generator* under ``registration.id``.

        Args:
            registration: Static metadata for the generator.
            generator: Default generator instance.
            factory: Optional provider binder used for AI failover.

        Returns:
            The stored :class:`RegisteredGenerator`.

        Raises:
            ConfigurationError: If the id is already registered.  The
                existing entry is left untouched.
        """
        if registration.id in self._generators:
            raise ConfigurationError(
                f'Generator with ID "{registration.id}" is already registered'
            )

        entry = RegisteredGenerator(
            registration=registration,
            generator=generator,
            factory=factory,
        )
        self._generators[registration.id] = entry
        log.debug(
            "Registered generator %s (priority=%s).",
            registration.id,
            registration.priority.name,
        )
        return entry

    def unregister(self, generator_id: str) -> bool:
        """Remove a generator.  Returns ``True`` if it existed."""
        return self._generators.pop(generator_id, None) is not None

    def reset(self) -> None:
        """Drop every registration.  Intended for test isolation."""
        self._generators.clear()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_by_id(self, generator_id: str) -> RegisteredGenerator | None:
        return self._generators.get(generator_id)

    def get_all(self) -> list[RegisteredGenerator]:
        return list(self._generators.values())

    def get_by_priority(self, priority: ContentPriority) -> list[RegisteredGenerator]:
        return [
            entry
            for entry in self._generators.values()
            if entry.registration.priority == priority
        ]

    def get_by_event_pattern(self, key: str) -> list[RegisteredGenerator]:
        """Return every generator whose trigger pattern matches *key*.

        Generators without a pattern never match.  Several matches are
        legal and are returned in registration order.
        """
        return [
            entry
            for entry in self._generators.values()
            if entry.registration.matches_event(key)
        ]

    # ------------------------------------------------------------------
    # Dunder
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._generators)

    def __contains__(self, generator_id: object) -> bool:
        return generator_id in self._generators

    def __repr__(self) -> str:
        return f"GeneratorRegistry(generators={len(self._generators)})"
