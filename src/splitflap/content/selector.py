"""Priority-tiered generator selection.

The :class:`ContentSelector` picks exactly one generator per cycle, first
match wins:

1. An explicit ``context.generator_id`` that is registered bypasses tiers.
2. **NOTIFICATION** -- when the context carries an inbound event, the first
   notification generator (registration order) whose pattern matches the
   event key.
3. **NORMAL** -- uniform random choice among normal generators.
4. **FALLBACK** -- the first fallback generator, only when no normal
   generator exists.  Deterministic so degraded behaviour is predictable.
5. ``None``.

Selection is a pure function of registry state, the context and the random
source; it has no side effects.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Callable

from splitflap.content.registry import GeneratorRegistry
from splitflap.content.types import ContentPriority, GenerationContext, RegisteredGenerator

log = logging.getLogger(__name__)

RandomSource = Callable[[], float]
"""Returns a float uniformly distributed in ``[0, 1)``."""


class ContentSelector:
    """Selects a registered generator for a generation context.

    Args:
        registry: The registry to select from (shared by reference).
        random_source: Uniform ``[0, 1)`` source used for NORMAL-tier picks.
            Substitute a deterministic callable in tests.
    """

    def __init__(
        self,
        registry: GeneratorRegistry,
        random_source: RandomSource | None = None,
    ) -> None:
        self._registry = registry
        self._random: RandomSource = random_source or random.random

    def select(self, context: GenerationContext) -> RegisteredGenerator | None:
        if context.generator_id:
            direct = self._registry.get_by_id(context.generator_id)
            if direct is not None:
                return direct
            log.warning(
                "Requested generator %r is not registered; using tier selection.",
                context.generator_id,
            )

        notification = self._select_notification(context)
        if notification is not None:
            return notification

        normal = self._registry.get_by_priority(ContentPriority.NORMAL)
        if normal:
            index = math.floor(self._random() * len(normal))
            # Guard against a source that returns exactly 1.0.
            index = min(index, len(normal) - 1)
            return normal[index]

        fallback = self._registry.get_by_priority(ContentPriority.FALLBACK)
        if fallback:
            return fallback[0]

        return None

    def _select_notification(self, context: GenerationContext) -> RegisteredGenerator | None:
        event = context.inbound_event
        if event is None or event.key is None:
            return None

        matches = [
            entry
            for entry in self._registry.get_by_priority(ContentPriority.NOTIFICATION)
            if entry.registration.matches_event(event.key)
        ]
        if not matches:
            return None
        if len(matches) > 1:
            log.debug(
                "Event %r matched %d notification generators; using %s.",
                event.key,
                len(matches),
                matches[0].registration.id,
            )
        return matches[0]
