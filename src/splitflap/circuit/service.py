"""Circuit breaker service.

Circuits are on/off switches consulted before generation:

- ``MASTER`` -- a manual kill switch.  When it is ``off`` every cycle is
  blocked before selection.
- ``PROVIDER_<NAME>`` -- one per AI provider, tripped automatically by
  repeated failures so known-bad providers are not called.

"Open" follows the electrical meaning: an open circuit (state ``off``)
blocks traffic.  Every query fails open -- if the store cannot be read,
traffic is allowed and a warning is logged.

Provider circuits follow the usual state machine::

    on --(threshold failures)--> off --(reset timeout)--> half_open
    half_open --(any failure)--> off
    half_open --(2 successes)--> on

Usage::

    breaker = CircuitBreakerService(InMemoryCircuitStore())
    await breaker.initialize()
    if await breaker.is_circuit_open("MASTER"):
        ...
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Sequence

from splitflap.circuit.stores import (
    DEFAULT_FAILURE_THRESHOLD,
    CircuitDefinition,
    CircuitState,
    CircuitStatus,
    CircuitStore,
    CircuitType,
)
from splitflap.errors import AuthenticationError

if TYPE_CHECKING:
    from splitflap.content.types import RegisteredGenerator

log = logging.getLogger(__name__)

MASTER_CIRCUIT = "MASTER"

HALF_OPEN_SUCCESS_THRESHOLD: int = 2
"""Successes needed in ``half_open`` before a provider circuit closes."""

DEFAULT_RESET_TIMEOUT = timedelta(minutes=5)

MANUAL_CIRCUITS: tuple[CircuitDefinition, ...] = (
    CircuitDefinition(
        circuit_id=MASTER_CIRCUIT,
        circuit_type="manual",
        default_state="on",
        description="Global kill switch - blocks all updates when off",
    ),
)


def provider_circuit_id(provider_name: str) -> str:
    """Map a provider name to its circuit id (``openai`` -> ``PROVIDER_OPENAI``)."""
    return f"PROVIDER_{provider_name.upper()}"


def provider_circuits(
    provider_names: Sequence[str],
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
) -> tuple[CircuitDefinition, ...]:
    return tuple(
        CircuitDefinition(
            circuit_id=provider_circuit_id(name),
            circuit_type="provider",
            default_state="on",
            description=f"Auto-trips on {name} API failures",
            failure_threshold=failure_threshold,
        )
        for name in provider_names
    )


class CircuitBreakerService:
    """High-level circuit operations on top of a :class:`CircuitStore`.

    Args:
        store: Where circuit state lives.
        provider_names: AI providers that get an auto-managed circuit.
        failure_threshold: Failures before a provider circuit trips.
        reset_timeout: How long a tripped provider circuit stays ``off``
            before moving to ``half_open``.
    """

    def __init__(
        self,
        store: CircuitStore,
        provider_names: Sequence[str] = ("openai", "anthropic"),
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout: timedelta = DEFAULT_RESET_TIMEOUT,
    ) -> None:
        self._store = store
        self._reset_timeout = reset_timeout
        self._definitions: tuple[CircuitDefinition, ...] = (
            MANUAL_CIRCUITS + provider_circuits(provider_names, failure_threshold)
        )
        self._provider_ids: tuple[str, ...] = tuple(
            d.circuit_id for d in self._definitions if d.circuit_type == "provider"
        )

    async def initialize(self) -> None:
        """Seed every known circuit.  Existing state is never overwritten."""
        for definition in self._definitions:
            try:
                await self._store.initialize_circuit(definition)
            except Exception:
                log.warning(
                    "Failed to initialize circuit %s.", definition.circuit_id, exc_info=True,
                )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def is_circuit_open(self, circuit_id: str) -> bool:
        """Return ``True`` when *circuit_id* is blocking traffic (state ``off``)."""
        try:
            status = await self._store.get_state(circuit_id)
        except Exception:
            log.warning("Failed to check circuit %s; allowing.", circuit_id, exc_info=True)
            return False
        if status is None:
            return False
        return status.state == "off"

    async def is_provider_available(self, target: RegisteredGenerator | str) -> bool:
        """Return ``True`` if generation may call a provider.

        *target* is either a provider circuit id, or a registered generator,
        in which case the generator is available while at least one
        provider circuit allows traffic.
        """
        if isinstance(target, str):
            return await self._circuit_allows(target)

        if not self._provider_ids:
            return True
        for circuit_id in self._provider_ids:
            if await self._circuit_allows(circuit_id):
                return True
        log.warning(
            "Every provider circuit is off; %s cannot reach an AI provider.",
            target.registration.id,
        )
        return False

    async def get_circuit_status(self, circuit_id: str) -> CircuitStatus | None:
        try:
            return await self._store.get_state(circuit_id)
        except Exception:
            log.warning("Failed to get circuit %s status.", circuit_id, exc_info=True)
            return None

    async def get_all_circuits(self) -> list[CircuitStatus]:
        try:
            return await self._store.get_all_states()
        except Exception:
            log.warning("Failed to list circuits.", exc_info=True)
            return []

    async def get_circuits_by_type(self, circuit_type: CircuitType) -> list[CircuitStatus]:
        return [c for c in await self.get_all_circuits() if c.circuit_type == circuit_type]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def set_circuit_state(self, circuit_id: str, state: CircuitState) -> None:
        try:
            await self._store.set_state(circuit_id, state)
            log.info("Circuit %s set to %s.", circuit_id, state)
        except Exception:
            log.warning("Failed to set circuit %s to %s.", circuit_id, state, exc_info=True)

    async def record_provider_failure(self, circuit_id: str, error: BaseException) -> None:
        """Count a failure and trip the circuit when the threshold is hit.

        Authentication failures trip immediately; any failure while
        ``half_open`` trips immediately.
        """
        circuit_id = self._as_circuit_id(circuit_id)
        try:
            failures = await self._store.record_failure(circuit_id)
            status = await self._store.get_state(circuit_id)
            if status is None:
                return

            threshold = 1 if isinstance(error, AuthenticationError) else status.failure_threshold
            should_trip = status.state == "half_open" or (
                status.state == "on" and failures >= threshold
            )
            if should_trip:
                await self._store.set_state(circuit_id, "off")
                log.warning(
                    "Provider circuit %s tripped after %d failure(s): %s",
                    circuit_id,
                    failures,
                    error,
                )
        except Exception:
            log.warning("Failed to record provider failure for %s.", circuit_id, exc_info=True)

    async def record_provider_success(self, circuit_id: str) -> None:
        circuit_id = self._as_circuit_id(circuit_id)
        try:
            successes = await self._store.record_success(circuit_id)
            status = await self._store.get_state(circuit_id)
            if status is None:
                return
            if status.state == "half_open" and successes >= HALF_OPEN_SUCCESS_THRESHOLD:
                await self._store.set_state(circuit_id, "on")
                await self._store.reset_counters(circuit_id)
                log.info("Provider circuit %s recovered.", circuit_id)
        except Exception:
            log.warning("Failed to record provider success for %s.", circuit_id, exc_info=True)

    async def reset_provider_circuit(self, circuit_id: str) -> None:
        circuit_id = self._as_circuit_id(circuit_id)
        try:
            await self._store.set_state(circuit_id, "on")
            await self._store.reset_counters(circuit_id)
        except Exception:
            log.warning("Failed to reset provider circuit %s.", circuit_id, exc_info=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _circuit_allows(self, circuit_id: str) -> bool:
        circuit_id = self._as_circuit_id(circuit_id)
        try:
            status = await self._store.get_state(circuit_id)
            if status is None:
                return True
            if status.state != "off":
                return True
            if status.circuit_type == "provider" and self._reset_elapsed(status):
                await self._store.set_state(circuit_id, "half_open")
                await self._store.reset_counters(circuit_id)
                log.info("Provider circuit %s is now half-open.", circuit_id)
                return True
            return False
        except Exception:
            log.warning(
                "Failed to check provider availability for %s; allowing.",
                circuit_id,
                exc_info=True,
            )
            return True

    def _reset_elapsed(self, status: CircuitStatus) -> bool:
        if status.state_changed_at is None:
            return False
        return datetime.now(timezone.utc) - status.state_changed_at >= self._reset_timeout

    @staticmethod
    def _as_circuit_id(name_or_id: str) -> str:
        if name_or_id.startswith("PROVIDER_") or name_or_id == MASTER_CIRCUIT:
            return name_or_id
        return provider_circuit_id(name_or_id)

    def __repr__(self) -> str:
        return f"CircuitBreakerService(circuits={[d.circuit_id for d in self._definitions]})"
