"""Circuit breakers gating generation.

- :mod:`~splitflap.circuit.service` -- The :class:`CircuitBreakerService`
  queried by the orchestrator and the retry pipeline.
- :mod:`~splitflap.circuit.stores` -- In-memory and Redis circuit stores.
"""

from splitflap.circuit.service import (
    MASTER_CIRCUIT,
    CircuitBreakerService,
    provider_circuit_id,
)
from splitflap.circuit.stores import (
    CircuitDefinition,
    CircuitStatus,
    InMemoryCircuitStore,
    RedisCircuitStore,
)

__all__ = [
    "MASTER_CIRCUIT",
    "CircuitBreakerService",
    "CircuitDefinition",
    "CircuitStatus",
    "InMemoryCircuitStore",
    "RedisCircuitStore",
    "provider_circuit_id",
]
