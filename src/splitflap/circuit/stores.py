"""Circuit state stores.

Two backends share the :class:`CircuitStore` protocol:

- :class:`InMemoryCircuitStore` -- process-local, used in tests and when no
  Redis URL is configured.
- :class:`RedisCircuitStore` -- one Redis hash per circuit so state survives
  restarts and can be flipped by an operator from another process.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

import redis

log = logging.getLogger(__name__)

CircuitState = Literal["on", "off", "half_open"]
CircuitType = Literal["manual", "provider"]

DEFAULT_FAILURE_THRESHOLD: int = 5


@dataclass(frozen=True, slots=True)
class CircuitDefinition:
    """Static definition used to seed a circuit."""

    circuit_id: str
    circuit_type: CircuitType
    default_state: CircuitState = "on"
    description: str = ""
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD


@dataclass(frozen=True, slots=True)
class CircuitStatus:
    """Stored state of one circuit."""

    circuit_id: str
    circuit_type: CircuitType
    state: CircuitState
    default_state: CircuitState = "on"
    description: str = ""
    failure_count: int = 0
    success_count: int = 0
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    last_failure_at: datetime | None = None
    last_success_at: datetime | None = None
    state_changed_at: datetime | None = None

    @classmethod
    def from_definition(cls, definition: CircuitDefinition) -> CircuitStatus:
        return cls(
            circuit_id=definition.circuit_id,
            circuit_type=definition.circuit_type,
            state=definition.default_state,
            default_state=definition.default_state,
            description=definition.description,
            failure_threshold=definition.failure_threshold,
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CircuitStore(Protocol):
    async def initialize_circuit(self, definition: CircuitDefinition) -> None: ...

    async def get_state(self, circuit_id: str) -> CircuitStatus | None: ...

    async def get_all_states(self) -> list[CircuitStatus]: ...

    async def set_state(self, circuit_id: str, state: CircuitState) -> None: ...

    async def record_failure(self, circuit_id: str) -> int: ...

    async def record_success(self, circuit_id: str) -> int: ...

    async def reset_counters(self, circuit_id: str) -> None: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryCircuitStore:
    """Process-local circuit store."""

    def __init__(self) -> None:
        self._circuits: dict[str, CircuitStatus] = {}

    async def initialize_circuit(self, definition: CircuitDefinition) -> None:
        self._circuits.setdefault(
            definition.circuit_id, CircuitStatus.from_definition(definition),
        )

    async def get_state(self, circuit_id: str) -> CircuitStatus | None:
        return self._circuits.get(circuit_id)

    async def get_all_states(self) -> list[CircuitStatus]:
        return list(self._circuits.values())

    async def set_state(self, circuit_id: str, state: CircuitState) -> None:
        current = self._require(circuit_id)
        self._circuits[circuit_id] = replace(current, state=state, state_changed_at=_now())

    async def record_failure(self, circuit_id: str) -> int:
        current = self._require(circuit_id)
        updated = replace(
            current,
            failure_count=current.failure_count + 1,
            success_count=0,
            last_failure_at=_now(),
        )
        self._circuits[circuit_id] = updated
        return updated.failure_count

    async def record_success(self, circuit_id: str) -> int:
        current = self._require(circuit_id)
        updated = replace(
            current,
            success_count=current.success_count + 1,
            failure_count=0 if current.state == "on" else current.failure_count,
            last_success_at=_now(),
        )
        self._circuits[circuit_id] = updated
        return updated.success_count

    async def reset_counters(self, circuit_id: str) -> None:
        current = self._require(circuit_id)
        self._circuits[circuit_id] = replace(current, failure_count=0, success_count=0)

    def _require(self, circuit_id: str) -> CircuitStatus:
        try:
            return self._circuits[circuit_id]
        except KeyError:
            raise KeyError(f"Unknown circuit {circuit_id!r}") from None


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisCircuitStore:
    """Redis-backed circuit store.

    Each circuit is a hash at ``splitflap:circuit:<id>``.  The synchronous
    client runs in the default executor so the event loop never blocks on
    Redis round trips.
    """

    _PREFIX = "splitflap:circuit:"

    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)

    async def _run(self, fn: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    def _key(self, circuit_id: str) -> str:
        return f"{self._PREFIX}{circuit_id}"

    async def initialize_circuit(self, definition: CircuitDefinition) -> None:
        key = self._key(definition.circuit_id)
        mapping = {
            "circuit_id": definition.circuit_id,
            "circuit_type": definition.circuit_type,
            "state": definition.default_state,
            "default_state": definition.default_state,
            "description": definition.description,
            "failure_count": 0,
            "success_count": 0,
            "failure_threshold": definition.failure_threshold,
        }

        def _seed() -> None:
            if not self._client.exists(key):
                self._client.hset(key, mapping=mapping)

        await self._run(_seed)

    async def get_state(self, circuit_id: str) -> CircuitStatus | None:
        raw = await self._run(self._client.hgetall, self._key(circuit_id))
        if not raw.get("circuit_id"):
            return None
        return self._decode(raw)

    async def get_all_states(self) -> list[CircuitStatus]:
        def _scan() -> list[dict[str, str]]:
            return [
                self._client.hgetall(key)
                for key in self._client.scan_iter(match=f"{self._PREFIX}*")
            ]

        rows = await self._run(_scan)
        return [self._decode(row) for row in rows if row.get("circuit_id")]

    def _require(self, circuit_id: str) -> str:
        key = self._key(circuit_id)
        if not self._client.exists(key):
            raise KeyError(f"Unknown circuit {circuit_id!r}")
        return key

    async def set_state(self, circuit_id: str, state: CircuitState) -> None:
        def _set() -> None:
            key = self._require(circuit_id)
            self._client.hset(
                key, mapping={"state": state, "state_changed_at": _now().isoformat()},
            )

        await self._run(_set)

    async def record_failure(self, circuit_id: str) -> int:
        def _record() -> int:
            key = self._require(circuit_id)
            pipe = self._client.pipeline()
            pipe.hincrby(key, "failure_count", 1)
            pipe.hset(key, mapping={"success_count": 0, "last_failure_at": _now().isoformat()})
            count, _ = pipe.execute()
            return int(count)

        return await self._run(_record)

    async def record_success(self, circuit_id: str) -> int:
        def _record() -> int:
            key = self._require(circuit_id)
            pipe = self._client.pipeline()
            pipe.hincrby(key, "success_count", 1)
            pipe.hset(key, "last_success_at", _now().isoformat())
            pipe.hget(key, "state")
            count, _, state = pipe.execute()
            if state == "on":
                self._client.hset(key, "failure_count", 0)
            return int(count)

        return await self._run(_record)

    async def reset_counters(self, circuit_id: str) -> None:
        def _reset() -> None:
            key = self._require(circuit_id)
            self._client.hset(key, mapping={"failure_count": 0, "success_count": 0})

        await self._run(_reset)

    @staticmethod
    def _decode(raw: dict[str, str]) -> CircuitStatus:
        def _ts(name: str) -> datetime | None:
            value = raw.get(name)
            return datetime.fromisoformat(value) if value else None

        return CircuitStatus(
            circuit_id=raw["circuit_id"],
            circuit_type=raw.get("circuit_type", "provider"),  # type: ignore[arg-type]
            state=raw.get("state", "on"),  # type: ignore[arg-type]
            default_state=raw.get("default_state", "on"),  # type: ignore[arg-type]
            description=raw.get("description", ""),
            failure_count=int(raw.get("failure_count", 0)),
            success_count=int(raw.get("success_count", 0)),
            failure_threshold=int(raw.get("failure_threshold", DEFAULT_FAILURE_THRESHOLD)),
            last_failure_at=_ts("last_failure_at"),
            last_success_at=_ts("last_success_at"),
            state_changed_at=_ts("state_changed_at"),
        )

    def close(self) -> None:
        self._client.close()
