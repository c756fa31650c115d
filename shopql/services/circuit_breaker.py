"""
CircuitBreaker - Stops calling an upstream operation that keeps failing.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Operation is failing, requests are blocked
- HALF_OPEN: Testing if the operation has recovered

Transitions:
- CLOSED → OPEN: When failure_threshold is reached
- OPEN → HALF_OPEN: First request after timeout since the last failure
- HALF_OPEN → CLOSED: After success_threshold successes
- HALF_OPEN → OPEN: On any failure

Records live in a KeyValueStore with a sliding expiry, so several workers
sharing a store see the same breaker. Writes are last-write-wins and are
never evicted for space. When the store itself fails the breaker passes
requests through and skips recording.
"""

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from loguru import logger

from shopql.services.store import Clock, KeyValueStore

KEY_PREFIX = "shopql:circuit_breaker:"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Failures before opening
    success_threshold: int = 3  # Successes needed to close from half-open
    timeout: float = 60.0  # Seconds before half-open
    window: float = 300.0  # Record expiry, refreshed on every write


@dataclass
class CircuitBreakerRecord:
    """Persisted breaker state for one breaker name."""

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CircuitBreakerRecord":
        if not data:
            return cls()
        return cls(
            state=CircuitState(data.get("state", CircuitState.CLOSED)),
            failure_count=int(data.get("failure_count", 0)),
            success_count=int(data.get("success_count", 0)),
            last_failure_time=data.get("last_failure_time"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class CircuitBreakerRegistry:
    """
    Store-backed circuit breakers keyed by name.

    Usage:
        breakers = CircuitBreakerRegistry(store)

        if not await breakers.allow_request("products"):
            raise CircuitOpenError(...)

        try:
            result = await make_request()
            await breakers.record_success("products")
        except Exception:
            await breakers.record_failure("products")
            raise
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: CircuitBreakerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or time.time
        self._known: set[str] = set()

    def _key(self, name: str) -> str:
        return f"{KEY_PREFIX}{name}"

    async def get_record(self, name: str) -> CircuitBreakerRecord:
        """Read a breaker record; an unreadable store reads as CLOSED."""
        try:
            return CircuitBreakerRecord.from_dict(await self._store.get(self._key(name)))
        except Exception as e:
            logger.warning(f"Circuit breaker store read failed for '{name}', passing through: {e}")
            return CircuitBreakerRecord()

    async def _mutate(self, name: str, fn) -> CircuitBreakerRecord | None:
        self._known.add(name)

        def apply(raw: dict[str, Any] | None) -> dict[str, Any]:
            record = CircuitBreakerRecord.from_dict(raw)
            fn(record)
            return record.to_dict()

        try:
            data = await self._store.update(
                self._key(name), apply, ttl=self.config.window, evictable=False
            )
        except Exception as e:
            logger.warning(f"Circuit breaker store write failed for '{name}', not recorded: {e}")
            return None
        return CircuitBreakerRecord.from_dict(data)

    async def allow_request(self, name: str) -> bool:
        """Check if a request is allowed, moving OPEN to HALF_OPEN once the timeout passed."""
        record = await self.get_record(name)

        if record.state != CircuitState.OPEN:
            return True

        if not self._timeout_elapsed(record):
            return False

        def to_half_open(rec: CircuitBreakerRecord) -> None:
            if rec.state == CircuitState.OPEN and self._timeout_elapsed(rec):
                rec.state = CircuitState.HALF_OPEN
                rec.success_count = 0

        updated = await self._mutate(name, to_half_open)
        if updated is None:
            return True
        if updated.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit breaker '{name}' transitioned to HALF_OPEN")
            return True
        return updated.state != CircuitState.OPEN

    def _timeout_elapsed(self, record: CircuitBreakerRecord) -> bool:
        if record.last_failure_time is None:
            return True
        return self._clock() - record.last_failure_time >= self.config.timeout

    async def record_success(self, name: str) -> None:
        """Record a successful request."""
        closed = False

        def apply(rec: CircuitBreakerRecord) -> None:
            nonlocal closed
            if rec.state == CircuitState.HALF_OPEN:
                rec.success_count += 1
                if rec.success_count >= self.config.success_threshold:
                    rec.state = CircuitState.CLOSED
                    rec.failure_count = 0
                    rec.success_count = 0
                    closed = True
            elif rec.state == CircuitState.CLOSED:
                # Only consecutive failures count towards opening
                rec.failure_count = 0

        await self._mutate(name, apply)
        if closed:
            logger.info(f"Circuit breaker '{name}' CLOSED (recovered)")

    async def record_failure(self, name: str) -> None:
        """Record a failed request."""
        now = self._clock()
        opened = False

        def apply(rec: CircuitBreakerRecord) -> None:
            nonlocal opened
            rec.failure_count += 1
            rec.success_count = 0
            rec.last_failure_time = now
            if (
                rec.state != CircuitState.OPEN
                and rec.failure_count >= self.config.failure_threshold
            ):
                rec.state = CircuitState.OPEN
                opened = True

        record = await self._mutate(name, apply)
        if record is not None and opened:
            logger.warning(
                f"Circuit breaker '{name}' OPENED after {record.failure_count} failures"
            )

    async def get_time_until_reset(self, name: str) -> float | None:
        """Get seconds until the circuit may move to half-open."""
        record = await self.get_record(name)
        if record.state != CircuitState.OPEN or record.last_failure_time is None:
            return None
        remaining = record.last_failure_time + self.config.timeout - self._clock()
        return max(0.0, remaining)

    async def get_status(self, name: str) -> dict[str, Any]:
        """Get current status as dictionary."""
        record = await self.get_record(name)
        return {
            "name": name,
            "state": record.state.value,
            "failure_count": record.failure_count,
            "success_count": record.success_count,
            "last_failure_time": record.last_failure_time,
            "time_until_reset": await self.get_time_until_reset(name),
            "healthy": record.state != CircuitState.OPEN,
        }

    async def get_all_status(self, names: list[str] | None = None) -> dict[str, dict[str, Any]]:
        """Get status of the given breakers, or every breaker touched by this registry."""
        return {name: await self.get_status(name) for name in sorted(names or self._known)}

    async def get_open_circuits(self, names: list[str] | None = None) -> list[str]:
        """Get list of breakers currently open."""
        statuses = await self.get_all_status(names)
        return [name for name, s in statuses.items() if s["state"] == CircuitState.OPEN.value]

    async def reset(self, name: str) -> bool:
        """Reset a specific circuit breaker."""
        try:
            removed = await self._store.delete(self._key(name))
        except Exception as e:
            logger.warning(f"Circuit breaker store reset failed for '{name}': {e}")
            return False
        logger.info(f"Circuit breaker '{name}' manually reset")
        return removed

    async def reset_all(self) -> int:
        """Reset all circuit breakers."""
        try:
            count = await self._store.delete_prefix(KEY_PREFIX)
        except Exception as e:
            logger.warning(f"Circuit breaker store reset failed: {e}")
            return 0
        logger.info(f"Reset {count} circuit breakers")
        return count
