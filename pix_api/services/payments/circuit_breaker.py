"""
Circuit breaker for Mercado Pago calls.

1. CLOSED: Normal operation, requests pass through
2. OPEN: After consecutive failures exceed the threshold, requests fail fast
3. HALF-OPEN: After the recovery interval, a limited number of trial calls
   decide whether to close again

Usage:
    breaker = CircuitBreaker(CircuitBreakerConfig(name="mercadopago"))

    async with breaker.call():
        response = await client.get(...)
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, AsyncGenerator

from shared.config.logging import get_logger

if TYPE_CHECKING:
    from shared.config.settings import Settings

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    name: str
    failure_threshold: int = 5       # Consecutive failures before opening
    success_threshold: int = 2       # Successes in half-open before closing
    timeout_seconds: float = 30.0    # Time open before probing
    half_open_max_calls: int = 2     # Concurrent trial calls allowed in half-open


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


class CircuitBreakerError(Exception):
    """Raised when the circuit is open and the call is rejected."""

    def __init__(self, breaker_name: str, retry_after: float):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{breaker_name}' is open. Retry after {retry_after:.1f}s")


class CircuitBreaker:
    """Async circuit breaker; state changes are serialized by an asyncio lock."""

    def __init__(self, config: CircuitBreakerConfig, clock=time.monotonic):
        self.config = config
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()
        self._stats = CircuitBreakerStats()

    @classmethod
    def for_gateway(cls, settings: "Settings") -> "CircuitBreaker":
        return cls(
            CircuitBreakerConfig(
                name="mercadopago",
                failure_threshold=settings.gateway_failure_threshold,
                timeout_seconds=settings.gateway_recovery_seconds,
            )
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_calls = 0
        else:
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None

        logger.info(
            f"Circuit breaker '{self.config.name}' state change",
            old_state=old_state.value,
            new_state=new_state.value,
        )

    async def _acquire(self) -> None:
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._opened_at or 0.0)
                if elapsed < self.config.timeout_seconds:
                    self._stats.rejected_calls += 1
                    raise CircuitBreakerError(self.config.name, self.config.timeout_seconds - elapsed)
                self._transition_to(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    self._stats.rejected_calls += 1
                    raise CircuitBreakerError(self.config.name, 1.0)
                self._half_open_calls += 1

    async def record_success(self) -> None:
        async with self._lock:
            self._stats.total_calls += 1
            self._stats.successful_calls += 1
            self._stats.last_success_time = time.time()

            if self._state == CircuitState.HALF_OPEN:
                self._half_open_calls = max(0, self._half_open_calls - 1)
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            else:
                self._failure_count = 0

    async def record_failure(self, error: Exception | None = None) -> None:
        async with self._lock:
            self._stats.total_calls += 1
            self._stats.failed_calls += 1
            self._stats.last_failure_time = time.time()
            self._failure_count += 1

            logger.warning(
                f"Circuit breaker '{self.config.name}' recorded failure",
                error=str(error) if error else None,
                failure_count=self._failure_count,
                threshold=self.config.failure_threshold,
            )

            if self._state == CircuitState.HALF_OPEN:
                # Any failure while probing reopens the circuit
                self._half_open_calls = max(0, self._half_open_calls - 1)
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def _release_half_open_slot(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_calls = max(0, self._half_open_calls - 1)

    @asynccontextmanager
    async def call(self) -> AsyncGenerator[None, None]:
        """
        Guard one outbound call. Any exception raised inside the block counts
        as a failure and is re-raised. A cancelled call counts as neither
        success nor failure, but gives back its half-open slot.

        Raises:
            CircuitBreakerError: If the circuit is open
        """
        await self._acquire()
        try:
            yield
        except Exception as e:
            await self.record_failure(e)
            raise
        except BaseException:
            self._release_half_open_slot()
            raise
        await self.record_success()

    async def reset(self) -> None:
        async with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._half_open_calls = 0
            logger.info(f"Circuit breaker '{self.config.name}' manually reset")

    def snapshot(self) -> dict:
        """State and counters, for health endpoints."""
        data = asdict(self._stats)
        data["state"] = self._state.value
        return data
