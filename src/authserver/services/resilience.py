"""Retry and circuit breaking for calls to email and SMS providers."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from functools import wraps
from typing import ParamSpec, TypeVar

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Only network-level failures are retried; an HTTP error status is an answer.
RETRYABLE_EXCEPTIONS = (asyncio.TimeoutError, ConnectionError, httpx.TransportError)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """The provider is being skipped after repeated failures."""


class CircuitBreaker:
    """Per-provider failure counter that short-circuits calls.

    After ``failure_threshold`` consecutive failures the circuit opens and
    calls fail fast with ``CircuitOpenError``. Once ``recovery_timeout``
    seconds pass, trial calls are let through; ``half_open_max_calls``
    successes close it again and any failure reopens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self.reset()

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.half_open_calls = 0
        self.last_failure_time = 0.0

    def _admit(self) -> None:
        if self.state != CircuitState.OPEN:
            return
        if time.monotonic() - self.last_failure_time < self.recovery_timeout:
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is open")
        logger.info(f"Circuit '{self.name}' half-open, allowing trial calls")
        self.state = CircuitState.HALF_OPEN
        self.half_open_calls = 0

    def _succeeded(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.half_open_calls += 1
            if self.half_open_calls < self.half_open_max_calls:
                return
            logger.info(f"Circuit '{self.name}' closed")
            self.state = CircuitState.CLOSED
        self.failure_count = 0

    def _failed(self, error: Exception) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(f"Circuit '{self.name}' opened after {self.failure_count} failures: {error}")
            self.state = CircuitState.OPEN

    async def call(self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._failed(e)
            raise
        self._succeeded()
        return result


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    """Get or create the shared breaker for a provider."""
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name)
    return _circuit_breakers[name]


email_circuit = get_circuit_breaker("email")
sms_circuit = get_circuit_breaker("sms")


async def with_retry(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
    **kwargs: P.kwargs,
) -> T:  # type: ignore[return-value]
    """Await ``func`` with exponential backoff on ``RETRYABLE_EXCEPTIONS``.

    Other exceptions, and the final retryable one, propagate unchanged.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)


def with_resilience(
    circuit_breaker: CircuitBreaker | None = None,
    max_retries: int = 3,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry a provider call and count the overall result against a breaker.

    A call that succeeds after retries counts as one success; one that
    exhausts its retries counts as one failure.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async def attempt() -> T:
                return await with_retry(func, *args, max_attempts=max_retries, **kwargs)  # type: ignore[arg-type]

            if circuit_breaker is None:
                return await attempt()
            return await circuit_breaker.call(attempt)

        return wrapper

    return decorator
