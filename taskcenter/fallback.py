"""Fallback strategies, a circuit breaker and a registry to run them by name."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from enum import IntEnum
from typing import Any, Callable, Optional

Primary = Callable[[], Any]
FallbackFunc = Callable[[Exception], Any]
HTTPFallbackFunc = Callable[[Exception, int], Any]

_LAST_SUCCESS = "last_success"


class FallbackFailedError(Exception):
    """Raised when every strategy of a chain has failed."""

    def __init__(self, detail: str = "") -> None:
        message = "all fallback strategies failed"
        super().__init__(f"{message}: {detail}" if detail else message)


class CircuitOpenError(Exception):
    """Raised when a call is refused because the circuit breaker is open."""

    def __init__(self) -> None:
        super().__init__("circuit breaker is open")


class Strategy(ABC):
    """A way of running a primary operation with some protection around it."""

    name: str

    @abstractmethod
    def execute(self, primary: Primary) -> Any:
        """Run ``primary`` under this strategy and return its result."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return whether the strategy can currently be used."""


class _FailedCall:
    """A primary operation that replays an earlier failure, counting replays."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    def __call__(self) -> Any:
        self.calls += 1
        raise self.error


@dataclass
class SimpleFallback(Strategy):
    """Calls ``fallback`` with the error when the primary operation fails."""

    name: str
    fallback: Optional[FallbackFunc] = None

    def execute(self, primary: Primary) -> Any:
        try:
            return primary()
        except Exception as exc:
            if self.fallback is None:
                raise
            return self.fallback(exc)

    def is_available(self) -> bool:
        return self.fallback is not None


@dataclass
class CacheEntry:
    """A cached value and the monotonic time it was stored at."""

    value: Any
    timestamp: float


class CacheFallback(Strategy):
    """Serves the last successful result while it is younger than ``ttl``."""

    def __init__(
        self, name: str, ttl: timedelta, fallback: Optional[FallbackFunc] = None
    ) -> None:
        self.name = name
        self.ttl = ttl
        self.fallback = fallback
        self._cache: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def execute(self, primary: Primary) -> Any:
        try:
            result = primary()
        except Exception as exc:
            entry = self._fresh_entry(_LAST_SUCCESS)
            if entry is not None:
                return entry.value
            if self.fallback is not None:
                return self.fallback(exc)
            raise
        with self._lock:
            self._cache[_LAST_SUCCESS] = CacheEntry(result, time.monotonic())
        return result

    def is_available(self) -> bool:
        return True

    def _fresh_entry(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._cache.get(key)
        if entry is None:
            return None
        ttl = self.ttl.total_seconds()
        if ttl > 0 and time.monotonic() - entry.timestamp > ttl:
            return None
        return entry


class CircuitState(IntEnum):
    CLOSED = 0
    OPEN = 1
    HALF_OPEN = 2


class CircuitBreaker(Strategy):
    """Stops calling the primary operation after repeated failures.

    After ``max_failures`` consecutive failures the circuit opens; once
    ``reset_timeout`` has passed one trial call is let through (half-open),
    and its outcome closes or reopens the circuit.
    """

    def __init__(self, name: str, max_failures: int, reset_timeout: timedelta) -> None:
        self.name = name
        self.max_failures = max_failures
        self.reset_timeout = reset_timeout
        self._failures = 0
        self._last_failure = 0.0
        self._state = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def execute(self, primary: Primary) -> Any:
        if not self._can_execute():
            raise CircuitOpenError()
        try:
            result = primary()
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def is_available(self) -> bool:
        return self._can_execute()

    def _can_execute(self) -> bool:
        with self._lock:
            if self._state is CircuitState.OPEN:
                waited = time.monotonic() - self._last_failure
                if waited > self.reset_timeout.total_seconds():
                    self._state = CircuitState.HALF_OPEN
                    return True
                return False
            return True

    def _record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure = time.monotonic()
            if self._state is CircuitState.CLOSED and self._failures >= self.max_failures:
                self._state = CircuitState.OPEN
            elif self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN

    def _record_success(self) -> None:
        with self._lock:
            self._failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED


class ChainFallback(Strategy):
    """Tries each available strategy in turn after the primary fails."""

    def __init__(self, name: str, *strategies: Strategy) -> None:
        self.name = name
        self.strategies = list(strategies)

    def execute(self, primary: Primary) -> Any:
        try:
            return primary()
        except Exception as exc:
            err: Exception = exc
        for strategy in self.strategies:
            if not strategy.is_available():
                continue
            try:
                return strategy.execute(_FailedCall(err))
            except Exception as fallback_err:
                wrapped = RuntimeError(f"fallback strategy {strategy.name} failed: {fallback_err}")
                wrapped.__cause__ = fallback_err
                err = wrapped
        raise FallbackFailedError(str(err)) from err

    def is_available(self) -> bool:
        return any(strategy.is_available() for strategy in self.strategies)


class FallbackManager:
    """Registry of strategies, looked up by name."""

    def __init__(self) -> None:
        self._strategies: dict[str, Strategy] = {}
        self._lock = threading.Lock()

    def register(self, strategy: Strategy) -> None:
        with self._lock:
            self._strategies[strategy.name] = strategy

    def execute(self, name: str, primary: Primary) -> Any:
        """Run ``primary`` under the named strategy, or bare if none is registered."""
        strategy = self.get_strategy(name)
        if strategy is None:
            return primary()
        return strategy.execute(primary)

    def get_strategy(self, name: str) -> Optional[Strategy]:
        with self._lock:
            return self._strategies.get(name)

    def list_strategies(self) -> list[str]:
        with self._lock:
            return list(self._strategies)


def empty_response() -> FallbackFunc:
    """A fallback that answers with an empty data list."""

    def fallback(err: Exception) -> dict[str, Any]:
        return {
            "data": [],
            "message": "Service temporarily unavailable, returning empty data",
            "error": str(err),
        }

    return fallback


def cached_response(cache: dict[str, Any]) -> FallbackFunc:
    """A fallback that answers with the given cached data."""

    def fallback(err: Exception) -> dict[str, Any]:
        return {
            "data": cache,
            "message": "Service temporarily unavailable, returning cached data",
            "error": str(err),
        }

    return fallback


def error_response(default_message: str) -> FallbackFunc:
    """A fallback that re-raises the error prefixed with ``default_message``."""

    def fallback(err: Exception) -> Any:
        raise RuntimeError(f"{default_message}: {err}") from err

    return fallback


@dataclass
class HTTPFallback(Strategy):
    """Calls ``fallback_func`` with the error and its HTTP status (default 500)."""

    name: str
    fallback_func: Optional[HTTPFallbackFunc] = field(default=None)

    def execute(self, primary: Primary) -> Any:
        try:
            return primary()
        except Exception as exc:
            if self.fallback_func is None:
                raise
            status = getattr(exc, "status_code", None)
            if not isinstance(status, int):
                status = 500
            return self.fallback_func(exc, status)

    def is_available(self) -> bool:
        return self.fallback_func is not None