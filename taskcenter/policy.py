"""Retry policies: when to retry a request and how long to wait."""

from __future__ import annotations

import asyncio
import concurrent.futures
import errno
import socket
import time
from dataclasses import dataclass, field
from datetime import timedelta
from http import HTTPStatus
from typing import Any, Callable, Iterator, Optional
from urllib.error import HTTPError, URLError

from .backoff import BackoffConfig, BackoffStrategy, ExponentialBackoff

_ZERO = timedelta(0)

RetryCondition = Callable[[int, Optional[BaseException], Any], bool]
BeforeRetry = Callable[[int, Optional[BaseException], timedelta], None]
AfterRetry = Callable[[int, Optional[BaseException], Any, timedelta], None]

_DEFAULT_RETRYABLE_CODES = (
    HTTPStatus.TOO_MANY_REQUESTS,
    HTTPStatus.INTERNAL_SERVER_ERROR,
    HTTPStatus.BAD_GATEWAY,
    HTTPStatus.SERVICE_UNAVAILABLE,
    HTTPStatus.GATEWAY_TIMEOUT,
)

_DEFAULT_NON_RETRYABLE_CODES = (
    HTTPStatus.BAD_REQUEST,
    HTTPStatus.UNAUTHORIZED,
    HTTPStatus.FORBIDDEN,
    HTTPStatus.NOT_FOUND,
    HTTPStatus.METHOD_NOT_ALLOWED,
    HTTPStatus.CONFLICT,
    HTTPStatus.GONE,
    HTTPStatus.UNPROCESSABLE_ENTITY,
)


@dataclass
class RetryPolicy:
    """Decides whether a failed request is retried and computes the backoff.

    Responses are any objects with a ``status_code`` attribute.
    """

    max_attempts: int = 3
    max_elapsed_time: timedelta = timedelta(minutes=5)
    base_delay: timedelta = timedelta(seconds=1)
    max_delay: timedelta = timedelta(seconds=30)
    multiplier: float = 2.0
    jitter: bool = True
    retry_conditions: list[RetryCondition] = field(default_factory=list)
    retryable_errors: list[type[BaseException]] = field(default_factory=list)
    retryable_codes: list[int] = field(
        default_factory=lambda: [int(code) for code in _DEFAULT_RETRYABLE_CODES]
    )
    non_retryable_codes: list[int] = field(
        default_factory=lambda: [int(code) for code in _DEFAULT_NON_RETRYABLE_CODES]
    )
    before_retry: Optional[BeforeRetry] = None
    after_retry: Optional[AfterRetry] = None
    backoff_strategy: Optional[BackoffStrategy] = field(default_factory=ExponentialBackoff)

    def with_max_attempts(self, attempts: int) -> RetryPolicy:
        self.max_attempts = max(attempts, 1)
        return self

    def with_max_elapsed_time(self, duration: timedelta) -> RetryPolicy:
        self.max_elapsed_time = duration
        return self

    def with_delay(self, base: timedelta, max_delay: timedelta, multiplier: float) -> RetryPolicy:
        self.base_delay = base
        self.max_delay = max_delay
        self.multiplier = multiplier
        return self

    def with_jitter(self, enabled: bool) -> RetryPolicy:
        self.jitter = enabled
        return self

    def with_retryable_codes(self, *args: int) -> RetryPolicy:
        self.retryable_codes = list(args)
        return self

    def with_non_retryable_codes(self, *args: int) -> RetryPolicy:
        self.non_retryable_codes = list(args)
        return self

    def with_retry_condition(self, condition: RetryCondition) -> RetryPolicy:
        self.retry_conditions.append(condition)
        return self

    def with_before_retry(self, callback: BeforeRetry) -> RetryPolicy:
        self.before_retry = callback
        return self

    def with_after_retry(self, callback: AfterRetry) -> RetryPolicy:
        self.after_retry = callback
        return self

    def with_backoff_strategy(self, strategy: BackoffStrategy) -> RetryPolicy:
        self.backoff_strategy = strategy
        return self

    def should_retry(
        self, attempt: int, err: Optional[BaseException], resp: Any, elapsed: timedelta
    ) -> bool:
        """Return whether another attempt should be made."""
        if attempt >= self.max_attempts:
            return False
        if self.max_elapsed_time > _ZERO and elapsed >= self.max_elapsed_time:
            return False

        if resp is not None:
            status = resp.status_code
            if status in self.non_retryable_codes:
                return False
            if status in self.retryable_codes:
                return True
            if 200 <= status < 300:
                return False

        if err is not None:
            if self.retryable_errors:
                kinds = tuple(self.retryable_errors)
                if any(isinstance(exc, kinds) for exc in _causes(err)):
                    return True
            if is_retryable_error(err):
                return True

        return any(condition(attempt, err, resp) for condition in self.retry_conditions)

    def calculate_backoff(self, attempt: int) -> timedelta:
        """Return the wait before ``attempt`` using the configured strategy."""
        if self.backoff_strategy is None:
            self.backoff_strategy = ExponentialBackoff()
        config = BackoffConfig(
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            multiplier=self.multiplier,
            jitter=self.jitter,
        )
        return self.backoff_strategy.calculate(attempt, config)

    def execute_before_retry(
        self, attempt: int, err: Optional[BaseException], backoff: timedelta
    ) -> None:
        if self.before_retry is not None:
            self.before_retry(attempt, err, backoff)

    def execute_after_retry(
        self, attempt: int, err: Optional[BaseException], resp: Any, elapsed: timedelta
    ) -> None:
        if self.after_retry is not None:
            self.after_retry(attempt, err, resp, elapsed)


def default_policy() -> RetryPolicy:
    """Three attempts, exponential backoff from 1s to 30s with jitter."""
    return RetryPolicy()


def conservative_policy() -> RetryPolicy:
    """Few, slower retries for important operations."""
    policy = default_policy()
    policy.max_attempts = 2
    policy.max_elapsed_time = timedelta(minutes=2)
    policy.base_delay = timedelta(seconds=2)
    policy.max_delay = timedelta(seconds=10)
    policy.jitter = False
    return policy


def aggressive_policy() -> RetryPolicy:
    """Many quick retries for non-critical operations."""
    policy = default_policy()
    policy.max_attempts = 5
    policy.max_elapsed_time = timedelta(minutes=10)
    policy.base_delay = timedelta(milliseconds=500)
    policy.max_delay = timedelta(seconds=60)
    policy.multiplier = 1.5
    return policy


def network_policy() -> RetryPolicy:
    """Retries tuned for unreliable networks."""
    policy = default_policy()
    policy.max_attempts = 4
    policy.base_delay = timedelta(seconds=2)
    policy.max_delay = timedelta(seconds=15)
    policy.retry_conditions.append(lambda attempt, err, resp: is_network_error(err))
    return policy


_TIMEOUT_ERRORS: tuple[type[BaseException], ...] = (
    TimeoutError,
    socket.timeout,
    asyncio.TimeoutError,
    concurrent.futures.TimeoutError,
)

_NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    socket.gaierror,
    socket.herror,
) + _TIMEOUT_ERRORS

_CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionRefusedError,
    ConnectionResetError,
    ConnectionAbortedError,
)

_CONNECTION_ERRNOS = frozenset({errno.ECONNREFUSED, errno.ECONNRESET, errno.ECONNABORTED})


def _causes(err: BaseException) -> Iterator[BaseException]:
    """Yield ``err`` and the exceptions it was explicitly raised from."""
    seen: set[int] = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


def _url_reason(exc: BaseException) -> Optional[BaseException]:
    if isinstance(exc, URLError) and isinstance(exc.reason, BaseException):
        return exc.reason
    return None


def is_retryable_error(err: Optional[BaseException]) -> bool:
    """Network, timeout and connection errors are worth retrying."""
    if err is None:
        return False
    return is_network_error(err) or is_timeout_error(err) or is_connection_error(err)


def is_network_error(err: Optional[BaseException]) -> bool:
    """Return whether ``err`` is a transport-level failure."""
    if err is None:
        return False
    for exc in _causes(err):
        if isinstance(exc, _NETWORK_ERRORS):
            return True
        if isinstance(exc, URLError) and not isinstance(exc, HTTPError):
            return True
    return False


def is_timeout_error(err: Optional[BaseException]) -> bool:
    """Return whether ``err`` reports a timeout."""
    if err is None:
        return False
    for exc in _causes(err):
        if isinstance(exc, _TIMEOUT_ERRORS):
            return True
        reason = _url_reason(exc)
        if reason is not None and is_timeout_error(reason):
            return True
    return False


def is_connection_error(err: Optional[BaseException]) -> bool:
    """Return whether ``err`` is a refused, reset or aborted connection."""
    if err is None:
        return False
    for exc in _causes(err):
        if isinstance(exc, _CONNECTION_ERRORS):
            return True
        if isinstance(exc, OSError) and exc.errno in _CONNECTION_ERRNOS:
            return True
        reason = _url_reason(exc)
        if reason is not None and is_connection_error(reason):
            return True
    return False


@dataclass
class RetryContext:
    """Tracks the state of one retried operation under a policy."""

    policy: RetryPolicy
    start_time: float = field(default_factory=time.monotonic)
    attempt: int = 0
    last_error: Optional[BaseException] = None
    last_response: Any = None

    @property
    def elapsed(self) -> timedelta:
        return timedelta(seconds=time.monotonic() - self.start_time)

    def should_retry(self, err: Optional[BaseException], resp: Any) -> bool:
        return self.policy.should_retry(self.attempt, err, resp, self.elapsed)

    def next_attempt(self, err: Optional[BaseException], resp: Any) -> timedelta:
        """Record the outcome and return the wait before the next attempt."""
        self.last_error = err
        self.last_response = resp
        self.attempt += 1
        if self.attempt > 1:
            backoff = self.policy.calculate_backoff(self.attempt - 1)
            self.policy.execute_before_retry(self.attempt - 1, err, backoff)
            return backoff
        return _ZERO

    def finish(self, err: Optional[BaseException], resp: Any) -> None:
        """Run the after-retry callback once any retry has happened."""
        if self.attempt > 1:
            self.policy.execute_after_retry(self.attempt - 1, err, resp, self.elapsed)