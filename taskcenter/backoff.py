"""Backoff strategies that compute how long to wait before a retry attempt."""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

_ZERO = timedelta(0)


@dataclass
class BackoffConfig:
    """Parameters shared by the backoff strategies."""

    base_delay: timedelta = _ZERO
    max_delay: timedelta = _ZERO
    multiplier: float = 0.0
    jitter: bool = False


class BackoffStrategy(ABC):
    """Computes the delay before a given attempt."""

    @abstractmethod
    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        """Return the delay before ``attempt`` (attempts count from 1)."""


def _cap(delay: timedelta, max_delay: timedelta) -> timedelta:
    if max_delay > _ZERO and delay > max_delay:
        return max_delay
    return delay


def _grow(base: timedelta, multiplier: float, exponent: int) -> timedelta:
    """Return ``base * multiplier ** exponent``, saturating on overflow."""
    try:
        return base * (multiplier**exponent)
    except OverflowError:
        return timedelta.max


def _grown_base(attempt: int, config: BackoffConfig) -> timedelta:
    base = config.base_delay
    if attempt > 1:
        base = _grow(base, config.multiplier, attempt - 1)
    return _cap(base, config.max_delay)


class ExponentialBackoff(BackoffStrategy):
    """Delay grows as ``base * multiplier ** (attempt - 1)``."""

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if attempt <= 0:
            return _ZERO
        delay = _cap(_grow(config.base_delay, config.multiplier, attempt - 1), config.max_delay)
        return add_jitter(delay) if config.jitter else delay


class LinearBackoff(BackoffStrategy):
    """Delay grows as ``base * attempt``."""

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if attempt <= 0:
            return _ZERO
        try:
            delay = config.base_delay * attempt
        except OverflowError:
            delay = timedelta.max
        delay = _cap(delay, config.max_delay)
        return add_jitter(delay) if config.jitter else delay


class FixedBackoff(BackoffStrategy):
    """The same delay before every attempt."""

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if attempt <= 0:
            return _ZERO
        delay = config.base_delay
        return add_jitter(delay) if config.jitter else delay


@dataclass
class DecorrelatedJitterBackoff(BackoffStrategy):
    """Random delay between the base and three times the previous delay."""

    last_delay: timedelta = _ZERO

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if attempt <= 0:
            return _ZERO
        if attempt == 1:
            self.last_delay = config.base_delay
            return self.last_delay

        min_delay = config.base_delay
        try:
            max_next = self.last_delay * 3
        except OverflowError:
            max_next = timedelta.max
        max_next = _cap(max_next, config.max_delay)
        if max_next < min_delay:
            max_next = min_delay

        span_us = (max_next - min_delay) // timedelta(microseconds=1)
        if span_us <= 0:
            delay = min_delay
        else:
            delay = min_delay + timedelta(microseconds=random.randrange(span_us))
        self.last_delay = delay
        return delay


class EqualJitterBackoff(BackoffStrategy):
    """Half of the exponential delay plus a random share of the other half."""

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if attempt <= 0:
            return _ZERO
        half = _grown_base(attempt, config) / 2
        return half + half * random.random()


class FullJitterBackoff(BackoffStrategy):
    """A random delay between zero and the exponential delay."""

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if attempt <= 0:
            return _ZERO
        return _grown_base(attempt, config) * random.random()


@dataclass
class CustomBackoff(BackoffStrategy):
    """Delegates the computation to a user-supplied function."""

    calculator: Optional[Callable[[int, BackoffConfig], timedelta]] = None

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if self.calculator is None:
            return _ZERO
        return self.calculator(attempt, config)


class BackoffSequence(tuple, BackoffStrategy):
    """A fixed sequence of delays; attempts past its end reuse the last one."""

    __slots__ = ()

    def calculate(self, attempt: int, config: BackoffConfig) -> timedelta:
        if attempt <= 0 or not self:
            return _ZERO
        delay = self[min(attempt - 1, len(self) - 1)]
        delay = _cap(delay, config.max_delay)
        return add_jitter(delay) if config.jitter else delay


def add_jitter(duration: timedelta) -> timedelta:
    """Spread ``duration`` randomly by up to 25% either way."""
    if duration <= _ZERO:
        return duration
    result = duration * (1 + (random.random() - 0.5) * 2 * 0.25)
    if result < _ZERO:
        result = duration / 4
    return result


def add_jitter_percent(duration: timedelta, percent: float) -> timedelta:
    """Spread ``duration`` randomly by up to ``percent`` (at most 1.0) either way."""
    if duration <= _ZERO or percent <= 0:
        return duration
    percent = min(percent, 1.0)
    result = duration * (1 + (random.random() - 0.5) * 2 * percent)
    if result < _ZERO:
        result = duration * (1 - percent)
    return result


def _ms(value: int) -> timedelta:
    return timedelta(milliseconds=value)


def _s(value: int) -> timedelta:
    return timedelta(seconds=value)


@dataclass(frozen=True)
class PredefinedSequences:
    """Commonly used backoff sequences."""

    fast: BackoffSequence
    standard: BackoffSequence
    conservative: BackoffSequence
    network: BackoffSequence


PREDEFINED_SEQUENCES = PredefinedSequences(
    fast=BackoffSequence([_ms(100), _ms(200), _ms(500), _s(1), _s(2)]),
    standard=BackoffSequence([_s(1), _s(2), _s(4), _s(8), _s(16), _s(30)]),
    conservative=BackoffSequence([_s(2), _s(5), _s(10), _s(20), _s(30)]),
    network=BackoffSequence([_ms(500), _s(1), _s(3), _s(7), _s(15), _s(30), _s(60)]),
)

_STRATEGIES: dict[str, Callable[[], BackoffStrategy]] = {
    "exponential": ExponentialBackoff,
    "linear": LinearBackoff,
    "fixed": FixedBackoff,
    "decorrelated": DecorrelatedJitterBackoff,
    "equal_jitter": EqualJitterBackoff,
    "full_jitter": FullJitterBackoff,
}


def new_backoff_strategy(name: str) -> BackoffStrategy:
    """Create a strategy by name; unknown names give exponential backoff."""
    return _STRATEGIES.get(name, ExponentialBackoff)()


def calculate_with_cap(
    strategy: BackoffStrategy, attempt: int, config: BackoffConfig, cap: timedelta
) -> timedelta:
    """Compute the delay and limit it to ``cap`` when ``cap`` is positive."""
    return _cap(strategy.calculate(attempt, config), cap)


def calculate_total(strategy: BackoffStrategy, max_attempts: int, config: BackoffConfig) -> timedelta:
    """Sum the delays before every attempt after the first."""
    return sum((strategy.calculate(i, config) for i in range(1, max_attempts)), _ZERO)