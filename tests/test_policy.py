import errno
from dataclasses import dataclass
from datetime import timedelta
from urllib.error import URLError

import pytest

from taskcenter.backoff import FixedBackoff
from taskcenter.policy import (
    RetryContext,
    RetryPolicy,
    aggressive_policy,
    conservative_policy,
    default_policy,
    is_connection_error,
    is_network_error,
    is_retryable_error,
    is_timeout_error,
    network_policy,
)


@dataclass
class FakeResponse:
    status_code: int


def s(n):
    return timedelta(seconds=n)


def test_default_policy():
    policy = default_policy()
    assert policy.max_attempts == 3
    assert policy.max_elapsed_time == timedelta(minutes=5)
    assert policy.base_delay == s(1)
    assert policy.max_delay == s(30)
    assert policy.multiplier == 2.0
    assert policy.jitter is True
    assert policy.retryable_codes == [429, 500, 502, 503, 504]
    assert policy.non_retryable_codes == [400, 401, 403, 404, 405, 409, 410, 422]


def test_conservative_policy():
    policy = conservative_policy()
    assert policy.max_attempts == 2
    assert policy.max_elapsed_time == timedelta(minutes=2)
    assert policy.base_delay == s(2)
    assert policy.max_delay == s(10)
    assert policy.jitter is False


def test_aggressive_policy():
    policy = aggressive_policy()
    assert policy.max_attempts == 5
    assert policy.max_elapsed_time == timedelta(minutes=10)
    assert policy.base_delay == timedelta(milliseconds=500)
    assert policy.max_delay == s(60)
    assert policy.multiplier == 1.5


def test_network_policy():
    policy = network_policy()
    assert policy.max_attempts == 4
    assert policy.base_delay == s(2)
    assert policy.max_delay == s(15)
    assert len(policy.retry_conditions) == 1
    condition = policy.retry_conditions[0]
    assert condition(1, ConnectionResetError(), None) is True
    assert condition(1, ValueError("bad"), None) is False


def test_presets_are_independent():
    first = default_policy()
    first.retryable_codes.append(418)
    assert 418 not in default_policy().retryable_codes


def test_policy_builder():
    policy = (
        default_policy()
        .with_max_attempts(5)
        .with_max_elapsed_time(timedelta(minutes=10))
        .with_delay(s(2), s(60), 3.0)
        .with_jitter(False)
        .with_retryable_codes(500, 502, 503)
        .with_non_retryable_codes(400, 401, 403)
    )
    assert policy.max_attempts == 5
    assert policy.max_elapsed_time == timedelta(minutes=10)
    assert policy.base_delay == s(2)
    assert policy.max_delay == s(60)
    assert policy.multiplier == 3.0
    assert policy.jitter is False
    assert policy.retryable_codes == [500, 502, 503]
    assert policy.non_retryable_codes == [400, 401, 403]


def test_with_max_attempts_has_floor_of_one():
    assert default_policy().with_max_attempts(0).max_attempts == 1


@pytest.mark.parametrize(
    "attempt, err, resp, elapsed, expected",
    [
        (1, None, FakeResponse(500), s(0), True),
        (3, None, FakeResponse(500), s(0), False),
        (1, None, FakeResponse(400), s(0), False),
        (1, None, FakeResponse(200), s(0), False),
        (1, Exception("connection refused"), None, s(0), False),
        (1, None, FakeResponse(500), timedelta(minutes=6), False),
        (1, ConnectionRefusedError(), None, s(0), True),
        (1, None, FakeResponse(418), s(0), False),
    ],
)
def test_should_retry(attempt, err, resp, elapsed, expected):
    assert default_policy().should_retry(attempt, err, resp, elapsed) is expected


def test_should_retry_with_custom_retryable_errors():
    policy = default_policy()
    policy.retryable_errors.append(KeyError)
    assert policy.should_retry(1, KeyError("k"), None, s(0)) is True
    wrapped = ValueError("wrapped")
    wrapped.__cause__ = KeyError("k")
    assert policy.should_retry(1, wrapped, None, s(0)) is True
    assert policy.should_retry(1, ValueError("v"), None, s(0)) is False


@pytest.mark.parametrize("attempt, expected", [(0, s(0)), (1, s(1)), (2, s(2)), (3, s(4)), (10, s(30))])
def test_calculate_backoff(attempt, expected):
    policy = default_policy().with_jitter(False)
    assert policy.calculate_backoff(attempt) == expected


def test_calculate_backoff_with_jitter():
    policy = default_policy().with_jitter(True)
    for attempt in range(1, 6):
        delay = policy.calculate_backoff(attempt)
        assert s(0) < delay <= policy.max_delay


def test_calculate_backoff_uses_custom_strategy():
    policy = default_policy().with_jitter(False).with_backoff_strategy(FixedBackoff())
    assert policy.calculate_backoff(5) == s(1)


def test_calculate_backoff_defaults_missing_strategy():
    policy = RetryPolicy(jitter=False, backoff_strategy=None)
    assert policy.calculate_backoff(3) == s(4)


def test_retry_context():
    policy = default_policy()
    ctx = RetryContext(policy)
    assert ctx.attempt == 0
    assert ctx.policy is policy

    err = Exception("test error")
    resp = FakeResponse(500)

    assert ctx.next_attempt(err, resp) == s(0)
    assert ctx.attempt == 1
    assert ctx.last_error is err
    assert ctx.last_response is resp

    backoff = ctx.next_attempt(err, resp)
    assert ctx.attempt == 2
    assert backoff > s(0)


def test_retry_context_should_retry_uses_attempt_count():
    ctx = RetryContext(default_policy())
    assert ctx.should_retry(None, FakeResponse(503)) is True
    ctx.attempt = 3
    assert ctx.should_retry(None, FakeResponse(503)) is False


def test_retry_context_callbacks():
    calls = []
    policy = (
        default_policy()
        .with_jitter(False)
        .with_before_retry(lambda a, e, b: calls.append(("before", a, e, b)))
        .with_after_retry(lambda a, e, r, el: calls.append(("after", a, e, r)))
    )
    ctx = RetryContext(policy)
    err = Exception("boom")
    resp = FakeResponse(500)

    ctx.finish(err, resp)
    assert calls == []

    ctx.next_attempt(err, resp)
    ctx.next_attempt(err, resp)
    ctx.finish(None, resp)
    assert calls == [("before", 1, err, s(1)), ("after", 1, None, resp)]


@pytest.mark.parametrize(
    "err, expected",
    [
        (None, False),
        (TimeoutError(), True),
        (Exception("generic error"), False),
        (ConnectionResetError(), True),
        (URLError(ConnectionRefusedError()), True),
    ],
)
def test_is_retryable_error(err, expected):
    assert is_retryable_error(err) is expected


def test_custom_retry_condition():
    policy = default_policy()
    policy.with_retry_condition(
        lambda attempt, err, resp: attempt < 2 and resp is not None and resp.status_code == 418
    )
    resp = FakeResponse(418)
    assert policy.should_retry(1, None, resp, s(0)) is True
    assert policy.should_retry(2, None, resp, s(0)) is False


def test_callbacks():
    before = {}
    after = {}
    policy = default_policy()
    policy.with_before_retry(lambda a, e, b: before.update(attempt=a, err=e, backoff=b))
    policy.with_after_retry(lambda a, e, r, el: after.update(attempt=a, err=e, resp=r, elapsed=el))

    err = Exception("test error")
    resp = FakeResponse(500)

    policy.execute_before_retry(1, err, s(1))
    assert before == {"attempt": 1, "err": err, "backoff": s(1)}

    policy.execute_after_retry(2, err, resp, s(2))
    assert after == {"attempt": 2, "err": err, "resp": resp, "elapsed": s(2)}


def test_callbacks_absent_do_nothing():
    policy = default_policy()
    policy.execute_before_retry(1, None, s(1))
    policy.execute_after_retry(1, None, None, s(1))
    assert policy.before_retry is None and policy.after_retry is None


def test_is_timeout_error():
    assert is_timeout_error(TimeoutError()) is True
    wrapped = ValueError("wrapped")
    wrapped.__cause__ = TimeoutError()
    assert is_timeout_error(wrapped) is True
    assert is_timeout_error(URLError(TimeoutError())) is True
    assert is_timeout_error(ConnectionResetError()) is False
    assert is_timeout_error(None) is False


def test_is_connection_error():
    assert is_connection_error(ConnectionRefusedError()) is True
    assert is_connection_error(OSError(errno.ECONNRESET, "reset")) is True
    assert is_connection_error(URLError(ConnectionAbortedError())) is True
    assert is_connection_error(URLError("no route")) is False
    assert is_connection_error(ValueError("x")) is False
    assert is_connection_error(None) is False


def test_is_network_error():
    assert is_network_error(ConnectionResetError()) is True
    assert is_network_error(URLError("unreachable")) is True
    assert is_network_error(TimeoutError()) is True
    assert is_network_error(ValueError("x")) is False
    assert is_network_error(None) is False