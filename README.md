# taskcenter

Building blocks for resilient clients of a task-center HTTP API:

- `taskcenter.backoff`: backoff strategies (exponential, linear, fixed,
  decorrelated jitter, equal jitter, full jitter, custom and fixed sequences)
  plus jitter helpers. Delays are `datetime.timedelta` values.
- `taskcenter.policy`: a configurable `RetryPolicy` that decides whether a
  failed call should be retried, works out how long to wait, and runs hooks
  before and after retries. `RetryContext` follows a single call across its
  attempts.
- `taskcenter.fallback`: fallback strategies (simple, cache, chain, HTTP),
  a `CircuitBreaker` and a `FallbackManager` that picks a strategy by name.
- `taskcenter.errors`: `SDKError` with an `ErrorCode`, constructors for each
  kind of failure, `parse_http_error` to turn an HTTP status and body into an
  error, and predicates such as `is_retryable_error`.

The package has no runtime dependencies.

## Installation

```
pip install taskcenter
```

To run the test suite:

```
pip install "taskcenter[test]"
pytest
```

## Retry policies

Ready-made policies are `default_policy()`, `conservative_policy()`,
`aggressive_policy()` and `network_policy()`. Each can be adjusted with the
chaining `with_*` methods:

```python
from taskcenter.policy import default_policy

policy = (
    default_policy()
    .with_max_attempts(5)
    .with_jitter(False)
    .with_retryable_codes(500, 502, 503)
    .with_non_retryable_codes(400, 401, 403)
)
```

The default policy allows three attempts in total, waits with exponential
backoff from 1 s up to 30 s (multiplier 2, with jitter), retries on 429, 500,
502, 503 and 504, never retries on 400, 401, 403, 404, 405, 409, 410 and 422,
and stops once five minutes have passed.

`policy.should_retry(attempt, err, resp, elapsed)` answers whether another
attempt should be made; `resp` is any object with a `status_code` attribute,
or `None`. Exceptions that count as network, timeout or connection failures
(see `is_retryable_error`, `is_network_error`, `is_timeout_error` and
`is_connection_error`) are retried, as are those of the types listed in
`retryable_errors`. `policy.calculate_backoff(attempt)` gives the wait before
an attempt using the policy's `backoff_strategy`. Extra rules can be added
with `with_retry_condition`; hooks are set with `with_before_retry` and
`with_after_retry`.

`RetryContext(policy)` counts attempts and elapsed time: `next_attempt(err,
resp)` records an outcome and returns the wait before the next attempt
(zero for the first), and `finish(err, resp)` runs the after-retry hook once
a retry has taken place.

## Backoff strategies

`new_backoff_strategy(name)` returns a strategy for `"exponential"`,
`"linear"`, `"fixed"`, `"decorrelated"`, `"equal_jitter"` or
`"full_jitter"`; any other name gives exponential backoff. Every strategy has
`calculate(attempt, config)`, where `config` is a `BackoffConfig`. Attempt
numbers start at 1; attempt 0 or lower always yields no delay.

`CustomBackoff(calculator)` delegates to a function, and `BackoffSequence`
walks a fixed list of delays, repeating the last one. `PREDEFINED_SEQUENCES`
holds the `fast`, `standard`, `conservative` and `network` sequences.

`calculate_with_cap` clamps a strategy's result to an upper bound, and
`calculate_total` sums the delays a given number of attempts would incur.
`add_jitter` spreads a delay by up to ±25 %, `add_jitter_percent` by a chosen
fraction (at most 100 %).

## Fallbacks and circuit breaking

Strategies wrap a primary callable that takes no arguments, and step in when
it raises. Fallback functions receive the exception:

- `SimpleFallback` calls its fallback function on failure.
- `CacheFallback` remembers the last successful result and serves it while it
  is younger than its TTL, then calls its fallback function, or re-raises if
  it has none.
- `ChainFallback` tries several available strategies in turn and raises
  `FallbackFailedError` when none succeeds.
- `HTTPFallback` passes the exception and its `status_code` attribute (500
  when there is none) to its fallback function.
- `CircuitBreaker` opens after a number of consecutive failures, raising
  `CircuitOpenError` until its reset timeout has passed, then lets one trial
  call through; its `state` is a `CircuitState`.

`FallbackManager` keeps strategies by name; `execute(name, primary)` runs the
named strategy, or just the primary callable if no strategy has that name.
`empty_response()`, `cached_response(cache)` and
`error_response(default_message)` build ready-made fallback functions.

## Errors

```python
from taskcenter.errors import ErrorCode, is_retryable_error, parse_http_error

err = parse_http_error(503, b"")
assert err.code == ErrorCode.SERVER
assert str(err) == "service unavailable"
assert is_retryable_error(err)
```

When the body holds a JSON error document its message, code and details are
used, with the given status code; otherwise the error is chosen from the
status code, and unknown statuses give an `UNKNOWN_ERROR`.

## What the package does not do

It contains no HTTP client and sends no requests: it decides, waits and
classifies, and leaves making the calls to the code that uses it.