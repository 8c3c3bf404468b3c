"""Error type raised by the SDK, its codes, and helpers to classify errors."""

from __future__ import annotations

import json
from enum import Enum
from http import HTTPStatus
from typing import Any, Optional, Union


class ErrorCode(str, Enum):
    """Codes carried by :class:`SDKError`."""

    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    AUTHORIZATION = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND_ERROR"
    CONFLICT = "CONFLICT_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    SERVER = "SERVER_ERROR"
    NETWORK = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


class SDKError(Exception):
    """An error with a code, an HTTP status (0 when there is none) and details."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 0,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, code={str(self.code)!r}, "
            f"status_code={self.status_code!r})"
        )


def validation_error(message: str, details: Any = None) -> SDKError:
    return SDKError(message, ErrorCode.VALIDATION, HTTPStatus.BAD_REQUEST, details)


def authentication_error(message: str) -> SDKError:
    return SDKError(message, ErrorCode.AUTHENTICATION, HTTPStatus.UNAUTHORIZED)


def authorization_error(message: str) -> SDKError:
    return SDKError(message, ErrorCode.AUTHORIZATION, HTTPStatus.FORBIDDEN)


def not_found_error(resource: str) -> SDKError:
    return SDKError(f"{resource} not found", ErrorCode.NOT_FOUND, HTTPStatus.NOT_FOUND)


def conflict_error(message: str) -> SDKError:
    return SDKError(message, ErrorCode.CONFLICT, HTTPStatus.CONFLICT)


def rate_limit_error(message: str) -> SDKError:
    return SDKError(message, ErrorCode.RATE_LIMIT, HTTPStatus.TOO_MANY_REQUESTS)


def server_error(message: str) -> SDKError:
    return SDKError(message, ErrorCode.SERVER, HTTPStatus.INTERNAL_SERVER_ERROR)


def network_error(message: str) -> SDKError:
    """A transport failure; it has no HTTP status."""
    return SDKError(message, ErrorCode.NETWORK, 0)


def timeout_error(message: str) -> SDKError:
    return SDKError(message, ErrorCode.TIMEOUT, HTTPStatus.REQUEST_TIMEOUT)


def unknown_error(message: str) -> SDKError:
    return SDKError(message, ErrorCode.UNKNOWN, 0)


_DEFAULTS = {
    HTTPStatus.BAD_REQUEST: lambda: validation_error("bad request"),
    HTTPStatus.UNAUTHORIZED: lambda: authentication_error("authentication failed"),
    HTTPStatus.FORBIDDEN: lambda: authorization_error("access denied"),
    HTTPStatus.NOT_FOUND: lambda: not_found_error("resource"),
    HTTPStatus.CONFLICT: lambda: conflict_error("resource conflict"),
    HTTPStatus.TOO_MANY_REQUESTS: lambda: rate_limit_error("rate limit exceeded"),
    HTTPStatus.INTERNAL_SERVER_ERROR: lambda: server_error("internal server error"),
    HTTPStatus.BAD_GATEWAY: lambda: server_error("bad gateway"),
    HTTPStatus.SERVICE_UNAVAILABLE: lambda: server_error("service unavailable"),
    HTTPStatus.GATEWAY_TIMEOUT: lambda: timeout_error("gateway timeout"),
}


def _parse_error_body(body: Union[bytes, str]) -> Optional[SDKError]:
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return None
    message = payload.get("message") or ""
    code = payload.get("code") or ""
    if not isinstance(message, str) or not isinstance(code, str):
        return None
    return SDKError(message, code, 0, payload.get("details"))


def parse_http_error(status_code: int, body: Union[bytes, str, None] = None) -> SDKError:
    """Build an error from an HTTP status and an optional JSON error body."""
    if body:
        parsed = _parse_error_body(body)
        if parsed is not None:
            parsed.status_code = status_code
            return parsed
    factory = _DEFAULTS.get(status_code)
    if factory is not None:
        return factory()
    return SDKError(f"HTTP {status_code}: request failed", ErrorCode.UNKNOWN, status_code)


def _has_code(err: BaseException, *codes: ErrorCode) -> bool:
    return isinstance(err, SDKError) and err.code in codes


def is_validation_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.VALIDATION)


def is_authentication_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.AUTHENTICATION)


def is_authorization_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.AUTHORIZATION)


def is_not_found_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.NOT_FOUND)


def is_conflict_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.CONFLICT)


def is_rate_limit_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.RATE_LIMIT)


def is_server_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.SERVER)


def is_network_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.NETWORK)


def is_timeout_error(err: BaseException) -> bool:
    return _has_code(err, ErrorCode.TIMEOUT)


def is_retryable_error(err: BaseException) -> bool:
    """Rate-limit, server, network and timeout errors may be retried."""
    return _has_code(
        err, ErrorCode.RATE_LIMIT, ErrorCode.SERVER, ErrorCode.NETWORK, ErrorCode.TIMEOUT
    )