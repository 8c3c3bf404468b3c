"""Backoff strategies, retry policies, fallbacks, circuit breaking and typed errors."""

__version__ = "1.0.0"

__all__ = ["backoff", "policy", "fallback", "errors"]