"""Centralized retry / backoff helpers.

``run_with_retries`` wraps a thunk with capped exponential backoff. Whether a
failure is worth another attempt is decided by the policy's ``should_retry``
predicate; the default (``is_transient``) retries rate limiting, server
errors, network failures and timeouts only.

Environment overrides for the policy defaults:
  TICKETBRIDGE_RETRY_ATTEMPTS (default 3)
  TICKETBRIDGE_RETRY_BASE (initial delay in seconds, default 1.0)

Backends resolve their attempt count as per-backend config, then
TICKETBRIDGE_RETRY_ATTEMPTS, then the backend's own default. Invalid values
raise ConfigurationError.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TypeVar

from .errors import ApiError, AuthenticationError, ConfigurationError, NetworkError
from .logging import get_logger

T = TypeVar("T")

HTTP_TOO_MANY_REQUESTS = 429
HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404
TIMEOUT_CODES = frozenset({"timeout", "ETIMEDOUT", "ESOCKETTIMEDOUT"})
ATTEMPTS_ENV = "TICKETBRIDGE_RETRY_ATTEMPTS"
BASE_ENV = "TICKETBRIDGE_RETRY_BASE"
DEFAULT_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 1.0


def _env_number(name: str, kind: type[int] | type[float]) -> int | float | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{name} must be {'an integer' if kind is int else 'a number'}, got {raw!r}",
            {"variable": name},
        ) from exc


def env_attempts() -> int | None:
    """Attempt count from the environment, or ``None`` when unset."""
    value = _env_number(ATTEMPTS_ENV, int)
    return None if value is None else int(value)


def _default_attempts() -> int:
    value = env_attempts()
    return DEFAULT_ATTEMPTS if value is None else value


def _default_initial_delay() -> float:
    value = _env_number(BASE_ENV, float)
    return DEFAULT_INITIAL_DELAY if value is None else float(value)


def _status_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, AuthenticationError):
        return False
    status = _status_of(exc)
    if status == HTTP_TOO_MANY_REQUESTS:
        return True
    if status is not None and 500 <= status < 600:  # noqa: PLR2004
        return True
    if isinstance(exc, NetworkError):
        return True
    details = getattr(exc, "details", None) or {}
    code = getattr(exc, "code", None) or details.get("code")
    return code in TIMEOUT_CODES


def is_transient_write(exc: BaseException) -> bool:
    """Like ``is_transient`` but never repeats a write rejected with 400/404."""
    if isinstance(exc, ApiError) and exc.status in (HTTP_BAD_REQUEST, HTTP_NOT_FOUND):
        return False
    return is_transient(exc)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = field(default_factory=_default_attempts)
    initial_delay: float = field(default_factory=_default_initial_delay)
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    should_retry: Callable[[BaseException], bool] = is_transient

    @classmethod
    def for_writes(cls, max_attempts: int = 2) -> RetryPolicy:
        return cls(max_attempts=max_attempts, should_retry=is_transient_write)

    def with_attempts(self, max_attempts: int | None) -> RetryPolicy:
        if max_attempts is None:
            return self
        return replace(self, max_attempts=max_attempts)


def run_with_retries(fn: Callable[[], T], *, policy: RetryPolicy | None = None) -> T:
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)
    delay = policy.initial_delay
    logger = get_logger()
    for attempt in range(1, attempts + 1):
        try:
            logger.debug(f"attempt {attempt}/{attempts}")
            return fn()
        except Exception as exc:
            if attempt >= attempts:
                raise
            if not policy.should_retry(exc):
                logger.debug("non-retryable failure, giving up", error=str(exc))
                raise
            logger.info(
                f"attempt {attempt}/{attempts} failed: {exc}",
                next_retry_in=round(delay, 3),
            )
            time.sleep(delay)
            delay = min(delay * policy.backoff_multiplier, policy.max_delay)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = [
    "RetryPolicy",
    "run_with_retries",
    "is_transient",
    "is_transient_write",
    "env_attempts",
]
