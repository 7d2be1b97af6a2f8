"""Error taxonomy & redaction helpers.

Every failure raised by the integration engine is one of a small, fixed set of
kinds so callers can branch on ``exc.kind`` rather than on message text.

Public API:
- ErrorKind, TicketBridgeError and its concrete subclasses
- normalize_error(exc) -> TicketBridgeError
- redact(text) -> str
"""

from __future__ import annotations

import enum
import re
import traceback
from typing import Any

# Credential shapes seen in request URLs and headers of the supported backends
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(apiKey=)[^&\s]+"), r"\1<redacted>"),
    (re.compile(r"(X-Redmine-API-Key['\"]?\s*[:=]\s*['\"]?)[^'\",\s}]+", re.IGNORECASE), r"\1<redacted>"),
    (re.compile(r"(Basic\s+)[A-Za-z0-9+/=]{4,}"), r"\1<redacted>"),
]


class ErrorKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    API = "api"
    NETWORK = "network"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class TicketBridgeError(Exception):
    """Base class; ``kind`` is fixed per subclass."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "details": self.details}


class ConfigurationError(TicketBridgeError):
    kind = ErrorKind.CONFIGURATION


class AuthenticationError(TicketBridgeError):
    kind = ErrorKind.AUTHENTICATION


class ApiError(TicketBridgeError):
    """Non-2xx response other than an authentication failure."""

    kind = ErrorKind.API

    def __init__(self, message: str, status: int, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class NetworkError(TicketBridgeError):
    kind = ErrorKind.NETWORK


class ValidationError(TicketBridgeError):
    kind = ErrorKind.VALIDATION


class UnknownError(TicketBridgeError):
    kind = ErrorKind.UNKNOWN


def redact(text: str) -> str:
    """Mask API keys and basic-auth credentials in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat, repl in _SENSITIVE_PATTERNS:
        redacted = pat.sub(repl, redacted)
    return redacted


def normalize_error(exc: BaseException) -> TicketBridgeError:
    """Return ``exc`` when already classified, otherwise wrap it as UNKNOWN.

    The wrapper keeps the original message, type and formatted traceback in
    ``details`` and chains the original via ``__cause__``.
    """
    if isinstance(exc, TicketBridgeError):
        return exc
    message = redact(str(exc)) or exc.__class__.__name__
    wrapped = UnknownError(
        message,
        {
            "original_type": exc.__class__.__name__,
            "traceback": redact(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            ),
        },
    )
    wrapped.__cause__ = exc
    return wrapped


__all__ = [
    "ErrorKind",
    "TicketBridgeError",
    "ConfigurationError",
    "AuthenticationError",
    "ApiError",
    "NetworkError",
    "ValidationError",
    "UnknownError",
    "normalize_error",
    "redact",
]
