"""Ticket identifier resolution from bare IDs or tracker URLs."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from .errors import ValidationError

DEFAULT_PORTS = {"http": 80, "https": 443}


def is_url(raw: object) -> bool:
    text = str(raw)
    return text.startswith("http://") or text.startswith("https://")


def _origin(url: str) -> tuple[str, str, int | None]:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    # .port raises ValueError for out-of-range or non-numeric ports
    port = parts.port if parts.port is not None else DEFAULT_PORTS.get(scheme)
    return scheme, (parts.hostname or "").lower(), port


def resolve_identifier(raw: object, base_url: str | None, pattern: re.Pattern[str]) -> str:
    """Return the ticket identifier named by ``raw``.

    Non-URL input is already an identifier and is returned as a string. URL
    input must point at the configured tracker instance (same scheme, host
    and effective port) and its path must match ``pattern``; the first
    capture group is the identifier. Query strings and fragments are ignored.
    """
    text = str(raw)
    if not is_url(text):
        return text
    if not base_url:
        raise ValidationError(
            f"cannot resolve URL without a configured base URL: {text}",
            {"input_url": text},
        )
    try:
        given = _origin(text)
        expected = _origin(base_url)
    except ValueError as exc:
        raise ValidationError(
            f"malformed URL: {text}", {"input_url": text, "original_error": str(exc)}
        ) from exc
    if given != expected:
        raise ValidationError(
            f"URL does not match the configured tracker\n  configured: {base_url}\n  given: {text}",
            {"configured_url": base_url, "input_url": text},
        )
    match = pattern.search(urlsplit(text).path)
    if not match:
        raise ValidationError(
            f"could not extract a ticket identifier from URL: {text}",
            {"input_url": text, "pattern": pattern.pattern},
        )
    return match.group(1)


__all__ = ["is_url", "resolve_identifier"]
