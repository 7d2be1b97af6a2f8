"""ticketbridge - sync local Markdown ticket files with a remote issue tracker.

High-level public API:

from ticketbridge import load_config, fetch_ticket, update_ticket

cfg = load_config('.ticket/config.yml')
outcome = fetch_ticket(cfg, 'https://redmine.example.com/issues/1234')
result = update_ticket(cfg, outcome.path, {'comment': 'done'}, dry_run=True)
print(result.message)

Backends are looked up by name with ``get_plugin('redmine')`` or
``get_plugin('backlog')``; the CLI (``ticketbridge``) is a thin layer over
these functions.
"""

from __future__ import annotations

from .config import BackendConfig, ToolConfig, load_config
from .errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    NetworkError,
    TicketBridgeError,
    ValidationError,
)
from .models import LocalTicket, UpdateRequest, UpdateResult, ValidationResult
from .operations import FetchOptions, fetch_ticket, update_ticket
from .plugins import available_backends, get_plugin

__version__ = "0.2.0"

__all__ = [
    "load_config",
    "BackendConfig",
    "ToolConfig",
    "fetch_ticket",
    "update_ticket",
    "FetchOptions",
    "get_plugin",
    "available_backends",
    "LocalTicket",
    "UpdateRequest",
    "UpdateResult",
    "ValidationResult",
    "ErrorKind",
    "TicketBridgeError",
    "ConfigurationError",
    "AuthenticationError",
    "ApiError",
    "NetworkError",
    "ValidationError",
    "__version__",
]
