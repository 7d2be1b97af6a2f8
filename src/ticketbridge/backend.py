"""Contract every tracker backend implements, plus helpers they share."""

from __future__ import annotations

import abc
import re
from collections.abc import Callable
from typing import Any

from .config import BackendConfig
from .errors import ApiError, ValidationError
from .identifiers import resolve_identifier
from .logging import get_logger
from .models import LocalTicket, UpdateOption, UpdateRequest, UpdateResult, ValidationResult
from .retry import RetryPolicy, env_attempts, is_transient, is_transient_write
from .transport import HttpTransport

HTTP_NOT_FOUND = 404
DRY_RUN_MARKER = "[DRY RUN]"
_UNRESOLVED = re.compile(r"\$\{([^}]+)\}")


class TrackerPlugin(abc.ABC):
    """One remote issue tracker.

    Instances hold no per-operation state: every call builds its own
    transport through ``transport_factory``.
    """

    name: str = ""
    label: str = ""
    file_prefix: str = ""
    identifier_pattern: re.Pattern[str]
    fetch_attempts: int = 3
    update_attempts: int = 2

    def __init__(self, transport_factory: Callable[[], HttpTransport] = HttpTransport):
        self._transport_factory = transport_factory

    # ---- contract -----------------------------------------------------
    @abc.abstractmethod
    def fetch(
        self, config: BackendConfig, identifier: str, options: Any | None = None
    ) -> LocalTicket: ...

    @abc.abstractmethod
    def update(
        self, config: BackendConfig, identifier: str, request: UpdateRequest
    ) -> UpdateResult: ...

    @abc.abstractmethod
    def validate(self, config: BackendConfig) -> ValidationResult: ...

    @abc.abstractmethod
    def extract_identifier(self, frontmatter: dict[str, Any]) -> str | None: ...

    @abc.abstractmethod
    def update_options(self) -> list[UpdateOption]: ...

    def resolve_identifier(self, raw: object, config: BackendConfig) -> str:
        return resolve_identifier(raw, config.url, self.identifier_pattern)

    # ---- shared helpers -----------------------------------------------
    def _transport(self) -> HttpTransport:
        return self._transport_factory()

    def _attempts(self, configured: int | None, default: int) -> int:
        # backend config, then TICKETBRIDGE_RETRY_ATTEMPTS, then the backend default
        if configured:
            return configured
        from_env = env_attempts()
        return default if from_env is None else from_env

    def _fetch_policy(self, config: BackendConfig) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self._attempts(config.fetch_max_attempts, self.fetch_attempts),
            should_retry=is_transient,
        )

    def _update_policy(self, config: BackendConfig) -> RetryPolicy:
        return RetryPolicy.for_writes(
            self._attempts(config.update_max_attempts, self.update_attempts)
        )

    def _require_config(self, config: BackendConfig) -> None:
        result = self.validate(config)
        if not result.valid:
            raise ValidationError(
                "; ".join(result.errors), {"backend": self.name, "errors": result.errors}
            )

    def _check_placeholders(self, config: BackendConfig, errors: list[str]) -> None:
        for key in ("url", "api_key", "username", "password"):
            value = getattr(config, key)
            match = _UNRESOLVED.search(value) if isinstance(value, str) else None
            if match:
                errors.append(
                    f"{self.label} {key} refers to unset environment variable {match.group(1)}"
                )

    def _not_found(self, identifier: str, exc: ApiError) -> ApiError:
        return ApiError(
            f"{self.label} ticket {identifier} not found (404 Not Found)",
            HTTP_NOT_FOUND,
            {**exc.details, "backend": self.name, "identifier": identifier},
        )

    def _dry_run_result(
        self, identifier: str, payload: dict[str, Any], warnings: list[str]
    ) -> UpdateResult:
        get_logger().log_ticket_action("update", self.name, identifier, dry_run=True)
        return UpdateResult(
            success=True,
            message=f"{DRY_RUN_MARKER} simulated update of {self.label} ticket {identifier}",
            updated_fields=payload,
            dry_run=True,
            warnings=warnings,
        )


def coerce(option: UpdateOption, value: Any) -> Any:
    """Convert an override to the option's declared type; ``""`` passes through."""
    if value == "" or isinstance(value, option.type):
        return value
    try:
        return option.type(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{option.name} must be {option.type.__name__}, got {value!r}",
            {"field": option.name},
        ) from exc


__all__ = ["TrackerPlugin", "coerce"]
