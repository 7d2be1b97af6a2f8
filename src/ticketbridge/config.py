from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

CONFIG_DEFAULT = ".ticket/config.yml"
_ENV_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(value: Any) -> Any:
    """Replace ``${NAME}`` with the environment value, recursively.

    Unset variables are left as written so the validation step can name them.
    """
    if isinstance(value, str):
        return _ENV_PLACEHOLDER.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    if isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    return value


def _optional_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc


@dataclass
class BackendConfig:
    """Settings for one backend; credentials are already environment-expanded."""

    url: str | None = None
    api_key: str | None = None
    username: str | None = None
    password: str | None = None
    fetch_max_attempts: int | None = None
    update_max_attempts: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return (self.url or "").rstrip("/")

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> BackendConfig:
        known = {
            "url",
            "api_key",
            "username",
            "password",
            "fetch_max_attempts",
            "update_max_attempts",
        }
        return cls(
            url=raw.get("url") or None,
            api_key=raw.get("api_key") or None,
            username=raw.get("username") or None,
            password=raw.get("password") or None,
            fetch_max_attempts=_optional_int(raw, "fetch_max_attempts"),
            update_max_attempts=_optional_int(raw, "update_max_attempts"),
            extra={k: v for k, v in raw.items() if k not in known},
        )


@dataclass
class ToolConfig:
    backend: str
    backends: dict[str, BackendConfig]
    output_dir: str | None = None
    file_prefix: str | None = None
    logging_json_enabled: bool = False
    logging_level: str | None = None
    source: Path | None = None

    @property
    def settings(self) -> BackendConfig:
        try:
            return self.backends[self.backend]
        except KeyError:
            raise ConfigurationError(
                f'settings for backend "{self.backend}" not found '
                f"(integration.pm_tool.{self.backend})"
            ) from None


def load_config(path: str | Path, *, load_env_file: bool = True) -> ToolConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Configuration file not found: {p}")
    if load_env_file:
        env_file = p.parent / ".env"
        if env_file.exists():
            load_dotenv(env_file)
    try:
        raw = cast(dict[str, Any], yaml.safe_load(p.read_text(encoding="utf-8")) or {})
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {p}: {exc}") from exc
    raw = cast(dict[str, Any], expand_env_vars(raw))
    integration = cast(dict[str, Any], raw.get("integration", {}) or {})
    pm_tool = integration.get("pm_tool")
    if not isinstance(pm_tool, dict):
        raise ConfigurationError(f"integration.pm_tool section not found in {p}")
    backend = pm_tool.get("type")
    if not backend:
        raise ConfigurationError("no backend configured (integration.pm_tool.type)")
    backends = {
        str(name): BackendConfig.from_mapping(section)
        for name, section in pm_tool.items()
        if isinstance(section, dict)
    }
    logging_config = cast(dict[str, Any], raw.get("logging", {}) or {})
    cfg = ToolConfig(
        backend=str(backend),
        backends=backends,
        output_dir=pm_tool.get("output_dir"),
        file_prefix=pm_tool.get("file_prefix"),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=logging_config.get("level"),
        source=p,
    )
    # fail early on a missing backend section
    cfg.settings  # noqa: B018
    return cfg


__all__ = [
    "CONFIG_DEFAULT",
    "BackendConfig",
    "ToolConfig",
    "expand_env_vars",
    "load_config",
]
