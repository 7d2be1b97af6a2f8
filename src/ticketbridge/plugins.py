"""Backend registry: a fixed mapping from configured backend name to plugin."""

from __future__ import annotations

from types import MappingProxyType

from .backend import TrackerPlugin
from .backlog import BacklogPlugin
from .errors import ConfigurationError
from .redmine import RedminePlugin

_REGISTRY: MappingProxyType[str, TrackerPlugin] = MappingProxyType(
    {
        RedminePlugin.name: RedminePlugin(),
        BacklogPlugin.name: BacklogPlugin(),
    }
)


def available_backends() -> list[str]:
    return sorted(_REGISTRY)


def get_plugin(name: str) -> TrackerPlugin:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise ConfigurationError(
            f'unknown backend "{name}"; available: {", ".join(available_backends())}',
            {"backend": name, "available": available_backends()},
        ) from None


__all__ = ["available_backends", "get_plugin", "TrackerPlugin"]
