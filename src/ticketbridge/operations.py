"""Fetch-to-file and update-from-file workflows on top of a backend plugin."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .backend import TrackerPlugin
from .config import ToolConfig
from .document import SETEXT, parse_document, render_document, render_json
from .errors import ValidationError
from .logging import get_logger
from .models import LocalTicket, UpdateRequest, UpdateResult, ValidationResult
from .plugins import get_plugin

MARKDOWN = "markdown"
JSON = "json"
_TICKET_SUFFIXES = {".md", ".markdown", ".json"}


@dataclass
class FetchOptions:
    output_format: str = MARKDOWN
    stdout: bool = False
    directory: str | None = None
    prefix: str | None = None
    heading_style: str = SETEXT


@dataclass
class FetchOutcome:
    identifier: str
    ticket: LocalTicket
    rendered: str
    path: Path | None = None


def _plugin_for(cfg: ToolConfig, plugin: TrackerPlugin | None) -> TrackerPlugin:
    return plugin or get_plugin(cfg.backend)


def render(ticket: LocalTicket, options: FetchOptions) -> str:
    if options.output_format == JSON:
        return render_json(ticket)
    if options.output_format == MARKDOWN:
        return render_document(ticket, options.heading_style)
    raise ValidationError(f"unknown output format: {options.output_format}")


def output_path(
    cfg: ToolConfig, plugin: TrackerPlugin, identifier: str, options: FetchOptions
) -> Path:
    directory = Path(options.directory or cfg.output_dir or ".")
    if options.prefix is not None:
        prefix = options.prefix
    elif cfg.file_prefix is not None:
        prefix = cfg.file_prefix
    else:
        prefix = plugin.file_prefix
    suffix = "json" if options.output_format == JSON else "md"
    return directory / f"{prefix}{identifier}.{suffix}"


def fetch_ticket(
    cfg: ToolConfig,
    identifier_or_url: object,
    options: FetchOptions | None = None,
    *,
    plugin: TrackerPlugin | None = None,
) -> FetchOutcome:
    """Fetch one remote ticket and write it to disk unless ``options.stdout``."""
    options = options or FetchOptions()
    plugin = _plugin_for(cfg, plugin)
    settings = cfg.settings
    if identifier_or_url is None or not str(identifier_or_url).strip():
        raise ValidationError("a ticket identifier or URL is required")
    identifier = plugin.resolve_identifier(str(identifier_or_url).strip(), settings)
    logger = get_logger()
    logger.info(f"fetching {plugin.label} ticket {identifier}", backend=plugin.name)
    ticket = plugin.fetch(settings, identifier, options)
    rendered = render(ticket, options)
    if options.stdout:
        return FetchOutcome(identifier=identifier, ticket=ticket, rendered=rendered)
    path = output_path(cfg, plugin, identifier, options)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(rendered, encoding="utf-8")
    logger.info(f"saved {path}", backend=plugin.name, identifier=identifier)
    return FetchOutcome(identifier=identifier, ticket=ticket, rendered=rendered, path=path)


def _check_overrides(plugin: TrackerPlugin, overrides: Mapping[str, Any]) -> dict[str, Any]:
    known = {opt.name for opt in plugin.update_options()}
    cleaned = {k: v for k, v in overrides.items() if v is not None}
    unknown = sorted(set(cleaned) - known)
    if unknown:
        raise ValidationError(
            f"{plugin.label} does not accept: {', '.join(unknown)}",
            {"backend": plugin.name, "unknown": unknown, "known": sorted(known)},
        )
    return cleaned


def build_update_request(
    plugin: TrackerPlugin,
    cfg: ToolConfig,
    source: str | Path,
    overrides: Mapping[str, Any] | None = None,
    *,
    dry_run: bool = False,
) -> tuple[str, UpdateRequest]:
    """Resolve the target identifier and assemble the request for ``source``.

    ``source`` is a ticket file (front matter names the ticket) or a bare
    identifier/URL, in which case only ``overrides`` are applied.
    """
    cleaned = _check_overrides(plugin, overrides or {})
    path = Path(source)
    if path.is_file():
        ticket = parse_document(path.read_text(encoding="utf-8"))
        identifier = plugin.extract_identifier(ticket.metadata)
        if not identifier:
            raise ValidationError(
                f"cannot determine which {plugin.label} ticket {path} maps to; "
                "no identifier in front matter",
                {"backend": plugin.name, "path": str(path)},
            )
        return identifier, UpdateRequest(
            overrides=cleaned,
            frontmatter=ticket.metadata,
            title=ticket.title,
            body=ticket.body,
            dry_run=dry_run,
        )
    if path.suffix.lower() in _TICKET_SUFFIXES:
        raise ValidationError(f"file not found: {path}", {"path": str(path)})
    identifier = plugin.resolve_identifier(str(source), cfg.settings)
    return identifier, UpdateRequest(overrides=cleaned, dry_run=dry_run)


def update_ticket(
    cfg: ToolConfig,
    source: str | Path,
    overrides: Mapping[str, Any] | None = None,
    *,
    dry_run: bool = False,
    plugin: TrackerPlugin | None = None,
) -> UpdateResult:
    plugin = _plugin_for(cfg, plugin)
    identifier, request = build_update_request(plugin, cfg, source, overrides, dry_run=dry_run)
    get_logger().info(
        f"updating {plugin.label} ticket {identifier}", backend=plugin.name, dry_run=dry_run
    )
    return plugin.update(cfg.settings, identifier, request)


def validate_config(cfg: ToolConfig, *, plugin: TrackerPlugin | None = None) -> ValidationResult:
    plugin = _plugin_for(cfg, plugin)
    return plugin.validate(cfg.settings)


__all__ = [
    "FetchOptions",
    "FetchOutcome",
    "fetch_ticket",
    "update_ticket",
    "build_update_request",
    "validate_config",
    "output_path",
    "render",
]
