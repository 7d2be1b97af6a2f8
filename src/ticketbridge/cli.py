"""ticketbridge CLI.

Subcommands:
  fetch     -> download a remote ticket into a Markdown (or JSON) file
  update    -> push a ticket file (or explicit overrides) to the tracker
  validate  -> check backend settings without touching the network
  version   -> print the package version

Update flags are backend specific; they are generated from the configured
backend's ``update_options()``, so the config is read before the final parse.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from typing import Any

from ticketbridge import __version__
from ticketbridge.backend import TrackerPlugin
from ticketbridge.config import CONFIG_DEFAULT, ToolConfig, load_config
from ticketbridge.document import ATX, SETEXT
from ticketbridge.errors import ConfigurationError, TicketBridgeError
from ticketbridge.logging import configure_logging
from ticketbridge.operations import (
    JSON,
    MARKDOWN,
    FetchOptions,
    fetch_ticket,
    update_ticket,
    validate_config,
)
from ticketbridge.plugins import get_plugin

_MAX_HELP_WIDTH = 100
_HIDDEN_DETAILS = {"traceback"}


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=34, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _add_global_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", default=CONFIG_DEFAULT, help="Path to config.yml")
    p.add_argument("--backend", help="Override integration.pm_tool.type")
    p.add_argument("--log-json", action="store_true", help="Emit JSON log lines")
    p.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR (env: TICKETBRIDGE_LOG_LEVEL)")


def _build_parser(plugin: TrackerPlugin | None = None) -> argparse.ArgumentParser:
    """Construct the top-level parser; ``plugin`` contributes update flags."""
    p = _FormatterArgumentParser(
        prog="ticketbridge", description="Sync local ticket files with a remote issue tracker"
    )
    _add_global_options(p)
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pf = sub.add_parser("fetch", help="Fetch a ticket by identifier or URL")
    pf.add_argument("ticket", help="Ticket identifier or tracker URL")
    pf.add_argument("--stdout", action="store_true", help="Print instead of writing a file")
    pf.add_argument("--json", action="store_true", help="Write JSON instead of Markdown")
    pf.add_argument("--dir", help="Output directory")
    pf.add_argument("--prefix", help="File name prefix")
    pf.add_argument("--atx", action="store_true", help="Render the title as '# title'")

    pu = sub.add_parser("update", help="Update a remote ticket from a ticket file")
    pu.add_argument("target", help="Ticket file, identifier or tracker URL")
    pu.add_argument("--dry-run", action="store_true", help="Show the payload without writing")
    if plugin is not None:
        group = pu.add_argument_group(f"{plugin.label} update options")
        for opt in plugin.update_options():
            group.add_argument(opt.flag, dest=opt.name, type=opt.type, help=opt.description)

    sub.add_parser("validate", help="Check backend settings (no network)")
    sub.add_parser("version", help="Print version")
    return p


def _preparse(argv: list[str]) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    _add_global_options(pre)
    known, _ = pre.parse_known_args(argv)
    return known


def _load(path: str) -> tuple[ToolConfig | None, TicketBridgeError | None]:
    try:
        return load_config(path), None
    except TicketBridgeError as exc:
        return None, exc


def _plugin_or_none(name: str | None) -> TrackerPlugin | None:
    if not name:
        return None
    try:
        return get_plugin(name)
    except ConfigurationError:
        return None


def _report(exc: TicketBridgeError) -> None:
    print(f"error: {exc.message}", file=sys.stderr)
    details = {k: v for k, v in exc.details.items() if k not in _HIDDEN_DETAILS}
    if details:
        print("details: " + json.dumps(details, indent=2, ensure_ascii=False, default=str), file=sys.stderr)


def _cmd_fetch(args: argparse.Namespace, cfg: ToolConfig) -> int:
    options = FetchOptions(
        output_format=JSON if args.json else MARKDOWN,
        stdout=args.stdout,
        directory=args.dir,
        prefix=args.prefix,
        heading_style=ATX if args.atx else SETEXT,
    )
    outcome = fetch_ticket(cfg, args.ticket, options, plugin=get_plugin(cfg.backend))
    if outcome.path is None:
        sys.stdout.write(outcome.rendered)
    else:
        print(str(outcome.path))
    return 0


def _cmd_update(args: argparse.Namespace, cfg: ToolConfig) -> int:
    plugin = get_plugin(cfg.backend)
    overrides = {
        opt.name: getattr(args, opt.name)
        for opt in plugin.update_options()
        if getattr(args, opt.name, None) is not None
    }
    result = update_ticket(cfg, args.target, overrides, dry_run=args.dry_run, plugin=plugin)
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str))
    return 0 if result.success else 1


def _cmd_validate(cfg: ToolConfig) -> int:
    result = validate_config(cfg, plugin=get_plugin(cfg.backend))
    if result.valid:
        print(f"{cfg.backend}: configuration OK")
        return 0
    for err in result.errors:
        print(f"{cfg.backend}: {err}", file=sys.stderr)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    arg_list = list(sys.argv[1:] if argv is None else argv)
    pre = _preparse(arg_list)
    cfg, cfg_error = _load(pre.config)
    backend = pre.backend or (cfg.backend if cfg else None)
    args = _build_parser(_plugin_or_none(backend)).parse_args(arg_list)

    if args.cmd == "version":
        print(f"ticketbridge {__version__}")
        return 0

    configure_logging(
        json_logging=args.log_json or bool(cfg and cfg.logging_json_enabled),
        level=args.log_level or (cfg.logging_level if cfg else None),
    )
    try:
        if cfg is None:
            raise cfg_error or ConfigurationError(f"Configuration file not found: {args.config}")
        if args.backend:
            cfg.backend = args.backend
        if args.cmd == "fetch":
            return _cmd_fetch(args, cfg)
        if args.cmd == "update":
            return _cmd_update(args, cfg)
        return _cmd_validate(cfg)
    except TicketBridgeError as exc:
        _report(exc)
        return 1


__all__ = ["main"]
