"""Ticket file codec: YAML front matter, a level-one heading, then the body.

The heading may be written either as an underlined (setext) line::

    Fix login redirect
    =========================

or as an ATX line (``# Fix login redirect``). Both are read; setext is the
default when rendering.
"""

from __future__ import annotations

import datetime as dt
import json
import re
from typing import Any

import yaml

from .errors import ValidationError
from .models import LocalTicket

SETEXT = "setext"
ATX = "atx"
UNTITLED = "Untitled"
_MIN_UNDERLINE = 25

_SETEXT_RE = re.compile(r"\A([^\n]*\S[^\n]*)\n=+[ \t]*(?:\n|\Z)")
_ATX_RE = re.compile(r"\A#[ \t]+([^\n]*?)[ \t]*(?:\n|\Z)")
_FRONT_MATTER_RE = re.compile(
    r"\A---[ \t]*\n(.*?)^---[ \t]*(?:\n|\Z)(.*)\Z", re.DOTALL | re.MULTILINE
)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def render_heading(title: str, body: str, style: str = SETEXT) -> str:
    title = title.strip() or UNTITLED
    if style == ATX:
        heading = f"# {title}"
    elif style == SETEXT:
        heading = f"{title}\n{'=' * max(len(title), _MIN_UNDERLINE)}"
    else:
        raise ValueError(f"unknown heading style: {style!r}")
    return f"{heading}\n\n{body}"


def split_heading(text: str) -> tuple[str | None, str]:
    """Split the leading level-one heading off ``text``.

    Returns ``(title, rest)``; ``title`` is ``None`` when the text does not
    start with a heading, in which case ``rest`` is the text unchanged.
    """
    stripped = text.lstrip("\n")
    match = _SETEXT_RE.match(stripped) or _ATX_RE.match(stripped)
    if not match:
        return None, text
    rest = stripped[match.end():]
    if rest.startswith("\n"):
        rest = rest[1:]
    return match.group(1).strip(), rest


def _plain(value: Any) -> Any:
    # YAML turns bare dates into date objects; the APIs expect ISO strings
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def parse_document(text: str) -> LocalTicket:
    text = normalize_newlines(text)
    match = _FRONT_MATTER_RE.match(text)
    if not match:
        raise ValidationError("front matter block (--- ... ---) not found")
    try:
        loaded = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise ValidationError(f"invalid YAML front matter: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ValidationError("front matter must be a mapping")
    title, body = split_heading(match.group(2))
    return LocalTicket(metadata=_plain(loaded), title=title, body=body)


def render_document(ticket: LocalTicket, style: str = SETEXT) -> str:
    front = yaml.safe_dump(
        ticket.metadata, allow_unicode=True, sort_keys=False, default_flow_style=False
    )
    text = f"---\n{front}---\n{render_heading(ticket.title or '', ticket.body, style)}"
    return text if text.endswith("\n") else text + "\n"


def render_json(ticket: LocalTicket) -> str:
    return json.dumps(ticket.to_dict(), indent=2, ensure_ascii=False) + "\n"


__all__ = [
    "SETEXT",
    "ATX",
    "normalize_newlines",
    "render_heading",
    "split_heading",
    "parse_document",
    "render_document",
    "render_json",
]
