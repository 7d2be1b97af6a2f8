"""Field precedence and metadata shaping shared by the backends."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

_MISSING = object()


def _pick(
    tier: Mapping[str, Any], key: str, *, allow_clear: bool
) -> Any:
    if key not in tier:
        return _MISSING
    value = tier[key]
    if value is None:
        return _MISSING
    if isinstance(value, str) and not value.strip():
        return "" if allow_clear else _MISSING
    return value


def merge_update_fields(
    overrides: Mapping[str, Any],
    frontmatter: Mapping[str, Any],
    defaults: Mapping[str, Any] | None = None,
    *,
    fields: Iterable[str] | None = None,
    clearable: Iterable[str] = (),
) -> dict[str, Any]:
    """Merge three partial records field by field.

    Precedence is overrides, then front matter, then defaults. A field absent
    from all three is left out of the result. Blank strings count as absent,
    except for ``clearable`` keys in the first two tiers where ``""`` is kept
    as an explicit request to clear the remote value.
    """
    defaults = defaults or {}
    clear = set(clearable)
    keys = list(fields) if fields is not None else list(
        dict.fromkeys([*overrides, *frontmatter, *defaults])
    )
    merged: dict[str, Any] = {}
    for key in keys:
        for tier, allow_clear in (
            (overrides, key in clear),
            (frontmatter, key in clear),
            (defaults, False),
        ):
            value = _pick(tier, key, allow_clear=allow_clear)
            if value is not _MISSING:
                merged[key] = value
                break
    return merged


def compact(mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Drop ``None`` and ``""`` values recursively, and nested mappings left empty."""
    out: dict[str, Any] = {}
    for key, value in mapping.items():
        if value is None or value == "":
            continue
        if isinstance(value, Mapping):
            nested = compact(value)
            if not nested:
                continue
            value = nested
        out[key] = value
    return out


def ref(obj: Any) -> dict[str, Any] | None:
    """``{id, name}`` view of a remote reference object."""
    if not isinstance(obj, Mapping):
        return None
    return compact({"id": obj.get("id"), "name": obj.get("name")}) or None


def ref_id(value: Any) -> Any:
    """Id of a front matter reference, which may be ``{id, name}`` or a bare id."""
    if isinstance(value, Mapping):
        return value.get("id")
    return value


__all__ = ["merge_update_fields", "compact", "ref", "ref_id"]
