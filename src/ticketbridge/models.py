from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class LocalTicket:
    """In-memory form of a ticket file.

    ``title`` lives only in the body heading, never in ``metadata``; ``None``
    means the body carried no heading.
    """

    metadata: dict[str, Any]
    title: str | None
    body: str

    def to_dict(self) -> dict[str, Any]:
        return {"metadata": self.metadata, "title": self.title, "body": self.body}


@dataclass
class UpdateRequest:
    overrides: dict[str, Any] = field(default_factory=dict)
    frontmatter: dict[str, Any] = field(default_factory=dict)
    title: str | None = None
    body: str | None = None
    dry_run: bool = False


@dataclass
class UpdateResult:
    success: bool
    message: str
    updated_fields: dict[str, Any] = field(default_factory=dict)
    dry_run: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "updated_fields": self.updated_fields,
        }
        if self.dry_run:
            data["dry_run"] = True
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class UpdateOption:
    """An override key a backend accepts on update (``type`` is ``str``, ``int`` or ``float``)."""

    name: str
    description: str
    type: type = str

    @property
    def flag(self) -> str:
        return "--" + self.name.replace("_", "-")


__all__ = [
    "LocalTicket",
    "UpdateRequest",
    "UpdateResult",
    "ValidationResult",
    "UpdateOption",
]
