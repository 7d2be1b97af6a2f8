"""Backlog backend (API v2).

Issues are addressed by key (``PROJ-123``). The API key travels as the
``apiKey`` query parameter. Updates are read-before-write: the current issue
is fetched first and only fields that differ are sent, form encoded.
Status cannot be written by name, so a requested status change is reported
as a warning and skipped.
"""

from __future__ import annotations

import re
from typing import Any

from .backend import DRY_RUN_MARKER, HTTP_NOT_FOUND, TrackerPlugin, coerce
from .config import BackendConfig
from .document import normalize_newlines
from .errors import ApiError, UnknownError
from .logging import get_logger
from .mapping import compact, merge_update_fields
from .models import LocalTicket, UpdateOption, UpdateRequest, UpdateResult, ValidationResult
from .transport import HttpTransport

_DATE_FIELDS = ("start_date", "due_date")
_HOUR_FIELDS = ("estimated_hours", "actual_hours")

UPDATE_OPTIONS = [
    UpdateOption("start_date", "Start date (YYYY-MM-DD)"),
    UpdateOption("due_date", "Due date (YYYY-MM-DD)"),
    UpdateOption("estimated_hours", "Estimated hours", float),
    UpdateOption("actual_hours", "Actual hours", float),
    UpdateOption("comment", "Comment added with the update"),
]

_REMOTE_KEYS = {
    "start_date": "startDate",
    "due_date": "dueDate",
    "estimated_hours": "estimatedHours",
    "actual_hours": "actualHours",
    "comment": "comment",
}


def _name(obj: Any) -> str | None:
    if isinstance(obj, dict):
        return obj.get("name") or None
    return None


def _date(value: Any) -> str | None:
    # Backlog returns dates as 2025-11-01T00:00:00Z
    if isinstance(value, str) and value:
        return value[:10]
    return None


def issue_to_local(issue: dict[str, Any]) -> LocalTicket:
    meta = {
        "backlog_id": issue.get("id"),
        "backlog_key": issue.get("issueKey"),
        "project_id": issue.get("projectId"),
        "type": _name(issue.get("issueType")),
        "status": _name(issue.get("status")),
        "priority": _name(issue.get("priority")),
        "assignee": _name(issue.get("assignee")),
        "created_at": issue.get("created"),
        "updated_at": issue.get("updated"),
        "start_date": _date(issue.get("startDate")),
        "due_date": _date(issue.get("dueDate")),
        "estimated_hours": issue.get("estimatedHours"),
        "actual_hours": issue.get("actualHours"),
    }
    return LocalTicket(
        metadata=compact(meta),
        title=issue.get("summary") or "",
        body=normalize_newlines(issue.get("description") or ""),
    )


def _unchanged(key: str, value: Any, current: Any) -> bool:
    if value == "":
        return current in (None, "")
    if current in (None, ""):
        return False
    if key in _DATE_FIELDS:
        return str(value)[:10] == str(current)[:10]
    if key in _HOUR_FIELDS:
        return float(value) == float(current)
    return False


class BacklogPlugin(TrackerPlugin):
    name = "backlog"
    label = "Backlog"
    file_prefix = ""
    identifier_pattern = re.compile(r"/view/([A-Z][A-Z0-9_]*-\d+)")
    fetch_attempts = 3
    update_attempts = 2

    def validate(self, config: BackendConfig) -> ValidationResult:
        get_logger().debug("validating Backlog settings")
        errors: list[str] = []
        if not config.url:
            errors.append("Backlog URL is not configured (integration.pm_tool.backlog.url)")
        if not config.api_key:
            errors.append("Backlog API key is not configured (integration.pm_tool.backlog.api_key)")
        self._check_placeholders(config, errors)
        return ValidationResult(valid=not errors, errors=errors)

    def extract_identifier(self, frontmatter: dict[str, Any]) -> str | None:
        value = frontmatter.get("backlog_key")
        return str(value) if value else None

    def update_options(self) -> list[UpdateOption]:
        return list(UPDATE_OPTIONS)

    def _issue_url(self, config: BackendConfig, identifier: str) -> str:
        return f"{config.base_url}/api/v2/issues/{identifier}"

    def _get_issue(
        self, transport: HttpTransport, config: BackendConfig, identifier: str
    ) -> dict[str, Any]:
        try:
            data = transport.get(
                self._issue_url(config, identifier),
                headers={"Accept": "application/json"},
                params={"apiKey": config.api_key},
                policy=self._fetch_policy(config),
            )
        except ApiError as exc:
            if exc.status == HTTP_NOT_FOUND:
                raise self._not_found(identifier, exc) from exc
            raise
        if not isinstance(data, dict):
            raise UnknownError(
                f"unexpected response for Backlog issue {identifier}",
                {"backend": self.name, "identifier": identifier},
            )
        return data

    def fetch(
        self, config: BackendConfig, identifier: str, options: Any | None = None
    ) -> LocalTicket:
        self._require_config(config)
        logger = get_logger()
        logger.debug("fetching Backlog issue", identifier=identifier)
        with self._transport() as transport:
            issue = self._get_issue(transport, config, identifier)
        logger.log_ticket_action("fetch", self.name, identifier, summary=issue.get("summary"))
        return issue_to_local(issue)

    def build_payload(
        self, request: UpdateRequest, current: dict[str, Any]
    ) -> tuple[dict[str, Any], list[str]]:
        """Return ``(payload, warnings)`` holding only fields that differ from ``current``."""
        payload: dict[str, Any] = {}
        warnings: list[str] = []

        if request.title and request.title != current.get("summary"):
            payload["summary"] = request.title
        description = (request.body or "").strip()
        remote_description = normalize_newlines(current.get("description") or "").strip()
        if description and description != remote_description:
            payload["description"] = description

        status = merge_update_fields(request.overrides, request.frontmatter, fields=["status"])
        requested = status.get("status")
        current_status = _name(current.get("status"))
        if requested is not None and str(requested) != current_status:
            message = (
                f"status cannot be updated by name (requested {requested!r}, "
                f"current {current_status!r}); change it in Backlog directly"
            )
            get_logger().warning(
                message, field="status", requested=str(requested), current=current_status
            )
            warnings.append(message)

        from_file = {key: request.frontmatter.get(key) for key in (*_DATE_FIELDS, *_HOUR_FIELDS)}
        merged = merge_update_fields(
            request.overrides,
            from_file,
            fields=[opt.name for opt in UPDATE_OPTIONS],
            clearable=_DATE_FIELDS,
        )
        options = {opt.name: opt for opt in UPDATE_OPTIONS}
        for key, value in merged.items():
            remote_key = _REMOTE_KEYS[key]
            value = coerce(options[key], value)
            if key != "comment" and _unchanged(key, value, current.get(remote_key)):
                continue
            payload[remote_key] = value
        return payload, warnings

    def update(
        self, config: BackendConfig, identifier: str, request: UpdateRequest
    ) -> UpdateResult:
        self._require_config(config)
        logger = get_logger()
        url = self._issue_url(config, identifier)
        with self._transport() as transport:
            current = self._get_issue(transport, config, identifier)
            payload, warnings = self.build_payload(request, current)
            if not payload:
                logger.info("no changes to apply", identifier=identifier)
                message = f"no changes to apply to Backlog ticket {identifier}"
                if request.dry_run:
                    message = f"{DRY_RUN_MARKER} {message}"
                return UpdateResult(
                    success=True,
                    message=message,
                    dry_run=request.dry_run,
                    warnings=warnings,
                )
            logger.info(f"Backlog update payload for {identifier}", url=url, payload=payload)
            if request.dry_run:
                return self._dry_run_result(identifier, payload, warnings)
            try:
                transport.patch(
                    url,
                    params={"apiKey": config.api_key},
                    data=payload,
                    policy=self._update_policy(config),
                )
            except ApiError as exc:
                if exc.status == HTTP_NOT_FOUND:
                    raise self._not_found(identifier, exc) from exc
                raise
        logger.log_ticket_action("update", self.name, identifier, fields=sorted(payload))
        return UpdateResult(
            success=True,
            message=f"updated Backlog ticket {identifier}",
            updated_fields=payload,
            warnings=warnings,
        )


__all__ = ["BacklogPlugin", "issue_to_local", "UPDATE_OPTIONS"]
