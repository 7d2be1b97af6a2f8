"""Redmine backend (REST API, JSON bodies).

Issues are addressed by numeric id: ``GET/PUT {url}/issues/{id}.json``.
Authentication uses the ``X-Redmine-API-Key`` header when an API key is
configured, HTTP Basic otherwise.
"""

from __future__ import annotations

import json
import re
from typing import Any

from .backend import HTTP_NOT_FOUND, TrackerPlugin, coerce
from .config import BackendConfig
from .document import normalize_newlines
from .errors import ApiError, UnknownError, ValidationError
from .logging import get_logger
from .mapping import compact, merge_update_fields, ref, ref_id
from .models import LocalTicket, UpdateOption, UpdateRequest, UpdateResult, ValidationResult
from .transport import basic_auth_header

_REFERENCE_FIELDS = ("project", "tracker", "status", "priority", "author", "assigned_to", "category")
_SCALAR_FIELDS = (
    "estimated_hours",
    "start_date",
    "due_date",
    "done_ratio",
    "created_on",
    "updated_on",
)
_DATE_FIELDS = ("start_date", "due_date")

UPDATE_OPTIONS = [
    UpdateOption("comment", "Comment added as a journal note"),
    UpdateOption("status", "Status ID", int),
    UpdateOption("assigned_to", "Assignee user ID", int),
    UpdateOption("done_ratio", "Progress in percent (0-100)", int),
    UpdateOption("estimated_hours", "Estimated hours", float),
    UpdateOption("start_date", "Start date (YYYY-MM-DD)"),
    UpdateOption("due_date", "Due date (YYYY-MM-DD)"),
    UpdateOption("priority", "Priority ID", int),
    UpdateOption("category", "Category ID", int),
]

# local override key -> Redmine issue attribute
_REMOTE_KEYS = {
    "comment": "notes",
    "status": "status_id",
    "assigned_to": "assigned_to_id",
    "done_ratio": "done_ratio",
    "estimated_hours": "estimated_hours",
    "start_date": "start_date",
    "due_date": "due_date",
    "priority": "priority_id",
    "category": "category_id",
}


def issue_to_local(issue: dict[str, Any]) -> LocalTicket:
    meta: dict[str, Any] = {"id": issue.get("id")}
    for key in _REFERENCE_FIELDS:
        meta[key] = ref(issue.get(key))
    for key in _SCALAR_FIELDS:
        meta[key] = issue.get(key)
    return LocalTicket(
        metadata=compact(meta),
        title=issue.get("subject") or "",
        body=normalize_newlines(issue.get("description") or ""),
    )


class RedminePlugin(TrackerPlugin):
    name = "redmine"
    label = "Redmine"
    file_prefix = "ticket-"
    identifier_pattern = re.compile(r"/issues/(\d+)")
    fetch_attempts = 3
    update_attempts = 3

    def validate(self, config: BackendConfig) -> ValidationResult:
        get_logger().debug("validating Redmine settings")
        errors: list[str] = []
        if not config.url:
            errors.append("Redmine URL is not configured (integration.pm_tool.redmine.url)")
        has_api_key = bool(config.api_key)
        if not has_api_key:
            if config.username and not config.password:
                errors.append("username is configured but password is missing")
            elif config.password and not config.username:
                errors.append("password is configured but username is missing")
            elif not config.username:
                errors.append(
                    "Redmine credentials are not configured; set api_key or username/password"
                )
        self._check_placeholders(config, errors)
        return ValidationResult(valid=not errors, errors=errors)

    def extract_identifier(self, frontmatter: dict[str, Any]) -> str | None:
        value = frontmatter.get("id")
        if value is None or value == "":
            return None
        return str(value)

    def update_options(self) -> list[UpdateOption]:
        return list(UPDATE_OPTIONS)

    # ---- HTTP ---------------------------------------------------------
    def _headers(self, config: BackendConfig) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if config.api_key:
            headers["X-Redmine-API-Key"] = config.api_key
        else:
            headers["Authorization"] = basic_auth_header(config.username or "", config.password or "")
        return headers

    def _issue_url(self, config: BackendConfig, identifier: str) -> str:
        return f"{config.base_url}/issues/{identifier}.json"

    # ---- operations ---------------------------------------------------
    def fetch(
        self, config: BackendConfig, identifier: str, options: Any | None = None
    ) -> LocalTicket:
        self._require_config(config)
        logger = get_logger()
        logger.debug(
            "fetching Redmine issue",
            identifier=identifier,
            auth_type="api_key" if config.api_key else "basic",
        )
        url = self._issue_url(config, identifier)
        with self._transport() as transport:
            try:
                data = transport.get(
                    url, headers=self._headers(config), policy=self._fetch_policy(config)
                )
            except ApiError as exc:
                if exc.status == HTTP_NOT_FOUND:
                    raise self._not_found(identifier, exc) from exc
                raise
        issue = data.get("issue") if isinstance(data, dict) else None
        if not isinstance(issue, dict):
            raise UnknownError(
                f"unexpected response for Redmine issue #{identifier}",
                {"backend": self.name, "identifier": identifier},
            )
        logger.log_ticket_action("fetch", self.name, identifier)
        return issue_to_local(issue)

    def build_payload(self, request: UpdateRequest) -> dict[str, Any]:
        fm = request.frontmatter
        from_file = {
            "status": ref_id(fm.get("status")),
            "assigned_to": ref_id(fm.get("assigned_to")),
            "done_ratio": fm.get("done_ratio"),
            "estimated_hours": fm.get("estimated_hours"),
            "start_date": fm.get("start_date"),
            "due_date": fm.get("due_date"),
        }
        merged = merge_update_fields(
            request.overrides,
            from_file,
            fields=[opt.name for opt in UPDATE_OPTIONS],
            clearable=_DATE_FIELDS,
        )
        options = {opt.name: opt for opt in UPDATE_OPTIONS}
        payload: dict[str, Any] = {}
        for key, value in merged.items():
            payload[_REMOTE_KEYS[key]] = coerce(options[key], value)
        if request.title:
            payload["subject"] = request.title
        description = (request.body or "").strip()
        if description:
            payload["description"] = description
        return payload

    def update(
        self, config: BackendConfig, identifier: str, request: UpdateRequest
    ) -> UpdateResult:
        self._require_config(config)
        logger = get_logger()
        payload = self.build_payload(request)
        if not payload:
            raise ValidationError(
                "no fields to update", {"backend": self.name, "identifier": identifier}
            )
        url = self._issue_url(config, identifier)
        logger.info(
            f"Redmine update payload for #{identifier}",
            url=url,
            payload=json.dumps({"issue": payload}, ensure_ascii=False),
        )
        if request.dry_run:
            return self._dry_run_result(identifier, payload, [])
        with self._transport() as transport:
            try:
                transport.put(
                    url,
                    headers=self._headers(config),
                    json_body={"issue": payload},
                    policy=self._update_policy(config),
                )
            except ApiError as exc:
                if exc.status == HTTP_NOT_FOUND:
                    raise self._not_found(identifier, exc) from exc
                raise
        logger.log_ticket_action("update", self.name, identifier, fields=sorted(payload))
        return UpdateResult(
            success=True,
            message=f"updated Redmine ticket {identifier}",
            updated_fields=payload,
        )


__all__ = ["RedminePlugin", "issue_to_local", "UPDATE_OPTIONS"]
