from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    normalize_error,
    redact,
)
from .logging import get_logger
from .retry import RetryPolicy, run_with_retries

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "ticketbridge/0.2.0"
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500
_BODY_PREVIEW = 500


def basic_auth_header(username: str, password: str) -> str:
    encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {encoded}"


def _classify_response(response: requests.Response, url: str) -> ApiError | AuthenticationError | None:
    status = response.status_code
    if status == HTTP_UNAUTHORIZED:
        return AuthenticationError(
            "authentication failed; check the API key or credentials",
            {"url": redact(url), "status": status},
        )
    if status == HTTP_FORBIDDEN:
        return AuthenticationError(
            "access denied for this resource",
            {"url": redact(url), "status": status},
        )
    if status == HTTP_TOO_MANY_REQUESTS:
        return ApiError(
            "rate limit reached; retry later",
            status,
            {"url": redact(url), "retry_after": response.headers.get("Retry-After")},
        )
    body = (response.text or "")[:_BODY_PREVIEW]
    if status >= HTTP_SERVER_ERROR:
        return ApiError(
            f"server error {status}",
            status,
            {"url": redact(url), "response_body": body},
        )
    if not response.ok:
        reason = getattr(response, "reason", "") or ""
        return ApiError(
            f"API error {status} {reason}".rstrip(),
            status,
            {"url": redact(url), "response_body": body},
        )
    return None


def _parse_body(response: requests.Response) -> Any:
    content_type = response.headers.get("Content-Type", "")
    if "application/json" in content_type and response.text:
        return response.json()
    return response.text


@dataclass
class HttpTransport:
    """Synchronous HTTP client that classifies failures and retries transient ones."""

    session: requests.Session | None = None
    timeout: float = DEFAULT_TIMEOUT
    policy: RetryPolicy | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def _attempt(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None,
        params: dict[str, Any] | None,
        json_body: Any | None,
        data: Any | None,
    ) -> Any:
        logger = get_logger()
        logger.debug(f"API request: {method} {url}")
        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_body,
                data=data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"request timed out after {self.timeout:.0f}s",
                {"url": redact(url), "code": "timeout", "original_error": redact(str(exc))},
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise NetworkError(
                "network error; no response received",
                {"url": redact(url), "original_error": redact(str(exc))},
            ) from exc
        logger.debug(f"API response: {response.status_code}", url=url)
        failure = _classify_response(response, url)
        if failure is not None:
            raise failure
        return _parse_body(response)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        data: Any | None = None,
        policy: RetryPolicy | None = None,
    ) -> Any:
        try:
            return run_with_retries(
                lambda: self._attempt(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json_body=json_body,
                    data=data,
                ),
                policy=policy or self.policy,
            )
        except Exception as exc:
            get_logger().log_error(f"API request failed: {method} {url}", error=str(exc))
            error = normalize_error(exc)
            if error is exc:
                raise
            raise error from exc

    def get(self, url: str, **kw: Any) -> Any:
        return self.request("GET", url, **kw)

    def put(self, url: str, **kw: Any) -> Any:
        return self.request("PUT", url, **kw)

    def patch(self, url: str, **kw: Any) -> Any:
        return self.request("PATCH", url, **kw)

    def close(self) -> None:
        if self.session is None:
            self._session.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["HttpTransport", "basic_auth_header", "DEFAULT_TIMEOUT"]
