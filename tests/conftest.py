"""Pytest configuration for ticketbridge tests.

Puts the in-repo ``src`` directory on ``sys.path`` so the package imports
without an editable install, and provides fake ``requests`` sessions so no
test touches the network.
"""

from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from typing import Any

import pytest
from requests.structures import CaseInsensitiveDict

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ticketbridge.config import BackendConfig, ToolConfig  # noqa: E402
from ticketbridge.logging import configure_logging  # noqa: E402
from ticketbridge.transport import HttpTransport  # noqa: E402


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        headers: dict[str, str] | None = None,
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        self.payload = payload
        self.reason = reason
        self.headers: CaseInsensitiveDict[str] = CaseInsensitiveDict(headers or {})
        if isinstance(payload, (dict, list)):
            self.headers.setdefault("Content-Type", "application/json; charset=utf-8")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        if self.payload is None:
            return ""
        if isinstance(self.payload, (dict, list)):
            return json.dumps(self.payload)
        return str(self.payload)

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, responses: list[Any] | None = None) -> None:
        self._responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []
        self.headers: dict[str, str] = {}

    def queue(self, *responses: Any) -> None:
        self._responses.extend(responses)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        data: Any | None = None,
        timeout: float | None = None,
    ) -> FakeResponse:
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers or {},
                "params": params,
                "json": json,
                "data": data,
                "timeout": timeout,
            }
        )
        if not self._responses:
            raise AssertionError(f"No response queued for {method} {url}")
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def methods(self) -> list[str]:
        return [c["method"] for c in self.calls]

    def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
def _fresh_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    # rebind the handler to the stderr stream pytest installed for this test
    monkeypatch.delenv("TICKETBRIDGE_LOG_LEVEL", raising=False)
    configure_logging(level="DEBUG")


@pytest.fixture(autouse=True)
def _default_retry_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TICKETBRIDGE_RETRY_ATTEMPTS", raising=False)
    monkeypatch.delenv("TICKETBRIDGE_RETRY_BASE", raising=False)


@pytest.fixture(autouse=True)
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(time, "sleep", lambda sec: recorded.append(sec))
    return recorded


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def transport_factory(session: FakeSession):
    return lambda: HttpTransport(session=session)


@pytest.fixture
def redmine_config() -> BackendConfig:
    return BackendConfig(url="https://t.example.com", api_key="secret-key")


@pytest.fixture
def backlog_config() -> BackendConfig:
    return BackendConfig(url="https://acme.backlog.com", api_key="bl-key")


@pytest.fixture
def tool_config(redmine_config: BackendConfig, backlog_config: BackendConfig, tmp_path: Path) -> ToolConfig:
    return ToolConfig(
        backend="redmine",
        backends={"redmine": redmine_config, "backlog": backlog_config},
        output_dir=str(tmp_path / "tickets"),
    )


@pytest.fixture
def make_response():
    return FakeResponse
