from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest
import requests

from ticketbridge import __version__
from ticketbridge.cli import main

ISSUE = {
    "id": 1234,
    "status": {"id": 1, "name": "New"},
    "subject": "Add search",
    "description": "Search box.",
}


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(
        textwrap.dedent(
            f"""\
            integration:
              pm_tool:
                type: redmine
                output_dir: {tmp_path / "tickets"}
                redmine:
                  url: https://t.example.com
                  api_key: secret-key
                backlog:
                  url: https://acme.backlog.com
                  api_key: bl-key
            """
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def _fake_http(monkeypatch: pytest.MonkeyPatch, session) -> None:
    monkeypatch.setattr(requests, "Session", lambda: session)


def test_version(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    assert main(["--config", str(tmp_path / "missing.yml"), "version"]) == 0
    assert capsys.readouterr().out.strip() == f"ticketbridge {__version__}"


def test_fetch_writes_file(config_path, session, make_response, capsys, tmp_path: Path) -> None:
    session.queue(make_response(200, {"issue": ISSUE}))
    assert main(["--config", str(config_path), "fetch", "https://t.example.com/issues/1234"]) == 0
    out = capsys.readouterr().out.strip()
    assert out == str(tmp_path / "tickets" / "ticket-1234.md")
    assert "Add search" in Path(out).read_text(encoding="utf-8")


def test_fetch_stdout(config_path, session, make_response, capsys) -> None:
    session.queue(make_response(200, {"issue": ISSUE}))
    assert main(["--config", str(config_path), "fetch", "1234", "--stdout"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("---\nid: 1234\n")
    assert "Add search\n" + "=" * 25 in out


def test_fetch_json_to_dir(config_path, session, make_response, capsys, tmp_path: Path) -> None:
    session.queue(make_response(200, {"issue": ISSUE}))
    args = ["--config", str(config_path), "fetch", "1234", "--json", "--dir", str(tmp_path / "x"), "--prefix", "rm-"]
    assert main(args) == 0
    path = tmp_path / "x" / "rm-1234.json"
    assert json.loads(path.read_text(encoding="utf-8"))["metadata"]["id"] == 1234


def test_fetch_foreign_url_fails(config_path, session, capsys) -> None:
    assert main(["--config", str(config_path), "fetch", "https://other.example.com/issues/1"]) == 1
    err = capsys.readouterr().err
    assert "error: URL does not match the configured tracker" in err
    assert session.calls == []


def test_update_dry_run_prints_payload(config_path, session, capsys) -> None:
    args = ["--config", str(config_path), "update", "1234", "--dry-run", "--comment", "done", "--status", "2"]
    assert main(args) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["success"] is True
    assert result["dry_run"] is True
    assert result["updated_fields"] == {"notes": "done", "status_id": 2}
    assert session.calls == []


def test_update_not_found_exit_code(config_path, session, make_response, capsys) -> None:
    session.queue(make_response(404, None))
    assert main(["--config", str(config_path), "update", "999", "--comment", "x"]) == 1
    err = capsys.readouterr().err
    assert "error: Redmine ticket 999 not found" in err
    assert '"backend": "redmine"' in err


def test_backend_override_changes_update_flags(config_path, session, make_response, capsys) -> None:
    current = {"issueKey": "PROJ-1", "summary": "Task", "actualHours": None}
    session.queue(make_response(200, current))
    args = [
        "--config", str(config_path), "--backend", "backlog",
        "update", "PROJ-1", "--actual-hours", "1.5", "--dry-run",
    ]
    assert main(args) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["updated_fields"] == {"actualHours": 1.5}
    assert session.methods == ["GET"]


def test_backend_specific_flag_rejected(config_path) -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--config", str(config_path), "--backend", "backlog", "update", "PROJ-1", "--status", "2"])
    assert exc.value.code == 2


def test_validate(config_path, capsys) -> None:
    assert main(["--config", str(config_path), "validate"]) == 0
    assert "redmine: configuration OK" in capsys.readouterr().out


def test_validate_reports_problems(tmp_path: Path, capsys) -> None:
    path = tmp_path / "config.yml"
    path.write_text("integration:\n  pm_tool:\n    type: backlog\n    backlog:\n      url: https://a\n")
    assert main(["--config", str(path), "validate"]) == 1
    assert "backlog: Backlog API key is not configured" in capsys.readouterr().err


def test_missing_config(tmp_path: Path, capsys) -> None:
    assert main(["--config", str(tmp_path / "missing.yml"), "validate"]) == 1
    assert "Configuration file not found" in capsys.readouterr().err


def test_unknown_backend_in_config(tmp_path: Path, capsys) -> None:
    path = tmp_path / "config.yml"
    path.write_text("integration:\n  pm_tool:\n    type: jira\n    jira:\n      url: https://j\n")
    assert main(["--config", str(path), "validate"]) == 1
    assert 'unknown backend "jira"' in capsys.readouterr().err
