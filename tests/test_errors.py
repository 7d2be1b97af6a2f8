from __future__ import annotations

from ticketbridge.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    NetworkError,
    TicketBridgeError,
    UnknownError,
    ValidationError,
    normalize_error,
    redact,
)


def test_each_subclass_has_fixed_kind() -> None:
    assert ConfigurationError("x").kind is ErrorKind.CONFIGURATION
    assert AuthenticationError("x").kind is ErrorKind.AUTHENTICATION
    assert ApiError("x", 500).kind is ErrorKind.API
    assert NetworkError("x").kind is ErrorKind.NETWORK
    assert ValidationError("x").kind is ErrorKind.VALIDATION
    assert UnknownError("x").kind is ErrorKind.UNKNOWN


def test_to_dict_includes_status_for_api_errors() -> None:
    err = ApiError("server error 503", 503, {"url": "https://t.example.com"})
    data = err.to_dict()
    assert data == {
        "kind": "api",
        "message": "server error 503",
        "details": {"url": "https://t.example.com"},
        "status": 503,
    }
    assert "status" not in ValidationError("bad").to_dict()


def test_details_are_copied() -> None:
    details = {"field": "status"}
    err = ValidationError("bad", details)
    details["field"] = "other"
    assert err.details == {"field": "status"}


def test_normalize_returns_classified_errors_unchanged() -> None:
    err = NetworkError("down")
    assert normalize_error(err) is err


def test_normalize_wraps_unexpected_exceptions() -> None:
    try:
        raise KeyError("issue")
    except KeyError as exc:
        wrapped = normalize_error(exc)
    assert isinstance(wrapped, UnknownError)
    assert isinstance(wrapped, TicketBridgeError)
    assert wrapped.details["original_type"] == "KeyError"
    assert "Traceback" in wrapped.details["traceback"]
    assert isinstance(wrapped.__cause__, KeyError)


def test_normalize_uses_type_name_for_empty_message() -> None:
    wrapped = normalize_error(RuntimeError())
    assert wrapped.message == "RuntimeError"


def test_redact_masks_credentials() -> None:
    assert redact("GET /api/v2/issues/A-1?apiKey=abc123&x=1") == (
        "GET /api/v2/issues/A-1?apiKey=<redacted>&x=1"
    )
    assert "s3cret" not in redact("{'X-Redmine-API-Key': 's3cret'}")
    assert redact("Authorization: Basic dXNlcjpwYXNz") == "Authorization: Basic <redacted>"
    assert redact("") == ""
    assert redact("nothing to hide") == "nothing to hide"
