from __future__ import annotations

import pytest

from ticketbridge.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    TicketBridgeError,
)
from ticketbridge.retry import (
    RetryPolicy,
    env_attempts,
    is_transient,
    is_transient_write,
    run_with_retries,
)


class _Flaky:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


@pytest.fixture(autouse=True)
def _clear_retry_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TICKETBRIDGE_RETRY_ATTEMPTS", raising=False)
    monkeypatch.delenv("TICKETBRIDGE_RETRY_BASE", raising=False)


def test_default_policy() -> None:
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert policy.initial_delay == 1.0
    assert policy.max_delay == 10.0
    assert policy.backoff_multiplier == 2.0
    assert policy.should_retry is is_transient


def test_policy_defaults_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TICKETBRIDGE_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("TICKETBRIDGE_RETRY_BASE", "0.25")
    policy = RetryPolicy()
    assert policy.max_attempts == 5
    assert policy.initial_delay == 0.25


def test_success_after_transient_failures(sleeps: list[float]) -> None:
    fn = _Flaky([ApiError("server error 503", 503), NetworkError("reset")])
    assert run_with_retries(fn) == "ok"
    assert fn.calls == 3
    assert sleeps == [1.0, 2.0]


def test_gives_up_after_max_attempts(sleeps: list[float]) -> None:
    errors = [ApiError(f"server error 50{i}", 502) for i in range(3)]
    fn = _Flaky(list(errors))
    with pytest.raises(ApiError) as exc:
        run_with_retries(fn)
    assert exc.value is errors[-1]
    assert fn.calls == 3
    assert len(sleeps) == 2


def test_delay_is_capped(sleeps: list[float]) -> None:
    policy = RetryPolicy(max_attempts=5, initial_delay=4.0)
    fn = _Flaky([NetworkError("down") for _ in range(5)])
    with pytest.raises(NetworkError):
        run_with_retries(fn, policy=policy)
    assert sleeps == [4.0, 8.0, 10.0, 10.0]


def test_authentication_error_is_not_retried(sleeps: list[float]) -> None:
    fn = _Flaky([AuthenticationError("denied")])
    with pytest.raises(AuthenticationError):
        run_with_retries(fn)
    assert fn.calls == 1
    assert sleeps == []


def test_client_error_is_not_retried() -> None:
    fn = _Flaky([ApiError("API error 422", 422)])
    with pytest.raises(ApiError):
        run_with_retries(fn)
    assert fn.calls == 1


def test_single_attempt_policy() -> None:
    fn = _Flaky([NetworkError("down")])
    with pytest.raises(NetworkError):
        run_with_retries(fn, policy=RetryPolicy(max_attempts=1))
    assert fn.calls == 1


def test_transient_classification() -> None:
    assert is_transient(ApiError("rate", 429))
    assert is_transient(ApiError("server", 500))
    assert is_transient(ApiError("server", 599))
    assert is_transient(NetworkError("reset"))
    assert is_transient(TicketBridgeError("slow", {"code": "ETIMEDOUT"}))
    assert not is_transient(ApiError("bad", 400))
    assert not is_transient(AuthenticationError("no", {"status": 503}))
    assert not is_transient(ValueError("nope"))


def test_write_predicate_refuses_rejected_writes() -> None:
    assert not is_transient_write(ApiError("bad", 400))
    assert not is_transient_write(ApiError("missing", 404))
    assert is_transient_write(ApiError("server", 503))
    assert is_transient_write(NetworkError("reset"))


def test_write_policy_stops_on_404(sleeps: list[float]) -> None:
    fn = _Flaky([ApiError("missing", 404)])
    with pytest.raises(ApiError):
        run_with_retries(fn, policy=RetryPolicy.for_writes())
    assert fn.calls == 1
    assert sleeps == []


def test_write_policy_defaults_to_two_attempts() -> None:
    policy = RetryPolicy.for_writes()
    assert policy.max_attempts == 2
    assert policy.should_retry is is_transient_write
    fn = _Flaky([ApiError("server", 500), ApiError("server", 500)])
    with pytest.raises(ApiError):
        run_with_retries(fn, policy=policy)
    assert fn.calls == 2


def test_with_attempts() -> None:
    policy = RetryPolicy()
    assert policy.with_attempts(None) is policy
    assert policy.with_attempts(7).max_attempts == 7


@pytest.mark.parametrize(
    ("name", "value"),
    [("TICKETBRIDGE_RETRY_ATTEMPTS", "many"), ("TICKETBRIDGE_RETRY_BASE", "fast")],
)
def test_invalid_environment_value_is_a_configuration_error(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError) as exc:
        RetryPolicy()
    assert name in exc.value.message
    assert exc.value.details == {"variable": name}


def test_env_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    assert env_attempts() is None
    monkeypatch.setenv("TICKETBRIDGE_RETRY_ATTEMPTS", "  ")
    assert env_attempts() is None
    monkeypatch.setenv("TICKETBRIDGE_RETRY_ATTEMPTS", "4")
    assert env_attempts() == 4
