"""Tests for ModelClient retry/backoff and the with_retry wrapper."""
import pytest

from app.core.errors import ModelCallFailed
from app.services.llm_client import (
    CancellationToken,
    RetryError,
    RetryPolicy,
    get_client,
    is_retryable,
    with_retry,
)
from conftest import completion, status_error, timeout_error


def _complete(client, **kw):
    return client.complete("system", "user", stage="test", temperature=0.2, **kw)


def test_server_errors_are_retried_until_success(make_client, sleeps):
    client = make_client(
        [status_error(500), status_error(500), status_error(500), completion("ok")],
        max_retries=4,
    )
    result = _complete(client)
    assert result.content == "ok"
    assert client.client.chat.completions.create.call_count == 4
    assert sleeps == [1.0, 2.0, 4.0]


def test_client_error_is_not_retried(make_client, sleeps):
    client = make_client([status_error(400), completion("never")], max_retries=4)
    with pytest.raises(ModelCallFailed) as excinfo:
        _complete(client)
    assert client.client.chat.completions.create.call_count == 1
    assert excinfo.value.status_code == 400
    assert excinfo.value.attempts == 1
    assert sleeps == []


def test_retries_exhausted_raises_model_call_failed(make_client):
    def always_timeout(**kwargs):
        raise timeout_error()

    client = make_client(always_timeout)
    with pytest.raises(ModelCallFailed) as excinfo:
        _complete(client)
    assert excinfo.value.attempts == 3
    assert client.client.chat.completions.create.call_count == 3


def test_rate_limit_retry_after_sets_base_delay(make_client, sleeps):
    client = make_client([status_error(429, {"retry-after": "5"}), completion("ok")])
    assert _complete(client).content == "ok"
    assert sleeps == [5.0]


def test_rate_limit_without_header_uses_policy_delay(make_client, sleeps):
    client = make_client([status_error(429), completion("ok")])
    assert _complete(client).content == "ok"
    assert sleeps == [1.0]


def test_empty_content_counts_as_failure(make_client):
    client = make_client([completion(""), completion("   "), completion("real")])
    assert _complete(client).content == "real"
    assert client.client.chat.completions.create.call_count == 3


def test_request_carries_wire_parameters(make_client, settings):
    client = make_client([completion("ok")])
    _complete(client, max_tokens=123, timeout=7.5)
    kwargs = client.client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert [m["role"] for m in kwargs["messages"]] == ["system", "user"]
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 123
    assert kwargs["timeout"] == 7.5
    assert kwargs["top_p"] == settings.top_p
    assert "frequency_penalty" in kwargs and "presence_penalty" in kwargs


def test_usage_is_accumulated(make_client):
    client = make_client([completion("a", total_tokens=10), completion("b", total_tokens=15)])
    _complete(client)
    _complete(client)
    assert client.tokens_used == 25
    assert client.calls == 2


def test_cancelled_token_stops_before_calling(make_client):
    client = make_client([completion("ok")])
    token = CancellationToken()
    token.cancel()
    with pytest.raises(ModelCallFailed):
        _complete(client, cancel=token)
    client.client.chat.completions.create.assert_not_called()


def test_throttle_sleeps_configured_delay(make_client, sleeps):
    client = make_client([completion("ok")], throttle_seconds=0.5)
    client.throttle()
    assert sleeps == [0.5]


def test_backoff_is_capped_and_jittered():
    policy = RetryPolicy(max_attempts=10, base_delay=1.0, max_delay=10.0, jitter=0.5)
    assert policy.delay(1, 1.0, lambda: 1.0) == 1.5
    assert policy.delay(3, 1.0, lambda: 0.0) == 4.0
    assert policy.delay(8, 1.0, lambda: 0.0) == 10.0


def test_with_retry_stops_on_non_retryable_error():
    calls = []

    def fn(attempt):
        calls.append(attempt)
        raise ValueError("bad input")

    policy = RetryPolicy(max_attempts=5, retryable=lambda e: not isinstance(e, ValueError))
    with pytest.raises(RetryError) as excinfo:
        with_retry(fn, policy, sleep=lambda s: None)
    assert calls == [1]
    assert isinstance(excinfo.value.cause, ValueError)


def test_with_retry_returns_first_success():
    attempts = []

    def fn(attempt):
        attempts.append(attempt)
        if attempt < 3:
            raise ConnectionError("flaky")
        return "done"

    policy = RetryPolicy(max_attempts=5, retryable=lambda e: True, jitter=0.0)
    waits = []
    assert with_retry(fn, policy, sleep=waits.append, rand=lambda: 0.0) == "done"
    assert attempts == [1, 2, 3]
    assert waits == [1.0, 2.0]


def test_retryable_classification():
    assert is_retryable(timeout_error())
    assert is_retryable(status_error(503))
    assert is_retryable(status_error(429))
    assert not is_retryable(status_error(401))
    assert not is_retryable(status_error(404))
    assert not is_retryable(RuntimeError("boom"))


def test_get_client_requires_credentials(settings):
    with pytest.raises(RuntimeError, match="AZURE_OPENAI_API_KEY"):
        get_client(settings.model_copy(update={"api_key": None}))
