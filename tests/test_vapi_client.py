"""Vapi client retry policy.

Invariants:
    - 5xx responses and transport errors are retried up to max_retries attempts
    - 429 waits for Retry-After when present, otherwise retry_delay * attempt
    - Other 4xx responses raise VapiError at once, carrying the vendor status
    - DELETE returns None; requests carry the bearer API key
"""

import httpx
import pytest

from app.core.errors import VapiError
from app.integrations.vapi_client import VapiClient


def make_client(handler, sleeps, max_retries=3):
    return VapiClient(
        api_key="test-key",
        base_url="https://vapi.test",
        max_retries=max_retries,
        retry_delay=1.0,
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
    )


def test_retries_server_errors_then_succeeds():
    attempts = []
    sleeps = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(502, json={"message": "bad gateway"})
        return httpx.Response(200, json={"id": "asst-1", "name": "Front desk"})

    client = make_client(handler, sleeps)
    assert client.get_assistant("asst-1") == {"id": "asst-1", "name": "Front desk"}
    assert len(attempts) == 3
    assert sleeps == [1.0, 2.0]


def test_gives_up_after_max_retries():
    attempts = []
    sleeps = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(503, json={"message": "unavailable"})

    client = make_client(handler, sleeps)
    with pytest.raises(VapiError) as exc_info:
        client.list_assistants()
    assert exc_info.value.vapi_status == 503
    assert exc_info.value.status_code == 502
    assert len(attempts) == 3
    # No sleep after the final attempt
    assert sleeps == [1.0, 2.0]


def test_rate_limit_honours_retry_after():
    attempts = []
    sleeps = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            return httpx.Response(429, headers={"Retry-After": "7"}, json={"message": "slow down"})
        return httpx.Response(200, json=[])

    client = make_client(handler, sleeps)
    assert client.list_calls(assistant_id="asst-1") == []
    assert sleeps == [7.0]
    assert attempts[1].url.params["assistantId"] == "asst-1"


def test_rate_limit_without_header_uses_linear_backoff():
    sleeps = []
    responses = iter([
        httpx.Response(429, json={}),
        httpx.Response(429, json={}),
        httpx.Response(200, json={"id": "call-1"}),
    ])

    client = make_client(lambda request: next(responses), sleeps)
    assert client.get_call("call-1") == {"id": "call-1"}
    assert sleeps == [1.0, 2.0]


def test_client_errors_are_not_retried():
    attempts = []
    sleeps = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(400, json={"message": ["name must be shorter than 40 characters"]})

    client = make_client(handler, sleeps)
    with pytest.raises(VapiError) as exc_info:
        client.create_assistant({"name": "x" * 50})
    assert len(attempts) == 1
    assert sleeps == []
    assert exc_info.value.vapi_status == 400
    assert exc_info.value.status_code == 400
    assert "name must be shorter" in exc_info.value.message


def test_not_found_status_is_exposed():
    client = make_client(lambda request: httpx.Response(404, json={"message": "Not Found"}), [])
    with pytest.raises(VapiError) as exc_info:
        client.delete_phone_number("phone-1")
    assert exc_info.value.vapi_status == 404


def test_transport_errors_are_retried():
    attempts = []
    sleeps = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(201, json={"id": "phone-1"})

    client = make_client(handler, sleeps)
    assert client.create_phone_number({"number": "+14155550100"}) == {"id": "phone-1"}
    assert len(attempts) == 2
    assert sleeps == [1.0]


def test_delete_returns_none_and_sends_bearer_key():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "asst-1"})

    client = make_client(handler, [])
    assert client.delete_assistant("asst-1") is None
    assert seen[0].method == "DELETE"
    assert seen[0].url.path == "/assistant/asst-1"
    assert seen[0].headers["authorization"] == "Bearer test-key"


def test_update_uses_patch():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "asst-1", "maxDurationSeconds": 10})

    client = make_client(handler, [])
    client.update_assistant("asst-1", {"maxDurationSeconds": 10})
    assert seen[0].method == "PATCH"


def test_missing_api_key_is_rejected():
    with pytest.raises(VapiError):
        VapiClient(api_key="")
