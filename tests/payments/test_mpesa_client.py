"""DarajaClient against httpx.MockTransport: token caching, payload, failure mapping."""
import base64
import json
from datetime import datetime, timezone

import httpx
import pybreaker
import pytest

from app.services.mpesa.client import DarajaClient, build_password, mpesa_timestamp
from app.services.payments.errors import ProviderUnavailable


def _handler(calls, stk_status=200, stk_body=None, oauth_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/oauth/v1/generate":
            if oauth_status != 200:
                return httpx.Response(oauth_status, text="bad credentials")
            return httpx.Response(200, json={"access_token": "tok-123", "expires_in": "3599"})
        if request.url.path == "/mpesa/stkpush/v1/processrequest":
            body = stk_body if stk_body is not None else {
                "MerchantRequestID": "m-1",
                "CheckoutRequestID": "ws_CO_1",
                "ResponseCode": "0",
            }
            return httpx.Response(stk_status, json=body)
        return httpx.Response(404)
    return handler


def _client(handler, fail_max=5):
    breaker = pybreaker.CircuitBreaker(fail_max=fail_max, reset_timeout=60)
    return DarajaClient(transport=httpx.MockTransport(handler), breaker=breaker)


def test_timestamp_is_nairobi_time():
    # 21:30 UTC is 00:30 next day in Nairobi
    assert mpesa_timestamp(datetime(2024, 1, 31, 21, 30, 5, tzinfo=timezone.utc)) == "20240201003005"


def test_password_is_base64_of_shortcode_passkey_timestamp():
    password = build_password("174379", "passkey", "20240101120000")
    assert base64.b64decode(password).decode() == "174379passkey20240101120000"


def test_token_uses_basic_auth_and_is_cached():
    calls = []
    client = _client(_handler(calls))
    assert client.get_access_token() == "tok-123"
    assert client.get_access_token() == "tok-123"
    oauth_calls = [c for c in calls if c.url.path == "/oauth/v1/generate"]
    assert len(oauth_calls) == 1
    expected = base64.b64encode(b"test-key:test-secret").decode()
    assert oauth_calls[0].headers["Authorization"] == f"Basic {expected}"
    assert oauth_calls[0].url.params["grant_type"] == "client_credentials"


def test_stk_push_payload():
    calls = []
    client = _client(_handler(calls))
    result = client.stk_push("254712345678", 3500, "ORDER-1", "Job account")
    assert result["ResponseCode"] == "0"

    push = [c for c in calls if c.url.path == "/mpesa/stkpush/v1/processrequest"][0]
    assert push.headers["Authorization"] == "Bearer tok-123"
    payload = json.loads(push.content)
    assert payload["BusinessShortCode"] == "174379"
    assert payload["PartyB"] == "174379"
    assert payload["TransactionType"] == "CustomerPayBillOnline"
    assert payload["Amount"] == 3500
    assert payload["PartyA"] == payload["PhoneNumber"] == "254712345678"
    assert payload["AccountReference"] == "ORDER-1"
    assert payload["TransactionDesc"] == "Job account"
    assert payload["CallBackURL"] == "https://api.example.com/payments/mpesa/callback"
    decoded = base64.b64decode(payload["Password"]).decode()
    assert decoded == f"174379test-passkey{payload['Timestamp']}"


def test_client_error_body_is_returned():
    calls = []
    body = {"requestId": "r-1", "errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid PhoneNumber"}
    client = _client(_handler(calls, stk_status=400, stk_body=body))
    assert client.stk_push("254712345678", 10, "REF", "Payment") == body


def test_server_error_is_unavailable():
    client = _client(_handler([], stk_status=503, stk_body={}))
    with pytest.raises(ProviderUnavailable):
        client.stk_push("254712345678", 10, "REF", "Payment")


def test_oauth_failure_is_unavailable():
    client = _client(_handler([], oauth_status=401))
    with pytest.raises(ProviderUnavailable):
        client.stk_push("254712345678", 10, "REF", "Payment")


def test_network_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(ProviderUnavailable):
        client.get_access_token()


def test_open_breaker_fails_fast():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    client = _client(handler, fail_max=2)
    for _ in range(3):
        with pytest.raises(ProviderUnavailable):
            client.get_access_token()
    # third attempt rejected by the open breaker without a request
    assert len(calls) == 2
