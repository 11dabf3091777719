"""Tests for the SmobilPay client using httpx.MockTransport (no network)."""

from __future__ import annotations

import base64
import json
from decimal import Decimal

import httpx
import pytest

from app.core.config import Settings
from app.core.errors import AuthError, ProviderError
from app.services.provider.smobilpay import CollectRequest, SmobilPayClient

BASE = "https://s3p.example.test/v2"


@pytest.fixture
def config() -> Settings:
    return Settings(
        app_env="test",
        maviance_public_key="pub-key",
        maviance_secret_key="sec-key",
        maviance_merchant_number="677000000",
        maviance_base_url=BASE,
        public_base_url="https://payments.example.test",
    )


def _collect_request() -> CollectRequest:
    return CollectRequest(
        reference="KAM-1700000000000-ABCD1234",
        amount=Decimal("1000"),
        currency="XAF",
        payment_method="mtn",
        phone="690000000",
        payer_name="Amina",
        payer_email="amina@example.com",
        description="Abonnement Premium",
        callback_url="https://payments.example.test/api/payments/webhook/maviance",
        return_url="https://payments.example.test/api/payments/verify/KAM-1700000000000-ABCD1234",
    )


class Recorder:
    """MockTransport handler with per-path canned responses."""

    def __init__(self, routes: dict[str, httpx.Response]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for path, response in self.routes.items():
            if request.url.path.endswith(path):
                return response
        return httpx.Response(404, json={"message": "no route"})


def _token_ok() -> httpx.Response:
    return httpx.Response(200, json={"access_token": "tok-123", "token_type": "Bearer"})


def test_token_uses_basic_auth_and_client_credentials(config):
    recorder = Recorder({"/token": _token_ok()})
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))

    assert client.get_access_token() == "tok-123"

    request = recorder.requests[0]
    expected = base64.b64encode(b"pub-key:sec-key").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.content == b"grant_type=client_credentials"


def test_token_rejected_raises_auth_error(config):
    recorder = Recorder({"/token": httpx.Response(401, json={"error": "invalid_client"})})
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))
    with pytest.raises(AuthError):
        client.get_access_token()


def test_missing_keys_raise_auth_error(config):
    config.maviance_secret_key = None
    client = SmobilPayClient(config, transport=httpx.MockTransport(Recorder({})))
    with pytest.raises(AuthError):
        client.get_access_token()


def test_collect_payment_sends_order_and_returns_url(config):
    recorder = Recorder(
        {
            "/token": _token_ok(),
            "/collect": httpx.Response(
                200, json={"status": "PENDING", "paymentUrl": "https://pay.test/abc"}
            ),
        }
    )
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))

    result = client.collect_payment(_collect_request())

    assert result.payment_url == "https://pay.test/abc"
    assert result.provider_status == "PENDING"

    collect = recorder.requests[1]
    assert collect.headers["Authorization"] == "Bearer tok-123"
    body = json.loads(collect.content)
    assert body["orderid"] == "KAM-1700000000000-ABCD1234"
    assert body["serviceid"] == "6131"
    assert body["amount"] == {"value": "1000", "currency": "XAF"}
    assert body["merchant"] == {"number": "677000000"}
    assert body["payer"]["phone"] == "690000000"


def test_collect_reads_alternate_url_field(config):
    recorder = Recorder(
        {
            "/token": _token_ok(),
            "/collect": httpx.Response(200, json={"authorization_url": "https://pay.test/alt"}),
        }
    )
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))
    result = client.collect_payment(_collect_request())
    assert result.payment_url == "https://pay.test/alt"
    assert result.provider_status == "PENDING"


def test_collect_without_url_is_provider_error(config):
    recorder = Recorder(
        {"/token": _token_ok(), "/collect": httpx.Response(200, json={"status": "PENDING"})}
    )
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))
    with pytest.raises(ProviderError) as exc_info:
        client.collect_payment(_collect_request())
    assert exc_info.value.status_code == 500


def test_collect_4xx_passes_through_as_400(config):
    recorder = Recorder(
        {
            "/token": _token_ok(),
            "/collect": httpx.Response(422, json={"message": "invalid phone"}),
        }
    )
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))
    with pytest.raises(ProviderError) as exc_info:
        client.collect_payment(_collect_request())
    assert exc_info.value.http_status == 422
    assert exc_info.value.status_code == 400
    assert exc_info.value.body == {"message": "invalid phone"}


def test_collect_401_is_server_error(config):
    recorder = Recorder(
        {"/token": _token_ok(), "/collect": httpx.Response(401, json={"message": "bad token"})}
    )
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))
    with pytest.raises(ProviderError) as exc_info:
        client.collect_payment(_collect_request())
    assert exc_info.value.status_code == 500


def test_timeout_is_provider_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token"):
            return _token_ok()
        raise httpx.ReadTimeout("timed out", request=request)

    client = SmobilPayClient(config, transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderError):
        client.collect_payment(_collect_request())


def test_query_status_reads_first_entry(config):
    recorder = Recorder(
        {
            "/token": _token_ok(),
            "/verifytx": httpx.Response(200, json=[{"status": "SUCCESSFUL", "ptn": "99"}]),
        }
    )
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))

    assert client.query_status("KAM-1") == "SUCCESSFUL"
    assert recorder.requests[1].url.params["trid"] == "KAM-1"


def test_query_status_empty_list_is_none(config):
    recorder = Recorder({"/token": _token_ok(), "/verifytx": httpx.Response(200, json=[])})
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))
    assert client.query_status("KAM-1") is None


def test_each_call_reauthenticates(config):
    recorder = Recorder(
        {"/token": _token_ok(), "/verifytx": httpx.Response(200, json={"status": "PENDING"})}
    )
    client = SmobilPayClient(config, transport=httpx.MockTransport(recorder))
    client.query_status("KAM-1")
    client.query_status("KAM-1")
    token_calls = [r for r in recorder.requests if r.url.path.endswith("/token")]
    assert len(token_calls) == 2
