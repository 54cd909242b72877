"""Tests for KlarnaClient and the generic ApiResource against a mock transport."""

import base64

import httpx
import pytest

from conftest import FakeKlarna
from klarna_payments.domain.exceptions import RemoteApiError
from klarna_payments.domain.gateway import GatewayConfig
from klarna_payments.domain.klarna import MerchantSession, Session, UpdateMerchantReferences
from klarna_payments.infrastructure.klarna_client import (
    USER_AGENT,
    ApiResource,
    KlarnaApi,
    KlarnaClient,
)


@pytest.fixture
def client(http_client: httpx.Client, gateway_config: GatewayConfig) -> KlarnaClient:
    return KlarnaClient.from_config(http_client, gateway_config)


# ---------------------------------------------------------------------------
# KlarnaClient.request
# ---------------------------------------------------------------------------


def test_request_sends_auth_and_json(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(fixture="create-credit-session")

    body = client.request("POST", "/payments/v1/sessions", Session(purchase_country="US"))

    assert body["session_id"] == "068df369-13a7-4d47-a564-62f8408bb760"

    request = klarna.requests[0]
    assert str(request.url) == "https://api-na.playground.klarna.com/payments/v1/sessions"
    assert request.headers["User-Agent"] == USER_AGENT
    expected = base64.b64encode(b"PK0001_test:secret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    # None values never reach the wire.
    assert klarna.body(0) == {"purchase_country": "US", "order_lines": []}


def test_request_empty_body(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(204)

    assert client.request("POST", "/ordermanagement/v1/orders/abc/cancel") == {}
    assert klarna.requests[0].content == b""


def test_request_extra_headers(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(204)

    client.request("POST", "/x", headers={"Klarna-Idempotency-Key": "key-1"})

    assert klarna.requests[0].headers["Klarna-Idempotency-Key"] == "key-1"


def test_request_error_status(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(404, {"error_code": "NOT_FOUND", "error_messages": ["Invalid session id"]})

    with pytest.raises(RemoteApiError) as exc_info:
        client.request("GET", "/payments/v1/sessions/missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.is_not_found
    assert "NOT_FOUND" in exc_info.value.body


def test_request_transport_error(gateway_config: GatewayConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = KlarnaClient.from_config(
        httpx.Client(transport=httpx.MockTransport(handler)), gateway_config
    )

    with pytest.raises(RemoteApiError, match="request failed") as exc_info:
        client.request("GET", "/payments/v1/sessions/abc")

    assert exc_info.value.status_code is None


def test_request_malformed_json(gateway_config: GatewayConfig) -> None:
    client = KlarnaClient.from_config(
        httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))),
        gateway_config,
    )

    with pytest.raises(RemoteApiError, match="Malformed"):
        client.request("GET", "/payments/v1/sessions/abc")


# ---------------------------------------------------------------------------
# ApiResource / KlarnaApi
# ---------------------------------------------------------------------------


def test_resource_formats_and_quotes_path(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(fixture="read-credit-session")

    session = ApiResource(client, "/payments/v1/sessions/{session_id}", Session).get(
        session_id="a/b c"
    )

    assert isinstance(session, Session)
    assert session.status == "incomplete"
    assert klarna.requests[0].url.raw_path == b"/payments/v1/sessions/a%2Fb%20c"


def test_resource_without_model_returns_none(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(204)

    assert KlarnaApi(client).cancel.post(order_id="abc") is None
    assert klarna.calls() == [("POST", "/ordermanagement/v1/orders/abc/cancel")]


def test_resource_rejects_malformed_response(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(200, {"client_token": "no session id"})

    with pytest.raises(RemoteApiError, match="Malformed MerchantSession"):
        KlarnaApi(client).sessions.post(Session())


def test_resource_patch(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(204)

    KlarnaApi(client).merchant_references.patch(
        UpdateMerchantReferences(merchant_reference1="1001"), order_id="abc"
    )

    assert klarna.calls() == [("PATCH", "/ordermanagement/v1/orders/abc/merchant-references")]
    assert klarna.body(0) == {"merchant_reference1": "1001"}


def test_sessions_create_parses_merchant_session(client: KlarnaClient, klarna: FakeKlarna) -> None:
    klarna.queue(fixture="create-credit-session")

    response = KlarnaApi(client).sessions.post(Session())

    assert isinstance(response, MerchantSession)
    assert response.payment_method_categories[0]["identifier"] == "pay_later"
