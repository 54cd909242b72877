"""Shared fixtures: a Klarna order factory and a queued mock Klarna API."""

import json
from collections.abc import Callable
from decimal import Decimal
from pathlib import Path
from typing import Any

import httpx
import pytest

from klarna_payments.domain.gateway import KLARNA_PLUGIN_ID, GatewayConfig, PaymentGateway
from klarna_payments.domain.order import Order, OrderItem, Payment, Price, Store

FIXTURES = Path(__file__).parent / "fixtures"


class FakeKlarna:
    """MockTransport handler answering requests from a FIFO of queued responses."""

    def __init__(self) -> None:
        self.responses: list[httpx.Response] = []
        self.requests: list[httpx.Request] = []

    def queue(self, status_code: int = 200, json_body: Any = None, fixture: str | None = None) -> None:
        if fixture is not None:
            json_body = load_fixture(fixture)
        if json_body is None:
            self.responses.append(httpx.Response(status_code))
        else:
            self.responses.append(httpx.Response(status_code, json=json_body))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        return self.responses.pop(0)

    def calls(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.path) for r in self.requests]

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


class MemoryStorage:
    """In-memory order and payment storage; payments are keyed by id."""

    def __init__(self) -> None:
        self.orders: list[Order] = []
        self.payments: dict[str, Payment] = {}

    def save(self, entity: Order | Payment) -> None:
        if isinstance(entity, Payment):
            self.payments[entity.id] = entity
        else:
            self.orders.append(entity)

    def load_by_order(self, gateway_id: str, order_id: str) -> list[Payment]:
        return [
            p for p in self.payments.values()
            if p.payment_gateway_id == gateway_id and p.order_id == order_id
        ]

    def load_by_remote_id(self, remote_id: str) -> Payment | None:
        return next((p for p in self.payments.values() if p.remote_id == remote_id), None)


def load_fixture(name: str) -> dict:
    return json.loads((FIXTURES / f"{name}.json").read_text())


def usd(number: str) -> Price:
    return Price(number=Decimal(number), currency_code="USD")


@pytest.fixture
def klarna() -> FakeKlarna:
    return FakeKlarna()


@pytest.fixture
def http_client(klarna: FakeKlarna) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(klarna))


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        gateway_id="klarna_payments",
        username="PK0001_test",
        password="secret",
        region="na",
        return_base_url="https://shop.example.com",
    )


@pytest.fixture
def gateway(gateway_config: GatewayConfig) -> PaymentGateway:
    return PaymentGateway(id="klarna_payments", plugin=KLARNA_PLUGIN_ID, configuration=gateway_config)


@pytest.fixture
def make_order(gateway: PaymentGateway) -> Callable[..., Order]:
    """Factory for a 2.00 USD order with a single item, no tax and no addresses."""

    def _make(**overrides: Any) -> Order:
        fields: dict[str, Any] = {
            "id": "1",
            "order_number": "1",
            "email": "customer@example.com",
            "store": Store(id="default", country_code="US"),
            "total_price": usd("2.00"),
            "items": [OrderItem(id="1", title="Test", quantity=1, unit_price=usd("2.00"))],
            "payment_gateway": gateway,
        }
        fields.update(overrides)
        return Order(**fields)

    return _make


@pytest.fixture
def order(make_order: Callable[..., Order]) -> Order:
    return make_order()
