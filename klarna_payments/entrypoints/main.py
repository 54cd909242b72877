import json
from dataclasses import dataclass
from decimal import Decimal

import httpx
from loguru import logger

from klarna_payments.application.api_manager import ApiManager
from klarna_payments.application.event_dispatcher import EventDispatcher
from klarna_payments.application.gateway_service import GatewayService
from klarna_payments.application.push_endpoint import PushEndpoint
from klarna_payments.application.request_builder import RequestBuilder
from klarna_payments.domain.gateway import KLARNA_PLUGIN_ID, PaymentGateway
from klarna_payments.domain.interfaces import IOrderStorage, IPaymentStorage
from klarna_payments.domain.order import Order, OrderItem, Payment, Price, Store
from klarna_payments.entrypoints.settings import Config, config


@dataclass
class KlarnaServices:
    dispatcher: EventDispatcher
    api_manager: ApiManager
    gateway_service: GatewayService
    push_endpoint: PushEndpoint


def build_services(
    settings: Config,
    order_storage: IOrderStorage,
    payment_storage: IPaymentStorage,
    http_client: httpx.Client | None = None,
) -> KlarnaServices:
    """Wire the Klarna services; ``http_client`` defaults to a real client."""
    dispatcher = EventDispatcher()
    api_manager = ApiManager(
        dispatcher=dispatcher,
        request_builder=RequestBuilder(language=settings.KLARNA_LANGUAGE),
        order_storage=order_storage,
        http_client=http_client or httpx.Client(timeout=settings.KLARNA_HTTP_TIMEOUT),
    )
    gateway_service = GatewayService(api_manager, payment_storage, order_storage)
    return KlarnaServices(
        dispatcher=dispatcher,
        api_manager=api_manager,
        gateway_service=gateway_service,
        push_endpoint=PushEndpoint(api_manager, gateway_service, dispatcher),
    )


class _DryRunStorage:
    """Keeps saved payments in memory and only logs order saves."""

    def __init__(self) -> None:
        self.payments: dict[str, Payment] = {}

    def save(self, entity: Order | Payment) -> None:
        if isinstance(entity, Payment):
            self.payments[entity.id] = entity
        logger.info(f"[Storage] saved {type(entity).__name__} {entity.id}")

    def load_by_order(self, gateway_id: str, order_id: str) -> list[Payment]:
        return [
            p for p in self.payments.values()
            if p.payment_gateway_id == gateway_id and p.order_id == order_id
        ]

    def load_by_remote_id(self, remote_id: str) -> Payment | None:
        return next((p for p in self.payments.values() if p.remote_id == remote_id), None)


def _mock_klarna_handler(request: httpx.Request) -> httpx.Response:
    """Log what would be sent to Klarna and fake a credit session."""
    logger.info(f"[Klarna] MOCK {request.method} {request.url}\n{request.content.decode()}")

    if request.method == "POST" and request.url.path == "/payments/v1/sessions":
        return httpx.Response(200, json={"session_id": "dry-run-session", "client_token": "dry-run"})
    if request.method == "GET":
        return httpx.Response(200, json={"status": "incomplete", "client_token": "dry-run"})
    return httpx.Response(204)


def _usd(number: str) -> Price:
    return Price(number=Decimal(number), currency_code="USD")


def main() -> None:
    storage = _DryRunStorage()

    # To go live: drop the MockTransport and let build_services create the client.
    http_client = httpx.Client(transport=httpx.MockTransport(_mock_klarna_handler))
    services = build_services(config, storage, storage, http_client)

    order = Order(
        id="1",
        order_number="1",
        email="customer@example.com",
        store=Store(id="default", country_code="US"),
        total_price=_usd("2.00"),
        items=[OrderItem(id="1", title="Test", quantity=1, unit_price=_usd("2.00"))],
        payment_gateway=PaymentGateway(
            id=config.KLARNA_GATEWAY_ID,
            plugin=KLARNA_PLUGIN_ID,
            configuration=config.gateway_config(),
        ),
    )

    session = services.api_manager.session_request(order)
    logger.info(
        f"Done. Session {order.get_data('klarna_session_id')}:\n"
        f"{json.dumps(session.model_dump(mode='json', exclude_none=True), indent=2)}"
    )


if __name__ == "__main__":
    main()
