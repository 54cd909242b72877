"""Reconciles Klarna push notifications with the local order."""

from loguru import logger
from pydantic import BaseModel

from klarna_payments.application.api_manager import ORDER_ID_KEY, ApiManager
from klarna_payments.application.event_dispatcher import EventDispatcher
from klarna_payments.application.gateway_service import ALLOWED_STATUSES, GatewayService
from klarna_payments.domain.events import Events
from klarna_payments.domain.exceptions import AccessDeniedError, KlarnaError
from klarna_payments.domain.gateway import PaymentGateway
from klarna_payments.domain.order import Order


class PushResponse(BaseModel):
    """Answer returned to Klarna for a push notification."""

    accepted: bool
    message: str


class PushEndpoint:
    """Finalizes an order when Klarna reports it through the push callback."""

    def __init__(
        self,
        api_manager: ApiManager,
        gateway_service: GatewayService,
        dispatcher: EventDispatcher,
    ) -> None:
        self._api_manager = api_manager
        self._gateway_service = gateway_service
        self._dispatcher = dispatcher

    def handle_request(
        self, order: Order, gateway: PaymentGateway, klarna_order_id: str | None
    ) -> PushResponse:
        """Reconcile ``order`` with the Klarna order named in the notification.

        Mismatching ids and already-paid orders are answered without touching
        the Klarna API.

        Raises:
            AccessDeniedError: if the Klarna order cannot be fetched, is in a
                state other than authorized/captured, or cannot be acknowledged.
        """
        if not klarna_order_id or klarna_order_id != order.get_data(ORDER_ID_KEY):
            logger.warning(f"Push for order {order.id}: Klarna order id mismatch ({klarna_order_id})")
            return PushResponse(accepted=False, message="Order id mismatch.")

        if order.is_paid():
            logger.info(f"Push for order {order.id}: already paid")
            return PushResponse(accepted=False, message="Already paid.")

        try:
            remote_order = self._api_manager.get_order(order)
        except KlarnaError as exc:
            raise AccessDeniedError(str(exc)) from exc

        if remote_order.status not in ALLOWED_STATUSES:
            raise AccessDeniedError("Order is in invalid state.")

        self._dispatcher.dispatch(Events.PUSH_ENDPOINT_CALLED, order, remote_order)

        _, created = self._gateway_service.get_or_create_payment(order, gateway.id)
        if created:
            logger.info(
                f"Webhook: created payment for order {order.id} (Klarna id: {klarna_order_id})"
            )

        # The customer may not have come back to the return URL, so the order
        # might not be acknowledged yet.
        try:
            self._api_manager.acknowledge_order(order, remote_order)
        except KlarnaError as exc:
            raise AccessDeniedError(f"Acknowledgement failed: {exc}") from exc

        return PushResponse(accepted=True, message="Ok")
