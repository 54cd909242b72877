from decimal import Decimal
from typing import Any

from loguru import logger

from klarna_payments.application.api_manager import ORDER_ID_KEY, ApiManager
from klarna_payments.application.unit_converter import to_amount, to_price
from klarna_payments.domain.events import NotificationEvent
from klarna_payments.domain.exceptions import (
    AccessDeniedError,
    InvalidArgumentError,
    KlarnaError,
    NonKlarnaOrderError,
    PaymentGatewayError,
    RemoteApiError,
)
from klarna_payments.domain.gateway import resolve_gateway_plugin
from klarna_payments.domain.interfaces import IOrderStorage, IPaymentStorage
from klarna_payments.domain.klarna import OrderStatus, RemoteOrder
from klarna_payments.domain.order import Order, Payment, Price
from klarna_payments.shared.decorators import log_errors

# Klarna order states in which the customer has completed the purchase.
ALLOWED_STATUSES = (OrderStatus.AUTHORIZED, OrderStatus.PART_CAPTURED, OrderStatus.CAPTURED)

FRAUDULENT_EVENTS = (NotificationEvent.FRAUD_RISK_REJECTED, NotificationEvent.FRAUD_RISK_STOPPED)

# Payment states whose amount has been captured at Klarna.
COMPLETED_STATES = ("completed", "partially_refunded", "refunded")


class GatewayService:
    """Klarna gateway operations on local payment records."""

    def __init__(
        self,
        api_manager: ApiManager,
        payment_storage: IPaymentStorage,
        order_storage: IOrderStorage,
    ) -> None:
        self._api_manager = api_manager
        self._payment_storage = payment_storage
        self._order_storage = order_storage

    @staticmethod
    def _assert_payment_state(payment: Payment, states: list[str]) -> None:
        if payment.state not in states:
            raise PaymentGatewayError(
                f"Payment {payment.id} is in an invalid state ({payment.state}), "
                f"one of {', '.join(states)} expected."
            )

    def create_payment(self, order: Order, amount: Price | None = None) -> Payment:
        """Create and save a payment in ``authorization`` state (default: the balance)."""
        config = resolve_gateway_plugin(order)

        payment = Payment(
            order_id=order.id,
            payment_gateway_id=config.gateway_id,
            amount=amount or order.balance,
            state="authorization",
            test=not config.is_live(),
        )
        self._payment_storage.save(payment)
        return payment

    def get_or_create_payment(
        self, order: Order, gateway_id: str | None = None
    ) -> tuple[Payment, bool]:
        """Return the order's first payment on the gateway and whether it was just created."""
        gateway_id = gateway_id or resolve_gateway_plugin(order).gateway_id

        if payments := self._payment_storage.load_by_order(gateway_id, order.id):
            return payments[0], False
        return self.create_payment(order), True

    @log_errors
    def on_return(self, order: Order) -> Payment:
        """Validate the Klarna order after the customer returns from checkout."""
        try:
            remote_order = self._api_manager.get_order(order)
        except KlarnaError as exc:
            raise PaymentGatewayError(str(exc)) from exc

        if remote_order.status not in ALLOWED_STATUSES:
            raise PaymentGatewayError(
                f"Order is in invalid state [{remote_order.status}], one of "
                f"{','.join(ALLOWED_STATUSES)} expected."
            )

        payment = self.create_payment(order)

        try:
            self._api_manager.acknowledge_order(order, remote_order)
        except KlarnaError as exc:
            raise PaymentGatewayError(str(exc)) from exc
        return payment

    def on_notify(self, order: Order, payload: dict[str, Any]) -> None:
        """Handle a fraud decision notification sent for a pending order.

        Raises:
            AccessDeniedError: if the payload does not belong to ``order``.
        """
        order_id = payload.get("order_id")
        event_type = payload.get("event_type")

        if not order_id or not event_type or order_id != order.get_data(ORDER_ID_KEY):
            raise AccessDeniedError("Order id mismatch.")

        self._api_manager.handle_notification_event(order, event_type)

        config = resolve_gateway_plugin(order)
        if config.cancel_fraudulent_orders and event_type in FRAUDULENT_EVENTS:
            self._api_manager.void_payment(order)
            order.state = "canceled"
            self._order_storage.save(order)
            logger.warning(f"Order {order.id} cancelled: Klarna reported {event_type}")

    @log_errors
    def capture_payment(
        self, order: Order, payment: Payment, amount: Price | None = None
    ) -> Payment:
        self._assert_payment_state(payment, ["authorization"])
        # If not specified, capture the entire amount.
        amount = amount or payment.amount

        try:
            capture = self._api_manager.create_capture(order, amount)
        except KlarnaError as exc:
            raise PaymentGatewayError(str(exc)) from exc

        payment.state = "completed"
        payment.amount = amount
        payment.remote_id = capture.capture_id
        self._payment_storage.save(payment)
        return payment

    @log_errors
    def void_payment(self, order: Order, payment: Payment) -> Payment:
        self._assert_payment_state(payment, ["authorization"])

        try:
            self._api_manager.void_payment(order)
        except KlarnaError as exc:
            raise PaymentGatewayError(str(exc)) from exc

        payment.state = "authorization_voided"
        self._payment_storage.save(payment)
        return payment

    @log_errors
    def refund_payment(
        self, order: Order, payment: Payment, amount: Price | None = None
    ) -> Payment:
        """Refund ``amount`` (default: the whole payment) of a completed payment.

        The idempotency key is the payment UUID plus the new refunded total,
        so every refund of a payment gets its own key.
        """
        self._assert_payment_state(payment, ["completed", "partially_refunded"])
        amount = amount or payment.amount
        if not amount.is_positive():
            raise InvalidArgumentError("Refund amount must be positive.")

        old_refunded = payment.refunded_amount or Price(
            number=Decimal(0), currency_code=payment.amount.currency_code
        )
        refundable = payment.amount.subtract(old_refunded)
        if amount.greater_than(refundable):
            raise InvalidArgumentError(
                f"Can't refund more than {refundable.number} {refundable.currency_code}."
            )
        new_refunded = old_refunded.add(amount)

        try:
            self._api_manager.refund_payment(
                order, amount, f"{payment.uuid}-{new_refunded.number}"
            )
        except KlarnaError as exc:
            raise PaymentGatewayError(str(exc)) from exc

        payment.state = (
            "partially_refunded" if new_refunded.less_than(payment.amount) else "refunded"
        )
        payment.refunded_amount = new_refunded
        self._payment_storage.save(payment)
        return payment

    def pending_captures(
        self, order: Order, remote_order: RemoteOrder
    ) -> list[tuple[str, Price]]:
        """Return Klarna captures with no local payment yet, as (capture id, amount)."""
        currency = remote_order.purchase_currency or order.total_price.currency_code

        return [
            (capture.capture_id, to_price(capture.captured_amount, currency))
            for capture in remote_order.captures
            if self._payment_storage.load_by_remote_id(capture.capture_id) is None
        ]

    def _authorized_payment(self, order: Order, gateway_id: str) -> Payment | None:
        """Return the payment left in ``authorization`` state by ``on_return``."""
        payments = self._payment_storage.load_by_order(gateway_id, order.id)
        return next((p for p in payments if p.state == "authorization"), None)

    def _sync_captures(self, order: Order, remote_order: RemoteOrder, gateway_id: str) -> None:
        payment = self._authorized_payment(order, gateway_id)

        for capture_id, amount in self.pending_captures(order, remote_order):
            if payment is None or payment.state in COMPLETED_STATES:
                payment = self.create_payment(order)

            payment.state = "completed"
            payment.amount = amount
            payment.remote_id = capture_id
            self._payment_storage.save(payment)
            logger.info(f"Order {order.id}: synced Klarna capture {capture_id}")

    @log_errors
    def on_order_place(self, order: Order) -> None:
        """Capture whatever Klarna has not captured yet once ``order`` is placed.

        Captures made in the Klarna merchant panel are first recorded as
        completed payments. When the Klarna order amount no longer matches the
        local total, nothing is captured: the order must already be fully
        captured at Klarna and is then marked as paid.

        Paid orders and orders without a Klarna order are left alone.

        Raises:
            PaymentGatewayError: if Klarna cannot be reached or the order is
                out of sync but not fully captured.
        """
        if order.is_paid():
            return

        try:
            config = resolve_gateway_plugin(order)
            remote_order = self._api_manager.get_order(order)
        except NonKlarnaOrderError:
            return
        except KlarnaError as exc:
            raise PaymentGatewayError(str(exc)) from exc

        self._sync_captures(order, remote_order, config.gateway_id)

        if remote_order.order_amount != to_amount(order.total_price):
            if remote_order.status != OrderStatus.CAPTURED:
                raise PaymentGatewayError(
                    f"Order ({order.id}) is out of sync, but not fully captured yet."
                )
            payment = self._authorized_payment(order, config.gateway_id) or self.create_payment(order)
            payment.state = "completed"
            payment.amount = order.total_price
            self._payment_storage.save(payment)
            return

        remaining = order.total_price
        for payment in self._payment_storage.load_by_order(config.gateway_id, order.id):
            if payment.state in COMPLETED_STATES:
                remaining = remaining.subtract(payment.amount)

        if remaining.is_positive():
            payment = self._authorized_payment(order, config.gateway_id) or self.create_payment(order)
            self.capture_payment(order, payment, remaining)

    def update_order_number(self, order: Order) -> None:
        """Send the order number to Klarna after placement; failures are only logged."""
        try:
            self._api_manager.update_merchant_references(order)
        except (RemoteApiError, NonKlarnaOrderError) as exc:
            logger.warning(f"Order {order.id}: merchant reference not updated: {exc}")
