import httpx
from loguru import logger

from klarna_payments.application.event_dispatcher import EventDispatcher
from klarna_payments.application.request_builder import RequestBuilder
from klarna_payments.application.unit_converter import to_amount
from klarna_payments.domain.events import NOTIFICATION_EVENTS, Events, NotificationEvent
from klarna_payments.domain.exceptions import (
    FraudValidationError,
    InvalidArgumentError,
    NonKlarnaOrderError,
    RemoteApiError,
)
from klarna_payments.domain.gateway import resolve_gateway_plugin
from klarna_payments.domain.interfaces import IOrderStorage
from klarna_payments.domain.klarna import (
    CreateOrderRequest,
    FraudStatus,
    MerchantSession,
    PaymentOrder,
    Refund,
    RemoteCapture,
    RemoteOrder,
    Session,
    UpdateMerchantReferences,
)
from klarna_payments.domain.order import Order, Price
from klarna_payments.infrastructure.klarna_client import (
    IDEMPOTENCY_HEADER,
    KlarnaApi,
    KlarnaClient,
)

ORDER_ID_KEY = "klarna_order_id"
SESSION_ID_KEY = "klarna_session_id"

DEFAULT_TIMEOUT = 30.0


class ApiManager:
    """Sequences Klarna API calls for commerce orders.

    Remote identifiers are kept in the order's metadata bag under
    ``klarna_session_id`` and ``klarna_order_id``. Every outgoing payload
    passes through the event dispatcher first.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        request_builder: RequestBuilder,
        order_storage: IOrderStorage,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._request_builder = request_builder
        self._order_storage = order_storage
        self._http_client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT)

    def get_api(self, order: Order) -> KlarnaApi:
        """Return the endpoints bound to the credentials of the order's gateway."""
        config = resolve_gateway_plugin(order)
        return KlarnaApi(KlarnaClient.from_config(self._http_client, config))

    def _persist(self, order: Order, key: str, value: str) -> None:
        order.set_data(key, value)
        self._order_storage.save(order)

    # ------------------------------------------------------------------
    # Klarna Payments
    # ------------------------------------------------------------------

    def session_request(self, order: Order) -> Session:
        """Create or update the credit session of ``order`` and return it.

        A stored session id is updated in place; when Klarna rejects the
        update (usually an expired session) a new session is created instead.
        """
        session = self._dispatcher.dispatch(
            Events.SESSION_CREATE, order, self._request_builder.create_session_request(order)
        ).data

        api = self.get_api(order)
        session_id: str | None = order.get_data(SESSION_ID_KEY)
        response: Session | MerchantSession | None

        if session_id:
            try:
                api.session.post(session, session_id=session_id)
                response = api.session.get(session_id=session_id)
            except RemoteApiError as exc:
                logger.warning(
                    f"Session {session_id} of order {order.id} could not be updated "
                    f"(HTTP {exc.status_code}); creating a new session."
                )
                response = api.sessions.post(session)
        else:
            response = api.sessions.post(session)

        new_session_id = response.session_id if response else None

        if new_session_id and new_session_id != session_id:
            self._persist(order, SESSION_ID_KEY, new_session_id)
            logger.info(f"Order {order.id}: stored Klarna session {new_session_id}")
            # The create endpoint answers with a merchant session; re-read it
            # so callers always get the full session shape.
            response = api.session.get(session_id=new_session_id)

        if not isinstance(response, Session):
            raise RemoteApiError(f"Klarna returned no session for order {order.id}.")
        return response

    def authorize_order(self, order: Order, token: str) -> PaymentOrder:
        """Exchange an authorization token for a Klarna order.

        Raises:
            FraudValidationError: if Klarna neither accepted nor put the order on hold.
        """
        request = self._dispatcher.dispatch(
            Events.ORDER_CREATE, order, self._request_builder.create_session_request(order)
        ).data

        if isinstance(request, Session):
            request = CreateOrderRequest.from_session(request)

        response = self.get_api(order).authorization_order.post(
            request, authorization_token=token
        )
        if response is None:
            raise RemoteApiError(f"Klarna returned no order for order {order.id}.")

        if response.fraud_status not in (FraudStatus.ACCEPTED, FraudStatus.PENDING):
            raise FraudValidationError(f"Fraud validation failed for order {order.id}.")

        self._persist(order, ORDER_ID_KEY, response.order_id)
        logger.info(
            f"Order {order.id} authorized as Klarna order {response.order_id} "
            f"(fraud status {response.fraud_status})"
        )
        return response

    # ------------------------------------------------------------------
    # Klarna Order Management
    # ------------------------------------------------------------------

    def get_order(self, order: Order) -> RemoteOrder:
        """Fetch the Klarna order linked to ``order``.

        Raises:
            NonKlarnaOrderError: if no Klarna order id is stored on the order.
        """
        if not (order_id := order.get_data(ORDER_ID_KEY)):
            raise NonKlarnaOrderError(f"Order {order.id} has no Klarna order id.")

        remote_order = self.get_api(order).order.get(order_id=order_id)
        if remote_order is None:
            raise RemoteApiError(f"Klarna order {order_id} not found.")
        return remote_order

    def create_capture(self, order: Order, amount: Price | None = None) -> RemoteCapture:
        """Capture ``amount`` (default: the order balance) and return the new capture."""
        remote_order = self.get_order(order)
        known_captures = {capture.capture_id for capture in remote_order.captures}

        capture = self._dispatcher.dispatch(
            Events.CAPTURE_CREATE, order, self._request_builder.create_capture_request(order)
        ).data

        if amount is not None:
            capture.captured_amount = to_amount(amount)

        api = self.get_api(order)
        api.captures.post(capture, order_id=remote_order.order_id)

        # The capture endpoint does not return the capture; find it by
        # diffing the order's captures against the ones seen before.
        remote_order = self.get_order(order)
        new_captures = [
            c for c in remote_order.captures if c.capture_id not in known_captures
        ]
        if not new_captures:
            raise RemoteApiError(
                f"Capture for Klarna order {remote_order.order_id} is not listed on the order."
            )

        logger.info(
            f"Order {order.id}: captured {new_captures[0].captured_amount} "
            f"as {new_captures[0].capture_id}"
        )
        return new_captures[0]

    def refund_payment(self, order: Order, amount: Price, idempotency_key: str) -> None:
        """Refund ``amount``.

        ``idempotency_key`` must be unique per logical refund; retrying with the
        same key is safe.
        """
        remote_order = self.get_order(order)

        refund = self._dispatcher.dispatch(
            Events.REFUND_CREATE, order, Refund(refunded_amount=to_amount(amount))
        ).data

        self.get_api(order).refunds.post(
            refund,
            headers={IDEMPOTENCY_HEADER: idempotency_key},
            order_id=remote_order.order_id,
        )
        logger.info(f"Order {order.id}: refunded {refund.refunded_amount} ({idempotency_key})")

    def void_payment(self, order: Order) -> None:
        remote_order = self.get_order(order)
        remote_order = self._dispatcher.dispatch(Events.VOID_PAYMENT, order, remote_order).data

        self.get_api(order).cancel.post(order_id=remote_order.order_id)
        logger.info(f"Order {order.id}: cancelled Klarna order {remote_order.order_id}")

    def release_remaining_authorization(
        self, order: Order, remote_order: RemoteOrder | None = None
    ) -> None:
        if remote_order is None:
            remote_order = self.get_order(order)

        remote_order = self._dispatcher.dispatch(
            Events.RELEASE_REMAINING_AUTHORIZATION, order, remote_order
        ).data

        self.get_api(order).release_remaining_authorization.post(
            order_id=remote_order.order_id
        )

    def acknowledge_order(self, order: Order, remote_order: RemoteOrder | None = None) -> None:
        if remote_order is None:
            remote_order = self.get_order(order)

        remote_order = self._dispatcher.dispatch(
            Events.ACKNOWLEDGE_ORDER, order, remote_order
        ).data

        self.get_api(order).acknowledge.post(
            headers={IDEMPOTENCY_HEADER: order.uuid}, order_id=remote_order.order_id
        )

    def update_merchant_references(self, order: Order) -> None:
        """Send the local order number as ``merchant_reference1`` if Klarna has none."""
        remote_order = self.get_order(order)

        if remote_order.merchant_reference1 or not order.order_number:
            return

        self.get_api(order).merchant_references.patch(
            UpdateMerchantReferences(merchant_reference1=order.order_number),
            order_id=remote_order.order_id,
        )
        logger.info(
            f"Order {order.id}: merchant reference set to {order.order_number}"
        )

    def handle_notification_event(self, order: Order, fraud_status: str) -> None:
        """Dispatch the fraud event matching ``fraud_status`` for ``order``.

        Raises:
            InvalidArgumentError: for an unknown fraud status.
        """
        try:
            notification = NotificationEvent(fraud_status)
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid fraud status: {fraud_status}") from exc

        remote_order = self.get_order(order)
        self._dispatcher.dispatch(NOTIFICATION_EVENTS[notification], order, remote_order)
