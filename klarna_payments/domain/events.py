from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel

from .klarna import Capture, CreateOrderRequest, Refund, RemoteOrder, Session
from .order import Order

DataT = TypeVar("DataT", bound=BaseModel)


class Events(StrEnum):
    SESSION_CREATE = "klarna_payments.session_create"
    ORDER_CREATE = "klarna_payments.order_create"
    CAPTURE_CREATE = "klarna_payments.capture_create"
    REFUND_CREATE = "klarna_payments.refund_create"
    ACKNOWLEDGE_ORDER = "klarna_payments.acknowledge_order"
    VOID_PAYMENT = "klarna_payments.void_payment"
    RELEASE_REMAINING_AUTHORIZATION = "klarna_payments.release_remaining_authorization"
    FRAUD_NOTIFICATION_ACCEPTED = "klarna_payments.fraud_notification_accepted"
    FRAUD_NOTIFICATION_REJECTED = "klarna_payments.fraud_notification_rejected"
    FRAUD_NOTIFICATION_STOPPED = "klarna_payments.fraud_notification_stopped"
    PUSH_ENDPOINT_CALLED = "klarna_payments.push_endpoint_called"


# Payload types a listener may leave behind for each event.
EVENT_PAYLOADS: dict[Events, tuple[type[BaseModel], ...]] = {
    Events.SESSION_CREATE: (Session,),
    Events.ORDER_CREATE: (Session, CreateOrderRequest),
    Events.CAPTURE_CREATE: (Capture,),
    Events.REFUND_CREATE: (Refund,),
    Events.ACKNOWLEDGE_ORDER: (RemoteOrder,),
    Events.VOID_PAYMENT: (RemoteOrder,),
    Events.RELEASE_REMAINING_AUTHORIZATION: (RemoteOrder,),
    Events.FRAUD_NOTIFICATION_ACCEPTED: (RemoteOrder,),
    Events.FRAUD_NOTIFICATION_REJECTED: (RemoteOrder,),
    Events.FRAUD_NOTIFICATION_STOPPED: (RemoteOrder,),
    Events.PUSH_ENDPOINT_CALLED: (RemoteOrder,),
}


class NotificationEvent(StrEnum):
    """Fraud decision event types sent to the notification callback."""

    FRAUD_RISK_ACCEPTED = "FRAUD_RISK_ACCEPTED"
    FRAUD_RISK_REJECTED = "FRAUD_RISK_REJECTED"
    FRAUD_RISK_STOPPED = "FRAUD_RISK_STOPPED"


NOTIFICATION_EVENTS: dict[NotificationEvent, Events] = {
    NotificationEvent.FRAUD_RISK_ACCEPTED: Events.FRAUD_NOTIFICATION_ACCEPTED,
    NotificationEvent.FRAUD_RISK_REJECTED: Events.FRAUD_NOTIFICATION_REJECTED,
    NotificationEvent.FRAUD_RISK_STOPPED: Events.FRAUD_NOTIFICATION_STOPPED,
}


@dataclass
class RequestEvent(Generic[DataT]):
    """Envelope handed to listeners.

    ``order`` is a private copy of the dispatching order; listeners replace
    the payload by assigning ``data``.
    """

    name: Events
    order: Order
    data: DataT
