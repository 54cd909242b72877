from collections import defaultdict
from collections.abc import Callable

from loguru import logger

from klarna_payments.domain.events import EVENT_PAYLOADS, DataT, Events, RequestEvent
from klarna_payments.domain.exceptions import InvalidArgumentError
from klarna_payments.domain.order import Order

Listener = Callable[[RequestEvent], None]


class EventDispatcher:
    """Synchronous, ordered dispatch of request events to listeners.

    Listeners run in subscription order and may replace ``event.data``; the
    last assignment wins. Each dispatch hands listeners a deep copy of the
    order so they cannot alter the caller's instance.
    """

    def __init__(self) -> None:
        self._listeners: dict[Events, list[Listener]] = defaultdict(list)

    def subscribe(self, event: Events, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def dispatch(self, event: Events, order: Order, data: DataT) -> RequestEvent[DataT]:
        """Run the listeners of ``event`` and return the final envelope.

        Raises:
            InvalidArgumentError: if a listener left a payload of a type the
                event does not accept.
        """
        request_event = RequestEvent(name=event, order=order.model_copy(deep=True), data=data)
        listeners = self._listeners.get(event, [])

        if listeners:
            logger.debug(f"Dispatching {event} to {len(listeners)} listener(s)")

        for listener in listeners:
            listener(request_event)

        allowed = EVENT_PAYLOADS[event]
        if not isinstance(request_event.data, allowed):
            raise InvalidArgumentError(
                f"{event} expects {' or '.join(t.__name__ for t in allowed)}, "
                f"got {type(request_event.data).__name__}."
            )
        return request_event
