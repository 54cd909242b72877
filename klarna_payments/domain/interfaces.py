from typing import Protocol

from .order import Order, Payment


class IOrderStorage(Protocol):
    def save(self, order: Order) -> None:
        """Persist ``order``; must raise if the commit fails."""
        ...


class IPaymentStorage(Protocol):
    def load_by_order(self, gateway_id: str, order_id: str) -> list[Payment]: ...

    def load_by_remote_id(self, remote_id: str) -> Payment | None: ...

    def save(self, payment: Payment) -> None: ...
