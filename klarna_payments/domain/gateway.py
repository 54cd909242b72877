"""Klarna gateway configuration: credentials, region hosts and callback URLs."""

import re
from enum import StrEnum
from typing import TYPE_CHECKING, Self
from urllib.parse import quote, urlencode

from pydantic import BaseModel, Field, model_validator

from .exceptions import InvalidArgumentError, NonKlarnaOrderError

if TYPE_CHECKING:
    from .order import Order

KLARNA_PLUGIN_ID = "klarna_payments"

REGIONS: dict[str, dict[str, str]] = {
    "eu": {
        "live": "https://api.klarna.com",
        "test": "https://api.playground.klarna.com",
    },
    "na": {
        "live": "https://api-na.klarna.com",
        "test": "https://api-na.playground.klarna.com",
    },
    "oc": {
        "live": "https://api-oc.klarna.com",
        "test": "https://api-oc.playground.klarna.com",
    },
}

# Path patterns of the merchant callbacks; remaining arguments go to the query.
ROUTES: dict[str, str] = {
    "checkout.return": "/checkout/{commerce_order}/{step}/return",
    "notify": "/payment/notify/{commerce_payment_gateway}",
}

_PATH_PARAM = re.compile(r"{(\w+)}")


class Mode(StrEnum):
    live = "live"
    test = "test"


class GatewayConfig(BaseModel):
    """Configuration of a single Klarna payment gateway."""

    # Id of the owning PaymentGateway, bound when the gateway is built.
    gateway_id: str = ""
    mode: Mode = Mode.test
    username: str = ""
    password: str = ""
    region: str = "eu"
    cancel_fraudulent_orders: bool = False
    options: dict[str, str | None] = Field(default_factory=dict)
    return_base_url: str = "http://localhost"

    def is_live(self) -> bool:
        return self.mode == Mode.live

    @property
    def host(self) -> str:
        host = REGIONS.get(self.region, {}).get(self.mode.value, "")
        if not host:
            raise InvalidArgumentError("Host not found.")
        return host

    def get_return_uri(
        self, order: "Order", route: str, arguments: dict[str, str] | None = None
    ) -> str:
        """Build an absolute merchant callback URL for ``order``.

        The gateway's own ``step``, ``commerce_order`` and
        ``commerce_payment_gateway`` values take precedence over ``arguments``.
        """
        if route not in ROUTES:
            raise InvalidArgumentError(f"Unknown route: {route}")

        arguments = {
            **(arguments or {}),
            "step": "payment",
            "commerce_order": order.id,
            "commerce_payment_gateway": self.gateway_id,
        }
        pattern = ROUTES[route]
        path_params = set(_PATH_PARAM.findall(pattern))

        path = pattern.format(
            **{name: quote(str(arguments[name]), safe="") for name in path_params}
        )
        query = {k: v for k, v in arguments.items() if k not in path_params}

        url = self.return_base_url.rstrip("/") + path
        if query:
            url += "?" + urlencode(query)
        return url


class PaymentGateway(BaseModel):
    """Payment gateway entity referenced by an order."""

    id: str
    plugin: str
    configuration: GatewayConfig | None = None

    @model_validator(mode="after")
    def _bind_configuration(self) -> Self:
        # Payments and callback URLs are keyed by the gateway entity id.
        if self.configuration is not None and self.configuration.gateway_id != self.id:
            self.configuration = self.configuration.model_copy(update={"gateway_id": self.id})
        return self


def resolve_gateway_plugin(order: "Order") -> GatewayConfig:
    """Return the Klarna configuration of the gateway attached to ``order``.

    Raises:
        NonKlarnaOrderError: if the order has no gateway or the gateway is not Klarna.
    """
    gateway = order.payment_gateway

    if gateway is None:
        raise NonKlarnaOrderError("Payment gateway not found.")

    if gateway.plugin != KLARNA_PLUGIN_ID or gateway.configuration is None:
        raise NonKlarnaOrderError(f"Payment gateway {gateway.id} is not a Klarna gateway.")

    return gateway.configuration
