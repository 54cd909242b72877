from typing import Any, Generic, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from klarna_payments.domain.exceptions import RemoteApiError
from klarna_payments.domain.gateway import GatewayConfig
from klarna_payments.domain.klarna import (
    MerchantSession,
    PaymentOrder,
    RemoteOrder,
    Session,
)
from klarna_payments.shared.decorators import log_errors

ResponseT = TypeVar("ResponseT", bound=BaseModel)

USER_AGENT = "Library python-klarna-payments-v1"
IDEMPOTENCY_HEADER = "Klarna-Idempotency-Key"


class KlarnaClient:
    """Thin httpx wrapper for the Klarna REST APIs."""

    def __init__(
        self, client: httpx.Client, host: str, username: str, password: str
    ) -> None:
        self._client = client
        self._host = host.rstrip("/")
        self._auth = httpx.BasicAuth(username, password)
        self._headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}

    @classmethod
    def from_config(cls, client: httpx.Client, config: GatewayConfig) -> "KlarnaClient":
        return cls(client, config.host, config.username, config.password)

    @log_errors
    def request(
        self,
        method: str,
        path: str,
        payload: BaseModel | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send a JSON request and return the decoded body (``{}`` when empty).

        Raises:
            RemoteApiError: on transport failures, non-2xx responses or a body
                that is not JSON.
        """
        body = payload.model_dump(mode="json", exclude_none=True) if payload else None

        try:
            response = self._client.request(
                method,
                self._host + path,
                auth=self._auth,
                headers={**self._headers, **(headers or {})},
                json=body,
            )
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Klarna API request failed: {exc}") from exc

        if not response.is_success:
            raise RemoteApiError(
                f"Klarna API error {response.status_code} on {method} {path}",
                status_code=response.status_code,
                body=response.text,
            )

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as exc:
            raise RemoteApiError(
                f"Malformed Klarna API response on {method} {path}",
                status_code=response.status_code,
                body=response.text,
            ) from exc


class ApiResource(Generic[ResponseT]):
    """One Klarna endpoint: a path template plus an optional response model."""

    def __init__(
        self,
        client: KlarnaClient,
        path: str,
        response_model: type[ResponseT] | None = None,
    ) -> None:
        self._client = client
        self._path = path
        self._response_model = response_model

    def _format_path(self, params: dict[str, str]) -> str:
        return self._path.format(
            **{key: quote(str(value), safe="") for key, value in params.items()}
        )

    def _parse(self, body: dict[str, Any]) -> ResponseT | None:
        if self._response_model is None:
            return None
        try:
            return self._response_model.model_validate(body)
        except ValidationError as exc:
            raise RemoteApiError(
                f"Malformed {self._response_model.__name__} response: {exc}"
            ) from exc

    def get(self, **params: str) -> ResponseT | None:
        return self._parse(self._client.request("GET", self._format_path(params)))

    def post(
        self,
        payload: BaseModel | None = None,
        headers: dict[str, str] | None = None,
        **params: str,
    ) -> ResponseT | None:
        body = self._client.request("POST", self._format_path(params), payload, headers)
        return self._parse(body)

    def patch(self, payload: BaseModel, **params: str) -> ResponseT | None:
        return self._parse(
            self._client.request("PATCH", self._format_path(params), payload)
        )


class KlarnaApi:
    """Klarna Payments and Order Management endpoints used by the integration."""

    def __init__(self, client: KlarnaClient) -> None:
        self.sessions = ApiResource(client, "/payments/v1/sessions", MerchantSession)
        self.session = ApiResource(client, "/payments/v1/sessions/{session_id}", Session)
        self.authorization_order = ApiResource(
            client,
            "/payments/v1/authorizations/{authorization_token}/order",
            PaymentOrder,
        )

        orders = "/ordermanagement/v1/orders/{order_id}"
        self.order = ApiResource(client, orders, RemoteOrder)
        self.cancel = ApiResource(client, orders + "/cancel")
        self.acknowledge = ApiResource(client, orders + "/acknowledge")
        self.release_remaining_authorization = ApiResource(
            client, orders + "/release-remaining-authorization"
        )
        self.captures = ApiResource(client, orders + "/captures")
        self.refunds = ApiResource(client, orders + "/refunds")
        self.merchant_references = ApiResource(client, orders + "/merchant-references")
