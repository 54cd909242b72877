class KlarnaError(Exception):
    """Base class for every error raised by the Klarna integration."""


class NonKlarnaOrderError(KlarnaError):
    """Raised when an order is not linked to a Klarna gateway or remote order."""


class InvalidArgumentError(KlarnaError, ValueError):
    """Raised when a payload or input value has the wrong shape."""


class RemoteApiError(KlarnaError):
    """Raised when the Klarna API fails or returns a non-2xx response."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class FraudValidationError(KlarnaError):
    """Raised when Klarna rejects an authorization for fraud reasons."""


class AccessDeniedError(KlarnaError):
    """Raised when a push notification cannot be reconciled."""


class PaymentGatewayError(KlarnaError):
    """Raised when a gateway-level payment operation fails."""
