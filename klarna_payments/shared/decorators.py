from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from loguru import logger

P = ParamSpec("P")
R = TypeVar("R")


def log_errors(func: Callable[P, R]) -> Callable[P, R]:
    """Log and re-raise any exception escaping the decorated call.

    The line names the function and the exception type. For Klarna API
    errors the HTTP status is appended, e.g.::

        [KlarnaClient.request] RemoteApiError: Klarna API error 404 on GET
        /ordermanagement/v1/orders/abc (HTTP 404)

    Usage::

        @log_errors
        def capture_payment(self, order: Order, payment: Payment) -> Payment: ...
    """

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            suffix = f" (HTTP {status})" if status is not None else ""
            logger.error(f"[{func.__qualname__}] {type(exc).__name__}: {exc}{suffix}")
            raise

    return wrapper
