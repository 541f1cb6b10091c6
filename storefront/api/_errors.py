"""
CheckoutError → HTTP response.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from storefront._errors import CheckoutError, CheckoutErrorKind
from storefront._types import Error, Ok, Result

RETRY_AFTER_SECONDS = 5

_STATUS: dict[CheckoutErrorKind, int] = {
    CheckoutErrorKind.EMPTY_CART: 400,
    CheckoutErrorKind.INVALID_AMOUNT: 400,
    CheckoutErrorKind.NOT_FOUND: 404,
    CheckoutErrorKind.SESSION_NOT_FOUND: 404,
    CheckoutErrorKind.OUT_OF_STOCK: 409,
    CheckoutErrorKind.STALE_QUOTE: 409,
    CheckoutErrorKind.PAYMENT_NOT_COMPLETE: 409,
    CheckoutErrorKind.SESSION_CONSUMED: 409,
    CheckoutErrorKind.SESSION_EXPIRED: 410,
    CheckoutErrorKind.ORDER_NUMBER_EXHAUSTED: 500,
    CheckoutErrorKind.PAYMENT_PROVIDER_UNAVAILABLE: 503,
    CheckoutErrorKind.STORE_UNAVAILABLE: 503,
}


class CheckoutHTTPError(Exception):
    def __init__(self, error: CheckoutError) -> None:
        super().__init__(error.message)
        self.error = error


def status_for(error: CheckoutError) -> int:
    return _STATUS.get(error.kind, 500)


def error_response(error: CheckoutError) -> JSONResponse:
    status = status_for(error)
    headers: dict[str, str] = {}
    if status == 503:
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
    return JSONResponse({"error": error.to_dict()}, status_code=status, headers=headers)


def ok_or_raise[T](result: Result[T, CheckoutError]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(e):
            raise CheckoutHTTPError(e)


async def checkout_error_handler(_: Request, exc: Any) -> JSONResponse:
    return error_response(exc.error)


__all__ = (
    "CheckoutHTTPError",
    "status_for",
    "error_response",
    "ok_or_raise",
    "checkout_error_handler",
)
