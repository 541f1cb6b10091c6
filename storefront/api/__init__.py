"""
HTTP surface — FastAPI routes over the storefront pipeline.

    from storefront.api import create_app

    app = create_app()   # uvicorn storefront.api:create_app --factory

Identity comes from headers: X-User-Id (authenticated) or X-Guest-Session.
Errors render as {"error": {"code", "message", "details", "retryable"}}.
"""

from storefront.api._app import create_app
from storefront.api._deps import get_owner, get_storefront, get_user
from storefront.api._errors import CheckoutHTTPError, error_response, ok_or_raise, status_for

__all__ = (
    "create_app",
    "get_owner",
    "get_storefront",
    "get_user",
    "CheckoutHTTPError",
    "error_response",
    "ok_or_raise",
    "status_for",
)
