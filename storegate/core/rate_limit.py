"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request


def _get_real_client_ip(request: Request) -> str:
    """Extract the real client IP behind a reverse proxy."""
    return (
        request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        or (request.client.host if request.client else "127.0.0.1")
    )


def _get_rate_limit_key(request: Request) -> str:
    """Key app-proxy traffic by shop.

    Proxied requests all arrive from Shopify's servers, so the client IP
    would put every shop in one bucket.
    """
    shop = request.query_params.get("shop")
    if shop:
        return f"shop:{shop}"
    return _get_real_client_ip(request)


limiter = Limiter(key_func=_get_rate_limit_key)
