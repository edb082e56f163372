"""Signing helper for simulating Shopify requests against a local server.

Uses the secrets from the environment (or .env file).

Usage:
    # Webhook: body on stdin, prints the X-Shopify-Hmac-Sha256 value
    BODY='{"shop_domain":"test.myshopify.com"}'
    HMAC=$(echo -n "$BODY" | python -m scripts.sign_request webhook)
    curl -X POST http://localhost:8000/api/v1/webhooks/app/compliance \\
      -H "Content-Type: application/json" \\
      -H "X-Shopify-Hmac-Sha256: $HMAC" \\
      -H "X-Shopify-Shop-Domain: test.myshopify.com" \\
      -H "X-Shopify-Topic: shop/redact" \\
      -d "$BODY"

    # App proxy: prints the query string with its signature appended
    python -m scripts.sign_request proxy "shop=test.myshopify.com&path_prefix=/apps/x&timestamp=1700000000"

    # Session token: prints a short-lived token for the shop
    python -m scripts.sign_request session-token test.myshopify.com
"""

import argparse
import base64
import hashlib
import hmac
import sys
import time
from urllib.parse import parse_qsl, urlencode

import jwt

from storegate.core.config import settings
from storegate.integrations.shopify.signatures import SESSION_TOKEN_ALGORITHM, proxy_message


def sign_webhook(body: bytes, secret: str) -> str:
    """Compute base64-encoded HMAC-SHA256 signature."""
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def sign_proxy(query: str, secret: str) -> str:
    """Append a hex HMAC-SHA256 ``signature`` to an app-proxy query string."""
    items = parse_qsl(query, keep_blank_values=True)
    signature = hmac.new(secret.encode(), proxy_message(items).encode(), hashlib.sha256).hexdigest()
    return urlencode([*items, ("signature", signature)])


def session_token(shop: str, secret: str, api_key: str, ttl: int = 60) -> str:
    """Mint a session token like the one App Bridge sends."""
    now = int(time.time())
    claims = {
        "iss": f"https://{shop}/admin",
        "dest": f"https://{shop}",
        "aud": api_key,
        "sub": "1",
        "exp": now + ttl,
        "nbf": now,
        "iat": now,
        "jti": base64.urlsafe_b64encode(hashlib.sha256(f"{shop}{now}".encode()).digest()[:12]).decode(),
    }
    return jwt.encode(claims, secret, algorithm=SESSION_TOKEN_ALGORITHM)


def _require(value: str, name: str) -> str:
    if not value:
        print(f"ERROR: {name} is not set in .env", file=sys.stderr)
        sys.exit(1)
    return value


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    sub = parser.add_subparsers(dest="scheme", required=True)
    sub.add_parser("webhook", help="sign a webhook body read from stdin")
    proxy = sub.add_parser("proxy", help="sign an app-proxy query string")
    proxy.add_argument("query")
    token = sub.add_parser("session-token", help="mint a session token")
    token.add_argument("shop")
    args = parser.parse_args()

    if args.scheme == "webhook":
        secret = _require(settings.effective_webhook_secret, "SHOPIFY_API_SECRET")
        body = sys.stdin.buffer.read()
        if not body:
            print("ERROR: No input received on stdin", file=sys.stderr)
            sys.exit(1)
        print(sign_webhook(body, secret), end="")
    elif args.scheme == "proxy":
        secret = _require(settings.shopify_app_proxy_secret, "SHOPIFY_APP_PROXY_SECRET")
        print(sign_proxy(args.query, secret))
    else:
        secret = _require(settings.shopify_api_secret, "SHOPIFY_API_SECRET")
        print(session_token(args.shop, secret, settings.shopify_api_key))


if __name__ == "__main__":
    main()
