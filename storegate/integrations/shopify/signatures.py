"""Shopify signature verification: session tokens, app-proxy and webhook HMACs.

All three schemes are keyed by a shared secret and compare digests in
constant time. None of them touch the database.
"""

import base64
import hashlib
import hmac
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import jwt

from storegate.core.errors import AuthError, Err, MissingSecretError, Ok, Result

logger = logging.getLogger(__name__)

SESSION_TOKEN_ALGORITHM = "HS256"
# Clock skew tolerated between Shopify and this server
SESSION_TOKEN_LEEWAY_SECONDS = 10

type QueryItems = Mapping[str, str] | Iterable[tuple[str, str]]


@dataclass(frozen=True)
class SessionTokenClaims:
    """Verified claims of an App Bridge session token."""

    shop_domain: str
    dest: str
    user_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict, repr=False)


class SignatureVerifier:
    """Base for the secret-keyed verifiers."""

    scheme = "signature"

    def __init__(self, secret: str) -> None:
        self._secret = secret

    @property
    def secret(self) -> str:
        if not self._secret:
            raise MissingSecretError(f"No secret configured for {self.scheme} verification")
        return self._secret

    def _digest(self, message: bytes) -> bytes:
        return hmac.new(self.secret.encode("utf-8"), message, hashlib.sha256).digest()

    @staticmethod
    def _digests_match(expected: str | bytes, received: str | bytes) -> bool:
        if isinstance(expected, str):
            expected = expected.encode("utf-8")
        if isinstance(received, str):
            received = received.encode("utf-8")
        return hmac.compare_digest(expected, received)


class SessionTokenVerifier(SignatureVerifier):
    """Decodes App Bridge session tokens (HS256 JWTs signed with the app secret)."""

    scheme = "session token"

    def __init__(self, api_secret: str, api_key: str = "") -> None:
        super().__init__(api_secret)
        self.api_key = api_key

    def decode(self, token: str) -> Result[SessionTokenClaims]:
        """Verify signature, expiry and audience, then read the shop from ``dest``."""
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.secret,
                algorithms=[SESSION_TOKEN_ALGORITHM],
                audience=self.api_key or None,
                leeway=SESSION_TOKEN_LEEWAY_SECONDS,
                options={
                    "require": ["exp", "dest"],
                    "verify_aud": bool(self.api_key),
                },
            )
        except jwt.ExpiredSignatureError:
            return Err(AuthError.INVALID_TOKEN, "Session token has expired")
        except jwt.InvalidTokenError as e:
            return Err(AuthError.INVALID_TOKEN, f"Invalid session token: {e}")

        dest = payload.get("dest")
        shop_domain = shop_domain_from_url(dest) if isinstance(dest, str) else None
        if not shop_domain:
            return Err(AuthError.INVALID_TOKEN, "Invalid session token: missing destination")

        sub = payload.get("sub")
        return Ok(
            SessionTokenClaims(
                shop_domain=shop_domain,
                dest=dest,
                user_id=str(sub) if sub is not None else None,
                payload=payload,
            )
        )


class ProxySignatureVerifier(SignatureVerifier):
    """Verifies the ``signature`` query parameter on app-proxy requests."""

    scheme = "app proxy"

    def verify(self, params: QueryItems) -> bool:
        items = list(_query_items(params))
        received = next((v for k, v in items if k == "signature"), None)
        if not received:
            return False

        computed = self._digest(proxy_message(items).encode("utf-8")).hex()
        return self._digests_match(computed, received)


class WebhookSignatureVerifier(SignatureVerifier):
    """Verifies ``X-Shopify-Hmac-Sha256`` over the raw webhook body."""

    scheme = "webhook"

    def verify(self, body: bytes, hmac_header: str | None) -> bool:
        if not hmac_header:
            return False

        computed = base64.b64encode(self._digest(body))
        return self._digests_match(computed, hmac_header.strip())


def proxy_message(params: QueryItems) -> str:
    """Build the string Shopify signs for app-proxy requests.

    ``signature`` is dropped, repeated keys have their values joined with
    commas, keys are sorted and ``key=value`` pairs are concatenated with
    no separator.
    """
    grouped: dict[str, list[str]] = {}
    for key, value in _query_items(params):
        if key == "signature":
            continue
        grouped.setdefault(key, []).append(value)

    return "".join(f"{key}={','.join(values)}" for key, values in sorted(grouped.items()))


def extract_session_token(
    headers: Mapping[str, str],
    query_params: Mapping[str, str],
) -> str | None:
    """Session token from ``Authorization: Bearer`` or, failing that, ``id_token``."""
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer ") :].strip()
        if token:
            return token

    return query_params.get("id_token") or None


def shop_domain_from_url(url: str) -> str | None:
    """Hostname of a URL such as ``https://shop.myshopify.com/admin``."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def _query_items(params: QueryItems) -> Iterable[tuple[str, str]]:
    multi_items = getattr(params, "multi_items", None)
    if callable(multi_items):
        return multi_items()
    if isinstance(params, Mapping):
        return params.items()
    return params
