# tokens.py
"""OAuth2 client-credentials helper for verification flows.

Not used by the reconciliation path. tools/get_token.py wraps it for
fetching a bearer token to call a route exposed by an APIRule.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import requests
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.requests_client import OAuth2Session

from errors import InvalidTokenError, TokenTransportError, UnexpectedTokenTypeError

# A token that expires within this many seconds is treated as invalid.
EXPIRY_LEEWAY_SECONDS = 10


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str
    token_url: str
    scopes: Tuple[str, ...] = ()


def get_access_token(
    credentials: ClientCredentials,
    client_timeout: float = 10,
    token_format: Optional[str] = None,
    verify_tls: bool = True,
) -> str:
    """
    Run a client-credentials grant and return the access token.

    token_format is passed through as a body parameter (e.g. "jwt" or
    "opaque") for token servers that support it. verify_tls=False accepts
    any server certificate and is meant for test clusters only.
    """
    params = {}
    if token_format:
        params["token_format"] = token_format

    scope = " ".join(credentials.scopes) or None
    with OAuth2Session(credentials.client_id, credentials.client_secret, scope=scope) as session:
        session.verify = verify_tls
        try:
            # verify is passed per request too; otherwise REQUESTS_CA_BUNDLE
            # or CURL_CA_BUNDLE overrides session.verify.
            token = session.fetch_token(
                credentials.token_url,
                grant_type="client_credentials",
                timeout=client_timeout,
                verify=verify_tls,
                **params,
            )
        except (requests.RequestException, AuthlibBaseError) as e:
            raise TokenTransportError(f"token request to {credentials.token_url} failed: {e}") from e

    access_token = token.get("access_token")
    if not access_token or token.is_expired(leeway=EXPIRY_LEEWAY_SECONDS):
        raise InvalidTokenError(f"token invalid. got fields: {sorted(token.keys())}")
    if token.get("token_type") != "Bearer":
        raise UnexpectedTokenTypeError(f"token type = {token.get('token_type')!r}; want 'Bearer'")
    return access_token
