"""
Credential resolution for API clients.

Turns a stored account into a usable access token, refreshing OAuth 2.0
tokens that are expired or about to expire.
"""

import logging
import time
from typing import Callable, Optional

import requests

from xc_cli.config.loader import AccountConfig, AuthCredential, ConfigStore
from xc_cli.core.errors import AuthError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://api.x.com/2/oauth2/token"
REFRESH_MARGIN_MS = 60_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def refresh_access_token(
    client_id: str,
    refresh_token: str,
    session: Optional[requests.Session] = None,
    now_ms: Callable[[], int] = _now_ms,
) -> AuthCredential:
    """Exchange a refresh token for a new OAuth 2.0 access token.

    Returns:
        Credential carrying the new tokens and expiry

    Raises:
        AuthError: If the token endpoint rejects the refresh
    """
    http = session or requests.Session()
    try:
        resp = http.post(
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
            },
            timeout=30,
        )
    except requests.RequestException as e:
        raise AuthError(f"Token refresh failed: {e}") from e

    if not resp.ok:
        raise AuthError(f"Token refresh failed: HTTP {resp.status_code}. Run: xc auth import")

    try:
        body = resp.json()
        access_token = body["access_token"]
        expires_in = int(body.get("expires_in", 7200))
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise AuthError(f"Token refresh failed: unexpected response ({e}). Run: xc auth import") from e

    return AuthCredential(
        type="oauth2",
        access_token=access_token,
        refresh_token=body.get("refresh_token") or refresh_token,
        expires_at=now_ms() + expires_in * 1000,
        client_id=client_id,
    )


def resolve_access_token(
    store: ConfigStore,
    account_name: Optional[str] = None,
    session: Optional[requests.Session] = None,
    now_ms: Callable[[], int] = _now_ms,
) -> str:
    """Get a valid token for an account, refreshing and persisting if needed.

    Args:
        store: Account store
        account_name: Account to use (defaults to the default account)
        session: HTTP session used for refresh
        now_ms: Clock in epoch milliseconds

    Returns:
        Bearer or OAuth 2.0 access token

    Raises:
        AuthError: If no usable credential is configured
    """
    account = store.get_account(account_name)
    if account is None:
        suffix = f" ({account_name})" if account_name else ""
        raise AuthError(f"No account configured{suffix}. Run: xc auth token <TOKEN>")

    auth = account.auth
    if auth.type == "bearer":
        if not auth.bearer_token:
            raise AuthError("Bearer token is empty. Run: xc auth token <TOKEN>")
        return auth.bearer_token

    if auth.type == "oauth2":
        if not auth.access_token:
            raise AuthError("No access token. Run: xc auth import")

        expires_at = auth.expires_at or 0
        if now_ms() < expires_at - REFRESH_MARGIN_MS:
            return auth.access_token

        if not auth.refresh_token or not auth.client_id:
            raise AuthError("Token expired and no refresh token available. Run: xc auth import")

        logger.warning("Refreshing access token for account %s", account.name)
        refreshed = refresh_access_token(auth.client_id, auth.refresh_token, session, now_ms)
        name = account_name or store.load().default_account
        store.set_account(
            name,
            AccountConfig(
                name=account.name,
                auth=refreshed,
                user_id=account.user_id,
                username=account.username,
            ),
        )
        return refreshed.access_token

    raise AuthError(f"Unknown auth type: {auth.type}")
