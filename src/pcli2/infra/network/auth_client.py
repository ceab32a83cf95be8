from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import requests

from pcli2.domain.errors import AuthenticationError, NetworkError
from pcli2.infra.network.common import AUTH_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

# Refresh tokens this many seconds before the server-side expiry
EXPIRY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class AccessToken:
    value: str
    token_type: str
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at - EXPIRY_MARGIN_SECONDS


def fetch_access_token(
        client_id: str,
        client_secret: str,
        auth_url: str,
        timeout: int = AUTH_TIMEOUT,
) -> AccessToken:
    """Exchange client credentials for a bearer token (OAuth2 client-credentials grant)."""
    logger.debug(f"Requesting access token from {auth_url}")
    try:
        response = requests.post(
            auth_url,
            data={"grant_type": "client_credentials"},
            auth=(client_id, client_secret),
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout,
        )
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Authentication service unreachable: {e}") from e

    if response.status_code != 200:
        raise AuthenticationError(
            f"Token request rejected ({response.status_code}): {response.text[:200]}",
            status_code=response.status_code,
        )

    try:
        payload = response.json()
        value = payload["access_token"]
    except (ValueError, KeyError) as e:
        raise AuthenticationError(f"Malformed token response: {e}") from e

    expires_in = float(payload.get("expires_in", 3600))
    logger.info("Access token acquired.")
    return AccessToken(
        value=value,
        token_type=str(payload.get("token_type", "Bearer")),
        expires_at=time.time() + expires_in,
    )


class ClientCredentialsTokenProvider:
    """Caches one access token and refreshes it on expiry or on demand."""

    def __init__(self, client_id: str, client_secret: str, auth_url: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._auth_url = auth_url
        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()

    def get_token(self, force_refresh: bool = False, stale: Optional[str] = None) -> str:
        """
        Return a valid token value.

        With force_refresh, a token equal to `stale` (the one the server just
        rejected) is replaced; a token already refreshed by another worker is
        reused.
        """
        with self._lock:
            rejected = force_refresh and (
                self._token is None or stale is None or self._token.value == stale
            )
            if rejected or self._token is None or self._token.is_expired():
                self._token = fetch_access_token(self._client_id, self._client_secret, self._auth_url)
            return self._token.value
