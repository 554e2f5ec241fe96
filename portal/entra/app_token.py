"""
App-only (client credentials) access tokens, cached until shortly before expiry.

One instance per (tenant, client, scope). Safe to share between threads.
"""

from __future__ import annotations

import logging
import threading
import time

import requests

from portal.errors import UpstreamUnavailableError

from .config import token_url

logger = logging.getLogger(__name__)

REFRESH_MARGIN_SECONDS = 300


class ClientCredentialsToken:
    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scope: str,
        timeout: float = 10.0,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self._client_secret = client_secret
        self.scope = scope
        self._timeout = timeout
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def get(self) -> str:
        """Cached token, or a fresh one. Raises UpstreamUnavailableError on failure."""
        with self._lock:
            now = time.monotonic()
            if self._token and now < self._expires_at:
                return self._token
            token, expires_in = self._request()
            self._token = token
            self._expires_at = now + max(expires_in - REFRESH_MARGIN_SECONDS, 60)
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _request(self) -> tuple[str, int]:
        data = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "scope": self.scope,
            "grant_type": "client_credentials",
        }
        try:
            resp = requests.post(token_url(self.tenant_id), data=data, timeout=self._timeout)
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("App token request failed scope=%s: %s", self.scope, type(e).__name__)
            raise UpstreamUnavailableError(f"token request failed: {type(e).__name__}") from e

        access_token = body.get("access_token")
        if not access_token:
            raise UpstreamUnavailableError("no access_token in token response")
        return access_token, int(body.get("expires_in", 3600))
