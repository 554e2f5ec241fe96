"""
Signing-key cache for the Entra JWKS endpoint.

Keys are indexed by `kid` and refreshed when the TTL elapses. An unknown
`kid` forces one refresh (Entra rotates keys) before the token is rejected.
"""

from __future__ import annotations

import logging
import threading
import time

import requests
from jwt import PyJWK, PyJWKError

logger = logging.getLogger(__name__)


class JWKSCache:
    def __init__(self, jwks_uri: str, ttl_seconds: int, timeout: float = 10.0) -> None:
        self._uri = jwks_uri
        self._ttl = ttl_seconds
        self._timeout = timeout
        self._keys: dict[str, PyJWK] | None = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def _load(self) -> dict[str, PyJWK]:
        resp = requests.get(self._uri, timeout=self._timeout)
        resp.raise_for_status()
        keys: dict[str, PyJWK] = {}
        for entry in resp.json().get("keys") or []:
            kid = entry.get("kid")
            if not kid:
                continue
            try:
                keys[kid] = PyJWK.from_dict(entry)
            except PyJWKError:
                logger.debug("Skipping unusable JWK kid=%s", kid)
        self._keys = keys
        self._fetched_at = time.monotonic()
        logger.debug("JWKS loaded uri=%s keys=%d", self._uri, len(keys))
        return keys

    def get_signing_key(self, kid: str) -> PyJWK | None:
        with self._lock:
            keys = self._keys
            if keys is None or time.monotonic() - self._fetched_at >= self._ttl:
                keys = self._load()
            key = keys.get(kid)
            if key is None:
                logger.info("kid not in cached JWKS; refreshing")
                key = self._load().get(kid)
            return key
