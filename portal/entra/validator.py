"""
Validate Entra-signed access tokens.

Signature, issuer, audience, exp and nbf are all verified before any claim
is read. Token contents are never logged.
"""

from __future__ import annotations

import logging
from typing import Any

import jwt
import requests

from .config import EntraConfig
from .context import TokenContext
from .jwks_cache import JWKSCache

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Token rejected. The message is safe to return to the client."""


def _claims_to_context(payload: dict[str, Any]) -> TokenContext:
    # oid is tenant-wide and stable; sub is pairwise per app registration.
    object_id = str(payload.get("oid") or payload.get("sub") or "")
    if not object_id:
        raise ValidationError("Invalid token: no subject")

    raw_roles = payload.get("roles") or []
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    username = payload.get("preferred_username")
    return TokenContext(
        object_id=object_id,
        roles=tuple(str(r) for r in raw_roles),
        preferred_username=str(username) if username is not None else None,
    )


class EntraTokenValidator:
    def __init__(self, config: EntraConfig, jwks: JWKSCache | None = None) -> None:
        self._config = config
        self._jwks = jwks or JWKSCache(config.jwks_uri, config.jwks_cache_ttl_seconds)

    def validate(self, token: str) -> TokenContext:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except jwt.InvalidTokenError as e:
            raise ValidationError("Invalid token") from e
        if not kid:
            raise ValidationError("Invalid token: missing key id")

        try:
            signing_key = self._jwks.get_signing_key(kid)
        except requests.RequestException as e:
            logger.warning("JWKS fetch failed: %s", type(e).__name__)
            raise ValidationError("Unable to verify token") from e
        if signing_key is None:
            raise ValidationError("Invalid token: unknown signing key")

        try:
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self._config.expected_audience,
                issuer=self._config.issuer,
                leeway=self._config.clock_skew_seconds,
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise ValidationError("Token expired") from e
        except jwt.InvalidIssuerError as e:
            logger.info("Token invalid issuer")
            raise ValidationError("Invalid token: issuer") from e
        except jwt.InvalidAudienceError as e:
            logger.info("Token invalid audience")
            raise ValidationError("Invalid token: audience") from e
        except jwt.InvalidTokenError as e:
            logger.info("Token invalid: %s", type(e).__name__)
            raise ValidationError("Invalid token") from e

        return _claims_to_context(payload)
