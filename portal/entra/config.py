"""Entra ID settings, taken from the portal Settings. No hardcoded secrets."""

from __future__ import annotations

from dataclasses import dataclass

from portal.settings import Settings

LOGIN_BASE = "https://login.microsoftonline.com"


@dataclass(frozen=True)
class EntraConfig:
    """
    Azure Entra ID configuration for validating portal access tokens.

    Sourced from:
        PORTAL_AZURE_TENANT_ID: Tenant (directory) ID.
        PORTAL_AZURE_CLIENT_ID: API application (client) ID; default audience.
        PORTAL_AZURE_AUDIENCE: Optional audience override (e.g. "api://portal").
        PORTAL_CLOCK_SKEW_SECONDS: Tolerance for exp/nbf (default 120).
        PORTAL_JWKS_CACHE_TTL_SECONDS: How long signing keys are cached (default 3600).
    """

    tenant_id: str
    client_id: str
    audience: str | None = None
    clock_skew_seconds: int = 120
    jwks_cache_ttl_seconds: int = 3600

    @property
    def expected_audience(self) -> str:
        return self.audience or self.client_id

    @property
    def issuer(self) -> str:
        return f"{LOGIN_BASE}/{self.tenant_id}/v2.0"

    @property
    def jwks_uri(self) -> str:
        return f"{LOGIN_BASE}/{self.tenant_id}/discovery/v2.0/keys"

    @classmethod
    def from_settings(cls, settings: Settings) -> EntraConfig:
        tenant = _strip_or_none(settings.azure_tenant_id)
        client = _strip_or_none(settings.azure_client_id)
        if not tenant or not client:
            raise ValueError("PORTAL_AZURE_TENANT_ID and PORTAL_AZURE_CLIENT_ID must be set for entra auth")
        return cls(
            tenant_id=tenant,
            client_id=client,
            audience=_strip_or_none(settings.azure_audience),
            clock_skew_seconds=settings.clock_skew_seconds,
            jwks_cache_ttl_seconds=settings.jwks_cache_ttl_seconds,
        )


def token_url(tenant_id: str) -> str:
    return f"{LOGIN_BASE}/{tenant_id}/oauth2/v2.0/token"


def _strip_or_none(s: str | None) -> str | None:
    if s is None:
        return None
    t = s.strip()
    return t if t else None
