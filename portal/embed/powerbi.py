"""
Power BI REST client for "App Owns Data" embedding.

Flow per report:
    1. client credentials token for the Power BI API (cached)
    2. GET  /v1.0/myorg/groups/{workspace}/reports/{report}          -> embedUrl
    3. POST /v1.0/myorg/groups/{workspace}/reports/{report}/GenerateToken -> view token

Every HTTP call is bounded by the configured timeout. Any failure surfaces as
UpstreamUnavailableError; the embed resolver decides what to fall back to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import requests

from portal.entra.app_token import ClientCredentialsToken
from portal.errors import UpstreamUnavailableError
from portal.settings import Settings

logger = logging.getLogger(__name__)

POWERBI_SCOPE = "https://analysis.windows.net/powerbi/api/.default"
PLACEHOLDER_PREFIX = "YOUR_"


def _usable(value: str | None) -> bool:
    return bool(value and value.strip() and not value.strip().startswith(PLACEHOLDER_PREFIX))


@dataclass(frozen=True)
class PowerBIConfig:
    tenant_id: str | None
    client_id: str | None
    client_secret: str | None
    api_url: str = "https://api.powerbi.com"
    timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        return _usable(self.tenant_id) and _usable(self.client_id) and _usable(self.client_secret)

    @classmethod
    def from_settings(cls, settings: Settings) -> PowerBIConfig:
        return cls(
            tenant_id=settings.powerbi_tenant_id or settings.azure_tenant_id,
            client_id=settings.powerbi_client_id or settings.azure_client_id,
            client_secret=settings.powerbi_client_secret or settings.azure_client_secret,
            api_url=settings.powerbi_api_url.rstrip("/"),
            timeout_seconds=settings.powerbi_timeout_seconds,
        )


@dataclass(frozen=True)
class PowerBIEmbedInfo:
    embed_url: str
    token: str
    expires_at: datetime | None


def _parse_expiration(value: str | None) -> datetime | None:
    """Power BI returns e.g. "2024-01-01T12:00:00Z"; stored as naive UTC like the rest of the portal."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable Power BI token expiration %r", value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class PowerBITokenService:
    def __init__(self, config: PowerBIConfig, app_token: ClientCredentialsToken | None = None) -> None:
        self.config = config
        self._app_token = app_token
        if self._app_token is None and config.is_configured:
            self._app_token = ClientCredentialsToken(
                tenant_id=config.tenant_id,
                client_id=config.client_id,
                client_secret=config.client_secret,
                scope=POWERBI_SCOPE,
                timeout=config.timeout_seconds,
            )

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured and self._app_token is not None

    def get_embed_info(self, workspace_id: str, report_id: str) -> PowerBIEmbedInfo:
        if not self.is_configured:
            raise UpstreamUnavailableError("Power BI credentials are not configured")

        headers = {"Authorization": f"Bearer {self._app_token.get()}"}
        report_url = f"{self.config.api_url}/v1.0/myorg/groups/{workspace_id}/reports/{report_id}"

        report = self._call("GET", report_url, headers=headers)
        embed_url = report.get("embedUrl")
        if not embed_url:
            raise UpstreamUnavailableError("Power BI report response has no embedUrl")

        token_body = self._call(
            "POST",
            f"{report_url}/GenerateToken",
            headers=headers,
            json={"accessLevel": "View", "allowSaveAs": False},
        )
        token = token_body.get("token")
        if not token:
            raise UpstreamUnavailableError("Power BI GenerateToken response has no token")

        logger.debug("Power BI embed token issued workspace=%s report=%s", workspace_id, report_id)
        return PowerBIEmbedInfo(
            embed_url=embed_url,
            token=token,
            expires_at=_parse_expiration(token_body.get("expiration")),
        )

    def _call(self, method: str, url: str, **kwargs) -> dict:
        try:
            resp = requests.request(method, url, timeout=self.config.timeout_seconds, **kwargs)
        except requests.RequestException as e:
            raise UpstreamUnavailableError(f"Power BI request failed: {type(e).__name__}") from e

        if resp.status_code == 401 and self._app_token is not None:
            # Cached app token may have been revoked; next call fetches a new one.
            self._app_token.invalidate()
        if resp.status_code != 200:
            raise UpstreamUnavailableError(f"Power BI returned status={resp.status_code}")
        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Power BI returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise UpstreamUnavailableError("Power BI returned an unexpected body")
        return body
