"""
Report embed resolver: turn one resolved report into something renderable.

Outcomes:
- `EmbedDescriptor`: render this URL (optionally with a Power BI token).
- `NeedsConfiguration`: a normal, user-facing "not configured yet" result.
- `UnknownReportTypeError`: the catalog holds a type we do not know. Log and
  escalate; do not show the detail to end users.

This module never checks permissions. Callers resolve access first.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from portal.audit import audit_event
from portal.embed.config import (
    PaginatedEmbedConfig,
    PowerBIEmbedConfig,
    SSRSEmbedConfig,
    embed_config_for,
    report_parameters,
    report_type_of,
)
from portal.errors import UpstreamUnavailableError
from portal.models.catalog import Report

if TYPE_CHECKING:
    from portal.embed.powerbi import PowerBITokenService

logger = logging.getLogger(__name__)

MISSING_EMBED_URL = "missing embed URL"
MISSING_SERVER_CONFIGURATION = "missing server configuration"
REQUIRES_POWERBI_EMBEDDED = "requires Power BI Embedded API"
REQUIRES_URL_OR_SSRS = "requires either embed URL or SSRS details"
POWERBI_TOKEN_UNAVAILABLE = "Power BI embed token unavailable"

DEFAULT_SSRS_PROXY_PATH = "/reports/{report_id}/render"


class EmbedKind(str, enum.Enum):
    IFRAME = "iframe"
    POWER_BI = "powerbi"
    SSRS_PROXY = "ssrs_proxy"


@dataclass(frozen=True)
class EmbedDescriptor:
    report_id: int
    report_type: str
    kind: EmbedKind
    url: str

    # Power BI embed token (kind == POWER_BI only).
    token: str | None = None
    token_expires_at: datetime | None = None

    # SSRS proxy (kind == SSRS_PROXY only): the serving layer must append the
    # caller's bearer token to `url`, iframes cannot send headers.
    server_url: str | None = None
    report_path: str | None = None
    requires_access_token: bool = False

    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NeedsConfiguration:
    reason: str
    informational: bool = False


EmbedResult = Union[EmbedDescriptor, NeedsConfiguration]


def normalize_report_path(report_path: str) -> str:
    return report_path if report_path.startswith("/") else "/" + report_path


def ssrs_render_url(server_url: str, report_path: str) -> str:
    """ReportViewer URL that renders `report_path` embedded, without the toolbar chrome."""
    base = server_url.rstrip("/")
    return f"{base}/Pages/ReportViewer.aspx?{normalize_report_path(report_path)}&rs:Command=Render&rs:Embed=true"


def with_access_token(url: str, token: str, param: str = "access_token") -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != param]
    query.append((param, token))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class EmbedResolver:
    """
    Pure function of the report's current configuration, except for the
    optional Power BI token exchange, which is time-bounded by the token
    service and degrades to a fallback instead of raising.
    """

    def __init__(
        self,
        token_service: PowerBITokenService | None = None,
        ssrs_proxy_path: str = DEFAULT_SSRS_PROXY_PATH,
    ) -> None:
        self._token_service = token_service
        self._ssrs_proxy_path = ssrs_proxy_path
        self._handlers = {
            PowerBIEmbedConfig: self._resolve_powerbi,
            SSRSEmbedConfig: self._resolve_ssrs,
            PaginatedEmbedConfig: self._resolve_paginated,
        }

    def resolve_embed(self, report: Report) -> EmbedResult:
        config = embed_config_for(report)
        handler = self._handlers[type(config)]
        result = handler(report, config)
        if isinstance(result, NeedsConfiguration):
            logger.info("Report report_id=%s needs configuration: %s", report.id, result.reason)
        return result

    # ---- per type ---------------------------------------------------------------

    def _resolve_powerbi(self, report: Report, config: PowerBIEmbedConfig) -> EmbedResult:
        if config.workspace_id and config.report_id and self._token_service_ready():
            try:
                info = self._token_service.get_embed_info(config.workspace_id, config.report_id)
            except UpstreamUnavailableError as exc:
                logger.warning("Power BI embed token failed for report_id=%s: %s", report.id, exc)
                audit_event("embed.powerbi_token_failed", None, report_id=report.id)
            else:
                return self._descriptor(
                    report,
                    EmbedKind.POWER_BI,
                    info.embed_url,
                    token=info.token,
                    token_expires_at=info.expires_at,
                )
            if config.embed_url:
                return self._descriptor(report, EmbedKind.IFRAME, config.embed_url)
            return NeedsConfiguration(POWERBI_TOKEN_UNAVAILABLE)

        if config.embed_url:
            return self._descriptor(report, EmbedKind.IFRAME, config.embed_url)
        return NeedsConfiguration(MISSING_EMBED_URL)

    def _resolve_ssrs(self, report: Report, config: SSRSEmbedConfig) -> EmbedResult:
        if not (config.server_url and config.report_path):
            return NeedsConfiguration(MISSING_SERVER_CONFIGURATION)
        return self._descriptor(
            report,
            EmbedKind.SSRS_PROXY,
            self._ssrs_proxy_path.format(report_id=report.id),
            server_url=config.server_url,
            report_path=normalize_report_path(config.report_path),
            requires_access_token=True,
        )

    def _resolve_paginated(self, report: Report, config: PaginatedEmbedConfig) -> EmbedResult:
        if config.embed_url:
            return self._descriptor(report, EmbedKind.IFRAME, config.embed_url)
        if config.paginated_report_id:
            # Token-based embedding of Power BI hosted paginated reports is an
            # external integration; tell the caller, this is not an error.
            return NeedsConfiguration(REQUIRES_POWERBI_EMBEDDED, informational=True)
        if config.server_url and config.report_path:
            return self._descriptor(report, EmbedKind.IFRAME, ssrs_render_url(config.server_url, config.report_path))
        return NeedsConfiguration(REQUIRES_URL_OR_SSRS)

    # ---- helpers ----------------------------------------------------------------

    def _token_service_ready(self) -> bool:
        return self._token_service is not None and self._token_service.is_configured

    def _descriptor(self, report: Report, kind: EmbedKind, url: str, **extra) -> EmbedDescriptor:
        return EmbedDescriptor(
            report_id=report.id,
            report_type=report_type_of(report).value,
            kind=kind,
            url=url,
            parameters=report_parameters(report),
            **extra,
        )
