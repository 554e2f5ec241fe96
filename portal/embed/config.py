"""
Per-technology embed configuration.

A closed set of frozen variants, one per `ReportType`. Blank strings are
normalized to None here so the resolver only ever asks "is it set?".
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Union

from portal.errors import UnknownReportTypeError
from portal.models.catalog import Report, ReportType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PowerBIEmbedConfig:
    embed_url: str | None
    workspace_id: str | None
    report_id: str | None


@dataclass(frozen=True)
class SSRSEmbedConfig:
    server_url: str | None
    report_path: str | None


@dataclass(frozen=True)
class PaginatedEmbedConfig:
    embed_url: str | None
    workspace_id: str | None
    paginated_report_id: str | None
    server_url: str | None
    report_path: str | None


EmbedConfig = Union[PowerBIEmbedConfig, SSRSEmbedConfig, PaginatedEmbedConfig]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def report_type_of(report: Report) -> ReportType:
    try:
        return ReportType(report.report_type)
    except ValueError as exc:
        raise UnknownReportTypeError(report.id, report.report_type) from exc


def embed_config_for(report: Report) -> EmbedConfig:
    report_type = report_type_of(report)

    if report_type is ReportType.POWER_BI:
        return PowerBIEmbedConfig(
            embed_url=_clean(report.embed_url),
            workspace_id=_clean(report.powerbi_workspace_id),
            report_id=_clean(report.powerbi_report_id),
        )
    if report_type is ReportType.SSRS:
        return SSRSEmbedConfig(
            server_url=_clean(report.ssrs_server_url),
            report_path=_clean(report.ssrs_report_path),
        )
    return PaginatedEmbedConfig(
        embed_url=_clean(report.embed_url),
        workspace_id=_clean(report.powerbi_workspace_id),
        paginated_report_id=_clean(report.powerbi_report_id),
        server_url=_clean(report.ssrs_server_url),
        report_path=_clean(report.ssrs_report_path),
    )


def report_parameters(report: Report) -> dict[str, str]:
    """Report parameters as stored by admins; passed through, never interpreted."""
    if not report.parameters:
        return {}
    try:
        raw = json.loads(report.parameters)
    except ValueError:
        logger.warning("Ignoring malformed parameters JSON on report_id=%s", report.id)
        return {}
    if not isinstance(raw, dict):
        logger.warning("Ignoring non-object parameters JSON on report_id=%s", report.id)
        return {}
    return {str(k): str(v) for k, v in raw.items()}
