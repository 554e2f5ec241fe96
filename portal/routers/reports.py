from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from portal.access import AccessibleCatalog, AccessLevel, Identity, PermissionResolver
from portal.audit import audit_event
from portal.db.session import get_db
from portal.embed.resolver import (
    EmbedDescriptor,
    EmbedKind,
    EmbedResolver,
    ssrs_render_url,
    with_access_token,
)
from portal.errors import NotFoundError
from portal.models.catalog import Report
from portal.models.security import User
from portal.schemas.catalog import CatalogOut, HubDetailOut, HubOut, ReportGroupOut, ReportOut
from portal.schemas.embed import EmbedOut
from portal.schemas.security import MeOut, UserOut
from portal.security.dependencies import get_access_token, get_current_user, get_identity

router = APIRouter(tags=["reports"])


def get_resolver(db: Session = Depends(get_db)) -> PermissionResolver:
    return PermissionResolver(db)


def get_embed_resolver(request: Request) -> EmbedResolver:
    resolver = getattr(request.app.state, "embed_resolver", None)
    if resolver is None:
        raise RuntimeError("Embed resolver not configured. Did app startup run?")
    return resolver


def _report_out(report: Report, level: AccessLevel | None = None) -> ReportOut:
    out = ReportOut.model_validate(report)
    return out.model_copy(update={"access_level": level})


def _catalog_out(catalog: AccessibleCatalog) -> CatalogOut:
    return CatalogOut(
        hubs=[HubOut.model_validate(h) for h in catalog.hubs],
        report_groups=[ReportGroupOut.model_validate(g) for g in catalog.report_groups],
        reports=[_report_out(r, catalog.access_levels.get(r.id)) for r in catalog.reports],
    )


def _visible_report(resolver: PermissionResolver, identity: Identity, report_id: int) -> Report:
    # Nonexistent and invisible look the same to the caller.
    try:
        report = resolver.resolve_report(identity, report_id)
    except NotFoundError:
        report = None
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return report


@router.get("/me", response_model=MeOut)
def me(user: User = Depends(get_current_user), identity: Identity = Depends(get_identity)) -> MeOut:
    return MeOut(**UserOut.model_validate(user).model_dump(), is_admin=identity.is_admin)


@router.get("/catalog", response_model=CatalogOut)
def catalog(
    identity: Identity = Depends(get_identity),
    resolver: PermissionResolver = Depends(get_resolver),
) -> CatalogOut:
    return _catalog_out(resolver.resolve_accessible_catalog(identity))


@router.get("/hubs/{hub_id}", response_model=HubDetailOut)
def hub_detail(
    hub_id: int,
    identity: Identity = Depends(get_identity),
    resolver: PermissionResolver = Depends(get_resolver),
) -> HubDetailOut:
    if not resolver.can_access_hub(identity, hub_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hub not found")

    scoped = _catalog_out(resolver.resolve_accessible_catalog(identity).within_hub(hub_id))
    if not scoped.hubs:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hub not found")
    return HubDetailOut(
        **scoped.hubs[0].model_dump(),
        report_groups=scoped.report_groups,
        reports=scoped.reports,
    )


@router.get("/reports/{report_id}", response_model=ReportOut)
def get_report(
    report_id: int,
    identity: Identity = Depends(get_identity),
    resolver: PermissionResolver = Depends(get_resolver),
) -> ReportOut:
    return _report_out(_visible_report(resolver, identity, report_id))


@router.get("/reports/{report_id}/embed", response_model=EmbedOut)
def get_embed(
    report_id: int,
    identity: Identity = Depends(get_identity),
    access_token: str = Depends(get_access_token),
    resolver: PermissionResolver = Depends(get_resolver),
    embed_resolver: EmbedResolver = Depends(get_embed_resolver),
) -> EmbedOut:
    report = _visible_report(resolver, identity, report_id)
    audit_event("report.accessed", identity.user_id, report_id=report_id, access_type="embed")
    result = embed_resolver.resolve_embed(report)

    if not isinstance(result, EmbedDescriptor):
        return EmbedOut(
            report_id=report_id,
            status="needs_configuration",
            reason=result.reason,
            informational=result.informational,
        )

    url = result.url
    if result.requires_access_token:
        url = with_access_token(url, access_token)
    return EmbedOut(
        report_id=report_id,
        status="ready",
        report_type=result.report_type,
        kind=result.kind.value,
        url=url,
        token=result.token,
        token_expires_at=result.token_expires_at,
        parameters=result.parameters,
    )


@router.get("/reports/{report_id}/render")
def render_ssrs(
    report_id: int,
    identity: Identity = Depends(get_identity),
    resolver: PermissionResolver = Depends(get_resolver),
    embed_resolver: EmbedResolver = Depends(get_embed_resolver),
) -> RedirectResponse:
    """SSRS iframe target: re-checks access, then hands the browser to the ReportViewer."""
    report = _visible_report(resolver, identity, report_id)
    result = embed_resolver.resolve_embed(report)
    if not isinstance(result, EmbedDescriptor) or result.kind is not EmbedKind.SSRS_PROXY:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No SSRS rendering for this report")

    audit_event("report.accessed", identity.user_id, report_id=report_id, access_type="render")
    return RedirectResponse(ssrs_render_url(result.server_url, result.report_path), status_code=status.HTTP_302_FOUND)
