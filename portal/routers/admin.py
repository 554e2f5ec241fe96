from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from portal.access import Identity
from portal.admin.service import AdminService, MutationResult
from portal.db.session import get_db
from portal.models.catalog import Department, EntityKind
from portal.models.security import User
from portal.schemas.admin import (
    ActiveIn,
    AdminFlagIn,
    CatalogEntryUpdate,
    CreatedOut,
    DepartmentIn,
    ExpiryIn,
    GrantIn,
    GrantOut,
    HubIn,
    LockoutIn,
    MutationOut,
    ReorderIn,
    ReparentIn,
    ReportDepartmentsIn,
    ReportGroupIn,
    ReportIn,
    ReportUpdate,
    UserPermissionsOut,
)
from portal.schemas.catalog import DepartmentOut
from portal.schemas.security import UserOut
from portal.security.dependencies import get_identity
from portal.settings import Settings, get_settings

# Role requirements for everything under /admin live in config/security_config.yaml.
router = APIRouter(prefix="/admin", tags=["admin"])


def get_admin_service(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> AdminService:
    return AdminService(db, admin_role=settings.admin_role)


def _respond(result: MutationResult) -> MutationOut:
    if result is MutationResult.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if result is MutationResult.INVALID_TARGET:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invalid target")
    return MutationOut(result=result)


# ---- users and grants -------------------------------------------------------------


@router.get("/users", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db)) -> list[User]:
    stmt = select(User).options(selectinload(User.roles)).order_by(User.id)
    return list(db.scalars(stmt).all())


@router.get("/users/{user_id}/permissions", response_model=UserPermissionsOut)
def user_permissions(user_id: int, service: AdminService = Depends(get_admin_service)) -> UserPermissionsOut:
    perms = service.user_permissions(user_id)

    def grants(kind: EntityKind) -> list[GrantOut]:
        return [
            GrantOut(target_id=g.target_id, granted_at=g.granted_at, granted_by=g.granted_by, expires_at=g.expires_at)
            for g in perms.grants[kind]
        ]

    return UserPermissionsOut(
        user_id=user_id,
        hubs=grants(EntityKind.HUB),
        report_groups=grants(EntityKind.REPORT_GROUP),
        reports=grants(EntityKind.REPORT),
        departments=grants(EntityKind.DEPARTMENT),
    )


@router.post("/users/{user_id}/grants", response_model=MutationOut)
def grant_access(
    user_id: int,
    body: GrantIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.grant_access(user_id, body.kind, body.target_id, identity.user_id, body.expires_at))


@router.delete("/users/{user_id}/grants/{kind}/{target_id}", response_model=MutationOut)
def revoke_access(
    user_id: int,
    kind: EntityKind,
    target_id: int,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.revoke_access(user_id, kind, target_id, actor_id=identity.user_id))


@router.put("/users/{user_id}/admin", response_model=MutationOut)
def set_user_admin(
    user_id: int,
    body: AdminFlagIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.set_user_admin(user_id, body.is_admin, actor_id=identity.user_id))


@router.put("/users/{user_id}/locked-out", response_model=MutationOut)
def set_user_locked_out(
    user_id: int,
    body: LockoutIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.set_user_locked_out(user_id, body.is_locked_out, actor_id=identity.user_id))


@router.put("/users/{user_id}/expired", response_model=MutationOut)
def set_user_expired(
    user_id: int,
    body: ExpiryIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.set_user_expired(user_id, body.is_expired, body.reason, actor_id=identity.user_id))


# ---- catalog ----------------------------------------------------------------------


@router.post("/hubs", response_model=CreatedOut, status_code=status.HTTP_201_CREATED)
def create_hub(
    body: HubIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
):
    return service.create_hub(body.name, code=body.code, description=body.description, actor_id=identity.user_id)


@router.post("/report-groups", response_model=CreatedOut, status_code=status.HTTP_201_CREATED)
def create_report_group(
    body: ReportGroupIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
):
    return service.create_report_group(
        body.hub_id,
        body.name,
        code=body.code,
        description=body.description,
        actor_id=identity.user_id,
    )


@router.post("/reports", response_model=CreatedOut, status_code=status.HTTP_201_CREATED)
def create_report(
    body: ReportIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
):
    return service.create_report(
        body.report_group_id,
        body.name,
        body.report_type.value,
        code=body.code,
        description=body.description,
        embed_url=body.embed_url,
        powerbi_workspace_id=body.powerbi_workspace_id,
        powerbi_report_id=body.powerbi_report_id,
        ssrs_server_url=body.ssrs_server_url,
        ssrs_report_path=body.ssrs_report_path,
        parameters=body.parameters,
        actor_id=identity.user_id,
    )


@router.get("/departments", response_model=list[DepartmentOut])
def list_departments(db: Session = Depends(get_db)) -> list[Department]:
    return list(db.scalars(select(Department).order_by(Department.sort_order, Department.id)).all())


@router.post("/departments", response_model=CreatedOut, status_code=status.HTTP_201_CREATED)
def create_department(
    body: DepartmentIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
):
    return service.create_department(body.name, code=body.code, description=body.description, actor_id=identity.user_id)


@router.put("/hubs/{hub_id}", response_model=MutationOut)
def update_hub(
    hub_id: int,
    body: CatalogEntryUpdate,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.update_hub(hub_id, body.model_dump(exclude_unset=True), actor_id=identity.user_id))


@router.put("/report-groups/{report_group_id}", response_model=MutationOut)
def update_report_group(
    report_group_id: int,
    body: CatalogEntryUpdate,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    changes = body.model_dump(exclude_unset=True)
    return _respond(service.update_report_group(report_group_id, changes, actor_id=identity.user_id))


@router.put("/reports/{report_id}", response_model=MutationOut)
def update_report(
    report_id: int,
    body: ReportUpdate,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.update_report(report_id, body.model_dump(exclude_unset=True), actor_id=identity.user_id))


@router.put("/departments/{department_id}", response_model=MutationOut)
def update_department(
    department_id: int,
    body: CatalogEntryUpdate,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    changes = body.model_dump(exclude_unset=True)
    return _respond(service.update_department(department_id, changes, actor_id=identity.user_id))


@router.put("/reports/{report_id}/departments", response_model=MutationOut)
def replace_report_departments(
    report_id: int,
    body: ReportDepartmentsIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.replace_report_departments(report_id, body.department_ids, identity.user_id))


@router.put("/reports/{report_id}/group", response_model=MutationOut)
def reparent_report(
    report_id: int,
    body: ReparentIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.reparent_report(report_id, body.report_group_id, actor_id=identity.user_id))


@router.put("/catalog/{kind}/{entity_id}/active", response_model=MutationOut)
def set_active(
    kind: EntityKind,
    entity_id: int,
    body: ActiveIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.set_active(kind, entity_id, body.is_active, actor_id=identity.user_id))


@router.post("/catalog/{kind}/reorder", response_model=MutationOut)
def reorder(
    kind: EntityKind,
    body: ReorderIn,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.reorder(kind, body.ordered_ids, body.parent_id, actor_id=identity.user_id))


@router.delete("/catalog/{kind}/{entity_id}", response_model=MutationOut)
def delete_entity(
    kind: EntityKind,
    entity_id: int,
    identity: Identity = Depends(get_identity),
    service: AdminService = Depends(get_admin_service),
) -> MutationOut:
    return _respond(service.delete_entity(kind, entity_id, actor_id=identity.user_id))
