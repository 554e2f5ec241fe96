from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from portal.admin.service import MutationResult
from portal.models.catalog import EntityKind, ReportType


class MutationOut(BaseModel):
    result: MutationResult


class GrantIn(BaseModel):
    kind: EntityKind
    target_id: int
    expires_at: datetime | None = None


class GrantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    target_id: int
    granted_at: datetime
    granted_by: int | None = None
    expires_at: datetime | None = None


class UserPermissionsOut(BaseModel):
    user_id: int
    hubs: list[GrantOut] = Field(default_factory=list)
    report_groups: list[GrantOut] = Field(default_factory=list)
    reports: list[GrantOut] = Field(default_factory=list)
    departments: list[GrantOut] = Field(default_factory=list)


class ActiveIn(BaseModel):
    is_active: bool


class AdminFlagIn(BaseModel):
    is_admin: bool


class ReorderIn(BaseModel):
    ordered_ids: list[int]
    parent_id: int | None = None


class ReparentIn(BaseModel):
    report_group_id: int


class ReportDepartmentsIn(BaseModel):
    department_ids: list[int]


class HubIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: str | None = None
    description: str | None = None


class ReportGroupIn(HubIn):
    hub_id: int


class DepartmentIn(HubIn):
    pass


class ReportIn(BaseModel):
    report_group_id: int
    name: str = Field(min_length=1, max_length=200)
    report_type: ReportType
    code: str | None = None
    description: str | None = None
    embed_url: str | None = None
    powerbi_workspace_id: str | None = None
    powerbi_report_id: str | None = None
    ssrs_server_url: str | None = None
    ssrs_report_path: str | None = None
    parameters: dict[str, str] | None = None


class CreatedOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str


class CatalogEntryUpdate(BaseModel):
    """Partial update: only fields present in the request body are changed."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    code: str | None = None
    description: str | None = None


class ReportUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    code: str | None = None
    description: str | None = None
    report_type: ReportType | None = None
    embed_url: str | None = None
    powerbi_workspace_id: str | None = None
    powerbi_report_id: str | None = None
    ssrs_server_url: str | None = None
    ssrs_report_path: str | None = None
    parameters: dict[str, str] | None = None


class LockoutIn(BaseModel):
    is_locked_out: bool


class ExpiryIn(BaseModel):
    is_expired: bool
    reason: str | None = Field(default=None, max_length=200)
