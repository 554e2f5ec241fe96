from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from portal.access.resolver import AccessLevel


class HubOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    description: str | None = None
    sort_order: int


class ReportGroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hub_id: int
    code: str
    name: str
    description: str | None = None
    sort_order: int


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    report_group_id: int
    code: str
    name: str
    description: str | None = None
    report_type: str
    sort_order: int
    access_level: AccessLevel | None = None


class CatalogOut(BaseModel):
    hubs: list[HubOut] = Field(default_factory=list)
    report_groups: list[ReportGroupOut] = Field(default_factory=list)
    reports: list[ReportOut] = Field(default_factory=list)


class HubDetailOut(HubOut):
    report_groups: list[ReportGroupOut] = Field(default_factory=list)
    reports: list[ReportOut] = Field(default_factory=list)


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    is_active: bool
