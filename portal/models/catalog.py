from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.clock import utcnow
from portal.db.base import Base


class EntityKind(str, enum.Enum):
    HUB = "hub"
    REPORT_GROUP = "report_group"
    REPORT = "report"
    DEPARTMENT = "department"


class ReportType(str, enum.Enum):
    POWER_BI = "PowerBI"
    SSRS = "SSRS"
    PAGINATED = "Paginated"


class Hub(Base):
    __tablename__ = "hubs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    report_groups: Mapped[list["ReportGroup"]] = relationship(back_populates="hub")


class ReportGroup(Base):
    __tablename__ = "report_groups"
    __table_args__ = (UniqueConstraint("hub_id", "code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    hub_id: Mapped[int] = mapped_column(ForeignKey("hubs.id"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    hub: Mapped[Hub] = relationship(back_populates="report_groups")
    reports: Mapped[list["Report"]] = relationship(back_populates="report_group")


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_group_id: Mapped[int] = mapped_column(ForeignKey("report_groups.id"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Stored as text: the embed resolver rejects anything outside ReportType.
    report_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Embed configuration. Which columns matter depends on report_type;
    # see portal.embed.config.embed_config_for().
    embed_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    powerbi_workspace_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    powerbi_report_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ssrs_server_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    ssrs_report_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    parameters: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON object

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    report_group: Mapped[ReportGroup] = relationship(back_populates="reports")
    department_links: Mapped[list["ReportDepartment"]] = relationship(back_populates="report")


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class ReportDepartment(Base):
    """Report visible to members of a department."""

    __tablename__ = "report_departments"

    report_id: Mapped[int] = mapped_column(ForeignKey("reports.id"), primary_key=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), primary_key=True, index=True)

    granted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    granted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    report: Mapped[Report] = relationship(back_populates="department_links")
    department: Mapped[Department] = relationship()


CATALOG_MODELS: dict[EntityKind, type[Base]] = {
    EntityKind.HUB: Hub,
    EntityKind.REPORT_GROUP: ReportGroup,
    EntityKind.REPORT: Report,
    EntityKind.DEPARTMENT: Department,
}
