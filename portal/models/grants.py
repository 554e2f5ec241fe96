"""
Grant relations: one table per target kind, one row shape for all of them.

Rows are never deleted on expiry; `expires_at` in the past simply makes a
row inert at read time (see portal.store.grants).
"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from portal.clock import utcnow
from portal.db.base import Base
from portal.models.catalog import EntityKind


class GrantMixin:
    target_attr: ClassVar[str]

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    granted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    granted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    @property
    def target_id(self) -> int:
        return getattr(self, self.target_attr)


class UserHubAccess(GrantMixin, Base):
    __tablename__ = "user_hub_access"
    __table_args__ = (UniqueConstraint("user_id", "hub_id"),)
    target_attr = "hub_id"

    hub_id: Mapped[int] = mapped_column(ForeignKey("hubs.id"), nullable=False, index=True)


class UserReportGroupAccess(GrantMixin, Base):
    __tablename__ = "user_report_group_access"
    __table_args__ = (UniqueConstraint("user_id", "report_group_id"),)
    target_attr = "report_group_id"

    report_group_id: Mapped[int] = mapped_column(ForeignKey("report_groups.id"), nullable=False, index=True)


class UserReportAccess(GrantMixin, Base):
    __tablename__ = "user_report_access"
    __table_args__ = (UniqueConstraint("user_id", "report_id"),)
    target_attr = "report_id"

    report_id: Mapped[int] = mapped_column(ForeignKey("reports.id"), nullable=False, index=True)


class UserDepartment(GrantMixin, Base):
    """Department membership. Same shape as a grant, so it can expire too."""

    __tablename__ = "user_departments"
    __table_args__ = (UniqueConstraint("user_id", "department_id"),)
    target_attr = "department_id"

    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), nullable=False, index=True)


GRANT_MODELS: dict[EntityKind, type[GrantMixin]] = {
    EntityKind.HUB: UserHubAccess,
    EntityKind.REPORT_GROUP: UserReportGroupAccess,
    EntityKind.REPORT: UserReportAccess,
    EntityKind.DEPARTMENT: UserDepartment,
}
