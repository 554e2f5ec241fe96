"""
Catalog reads: Hub -> ReportGroup -> Report, plus Department <-> Report.

Activity is never cascaded in the data; every "visible" query below checks
the report, its group and its hub independently.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, contains_eager

from portal.models.catalog import (
    CATALOG_MODELS,
    Department,
    EntityKind,
    Hub,
    Report,
    ReportDepartment,
    ReportGroup,
)

# Parent column per kind, for sibling ordering. Hubs and departments are top level.
_PARENT_COLUMN = {
    EntityKind.HUB: None,
    EntityKind.REPORT_GROUP: ReportGroup.hub_id,
    EntityKind.REPORT: Report.report_group_id,
    EntityKind.DEPARTMENT: None,
}


@dataclass(frozen=True)
class ReportPath:
    report: Report
    group: ReportGroup
    hub: Hub

    @property
    def is_visible(self) -> bool:
        return self.report.is_active and self.group.is_active and self.hub.is_active


@dataclass(frozen=True)
class CatalogView:
    hubs: list[Hub]
    report_groups: list[ReportGroup]
    reports: list[Report]


def _visible_reports_stmt():
    return (
        select(Report)
        .join(Report.report_group)
        .join(ReportGroup.hub)
        .options(contains_eager(Report.report_group).contains_eager(ReportGroup.hub))
        .where(Report.is_active.is_(True), ReportGroup.is_active.is_(True), Hub.is_active.is_(True))
        .order_by(Report.sort_order, Report.id)
    )


class CatalogStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, kind: EntityKind, entity_id: int):
        return self.db.get(CATALOG_MODELS[kind], entity_id)

    def report_path(self, report_id: int) -> ReportPath | None:
        row = self.db.execute(
            select(Report, ReportGroup, Hub)
            .join(ReportGroup, Report.report_group_id == ReportGroup.id)
            .join(Hub, ReportGroup.hub_id == Hub.id)
            .where(Report.id == report_id)
        ).first()
        if row is None:
            return None
        return ReportPath(report=row[0], group=row[1], hub=row[2])

    # ---- active catalog ----------------------------------------------------------

    def active_catalog(self) -> CatalogView:
        """Every active hub, every active group under an active hub, every visible report."""
        hubs = list(
            self.db.scalars(select(Hub).where(Hub.is_active.is_(True)).order_by(Hub.sort_order, Hub.id)).all()
        )
        groups = list(
            self.db.scalars(
                select(ReportGroup)
                .join(ReportGroup.hub)
                .where(ReportGroup.is_active.is_(True), Hub.is_active.is_(True))
                .order_by(ReportGroup.sort_order, ReportGroup.id)
            ).all()
        )
        reports = list(self.db.scalars(_visible_reports_stmt()).all())
        return CatalogView(hubs=hubs, report_groups=groups, reports=reports)

    def visible_reports(
        self,
        *,
        report_ids: Iterable[int] = (),
        group_ids: Iterable[int] = (),
        hub_ids: Iterable[int] = (),
        department_ids: Iterable[int] = (),
        within_hub_id: int | None = None,
    ) -> list[Report]:
        """
        Reports reachable through ANY of the given paths, ancestor-gated.

        Ids that no longer exist simply match nothing.
        """

        report_ids, group_ids = set(report_ids), set(group_ids)
        hub_ids, department_ids = set(hub_ids), set(department_ids)

        paths = []
        if report_ids:
            paths.append(Report.id.in_(report_ids))
        if group_ids:
            paths.append(Report.report_group_id.in_(group_ids))
        if hub_ids:
            paths.append(ReportGroup.hub_id.in_(hub_ids))
        if department_ids:
            paths.append(Report.id.in_(self._department_reports_subquery(department_ids)))
        if not paths:
            return []

        stmt = _visible_reports_stmt().where(or_(*paths))
        if within_hub_id is not None:
            stmt = stmt.where(ReportGroup.hub_id == within_hub_id)
        return list(self.db.scalars(stmt).all())

    def groups_and_hubs_for(self, reports: Iterable[Report]) -> tuple[list[ReportGroup], list[Hub]]:
        """Groups holding at least one of `reports`, hubs holding at least one of those groups."""
        groups: dict[int, ReportGroup] = {}
        hubs: dict[int, Hub] = {}
        for report in reports:
            group = report.report_group
            groups.setdefault(group.id, group)
            hubs.setdefault(group.hub.id, group.hub)

        return (
            sorted(groups.values(), key=lambda g: (g.sort_order, g.id)),
            sorted(hubs.values(), key=lambda h: (h.sort_order, h.id)),
        )

    # ---- departments -------------------------------------------------------------

    def _department_reports_subquery(self, department_ids: set[int]):
        return (
            select(ReportDepartment.report_id)
            .join(Department, ReportDepartment.department_id == Department.id)
            .where(ReportDepartment.department_id.in_(department_ids), Department.is_active.is_(True))
        )

    def department_ids_for_report(self, report_id: int, *, active_only: bool = True) -> set[int]:
        stmt = select(ReportDepartment.department_id).where(ReportDepartment.report_id == report_id)
        if active_only:
            stmt = stmt.join(Department, ReportDepartment.department_id == Department.id).where(
                Department.is_active.is_(True)
            )
        return set(self.db.scalars(stmt).all())

    def unlink_departments(self, report_id: int, department_ids: Iterable[int]) -> int:
        department_ids = set(department_ids)
        if not department_ids:
            return 0
        result = self.db.execute(
            delete(ReportDepartment).where(
                ReportDepartment.report_id == report_id,
                ReportDepartment.department_id.in_(department_ids),
            )
        )
        return int(result.rowcount or 0)

    def existing_ids(self, kind: EntityKind, ids: Iterable[int]) -> set[int]:
        ids = set(ids)
        if not ids:
            return set()
        model = CATALOG_MODELS[kind]
        return set(self.db.scalars(select(model.id).where(model.id.in_(ids))).all())

    # ---- ordering / structure ----------------------------------------------------

    def siblings(self, kind: EntityKind, parent_id: int | None = None) -> list:
        model = CATALOG_MODELS[kind]
        parent = _PARENT_COLUMN[kind]
        stmt = select(model)
        if parent is not None:
            stmt = stmt.where(parent == parent_id)
        return list(self.db.scalars(stmt.order_by(model.sort_order, model.id)).all())

    def next_sort_order(self, kind: EntityKind, parent_id: int | None = None) -> int:
        model = CATALOG_MODELS[kind]
        parent = _PARENT_COLUMN[kind]
        stmt = select(func.max(model.sort_order))
        if parent is not None:
            stmt = stmt.where(parent == parent_id)
        return int(self.db.scalar(stmt) or 0) + 1

    def child_count(self, kind: EntityKind, entity_id: int) -> int:
        """Children and department links that would dangle if the entity were deleted."""
        if kind is EntityKind.HUB:
            stmt = select(func.count()).select_from(ReportGroup).where(ReportGroup.hub_id == entity_id)
        elif kind is EntityKind.REPORT_GROUP:
            stmt = select(func.count()).select_from(Report).where(Report.report_group_id == entity_id)
        elif kind is EntityKind.REPORT:
            stmt = select(func.count()).select_from(ReportDepartment).where(ReportDepartment.report_id == entity_id)
        else:
            stmt = select(func.count()).select_from(ReportDepartment).where(ReportDepartment.department_id == entity_id)
        return int(self.db.scalar(stmt) or 0)
