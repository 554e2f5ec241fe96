"""
Permission resolver: what a user can see, and through which grant.

Visibility rules, in order:

1. Expired, locked-out or inactive users see nothing (checked before any
   grant lookup).
2. Admins see the whole active catalog; grants are not consulted.
3. Everyone else sees the union of reports reachable through
       direct report grants
     | report-group grants
     | hub grants
     | department membership
   where each grant counts only while `expires_at` is unset or in the future,
   and a report counts only while it, its group and its hub are all active.
4. Groups and hubs are derived: a group is visible when it holds a visible
   report, a hub when it holds a visible group.

Forbidden is never raised here; it is an empty catalog or `False`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from portal.access.identity import Identity
from portal.clock import Clock, utcnow
from portal.errors import NotFoundError
from portal.models.catalog import EntityKind, Hub, Report, ReportGroup
from portal.store.catalog import CatalogStore, ReportPath
from portal.store.grants import GrantStore

logger = logging.getLogger(__name__)


class AccessLevel(str, enum.Enum):
    """Broadest path granting a report, broadest first."""

    ADMIN = "Admin"
    HUB = "Hub"
    REPORT_GROUP = "ReportGroup"
    DIRECT = "Direct"
    DEPARTMENT = "Department"


@dataclass(frozen=True)
class AccessibleCatalog:
    hubs: list[Hub] = field(default_factory=list)
    report_groups: list[ReportGroup] = field(default_factory=list)
    reports: list[Report] = field(default_factory=list)
    access_levels: dict[int, AccessLevel] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.hubs or self.report_groups or self.reports)

    @property
    def report_ids(self) -> set[int]:
        return {r.id for r in self.reports}

    def within_hub(self, hub_id: int) -> AccessibleCatalog:
        groups = [g for g in self.report_groups if g.hub_id == hub_id]
        group_ids = {g.id for g in groups}
        reports = [r for r in self.reports if r.report_group_id in group_ids]
        return AccessibleCatalog(
            hubs=[h for h in self.hubs if h.id == hub_id],
            report_groups=groups,
            reports=reports,
            access_levels={r.id: self.access_levels[r.id] for r in reports},
        )


@dataclass(frozen=True)
class _ActiveGrants:
    report_ids: set[int]
    group_ids: set[int]
    hub_ids: set[int]
    department_ids: set[int]

    def access_level(self, report: Report) -> AccessLevel:
        if report.report_group.hub_id in self.hub_ids:
            return AccessLevel.HUB
        if report.report_group_id in self.group_ids:
            return AccessLevel.REPORT_GROUP
        if report.id in self.report_ids:
            return AccessLevel.DIRECT
        return AccessLevel.DEPARTMENT


class PermissionResolver:
    """
    Read-only. Every call is a function of the session's current view of the
    grant and catalog tables plus the clock; nothing is cached between calls.
    """

    def __init__(self, db: Session, clock: Clock = utcnow) -> None:
        self.catalog = CatalogStore(db)
        self.grants = GrantStore(db)
        self._clock = clock

    # ---- full catalog -----------------------------------------------------------

    def resolve_accessible_catalog(self, identity: Identity) -> AccessibleCatalog:
        if identity.is_blocked:
            logger.info("Access resolution rejected for blocked user_id=%s", identity.user_id)
            return AccessibleCatalog()

        if identity.is_admin:
            view = self.catalog.active_catalog()
            return AccessibleCatalog(
                hubs=view.hubs,
                report_groups=view.report_groups,
                reports=view.reports,
                access_levels={r.id: AccessLevel.ADMIN for r in view.reports},
            )

        grants = self._active_grants(identity.user_id, self._clock())
        reports = self.catalog.visible_reports(
            report_ids=grants.report_ids,
            group_ids=grants.group_ids,
            hub_ids=grants.hub_ids,
            department_ids=grants.department_ids,
        )
        groups, hubs = self.catalog.groups_and_hubs_for(reports)

        logger.debug(
            "Resolved catalog user_id=%s hubs=%d groups=%d reports=%d",
            identity.user_id,
            len(hubs),
            len(groups),
            len(reports),
        )
        return AccessibleCatalog(
            hubs=hubs,
            report_groups=groups,
            reports=reports,
            access_levels={r.id: grants.access_level(r) for r in reports},
        )

    # ---- single decisions -------------------------------------------------------

    def can_access_report(self, identity: Identity, report_id: int) -> bool:
        if identity.is_blocked:
            return False
        path = self.catalog.report_path(report_id)
        if path is None:
            return False
        return self._can_access_path(identity, path)

    def resolve_report(self, identity: Identity, report_id: int) -> Report | None:
        """
        The report if `identity` may see it, else None.

        Raises NotFoundError only when the report id does not exist at all;
        callers facing end users should render both outcomes the same way.
        """

        path = self.catalog.report_path(report_id)
        if path is None:
            raise NotFoundError("Report", report_id)
        if identity.is_blocked or not self._can_access_path(identity, path):
            return None
        return path.report

    def can_access_hub(self, identity: Identity, hub_id: int) -> bool:
        if identity.is_blocked:
            return False
        hub = self.catalog.get(EntityKind.HUB, hub_id)
        if hub is None or not hub.is_active:
            return False
        if identity.is_admin:
            return True

        grants = self._active_grants(identity.user_id, self._clock())
        reports = self.catalog.visible_reports(
            report_ids=grants.report_ids,
            group_ids=grants.group_ids,
            hub_ids=grants.hub_ids,
            department_ids=grants.department_ids,
            within_hub_id=hub_id,
        )
        return bool(reports)

    # ---- internals --------------------------------------------------------------

    def _can_access_path(self, identity: Identity, path: ReportPath) -> bool:
        if not path.is_visible:
            return False
        if identity.is_admin:
            return True

        now = self._clock()
        user_id = identity.user_id
        if self.grants.has_active_grant(user_id, EntityKind.REPORT, path.report.id, now):
            return True
        if self.grants.has_active_grant(user_id, EntityKind.REPORT_GROUP, path.group.id, now):
            return True
        if self.grants.has_active_grant(user_id, EntityKind.HUB, path.hub.id, now):
            return True

        report_departments = self.catalog.department_ids_for_report(path.report.id)
        if not report_departments:
            return False
        user_departments = self.grants.active_target_ids(user_id, EntityKind.DEPARTMENT, now)
        return bool(report_departments & user_departments)

    def _active_grants(self, user_id: int, now: datetime) -> _ActiveGrants:
        return _ActiveGrants(
            report_ids=self.grants.active_target_ids(user_id, EntityKind.REPORT, now),
            group_ids=self.grants.active_target_ids(user_id, EntityKind.REPORT_GROUP, now),
            hub_ids=self.grants.active_target_ids(user_id, EntityKind.HUB, now),
            department_ids=self.grants.active_target_ids(user_id, EntityKind.DEPARTMENT, now),
        )
