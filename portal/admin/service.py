"""
Admin mutation surface.

All writes to the Grant Store and the Catalog go through `AdminService`.
Expected outcomes (nothing to do, unknown id, bad target) come back as a
`MutationResult`; exceptions are reserved for invalid input (`InvalidStateError`)
and for the create operations, which return the new entity.

Applied mutations, and every revoke attempt, are written to the audit log.
"""

from __future__ import annotations

import enum
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from portal.audit import audit_event
from portal.clock import Clock, to_naive_utc, utcnow
from portal.db.session import transaction
from portal.errors import InvalidStateError, NotFoundError
from portal.models.catalog import (
    Department,
    EntityKind,
    Hub,
    Report,
    ReportDepartment,
    ReportGroup,
    ReportType,
)
from portal.models.grants import GrantMixin
from portal.models.security import Role, User
from portal.store.catalog import CatalogStore
from portal.store.grants import GrantStore

logger = logging.getLogger(__name__)


class MutationResult(str, enum.Enum):
    SUCCESS = "success"
    NOOP = "noop"
    NOT_FOUND = "not_found"
    INVALID_TARGET = "invalid_target"


@dataclass(frozen=True)
class UserPermissions:
    user_id: int
    grants: dict[EntityKind, list[GrantMixin]] = field(default_factory=dict)

    def target_ids(self, kind: EntityKind) -> list[int]:
        return [g.target_id for g in self.grants.get(kind, [])]


def code_from_name(name: str) -> str:
    return name.strip().upper().replace(" ", "_")


# Columns an update may touch, per kind. Parents move through reparent_report only.
_CATALOG_FIELDS = ("name", "code", "description")
_UPDATABLE_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.HUB: _CATALOG_FIELDS,
    EntityKind.REPORT_GROUP: _CATALOG_FIELDS,
    EntityKind.DEPARTMENT: _CATALOG_FIELDS,
    EntityKind.REPORT: _CATALOG_FIELDS
    + (
        "report_type",
        "embed_url",
        "powerbi_workspace_id",
        "powerbi_report_id",
        "ssrs_server_url",
        "ssrs_report_path",
        "parameters",
    ),
}


def _normalize_field(key: str, value: Any) -> Any:
    if key in ("name", "code"):
        value = (value or "").strip()
        if not value:
            raise InvalidStateError(f"{key} must not be blank")
        return value
    if key == "report_type":
        try:
            return ReportType(value).value
        except ValueError as exc:
            raise InvalidStateError(f"Unknown report type {value!r}") from exc
    if key == "parameters":
        return json.dumps(dict(value)) if value else None
    return value


class AdminService:
    def __init__(self, db: Session, clock: Clock = utcnow, admin_role: str = "Admin") -> None:
        self.db = db
        self.catalog = CatalogStore(db)
        self.grants = GrantStore(db)
        self._clock = clock
        self._admin_role = admin_role

    # ---- grants ------------------------------------------------------------------

    def grant_access(
        self,
        user_id: int,
        kind: EntityKind,
        target_id: int,
        granted_by: int | None,
        expires_at: datetime | None = None,
    ) -> MutationResult:
        """
        Grant `user_id` access to one target, or refresh an existing grant.

        Re-granting overwrites granted_at, granted_by and expires_at. Inactive
        targets may be granted; visibility is still gated at read time.
        """

        now = self._clock()
        if expires_at is not None:
            expires_at = to_naive_utc(expires_at)
            if expires_at <= now:
                raise InvalidStateError("expires_at must be in the future")

        if self.db.get(User, user_id) is None:
            return MutationResult.NOT_FOUND
        if self.catalog.get(kind, target_id) is None:
            return MutationResult.NOT_FOUND

        with transaction(self.db):
            self.grants.upsert(
                user_id,
                kind,
                target_id,
                granted_by=granted_by,
                granted_at=now,
                expires_at=expires_at,
            )

        audit_event(
            "grant.created",
            granted_by,
            user_id=user_id,
            kind=kind.value,
            target_id=target_id,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return MutationResult.SUCCESS

    def revoke_access(
        self,
        user_id: int,
        kind: EntityKind,
        target_id: int,
        actor_id: int | None = None,
    ) -> MutationResult:
        with transaction(self.db):
            removed = self.grants.remove(user_id, kind, target_id)

        result = MutationResult.SUCCESS if removed else MutationResult.NOOP
        audit_event(
            "grant.revoked",
            actor_id,
            user_id=user_id,
            kind=kind.value,
            target_id=target_id,
            result=result.value,
        )
        return result

    def user_permissions(self, user_id: int, include_expired: bool = False) -> UserPermissions:
        if self.db.get(User, user_id) is None:
            raise NotFoundError("User", user_id)
        now = self._clock()
        return UserPermissions(
            user_id=user_id,
            grants={
                kind: self.grants.list_for_user(user_id, kind, now, include_expired=include_expired)
                for kind in EntityKind
            },
        )

    # ---- departments -------------------------------------------------------------

    def replace_report_departments(
        self,
        report_id: int,
        department_ids: Iterable[int],
        granted_by: int | None,
    ) -> MutationResult:
        """
        Make the report's department set exactly `department_ids`.

        Runs as one unit: on any failure the previous set is left untouched.
        Links that survive the replacement keep their original granted_at.
        """

        wanted = set(department_ids)
        if self.catalog.get(EntityKind.REPORT, report_id) is None:
            return MutationResult.NOT_FOUND
        if wanted - self.catalog.existing_ids(EntityKind.DEPARTMENT, wanted):
            return MutationResult.INVALID_TARGET

        current = self.catalog.department_ids_for_report(report_id, active_only=False)
        if current == wanted:
            return MutationResult.NOOP

        to_remove = current - wanted
        to_add = wanted - current
        now = self._clock()
        with transaction(self.db):
            self.catalog.unlink_departments(report_id, to_remove)
            for department_id in sorted(to_add):
                self.db.add(
                    ReportDepartment(
                        report_id=report_id,
                        department_id=department_id,
                        granted_at=now,
                        granted_by=granted_by,
                    )
                )
            self.db.flush()

        audit_event(
            "report.departments_replaced",
            granted_by,
            report_id=report_id,
            added=sorted(to_add),
            removed=sorted(to_remove),
        )
        return MutationResult.SUCCESS

    # ---- catalog structure -------------------------------------------------------

    def set_active(
        self,
        kind: EntityKind,
        entity_id: int,
        is_active: bool,
        actor_id: int | None = None,
    ) -> MutationResult:
        """Flip one entity's active flag. Never cascades to children."""
        entity = self.catalog.get(kind, entity_id)
        if entity is None:
            return MutationResult.NOT_FOUND
        if entity.is_active == is_active:
            return MutationResult.NOOP

        with transaction(self.db):
            entity.is_active = is_active

        audit_event("catalog.activation_changed", actor_id, kind=kind.value, entity_id=entity_id, is_active=is_active)
        return MutationResult.SUCCESS

    def reorder(
        self,
        kind: EntityKind,
        ordered_ids: list[int],
        parent_id: int | None = None,
        actor_id: int | None = None,
    ) -> MutationResult:
        """
        Number siblings 1..n in the given order.

        `parent_id` is the hub for report groups and the report group for
        reports; it is ignored for hubs and departments. Siblings missing
        from `ordered_ids` keep their relative order after the listed ones.
        """

        siblings = self.catalog.siblings(kind, parent_id)
        by_id = {s.id: s for s in siblings}
        if len(set(ordered_ids)) != len(ordered_ids) or any(i not in by_id for i in ordered_ids):
            return MutationResult.INVALID_TARGET

        listed = set(ordered_ids)
        sequence = [by_id[i] for i in ordered_ids] + [s for s in siblings if s.id not in listed]
        changes = [(entity, position) for position, entity in enumerate(sequence, start=1)
                   if entity.sort_order != position]
        if not changes:
            return MutationResult.NOOP

        with transaction(self.db):
            for entity, position in changes:
                entity.sort_order = position

        audit_event("catalog.reordered", actor_id, kind=kind.value, parent_id=parent_id, order=[e.id for e in sequence])
        return MutationResult.SUCCESS

    def reparent_report(self, report_id: int, report_group_id: int, actor_id: int | None = None) -> MutationResult:
        report = self.catalog.get(EntityKind.REPORT, report_id)
        group = self.catalog.get(EntityKind.REPORT_GROUP, report_group_id)
        if report is None or group is None:
            return MutationResult.NOT_FOUND
        if not (group.is_active and group.hub.is_active):
            return MutationResult.INVALID_TARGET
        if report.report_group_id == report_group_id:
            return MutationResult.NOOP

        previous = report.report_group_id
        with transaction(self.db):
            report.sort_order = self.catalog.next_sort_order(EntityKind.REPORT, report_group_id)
            report.report_group_id = report_group_id

        audit_event("report.reparented", actor_id, report_id=report_id, from_group=previous, to_group=report_group_id)
        return MutationResult.SUCCESS

    # ---- create / delete ---------------------------------------------------------

    def create_hub(
        self,
        name: str,
        *,
        code: str | None = None,
        description: str | None = None,
        actor_id: int | None = None,
    ) -> Hub:
        code = code or code_from_name(name)
        if self.db.scalar(select(Hub.id).where(Hub.code == code)) is not None:
            raise InvalidStateError(f"Hub code {code!r} already exists")

        hub = Hub(
            code=code,
            name=name,
            description=description,
            sort_order=self.catalog.next_sort_order(EntityKind.HUB),
        )
        with transaction(self.db):
            self.db.add(hub)
            self.db.flush()
        audit_event("catalog.created", actor_id, kind=EntityKind.HUB.value, entity_id=hub.id, code=code)
        return hub

    def create_report_group(
        self,
        hub_id: int,
        name: str,
        *,
        code: str | None = None,
        description: str | None = None,
        actor_id: int | None = None,
    ) -> ReportGroup:
        if self.catalog.get(EntityKind.HUB, hub_id) is None:
            raise NotFoundError("Hub", hub_id)
        code = code or code_from_name(name)
        exists = self.db.scalar(select(ReportGroup.id).where(ReportGroup.hub_id == hub_id, ReportGroup.code == code))
        if exists is not None:
            raise InvalidStateError(f"Report group code {code!r} already exists in hub {hub_id}")

        group = ReportGroup(
            hub_id=hub_id,
            code=code,
            name=name,
            description=description,
            sort_order=self.catalog.next_sort_order(EntityKind.REPORT_GROUP, hub_id),
        )
        with transaction(self.db):
            self.db.add(group)
            self.db.flush()
        audit_event("catalog.created", actor_id, kind=EntityKind.REPORT_GROUP.value, entity_id=group.id, code=code)
        return group

    def create_report(
        self,
        report_group_id: int,
        name: str,
        report_type: str,
        *,
        code: str | None = None,
        description: str | None = None,
        embed_url: str | None = None,
        powerbi_workspace_id: str | None = None,
        powerbi_report_id: str | None = None,
        ssrs_server_url: str | None = None,
        ssrs_report_path: str | None = None,
        parameters: Mapping[str, str] | None = None,
        actor_id: int | None = None,
    ) -> Report:
        if self.catalog.get(EntityKind.REPORT_GROUP, report_group_id) is None:
            raise NotFoundError("ReportGroup", report_group_id)
        try:
            report_type = ReportType(report_type).value
        except ValueError as exc:
            raise InvalidStateError(f"Unknown report type {report_type!r}") from exc

        report = Report(
            report_group_id=report_group_id,
            code=code or code_from_name(name),
            name=name,
            description=description,
            report_type=report_type,
            embed_url=embed_url,
            powerbi_workspace_id=powerbi_workspace_id,
            powerbi_report_id=powerbi_report_id,
            ssrs_server_url=ssrs_server_url,
            ssrs_report_path=ssrs_report_path,
            parameters=json.dumps(dict(parameters)) if parameters else None,
            sort_order=self.catalog.next_sort_order(EntityKind.REPORT, report_group_id),
            created_by=actor_id,
            created_at=self._clock(),
        )
        with transaction(self.db):
            self.db.add(report)
            self.db.flush()
        audit_event("catalog.created", actor_id, kind=EntityKind.REPORT.value, entity_id=report.id, code=report.code)
        return report

    def create_department(
        self,
        name: str,
        *,
        code: str | None = None,
        description: str | None = None,
        actor_id: int | None = None,
    ) -> Department:
        code = code or code_from_name(name)
        if self.db.scalar(select(Department.id).where(Department.code == code)) is not None:
            raise InvalidStateError(f"Department code {code!r} already exists")

        department = Department(
            code=code,
            name=name,
            description=description,
            sort_order=self.catalog.next_sort_order(EntityKind.DEPARTMENT),
        )
        with transaction(self.db):
            self.db.add(department)
            self.db.flush()
        audit_event("catalog.created", actor_id, kind=EntityKind.DEPARTMENT.value, entity_id=department.id, code=code)
        return department

    def delete_entity(self, kind: EntityKind, entity_id: int, actor_id: int | None = None) -> MutationResult:
        """Hard delete, refused while anything still points at the entity."""
        entity = self.catalog.get(kind, entity_id)
        if entity is None:
            return MutationResult.NOOP
        if self.catalog.child_count(kind, entity_id) or self.grants.count_for_target(kind, entity_id):
            logger.info("Refusing to delete referenced %s id=%s", kind.value, entity_id)
            return MutationResult.INVALID_TARGET

        with transaction(self.db):
            self.db.delete(entity)
        audit_event("catalog.deleted", actor_id, kind=kind.value, entity_id=entity_id)
        return MutationResult.SUCCESS

    # ---- updates -----------------------------------------------------------------

    def update_hub(self, hub_id: int, changes: Mapping[str, Any], actor_id: int | None = None) -> MutationResult:
        return self._update(EntityKind.HUB, hub_id, changes, actor_id)

    def update_report_group(
        self,
        report_group_id: int,
        changes: Mapping[str, Any],
        actor_id: int | None = None,
    ) -> MutationResult:
        return self._update(EntityKind.REPORT_GROUP, report_group_id, changes, actor_id)

    def update_department(
        self,
        department_id: int,
        changes: Mapping[str, Any],
        actor_id: int | None = None,
    ) -> MutationResult:
        return self._update(EntityKind.DEPARTMENT, department_id, changes, actor_id)

    def update_report(self, report_id: int, changes: Mapping[str, Any], actor_id: int | None = None) -> MutationResult:
        """
        Change a report's descriptive fields and/or its embed configuration.

        Only the keys present in `changes` are touched; a key mapped to None
        clears that column (name and code cannot be cleared). `parameters`
        takes a mapping and is stored as JSON, an empty mapping clears it.
        """

        return self._update(EntityKind.REPORT, report_id, changes, actor_id)

    def _update(
        self,
        kind: EntityKind,
        entity_id: int,
        changes: Mapping[str, Any],
        actor_id: int | None,
    ) -> MutationResult:
        unknown = set(changes) - set(_UPDATABLE_FIELDS[kind])
        if unknown:
            raise InvalidStateError(f"Cannot update {', '.join(sorted(unknown))} on {kind.value}")

        entity = self.catalog.get(kind, entity_id)
        if entity is None:
            return MutationResult.NOT_FOUND

        values = {key: _normalize_field(key, value) for key, value in changes.items()}
        diff = {key: value for key, value in values.items() if getattr(entity, key) != value}
        if not diff:
            return MutationResult.NOOP
        if "code" in diff and self._code_taken(kind, entity, diff["code"]):
            raise InvalidStateError(f"{kind.value} code {diff['code']!r} already exists")

        with transaction(self.db):
            for key, value in diff.items():
                setattr(entity, key, value)

        audit_event("catalog.updated", actor_id, kind=kind.value, entity_id=entity_id, fields=sorted(diff))
        return MutationResult.SUCCESS

    def _code_taken(self, kind: EntityKind, entity, code: str) -> bool:
        # Report codes are labels only; the other kinds keep them unique.
        if kind is EntityKind.REPORT:
            return False
        model = type(entity)
        stmt = select(model.id).where(model.code == code, model.id != entity.id)
        if kind is EntityKind.REPORT_GROUP:
            stmt = stmt.where(ReportGroup.hub_id == entity.hub_id)
        return self.db.scalar(stmt) is not None

    # ---- users -------------------------------------------------------------------

    def set_user_admin(self, user_id: int, is_admin: bool, actor_id: int | None = None) -> MutationResult:
        user = self.db.get(User, user_id)
        if user is None:
            return MutationResult.NOT_FOUND

        admin_key = self._admin_role.casefold()
        held = [r for r in user.roles if r.name.casefold() == admin_key]
        if bool(held) == is_admin:
            return MutationResult.NOOP

        with transaction(self.db):
            if is_admin:
                user.roles.append(self._admin_role_row())
            else:
                for role in held:
                    user.roles.remove(role)

        audit_event("user.admin_changed", actor_id, user_id=user_id, is_admin=is_admin)
        return MutationResult.SUCCESS

    def set_user_locked_out(self, user_id: int, locked_out: bool, actor_id: int | None = None) -> MutationResult:
        """Lock or unlock an account. A locked-out user resolves to an empty catalog."""
        user = self.db.get(User, user_id)
        if user is None:
            return MutationResult.NOT_FOUND
        if user.is_locked_out == locked_out:
            return MutationResult.NOOP

        with transaction(self.db):
            user.is_locked_out = locked_out

        audit_event("user.lockout_changed", actor_id, user_id=user_id, is_locked_out=locked_out)
        return MutationResult.SUCCESS

    def set_user_expired(
        self,
        user_id: int,
        expired: bool,
        reason: str | None = None,
        actor_id: int | None = None,
    ) -> MutationResult:
        """
        Expire an account with a reason, or restore it.

        Restoring clears the stored reason. Expiring an already expired
        account only updates the reason.
        """

        user = self.db.get(User, user_id)
        if user is None:
            return MutationResult.NOT_FOUND

        reason = ((reason or "").strip() or None) if expired else None
        if user.is_expired == expired and user.expiration_reason == reason:
            return MutationResult.NOOP

        with transaction(self.db):
            user.is_expired = expired
            user.expiration_reason = reason

        audit_event("user.expiry_changed", actor_id, user_id=user_id, is_expired=expired, reason=reason)
        return MutationResult.SUCCESS

    def _admin_role_row(self) -> Role:
        role = self.db.scalar(select(Role).where(func.lower(Role.name) == self._admin_role.lower()))
        if role is None:
            role = Role(name=self._admin_role, description="Portal administrator")
            self.db.add(role)
        return role
