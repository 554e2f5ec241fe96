"""Permission resolution against a real (in-memory) catalog and grant store."""
from __future__ import annotations

from datetime import timedelta

import pytest

from portal.access import AccessLevel, Identity, PermissionResolver
from portal.admin.service import AdminService
from portal.errors import NotFoundError
from portal.models.catalog import EntityKind
from portal.models.grants import UserReportAccess


def _codes(items):
    return [i.code for i in items]


def _resolver(db_session, clock):
    return PermissionResolver(db_session, clock=clock)


def test_admin_sees_whole_active_catalog_without_grants(db_session, build, clock):
    admin = build.user("alice", roles=("Admin",))
    hub, group, report = build.tree()
    inactive_hub = build.hub("OLD_HUB", is_active=False)
    build.report(build.group(inactive_hub, "G2"), "HIDDEN_BY_HUB")
    build.report(group, "INACTIVE_REPORT", is_active=False)
    build.commit()

    catalog = _resolver(db_session, clock).resolve_accessible_catalog(Identity.from_user(admin, "Admin"))

    assert _codes(catalog.hubs) == ["HUB"]
    assert _codes(catalog.report_groups) == ["GROUP"]
    assert _codes(catalog.reports) == ["REPORT"]
    assert catalog.access_levels == {report.id: AccessLevel.ADMIN}


@pytest.mark.parametrize("flags", [{"is_expired": True}, {"is_locked_out": True}, {"is_active": False}])
def test_blocked_users_see_nothing_even_with_grants(db_session, build, clock, flags):
    user = build.user("bob", roles=("Admin",), **flags)
    hub, group, report = build.tree()
    build.grant(user, hub)
    build.grant(user, report)
    build.commit()

    identity = Identity.from_user(user, "Admin")
    resolver = _resolver(db_session, clock)

    assert resolver.resolve_accessible_catalog(identity).is_empty
    assert resolver.can_access_report(identity, report.id) is False
    assert resolver.can_access_hub(identity, hub.id) is False
    assert resolver.resolve_report(identity, report.id) is None


def test_user_without_grants_sees_nothing(db_session, build, clock):
    user = build.user()
    _, _, report = build.tree()
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)

    assert resolver.resolve_accessible_catalog(identity).is_empty
    assert resolver.can_access_report(identity, report.id) is False


@pytest.mark.parametrize("path", ["report", "group", "hub", "department"])
def test_each_grant_path_grants_on_its_own(db_session, build, clock, path):
    user = build.user()
    hub, group, report = build.tree()
    dept = build.department()
    build.link(report, dept)
    target = {"report": report, "group": group, "hub": hub, "department": dept}[path]
    build.grant(user, target)
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)

    catalog = resolver.resolve_accessible_catalog(identity)
    assert catalog.report_ids == {report.id}
    assert _codes(catalog.report_groups) == ["GROUP"]
    assert _codes(catalog.hubs) == ["HUB"]
    assert resolver.can_access_report(identity, report.id) is True


def test_revoking_one_path_keeps_access_through_another(db_session, build, clock):
    user = build.user()
    hub, group, report = build.tree()
    build.grant(user, report)
    build.grant(user, group)
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)
    AdminService(db_session, clock=clock).revoke_access(user.id, EntityKind.REPORT, report.id)

    assert resolver.can_access_report(identity, report.id) is True
    assert resolver.resolve_accessible_catalog(identity).report_ids == {report.id}


def test_hub_grant_covers_every_group_in_the_hub(db_session, build, clock):
    user = build.user()
    hub, group, report = build.tree()
    other_group = build.group(hub, "OTHER")
    other_report = build.report(other_group, "OTHER_REPORT")
    build.tree(hub_code="HUB2", group_code="G2", report_code="NOT_MINE")
    build.grant(user, hub)
    build.commit()

    catalog = _resolver(db_session, clock).resolve_accessible_catalog(Identity(user_id=user.id))
    assert catalog.report_ids == {report.id, other_report.id}
    assert _codes(catalog.hubs) == ["HUB"]


def test_past_expiry_never_grants(db_session, build, clock):
    user = build.user()
    _, _, report = build.tree()
    build.grant(user, report, expires_at=clock.now - timedelta(seconds=1))
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)
    assert resolver.can_access_report(identity, report.id) is False
    assert resolver.resolve_accessible_catalog(identity).is_empty


def test_future_expiry_grants_until_the_instant_it_lapses(db_session, build, clock):
    user = build.user()
    hub, _, report = build.tree()
    expires_at = clock.now + timedelta(hours=1)
    build.grant(user, hub, expires_at=expires_at)
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)
    assert resolver.can_access_report(identity, report.id) is True

    clock.advance(minutes=59, seconds=59)
    assert resolver.can_access_report(identity, report.id) is True

    clock.now = expires_at
    assert resolver.can_access_report(identity, report.id) is False
    assert resolver.resolve_accessible_catalog(identity).is_empty


def test_expired_department_membership_is_inert(db_session, build, clock):
    user = build.user()
    _, _, report = build.tree()
    dept = build.department()
    build.link(report, dept)
    build.grant(user, dept, expires_at=clock.now - timedelta(days=1))
    build.commit()

    assert _resolver(db_session, clock).can_access_report(Identity(user_id=user.id), report.id) is False


def test_inactive_group_hides_directly_granted_report(db_session, build, clock):
    user = build.user()
    hub = build.hub()
    group = build.group(hub, is_active=False)
    report = build.report(group)
    build.grant(user, report)
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)
    assert resolver.can_access_report(identity, report.id) is False
    assert resolver.resolve_accessible_catalog(identity).is_empty


def test_inactive_hub_hides_granted_group(db_session, build, clock):
    user = build.user()
    hub = build.hub(is_active=False)
    group = build.group(hub)
    report = build.report(group)
    build.grant(user, group)
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)
    assert resolver.can_access_report(identity, report.id) is False
    assert resolver.can_access_hub(identity, hub.id) is False


def test_inactive_report_is_hidden_even_from_admins(db_session, build, clock):
    admin = build.user("alice", roles=("Admin",))
    hub = build.hub()
    report = build.report(build.group(hub), is_active=False)
    build.commit()

    identity = Identity.from_user(admin, "Admin")
    assert _resolver(db_session, clock).can_access_report(identity, report.id) is False


def test_inactive_department_grants_nothing(db_session, build, clock):
    user = build.user()
    _, _, report = build.tree()
    dept = build.department(is_active=False)
    build.link(report, dept)
    build.grant(user, dept)
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)
    assert resolver.can_access_report(identity, report.id) is False
    assert resolver.resolve_accessible_catalog(identity).is_empty


def test_group_without_visible_report_is_not_listed(db_session, build, clock):
    user = build.user()
    hub, group, report = build.tree()
    empty_group = build.group(hub, "EMPTY")
    build.grant(user, empty_group)
    build.grant(user, report)
    build.commit()

    catalog = _resolver(db_session, clock).resolve_accessible_catalog(Identity(user_id=user.id))
    assert _codes(catalog.report_groups) == ["GROUP"]


def test_grant_to_deleted_target_is_skipped(db_session, build, clock):
    user = build.user()
    _, _, report = build.tree()
    build.grant(user, report)
    db_session.add(UserReportAccess(user_id=user.id, report_id=9999, granted_at=clock.now))
    build.commit()

    catalog = _resolver(db_session, clock).resolve_accessible_catalog(Identity(user_id=user.id))
    assert catalog.report_ids == {report.id}


def test_access_level_reports_broadest_path(db_session, build, clock):
    user = build.user()
    hub, group, by_hub = build.tree()
    other_hub = build.hub("HUB2")
    other_group = build.group(other_hub, "G2")
    by_group = build.report(other_group, "BY_GROUP")
    direct_group = build.group(other_hub, "G3")
    direct = build.report(direct_group, "DIRECT")
    by_dept = build.report(direct_group, "BY_DEPT")
    dept = build.department()
    build.link(by_dept, dept)
    build.link(by_hub, dept)

    build.grant(user, hub)
    build.grant(user, by_hub)
    build.grant(user, other_group)
    build.grant(user, direct)
    build.grant(user, dept)
    build.commit()

    catalog = _resolver(db_session, clock).resolve_accessible_catalog(Identity(user_id=user.id))
    assert catalog.access_levels == {
        by_hub.id: AccessLevel.HUB,
        by_group.id: AccessLevel.REPORT_GROUP,
        direct.id: AccessLevel.DIRECT,
        by_dept.id: AccessLevel.DEPARTMENT,
    }


def test_catalog_is_ordered_by_sort_order_then_id(db_session, build, clock):
    admin = build.user("alice", roles=("Admin",))
    hub_b = build.hub("B", sort_order=2)
    hub_a = build.hub("A", sort_order=1)
    group = build.group(hub_a)
    build.group(hub_b, "OTHER")
    build.report(group, "THIRD", sort_order=2)
    build.report(group, "FIRST", sort_order=1)
    build.report(group, "SECOND", sort_order=1)
    build.commit()

    catalog = _resolver(db_session, clock).resolve_accessible_catalog(Identity.from_user(admin, "Admin"))
    assert _codes(catalog.hubs) == ["A", "B"]
    assert _codes(catalog.reports) == ["FIRST", "SECOND", "THIRD"]


def test_resolve_report_distinguishes_missing_from_invisible(db_session, build, clock):
    user = build.user()
    _, _, report = build.tree()
    build.commit()

    resolver = _resolver(db_session, clock)
    identity = Identity(user_id=user.id)
    with pytest.raises(NotFoundError):
        resolver.resolve_report(identity, 424242)
    assert resolver.resolve_report(identity, report.id) is None

    build.grant(user, report)
    build.commit()
    assert resolver.resolve_report(identity, report.id).id == report.id


def test_can_access_hub_requires_a_visible_report_inside(db_session, build, clock):
    user = build.user()
    hub, group, report = build.tree()
    other_hub, _, _ = build.tree(hub_code="HUB2", group_code="G2", report_code="R2")
    build.grant(user, report)
    build.commit()

    identity = Identity(user_id=user.id)
    resolver = _resolver(db_session, clock)
    assert resolver.can_access_hub(identity, hub.id) is True
    assert resolver.can_access_hub(identity, other_hub.id) is False
    assert resolver.can_access_hub(identity, 9999) is False


def test_within_hub_narrows_catalog(db_session, build, clock):
    admin = build.user("alice", roles=("Admin",))
    hub, _, report = build.tree()
    build.tree(hub_code="HUB2", group_code="G2", report_code="R2")
    build.commit()

    catalog = _resolver(db_session, clock).resolve_accessible_catalog(Identity.from_user(admin, "Admin"))
    scoped = catalog.within_hub(hub.id)
    assert _codes(scoped.hubs) == ["HUB"]
    assert scoped.report_ids == {report.id}
    assert set(scoped.access_levels) == {report.id}
