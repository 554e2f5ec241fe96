"""End-to-end HTTP behavior with dummy bearer auth (token == user id)."""
from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlsplit


def test_health_is_public(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_or_malformed_token(client, build):
    build.commit()
    assert client.get("/catalog").status_code == 401
    assert client.get("/catalog", headers={"Authorization": "Token 1"}).status_code == 400
    assert client.get("/catalog", headers={"Authorization": "Bearer 999"}).status_code == 401


def test_query_token_only_accepted_where_configured(client, build, auth):
    user = build.user()
    build.commit()
    assert client.get(f"/catalog?access_token={user.id}").status_code == 401


def test_me_reports_admin_flag(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    user = build.user("bob")
    build.commit()

    assert client.get("/me", headers=auth(admin)).json()["is_admin"] is True
    body = client.get("/me", headers=auth(user)).json()
    assert body["is_admin"] is False
    assert body["username"] == "bob"


def test_catalog_lists_granted_reports_with_access_level(client, build, auth):
    user = build.user()
    hub, group, report = build.tree()
    build.tree(hub_code="HUB2", group_code="G2", report_code="HIDDEN")
    build.grant(user, group)
    build.commit()

    body = client.get("/catalog", headers=auth(user)).json()
    assert [h["code"] for h in body["hubs"]] == ["HUB"]
    assert [g["code"] for g in body["report_groups"]] == ["GROUP"]
    assert [(r["code"], r["access_level"]) for r in body["reports"]] == [("REPORT", "ReportGroup")]


def test_expired_user_gets_empty_catalog(client, build, auth):
    user = build.user(is_expired=True)
    hub, _, _ = build.tree()
    build.grant(user, hub)
    build.commit()

    body = client.get("/catalog", headers=auth(user)).json()
    assert body == {"hubs": [], "report_groups": [], "reports": []}


def test_hub_detail_and_not_found(client, build, auth):
    user = build.user()
    hub, _, report = build.tree()
    other_hub, _, _ = build.tree(hub_code="HUB2", group_code="G2", report_code="R2")
    build.grant(user, report)
    build.commit()

    body = client.get(f"/hubs/{hub.id}", headers=auth(user)).json()
    assert body["code"] == "HUB"
    assert [r["code"] for r in body["reports"]] == ["REPORT"]
    assert client.get(f"/hubs/{other_hub.id}", headers=auth(user)).status_code == 404


def test_invisible_and_missing_reports_are_both_404(client, build, auth):
    user = build.user()
    _, _, report = build.tree()
    build.commit()

    assert client.get(f"/reports/{report.id}", headers=auth(user)).status_code == 404
    assert client.get("/reports/9999", headers=auth(user)).status_code == 404
    assert client.get(f"/reports/{report.id}/embed", headers=auth(user)).status_code == 404


def test_powerbi_embed_and_needs_configuration(client, build, auth):
    user = build.user()
    hub = build.hub()
    group = build.group(hub)
    ready = build.report(group, "READY", embed_url="https://x")
    missing = build.report(group, "MISSING")
    build.grant(user, hub)
    build.commit()

    body = client.get(f"/reports/{ready.id}/embed", headers=auth(user)).json()
    assert (body["status"], body["kind"], body["url"]) == ("ready", "iframe", "https://x")

    body = client.get(f"/reports/{missing.id}/embed", headers=auth(user)).json()
    assert body["status"] == "needs_configuration"
    assert body["reason"] == "missing embed URL"


def test_ssrs_embed_points_at_render_route_with_token(client, build, auth):
    user = build.user()
    hub = build.hub()
    report = build.report(build.group(hub), "SSRS_REPORT", report_type="SSRS",
                          ssrs_server_url="https://s/ReportServer/", ssrs_report_path="Finance/Revenue")
    build.grant(user, hub)
    build.commit()

    body = client.get(f"/reports/{report.id}/embed", headers=auth(user)).json()
    assert body["kind"] == "ssrs_proxy"
    url = urlsplit(body["url"])
    assert url.path == f"/reports/{report.id}/render"
    assert parse_qs(url.query) == {"access_token": [str(user.id)]}

    resp = client.get(body["url"], follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == (
        "https://s/ReportServer/Pages/ReportViewer.aspx?/Finance/Revenue&rs:Command=Render&rs:Embed=true"
    )


def test_render_rechecks_access(client, build, auth):
    user = build.user()
    _, _, report = build.tree(report_code="SSRS_REPORT")
    build.commit()

    resp = client.get(f"/reports/{report.id}/render?access_token={user.id}", follow_redirects=False)
    assert resp.status_code == 404


def test_unknown_report_type_is_a_generic_500(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    hub = build.hub()
    report = build.report(build.group(hub), report_type="Tableau", embed_url="https://x")
    build.commit()

    resp = client.get(f"/reports/{report.id}/embed", headers=auth(admin))
    assert resp.status_code == 500
    assert "Tableau" not in resp.text


def test_admin_routes_require_admin_role(client, build, auth):
    admin = build.user("alice", roles=("admin",))
    user = build.user("bob")
    locked_admin = build.user("carol", roles=("Admin",), is_locked_out=True)
    build.commit()

    assert client.get("/admin/users", headers=auth(user)).status_code == 403
    assert client.get("/admin/users", headers=auth(locked_admin)).status_code == 403
    assert [u["username"] for u in client.get("/admin/users", headers=auth(admin)).json()] == ["alice", "bob", "carol"]


def test_admin_grant_and_revoke_flow(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    user = build.user("bob")
    _, _, report = build.tree()
    build.commit()

    resp = client.post(f"/admin/users/{user.id}/grants", headers=auth(admin), json={"kind": "report", "target_id": report.id})
    assert resp.json() == {"result": "success"}
    assert client.get(f"/reports/{report.id}", headers=auth(user)).status_code == 200

    perms = client.get(f"/admin/users/{user.id}/permissions", headers=auth(admin)).json()
    assert [g["target_id"] for g in perms["reports"]] == [report.id]
    assert perms["reports"][0]["granted_by"] == admin.id

    resp = client.delete(f"/admin/users/{user.id}/grants/report/{report.id}", headers=auth(admin))
    assert resp.json() == {"result": "success"}
    resp = client.delete(f"/admin/users/{user.id}/grants/report/{report.id}", headers=auth(admin))
    assert resp.json() == {"result": "noop"}
    assert client.get(f"/reports/{report.id}", headers=auth(user)).status_code == 404


def test_admin_past_expiry_is_a_conflict(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    hub, _, _ = build.tree()
    build.commit()

    resp = client.post(
        f"/admin/users/{admin.id}/grants",
        headers=auth(admin),
        json={"kind": "hub", "target_id": hub.id, "expires_at": "2000-01-01T00:00:00Z"},
    )
    assert resp.status_code == 409


def test_admin_catalog_mutations(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    build.commit()
    headers = auth(admin)

    hub = client.post("/admin/hubs", headers=headers, json={"name": "Sales Ops"}).json()
    assert hub["code"] == "SALES_OPS"
    group = client.post("/admin/report-groups", headers=headers, json={"hub_id": hub["id"], "name": "Weekly"}).json()
    report = client.post(
        "/admin/reports",
        headers=headers,
        json={"report_group_id": group["id"], "name": "Pipeline", "report_type": "PowerBI", "embed_url": "https://x"},
    ).json()
    dept = client.post("/admin/departments", headers=headers, json={"name": "Finance"}).json()

    resp = client.put(f"/admin/reports/{report['id']}/departments", headers=headers, json={"department_ids": [dept["id"]]})
    assert resp.json() == {"result": "success"}

    resp = client.put(f"/admin/catalog/report_group/{group['id']}/active", headers=headers, json={"is_active": False})
    assert resp.json() == {"result": "success"}
    assert client.get(f"/reports/{report['id']}", headers=headers).status_code == 404

    resp = client.delete(f"/admin/catalog/hub/{hub['id']}", headers=headers)
    assert resp.status_code == 409

    assert client.post("/admin/report-groups", headers=headers, json={"hub_id": 999, "name": "X"}).status_code == 404
    assert client.put(f"/admin/reports/{report['id']}/group", headers=headers,
                      json={"report_group_id": 999}).status_code == 404


def test_admin_toggle_changes_effective_role(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    user = build.user("bob")
    build.commit()

    resp = client.put(f"/admin/users/{user.id}/admin", headers=auth(admin), json={"is_admin": True})
    assert resp.json() == {"result": "success"}
    assert client.get("/me", headers=auth(user)).json()["is_admin"] is True


def test_admin_update_report_moves_it_out_of_needs_configuration(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    hub = build.hub()
    report = build.report(build.group(hub), "LATE")
    build.commit()
    headers = auth(admin)

    assert client.get(f"/reports/{report.id}/embed", headers=headers).json()["status"] == "needs_configuration"

    resp = client.put(f"/admin/reports/{report.id}", headers=headers, json={"embed_url": "https://x", "name": "Late"})
    assert resp.json() == {"result": "success"}
    body = client.get(f"/reports/{report.id}/embed", headers=headers).json()
    assert (body["status"], body["url"]) == ("ready", "https://x")
    assert client.get(f"/reports/{report.id}", headers=headers).json()["name"] == "Late"

    assert client.put(f"/admin/hubs/{hub.id}", headers=headers, json={"description": "d"}).json() == {"result": "success"}
    assert client.put("/admin/departments/999", headers=headers, json={"name": "X"}).status_code == 404
    assert client.put(f"/admin/reports/{report.id}", headers=headers, json={"name": None}).status_code == 409


def test_admin_lockout_and_expiry_gate_the_catalog(client, build, auth):
    admin = build.user("alice", roles=("Admin",))
    user = build.user("bob")
    hub, _, _ = build.tree()
    build.grant(user, hub)
    build.commit()

    resp = client.put(f"/admin/users/{user.id}/locked-out", headers=auth(admin), json={"is_locked_out": True})
    assert resp.json() == {"result": "success"}
    assert client.get("/catalog", headers=auth(user)).json()["reports"] == []

    client.put(f"/admin/users/{user.id}/locked-out", headers=auth(admin), json={"is_locked_out": False})
    assert len(client.get("/catalog", headers=auth(user)).json()["reports"]) == 1

    resp = client.put(f"/admin/users/{user.id}/expired", headers=auth(admin),
                      json={"is_expired": True, "reason": "Contract ended"})
    assert resp.json() == {"result": "success"}
    assert client.get("/catalog", headers=auth(user)).json()["reports"] == []
    assert client.put("/admin/users/999/expired", headers=auth(admin), json={"is_expired": True}).status_code == 404


def test_report_access_is_audited(client, build, auth, caplog):
    admin = build.user("alice", roles=("Admin",))
    hub = build.hub()
    group = build.group(hub)
    iframe = build.report(group, "IFRAME", embed_url="https://x")
    ssrs = build.report(group, "SSRS_REPORT", report_type="SSRS",
                        ssrs_server_url="https://s/ReportServer", ssrs_report_path="Finance/Revenue")
    build.commit()

    with caplog.at_level(logging.INFO, logger="portal.audit"):
        assert client.get(f"/reports/{iframe.id}/embed", headers=auth(admin)).status_code == 200
        resp = client.get(f"/reports/{ssrs.id}/render?access_token={admin.id}", follow_redirects=False)
        assert resp.status_code == 302
        assert client.get("/reports/9999/embed", headers=auth(admin)).status_code == 404

    accessed = [r.audit for r in caplog.records if getattr(r, "audit", {}).get("action") == "report.accessed"]
    assert [(a["report_id"], a["access_type"], a["actor_id"]) for a in accessed] == [
        (iframe.id, "embed", admin.id),
        (ssrs.id, "render", admin.id),
    ]
