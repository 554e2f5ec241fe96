from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from portal.db.base import Base
from portal.db.session import SessionLocal, engine
from portal.models.catalog import Department, Hub, Report, ReportDepartment, ReportGroup, ReportType
from portal.models.grants import UserDepartment, UserHubAccess, UserReportAccess, UserReportGroupAccess
from portal.models.security import Role, User


def init_db() -> None:
    """
    Create tables + seed a small demo catalog.

    Deterministic, so each grant path can be tried with dummy bearer auth
    (`Authorization: Bearer <user id>`) right after startup.
    """

    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        _seed(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Hub.id).limit(1)).first() is not None


def _seed(db: Session) -> None:
    admin = Role(name="Admin", description="Portal administrator")
    db.add(admin)

    u1 = User(username="alice_admin", email="alice.admin@example.com")
    u1.roles.append(admin)
    u2 = User(username="harry_hub", email="harry.hub@example.com")
    u3 = User(username="grace_group", email="grace.group@example.com")
    u4 = User(username="dora_direct", email="dora.direct@example.com")
    u5 = User(username="fran_finance", email="fran.finance@example.com")
    u6 = User(username="xavier_expired", email="xavier.expired@example.com", is_expired=True,
              expiration_reason="Contract ended")
    db.add_all([u1, u2, u3, u4, u5, u6])
    db.flush()

    finance = Department(code="FIN", name="Finance", sort_order=1)
    operations = Department(code="OPS", name="Operations", sort_order=2)
    db.add_all([finance, operations])

    sales = Hub(code="SALES", name="Sales", description="Sales reporting", sort_order=1)
    ops = Hub(code="OPERATIONS", name="Operations", description="Operational reporting", sort_order=2)
    db.add_all([sales, ops])
    db.flush()

    pipeline = ReportGroup(hub_id=sales.id, code="PIPELINE", name="Pipeline", sort_order=1)
    revenue = ReportGroup(hub_id=sales.id, code="REVENUE", name="Revenue", sort_order=2)
    logistics = ReportGroup(hub_id=ops.id, code="LOGISTICS", name="Logistics", sort_order=1)
    db.add_all([pipeline, revenue, logistics])
    db.flush()

    r1 = Report(
        report_group_id=pipeline.id,
        code="PIPELINE_OVERVIEW",
        name="Pipeline Overview",
        report_type=ReportType.POWER_BI.value,
        embed_url="https://app.powerbi.com/reportEmbed?reportId=00000000-0000-0000-0000-000000000001",
        sort_order=1,
        created_by=u1.id,
    )
    r2 = Report(
        report_group_id=revenue.id,
        code="MONTHLY_REVENUE",
        name="Monthly Revenue",
        report_type=ReportType.SSRS.value,
        ssrs_server_url="https://reports.example.com/ReportServer",
        ssrs_report_path="/Finance/MonthlyRevenue",
        parameters='{"Region": "All"}',
        sort_order=1,
        created_by=u1.id,
    )
    r3 = Report(
        report_group_id=logistics.id,
        code="SHIPMENT_MANIFEST",
        name="Shipment Manifest",
        report_type=ReportType.PAGINATED.value,
        ssrs_server_url="https://reports.example.com/ReportServer",
        ssrs_report_path="Operations/ShipmentManifest",
        sort_order=1,
        created_by=u1.id,
    )
    r4 = Report(
        report_group_id=logistics.id,
        code="WAREHOUSE_KPIS",
        name="Warehouse KPIs",
        report_type=ReportType.POWER_BI.value,
        sort_order=2,
        created_by=u1.id,
    )
    db.add_all([r1, r2, r3, r4])
    db.flush()

    db.add(ReportDepartment(report_id=r2.id, department_id=finance.id, granted_by=u1.id))

    db.add_all(
        [
            UserHubAccess(user_id=u2.id, hub_id=sales.id, granted_by=u1.id),
            UserReportGroupAccess(user_id=u3.id, report_group_id=logistics.id, granted_by=u1.id),
            UserReportAccess(user_id=u4.id, report_id=r1.id, granted_by=u1.id),
            UserDepartment(user_id=u5.id, department_id=finance.id, granted_by=u1.id),
            UserHubAccess(user_id=u6.id, hub_id=sales.id, granted_by=u1.id),
        ]
    )
    db.commit()
