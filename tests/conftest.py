"""
Pytest fixtures for the test suite.

Every test gets its own in-memory SQLite database. `StaticPool` keeps the one
connection alive so the FastAPI TestClient (which runs handlers in worker
threads) sees the same data as the test body.
"""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal.models.catalog import CATALOG_MODELS, Department, Hub, Report, ReportDepartment, ReportGroup
from portal.models.grants import GRANT_MODELS
from portal.models.security import Role, User


TEST_DB_URL = "sqlite://"

NOW = datetime(2025, 1, 15, 12, 0, 0)


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from portal.db.base import Base
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(tables):
    return sessionmaker(bind=tables, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(NOW)


_MODEL_KINDS = {model: kind for kind, model in CATALOG_MODELS.items()}


class CatalogBuilder:
    """Small factory for catalog rows, users and grants."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _add(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def user(self, username: str = "user", *, roles: tuple[str, ...] = (), **kwargs) -> User:
        user = User(username=username, email=f"{username}@example.com", **kwargs)
        for name in roles:
            role = self.db.scalar(select(Role).where(Role.name == name)) or Role(name=name)
            user.roles.append(role)
        return self._add(user)

    def hub(self, code: str = "HUB", **kwargs) -> Hub:
        kwargs.setdefault("name", code.title())
        return self._add(Hub(code=code, **kwargs))

    def group(self, hub: Hub, code: str = "GROUP", **kwargs) -> ReportGroup:
        kwargs.setdefault("name", code.title())
        return self._add(ReportGroup(hub_id=hub.id, code=code, **kwargs))

    def report(self, group: ReportGroup, code: str = "REPORT", report_type: str = "PowerBI", **kwargs) -> Report:
        kwargs.setdefault("name", code.title())
        return self._add(Report(report_group_id=group.id, code=code, report_type=report_type, **kwargs))

    def department(self, code: str = "DEPT", **kwargs) -> Department:
        kwargs.setdefault("name", code.title())
        return self._add(Department(code=code, **kwargs))

    def link(self, report: Report, department: Department) -> ReportDepartment:
        return self._add(ReportDepartment(report_id=report.id, department_id=department.id))

    def grant(self, user: User, target, *, expires_at: datetime | None = None, granted_at: datetime = NOW):
        kind = _MODEL_KINDS[type(target)]
        model = GRANT_MODELS[kind]
        grant = model(user_id=user.id, granted_at=granted_at, expires_at=expires_at)
        setattr(grant, model.target_attr, target.id)
        return self._add(grant)

    def tree(self, *, hub_code: str = "HUB", group_code: str = "GROUP", report_code: str = "REPORT"):
        """One active hub -> group -> report chain."""
        hub = self.hub(hub_code)
        group = self.group(hub, group_code)
        return hub, group, self.report(group, report_code)

    def commit(self) -> None:
        self.db.commit()


@pytest.fixture
def build(db_session):
    return CatalogBuilder(db_session)
