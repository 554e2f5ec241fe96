"""
Grant Store: the four user grant relations behind one interface.

Reads always take `now` explicitly; an expired row is filtered out at query
time and left in place for the audit trail.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from portal.models.catalog import EntityKind
from portal.models.grants import GRANT_MODELS, GrantMixin


def _unexpired(model: type[GrantMixin], now: datetime):
    return or_(model.expires_at.is_(None), model.expires_at > now)


def _target(model: type[GrantMixin]):
    return getattr(model, model.target_attr)


class GrantStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ---- reads -------------------------------------------------------------------

    def active_target_ids(self, user_id: int, kind: EntityKind, now: datetime) -> set[int]:
        model = GRANT_MODELS[kind]
        stmt = select(_target(model)).where(model.user_id == user_id, _unexpired(model, now))
        return set(self.db.scalars(stmt).all())

    def has_active_grant(self, user_id: int, kind: EntityKind, target_id: int, now: datetime) -> bool:
        model = GRANT_MODELS[kind]
        stmt = (
            select(model.id)
            .where(model.user_id == user_id, _target(model) == target_id, _unexpired(model, now))
            .limit(1)
        )
        return self.db.execute(stmt).first() is not None

    def get(self, user_id: int, kind: EntityKind, target_id: int) -> GrantMixin | None:
        model = GRANT_MODELS[kind]
        stmt = select(model).where(model.user_id == user_id, _target(model) == target_id)
        return self.db.scalars(stmt).first()

    def list_for_user(
        self,
        user_id: int,
        kind: EntityKind,
        now: datetime,
        *,
        include_expired: bool = False,
    ) -> list[GrantMixin]:
        model = GRANT_MODELS[kind]
        stmt = select(model).where(model.user_id == user_id)
        if not include_expired:
            stmt = stmt.where(_unexpired(model, now))
        return list(self.db.scalars(stmt.order_by(model.id)).all())

    def count_for_target(self, kind: EntityKind, target_id: int) -> int:
        """Rows (expired ones included) pointing at a target."""
        model = GRANT_MODELS[kind]
        stmt = select(func.count()).select_from(model).where(_target(model) == target_id)
        return int(self.db.scalar(stmt) or 0)

    # ---- writes (callers own the transaction) ------------------------------------

    def upsert(
        self,
        user_id: int,
        kind: EntityKind,
        target_id: int,
        *,
        granted_by: int | None,
        granted_at: datetime,
        expires_at: datetime | None,
    ) -> GrantMixin:
        existing = self.get(user_id, kind, target_id)
        if existing is not None:
            existing.granted_at = granted_at
            existing.granted_by = granted_by
            existing.expires_at = expires_at
            return existing

        model = GRANT_MODELS[kind]
        grant = model(user_id=user_id, granted_by=granted_by, granted_at=granted_at, expires_at=expires_at)
        setattr(grant, model.target_attr, target_id)
        self.db.add(grant)
        return grant

    def remove(self, user_id: int, kind: EntityKind, target_id: int) -> bool:
        model = GRANT_MODELS[kind]
        result = self.db.execute(delete(model).where(model.user_id == user_id, _target(model) == target_id))
        return bool(result.rowcount)
