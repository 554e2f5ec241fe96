"""
Audit events.

The portal only emits events; where they end up (SIEM, table, file) is the
job of whatever handler is attached to the `portal.audit` logger.
"""

from __future__ import annotations

import logging
from typing import Any

audit_logger = logging.getLogger("portal.audit")


def audit_event(action: str, actor_id: int | None, **fields: Any) -> None:
    """
    Emit one audit event.

    `fields` are attached both to the message (for plain-text handlers) and
    as `record.audit` (for structured handlers). Never pass tokens here.
    """

    details = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
    audit_logger.info(
        "audit action=%s actor=%s %s",
        action,
        actor_id,
        details,
        extra={"audit": {"action": action, "actor_id": actor_id, **fields}},
    )
