from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set log levels for the portal package.

    Notes:
    - Uvicorn configures the handlers; we only set levels for `portal.*`.
    - `portal.audit` carries audit events and never logs above INFO, so a
      quiet `PORTAL_LOG_LEVEL=WARNING` does not drop grant changes.
    """

    normalized = level.upper()
    logging.getLogger("portal").setLevel(normalized)
    logging.getLogger("portal").propagate = True

    numeric = logging.getLevelName(normalized)
    audit_level = min(numeric, logging.INFO) if isinstance(numeric, int) else logging.INFO
    logging.getLogger("portal.audit").setLevel(audit_level)
