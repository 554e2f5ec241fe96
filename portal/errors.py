"""
Error taxonomy for the access core.

"Forbidden" is deliberately absent: the resolver answers with an empty
catalog or `False`, never an exception. "Needs configuration" is a result
type (`portal.embed.resolver.NeedsConfiguration`), not an error.
"""

from __future__ import annotations


class PortalError(Exception):
    """Base class for errors raised by the portal core."""


class NotFoundError(PortalError):
    """A referenced entity or grant does not exist."""

    def __init__(self, kind: str, entity_id: object) -> None:
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class InvalidStateError(PortalError):
    """A mutation or lookup hit data in a state it cannot act on. Admin-facing detail."""


class UnknownReportTypeError(InvalidStateError):
    """A report carries a type outside the closed set. Signals catalog corruption."""

    def __init__(self, report_id: int, report_type: object) -> None:
        super().__init__(f"Report {report_id} has unknown report type {report_type!r}")
        self.report_id = report_id
        self.report_type = report_type


class UpstreamUnavailableError(PortalError):
    """An external service (Power BI) failed, timed out, or answered with an unusable body."""
