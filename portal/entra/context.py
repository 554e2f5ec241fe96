"""Claims extracted from a validated Entra access token."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenContext:
    object_id: str
    """Entra object id ("oid"), falling back to "sub" for non-Azure issuers."""

    roles: tuple[str, ...]
    """App roles from the "roles" claim. Merged with database roles for the admin check."""

    preferred_username: str | None = None
    """UPN / email. Display only; never used for authorization."""

