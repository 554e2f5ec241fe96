from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from portal.models.security import User


@dataclass(frozen=True)
class Identity:
    """
    Authenticated caller, passed explicitly into every resolver call.

    Built once per request by the serving layer; the resolver trusts these
    flags as given and never reads ambient auth state.
    """

    user_id: int
    is_admin: bool = False
    is_active: bool = True
    is_expired: bool = False
    is_locked_out: bool = False
    roles: frozenset[str] = frozenset()

    @property
    def is_blocked(self) -> bool:
        """Expired, locked out or deactivated users see nothing, admin or not."""
        return self.is_expired or self.is_locked_out or not self.is_active

    @classmethod
    def from_user(cls, user: User, admin_role: str, extra_roles: Iterable[str] = ()) -> Identity:
        """
        Derive the identity from a user row plus any roles asserted by the token.

        Admin is one boolean: holding `admin_role`, compared case-insensitively.
        """

        roles = frozenset({r.name for r in user.roles} | set(extra_roles))
        admin_key = admin_role.casefold()
        return cls(
            user_id=user.id,
            is_admin=any(r.casefold() == admin_key for r in roles),
            is_active=user.is_active,
            is_expired=user.is_expired,
            is_locked_out=user.is_locked_out,
            roles=roles,
        )
