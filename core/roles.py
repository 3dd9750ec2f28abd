"""
core/roles.py -- The closed set of staff privilege levels.

Roles form a total order: moderator < admin < superAdmin. Every membership
question ("is this an admin-tier account?", "may this role be granted by
invite?") is answered from the sets defined here, never from role-name
literals scattered through routes.

Layer rule: core/ is the kernel. No imports from other project packages.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class Role(str, Enum):
    moderator = "moderator"
    admin = "admin"
    super_admin = "superAdmin"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Role"]:
        """Return the Role for a stored value, or None if it is not a known level."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_RANK: dict[Role, int] = {
    Role.moderator: 0,
    Role.admin: 1,
    Role.super_admin: 2,
}

HIGHEST_ROLE = Role.super_admin

# Every staff role. An account whose stored role is not in here cannot hold a session.
STAFF_ROLES: frozenset[Role] = frozenset(Role)

# Roles an invite may grant -- everything below the highest level.
INVITABLE_ROLES: frozenset[Role] = frozenset(r for r in Role if r < HIGHEST_ROLE)
