"""
User roles and the role access relation.

Access is an explicit table rather than an ordering so that adding a role
never silently grants it access to something.
"""
from enum import Enum
from typing import Dict, FrozenSet


class UserRole(str, Enum):
    ATHLETE = "athlete"
    COACH = "coach"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> "UserRole":
        """Parse a role name (case-insensitive). Raises ValueError on unknown names."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}")


ROLE_ACCESS: Dict[UserRole, FrozenSet[UserRole]] = {
    UserRole.ADMIN: frozenset({UserRole.ADMIN, UserRole.COACH, UserRole.ATHLETE}),
    UserRole.COACH: frozenset({UserRole.COACH, UserRole.ATHLETE}),
    UserRole.ATHLETE: frozenset({UserRole.ATHLETE}),
}

# Roles a user may pick for themselves at registration.
SELF_ASSIGNABLE_ROLES = frozenset({UserRole.ATHLETE, UserRole.COACH})


def can_access(actor: UserRole, required: UserRole) -> bool:
    return required in ROLE_ACCESS.get(actor, frozenset())
