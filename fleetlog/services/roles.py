"""
Role hierarchy and the permission tables built on it.
"""
from enum import Enum


class Role(str, Enum):
    driver = "driver"
    admin = "admin"
    super_admin = "super_admin"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Unknown or missing role claims resolve to the lowest role."""
        try:
            return cls(value)
        except ValueError:
            return cls.driver


_RANK = {Role.driver: 0, Role.admin: 1, Role.super_admin: 2}

# requester role -> target roles it may delete
DELETE_MATRIX: dict[Role, frozenset[Role]] = {
    Role.super_admin: frozenset(Role),
    Role.admin: frozenset({Role.driver}),
    Role.driver: frozenset(),
}

# requester role -> roles it may assign to other users
ASSIGN_MATRIX: dict[Role, frozenset[Role]] = {
    Role.super_admin: frozenset(Role),
    Role.admin: frozenset(),
    Role.driver: frozenset(),
}


def is_admin_tier(role: Role) -> bool:
    return role.rank >= Role.admin.rank


def can_delete_user(requester: Role, target: Role) -> bool:
    return target in DELETE_MATRIX[requester]


def can_assign_role(
    requester: Role,
    new_role: Role,
    is_self: bool,
    super_admin_exists: bool,
) -> bool:
    """
    Decide whether ``requester`` may set ``new_role`` on a user.

    Bootstrap: anyone may promote themselves to super_admin while the
    system has no super_admin at all.
    """
    if is_self and new_role is Role.super_admin and not super_admin_exists:
        return True
    return new_role in ASSIGN_MATRIX[requester]
