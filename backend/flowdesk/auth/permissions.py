"""Permission levels and role defaults for resource access control.

Design:
  - Resource permission levels are totally ordered:
        VIEWER (1) < EDITOR (2) < MANAGER (3)
  - "Has permission" is always `priority(held) >= priority(required)`.
  - Each organization role has a DEFAULT level, used when a resource has no
    explicit grant that applies to the user.
  - OWNER and ADMIN are organization-wide super roles.
"""

from __future__ import annotations

from typing import Iterable

from flowdesk.models.permission import ResourcePermission
from flowdesk.models.user import UserRole


# ── Level ordering ──────────────────────────────────────────

PERMISSION_PRIORITY: dict[ResourcePermission, int] = {
    ResourcePermission.VIEWER: 1,
    ResourcePermission.EDITOR: 2,
    ResourcePermission.MANAGER: 3,
}


# ── Role → default level ────────────────────────────────────

SUPER_ROLES: frozenset[UserRole] = frozenset({UserRole.OWNER, UserRole.ADMIN})

ROLE_DEFAULTS: dict[UserRole, ResourcePermission] = {
    UserRole.OWNER: ResourcePermission.MANAGER,
    UserRole.ADMIN: ResourcePermission.MANAGER,
    UserRole.EDITOR: ResourcePermission.EDITOR,
    UserRole.MEMBER: ResourcePermission.VIEWER,
    UserRole.VIEWER: ResourcePermission.VIEWER,
}


# ── Resolution ──────────────────────────────────────────────

def is_super_role(role: UserRole) -> bool:
    return role in SUPER_ROLES


def get_default_permission(role: UserRole) -> ResourcePermission | None:
    """Level a role gets on a resource with no applicable explicit grant."""
    return ROLE_DEFAULTS.get(role)


def has_permission(
    held: ResourcePermission | None,
    required: ResourcePermission,
) -> bool:
    """Check whether a held level satisfies a required level."""
    if held is None:
        return False
    return PERMISSION_PRIORITY[held] >= PERMISSION_PRIORITY[required]


def highest_permission(
    levels: Iterable[ResourcePermission],
) -> ResourcePermission | None:
    """Most permissive level of the given ones, or None if empty."""
    best: ResourcePermission | None = None
    for level in levels:
        if best is None or PERMISSION_PRIORITY[level] > PERMISSION_PRIORITY[best]:
            best = level
    return best
