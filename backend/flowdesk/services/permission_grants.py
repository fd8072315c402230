"""Permission grant store.

Persists explicit grants for all three resource kinds in the single
`resource_permissions` table. Writes are upserts keyed on
(resource_type, resource_id, target_type, target_id); ALL grants carry no
target id.

This module only reads and writes rows. Cache invalidation and auditing are
the caller's job (see services.permissions), so nothing here should be called
directly by route handlers for mutations.
"""

from collections import defaultdict

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from flowdesk.middleware.exceptions import InvalidPermissionTargetError
from flowdesk.models.department import Department
from flowdesk.models.permission import (
    PermissionTargetType,
    ResourcePermission,
    ResourcePermissionGrant,
    ResourceType,
)
from flowdesk.models.user import User

ALL_MEMBERS_LABEL = "All members"
UNKNOWN_USER_LABEL = "Unknown user"
UNKNOWN_DEPARTMENT_LABEL = "Unknown department"


def _target_clause(target_type: PermissionTargetType, target_id: str | None):
    if target_id is None:
        return ResourcePermissionGrant.target_id.is_(None)
    return ResourcePermissionGrant.target_id == target_id


def normalize_target_id(
    target_type: PermissionTargetType, target_id: str | None
) -> str | None:
    """ALL grants never carry a target id; USER / DEPARTMENT always do."""
    if target_type == PermissionTargetType.ALL:
        return None
    if not target_id:
        raise InvalidPermissionTargetError(
            f"target_id is required for {target_type.value} grants"
        )
    return target_id


# ── Reads ───────────────────────────────────────────────────

async def list_grants(
    db: AsyncSession, resource_type: ResourceType, resource_id: str
) -> list[ResourcePermissionGrant]:
    result = await db.execute(
        select(ResourcePermissionGrant)
        .where(
            ResourcePermissionGrant.resource_type == resource_type,
            ResourcePermissionGrant.resource_id == resource_id,
        )
        .order_by(ResourcePermissionGrant.created_at)
    )
    return list(result.scalars().all())


async def list_grants_for_resources(
    db: AsyncSession, resource_type: ResourceType, resource_ids: list[str]
) -> dict[str, list[ResourcePermissionGrant]]:
    """Grants for many resources of one kind, grouped by resource id (one query)."""
    grouped: dict[str, list[ResourcePermissionGrant]] = defaultdict(list)
    if not resource_ids:
        return grouped
    result = await db.execute(
        select(ResourcePermissionGrant).where(
            ResourcePermissionGrant.resource_type == resource_type,
            ResourcePermissionGrant.resource_id.in_(resource_ids),
        )
    )
    for grant in result.scalars().all():
        grouped[grant.resource_id].append(grant)
    return grouped


def granted_resource_ids(resource_type: ResourceType):
    """Subquery of resource ids of this kind that have at least one grant."""
    return (
        select(ResourcePermissionGrant.resource_id)
        .where(ResourcePermissionGrant.resource_type == resource_type)
        .distinct()
    )


async def get_grant(
    db: AsyncSession,
    resource_type: ResourceType,
    resource_id: str,
    target_type: PermissionTargetType,
    target_id: str | None,
) -> ResourcePermissionGrant | None:
    result = await db.execute(
        select(ResourcePermissionGrant).where(
            ResourcePermissionGrant.resource_type == resource_type,
            ResourcePermissionGrant.resource_id == resource_id,
            ResourcePermissionGrant.target_type == target_type,
            _target_clause(target_type, target_id),
        )
    )
    return result.scalar_one_or_none()


# ── Writes ──────────────────────────────────────────────────

async def upsert_grant(
    db: AsyncSession,
    resource_type: ResourceType,
    resource_id: str,
    target_type: PermissionTargetType,
    target_id: str | None,
    permission: ResourcePermission,
    operator_id: str,
) -> tuple[ResourcePermissionGrant, bool]:
    """Create or update the grant for a target. Returns (grant, created)."""
    target_id = normalize_target_id(target_type, target_id)
    grant = await get_grant(db, resource_type, resource_id, target_type, target_id)
    created = grant is None
    if created:
        grant = ResourcePermissionGrant(
            resource_type=resource_type,
            resource_id=resource_id,
            target_type=target_type,
            target_id=target_id,
            permission=permission,
            created_by_id=operator_id,
        )
        db.add(grant)
    else:
        grant.permission = permission

    await db.flush()
    await db.refresh(grant)
    return grant, created


async def delete_grant(
    db: AsyncSession,
    resource_type: ResourceType,
    resource_id: str,
    target_type: PermissionTargetType,
    target_id: str | None,
) -> int:
    """Delete the grant for a target. Returns the number of rows removed."""
    if target_type == PermissionTargetType.ALL:
        target_id = None
    result = await db.execute(
        delete(ResourcePermissionGrant).where(
            ResourcePermissionGrant.resource_type == resource_type,
            ResourcePermissionGrant.resource_id == resource_id,
            ResourcePermissionGrant.target_type == target_type,
            _target_clause(target_type, target_id),
        )
    )
    await db.flush()
    return result.rowcount or 0


# ── Target validation ───────────────────────────────────────

async def validate_grant_target(
    db: AsyncSession,
    organization_id: str,
    target_type: PermissionTargetType,
    target_id: str | None,
) -> str | None:
    """Ensure a USER / DEPARTMENT target exists inside the organization.

    Returns the normalized target id.
    """
    target_id = normalize_target_id(target_type, target_id)
    if target_type == PermissionTargetType.USER:
        result = await db.execute(
            select(User.id).where(
                User.id == target_id, User.organization_id == organization_id
            )
        )
        if result.scalar_one_or_none() is None:
            raise InvalidPermissionTargetError(f"User not found: {target_id}")
    elif target_type == PermissionTargetType.DEPARTMENT:
        result = await db.execute(
            select(Department.id).where(
                Department.id == target_id,
                Department.organization_id == organization_id,
            )
        )
        if result.scalar_one_or_none() is None:
            raise InvalidPermissionTargetError(f"Department not found: {target_id}")
    return target_id


# ── Management listing ──────────────────────────────────────

async def get_resource_permissions(
    db: AsyncSession, resource_type: ResourceType, resource_id: str
) -> list[dict]:
    """Grants of a resource with display names for targets and creators.

    Target users and grant creators are fetched together in one query, and
    departments in another, however many grants there are.
    """
    grants = await list_grants(db, resource_type, resource_id)
    if not grants:
        return []

    user_ids: set[str] = set()
    department_ids: set[str] = set()
    for grant in grants:
        if grant.target_type == PermissionTargetType.USER and grant.target_id:
            user_ids.add(grant.target_id)
        elif grant.target_type == PermissionTargetType.DEPARTMENT and grant.target_id:
            department_ids.add(grant.target_id)
        user_ids.add(grant.created_by_id)

    users_result = await db.execute(
        select(User.id, User.name, User.email).where(User.id.in_(user_ids))
    )
    users = {row.id: row for row in users_result}

    departments: dict[str, str] = {}
    if department_ids:
        dept_result = await db.execute(
            select(Department.id, Department.name).where(
                Department.id.in_(department_ids)
            )
        )
        departments = {row.id: row.name for row in dept_result}

    items: list[dict] = []
    for grant in grants:
        if grant.target_type == PermissionTargetType.ALL:
            target_name = ALL_MEMBERS_LABEL
        elif grant.target_type == PermissionTargetType.USER:
            user = users.get(grant.target_id)
            target_name = (user.name or user.email) if user else UNKNOWN_USER_LABEL
        else:
            target_name = departments.get(grant.target_id, UNKNOWN_DEPARTMENT_LABEL)

        creator = users.get(grant.created_by_id)
        items.append({
            "id": grant.id,
            "target_type": grant.target_type,
            "target_id": grant.target_id,
            "target_name": target_name,
            "permission": grant.permission,
            "created_at": grant.created_at,
            "created_by": {
                "id": grant.created_by_id,
                "name": creator.name if creator else None,
            },
        })
    return items
