"""Resource permission resolution engine.

Decides, for a (user, resource, required level) triple, whether access is
granted and at what level. Shared by workflows, knowledge bases and
templates.

Decision order — the first rule that yields a level wins:

  1. resource missing                       -> deny   "resource not found"
  2. resource owned by another organization -> deny   "cross-organization access denied"
  3. user is OWNER / ADMIN                  -> MANAGER "organization administrator"
  4. user created the resource              -> MANAGER "resource owner"
  5. user supervises the creator            -> MANAGER "supervisor of owner"
  6. user manages their own department and
     it sits above the creator's department -> MANAGER "upper department manager"
  7. explicit grants apply                  -> highest "explicit permission grant"
  8. role default                           -> default "default role permission"
  9. otherwise                              -> deny   "no permission"

The resolved level is independent of the required level, so it is what gets
cached per (resource, user); `allowed` is always
`priority(level) >= priority(required)`.

Rules short-circuit: later rules never issue their queries once an earlier
rule has decided. Datastore errors propagate to the caller; cache errors
degrade to a full resolution (see utils.cache).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowdesk.auth.permissions import (
    get_default_permission,
    has_permission,
    highest_permission,
    is_super_role,
)
from flowdesk.middleware.exceptions import PermissionDeniedError, ResourceNotFoundError
from flowdesk.models.permission import (
    PermissionTargetType,
    ResourcePermission,
    ResourcePermissionGrant,
    ResourceType,
)
from flowdesk.models.user import User
from flowdesk.services import permission_grants
from flowdesk.services.departments import (
    get_descendant_map,
    is_department_manager,
    is_supervisor,
    is_upper_department,
)
from flowdesk.services.resources import get_accessor, get_resource_info
from flowdesk.utils.activity import log_activity
from flowdesk.utils.cache import CacheLookup, PermissionCache

logger = logging.getLogger(__name__)

ALL_RESOURCES: Literal["all"] = "all"

# ── Decision reasons (audit / logging only, never shown to end users) ──

REASON_USER_NOT_FOUND = "user not found"
REASON_RESOURCE_NOT_FOUND = "resource not found"
REASON_CROSS_ORGANIZATION = "cross-organization access denied"
REASON_ORGANIZATION_ADMIN = "organization administrator"
REASON_RESOURCE_OWNER = "resource owner"
REASON_SUPERVISOR = "supervisor of owner"
REASON_UPPER_DEPARTMENT_MANAGER = "upper department manager"
REASON_EXPLICIT_GRANT = "explicit permission grant"
REASON_ROLE_DEFAULT = "default role permission"
REASON_NO_PERMISSION = "no permission"
REASON_CACHED = "cached permission"
REASON_CACHED_DENIAL = "cached: no permission"

RESOURCE_LABELS: dict[ResourceType, str] = {
    ResourceType.WORKFLOW: "Workflow",
    ResourceType.KNOWLEDGE_BASE: "Knowledge base",
    ResourceType.TEMPLATE: "Template",
}


@dataclass(frozen=True)
class PermissionCheckResult:
    allowed: bool
    permission: ResourcePermission | None
    reason: str


def enforce_decision(
    result: PermissionCheckResult,
    resource_type: ResourceType,
    resource_id: str,
) -> PermissionCheckResult:
    """Raise the transport-level error for a denied decision.

    A decision with no level at all (missing resource, other organization,
    unknown user) becomes a 404 so callers outside the organization cannot
    tell whether it exists; a visible resource with too low a level is a 403.
    """
    if result.allowed:
        return result
    if result.permission is None:
        raise ResourceNotFoundError(RESOURCE_LABELS[resource_type], resource_id)
    raise PermissionDeniedError(
        f"{result.permission.value} access is not sufficient for this operation"
    )


# ── Grant applicability ─────────────────────────────────────

def department_ids_needing_subtree(
    department_id: str | None,
    grants: Iterable[ResourcePermissionGrant],
) -> set[str]:
    """DEPARTMENT targets whose subtree must be expanded to test the user."""
    if not department_id:
        return set()
    return {
        grant.target_id
        for grant in grants
        if grant.target_type == PermissionTargetType.DEPARTMENT
        and grant.target_id
        and grant.target_id != department_id
    }


def applicable_permission(
    user_id: str,
    department_id: str | None,
    grants: Iterable[ResourcePermissionGrant],
    descendant_map: Mapping[str, list[str]],
) -> ResourcePermission | None:
    """Highest level among the grants that apply to the user.

    ALL applies to everyone, USER to the named user, DEPARTMENT to members of
    that department or any department below it. Grants only ever add access.
    """
    levels: list[ResourcePermission] = []
    for grant in grants:
        if grant.target_type == PermissionTargetType.ALL:
            applies = True
        elif grant.target_type == PermissionTargetType.USER:
            applies = grant.target_id == user_id
        elif grant.target_type == PermissionTargetType.DEPARTMENT:
            applies = bool(department_id and grant.target_id) and (
                department_id == grant.target_id
                or department_id in descendant_map.get(grant.target_id, ())
            )
        else:
            applies = False
        if applies:
            levels.append(grant.permission)
    return highest_permission(levels)


# ── Engine ──────────────────────────────────────────────────

class PermissionService:
    """Request-scoped permission engine bound to one DB session.

    `caches` maps each resource kind to its PermissionCache; pass None (or
    omit a kind) to resolve without caching.
    """

    def __init__(
        self,
        db: AsyncSession,
        caches: Mapping[ResourceType, PermissionCache] | None = None,
    ):
        self.db = db
        self.caches = dict(caches or {})

    # ── Decisions ────────────────────────────────────────────

    async def check_resource_permission(
        self,
        user_id: str,
        resource_type: ResourceType,
        resource_id: str,
        required: ResourcePermission,
    ) -> PermissionCheckResult:
        cache = self.caches.get(resource_type)
        if cache is not None:
            cached = await cache.get(resource_id, user_id)
            if cached is CacheLookup.DENIED:
                return PermissionCheckResult(False, None, REASON_CACHED_DENIAL)
            if isinstance(cached, ResourcePermission):
                return PermissionCheckResult(
                    has_permission(cached, required), cached, REASON_CACHED
                )

        level, reason = await self.resolve_permission(user_id, resource_type, resource_id)

        if cache is not None:
            await cache.set(resource_id, user_id, level)

        result = PermissionCheckResult(has_permission(level, required), level, reason)
        logger.debug(
            "Permission %s: user=%s %s=%s required=%s level=%s reason=%s",
            "allowed" if result.allowed else "denied",
            user_id,
            resource_type.value,
            resource_id,
            required.value,
            level.value if level else None,
            reason,
        )
        return result

    async def resolve_permission(
        self,
        user_id: str,
        resource_type: ResourceType,
        resource_id: str,
    ) -> tuple[ResourcePermission | None, str]:
        """Run the decision order uncached. Returns (level or None, reason)."""
        user = await self._get_user(user_id)
        if user is None:
            return None, REASON_USER_NOT_FOUND

        resource = await get_resource_info(self.db, resource_type, resource_id)
        if resource is None:
            return None, REASON_RESOURCE_NOT_FOUND

        # Organization-less resources (public templates) skip isolation
        if resource.organization_id and resource.organization_id != user.organization_id:
            return None, REASON_CROSS_ORGANIZATION

        if is_super_role(user.role):
            return ResourcePermission.MANAGER, REASON_ORGANIZATION_ADMIN

        if resource.creator_id == user.id:
            return ResourcePermission.MANAGER, REASON_RESOURCE_OWNER

        if resource.creator_id and await is_supervisor(self.db, user.id, resource.creator_id):
            return ResourcePermission.MANAGER, REASON_SUPERVISOR

        # The user must manage their OWN department, which must sit above the
        # creator's department; managing the creator's department is not enough.
        if (
            user.department_id
            and resource.creator_department_id
            and await is_upper_department(
                self.db, user.department_id, resource.creator_department_id
            )
            and await is_department_manager(self.db, user.id, user.department_id)
        ):
            return ResourcePermission.MANAGER, REASON_UPPER_DEPARTMENT_MANAGER

        grants = await permission_grants.list_grants(self.db, resource_type, resource_id)
        granted = await self.calculate_user_permission(user, grants)
        if granted is not None:
            return granted, REASON_EXPLICIT_GRANT

        default = get_default_permission(user.role)
        if default is not None:
            return default, REASON_ROLE_DEFAULT

        return None, REASON_NO_PERMISSION

    async def calculate_user_permission(
        self,
        user: User,
        grants: list[ResourcePermissionGrant],
    ) -> ResourcePermission | None:
        """Highest applicable grant level for the user, or None.

        All department subtrees needed across every grant are expanded in a
        single batched query before any grant is evaluated.
        """
        if not grants:
            return None
        needed = department_ids_needing_subtree(user.department_id, grants)
        descendant_map = await get_descendant_map(self.db, needed) if needed else {}
        return applicable_permission(user.id, user.department_id, grants, descendant_map)

    async def get_resource_permission_level(
        self,
        user_id: str,
        resource_type: ResourceType,
        resource_id: str,
    ) -> ResourcePermission | None:
        result = await self.check_resource_permission(
            user_id, resource_type, resource_id, ResourcePermission.VIEWER
        )
        return result.permission

    async def require_permission(
        self,
        user_id: str,
        resource_type: ResourceType,
        resource_id: str,
        required: ResourcePermission,
    ) -> PermissionCheckResult:
        """Check and raise ResourceNotFoundError / PermissionDeniedError on deny."""
        result = await self.check_resource_permission(
            user_id, resource_type, resource_id, required
        )
        return enforce_decision(result, resource_type, resource_id)

    async def can_manage_permission(
        self,
        user_id: str,
        resource_type: ResourceType,
        resource_id: str,
    ) -> bool:
        result = await self.check_resource_permission(
            user_id, resource_type, resource_id, ResourcePermission.MANAGER
        )
        return result.allowed

    async def authorize_workflow_execution(
        self, user_id: str, workflow_id: str
    ) -> PermissionCheckResult:
        """Running a workflow needs EDITOR or above."""
        return await self.check_resource_permission(
            user_id, ResourceType.WORKFLOW, workflow_id, ResourcePermission.EDITOR
        )

    # ── Listing ──────────────────────────────────────────────

    async def get_accessible_resource_ids(
        self,
        user_id: str,
        organization_id: str,
        resource_type: ResourceType,
        required: ResourcePermission = ResourcePermission.VIEWER,
    ) -> list[str] | Literal["all"]:
        """Ids of the resources of one kind the user holds `required` on.

        OWNER / ADMIN get the ALL_RESOURCES sentinel instead of a list.
        Not cached; cost grows with the number of resources that have grants.
        """
        user = await self._get_user(user_id)
        if user is None or user.organization_id != organization_id:
            return []
        if is_super_role(user.role):
            return ALL_RESOURCES

        accessor = get_accessor(resource_type)
        model = accessor.model
        accessible: dict[str, None] = {}

        public_scope = accessor.public_scope()
        if public_scope is not None and required == ResourcePermission.VIEWER:
            result = await self.db.execute(select(model.id).where(*public_scope))
            accessible.update(dict.fromkeys(result.scalars().all()))

        result = await self.db.execute(
            select(model.id).where(
                *accessor.organization_scope(organization_id),
                model.creator_id == user.id,
            )
        )
        accessible.update(dict.fromkeys(result.scalars().all()))

        granted_ids = permission_grants.granted_resource_ids(resource_type)
        result = await self.db.execute(
            select(model.id).where(
                *accessor.organization_scope(organization_id),
                model.id.in_(granted_ids),
            )
        )
        with_grants = list(result.scalars().all())
        if with_grants:
            grants_by_resource = await permission_grants.list_grants_for_resources(
                self.db, resource_type, with_grants
            )
            needed: set[str] = set()
            for grants in grants_by_resource.values():
                needed |= department_ids_needing_subtree(user.department_id, grants)
            descendant_map = await get_descendant_map(self.db, needed) if needed else {}

            for resource_id in with_grants:
                level = applicable_permission(
                    user.id,
                    user.department_id,
                    grants_by_resource.get(resource_id, []),
                    descendant_map,
                )
                if has_permission(level, required):
                    accessible[resource_id] = None

        if has_permission(get_default_permission(user.role), required):
            result = await self.db.execute(
                select(model.id).where(
                    *accessor.default_scope(organization_id),
                    model.id.not_in(granted_ids),
                )
            )
            accessible.update(dict.fromkeys(result.scalars().all()))

        return list(accessible)

    # ── Grant mutations ──────────────────────────────────────

    async def set_resource_permission(
        self,
        operator: User,
        resource_type: ResourceType,
        resource_id: str,
        target_type: PermissionTargetType,
        target_id: str | None,
        permission: ResourcePermission,
    ) -> tuple[ResourcePermissionGrant, bool]:
        """Upsert a grant (operator needs MANAGER), commit, then drop the resource's cache.

        Returns the grant and whether it was newly created.
        """
        await self.require_permission(
            operator.id, resource_type, resource_id, ResourcePermission.MANAGER
        )
        target_id = await permission_grants.validate_grant_target(
            self.db, operator.organization_id, target_type, target_id
        )
        grant, created = await permission_grants.upsert_grant(
            self.db,
            resource_type,
            resource_id,
            target_type,
            target_id,
            permission,
            operator.id,
        )
        await log_activity(
            self.db,
            operator,
            action="permission_granted" if created else "permission_updated",
            entity_type=resource_type.value.lower(),
            entity_id=resource_id,
            summary=f"{permission.value} for {target_type.value} {target_id or ''}".rstrip(),
            details={
                "target_type": target_type.value,
                "target_id": target_id,
                "permission": permission.value,
            },
        )
        await self.db.commit()
        await self.invalidate_resource(resource_type, resource_id)
        return grant, created

    async def remove_resource_permission(
        self,
        operator: User,
        resource_type: ResourceType,
        resource_id: str,
        target_type: PermissionTargetType,
        target_id: str | None,
    ) -> int:
        """Delete a grant (operator needs MANAGER), commit, then drop the resource's cache."""
        await self.require_permission(
            operator.id, resource_type, resource_id, ResourcePermission.MANAGER
        )
        removed = await permission_grants.delete_grant(
            self.db, resource_type, resource_id, target_type, target_id
        )
        if removed:
            await log_activity(
                self.db,
                operator,
                action="permission_revoked",
                entity_type=resource_type.value.lower(),
                entity_id=resource_id,
                summary=f"Revoked {target_type.value} {target_id or ''}".rstrip(),
                details={"target_type": target_type.value, "target_id": target_id},
            )
        # Invalidate only once the write is visible to other sessions
        await self.db.commit()
        await self.invalidate_resource(resource_type, resource_id)
        return removed

    async def invalidate_resource(self, resource_type: ResourceType, resource_id: str) -> int:
        cache = self.caches.get(resource_type)
        if cache is None:
            return 0
        return await cache.invalidate_resource(resource_id)

    # ── Helpers ──────────────────────────────────────────────

    async def _get_user(self, user_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            return None
        return user
