"""FastAPI dependencies for authentication and resource authorization.

Dependencies:
  get_current_user                → decode JWT, load the active user
  get_permission_caches           → per-kind permission caches on the shared Redis client
  get_permission_service          → request-scoped PermissionService
  require_resource_permission(..) → guard a `/{resource_id}` route with a level
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowdesk.auth.jwt import decode_token
from flowdesk.database import get_db
from flowdesk.models.permission import ResourcePermission, ResourceType
from flowdesk.models.user import User
from flowdesk.services.permissions import PermissionCheckResult, PermissionService
from flowdesk.utils.cache import PermissionCache, build_permission_caches, get_redis

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT and load the user it names."""
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


# ── Permission engine wiring ────────────────────────────────

async def get_permission_caches() -> dict[ResourceType, PermissionCache]:
    return build_permission_caches(await get_redis())


async def get_permission_service(
    db: AsyncSession = Depends(get_db),
    caches: dict[ResourceType, PermissionCache] = Depends(get_permission_caches),
) -> PermissionService:
    return PermissionService(db, caches)


def require_resource_permission(resource_type: ResourceType, level: ResourcePermission):
    """Dependency factory — the route's `resource_id` must be accessible at `level`.

    Usage:
        @router.get("/{resource_id}")
        async def read(
            decision: PermissionCheckResult = Depends(
                require_resource_permission(ResourceType.WORKFLOW, ResourcePermission.VIEWER)
            ),
        ):
            ...

    Missing and other-organization resources raise 404; a too-low level 403.
    """
    async def _check(
        resource_id: str,
        user: User = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
    ) -> PermissionCheckResult:
        return await service.require_permission(user.id, resource_type, resource_id, level)

    return _check
