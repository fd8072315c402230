"""Route factory shared by workflows, knowledge bases and templates.

Every resource kind exposes the same access-controlled surface:

  GET    /                         accessible resources (paginated)
  GET    /{resource_id}            one resource            (VIEWER)
  GET    /{resource_id}/permissions  grant list            (VIEWER)
  POST   /{resource_id}/permissions  upsert a grant        (MANAGER, 201 new / 200 updated)
  DELETE /{resource_id}/permissions  revoke a grant        (MANAGER)

Missing resources and resources of another organization both answer 404.
"""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import and_, func, or_, select

from flowdesk.auth.deps import (
    get_current_user,
    get_permission_service,
    require_resource_permission,
)
from flowdesk.middleware.exceptions import ResourceNotFoundError
from flowdesk.models.permission import (
    PermissionTargetType,
    ResourcePermission,
    ResourceType,
)
from flowdesk.models.user import User
from flowdesk.schemas.common import PaginatedResponse
from flowdesk.schemas.permission import (
    PermissionGrantIn,
    PermissionGrantOut,
    PermissionListResponse,
)
from flowdesk.schemas.resource import ResourceDetailOut, ResourceOut
from flowdesk.services import permission_grants
from flowdesk.services.permissions import (
    ALL_RESOURCES,
    RESOURCE_LABELS,
    PermissionCheckResult,
    PermissionService,
)
from flowdesk.services.resources import get_accessor


def build_resource_router(resource_type: ResourceType) -> APIRouter:
    router = APIRouter()
    accessor = get_accessor(resource_type)
    model = accessor.model

    @router.get("/", response_model=PaginatedResponse[ResourceOut])
    async def list_resources(
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        user: User = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
    ):
        ids = await service.get_accessible_resource_ids(
            user.id, user.organization_id, resource_type
        )
        if ids == ALL_RESOURCES:
            criteria = [and_(*accessor.organization_scope(user.organization_id))]
            public_scope = accessor.public_scope()
            if public_scope is not None:
                criteria = [or_(criteria[0], and_(*public_scope))]
        elif not ids:
            return PaginatedResponse(items=[], total=0, limit=limit, offset=offset)
        else:
            criteria = [model.id.in_(ids)]

        db = service.db
        total = await db.scalar(select(func.count(model.id)).where(*criteria)) or 0
        result = await db.execute(
            select(model)
            .where(*criteria)
            .order_by(model.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        items = [ResourceOut.model_validate(row) for row in result.scalars().all()]
        return PaginatedResponse(items=items, total=total, limit=limit, offset=offset)

    @router.get("/{resource_id}", response_model=ResourceDetailOut)
    async def get_resource(
        resource_id: str,
        decision: PermissionCheckResult = Depends(
            require_resource_permission(resource_type, ResourcePermission.VIEWER)
        ),
        service: PermissionService = Depends(get_permission_service),
    ):
        result = await service.db.execute(select(model).where(model.id == resource_id))
        resource = result.scalar_one_or_none()
        if resource is None:
            raise ResourceNotFoundError(RESOURCE_LABELS[resource_type], resource_id)
        out = ResourceOut.model_validate(resource)
        return ResourceDetailOut(**out.model_dump(), permission=decision.permission)

    @router.get("/{resource_id}/permissions", response_model=PermissionListResponse)
    async def list_permissions(
        resource_id: str,
        decision: PermissionCheckResult = Depends(
            require_resource_permission(resource_type, ResourcePermission.VIEWER)
        ),
        service: PermissionService = Depends(get_permission_service),
    ):
        items = await permission_grants.get_resource_permissions(
            service.db, resource_type, resource_id
        )
        return PermissionListResponse(
            data=items,
            current_user_permission=decision.permission,
            can_manage=decision.permission == ResourcePermission.MANAGER,
        )

    @router.post(
        "/{resource_id}/permissions",
        response_model=PermissionGrantOut,
        status_code=status.HTTP_201_CREATED,
    )
    async def set_permission(
        resource_id: str,
        body: PermissionGrantIn,
        response: Response,
        user: User = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
    ):
        grant, created = await service.set_resource_permission(
            user,
            resource_type,
            resource_id,
            body.target_type,
            body.target_id,
            body.permission,
        )
        if not created:
            response.status_code = status.HTTP_200_OK
        return PermissionGrantOut.model_validate(grant)

    @router.delete("/{resource_id}/permissions", status_code=status.HTTP_204_NO_CONTENT)
    async def remove_permission(
        resource_id: str,
        target_type: PermissionTargetType = Query(...),
        target_id: str | None = Query(None),
        user: User = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
    ):
        await service.remove_resource_permission(
            user, resource_type, resource_id, target_type, target_id
        )

    return router
