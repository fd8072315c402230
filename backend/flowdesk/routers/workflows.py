"""Workflow routes — shared access-controlled surface plus the execution check."""

from fastapi import Depends

from flowdesk.auth.deps import get_current_user, get_permission_service
from flowdesk.models.permission import ResourceType
from flowdesk.models.user import User
from flowdesk.routers.resources import build_resource_router
from flowdesk.schemas.permission import PermissionDecisionOut
from flowdesk.services.permissions import PermissionService, enforce_decision

router = build_resource_router(ResourceType.WORKFLOW)


@router.post("/{resource_id}/execute-check", response_model=PermissionDecisionOut)
async def check_execution(
    resource_id: str,
    user: User = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
):
    """Authorize running a workflow (EDITOR or above) before it is enqueued."""
    decision = await service.authorize_workflow_execution(user.id, resource_id)
    enforce_decision(decision, ResourceType.WORKFLOW, resource_id)
    return PermissionDecisionOut(
        allowed=decision.allowed,
        permission=decision.permission,
        reason=decision.reason,
    )
