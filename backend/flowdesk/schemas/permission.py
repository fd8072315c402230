"""Schemas for resource permission management endpoints."""

from datetime import datetime

from pydantic import BaseModel, model_validator

from flowdesk.models.permission import PermissionTargetType, ResourcePermission, ResourceType


class PermissionGrantIn(BaseModel):
    target_type: PermissionTargetType
    target_id: str | None = None
    permission: ResourcePermission

    @model_validator(mode="after")
    def check_target(self):
        if self.target_type == PermissionTargetType.ALL:
            self.target_id = None
        elif not self.target_id:
            raise ValueError(f"target_id is required for {self.target_type.value} grants")
        return self


class PermissionGrantOut(BaseModel):
    id: str
    resource_type: ResourceType
    resource_id: str
    target_type: PermissionTargetType
    target_id: str | None
    permission: ResourcePermission
    created_by_id: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GrantCreator(BaseModel):
    id: str
    name: str | None


class PermissionListItem(BaseModel):
    id: str
    target_type: PermissionTargetType
    target_id: str | None
    target_name: str
    permission: ResourcePermission
    created_at: datetime
    created_by: GrantCreator


class PermissionListResponse(BaseModel):
    data: list[PermissionListItem]
    current_user_permission: ResourcePermission | None
    can_manage: bool


class PermissionDecisionOut(BaseModel):
    allowed: bool
    permission: ResourcePermission | None
    reason: str
