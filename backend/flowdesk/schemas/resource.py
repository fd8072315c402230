from datetime import datetime

from pydantic import BaseModel

from flowdesk.models.permission import ResourcePermission


class ResourceOut(BaseModel):
    """Summary shared by workflows, knowledge bases and templates."""

    id: str
    name: str
    description: str | None = None
    organization_id: str | None
    creator_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ResourceDetailOut(ResourceOut):
    permission: ResourcePermission | None
