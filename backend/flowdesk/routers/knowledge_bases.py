from flowdesk.models.permission import ResourceType
from flowdesk.routers.resources import build_resource_router

router = build_resource_router(ResourceType.KNOWLEDGE_BASE)
