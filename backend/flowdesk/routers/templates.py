"""Template routes.

Listing also returns public and official templates from outside the
organization when the caller only needs to view them.
"""

from flowdesk.models.permission import ResourceType
from flowdesk.routers.resources import build_resource_router

router = build_resource_router(ResourceType.TEMPLATE)
