"""Aggregate model imports for Alembic auto-detection."""

from flowdesk.models.organization import Organization  # noqa: F401
from flowdesk.models.user import User, UserRole  # noqa: F401
from flowdesk.models.department import Department  # noqa: F401

# Resources
from flowdesk.models.workflow import Workflow  # noqa: F401
from flowdesk.models.knowledge_base import KnowledgeBase  # noqa: F401
from flowdesk.models.template import (  # noqa: F401
    TemplateType,
    TemplateVisibility,
    WorkflowTemplate,
)

# Access control
from flowdesk.models.permission import (  # noqa: F401
    PermissionTargetType,
    ResourcePermission,
    ResourcePermissionGrant,
    ResourceType,
)
from flowdesk.models.activity_log import ActivityLog  # noqa: F401
