"""Explicit permission grants on workflows, knowledge bases and templates.

One table for all three resource kinds, discriminated by `resource_type`.
A grant binds a target (every member of the organization, one user, or one
department subtree) to a permission level. At most one grant exists per
(resource_type, resource_id, target_type, target_id); writes upsert.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from flowdesk.database import Base


class ResourceType(str, enum.Enum):
    WORKFLOW = "WORKFLOW"
    KNOWLEDGE_BASE = "KNOWLEDGE_BASE"
    TEMPLATE = "TEMPLATE"


class ResourcePermission(str, enum.Enum):
    VIEWER = "VIEWER"
    EDITOR = "EDITOR"
    MANAGER = "MANAGER"


class PermissionTargetType(str, enum.Enum):
    ALL = "ALL"
    USER = "USER"
    DEPARTMENT = "DEPARTMENT"


class ResourcePermissionGrant(Base):
    __tablename__ = "resource_permissions"
    __table_args__ = (
        UniqueConstraint(
            "resource_type", "resource_id", "target_type", "target_id",
            name="uq_resource_permissions_target",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    resource_type: Mapped[ResourceType] = mapped_column(
        SAEnum(ResourceType), nullable=False
    )
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    target_type: Mapped[PermissionTargetType] = mapped_column(
        SAEnum(PermissionTargetType), nullable=False
    )
    # user id for USER, department id for DEPARTMENT, null for ALL
    target_id: Mapped[str | None] = mapped_column(String(36), index=True)

    permission: Mapped[ResourcePermission] = mapped_column(
        SAEnum(ResourcePermission), nullable=False
    )

    created_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
