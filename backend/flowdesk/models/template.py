"""Workflow templates.

Unlike workflows and knowledge bases a template may have no organization:
PUBLIC (and official) templates are shared across every organization.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from flowdesk.database import Base


class TemplateType(str, enum.Enum):
    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"


class TemplateVisibility(str, enum.Enum):
    PRIVATE = "PRIVATE"
    ORGANIZATION = "ORGANIZATION"


class WorkflowTemplate(Base):
    __tablename__ = "workflow_templates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Null for platform-wide public templates
    organization_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("organizations.id"), index=True
    )
    creator_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id"), index=True
    )
    # Denormalized at creation so lookups skip the users table
    creator_department_id: Mapped[str | None] = mapped_column(String(36))

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    template_type: Mapped[TemplateType] = mapped_column(
        SAEnum(TemplateType), default=TemplateType.INTERNAL
    )
    visibility: Mapped[TemplateVisibility] = mapped_column(
        SAEnum(TemplateVisibility), default=TemplateVisibility.ORGANIZATION
    )
    is_official: Mapped[bool] = mapped_column(Boolean, default=False)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
