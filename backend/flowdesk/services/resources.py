"""Uniform read access to the metadata of permission-controlled resources.

The engine only ever needs four facts about a resource: its id, owning
organization, creator, and the creator's department. Each resource kind has
one accessor that knows how to fetch them, plus the filters the listing
operation uses to scope queries for that kind.

The set of kinds is closed (ResourceType); `ACCESSORS` maps each one to its
accessor.
"""

from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flowdesk.models.knowledge_base import KnowledgeBase
from flowdesk.models.permission import ResourceType
from flowdesk.models.template import TemplateType, TemplateVisibility, WorkflowTemplate
from flowdesk.models.user import User
from flowdesk.models.workflow import Workflow


@dataclass(frozen=True)
class ResourceInfo:
    id: str
    organization_id: str | None
    creator_id: str | None
    creator_department_id: str | None


class ResourceAccessor:
    """Base accessor: metadata lookup and listing scopes for one resource kind."""

    resource_type: ResourceType
    model: type

    async def get_resource_info(
        self, db: AsyncSession, resource_id: str
    ) -> ResourceInfo | None:
        raise NotImplementedError

    def organization_scope(self, organization_id: str) -> list:
        """Filters selecting the organization's listable resources."""
        return [self.model.organization_id == organization_id]

    def default_scope(self, organization_id: str) -> list:
        """Filters for resources visible through the role default (no grants)."""
        return self.organization_scope(organization_id)

    def public_scope(self) -> list | None:
        """Filters for globally visible resources, or None if the kind has none."""
        return None

    async def _creator_joined_info(
        self, db: AsyncSession, *criteria
    ) -> ResourceInfo | None:
        # Creator's department comes from the same round trip via an outer join
        model = self.model
        result = await db.execute(
            select(
                model.id,
                model.organization_id,
                model.creator_id,
                User.department_id,
            )
            .outerjoin(User, User.id == model.creator_id)
            .where(*criteria)
        )
        row = result.first()
        if row is None:
            return None
        return ResourceInfo(
            id=row[0],
            organization_id=row[1],
            creator_id=row[2],
            creator_department_id=row[3],
        )


class WorkflowAccessor(ResourceAccessor):
    resource_type = ResourceType.WORKFLOW
    model = Workflow

    async def get_resource_info(self, db, resource_id):
        # Soft-deleted workflows are treated as gone
        return await self._creator_joined_info(
            db, Workflow.id == resource_id, Workflow.deleted_at.is_(None)
        )

    def organization_scope(self, organization_id):
        return [
            Workflow.organization_id == organization_id,
            Workflow.deleted_at.is_(None),
        ]


class KnowledgeBaseAccessor(ResourceAccessor):
    resource_type = ResourceType.KNOWLEDGE_BASE
    model = KnowledgeBase

    async def get_resource_info(self, db, resource_id):
        return await self._creator_joined_info(db, KnowledgeBase.id == resource_id)

    def organization_scope(self, organization_id):
        return [
            KnowledgeBase.organization_id == organization_id,
            KnowledgeBase.is_active == True,  # noqa: E712
        ]


class TemplateAccessor(ResourceAccessor):
    resource_type = ResourceType.TEMPLATE
    model = WorkflowTemplate

    async def get_resource_info(self, db, resource_id):
        # Creator department is denormalized on the template row
        result = await db.execute(
            select(WorkflowTemplate).where(WorkflowTemplate.id == resource_id)
        )
        template = result.scalar_one_or_none()
        if template is None:
            return None
        return ResourceInfo(
            id=template.id,
            organization_id=template.organization_id,
            creator_id=template.creator_id,
            creator_department_id=template.creator_department_id,
        )

    def organization_scope(self, organization_id):
        return [
            WorkflowTemplate.organization_id == organization_id,
            WorkflowTemplate.is_hidden == False,  # noqa: E712
        ]

    def default_scope(self, organization_id):
        # Private templates without grants stay with their creator
        return [
            *self.organization_scope(organization_id),
            WorkflowTemplate.visibility == TemplateVisibility.ORGANIZATION,
        ]

    def public_scope(self):
        return [
            or_(
                WorkflowTemplate.template_type == TemplateType.PUBLIC,
                WorkflowTemplate.is_official == True,  # noqa: E712
            ),
            WorkflowTemplate.is_hidden == False,  # noqa: E712
        ]


ACCESSORS: dict[ResourceType, ResourceAccessor] = {
    ResourceType.WORKFLOW: WorkflowAccessor(),
    ResourceType.KNOWLEDGE_BASE: KnowledgeBaseAccessor(),
    ResourceType.TEMPLATE: TemplateAccessor(),
}


def get_accessor(resource_type: ResourceType) -> ResourceAccessor:
    return ACCESSORS[resource_type]


async def get_resource_info(
    db: AsyncSession, resource_type: ResourceType, resource_id: str
) -> ResourceInfo | None:
    return await get_accessor(resource_type).get_resource_info(db, resource_id)
