"""Initial schema: organizations, departments, users, resources, grants, audit log.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa

user_role = sa.Enum("OWNER", "ADMIN", "EDITOR", "MEMBER", "VIEWER", name="userrole")
resource_type = sa.Enum("WORKFLOW", "KNOWLEDGE_BASE", "TEMPLATE", name="resourcetype")
resource_permission = sa.Enum("VIEWER", "EDITOR", "MANAGER", name="resourcepermission")
target_type = sa.Enum("ALL", "USER", "DEPARTMENT", name="permissiontargettype")
template_type = sa.Enum("PUBLIC", "INTERNAL", name="templatetype")
template_visibility = sa.Enum("PRIVATE", "ORGANIZATION", name="templatevisibility")


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "departments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("parent_id", sa.String(36), sa.ForeignKey("departments.id")),
        sa.Column("path", sa.String(1024), nullable=False),
        sa.Column("level", sa.Integer(), server_default="0"),
        sa.Column("sort_order", sa.Integer(), server_default="0"),
        sa.Column("manager_id", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_departments_organization_id", "departments", ["organization_id"])
    op.create_index("ix_departments_parent_id", "departments", ["parent_id"])
    op.create_index("ix_departments_manager_id", "departments", ["manager_id"])
    # text_pattern_ops lets LIKE 'prefix/%' subtree scans use the index
    op.create_index(
        "ix_departments_path", "departments", ["path"],
        postgresql_ops={"path": "text_pattern_ops"},
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("role", user_role, server_default="MEMBER"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("department_id", sa.String(36), sa.ForeignKey("departments.id")),
        sa.Column("supervisor_id", sa.String(36), sa.ForeignKey("users.id")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_organization_id", "users", ["organization_id"])
    op.create_index("ix_users_department_id", "users", ["department_id"])
    op.create_index("ix_users_supervisor_id", "users", ["supervisor_id"])

    op.create_table(
        "workflows",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("creator_id", sa.String(36), sa.ForeignKey("users.id")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("deleted_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_workflows_organization_id", "workflows", ["organization_id"])
    op.create_index("ix_workflows_creator_id", "workflows", ["creator_id"])

    op.create_table(
        "knowledge_bases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("creator_id", sa.String(36), sa.ForeignKey("users.id")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_knowledge_bases_organization_id", "knowledge_bases", ["organization_id"])
    op.create_index("ix_knowledge_bases_creator_id", "knowledge_bases", ["creator_id"])

    op.create_table(
        "workflow_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id")),
        sa.Column("creator_id", sa.String(36), sa.ForeignKey("users.id")),
        sa.Column("creator_department_id", sa.String(36)),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("template_type", template_type, server_default="INTERNAL"),
        sa.Column("visibility", template_visibility, server_default="ORGANIZATION"),
        sa.Column("is_official", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_hidden", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_workflow_templates_organization_id", "workflow_templates", ["organization_id"])
    op.create_index("ix_workflow_templates_creator_id", "workflow_templates", ["creator_id"])

    op.create_table(
        "resource_permissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("resource_type", resource_type, nullable=False),
        sa.Column("resource_id", sa.String(36), nullable=False),
        sa.Column("target_type", target_type, nullable=False),
        sa.Column("target_id", sa.String(36)),
        sa.Column("permission", resource_permission, nullable=False),
        sa.Column("created_by_id", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "resource_type", "resource_id", "target_type", "target_id",
            name="uq_resource_permissions_target",
        ),
    )
    op.create_index("ix_resource_permissions_resource_id", "resource_permissions", ["resource_id"])
    op.create_index("ix_resource_permissions_target_id", "resource_permissions", ["target_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36)),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_organization_id", "activity_logs", ["organization_id"])
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("resource_permissions")
    op.drop_table("workflow_templates")
    op.drop_table("knowledge_bases")
    op.drop_table("workflows")
    op.drop_table("users")
    op.drop_table("departments")
    op.drop_table("organizations")
    for enum_type in (
        template_visibility, template_type, target_type,
        resource_permission, resource_type, user_role,
    ):
        enum_type.drop(op.get_bind(), checkfirst=True)
