"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, user, action="permission_granted", entity_type="workflow",
        entity_id=workflow_id, summary="Granted EDITOR to department Sales",
    )

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from flowdesk.models.activity_log import ActivityLog
from flowdesk.models.user import User


async def log_activity(
    db: AsyncSession,
    user: User,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        organization_id=user.organization_id,
        user_id=user.id,
        user_name=user.name or user.email,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        details=details,
    )
    db.add(entry)
