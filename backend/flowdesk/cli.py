"""Management CLI.

Usage:
    python -m flowdesk.cli list-organizations          # Show all organizations
    python -m flowdesk.cli rebuild-paths <org_id>      # Recompute department paths
"""

import asyncio
import sys

from sqlalchemy import select

from flowdesk.database import async_session, engine
from flowdesk.models.organization import Organization
from flowdesk.services.departments import rebuild_department_paths


async def list_organizations() -> None:
    async with async_session() as db:
        result = await db.execute(select(Organization).order_by(Organization.name))
        organizations = result.scalars().all()
    for org in organizations:
        print(f"  {org.id}  {org.name}")
    print(f"\n{len(organizations)} organization(s)")


async def rebuild_paths(organization_id: str) -> None:
    async with async_session() as db:
        try:
            changed = await rebuild_department_paths(db, organization_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    print(f"  Updated {changed} department path(s)")


async def _run(cmd: str, args: list[str]) -> None:
    try:
        if cmd == "list-organizations":
            await list_organizations()
        elif cmd == "rebuild-paths" and args:
            await rebuild_paths(args[0])
        else:
            print("Usage: python -m flowdesk.cli [list-organizations|rebuild-paths <org_id>]")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    asyncio.run(_run(cmd, sys.argv[2:]))
