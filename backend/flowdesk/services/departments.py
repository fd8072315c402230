"""Department hierarchy service.

Answers the organizational-chart questions the permission engine asks:
  - is department A a (strict) ancestor of department B?
  - does user U manage department D?
  - is user U anywhere above user V in the reporting chain?
  - which departments sit below each of a set of departments? (batched)

Ancestor and descendant checks use the materialized `Department.path`
("root/child/grandchild") so they cost a single query regardless of depth.
"""

import logging
from collections import defaultdict, deque

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from flowdesk.models.department import Department
from flowdesk.models.user import User

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "/"


# ── Path helpers ────────────────────────────────────────────

def build_department_path(parent_path: str | None, department_id: str) -> str:
    """Path of a department given its parent's path (None for roots)."""
    if not parent_path:
        return department_id
    return f"{parent_path}{PATH_SEPARATOR}{department_id}"


def is_ancestor_path(ancestor_path: str, path: str) -> bool:
    """True iff `ancestor_path` is a strict prefix of `path` on a segment boundary."""
    return path.startswith(ancestor_path + PATH_SEPARATOR)


# ── Single-department queries ───────────────────────────────

async def get_ancestor_department_ids(db: AsyncSession, department_id: str) -> list[str]:
    """Ancestor ids ordered from the direct parent up to the root."""
    result = await db.execute(
        select(Department.path).where(Department.id == department_id)
    )
    path = result.scalar_one_or_none()
    if not path:
        return []
    segments = path.split(PATH_SEPARATOR)
    return list(reversed(segments[:-1]))


async def get_descendant_department_ids(db: AsyncSession, department_id: str) -> list[str]:
    """Every department below `department_id`, at any depth."""
    descendants = await get_descendant_map(db, [department_id])
    return descendants.get(department_id, [])


async def is_upper_department(
    db: AsyncSession,
    upper_department_id: str | None,
    lower_department_id: str | None,
) -> bool:
    """True iff `upper_department_id` is a strict ancestor of `lower_department_id`.

    A department is never its own upper department.
    """
    if not upper_department_id or not lower_department_id:
        return False
    if upper_department_id == lower_department_id:
        return False

    result = await db.execute(
        select(Department.id, Department.path).where(
            Department.id.in_([upper_department_id, lower_department_id])
        )
    )
    paths = {row.id: row.path for row in result}
    upper_path = paths.get(upper_department_id)
    lower_path = paths.get(lower_department_id)
    if not upper_path or not lower_path:
        return False
    return is_ancestor_path(upper_path, lower_path)


async def is_department_manager(db: AsyncSession, user_id: str, department_id: str) -> bool:
    result = await db.execute(
        select(Department.manager_id).where(Department.id == department_id)
    )
    manager_id = result.scalar_one_or_none()
    return manager_id is not None and manager_id == user_id


async def has_department_manage_permission(
    db: AsyncSession, user_id: str, department_id: str
) -> bool:
    """True if the user manages the department or any department above it."""
    ancestors = await get_ancestor_department_ids(db, department_id)
    result = await db.execute(
        select(Department.id).where(
            Department.id.in_([department_id, *ancestors]),
            Department.manager_id == user_id,
        )
    )
    return result.first() is not None


# ── Reporting chain ─────────────────────────────────────────

async def is_supervisor(db: AsyncSession, supervisor_id: str, subordinate_id: str) -> bool:
    """True iff `supervisor_id` appears anywhere in the subordinate's reporting chain.

    Follows `User.supervisor_id` upwards to arbitrary depth. A malformed chain
    that loops back on itself ends the walk with no match.
    """
    if not supervisor_id or not subordinate_id or supervisor_id == subordinate_id:
        return False

    visited = {subordinate_id}
    current = subordinate_id
    while True:
        result = await db.execute(
            select(User.supervisor_id).where(User.id == current)
        )
        next_id = result.scalar_one_or_none()
        if next_id is None:
            return False
        if next_id == supervisor_id:
            return True
        if next_id in visited:
            logger.warning(
                "Reporting-chain cycle detected at user %s (subordinate %s)",
                next_id,
                subordinate_id,
            )
            return False
        visited.add(next_id)
        current = next_id


# ── Batched subtree resolution ──────────────────────────────

async def get_descendant_map(
    db: AsyncSession, department_ids: list[str] | set[str]
) -> dict[str, list[str]]:
    """Descendants for each requested department, in ONE query.

    Self-joins departments on the path prefix, so the cost does not grow with
    the number of requested departments. Every requested id is present in the
    result (with an empty list when it has no descendants or does not exist).
    """
    ids = list(dict.fromkeys(department_ids))
    descendant_map: dict[str, list[str]] = {dept_id: [] for dept_id in ids}
    if not ids:
        return descendant_map

    parent = aliased(Department)
    child = aliased(Department)
    result = await db.execute(
        select(parent.id, child.id)
        .join(child, child.path.startswith(parent.path + PATH_SEPARATOR))
        .where(parent.id.in_(ids))
    )
    for parent_id, child_id in result.all():
        descendant_map[parent_id].append(child_id)
    return descendant_map


# ── Membership / management scope ───────────────────────────

async def get_department_member_ids(
    db: AsyncSession,
    department_id: str,
    include_children: bool = False,
) -> list[str]:
    """Active members of a department, optionally including its whole subtree."""
    department_ids = [department_id]
    if include_children:
        department_ids.extend(await get_descendant_department_ids(db, department_id))

    result = await db.execute(
        select(User.id).where(
            User.department_id.in_(department_ids),
            User.is_active == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())


async def get_manageable_department_ids(
    db: AsyncSession, user_id: str, organization_id: str
) -> list[str]:
    """Departments the user manages, plus everything below them."""
    result = await db.execute(
        select(Department.id).where(
            Department.organization_id == organization_id,
            Department.manager_id == user_id,
        )
    )
    managed = list(result.scalars().all())
    if not managed:
        return []

    descendant_map = await get_descendant_map(db, managed)
    manageable: dict[str, None] = {}
    for dept_id in managed:
        manageable[dept_id] = None
        for child_id in descendant_map[dept_id]:
            manageable[child_id] = None
    return list(manageable)


# ── Path maintenance ────────────────────────────────────────

async def rebuild_department_paths(db: AsyncSession, organization_id: str) -> int:
    """Recompute `path` and `level` for every department of an organization.

    Walks the tree top-down from the roots. Departments unreachable from a
    root (a broken or cyclic parent link) are left untouched and logged.
    Returns the number of departments whose path or level changed.
    """
    result = await db.execute(
        select(Department).where(Department.organization_id == organization_id)
    )
    departments = {dept.id: dept for dept in result.scalars().all()}

    children: dict[str | None, list[Department]] = defaultdict(list)
    for dept in departments.values():
        parent_id = dept.parent_id if dept.parent_id in departments else None
        children[parent_id].append(dept)

    changed = 0
    reached: set[str] = set()
    queue: deque[tuple[Department, str | None, int]] = deque(
        (dept, None, 0) for dept in children[None]
    )
    while queue:
        dept, parent_path, level = queue.popleft()
        if dept.id in reached:
            continue
        reached.add(dept.id)

        path = build_department_path(parent_path, dept.id)
        if dept.path != path or dept.level != level:
            dept.path = path
            dept.level = level
            changed += 1
        for child_dept in children[dept.id]:
            queue.append((child_dept, path, level + 1))

    orphaned = set(departments) - reached
    if orphaned:
        logger.warning(
            "Departments unreachable from a root in organization %s: %s",
            organization_id,
            sorted(orphaned),
        )

    await db.flush()
    return changed


# ── Tree view ───────────────────────────────────────────────

async def get_department_tree(db: AsyncSession, organization_id: str) -> list[dict]:
    """Nested department tree for an organization (roots first)."""
    result = await db.execute(
        select(Department)
        .where(Department.organization_id == organization_id)
        .order_by(Department.level, Department.sort_order, Department.name)
    )
    departments = list(result.scalars().all())

    manager_ids = {d.manager_id for d in departments if d.manager_id}
    manager_names: dict[str, str | None] = {}
    if manager_ids:
        users = await db.execute(
            select(User.id, User.name).where(User.id.in_(manager_ids))
        )
        manager_names = {row.id: row.name for row in users}

    nodes: dict[str, dict] = {}
    for dept in departments:
        nodes[dept.id] = {
            "id": dept.id,
            "name": dept.name,
            "level": dept.level,
            "path": dept.path,
            "manager_id": dept.manager_id,
            "manager_name": manager_names.get(dept.manager_id) if dept.manager_id else None,
            "children": [],
        }

    roots: list[dict] = []
    for dept in departments:
        node = nodes[dept.id]
        if dept.parent_id and dept.parent_id in nodes:
            nodes[dept.parent_id]["children"].append(node)
        else:
            roots.append(node)
    return roots
