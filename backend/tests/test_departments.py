"""Tests for the department hierarchy service."""

import uuid

import pytest
from sqlalchemy import event

from flowdesk.models.department import Department
from flowdesk.models.user import User, UserRole
from flowdesk.services.departments import (
    build_department_path,
    get_ancestor_department_ids,
    get_department_member_ids,
    get_department_tree,
    get_descendant_department_ids,
    get_descendant_map,
    get_manageable_department_ids,
    has_department_manage_permission,
    is_ancestor_path,
    is_department_manager,
    is_supervisor,
    is_upper_department,
    rebuild_department_paths,
)


@pytest.mark.unit
class TestPathHelpers:

    def test_root_path_is_own_id(self):
        assert build_department_path(None, "d1") == "d1"

    def test_child_path_extends_parent(self):
        assert build_department_path("d1/d2", "d3") == "d1/d2/d3"

    def test_prefix_must_end_on_segment_boundary(self):
        assert is_ancestor_path("d1", "d1/d2")
        assert not is_ancestor_path("d1", "d10/d2")
        assert not is_ancestor_path("d1", "d1")


@pytest.mark.asyncio
class TestHierarchyQueries:

    async def test_upper_department(self, db_session, org_chart):
        assert await is_upper_department(
            db_session, org_chart.engineering.id, org_chart.platform.id
        )
        assert not await is_upper_department(
            db_session, org_chart.platform.id, org_chart.engineering.id
        )

    async def test_department_is_not_its_own_upper(self, db_session, org_chart):
        assert not await is_upper_department(
            db_session, org_chart.platform.id, org_chart.platform.id
        )

    async def test_sibling_roots_are_unrelated(self, db_session, org_chart):
        assert not await is_upper_department(
            db_session, org_chart.sales.id, org_chart.platform.id
        )

    async def test_missing_department(self, db_session, org_chart):
        assert not await is_upper_department(db_session, None, org_chart.platform.id)
        assert not await is_upper_department(
            db_session, str(uuid.uuid4()), org_chart.platform.id
        )

    async def test_ancestor_ids_nearest_first(self, db_session, org_chart):
        grandchild = Department(
            id=str(uuid.uuid4()),
            organization_id=org_chart.acme.id,
            name="Runtime",
            parent_id=org_chart.platform.id,
            level=2,
        )
        grandchild.path = build_department_path(org_chart.platform.path, grandchild.id)
        db_session.add(grandchild)
        await db_session.flush()

        assert await get_ancestor_department_ids(db_session, grandchild.id) == [
            org_chart.platform.id,
            org_chart.engineering.id,
        ]
        assert await get_ancestor_department_ids(db_session, org_chart.engineering.id) == []

    async def test_descendants_at_any_depth(self, db_session, org_chart):
        grandchild = Department(
            id=str(uuid.uuid4()),
            organization_id=org_chart.acme.id,
            name="Runtime",
            parent_id=org_chart.platform.id,
            level=2,
        )
        grandchild.path = build_department_path(org_chart.platform.path, grandchild.id)
        db_session.add(grandchild)
        await db_session.flush()

        descendants = await get_descendant_department_ids(db_session, org_chart.engineering.id)
        assert set(descendants) == {org_chart.platform.id, grandchild.id}

    async def test_department_manager(self, db_session, org_chart):
        assert await is_department_manager(
            db_session, org_chart.mgr.id, org_chart.engineering.id
        )
        assert not await is_department_manager(
            db_session, org_chart.mgr.id, org_chart.platform.id
        )
        assert not await is_department_manager(
            db_session, org_chart.bob.id, org_chart.engineering.id
        )

    async def test_manage_permission_covers_subtree(self, db_session, org_chart):
        assert await has_department_manage_permission(
            db_session, org_chart.mgr.id, org_chart.platform.id
        )
        assert not await has_department_manage_permission(
            db_session, org_chart.mgr.id, org_chart.sales.id
        )


@pytest.mark.asyncio
class TestDescendantMap:

    async def test_one_query_for_many_departments(self, db_session, test_engine, org_chart):
        statements = []

        def count(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(test_engine.sync_engine, "before_cursor_execute", count)
        try:
            descendant_map = await get_descendant_map(
                db_session,
                [org_chart.engineering.id, org_chart.platform.id, org_chart.sales.id],
            )
        finally:
            event.remove(test_engine.sync_engine, "before_cursor_execute", count)

        assert len(statements) == 1
        assert descendant_map == {
            org_chart.engineering.id: [org_chart.platform.id],
            org_chart.platform.id: [],
            org_chart.sales.id: [],
        }

    async def test_unknown_ids_map_to_empty(self, db_session, org_chart):
        unknown = str(uuid.uuid4())
        assert await get_descendant_map(db_session, [unknown]) == {unknown: []}

    async def test_empty_input_issues_no_query(self, db_session):
        assert await get_descendant_map(db_session, []) == {}


@pytest.mark.asyncio
class TestSupervisorChain:

    async def test_direct_supervisor(self, db_session, org_chart):
        assert await is_supervisor(db_session, org_chart.lead.id, org_chart.alice.id)
        assert not await is_supervisor(db_session, org_chart.alice.id, org_chart.lead.id)

    async def test_transitive_supervisor(self, db_session, org_chart):
        org_chart.lead.supervisor_id = org_chart.bob.id
        await db_session.flush()
        assert await is_supervisor(db_session, org_chart.bob.id, org_chart.alice.id)

    async def test_self_is_not_supervisor(self, db_session, org_chart):
        assert not await is_supervisor(db_session, org_chart.alice.id, org_chart.alice.id)

    async def test_cycle_terminates(self, db_session, org_chart):
        # lead -> alice -> lead
        org_chart.lead.supervisor_id = org_chart.alice.id
        await db_session.flush()
        assert not await is_supervisor(db_session, org_chart.bob.id, org_chart.alice.id)


@pytest.mark.asyncio
class TestMembershipAndMaintenance:

    async def test_members_with_and_without_children(self, db_session, org_chart):
        direct = await get_department_member_ids(db_session, org_chart.engineering.id)
        assert set(direct) == {org_chart.mgr.id}

        subtree = await get_department_member_ids(
            db_session, org_chart.engineering.id, include_children=True
        )
        assert set(subtree) == {org_chart.mgr.id, org_chart.alice.id, org_chart.viewer.id}

    async def test_inactive_members_excluded(self, db_session, org_chart):
        org_chart.viewer.is_active = False
        await db_session.flush()
        members = await get_department_member_ids(db_session, org_chart.platform.id)
        assert members == [org_chart.alice.id]

    async def test_manageable_departments(self, db_session, org_chart):
        manageable = await get_manageable_department_ids(
            db_session, org_chart.mgr.id, org_chart.acme.id
        )
        assert set(manageable) == {org_chart.engineering.id, org_chart.platform.id}
        assert await get_manageable_department_ids(
            db_session, org_chart.bob.id, org_chart.acme.id
        ) == []

    async def test_rebuild_paths_repairs_stale_rows(self, db_session, org_chart):
        org_chart.platform.path = org_chart.platform.id
        org_chart.platform.level = 0
        await db_session.flush()

        changed = await rebuild_department_paths(db_session, org_chart.acme.id)

        assert changed == 1
        assert org_chart.platform.path == f"{org_chart.engineering.id}/{org_chart.platform.id}"
        assert org_chart.platform.level == 1
        assert await rebuild_department_paths(db_session, org_chart.acme.id) == 0

    async def test_tree(self, db_session, org_chart):
        tree = await get_department_tree(db_session, org_chart.acme.id)

        roots = {node["name"]: node for node in tree}
        assert set(roots) == {"Engineering", "Sales"}
        engineering = roots["Engineering"]
        assert engineering["manager_name"] == "Mgr"
        assert [child["name"] for child in engineering["children"]] == ["Platform"]
