"""Tests for permission level ordering and role defaults."""

import itertools

import pytest

from flowdesk.auth.permissions import (
    PERMISSION_PRIORITY,
    get_default_permission,
    has_permission,
    highest_permission,
    is_super_role,
)
from flowdesk.models.permission import ResourcePermission
from flowdesk.models.user import UserRole

LEVELS = [ResourcePermission.VIEWER, ResourcePermission.EDITOR, ResourcePermission.MANAGER]


@pytest.mark.unit
class TestPermissionOrdering:

    def test_priority_strictly_increasing(self):
        priorities = [PERMISSION_PRIORITY[level] for level in LEVELS]
        assert priorities == sorted(priorities)
        assert len(set(priorities)) == 3

    def test_has_permission_matches_priority(self):
        for held, required in itertools.product(LEVELS, LEVELS):
            expected = PERMISSION_PRIORITY[held] >= PERMISSION_PRIORITY[required]
            assert has_permission(held, required) is expected

    def test_no_level_never_satisfies(self):
        for required in LEVELS:
            assert has_permission(None, required) is False

    def test_highest_permission_picks_most_permissive(self):
        assert highest_permission(
            [ResourcePermission.VIEWER, ResourcePermission.MANAGER, ResourcePermission.EDITOR]
        ) == ResourcePermission.MANAGER
        assert highest_permission([ResourcePermission.VIEWER]) == ResourcePermission.VIEWER

    def test_highest_permission_empty(self):
        assert highest_permission([]) is None


@pytest.mark.unit
class TestRoleDefaults:

    def test_defaults(self):
        assert get_default_permission(UserRole.OWNER) == ResourcePermission.MANAGER
        assert get_default_permission(UserRole.ADMIN) == ResourcePermission.MANAGER
        assert get_default_permission(UserRole.EDITOR) == ResourcePermission.EDITOR
        assert get_default_permission(UserRole.MEMBER) == ResourcePermission.VIEWER
        assert get_default_permission(UserRole.VIEWER) == ResourcePermission.VIEWER

    def test_super_roles(self):
        assert is_super_role(UserRole.OWNER)
        assert is_super_role(UserRole.ADMIN)
        assert not is_super_role(UserRole.EDITOR)
        assert not is_super_role(UserRole.MEMBER)
        assert not is_super_role(UserRole.VIEWER)
