"""
Tests for the Authority Resolver — effective roles across both trees.

Validates:
- Global, direct, inherited and bridged assignments
- Viewer floor and system-admin short circuit
- Maximum weight wins along an ancestor chain
- Monotonicity under grants and revokes
"""

from __future__ import annotations

import random

from stratos_structure.governance.authority import (
    AuthorityResolver,
    RoleSource,
    permissions_for,
)
from stratos_structure.structure.mutations import MutationEngine
from stratos_structure.structure.schema import (
    CorporateEntityType,
    OrgLevel,
    Role,
    StructureSnapshot,
    create_assignment,
    create_corporate_entity,
    create_org_unit,
    create_user,
    default_admin_user,
)
from stratos_structure.structure.tree import TreeStore


def _snapshot(*assignments, users=None) -> StructureSnapshot:
    return StructureSnapshot(
        corporate_entities=[
            create_corporate_entity("Corp-A", CorporateEntityType.CORPORATION, id="corp-a"),
            create_corporate_entity(
                "Hold-B", CorporateEntityType.HOLDING, id="hold-b", parent_entity_id="corp-a"
            ),
            create_corporate_entity(
                "Hold-E", CorporateEntityType.HOLDING, id="hold-e",
                parent_entity_id="corp-a", display_order=1,
            ),
            create_corporate_entity(
                "Co-C", CorporateEntityType.COMPANY, id="co-c", parent_entity_id="hold-b"
            ),
            create_corporate_entity(
                "Co-D", CorporateEntityType.COMPANY, id="co-d", parent_entity_id="hold-e"
            ),
        ],
        org_units=[
            create_org_unit("D1", OrgLevel.DIRECTORATE, "co-c", id="d1"),
            create_org_unit("V1", OrgLevel.DIVISION, "co-c", id="v1", parent_id="d1"),
            create_org_unit("P1", OrgLevel.DEPARTMENT, "co-c", id="p1", parent_id="v1"),
            create_org_unit("D2", OrgLevel.DIRECTORATE, "co-d", id="d2"),
        ],
        users=users if users is not None else [
            default_admin_user(),
            create_user("u@example.com", "User U", id="user-u"),
        ],
        assignments=list(assignments),
    )


class TestFloorAndShortCircuit:

    def setup_method(self):
        self.resolver = AuthorityResolver(TreeStore(_snapshot()).view())

    def test_unknown_user_is_viewer(self):
        resolution = self.resolver.resolve("nobody", corporate_entity_id="co-c")
        assert resolution.role == Role.VIEWER
        assert resolution.source == RoleSource.FLOOR

    def test_user_without_assignments_is_viewer(self):
        assert self.resolver.effective_role("user-u", org_unit_id="d1") == Role.VIEWER

    def test_system_admin(self):
        resolution = self.resolver.resolve("user-admin", org_unit_id="p1")
        assert resolution.role == Role.ADMIN
        assert resolution.source == RoleSource.SYSTEM_ADMIN
        assert self.resolver.is_admin("user-admin")

    def test_inactive_user_is_viewer(self):
        snapshot = _snapshot(
            create_assignment("user-x", Role.ADMIN),
            users=[create_user("x@example.com", "X", id="user-x", is_active=False)],
        )
        resolver = AuthorityResolver(TreeStore(snapshot).view())
        assert resolver.effective_role("user-x") == Role.VIEWER
        assert not resolver.is_admin("user-x")


class TestAssignments:

    def _resolver(self, *assignments):
        return AuthorityResolver(TreeStore(_snapshot(*assignments)).view())

    def test_global_applies_everywhere(self):
        resolver = self._resolver(create_assignment("user-u", Role.EDITOR))
        for scope in ({"corporate_entity_id": "hold-e"}, {"org_unit_id": "p1"}, {}):
            resolution = resolver.resolve("user-u", **scope)
            assert resolution.role == Role.EDITOR
            assert resolution.source == RoleSource.GLOBAL

    def test_company_admin_bridges_but_does_not_leak(self):
        resolver = self._resolver(
            create_assignment("user-u", Role.EDITOR, inherit_to_children=True),
            create_assignment(
                "user-u", Role.ADMIN, corporate_entity_id="co-c", inherit_to_children=False
            ),
        )
        under_company = resolver.resolve("user-u", org_unit_id="v1")
        assert under_company.role == Role.ADMIN
        assert under_company.source == RoleSource.BRIDGE
        assert resolver.resolve("user-u", corporate_entity_id="co-c").source == RoleSource.DIRECT
        assert resolver.effective_role("user-u", corporate_entity_id="hold-b") == Role.EDITOR

    def test_inherited_down_corporate_tree(self):
        resolver = self._resolver(
            create_assignment("user-u", Role.ADMIN, corporate_entity_id="hold-b")
        )
        resolution = resolver.resolve("user-u", corporate_entity_id="co-c")
        assert resolution.role == Role.ADMIN
        assert resolution.source == RoleSource.INHERITED
        assert resolver.effective_role("user-u", org_unit_id="p1") == Role.ADMIN
        assert resolver.effective_role("user-u", corporate_entity_id="co-d") == Role.VIEWER

    def test_non_inheriting_assignment_stays_put(self):
        resolver = self._resolver(
            create_assignment(
                "user-u", Role.ADMIN, corporate_entity_id="hold-b", inherit_to_children=False
            )
        )
        assert resolver.effective_role("user-u", corporate_entity_id="hold-b") == Role.ADMIN
        assert resolver.effective_role("user-u", corporate_entity_id="co-c") == Role.VIEWER

    def test_inherited_down_org_tree(self):
        resolver = self._resolver(create_assignment("user-u", Role.EDITOR, org_unit_id="d1"))
        assert resolver.resolve("user-u", org_unit_id="p1").source == RoleSource.INHERITED
        assert resolver.effective_role("user-u", org_unit_id="d2") == Role.VIEWER

    def test_highest_weight_along_chain(self):
        resolver = self._resolver(
            create_assignment("user-u", Role.VIEWER, corporate_entity_id="hold-b"),
            create_assignment("user-u", Role.EDITOR, corporate_entity_id="corp-a"),
        )
        assert resolver.effective_role("user-u", corporate_entity_id="co-c") == Role.EDITOR

    def test_inactive_assignment_ignored(self):
        resolver = self._resolver(
            create_assignment("user-u", Role.ADMIN, is_active=False)
        )
        assert resolver.effective_role("user-u") == Role.VIEWER

    def test_explicit_scope_pair_skips_bridge(self):
        resolver = self._resolver(
            create_assignment("user-u", Role.ADMIN, corporate_entity_id="co-d")
        )
        assert resolver.effective_role("user-u", org_unit_id="d2") == Role.ADMIN
        assert resolver.effective_role(
            "user-u", corporate_entity_id="co-c", org_unit_id="d2"
        ) == Role.VIEWER

    def test_bridge_reaches_every_unit_of_company(self):
        resolver = self._resolver(
            create_assignment("user-u", Role.ADMIN, corporate_entity_id="co-c")
        )
        for unit_id in ("d1", "v1", "p1"):
            assert resolver.effective_role("user-u", org_unit_id=unit_id) == Role.ADMIN
        assert resolver.effective_role("user-u", org_unit_id="d2") == Role.VIEWER

    def test_scoped_admin_is_not_global_admin(self):
        resolver = self._resolver(
            create_assignment("user-u", Role.ADMIN, corporate_entity_id="co-c")
        )
        assert not resolver.is_admin("user-u")
        assert self._resolver(create_assignment("user-u", Role.ADMIN)).is_admin("user-u")


class TestPermissions:

    def setup_method(self):
        snapshot = _snapshot(create_assignment("user-u", Role.EDITOR, org_unit_id="d1"))
        self.resolver = AuthorityResolver(TreeStore(snapshot).view())

    def test_editor_capabilities(self):
        assert self.resolver.can_perform("user-u", "can_edit_bsc", org_unit_id="v1")
        assert not self.resolver.can_perform("user-u", "can_manage_structure", org_unit_id="v1")

    def test_viewer_capabilities_outside_scope(self):
        assert not self.resolver.can_perform("user-u", "can_edit_bsc", org_unit_id="d2")
        assert self.resolver.can_perform("user-u", "can_view_reports", org_unit_id="d2")

    def test_unknown_action(self):
        assert not self.resolver.can_perform("user-admin", "can_launch_rockets")

    def test_permissions_for_none(self):
        assert not permissions_for(None).can_view_reports


class TestMonotonicity:
    """Grants never lower a role; revokes never raise one."""

    SCOPES = [
        {},
        {"corporate_entity_id": "corp-a"},
        {"corporate_entity_id": "hold-b"},
        {"corporate_entity_id": "co-c"},
        {"corporate_entity_id": "co-d"},
        {"org_unit_id": "d1"},
        {"org_unit_id": "p1"},
        {"org_unit_id": "d2"},
    ]

    def setup_method(self):
        self.store = TreeStore(_snapshot())
        self.engine = MutationEngine(self.store)

    def _roles(self):
        resolver = AuthorityResolver(self.store.view())
        return [resolver.resolve("user-u", **scope).weight for scope in self.SCOPES]

    def test_random_grants_and_revokes(self):
        rng = random.Random(11)
        targets = [
            {},
            {"corporate_entity_id": "hold-b"},
            {"corporate_entity_id": "co-c"},
            {"corporate_entity_id": "co-d"},
            {"org_unit_id": "d1"},
            {"org_unit_id": "v1"},
        ]
        granted: list[str] = []
        for _ in range(60):
            before = self._roles()
            if granted and rng.random() < 0.4:
                assignment_id = granted.pop(rng.randrange(len(granted)))
                assert self.engine.revoke_assignment(assignment_id).ok
                after = self._roles()
                assert all(a <= b for a, b in zip(after, before))
            else:
                result = self.engine.grant_role(
                    "user-u",
                    rng.choice(list(Role)),
                    inherit_to_children=rng.random() < 0.7,
                    **rng.choice(targets),
                )
                assert result.ok
                granted.append(result.node.id)
                after = self._roles()
                assert all(a >= b for a, b in zip(after, before))
