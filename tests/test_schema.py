"""
Tests for the Structure Schema — verifies the Pydantic models and tables.

Validates:
- Adjacency tables
- Model defaults and validators
- Factories
- Role permissions
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stratos_structure.structure.schema import (
    DEFAULT_PERMISSIONS,
    LEGAL_PARENT_TYPES,
    ROLE_INFO,
    BSCScope,
    CorporateEntity,
    CorporateEntityType,
    OrgHierarchyConfig,
    OrgLevel,
    Role,
    UserEntityAssignment,
    child_level,
    create_corporate_entity,
    create_org_unit,
    create_user,
    default_code,
    legal_child_types,
    parent_level,
    role_weight,
)


class TestAdjacency:
    """The static legality tables."""

    def test_corporation_is_root_only(self):
        assert LEGAL_PARENT_TYPES[CorporateEntityType.CORPORATION] == frozenset()

    def test_legal_children_of_corporation(self):
        assert legal_child_types(CorporateEntityType.CORPORATION) == {
            CorporateEntityType.HOLDING,
            CorporateEntityType.COMPANY,
        }

    def test_holdings_nest(self):
        assert CorporateEntityType.HOLDING in legal_child_types(CorporateEntityType.HOLDING)

    def test_company_is_a_leaf(self):
        assert legal_child_types(CorporateEntityType.COMPANY) == frozenset()

    def test_level_chain(self):
        assert child_level(OrgLevel.DIRECTORATE) == OrgLevel.DIVISION
        assert child_level(OrgLevel.DEPARTMENT) == OrgLevel.SECTION
        assert child_level(OrgLevel.SECTION) is None
        assert parent_level(OrgLevel.DIRECTORATE) is None
        assert parent_level(OrgLevel.SECTION) == OrgLevel.DEPARTMENT

    def test_role_weights_are_ordered(self):
        assert role_weight(Role.ADMIN) > role_weight(Role.EDITOR) > role_weight(Role.VIEWER)
        assert role_weight(None) == 0


class TestNodes:

    def test_code_derived_from_name(self):
        entity = CorporateEntity(name="acme holdings na", entity_type="holding")
        assert entity.code == "ACMEHOLDI"
        assert default_code("a b c") == "ABC"

    def test_explicit_code_kept(self):
        entity = CorporateEntity(name="ACME", code="X1", entity_type="corporation")
        assert entity.code == "X1"

    def test_ownership_bounds(self):
        with pytest.raises(ValidationError):
            CorporateEntity(name="Bad", entity_type="company", ownership_percentage=120)

    def test_negative_display_order_rejected(self):
        with pytest.raises(ValidationError):
            CorporateEntity(name="Bad", entity_type="company", display_order=-1)

    def test_company_factory_defaults_to_standalone(self):
        company = create_corporate_entity("Co", CorporateEntityType.COMPANY)
        holding = create_corporate_entity("Hold", CorporateEntityType.HOLDING)
        assert company.bsc_scope == BSCScope.STANDALONE
        assert holding.bsc_scope == BSCScope.CONSOLIDATED

    def test_section_never_owns_bsc(self):
        section = create_org_unit("S", OrgLevel.SECTION, "co-1", has_bsc=True)
        assert section.has_bsc is False

    def test_generated_ids_are_unique(self):
        a = create_org_unit("A", OrgLevel.DIRECTORATE, "co-1")
        b = create_org_unit("B", OrgLevel.DIRECTORATE, "co-1")
        assert a.id != b.id
        assert a.id.startswith("org-")


class TestHierarchyConfig:

    def test_directorate_always_allowed(self):
        config = OrgHierarchyConfig(levels_with_bsc=[OrgLevel.DEPARTMENT])
        assert config.level_can_have_bsc(OrgLevel.DIRECTORATE)
        assert config.levels_with_bsc == [OrgLevel.DIRECTORATE, OrgLevel.DEPARTMENT]

    def test_section_stripped(self):
        config = OrgHierarchyConfig(levels_with_bsc=[OrgLevel.SECTION, OrgLevel.DIVISION])
        assert not config.level_can_have_bsc(OrgLevel.SECTION)

    def test_custom_level_name(self):
        config = OrgHierarchyConfig(level_names={OrgLevel.DIVISION: "Business Unit"})
        assert config.level_name(OrgLevel.DIVISION) == "Business Unit"
        assert config.level_name(OrgLevel.SECTION) == "Section"


class TestUsersAndAssignments:

    def test_initials(self):
        assert create_user("a@b.c", "Ada Lovelace").avatar_initials == "AL"

    def test_single_scope(self):
        with pytest.raises(ValidationError):
            UserEntityAssignment(
                user_id="u", role="admin", corporate_entity_id="c", org_unit_id="o"
            )

    def test_global_assignment(self):
        assignment = UserEntityAssignment(user_id="u", role=Role.EDITOR)
        assert assignment.is_global
        assert assignment.inherit_to_children is True

    def test_permission_sets(self):
        assert DEFAULT_PERMISSIONS[Role.ADMIN].can_manage_structure
        assert not DEFAULT_PERMISSIONS[Role.EDITOR].can_manage_structure
        assert DEFAULT_PERMISSIONS[Role.EDITOR].can_edit_bsc
        assert DEFAULT_PERMISSIONS[Role.VIEWER].can_view_reports
        assert not DEFAULT_PERMISSIONS[Role.VIEWER].can_edit_bsc

    def test_role_info_complete(self):
        assert set(ROLE_INFO) == set(Role)
