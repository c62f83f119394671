"""
Shared fixtures: a small corporate group with one fully built-out company.

    Corp-A (corporation)
    ├── Hold-B (holding)
    │   └── Co-C (company)
    │       └── D1 directorate [BSC]
    │           ├── V1 division
    │           │   └── P1 department
    │           │       └── S1 section
    │           ├── V2 division [BSC]
    │           └── V3 division
    ├── Hold-E (holding)
    └── Co-D (company)
        └── D2 directorate [BSC]
"""

from __future__ import annotations

import pytest

from stratos_structure.structure.mutations import MutationEngine
from stratos_structure.structure.schema import (
    CorporateEntityType,
    OrgLevel,
    StructureSnapshot,
    create_corporate_entity,
    create_org_unit,
    create_user,
    default_admin_user,
)
from stratos_structure.structure.tree import TreeStore


def build_group_snapshot() -> StructureSnapshot:
    entities = [
        create_corporate_entity("Corp-A", CorporateEntityType.CORPORATION, id="corp-a"),
        create_corporate_entity(
            "Hold-B", CorporateEntityType.HOLDING, id="hold-b",
            parent_entity_id="corp-a", display_order=0,
        ),
        create_corporate_entity(
            "Hold-E", CorporateEntityType.HOLDING, id="hold-e",
            parent_entity_id="corp-a", display_order=1,
        ),
        create_corporate_entity(
            "Co-D", CorporateEntityType.COMPANY, id="co-d",
            parent_entity_id="corp-a", display_order=2,
        ),
        create_corporate_entity(
            "Co-C", CorporateEntityType.COMPANY, id="co-c",
            parent_entity_id="hold-b", display_order=0,
        ),
    ]
    units = [
        create_org_unit("D1", OrgLevel.DIRECTORATE, "co-c", id="d1", has_bsc=True),
        create_org_unit(
            "V1", OrgLevel.DIVISION, "co-c", id="v1", parent_id="d1",
            display_order=0, has_bsc=False,
        ),
        create_org_unit(
            "V2", OrgLevel.DIVISION, "co-c", id="v2", parent_id="d1",
            display_order=1, has_bsc=True,
        ),
        create_org_unit(
            "V3", OrgLevel.DIVISION, "co-c", id="v3", parent_id="d1",
            display_order=2, has_bsc=False,
        ),
        create_org_unit(
            "P1", OrgLevel.DEPARTMENT, "co-c", id="p1", parent_id="v1", has_bsc=False,
        ),
        create_org_unit("S1", OrgLevel.SECTION, "co-c", id="s1", parent_id="p1"),
        create_org_unit("D2", OrgLevel.DIRECTORATE, "co-d", id="d2", has_bsc=True),
    ]
    users = [
        default_admin_user(),
        create_user("u@example.com", "User U", id="user-u"),
    ]
    return StructureSnapshot(corporate_entities=entities, org_units=units, users=users)


@pytest.fixture
def group_snapshot() -> StructureSnapshot:
    return build_group_snapshot()


@pytest.fixture
def store(group_snapshot) -> TreeStore:
    return TreeStore(group_snapshot)


@pytest.fixture
def engine(store) -> MutationEngine:
    return MutationEngine(store)
