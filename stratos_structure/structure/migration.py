"""
Legacy Migration — lift single-company data into the two-tree structure.

Older deployments stored one organizational tree whose top level was a
``company`` org level, and had no corporate tree at all. Migration turns those
company-level units into corporate entities under a default root corporation,
re-homes every remaining unit onto its company, and installs the default
admin user and assignment when none exist.

Also provides the ACME example structure used for demos and seeding.
"""

from __future__ import annotations

import logging
from typing import Any

from stratos_structure.structure.schema import (
    DEFAULT_COMPANY_ID,
    DEFAULT_ROOT_ID,
    BSCScope,
    CorporateEntity,
    CorporateEntityType,
    OrgHierarchyConfig,
    OrgLevel,
    OrgUnit,
    StructureSnapshot,
    UserEntityAssignment,
    User,
    create_corporate_entity,
    create_org_unit,
    default_admin_assignment,
    default_admin_user,
)

logger = logging.getLogger(__name__)

LEGACY_COMPANY_LEVEL = "company"


def needs_corporate_migration(data: dict[str, Any]) -> bool:
    """Legacy data is recognised by having no corporate entities."""
    return not data.get("corporate_entities")


def _default_root() -> CorporateEntity:
    return create_corporate_entity(
        "My Corporation",
        CorporateEntityType.CORPORATION,
        id=DEFAULT_ROOT_ID,
        code="CORP",
        description="Root corporation",
    )


def _default_company() -> CorporateEntity:
    return create_corporate_entity(
        "Main Company",
        CorporateEntityType.COMPANY,
        id=DEFAULT_COMPANY_ID,
        code="MAIN",
        parent_entity_id=DEFAULT_ROOT_ID,
        description="Default operating company",
    )


def _find_company(
    unit: dict[str, Any],
    units_by_id: dict[str, dict[str, Any]],
    company_map: dict[str, str],
) -> str | None:
    current = unit
    seen: set[str] = set()
    while current.get("parent_id"):
        parent_id = current["parent_id"]
        if parent_id in company_map:
            return company_map[parent_id]
        if parent_id in seen or parent_id not in units_by_id:
            return None
        seen.add(parent_id)
        current = units_by_id[parent_id]
    return None


def migrate_legacy_structure(data: dict[str, Any]) -> StructureSnapshot:
    """
    Convert legacy structure data into a StructureSnapshot.

    ``data`` is the raw mapping as stored by older deployments: ``org_units``
    as dicts whose ``level`` may be ``"company"`` and which may lack
    ``company_id``, plus optional ``users``, ``assignments`` and
    ``org_config``. Data that already has corporate entities is validated
    and returned unchanged in meaning.
    """
    if not needs_corporate_migration(data):
        return StructureSnapshot.model_validate(data)

    logger.info("Starting corporate structure migration")

    legacy_units: list[dict[str, Any]] = [dict(u) for u in data.get("org_units") or []]
    units_by_id = {u["id"]: u for u in legacy_units if "id" in u}
    config = OrgHierarchyConfig.model_validate(data.get("org_config") or {})

    root = _default_root()
    entities: list[CorporateEntity] = [root]
    units: list[OrgUnit] = []

    company_units = [u for u in legacy_units if u.get("level") == LEGACY_COMPANY_LEVEL]
    if company_units:
        company_map: dict[str, str] = {}
        for index, old in enumerate(company_units):
            company = create_corporate_entity(
                old["name"],
                CorporateEntityType.COMPANY,
                id=f"company-{old['id']}",
                code=old.get("code", ""),
                parent_entity_id=root.id,
                description=old.get("description") or f"Migrated from org unit: {old['name']}",
                has_bsc=old.get("has_bsc", True),
                bsc_scope=BSCScope.STANDALONE,
                display_order=index,
                is_active=old.get("is_active", True),
            )
            entities.append(company)
            company_map[old["id"]] = company.id

        fallback_company = entities[1].id
        for old in legacy_units:
            if old.get("level") == LEGACY_COMPANY_LEVEL:
                continue
            company_id = _find_company(old, units_by_id, company_map) or fallback_company
            parent_id = old.get("parent_id")
            attrs = {
                k: v for k, v in old.items()
                if k not in ("name", "level", "company_id", "parent_id")
            }
            units.append(
                create_org_unit(
                    old["name"],
                    OrgLevel(old["level"]),
                    company_id,
                    config=config,
                    parent_id=None if parent_id in company_map else parent_id,
                    **attrs,
                )
            )
    else:
        company = _default_company()
        entities.append(company)
        for old in legacy_units:
            attrs = {k: v for k, v in old.items() if k not in ("name", "level", "company_id")}
            units.append(
                create_org_unit(
                    old["name"],
                    OrgLevel(old["level"]),
                    old.get("company_id") or company.id,
                    config=config,
                    **attrs,
                )
            )

    users = [User.model_validate(u) for u in data.get("users") or []] or [default_admin_user()]
    assignments = [
        UserEntityAssignment.model_validate(a) for a in data.get("assignments") or []
    ] or [default_admin_assignment()]

    snapshot = StructureSnapshot(
        corporate_entities=entities,
        org_units=units,
        users=users,
        assignments=assignments,
        org_config=config,
    )
    logger.info(
        "Corporate structure migration complete: %d entities, %d units, %d users",
        len(entities), len(units), len(users),
    )
    return snapshot


def generate_example_structure() -> StructureSnapshot:
    """ACME demo structure: one corporation, one holding, two companies and a four-level unit chain."""
    corporation = create_corporate_entity(
        "ACME Corporation",
        CorporateEntityType.CORPORATION,
        id="corp-acme",
        code="ACME",
        description="Global technology and innovation company",
    )
    holding = create_corporate_entity(
        "ACME Holdings NA",
        CorporateEntityType.HOLDING,
        id="holding-na",
        code="ACME-NA",
        parent_entity_id="corp-acme",
        description="North American regional holding company",
    )
    usa = create_corporate_entity(
        "ACME USA Inc.",
        CorporateEntityType.COMPANY,
        id="company-usa",
        code="ACME-US",
        parent_entity_id="holding-na",
        description="US operating company",
        display_order=0,
    )
    canada = create_corporate_entity(
        "ACME Canada Ltd.",
        CorporateEntityType.COMPANY,
        id="company-canada",
        code="ACME-CA",
        parent_entity_id="holding-na",
        description="Canadian operating company",
        currency="CAD",
        display_order=1,
    )

    units = [
        create_org_unit(
            "Technology Directorate", OrgLevel.DIRECTORATE, "company-usa",
            id="org-tech", code="TECH", description="Technology and Engineering",
        ),
        create_org_unit(
            "Engineering Division", OrgLevel.DIVISION, "company-usa",
            id="org-eng", code="ENG", parent_id="org-tech",
            description="Software Engineering",
        ),
        create_org_unit(
            "Frontend Department", OrgLevel.DEPARTMENT, "company-usa",
            id="org-frontend", code="FE", parent_id="org-eng",
            description="Frontend Development",
        ),
        create_org_unit(
            "React Section", OrgLevel.SECTION, "company-usa",
            id="org-react", code="REACT", parent_id="org-frontend",
            description="React Development Team",
        ),
    ]

    return StructureSnapshot(
        corporate_entities=[corporation, holding, usa, canada],
        org_units=units,
        users=[default_admin_user()],
        assignments=[
            default_admin_assignment().model_copy(update={"corporate_entity_id": "corp-acme"})
        ],
    )
