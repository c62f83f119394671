"""
Structure Validation — whole-snapshot integrity checks.

The Mutation Engine keeps a committed snapshot valid one command at a time.
validate_snapshot checks a snapshot that arrived from elsewhere (persistence,
a migration, an import) before it is loaded into the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from stratos_structure.structure.errors import ChainCycleError
from stratos_structure.structure.schema import (
    LEGAL_PARENT_TYPES,
    CorporateEntityType,
    NodeKind,
    StructureSnapshot,
    parent_level,
)
from stratos_structure.structure.tree import StructureView, walk_chain

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Errors make a snapshot unusable; warnings are worth surfacing."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _check_corporate_tree(view: StructureView, report: ValidationReport) -> None:
    entities = view.snapshot.corporate_entities

    roots = [
        e for e in entities
        if e.entity_type == CorporateEntityType.CORPORATION and e.parent_entity_id is None
    ]
    # The engine can reach an empty or company-less tree; neither is an error.
    if not roots:
        if entities:
            report.errors.append("No root corporation found")
        else:
            report.warnings.append("No root corporation found")
    elif len(roots) > 1:
        report.warnings.append("Multiple root corporations found")

    if not any(e.entity_type == CorporateEntityType.COMPANY for e in entities):
        report.warnings.append("No operating companies found")

    for entity in entities:
        if entity.parent_entity_id is None:
            if entity.entity_type != CorporateEntityType.CORPORATION:
                report.errors.append(
                    f'{entity.entity_type.value.title()} "{entity.name}" has no parent'
                )
            continue
        parent = view.entities.get(entity.parent_entity_id)
        if parent is None:
            report.errors.append(f'Entity "{entity.name}" has invalid parent reference')
            continue
        if parent.entity_type not in LEGAL_PARENT_TYPES[entity.entity_type]:
            report.errors.append(
                f'{entity.entity_type.value.title()} "{entity.name}" cannot be under '
                f'{parent.entity_type.value} "{parent.name}"'
            )

    for entity in entities:
        try:
            view.ancestor_ids(entity.id, NodeKind.CORPORATE_ENTITY)
        except ChainCycleError:
            report.errors.append(f'Circular reference detected involving "{entity.name}"')


def _check_org_tree(view: StructureView, report: ValidationReport) -> None:
    snapshot = view.snapshot
    config = snapshot.org_config

    for unit in snapshot.org_units:
        company = view.entities.get(unit.company_id)
        if company is None:
            report.errors.append(f'Org unit "{unit.name}" references non-existent company')
        elif company.entity_type != CorporateEntityType.COMPANY:
            report.errors.append(
                f'Org unit "{unit.name}" is assigned to {company.entity_type.value} '
                f'"{company.name}", not a company'
            )

        if unit.parent_id is None:
            if parent_level(unit.level) is not None:
                report.errors.append(
                    f'{config.level_name(unit.level)} "{unit.name}" has no parent'
                )
        else:
            parent = view.units.get(unit.parent_id)
            if parent is None:
                report.errors.append(f'Org unit "{unit.name}" has invalid parent reference')
            else:
                if parent.level != parent_level(unit.level):
                    report.errors.append(
                        f'{config.level_name(unit.level)} "{unit.name}" cannot be under '
                        f'{config.level_name(parent.level)} "{parent.name}"'
                    )
                if parent.company_id != unit.company_id:
                    report.errors.append(
                        f'Org unit "{unit.name}" and its parent "{parent.name}" '
                        f"belong to different companies"
                    )

        if unit.has_bsc and not config.level_can_have_bsc(unit.level):
            report.errors.append(
                f'{config.level_name(unit.level)} "{unit.name}" cannot have a BSC'
            )

        if unit.inherit_bsc_from_id is not None and unit.inherit_bsc_from_id not in view.units:
            report.warnings.append(
                f'Org unit "{unit.name}" inherits its BSC from a missing unit'
            )

    for unit in snapshot.org_units:
        try:
            view.ancestor_ids(unit.id, NodeKind.ORG_UNIT)
        except ChainCycleError:
            report.errors.append(f'Circular reference detected involving "{unit.name}"')
            continue
        try:
            for _ in walk_chain(
                unit.id,
                lambda uid: (
                    None if uid not in view.units or view.units[uid].has_bsc
                    else view.units[uid].inherit_bsc_from_id or view.units[uid].parent_id
                ),
            ):
                pass
        except ChainCycleError:
            report.errors.append(f'BSC inheritance cycle involving "{unit.name}"')


def _check_order_density(view: StructureView, report: ValidationReport) -> None:
    groups: dict[tuple, list[int]] = {}
    for entity in view.snapshot.corporate_entities:
        groups.setdefault(("entity", entity.parent_entity_id), []).append(entity.display_order)
    for unit in view.snapshot.org_units:
        key = ("unit", unit.parent_id or unit.company_id, unit.parent_id is None)
        groups.setdefault(key, []).append(unit.display_order)

    for key, orders in groups.items():
        if sorted(orders) != list(range(len(orders))):
            report.warnings.append(
                f"Display order of siblings under {key[1] or 'the root'} is not dense"
            )


def validate_snapshot(snapshot: StructureSnapshot) -> ValidationReport:
    """
    Check a full snapshot for structural integrity.

    Returns:
        ValidationReport. ``report.valid`` is False when any error was found.
    """
    view = StructureView(snapshot)
    report = ValidationReport()

    seen: set[str] = set()
    for node in [*snapshot.corporate_entities, *snapshot.org_units]:
        if node.id in seen:
            report.errors.append(f"Duplicate id {node.id}")
        seen.add(node.id)

    _check_corporate_tree(view, report)
    _check_org_tree(view, report)
    _check_order_density(view, report)

    if not report.valid:
        logger.warning(
            "Snapshot validation found %d errors, %d warnings",
            len(report.errors), len(report.warnings),
        )
    return report
