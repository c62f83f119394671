"""
BSC Inheritance Resolver — which org unit owns the balanced scorecard in force.

A unit with ``has_bsc`` owns its own scorecard. Otherwise the unit inherits:
the explicit ``inherit_bsc_from_id`` override is followed when set, else the
parent. When the chain runs out without an owner, the first directorate of
the same company that owns a BSC is used. When there is none, resolution is
None and callers are expected to prompt for setup.

Resolution is re-run on every read against the current view; nothing is
cached across mutations.
"""

from __future__ import annotations

import logging

from stratos_structure.structure.errors import ChainCycleError, InheritanceCycleError
from stratos_structure.structure.schema import OrgLevel, OrgUnit
from stratos_structure.structure.tree import StructureView, walk_chain

logger = logging.getLogger(__name__)


def _next_in_chain(view: StructureView):
    def _next(unit_id: str) -> str | None:
        unit = view.units.get(unit_id)
        if unit is None:
            return None
        return unit.inherit_bsc_from_id or unit.parent_id

    return _next


def bsc_chain(view: StructureView, org_unit_id: str) -> list[OrgUnit]:
    """
    The units visited while resolving ``org_unit_id``, ending at the owner
    if one is found in the chain.

    Raises:
        InheritanceCycleError: If the chain revisits a unit.
    """
    path: list[OrgUnit] = []
    try:
        for unit_id in walk_chain(org_unit_id, _next_in_chain(view)):
            unit = view.units.get(unit_id)
            if unit is None:
                break
            path.append(unit)
            if unit.has_bsc:
                break
    except ChainCycleError as exc:
        logger.warning(
            "BSC inheritance cycle at %s while resolving %s", exc.node_id, org_unit_id
        )
        raise InheritanceCycleError(
            f"BSC inheritance chain of {org_unit_id} revisits {exc.node_id}",
            exc.node_id,
        ) from exc
    return path


def fallback_directorate(view: StructureView, company_id: str) -> OrgUnit | None:
    """First active directorate of the company, by display order, that owns a BSC."""
    candidates = [
        u for u in view.units.values()
        if u.company_id == company_id
        and u.level == OrgLevel.DIRECTORATE
        and u.has_bsc
        and u.is_active
    ]
    return min(candidates, key=lambda u: u.display_order, default=None)


def resolve_bsc_owner(view: StructureView, org_unit_id: str) -> OrgUnit | None:
    """
    Resolve the unit whose balanced scorecard applies to ``org_unit_id``.

    Returns None for an unknown unit, for a chain that hits a dangling
    pointer, and when no fallback directorate exists.

    Raises:
        InheritanceCycleError: If the chain revisits a unit.
    """
    start = view.units.get(org_unit_id)
    if start is None:
        return None

    path = bsc_chain(view, org_unit_id)
    if path and path[-1].has_bsc:
        return path[-1]

    last = path[-1]
    pointer = last.inherit_bsc_from_id or last.parent_id
    if pointer is not None:
        # The chain broke on a reference to a unit that no longer exists.
        return None
    return fallback_directorate(view, start.company_id)


def units_sharing_bsc(view: StructureView, owner_id: str) -> list[OrgUnit]:
    """Units other than ``owner_id`` whose scorecard resolves to ``owner_id``."""
    shared = []
    for unit in view.units.values():
        if unit.id == owner_id:
            continue
        owner = resolve_bsc_owner(view, unit.id)
        if owner is not None and owner.id == owner_id:
            shared.append(unit)
    return sorted(shared, key=lambda u: (u.company_id, u.display_order, u.id))
