"""
Authority Resolver — the effective role a user holds at a node.

Roles come from UserEntityAssignment records layered over the two trees. At a
requested scope the resolver combines:

- GLOBAL:    assignments with no scope
- DIRECT:    assignments scoped exactly to the requested entity or unit
- INHERITED: assignments on an ancestor with ``inherit_to_children``
- BRIDGE:    for an org-unit lookup, the role held at the unit's company

The highest weight wins (admin 3 > editor 2 > viewer 1). ``viewer`` is the
floor, not "no access": the product is read-only by default. System admins
short-circuit to ``admin``.

This module computes what a role may do. It does not enforce it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from stratos_structure.structure.errors import ChainCycleError
from stratos_structure.structure.schema import (
    DEFAULT_PERMISSIONS,
    NodeKind,
    Permissions,
    Role,
    UserEntityAssignment,
    role_weight,
)
from stratos_structure.structure.tree import StructureView

logger = logging.getLogger(__name__)


class RoleSource(str, enum.Enum):
    """Where the winning role came from."""

    SYSTEM_ADMIN = "system_admin"
    FLOOR = "floor"
    GLOBAL = "global"
    DIRECT = "direct"
    INHERITED = "inherited"
    BRIDGE = "bridge"


@dataclass
class RoleResolution:
    """Result of resolving a user's role at a scope."""

    role: Role
    source: RoleSource
    user_id: str
    corporate_entity_id: str | None = None
    org_unit_id: str | None = None
    assignment_id: str | None = None

    @property
    def weight(self) -> int:
        return role_weight(self.role)


def permissions_for(role: Role | str | None) -> Permissions:
    """Capability set for a role; None grants nothing."""
    if role is None:
        return Permissions()
    return DEFAULT_PERMISSIONS[Role(role)]


class AuthorityResolver:
    """
    Role resolution over one StructureView.

    Usage:
        resolver = AuthorityResolver(store.view())
        role = resolver.effective_role("user-42", org_unit_id="org-eng")
        if resolver.can_perform("user-42", "can_edit_bsc", org_unit_id="org-eng"):
            ...
    """

    def __init__(self, view: StructureView) -> None:
        self.view = view

    def _active_assignments(self, user_id: str) -> list[UserEntityAssignment]:
        return [
            a for a in self.view.snapshot.assignments
            if a.user_id == user_id and a.is_active
        ]

    def _ancestors(self, node_id: str | None, kind: NodeKind) -> set[str]:
        if node_id is None:
            return set()
        try:
            return set(self.view.ancestor_ids(node_id, kind))
        except ChainCycleError as exc:
            logger.warning(
                "Ignoring cyclic ancestry of %s during role resolution (at %s)",
                node_id, exc.node_id,
            )
            return set()

    def resolve(
        self,
        user_id: str,
        corporate_entity_id: str | None = None,
        org_unit_id: str | None = None,
    ) -> RoleResolution:
        """
        Resolve the effective role, recording which rule produced it.

        Unknown or inactive users resolve to the viewer floor.
        """
        best = RoleResolution(
            role=Role.VIEWER,
            source=RoleSource.FLOOR,
            user_id=user_id,
            corporate_entity_id=corporate_entity_id,
            org_unit_id=org_unit_id,
        )
        user = self.view.users.get(user_id)
        if user is None or not user.is_active:
            return best
        if user.is_system_admin:
            best.role = Role.ADMIN
            best.source = RoleSource.SYSTEM_ADMIN
            return best

        entity_ancestors = self._ancestors(corporate_entity_id, NodeKind.CORPORATE_ENTITY)
        unit_ancestors = self._ancestors(org_unit_id, NodeKind.ORG_UNIT)

        for assignment in self._active_assignments(user_id):
            source = None
            if assignment.is_global:
                source = RoleSource.GLOBAL
            elif corporate_entity_id is not None and assignment.corporate_entity_id == corporate_entity_id:
                source = RoleSource.DIRECT
            elif org_unit_id is not None and assignment.org_unit_id == org_unit_id:
                source = RoleSource.DIRECT
            elif assignment.inherit_to_children and (
                assignment.corporate_entity_id in entity_ancestors
                or assignment.org_unit_id in unit_ancestors
            ):
                source = RoleSource.INHERITED

            if source is not None and role_weight(assignment.role) > best.weight:
                best.role = assignment.role
                best.source = source
                best.assignment_id = assignment.id

        # A role granted at the company also governs its organizational sub-structure.
        if org_unit_id is not None and corporate_entity_id is None:
            unit = self.view.units.get(org_unit_id)
            if unit is not None:
                company = self.resolve(user_id, corporate_entity_id=unit.company_id)
                if company.weight > best.weight:
                    best.role = company.role
                    best.source = RoleSource.BRIDGE
                    best.assignment_id = company.assignment_id

        return best

    def effective_role(
        self,
        user_id: str,
        corporate_entity_id: str | None = None,
        org_unit_id: str | None = None,
    ) -> Role:
        return self.resolve(user_id, corporate_entity_id, org_unit_id).role

    def permissions(
        self,
        user_id: str,
        corporate_entity_id: str | None = None,
        org_unit_id: str | None = None,
    ) -> Permissions:
        return permissions_for(self.effective_role(user_id, corporate_entity_id, org_unit_id))

    def can_perform(
        self,
        user_id: str,
        action: str,
        corporate_entity_id: str | None = None,
        org_unit_id: str | None = None,
    ) -> bool:
        """Check a single capability flag, e.g. ``can_edit_bsc``; unknown flags are False."""
        if action not in Permissions.model_fields:
            return False
        granted = self.permissions(user_id, corporate_entity_id, org_unit_id)
        return bool(getattr(granted, action))

    def is_admin(self, user_id: str) -> bool:
        """System admins and holders of a global admin assignment."""
        user = self.view.users.get(user_id)
        if user is None or not user.is_active:
            return False
        if user.is_system_admin:
            return True
        return any(
            a.role == Role.ADMIN and a.is_global
            for a in self._active_assignments(user_id)
        )
