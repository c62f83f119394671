"""
Query Facade — read-only derived views over the two hierarchies.

Every method is a pure function of the StructureView it was built with. The
node kind is inferred from the id when not given; ids are unique across both
trees.
"""

from __future__ import annotations

from stratos_structure.structure.schema import (
    ORG_LEVEL_ORDER,
    CorporateEntity,
    CorporateEntityType,
    NodeKind,
    OrgLevel,
    OrgUnit,
)
from stratos_structure.structure.tree import Node, StructureView


class StructureQueries:
    """Read-only queries used by the rest of the application."""

    def __init__(self, view: StructureView) -> None:
        self.view = view

    def _kind(self, node_id: str, kind: NodeKind | None) -> NodeKind | None:
        return kind or self.view.kind_of(node_id)

    def get(self, node_id: str, kind: NodeKind | None = None) -> Node | None:
        return self.view.node(node_id, kind)

    def children_of(
        self,
        node_id: str,
        kind: NodeKind | None = None,
        include_inactive: bool = False,
    ) -> list[Node]:
        """
        Direct children sorted by display order.

        For a company, the children in the organizational sense are its
        top-level directorates; use ``top_level_units`` for those.
        """
        kind = self._kind(node_id, kind)
        if kind is None:
            return []
        return self.view.children(kind, node_id, include_inactive=include_inactive)

    def ancestors_of(self, node_id: str, kind: NodeKind | None = None) -> list[Node]:
        """Ancestors ordered root first, ending at the direct parent."""
        ids = self.view.ancestor_ids(node_id, kind)
        return [self.view.node(i, kind) for i in reversed(ids)]

    def descendants_of(
        self,
        node_id: str,
        kind: NodeKind | None = None,
        include_inactive: bool = False,
    ) -> list[Node]:
        """All descendants, breadth-first."""
        kind = self._kind(node_id, kind)
        if kind is None:
            return []
        descendants: list[Node] = []
        queue = self.view.children(kind, node_id, include_inactive=include_inactive)
        seen: set[str] = {node_id}
        while queue:
            current = queue.pop(0)
            if current.id in seen:
                continue
            seen.add(current.id)
            descendants.append(current)
            queue.extend(
                self.view.children(kind, current.id, include_inactive=include_inactive)
            )
        return descendants

    def siblings_of(
        self,
        node_id: str,
        kind: NodeKind | None = None,
        include_inactive: bool = False,
    ) -> list[Node]:
        """
        Nodes sharing the parent of ``node_id``, excluding it.

        Root corporations are siblings of each other; top-level directorates
        are siblings of the other directorates of the same company.
        """
        node = self.view.node(node_id, kind)
        if node is None:
            return []
        return [
            n for n in self.view.sibling_group(node)
            if n.id != node_id and (include_inactive or n.is_active)
        ]

    def root_corporation(self) -> CorporateEntity | None:
        roots = [
            e for e in self.view.snapshot.corporate_entities
            if e.entity_type == CorporateEntityType.CORPORATION and e.parent_entity_id is None
        ]
        return min(roots, key=lambda e: e.display_order, default=None)

    def all_companies(self) -> list[CorporateEntity]:
        """Active operating companies sorted by display order."""
        return sorted(
            (
                e for e in self.view.snapshot.corporate_entities
                if e.entity_type == CorporateEntityType.COMPANY and e.is_active
            ),
            key=lambda e: e.display_order,
        )

    def units_at_level(
        self,
        level: OrgLevel | str,
        company_id: str | None = None,
    ) -> list[OrgUnit]:
        level = OrgLevel(level)
        return sorted(
            (
                u for u in self.view.snapshot.org_units
                if u.level == level
                and u.is_active
                and (company_id is None or u.company_id == company_id)
            ),
            key=lambda u: (u.company_id, u.display_order),
        )

    def units_for_company(self, company_id: str) -> list[OrgUnit]:
        """Active units of a company, sorted by level then display order."""
        return sorted(
            (
                u for u in self.view.snapshot.org_units
                if u.company_id == company_id and u.is_active
            ),
            key=lambda u: (ORG_LEVEL_ORDER[u.level], u.display_order),
        )

    def top_level_units(self, company_id: str) -> list[OrgUnit]:
        return self.view.children(
            NodeKind.ORG_UNIT, None, company_id=company_id, include_inactive=False
        )

    def find_company_ancestor(self, entity_id: str) -> CorporateEntity | None:
        """The entity itself if it is a company, else its nearest company ancestor."""
        entity = self.view.entities.get(entity_id)
        if entity is None:
            return None
        if entity.entity_type == CorporateEntityType.COMPANY:
            return entity
        for ancestor_id in self.view.ancestor_ids(entity_id, NodeKind.CORPORATE_ENTITY):
            ancestor = self.view.entities[ancestor_id]
            if ancestor.entity_type == CorporateEntityType.COMPANY:
                return ancestor
        return None
