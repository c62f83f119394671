"""
Tree Store — in-memory ownership of the two hierarchies.

The TreeStore owns the current StructureSnapshot. Only the MutationEngine
commits new snapshots; resolvers and the query facade read through a
StructureView built over one snapshot for the duration of a call, so a
resolution never observes a mutation mid-traversal.

walk_chain is the single bounded pointer-walk used by ancestor queries, the
reparent cycle check and the BSC inheritance resolver.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Union

from stratos_structure.structure.errors import ChainCycleError
from stratos_structure.structure.schema import (
    CorporateEntity,
    NodeKind,
    OrgUnit,
    StructureSnapshot,
)

logger = logging.getLogger(__name__)

Node = Union[CorporateEntity, OrgUnit]


def walk_chain(
    start_id: str | None,
    next_id: Callable[[str], str | None],
    max_steps: int | None = None,
) -> Iterator[str]:
    """
    Yield ``start_id`` and every id reached by repeatedly applying ``next_id``.

    The walk stops when ``next_id`` returns None. A revisited id, or more than
    ``max_steps`` ids, raises ChainCycleError instead of looping.
    """
    visited: list[str] = []
    seen: set[str] = set()
    current = start_id
    while current is not None:
        if current in seen:
            raise ChainCycleError(current, visited)
        if max_steps is not None and len(visited) >= max_steps:
            raise ChainCycleError(current, visited)
        seen.add(current)
        visited.append(current)
        yield current
        current = next_id(current)


class StructureView:
    """
    Read-only index over one StructureSnapshot.

    Ids are unique across both trees, so the kind of a node can be inferred
    from its id alone.
    """

    def __init__(self, snapshot: StructureSnapshot) -> None:
        self.snapshot = snapshot
        self.entities: dict[str, CorporateEntity] = {
            e.id: e for e in snapshot.corporate_entities
        }
        self.units: dict[str, OrgUnit] = {u.id: u for u in snapshot.org_units}
        self.users = {u.id: u for u in snapshot.users}

    # ── Lookup ──────────────────────────────────────────────────

    def kind_of(self, node_id: str) -> NodeKind | None:
        if node_id in self.entities:
            return NodeKind.CORPORATE_ENTITY
        if node_id in self.units:
            return NodeKind.ORG_UNIT
        return None

    def node(self, node_id: str | None, kind: NodeKind | None = None) -> Node | None:
        if node_id is None:
            return None
        if kind in (None, NodeKind.CORPORATE_ENTITY) and node_id in self.entities:
            return self.entities[node_id]
        if kind in (None, NodeKind.ORG_UNIT) and node_id in self.units:
            return self.units[node_id]
        return None

    @staticmethod
    def parent_id_of(node: Node) -> str | None:
        if isinstance(node, CorporateEntity):
            return node.parent_entity_id
        return node.parent_id

    # ── Structure ───────────────────────────────────────────────

    def children(
        self,
        kind: NodeKind,
        parent_id: str | None,
        company_id: str | None = None,
        include_inactive: bool = True,
    ) -> list[Node]:
        """
        Direct children of ``parent_id`` sorted by display order.

        With ``parent_id=None`` this returns the roots of the corporate tree,
        or the top-level directorates of ``company_id`` for the org tree.
        """
        if kind == NodeKind.CORPORATE_ENTITY:
            nodes: list[Node] = [
                e for e in self.snapshot.corporate_entities
                if e.parent_entity_id == parent_id
            ]
        else:
            nodes = [
                u for u in self.snapshot.org_units
                if u.parent_id == parent_id
                and (parent_id is not None or u.company_id == company_id)
            ]
        if not include_inactive:
            nodes = [n for n in nodes if n.is_active]
        return sorted(nodes, key=lambda n: n.display_order)

    def sibling_group(self, node: Node) -> list[Node]:
        """All nodes sharing ``node``'s parent slot, ``node`` included."""
        if isinstance(node, CorporateEntity):
            return self.children(NodeKind.CORPORATE_ENTITY, node.parent_entity_id)
        return self.children(NodeKind.ORG_UNIT, node.parent_id, company_id=node.company_id)

    def ancestor_ids(self, node_id: str, kind: NodeKind | None = None) -> list[str]:
        """
        Ids of the ancestors of ``node_id``, parent first.

        A dangling parent pointer ends the chain. A cyclic chain raises
        ChainCycleError.
        """
        node = self.node(node_id, kind)
        if node is None:
            return []
        lookup = self.entities if isinstance(node, CorporateEntity) else self.units

        def _parent(current_id: str) -> str | None:
            current = lookup.get(current_id)
            if current is None:
                return None
            parent = self.parent_id_of(current)
            return parent if parent in lookup else None

        chain = list(walk_chain(node_id, _parent, max_steps=len(lookup)))
        return chain[1:]

    def is_descendant(self, node_id: str, ancestor_id: str, kind: NodeKind | None = None) -> bool:
        return ancestor_id in self.ancestor_ids(node_id, kind)

    def subtree_ids(self, kind: NodeKind, root_id: str) -> list[str]:
        """``root_id`` followed by all its descendants, breadth-first."""
        ordered = [root_id]
        queue = [root_id]
        while queue:
            current = queue.pop(0)
            for child in self.children(kind, current):
                if child.id not in ordered:
                    ordered.append(child.id)
                    queue.append(child.id)
        return ordered


class TreeStore:
    """
    Owner of the current StructureSnapshot.

    Usage:
        store = TreeStore(snapshot)
        view = store.view()          # read-only, for resolvers and queries
        working = store.working_copy()
        ...                          # MutationEngine edits the copy
        store.commit(working)
    """

    def __init__(self, snapshot: StructureSnapshot | None = None) -> None:
        self._snapshot = snapshot or StructureSnapshot()
        self.revision = 0

    @property
    def snapshot(self) -> StructureSnapshot:
        return self._snapshot

    def view(self) -> StructureView:
        return StructureView(self._snapshot)

    def working_copy(self) -> StructureSnapshot:
        """Deep copy for a mutation to edit without touching committed state."""
        return self._snapshot.model_copy(deep=True)

    def commit(self, snapshot: StructureSnapshot) -> None:
        self._snapshot = snapshot
        self.revision += 1
        logger.debug(
            "Tree store committed revision %d (%d entities, %d units)",
            self.revision,
            len(snapshot.corporate_entities),
            len(snapshot.org_units),
        )

    def load(self, snapshot: StructureSnapshot) -> None:
        """Replace the state wholesale, e.g. at startup from persistence."""
        self._snapshot = snapshot
        self.revision = 0
        logger.info(
            "Tree store loaded: %d entities, %d units, %d users",
            len(snapshot.corporate_entities),
            len(snapshot.org_units),
            len(snapshot.users),
        )
