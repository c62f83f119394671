"""
Mutation Engine — validated, all-or-nothing structural edits.

This engine is the only writer of the TreeStore. Every command:

1. takes a deep working copy of the committed snapshot
2. validates and applies the edit to the copy, raising a StructureError
   subclass on the first violated rule
3. hands the copy to commit listeners, then commits it, only if every step
   passed; a listener that raises rejects the command before the commit

Rule violations never escape as exceptions: they come back inside a
MutationResult naming the violated rule, and the committed tree is untouched.

Drag-and-drop is translated by the caller into ``move(node_id, DropTarget)``,
which resolves the drop into a ``reparent(node_id, new_parent_id,
insert_index)`` call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from stratos_structure.governance.inheritance import resolve_bsc_owner
from stratos_structure.structure.errors import (
    BSCNotPermittedError,
    CannotDeleteRootError,
    ChainCycleError,
    CommitFailedError,
    CycleDetectedError,
    DuplicateIdError,
    InvalidAttributeError,
    InvalidChildTypeError,
    InvalidParentTypeError,
    NodeNotFoundError,
    OrphanPolicyViolationError,
    StructureError,
)
from stratos_structure.structure.schema import (
    LEGAL_PARENT_TYPES,
    CorporateEntity,
    CorporateEntityType,
    DropPosition,
    NodeKind,
    OrgLevel,
    OrgUnit,
    OrphanPolicy,
    Role,
    StructureSnapshot,
    User,
    UserEntityAssignment,
    create_corporate_entity,
    create_org_unit,
    parent_level,
)
from stratos_structure.structure.tree import Node, StructureView, TreeStore

logger = logging.getLogger(__name__)

# Fields that only change through reparent / delete, never through updates
STRUCTURAL_FIELDS = frozenset({
    "id",
    "entity_type",
    "level",
    "parent_entity_id",
    "parent_id",
    "company_id",
    "display_order",
    "created_at",
})

CommitListener = Callable[[StructureSnapshot, str], None]


def _coerce(enum_cls, value: Any, field_name: str):
    """Convert ``value`` to ``enum_cls``, raising InvalidAttributeError on a bad value."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidAttributeError(
            f"Invalid {field_name} {value!r}; expected one of: {allowed}"
        ) from None


@dataclass
class DropTarget:
    """Where a dragged node was dropped, relative to ``target_id``."""

    target_id: str
    position: DropPosition = DropPosition.CHILD


@dataclass
class MutationResult:
    """Outcome of a structural command."""

    ok: bool
    operation: str
    snapshot: StructureSnapshot
    error: StructureError | None = None
    changed_ids: list[str] = field(default_factory=list)
    node: Any = None

    def unwrap(self) -> StructureSnapshot:
        """Return the new snapshot, raising the carried error if the command failed."""
        if self.error is not None:
            raise self.error
        return self.snapshot


class MutationEngine:
    """
    Structural command API over a TreeStore.

    Usage:
        engine = MutationEngine(store)
        result = engine.add_node(NodeKind.CORPORATE_ENTITY,
                                 {"name": "ACME", "entity_type": "corporation"})
        result = engine.move("org-eng", DropTarget("org-ops", DropPosition.BEFORE))
        if not result.ok:
            print(result.error.kind)
    """

    def __init__(
        self,
        store: TreeStore,
        default_orphan_policy: OrphanPolicy | str = OrphanPolicy.REPARENT_CHILDREN_TO_GRANDPARENT,
        protect_last_root: bool = True,
    ) -> None:
        """
        Args:
            store: The TreeStore this engine writes to.
            default_orphan_policy: Policy used when delete_node is given none.
            protect_last_root: Refuse to delete the only remaining root corporation.
        """
        self.store = store
        self.default_orphan_policy = OrphanPolicy(default_orphan_policy)
        self.protect_last_root = protect_last_root
        self._listeners: list[CommitListener] = []

    def subscribe(self, listener: CommitListener) -> None:
        """
        Register a callback invoked with (snapshot, operation) before each commit.

        If a listener raises, the command is rejected with COMMIT_FAILED and the
        store keeps its previous snapshot.
        """
        self._listeners.append(listener)

    # ── Command runner ──────────────────────────────────────────

    def _run(
        self,
        operation: str,
        apply: Callable[[StructureSnapshot], tuple[list[str], Any]],
    ) -> MutationResult:
        working = self.store.working_copy()
        try:
            changed_ids, node = apply(working)
        except StructureError as exc:
            return self._reject(operation, exc)
        except ValidationError as exc:
            return self._reject(operation, InvalidAttributeError(str(exc)))

        for listener in self._listeners:
            try:
                listener(working, operation)
            except Exception as exc:
                logger.error(
                    "Commit listener failed: op=%s listener=%r error=%s",
                    operation, listener, exc,
                )
                return self._reject(
                    operation, CommitFailedError(f"Commit listener failed: {exc}")
                )

        self.store.commit(working)
        logger.info(
            "Structure mutation committed: op=%s changed=%d revision=%d",
            operation, len(changed_ids), self.store.revision,
        )
        return MutationResult(
            ok=True,
            operation=operation,
            snapshot=working,
            changed_ids=changed_ids,
            node=node,
        )

    def _reject(self, operation: str, error: StructureError) -> MutationResult:
        logger.debug(
            "Structure mutation rejected: op=%s kind=%s node=%s reason=%s",
            operation, error.kind.value, error.node_id, error.message,
        )
        return MutationResult(
            ok=False,
            operation=operation,
            snapshot=self.store.snapshot,
            error=error,
        )

    # ── add ─────────────────────────────────────────────────────

    def add_node(
        self,
        kind: NodeKind | str,
        attrs: dict[str, Any],
        parent_id: str | None = None,
    ) -> MutationResult:
        """
        Add a node under ``parent_id`` (None for a root), appended after its
        existing siblings.

        Corporate roots must be corporations; several may coexist. A top-level
        directorate needs ``company_id`` in ``attrs`` (or a company as
        ``parent_id``); deeper units take the company of their parent.
        """

        def apply(working: StructureSnapshot) -> tuple[list[str], Any]:
            node_kind = _coerce(NodeKind, kind, "kind")
            view = StructureView(working)
            fields = dict(attrs)
            structural = (STRUCTURAL_FIELDS - {"id", "entity_type", "level", "company_id"}) & fields.keys()
            if structural:
                raise InvalidAttributeError(
                    f"Fields {sorted(structural)} are set by the engine, not by callers"
                )
            node_id = fields.get("id")
            if node_id is not None and view.kind_of(node_id) is not None:
                raise DuplicateIdError(f"Id {node_id!r} is already in use", node_id)

            if node_kind == NodeKind.CORPORATE_ENTITY:
                node = self._build_entity(view, fields, parent_id)
                working.corporate_entities.append(node)
            else:
                node = self._build_unit(working, view, fields, parent_id)
                working.org_units.append(node)
                self._verify_bsc_chains(working, node.company_id)
            return [node.id], node

        return self._run("add_node", apply)

    def _build_entity(
        self,
        view: StructureView,
        fields: dict[str, Any],
        parent_id: str | None,
    ) -> CorporateEntity:
        if "entity_type" not in fields:
            raise InvalidAttributeError("entity_type is required")
        entity_type = _coerce(CorporateEntityType, fields.pop("entity_type"), "entity_type")
        name = fields.pop("name", None)
        if not name:
            raise InvalidAttributeError("name is required")

        if parent_id is None:
            if entity_type != CorporateEntityType.CORPORATION:
                raise InvalidParentTypeError(
                    f"A {entity_type.value} cannot be a root; only corporations can"
                )
        else:
            parent = view.entities.get(parent_id)
            if parent is None:
                raise NodeNotFoundError(f"Parent entity {parent_id} not found", parent_id)
            if parent.entity_type not in LEGAL_PARENT_TYPES[entity_type]:
                raise InvalidParentTypeError(
                    f"A {entity_type.value} cannot be placed under a "
                    f"{parent.entity_type.value}",
                    parent_id,
                )

        order = len(view.children(NodeKind.CORPORATE_ENTITY, parent_id))
        return create_corporate_entity(
            name,
            entity_type,
            parent_entity_id=parent_id,
            display_order=order,
            **fields,
        )

    def _build_unit(
        self,
        working: StructureSnapshot,
        view: StructureView,
        fields: dict[str, Any],
        parent_id: str | None,
    ) -> OrgUnit:
        if "level" not in fields:
            raise InvalidAttributeError("level is required")
        level = _coerce(OrgLevel, fields.pop("level"), "level")
        name = fields.pop("name", None)
        if not name:
            raise InvalidAttributeError("name is required")
        company_id = fields.pop("company_id", None)

        # A company given as parent means "top level of that company".
        if parent_id is not None and parent_id in view.entities:
            company_id, parent_id = parent_id, None

        if parent_id is None:
            if level != OrgLevel.DIRECTORATE:
                raise InvalidParentTypeError(
                    f"A {level.value} cannot be top-level; only directorates can"
                )
            if company_id is None:
                raise InvalidAttributeError("company_id is required for a top-level unit")
            self._require_company(view, company_id)
        else:
            parent = view.units.get(parent_id)
            if parent is None:
                raise NodeNotFoundError(f"Parent unit {parent_id} not found", parent_id)
            if parent.level != parent_level(level):
                raise InvalidParentTypeError(
                    f"A {level.value} cannot be placed under a {parent.level.value}",
                    parent_id,
                )
            if company_id is not None and company_id != parent.company_id:
                raise InvalidParentTypeError(
                    f"Parent {parent_id} belongs to company {parent.company_id}, "
                    f"not {company_id}",
                    parent_id,
                )
            company_id = parent.company_id

        if fields.get("has_bsc") and not working.org_config.level_can_have_bsc(level):
            raise BSCNotPermittedError(f"A {level.value} cannot own a balanced scorecard")

        order = len(view.children(NodeKind.ORG_UNIT, parent_id, company_id=company_id))
        unit = create_org_unit(
            name,
            level,
            company_id,
            config=working.org_config,
            parent_id=parent_id,
            display_order=order,
            **fields,
        )
        self._check_bsc_override(view, unit)
        return unit

    @staticmethod
    def _require_company(view: StructureView, company_id: str) -> CorporateEntity:
        company = view.entities.get(company_id)
        if company is None:
            raise NodeNotFoundError(f"Company {company_id} not found", company_id)
        if company.entity_type != CorporateEntityType.COMPANY:
            raise InvalidParentTypeError(
                f"Org units belong to companies, not to a {company.entity_type.value}",
                company_id,
            )
        return company

    # ── rename / update ─────────────────────────────────────────

    def rename_node(self, node_id: str, name: str) -> MutationResult:
        return self.update_attributes(node_id, {"name": name}, operation="rename_node")

    def update_attributes(
        self,
        node_id: str,
        attrs: dict[str, Any],
        operation: str = "update_attributes",
    ) -> MutationResult:
        """
        Update non-structural fields of a node.

        Parent, order, type, level and company change only through reparent.
        """

        def apply(working: StructureSnapshot) -> tuple[list[str], Any]:
            view = StructureView(working)
            node = view.node(node_id)
            if node is None:
                raise NodeNotFoundError(f"Node {node_id} not found", node_id)

            structural = STRUCTURAL_FIELDS & attrs.keys()
            if structural:
                raise InvalidAttributeError(
                    f"Fields {sorted(structural)} cannot be updated directly", node_id
                )
            unknown = set(attrs) - set(type(node).model_fields)
            if unknown:
                raise InvalidAttributeError(f"Unknown fields {sorted(unknown)}", node_id)
            if "name" in attrs and not attrs["name"]:
                raise InvalidAttributeError("name cannot be empty", node_id)

            data = node.model_dump()
            data.update(attrs)
            data["updated_at"] = datetime.now(timezone.utc)
            updated = type(node).model_validate(data)

            if isinstance(updated, OrgUnit):
                if updated.has_bsc and not working.org_config.level_can_have_bsc(updated.level):
                    raise BSCNotPermittedError(
                        f"A {updated.level.value} cannot own a balanced scorecard", node_id
                    )
                self._replace(working.org_units, updated)
                view = StructureView(working)
                self._check_bsc_override(view, updated)
                self._verify_bsc_chains(working, updated.company_id)
            else:
                self._replace(working.corporate_entities, updated)
            return [node_id], updated

        return self._run(operation, apply)

    @staticmethod
    def _replace(nodes: list, updated: Node) -> None:
        for index, existing in enumerate(nodes):
            if existing.id == updated.id:
                nodes[index] = updated
                return

    # ── delete ──────────────────────────────────────────────────

    def delete_node(
        self,
        node_id: str,
        orphan_policy: OrphanPolicy | str | None = None,
        reassign_org_units_to: str | None = None,
    ) -> MutationResult:
        """
        Delete a node, resolving its children per ``orphan_policy``.

        Deleting a company also removes every org unit of that company, unless
        ``reassign_org_units_to`` names another company to receive them.
        """

        def apply(working: StructureSnapshot) -> tuple[list[str], Any]:
            policy = (
                _coerce(OrphanPolicy, orphan_policy, "orphan_policy")
                if orphan_policy else self.default_orphan_policy
            )
            view = StructureView(working)
            node = view.node(node_id)
            if node is None:
                raise NodeNotFoundError(f"Node {node_id} not found", node_id)
            if isinstance(node, CorporateEntity):
                return self._delete_entity(working, view, node, policy, reassign_org_units_to), None
            return self._delete_unit(working, view, node, policy), None

        return self._run("delete_node", apply)

    def _delete_entity(
        self,
        working: StructureSnapshot,
        view: StructureView,
        entity: CorporateEntity,
        policy: OrphanPolicy,
        reassign_to: str | None,
    ) -> list[str]:
        kind = NodeKind.CORPORATE_ENTITY
        if (
            self.protect_last_root
            and entity.entity_type == CorporateEntityType.CORPORATION
            and entity.parent_entity_id is None
        ):
            roots = [
                e for e in working.corporate_entities
                if e.entity_type == CorporateEntityType.CORPORATION and e.parent_entity_id is None
            ]
            if len(roots) == 1:
                raise CannotDeleteRootError(
                    "Cannot delete the only root corporation", entity.id
                )

        children = view.children(kind, entity.id)
        changed: list[str] = []
        if children and policy == OrphanPolicy.REJECT_IF_HAS_CHILDREN:
            raise OrphanPolicyViolationError(
                f"Entity {entity.id} has {len(children)} children", entity.id
            )

        if policy == OrphanPolicy.CASCADE:
            removed = set(view.subtree_ids(kind, entity.id))
        else:
            removed = {entity.id}
            grandparent = view.entities.get(entity.parent_entity_id or "")
            for child in children:
                self._check_entity_parent(child, grandparent)

        companies = [
            view.entities[i] for i in removed
            if view.entities[i].entity_type == CorporateEntityType.COMPANY
        ]
        if reassign_to is not None:
            if reassign_to in removed:
                raise InvalidParentTypeError(
                    f"Cannot reassign org units to {reassign_to}, which is being deleted",
                    reassign_to,
                )
            self._require_company(view, reassign_to)

        siblings = view.sibling_group(entity)
        if policy != OrphanPolicy.CASCADE:
            # Children take the deleted node's slot, keeping their relative order.
            slot = siblings.index(entity)
            siblings = siblings[:slot] + children + siblings[slot + 1:]
            for child in children:
                child.parent_entity_id = entity.parent_entity_id
                changed.append(child.id)
        siblings = [n for n in siblings if n.id not in removed]

        working.corporate_entities = [
            e for e in working.corporate_entities if e.id not in removed
        ]
        changed.extend(sorted(removed))
        changed.extend(self._renumber(siblings))

        for company in companies:
            changed.extend(self._release_company_units(working, company.id, reassign_to))
        return changed

    @staticmethod
    def _check_entity_parent(entity: CorporateEntity, parent: CorporateEntity | None) -> None:
        if parent is None:
            if entity.entity_type != CorporateEntityType.CORPORATION:
                raise InvalidChildTypeError(
                    f"A {entity.entity_type.value} cannot become a root", entity.id
                )
        elif parent.entity_type not in LEGAL_PARENT_TYPES[entity.entity_type]:
            raise InvalidChildTypeError(
                f"A {entity.entity_type.value} cannot be a child of a "
                f"{parent.entity_type.value}",
                entity.id,
            )

    def _release_company_units(
        self,
        working: StructureSnapshot,
        company_id: str,
        reassign_to: str | None,
    ) -> list[str]:
        """Delete, or move to ``reassign_to``, every org unit of a deleted company."""
        owned = [u for u in working.org_units if u.company_id == company_id]
        if not owned:
            return []
        if reassign_to is None:
            removed = {u.id for u in owned}
            working.org_units = [u for u in working.org_units if u.id not in removed]
            self._redirect_bsc_pointers(working, {u.id: u for u in owned})
            logger.info(
                "Cascaded deletion of %d org units with company %s", len(removed), company_id
            )
            return sorted(removed)

        view = StructureView(working)
        existing_roots = view.children(NodeKind.ORG_UNIT, None, company_id=reassign_to)
        moved_roots = view.children(NodeKind.ORG_UNIT, None, company_id=company_id)
        for unit in owned:
            unit.company_id = reassign_to
        self._renumber(existing_roots + moved_roots)
        logger.info(
            "Reassigned %d org units from company %s to %s",
            len(owned), company_id, reassign_to,
        )
        return [u.id for u in owned]

    def _delete_unit(
        self,
        working: StructureSnapshot,
        view: StructureView,
        unit: OrgUnit,
        policy: OrphanPolicy,
    ) -> list[str]:
        kind = NodeKind.ORG_UNIT
        children = view.children(kind, unit.id)
        changed: list[str] = []
        if children and policy == OrphanPolicy.REJECT_IF_HAS_CHILDREN:
            raise OrphanPolicyViolationError(
                f"Unit {unit.id} has {len(children)} children", unit.id
            )

        siblings = view.sibling_group(unit)
        if policy == OrphanPolicy.CASCADE:
            removed = set(view.subtree_ids(kind, unit.id))
        else:
            removed = {unit.id}
            grandparent = view.units.get(unit.parent_id or "")
            for child in children:
                self._check_unit_parent(child, grandparent)
            slot = siblings.index(unit)
            siblings = siblings[:slot] + children + siblings[slot + 1:]
            for child in children:
                child.parent_id = unit.parent_id
                changed.append(child.id)
        siblings = [n for n in siblings if n.id not in removed]

        working.org_units = [u for u in working.org_units if u.id not in removed]
        changed.extend(sorted(removed))
        changed.extend(self._renumber(siblings))
        changed.extend(self._redirect_bsc_pointers(
            working, {unit_id: view.units[unit_id] for unit_id in removed}
        ))
        self._verify_bsc_chains(working, unit.company_id)
        return changed

    @staticmethod
    def _check_unit_parent(unit: OrgUnit, parent: OrgUnit | None) -> None:
        expected = parent_level(unit.level)
        if parent is None:
            if expected is not None:
                raise InvalidChildTypeError(
                    f"A {unit.level.value} cannot become top-level", unit.id
                )
            return
        if parent.level != expected:
            raise InvalidChildTypeError(
                f"A {unit.level.value} cannot be a child of a {parent.level.value}",
                unit.id,
            )
        if parent.company_id != unit.company_id:
            raise InvalidChildTypeError(
                f"Unit {unit.id} cannot move under a unit of company {parent.company_id}",
                unit.id,
            )

    @staticmethod
    def _redirect_bsc_pointers(
        working: StructureSnapshot,
        removed: dict[str, OrgUnit],
    ) -> list[str]:
        """
        Point units that inherited their BSC from a removed unit at that unit's
        own source (its override, else its parent), skipping over other removed
        units. A pointer with nowhere left to go, or back to the unit itself, is
        cleared.
        """
        redirected = []
        for unit in working.org_units:
            target_id = unit.inherit_bsc_from_id
            if target_id not in removed:
                continue
            seen = set()
            while target_id in removed and target_id not in seen:
                seen.add(target_id)
                source = removed[target_id]
                target_id = source.inherit_bsc_from_id or source.parent_id
            if target_id in removed or target_id == unit.id:
                target_id = None
            unit.inherit_bsc_from_id = target_id
            redirected.append(unit.id)
        return redirected

    # ── reparent / move ─────────────────────────────────────────

    def reparent(
        self,
        node_id: str,
        new_parent_id: str | None,
        insert_index: int | None = None,
    ) -> MutationResult:
        """
        Move ``node_id`` under ``new_parent_id`` at ``insert_index``.

        ``insert_index=None`` appends; out-of-range indices are clamped. The
        destination and source sibling lists are both renumbered 0..n-1.
        """

        def apply(working: StructureSnapshot) -> tuple[list[str], Any]:
            view = StructureView(working)
            node = view.node(node_id)
            if node is None:
                raise NodeNotFoundError(f"Node {node_id} not found", node_id)
            kind = view.kind_of(node_id)

            if new_parent_id == node_id:
                raise CycleDetectedError(f"Node {node_id} cannot be its own parent", node_id)

            parent = None
            if new_parent_id is not None:
                parent = view.node(new_parent_id)
                if parent is None:
                    raise NodeNotFoundError(f"Parent {new_parent_id} not found", new_parent_id)
                if view.kind_of(new_parent_id) != kind:
                    raise InvalidChildTypeError(
                        "Nodes cannot move between the corporate and organizational trees",
                        node_id,
                    )

            # Type legality is reported ahead of cycles: a holding dropped onto
            # its own company is an illegal child first.
            if isinstance(node, CorporateEntity):
                self._check_entity_parent(node, parent)
            else:
                self._check_unit_parent(node, parent)
            if new_parent_id is not None:
                self._check_not_descendant(view, node_id, new_parent_id)

            source = [n for n in view.sibling_group(node) if n.id != node_id]
            company_id = node.company_id if isinstance(node, OrgUnit) else None
            destination = [
                n for n in view.children(kind, new_parent_id, company_id=company_id)
                if n.id != node_id
            ]
            if insert_index is None:
                index = len(destination)
            else:
                index = max(0, min(insert_index, len(destination)))
            destination.insert(index, node)

            changed: list[str] = []
            if view.parent_id_of(node) != new_parent_id:
                if isinstance(node, CorporateEntity):
                    node.parent_entity_id = new_parent_id
                else:
                    node.parent_id = new_parent_id
                changed.append(node_id)
                changed.extend(self._renumber(source))
            changed.extend(self._renumber(destination))

            if isinstance(node, OrgUnit):
                self._verify_bsc_chains(working, node.company_id)
            return sorted(set(changed)), node

        return self._run("reparent", apply)

    @staticmethod
    def _check_not_descendant(view: StructureView, node_id: str, new_parent_id: str) -> None:
        try:
            chain = [new_parent_id, *view.ancestor_ids(new_parent_id)]
        except ChainCycleError as exc:
            raise CycleDetectedError(
                f"Existing ancestry of {new_parent_id} is cyclic", exc.node_id
            ) from exc
        if node_id in chain:
            raise CycleDetectedError(
                f"Cannot move {node_id} under its own descendant {new_parent_id}", node_id
            )

    def move(self, node_id: str, target: DropTarget) -> MutationResult:
        """Translate a drop onto ``target`` into a reparent call."""
        view = self.store.view()
        node = view.node(node_id)
        if node is None:
            return self._reject("move", NodeNotFoundError(f"Node {node_id} not found", node_id))
        target_node = view.node(target.target_id)
        if target_node is None:
            return self._reject(
                "move",
                NodeNotFoundError(f"Drop target {target.target_id} not found", target.target_id),
            )
        if view.kind_of(target.target_id) != view.kind_of(node_id):
            return self._reject(
                "move",
                InvalidChildTypeError(
                    "Nodes cannot move between the corporate and organizational trees", node_id
                ),
            )

        try:
            position = _coerce(DropPosition, target.position, "position")
        except StructureError as exc:
            return self._reject("move", exc)
        if position == DropPosition.CHILD:
            return self.reparent(node_id, target_node.id)

        if (
            isinstance(node, OrgUnit)
            and isinstance(target_node, OrgUnit)
            and node.company_id != target_node.company_id
        ):
            return self._reject(
                "move",
                InvalidChildTypeError(
                    f"Unit {node_id} cannot move into company {target_node.company_id}",
                    node_id,
                ),
            )

        new_parent_id = view.parent_id_of(target_node)
        siblings = [n for n in view.sibling_group(target_node) if n.id != node_id]
        if target_node.id == node_id:
            index = node.display_order
        else:
            index = siblings.index(target_node)
            if position == DropPosition.AFTER:
                index += 1
        return self.reparent(node_id, new_parent_id, index)

    # ── users & assignments ─────────────────────────────────────

    def add_user(self, user: User) -> MutationResult:
        def apply(working: StructureSnapshot) -> tuple[list[str], Any]:
            if any(u.id == user.id for u in working.users):
                raise DuplicateIdError(f"User {user.id} already exists", user.id)
            working.users.append(user)
            return [user.id], user

        return self._run("add_user", apply)

    def grant_role(
        self,
        user_id: str,
        role: Role | str,
        corporate_entity_id: str | None = None,
        org_unit_id: str | None = None,
        inherit_to_children: bool = True,
    ) -> MutationResult:
        """Record a new role assignment; omit both scopes for a global grant."""

        def apply(working: StructureSnapshot) -> tuple[list[str], Any]:
            view = StructureView(working)
            if user_id not in view.users:
                raise NodeNotFoundError(f"User {user_id} not found", user_id)
            if corporate_entity_id is not None and corporate_entity_id not in view.entities:
                raise NodeNotFoundError(
                    f"Entity {corporate_entity_id} not found", corporate_entity_id
                )
            if org_unit_id is not None and org_unit_id not in view.units:
                raise NodeNotFoundError(f"Unit {org_unit_id} not found", org_unit_id)
            assignment = UserEntityAssignment(
                user_id=user_id,
                role=_coerce(Role, role, "role"),
                corporate_entity_id=corporate_entity_id,
                org_unit_id=org_unit_id,
                inherit_to_children=inherit_to_children,
            )
            working.assignments.append(assignment)
            return [assignment.id], assignment

        return self._run("grant_role", apply)

    def revoke_assignment(self, assignment_id: str) -> MutationResult:
        def apply(working: StructureSnapshot) -> tuple[list[str], Any]:
            remaining = [a for a in working.assignments if a.id != assignment_id]
            if len(remaining) == len(working.assignments):
                raise NodeNotFoundError(f"Assignment {assignment_id} not found", assignment_id)
            working.assignments = remaining
            return [assignment_id], None

        return self._run("revoke_assignment", apply)

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _renumber(nodes: list) -> list[str]:
        """Give ``nodes`` a dense 0..n-1 display order; return the ids that changed."""
        changed = []
        for index, node in enumerate(nodes):
            if node.display_order != index:
                node.display_order = index
                changed.append(node.id)
        return changed

    @staticmethod
    def _check_bsc_override(view: StructureView, unit: OrgUnit) -> None:
        target_id = unit.inherit_bsc_from_id
        if target_id is None:
            return
        target = view.units.get(target_id)
        if target is None:
            raise NodeNotFoundError(f"BSC source unit {target_id} not found", target_id)
        if target.company_id != unit.company_id:
            raise InvalidAttributeError(
                f"Unit {unit.id} cannot inherit a BSC from company {target.company_id}",
                unit.id,
            )

    @staticmethod
    def _verify_bsc_chains(working: StructureSnapshot, company_id: str) -> None:
        """Every unit of the company must still resolve its BSC without a cycle."""
        view = StructureView(working)
        for unit in working.org_units:
            if unit.company_id == company_id:
                resolve_bsc_owner(view, unit.id)
