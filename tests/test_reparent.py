"""
Tests for reparent and drag-and-drop moves.

Validates:
- Type legality is reported before cycles
- Sibling order after moves within and across parents
- Drop positions (before, after, child)
- Acyclicity, order density and legality under random move sequences
"""

from __future__ import annotations

import random

from stratos_structure.structure.errors import ErrorKind
from stratos_structure.structure.mutations import DropTarget
from stratos_structure.structure.schema import DropPosition, NodeKind
from stratos_structure.structure.validation import validate_snapshot


def _order(store, kind, parent_id, company_id=None):
    return [n.id for n in store.view().children(kind, parent_id, company_id=company_id)]


class TestReparentCorporate:

    def test_holding_under_its_company_is_illegal_child(self, engine, store):
        result = engine.reparent("hold-b", "co-c")
        assert result.error.kind == ErrorKind.INVALID_CHILD_TYPE
        assert store.view().entities["hold-b"].parent_entity_id == "corp-a"

    def test_under_own_descendant_is_cycle(self, engine):
        nested = engine.add_node(
            NodeKind.CORPORATE_ENTITY, {"name": "Hold-X", "entity_type": "holding"}, "hold-b"
        ).node
        result = engine.reparent("hold-b", nested.id)
        assert result.error.kind == ErrorKind.CYCLE_DETECTED

    def test_own_parent_is_cycle(self, engine):
        assert engine.reparent("hold-b", "hold-b").error.kind == ErrorKind.CYCLE_DETECTED

    def test_company_moves_between_holdings(self, engine, store):
        result = engine.reparent("co-c", "hold-e")
        assert result.ok
        assert _order(store, NodeKind.CORPORATE_ENTITY, "hold-e") == ["co-c"]
        assert _order(store, NodeKind.CORPORATE_ENTITY, "hold-b") == []
        assert store.view().units["d1"].company_id == "co-c"

    def test_holding_cannot_become_root(self, engine):
        assert engine.reparent("hold-b", None).error.kind == ErrorKind.INVALID_CHILD_TYPE

    def test_missing_nodes(self, engine):
        assert engine.reparent("ghost", "corp-a").error.kind == ErrorKind.NOT_FOUND
        assert engine.reparent("co-c", "ghost").error.kind == ErrorKind.NOT_FOUND

    def test_trees_do_not_mix(self, engine):
        result = engine.reparent("d1", "co-d")
        assert result.error.kind == ErrorKind.INVALID_CHILD_TYPE


class TestReparentOrg:

    def test_move_to_front(self, engine, store):
        result = engine.reparent("v3", "d1", 0)
        assert result.ok
        view = store.view()
        assert [(u, view.units[u].display_order) for u in ("v3", "v1", "v2")] == [
            ("v3", 0), ("v1", 1), ("v2", 2),
        ]

    def test_index_clamped(self, engine, store):
        assert engine.reparent("v1", "d1", 99).ok
        assert _order(store, NodeKind.ORG_UNIT, "d1") == ["v2", "v3", "v1"]

    def test_same_position_is_noop(self, engine, store):
        result = engine.reparent("v1", "d1", 0)
        assert result.ok
        assert result.changed_ids == []
        assert _order(store, NodeKind.ORG_UNIT, "d1") == ["v1", "v2", "v3"]

    def test_across_parents_renumbers_both(self, engine, store):
        assert engine.reparent("p1", "v2").ok
        assert _order(store, NodeKind.ORG_UNIT, "v2") == ["p1"]
        assert _order(store, NodeKind.ORG_UNIT, "v1") == []
        assert store.view().units["s1"].parent_id == "p1"

    def test_level_mismatch(self, engine):
        assert engine.reparent("p1", "d1").error.kind == ErrorKind.INVALID_CHILD_TYPE

    def test_cross_company(self, engine):
        assert engine.reparent("v1", "d2").error.kind == ErrorKind.INVALID_CHILD_TYPE

    def test_reparent_that_would_loop_bsc_rejected(self, engine, store):
        assert engine.update_attributes("v3", {"inherit_bsc_from_id": "p1"}).ok
        result = engine.reparent("p1", "v3")
        assert result.error.kind == ErrorKind.INHERITANCE_CYCLE
        assert store.view().units["p1"].parent_id == "v1"


class TestMove:

    def test_before(self, engine, store):
        assert engine.move("v3", DropTarget("v1", DropPosition.BEFORE)).ok
        assert _order(store, NodeKind.ORG_UNIT, "d1") == ["v3", "v1", "v2"]
        assert [store.view().units[u].display_order for u in ("v3", "v1", "v2")] == [0, 1, 2]

    def test_after(self, engine, store):
        assert engine.move("v1", DropTarget("v3", DropPosition.AFTER)).ok
        assert _order(store, NodeKind.ORG_UNIT, "d1") == ["v2", "v3", "v1"]

    def test_child(self, engine, store):
        assert engine.move("co-d", DropTarget("hold-e")).ok
        assert _order(store, NodeKind.CORPORATE_ENTITY, "corp-a") == ["hold-b", "hold-e"]
        assert _order(store, NodeKind.CORPORATE_ENTITY, "hold-e") == ["co-d"]

    def test_before_sibling_in_other_parent(self, engine, store):
        engine.add_node(NodeKind.ORG_UNIT, {"id": "p2", "name": "P2", "level": "department"}, "v2")
        assert engine.move("p1", DropTarget("p2", DropPosition.BEFORE)).ok
        assert _order(store, NodeKind.ORG_UNIT, "v2") == ["p1", "p2"]

    def test_onto_self(self, engine, store):
        result = engine.move("v2", DropTarget("v2", DropPosition.AFTER))
        assert result.ok
        assert _order(store, NodeKind.ORG_UNIT, "d1") == ["v1", "v2", "v3"]

    def test_cross_tree(self, engine):
        result = engine.move("d1", DropTarget("co-c"))
        assert result.error.kind == ErrorKind.INVALID_CHILD_TYPE

    def test_cross_company_sibling(self, engine):
        result = engine.move("d1", DropTarget("d2", DropPosition.BEFORE))
        assert result.error.kind == ErrorKind.INVALID_CHILD_TYPE

    def test_missing_target(self, engine):
        assert engine.move("d1", DropTarget("ghost")).error.kind == ErrorKind.NOT_FOUND


class TestRandomMoves:
    """Invariants hold after any sequence of accepted and rejected moves."""

    def test_invariants_under_random_moves(self, engine, store):
        rng = random.Random(7)
        engine.add_node(NodeKind.CORPORATE_ENTITY, {"name": "H2", "entity_type": "holding"}, "hold-e")
        engine.add_node(NodeKind.ORG_UNIT, {"name": "V9", "level": "division"}, "d2")
        engine.add_node(NodeKind.ORG_UNIT, {"name": "D9", "level": "directorate"}, "co-c")

        for _ in range(300):
            view = store.view()
            ids = list(view.entities) + list(view.units)
            node_id = rng.choice(ids)
            parent_id = rng.choice(ids + [None])
            if rng.random() < 0.5:
                engine.reparent(node_id, parent_id, rng.randint(0, 4))
            else:
                target = rng.choice(ids)
                engine.move(node_id, DropTarget(target, rng.choice(list(DropPosition))))

            snapshot = store.snapshot
            report = validate_snapshot(snapshot)
            assert report.errors == []
            assert report.warnings == []

            view = store.view()
            for unit_id in view.units:
                assert len(view.ancestor_ids(unit_id)) < 4
            for entity_id in view.entities:
                assert len(view.ancestor_ids(entity_id)) < len(view.entities)
