"""Tests for the Query Facade."""

from __future__ import annotations

from stratos_structure.structure.queries import StructureQueries
from stratos_structure.structure.schema import NodeKind, OrgLevel


def _ids(nodes):
    return [n.id for n in nodes]


class TestTreeQueries:

    def test_children_sorted(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.children_of("corp-a")) == ["hold-b", "hold-e", "co-d"]
        assert _ids(queries.children_of("d1")) == ["v1", "v2", "v3"]
        assert queries.children_of("ghost") == []

    def test_children_skip_inactive(self, engine, store):
        engine.update_attributes("v2", {"is_active": False})
        queries = StructureQueries(store.view())
        assert _ids(queries.children_of("d1")) == ["v1", "v3"]
        assert _ids(queries.children_of("d1", include_inactive=True)) == ["v1", "v2", "v3"]

    def test_ancestors_root_first(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.ancestors_of("s1")) == ["d1", "v1", "p1"]
        assert _ids(queries.ancestors_of("co-c")) == ["corp-a", "hold-b"]
        assert queries.ancestors_of("corp-a") == []

    def test_descendants_breadth_first(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.descendants_of("d1")) == ["v1", "v2", "v3", "p1", "s1"]
        assert _ids(queries.descendants_of("corp-a")) == ["hold-b", "hold-e", "co-d", "co-c"]

    def test_siblings(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.siblings_of("v2")) == ["v1", "v3"]
        assert queries.siblings_of("corp-a") == []
        assert queries.siblings_of("d1") == [], "D2 belongs to another company"

    def test_kind_can_be_given(self, store):
        queries = StructureQueries(store.view())
        assert queries.get("d1", NodeKind.CORPORATE_ENTITY) is None
        assert queries.get("d1", NodeKind.ORG_UNIT).name == "D1"


class TestDirectoryQueries:

    def test_companies(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.all_companies()) == ["co-c", "co-d"]

    def test_units_at_level(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.units_at_level(OrgLevel.DIRECTORATE)) == ["d1", "d2"]
        assert _ids(queries.units_at_level("division", company_id="co-d")) == []

    def test_units_for_company_by_level(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.units_for_company("co-c")) == ["d1", "v1", "v2", "v3", "p1", "s1"]

    def test_top_level_units(self, store):
        queries = StructureQueries(store.view())
        assert _ids(queries.top_level_units("co-d")) == ["d2"]

    def test_root_corporation(self, store):
        assert StructureQueries(store.view()).root_corporation().id == "corp-a"

    def test_find_company_ancestor(self, store):
        queries = StructureQueries(store.view())
        assert queries.find_company_ancestor("co-c").id == "co-c"
        assert queries.find_company_ancestor("hold-b") is None
        assert queries.find_company_ancestor("ghost") is None
