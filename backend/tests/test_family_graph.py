"""Tests for the family graph model, adjacency index and invariant checks."""

import os
import pytest
import sys

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from family_graph import (
    CENTER_SLOT,
    FamilyGraph,
    GraphIndex,
    Person,
    Relationship,
    SLOT_COUNT,
    TREE_CAPACITY,
    check_invariants,
    create_family_graph,
    get_person,
    new_relationship_id,
    place_person,
    slot_position,
    slot_x,
    with_people,
    with_relationships,
    with_slots,
    without_person,
    without_relationships,
)
from tree_errors import NotFound


# ============================================================================
# Fixtures
# ============================================================================

def make_person(pid, generation=0, slot=0, gender="male"):
    return Person(
        id=pid,
        first_name=pid.title(),
        gender=gender,
        generation=generation,
        grid_slot=slot,
        position=slot_position(generation, slot),
    )


def link(rid, rel_type, from_id, to_id):
    return Relationship(id=rid, type=rel_type, from_id=from_id, to_id=to_id)


@pytest.fixture
def graph():
    """Root with a spouse, two parents and a child."""
    g = create_family_graph("root", "Ada", "Lovelace", "female")
    g = with_people(g, [
        make_person("spouse", 0, CENTER_SLOT + 2),
        make_person("dad", -1, 80),
        make_person("mum", -1, 82, "female"),
        make_person("kid", 1, 88),
    ])
    return with_relationships(g, [
        link("r1", "spouse", "root", "spouse"),
        link("r2", "spouse", "dad", "mum"),
        link("r3", "parent-child", "dad", "root"),
        link("r4", "parent-child", "mum", "root"),
        link("r5", "parent-child", "root", "kid"),
    ])


# ============================================================================
# Geometry Tests
# ============================================================================

class TestGeometry:
    """Tests for slot geometry constants."""

    def test_slot_count(self):
        assert SLOT_COUNT == 176
        assert CENTER_SLOT == 88

    def test_tree_capacity_is_sum_of_generation_maxima(self):
        assert TREE_CAPACITY == 4 + 20 + 78 + 42 + 18

    def test_slot_x(self):
        assert slot_x(0) == 250
        assert slot_x(1) == 350

    def test_slot_position_uses_generation_row(self):
        position = slot_position(-2, 3)
        assert position.x == slot_x(3)
        assert position.y == 90


# ============================================================================
# Graph Construction Tests
# ============================================================================

class TestGraphConstruction:
    """Tests for seeding and editing graphs."""

    def test_create_family_graph_seeds_root(self):
        g = create_family_graph("owner", "Ada")
        root = g.root
        assert root.is_root is True
        assert root.generation == 0
        assert root.grid_slot == CENTER_SLOT
        assert g.generation_limits[0].current == 1
        assert g.generation_limits[-2].max == 4
        assert check_invariants(g) == []

    def test_edits_return_new_graph(self, graph):
        before = graph.model_copy(deep=True)
        updated = with_people(graph, [make_person("extra", 2, 5)])
        assert "extra" in updated.people
        assert "extra" not in graph.people
        assert graph == before

    def test_counts_follow_people(self, graph):
        assert graph.generation_limits[-1].current == 2
        updated, _ = without_person(graph, "dad")
        assert updated.generation_limits[-1].current == 1

    def test_without_person_returns_incident_relationships(self, graph):
        updated, removed = without_person(graph, "root")
        assert {r.id for r in removed} == {"r1", "r3", "r4", "r5"}
        assert set(updated.relationships) == {"r2"}

    def test_without_person_unknown(self, graph):
        with pytest.raises(NotFound):
            without_person(graph, "ghost")

    def test_get_person_unknown(self, graph):
        with pytest.raises(NotFound):
            get_person(graph, "ghost")

    def test_without_relationships(self, graph):
        updated = without_relationships(graph, ["r5"])
        assert "r5" not in updated.relationships
        assert len(updated.relationships) == 4

    def test_place_person_recomputes_position(self):
        person = make_person("p", 1, 3)
        moved = place_person(person, 10)
        assert moved.grid_slot == 10
        assert moved.position.x == slot_x(10)
        assert moved.position.y == 630

    def test_with_slots_swaps_in_one_step(self):
        g = create_family_graph("root", "Root")
        g = with_people(g, [make_person("a", 1, 1), make_person("b", 1, 2)])
        swapped = with_slots(g, {"a": 2, "b": 1})
        assert swapped.people["a"].grid_slot == 2
        assert swapped.people["b"].grid_slot == 1

    def test_relationship_ids_are_unique(self):
        assert new_relationship_id() != new_relationship_id()
        assert new_relationship_id("sibling").endswith("_sibling")


# ============================================================================
# Serialization Tests
# ============================================================================

class TestSerialization:
    """Graphs round-trip through camelCase JSON."""

    def test_json_uses_camel_case(self, graph):
        data = graph.model_dump(by_alias=True)
        assert data["rootUserId"] == "root"
        assert "gridSlot" in data["people"]["root"]
        assert "isRoot" in data["people"]["root"]
        assert data["relationships"]["r3"]["from"] == "dad"

    def test_json_round_trip(self, graph):
        loaded = FamilyGraph.model_validate_json(graph.model_dump_json(by_alias=True))
        assert loaded == graph


# ============================================================================
# Adjacency Index Tests
# ============================================================================

class TestGraphIndex:
    """Tests for the id-indexed adjacency."""

    def test_adjacency(self, graph):
        index = GraphIndex(graph)
        assert sorted(index.parents_of("root")) == ["dad", "mum"]
        assert index.children_of("root") == ["kid"]
        assert index.spouse_of("root") == "spouse"
        assert index.spouse_of("kid") is None
        assert index.relationship_between("spouse", "root").id == "r1"
        assert index.relationship_between("kid", "dad") is None

    def test_is_ancestor(self, graph):
        index = GraphIndex(graph)
        assert index.is_ancestor("dad", "kid")
        assert index.is_ancestor("root", "kid")
        assert not index.is_ancestor("kid", "dad")
        assert not index.is_ancestor("kid", "kid")

    def test_slots_in(self, graph):
        index = GraphIndex(graph)
        assert index.slots_in(-1) == {80: "dad", 82: "mum"}
        assert index.slots_in(2) == {}


# ============================================================================
# Invariant Tests
# ============================================================================

class TestInvariants:
    """Tests for check_invariants."""

    def test_consistent_graph(self, graph):
        assert check_invariants(graph) == []

    def test_shared_slot(self, graph):
        broken = with_people(graph, [make_person("clash", 1, 88)])
        assert any("share slot" in p for p in check_invariants(broken))

    def test_spouses_not_adjacent(self, graph):
        broken = with_slots(graph, {"spouse": CENTER_SLOT + 5})
        assert any("not two slots apart" in p for p in check_invariants(broken))

    def test_connector_occupied(self, graph):
        broken = with_people(graph, [make_person("middle", 0, CENTER_SLOT + 1)])
        assert any("Connector slot" in p for p in check_invariants(broken))

    def test_too_many_parents(self, graph):
        g = with_people(graph, [make_person("uncle", -1, 60)])
        g = with_relationships(g, [link("r9", "parent-child", "uncle", "root")])
        assert any("3 parents" in p for p in check_invariants(g))

    def test_cycle(self, graph):
        g = with_relationships(graph, [link("r9", "parent-child", "kid", "dad")])
        assert any("own ancestor" in p for p in check_invariants(g))
