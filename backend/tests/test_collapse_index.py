"""Tests for subtree collapse."""

import os
import pytest
import sys

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from collapse_index import CollapseIndex, collapse_closure
from family_graph import (
    Person,
    Relationship,
    create_family_graph,
    slot_position,
    with_people,
    with_relationships,
)
from tree_errors import NotFound


# ============================================================================
# Fixtures
# ============================================================================

def make_person(pid, generation, slot):
    return Person(
        id=pid,
        first_name=pid.title(),
        gender="male",
        generation=generation,
        grid_slot=slot,
        position=slot_position(generation, slot),
    )


@pytest.fixture
def graph():
    """Three generations: dad+mum -> root+wife -> kid+kid_spouse -> grandkid, plus an uncle."""
    g = create_family_graph("root", "Root")
    g = with_people(g, [
        make_person("dad", -1, 80),
        make_person("mum", -1, 82),
        make_person("uncle", -1, 70),
        make_person("wife", 0, 90),
        make_person("kid", 1, 88),
        make_person("kid_spouse", 1, 90),
        make_person("grandkid", 2, 88),
    ])
    return with_relationships(g, [
        Relationship(id="r1", type="spouse", from_id="dad", to_id="mum"),
        Relationship(id="r2", type="parent-child", from_id="dad", to_id="root"),
        Relationship(id="r3", type="spouse", from_id="root", to_id="wife"),
        Relationship(id="r4", type="parent-child", from_id="root", to_id="kid"),
        Relationship(id="r5", type="spouse", from_id="kid", to_id="kid_spouse"),
        Relationship(id="r6", type="parent-child", from_id="kid_spouse", to_id="grandkid"),
        Relationship(id="r7", type="sibling", from_id="dad", to_id="uncle"),
    ])


# ============================================================================
# Closure Tests
# ============================================================================

class TestClosure:
    """Tests for collapse_closure."""

    def test_includes_spouse_and_descendants(self, graph):
        hidden = collapse_closure(graph, "root")
        assert hidden == {"root", "wife", "kid", "kid_spouse", "grandkid"}

    def test_follows_child_spouse_descendants(self, graph):
        assert "grandkid" in collapse_closure(graph, "kid")

    def test_does_not_climb_to_parents(self, graph):
        hidden = collapse_closure(graph, "kid")
        assert "root" not in hidden
        assert "dad" not in collapse_closure(graph, "root")

    def test_siblings_stay_visible(self, graph):
        assert "uncle" not in collapse_closure(graph, "dad")

    def test_leaf(self, graph):
        assert collapse_closure(graph, "grandkid") == {"grandkid"}

    def test_cycle_safe(self, graph):
        looped = with_relationships(graph, [
            Relationship(id="bad", type="parent-child", from_id="grandkid", to_id="root"),
        ])
        assert "grandkid" in collapse_closure(looped, "root")

    def test_unknown_person(self, graph):
        with pytest.raises(NotFound):
            collapse_closure(graph, "ghost")


# ============================================================================
# Index Tests
# ============================================================================

class TestCollapseIndex:
    """Tests for the active-collapse index."""

    def test_collapse_then_expand_restores_visibility(self, graph):
        index = CollapseIndex()
        before = {p.id for p in index.visible_people(graph)}
        index.collapse(graph, "kid")
        assert not index.is_visible("grandkid")
        assert index.hidden_count("kid") == 3
        assert index.expand("kid") is True
        assert {p.id for p in index.visible_people(graph)} == before

    def test_union_of_collapses(self, graph):
        index = CollapseIndex()
        index.collapse(graph, "kid")
        index.collapse(graph, "dad")
        assert index.hidden_ids() == collapse_closure(graph, "dad")
        index.expand("dad")
        assert index.hidden_ids() == {"kid", "kid_spouse", "grandkid"}

    def test_expand_unknown(self):
        assert CollapseIndex().expand("nobody") is False

    def test_dimmed_relationships(self, graph):
        index = CollapseIndex()
        index.collapse(graph, "kid")
        assert index.dimmed_relationship_ids(graph) == {"r4", "r5", "r6"}

    def test_forget_deleted_person(self, graph):
        index = CollapseIndex()
        index.collapse(graph, "root")
        index.forget("kid")
        assert "kid" not in index.hidden_ids()
        index.forget("root")
        assert not index.is_collapsed("root")
