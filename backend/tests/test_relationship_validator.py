"""Tests for the relationship validation rules."""

import os
import pytest
import sys
from datetime import date

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from family_graph import (
    GraphIndex,
    Person,
    Relationship,
    create_family_graph,
    slot_position,
    with_people,
    with_relationships,
)
from relationship_validator import (
    recommend_relationship_type,
    suggest_generation,
    validate_relationship,
    would_create_cycle,
    years_between,
)


# ============================================================================
# Fixtures
# ============================================================================

def make_person(pid, generation, slot, gender="male", dob=None):
    return Person(
        id=pid,
        first_name=pid.title(),
        gender=gender,
        generation=generation,
        grid_slot=slot,
        position=slot_position(generation, slot),
        date_of_birth=dob,
    )


@pytest.fixture
def graph():
    """Root (born 1990) with parents, a grandparent, a sibling and an unrelated cousin."""
    g = create_family_graph("root", "Root", gender="female", date_of_birth=date(1990, 5, 1))
    g = with_people(g, [
        make_person("dad", -1, 80, dob=date(1960, 1, 1)),
        make_person("mum", -1, 82, "female", dob=date(1962, 1, 1)),
        make_person("grandpa", -2, 80, dob=date(1930, 1, 1)),
        make_person("sister", 0, 70, "female"),
        make_person("cousin", 0, 100),
        make_person("friend", 0, 110, "female"),
        make_person("kid", 1, 88, dob=date(2020, 1, 1)),
    ])
    return with_relationships(g, [
        Relationship(id="r1", type="spouse", from_id="dad", to_id="mum"),
        Relationship(id="r2", type="parent-child", from_id="dad", to_id="root"),
        Relationship(id="r3", type="parent-child", from_id="mum", to_id="root"),
        Relationship(id="r4", type="parent-child", from_id="grandpa", to_id="dad"),
        Relationship(id="r5", type="spouse", from_id="cousin", to_id="friend"),
    ])


# ============================================================================
# General Rules
# ============================================================================

class TestGeneralRules:
    """Rules applying to every relationship type."""

    def test_self_relationship_rejected(self, graph):
        result = validate_relationship(graph, "root", "root", "spouse")
        assert result.ok is False
        assert result.issues == ["Cannot create a relationship with yourself"]

    def test_unknown_person(self, graph):
        result = validate_relationship(graph, "root", "ghost", "spouse")
        assert not result.ok
        assert "Person not found: ghost" in result.issues

    def test_unknown_type(self, graph):
        result = validate_relationship(graph, "root", "sister", "cousin")
        assert not result.ok

    def test_existing_relationship_rejected(self, graph):
        result = validate_relationship(graph, "root", "dad", "parent-child")
        assert not result.ok
        assert "already have a parent-child relationship" in result.issues[0]

    def test_validation_does_not_mutate(self, graph):
        before = graph.model_copy(deep=True)
        validate_relationship(graph, "root", "sister", "spouse")
        validate_relationship(graph, "grandpa", "kid", "parent-child")
        assert graph == before


# ============================================================================
# Spouse Rules
# ============================================================================

class TestSpouseRules:
    """Tests for spouse validation."""

    def test_valid_spouse(self, graph):
        result = validate_relationship(graph, "root", "sister", "spouse")
        assert result.ok
        assert result.issues == []

    def test_spouses_must_share_generation(self, graph):
        result = validate_relationship(graph, "root", "grandpa", "spouse")
        assert not result.ok
        assert "Spouses must be in the same generation" in result.issues

    def test_already_married(self, graph):
        result = validate_relationship(graph, "root", "cousin", "spouse")
        assert not result.ok
        assert any("already married" in issue for issue in result.issues)

    def test_large_age_gap_warns(self):
        g = create_family_graph("root", "Root", date_of_birth=date(1990, 1, 1))
        g = with_people(g, [make_person("older", 0, 90, "female", dob=date(1960, 1, 1))])
        result = validate_relationship(g, "root", "older", "spouse")
        assert result.ok
        assert any("age difference" in w for w in result.warnings)


# ============================================================================
# Parent-Child Rules
# ============================================================================

class TestParentChildRules:
    """Tests for parent-child validation."""

    def test_valid_parent_child(self, graph):
        result = validate_relationship(graph, "root", "kid", "parent-child")
        assert result.ok

    def test_either_order_accepted(self, graph):
        result = validate_relationship(graph, "kid", "root", "parent-child")
        assert result.ok

    def test_must_be_one_generation_apart(self, graph):
        result = validate_relationship(graph, "grandpa", "root", "parent-child")
        assert not result.ok
        assert result.issues == ["Parent and child must be exactly one generation apart"]

    def test_same_generation_rejected(self, graph):
        result = validate_relationship(graph, "root", "sister", "parent-child")
        assert not result.ok

    def test_third_parent_rejected(self, graph):
        g = with_people(graph, [make_person("stepdad", -1, 60)])
        result = validate_relationship(g, "stepdad", "root", "parent-child")
        assert not result.ok
        assert any("already has two parents" in issue for issue in result.issues)

    def test_parent_too_young(self):
        g = create_family_graph("root", "Root", date_of_birth=date(2000, 1, 1))
        g = with_people(g, [make_person("kid", 1, 88, dob=date(2010, 1, 1))])
        result = validate_relationship(g, "root", "kid", "parent-child")
        assert not result.ok
        assert any("at least 16 years older" in issue for issue in result.issues)

    def test_custom_minimum_age(self):
        g = create_family_graph("root", "Root", date_of_birth=date(2000, 1, 1))
        g = with_people(g, [make_person("kid", 1, 88, dob=date(2010, 1, 1))])
        result = validate_relationship(g, "root", "kid", "parent-child", min_parent_age=8)
        assert result.ok

    def test_large_parent_gap_warns(self, graph):
        g = with_people(graph, [make_person("aunt", -1, 60, "female", dob=date(2000, 1, 1))])
        result = validate_relationship(g, "grandpa", "aunt", "parent-child")
        assert result.ok
        assert any("age gap" in w for w in result.warnings)

    def test_married_parent_warns_about_spouse(self, graph):
        g = with_people(graph, [make_person("brother", 0, 60)])
        result = validate_relationship(g, "dad", "brother", "parent-child")
        assert result.ok
        assert any("will also be linked" in w for w in result.warnings)

    def test_cycle_detection(self, graph):
        index = GraphIndex(graph)
        assert would_create_cycle(index, "root", "grandpa")
        assert not would_create_cycle(index, "grandpa", "root")


# ============================================================================
# Sibling Rules
# ============================================================================

class TestSiblingRules:
    """Tests for sibling validation."""

    def test_valid_sibling(self, graph):
        assert validate_relationship(graph, "root", "sister", "sibling").ok

    def test_sibling_generation_mismatch(self, graph):
        result = validate_relationship(graph, "root", "kid", "sibling")
        assert not result.ok
        assert "Siblings must be in the same generation" in result.issues


# ============================================================================
# Helpers
# ============================================================================

class TestHelpers:
    """Tests for recommendation helpers."""

    def test_years_between(self):
        assert years_between(date(1990, 1, 1), date(2006, 1, 2)) == 16
        assert years_between(date(2006, 1, 1), date(1990, 1, 1)) == -16

    def test_recommend_relationship_type(self, graph):
        assert recommend_relationship_type(graph, "root", "sister") == "spouse"
        assert recommend_relationship_type(graph, "root", "kid") == "parent-child"
        assert recommend_relationship_type(graph, "grandpa", "root") is None
        assert recommend_relationship_type(graph, "root", "root") is None

    def test_suggest_generation(self, graph):
        root = graph.people["root"]
        assert suggest_generation(root, "spouse") == 0
        assert suggest_generation(root, "parent-child") == 1
        assert suggest_generation(root, "parent-child", as_parent=True) == -1
        assert suggest_generation(graph.people["grandpa"], "parent-child", as_parent=True) is None
