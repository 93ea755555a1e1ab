"""Derive the parent-child edges implied by a newly created parent-child edge.

Rules run in a fixed order against the evolving graph. Each rule proposes
(parent, child) pairs; every proposal is validated before it is added, so a
derived edge can never break a graph invariant (a child never gains a third
parent, for instance). Proposals that fail validation are skipped and logged.
"""

import logging
from typing import Callable

from pydantic import BaseModel, Field

from family_graph import FamilyGraph, GraphIndex, Relationship, new_relationship_id, with_relationships
from relationship_validator import (
    DEFAULT_MAX_PARENT_AGE_GAP,
    DEFAULT_MIN_PARENT_AGE,
    orient_parent_child,
    validate_relationship,
)

logger = logging.getLogger("familycanvas.relationship_propagation")


class PropagationResult(BaseModel):
    graph: FamilyGraph
    derived: list[Relationship] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


# ============================================================================
# Rules
# ============================================================================

def propagate_spouse_as_parent(index: GraphIndex, parent_id: str, child_id: str) -> list[tuple[str, str, str]]:
    """The parent's spouse becomes a parent of the child too."""
    spouse_id = index.spouse_of(parent_id)
    if spouse_id is None or child_id in index.children_of(spouse_id):
        return []
    return [(spouse_id, child_id, "stepparent")]


def sibling_set(index: GraphIndex, parent_id: str, child_id: str) -> list[str]:
    """
    People who already count as the child's siblings.

    Everyone sharing at least one parent with the child, everyone linked to the child
    by an explicit sibling edge, and every child of the parent's spouse.
    """
    siblings = []

    def add(person_id: str):
        if person_id != child_id and person_id not in siblings:
            siblings.append(person_id)

    for existing_parent in index.parents_of(child_id):
        for other_child in index.children_of(existing_parent):
            add(other_child)
    for sibling_id in index.siblings_of(child_id):
        add(sibling_id)
    spouse_id = index.spouse_of(parent_id)
    if spouse_id is not None:
        for other_child in index.children_of(spouse_id):
            add(other_child)
    return siblings


def propagate_siblings_to_new_parent(index: GraphIndex, parent_id: str, child_id: str) -> list[tuple[str, str, str]]:
    """Link the new parent, and their spouse, to the child's existing siblings."""
    spouse_id = index.spouse_of(parent_id)
    proposals = []
    for sibling_id in sibling_set(index, parent_id, child_id):
        if sibling_id not in index.children_of(parent_id):
            proposals.append((parent_id, sibling_id, "sibling"))
        if spouse_id is not None and sibling_id not in index.children_of(spouse_id):
            proposals.append((spouse_id, sibling_id, "spouse_sibling"))
    return proposals


PropagationRule = Callable[[GraphIndex, str, str], list[tuple[str, str, str]]]

ON_PARENT_CHILD_ADDED: tuple[PropagationRule, ...] = (
    propagate_spouse_as_parent,
    propagate_siblings_to_new_parent,
)


# ============================================================================
# Engine
# ============================================================================

def propagate_parent_child(
    graph: FamilyGraph,
    primary: Relationship,
    rules: tuple[PropagationRule, ...] = ON_PARENT_CHILD_ADDED,
    min_parent_age: int = DEFAULT_MIN_PARENT_AGE,
    max_parent_age_gap: int = DEFAULT_MAX_PARENT_AGE_GAP,
) -> PropagationResult:
    """
    Apply the propagation rules for a parent-child edge already present in `graph`.

    Args:
        graph: Graph that already contains `primary`
        primary: The explicit parent-child edge the user created
        rules: Rules to evaluate, in order

    Returns:
        PropagationResult with the final graph, the edges that were added and a
        reason for every proposal that was skipped
    """
    a = graph.people[primary.from_id]
    b = graph.people[primary.to_id]
    parent, child = orient_parent_child(a, b)

    current = graph
    derived = []
    skipped = []
    for rule in rules:
        index = GraphIndex(current)
        for from_id, to_id, tag in rule(index, parent.id, child.id):
            if index.relationship_between(from_id, to_id) is not None:
                continue
            result = validate_relationship(
                current, from_id, to_id, "parent-child",
                min_parent_age=min_parent_age,
                max_parent_age_gap=max_parent_age_gap,
                index=index,
            )
            if not result.ok:
                from_name = current.people[from_id].full_name
                to_name = current.people[to_id].full_name
                reason = f"{from_name} was not linked as a parent of {to_name}: {'; '.join(result.issues)}"
                logger.info(f"Skipped {rule.__name__} edge {from_id} -> {to_id}: {'; '.join(result.issues)}")
                skipped.append(reason)
                continue
            edge = Relationship(id=new_relationship_id(tag), type="parent-child", from_id=from_id, to_id=to_id)
            current = with_relationships(current, [edge])
            index = GraphIndex(current)
            derived.append(edge)
            logger.debug(f"{rule.__name__} added {from_id} -> {to_id}")

    if derived:
        logger.info(f"Propagated {len(derived)} edge(s) from {primary.id}")
    return PropagationResult(graph=current, derived=derived, skipped=skipped)
