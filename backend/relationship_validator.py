"""Rule engine deciding whether a relationship may be created between two people.

Validation is a pure function of a graph snapshot: nothing here mutates the graph,
so it is safe to call speculatively (for example to grey out a menu entry).
"""

import logging
from datetime import date

from pydantic import BaseModel, Field

from family_graph import GENERATIONS, FamilyGraph, GraphIndex, Person, RELATIONSHIP_TYPES

logger = logging.getLogger("familycanvas.relationship_validator")

DEFAULT_MIN_PARENT_AGE = 16
DEFAULT_MAX_PARENT_AGE_GAP = 60
SPOUSE_AGE_GAP_WARNING = 20


class ValidationResult(BaseModel):
    """Outcome of validating one relationship request."""
    ok: bool
    issues: list[str] = Field(default_factory=list, description="Blocking problems; any issue rejects the edit")
    warnings: list[str] = Field(default_factory=list, description="Non-blocking notes shown to the user")


def years_between(earlier: date, later: date) -> int:
    """Whole years from `earlier` to `later`; negative when `later` comes first."""
    days = (later - earlier).days
    years = int(abs(days) / 365.25)
    return years if days >= 0 else -years


def orient_parent_child(a: Person, b: Person) -> tuple[Person, Person]:
    """Return (parent, child) for two people one generation apart."""
    return (a, b) if a.generation < b.generation else (b, a)


def parent_age_problems(
    parent: Person,
    child: Person,
    min_parent_age: int = DEFAULT_MIN_PARENT_AGE,
    max_parent_age_gap: int = DEFAULT_MAX_PARENT_AGE_GAP,
) -> tuple[list[str], list[str]]:
    """Age rules for one parent/child pair. Returns (issues, warnings); empty when a date is unknown."""
    if not (parent.date_of_birth and child.date_of_birth):
        return [], []
    gap = years_between(parent.date_of_birth, child.date_of_birth)
    if gap < min_parent_age:
        return [
            f"{parent.full_name} must be at least {min_parent_age} years older than {child.full_name} "
            f"(difference is {gap} years)"
        ], []
    if gap > max_parent_age_gap:
        return [], [f"Unusually large parent/child age gap ({gap} years)"]
    return [], []


def validate_parent_ages(
    graph: FamilyGraph,
    person: Person,
    min_parent_age: int = DEFAULT_MIN_PARENT_AGE,
    max_parent_age_gap: int = DEFAULT_MAX_PARENT_AGE_GAP,
) -> ValidationResult:
    """
    Re-check the age rules on every parent-child edge touching `person`.

    `person` is the edited version; the other ends are read from `graph`.
    """
    index = GraphIndex(graph)
    issues = []
    warnings = []
    pairs = [(graph.people[pid], person) for pid in index.parents_of(person.id) if pid in graph.people]
    pairs += [(person, graph.people[cid]) for cid in index.children_of(person.id) if cid in graph.people]
    for parent, child in pairs:
        pair_issues, pair_warnings = parent_age_problems(parent, child, min_parent_age, max_parent_age_gap)
        issues.extend(pair_issues)
        warnings.extend(pair_warnings)
    return ValidationResult(ok=not issues, issues=issues, warnings=warnings)


def validate_relationship(
    graph: FamilyGraph,
    from_id: str,
    to_id: str,
    rel_type: str,
    min_parent_age: int = DEFAULT_MIN_PARENT_AGE,
    max_parent_age_gap: int = DEFAULT_MAX_PARENT_AGE_GAP,
    index: GraphIndex | None = None,
) -> ValidationResult:
    """
    Check whether a relationship of `rel_type` can be created between two people.

    Args:
        graph: Current graph snapshot
        from_id: First person's id (the parent for parent-child edges, though
            either order is accepted and the parent is chosen by generation)
        to_id: Second person's id
        rel_type: 'spouse', 'parent-child' or 'sibling'
        min_parent_age: Minimum years a parent must be older than a child
        max_parent_age_gap: Parent/child age gap above which a warning is raised
        index: Prebuilt adjacency for `graph`, when the caller already has one

    Returns:
        ValidationResult with ok=False and the unmet rules in `issues` when rejected
    """
    issues = []
    warnings = []

    def reject(reason: str) -> ValidationResult:
        issues.append(reason)
        logger.debug(f"Rejected {rel_type} {from_id} -> {to_id}: {reason}")
        return ValidationResult(ok=False, issues=issues, warnings=warnings)

    if rel_type not in RELATIONSHIP_TYPES:
        return reject(f"Unknown relationship type: {rel_type}")

    person_a = graph.people.get(from_id)
    person_b = graph.people.get(to_id)
    if person_a is None or person_b is None:
        missing = from_id if person_a is None else to_id
        return reject(f"Person not found: {missing}")

    if from_id == to_id:
        return reject("Cannot create a relationship with yourself")

    for person in (person_a, person_b):
        if person.generation not in GENERATIONS:
            return reject(f"{person.full_name} has an invalid generation ({person.generation})")

    index = index or GraphIndex(graph)

    existing = index.relationship_between(from_id, to_id)
    if existing is not None:
        return reject(
            f"{person_a.full_name} and {person_b.full_name} already have a {existing.type} relationship"
        )

    if rel_type == "spouse":
        if person_a.generation != person_b.generation:
            issues.append("Spouses must be in the same generation")
        for person in (person_a, person_b):
            spouse_id = index.spouse_of(person.id)
            if spouse_id is not None:
                spouse = graph.people.get(spouse_id)
                spouse_name = spouse.full_name if spouse else spouse_id
                issues.append(f"{person.full_name} is already married to {spouse_name}")
        if person_a.date_of_birth and person_b.date_of_birth:
            gap = abs(years_between(person_a.date_of_birth, person_b.date_of_birth))
            if gap > SPOUSE_AGE_GAP_WARNING:
                warnings.append(f"Large age difference between spouses ({gap} years)")

    elif rel_type == "parent-child":
        if abs(person_a.generation - person_b.generation) != 1:
            return reject("Parent and child must be exactly one generation apart")
        parent, child = orient_parent_child(person_a, person_b)

        parent_ids = index.parents_of(child.id)
        if len(parent_ids) >= 2:
            issues.append(f"{child.full_name} already has two parents")

        age_issues, age_warnings = parent_age_problems(parent, child, min_parent_age, max_parent_age_gap)
        issues.extend(age_issues)
        warnings.extend(age_warnings)

        spouse_id = index.spouse_of(parent.id)
        if spouse_id is not None and spouse_id not in parent_ids:
            spouse = graph.people.get(spouse_id)
            if spouse is not None:
                warnings.append(
                    f"{parent.full_name} is married to {spouse.full_name}; "
                    f"{spouse.full_name} will also be linked as a parent"
                )

        if would_create_cycle(index, parent.id, child.id):
            issues.append(
                f"Cannot add relationship: would create circular ancestry. "
                f"{parent.full_name} is a descendant of {child.full_name}."
            )

    elif rel_type == "sibling":
        if person_a.generation != person_b.generation:
            issues.append("Siblings must be in the same generation")

    if issues:
        logger.debug(f"Rejected {rel_type} {from_id} -> {to_id}: {issues}")
    return ValidationResult(ok=not issues, issues=issues, warnings=warnings)


def would_create_cycle(index: GraphIndex, parent_id: str, child_id: str) -> bool:
    """True when linking parent_id as a parent of child_id makes someone their own ancestor."""
    return parent_id == child_id or index.is_ancestor(child_id, parent_id)


def recommend_relationship_type(graph: FamilyGraph, a_id: str, b_id: str) -> str | None:
    """Suggest the relationship two people's generations allow, or None when none fits."""
    a = graph.people.get(a_id)
    b = graph.people.get(b_id)
    if a is None or b is None or a_id == b_id:
        return None
    difference = abs(a.generation - b.generation)
    if difference == 0:
        return "spouse"
    if difference == 1:
        return "parent-child"
    return None


def suggest_generation(anchor: Person, rel_type: str, as_parent: bool = False) -> int | None:
    """
    Generation for a new person related to `anchor`.

    Args:
        anchor: Existing person the new one attaches to
        rel_type: Relationship the new person will have with the anchor
        as_parent: For parent-child, whether the new person is the anchor's parent

    Returns:
        The generation, or None when it would fall outside the five tree rows
    """
    if rel_type in ("spouse", "sibling"):
        generation = anchor.generation
    elif rel_type == "parent-child":
        generation = anchor.generation - 1 if as_parent else anchor.generation + 1
    else:
        return None
    return generation if generation in GENERATIONS else None
