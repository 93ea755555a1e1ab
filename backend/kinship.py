"""Kinship labels ("Maternal Grandparent", "First Cousin") derived from graph paths.

A label comes from the shortest chain of typed hops (parent, child, spouse,
sibling) leading from one person to another, matched against RULES in order.
"""

import logging

from family_graph import FamilyGraph, GraphIndex, GraphModel, get_person

logger = logging.getLogger("familycanvas.kinship")

MAX_PATH_DEPTH = 5

# (hop pattern, label, type, depends on lineage, cousin degree)
RULES = [
    (("parent",), "Parent", "parent", False, None),
    (("child",), "Child", "child", False, None),
    (("spouse",), "Spouse", "spouse", False, None),
    (("sibling",), "Sibling", "sibling", False, None),
    (("parent", "child"), "Sibling", "sibling", False, None),
    (("child", "parent"), "Co-parent", "co_parent", False, None),
    (("parent", "parent"), "Grandparent", "grandparent", True, None),
    (("parent", "sibling"), "Uncle/Aunt", "uncle_aunt", True, None),
    (("parent", "spouse"), "Step-parent", "step_parent", False, None),
    (("spouse", "parent"), "Parent-in-law", "parent_in_law", False, None),
    (("child", "child"), "Grandchild", "grandchild", False, None),
    (("sibling", "child"), "Niece/Nephew", "niece_nephew", False, None),
    (("child", "spouse"), "Child-in-law", "child_in_law", False, None),
    (("sibling", "spouse"), "Sibling-in-law", "sibling_in_law", False, None),
    (("spouse", "sibling"), "Sibling-in-law", "sibling_in_law", False, None),
    (("parent", "parent", "child"), "Uncle/Aunt", "uncle_aunt", True, None),
    (("parent", "child", "child"), "Niece/Nephew", "niece_nephew", False, None),
    (("parent", "sibling", "child"), "First Cousin", "cousin", True, 1),
    (("parent", "sibling", "spouse"), "Uncle/Aunt-in-law", "uncle_aunt_in_law", True, None),
    (("spouse", "parent", "sibling"), "Uncle/Aunt by marriage", "uncle_aunt_by_marriage", False, None),
    (("sibling", "spouse", "child"), "Niece/Nephew-in-law", "niece_nephew_in_law", False, None),
    (("sibling", "child", "spouse"), "Niece/Nephew's Spouse", "niece_nephew_spouse", False, None),
    (("spouse", "sibling", "spouse"), "Sibling-in-Law's Spouse", "sibling_in_law_spouse", False, None),
    (("parent", "parent", "parent"), "Great-Grandparent", "great_grandparent", True, None),
    (("parent", "parent", "sibling"), "Great-Uncle/Aunt", "great_uncle_aunt", True, None),
    (("child", "child", "child"), "Great-Grandchild", "great_grandchild", False, None),
    (("sibling", "child", "child"), "Sibling's Grandchild", "sibling_grandchild", False, None),
    (("parent", "parent", "child", "child"), "First Cousin", "cousin", True, 1),
    (("parent", "sibling", "child", "child"), "Cousin's Child", "cousin_child", True, 1),
    (("parent", "sibling", "child", "spouse"), "Cousin's Spouse", "cousin_spouse", True, None),
    (("parent", "parent", "sibling", "child"), "Parent's Cousin", "parent_cousin", True, 1),
    (("spouse", "parent", "sibling", "child"), "Spouse's Cousin", "spouse_cousin", False, None),
    (("parent", "parent", "parent", "parent"), "Great-Great-Grandparent", "great_great_grandparent", True, None),
    (("parent", "parent", "sibling", "child", "child"), "Second Cousin", "cousin", True, 2),
    (("parent", "sibling", "child", "child", "child"), "Cousin's Grandchild", "cousin_grandchild", True, 1),
]

GENDERED_LABELS = {
    "Parent": ("Father", "Mother"),
    "Child": ("Son", "Daughter"),
    "Spouse": ("Husband", "Wife"),
    "Sibling": ("Brother", "Sister"),
    "Grandparent": ("Grandfather", "Grandmother"),
    "Grandchild": ("Grandson", "Granddaughter"),
    "Uncle/Aunt": ("Uncle", "Aunt"),
    "Niece/Nephew": ("Nephew", "Niece"),
    "Step-parent": ("Stepfather", "Stepmother"),
    "Parent-in-law": ("Father-in-law", "Mother-in-law"),
    "Child-in-law": ("Son-in-law", "Daughter-in-law"),
    "Sibling-in-law": ("Brother-in-law", "Sister-in-law"),
    "Great-Grandparent": ("Great-Grandfather", "Great-Grandmother"),
    "Great-Uncle/Aunt": ("Great-Uncle", "Great-Aunt"),
}


class DerivedRelationship(GraphModel):
    """How one person is related to another."""
    label: str
    type: str
    short_label: str
    lineage: str | None = None
    degree: int | None = None
    path: list[str] = []


def _neighbours(index: GraphIndex, person_id: str) -> list[tuple[str, str]]:
    hops = [("parent", pid) for pid in index.parents_of(person_id)]
    hops += [("child", pid) for pid in index.children_of(person_id)]
    spouse_id = index.spouse_of(person_id)
    if spouse_id is not None:
        hops.append(("spouse", spouse_id))
    hops += [("sibling", pid) for pid in index.siblings_of(person_id)]
    return hops


def find_paths(index: GraphIndex, from_id: str, to_id: str, max_depth: int = MAX_PATH_DEPTH):
    """
    Yield, depth by depth, the simple paths from one person to another.

    Each yielded item is the list of (hops, nodes) pairs found at that depth, so
    callers can stop at the shortest depth that produces a usable path.
    """
    frontier = [((), (from_id,))]
    for _ in range(max_depth):
        found = []
        next_frontier = []
        for hops, nodes in frontier:
            for hop, neighbour in _neighbours(index, nodes[-1]):
                if neighbour in nodes:
                    continue
                entry = (hops + (hop,), nodes + (neighbour,))
                if neighbour == to_id:
                    found.append(entry)
                else:
                    next_frontier.append(entry)
        if found:
            yield found
        if not next_frontier:
            return
        frontier = next_frontier


def _lineage(graph: FamilyGraph, nodes: tuple) -> str | None:
    """Maternal or paternal, from the gender of the first parent on the path."""
    first_parent = graph.people.get(nodes[1])
    if first_parent is None:
        return None
    return "maternal" if first_parent.gender == "female" else "paternal"


def derive_relationship(graph: FamilyGraph, from_id: str, to_id: str,
                        index: GraphIndex | None = None) -> DerivedRelationship | None:
    """
    Label how `to_id` is related to `from_id`.

    Returns:
        The derived relationship, a "Distant Relative" when the two are connected
        but no rule matches, or None when no path of at most MAX_PATH_DEPTH hops exists
    """
    get_person(graph, from_id)
    target = get_person(graph, to_id)
    if from_id == to_id:
        return DerivedRelationship(label="Self", type="self", short_label="Self")

    index = index or GraphIndex(graph)
    connected = False
    for paths in find_paths(index, from_id, to_id):
        connected = True
        for pattern, label, rel_type, by_lineage, degree in RULES:
            match = next((nodes for hops, nodes in paths if hops == pattern), None)
            if match is None:
                continue
            gendered = GENDERED_LABELS.get(label)
            short_label = label
            if gendered:
                short_label = gendered[0] if target.gender == "male" else gendered[1]
            lineage = _lineage(graph, match) if by_lineage else None
            if lineage:
                label = f"{lineage.capitalize()} {label}"
            return DerivedRelationship(
                label=label,
                type=rel_type,
                short_label=short_label,
                lineage=lineage,
                degree=degree,
                path=list(match),
            )

    if connected:
        return DerivedRelationship(label="Distant Relative", type="distant", short_label="Relative")
    logger.debug(f"No path between {from_id} and {to_id}")
    return None


def relationships_for(graph: FamilyGraph, person_id: str) -> dict[str, DerivedRelationship]:
    """Label everyone connected to `person_id`."""
    index = GraphIndex(graph)
    labels = {}
    for other_id in graph.people:
        if other_id == person_id:
            continue
        derived = derive_relationship(graph, person_id, other_id, index=index)
        if derived is not None:
            labels[other_id] = derived
    return labels
