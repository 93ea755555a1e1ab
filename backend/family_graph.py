"""Family graph model: people, relationships and the grid they are laid out on.

Graphs are immutable values. Every edit helper in this module returns a new
FamilyGraph and leaves the one it was given untouched, so older versions can be
kept around for undo and compared for equality in tests.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date
from typing import Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tree_errors import NotFound

logger = logging.getLogger("familycanvas.family_graph")


# ============================================================================
# Generations and Grid Geometry
# ============================================================================

GENERATIONS = (-2, -1, 0, 1, 2)

GENERATION_MAX = {-2: 4, -1: 20, 0: 78, 1: 42, 2: 18}

GENERATION_TITLES = {
    -2: "Grandparents (Maternal & Paternal)",
    -1: "Parents, In-Laws, & Parents' Siblings",
    0: "Your Generation & Siblings/Cousins",
    1: "Children",
    2: "Grandchildren",
}

TREE_CAPACITY = sum(GENERATION_MAX.values())

NODE_WIDTH = 100
CANVAS_WIDTH = 18000
LEFT_MARGIN = 200
RIGHT_MARGIN = 200
SLOT_COUNT = (CANVAS_WIDTH - LEFT_MARGIN - RIGHT_MARGIN) // NODE_WIDTH
CENTER_SLOT = SLOT_COUNT // 2

GENERATION_Y = {-2: 90, -1: 270, 0: 450, 1: 630, 2: 810}

Gender = Literal["male", "female"]
LifeStatus = Literal["alive", "deceased"]
RelationshipType = Literal["spouse", "parent-child", "sibling"]
RELATIONSHIP_TYPES = ("spouse", "parent-child", "sibling")


def slot_x(slot: int) -> int:
    """Horizontal centre of a grid slot on the canvas."""
    return LEFT_MARGIN + slot * NODE_WIDTH + NODE_WIDTH // 2


def slot_position(generation: int, slot: int) -> "Position":
    return Position(x=slot_x(slot), y=GENERATION_Y[generation])


# ============================================================================
# Models
# ============================================================================

class GraphModel(BaseModel):
    """Base for graph values: frozen, camelCase on the wire."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Position(GraphModel):
    x: int
    y: int


class Person(GraphModel):
    """A person placed on the tree canvas."""
    id: str
    first_name: str
    last_name: str = ""
    gender: Gender
    status: LifeStatus = "alive"
    generation: int = Field(ge=-2, le=2, description="0 is the owner's generation, negative are ancestors")
    grid_slot: int = Field(ge=0, lt=SLOT_COUNT)
    position: Position
    is_root: bool = False
    date_of_birth: date | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Relationship(GraphModel):
    """A typed edge. For parent-child edges `from_id` is the parent."""
    id: str
    type: RelationshipType
    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")

    def touches(self, person_id: str) -> bool:
        return person_id in (self.from_id, self.to_id)

    def other(self, person_id: str) -> str:
        return self.to_id if self.from_id == person_id else self.from_id


class GenerationLimit(GraphModel):
    current: int = Field(ge=0)
    max: int = Field(ge=0)


class FamilyGraph(GraphModel):
    """The whole tree: people and relationships keyed by id, plus per-generation counters."""
    people: dict[str, Person] = Field(default_factory=dict)
    relationships: dict[str, Relationship] = Field(default_factory=dict)
    root_user_id: str
    generation_limits: dict[int, GenerationLimit] = Field(default_factory=dict)

    @property
    def root(self) -> Person:
        return self.people[self.root_user_id]

    @property
    def person_count(self) -> int:
        return len(self.people)


# ============================================================================
# ID Generation
# ============================================================================

def new_person_id() -> str:
    return f"person_{uuid.uuid4().hex[:12]}"


def new_relationship_id(tag: str | None = None) -> str:
    """Generate a relationship id, optionally tagged with how the edge came to exist."""
    suffix = uuid.uuid4().hex[:12]
    return f"rel_{suffix}_{tag}" if tag else f"rel_{suffix}"


# ============================================================================
# Graph Construction and Editing
# ============================================================================

def count_generations(
    people: Iterable[Person],
    previous: dict[int, GenerationLimit] | None = None,
) -> dict[int, GenerationLimit]:
    """Recount live people per generation, keeping any maxima already configured."""
    counts = {generation: 0 for generation in GENERATIONS}
    for person in people:
        counts[person.generation] += 1
    limits = {}
    for generation in GENERATIONS:
        maximum = previous[generation].max if previous and generation in previous else GENERATION_MAX[generation]
        limits[generation] = GenerationLimit(current=counts[generation], max=maximum)
    return limits


def rebuild(
    graph: FamilyGraph,
    people: dict[str, Person] | None = None,
    relationships: dict[str, Relationship] | None = None,
) -> FamilyGraph:
    """Return a new graph version with replaced contents and recounted limits."""
    people = graph.people if people is None else people
    relationships = graph.relationships if relationships is None else relationships
    return FamilyGraph(
        people=people,
        relationships=relationships,
        root_user_id=graph.root_user_id,
        generation_limits=count_generations(people.values(), graph.generation_limits),
    )


def create_family_graph(
    root_id: str,
    first_name: str,
    last_name: str = "",
    gender: Gender = "male",
    date_of_birth: date | None = None,
) -> FamilyGraph:
    """Seed a new tree with its owner as the root person in the centre of generation 0."""
    root = Person(
        id=root_id,
        first_name=first_name,
        last_name=last_name,
        gender=gender,
        generation=0,
        grid_slot=CENTER_SLOT,
        position=slot_position(0, CENTER_SLOT),
        is_root=True,
        date_of_birth=date_of_birth,
    )
    logger.info(f"Seeded family graph for root {root_id}")
    return FamilyGraph(
        people={root.id: root},
        relationships={},
        root_user_id=root.id,
        generation_limits=count_generations([root]),
    )


def get_person(graph: FamilyGraph, person_id: str) -> Person:
    person = graph.people.get(person_id)
    if person is None:
        logger.warning(f"Person not found in graph: {person_id}")
        raise NotFound(f"Person not found: {person_id}")
    return person


def get_relationship(graph: FamilyGraph, relationship_id: str) -> Relationship:
    relationship = graph.relationships.get(relationship_id)
    if relationship is None:
        logger.warning(f"Relationship not found in graph: {relationship_id}")
        raise NotFound(f"Relationship not found: {relationship_id}")
    return relationship


def place_person(person: Person, slot: int) -> Person:
    """Copy of `person` at `slot`, with its position recomputed from the slot."""
    return person.model_copy(update={
        "grid_slot": slot,
        "position": slot_position(person.generation, slot),
    })


def with_people(graph: FamilyGraph, people: Iterable[Person]) -> FamilyGraph:
    """Insert or replace people by id."""
    updated = dict(graph.people)
    for person in people:
        updated[person.id] = person
    return rebuild(graph, people=updated)


def with_slots(graph: FamilyGraph, slots: dict[str, int]) -> FamilyGraph:
    """Move several people at once. Applied together so swaps never collide."""
    return with_people(graph, [place_person(graph.people[pid], slot) for pid, slot in slots.items()])


def without_person(graph: FamilyGraph, person_id: str) -> tuple[FamilyGraph, list[Relationship]]:
    """Remove a person and every relationship touching them.

    Returns:
        The new graph and the removed relationships, so the deletion can be undone.
    """
    get_person(graph, person_id)
    removed = [rel for rel in graph.relationships.values() if rel.touches(person_id)]
    people = {pid: p for pid, p in graph.people.items() if pid != person_id}
    relationships = {rid: r for rid, r in graph.relationships.items() if not r.touches(person_id)}
    return rebuild(graph, people=people, relationships=relationships), removed


def with_relationships(graph: FamilyGraph, relationships: Iterable[Relationship]) -> FamilyGraph:
    updated = dict(graph.relationships)
    for relationship in relationships:
        updated[relationship.id] = relationship
    return rebuild(graph, relationships=updated)


def without_relationships(graph: FamilyGraph, relationship_ids: Iterable[str]) -> FamilyGraph:
    drop = set(relationship_ids)
    return rebuild(graph, relationships={rid: r for rid, r in graph.relationships.items() if rid not in drop})


# ============================================================================
# Adjacency Index
# ============================================================================

class GraphIndex:
    """Id-indexed adjacency built once per graph version.

    Lookups never scan the relationship list; ancestor sets are memoized for the
    lifetime of the index.
    """

    def __init__(self, graph: FamilyGraph):
        self.graph = graph
        self._parents: dict[str, list[str]] = defaultdict(list)
        self._children: dict[str, list[str]] = defaultdict(list)
        self._siblings: dict[str, list[str]] = defaultdict(list)
        self._spouse: dict[str, str] = {}
        self._by_pair: dict[frozenset, Relationship] = {}
        self._slots: dict[int, dict[int, str]] = defaultdict(dict)
        self._ancestors: dict[str, frozenset] = {}

        for person in graph.people.values():
            self._slots[person.generation][person.grid_slot] = person.id

        for rel in graph.relationships.values():
            self._by_pair[frozenset((rel.from_id, rel.to_id))] = rel
            if rel.type == "parent-child":
                self._parents[rel.to_id].append(rel.from_id)
                self._children[rel.from_id].append(rel.to_id)
            elif rel.type == "spouse":
                self._spouse[rel.from_id] = rel.to_id
                self._spouse[rel.to_id] = rel.from_id
            elif rel.type == "sibling":
                self._siblings[rel.from_id].append(rel.to_id)
                self._siblings[rel.to_id].append(rel.from_id)

    def parents_of(self, person_id: str) -> list[str]:
        return list(self._parents.get(person_id, ()))

    def children_of(self, person_id: str) -> list[str]:
        return list(self._children.get(person_id, ()))

    def siblings_of(self, person_id: str) -> list[str]:
        """Explicit sibling edges only."""
        return list(self._siblings.get(person_id, ()))

    def spouse_of(self, person_id: str) -> str | None:
        return self._spouse.get(person_id)

    def relationship_between(self, a: str, b: str) -> Relationship | None:
        return self._by_pair.get(frozenset((a, b)))

    def slots_in(self, generation: int) -> dict[int, str]:
        """Occupied slots of a generation mapped to the person sitting there."""
        return dict(self._slots.get(generation, {}))

    def ancestors_of(self, person_id: str) -> frozenset:
        if person_id in self._ancestors:
            return self._ancestors[person_id]
        # Placeholder stops runaway recursion on a malformed (cyclic) stored graph.
        self._ancestors[person_id] = frozenset()
        found = set()
        for parent_id in self._parents.get(person_id, ()):
            found.add(parent_id)
            found |= self.ancestors_of(parent_id)
        result = frozenset(found)
        self._ancestors[person_id] = result
        return result

    def is_ancestor(self, ancestor_id: str, person_id: str) -> bool:
        return ancestor_id in self.ancestors_of(person_id)


# ============================================================================
# Invariant Checks
# ============================================================================

def check_invariants(graph: FamilyGraph) -> list[str]:
    """Report every structural rule the graph currently breaks.

    Used when loading stored graphs. An empty list means the graph is consistent.
    """
    problems = []
    index = GraphIndex(graph)

    spouse_count: dict[str, int] = defaultdict(int)
    parent_count: dict[str, int] = defaultdict(int)
    for rel in graph.relationships.values():
        for pid in (rel.from_id, rel.to_id):
            if pid not in graph.people:
                problems.append(f"Relationship {rel.id} references missing person {pid}")
        if rel.type == "spouse":
            spouse_count[rel.from_id] += 1
            spouse_count[rel.to_id] += 1
        elif rel.type == "parent-child":
            parent_count[rel.to_id] += 1

    for pid, count in spouse_count.items():
        if count > 1:
            problems.append(f"{pid} has {count} spouses")
    for pid, count in parent_count.items():
        if count > 2:
            problems.append(f"{pid} has {count} parents")

    for pid in graph.people:
        if index.is_ancestor(pid, pid):
            problems.append(f"{pid} is their own ancestor")

    seen: dict[tuple[int, int], str] = {}
    for person in graph.people.values():
        key = (person.generation, person.grid_slot)
        if key in seen:
            problems.append(f"{person.id} and {seen[key]} share slot {person.grid_slot} in generation {person.generation}")
        seen[key] = person.id
        if person.position != slot_position(person.generation, person.grid_slot):
            problems.append(f"{person.id} position does not match slot {person.grid_slot}")

    for rel in graph.relationships.values():
        if rel.type != "spouse" or rel.from_id not in graph.people or rel.to_id not in graph.people:
            continue
        a, b = graph.people[rel.from_id], graph.people[rel.to_id]
        if a.generation != b.generation:
            problems.append(f"Spouses {a.id} and {b.id} are in different generations")
            continue
        if abs(a.grid_slot - b.grid_slot) != 2:
            problems.append(f"Spouses {a.id} and {b.id} are not two slots apart")
            continue
        middle = (a.grid_slot + b.grid_slot) // 2
        if (a.generation, middle) in seen:
            problems.append(f"Connector slot between {a.id} and {b.id} is occupied")

    roots = [p.id for p in graph.people.values() if p.is_root]
    if len(roots) != 1:
        problems.append(f"Expected exactly one root, found {len(roots)}")
    elif roots[0] != graph.root_user_id:
        problems.append(f"Root flag is on {roots[0]} but root_user_id is {graph.root_user_id}")

    for generation, limit in graph.generation_limits.items():
        live = sum(1 for p in graph.people.values() if p.generation == generation)
        if limit.current != live:
            problems.append(f"Generation {generation} counter is {limit.current}, live count is {live}")
        if live > limit.max:
            problems.append(f"Generation {generation} holds {live} people, over its limit of {limit.max}")

    return problems
