"""Grid placement: slot allocation and movement on the generation rows.

Every person sits in a discrete slot of their generation's row. A married couple
occupies two slots exactly two apart with the slot between them left empty for the
connector glyph. Allocation and movement never split a couple or put a third person
inside a couple's connector span; when no legal slot exists the edit is rejected
with PlacementExhausted instead.
"""

import logging
from typing import Literal, NamedTuple

from pydantic import BaseModel

from family_graph import (
    CENTER_SLOT,
    SLOT_COUNT,
    FamilyGraph,
    GraphIndex,
    get_person,
    slot_x,
    with_slots,
)
from tree_errors import PlacementExhausted

logger = logging.getLogger("familycanvas.grid_placement")

MAX_PAIR_SEARCH = 20

Direction = Literal["left", "right"]


class SpousePair(NamedTuple):
    left_id: str
    right_id: str
    left_slot: int
    right_slot: int

    @property
    def protected(self) -> range:
        """Slots strictly between the two spouses."""
        return range(self.left_slot + 1, self.right_slot)

    @property
    def span(self) -> range:
        return range(self.left_slot, self.right_slot + 1)

    def includes(self, person_id: str) -> bool:
        return person_id in (self.left_id, self.right_id)


class SlotChange(BaseModel):
    """One person's slot before and after a placement edit."""
    person_id: str
    from_slot: int
    to_slot: int
    from_x: int
    to_x: int


class MoveOutcome(BaseModel):
    """Result of a successful move."""
    graph: FamilyGraph
    changes: list[SlotChange]
    kind: Literal["pair", "single", "swap"]
    jumped: bool = False


def slot_change(person_id: str, from_slot: int, to_slot: int) -> SlotChange:
    return SlotChange(
        person_id=person_id,
        from_slot=from_slot,
        to_slot=to_slot,
        from_x=slot_x(from_slot),
        to_x=slot_x(to_slot),
    )


def in_bounds(slot: int) -> bool:
    return 0 <= slot < SLOT_COUNT


# ============================================================================
# Spouse Pairs and Protected Slots
# ============================================================================

def spouse_pairs(graph: FamilyGraph, generation: int) -> list[SpousePair]:
    """All spouse pairs seated in a generation, ordered left to right."""
    pairs = []
    for rel in graph.relationships.values():
        if rel.type != "spouse":
            continue
        a = graph.people.get(rel.from_id)
        b = graph.people.get(rel.to_id)
        if a is None or b is None or a.generation != generation or b.generation != generation:
            continue
        if a.grid_slot > b.grid_slot:
            a, b = b, a
        pairs.append(SpousePair(a.id, b.id, a.grid_slot, b.grid_slot))
    return sorted(pairs, key=lambda pair: pair.left_slot)


def protected_slots(graph: FamilyGraph, generation: int) -> set[int]:
    protected = set()
    for pair in spouse_pairs(graph, generation):
        protected.update(pair.protected)
    return protected


def _outward_from(center: int):
    """Slots in search order: center, center+1, center-1, center+2, ..."""
    if in_bounds(center):
        yield center
    for k in range(1, SLOT_COUNT):
        if in_bounds(center + k):
            yield center + k
        if in_bounds(center - k):
            yield center - k


# ============================================================================
# Allocation
# ============================================================================

def next_free_slot(
    graph: FamilyGraph,
    generation: int,
    preferred_slot: int | None = None,
    allow_connector_fallback: bool = False,
) -> int:
    """
    Find a slot for a new person in `generation`.

    Args:
        graph: Current graph
        generation: Row to place into
        preferred_slot: Slot the user picked (e.g. a "+" button); used when free
        allow_connector_fallback: When the row has no free slot, hand out an empty
            connector slot instead of failing. Off by default because it breaks
            spouse adjacency.

    Returns:
        The chosen slot

    Raises:
        PlacementExhausted: No free slot in the row
    """
    occupied = set(GraphIndex(graph).slots_in(generation))
    protected = protected_slots(graph, generation)

    def is_free(slot: int) -> bool:
        return in_bounds(slot) and slot not in occupied and slot not in protected

    if preferred_slot is not None:
        if is_free(preferred_slot):
            return preferred_slot
        logger.debug(f"Preferred slot {preferred_slot} unavailable in generation {generation}")

    for slot in _outward_from(CENTER_SLOT):
        if is_free(slot):
            return slot

    if allow_connector_fallback:
        for slot in range(SLOT_COUNT):
            if slot not in occupied:
                logger.warning(f"Generation {generation} is full; using connector slot {slot}")
                return slot

    raise PlacementExhausted(f"No free slot left in generation {generation}")


def empty_slots(graph: FamilyGraph, generation: int) -> list[int]:
    """Slots a new person could be placed in, left to right."""
    occupied = set(GraphIndex(graph).slots_in(generation))
    protected = protected_slots(graph, generation)
    return [slot for slot in range(SLOT_COUNT) if slot not in occupied and slot not in protected]


# ============================================================================
# Movement
# ============================================================================

def move_person(graph: FamilyGraph, person_id: str, direction: Direction) -> MoveOutcome:
    """
    Move a person one step left or right on their row.

    Married people move together with their spouse as a rigid pair. Single people
    take the nearest empty slot in `direction`, jumping over couples, and fall back
    to swapping places with an unmarried neighbour.

    Raises:
        NotFound: Unknown person
        PlacementExhausted: No legal position in that direction; graph unchanged
    """
    if direction not in ("left", "right"):
        raise ValueError(f"Invalid direction: {direction}")
    person = get_person(graph, person_id)
    index = GraphIndex(graph)
    step = 1 if direction == "right" else -1

    spouse_id = index.spouse_of(person_id)
    spouse = graph.people.get(spouse_id) if spouse_id else None
    if spouse is not None and spouse.generation == person.generation:
        return _move_pair(graph, index, person.generation, person_id, step, direction)
    return _move_single(graph, index, person_id, step, direction)


def _move_pair(graph: FamilyGraph, index: GraphIndex, generation: int, person_id: str,
               step: int, direction: str) -> MoveOutcome:
    pairs = spouse_pairs(graph, generation)
    pair = next(p for p in pairs if p.includes(person_id))
    gap = pair.right_slot - pair.left_slot

    blocked = {slot for slot, pid in index.slots_in(generation).items() if not pair.includes(pid)}
    for other in pairs:
        if other != pair:
            blocked.update(other.span)

    for offset in range(1, MAX_PAIR_SEARCH + 1):
        new_left = pair.left_slot + step * offset
        new_right = new_left + gap
        if not in_bounds(new_left) or not in_bounds(new_right):
            break
        if any(slot in blocked for slot in range(new_left, new_right + 1)):
            continue

        changes = [
            slot_change(pair.left_id, pair.left_slot, new_left),
            slot_change(pair.right_id, pair.right_slot, new_right),
        ]
        moved = with_slots(graph, {pair.left_id: new_left, pair.right_id: new_right})
        logger.info(f"Moved couple {pair.left_id}/{pair.right_id} {direction} by {offset}")
        return MoveOutcome(graph=moved, changes=changes, kind="pair", jumped=offset > 1)

    raise PlacementExhausted(
        f"Cannot move {direction}. No space for couple to maintain connection "
        f"(searched {MAX_PAIR_SEARCH} slots)."
    )


def _move_single(graph: FamilyGraph, index: GraphIndex, person_id: str,
                 step: int, direction: str) -> MoveOutcome:
    person = graph.people[person_id]
    generation = person.generation
    occupied = index.slots_in(generation)
    occupied.pop(person.grid_slot, None)

    pair_at = {}
    for pair in spouse_pairs(graph, generation):
        for slot in pair.protected:
            pair_at[slot] = pair

    candidate = person.grid_slot + step
    while in_bounds(candidate):
        pair = pair_at.get(candidate)
        if pair is not None:
            # Skip the whole couple; the landing slot is evaluated on the next pass.
            candidate = pair.right_slot + 1 if step > 0 else pair.left_slot - 1
            continue
        if candidate not in occupied:
            changes = [slot_change(person_id, person.grid_slot, candidate)]
            moved = with_slots(graph, {person_id: candidate})
            jumped = abs(candidate - person.grid_slot) > 1
            logger.info(f"Moved {person_id} {direction} to slot {candidate}")
            return MoveOutcome(graph=moved, changes=changes, kind="single", jumped=jumped)
        candidate += step

    neighbour_slot = person.grid_slot + step
    neighbour_id = occupied.get(neighbour_slot)
    if (
        neighbour_id is not None
        and neighbour_slot not in pair_at
        and index.spouse_of(neighbour_id) is None
    ):
        changes = [
            slot_change(person_id, person.grid_slot, neighbour_slot),
            slot_change(neighbour_id, neighbour_slot, person.grid_slot),
        ]
        moved = with_slots(graph, {person_id: neighbour_slot, neighbour_id: person.grid_slot})
        logger.info(f"Swapped {person_id} with {neighbour_id}")
        return MoveOutcome(graph=moved, changes=changes, kind="swap")

    raise PlacementExhausted(f"Cannot move {direction}. No empty slot or movable neighbour found.")


def movement_ability(graph: FamilyGraph, person_id: str) -> dict[str, bool]:
    """Which directions a person can currently be moved in."""
    ability = {}
    for direction in ("left", "right"):
        try:
            move_person(graph, person_id, direction)
            ability[direction] = True
        except PlacementExhausted:
            ability[direction] = False
    return ability


# ============================================================================
# Seating Couples
# ============================================================================

def seat_spouses(graph: FamilyGraph, anchor_id: str, partner_id: str) -> tuple[FamilyGraph, list[SlotChange]]:
    """
    Seat two people who are about to marry two slots apart with an empty connector.

    The partner moves next to the anchor (right side first); when neither side of
    the anchor has room the anchor moves next to the partner instead.

    Returns:
        The graph with the couple seated and the slot changes that were made

    Raises:
        PlacementExhausted: Neither person can be seated beside the other
    """
    anchor = get_person(graph, anchor_id)
    partner = get_person(graph, partner_id)
    generation = anchor.generation
    index = GraphIndex(graph)
    occupied = index.slots_in(generation)

    blocked = set()
    for pair in spouse_pairs(graph, generation):
        if not (pair.includes(anchor_id) or pair.includes(partner_id)):
            blocked.update(pair.span)

    middle = (anchor.grid_slot + partner.grid_slot) // 2
    if (
        abs(anchor.grid_slot - partner.grid_slot) == 2
        and middle not in occupied
        and middle not in blocked
    ):
        return graph, []

    for mover, fixed in ((partner, anchor), (anchor, partner)):
        for target in (fixed.grid_slot + 2, fixed.grid_slot - 2):
            connector = (fixed.grid_slot + target) // 2
            if not in_bounds(target):
                continue
            if any(occupied.get(slot, mover.id) != mover.id for slot in (target, connector)):
                continue
            if target in blocked or connector in blocked:
                continue
            changes = [slot_change(mover.id, mover.grid_slot, target)] if mover.grid_slot != target else []
            logger.info(f"Seating {mover.id} at slot {target} beside {fixed.id}")
            return with_slots(graph, {mover.id: target}), changes

    raise PlacementExhausted(
        f"No room to seat {anchor.full_name} and {partner.full_name} side by side"
    )
