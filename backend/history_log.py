"""Bounded undo/redo history over graph edits.

Each entry is a coarse action record carrying enough data to invert itself.
Inverses are applied to the graph passed in, never to a stored snapshot, so undo
works on whatever version the session currently holds.
"""

import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from family_graph import (
    FamilyGraph,
    Person,
    Relationship,
    with_people,
    with_relationships,
    with_slots,
    without_person,
    without_relationships,
)
from grid_placement import SlotChange

logger = logging.getLogger("familycanvas.history_log")

DEFAULT_MAX_HISTORY = 50


# ============================================================================
# Action Records
# ============================================================================

class AddPerson(BaseModel):
    kind: Literal["add_person"] = "add_person"
    person: Person


class DeletePerson(BaseModel):
    kind: Literal["delete_person"] = "delete_person"
    person: Person
    relationships: list[Relationship] = Field(default_factory=list)
    was_collapsed: bool = Field(default=False, description="Person's subtree was collapsed when deleted")


class MovePerson(BaseModel):
    """A single move, or a swap (two changes)."""
    kind: Literal["move_person"] = "move_person"
    changes: list[SlotChange]


class MoveSpousePair(BaseModel):
    kind: Literal["move_spouse_pair"] = "move_spouse_pair"
    changes: list[SlotChange]


class AddRelationship(BaseModel):
    """The explicit edge first, followed by every edge propagated alongside it."""
    kind: Literal["add_relationship"] = "add_relationship"
    relationships: list[Relationship]
    slot_changes: list[SlotChange] = Field(default_factory=list)


class DeleteRelationship(BaseModel):
    kind: Literal["delete_relationship"] = "delete_relationship"
    relationship: Relationship


class EditProfile(BaseModel):
    kind: Literal["edit_profile"] = "edit_profile"
    before: Person
    after: Person


class BulkAdd(BaseModel):
    """People and relationships added together, e.g. by a family wizard."""
    kind: Literal["bulk_add"] = "bulk_add"
    label: str = "family"
    people: list[Person]
    relationships: list[Relationship] = Field(default_factory=list)
    slot_changes: list[SlotChange] = Field(default_factory=list)


HistoryRecord = Annotated[
    Union[AddPerson, DeletePerson, MovePerson, MoveSpousePair, AddRelationship,
          DeleteRelationship, EditProfile, BulkAdd],
    Field(discriminator="kind"),
]


def describe_action(record: HistoryRecord) -> str:
    """Human-readable label for an action, as shown in undo/redo toasts."""
    if record.kind == "add_person":
        return f"Added {record.person.full_name}"
    elif record.kind == "delete_person":
        return f"Deleted {record.person.full_name}"
    elif record.kind == "move_person":
        return "Swapped people" if len(record.changes) > 1 else "Moved person"
    elif record.kind == "move_spouse_pair":
        return "Moved spouse pair"
    elif record.kind == "add_relationship":
        primary = record.relationships[0]
        label = "marriage" if primary.type == "spouse" else primary.type
        return f"Created {label} relationship"
    elif record.kind == "delete_relationship":
        return "Removed relationship"
    elif record.kind == "edit_profile":
        return "Edited profile"
    elif record.kind == "bulk_add":
        return f"Completed {record.label} wizard"
    return "Unknown action"


# ============================================================================
# Applying Records
# ============================================================================

def apply_inverse(graph: FamilyGraph, record: HistoryRecord) -> FamilyGraph:
    """Return the graph with `record` undone."""
    if record.kind == "add_person":
        graph, _ = without_person(graph, record.person.id)
        return graph

    elif record.kind == "delete_person":
        graph = with_people(graph, [record.person])
        return with_relationships(graph, record.relationships)

    elif record.kind in ("move_person", "move_spouse_pair"):
        return with_slots(graph, {c.person_id: c.from_slot for c in record.changes})

    elif record.kind == "add_relationship":
        graph = without_relationships(graph, [r.id for r in record.relationships])
        if record.slot_changes:
            graph = with_slots(graph, {c.person_id: c.from_slot for c in record.slot_changes})
        return graph

    elif record.kind == "delete_relationship":
        return with_relationships(graph, [record.relationship])

    elif record.kind == "edit_profile":
        return with_people(graph, [record.before])

    elif record.kind == "bulk_add":
        graph = without_relationships(graph, [r.id for r in record.relationships])
        for person in reversed(record.people):
            graph, _ = without_person(graph, person.id)
        if record.slot_changes:
            graph = with_slots(graph, {c.person_id: c.from_slot for c in record.slot_changes})
        return graph

    raise ValueError(f"Unknown history record kind: {record.kind}")


def apply_forward(graph: FamilyGraph, record: HistoryRecord) -> FamilyGraph:
    """Return the graph with `record` re-applied."""
    if record.kind == "add_person":
        return with_people(graph, [record.person])

    elif record.kind == "delete_person":
        graph, _ = without_person(graph, record.person.id)
        return graph

    elif record.kind in ("move_person", "move_spouse_pair"):
        return with_slots(graph, {c.person_id: c.to_slot for c in record.changes})

    elif record.kind == "add_relationship":
        if record.slot_changes:
            graph = with_slots(graph, {c.person_id: c.to_slot for c in record.slot_changes})
        return with_relationships(graph, record.relationships)

    elif record.kind == "delete_relationship":
        return without_relationships(graph, [record.relationship.id])

    elif record.kind == "edit_profile":
        return with_people(graph, [record.after])

    elif record.kind == "bulk_add":
        if record.slot_changes:
            graph = with_slots(graph, {c.person_id: c.to_slot for c in record.slot_changes})
        graph = with_people(graph, record.people)
        return with_relationships(graph, record.relationships)

    raise ValueError(f"Unknown history record kind: {record.kind}")


# ============================================================================
# History Log
# ============================================================================

class HistoryLog:
    """Two-stack undo/redo log holding at most `max_entries` undoable actions."""

    def __init__(self, max_entries: int = DEFAULT_MAX_HISTORY):
        self.max_entries = max_entries
        self._undo: list[HistoryRecord] = []
        self._redo: list[HistoryRecord] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def record(self, record: HistoryRecord) -> None:
        """Append an action. Any redoable actions are discarded."""
        self._undo.append(record)
        self._redo.clear()
        if len(self._undo) > self.max_entries:
            dropped = len(self._undo) - self.max_entries
            del self._undo[:dropped]
            logger.debug(f"History full, dropped {dropped} oldest action(s)")

    def undo(self, graph: FamilyGraph) -> tuple[FamilyGraph, HistoryRecord]:
        if not self._undo:
            raise RuntimeError("Nothing to undo")
        record = self._undo.pop()
        graph = apply_inverse(graph, record)
        self._redo.append(record)
        logger.info(f"Undid: {describe_action(record)}")
        return graph, record

    def redo(self, graph: FamilyGraph) -> tuple[FamilyGraph, HistoryRecord]:
        if not self._redo:
            raise RuntimeError("Nothing to redo")
        record = self._redo.pop()
        graph = apply_forward(graph, record)
        self._undo.append(record)
        logger.info(f"Redid: {describe_action(record)}")
        return graph, record

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def entries(self) -> dict[str, list[str]]:
        """Descriptions of undoable and redoable actions, most recent first."""
        return {
            "undo": [describe_action(r) for r in reversed(self._undo)],
            "redo": [describe_action(r) for r in reversed(self._redo)],
        }
