"""Editing session over one family's tree.

Every mutation is validated and placed before it is applied, applied as a new graph
version, recorded in the history log, and then handed to the storage collaborator.
Rejected edits leave the graph untouched. A failed save never rolls back an applied
edit; it is reported back as a warning instead.
"""

import logging
from datetime import date
from typing import Any

from pydantic import ValidationError

from collapse_index import CollapseIndex
from family_graph import (
    GENERATION_MAX,
    GENERATION_TITLES,
    GENERATIONS,
    TREE_CAPACITY,
    FamilyGraph,
    Person,
    Relationship,
    create_family_graph,
    get_person,
    get_relationship,
    new_person_id,
    new_relationship_id,
    slot_position,
    with_people,
    with_relationships,
    without_person,
    without_relationships,
)
from graph_store import GraphStore
from grid_placement import next_free_slot, move_person, seat_spouses, slot_change
from history_log import (
    AddPerson,
    AddRelationship,
    BulkAdd,
    DeletePerson,
    DeleteRelationship,
    EditProfile,
    HistoryLog,
    MovePerson,
    MoveSpousePair,
    describe_action,
)
from relationship_propagation import propagate_parent_child
from relationship_validator import orient_parent_child, validate_parent_ages, validate_relationship
from tree_errors import NotFound, PersistenceFailure, PlacementExhausted, TreeEditError, ValidationRejection
from tree_settings import TreeSettings

logger = logging.getLogger("familycanvas.tree_service")

PROFILE_FIELDS = ("first_name", "last_name", "gender", "status", "date_of_birth")


def _issues_from(error: ValidationError) -> list[str]:
    issues = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        issues.append(f"{location}: {err['msg']}" if location else err["msg"])
    return issues


class FamilyTreeSession:
    """One editor's session on a family tree."""

    def __init__(
        self,
        family_id: str,
        graph: FamilyGraph,
        store: GraphStore | None = None,
        settings: TreeSettings | None = None,
        autosave: bool = True,
    ):
        self.family_id = family_id
        self.graph = graph
        self.store = store
        self.settings = settings or TreeSettings()
        self.autosave = autosave
        self.history = HistoryLog(max_entries=self.settings.max_history)
        self.collapsed = CollapseIndex()
        self.persistence_warnings: list[str] = []

    # ========================================================================
    # Internal helpers
    # ========================================================================

    def _commit(self, graph: FamilyGraph, record, message: str,
                warnings: list[str] | None = None, **extra: Any) -> dict[str, Any]:
        self.graph = graph
        self.history.record(record)
        self.collapsed.refresh(graph)
        logger.info(f"[{self.family_id}] {describe_action(record)}")
        return self._success(message, warnings, **extra)

    def _success(self, message: str, warnings: list[str] | None = None, **extra: Any) -> dict[str, Any]:
        warnings = list(warnings or [])
        if self.autosave:
            warning = self.persist()
            if warning:
                warnings.append(warning)
        return {"success": True, "graph": self.graph, "message": message, "warnings": warnings, **extra}

    def _reject(self, error: TreeEditError) -> dict[str, Any]:
        if isinstance(error, NotFound):
            logger.warning(f"[{self.family_id}] Inconsistent request: {error.reason}")
        else:
            logger.info(f"[{self.family_id}] Rejected edit: {error.reason}")
        result = {"success": False, "error": error.reason, "error_type": error.error_type}
        if isinstance(error, ValidationRejection):
            result["issues"] = error.issues
            result["warnings"] = error.warnings
        return result

    def persist(self) -> str | None:
        """
        Save the current graph through the storage collaborator.

        Returns:
            A warning message when the save failed, None otherwise
        """
        if self.store is None:
            return None
        try:
            self.store.save_family_graph(self.family_id, self.graph)
        except Exception as e:
            failure = e if isinstance(e, PersistenceFailure) else PersistenceFailure(str(e))
            warning = f"Your changes are kept in this session but could not be saved: {failure.reason}"
            logger.warning(f"[{self.family_id}] {warning}")
            self.persistence_warnings.append(warning)
            return warning
        return None

    def _check_capacity(self, graph: FamilyGraph, generation: int) -> None:
        if generation not in GENERATIONS:
            raise ValidationRejection([f"Invalid generation: {generation}"])
        if graph.person_count >= TREE_CAPACITY:
            raise PlacementExhausted(f"The family tree is full ({TREE_CAPACITY} people)")
        limit = graph.generation_limits.get(generation)
        current = limit.current if limit else 0
        maximum = limit.max if limit else GENERATION_MAX[generation]
        if current >= maximum:
            raise PlacementExhausted(
                f"{GENERATION_TITLES[generation]} is full ({maximum} people maximum)"
            )

    def _place_new_person(self, graph: FamilyGraph, details: dict[str, Any]) -> Person:
        """Build a new person in a free slot of `graph`. Capacity is checked before the slot search."""
        generation = details.get("generation", 0)
        self._check_capacity(graph, generation)
        slot = next_free_slot(graph, generation, preferred_slot=details.get("preferred_slot"))
        try:
            return Person(
                id=details.get("person_id") or new_person_id(),
                first_name=details["first_name"],
                last_name=details.get("last_name") or "",
                gender=details.get("gender", "male"),
                status=details.get("status", "alive"),
                generation=generation,
                grid_slot=slot,
                position=slot_position(generation, slot),
                date_of_birth=details.get("date_of_birth"),
            )
        except ValidationError as e:
            raise ValidationRejection(_issues_from(e)) from e

    def _link(self, graph: FamilyGraph, from_id: str, to_id: str,
              rel_type: str) -> tuple[FamilyGraph, list[Relationship], list, list[str]]:
        """Validate, seat and propagate one relationship against `graph`."""
        result = validate_relationship(
            graph, from_id, to_id, rel_type,
            min_parent_age=self.settings.min_parent_age,
            max_parent_age_gap=self.settings.max_parent_age_gap,
        )
        if not result.ok:
            raise ValidationRejection(result.issues, result.warnings)

        slot_changes = []
        if rel_type == "parent-child":
            parent, child = orient_parent_child(graph.people[from_id], graph.people[to_id])
            from_id, to_id = parent.id, child.id
        elif rel_type == "spouse":
            graph, slot_changes = seat_spouses(graph, from_id, to_id)

        primary = Relationship(id=new_relationship_id(), type=rel_type, from_id=from_id, to_id=to_id)
        graph = with_relationships(graph, [primary])
        relationships = [primary]
        if rel_type == "parent-child":
            propagation = propagate_parent_child(
                graph, primary,
                min_parent_age=self.settings.min_parent_age,
                max_parent_age_gap=self.settings.max_parent_age_gap,
            )
            graph = propagation.graph
            relationships.extend(propagation.derived)
            return graph, relationships, slot_changes, result.warnings + propagation.skipped
        return graph, relationships, slot_changes, result.warnings

    # ========================================================================
    # People
    # ========================================================================

    def add_person(
        self,
        first_name: str,
        last_name: str = "",
        gender: str = "male",
        generation: int = 0,
        status: str = "alive",
        date_of_birth: date | str | None = None,
        preferred_slot: int | None = None,
        person_id: str | None = None,
    ) -> dict[str, Any]:
        """Add an unconnected person to a generation row."""
        try:
            if person_id and person_id in self.graph.people:
                raise ValidationRejection([f"Person already exists: {person_id}"])
            person = self._place_new_person(self.graph, {
                "person_id": person_id,
                "first_name": first_name,
                "last_name": last_name,
                "gender": gender,
                "status": status,
                "generation": generation,
                "date_of_birth": date_of_birth,
                "preferred_slot": preferred_slot,
            })
        except TreeEditError as e:
            return self._reject(e)
        graph = with_people(self.graph, [person])
        return self._commit(graph, AddPerson(person=person), f"Added {person.full_name}", person=person)

    def move_person(self, person_id: str, direction: str) -> dict[str, Any]:
        """Move a person (and their spouse) one step left or right."""
        try:
            outcome = move_person(self.graph, person_id, direction)
        except ValueError as e:
            return self._reject(ValidationRejection([str(e)]))
        except TreeEditError as e:
            return self._reject(e)

        if outcome.kind == "pair":
            record = MoveSpousePair(changes=outcome.changes)
            message = "Moved couple"
        elif outcome.kind == "swap":
            record = MovePerson(changes=outcome.changes)
            message = "Swapped positions"
        else:
            record = MovePerson(changes=outcome.changes)
            message = "Moved person"
        if outcome.jumped:
            message += " (jumped to the next open space)"
        return self._commit(outcome.graph, record, message, kind=outcome.kind, jumped=outcome.jumped)

    def delete_person(self, person_id: str) -> dict[str, Any]:
        """Delete a person and every relationship touching them. The root cannot be deleted."""
        try:
            person = get_person(self.graph, person_id)
            if person.is_root or person_id == self.graph.root_user_id:
                raise ValidationRejection(["The root person cannot be deleted"])
        except TreeEditError as e:
            return self._reject(e)
        graph, removed = without_person(self.graph, person_id)
        record = DeletePerson(person=person, relationships=removed,
                              was_collapsed=self.collapsed.is_collapsed(person_id))
        return self._commit(graph, record, f"Deleted {person.full_name}")

    def edit_profile(self, person_id: str, **changes: Any) -> dict[str, Any]:
        """Change name, gender, life status or date of birth."""
        try:
            before = get_person(self.graph, person_id)
            unknown = sorted(set(changes) - set(PROFILE_FIELDS))
            if unknown:
                raise ValidationRejection([f"Cannot edit field: {name}" for name in unknown])
            try:
                after = Person(**{**before.model_dump(), **changes})
            except ValidationError as e:
                raise ValidationRejection(_issues_from(e)) from e
            warnings = []
            if after.date_of_birth != before.date_of_birth:
                ages = validate_parent_ages(
                    self.graph, after,
                    min_parent_age=self.settings.min_parent_age,
                    max_parent_age_gap=self.settings.max_parent_age_gap,
                )
                if not ages.ok:
                    raise ValidationRejection(ages.issues, ages.warnings)
                warnings = ages.warnings
        except TreeEditError as e:
            return self._reject(e)
        if after == before:
            return {"success": True, "graph": self.graph, "message": "No changes", "warnings": []}
        graph = with_people(self.graph, [after])
        return self._commit(graph, EditProfile(before=before, after=after), "Edited profile", warnings, person=after)

    # ========================================================================
    # Relationships
    # ========================================================================

    def validate(self, from_id: str, to_id: str, rel_type: str) -> dict[str, Any]:
        """Check a relationship without creating it."""
        result = validate_relationship(
            self.graph, from_id, to_id, rel_type,
            min_parent_age=self.settings.min_parent_age,
            max_parent_age_gap=self.settings.max_parent_age_gap,
        )
        return result.model_dump()

    def create_relationship(self, from_id: str, to_id: str, rel_type: str) -> dict[str, Any]:
        """
        Connect two people.

        Spouses are seated next to each other first. Parent-child edges bring along
        the edges propagation derives from them; all of it is one undoable action.
        """
        try:
            graph, relationships, slot_changes, warnings = self._link(self.graph, from_id, to_id, rel_type)
        except TreeEditError as e:
            return self._reject(e)

        primary, derived = relationships[0], relationships[1:]
        record = AddRelationship(relationships=relationships, slot_changes=slot_changes)
        message = describe_action(record)
        if derived:
            message += f" ({len(derived)} more linked automatically)"
        return self._commit(graph, record, message, warnings, relationship=primary, derived=derived)

    def delete_relationship(self, relationship_id: str) -> dict[str, Any]:
        try:
            relationship = get_relationship(self.graph, relationship_id)
        except TreeEditError as e:
            return self._reject(e)
        graph = without_relationships(self.graph, [relationship_id])
        return self._commit(graph, DeleteRelationship(relationship=relationship), "Removed relationship")

    def add_family_members(
        self,
        members: list[dict[str, Any]],
        relationships: list[dict[str, Any]],
        label: str = "family",
    ) -> dict[str, Any]:
        """
        Add several people and their relationships as one action (family wizards).

        Args:
            members: Person details, each with a `ref` key that relationships can
                point at, plus the add_person fields
            relationships: Dicts with `from`, `to` (a member ref or an existing
                person id) and `type`
            label: Wizard name used in the history description

        Returns:
            Result dict; on any rejection nothing is added
        """
        start = self.graph
        graph = start
        refs = {}
        warnings = []
        try:
            seen_refs = set()
            for member in members:
                ref = member.get("ref")
                if not ref:
                    continue
                if ref in seen_refs:
                    raise ValidationRejection([f"Duplicate member ref: {ref}"])
                if ref in start.people:
                    raise ValidationRejection([f"Member ref {ref} is already the id of an existing person"])
                seen_refs.add(ref)

            for member in members:
                person = self._place_new_person(graph, member)
                graph = with_people(graph, [person])
                refs[member.get("ref") or person.id] = person.id

            for link in relationships:
                from_id = refs.get(link["from"], link["from"])
                to_id = refs.get(link["to"], link["to"])
                graph, _, _, link_warnings = self._link(graph, from_id, to_id, link["type"])
                warnings.extend(link_warnings)
        except KeyError as e:
            return self._reject(ValidationRejection([f"Missing field: {e.args[0]}"]))
        except TreeEditError as e:
            return self._reject(e)

        new_ids = set(refs.values())
        people = [graph.people[pid] for pid in refs.values()]
        added = [rel for rid, rel in graph.relationships.items() if rid not in start.relationships]
        moved = [
            slot_change(pid, person.grid_slot, graph.people[pid].grid_slot)
            for pid, person in start.people.items()
            if pid not in new_ids and graph.people[pid].grid_slot != person.grid_slot
        ]
        record = BulkAdd(label=label, people=people, relationships=added, slot_changes=moved)
        return self._commit(graph, record, f"Added {len(people)} family member(s)", warnings, people=people)

    # ========================================================================
    # Collapse
    # ========================================================================

    def collapse(self, person_id: str) -> dict[str, Any]:
        try:
            hidden = self.collapsed.collapse(self.graph, person_id)
        except TreeEditError as e:
            return self._reject(e)
        return {
            "success": True,
            "hidden": sorted(hidden),
            "message": f"Collapsed {len(hidden)} people",
        }

    def expand(self, person_id: str) -> dict[str, Any]:
        if not self.collapsed.expand(person_id):
            return self._reject(NotFound(f"{person_id} is not collapsed"))
        return {"success": True, "hidden": sorted(self.collapsed.hidden_ids()), "message": "Expanded"}

    def visible_people(self) -> list[Person]:
        return self.collapsed.visible_people(self.graph)

    # ========================================================================
    # History
    # ========================================================================

    def undo(self) -> dict[str, Any]:
        try:
            self.graph, record = self.history.undo(self.graph)
        except RuntimeError as e:
            return {"success": False, "error": str(e), "error_type": "history"}
        if record.kind == "delete_person" and record.was_collapsed:
            self.collapsed.collapse(self.graph, record.person.id)
        self.collapsed.refresh(self.graph)
        return self._success(f"Undid: {describe_action(record)}")

    def redo(self) -> dict[str, Any]:
        try:
            self.graph, record = self.history.redo(self.graph)
        except RuntimeError as e:
            return {"success": False, "error": str(e), "error_type": "history"}
        self.collapsed.refresh(self.graph)
        return self._success(f"Redid: {describe_action(record)}")


def open_session(
    family_id: str,
    owner_id: str,
    owner_first_name: str,
    owner_last_name: str = "",
    owner_gender: str = "male",
    store: GraphStore | None = None,
    settings: TreeSettings | None = None,
    autosave: bool = True,
) -> FamilyTreeSession:
    """
    Load a family's tree, seeding it with the owner as root when none is stored.

    Raises:
        PersistenceFailure: A stored tree exists but could not be read
    """
    graph = store.get_family_graph(family_id) if store is not None else None
    seeded = graph is None
    if seeded:
        graph = create_family_graph(owner_id, owner_first_name, owner_last_name, owner_gender)
    session = FamilyTreeSession(family_id, graph, store=store, settings=settings, autosave=autosave)
    if seeded and autosave:
        session.persist()
    return session
