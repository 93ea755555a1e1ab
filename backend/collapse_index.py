"""Subtree collapse: hide a person together with their spouse and descendants."""

import logging

from family_graph import FamilyGraph, GraphIndex, Person, get_person

logger = logging.getLogger("familycanvas.collapse_index")


def collapse_closure(graph: FamilyGraph, person_id: str) -> frozenset:
    """
    Everyone hidden when `person_id` is collapsed.

    The person, their spouse, and every child reachable through parent-child edges,
    each child bringing along their own spouse and descendants.
    """
    get_person(graph, person_id)
    index = GraphIndex(graph)
    hidden = set()
    pending = [person_id]
    while pending:
        current = pending.pop()
        if current in hidden:
            continue
        hidden.add(current)
        spouse_id = index.spouse_of(current)
        if spouse_id is not None:
            pending.append(spouse_id)
        pending.extend(index.children_of(current))
    return frozenset(hidden)


class CollapseIndex:
    """Active collapses keyed by the person that was collapsed."""

    def __init__(self):
        self._hidden: dict[str, frozenset] = {}

    def collapse(self, graph: FamilyGraph, person_id: str) -> frozenset:
        hidden = collapse_closure(graph, person_id)
        self._hidden[person_id] = hidden
        logger.info(f"Collapsed {person_id}, hiding {len(hidden)} people")
        return hidden

    def expand(self, person_id: str) -> bool:
        """Drop a collapse. Returns False when `person_id` was not collapsed."""
        return self._hidden.pop(person_id, None) is not None

    def is_collapsed(self, person_id: str) -> bool:
        return person_id in self._hidden

    def collapsed_roots(self) -> list[str]:
        return list(self._hidden)

    def hidden_ids(self) -> frozenset:
        """Union of every active collapse."""
        hidden = set()
        for ids in self._hidden.values():
            hidden |= ids
        return frozenset(hidden)

    def hidden_count(self, person_id: str) -> int:
        return len(self._hidden.get(person_id, ()))

    def is_visible(self, person_id: str) -> bool:
        return person_id not in self.hidden_ids()

    def visible_people(self, graph: FamilyGraph) -> list[Person]:
        hidden = self.hidden_ids()
        return [p for pid, p in graph.people.items() if pid not in hidden]

    def dimmed_relationship_ids(self, graph: FamilyGraph) -> set[str]:
        """Relationships with at least one hidden end, drawn greyed out."""
        hidden = self.hidden_ids()
        return {rid for rid, r in graph.relationships.items() if r.from_id in hidden or r.to_id in hidden}

    def refresh(self, graph: FamilyGraph) -> None:
        """Recompute every active collapse against a new graph version."""
        for root in list(self._hidden):
            if root in graph.people:
                self._hidden[root] = collapse_closure(graph, root)
            else:
                self.forget(root)

    def forget(self, person_id: str) -> None:
        """Remove a deleted person from every collapse."""
        self._hidden.pop(person_id, None)
        for root, ids in list(self._hidden.items()):
            if person_id in ids:
                self._hidden[root] = ids - {person_id}
