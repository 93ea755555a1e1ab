"""Storage collaborators that load and save family graphs."""

import logging
import os
import tempfile
from typing import Protocol

from pydantic import ValidationError

from family_graph import FamilyGraph, check_invariants
from tree_errors import PersistenceFailure

logger = logging.getLogger("familycanvas.graph_store")


class GraphStore(Protocol):
    def get_family_graph(self, family_id: str) -> FamilyGraph | None: ...

    def save_family_graph(self, family_id: str, graph: FamilyGraph) -> None: ...


class InMemoryGraphStore:
    """Keeps graphs in a dict. Used by tests and as a fallback when no data dir is set."""

    def __init__(self):
        self.graphs: dict[str, FamilyGraph] = {}

    def get_family_graph(self, family_id: str) -> FamilyGraph | None:
        return self.graphs.get(family_id)

    def save_family_graph(self, family_id: str, graph: FamilyGraph) -> None:
        self.graphs[family_id] = graph


class JsonFileGraphStore:
    """
    One JSON file per family under `data_dir`.

    Files are written to a temporary file first and then moved into place, so a
    crash mid-save never leaves a truncated tree behind.
    """

    def __init__(self, data_dir: str = "family_tree_data"):
        self.data_dir = data_dir
        os.makedirs(self.data_dir, exist_ok=True)

    def path_for(self, family_id: str) -> str:
        safe_id = "".join(c for c in family_id if c.isalnum() or c in "-_")
        if not safe_id:
            raise ValueError(f"Invalid family id: {family_id!r}")
        return os.path.join(self.data_dir, f"{safe_id}.json")

    def get_family_graph(self, family_id: str) -> FamilyGraph | None:
        path = self.path_for(family_id)
        if not os.path.exists(path):
            logger.info(f"No stored tree for family {family_id}")
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                graph = FamilyGraph.model_validate_json(f.read())
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to load tree for family {family_id}: {str(e)}")
            raise PersistenceFailure(f"Could not load family tree {family_id}: {str(e)}") from e

        problems = check_invariants(graph)
        for problem in problems:
            logger.warning(f"Stored tree {family_id} is inconsistent: {problem}")
        logger.info(f"Loaded tree for family {family_id} ({graph.person_count} people)")
        return graph

    def save_family_graph(self, family_id: str, graph: FamilyGraph) -> None:
        path = self.path_for(family_id)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(graph.model_dump_json(by_alias=True, indent=2))
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            logger.error(f"Failed to save tree for family {family_id}: {str(e)}")
            raise PersistenceFailure(f"Could not save family tree {family_id}: {str(e)}") from e
        logger.debug(f"Saved tree for family {family_id} to {path}")
