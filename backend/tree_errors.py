"""Exceptions raised when a family tree edit cannot be applied."""


class TreeEditError(Exception):
    """Base class for rejected tree edits. The graph is never modified when one is raised."""

    error_type = "error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationRejection(TreeEditError):
    """A relationship edit breaks one of the relationship rules."""

    error_type = "validation"

    def __init__(self, issues: list[str], warnings: list[str] | None = None):
        super().__init__("; ".join(issues) or "Relationship rejected")
        self.issues = list(issues)
        self.warnings = list(warnings or [])


class PlacementExhausted(TreeEditError):
    """No legal grid slot exists within the search bounds."""

    error_type = "placement"


class NotFound(TreeEditError):
    """A referenced person or relationship id does not exist in the graph."""

    error_type = "not_found"


class PersistenceFailure(TreeEditError):
    """The storage collaborator could not save the graph."""

    error_type = "persistence"
