"""FamilyCanvas - Family Tree Builder Backend.

FastAPI server exposing the family-graph layout and consistency engine: placing
people on generation rows, connecting them, undo/redo and subtree collapse.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Literal

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("familycanvas")

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from family_graph import GENERATION_TITLES, GENERATIONS
from graph_store import GraphStore, JsonFileGraphStore
from grid_placement import empty_slots, movement_ability
from kinship import relationships_for
from relationship_validator import recommend_relationship_type, suggest_generation
from tree_errors import NotFound, PersistenceFailure
from tree_service import FamilyTreeSession, open_session
from tree_settings import load_settings

# Global state
settings = load_settings()
graph_store: GraphStore | None = None
sessions: dict[str, FamilyTreeSession] = {}

ERROR_STATUS = {
    "validation": 400,
    "history": 400,
    "not_found": 404,
    "placement": 409,
    "persistence": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - open the graph store."""
    global graph_store

    if graph_store is None:
        logger.info(f"Opening family tree store in {settings.data_dir}")
        graph_store = JsonFileGraphStore(settings.data_dir)

    yield

    logger.info(f"Shutting down, {len(sessions)} open session(s)")
    for session in sessions.values():
        session.persist()
    sessions.clear()


# Create FastAPI app
app = FastAPI(
    title="FamilyCanvas",
    description="Interactive family tree builder: layout, relationship rules and history",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class OpenFamilyRequest(BaseModel):
    """Identity of the tree owner, used to seed the root person of a new tree."""
    owner_id: str
    first_name: str
    last_name: str = ""
    gender: Literal["male", "female"] = "male"


class AddPersonRequest(BaseModel):
    """Request to place a new person on a generation row."""
    first_name: str
    last_name: str = ""
    gender: Literal["male", "female"] = "male"
    generation: int = Field(default=0, description="-2 (grandparents) to 2 (grandchildren)")
    status: Literal["alive", "deceased"] = "alive"
    date_of_birth: date | None = None
    preferred_slot: int | None = Field(default=None, description="Slot picked in the UI, used when free")


class EditProfileRequest(BaseModel):
    """Profile fields to change; omitted fields are left alone."""
    first_name: str | None = None
    last_name: str | None = None
    gender: Literal["male", "female"] | None = None
    status: Literal["alive", "deceased"] | None = None
    date_of_birth: date | None = None


class MoveRequest(BaseModel):
    direction: Literal["left", "right"]


class RelationshipRequest(BaseModel):
    """Request to connect two people."""
    model_config = ConfigDict(populate_by_name=True)

    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    type: Literal["spouse", "parent-child", "sibling"]


class WizardMember(AddPersonRequest):
    ref: str = Field(description="Temporary key relationships in the same request refer to")


class WizardRelationship(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_ref: str = Field(alias="from", description="Member ref or existing person id")
    to_ref: str = Field(alias="to", description="Member ref or existing person id")
    type: Literal["spouse", "parent-child", "sibling"]


class WizardRequest(BaseModel):
    """Several people and relationships added as one undoable action."""
    label: str = "family"
    members: list[WizardMember]
    relationships: list[WizardRelationship] = []


# Helpers

def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    return value


def _get_session(family_id: str) -> FamilyTreeSession:
    session = sessions.get(family_id)
    if session is None:
        logger.warning(f"No open session for family {family_id}")
        raise HTTPException(status_code=404, detail=f"Family {family_id} is not open. Open it first.")
    return session


def _drain_warnings(session: FamilyTreeSession) -> list[str]:
    warnings = list(session.persistence_warnings)
    session.persistence_warnings.clear()
    return warnings


def _respond(session: FamilyTreeSession, result: dict[str, Any],
             background_tasks: BackgroundTasks | None = None) -> dict[str, Any]:
    """Turn a session result into a response, scheduling the save after successful edits."""
    if not result["success"]:
        status = ERROR_STATUS.get(result.get("error_type"), 400)
        detail = {key: result[key] for key in ("error", "error_type", "issues", "warnings") if key in result}
        raise HTTPException(status_code=status, detail=detail)

    if background_tasks is not None and "graph" in result:
        background_tasks.add_task(session.persist)

    response = {key: _dump(value) for key, value in result.items() if key != "success"}
    response["warnings"] = list(result.get("warnings", [])) + _drain_warnings(session)
    return response


# Endpoints

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "store_ready": graph_store is not None,
        "open_sessions": len(sessions),
        "unsaved_sessions": sum(1 for s in sessions.values() if s.persistence_warnings),
    }


@app.get("/generations")
async def get_generations():
    """Generation rows with their titles."""
    return {"generations": [{"generation": g, "title": GENERATION_TITLES[g]} for g in GENERATIONS]}


@app.post("/families/{family_id}/open")
async def open_family(family_id: str, request: OpenFamilyRequest):
    """Load a family tree, creating it around its owner when it does not exist yet."""
    logger.info(f"Opening family {family_id} for owner {request.owner_id}")
    if family_id not in sessions:
        try:
            sessions[family_id] = open_session(
                family_id,
                request.owner_id,
                request.first_name,
                request.last_name,
                request.gender,
                store=graph_store,
                settings=settings,
                autosave=False,
            )
        except PersistenceFailure as e:
            logger.error(f"Failed to open family {family_id}: {e.reason}")
            raise HTTPException(status_code=503, detail=e.reason)
        sessions[family_id].persist()
    return await get_tree(family_id)


@app.get("/families/{family_id}/tree")
async def get_tree(family_id: str):
    """Current graph plus what is hidden by collapsed subtrees."""
    session = _get_session(family_id)
    hidden = session.collapsed.hidden_ids()
    return {
        "graph": _dump(session.graph),
        "hidden": sorted(hidden),
        "collapsed": session.collapsed.collapsed_roots(),
        "dimmedRelationships": sorted(session.collapsed.dimmed_relationship_ids(session.graph)),
        "canUndo": session.history.can_undo,
        "canRedo": session.history.can_redo,
        "warnings": _drain_warnings(session),
    }


@app.post("/families/{family_id}/people")
async def add_person(family_id: str, request: AddPersonRequest, background_tasks: BackgroundTasks):
    """Add a person to a generation row."""
    session = _get_session(family_id)
    logger.info(f"Adding {request.first_name} to generation {request.generation} of family {family_id}")
    result = session.add_person(**request.model_dump())
    return _respond(session, result, background_tasks)


@app.patch("/families/{family_id}/people/{person_id}")
async def edit_person(family_id: str, person_id: str, request: EditProfileRequest,
                      background_tasks: BackgroundTasks):
    """Edit a person's profile."""
    session = _get_session(family_id)
    result = session.edit_profile(person_id, **request.model_dump(exclude_unset=True))
    return _respond(session, result, background_tasks)


@app.delete("/families/{family_id}/people/{person_id}")
async def delete_person(family_id: str, person_id: str, background_tasks: BackgroundTasks):
    """Delete a person and all their relationships."""
    session = _get_session(family_id)
    result = session.delete_person(person_id)
    return _respond(session, result, background_tasks)


@app.post("/families/{family_id}/people/{person_id}/move")
async def move_person(family_id: str, person_id: str, request: MoveRequest,
                      background_tasks: BackgroundTasks):
    """Move a person (with their spouse) one step along their row."""
    session = _get_session(family_id)
    result = session.move_person(person_id, request.direction)
    return _respond(session, result, background_tasks)


@app.get("/families/{family_id}/people/{person_id}/movement")
async def get_movement(family_id: str, person_id: str):
    """Which directions a person can be moved in."""
    session = _get_session(family_id)
    if person_id not in session.graph.people:
        raise HTTPException(status_code=404, detail=f"Person not found: {person_id}")
    return movement_ability(session.graph, person_id)


@app.post("/families/{family_id}/people/{person_id}/collapse")
async def collapse_person(family_id: str, person_id: str):
    """Hide a person together with their spouse and descendants."""
    session = _get_session(family_id)
    return _respond(session, session.collapse(person_id))


@app.post("/families/{family_id}/people/{person_id}/expand")
async def expand_person(family_id: str, person_id: str):
    session = _get_session(family_id)
    return _respond(session, session.expand(person_id))


@app.get("/families/{family_id}/people/{person_id}/kinship")
async def get_kinship(family_id: str, person_id: str):
    """How everyone connected to a person is related to them."""
    session = _get_session(family_id)
    try:
        labels = relationships_for(session.graph, person_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=e.reason)
    return {"personId": person_id, "relationships": {pid: _dump(d) for pid, d in labels.items()}}


@app.get("/families/{family_id}/people/{person_id}/new-relative")
async def get_new_relative_placement(
    family_id: str,
    person_id: str,
    type: Literal["spouse", "parent-child", "sibling"] = Query(..., description="Relationship to the new person"),
    as_parent: bool = Query(default=False, description="For parent-child, whether the new person is the parent"),
):
    """Generation and free slots for a relative about to be added next to a person."""
    session = _get_session(family_id)
    anchor = session.graph.people.get(person_id)
    if anchor is None:
        raise HTTPException(status_code=404, detail=f"Person not found: {person_id}")
    generation = suggest_generation(anchor, type, as_parent)
    if generation is None:
        raise HTTPException(status_code=400, detail="That relative would fall outside the tree's five generations")
    return {"generation": generation, "slots": empty_slots(session.graph, generation)}


@app.get("/families/{family_id}/relationship-type")
async def get_relationship_type(family_id: str, from_id: str, to_id: str):
    """Relationship type two people's generations allow, for drag-to-connect."""
    session = _get_session(family_id)
    return {"type": recommend_relationship_type(session.graph, from_id, to_id)}


@app.get("/families/{family_id}/generations/{generation}/empty-slots")
async def get_empty_slots(family_id: str, generation: int):
    session = _get_session(family_id)
    if generation not in GENERATIONS:
        raise HTTPException(status_code=400, detail=f"Invalid generation: {generation}")
    return {"generation": generation, "slots": empty_slots(session.graph, generation)}


@app.post("/families/{family_id}/relationships")
async def create_relationship(family_id: str, request: RelationshipRequest,
                              background_tasks: BackgroundTasks):
    """Connect two people; implied relationships are added automatically."""
    session = _get_session(family_id)
    logger.info(f"Creating {request.type} relationship {request.from_id} -> {request.to_id}")
    result = session.create_relationship(request.from_id, request.to_id, request.type)
    return _respond(session, result, background_tasks)


@app.post("/families/{family_id}/relationships/validate")
async def validate_relationship(family_id: str, request: RelationshipRequest):
    """Check a relationship without creating it."""
    session = _get_session(family_id)
    return session.validate(request.from_id, request.to_id, request.type)


@app.delete("/families/{family_id}/relationships/{relationship_id}")
async def delete_relationship(family_id: str, relationship_id: str, background_tasks: BackgroundTasks):
    session = _get_session(family_id)
    result = session.delete_relationship(relationship_id)
    return _respond(session, result, background_tasks)


@app.post("/families/{family_id}/members")
async def add_family_members(family_id: str, request: WizardRequest, background_tasks: BackgroundTasks):
    """Add the people and relationships collected by a family wizard in one step."""
    session = _get_session(family_id)
    logger.info(f"Completing {request.label} wizard with {len(request.members)} member(s)")
    result = session.add_family_members(
        members=[m.model_dump() for m in request.members],
        relationships=[
            {"from": r.from_ref, "to": r.to_ref, "type": r.type} for r in request.relationships
        ],
        label=request.label,
    )
    return _respond(session, result, background_tasks)


@app.post("/families/{family_id}/undo")
async def undo(family_id: str, background_tasks: BackgroundTasks):
    session = _get_session(family_id)
    return _respond(session, session.undo(), background_tasks)


@app.post("/families/{family_id}/redo")
async def redo(family_id: str, background_tasks: BackgroundTasks):
    session = _get_session(family_id)
    return _respond(session, session.redo(), background_tasks)


@app.get("/families/{family_id}/history")
async def get_history(family_id: str):
    """Descriptions of the actions that can be undone and redone."""
    session = _get_session(family_id)
    return session.history.entries()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
