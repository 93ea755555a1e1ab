"""Runtime settings read from the environment (and a .env file loaded by main)."""

import os

from pydantic import BaseModel, Field

from history_log import DEFAULT_MAX_HISTORY
from relationship_validator import DEFAULT_MAX_PARENT_AGE_GAP, DEFAULT_MIN_PARENT_AGE

DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]


class TreeSettings(BaseModel):
    """Settings for the tree service."""
    data_dir: str = Field(default="family_tree_data", description="Directory holding one JSON file per family")
    max_history: int = Field(default=DEFAULT_MAX_HISTORY, ge=1, description="Undoable actions kept per session")
    min_parent_age: int = Field(default=DEFAULT_MIN_PARENT_AGE, ge=0)
    max_parent_age_gap: int = Field(default=DEFAULT_MAX_PARENT_AGE_GAP, ge=0)
    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"


def load_settings() -> TreeSettings:
    """Build settings from FAMILY_TREE_* environment variables, falling back to defaults."""
    values = {}
    env_map = {
        "FAMILY_TREE_DATA_DIR": "data_dir",
        "FAMILY_TREE_MAX_HISTORY": "max_history",
        "FAMILY_TREE_MIN_PARENT_AGE": "min_parent_age",
        "FAMILY_TREE_MAX_PARENT_AGE_GAP": "max_parent_age_gap",
        "LOG_LEVEL": "log_level",
    }
    for env_name, field in env_map.items():
        value = os.getenv(env_name)
        if value:
            values[field] = value

    origins = os.getenv("FAMILY_TREE_CORS_ORIGINS")
    if origins:
        values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

    return TreeSettings(**values)
