"""Runtime settings, read from the environment (and a .env file if present)."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from pagetree.tree.invariants import MAX_DEPTH

ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseModel):
    db_path: str = "pagetree.db"
    lock_timeout: float = Field(default=5.0, gt=0)
    max_depth: int = Field(default=MAX_DEPTH, ge=1)
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls, env_file: Path | None = ENV_FILE) -> "Settings":
        """Build settings from PAGETREE_* variables. Unset ones keep their defaults."""
        if env_file is not None:
            load_dotenv(env_file)
        values: dict[str, object] = {}
        if db_path := os.environ.get("PAGETREE_DB_PATH"):
            values["db_path"] = db_path
        if lock_timeout := os.environ.get("PAGETREE_LOCK_TIMEOUT"):
            values["lock_timeout"] = lock_timeout
        if max_depth := os.environ.get("PAGETREE_MAX_DEPTH"):
            values["max_depth"] = max_depth
        if origins := os.environ.get("PAGETREE_CORS_ORIGINS"):
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        return cls(**values)
