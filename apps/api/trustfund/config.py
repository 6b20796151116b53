"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json."""

    database_path: str = Field(default="./data/trustfund.db")
    child_address: str
    parent1_address: str
    parent2_address: str
    observer1_address: str
    observer2_address: str
    child_threshold: datetime
    parent_threshold: datetime
    observer_threshold: datetime
    global_limit: int
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    @property
    def resolved_database_path(self) -> Path:
        """Return the absolute path for the SQLite database file."""
        return (Path(__file__).resolve().parents[1] / self.database_path).resolve()


def _config_path() -> Path:
    override = os.getenv("TRUSTFUND_CONFIG")
    if override:
        return Path(override).resolve()
    return Path(__file__).resolve().parents[1] / "config.json"


def load_config() -> AppConfig:
    """Load configuration from config.json, raising helpful errors if missing."""

    config_file = _config_path()
    if not config_file.exists():
        raise FileNotFoundError(
            "Missing vault config. Create config.json with the stakeholder addresses,"
            f" thresholds and global_limit. Expected at {config_file}."
        )

    contents: Dict[str, Any] = json.loads(config_file.read_text())
    return AppConfig(**contents)


CONFIG = load_config()
