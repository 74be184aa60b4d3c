"""Place marker — the `.orc/config.json` file written inside every materialized place.

The State Gatherer treats the presence of this file as a fact, so the path
and key names used for writing and for probing come from this module only.
"""

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

MARKER_DIR = ".orc"
MARKER_FILE = "config.json"
MARKER_VERSION = "1.0"


class PlaceMarker(BaseModel):
    """Identity of a materialized place (gatehouse, workbench or grove)."""

    version: str = MARKER_VERSION
    place_id: str
    role: Optional[str] = None              # "ORC" | "IMP" | "GROVE"
    name: Optional[str] = None
    workshop_id: Optional[str] = None
    commission_id: Optional[str] = None


def marker_dir(root: str) -> str:
    return str(Path(root) / MARKER_DIR)


def marker_path(root: str) -> str:
    return str(Path(root) / MARKER_DIR / MARKER_FILE)


def render_marker(marker: PlaceMarker) -> str:
    """Serialize a marker exactly as it is written to disk."""
    return json.dumps(marker.model_dump(exclude_none=True), indent=2) + "\n"


def read_marker(path: str) -> Optional[PlaceMarker]:
    """Parse a marker file. Returns None if it is missing or malformed."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError):
        return None
    if not isinstance(raw, dict) or not raw.get("place_id"):
        return None
    return PlaceMarker.model_validate(raw)
