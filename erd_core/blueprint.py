"""
Blueprint (.bp) files - a saved project: SQL text, node positions, panel
width and viewport.

On disk this is indented JSON with the keys `version`, `sql`, `leftWidth`,
`positions` and optionally `viewport`. Only version 1 exists.
"""

import json
import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import Viewport


BLUEPRINT_EXT = "bp"
DEFAULT_FILE_BASE = "project"
DEFAULT_LEFT_WIDTH = 420

_UNSAFE_RUN_RE = re.compile(r"[^\w\-]+", re.ASCII)


class BlueprintError(ValueError):
    """Raised when a blueprint file cannot be read."""


class SavedPosition(BaseModel):
    x: float
    y: float


class Blueprint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1] = 1
    sql: str = Field(min_length=1)
    left_width: float = Field(alias="leftWidth", gt=0)
    positions: dict[str, SavedPosition]
    viewport: Optional[Viewport] = None

    def position_map(self) -> dict[str, tuple[float, float]]:
        return {node_id: (p.x, p.y) for node_id, p in self.positions.items()}

    @classmethod
    def from_state(
        cls,
        sql: str,
        positions: dict[str, tuple[float, float]],
        left_width: float = DEFAULT_LEFT_WIDTH,
        viewport: Optional[Viewport] = None
    ) -> "Blueprint":
        return cls(
            sql=sql,
            left_width=left_width,
            positions={k: SavedPosition(x=x, y=y) for k, (x, y) in positions.items()},
            viewport=viewport,
        )


def dump_blueprint(bp: Blueprint) -> str:
    """Serialize to indented JSON using the on-disk key names."""
    data = bp.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(data, indent=2)


def load_blueprint(text: str) -> Blueprint:
    """
    Parse blueprint JSON.

    Raises:
        BlueprintError: If the text is not JSON or does not have the
            blueprint structure
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise BlueprintError("Invalid .bp file (not JSON)") from e

    if not isinstance(data, dict):
        raise BlueprintError("Invalid .bp file structure")

    try:
        return Blueprint.model_validate(data)
    except ValidationError as e:
        raise BlueprintError("Invalid .bp file structure") from e


def safe_file_name(base: str, ext: str = BLUEPRINT_EXT) -> str:
    """File name with runs of unsafe characters replaced by `_`."""
    safe = _UNSAFE_RUN_RE.sub("_", base).strip("_")
    return f"{safe or DEFAULT_FILE_BASE}.{ext}"
