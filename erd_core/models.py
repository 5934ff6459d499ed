"""
Core data models for schema diagrams.

Two families of models live here:
- Schema models produced by the extractor (tables, columns, indexes, enums,
  relations) and collected in a SchemaGraph
- Diagram models consumed and produced by layout and routing (nodes with
  geometry, edges between nodes, routed edge geometry, viewport)

Node ID Convention:
- Table nodes use the table name as their id
- Enum nodes use `enum:<name>`
These ids are the keys of every persisted position cache, so they must stay
stable for identical input text.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


ENUM_NODE_PREFIX = "enum:"


class ForeignKeyTarget(BaseModel):
    """Where a foreign-key column points. Column is None until resolved."""
    table: str
    column: Optional[str] = None


class SqlColumn(BaseModel):
    """A single column of a table definition."""
    model_config = ConfigDict(validate_assignment=True)

    name: str
    type: str = ""
    is_primary_key: bool = False
    is_not_null: bool = False
    is_foreign_key: bool = False
    is_enum: bool = False
    fk_to: Optional[ForeignKeyTarget] = None
    enum_name: Optional[str] = None

    @model_validator(mode="after")
    def primary_key_implies_not_null(self) -> "SqlColumn":
        if self.is_primary_key and not self.is_not_null:
            self.is_not_null = True
        return self


class SqlIndex(BaseModel):
    """A CREATE INDEX statement attached to its table."""
    name: str
    table: str
    unique: bool = False
    method: Optional[str] = None      # btree, gist, gin, brin, ...
    expression: str = ""              # raw text inside "( ... )" after ON table
    include: Optional[str] = None     # raw "col1, col2"
    where: Optional[str] = None       # raw predicate


class SqlTable(BaseModel):
    """A table with its columns and indexes in source order."""
    name: str
    columns: list[SqlColumn] = Field(default_factory=list)
    indexes: list[SqlIndex] = Field(default_factory=list)

    def get_column(self, name: str) -> Optional[SqlColumn]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def primary_key(self) -> Optional[str]:
        """Name of the first primary-key column, if any."""
        for column in self.columns:
            if column.is_primary_key:
                return column.name
        return None


class SqlEnum(BaseModel):
    """A CREATE TYPE ... AS ENUM definition."""
    name: str
    values: list[str] = Field(default_factory=list)


class SqlRelation(BaseModel):
    """A resolved foreign-key relation between two extracted tables."""
    from_table: str
    from_column: str
    to_table: str
    to_column: str

    @computed_field
    @property
    def id(self) -> str:
        return f"{self.from_table}.{self.from_column}->{self.to_table}.{self.to_column}"


class SchemaGraph(BaseModel):
    """
    The complete extraction result.

    Rebuilt from scratch for every input text; nothing is carried over
    between rebuilds except through name-keyed lookups.
    """
    tables: list[SqlTable] = Field(default_factory=list)
    enums: list[SqlEnum] = Field(default_factory=list)
    relations: list[SqlRelation] = Field(default_factory=list)

    def get_table(self, name: str) -> Optional[SqlTable]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def get_enum(self, name: str) -> Optional[SqlEnum]:
        for enum in self.enums:
            if enum.name == name:
                return enum
        return None

    def to_json_dict(self) -> dict:
        """Convert to a JSON-serializable dict with a stable key order."""
        return self.model_dump(mode="json")


# --- Diagram models ---

class NodeKind(str, Enum):
    """Kinds of nodes placed on the canvas."""
    TABLE = "table"
    ENUM = "enum"


def enum_node_id(name: str) -> str:
    return f"{ENUM_NODE_PREFIX}{name}"


class DiagramNode(BaseModel):
    """A positioned, sized node on the canvas."""
    id: str
    kind: NodeKind = NodeKind.TABLE
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    table: Optional[SqlTable] = None
    enum: Optional[SqlEnum] = None

    def center(self) -> tuple[float, float]:
        """Get the center point of the node."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict without the embedded schema data."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


class DiagramEdge(BaseModel):
    """
    An edge between two nodes, carrying the column names used for anchoring.

    Uses `source` and `target` as canonical field names.
    """
    id: str
    source: str
    target: str
    source_column: Optional[str] = None
    target_column: Optional[str] = None
    label: str = ""
    stroke: str = "#888888"
    animated: bool = False


class EdgeRoute(BaseModel):
    """Pure geometry of one routed edge, ready for drawing."""
    id: str
    points: list[tuple[float, float]] = Field(default_factory=list)
    label: str = ""
    label_pos: tuple[float, float] = (0.0, 0.0)
    arrow_head: Optional[list[tuple[float, float]]] = None
    animated: bool = False
    stroke: str = "#888888"
    fallback: bool = False  # True when the grid search gave up

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json")


class Viewport(BaseModel):
    """Pan/zoom state of the canvas."""
    x: float = 0
    y: float = 0
    zoom: float = 1
