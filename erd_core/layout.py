"""
Node sizing and layout for schema diagrams.

Provides:
- Size estimation for table and enum cards (derived from their content:
  longest name/type string, index-card stacking, index chip counts)
- Node and edge construction from a SchemaGraph, reading previous positions
  from an explicitly passed cache
- A layered left-to-right layout based on relation directions
- Snap-to-grid

Layout functions modify nodes in-place and return the modified list.
"""

import math
import re
from collections import defaultdict
from typing import Mapping, Optional

from .models import (
    DiagramEdge,
    DiagramNode,
    NodeKind,
    SchemaGraph,
    SqlEnum,
    SqlIndex,
    SqlTable,
    enum_node_id,
)
from .router import TABLE_HEADER_H, TABLE_PADDING, TABLE_ROW_H


# Default layout parameters
DEFAULT_RANK_SEP = 120
DEFAULT_NODE_SEP = 60
DEFAULT_START_X = 0
DEFAULT_START_Y = 0
DEFAULT_GRID_SIZE = 24

# Table card geometry
TABLE_MIN_W = 360
COL_FONT_SIZE = 13
TYPE_FONT_SIZE = 12
TITLE_FONT_SIZE = 14
ROW_ICON_SLOT_W = 22
ENUM_PILL_W = 54
ENUM_GAP = 12
NAME_META_W = 8 + 14 + 12  # gap after name, not-null icon, gap after icon
CHIP_TO_TYPE_GAP = 12
NAME_COL_MIN_W = 140
NAME_COL_MAX_W = 260
TYPE_MIN_W = 110
TYPE_MAX_W = 160

# Index chips shown on column rows
CHIP_PAD_X = 6
CHIP_GAP = 6
MAX_CHIPS = 6

# Enum card geometry
ENUM_MIN_W = 280
ENUM_HEADER_H = 40
ENUM_ROW_H = 18
ENUM_MAX_ROWS = 8


def approx_text_w(text: str, font_size: float) -> int:
    """Rough rendered width of a string."""
    return math.ceil(len(text) * font_size * 0.56)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# --- Index helpers ---

def index_columns(index: SqlIndex, column_names: list[str]) -> list[str]:
    """Columns mentioned in an index expression, INCLUDE list or predicate."""
    hay = f"{index.expression or ''} {index.include or ''} {index.where or ''}".lower()
    found = []
    for name in column_names:
        pattern = r"(^|[^a-z0-9_])" + re.escape(name.lower()) + r"([^a-z0-9_]|$)"
        if re.search(pattern, hay):
            found.append(name)
    return found


def index_ids_by_column(table: SqlTable) -> dict[str, list[str]]:
    """
    Short index ids (I1, I2, ...) per column, in index order.
    """
    by_column: dict[str, list[str]] = {c.name: [] for c in table.columns}
    column_names = [c.name for c in table.columns]

    for i, index in enumerate(table.indexes):
        index_id = f"I{i + 1}"
        for name in index_columns(index, column_names):
            if index_id not in by_column[name]:
                by_column[name].append(index_id)

    return by_column


def _chip_w(index_id: str) -> int:
    return max(20, len(index_id) * 7 + CHIP_PAD_X * 2)


def _max_chip_row_w(ids_by_column: dict[str, list[str]]) -> int:
    widest = 0
    for ids in ids_by_column.values():
        if not ids:
            continue
        visible = ids[:MAX_CHIPS]
        row_w = sum(_chip_w(index_id) + (CHIP_GAP if i else 0) for i, index_id in enumerate(visible))
        if len(ids) > len(visible):
            row_w += CHIP_GAP + approx_text_w(f"+{len(ids) - len(visible)}", 10) + 2
        widest = max(widest, row_w)
    return widest


def _indexes_block_height(indexes: list[SqlIndex]) -> int:
    if not indexes:
        return 0

    card_base_h = 10 + 8 * 2
    line_h = 14
    card_heights = [card_base_h + (2 + (1 if idx.where else 0)) * line_h for idx in indexes]
    return 20 + 8 + sum(card_heights) + 8 * (len(indexes) - 1) + 10


# --- Size estimation ---

def estimate_table_width(table: SqlTable) -> int:
    name_x = TABLE_PADDING + ROW_ICON_SLOT_W + 6

    max_name_w = max(
        [approx_text_w(table.name, TITLE_FONT_SIZE)]
        + [approx_text_w(c.name, COL_FONT_SIZE) for c in table.columns]
    )
    name_col_w = _clamp(max_name_w, NAME_COL_MIN_W, NAME_COL_MAX_W)

    max_type_w = max(
        [approx_text_w("varchar(100)", TYPE_FONT_SIZE)]
        + [approx_text_w(c.type or "", TYPE_FONT_SIZE) for c in table.columns]
    )
    type_col_w = _clamp(max_type_w + 16, TYPE_MIN_W, TYPE_MAX_W)

    has_any_enum = any(c.is_enum for c in table.columns)
    chip_row_w = _max_chip_row_w(index_ids_by_column(table))

    enum_pill_x = name_x + name_col_w + NAME_META_W
    chip_start_x = enum_pill_x + (ENUM_PILL_W + ENUM_GAP if has_any_enum else 0)

    content_min_w = (
        chip_start_x
        + (chip_row_w + CHIP_TO_TYPE_GAP if chip_row_w else 0)
        + type_col_w
        + TABLE_PADDING
    )
    header_needed_w = TABLE_PADDING + 18 + 10 + name_col_w + TABLE_PADDING

    return math.ceil(max(TABLE_MIN_W, content_min_w, header_needed_w))


def estimate_table_height(table: SqlTable) -> int:
    rows = max(1, len(table.columns))
    block_h = _indexes_block_height(table.indexes)
    return TABLE_HEADER_H + TABLE_PADDING + rows * TABLE_ROW_H + (14 if block_h else 12) + block_h


def estimate_enum_width(enum: SqlEnum) -> int:
    header_w = approx_text_w(enum.name, TITLE_FONT_SIZE) + 28  # icon + gap
    shown = (enum.values or ["No values found"])[:ENUM_MAX_ROWS]
    max_value_w = max([approx_text_w(v, 12) for v in shown] + [120])
    needed = TABLE_PADDING + max(header_w, max_value_w) + TABLE_PADDING
    return math.ceil(max(ENUM_MIN_W, needed))


def estimate_enum_height(enum: SqlEnum) -> int:
    rows = min(ENUM_MAX_ROWS, len(enum.values) or 1)
    return ENUM_HEADER_H + TABLE_PADDING + rows * ENUM_ROW_H + 22


# --- Graph -> nodes/edges ---

def build_nodes(
    graph: SchemaGraph,
    positions: Optional[Mapping[str, tuple[float, float]]] = None
) -> list[DiagramNode]:
    """
    One node per table and per enum, sized from content.

    Previous positions are read from `positions` (keyed by node id); nodes
    without one start at the origin until a layout places them.
    """
    positions = positions or {}
    nodes: list[DiagramNode] = []

    for table in graph.tables:
        x, y = positions.get(table.name, (0, 0))
        nodes.append(DiagramNode(
            id=table.name,
            kind=NodeKind.TABLE,
            x=x,
            y=y,
            width=estimate_table_width(table),
            height=estimate_table_height(table),
            table=table,
        ))

    for enum in graph.enums:
        node_id = enum_node_id(enum.name)
        x, y = positions.get(node_id, (0, 0))
        nodes.append(DiagramNode(
            id=node_id,
            kind=NodeKind.ENUM,
            x=x,
            y=y,
            width=estimate_enum_width(enum),
            height=estimate_enum_height(enum),
            enum=enum,
        ))

    return nodes


def build_edges(graph: SchemaGraph, stroke: str = "#888888") -> list[DiagramEdge]:
    """One animated edge per relation, labelled `from → to`."""
    edges: list[DiagramEdge] = []
    seen: set[str] = set()

    for i, rel in enumerate(graph.relations):
        edge_id = rel.id if rel.id not in seen else f"{rel.id}:{i}"
        seen.add(edge_id)
        edges.append(DiagramEdge(
            id=edge_id,
            source=rel.from_table,
            target=rel.to_table,
            source_column=rel.from_column,
            target_column=rel.to_column,
            label=f"{rel.from_column} → {rel.to_column}",
            stroke=stroke,
            animated=True,
        ))

    return edges


# --- Layout ---

def layered_layout(
    nodes: list[DiagramNode],
    edges: list[DiagramEdge],
    keep_existing: bool = True,
    existing_positions: Optional[Mapping[str, tuple[float, float]]] = None,
    rank_sep: float = DEFAULT_RANK_SEP,
    node_sep: float = DEFAULT_NODE_SEP,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y
) -> list[DiagramNode]:
    """
    Arrange nodes in left-to-right ranks based on edge directions.

    Nodes with no incoming edges form rank 0; every other node sits one rank
    right of the node that first reaches it. Ranks are as wide as their
    widest node, and nodes within a rank are stacked top to bottom.

    Args:
        nodes: Nodes to arrange
        edges: Edges defining the ranking (source -> target)
        keep_existing: Leave nodes found in `existing_positions` where they are
        existing_positions: Previous positions keyed by node id
        rank_sep: Horizontal gap between ranks
        node_sep: Vertical gap between nodes in a rank
        start_x: X coordinate of the first rank
        start_y: Y coordinate of the top of each rank

    Returns:
        The same list of nodes (modified in-place)
    """
    if not nodes:
        return nodes

    existing_positions = existing_positions or {}

    # Build adjacency list (source -> targets)
    children: dict[str, list[str]] = {n.id: [] for n in nodes}
    has_parent: set[str] = set()

    for edge in edges:
        if edge.source == edge.target:
            continue
        if edge.source in children and edge.target in children:
            if edge.target not in children[edge.source]:
                children[edge.source].append(edge.target)
            has_parent.add(edge.target)

    roots = [n.id for n in nodes if n.id not in has_parent]
    if not roots:
        # No clear roots, use first node
        roots = [nodes[0].id]

    # BFS to assign ranks
    ranks: dict[str, int] = {}
    queue = [(r, 0) for r in roots]

    while queue:
        node_id, rank = queue.pop(0)
        if node_id in ranks:
            continue
        ranks[node_id] = rank
        for child in children.get(node_id, []):
            queue.append((child, rank + 1))

    # Handle nodes only reachable through cycles
    for node in nodes:
        if node.id not in ranks:
            ranks[node.id] = 0

    by_rank: dict[int, list[DiagramNode]] = defaultdict(list)
    for node in nodes:
        by_rank[ranks[node.id]].append(node)

    x = start_x
    for rank in sorted(by_rank):
        members = by_rank[rank]
        y = start_y
        for node in members:
            if keep_existing and node.id in existing_positions:
                node.x, node.y = existing_positions[node.id]
            else:
                node.x = x
                node.y = y
            y += node.height + node_sep
        x += max(n.width for n in members) + rank_sep

    return nodes


def snap_to_grid(
    nodes: list[DiagramNode],
    grid_size: int = DEFAULT_GRID_SIZE
) -> list[DiagramNode]:
    """
    Snap all nodes to the nearest grid position.

    Args:
        nodes: Nodes to snap
        grid_size: Grid cell size in pixels

    Returns:
        The same list of nodes (modified in-place)
    """
    if grid_size <= 0:
        return nodes

    for node in nodes:
        node.x = round(node.x / grid_size) * grid_size
        node.y = round(node.y / grid_size) * grid_size

    return nodes
