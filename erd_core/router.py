"""
Orthogonal edge router - Right-angle connector paths between diagram nodes.

For each relation the router:
- Picks anchors: exit the right side of the source and enter the left side
  of the target when the target lies to the right, mirrored otherwise
- Builds obstacles from every node, inflating the two endpoint nodes less
  than the rest so a path can approach its own door
- Runs a four-directional grid A* (unit cost, Manhattan heuristic) inside a
  padded search window with a hard iteration cap
- Substitutes the exact anchors for the first/last grid points, forces
  axis-aligned entry and exit, and compresses collinear runs
- Places the label beside the longest segment and computes the arrowhead

When the search gives up, a three-segment horizontal-vertical-horizontal
path is used instead. That is never an error.

All functions are pure; the only shared input is the read-only node list.
"""

import heapq
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .logger import get_logger
from .models import DiagramEdge, DiagramNode, EdgeRoute, NodeKind, SqlTable

logger = get_logger(__name__)

Point = tuple[float, float]
Cell = tuple[int, int]

# Routing parameters
ROUTE_GRID = 24
ROUTE_PAD = 260
OBSTACLE_PAD = 14
ENDPOINT_PAD = 4  # smaller pad for source/target to avoid start/end nudging
ROUTE_MAX_ITERS = 40_000

# Label and arrowhead geometry
LABEL_OFFSET = 10
ARROW_SIZE = 10
ARROW_SPREAD = 6

# Table card rows, shared with layout sizing
TABLE_HEADER_H = 40
TABLE_PADDING = 12
TABLE_ROW_H = 24

NEIGHBOR_STEPS: tuple[Cell, ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))
NUDGE_STEPS: tuple[Cell, ...] = ((1, 0), (-1, 0), (0, 1), (0, -1), (2, 0), (-2, 0))


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle."""
    x: float
    y: float
    w: float
    h: float

    def inflate(self, pad: float) -> "Rect":
        return Rect(self.x - pad, self.y - pad, self.w + pad * 2, self.h + pad * 2)

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.w and self.y <= py <= self.y + self.h

    @property
    def center_x(self) -> float:
        return self.x + self.w / 2


def node_rect(node: DiagramNode) -> Rect:
    return Rect(node.x, node.y, node.width, node.height)


def snap(value: float, step: int) -> int:
    """Index of the grid line nearest to `value` (halves round up)."""
    return math.floor(value / step + 0.5)


# --- Anchors and obstacles ---

def table_anchor_y(table: Optional[SqlTable], column_name: Optional[str] = None) -> float:
    """
    Vertical offset of a column row's center inside a table card.

    Unknown columns fall back to the first row; no column means the middle row.
    """
    names = [c.name for c in table.columns] if table is not None else []
    count = max(1, len(names))

    if column_name is not None:
        idx = names.index(column_name) if column_name in names else 0
    else:
        idx = count // 2

    idx = min(max(idx, 0), count - 1)
    row_top = TABLE_HEADER_H + TABLE_PADDING + idx * TABLE_ROW_H
    return row_top + TABLE_ROW_H / 2


def _anchor_y(node: DiagramNode, column: Optional[str]) -> float:
    if node.kind == NodeKind.TABLE:
        return node.y + table_anchor_y(node.table, column)
    return node.y + node.height / 2


def select_anchors(
    source: DiagramNode,
    target: DiagramNode,
    source_column: Optional[str] = None,
    target_column: Optional[str] = None
) -> tuple[Point, Point]:
    """Start and end anchor points for an edge between two nodes."""
    a = node_rect(source)
    b = node_rect(target)

    exit_right = b.center_x >= a.center_x

    start = (a.x + a.w if exit_right else a.x, _anchor_y(source, source_column))
    end = (b.x if exit_right else b.x + b.w, _anchor_y(target, target_column))
    return start, end


def build_obstacles_for_edge(
    nodes: Iterable[DiagramNode],
    source_id: str,
    target_id: str
) -> list[Rect]:
    """One inflated rectangle per node; endpoints get the smaller margin."""
    obstacles = []
    for node in nodes:
        pad = ENDPOINT_PAD if node.id in (source_id, target_id) else OBSTACLE_PAD
        obstacles.append(node_rect(node).inflate(pad))
    return obstacles


def _is_blocked(px: float, py: float, obstacles: Sequence[Rect]) -> bool:
    return any(r.contains(px, py) for r in obstacles)


# --- Polyline helpers ---

def compress_orthogonal(points: Sequence[Point]) -> list[Point]:
    """Drop repeated points and merge consecutive collinear runs."""
    if len(points) <= 2:
        return list(points)

    out: list[Point] = [points[0]]
    for x, y in points[1:]:
        ox, oy = out[-1]
        if x == ox and y == oy:
            continue

        if len(out) >= 2:
            px, py = out[-2]
            if (px == ox == x) or (py == oy == y):
                out[-1] = (x, y)
                continue

        out.append((x, y))
    return out


def enforce_right_angle_endpoints(points: Sequence[Point]) -> list[Point]:
    """
    Make the first and last segments axis-aligned.

    Exact anchor coordinates can leave a diagonal at either end of a grid
    path; a corner is inserted after the start (horizontal first) or before
    the end (horizontal last).
    """
    out = list(points)
    if len(out) < 2:
        return out

    if len(out) == 2:
        (sx, sy), (ex, ey) = out
        if sx != ex and sy != ey:
            mid_x = (sx + ex) / 2
            out = [(sx, sy), (mid_x, sy), (mid_x, ey), (ex, ey)]
        return compress_orthogonal(out)

    sx, sy = out[0]
    nx, ny = out[1]
    if sx != nx and sy != ny:
        out.insert(1, (nx, sy))

    ex, ey = out[-1]
    px, py = out[-2]
    if ex != px and ey != py:
        out.insert(len(out) - 1, (px, ey))

    return compress_orthogonal(out)


def fallback_path(start: Point, end: Point) -> list[Point]:
    """Horizontal-vertical-horizontal path between the exact anchors."""
    mid_x = (start[0] + end[0]) / 2
    return compress_orthogonal([start, (mid_x, start[1]), (mid_x, end[1]), end])


# --- Search ---

def route_manhattan_astar(
    start: Point,
    end: Point,
    obstacles: Sequence[Rect],
    step: int = ROUTE_GRID,
    max_iters: int = ROUTE_MAX_ITERS
) -> Optional[list[Point]]:
    """
    Grid A* between two world points.

    The open set behaves like a list scanned for the lowest f-score where the
    earliest entry wins ties; a heap keyed on (f, entry order) gives the same
    order without the quadratic scan.

    Returns:
        The compressed polyline with exact endpoints, or None when the open
        set empties or the iteration cap is reached
    """
    start_cell = (snap(start[0], step), snap(start[1], step))
    goal_cell = (snap(end[0], step), snap(end[1], step))

    min_x = min([start_cell[0] * step, goal_cell[0] * step] + [r.x for r in obstacles]) - ROUTE_PAD
    min_y = min([start_cell[1] * step, goal_cell[1] * step] + [r.y for r in obstacles]) - ROUTE_PAD
    max_x = max([start_cell[0] * step, goal_cell[0] * step] + [r.x + r.w for r in obstacles]) + ROUTE_PAD
    max_y = max([start_cell[1] * step, goal_cell[1] * step] + [r.y + r.h for r in obstacles]) + ROUTE_PAD

    def in_bounds(cell: Cell) -> bool:
        wx, wy = cell[0] * step, cell[1] * step
        return min_x <= wx <= max_x and min_y <= wy <= max_y

    def blocked(cell: Cell) -> bool:
        return _is_blocked(cell[0] * step, cell[1] * step, obstacles)

    def nudge_out(cell: Cell) -> Cell:
        if not blocked(cell):
            return cell
        for dx, dy in NUDGE_STEPS:
            candidate = (cell[0] + dx, cell[1] + dy)
            if in_bounds(candidate) and not blocked(candidate):
                return candidate
        return cell

    def manhattan(a: Cell, b: Cell) -> int:
        return abs(a[0] - b[0]) + abs(a[1] - b[1])

    s = nudge_out(start_cell)
    g = nudge_out(goal_cell)

    came_from: dict[Cell, Cell] = {}
    g_score: dict[Cell, int] = {s: 0}
    f_score: dict[Cell, int] = {s: manhattan(s, g)}
    entry_order: dict[Cell, int] = {s: 0}
    heap: list[tuple[int, int, Cell]] = [(f_score[s], 0, s)]
    counter = 1

    iters = 0
    while heap and iters < max_iters:
        f, order, current = heapq.heappop(heap)
        if entry_order.get(current) != order or f_score[current] != f:
            continue  # stale entry
        del entry_order[current]
        iters += 1

        if current == g:
            return _reconstruct(came_from, current, start, end, step)

        base = g_score[current]
        for dx, dy in NEIGHBOR_STEPS:
            nb = (current[0] + dx, current[1] + dy)
            if not in_bounds(nb) or blocked(nb):
                continue

            tentative = base + 1
            if tentative < g_score.get(nb, math.inf):
                came_from[nb] = current
                g_score[nb] = tentative
                f_score[nb] = tentative + manhattan(nb, g)

                if nb not in entry_order:
                    entry_order[nb] = counter
                    counter += 1
                heapq.heappush(heap, (f_score[nb], entry_order[nb], nb))

    logger.debug("Route search gave up after %d iterations", iters)
    return None


def _reconstruct(
    came_from: dict[Cell, Cell],
    goal: Cell,
    start: Point,
    end: Point,
    step: int
) -> list[Point]:
    """Walk parent links back to the start and swap in the exact endpoints."""
    cells = [goal]
    while cells[-1] in came_from:
        cells.append(came_from[cells[-1]])
    cells.reverse()

    if len(cells) == 1:
        return compress_orthogonal([start, end])

    points: list[Point] = [(cx * step, cy * step) for cx, cy in cells]
    points[0] = start
    points[-1] = end
    return compress_orthogonal(points)


# --- Label and arrowhead ---

def longest_segment_midpoint(points: Sequence[Point]) -> tuple[Point, tuple[Point, Point]]:
    """Midpoint of the longest segment, plus the segment itself."""
    if len(points) < 2:
        p = points[0] if points else (0.0, 0.0)
        return p, (p, p)

    best = (points[0], points[1])
    best_len2 = -1.0
    for a, b in zip(points, points[1:]):
        dx = b[0] - a[0]
        dy = b[1] - a[1]
        len2 = dx * dx + dy * dy
        if len2 > best_len2:
            best_len2 = len2
            best = (a, b)

    a, b = best
    return ((a[0] + b[0]) / 2, (a[1] + b[1]) / 2), best


def label_position(points: Sequence[Point], offset: float = LABEL_OFFSET) -> Point:
    """Label spot beside the longest segment, offset along its normal."""
    (mid_x, mid_y), (a, b) = longest_segment_midpoint(points)
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length = math.hypot(dx, dy) or 1
    nx = -dy / length
    ny = dx / length
    return (mid_x + nx * offset, mid_y + ny * offset)


def arrow_head_points(
    points: Sequence[Point],
    size: float = ARROW_SIZE,
    spread: float = ARROW_SPREAD
) -> Optional[list[Point]]:
    """
    Arrowhead polyline [wing, tip, wing] at the end of the path.

    Returns None when there is no final segment or it has zero length.
    """
    if len(points) < 2:
        return None

    x1, y1 = points[-2]
    x2, y2 = points[-1]
    dx = x2 - x1
    dy = y2 - y1
    if dx == 0 and dy == 0:
        return None

    length = math.hypot(dx, dy)
    ux = dx / length
    uy = dy / length
    px = -uy
    py = ux

    return [
        (x2 - ux * size + px * spread, y2 - uy * size + py * spread),
        (x2, y2),
        (x2 - ux * size - px * spread, y2 - uy * size - py * spread),
    ]


# --- Entry points ---

def route_edge(edge: DiagramEdge, nodes: Sequence[DiagramNode]) -> Optional[EdgeRoute]:
    """
    Route a single edge against all nodes.

    Returns None only when the source or target node is unknown.
    """
    nodes_by_id = {n.id: n for n in nodes}
    source = nodes_by_id.get(edge.source)
    target = nodes_by_id.get(edge.target)
    if source is None or target is None:
        return None

    start, end = select_anchors(source, target, edge.source_column, edge.target_column)
    obstacles = build_obstacles_for_edge(nodes, edge.source, edge.target)

    raw = route_manhattan_astar(start, end, obstacles)
    fallback = raw is None
    if fallback:
        logger.debug("Using fallback path for edge %s", edge.id)
        raw = fallback_path(start, end)

    points = enforce_right_angle_endpoints(raw)

    return EdgeRoute(
        id=edge.id,
        points=points,
        label=edge.label,
        label_pos=label_position(points),
        arrow_head=arrow_head_points(points),
        animated=edge.animated,
        stroke=edge.stroke,
        fallback=fallback,
    )


def route_edges(
    edges: Sequence[DiagramEdge],
    nodes: Sequence[DiagramNode],
    workers: int = 1
) -> list[EdgeRoute]:
    """
    Route every edge. Output order follows input order.

    Edges are independent, so they can be routed on a thread pool.
    """
    if workers > 1 and len(edges) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            routes = list(pool.map(lambda e: route_edge(e, nodes), edges))
    else:
        routes = [route_edge(e, nodes) for e in edges]

    return [r for r in routes if r is not None]
