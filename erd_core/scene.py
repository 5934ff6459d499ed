"""
Scene pipeline: SQL text in, positioned nodes and routed edges out.

Every call is a full rebuild. The only state carried between rebuilds is the
positions cache, which the caller passes in and reads back from the result.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional

from .extractor import parse_sql_to_graph
from .layout import build_edges, build_nodes, layered_layout
from .logger import get_logger
from .models import DiagramEdge, DiagramNode, EdgeRoute, SchemaGraph
from .router import route_edges

logger = get_logger(__name__)


@dataclass
class Scene:
    """Everything needed to draw one diagram."""
    graph: SchemaGraph
    nodes: list[DiagramNode] = field(default_factory=list)
    edges: list[DiagramEdge] = field(default_factory=list)
    routes: list[EdgeRoute] = field(default_factory=list)

    def positions(self) -> dict[str, tuple[float, float]]:
        """Current node positions keyed by node id, for the next rebuild."""
        return {n.id: (n.x, n.y) for n in self.nodes}

    def get_node(self, node_id: str) -> Optional[DiagramNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_json_dict(self) -> dict:
        return {
            "graph": self.graph.to_json_dict(),
            "nodes": [n.to_json_dict() for n in self.nodes],
            "edges": [e.model_dump(mode="json") for e in self.edges],
            "routes": [r.to_json_dict() for r in self.routes],
        }


def build_scene(
    sql: str,
    positions: Optional[Mapping[str, tuple[float, float]]] = None,
    edge_color: str = "#888888",
    keep_existing: bool = True,
    workers: int = 1
) -> Scene:
    """
    Extract, build nodes/edges, lay out and route in one pass.

    Args:
        sql: Schema definition text
        positions: Position cache from the previous rebuild, keyed by node id
        edge_color: Stroke color for every edge
        keep_existing: Keep cached positions instead of laying those nodes out again
        workers: Threads used for routing

    Returns:
        Scene with graph, nodes, edges and routes
    """
    positions = dict(positions or {})

    graph = parse_sql_to_graph(sql)
    nodes = build_nodes(graph, positions)
    edges = build_edges(graph, stroke=edge_color)

    layered_layout(nodes, edges, keep_existing=keep_existing, existing_positions=positions)
    routes = route_edges(edges, nodes, workers=workers)

    logger.debug(
        "Built scene: %d nodes, %d edges, %d fallback routes",
        len(nodes), len(edges), sum(1 for r in routes if r.fallback)
    )
    return Scene(graph=graph, nodes=nodes, edges=edges, routes=routes)
