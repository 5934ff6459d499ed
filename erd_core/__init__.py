"""
ERD Core - Shared models, SQL extraction, layout, routing and analysis.

This package provides the core functionality used by the backend API, the
CLI and the MCP tools, ensuring a single source of truth for all diagram logic.
"""

from .models import (
    # Enums
    NodeKind,
    # Schema models
    ForeignKeyTarget,
    SqlColumn,
    SqlIndex,
    SqlTable,
    SqlEnum,
    SqlRelation,
    SchemaGraph,
    # Diagram models
    DiagramNode,
    DiagramEdge,
    EdgeRoute,
    Viewport,
)

from .extractor import parse_sql_to_graph
from .layout import build_nodes, build_edges, layered_layout, snap_to_grid
from .router import route_edge, route_edges
from .scene import Scene, build_scene
from .blueprint import Blueprint, BlueprintError, dump_blueprint, load_blueprint, safe_file_name
from .diagnostics import diagnose, diagnostics_summary, missing_foreign_keys, ValidationIssue, IssueSeverity
from .analysis import summarize_schema, find_connected_components, filter_tables

__all__ = [
    # Enums
    "NodeKind",
    # Schema models
    "ForeignKeyTarget",
    "SqlColumn",
    "SqlIndex",
    "SqlTable",
    "SqlEnum",
    "SqlRelation",
    "SchemaGraph",
    # Diagram models
    "DiagramNode",
    "DiagramEdge",
    "EdgeRoute",
    "Viewport",
    # Extraction
    "parse_sql_to_graph",
    # Layout
    "build_nodes",
    "build_edges",
    "layered_layout",
    "snap_to_grid",
    # Routing
    "route_edge",
    "route_edges",
    # Pipeline
    "Scene",
    "build_scene",
    # Persistence
    "Blueprint",
    "BlueprintError",
    "dump_blueprint",
    "load_blueprint",
    "safe_file_name",
    # Diagnostics
    "diagnose",
    "diagnostics_summary",
    "missing_foreign_keys",
    "ValidationIssue",
    "IssueSeverity",
    # Analysis
    "summarize_schema",
    "find_connected_components",
    "filter_tables",
]
