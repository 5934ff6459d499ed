#!/usr/bin/env python3
"""
ERD Tool MCP Server

Provides MCP tools for AI agents to work with the schema diagram backend.
All changes are immediately reflected in the frontend via WebSocket updates.
"""

import httpx
from mcp.server.fastmcp import FastMCP
from typing import Optional
import json

from erd_core.settings import settings

# Backend API URL
API_BASE = settings.api_base

# Create MCP server
mcp = FastMCP("erd-tool")


class ApiError(Exception):
    """The backend answered with an error status."""


# --- HTTP Client Helper ---

def api_request(method: str, endpoint: str, **kwargs) -> dict:
    """Make a request to the ERD tool backend."""
    url = f"{API_BASE}{endpoint}"
    with httpx.Client(timeout=30.0) as client:
        if method == "GET":
            response = client.get(url, params=kwargs.get("params"))
        elif method == "POST":
            response = client.post(url, json=kwargs.get("json"), params=kwargs.get("params"))
        elif method == "PUT":
            response = client.put(url, json=kwargs.get("json"))
        elif method == "PATCH":
            response = client.patch(url, json=kwargs.get("json"))
        elif method == "DELETE":
            response = client.delete(url)
        else:
            raise ValueError(f"Unknown method: {method}")

        if response.status_code >= 400:
            error = response.json().get("detail", "Unknown error")
            raise ApiError(f"API error: {error}")

        return response.json()


# ============================================================================
# INSPECTION TOOLS
# ============================================================================

@mcp.tool()
def erd_get_current() -> str:
    """
    Get the full current diagram state.

    Returns the SQL text, every node with its position and size, edges,
    routed edge geometry, viewport and current file path. Use this to
    understand what's on the canvas before making changes.
    """
    result = api_request("GET", "/diagram")
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_get_graph() -> str:
    """
    Get the schema graph extracted from the current SQL.

    Returns tables (columns, primary/foreign keys, enum columns, indexes),
    enum types and resolved relations.
    """
    result = api_request("GET", "/graph")
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_get_routes() -> str:
    """
    Get routed edge geometry.

    Each route has its polyline points, label position and arrowhead.
    Routes flagged `fallback` could not find a clear path.
    """
    result = api_request("GET", "/routes")
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_search_tables(query: str = "") -> str:
    """
    Find tables whose name contains a substring (case-insensitive).

    Args:
        query: Substring to look for; empty lists every table
    """
    result = api_request("GET", "/tables/search", params={"q": query})
    return json.dumps(result, indent=2)


# ============================================================================
# EDITING TOOLS
# ============================================================================

@mcp.tool()
def erd_set_sql(sql: str) -> str:
    """
    Replace the SQL schema text. The diagram is rebuilt immediately.

    Args:
        sql: CREATE TABLE / CREATE TYPE ... AS ENUM / CREATE INDEX statements

    Tables keep their previous positions; new tables are placed by the
    layered layout.
    """
    result = api_request("PUT", "/sql", json={"sql": sql})
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_move_node(node_id: str, x: float, y: float, snap: bool = False) -> str:
    """
    Move a table or enum node. Edge routes are recomputed.

    Args:
        node_id: Table name, or `enum:<name>` for enum nodes
        x: New X coordinate
        y: New Y coordinate
        snap: Snap the position to the grid
    """
    result = api_request("PATCH", f"/nodes/{node_id}", json={"x": x, "y": y, "snap": snap})
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_auto_layout() -> str:
    """
    Discard saved positions and arrange every node left to right,
    following relation directions.
    """
    result = api_request("POST", "/layout/auto")
    return json.dumps(result, indent=2)


# ============================================================================
# FILE TOOLS
# ============================================================================

@mcp.tool()
def erd_list_blueprints(directory: Optional[str] = None) -> str:
    """
    List blueprint (.bp) files on disk.

    Args:
        directory: Directory to search (defaults to the configured diagrams dir)
    """
    params = {"directory": directory} if directory else None
    result = api_request("GET", "/blueprints", params=params)
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_open_blueprint(file_path: str) -> str:
    """
    Load a blueprint file as the active project.

    Args:
        file_path: Full path to the .bp file
    """
    result = api_request("POST", "/blueprint/open", json={"file_path": file_path})
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_save_blueprint(file_path: Optional[str] = None) -> str:
    """
    Save the current project to a blueprint file.

    Args:
        file_path: Path to save to (uses current path if not specified)
    """
    result = api_request("POST", "/blueprint/save", json={"file_path": file_path})
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_new_project() -> str:
    """Start an empty project."""
    result = api_request("POST", "/blueprint/new")
    return json.dumps(result, indent=2)


# ============================================================================
# HISTORY TOOLS
# ============================================================================

@mcp.tool()
def erd_undo() -> str:
    """Undo the last change to the SQL text or node positions."""
    result = api_request("POST", "/undo")
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_redo() -> str:
    """Redo the last undone change."""
    result = api_request("POST", "/redo")
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_create_snapshot(name: str) -> str:
    """
    Save a named restore point of the SQL text and positions.

    Args:
        name: Snapshot name
    """
    result = api_request("POST", "/snapshots", json={"name": name})
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_restore_snapshot(name: str) -> str:
    """
    Restore a named snapshot (undoable).

    Args:
        name: Snapshot name
    """
    result = api_request("POST", f"/snapshots/{name}/restore")
    return json.dumps(result, indent=2)


# ============================================================================
# ANALYSIS TOOLS
# ============================================================================

@mcp.tool()
def erd_diagnose() -> str:
    """
    Check the diagram for structural issues.

    Reports:
    - Foreign keys whose target table is not in the SQL
    - Tables without any relation
    - Edges drawn with the fallback path
    """
    result = api_request("GET", "/diagram/diagnostics")
    return json.dumps(result, indent=2)


@mcp.tool()
def erd_summarize(top_n: int = 5) -> str:
    """
    Get a structural summary of the schema.

    Returns table, column, relation, enum and index counts, connected
    components and the most connected tables.

    Args:
        top_n: How many of the most connected tables to list
    """
    result = api_request("GET", "/diagram/summary", params={"top_n": top_n})
    return json.dumps(result, indent=2)


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    mcp.run()
