"""
ERD Tool Backend - FastAPI Application

This is the main entry point for the schema diagram backend.
It provides:
- REST API for the SQL document, the derived scene (nodes, edges, routes),
  node moves, layout, blueprint files, undo/redo and snapshots
- Diagnostics and summary endpoints
- WebSocket endpoint for real-time updates
- CORS configuration for local frontend development
"""
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from erd_core.blueprint import BLUEPRINT_EXT, BlueprintError, load_blueprint, safe_file_name
from erd_core.diagnostics import diagnostics_summary
from erd_core.logger import configure_logging, get_logger
from erd_core.settings import settings

from .diagram_manager import diagram_manager
from .websocket_manager import ws_manager

logger = get_logger(__name__)


# --- Async change notification ---
# Bridge between sync DiagramManager callbacks and async WebSocket broadcasts

_change_event = asyncio.Event()
_pending_saves: list[tuple[str, dict]] = []


def on_diagram_change():
    """Callback for diagram changes - sets event for async handler."""
    _change_event.set()


def on_project_saved(path: Path, project_info: dict):
    """Callback for blueprint saves - queued for the broadcaster."""
    _pending_saves.append((str(path), project_info))
    _change_event.set()


async def change_broadcaster():
    """Background task that broadcasts changes to WebSocket clients."""
    while True:
        await _change_event.wait()
        _change_event.clear()

        while _pending_saves:
            file_path, project_info = _pending_saves.pop(0)
            await ws_manager.notify_project_saved(file_path, project_info)

        scene = diagram_manager.scene
        file_path = diagram_manager.file_path
        await ws_manager.notify_diagram_updated(
            str(file_path) if file_path else None,
            tables=len(scene.graph.tables),
            relations=len(scene.graph.relations),
            fallback_routes=sum(1 for r in scene.routes if r.fallback)
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    diagram_manager.on_change(on_diagram_change)
    diagram_manager.on_save(on_project_saved)

    broadcaster_task = asyncio.create_task(change_broadcaster())
    logger.info("Backend started")

    yield

    broadcaster_task.cancel()
    try:
        await broadcaster_task
    except asyncio.CancelledError:
        pass


# --- FastAPI App ---

app = FastAPI(
    title="ERD Tool API",
    description="Backend API for the SQL schema diagram tool",
    version="1.0.0",
    lifespan=lifespan
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "connections": ws_manager.connection_count}


# --- Diagram State ---

@app.get("/api/diagram")
async def get_diagram():
    """Get the current SQL text, scene and project state."""
    return diagram_manager.get_state()


@app.get("/api/graph")
async def get_graph():
    """Get the extracted schema graph."""
    return {"success": True, "graph": diagram_manager.get_graph()}


@app.get("/api/routes")
async def get_routes():
    """Get routed edge geometry."""
    return {"success": True, "routes": [r.to_json_dict() for r in diagram_manager.get_routes()]}


# --- SQL ---

class SetSqlRequest(BaseModel):
    sql: str


@app.get("/api/sql")
async def get_sql():
    """Get the current SQL text."""
    return {"sql": diagram_manager.sql}


@app.put("/api/sql")
async def set_sql(request: SetSqlRequest):
    """Replace the SQL text and rebuild the diagram."""
    scene = diagram_manager.set_sql(request.sql)
    return {
        "success": True,
        "tables": len(scene.graph.tables),
        "enums": len(scene.graph.enums),
        "relations": len(scene.graph.relations)
    }


# --- Node Operations ---

class MoveNodeRequest(BaseModel):
    x: float
    y: float
    snap: bool = False


@app.get("/api/tables/search")
async def search_tables(q: str = Query(default="")):
    """Table names containing a case-insensitive substring."""
    return {"success": True, "tables": diagram_manager.search_tables(q)}


@app.get("/api/nodes/{node_id}")
async def get_node(node_id: str):
    """Get a specific node."""
    node = diagram_manager.scene.get_node(node_id)
    if node:
        return {"success": True, "node": node.to_json_dict()}
    raise HTTPException(status_code=404, detail="Node not found")


@app.patch("/api/nodes/{node_id}")
async def move_node(node_id: str, request: MoveNodeRequest):
    """Move a node; routes are recomputed."""
    scene = diagram_manager.move_node(node_id, request.x, request.y, snap=request.snap)
    if scene is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return {"success": True, "node": scene.get_node(node_id).to_json_dict()}


# --- Layout ---

@app.post("/api/layout/auto")
async def auto_layout():
    """Discard cached positions and lay out every node."""
    if diagram_manager.auto_layout():
        return {"success": True}
    raise HTTPException(status_code=400, detail="No nodes to layout")


class ViewportRequest(BaseModel):
    x: float = 0
    y: float = 0
    zoom: float = 1


@app.put("/api/viewport")
async def set_viewport(request: ViewportRequest):
    """Record the canvas pan/zoom."""
    try:
        viewport = diagram_manager.set_viewport(request.x, request.y, request.zoom)
        return {"success": True, "viewport": viewport.model_dump()}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


class LeftWidthRequest(BaseModel):
    left_width: float


@app.put("/api/left-width")
async def set_left_width(request: LeftWidthRequest):
    """Record the SQL panel width."""
    try:
        return {"success": True, "left_width": diagram_manager.set_left_width(request.left_width)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Blueprint Files ---

@app.post("/api/blueprint/new")
async def new_project():
    """Start an empty project."""
    diagram_manager.new_project()
    return {"success": True}


class OpenBlueprintRequest(BaseModel):
    file_path: str


@app.post("/api/blueprint/open")
async def open_blueprint(request: OpenBlueprintRequest):
    """Open a project from a .bp file."""
    try:
        scene = diagram_manager.open_blueprint(request.file_path)
        return {
            "success": True,
            "tables": len(scene.graph.tables),
            "file_path": str(diagram_manager.file_path)
        }
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BlueprintError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Failed to open blueprint: {e}")


class SaveBlueprintRequest(BaseModel):
    file_path: Optional[str] = None


@app.post("/api/blueprint/save")
async def save_blueprint(request: SaveBlueprintRequest):
    """Save the project to a .bp file."""
    try:
        path = diagram_manager.save_blueprint(request.file_path)
        return {"success": True, "file_path": str(path)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to save: {e}")


@app.get("/api/blueprint/export")
async def export_blueprint(name: str = Query(default="project")):
    """Get the project as blueprint JSON text with a suggested file name."""
    return {
        "success": True,
        "file_name": safe_file_name(name, BLUEPRINT_EXT),
        "content": diagram_manager.export_blueprint()
    }


class ImportBlueprintRequest(BaseModel):
    content: str


@app.post("/api/blueprint/import")
async def import_blueprint(request: ImportBlueprintRequest):
    """Load blueprint JSON text into the current project."""
    try:
        scene = diagram_manager.import_blueprint(request.content)
        return {"success": True, "tables": len(scene.graph.tables)}
    except BlueprintError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/blueprints")
async def list_blueprints(directory: str = Query(default=settings.diagrams_dir)):
    """List blueprint files in a directory."""
    path = Path(directory)
    if not path.exists():
        return {"success": True, "blueprints": []}

    blueprints = []
    for f in sorted(path.glob(f"*.{BLUEPRINT_EXT}")):
        try:
            bp = load_blueprint(f.read_text(encoding="utf-8"))
        except (OSError, BlueprintError) as e:
            logger.debug("Skipping unreadable blueprint %s: %s", f, e)
            continue
        blueprints.append({
            "path": str(f),
            "name": f.stem,
            "nodes": len(bp.positions)
        })

    return {"success": True, "blueprints": blueprints}


# --- Undo/Redo ---

@app.post("/api/undo")
async def undo():
    """Undo the last action."""
    if diagram_manager.undo():
        return {"success": True, "sql": diagram_manager.sql}
    return {"success": False, "message": "Nothing to undo"}


@app.post("/api/redo")
async def redo():
    """Redo the last undone action."""
    if diagram_manager.redo():
        return {"success": True, "sql": diagram_manager.sql}
    return {"success": False, "message": "Nothing to redo"}


# --- Snapshots ---

class CreateSnapshotRequest(BaseModel):
    name: str = Field(min_length=1)


@app.post("/api/snapshots")
async def create_snapshot(request: CreateSnapshotRequest):
    """Create a named snapshot."""
    try:
        diagram_manager.create_snapshot(request.name)
        return {"success": True, "name": request.name}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/snapshots")
async def list_snapshots():
    """List all named snapshots."""
    return {"success": True, "snapshots": diagram_manager.list_snapshots()}


@app.post("/api/snapshots/{name}/restore")
async def restore_snapshot(name: str):
    """Restore a named snapshot."""
    if diagram_manager.restore_snapshot(name):
        return {"success": True, "sql": diagram_manager.sql}
    raise HTTPException(status_code=404, detail="Snapshot not found")


@app.delete("/api/snapshots/{name}")
async def delete_snapshot(name: str):
    """Delete a named snapshot."""
    if diagram_manager.delete_snapshot(name):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Snapshot not found")


# --- Analysis & Diagnostics ---

@app.get("/api/diagram/diagnostics")
async def diagnose_current_diagram():
    """
    Check the current diagram for structural issues.

    Returns a list of issues (unresolved foreign keys, isolated tables,
    fallback routes) and a summary.
    """
    issues = diagram_manager.diagnose()
    return {
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": diagnostics_summary(issues)
    }


@app.get("/api/diagram/summary")
async def summarize_current_diagram(top_n: int = Query(default=5, ge=1)):
    """
    Get a structural summary of the current schema.

    Returns table/column/relation counts, connected components,
    and most connected tables.
    """
    return {
        "success": True,
        "summary": diagram_manager.summarize(top_n=top_n).to_dict()
    }


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Clients connect here to receive diagram_updated events.
    """
    await ws_manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text('{"type": "pong"}')
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception:
        logger.exception("WebSocket error")
        await ws_manager.disconnect(websocket)


# --- Run with uvicorn ---

def run(host: Optional[str] = None, port: Optional[int] = None):
    import uvicorn

    configure_logging(settings.log_level, json_format=settings.log_json)
    uvicorn.run(app, host=host or settings.host, port=port or settings.port)


if __name__ == "__main__":
    run()
