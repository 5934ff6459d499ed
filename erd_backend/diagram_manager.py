"""
Diagram Manager - Core logic for project state, persistence, and history.

This module implements:
- Single project state management (one SQL document open at a time)
- Scene recomputation after every mutation (extract, layout, route)
- The positions cache, read before and written after each rebuild
- Linear undo/redo history using snapshots of {sql, positions}
- Blueprint (.bp) file persistence
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from erd_core.analysis import SchemaSummary, filter_tables, summarize_schema
from erd_core.blueprint import Blueprint, DEFAULT_LEFT_WIDTH, dump_blueprint, load_blueprint
from erd_core.diagnostics import ValidationIssue, diagnose
from erd_core.layout import snap_to_grid
from erd_core.logger import get_logger
from erd_core.models import EdgeRoute, Viewport
from erd_core.scene import Scene, build_scene
from erd_core.settings import settings

logger = get_logger(__name__)

Positions = dict[str, tuple[float, float]]


class DiagramManager:
    """
    Manages a single project's state, history, and persistence.

    Features:
    - Full scene rebuild after each mutation
    - Snapshot-based undo/redo history
    - Named snapshots for manual restore points
    - Change callbacks for real-time sync

    The history system works via snapshots:
    - Each mutation records the SQL text and positions before it runs
    - Undo restores the previous snapshot and rebuilds
    - Redo re-applies a snapshot from the future stack
    """

    def __init__(
        self,
        max_history: int = 100,
        edge_color: str = "#888888",
        route_workers: int = 1
    ):
        self._sql = ""
        self._positions: Positions = {}
        self._viewport = Viewport()
        self._left_width: float = DEFAULT_LEFT_WIDTH
        self._file_path: Optional[Path] = None
        self._history: list[dict] = []  # Past states (snapshots)
        self._future: list[dict] = []   # Future states (for redo)
        self._max_history = max_history
        self._dirty = False  # True if unsaved changes exist
        self._edge_color = edge_color
        self._route_workers = route_workers
        self._snapshots: dict[str, dict] = {}
        self._on_change_callbacks: list[Callable] = []
        self._on_save_callbacks: list[Callable] = []  # Called after successful save

        self._scene: Scene = build_scene("")

    # --- Scene ---

    def _rebuild(self, keep_existing: bool = True):
        """Recompute the scene from the SQL text and the positions cache."""
        self._scene = build_scene(
            self._sql,
            self._positions,
            edge_color=self._edge_color,
            keep_existing=keep_existing,
            workers=self._route_workers,
        )
        # Entries for nodes that disappeared stay cached, so a table that
        # comes back returns to where it was.
        self._positions.update(self._scene.positions())

    # --- Properties ---

    @property
    def scene(self) -> Scene:
        return self._scene

    @property
    def sql(self) -> str:
        return self._sql

    @property
    def positions(self) -> Positions:
        return dict(self._positions)

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def file_path(self) -> Optional[Path]:
        """Get the current file path."""
        return self._file_path

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return len(self._history) > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._future) > 0

    # --- Change Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for diagram changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        """Notify all registered callbacks of a change."""
        for callback in self._on_change_callbacks:
            callback()

    # --- Save Callbacks ---

    def on_save(self, callback: Callable):
        """Register a callback for project saves.

        Callback receives (path: Path, project_info: dict) where project_info contains:
        - name: file name without extension
        - table_count: number of tables
        - relation_count: number of relations
        """
        self._on_save_callbacks.append(callback)

    def _notify_save(self, path: Path):
        """Notify all registered callbacks of a successful save."""
        if not self._on_save_callbacks:
            return

        project_info = {
            "name": path.stem,
            "table_count": len(self._scene.graph.tables),
            "relation_count": len(self._scene.graph.relations),
        }

        for callback in self._on_save_callbacks:
            try:
                callback(path, project_info)
            except Exception:
                logger.exception("Save callback failed for %s", path)

    # --- History Management ---

    def _snapshot(self) -> dict:
        return {"sql": self._sql, "positions": dict(self._positions)}

    def _save_to_history(self):
        """Save current state to history before a mutation."""
        # Clear future (new action invalidates redo stack)
        self._future.clear()

        self._history.append(self._snapshot())

        # Trim history if too long
        if len(self._history) > self._max_history:
            self._history.pop(0)

    def _restore_from_snapshot(self, snapshot: dict):
        self._sql = snapshot["sql"]
        self._positions = dict(snapshot["positions"])
        self._rebuild()

    def _apply_blueprint(self, bp: Blueprint):
        self._sql = bp.sql
        self._positions = bp.position_map()
        self._left_width = bp.left_width
        if bp.viewport is not None:
            self._viewport = bp.viewport
        self._rebuild()

    # --- Editing ---

    def set_sql(self, sql: str) -> Scene:
        """Replace the SQL text and rebuild."""
        if sql == self._sql:
            return self._scene

        self._save_to_history()
        self._sql = sql
        self._rebuild()
        self._dirty = True
        self._notify_change()
        return self._scene

    def move_node(self, node_id: str, x: float, y: float, snap: bool = False) -> Optional[Scene]:
        """
        Move a node and reroute.

        Returns None when the node is not in the current scene.
        """
        node = self._scene.get_node(node_id)
        if node is None:
            return None

        if snap:
            moved = snap_to_grid([node.model_copy(update={"x": x, "y": y})])[0]
            x, y = moved.x, moved.y

        self._save_to_history()
        self._positions[node_id] = (x, y)
        self._rebuild()
        self._dirty = True
        self._notify_change()
        return self._scene

    def auto_layout(self) -> bool:
        """Forget cached positions and lay every node out again."""
        if not self._scene.nodes:
            return False

        self._save_to_history()
        self._positions.clear()
        self._rebuild(keep_existing=False)
        self._dirty = True
        self._notify_change()
        return True

    def set_viewport(self, x: float, y: float, zoom: float) -> Viewport:
        """Record the canvas pan/zoom. Not part of undo history."""
        if zoom <= 0:
            raise ValueError("Zoom must be positive")
        self._viewport = Viewport(x=x, y=y, zoom=zoom)
        return self._viewport

    def set_left_width(self, width: float) -> float:
        """Record the SQL panel width. Not part of undo history."""
        if width <= 0:
            raise ValueError("Panel width must be positive")
        self._left_width = width
        return self._left_width

    # --- File Operations ---

    def new_project(self) -> Scene:
        """Start an empty project."""
        self._sql = ""
        self._positions = {}
        self._viewport = Viewport()
        self._left_width = DEFAULT_LEFT_WIDTH
        self._file_path = None
        self._history.clear()
        self._future.clear()
        self._dirty = False
        self._rebuild()
        self._notify_change()
        return self._scene

    def open_blueprint(self, file_path: str | Path) -> Scene:
        """Open a project from a .bp file."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Blueprint file not found: {path}")

        bp = load_blueprint(path.read_text(encoding="utf-8"))

        self._apply_blueprint(bp)
        self._file_path = path
        self._history.clear()
        self._future.clear()
        self._dirty = False
        logger.info("Opened blueprint %s (%d tables)", path, len(self._scene.graph.tables))
        self._notify_change()
        return self._scene

    def export_blueprint(self) -> str:
        """Current project as blueprint JSON text."""
        bp = Blueprint.from_state(
            sql=self._sql,
            positions=self._scene.positions(),
            left_width=self._left_width,
            viewport=self._viewport,
        )
        return dump_blueprint(bp)

    def save_blueprint(self, file_path: Optional[str | Path] = None) -> Path:
        """
        Save the project to a .bp file.

        If file_path is provided, save to that path (Save As).
        Otherwise, save to the current file_path.
        """
        if not self._sql:
            raise ValueError("Nothing to save: SQL is empty")

        if file_path:
            path = Path(file_path)
        elif self._file_path:
            path = self._file_path
        else:
            raise ValueError("No file path specified and no current file path")

        # Ensure parent directory exists
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export_blueprint(), encoding="utf-8")

        self._file_path = path
        self._dirty = False
        logger.info("Saved blueprint %s", path)

        # Notify save callbacks (for external integrations)
        self._notify_save(path)

        return path

    def import_blueprint(self, text: str) -> Scene:
        """Load blueprint JSON text into the current project (undoable)."""
        bp = load_blueprint(text)

        self._save_to_history()
        self._apply_blueprint(bp)
        self._dirty = True
        self._notify_change()
        return self._scene

    # --- Undo/Redo ---

    def undo(self) -> Optional[Scene]:
        """Undo the last action."""
        if not self.can_undo:
            return None

        # Save current state to future
        self._future.append(self._snapshot())

        # Restore previous state
        self._restore_from_snapshot(self._history.pop())
        self._dirty = True
        self._notify_change()
        return self._scene

    def redo(self) -> Optional[Scene]:
        """Redo the last undone action."""
        if not self.can_redo:
            return None

        # Save current state to history
        self._history.append(self._snapshot())

        # Restore future state
        self._restore_from_snapshot(self._future.pop())
        self._dirty = True
        self._notify_change()
        return self._scene

    # --- Named Snapshots ---

    def create_snapshot(self, name: str) -> bool:
        """Create a named snapshot of the current project."""
        if not name or not name.strip():
            raise ValueError("Snapshot name must not be empty")

        self._snapshots[name] = {
            "state": self._snapshot(),
            "created_at": datetime.now(timezone.utc).isoformat()
        }
        return True

    def list_snapshots(self) -> list[dict]:
        """List all named snapshots."""
        return [
            {"name": name, "created_at": data["created_at"]}
            for name, data in self._snapshots.items()
        ]

    def restore_snapshot(self, name: str) -> Optional[Scene]:
        """Restore a named snapshot."""
        if name not in self._snapshots:
            return None

        self._save_to_history()
        self._restore_from_snapshot(self._snapshots[name]["state"])
        self._dirty = True
        self._notify_change()
        return self._scene

    def delete_snapshot(self, name: str) -> bool:
        """Delete a named snapshot."""
        if name in self._snapshots:
            del self._snapshots[name]
            return True
        return False

    # --- Queries ---

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "sql": self._sql,
            "nodes": [n.to_json_dict() for n in self._scene.nodes],
            "edges": [e.model_dump(mode="json") for e in self._scene.edges],
            "routes": [r.to_json_dict() for r in self._scene.routes],
            "viewport": self._viewport.model_dump(),
            "left_width": self._left_width,
            "file_path": str(self._file_path) if self._file_path else None,
            "is_dirty": self._dirty,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo
        }

    def get_graph(self) -> dict:
        return self._scene.graph.to_json_dict()

    def get_routes(self) -> list[EdgeRoute]:
        return list(self._scene.routes)

    def search_tables(self, query: str = "") -> list[str]:
        """Table names matching a case-insensitive substring, sorted."""
        return filter_tables(self._scene.graph, query)

    def diagnose(self) -> list[ValidationIssue]:
        return diagnose(self._scene.graph, self._scene.routes)

    def summarize(self, top_n: int = 5) -> SchemaSummary:
        return summarize_schema(self._scene.graph, top_n=top_n)


# Global instance for the application
diagram_manager = DiagramManager(
    max_history=settings.max_history,
    edge_color=settings.edge_color,
    route_workers=settings.route_workers,
)
