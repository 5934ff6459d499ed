"""
WebSocket Manager - pushes scene rebuild and save events to connected canvases.

Messages are small JSON objects; clients re-fetch GET /api/diagram on
`diagram_updated` rather than receiving the scene itself.
"""
import asyncio
import json
from typing import Optional

from fastapi import WebSocket

from erd_core.logger import get_logger

logger = get_logger(__name__)


class WebSocketManager:
    """Registry of open canvas connections with fan-out sending."""

    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.info("Canvas connected (%d open)", len(self._clients))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self._clients.discard(websocket)
        logger.info("Canvas disconnected (%d open)", len(self._clients))

    async def broadcast(self, message: dict) -> int:
        """
        Send one message to every client.

        Clients that fail to receive are dropped. Returns how many clients
        got the message.
        """
        if not self._clients:
            return 0

        payload = json.dumps(message)
        stale: set[WebSocket] = set()

        async with self._lock:
            for websocket in self._clients:
                try:
                    await websocket.send_text(payload)
                except Exception as e:
                    logger.debug("Dropping canvas after failed send: %s", e)
                    stale.add(websocket)
            self._clients -= stale
            return len(self._clients)

    async def notify_diagram_updated(
        self,
        file_path: Optional[str] = None,
        tables: int = 0,
        relations: int = 0,
        fallback_routes: int = 0
    ) -> int:
        """Tell clients the scene was rebuilt."""
        return await self.broadcast({
            "type": "diagram_updated",
            "file_path": file_path,
            "tables": tables,
            "relations": relations,
            "fallback_routes": fallback_routes
        })

    async def notify_project_saved(self, file_path: str, project_info: dict) -> int:
        """Tell clients the project was written to a blueprint file."""
        return await self.broadcast({
            "type": "project_saved",
            "file_path": file_path,
            **project_info
        })


ws_manager = WebSocketManager()
