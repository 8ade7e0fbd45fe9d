"""
Snapshot broadcaster.
Pushes playback snapshots to rendering clients over WebSocket and accepts
play/pause and stage-size commands from them.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

import websockets

from .player import PlaybackSnapshot, WebPlayer

logger = logging.getLogger('broadcast')


def snapshot_message(snapshot: PlaybackSnapshot) -> Dict[str, Any]:
    return {"type": "snapshot", **snapshot.to_dict()}


class SnapshotBroadcaster:
    """
    WebSocket server for rendering clients.

    Every client receives the current snapshot on connect and each
    published snapshot afterwards. Clients may send:
        {"type": "ping"}
        {"type": "get_state"}
        {"type": "toggle"}
        {"type": "dimensions", "width": int, "height": int}
    """

    def __init__(self, player: WebPlayer, host: str = "localhost", port: int = 8770):
        self.player = player
        self.host = host
        self.port = port
        self.clients: Set = set()
        self._server = None
        self._unsubscribe = None
        self._tasks: Set[asyncio.Task] = set()

    async def start(self):
        """Start serving and follow the player's snapshots."""
        self._unsubscribe = self.player.subscribe(self._on_snapshot)
        self._server = await websockets.serve(self.handle_client, self.host, self.port)
        logger.info(f"Snapshot broadcaster listening on ws://{self.host}:{self.port}")

    async def stop(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        logger.info("Snapshot broadcaster stopped")

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients."""
        if self.clients:
            msg = json.dumps(message, default=str)
            await asyncio.gather(*[client.send(msg) for client in self.clients], return_exceptions=True)

    async def handle_client(self, websocket):
        """Handle a rendering client connection."""
        self.clients.add(websocket)
        logger.info(f"Client connected. Total clients: {len(self.clients)}")

        try:
            await websocket.send(json.dumps(snapshot_message(self.player.snapshot), default=str))

            async for message in websocket:
                response = self.handle_message(message)
                if response is not None:
                    await websocket.send(json.dumps(response, default=str))

        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.clients.discard(websocket)
            logger.info(f"Client disconnected. Total clients: {len(self.clients)}")

    def handle_message(self, message: str) -> Optional[dict]:
        """Apply one client message and return the reply, if any."""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            return {"type": "error", "error": "invalid JSON"}
        if not isinstance(data, dict):
            return {"type": "error", "error": "message must be an object"}

        msg_type = data.get("type")

        if msg_type == "ping":
            return {"type": "pong"}

        elif msg_type == "get_state":
            return snapshot_message(self.player.snapshot)

        elif msg_type == "toggle":
            playing = self.player.toggle_player_state()
            return {"type": "toggle_ack", "is_playing": playing}

        elif msg_type == "dimensions":
            width, height = data.get("width"), data.get("height")
            if not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in (width, height)):
                return {"type": "error", "error": "width and height must be non-negative integers"}
            self.player.save_player_dimensions(width, height)
            return {"type": "dimensions_ack", "width": width, "height": height}

        return {"type": "error", "error": f"unknown message type: {msg_type}"}

    def _on_snapshot(self, snapshot: PlaybackSnapshot):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast(snapshot_message(snapshot)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
