"""
Local WebSocket connections of Take 6 games.

Game state lives in the game store; this module only tracks which
sockets on this server are watching which game so events and per-player
state can be pushed to them.

A Room contains:
    - The game code it mirrors
    - The connections (player ID -> WebSocket) attached on this server
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import WebSocket

from game import Game

logger = logging.getLogger(__name__)


@dataclass
class Room:
    """
    Connections watching one game on this server.

    Attributes:
        code: Game code.
        connections: Player ID -> WebSocket.
    """

    code: str
    connections: dict[str, WebSocket] = field(default_factory=dict)

    def attach(self, player_id: str, websocket: WebSocket) -> None:
        self.connections[player_id] = websocket

    def detach(self, player_id: str) -> Optional[WebSocket]:
        return self.connections.pop(player_id, None)

    def is_empty(self) -> bool:
        return not self.connections

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to every connection in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player ID to skip.
        """
        for player_id, websocket in list(self.connections.items()):
            if player_id == exclude:
                continue
            await self._send(player_id, websocket, message)

    async def send_to(self, player_id: str, message: dict) -> None:
        websocket = self.connections.get(player_id)
        if websocket is not None:
            await self._send(player_id, websocket, message)

    async def send_game_state(self, game: Game) -> None:
        """Send every connection its own view of the game."""
        for player_id, websocket in list(self.connections.items()):
            await self._send(player_id, websocket, {
                "type": "game_state",
                "game_state": game.get_state(player_id),
            })

    async def _send(self, player_id: str, websocket: WebSocket, message: dict) -> None:
        try:
            await websocket.send_json(message)
        except Exception as e:
            # Socket went away; its receive loop cleans up
            logger.debug(f"Send to {player_id} in {self.code} failed: {e}")


class RoomManager:
    """
    All rooms with at least one connection on this server.

    A single RoomManager instance is used by the server.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, Room] = {}

    def get_room(self, code: str) -> Optional[Room]:
        """Get a room by game code (case-insensitive)."""
        return self.rooms.get(code.upper())

    def attach(self, code: str, player_id: str, websocket: WebSocket) -> Room:
        """Attach a connection to a game's room (codes are case-insensitive)."""
        code = code.upper()
        room = self.rooms.get(code)
        if room is None:
            room = self.rooms[code] = Room(code=code)
        room.attach(player_id, websocket)
        return room

    def detach(self, code: str, player_id: str) -> bool:
        """
        Detach a connection.

        Returns:
            True if the room is now empty (and was removed).
        """
        code = code.upper()
        room = self.rooms.get(code)
        if room is None:
            return False
        room.detach(player_id)
        if room.is_empty():
            del self.rooms[code]
            return True
        return False

    def connection_count(self) -> int:
        return sum(len(room.connections) for room in self.rooms.values())
