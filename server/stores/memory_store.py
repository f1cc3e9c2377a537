"""
In-process game store for Take 6.

Same contract as GameStore (versioned snapshots plus an event log) kept
in dictionaries. Used when no PostgreSQL URL is configured and in tests.
Snapshots are copied through JSON on the way in and out so callers can
never mutate stored state by accident.
"""

import asyncio
import json
import logging
from typing import Optional

from models.events import GameEvent
from .game_store import ConcurrencyError, StoredGame

logger = logging.getLogger(__name__)


class MemoryGameStore:
    """Dictionary-backed game store for a single process."""

    def __init__(self):
        self._games: dict[str, StoredGame] = {}
        self._events: dict[str, list[GameEvent]] = {}
        self._lock = asyncio.Lock()

    async def read_game(self, code: str) -> Optional[StoredGame]:
        stored = self._games.get(code)
        if stored is None:
            return None
        return StoredGame(code=code, version=stored.version, state=_copy(stored.state))

    async def create_game(self, code: str, state: dict) -> int:
        async with self._lock:
            if code in self._games:
                raise ConcurrencyError(f"Game {code} already exists")
            self._games[code] = StoredGame(code=code, version=1, state=_copy(state))
            self._events[code] = []
        return 1

    async def write_game(
        self,
        code: str,
        state: dict,
        expected_version: int,
        events: list[GameEvent],
    ) -> int:
        async with self._lock:
            stored = self._games.get(code)
            if stored is None or stored.version != expected_version:
                raise ConcurrencyError(
                    f"Game {code} is no longer at version {expected_version}"
                )

            log = self._events.setdefault(code, [])
            last_seq = log[-1].sequence_num if log else 0
            for event in events:
                if event.sequence_num <= last_seq:
                    raise ConcurrencyError(
                        f"Event {event.sequence_num} already exists for game {code}"
                    )
                last_seq = event.sequence_num

            new_version = stored.version + 1
            self._games[code] = StoredGame(code=code, version=new_version, state=_copy(state))
            log.extend(GameEvent.from_dict(e.to_dict()) for e in events)
            return new_version

    async def get_events(self, code: str, from_sequence: int = 0) -> list[GameEvent]:
        return [
            GameEvent.from_dict(e.to_dict())
            for e in self._events.get(code, [])
            if e.sequence_num >= from_sequence
        ]

    async def get_active_games(self) -> list[str]:
        return [
            code for code, stored in self._games.items()
            if stored.state.get("status") != "finished"
        ]

    async def close(self) -> None:
        self._games.clear()
        self._events.clear()


def _copy(state: dict) -> dict:
    return json.loads(json.dumps(state))
