"""
PostgreSQL-backed game store for Take 6.

Each game is stored as one JSONB snapshot of the whole aggregate plus a
version number, next to an append-only log of the events that produced it.

Features:
- Optimistic concurrency: every write names the version it was computed
  from and fails if the row has moved on since
- Snapshot replace and event append happen in one transaction
- Event history per game, ordered by sequence number
"""

import json
import logging
from dataclasses import dataclass
from datetime import timezone
from typing import Optional

import asyncpg

from models.events import GameEvent, EventType

logger = logging.getLogger(__name__)


class ConcurrencyError(Exception):
    """Raised when optimistic concurrency check fails."""
    pass


@dataclass
class StoredGame:
    """
    A game snapshot as read from a store.

    Attributes:
        code: Game code.
        version: Version to pass back as expected_version when writing.
        state: Game.to_dict() snapshot.
    """

    code: str
    version: int
    state: dict


# SQL schema for the game store
SCHEMA_SQL = """
-- Current state of each game (one row per game, replaced on every write)
CREATE TABLE IF NOT EXISTS games (
    code VARCHAR(16) PRIMARY KEY,
    version INT NOT NULL,
    status VARCHAR(20) NOT NULL,
    state JSONB NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Events table (append-only log)
CREATE TABLE IF NOT EXISTS game_events (
    id BIGSERIAL PRIMARY KEY,
    game_code VARCHAR(16) NOT NULL,
    sequence_num INT NOT NULL,
    event_type VARCHAR(50) NOT NULL,
    player_id VARCHAR(50),
    event_data JSONB NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    -- Ensure events are ordered and unique per game
    UNIQUE(game_code, sequence_num)
);

CREATE INDEX IF NOT EXISTS idx_games_status ON games(status);
CREATE INDEX IF NOT EXISTS idx_game_events_code_seq ON game_events(game_code, sequence_num);
CREATE INDEX IF NOT EXISTS idx_game_events_type ON game_events(event_type);
"""


class GameStore:
    """
    PostgreSQL-backed game store.

    Uses asyncpg for async database access.
    """

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize game store with connection pool.

        Args:
            pool: asyncpg connection pool.
        """
        self.pool = pool

    @classmethod
    async def create(cls, postgres_url: str) -> "GameStore":
        """
        Create a GameStore with a new connection pool.

        Args:
            postgres_url: PostgreSQL connection URL.

        Returns:
            Configured GameStore instance.
        """
        pool = await asyncpg.create_pool(postgres_url, min_size=2, max_size=10)
        store = cls(pool)
        await store.initialize_schema()
        return store

    async def initialize_schema(self) -> None:
        """Create database tables if they don't exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Game store schema initialized")

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    async def read_game(self, code: str) -> Optional[StoredGame]:
        """
        Read the current snapshot of a game.

        Args:
            code: Game code.

        Returns:
            StoredGame, or None if no such game exists.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT code, version, state FROM games WHERE code = $1",
                code,
            )
            if row is None:
                return None
            return StoredGame(
                code=row["code"],
                version=row["version"],
                state=json.loads(row["state"]),
            )

    async def create_game(self, code: str, state: dict) -> int:
        """
        Insert a brand new game at version 1.

        Args:
            code: Game code.
            state: Initial snapshot.

        Returns:
            The new version (1).

        Raises:
            ConcurrencyError: If a game with this code already exists.
        """
        async with self.pool.acquire() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO games (code, version, status, state)
                    VALUES ($1, 1, $2, $3)
                    """,
                    code,
                    state.get("status", "waiting"),
                    json.dumps(state),
                )
            except asyncpg.UniqueViolationError:
                raise ConcurrencyError(f"Game {code} already exists")
        return 1

    async def write_game(
        self,
        code: str,
        state: dict,
        expected_version: int,
        events: list[GameEvent],
    ) -> int:
        """
        Replace a game's snapshot and append its events atomically.

        The snapshot is only replaced if the stored version still equals
        expected_version. Either both the snapshot and every event are
        written, or nothing is.

        Args:
            code: Game code.
            state: New snapshot.
            expected_version: Version the new state was computed from.
            events: Events produced by the mutation, in order.

        Returns:
            The new version.

        Raises:
            ConcurrencyError: If the stored version moved on, or an event
                sequence number is already taken.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    UPDATE games
                    SET version = version + 1, status = $3, state = $4, updated_at = NOW()
                    WHERE code = $1 AND version = $2
                    RETURNING version
                    """,
                    code,
                    expected_version,
                    state.get("status", "waiting"),
                    json.dumps(state),
                )
                if row is None:
                    raise ConcurrencyError(
                        f"Game {code} is no longer at version {expected_version}"
                    )

                for event in events:
                    try:
                        await conn.execute(
                            """
                            INSERT INTO game_events
                                (game_code, sequence_num, event_type, player_id, event_data)
                            VALUES ($1, $2, $3, $4, $5)
                            """,
                            event.game_code,
                            event.sequence_num,
                            event.event_type.value,
                            event.player_id,
                            json.dumps(event.data),
                        )
                    except asyncpg.UniqueViolationError:
                        raise ConcurrencyError(
                            f"Event {event.sequence_num} already exists for game {code}"
                        )

                return row["version"]

    # -------------------------------------------------------------------------
    # Event Reads
    # -------------------------------------------------------------------------

    async def get_events(self, code: str, from_sequence: int = 0) -> list[GameEvent]:
        """
        Get events for a game from a sequence number on.

        Args:
            code: Game code.
            from_sequence: Start sequence (inclusive).

        Returns:
            List of events in sequence order.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT event_type, game_code, sequence_num, player_id, event_data, created_at
                FROM game_events
                WHERE game_code = $1 AND sequence_num >= $2
                ORDER BY sequence_num
                """,
                code,
                from_sequence,
            )
            return [self._row_to_event(row) for row in rows]

    async def get_active_games(self) -> list[str]:
        """Codes of games not yet finished, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT code FROM games
                WHERE status != 'finished'
                ORDER BY created_at DESC
                """
            )
            return [row["code"] for row in rows]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _row_to_event(self, row: asyncpg.Record) -> GameEvent:
        """Convert a database row to a GameEvent."""
        return GameEvent(
            event_type=EventType(row["event_type"]),
            game_code=row["game_code"],
            sequence_num=row["sequence_num"],
            player_id=row["player_id"],
            data=json.loads(row["event_data"]) if row["event_data"] else {},
            timestamp=row["created_at"].replace(tzinfo=timezone.utc),
        )


# Global game store instance (initialized on first use)
_game_store: Optional[GameStore] = None


async def get_game_store(postgres_url: str) -> GameStore:
    """
    Get or create the global game store instance.

    Args:
        postgres_url: PostgreSQL connection URL.

    Returns:
        GameStore instance.
    """
    global _game_store
    if _game_store is None:
        _game_store = await GameStore.create(postgres_url)
    return _game_store


async def close_game_store() -> None:
    """Close the global game store connection."""
    global _game_store
    if _game_store is not None:
        await _game_store.close()
        _game_store = None
