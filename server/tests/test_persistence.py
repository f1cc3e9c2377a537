"""
Tests for the persistence layer.

These tests cover:
- MemoryGameStore: versioned snapshots and the event log
- GameStore: SQL issued against a mocked asyncpg pool
- GamePubSub: cross-server event fan-out over a mocked Redis

No database or Redis server is needed.
"""

import json
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg

from stores.game_store import ConcurrencyError, GameStore
from stores.memory_store import MemoryGameStore
from stores.pubsub import GamePubSub, MessageType, PubSubMessage
from models.events import EventType, card_submitted, game_created, player_joined


# =============================================================================
# Fixtures
# =============================================================================

class _AsyncContext:
    """Async context manager yielding a fixed object."""

    def __init__(self, value=None):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def mock_conn():
    """Mocked asyncpg connection with a no-op transaction."""
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.transaction = MagicMock(return_value=_AsyncContext())
    return conn


@pytest.fixture
def pg_store(mock_conn):
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=_AsyncContext(mock_conn))
    pool.close = AsyncMock()
    return GameStore(pool)


def sample_events(code: str = "ABC123") -> list:
    return [
        game_created(code, 1, host_id="p1", rules={"max_rounds": 6}),
        player_joined(code, 2, player_id="p1", player_name="Alice"),
    ]


# =============================================================================
# MemoryGameStore Tests
# =============================================================================

class TestMemoryGameStore:

    @pytest.mark.asyncio
    async def test_create_and_read(self):
        store = MemoryGameStore()
        version = await store.create_game("ABC123", {"status": "waiting", "rows": []})

        stored = await store.read_game("ABC123")
        assert version == 1
        assert stored.version == 1
        assert stored.state == {"status": "waiting", "rows": []}

    @pytest.mark.asyncio
    async def test_read_missing(self):
        assert await MemoryGameStore().read_game("NOPE00") is None

    @pytest.mark.asyncio
    async def test_duplicate_code(self):
        store = MemoryGameStore()
        await store.create_game("ABC123", {})
        with pytest.raises(ConcurrencyError):
            await store.create_game("ABC123", {})

    @pytest.mark.asyncio
    async def test_write_bumps_version_and_appends_events(self):
        store = MemoryGameStore()
        await store.create_game("ABC123", {"status": "waiting"})

        version = await store.write_game("ABC123", {"status": "playing"}, 1, sample_events())

        assert version == 2
        stored = await store.read_game("ABC123")
        assert stored.state == {"status": "playing"}
        events = await store.get_events("ABC123")
        assert [e.sequence_num for e in events] == [1, 2]

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self):
        store = MemoryGameStore()
        await store.create_game("ABC123", {"status": "waiting"})
        await store.write_game("ABC123", {"status": "waiting", "n": 1}, 1, [])

        with pytest.raises(ConcurrencyError):
            await store.write_game("ABC123", {"status": "waiting", "n": 2}, 1, sample_events())

        stored = await store.read_game("ABC123")
        assert stored.state["n"] == 1
        assert await store.get_events("ABC123") == []

    @pytest.mark.asyncio
    async def test_reused_sequence_rejected(self):
        store = MemoryGameStore()
        await store.create_game("ABC123", {})
        await store.write_game("ABC123", {}, 1, sample_events())

        with pytest.raises(ConcurrencyError):
            await store.write_game("ABC123", {}, 2, [card_submitted("ABC123", 2, "p1", 1)])

        assert (await store.read_game("ABC123")).version == 2

    @pytest.mark.asyncio
    async def test_state_is_copied(self):
        store = MemoryGameStore()
        state = {"rows": [[1]]}
        await store.create_game("ABC123", state)
        state["rows"][0].append(2)

        stored = await store.read_game("ABC123")
        stored.state["rows"].append([3])

        assert (await store.read_game("ABC123")).state == {"rows": [[1]]}

    @pytest.mark.asyncio
    async def test_get_events_from_sequence(self):
        store = MemoryGameStore()
        await store.create_game("ABC123", {})
        await store.write_game("ABC123", {}, 1, sample_events())

        events = await store.get_events("ABC123", from_sequence=2)
        assert [e.event_type for e in events] == [EventType.PLAYER_JOINED]

    @pytest.mark.asyncio
    async def test_active_games_skip_finished(self):
        store = MemoryGameStore()
        await store.create_game("LIVE01", {"status": "playing"})
        await store.create_game("DONE01", {"status": "finished"})

        assert await store.get_active_games() == ["LIVE01"]


# =============================================================================
# GameStore Tests
# =============================================================================

class TestGameStore:

    @pytest.mark.asyncio
    async def test_read_game(self, pg_store, mock_conn):
        mock_conn.fetchrow.return_value = {
            "code": "ABC123",
            "version": 4,
            "state": json.dumps({"status": "playing"}),
        }

        stored = await pg_store.read_game("ABC123")

        assert stored.version == 4
        assert stored.state == {"status": "playing"}

    @pytest.mark.asyncio
    async def test_read_missing(self, pg_store):
        assert await pg_store.read_game("NOPE00") is None

    @pytest.mark.asyncio
    async def test_create_duplicate(self, pg_store, mock_conn):
        mock_conn.execute.side_effect = asyncpg.UniqueViolationError("duplicate key")
        with pytest.raises(ConcurrencyError):
            await pg_store.create_game("ABC123", {"status": "waiting"})

    @pytest.mark.asyncio
    async def test_write_game(self, pg_store, mock_conn):
        mock_conn.fetchrow.return_value = {"version": 3}

        version = await pg_store.write_game("ABC123", {"status": "playing"}, 2, sample_events())

        assert version == 3
        update_args = mock_conn.fetchrow.call_args[0]
        assert "WHERE code = $1 AND version = $2" in update_args[0]
        assert update_args[1:4] == ("ABC123", 2, "playing")
        assert mock_conn.execute.await_count == 2
        first_insert = mock_conn.execute.call_args_list[0][0]
        assert first_insert[1:5] == ("ABC123", 1, "game_created", "p1")

    @pytest.mark.asyncio
    async def test_write_stale_version(self, pg_store, mock_conn):
        mock_conn.fetchrow.return_value = None

        with pytest.raises(ConcurrencyError):
            await pg_store.write_game("ABC123", {"status": "playing"}, 2, sample_events())

        mock_conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_duplicate_event(self, pg_store, mock_conn):
        mock_conn.fetchrow.return_value = {"version": 3}
        mock_conn.execute.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(ConcurrencyError):
            await pg_store.write_game("ABC123", {}, 2, sample_events())

    @pytest.mark.asyncio
    async def test_get_events(self, pg_store, mock_conn):
        mock_conn.fetch.return_value = [{
            "event_type": "player_joined",
            "game_code": "ABC123",
            "sequence_num": 2,
            "player_id": "p1",
            "event_data": json.dumps({"player_name": "Alice", "is_spectator": False}),
            "created_at": datetime(2026, 1, 1, 12, 0),
        }]

        events = await pg_store.get_events("ABC123", from_sequence=2)

        assert len(events) == 1
        assert events[0].event_type == EventType.PLAYER_JOINED
        assert events[0].data["player_name"] == "Alice"
        assert events[0].timestamp.tzinfo == timezone.utc
        assert mock_conn.fetch.call_args[0][1:] == ("ABC123", 2)


# =============================================================================
# GamePubSub Tests
# =============================================================================

class TestGamePubSub:
    """Tests for GamePubSub class."""

    @pytest.fixture
    def mock_pubsub_redis(self):
        """Create mock Redis with pubsub support."""
        mock = AsyncMock()
        mock_pubsub = AsyncMock()
        mock_pubsub.subscribe = AsyncMock()
        mock_pubsub.unsubscribe = AsyncMock()
        mock_pubsub.get_message = AsyncMock(return_value=None)
        mock_pubsub.close = AsyncMock()
        mock.pubsub = MagicMock(return_value=mock_pubsub)
        mock.publish = AsyncMock(return_value=1)
        return mock, mock_pubsub

    @pytest.mark.asyncio
    async def test_subscribe_to_game(self, mock_pubsub_redis):
        redis_client, mock_ps = mock_pubsub_redis
        pubsub = GamePubSub(redis_client, server_id="test-server")

        await pubsub.subscribe("ABC123", AsyncMock())
        await pubsub.subscribe("ABC123", AsyncMock())

        mock_ps.subscribe.assert_called_once_with("take6:game:ABC123")
        assert len(pubsub._handlers["take6:game:ABC123"]) == 2

    @pytest.mark.asyncio
    async def test_unsubscribe(self, mock_pubsub_redis):
        redis_client, mock_ps = mock_pubsub_redis
        pubsub = GamePubSub(redis_client, server_id="test-server")

        await pubsub.subscribe("ABC123", AsyncMock())
        await pubsub.unsubscribe("ABC123")

        mock_ps.unsubscribe.assert_called_once_with("take6:game:ABC123")
        assert "take6:game:ABC123" not in pubsub._handlers

    @pytest.mark.asyncio
    async def test_publish_event(self, mock_pubsub_redis):
        redis_client, _ = mock_pubsub_redis
        pubsub = GamePubSub(redis_client, server_id="test-server")

        count = await pubsub.publish_event(card_submitted("ABC123", 7, "p1", 3))

        assert count == 1
        channel, raw = redis_client.publish.call_args[0]
        assert channel == "take6:game:ABC123"
        msg = PubSubMessage.from_json(raw)
        assert msg.type == MessageType.GAME_EVENT
        assert msg.sender_id == "test-server"
        assert msg.data["sequence_num"] == 7

    @pytest.mark.asyncio
    async def test_dispatch_skips_own_messages(self, mock_pubsub_redis):
        redis_client, _ = mock_pubsub_redis
        pubsub = GamePubSub(redis_client, server_id="test-server")
        handler = AsyncMock()
        await pubsub.subscribe("ABC123", handler)

        own = PubSubMessage(MessageType.GAME_STATE_UPDATE, "ABC123", {}, sender_id="test-server")
        other = PubSubMessage(MessageType.GAME_STATE_UPDATE, "ABC123", {}, sender_id="web-2")
        for msg in (own, other):
            await pubsub._dispatch({
                "type": "message",
                "channel": b"take6:game:ABC123",
                "data": msg.to_json().encode(),
            })

        handler.assert_awaited_once()
        assert handler.call_args[0][0].sender_id == "web-2"

    @pytest.mark.asyncio
    async def test_dispatch_ignores_garbage(self, mock_pubsub_redis):
        redis_client, _ = mock_pubsub_redis
        pubsub = GamePubSub(redis_client, server_id="test-server")
        handler = AsyncMock()
        await pubsub.subscribe("ABC123", handler)

        await pubsub._dispatch({"type": "message", "channel": "take6:game:ABC123", "data": "not json"})

        handler.assert_not_called()

    def test_pubsub_message_serialization(self):
        message = PubSubMessage(
            type=MessageType.GAME_STATE_UPDATE,
            game_code="ABC123",
            data={"round": 2},
            sender_id="server-1",
        )

        parsed = PubSubMessage.from_json(message.to_json())

        assert parsed.type == MessageType.GAME_STATE_UPDATE
        assert parsed.game_code == "ABC123"
        assert parsed.data == {"round": 2}
        assert parsed.sender_id == "server-1"
