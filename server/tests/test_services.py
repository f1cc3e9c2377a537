"""
Tests for the service layer.

These tests cover:
- GameRepository: versioned update cycle, retries and event publishing
- LobbyService: table creation and code collisions
- TurnService: resolving a turn through a stall and a row choice

Everything runs on MemoryGameStore.
"""

import pytest
from unittest.mock import AsyncMock

from game import (
    AlreadyPlayed,
    Game,
    GameNotFound,
    GameStatus,
    InvalidGameState,
    NotActivePlayer,
    Unauthorized,
)
from models.events import EventType
from resolution import StepOutcome
from services import GameRepository, LobbyService, TurnService
from stores import ConcurrencyError, MemoryGameStore


# =============================================================================
# Fixtures
# =============================================================================

class FlakyStore(MemoryGameStore):
    """MemoryGameStore that loses the first ``fail_writes`` version races."""

    def __init__(self):
        super().__init__()
        self.fail_writes = 0
        self.write_attempts = 0

    async def write_game(self, code, state, expected_version, events):
        self.write_attempts += 1
        if self.fail_writes:
            self.fail_writes -= 1
            raise ConcurrencyError("simulated conflict")
        return await super().write_game(code, state, expected_version, events)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def published():
    return []


@pytest.fixture
def repository(store, published):
    async def notifier(event):
        published.append(event)
    return GameRepository(store, notifier=notifier, max_retries=2)


async def seated_lobby(repository) -> str:
    game, _ = await LobbyService(repository).create_game("Host", player_id="h")
    await LobbyService(repository).join_game(game.code, "g", "Guest")
    return game.code


async def started_game(repository) -> str:
    lobby = LobbyService(repository)
    code = await seated_lobby(repository)
    await lobby.toggle_ready(code, "h")
    await lobby.toggle_ready(code, "g")
    await lobby.start_game(code, "h")
    return code


async def set_table(store, code: str, rows: list, hands: dict) -> None:
    stored = await store.read_game(code)
    game = Game.from_dict(stored.state)
    game.rows = rows
    for pid, hand in hands.items():
        game.get_player(pid).hand = hand
    await store.write_game(code, game.to_dict(), stored.version, [])


# =============================================================================
# GameRepository Tests
# =============================================================================

class TestGameRepository:

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, repository):
        code = await seated_lobby(repository)
        _, before = await repository.load(code)

        result = await repository.update(code, lambda game: game.toggle_ready("g"))

        assert result.version == before + 1
        assert [e.event_type for e in result.events] == [EventType.PLAYER_READY]
        assert result.value is True

    @pytest.mark.asyncio
    async def test_retries_after_conflict(self, repository, store, published):
        code = await seated_lobby(repository)
        published.clear()
        store.fail_writes = 1
        calls = []

        def mutate(game):
            calls.append(game.event_seq)
            game.toggle_ready("g")

        result = await repository.update(code, mutate)

        assert len(calls) == 2
        assert result.game.get_player("g").ready
        assert len(published) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, repository, store, published):
        code = await seated_lobby(repository)
        published.clear()
        store.fail_writes = 100
        store.write_attempts = 0

        with pytest.raises(ConcurrencyError):
            await repository.update(code, lambda game: game.toggle_ready("g"))

        assert store.write_attempts == 3
        assert published == []

    @pytest.mark.asyncio
    async def test_game_error_writes_nothing(self, repository):
        code = await seated_lobby(repository)
        _, before = await repository.load(code)

        with pytest.raises(Unauthorized):
            await repository.update(code, lambda game: game.start_game("g"))

        _, after = await repository.load(code)
        assert after == before

    @pytest.mark.asyncio
    async def test_no_events_no_write(self, repository, store):
        code = await seated_lobby(repository)
        store.write_attempts = 0

        result = await repository.update(code, lambda game: None)

        assert result.events == []
        assert store.write_attempts == 0

    @pytest.mark.asyncio
    async def test_events_published_in_order(self, repository, published):
        await seated_lobby(repository)
        assert [e.event_type for e in published] == [
            EventType.GAME_CREATED,
            EventType.PLAYER_JOINED,
            EventType.PLAYER_JOINED,
        ]
        assert [e.sequence_num for e in published] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_undo_write(self, store):
        repository = GameRepository(store, notifier=AsyncMock(side_effect=RuntimeError("down")))
        code = await seated_lobby(repository)

        game = await repository.get(code)
        assert [p.id for p in game.players] == ["h", "g"]

    @pytest.mark.asyncio
    async def test_missing_game(self, repository):
        with pytest.raises(GameNotFound):
            await repository.update("NOPE00", lambda game: None)
        with pytest.raises(GameNotFound):
            await repository.get_events("NOPE00")


# =============================================================================
# LobbyService Tests
# =============================================================================

class TestLobbyService:

    @pytest.mark.asyncio
    async def test_create_seats_host(self, repository):
        game, player_id = await LobbyService(repository).create_game("Host")

        assert game.host_id == player_id
        assert game.players[0].name == "Host"
        assert len(game.code) == 6
        assert game.status == GameStatus.WAITING

    @pytest.mark.asyncio
    async def test_code_collision_retried(self, repository, monkeypatch):
        lobby = LobbyService(repository)
        await repository.create(Game(code="AAAAAA"))
        codes = iter(["AAAAAA", "BBBBBB"])
        monkeypatch.setattr(lobby, "_generate_code", lambda: next(codes))

        game, _ = await lobby.create_game("Host")

        assert game.code == "BBBBBB"

    @pytest.mark.asyncio
    async def test_start_deals(self, repository):
        code = await started_game(repository)
        game = await repository.get(code)
        assert game.round == 1
        assert all(len(p.hand) == 10 for p in game.players)

    @pytest.mark.asyncio
    async def test_published_events_keep_deal_private(self, repository, published):
        code = await started_game(repository)
        game = await repository.get(code)

        dealt = [e for e in published if e.event_type == EventType.ROUND_STARTED]
        assert len(dealt) == 1
        assert dealt[0].data == {"round": 1, "rows": game.rows}
        assert all("deck_seed" not in e.data for e in published)
        assert game.deck_seed is not None


# =============================================================================
# TurnService Tests
# =============================================================================

class TestTurnService:

    @pytest.mark.asyncio
    async def test_idle_until_everyone_played(self, repository, store):
        code = await started_game(repository)
        await set_table(store, code, [[10], [20], [30], [40]], {
            "h": list(range(41, 51)),
            "g": list(range(51, 61)),
        })
        turns = TurnService(repository)

        await turns.submit_play(code, "h", 45)

        assert await turns.try_resolve_turn(code) == StepOutcome.IDLE
        assert (await repository.get(code)).current_turn == 1

    @pytest.mark.asyncio
    async def test_full_turn(self, repository, store):
        code = await started_game(repository)
        await set_table(store, code, [[10], [20], [30], [40]], {
            "h": list(range(41, 51)),
            "g": list(range(51, 61)),
        })
        turns = TurnService(repository)

        await turns.submit_play(code, "h", 45)
        await turns.submit_play(code, "g", 52)
        outcome = await turns.try_resolve_turn(code)

        assert outcome == StepOutcome.TURN_COMPLETE
        game = await repository.get(code)
        assert game.rows[3] == [40, 45, 52]
        assert game.current_turn == 2
        assert await turns.try_resolve_turn(code) == StepOutcome.IDLE

    @pytest.mark.asyncio
    async def test_stall_and_resume(self, repository, store, published):
        code = await started_game(repository)
        await set_table(store, code, [[50], [61], [70], [55]], {
            "h": [5] + list(range(81, 90)),
            "g": [7] + list(range(90, 99)),
        })
        turns = TurnService(repository)
        published.clear()

        await turns.submit_play(code, "h", 5)
        await turns.submit_play(code, "g", 7)
        assert await turns.try_resolve_turn(code) == StepOutcome.STALLED

        with pytest.raises(AlreadyPlayed):
            await turns.submit_play(code, "g", 90)
        with pytest.raises(Unauthorized):
            await turns.row_options(code, "g")

        options = await turns.row_options(code, "h")
        assert [o.row_index for o in options] == [1, 0, 2, 3]

        outcome = await turns.resolve_row_choice(code, "h", 1)

        assert outcome == StepOutcome.TURN_COMPLETE
        game = await repository.get(code)
        assert game.rows == [[50], [5, 7], [70], [55]]
        assert game.get_player("h").score == 1
        assert [e.event_type for e in published] == [
            EventType.CARD_SUBMITTED,
            EventType.CARD_SUBMITTED,
            EventType.CARDS_REVEALED,
            EventType.ROW_CHOICE_REQUIRED,
            EventType.ROW_CHOSEN,
            EventType.CARD_PLACED,
            EventType.TURN_COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_row_options_without_stall(self, repository):
        code = await started_game(repository)
        with pytest.raises(InvalidGameState):
            await TurnService(repository).row_options(code, "h")

    @pytest.mark.asyncio
    async def test_resume_interrupted_turn(self, repository, store):
        code = await started_game(repository)
        stored = await store.read_game(code)
        game = Game.from_dict(stored.state)
        # Host's 45 was placed, guest's 52 was not, when the server went away
        game.rows = [[10], [20], [30], [40, 45]]
        game.get_player("h").hand = list(range(41, 45)) + list(range(46, 51))
        game.get_player("g").hand = [51] + list(range(53, 61))
        game.get_player("g").played_card = 52
        game.turn_resolved = True
        await store.write_game(code, game.to_dict(), stored.version, [])
        turns = TurnService(repository)

        with pytest.raises(NotActivePlayer):
            await turns.resume_turn(code, "stranger")
        outcome = await turns.resume_turn(code, "h")

        assert outcome == StepOutcome.TURN_COMPLETE
        game = await repository.get(code)
        assert game.rows[3] == [40, 45, 52]
        assert game.current_turn == 2
        assert not game.turn_resolved

    @pytest.mark.asyncio
    async def test_lock_released_when_game_finishes(self, repository, store):
        code = await started_game(repository)
        stored = await store.read_game(code)
        game = Game.from_dict(stored.state)
        game.rows = [[2, 4, 6, 8, 10], [50], [60], [70]]
        game.get_player("h").hand = [12] + list(range(13, 22))
        game.get_player("h").score = 64
        game.get_player("g").hand = list(range(81, 91))
        await store.write_game(code, game.to_dict(), stored.version, [])
        turns = TurnService(repository)

        await turns.submit_play(code, "h", 12)
        await turns.submit_play(code, "g", 81)
        assert code in turns._locks

        assert await turns.try_resolve_turn(code) == StepOutcome.GAME_FINISHED
        assert code not in turns._locks
        game = await repository.get(code)
        assert game.get_player("h").score == 71
        assert game.get_player("g").played_card == 81
