"""
Turn operations: submit a play, resolve the turn, resume after a row choice.

Each resolution step is committed as its own versioned write, so every
placement is durable before the next one starts and observers see the
turn advance one card at a time. Within a process a per-game lock keeps
a single resolution pass running; across processes the store's version
check turns a concurrent pass into a retry against fresh state.
"""

import asyncio
import logging

from game import Game, GameStatus, InvalidGameState, NotActivePlayer, Unauthorized
from resolution import CONTINUE, StepOutcome, choose_row, resolution_step
from rows import RowChoice, rank_row_choices
from services.repository import GameRepository

logger = logging.getLogger(__name__)


class TurnService:
    """Turn-level operations on stored games."""

    def __init__(self, repository: GameRepository):
        self.repository = repository
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, code: str) -> asyncio.Lock:
        lock = self._locks.get(code)
        if lock is None:
            lock = self._locks[code] = asyncio.Lock()
        return lock

    def forget(self, code: str) -> None:
        """Drop the lock of a game that is no longer served here."""
        self._locks.pop(code, None)

    async def submit_play(self, code: str, player_id: str, card: int) -> Game:
        """
        Commit a card for the current turn.

        Raises:
            GameNotFound, NotActivePlayer, AlreadyPlayed, CardNotInHand,
            InvalidGameState: see Game.submit_play.
        """
        async with self._lock(code):
            result = await self.repository.update(
                code, lambda game: game.submit_play(player_id, card)
            )
        return result.game

    async def try_resolve_turn(self, code: str) -> StepOutcome:
        """
        Resolve the current turn as far as it can go.

        Idempotent: does nothing (IDLE) when not every active player has
        played or when the turn is stalled on a row choice. A turn whose
        placement was interrupted is picked up where it stopped.

        Returns:
            The outcome that ended the pass: IDLE, STALLED,
            TURN_COMPLETE or GAME_FINISHED.
        """
        async with self._lock(code):
            outcome = await self._drive(code)
        if outcome == StepOutcome.GAME_FINISHED:
            self.forget(code)
        return outcome

    async def resume_turn(self, code: str, player_id: str) -> StepOutcome:
        """
        Pick up a turn whose resolution was interrupted part way.

        Any seated active player may ask. Safe to call at any time: a
        turn that is not ready or is waiting on a row choice is left alone.

        Raises:
            NotActivePlayer: If the player is not seated in the game.
        """
        game = await self.repository.get(code)
        player = game.get_player(player_id)
        if player is None or player.is_spectator:
            raise NotActivePlayer("Only active players can resume a turn")
        return await self.try_resolve_turn(code)

    async def resolve_row_choice(self, code: str, player_id: str, row_index: int) -> StepOutcome:
        """
        Apply a stalled player's row choice and finish resolving the turn.

        Raises:
            Unauthorized: If the player is not the one being waited on.
            InvalidRow: If row_index is out of range.
            InvalidGameState: If no row choice is pending.
        """
        async with self._lock(code):
            result = await self.repository.update(
                code, lambda game: choose_row(game, player_id, row_index)
            )
            outcome = result.value
            if outcome in CONTINUE:
                outcome = await self._drive(code)
        if outcome == StepOutcome.GAME_FINISHED:
            self.forget(code)
        return outcome

    async def row_options(self, code: str, player_id: str) -> list[RowChoice]:
        """
        Rows the stalled player can pick, cheapest first.

        Raises:
            InvalidGameState: If no row choice is pending.
            Unauthorized: If the player is not the one being waited on.
        """
        game = await self.repository.get(code)
        if game.status != GameStatus.PLAYING or not game.is_stalled:
            raise InvalidGameState("No row choice is pending")
        if game.waiting_for_row_choice != player_id:
            raise Unauthorized("It is not your row choice")
        return rank_row_choices(game.rows)

    async def _drive(self, code: str) -> StepOutcome:
        """Commit resolution steps one at a time until the turn stops moving."""
        while True:
            result = await self.repository.update(code, resolution_step)
            outcome = result.value
            if outcome not in CONTINUE:
                if outcome != StepOutcome.IDLE:
                    logger.debug(f"Game {code} resolution stopped: {outcome.value}")
                return outcome
