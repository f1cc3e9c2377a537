"""
Lobby operations: create a table, join, spectate, ready up, start,
restart and leave.

All of them are single versioned updates through the GameRepository;
the rules themselves live on the Game aggregate.
"""

import logging
import random
import string
import uuid
from typing import Optional

from constants import GAME_CODE_LENGTH
from game import Game, GameRules
from services.repository import GameRepository
from stores.game_store import ConcurrencyError

logger = logging.getLogger(__name__)


class LobbyService:
    """Table lifecycle operations on stored games."""

    def __init__(self, repository: GameRepository, code_length: int = GAME_CODE_LENGTH):
        self.repository = repository
        self.code_length = code_length

    def _generate_code(self) -> str:
        return "".join(
            random.choices(string.ascii_uppercase + string.digits, k=self.code_length)
        )

    async def create_game(
        self,
        host_name: str,
        rules: Optional[GameRules] = None,
        player_id: Optional[str] = None,
        max_attempts: int = 100,
    ) -> tuple[Game, str]:
        """
        Create a new table with the creator seated as host.

        Args:
            host_name: Display name of the creator.
            rules: Rules for the table, defaults if omitted.
            player_id: ID to give the creator, generated if omitted.
            max_attempts: Codes to try before giving up on a free one.

        Returns:
            (game, host player ID)
        """
        player_id = player_id or str(uuid.uuid4())
        rules = rules or GameRules()

        for _ in range(max_attempts):
            code = self._generate_code()
            try:
                await self.repository.create(Game(code=code, host_id=player_id, rules=rules))
                break
            except ConcurrencyError:
                continue
        else:
            raise RuntimeError("Could not generate unique game code")

        def seat_host(game: Game) -> None:
            game.emit_game_created()
            game.add_player(player_id, host_name)

        result = await self.repository.update(code, seat_host)
        return result.game, player_id

    async def join_game(self, code: str, player_id: str, name: str) -> Game:
        """Seat an active player. Only while the table is waiting."""
        result = await self.repository.update(code, lambda game: game.add_player(player_id, name))
        return result.game

    async def spectate(self, code: str, player_id: str, name: str) -> Game:
        """Seat a spectator. Allowed at any time."""
        result = await self.repository.update(code, lambda game: game.add_spectator(player_id, name))
        return result.game

    async def toggle_ready(self, code: str, player_id: str) -> Game:
        result = await self.repository.update(code, lambda game: game.toggle_ready(player_id))
        return result.game

    async def start_game(self, code: str, player_id: str) -> Game:
        """Start the game (host only) and deal round 1."""
        result = await self.repository.update(code, lambda game: game.start_game(player_id))
        logger.info(f"Game {code} started with {len(result.game.active_players())} players")
        return result.game

    async def restart_game(self, code: str, player_id: str) -> Game:
        """Send the table back to the lobby (host only)."""
        result = await self.repository.update(code, lambda game: game.restart(player_id))
        return result.game

    async def leave_game(self, code: str, player_id: str) -> Game:
        result = await self.repository.update(code, lambda game: game.remove_player(player_id))
        return result.game
