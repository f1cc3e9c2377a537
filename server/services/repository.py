"""
Game repository: versioned read-modify-write over a game store.

Every change to a game is a whole-aggregate cycle:

    read snapshot (version N)
      -> Game.from_dict()
      -> apply the mutation, collecting the events it emits
      -> write snapshot + events expecting version N
      -> publish the events

If another writer got there first the write fails with ConcurrencyError
and the cycle starts over from a fresh read, up to max_retries times.
A mutation that raises GameError aborts the cycle before anything is
written. Events are published only once the write is confirmed.

Usage:
    repo = GameRepository(MemoryGameStore(), notifier=publish)
    result = await repo.update("K3ZQ7P", lambda game: game.toggle_ready(pid))
    print(result.version, result.events)
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from config import config
from game import Game, GameNotFound
from logging_config import get_logger
from models.events import GameEvent, describe_event
from stores.game_store import ConcurrencyError

logger = get_logger(__name__)


# Called with each committed event (fire-and-forget)
Notifier = Callable[[GameEvent], Awaitable[None]]


@dataclass
class UpdateResult:
    """
    Outcome of one committed (or skipped) update.

    Attributes:
        game: The game after the mutation.
        version: Store version of that state.
        events: Events written and published (empty if nothing changed).
        value: Whatever the mutation function returned.
    """

    game: Game
    version: int
    events: list[GameEvent] = field(default_factory=list)
    value: Any = None


class GameRepository:
    """Loads, creates and updates games against a GameStore-like store."""

    def __init__(
        self,
        store,
        notifier: Optional[Notifier] = None,
        max_retries: Optional[int] = None,
    ):
        """
        Args:
            store: GameStore or MemoryGameStore.
            notifier: Async callback receiving each committed event.
            max_retries: Retries after a version conflict before giving up.
        """
        self.store = store
        self.notifier = notifier
        self.max_retries = config.RESOLVE_MAX_RETRIES if max_retries is None else max_retries

    async def load(self, code: str) -> tuple[Game, int]:
        """
        Read a game and its version.

        Raises:
            GameNotFound: If no game has this code.
        """
        stored = await self.store.read_game(code)
        if stored is None:
            raise GameNotFound(f"Game {code} not found")
        return Game.from_dict(stored.state), stored.version

    async def get(self, code: str) -> Game:
        game, _ = await self.load(code)
        return game

    async def create(self, game: Game) -> int:
        """
        Store a brand new game.

        Raises:
            ConcurrencyError: If the code is already taken.
        """
        version = await self.store.create_game(game.code, game.to_dict())
        logger.info(f"Game {game.code} created")
        return version

    async def update(self, code: str, mutate: Callable[[Game], Any]) -> UpdateResult:
        """
        Apply ``mutate`` to the current state of a game and persist it.

        Args:
            code: Game code.
            mutate: Function changing the game in place. It may be called
                more than once (once per attempt), always on fresh state.

        Returns:
            UpdateResult for the attempt that was committed. If the
            mutation emitted no events nothing is written.

        Raises:
            GameNotFound: If the game does not exist.
            GameError: Whatever the mutation raises; nothing is written.
            ConcurrencyError: If every attempt lost a version race.
        """
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            game, version = await self.load(code)
            emitted: list[GameEvent] = []
            game.set_event_emitter(emitted.append)

            value = mutate(game)

            if not emitted:
                return UpdateResult(game=game, version=version, value=value)

            try:
                new_version = await self.store.write_game(
                    code, game.to_dict(), version, emitted
                )
            except ConcurrencyError:
                logger.info(
                    f"Game {code} changed during update, retrying "
                    f"(attempt {attempt}/{attempts})"
                )
                continue

            await self._publish(emitted)
            return UpdateResult(game=game, version=new_version, events=emitted, value=value)

        logger.warning(f"Game {code} update gave up after {attempts} attempts")
        raise ConcurrencyError(f"Game {code} kept changing, gave up after {attempts} attempts")

    async def get_events(self, code: str, from_sequence: int = 0) -> list[GameEvent]:
        """
        Event history of a game.

        Raises:
            GameNotFound: If no game has this code.
        """
        if await self.store.read_game(code) is None:
            raise GameNotFound(f"Game {code} not found")
        return await self.store.get_events(code, from_sequence)

    async def _publish(self, emitted: list[GameEvent]) -> None:
        """Log and hand committed events to the notifier, in order."""
        for event in emitted:
            event_logger = logger.with_context(
                game_code=event.game_code,
                event_type=event.event_type.value,
                sequence_num=event.sequence_num,
            )
            event_logger.info(describe_event(event))
            if self.notifier is None:
                continue
            try:
                await self.notifier(event)
            except Exception as e:
                # The write is already committed; observers re-read the store
                event_logger.error(
                    f"Failed to publish {event.event_type.value} for {event.game_code}: {e}",
                    exc_info=True,
                )
