"""
Game state for Take 6.

This module holds the Game aggregate: players, the four rows, round and
turn counters, and the lobby lifecycle (join, ready, start, restart,
leave). Turn resolution itself lives in resolution.py and works on the
aggregate defined here.

Take 6 Rules Summary:
    - Each round every active player is dealt a hand, and four rows are
      seeded with one card each
    - Each turn, all players secretly commit one card at the same time
    - Cards are revealed and placed in ascending order, each onto the row
      whose last card is closest below it
    - The 6th card on a row takes the five cards already there as penalty
    - A card lower than every row end must take a row of the player's choice
    - The game ends when someone reaches the score limit or after the last round
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from cards import Deck
from constants import (
    DECK_SIZE,
    NUM_ROWS,
    MIN_PLAYERS,
    MAX_PLAYERS,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_SCORE_LIMIT,
    DEFAULT_HAND_SIZE,
)
from models import events
from models.events import GameEvent


# =============================================================================
# Errors
# =============================================================================


class GameError(Exception):
    """
    Base class for caller misuse errors.

    Raised before anything is mutated, so a failed operation never leaves
    a partial change behind. ``code`` is a stable identifier sent to clients.
    """

    code = "game_error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.code.replace("_", " ")
        super().__init__(self.message)


class GameNotFound(GameError):
    code = "game_not_found"


class AlreadyPlayed(GameError):
    code = "already_played"


class NotActivePlayer(GameError):
    code = "not_active_player"


class Unauthorized(GameError):
    code = "unauthorized"


class InvalidRow(GameError):
    code = "invalid_row"


class NotEnoughCards(GameError):
    code = "not_enough_cards"


class CardNotInHand(GameError):
    code = "card_not_in_hand"


class InvalidGameState(GameError):
    code = "invalid_game_state"


class GameFull(GameError):
    code = "game_full"


# =============================================================================
# Enums and Rules
# =============================================================================


class GameStatus(str, Enum):
    """Lifecycle of a game table."""

    WAITING = "waiting"      # Lobby, players joining and readying up
    PLAYING = "playing"      # Rounds in progress
    FINISHED = "finished"    # Score limit reached or last round played


class FinishReason(str, Enum):
    SCORE_LIMIT = "score_limit"
    ROUNDS_COMPLETED = "rounds_completed"


@dataclass
class GameRules:
    """
    Per-game rule settings, fixed when the table is created.

    Attributes:
        max_rounds: Rounds to play before the game ends.
        score_limit: Score at which the game ends immediately.
        hand_size: Cards dealt per player each round (also turns per round).
    """

    max_rounds: int = DEFAULT_MAX_ROUNDS
    score_limit: int = DEFAULT_SCORE_LIMIT
    hand_size: int = DEFAULT_HAND_SIZE

    def to_dict(self) -> dict:
        return {
            "max_rounds": self.max_rounds,
            "score_limit": self.score_limit,
            "hand_size": self.hand_size,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "GameRules":
        return cls(
            max_rounds=d.get("max_rounds", DEFAULT_MAX_ROUNDS),
            score_limit=d.get("score_limit", DEFAULT_SCORE_LIMIT),
            hand_size=d.get("hand_size", DEFAULT_HAND_SIZE),
        )

    @classmethod
    def from_client_data(cls, data: dict) -> "GameRules":
        """Build GameRules from client message data, clamping to sane ranges."""
        return cls(
            max_rounds=max(1, min(20, int(data.get("max_rounds", DEFAULT_MAX_ROUNDS)))),
            score_limit=max(10, min(500, int(data.get("score_limit", DEFAULT_SCORE_LIMIT)))),
            hand_size=max(1, min(10, int(data.get("hand_size", DEFAULT_HAND_SIZE)))),
        )


# =============================================================================
# Player
# =============================================================================


@dataclass
class Player:
    """
    A participant at a Take 6 table.

    Attributes:
        id: Unique identifier for the player.
        name: Display name.
        score: Cumulative penalty points (never decreases within a game).
        hand: Cards currently held, sorted ascending.
        played_card: Card committed this turn, None until committed.
        ready: Lobby ready flag.
        is_spectator: Spectators never hold cards and never play.
    """

    id: str
    name: str
    score: int = 0
    hand: list[int] = field(default_factory=list)
    played_card: Optional[int] = None
    ready: bool = False
    is_spectator: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "score": self.score,
            "hand": list(self.hand),
            "played_card": self.played_card,
            "ready": self.ready,
            "is_spectator": self.is_spectator,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Player":
        return cls(
            id=d["id"],
            name=d["name"],
            score=d.get("score", 0),
            hand=list(d.get("hand", [])),
            played_card=d.get("played_card"),
            ready=d.get("ready", False),
            is_spectator=d.get("is_spectator", False),
        )


# =============================================================================
# Game
# =============================================================================


@dataclass
class Game:
    """
    The root aggregate for one Take 6 table.

    Every mutation goes through a method on this class (or a function in
    resolution.py) and is announced with an event through the configured
    emitter. The whole aggregate round-trips through to_dict()/from_dict()
    so it can be stored as a single snapshot.

    Attributes:
        code: Unique table code.
        status: Lifecycle status.
        host_id: Player allowed to start and restart the game.
        players: Players and spectators in join order.
        rows: The four rows, each a strictly increasing non-empty list.
        round: Current round (1-based, 0 before the first deal).
        current_turn: Current turn within the round (1-based).
        rules: Rules fixed at table creation.
        turn_resolved: Set when a turn's cards are revealed and placement
            has begun; cleared while stalled and when the next turn begins.
        waiting_for_row_choice: Player who must pick a row, if stalled.
        pending_card: The card waiting for that row choice.
        finish_reason: Why the game ended, once finished.
        deck_seed: Seed of the current round's deck.
        event_seq: Sequence number of the last emitted event.
    """

    code: str
    status: GameStatus = GameStatus.WAITING
    host_id: Optional[str] = None
    players: list[Player] = field(default_factory=list)
    rows: list[list[int]] = field(default_factory=list)
    round: int = 0
    current_turn: int = 0
    rules: GameRules = field(default_factory=GameRules)
    turn_resolved: bool = False
    waiting_for_row_choice: Optional[str] = None
    pending_card: Optional[int] = None
    finish_reason: Optional[FinishReason] = None
    deck_seed: Optional[int] = None
    event_seq: int = 0

    _event_emitter: Optional[Callable[[GameEvent], None]] = field(
        default=None, repr=False, compare=False
    )

    def set_event_emitter(self, emitter: Callable[[GameEvent], None]) -> None:
        """
        Set callback for event emission.

        The emitter is called with each GameEvent as it occurs, so the
        caller can persist and publish exactly what a mutation did.

        Args:
            emitter: Callback function that receives GameEvent objects.
        """
        self._event_emitter = emitter

    def _emit(self, factory: Callable[..., GameEvent], **kwargs: Any) -> None:
        """
        Emit an event if an emitter is configured.

        Args:
            factory: Event factory from models.events.
            **kwargs: Payload arguments for the factory.
        """
        if self._event_emitter is None:
            return

        self.event_seq += 1
        event = factory(self.code, self.event_seq, **kwargs)
        self._event_emitter(event)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_player(self, player_id: str) -> Optional[Player]:
        """
        Find a player by their ID.

        Args:
            player_id: The unique ID to search for.

        Returns:
            The Player if found, None otherwise.
        """
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def active_players(self) -> list[Player]:
        """Players who hold cards and play (everyone but spectators)."""
        return [p for p in self.players if not p.is_spectator]

    def all_played(self) -> bool:
        """True when every active player has committed a card this turn."""
        active = self.active_players()
        return bool(active) and all(p.played_card is not None for p in active)

    @property
    def is_stalled(self) -> bool:
        return self.waiting_for_row_choice is not None

    def scores(self) -> dict[str, int]:
        return {p.id: p.score for p in self.active_players()}

    # -------------------------------------------------------------------------
    # Lobby
    # -------------------------------------------------------------------------

    def emit_game_created(self) -> None:
        """
        Emit the game_created event.

        Called once after the emitter is attached and before anyone joins.
        """
        self._emit(events.game_created, host_id=self.host_id, rules=self.rules.to_dict())

    def add_player(self, player_id: str, name: str) -> Player:
        """
        Seat an active player at the table.

        The first active player to join becomes host if there is none.

        Raises:
            InvalidGameState: If the game has already started.
            GameFull: If the active-player cap is reached.
        """
        if self.status != GameStatus.WAITING:
            raise InvalidGameState("Game already started")
        existing = self.get_player(player_id)
        if existing is not None:
            return existing
        if len(self.active_players()) >= MAX_PLAYERS:
            raise GameFull("Game is full")

        player = Player(id=player_id, name=name)
        self.players.append(player)
        if self.host_id is None:
            self.host_id = player_id

        self._emit(events.player_joined, player_id=player_id, player_name=name)
        return player

    def add_spectator(self, player_id: str, name: str) -> Player:
        """Seat a spectator. Allowed in any status; spectators are always ready."""
        existing = self.get_player(player_id)
        if existing is not None:
            return existing

        player = Player(id=player_id, name=name, ready=True, is_spectator=True)
        self.players.append(player)
        self._emit(
            events.player_joined,
            player_id=player_id,
            player_name=name,
            is_spectator=True,
        )
        return player

    def toggle_ready(self, player_id: str) -> bool:
        """
        Flip a player's ready flag.

        Returns:
            The new ready value.
        """
        if self.status != GameStatus.WAITING:
            raise InvalidGameState("Game already started")
        player = self.get_player(player_id)
        if player is None or player.is_spectator:
            raise NotActivePlayer("Spectators cannot ready up")

        player.ready = not player.ready
        self._emit(events.player_ready, player_id=player_id, ready=player.ready)
        return player.ready

    def remove_player(self, player_id: str) -> Player:
        """
        Remove a player from the table.

        Spectators may leave at any time, active players only while the
        game is not being played. If the host leaves, the next player
        in join order becomes host.

        Raises:
            NotActivePlayer: If the player is not at this table.
            InvalidGameState: If an active player tries to leave mid-game.
        """
        player = self.get_player(player_id)
        if player is None:
            raise NotActivePlayer("Not at this table")
        if not player.is_spectator and self.status == GameStatus.PLAYING:
            raise InvalidGameState("Cannot leave a game in progress")

        self.players.remove(player)

        new_host_id = None
        if self.host_id == player_id:
            successors = self.active_players() or self.players
            self.host_id = successors[0].id if successors else None
            new_host_id = self.host_id

        self._emit(events.player_left, player_id=player_id, new_host_id=new_host_id)
        return player

    def start_game(self, player_id: str, seed: Optional[int] = None) -> None:
        """
        Start the game and deal round 1.

        Args:
            player_id: Must be the host.
            seed: Optional deck seed for a reproducible first deal.

        Raises:
            Unauthorized: If not called by the host.
            InvalidGameState: Wrong status, too few players, or not all ready.
            NotEnoughCards: If the deck cannot cover rows plus every hand.
        """
        if player_id != self.host_id:
            raise Unauthorized("Only the host can start the game")
        if self.status != GameStatus.WAITING:
            raise InvalidGameState("Game already started")
        active = self.active_players()
        if len(active) < MIN_PLAYERS:
            raise InvalidGameState(f"Need at least {MIN_PLAYERS} players")
        if not all(p.ready for p in active):
            raise InvalidGameState("Not all players are ready")
        self._check_deck_capacity()

        self.status = GameStatus.PLAYING
        self.finish_reason = None
        self.round = 1
        for player in self.players:
            player.score = 0

        self._emit(
            events.game_started,
            player_order=[p.id for p in active],
            rules=self.rules.to_dict(),
        )
        self.deal_round(seed)

    def restart(self, player_id: str) -> None:
        """
        Reset the table to the lobby, keeping everyone seated.

        Scores, hands, rows and readiness are cleared.
        """
        if player_id != self.host_id:
            raise Unauthorized("Only the host can restart the game")

        self.status = GameStatus.WAITING
        self.rows = []
        self.round = 0
        self.current_turn = 0
        self.turn_resolved = False
        self.waiting_for_row_choice = None
        self.pending_card = None
        self.finish_reason = None
        self.deck_seed = None
        for player in self.players:
            player.score = 0
            player.hand = []
            player.played_card = None
            player.ready = player.is_spectator

        self._emit(events.game_restarted, player_id=player_id)

    # -------------------------------------------------------------------------
    # Dealing
    # -------------------------------------------------------------------------

    def _check_deck_capacity(self) -> None:
        needed = NUM_ROWS + len(self.active_players()) * self.rules.hand_size
        if needed > DECK_SIZE:
            raise NotEnoughCards(
                f"Need {needed} cards for {len(self.active_players())} players, "
                f"deck has {DECK_SIZE}"
            )

    def deal_round(self, seed: Optional[int] = None) -> None:
        """
        Deal the current round from a fresh deck.

        Seeds the four rows with one card each, deals a sorted hand to
        every active player, clears committed cards and resets the turn
        counter to 1. Scores are untouched.

        Raises:
            NotEnoughCards: If the deck cannot cover rows plus every hand.
        """
        self._check_deck_capacity()

        deck = Deck(seed)
        self.deck_seed = deck.seed
        self.rows = [deck.deal(1) for _ in range(NUM_ROWS)]
        for player in self.players:
            player.played_card = None
            if player.is_spectator:
                player.hand = []
            else:
                player.hand = sorted(deck.deal(self.rules.hand_size))

        self.current_turn = 1
        self.turn_resolved = False
        self.waiting_for_row_choice = None
        self.pending_card = None

        self._emit(
            events.round_started,
            round_num=self.round,
            rows=[list(row) for row in self.rows],
        )

    # -------------------------------------------------------------------------
    # Plays
    # -------------------------------------------------------------------------

    def submit_play(self, player_id: str, card: int) -> None:
        """
        Commit a card from a player's hand for the current turn.

        Raises:
            InvalidGameState: Game not playing, or this turn is already resolving.
            NotActivePlayer: Player unknown or a spectator.
            AlreadyPlayed: Player already committed a card this turn.
            CardNotInHand: The card is not in the player's hand.
        """
        if self.status != GameStatus.PLAYING:
            raise InvalidGameState("Game is not in progress")
        player = self.get_player(player_id)
        if player is None or player.is_spectator:
            raise NotActivePlayer("Only active players can play cards")
        if player.played_card is not None:
            raise AlreadyPlayed("You already played a card this turn")
        if self.turn_resolved or self.is_stalled:
            raise InvalidGameState("This turn is being resolved")
        # bool is an int subclass and 1.0 == 1, so membership alone is not enough
        if isinstance(card, bool) or not isinstance(card, int) or card not in player.hand:
            raise CardNotInHand(f"Card {card!r} is not in your hand")

        player.hand.remove(card)
        player.played_card = card
        self._emit(events.card_submitted, player_id=player_id, turn=self.current_turn)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Full snapshot for storage. Includes every hand; never send to clients."""
        return {
            "code": self.code,
            "status": self.status.value,
            "host_id": self.host_id,
            "players": [p.to_dict() for p in self.players],
            "rows": [list(row) for row in self.rows],
            "round": self.round,
            "current_turn": self.current_turn,
            "rules": self.rules.to_dict(),
            "turn_resolved": self.turn_resolved,
            "waiting_for_row_choice": self.waiting_for_row_choice,
            "pending_card": self.pending_card,
            "finish_reason": self.finish_reason.value if self.finish_reason else None,
            "deck_seed": self.deck_seed,
            "event_seq": self.event_seq,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Game":
        finish_reason = d.get("finish_reason")
        return cls(
            code=d["code"],
            status=GameStatus(d.get("status", GameStatus.WAITING.value)),
            host_id=d.get("host_id"),
            players=[Player.from_dict(p) for p in d.get("players", [])],
            rows=[list(row) for row in d.get("rows", [])],
            round=d.get("round", 0),
            current_turn=d.get("current_turn", 0),
            rules=GameRules.from_dict(d.get("rules", {})),
            turn_resolved=d.get("turn_resolved", False),
            waiting_for_row_choice=d.get("waiting_for_row_choice"),
            pending_card=d.get("pending_card"),
            finish_reason=FinishReason(finish_reason) if finish_reason else None,
            deck_seed=d.get("deck_seed"),
            event_seq=d.get("event_seq", 0),
        )

    def get_state(self, for_player_id: Optional[str] = None) -> dict:
        """
        Get the game state as seen by one player.

        Only the viewer's own hand is included. Other players' committed
        cards stay hidden until the turn's cards are revealed.

        Args:
            for_player_id: The player who will receive this state.

        Returns:
            Dict suitable for JSON serialization and sending to the client.
        """
        revealed = (
            self.turn_resolved
            or self.is_stalled
            or self.status == GameStatus.FINISHED
        )

        players_data = []
        for player in self.players:
            is_self = player.id == for_player_id
            show_card = revealed or is_self
            players_data.append({
                "id": player.id,
                "name": player.name,
                "score": player.score,
                "ready": player.ready,
                "is_spectator": player.is_spectator,
                "is_host": player.id == self.host_id,
                "hand_size": len(player.hand),
                "has_played": player.played_card is not None,
                "played_card": player.played_card if show_card else None,
            })

        viewer = self.get_player(for_player_id) if for_player_id else None

        return {
            "code": self.code,
            "status": self.status.value,
            "host_id": self.host_id,
            "players": players_data,
            "rows": [list(row) for row in self.rows],
            "round": self.round,
            "current_turn": self.current_turn,
            "rules": self.rules.to_dict(),
            "turn_resolved": self.turn_resolved,
            "waiting_for_row_choice": self.waiting_for_row_choice,
            "pending_card": self.pending_card,
            "finish_reason": self.finish_reason.value if self.finish_reason else None,
            "my_hand": list(viewer.hand) if viewer else [],
        }
