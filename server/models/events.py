"""
Event definitions for Take 6 games.

Every state change made by the engine is described by an immutable event:
- Lifecycle events (created, joined, started, restarted...)
- Resolution events (cards revealed, card placed, row taken, row choice...)

Events are persisted alongside the game snapshot they belong to and then
published to observers (WebSocket clients, other servers). Observers use
them to sequence animations at their own pace; game correctness never
depends on them being consumed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
import json


class EventType(str, Enum):
    """All possible event types in a Take 6 game."""

    # Lifecycle events
    GAME_CREATED = "game_created"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    PLAYER_READY = "player_ready"
    GAME_STARTED = "game_started"
    GAME_RESTARTED = "game_restarted"

    # Turn resolution events
    CARD_SUBMITTED = "card_submitted"
    CARDS_REVEALED = "cards_revealed"
    CARD_PLACED = "card_placed"
    ROW_TAKEN = "row_taken"
    ROW_CHOICE_REQUIRED = "row_choice_required"
    ROW_CHOSEN = "row_chosen"
    TURN_COMPLETED = "turn_completed"
    ROUND_STARTED = "round_started"
    GAME_FINISHED = "game_finished"


@dataclass
class GameEvent:
    """
    A single event in a game's history.

    Attributes:
        event_type: The type of event (from EventType enum).
        game_code: Code of the game this event belongs to.
        sequence_num: Monotonically increasing sequence number within game.
        timestamp: When the event occurred (UTC).
        player_id: ID of the player the event concerns (if applicable).
        data: Event-specific payload data.
    """

    event_type: EventType
    game_code: str
    sequence_num: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    player_id: Optional[str] = None
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize event to dictionary for JSON storage."""
        return {
            "event_type": self.event_type.value,
            "game_code": self.game_code,
            "sequence_num": self.sequence_num,
            "timestamp": self.timestamp.isoformat(),
            "player_id": self.player_id,
            "data": self.data,
        }

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, d: dict) -> "GameEvent":
        """Deserialize event from dictionary."""
        timestamp = d["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)

        return cls(
            event_type=EventType(d["event_type"]),
            game_code=d["game_code"],
            sequence_num=d["sequence_num"],
            timestamp=timestamp,
            player_id=d.get("player_id"),
            data=d.get("data", {}),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "GameEvent":
        """Deserialize event from JSON string."""
        return cls.from_dict(json.loads(json_str))


# =============================================================================
# Event Factory Functions
# =============================================================================
# Each event kind has exactly one factory defining its payload.


def game_created(game_code: str, sequence_num: int, host_id: str, rules: dict) -> GameEvent:
    """Emitted when a new game table is created."""
    return GameEvent(
        event_type=EventType.GAME_CREATED,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=host_id,
        data={"host_id": host_id, "rules": rules},
    )


def player_joined(
    game_code: str,
    sequence_num: int,
    player_id: str,
    player_name: str,
    is_spectator: bool = False,
) -> GameEvent:
    """Emitted when a player or spectator joins the table."""
    return GameEvent(
        event_type=EventType.PLAYER_JOINED,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={"player_name": player_name, "is_spectator": is_spectator},
    )


def player_left(
    game_code: str,
    sequence_num: int,
    player_id: str,
    new_host_id: Optional[str] = None,
) -> GameEvent:
    """Emitted when a player leaves the table."""
    return GameEvent(
        event_type=EventType.PLAYER_LEFT,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={"new_host_id": new_host_id},
    )


def player_ready(game_code: str, sequence_num: int, player_id: str, ready: bool) -> GameEvent:
    """Emitted when a player toggles their ready flag in the lobby."""
    return GameEvent(
        event_type=EventType.PLAYER_READY,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={"ready": ready},
    )


def game_started(game_code: str, sequence_num: int, player_order: list[str], rules: dict) -> GameEvent:
    """Emitted when the host starts the game (round 1 is dealt separately)."""
    return GameEvent(
        event_type=EventType.GAME_STARTED,
        game_code=game_code,
        sequence_num=sequence_num,
        data={"player_order": player_order, "rules": rules},
    )


def game_restarted(game_code: str, sequence_num: int, player_id: str) -> GameEvent:
    """Emitted when the host resets a game back to the lobby."""
    return GameEvent(
        event_type=EventType.GAME_RESTARTED,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
    )


def card_submitted(game_code: str, sequence_num: int, player_id: str, turn: int) -> GameEvent:
    """
    Emitted when a player commits a card for the turn.

    The card value is deliberately left out; it stays hidden until
    all cards are revealed.
    """
    return GameEvent(
        event_type=EventType.CARD_SUBMITTED,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={"turn": turn},
    )


def cards_revealed(game_code: str, sequence_num: int, plays: list[dict]) -> GameEvent:
    """
    Emitted once per turn when resolution starts.

    Args:
        plays: [{"player_id", "card"}] in placement (ascending) order.
    """
    return GameEvent(
        event_type=EventType.CARDS_REVEALED,
        game_code=game_code,
        sequence_num=sequence_num,
        data={"plays": plays},
    )


def card_placed(
    game_code: str,
    sequence_num: int,
    player_id: str,
    card: int,
    row_index: int,
) -> GameEvent:
    """Emitted when a card is appended to a row."""
    return GameEvent(
        event_type=EventType.CARD_PLACED,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={"card": card, "row_index": row_index},
    )


def row_taken(
    game_code: str,
    sequence_num: int,
    player_id: str,
    card: int,
    row_index: int,
    collected: list[int],
    penalty: int,
) -> GameEvent:
    """Emitted when a card is the 6th on a row and its placer takes the row."""
    return GameEvent(
        event_type=EventType.ROW_TAKEN,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={
            "card": card,
            "row_index": row_index,
            "collected": collected,
            "penalty": penalty,
        },
    )


def row_choice_required(game_code: str, sequence_num: int, player_id: str, card: int) -> GameEvent:
    """Emitted when a card fits no row and its player must pick one."""
    return GameEvent(
        event_type=EventType.ROW_CHOICE_REQUIRED,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={"card": card},
    )


def row_chosen(
    game_code: str,
    sequence_num: int,
    player_id: str,
    card: int,
    row_index: int,
    collected: list[int],
    penalty: int,
) -> GameEvent:
    """Emitted when a stalled player picks the row they collect."""
    return GameEvent(
        event_type=EventType.ROW_CHOSEN,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={
            "card": card,
            "row_index": row_index,
            "collected": collected,
            "penalty": penalty,
        },
    )


def turn_completed(game_code: str, sequence_num: int, round_num: int, turn: int) -> GameEvent:
    """Emitted when every card of a turn has been placed."""
    return GameEvent(
        event_type=EventType.TURN_COMPLETED,
        game_code=game_code,
        sequence_num=sequence_num,
        data={"round": round_num, "turn": turn},
    )


def round_started(
    game_code: str,
    sequence_num: int,
    round_num: int,
    rows: list[list[int]],
) -> GameEvent:
    """Emitted when a round is dealt. Hands and the deck seed stay private."""
    return GameEvent(
        event_type=EventType.ROUND_STARTED,
        game_code=game_code,
        sequence_num=sequence_num,
        data={"round": round_num, "rows": rows},
    )


def game_finished(
    game_code: str,
    sequence_num: int,
    reason: str,
    scores: dict[str, int],
    player_id: Optional[str] = None,
) -> GameEvent:
    """
    Emitted when the game ends.

    Args:
        reason: "score_limit" or "rounds_completed".
        scores: Final score per player ID.
        player_id: Player who reached the score limit, if that is the reason.
    """
    return GameEvent(
        event_type=EventType.GAME_FINISHED,
        game_code=game_code,
        sequence_num=sequence_num,
        player_id=player_id,
        data={"reason": reason, "scores": scores},
    )


EVENT_FACTORIES: dict[EventType, Callable[..., GameEvent]] = {
    EventType.GAME_CREATED: game_created,
    EventType.PLAYER_JOINED: player_joined,
    EventType.PLAYER_LEFT: player_left,
    EventType.PLAYER_READY: player_ready,
    EventType.GAME_STARTED: game_started,
    EventType.GAME_RESTARTED: game_restarted,
    EventType.CARD_SUBMITTED: card_submitted,
    EventType.CARDS_REVEALED: cards_revealed,
    EventType.CARD_PLACED: card_placed,
    EventType.ROW_TAKEN: row_taken,
    EventType.ROW_CHOICE_REQUIRED: row_choice_required,
    EventType.ROW_CHOSEN: row_chosen,
    EventType.TURN_COMPLETED: turn_completed,
    EventType.ROUND_STARTED: round_started,
    EventType.GAME_FINISHED: game_finished,
}


# =============================================================================
# Descriptions (for logs and the turn history)
# =============================================================================

_DESCRIBERS: dict[EventType, Callable[[GameEvent], str]] = {
    EventType.GAME_CREATED: lambda e: f"game created by {e.player_id}",
    EventType.PLAYER_JOINED: lambda e: (
        f"{e.data.get('player_name')} joined"
        + (" as spectator" if e.data.get("is_spectator") else "")
    ),
    EventType.PLAYER_LEFT: lambda e: f"{e.player_id} left",
    EventType.PLAYER_READY: lambda e: (
        f"{e.player_id} is {'ready' if e.data.get('ready') else 'not ready'}"
    ),
    EventType.GAME_STARTED: lambda e: f"game started with {len(e.data.get('player_order', []))} players",
    EventType.GAME_RESTARTED: lambda e: f"game restarted by {e.player_id}",
    EventType.CARD_SUBMITTED: lambda e: f"{e.player_id} committed a card for turn {e.data.get('turn')}",
    EventType.CARDS_REVEALED: lambda e: "revealed " + ", ".join(
        str(p["card"]) for p in e.data.get("plays", [])
    ),
    EventType.CARD_PLACED: lambda e: f"{e.player_id} put {e.data['card']} on row {e.data['row_index']}",
    EventType.ROW_TAKEN: lambda e: (
        f"{e.player_id} put {e.data['card']} as 6th card on row {e.data['row_index']}"
        f" and takes {e.data['penalty']} heads"
    ),
    EventType.ROW_CHOICE_REQUIRED: lambda e: f"{e.player_id} must pick a row for {e.data['card']}",
    EventType.ROW_CHOSEN: lambda e: (
        f"{e.player_id} picked row {e.data['row_index']} for {e.data['card']}"
        f" and takes {e.data['penalty']} heads"
    ),
    EventType.TURN_COMPLETED: lambda e: f"turn {e.data['turn']} of round {e.data['round']} complete",
    EventType.ROUND_STARTED: lambda e: f"round {e.data['round']} dealt",
    EventType.GAME_FINISHED: lambda e: f"game finished ({e.data['reason']})",
}


def describe_event(event: GameEvent) -> str:
    """One-line human readable description of an event."""
    return _DESCRIBERS[event.event_type](event)
