"""
Read-only HTTP endpoints for Take 6 games.

- GET /api/games/{code}                  - public game state (no hands)
- GET /api/games/{code}/events           - turn history (event log)
- GET /api/games/{code}/row-options      - row costs for the player who must pick
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from game import GameError, GameNotFound
from models.events import describe_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/games", tags=["games"])

# Service references (set during app initialization)
_repository = None
_turn_service = None


def set_game_services(repository=None, turn_service=None):
    """Set the services the endpoints read from."""
    global _repository, _turn_service
    _repository = repository
    _turn_service = turn_service


# =============================================================================
# Response Models
# =============================================================================


class EventResponse(BaseModel):
    """One entry of a game's history."""

    sequence_num: int
    event_type: str
    player_id: Optional[str]
    timestamp: str
    description: str
    data: dict


class EventsResponse(BaseModel):
    game_code: str
    events: list[EventResponse]


class RowOptionResponse(BaseModel):
    row_index: int
    cards: list[int]
    penalty: int


class RowOptionsResponse(BaseModel):
    game_code: str
    player_id: str
    options: list[RowOptionResponse]


def _require_services():
    if _repository is None or _turn_service is None:
        raise HTTPException(status_code=503, detail="Game services not initialized")


def _to_http(error: GameError) -> HTTPException:
    status = 404 if isinstance(error, GameNotFound) else 409
    return HTTPException(status_code=status, detail={"code": error.code, "message": error.message})


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{code}")
async def get_game(code: str):
    """Public game state. No hand is included; players get theirs over the WebSocket."""
    _require_services()
    try:
        game = await _repository.get(code.upper())
    except GameError as e:
        raise _to_http(e)
    return game.get_state()


@router.get("/{code}/events", response_model=EventsResponse)
async def get_game_events(code: str, from_sequence: int = Query(0, ge=0)):
    """The game's event log from a sequence number on."""
    _require_services()
    code = code.upper()
    try:
        events = await _repository.get_events(code, from_sequence)
    except GameError as e:
        raise _to_http(e)

    return EventsResponse(
        game_code=code,
        events=[
            EventResponse(
                sequence_num=e.sequence_num,
                event_type=e.event_type.value,
                player_id=e.player_id,
                timestamp=e.timestamp.isoformat(),
                description=describe_event(e),
                data=e.data,
            )
            for e in events
        ],
    )


@router.get("/{code}/row-options", response_model=RowOptionsResponse)
async def get_row_options(code: str, player_id: str = Query(...)):
    """What each row would cost the stalled player, cheapest first."""
    _require_services()
    code = code.upper()
    try:
        options = await _turn_service.row_options(code, player_id)
    except GameError as e:
        raise _to_http(e)

    return RowOptionsResponse(
        game_code=code,
        player_id=player_id,
        options=[
            RowOptionResponse(row_index=o.row_index, cards=list(o.cards), penalty=o.penalty)
            for o in options
        ],
    )
