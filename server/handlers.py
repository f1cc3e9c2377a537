"""WebSocket message handlers for the Take 6 card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict; dispatch() turns caller
misuse (GameError) into an error message for the client.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket

from game import GameError, GameRules
from resolution import StepOutcome

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    player_id: str
    current_code: Optional[str] = None


def _player_name(data: dict) -> str:
    name = str(data.get("player_name", "Player")).strip()
    return name[:32] or "Player"


# ---------------------------------------------------------------------------
# Lobby handlers
# ---------------------------------------------------------------------------

async def handle_create_game(data: dict, ctx: ConnectionContext, *, lobby, room_manager, broadcast_game_state, **kw) -> None:
    rules = GameRules.from_client_data(data)
    game, player_id = await lobby.create_game(
        _player_name(data), rules=rules, player_id=ctx.player_id
    )
    room_manager.attach(game.code, player_id, ctx.websocket)
    ctx.current_code = game.code

    await ctx.websocket.send_json({
        "type": "game_created",
        "game_code": game.code,
        "player_id": player_id,
    })
    await broadcast_game_state(game.code)


async def handle_join_game(data: dict, ctx: ConnectionContext, *, lobby, room_manager, broadcast_game_state, **kw) -> None:
    code = str(data.get("game_code", "")).upper()
    game = await lobby.join_game(code, ctx.player_id, _player_name(data))
    room_manager.attach(game.code, ctx.player_id, ctx.websocket)
    ctx.current_code = game.code

    await ctx.websocket.send_json({
        "type": "game_joined",
        "game_code": game.code,
        "player_id": ctx.player_id,
    })
    await broadcast_game_state(game.code)


async def handle_spectate_game(data: dict, ctx: ConnectionContext, *, lobby, room_manager, broadcast_game_state, **kw) -> None:
    code = str(data.get("game_code", "")).upper()
    game = await lobby.spectate(code, ctx.player_id, _player_name(data))
    room_manager.attach(game.code, ctx.player_id, ctx.websocket)
    ctx.current_code = game.code

    await ctx.websocket.send_json({
        "type": "spectating",
        "game_code": game.code,
        "player_id": ctx.player_id,
    })
    await broadcast_game_state(game.code)


async def handle_toggle_ready(data: dict, ctx: ConnectionContext, *, lobby, broadcast_game_state, **kw) -> None:
    if not ctx.current_code:
        return
    await lobby.toggle_ready(ctx.current_code, ctx.player_id)
    await broadcast_game_state(ctx.current_code)


async def handle_start_game(data: dict, ctx: ConnectionContext, *, lobby, broadcast_game_state, **kw) -> None:
    if not ctx.current_code:
        return
    await lobby.start_game(ctx.current_code, ctx.player_id)
    await broadcast_game_state(ctx.current_code)


async def handle_restart_game(data: dict, ctx: ConnectionContext, *, lobby, broadcast_game_state, **kw) -> None:
    if not ctx.current_code:
        return
    await lobby.restart_game(ctx.current_code, ctx.player_id)
    await broadcast_game_state(ctx.current_code)


async def handle_leave_game(data: dict, ctx: ConnectionContext, *, lobby, turns, room_manager, broadcast_game_state, **kw) -> None:
    if not ctx.current_code:
        return
    code = ctx.current_code
    await lobby.leave_game(code, ctx.player_id)
    if room_manager.detach(code, ctx.player_id):
        turns.forget(code)
    ctx.current_code = None

    await ctx.websocket.send_json({"type": "left_game", "game_code": code})
    await broadcast_game_state(code)


# ---------------------------------------------------------------------------
# Turn handlers
# ---------------------------------------------------------------------------

async def handle_play_card(data: dict, ctx: ConnectionContext, *, turns, broadcast_game_state, **kw) -> None:
    if not ctx.current_code:
        return
    code = ctx.current_code
    await turns.submit_play(code, ctx.player_id, data.get("card"))
    await broadcast_game_state(code)

    # The last card of the turn kicks off resolution
    outcome = await turns.try_resolve_turn(code)
    if outcome != StepOutcome.IDLE:
        await broadcast_game_state(code)


async def handle_resolve_turn(data: dict, ctx: ConnectionContext, *, turns, broadcast_game_state, **kw) -> None:
    # Restarts a turn left half placed, e.g. after a server restart
    if not ctx.current_code:
        return
    outcome = await turns.resume_turn(ctx.current_code, ctx.player_id)
    if outcome != StepOutcome.IDLE:
        await broadcast_game_state(ctx.current_code)


async def handle_choose_row(data: dict, ctx: ConnectionContext, *, turns, broadcast_game_state, **kw) -> None:
    if not ctx.current_code:
        return
    await turns.resolve_row_choice(ctx.current_code, ctx.player_id, data.get("row_index"))
    await broadcast_game_state(ctx.current_code)


async def handle_get_row_options(data: dict, ctx: ConnectionContext, *, turns, **kw) -> None:
    if not ctx.current_code:
        return
    options = await turns.row_options(ctx.current_code, ctx.player_id)
    await ctx.websocket.send_json({
        "type": "row_options",
        "options": [
            {"row_index": o.row_index, "cards": list(o.cards), "penalty": o.penalty}
            for o in options
        ],
    })


HANDLERS = {
    "create_game": handle_create_game,
    "join_game": handle_join_game,
    "spectate_game": handle_spectate_game,
    "toggle_ready": handle_toggle_ready,
    "start_game": handle_start_game,
    "restart_game": handle_restart_game,
    "leave_game": handle_leave_game,
    "play_card": handle_play_card,
    "resolve_turn": handle_resolve_turn,
    "choose_row": handle_choose_row,
    "get_row_options": handle_get_row_options,
}


async def dispatch(data: dict, ctx: ConnectionContext, **deps) -> None:
    """
    Route one client message to its handler.

    Unknown message types are ignored. GameError is reported back to the
    sender as {"type": "error", "code", "message"}.
    """
    handler = HANDLERS.get(data.get("type"))
    if handler is None:
        return
    try:
        await handler(data, ctx, **deps)
    except GameError as e:
        logger.debug(f"{data.get('type')} from {ctx.player_id} rejected: {e.code}")
        await ctx.websocket.send_json({
            "type": "error",
            "code": e.code,
            "message": e.message,
        })
