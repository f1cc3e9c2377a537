"""FastAPI WebSocket server for the Take 6 card game."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
import redis.asyncio as redis

from config import config
from game import GameError, GameStatus
from handlers import ConnectionContext, dispatch
from logging_config import setup_logging, player_id_var, game_code_var
from middleware import RequestIDMiddleware
from models.events import GameEvent
from room import RoomManager
from services import GameRepository, LobbyService, TurnService
from stores import (
    GamePubSub,
    MemoryGameStore,
    MessageType,
    PubSubMessage,
    close_game_store,
    get_game_store,
)

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Services (initialized in lifespan)
# =============================================================================

SERVER_ID = uuid.uuid4().hex[:8]

room_manager = RoomManager()

_game_store = None
_redis_client: Optional[redis.Redis] = None
_pubsub: Optional[GamePubSub] = None
_watched: set[str] = set()

repository: Optional[GameRepository] = None
lobby: Optional[LobbyService] = None
turns: Optional[TurnService] = None


async def notify(event: GameEvent) -> None:
    """Fan a committed event out to local sockets and other servers."""
    room = room_manager.get_room(event.game_code)
    if room is not None:
        await room.broadcast({"type": "game_event", "event": event.to_dict()})
    if _pubsub is not None:
        await _pubsub.publish_event(event)


async def _push_local_state(code: str) -> None:
    room = room_manager.get_room(code)
    if room is None:
        return
    game = await repository.get(code)
    await room.send_game_state(game)


async def broadcast_game_state(code: str) -> None:
    """Send every watcher of a game, here and on other servers, its own view."""
    await _watch(code)
    await _push_local_state(code)
    if _pubsub is not None:
        await _pubsub.publish(PubSubMessage(
            type=MessageType.GAME_STATE_UPDATE,
            game_code=code,
            data={},
        ))


async def _relay_remote(msg: PubSubMessage) -> None:
    """Forward another server's messages to our own sockets."""
    room = room_manager.get_room(msg.game_code)
    if room is None:
        return
    if msg.type == MessageType.GAME_EVENT:
        await room.broadcast({"type": "game_event", "event": msg.data})
    elif msg.type == MessageType.GAME_STATE_UPDATE:
        await _push_local_state(msg.game_code)


async def _watch(code: str) -> None:
    if _pubsub is not None and code not in _watched:
        _watched.add(code)
        await _pubsub.subscribe(code, _relay_remote)


async def _unwatch(code: str) -> None:
    if _pubsub is not None and code in _watched:
        _watched.discard(code)
        await _pubsub.unsubscribe(code)


async def _init_redis() -> None:
    """Connect to Redis and start the cross-server relay."""
    global _redis_client, _pubsub
    try:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=False)
        await _redis_client.ping()
        _pubsub = GamePubSub(_redis_client, server_id=SERVER_ID)
        await _pubsub.start()
        logger.info("Redis client connected")
    except Exception as e:
        logger.warning(f"Redis connection failed: {e} - cross-server relay disabled")
        _redis_client = None
        _pubsub = None


async def _init_services() -> None:
    global _game_store, repository, lobby, turns

    if config.POSTGRES_URL:
        _game_store = await get_game_store(config.POSTGRES_URL)
        logger.info("PostgreSQL game store initialized")
    else:
        _game_store = MemoryGameStore()
        logger.warning("POSTGRES_URL not configured - games are kept in memory only")

    repository = GameRepository(_game_store, notifier=notify)
    lobby = LobbyService(repository)
    turns = TurnService(repository)


async def _shutdown_services() -> None:
    for room in list(room_manager.rooms.values()):
        for websocket in list(room.connections.values()):
            try:
                await websocket.close(code=1001, reason="Server shutting down")
            except Exception as e:
                logger.debug(f"Closing websocket failed: {e}")
    room_manager.rooms.clear()

    if _pubsub is not None:
        await _pubsub.stop()
    if _redis_client is not None:
        await _redis_client.close()
        logger.info("Redis connection closed")

    if config.POSTGRES_URL:
        await close_game_store()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    if config.REDIS_URL:
        await _init_redis()

    try:
        await _init_services()
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    from routers.health import set_health_dependencies
    from routers.games import set_game_services
    set_health_dependencies(
        db_pool=getattr(_game_store, "pool", None),
        redis_client=_redis_client,
        room_manager=room_manager,
        game_store=_game_store,
    )
    set_game_services(repository=repository, turn_service=turns)

    logger.info(f"Take 6 server started (environment={config.ENVIRONMENT}, server={SERVER_ID})")

    yield

    logger.info("Shutdown initiated...")
    await _shutdown_services()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Take 6 Card Game",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(RequestIDMiddleware)


# =============================================================================
# Routers
# =============================================================================

from routers.health import router as health_router
from routers.games import router as games_router
app.include_router(health_router)
app.include_router(games_router)


# =============================================================================
# WebSocket
# =============================================================================


async def handle_disconnect(ctx: ConnectionContext) -> None:
    """
    Drop a closed connection.

    A player who disconnects from a table that is not mid-game also
    leaves it; mid-game their seat is kept.
    """
    code = ctx.current_code
    if not code:
        return

    if room_manager.detach(code, ctx.player_id):
        await _unwatch(code)
        turns.forget(code)

    try:
        game = await repository.get(code)
        player = game.get_player(ctx.player_id)
        if player and (player.is_spectator or game.status != GameStatus.PLAYING):
            await lobby.leave_game(code, ctx.player_id)
            await broadcast_game_state(code)
    except GameError as e:
        logger.debug(f"Leave on disconnect skipped: {e.code}")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    ctx = ConnectionContext(websocket=websocket, player_id=str(uuid.uuid4()))
    player_id_var.set(ctx.player_id)
    logger.debug(f"WebSocket connected as {ctx.player_id}")

    # Shared dependencies passed to every handler
    handler_deps = dict(
        lobby=lobby,
        turns=turns,
        room_manager=room_manager,
        broadcast_game_state=broadcast_game_state,
    )

    try:
        while True:
            data = await websocket.receive_json()
            game_code_var.set(ctx.current_code)
            await dispatch(data, ctx, **handler_deps)
    except WebSocketDisconnect:
        await handle_disconnect(ctx)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Take 6 server on {config.HOST}:{config.PORT}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
