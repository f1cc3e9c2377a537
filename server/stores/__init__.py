"""Stores package for Take 6 game persistence."""

from .game_store import (
    GameStore,
    StoredGame,
    ConcurrencyError,
    get_game_store,
    close_game_store,
)
from .memory_store import MemoryGameStore
from .pubsub import GamePubSub, PubSubMessage, MessageType

__all__ = [
    # Game store
    "GameStore",
    "StoredGame",
    "ConcurrencyError",
    "get_game_store",
    "close_game_store",
    "MemoryGameStore",
    # Pub/sub
    "GamePubSub",
    "PubSubMessage",
    "MessageType",
]
