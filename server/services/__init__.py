"""Services package for Take 6 game business logic."""

from .repository import GameRepository, UpdateResult, Notifier
from .turn_service import TurnService
from .lobby_service import LobbyService

__all__ = [
    "GameRepository",
    "UpdateResult",
    "Notifier",
    "TurnService",
    "LobbyService",
]
