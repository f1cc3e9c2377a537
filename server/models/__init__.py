"""Models package for the Take 6 game server."""

from .events import EventType, GameEvent, describe_event

__all__ = [
    "EventType",
    "GameEvent",
    "describe_event",
]
