"""
Redis pub/sub fan-out of committed game events.

Several servers can host WebSocket clients of the same game. After a
server commits a write it publishes the resulting events on the game's
channel; every other server relays them to its own clients. Delivery is
fire-and-forget: the store, not the channel, is the source of truth.

Usage:
    pubsub = GamePubSub(redis_client, server_id="web-1")
    await pubsub.start()

    async def relay(msg: PubSubMessage):
        await room.broadcast(msg.data)

    await pubsub.subscribe("K3ZQ7P", relay)
    await pubsub.publish_event(event)

    await pubsub.stop()
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from models.events import GameEvent

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """Kinds of message carried on a game channel."""

    # A committed GameEvent (data is GameEvent.to_dict())
    GAME_EVENT = "game_event"

    # Snapshot changed, receivers should re-read it
    GAME_STATE_UPDATE = "game_state_update"


@dataclass
class PubSubMessage:
    """
    Message sent via Redis pub/sub.

    Attributes:
        type: Message type.
        game_code: Game this message is for.
        data: Type-specific payload.
        sender_id: Server that published it (receivers skip their own).
    """

    type: MessageType
    game_code: str
    data: dict
    sender_id: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "game_code": self.game_code,
            "data": self.data,
            "sender_id": self.sender_id,
        })

    @classmethod
    def from_json(cls, raw: str) -> "PubSubMessage":
        d = json.loads(raw)
        return cls(
            type=MessageType(d["type"]),
            game_code=d["game_code"],
            data=d.get("data", {}),
            sender_id=d.get("sender_id"),
        )


MessageHandler = Callable[[PubSubMessage], Awaitable[None]]


class GamePubSub:
    """
    Per-game Redis channels with local handler dispatch.

    One background task reads every subscribed channel and hands each
    message to the handlers registered for that game.
    """

    CHANNEL_PREFIX = "take6:game:"

    def __init__(self, redis_client: redis.Redis, server_id: str = "default"):
        """
        Args:
            redis_client: Async Redis client.
            server_id: Unique ID for this server instance.
        """
        self.redis = redis_client
        self.server_id = server_id
        self.pubsub = redis_client.pubsub()
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def channel(self, game_code: str) -> str:
        """Redis channel name for a game."""
        return f"{self.CHANNEL_PREFIX}{game_code}"

    async def subscribe(self, game_code: str, handler: MessageHandler) -> None:
        channel = self.channel(game_code)
        if channel not in self._handlers:
            self._handlers[channel] = []
            await self.pubsub.subscribe(channel)
            logger.debug(f"Subscribed to channel {channel}")
        self._handlers[channel].append(handler)

    async def unsubscribe(self, game_code: str) -> None:
        channel = self.channel(game_code)
        if channel in self._handlers:
            del self._handlers[channel]
            await self.pubsub.unsubscribe(channel)
            logger.debug(f"Unsubscribed from channel {channel}")

    async def publish(self, message: PubSubMessage) -> int:
        """
        Publish a message on its game's channel.

        Returns:
            Number of subscribers that received the message.
        """
        message.sender_id = self.server_id
        channel = self.channel(message.game_code)
        count = await self.redis.publish(channel, message.to_json())
        logger.debug(f"Published {message.type.value} to {channel} ({count} receivers)")
        return count

    async def publish_event(self, event: GameEvent) -> int:
        """Publish one committed game event."""
        return await self.publish(PubSubMessage(
            type=MessageType.GAME_EVENT,
            game_code=event.game_code,
            data=event.to_dict(),
        ))

    async def start(self) -> None:
        """Start the listener task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._listen())
        logger.info("GamePubSub listener started")

    async def stop(self) -> None:
        """Stop the listener task and close the subscription."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.pubsub.close()
        self._handlers.clear()
        logger.info("GamePubSub listener stopped")

    async def _listen(self) -> None:
        while self._running:
            try:
                message = await self.pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message and message["type"] == "message":
                    await self._dispatch(message)

            except asyncio.CancelledError:
                break
            except redis.ConnectionError as e:
                logger.error(f"PubSub connection error: {e}")
                await asyncio.sleep(1)
            except Exception as e:
                logger.error(f"PubSub listener error: {e}", exc_info=True)
                await asyncio.sleep(1)

    async def _dispatch(self, raw_message: dict) -> None:
        """Decode a raw Redis message and run the game's handlers."""
        channel = raw_message["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode()
        data = raw_message["data"]
        if isinstance(data, bytes):
            data = data.decode()

        try:
            msg = PubSubMessage.from_json(data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Invalid pubsub message on {channel}: {e}")
            return

        if msg.sender_id == self.server_id:
            return

        for handler in self._handlers.get(channel, []):
            try:
                await handler(msg)
            except Exception as e:
                logger.error(f"Error in pubsub handler: {e}", exc_info=True)

