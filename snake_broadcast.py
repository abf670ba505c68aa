import asyncio
import json
import logging

from redis.exceptions import RedisError

from snake_protocol import *

logger = logging.getLogger(__name__)

RESUBSCRIBE_BACKOFF_S = 0.5
RESUBSCRIBE_BACKOFF_MAX_S = 5.0


def encode_state(room):
    return json.dumps({"type": MSG_STATE, "state": room.to_dict()})


def encode_welcome(player, room):
    return json.dumps({
        "type": MSG_WELCOME,
        "id": player.player_id,
        "color": player.color,
        "state": room.to_dict(),
    })


class LocalHub:
    """Open websocket connections of this process."""

    def __init__(self):
        self.connections = set()

    def attach(self, websocket):
        self.connections.add(websocket)

    def detach(self, websocket):
        self.connections.discard(websocket)

    async def _safe_send(self, ws, msg):
        try:
            await ws.send(msg)
        except Exception as e:
            # The handler of that socket cleans up
            logger.debug("Dropped state for %s: %r", getattr(ws, "remote_address", None), e)

    def deliver(self, message):
        for ws in list(self.connections):
            asyncio.create_task(self._safe_send(ws, message))


class MemoryPubSub:
    """Single-process channel: publishing delivers straight to the hub."""

    def __init__(self, hub):
        self.hub = hub

    async def publish(self, message):
        self.hub.deliver(message)

    async def run(self):
        await asyncio.Event().wait()


class RedisPubSub:
    """Publishes on the room channel and forwards what it hears to the hub.

    A lost subscription is logged and re-established with bounded
    exponential backoff; ``run`` only returns when the server closes the
    stream.
    """

    def __init__(self, client, hub, channel=ROOM_CHANNEL, backoff=RESUBSCRIBE_BACKOFF_S, max_backoff=RESUBSCRIBE_BACKOFF_MAX_S):
        self.client = client
        self.hub = hub
        self.channel = channel
        self.backoff = backoff
        self.max_backoff = max_backoff

    async def publish(self, message):
        await self.client.publish(self.channel, message)

    def _forward(self, message):
        if message["type"] != "message":
            return
        data = message["data"]
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        self.hub.deliver(data)

    async def _close(self, pubsub):
        try:
            await pubsub.unsubscribe(self.channel)
        except RedisError as e:
            logger.debug("Unsubscribe from %s failed: %s", self.channel, e)
        await pubsub.aclose()

    async def run(self):
        delay = self.backoff
        while True:
            pubsub = self.client.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                async for message in pubsub.listen():
                    delay = self.backoff
                    self._forward(message)
                return
            except (RedisError, OSError) as e:
                logger.warning("Lost subscription to %s: %s (retry in %.1fs)", self.channel, e, delay)
            finally:
                await self._close(pubsub)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_backoff)


class Broadcaster:
    """Fans the full room snapshot out to every viewer.

    The room is encoded before the first await, so the published message is
    an immutable snapshot no matter what happens to ``room`` afterwards.
    """

    def __init__(self, pubsub):
        self.pubsub = pubsub

    async def publish(self, room):
        message = encode_state(room)
        try:
            await self.pubsub.publish(message)
        except (RedisError, OSError) as e:
            # State is already committed; the next publish carries it
            logger.warning("State publish failed: %s", e)
