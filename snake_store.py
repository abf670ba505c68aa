from redis.exceptions import RedisError

from snake_protocol import *
from snake_model import Room


class StoreError(Exception):
    """The backing store could not be read or written."""


def default_room(spawner):
    return Room(food=spawner.place(()))


def _decode(value):
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class SessionStore:
    """Full-read / full-overwrite access to the single room blob.

    There is no compare-and-swap and no partial update: concurrent
    read-modify-write cycles against the same store are last-writer-wins.
    Callers serialise their writes (see ``RoomWorker``).
    """

    async def read(self):
        raise NotImplementedError

    async def write(self, room):
        raise NotImplementedError


class ReadySet:
    """Ids of players taking part in the simulation."""

    async def add(self, player_id):
        raise NotImplementedError

    async def remove(self, player_id):
        raise NotImplementedError

    async def members(self):
        raise NotImplementedError


# --- In-process backend ---

class MemorySessionStore(SessionStore):
    def __init__(self, spawner):
        self.spawner = spawner
        self._blob = None # serialised, so every read hands out a fresh Room

    async def read(self):
        if self._blob is None:
            return default_room(self.spawner)
        return Room.from_json(self._blob)

    async def write(self, room):
        self._blob = room.to_json()


class MemoryReadySet(ReadySet):
    def __init__(self):
        self._members = set()

    async def add(self, player_id):
        self._members.add(player_id)

    async def remove(self, player_id):
        self._members.discard(player_id)

    async def members(self):
        return set(self._members)


# --- Redis backend ---

class RedisSessionStore(SessionStore):
    def __init__(self, client, spawner, key=ROOM_KEY):
        self.client = client
        self.spawner = spawner
        self.key = key

    async def read(self):
        try:
            data = await self.client.get(self.key)
        except RedisError as e:
            raise StoreError(f"GET {self.key} failed: {e}") from e
        if data is None:
            return default_room(self.spawner)
        try:
            return Room.from_json(_decode(data))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise StoreError(f"corrupt room blob at {self.key}: {e}") from e

    async def write(self, room):
        try:
            await self.client.set(self.key, room.to_json())
        except RedisError as e:
            raise StoreError(f"SET {self.key} failed: {e}") from e


class RedisReadySet(ReadySet):
    def __init__(self, client, key=READY_SET_KEY):
        self.client = client
        self.key = key

    async def add(self, player_id):
        try:
            await self.client.sadd(self.key, player_id)
        except RedisError as e:
            raise StoreError(f"SADD {self.key} failed: {e}") from e

    async def remove(self, player_id):
        try:
            await self.client.srem(self.key, player_id)
        except RedisError as e:
            raise StoreError(f"SREM {self.key} failed: {e}") from e

    async def members(self):
        try:
            members = await self.client.smembers(self.key)
        except RedisError as e:
            raise StoreError(f"SMEMBERS {self.key} failed: {e}") from e
        return {_decode(m) for m in members}


# --- Room + ReadySet as one unit ---

class GameStore:
    """Loads and commits the room blob together with the ready set."""

    def __init__(self, sessions, ready):
        self.sessions = sessions
        self.ready = ready

    async def load(self):
        room = await self.sessions.read()
        members = await self.ready.members()
        return room, members

    async def commit(self, room, ready_add=(), ready_remove=()):
        await self.sessions.write(room)
        for pid in ready_add:
            await self.ready.add(pid)
        for pid in ready_remove:
            await self.ready.remove(pid)


class MemoryGameStore(GameStore):
    def __init__(self, spawner):
        super().__init__(MemorySessionStore(spawner), MemoryReadySet())


class RedisGameStore(GameStore):
    """Commits through MULTI/EXEC so the blob and the set never diverge."""

    def __init__(self, client, spawner, room_key=ROOM_KEY, ready_key=READY_SET_KEY):
        super().__init__(RedisSessionStore(client, spawner, room_key), RedisReadySet(client, ready_key))
        self.client = client

    async def commit(self, room, ready_add=(), ready_remove=()):
        payload = room.to_json()
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(self.sessions.key, payload)
                if ready_add:
                    pipe.sadd(self.ready.key, *ready_add)
                if ready_remove:
                    pipe.srem(self.ready.key, *ready_remove)
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"commit to {self.sessions.key} failed: {e}") from e
