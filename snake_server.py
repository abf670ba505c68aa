import argparse
import asyncio
import logging
import os
import random
import time
import uuid

import redis.asyncio as aioredis
import websockets

from snake_protocol import *
from snake_model import Change
from snake_broadcast import Broadcaster, LocalHub, MemoryPubSub, RedisPubSub, encode_welcome
from snake_engine import SimulationEngine
from snake_lifecycle import change_direction, connect, disconnect, new_player, set_ready
from snake_spawn import FoodSpawner
from snake_store import MemoryGameStore, RedisGameStore, StoreError

logger = logging.getLogger(__name__)

STORE_TIMEOUT_S = 0.5
COMMAND_ATTEMPTS = 3
RETRY_BACKOFF_S = 0.05
TICK_FAILURE_REPORT = 10 # consecutive abandoned ticks before paging the operator log


# --- Single writer ---

class RoomWorker:
    """Owns every write to the room.

    Ticks and player commands are jobs on one ordered queue drained by one
    task. A job is ``job(room, ready_ids) -> Change``: it receives a freshly
    loaded private copy of the room, mutates it, and the worker commits the
    result whole. A job whose load or commit fails never reaches the store
    half-applied; it is re-run from a fresh load up to ``attempts`` times.
    """

    def __init__(self, store, broadcaster, timeout=STORE_TIMEOUT_S, backoff=RETRY_BACKOFF_S):
        self.store = store
        self.broadcaster = broadcaster
        self.timeout = timeout
        self.backoff = backoff
        self.queue = asyncio.Queue()

    async def submit(self, job, attempts=COMMAND_ATTEMPTS):
        future = asyncio.get_running_loop().create_future()
        await self.queue.put((job, attempts, future))
        return await future

    async def run(self):
        while True:
            job, attempts, future = await self.queue.get()
            try:
                change = await self._execute(job, attempts)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(change)
            finally:
                self.queue.task_done()

    async def _call(self, coro):
        try:
            return await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreError(f"store call timed out after {self.timeout}s") from e

    async def _execute(self, job, attempts):
        for attempt in range(1, attempts + 1):
            try:
                room, ready_ids = await self._call(self.store.load())
                change = job(room, ready_ids)
                if change.changed:
                    await self._call(self.store.commit(room, change.ready_add, change.ready_remove))
            except StoreError as e:
                if attempt >= attempts:
                    raise
                logger.warning("Store failure (attempt %d/%d): %s", attempt, attempts, e)
                await asyncio.sleep(self.backoff * 2 ** (attempt - 1))
                continue

            if change.changed and change.publish:
                await self.broadcaster.publish(room)
            return change


# --- Main Server ---

class SnakeServer:
    def __init__(self, store, pubsub, hub, rng=None, client=None):
        self.rng = rng or random.Random()
        self.hub = hub
        self.pubsub = pubsub
        self.client = client
        self.worker = RoomWorker(store, Broadcaster(pubsub))
        self.engine = SimulationEngine(FoodSpawner(rng=self.rng))
        self.tick_failures = 0

    # Jobs

    def _join(self, room, player):
        change = connect(room, player)
        change.result = encode_welcome(player, room)
        return change

    def _purge(self, room, ready_ids):
        # Players left over from a previous run have no socket any more
        stale = set(room.players) | set(ready_ids)
        room.players.clear()
        return Change(True, ready_remove=stale)

    def job_for(self, player_id, command):
        if isinstance(command, ReadyCommand):
            return lambda room, ready_ids: set_ready(room, player_id, command.ready, self.rng)
        return lambda room, ready_ids: change_direction(room, ready_ids, player_id, command.direction)

    # Connections

    async def handler(self, websocket):
        player_id = str(uuid.uuid4())[:8]
        player = new_player(player_id, self.rng)
        joined = False

        logger.info("New connection: %s(%s)", websocket.remote_address[0] if websocket.remote_address else 'unknown', player_id)

        try:
            try:
                change = await self.worker.submit(lambda room, ready_ids: self._join(room, player))
            except StoreError as e:
                logger.error("Could not register %s: %s", player_id, e)
                await websocket.close(1011, "store unavailable")
                return
            joined = True

            await websocket.send(change.result)
            self.hub.attach(websocket)

            async for message in websocket:
                try:
                    command = parse_command(message)
                except ProtocolError as e:
                    logger.debug("Dropped message from %s: %s", player_id, e)
                    continue

                try:
                    await self.worker.submit(self.job_for(player_id, command))
                except StoreError as e:
                    logger.warning("Dropped %r from %s: %s", command, player_id, e)

        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.hub.detach(websocket)
            if joined:
                try:
                    await self.worker.submit(lambda room, ready_ids: disconnect(room, player_id))
                except StoreError as e:
                    logger.error("Could not remove %s: %s", player_id, e)
            logger.info("Connection closed: %s", player_id)

    # Simulation

    async def tick_once(self):
        try:
            await self.worker.submit(self.engine.tick, attempts=1)
        except StoreError as e:
            self.tick_failures += 1
            if self.tick_failures < TICK_FAILURE_REPORT:
                logger.warning("Tick abandoned: %s", e)
            elif self.tick_failures == TICK_FAILURE_REPORT:
                logger.error("Store unavailable, %d ticks abandoned in a row: %s", self.tick_failures, e)
            return False

        if self.tick_failures >= TICK_FAILURE_REPORT:
            logger.error("Store recovered after %d abandoned ticks", self.tick_failures)
        self.tick_failures = 0
        return True

    async def game_loop(self):
        while True:
            start_t = time.monotonic()
            await self.tick_once()
            elapsed = time.monotonic() - start_t
            sleep_t = max(0, TICK_DT_MS / 1000.0 - elapsed)
            await asyncio.sleep(sleep_t)

    async def start(self, host, port):
        worker_task = asyncio.create_task(self.worker.run())
        pubsub_task = asyncio.create_task(self.pubsub.run())
        try:
            await self.worker.submit(self._purge)
            # Increase ping_timeout to avoid 1011 errors on laggy networks
            async with websockets.serve(self.handler, host, port, ping_interval=20, ping_timeout=60):
                logger.info("Server started on ws://%s:%d", host, port)
                await self.game_loop()
        finally:
            pubsub_task.cancel()
            worker_task.cancel()
            await asyncio.gather(pubsub_task, worker_task, return_exceptions=True)
            if self.client is not None:
                await self.client.aclose()


def build_server(args):
    rng = random.Random()
    hub = LocalHub()
    if args.memory:
        return SnakeServer(MemoryGameStore(FoodSpawner(rng=rng)), MemoryPubSub(hub), hub, rng=rng)

    client = aioredis.from_url(args.redis_url, decode_responses=True)
    store = RedisGameStore(client, FoodSpawner(rng=rng))
    return SnakeServer(store, RedisPubSub(client, hub), hub, rng=rng, client=client)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Multiplayer snake arena server")
    parser.add_argument("--host", type=str, default=os.getenv("HOST", "0.0.0.0"), help="Bind address")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")), help="WebSocket port")
    parser.add_argument("--redis-url", type=str, default=os.getenv("REDIS_URL", "redis://localhost:6379/0"), help="Redis connection URL")
    parser.add_argument("--memory", action="store_true", help="Keep room state in-process instead of Redis")
    parser.add_argument("--log-level", type=str, default=os.getenv("LOG_LEVEL", "INFO"), help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    server = build_server(args)
    try:
        asyncio.run(server.start(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Server stopped.")


if __name__ == "__main__":
    main()
