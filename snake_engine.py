import logging

from snake_protocol import *
from snake_model import Change, in_bounds, step
from snake_lifecycle import die

logger = logging.getLogger(__name__)


class TickReport:
    def __init__(self):
        self.moved = []
        self.deaths = {} # pid -> reason
        self.eaten = [] # pids, in eating order


class SimulationEngine:
    """Advances a loaded room by one tick.

    Only players that are in the ready set and alive move. Collisions are
    checked against the bodies of ready players as they were at the start of
    the tick, and players are walked in ascending id order, so the outcome
    never depends on dict order. The room passed in is a private copy owned
    by the caller; nothing is persisted here.
    """

    def __init__(self, spawner, grid_size=GRID_SIZE):
        self.spawner = spawner
        self.grid_size = grid_size

    def tick(self, room, ready_ids):
        report = TickReport()

        # A full board left the room without food; try again every tick
        if room.food is None:
            room.food = self.spawner.place(room.occupied_cells())

        movers = [p for p in room.ordered_players() if p.player_id in ready_ids and p.alive]
        obstacles = room.occupied_cells(ready_ids)

        # Phase 1: Calculate Intent
        intents = {p.player_id: step(p.position, p.direction) for p in movers}

        # Phase 2: Decide Deaths
        for p in movers:
            nxt = intents[p.player_id]
            if not in_bounds(nxt, self.grid_size):
                report.deaths[p.player_id] = "wall"
            elif nxt in obstacles:
                report.deaths[p.player_id] = "body"

        # Phase 3: Apply Moves, eating in id order
        for p in movers:
            if p.player_id in report.deaths:
                continue
            head = intents[p.player_id]
            p.body.insert(0, head)
            p.position = head
            report.moved.append(p.player_id)

            if head == room.food:
                p.score += FOOD_SCORE
                report.eaten.append(p.player_id)
                # Later movers this tick see the new cell
                room.food = self.spawner.place(room.occupied_cells())
            else:
                p.body.pop()

        # Phase 4: Deaths keep their body where it was
        for pid, reason in report.deaths.items():
            die(room.players[pid])
            logger.info("Player %s died (%s)", pid, reason)

        return Change(True, result=report)
