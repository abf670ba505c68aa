import json

from snake_protocol import *

# --- Geometry ---

def in_bounds(pos, grid_size=GRID_SIZE):
    x, y = pos
    return 0 <= x < grid_size and 0 <= y < grid_size


def step(pos, direction):
    dx, dy = DIRECTIONS[direction]
    return (pos[0] + dx, pos[1] + dy)


def _cell(data):
    return (int(data["x"]), int(data["y"]))


# --- Game Engine & Data Models ---

class Player:
    def __init__(self, player_id, name, color):
        self.player_id = player_id
        self.name = name
        self.color = color
        self.state = STATE_LOBBY
        self.score = 0
        self.direction = RIGHT
        self.position = (GRID_SIZE // 2, GRID_SIZE // 2) # head, mirrors body[0]
        self.body = [] # head first

    @property
    def alive(self):
        return self.state == STATE_ALIVE

    @property
    def ready(self):
        return self.state != STATE_LOBBY

    @property
    def dead(self):
        return self.state == STATE_DEAD

    def to_dict(self):
        x, y = self.position
        return {
            "id": self.player_id,
            "x": x,
            "y": y,
            "dir": self.direction,
            "body": [{"x": bx, "y": by} for bx, by in self.body],
            "color": self.color,
            "score": self.score,
            "name": self.name,
            "state": self.state,
            "alive": self.alive,
            "ready": self.ready,
            # Browser client greys out snakes by this flag
            "dead": self.dead,
        }

    @classmethod
    def from_dict(cls, data):
        p = cls(data["id"], data["name"], data["color"])
        state = data["state"]
        if state not in (STATE_LOBBY, STATE_ALIVE, STATE_DEAD):
            raise ValueError(f"unknown lifecycle state {state!r}")
        direction = data["dir"]
        if direction not in DIRECTIONS:
            raise ValueError(f"unknown direction {direction!r}")
        p.state = state
        p.direction = direction
        p.score = int(data["score"])
        p.position = (int(data["x"]), int(data["y"]))
        p.body = [_cell(seg) for seg in data["body"]]
        return p

    def __repr__(self):
        return f"Player({self.player_id!r}, state={self.state}, len={len(self.body)}, score={self.score})"


class Room:
    """The single shared session: one food item and every connected player.

    Always read and written whole. ``players`` is keyed by player id; code
    that needs a stable order must go through ``ordered_players``.
    """

    def __init__(self, food=None):
        self.food = food
        self.players = {} # player_id -> Player

    def ordered_players(self):
        return [self.players[pid] for pid in sorted(self.players)]

    def occupied_cells(self, player_ids=None):
        cells = set()
        for pid, p in self.players.items():
            if player_ids is not None and pid not in player_ids:
                continue
            cells.update(p.body)
        return cells

    def to_dict(self):
        food = None
        if self.food is not None:
            food = {"x": self.food[0], "y": self.food[1]}
        return {
            "food": food,
            "players": {pid: self.players[pid].to_dict() for pid in sorted(self.players)},
        }

    @classmethod
    def from_dict(cls, data):
        food = data.get("food")
        room = cls(_cell(food) if food is not None else None)
        for pid, pdata in data.get("players", {}).items():
            player = Player.from_dict(pdata)
            room.players[pid] = player
        return room

    def to_json(self):
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw):
        return cls.from_dict(json.loads(raw))

    def copy(self):
        return Room.from_dict(self.to_dict())


class Change:
    """Result of applying one job to a loaded room.

    ``changed`` tells the worker whether the room must be committed;
    ``publish`` whether the commit is followed by a broadcast.
    ``ready_add`` / ``ready_remove`` are ReadySet edits committed together
    with the room.
    """

    def __init__(self, changed=False, ready_add=(), ready_remove=(), result=None, publish=True):
        self.changed = changed
        self.ready_add = set(ready_add)
        self.ready_remove = set(ready_remove)
        self.result = result
        self.publish = publish

    @classmethod
    def none(cls, result=None):
        return cls(False, result=result)
