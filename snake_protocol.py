import json

# Shared Configuration
GRID_SIZE = 30
INITIAL_LENGTH = 3
FOOD_SCORE = 10

# Game Settings
TICK_DT_MS = 100
SPAWN_ATTEMPTS = 100
FOOD_ATTEMPTS = 100

# Store keys (single room)
ROOM_KEY = "snake:room1"
READY_SET_KEY = "snake:ready_players"
ROOM_CHANNEL = ROOM_KEY

COLORS = ['#ff5722', '#4caf50', '#2196f3', '#e91e63', '#ffc107', '#9c27b0']

# Directions
UP = "UP"
DOWN = "DOWN"
LEFT = "LEFT"
RIGHT = "RIGHT"

DIRECTIONS = {
    UP: (0, -1),
    DOWN: (0, 1),
    LEFT: (-1, 0),
    RIGHT: (1, 0),
}

OPPOSITE = {UP: DOWN, DOWN: UP, LEFT: RIGHT, RIGHT: LEFT}

# Lifecycle states
STATE_LOBBY = "LOBBY"
STATE_ALIVE = "ALIVE"
STATE_DEAD = "DEAD"

# Protocol Opcodes / Types
MSG_READY = "ready"
MSG_DIRECTION = "direction"
MSG_WELCOME = "welcome"
MSG_STATE = "state"


class ProtocolError(ValueError):
    """Inbound message that cannot be turned into a command."""


class ReadyCommand:
    def __init__(self, ready):
        self.ready = ready

    def __repr__(self):
        return f"ReadyCommand(ready={self.ready})"


class DirectionCommand:
    def __init__(self, direction):
        self.direction = direction

    def __repr__(self):
        return f"DirectionCommand(direction={self.direction})"


def parse_command(raw):
    """Validate one raw websocket frame into a command object.

    Raises ProtocolError for anything that is not valid JSON, not an object,
    has an unknown ``type`` or carries a bad payload.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"unparseable message: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("message is not an object")

    mtype = data.get("type")
    if mtype == MSG_READY:
        ready = data.get("ready")
        if not isinstance(ready, bool):
            raise ProtocolError("ready must be a boolean")
        return ReadyCommand(ready)

    if mtype == MSG_DIRECTION:
        d = data.get("dir")
        if not isinstance(d, str) or d not in DIRECTIONS:
            raise ProtocolError(f"unknown direction {d!r}")
        return DirectionCommand(d)

    raise ProtocolError(f"unknown message type {mtype!r}")
