import logging

from snake_protocol import *
from snake_model import Player, Change
from snake_spawn import find_spawn, spawn_body

logger = logging.getLogger(__name__)

# (state, event) -> next state. Anything missing is an illegal transition.
TRANSITIONS = {
    (STATE_LOBBY, "spawn"): STATE_ALIVE,
    (STATE_ALIVE, "die"): STATE_DEAD,
    (STATE_LOBBY, "reset"): STATE_LOBBY,
    (STATE_ALIVE, "reset"): STATE_LOBBY,
    (STATE_DEAD, "reset"): STATE_LOBBY,
}


class LifecycleError(Exception):
    pass


def transition(player, event):
    try:
        new_state = TRANSITIONS[(player.state, event)]
    except KeyError:
        raise LifecycleError(f"{player.player_id}: cannot {event} from {player.state}") from None
    player.state = new_state
    return new_state


def new_player(player_id, rng):
    color = rng.choice(COLORS)
    return Player(player_id, f"Player{player_id[-4:]}", color)


def connect(room, player):
    room.players[player.player_id] = player
    return Change(True, result=player)


def disconnect(room, player_id):
    # Also clears ReadySet membership for ids already gone from the room
    room.players.pop(player_id, None)
    return Change(True, ready_remove={player_id})


def spawn(room, player, rng):
    """Lobby -> Alive: place a fresh body on a free cell.

    The whole board is blocked by every existing body plus the food cell.
    When no placement exists the request is dropped and the player stays in
    the lobby; the client may send ready again later.
    """
    if player.state != STATE_LOBBY:
        return Change.none()

    blocked = room.occupied_cells()
    if room.food is not None:
        blocked.add(room.food)
    head = find_spawn(blocked, rng)
    if head is None:
        logger.warning("No free spawn cell for %s, ready request dropped", player.player_id)
        return Change.none()

    transition(player, "spawn")
    player.body = spawn_body(head)
    player.position = head
    player.direction = RIGHT
    player.score = 0
    return Change(True, ready_add={player.player_id})


def reset(player):
    # Any state -> Lobby; body emptied and readiness withdrawn
    transition(player, "reset")
    player.body = []
    return Change(True, ready_remove={player.player_id})


def die(player):
    # Body and position stay frozen; ReadySet membership is kept
    transition(player, "die")


def set_ready(room, player_id, ready, rng):
    player = room.players.get(player_id)
    if player is None:
        return Change.none()
    if ready:
        return spawn(room, player, rng)
    return reset(player)


def change_direction(room, ready_ids, player_id, direction):
    player = room.players.get(player_id)
    if player is None or player_id not in ready_ids or not player.alive:
        return Change.none()

    # Prevent 180 degree reverse
    if direction == player.direction or direction == OPPOSITE[player.direction]:
        return Change.none()

    player.direction = direction
    # Becomes visible with the next tick's broadcast
    return Change(True, publish=False)
