import logging
import random

import numpy as np

from snake_protocol import *
from snake_model import in_bounds

logger = logging.getLogger(__name__)


def free_cells(exclude, grid_size=GRID_SIZE):
    """All cells not in ``exclude``, in row-major (y, then x) order."""
    occupied = np.zeros((grid_size, grid_size), dtype=bool) # indexed [y, x]
    for x, y in exclude:
        if 0 <= x < grid_size and 0 <= y < grid_size:
            occupied[y, x] = True
    ys, xs = np.nonzero(~occupied)
    return [(int(x), int(y)) for y, x in zip(ys, xs)]


class FoodSpawner:
    """Placement policy for the single food item.

    Samples uniformly at random for a bounded number of attempts, then falls
    back to the first free cell of a row-major scan, so placement terminates
    even on a nearly saturated board. ``place`` returns None only when no
    cell is free at all.
    """

    def __init__(self, grid_size=GRID_SIZE, attempts=FOOD_ATTEMPTS, rng=None):
        self.grid_size = grid_size
        self.attempts = attempts
        self.rng = rng or random.Random()

    def place(self, exclude):
        exclude = set(exclude)
        for _ in range(self.attempts):
            x = self.rng.randrange(self.grid_size)
            y = self.rng.randrange(self.grid_size)
            if (x, y) not in exclude:
                return (x, y)

        free = free_cells(exclude, self.grid_size)
        if not free:
            logger.warning("No free cell left for food")
            return None
        return free[0]


def spawn_body(head, length=INITIAL_LENGTH):
    # Trails to the left of the head; the snake starts facing RIGHT
    hx, hy = head
    return [(hx - i, hy) for i in range(length)]


def find_spawn(blocked, rng, grid_size=GRID_SIZE, length=INITIAL_LENGTH, attempts=SPAWN_ATTEMPTS):
    """Find a head position whose whole initial body avoids ``blocked``.

    Random attempts are drawn from a box away from the walls; if all of them
    collide, every cell of the board is scanned in row-major order. Returns
    None when no placement exists.
    """
    blocked = set(blocked)

    def fits(head):
        return all(in_bounds(c, grid_size) and c not in blocked for c in spawn_body(head, length))

    # Find spawn spot
    margin = grid_size // 5
    x_min = max(length - 1, margin)
    x_max = grid_size - 1 - margin
    y_min = margin
    y_max = grid_size - 1 - margin
    if x_min > x_max:
        x_min, x_max = length - 1, grid_size - 1
    if y_min > y_max:
        y_min, y_max = 0, grid_size - 1

    for _ in range(attempts):
        head = (rng.randint(x_min, x_max), rng.randint(y_min, y_max))
        if fits(head):
            return head

    for head in free_cells(blocked, grid_size):
        if fits(head):
            return head
    return None
