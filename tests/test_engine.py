"""
Tests for snake_engine.py - the fixed-tick simulation step.
"""

import random

from snake_protocol import *
from snake_model import Player, Room, in_bounds
from snake_engine import SimulationEngine
from snake_spawn import FoodSpawner


def alive_player(pid, body, direction=RIGHT, state=STATE_ALIVE):
    p = Player(pid, f"Player{pid}", "#fff")
    p.state = state
    p.body = list(body)
    p.position = body[0]
    p.direction = direction
    return p


def make_engine(seed=1, grid_size=GRID_SIZE):
    return SimulationEngine(FoodSpawner(grid_size=grid_size, rng=random.Random(seed)), grid_size=grid_size)


class TestMovement:
    """Ready, alive players advance one cell per tick."""

    def test_moves_one_cell_and_keeps_length(self):
        room = Room(food=(20, 20))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])

        make_engine().tick(room, {"a"})

        p = room.players["a"]
        assert p.body == [(6, 5), (5, 5), (4, 5)]
        assert p.position == (6, 5)
        assert p.alive is True

    def test_every_direction(self):
        expected = {UP: (10, 9), DOWN: (10, 11), LEFT: (9, 10), RIGHT: (11, 10)}
        for direction, head in expected.items():
            room = Room(food=(0, 0))
            # Body trails away from the heading so no self-collision
            dx, dy = DIRECTIONS[direction]
            body = [(10, 10), (10 - dx, 10 - dy), (10 - 2 * dx, 10 - 2 * dy)]
            room.players["a"] = alive_player("a", body, direction)

            make_engine().tick(room, {"a"})

            assert room.players["a"].position == head

    def test_player_outside_ready_set_is_frozen(self):
        room = Room(food=(0, 0))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])

        make_engine().tick(room, set())

        assert room.players["a"].body == [(5, 5), (4, 5), (3, 5)]

    def test_player_outside_ready_set_is_not_an_obstacle(self):
        room = Room(food=(0, 0))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])
        room.players["b"] = alive_player("b", [(6, 4), (6, 5), (6, 6)], UP)

        make_engine().tick(room, {"a"})

        assert room.players["a"].alive is True
        assert room.players["a"].position == (6, 5)

    def test_dead_player_is_left_untouched(self):
        room = Room(food=(0, 0))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)], state=STATE_DEAD)

        make_engine().tick(room, {"a"})

        p = room.players["a"]
        assert p.state == STATE_DEAD
        assert p.body == [(5, 5), (4, 5), (3, 5)]

    def test_ready_id_missing_from_room_is_skipped(self):
        room = Room(food=(0, 0))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])

        make_engine().tick(room, {"a", "gone"})

        assert room.players["a"].position == (6, 5)
        assert "gone" not in room.players


class TestWallDeath:
    """Leaving the grid kills the player in place."""

    def test_left_wall(self):
        room = Room(food=(20, 20))
        room.players["a"] = alive_player("a", [(0, 5), (1, 5), (2, 5)], LEFT)

        make_engine().tick(room, {"a"})

        p = room.players["a"]
        assert p.alive is False
        assert p.state == STATE_DEAD
        assert p.body == [(0, 5), (1, 5), (2, 5)]
        assert p.position == (0, 5)

    def test_bottom_wall(self):
        room = Room(food=(20, 20))
        last = GRID_SIZE - 1
        room.players["a"] = alive_player("a", [(3, last), (3, last - 1), (3, last - 2)], DOWN)

        make_engine().tick(room, {"a"})

        assert room.players["a"].state == STATE_DEAD
        assert room.players["a"].position == (3, last)

    def test_dead_player_stays_dead_on_later_ticks(self):
        room = Room(food=(20, 20))
        room.players["a"] = alive_player("a", [(0, 5), (1, 5), (2, 5)], LEFT)
        engine = make_engine()

        engine.tick(room, {"a"})
        engine.tick(room, {"a"})

        assert room.players["a"].state == STATE_DEAD
        assert room.players["a"].body == [(0, 5), (1, 5), (2, 5)]


class TestCollision:
    """Collisions against the bodies as they were when the tick began."""

    def test_runs_into_own_body(self):
        room = Room(food=(20, 20))
        body = [(5, 5), (6, 5), (6, 6), (5, 6), (4, 6)]
        room.players["a"] = alive_player("a", body, DOWN)

        make_engine().tick(room, {"a"})

        assert room.players["a"].state == STATE_DEAD
        assert room.players["a"].body == body

    def test_runs_into_other_body(self):
        room = Room(food=(20, 20))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])
        room.players["b"] = alive_player("b", [(6, 4), (6, 5), (6, 6)], UP)

        make_engine().tick(room, {"a", "b"})

        assert room.players["a"].state == STATE_DEAD
        assert room.players["b"].position == (6, 3)
        assert room.players["b"].alive is True

    def test_frozen_dead_body_is_an_obstacle(self):
        room = Room(food=(20, 20))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])
        room.players["b"] = alive_player("b", [(6, 5), (6, 6), (6, 7)], UP, state=STATE_DEAD)

        make_engine().tick(room, {"a", "b"})

        assert room.players["a"].state == STATE_DEAD

    def test_vacated_tail_still_counts_regardless_of_order(self):
        # b heads for the cell a's tail leaves this tick
        for a_id, b_id in (("a", "b"), ("z", "b")):
            room = Room(food=(20, 20))
            room.players[a_id] = alive_player(a_id, [(5, 5), (4, 5), (3, 5)])
            room.players[b_id] = alive_player(b_id, [(3, 6), (3, 7), (3, 8)], UP)

            make_engine().tick(room, {a_id, b_id})

            assert room.players[a_id].position == (6, 5)
            assert room.players[b_id].state == STATE_DEAD
            assert room.players[b_id].position == (3, 6)

    def test_shared_target_both_survive_lower_id_eats(self):
        room = Room(food=(10, 10))
        room.players["a"] = alive_player("a", [(9, 10), (8, 10), (7, 10)], RIGHT)
        room.players["b"] = alive_player("b", [(11, 10), (12, 10), (13, 10)], LEFT)

        report = make_engine().tick(room, {"a", "b"}).result

        a, b = room.players["a"], room.players["b"]
        assert report.deaths == {}
        assert report.eaten == ["a"]
        assert a.alive and b.alive
        assert (a.score, len(a.body)) == (10, 4)
        assert (b.score, len(b.body)) == (0, 3)
        assert a.position == b.position == (10, 10)
        assert room.food not in set(a.body) | set(b.body)

    def test_same_input_same_output(self):
        room = Room(food=(6, 5))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])
        room.players["b"] = alive_player("b", [(10, 6), (10, 7), (10, 8)], UP)
        room.players["c"] = alive_player("c", [(0, 0), (0, 1), (0, 2)], UP)
        first, second = room.copy(), room.copy()

        make_engine(seed=7).tick(first, {"a", "b", "c"})
        make_engine(seed=7).tick(second, {"a", "b", "c"})

        assert first.to_dict() == second.to_dict()


class TestFood:
    """Eating grows the snake by one and scores ten points."""

    def test_two_players_one_eats(self):
        room = Room(food=(6, 5))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])
        room.players["b"] = alive_player("b", [(15, 15), (14, 15), (13, 15)])

        make_engine().tick(room, {"a", "b"})

        a, b = room.players["a"], room.players["b"]
        assert a.score == 10
        assert len(a.body) == 4
        assert a.body[0] == (6, 5)
        assert b.score == 0
        assert len(b.body) == 3
        assert room.food is not None
        assert in_bounds(room.food)
        assert room.food not in set(a.body) | set(b.body)

    def test_later_mover_eats_replaced_food(self):
        class ScriptedSpawner:
            def __init__(self, *cells):
                self.cells = list(cells)
                self.excluded = []

            def place(self, exclude):
                self.excluded.append(set(exclude))
                return self.cells.pop(0)

        spawner = ScriptedSpawner((11, 10), (20, 20))
        room = Room(food=(6, 5))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])
        room.players["b"] = alive_player("b", [(10, 10), (9, 10), (8, 10)])

        report = SimulationEngine(spawner).tick(room, {"a", "b"}).result

        assert report.eaten == ["a", "b"]
        assert room.players["b"].score == 10
        assert len(room.players["b"].body) == 4
        assert room.food == (20, 20)
        # The replacement after a eats excludes a's grown body
        assert {(6, 5), (5, 5), (4, 5), (3, 5)} <= spawner.excluded[0]

    def test_no_food_keeps_length(self):
        room = Room(food=(20, 20))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])

        make_engine().tick(room, {"a"})

        assert room.players["a"].score == 0
        assert len(room.players["a"].body) == 3
        assert room.food == (20, 20)

    def test_eating_the_last_free_cell_leaves_no_food(self):
        room = Room(food=(1, 1))
        body = [(0, 1), (0, 2), (1, 2), (2, 2), (2, 1), (2, 0), (1, 0), (0, 0)]
        room.players["a"] = alive_player("a", body, RIGHT)

        make_engine(grid_size=3).tick(room, {"a"})

        assert len(room.players["a"].body) == 9
        assert room.food is None

    def test_missing_food_is_placed_on_next_tick(self):
        room = Room(food=None)
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])

        make_engine().tick(room, {"a"})

        assert room.food is not None
        assert room.food not in room.players["a"].body


class TestLongRun:
    """Invariants hold across many random ticks."""

    def test_bounds_and_lengths(self):
        rng = random.Random(3)
        engine = make_engine(seed=3)
        room = Room(food=(15, 15))
        room.players["a"] = alive_player("a", [(5, 5), (4, 5), (3, 5)])
        room.players["b"] = alive_player("b", [(20, 20), (19, 20), (18, 20)])
        ready = {"a", "b"}

        for _ in range(200):
            for p in room.players.values():
                turn = rng.choice(list(DIRECTIONS))
                if p.alive and turn != OPPOSITE[p.direction]:
                    p.direction = turn
            before = {pid: (len(p.body), p.score) for pid, p in room.players.items()}

            engine.tick(room, ready)

            for pid, p in room.players.items():
                length, score = before[pid]
                assert all(in_bounds(c) for c in p.body)
                assert len(p.body) == length + (p.score - score) // FOOD_SCORE
            if room.food is not None:
                assert in_bounds(room.food)
