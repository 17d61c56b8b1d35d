from __future__ import annotations

import random
import unittest
from unittest import mock

from snake_autopilot import config
from snake_autopilot import agent as agent_mod
from snake_autopilot.agent import (
    AutopilotAgent,
    Decision,
    decide_next_direction,
    evaluate_moves,
    reason_key,
    score_move,
)
from snake_autopilot.history import HistoryTracker, fingerprint
from snake_autopilot.rules import (
    DOWN,
    LEFT,
    OPPOSITE,
    RIGHT,
    UP,
    Grid,
    candidate_directions,
    direction_between,
    is_legal_move,
    simulate_move,
    step,
)
from snake_autopilot.search import a_star_path

# 8x8 board: the head at (3,3) sits in a sealed pocket {(2,2),(3,2),(2,3)}
# whose only exit is the tail cell (4,3) to its right.
POCKET_BODY = [
    (3, 3), (3, 4), (2, 4), (1, 4), (1, 3), (1, 2), (1, 1),
    (2, 1), (3, 1), (4, 1), (4, 2), (5, 2), (5, 3), (4, 3),
]

SEALED_BODY = [(1, 0), (2, 0), (2, 1), (1, 1), (0, 1), (0, 2), (1, 2)]


def random_body(rng: random.Random, grid: Grid, length: int) -> list:
    cell = (rng.randrange(grid.width), rng.randrange(grid.height))
    body = [cell]
    while len(body) < length:
        options = [n for n in grid.neighbors(body[-1]) if n not in body]
        if not options:
            break
        body.append(rng.choice(options))
    return body


def ring_body(x0: int, y0: int, x1: int, y1: int) -> list:
    """Rectangle outline walked clockwise from its top-left corner, as a body.

    The head sits on the corner, the neck to its right and the tail right
    below it, so the body is heading LEFT and can chase its tail forever.
    """
    cells = [(x, y0) for x in range(x0, x1 + 1)]
    cells += [(x1, y) for y in range(y0 + 1, y1 + 1)]
    cells += [(x, y1) for x in range(x1 - 1, x0 - 1, -1)]
    cells += [(x0, y) for y in range(y1 - 1, y0, -1)]
    return cells


def drive(body, food, heading, grid, ticks):
    """Run the decision loop without an engine; stop when the food is eaten."""
    history = HistoryTracker()
    moves = []
    for tick in range(1, ticks + 1):
        decision = decide_next_direction(body, food, heading, grid, history)
        if not is_legal_move(body, food, decision.direction, heading, grid):
            raise AssertionError(f"illegal move {decision} at tick {tick}")
        moves.append(decision)
        eating = step(body[0], decision.direction) == food
        body = simulate_move(body, decision.direction, eating=eating)
        heading = decision.direction
        if eating:
            return tick, moves
    return None, moves


class ScoreOrderingTest(unittest.TestCase):
    def test_tail_bonus_dominates_everything_else(self):
        for grid in (Grid(4, 4), Grid(20, 20), Grid(200, 150)):
            worst_safe = score_move(
                grid,
                tail_ok=True,
                reachable_space=0,
                toward_food=False,
                looping=True,
                oscillating=True,
                enclosed=True,
            )
            best_unsafe = score_move(
                grid,
                tail_ok=False,
                reachable_space=grid.cells,
                toward_food=True,
                looping=False,
                oscillating=False,
                enclosed=False,
            )
            self.assertGreater(worst_safe, best_unsafe)

    def test_food_progress_and_loop_terms(self):
        grid = Grid(10, 10)
        base = dict(tail_ok=True, reachable_space=50, oscillating=False, enclosed=False)
        toward = score_move(grid, toward_food=True, looping=False, **base)
        away = score_move(grid, toward_food=False, looping=False, **base)
        looping = score_move(grid, toward_food=True, looping=True, **base)
        self.assertGreater(toward, away)
        self.assertGreater(away, looping)


class EvaluateMovesTest(unittest.TestCase):
    def test_pocket_moves_are_not_tail_safe(self):
        grid = Grid(8, 8)
        moves = {m.direction: m for m in evaluate_moves(POCKET_BODY, (2, 2), UP, grid, HistoryTracker())}
        self.assertEqual(set(moves), {UP, LEFT, RIGHT})
        self.assertFalse(moves[UP].tail_reachable)
        self.assertFalse(moves[LEFT].tail_reachable)
        self.assertTrue(moves[RIGHT].tail_reachable)
        self.assertTrue(moves[UP].enclosed)
        self.assertGreater(moves[RIGHT].reachable_space, moves[UP].reachable_space)
        self.assertGreater(moves[RIGHT].score, moves[UP].score)
        self.assertGreater(moves[RIGHT].score, moves[LEFT].score)

    def test_evaluation_leaves_history_untouched(self):
        grid = Grid(10, 10)
        history = HistoryTracker()
        evaluate_moves([(5, 5), (5, 6), (5, 7)], (1, 1), UP, grid, history)
        self.assertEqual(len(history), 0)
        self.assertEqual(len(history.headings), 0)

    def test_eating_move_is_simulated_with_growth(self):
        grid = Grid(10, 10)
        body = [(5, 5), (4, 5), (3, 5)]
        moves = {m.direction: m for m in evaluate_moves(body, (6, 5), RIGHT, grid, HistoryTracker())}
        self.assertEqual(len(moves[RIGHT].body), 4)
        self.assertEqual(len(moves[UP].body), 3)
        self.assertTrue(moves[RIGHT].moves_toward_food)
        self.assertFalse(moves[UP].moves_toward_food)

    def test_looping_flag_reads_history(self):
        grid = Grid(10, 10)
        body = [(5, 5), (5, 6), (5, 7)]
        history = HistoryTracker()
        history.record_and_check_loop(fingerprint(simulate_move(body, UP), None))
        moves = {m.direction: m for m in evaluate_moves(body, None, UP, grid, history)}
        self.assertTrue(moves[UP].looping)
        self.assertFalse(moves[LEFT].looping)


class DecisionPolicyTest(unittest.TestCase):
    def test_scenario_reaches_food_ahead(self):
        grid = Grid(20, 20)
        ate_at, moves = drive([(5, 5), (5, 6), (5, 7)], (8, 5), RIGHT, grid, 20)
        self.assertIsNotNone(ate_at)
        self.assertLessEqual(ate_at, 20)
        self.assertEqual(moves[0], Decision(RIGHT, agent_mod.PURSUING_FOOD))

    def test_scenario_follows_tail_out_of_pocket(self):
        grid = Grid(8, 8)
        decision = decide_next_direction(POCKET_BODY, (2, 2), UP, grid, HistoryTracker())
        self.assertEqual(decision, Decision(RIGHT, agent_mod.FOLLOWING_TAIL))

    def test_scenario_food_behind_needs_detour(self):
        grid = Grid(20, 20)
        body = [(10, 10), (9, 10), (8, 10)]
        first = decide_next_direction(body, (5, 10), RIGHT, grid, HistoryTracker())
        self.assertIn(first.direction, (UP, DOWN))
        self.assertNotEqual(first.direction, LEFT)

        ate_at, moves = drive(body, (5, 10), RIGHT, grid, 20)
        self.assertIsNotNone(ate_at)
        self.assertLessEqual(ate_at, 10)
        self.assertNotEqual(moves[0].direction, OPPOSITE[RIGHT])

    def test_a_star_food_search_when_enabled(self):
        grid = Grid(20, 20)
        body = [(5, 5), (5, 6), (5, 7)]
        with mock.patch.object(config, "USE_ASTAR_FOR_FOOD", True), \
                mock.patch.object(agent_mod, "a_star_path", wraps=a_star_path) as search:
            decision = decide_next_direction(body, (8, 5), RIGHT, grid, HistoryTracker())
        search.assert_called_once_with(body[0], (8, 5), tuple(body), grid)
        self.assertEqual(decision, Decision(RIGHT, agent_mod.PURSUING_FOOD))

    def test_long_body_verifies_food_path(self):
        grid = Grid(10, 10)
        body = [(5, 5), (4, 5), (3, 5), (2, 5), (1, 5), (0, 5)]
        decision = decide_next_direction(body, (8, 5), RIGHT, grid, HistoryTracker())
        self.assertEqual(decision, Decision(RIGHT, agent_mod.FOOD_PATH_VERIFIED))

    def test_breaks_loop_with_fresh_tail_safe_move(self):
        grid = Grid(10, 10)
        body = [(5, 5), (5, 6), (5, 7), (5, 8)]
        history = HistoryTracker()
        history.record_and_check_loop(fingerprint(body, None))
        decision = decide_next_direction(body, None, UP, grid, history)
        self.assertEqual(decision.reason, agent_mod.BREAKING_LOOP)
        self.assertIn(decision.direction, (UP, LEFT, RIGHT))

    def test_emergency_when_nothing_is_tail_safe(self):
        grid = Grid(4, 4)
        decision = decide_next_direction(SEALED_BODY, (3, 3), LEFT, grid, HistoryTracker())
        self.assertEqual(decision, Decision(LEFT, agent_mod.EMERGENCY))

    def test_no_candidates_keeps_heading(self):
        grid = Grid(3, 1)
        # Head against the wall, body behind it: every move is off-grid or reverse.
        decision = decide_next_direction([(2, 0), (1, 0), (0, 0)], None, RIGHT, grid, HistoryTracker())
        self.assertEqual(decision, Decision(RIGHT, agent_mod.NO_SAFE_MOVES))

    def test_records_one_state_and_heading_per_call(self):
        grid = Grid(10, 10)
        history = HistoryTracker()
        body = [(5, 5), (5, 6), (5, 7)]
        decision = decide_next_direction(body, (1, 1), UP, grid, history)
        self.assertEqual(len(history), 1)
        self.assertTrue(history.seen(fingerprint(body, (1, 1))))
        self.assertEqual(list(history.headings), [decision.direction])

    def test_invalid_input_raises_before_recording(self):
        grid = Grid(10, 10)
        history = HistoryTracker()
        with self.assertRaises(ValueError):
            decide_next_direction([], (1, 1), UP, grid, history)
        with self.assertRaises(ValueError):
            decide_next_direction([(5, 5)], (1, 1), "NORTH", grid, history)
        self.assertEqual(len(history), 0)
        self.assertEqual(len(history.headings), 0)

    def test_random_states_keep_liveness_and_never_reverse(self):
        rng = random.Random(2024)
        for trial in range(150):
            grid = Grid(rng.randint(4, 9), rng.randint(4, 9))
            body = random_body(rng, grid, rng.randint(1, grid.cells // 2))
            if len(body) > 1:
                heading = direction_between(body[1], body[0])
            else:
                heading = rng.choice((UP, DOWN, LEFT, RIGHT))
            free = sorted({(x, y) for x in range(grid.width) for y in range(grid.height)} - set(body))
            food = rng.choice(free) if free else None

            candidates = candidate_directions(body, food, heading, grid)
            moves = evaluate_moves(body, food, heading, grid, HistoryTracker())
            decision = decide_next_direction(body, food, heading, grid, HistoryTracker())

            if not candidates:
                self.assertEqual(decision.reason, agent_mod.NO_SAFE_MOVES)
                continue
            self.assertIn(decision.direction, candidates, (trial, body, food))
            if len(body) > 1:
                self.assertNotEqual(decision.direction, OPPOSITE[heading])
            chosen = next(m for m in moves if m.direction == decision.direction)
            if any(m.tail_reachable for m in moves):
                self.assertTrue(chosen.tail_reachable, (trial, body, food, decision))


class AutopilotAgentTest(unittest.TestCase):
    def test_episode_stats(self):
        grid = Grid(8, 8)
        pilot = AutopilotAgent(grid)
        pilot.begin_episode()
        pilot.decide(POCKET_BODY, (2, 2), UP)
        stats = pilot.record_episode_stats(score=0, steps=1)
        self.assertEqual(stats["decisions"], 1)
        self.assertEqual(stats["emergencies"], 0)
        self.assertEqual(stats[reason_key(agent_mod.FOLLOWING_TAIL)], 1)
        self.assertEqual(stats["reason_following_tail"], 1)
        for reason in agent_mod.REASONS:
            self.assertIn(reason_key(reason), stats)
        self.assertGreaterEqual(stats["decision_ms_mean"], 0.0)

    def test_emergency_counted(self):
        pilot = AutopilotAgent(Grid(4, 4))
        pilot.decide(SEALED_BODY, (3, 3), LEFT)
        stats = pilot.record_episode_stats(score=0, steps=1)
        self.assertEqual(stats["emergencies"], 1)
        self.assertEqual(stats["emergency_rate"], 1.0)

    def test_begin_episode_clears_history(self):
        pilot = AutopilotAgent(Grid(10, 10))
        pilot.decide([(5, 5), (5, 6), (5, 7)], (1, 1), UP)
        self.assertEqual(len(pilot.history), 1)
        pilot.begin_episode()
        self.assertEqual(len(pilot.history), 0)
        self.assertEqual(pilot.record_episode_stats(0, 0)["decisions"], 0)

    def test_debug_info_lists_candidates(self):
        pilot = AutopilotAgent(Grid(8, 8))
        pilot.decide(POCKET_BODY, (2, 2), UP)
        info = pilot.debug_info()
        self.assertEqual(set(info["scores"]), {UP, LEFT, RIGHT})
        self.assertTrue(info["tail_reachable"][RIGHT])

    def test_history_covers_the_grid_area(self):
        grid = Grid(20, 20)
        self.assertGreaterEqual(AutopilotAgent(grid).history.capacity, grid.cells)

    def test_tail_chase_longer_than_default_history_breaks_loop(self):
        grid = Grid(10, 10)
        body = tuple(ring_body(1, 1, 7, 7))
        self.assertEqual(len(body), 24)
        self.assertGreater(len(body), config.HISTORY_CAPACITY)
        heading = LEFT
        pilot = AutopilotAgent(grid)

        reasons = []
        for _ in range(len(body) + 1):
            decision = pilot.decide(body, None, heading)
            self.assertTrue(is_legal_move(body, None, decision.direction, heading, grid), decision)
            reasons.append(decision.reason)
            body = simulate_move(body, decision.direction)
            heading = decision.direction

        # One full lap brings back the starting board.
        self.assertEqual(reasons[:-1], [agent_mod.FOLLOWING_TAIL] * 24)
        self.assertEqual(reasons[-1], agent_mod.BREAKING_LOOP)
        stats = pilot.record_episode_stats(score=0, steps=len(reasons))
        self.assertEqual(stats[reason_key(agent_mod.BREAKING_LOOP)], 1)

    def test_separate_sessions_do_not_share_history(self):
        grid = Grid(10, 10)
        a = AutopilotAgent(grid)
        b = AutopilotAgent(grid)
        a.decide([(5, 5), (5, 6), (5, 7)], (1, 1), UP)
        self.assertEqual(len(a.history), 1)
        self.assertEqual(len(b.history), 0)


if __name__ == "__main__":
    unittest.main()
