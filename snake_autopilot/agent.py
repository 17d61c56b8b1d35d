"""Autopilot: per-tick move evaluation and the fixed-priority decision policy.

The dominant safety signal is tail reachability on the post-move body: as
long as the head can reach the tail, the snake can follow it forever. Food
progress, free space and loop detection only order moves that are equally
safe.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from . import config
from .history import HistoryTracker, fingerprint
from .rules import (
    DIRECTIONS,
    OPPOSITE,
    Cell,
    Grid,
    candidate_directions,
    direction_between,
    manhattan,
    simulate_move,
    step,
)
from .safety import food_path_safe, tail_reachable
from .search import a_star_path, reachable_count, shortest_path, would_create_enclosure

logger = logging.getLogger(__name__)

# Reason tags (diagnostics only).
NO_SAFE_MOVES = "no safe moves"
PURSUING_FOOD = "pursuing food"
FOOD_PATH_VERIFIED = "safe path to food verified"
FOOD_FIRST_STEP_SAFE = "first step to food is tail-safe"
BREAKING_LOOP = "breaking loop"
FOLLOWING_TAIL = "following tail"
MOVING_TOWARD_TAIL = "moving toward tail"
TAIL_SAFE_TOWARD_FOOD = "tail-safe move toward food"
SAFEST_TAIL_REACHABLE = "safest tail-reachable move"
EMERGENCY = "emergency"

REASONS = (
    NO_SAFE_MOVES,
    PURSUING_FOOD,
    FOOD_PATH_VERIFIED,
    FOOD_FIRST_STEP_SAFE,
    BREAKING_LOOP,
    FOLLOWING_TAIL,
    MOVING_TOWARD_TAIL,
    TAIL_SAFE_TOWARD_FOOD,
    SAFEST_TAIL_REACHABLE,
    EMERGENCY,
)


def reason_key(reason: str) -> str:
    """Column name for a reason tag in episode stats."""
    return "reason_" + reason.replace(" ", "_").replace("-", "_")


class Decision(NamedTuple):
    direction: str
    reason: str


class MoveEvaluation:
    """One scored candidate move; rebuilt every tick."""

    def __init__(
        self,
        direction: str,
        head: Cell,
        body: Sequence[Cell],
        *,
        tail_reachable: bool,
        reachable_space: int,
        moves_toward_food: bool,
        looping: bool,
        oscillating: bool,
        enclosed: bool,
        score: float,
    ) -> None:
        self.direction = direction
        self.head = head
        self.body = body
        self.tail_reachable = tail_reachable
        self.reachable_space = reachable_space
        self.moves_toward_food = moves_toward_food
        self.looping = looping
        self.oscillating = oscillating
        self.enclosed = enclosed
        self.score = score

    def __repr__(self) -> str:
        return (
            f"MoveEvaluation({self.direction}, score={self.score}, tail={self.tail_reachable}, "
            f"space={self.reachable_space}, food={self.moves_toward_food}, loop={self.looping})"
        )


def score_move(
    grid: Grid,
    *,
    tail_ok: bool,
    reachable_space: int,
    toward_food: bool,
    looping: bool,
    oscillating: bool,
    enclosed: bool,
) -> float:
    # The grid area on top of the bonus keeps any tail-safe move above every
    # tail-unsafe one, penalties included.
    score = float(reachable_space)
    if tail_ok:
        score += config.TAIL_REACHABLE_BONUS + grid.cells
    if toward_food:
        score += config.FOOD_PROGRESS_BONUS
    if looping:
        score -= config.LOOP_PENALTY
    if oscillating:
        score -= config.OSCILLATION_PENALTY
    if enclosed:
        score -= config.ENCLOSURE_PENALTY
    return score


def evaluate_moves(
    body: Sequence[Cell],
    food: Optional[Cell],
    heading: str,
    grid: Grid,
    history: HistoryTracker,
) -> List[MoveEvaluation]:
    """Simulate and score every legal non-reversing move.

    Does not touch the history; it is only read for loop and oscillation flags.
    """
    head = body[0]
    base_food_dist = manhattan(head, food) if food is not None else None
    moves: List[MoveEvaluation] = []

    for direction in candidate_directions(body, food, heading, grid):
        new_head = step(head, direction)
        eating = food is not None and new_head == food
        sim = simulate_move(body, direction, eating=eating)

        tail_ok = tail_reachable(sim, grid)
        space = reachable_count(new_head, sim, grid)
        toward_food = base_food_dist is not None and manhattan(new_head, food) < base_food_dist
        looping = history.seen(fingerprint(sim, food))
        oscillating = history.would_oscillate(direction)
        enclosed = would_create_enclosure(sim, grid, reachable=space)

        moves.append(
            MoveEvaluation(
                direction,
                new_head,
                sim,
                tail_reachable=tail_ok,
                reachable_space=space,
                moves_toward_food=toward_food,
                looping=looping,
                oscillating=oscillating,
                enclosed=enclosed,
                score=score_move(
                    grid,
                    tail_ok=tail_ok,
                    reachable_space=space,
                    toward_food=toward_food,
                    looping=looping,
                    oscillating=oscillating,
                    enclosed=enclosed,
                ),
            )
        )
    return moves


def _best(moves: Sequence[MoveEvaluation]) -> MoveEvaluation:
    """Highest score, then food progress, then the fixed direction order."""
    return max(
        moves,
        key=lambda m: (m.score, m.moves_toward_food, -DIRECTIONS.index(m.direction)),
    )


def _snapshot(body: Sequence[Cell]) -> tuple:
    return tuple((int(cell[0]), int(cell[1])) for cell in body)


def _choose(
    body: Sequence[Cell],
    food: Optional[Cell],
    heading: str,
    grid: Grid,
    moves: List[MoveEvaluation],
    *,
    looping_now: bool,
    oscillating_now: bool,
) -> Decision:
    if not moves:
        return Decision(heading, NO_SAFE_MOVES)

    head = body[0]
    by_direction = {m.direction: m for m in moves}
    tail_safe = [m for m in moves if m.tail_reachable]

    # 1) Food, when it does not knowingly give up tail reachability.
    path = None
    if food is not None:
        search = a_star_path if config.USE_ASTAR_FOR_FOOD else shortest_path
        path = search(head, food, body, grid)
    if path:
        food_move = by_direction.get(direction_between(head, path[0]))
        if food_move is not None:
            admissible = food_move.tail_reachable or not tail_safe
            if admissible and len(body) < config.SHORT_BODY_LENGTH:
                return Decision(food_move.direction, PURSUING_FOOD)
            if admissible and food_path_safe(path, body, food, grid):
                return Decision(food_move.direction, FOOD_PATH_VERIFIED)
            if food_move.tail_reachable:
                return Decision(food_move.direction, FOOD_FIRST_STEP_SAFE)

    # 2) Break repetition with a tail-safe move that leads somewhere new.
    if looping_now or oscillating_now:
        fresh = [m for m in tail_safe if not m.looping]
        if fresh:
            return Decision(_best(fresh).direction, BREAKING_LOOP)

    # 3) Stay within reach of the tail.
    if tail_safe:
        if len(body) >= config.TAIL_CHASE_MIN_LENGTH:
            tail = body[-1]
            tail_direction = direction_between(head, tail)
            if tail_direction is not None and any(m.direction == tail_direction for m in tail_safe):
                return Decision(tail_direction, FOLLOWING_TAIL)
            current = manhattan(head, tail)
            closer = [m for m in tail_safe if manhattan(m.head, tail) < current]
            if closer:
                return Decision(_best(closer).direction, MOVING_TOWARD_TAIL)

        toward_food = [m for m in tail_safe if m.moves_toward_food]
        if toward_food:
            return Decision(_best(toward_food).direction, TAIL_SAFE_TOWARD_FOOD)
        return Decision(_best(tail_safe).direction, SAFEST_TAIL_REACHABLE)

    # 4) Nothing keeps the tail reachable: take the roomiest legal move.
    return Decision(_best(moves).direction, EMERGENCY)


def _decide(
    body: Sequence[Cell],
    food: Optional[Cell],
    heading: str,
    grid: Grid,
    history: HistoryTracker,
) -> Tuple[Decision, List[MoveEvaluation]]:
    if not body:
        raise ValueError("Body must contain at least one cell")
    if heading not in OPPOSITE:
        raise ValueError(f"Unknown heading {heading!r}")

    body = _snapshot(body)
    food = (int(food[0]), int(food[1])) if food is not None else None

    moves = evaluate_moves(body, food, heading, grid, history)
    current_key = fingerprint(body, food)
    decision = _choose(
        body,
        food,
        heading,
        grid,
        moves,
        looping_now=history.seen(current_key),
        oscillating_now=history.is_oscillating(),
    )

    history.record_and_check_loop(current_key)
    history.record_heading(decision.direction)
    return decision, moves


def decide_next_direction(
    body: Sequence[Cell],
    food: Optional[Cell],
    heading: str,
    grid: Grid,
    history: HistoryTracker,
) -> Decision:
    """Pick the next heading for one tick and record the tick in ``history``.

    Raises ValueError for an empty body or an unknown heading before anything
    is recorded.
    """
    decision, _ = _decide(body, food, heading, grid, history)
    return decision


class AutopilotAgent:
    """One autopilot session: owns the history and per-episode instrumentation."""

    def __init__(self, grid: Grid, history: Optional[HistoryTracker] = None) -> None:
        self.grid = grid
        if history is None:
            # A tail chase repeats once per body length, which can reach the grid area.
            history = HistoryTracker(capacity=max(config.HISTORY_CAPACITY, grid.cells))
        self.history = history
        self.decision_count = 0

        self._ep_decisions = 0
        self._ep_emergencies = 0
        self._ep_decision_time = 0.0
        self._ep_max_decision_time = 0.0
        self._reasons: Dict[str, int] = defaultdict(int)
        self.last_moves: List[MoveEvaluation] = []

    def begin_episode(self) -> None:
        """Clear the history and per-episode counters (new game)."""
        self.history.reset()
        self._ep_decisions = 0
        self._ep_emergencies = 0
        self._ep_decision_time = 0.0
        self._ep_max_decision_time = 0.0
        self._reasons.clear()
        self.last_moves = []

    def decide(self, body: Sequence[Cell], food: Optional[Cell], heading: str) -> Decision:
        t0 = time.perf_counter()
        decision, moves = _decide(body, food, heading, self.grid, self.history)
        elapsed = time.perf_counter() - t0

        self.last_moves = moves
        self.decision_count += 1
        self._ep_decisions += 1
        self._ep_decision_time += elapsed
        self._ep_max_decision_time = max(self._ep_max_decision_time, elapsed)
        self._reasons[decision.reason] += 1

        if decision.reason == EMERGENCY:
            self._ep_emergencies += 1
            logger.info("No tail-reachable move at %s; taking %s", body[0], decision.direction)
        else:
            logger.debug("%s -> %s (%s)", body[0], decision.direction, decision.reason)
        return decision

    def debug_info(self) -> Dict[str, Any]:
        """Scores of the last evaluated candidates, keyed by direction."""
        return {
            "scores": {m.direction: m.score for m in self.last_moves},
            "tail_reachable": {m.direction: m.tail_reachable for m in self.last_moves},
        }

    def record_episode_stats(self, score: int, steps: int) -> Dict[str, Any]:
        decisions = self._ep_decisions
        stats: Dict[str, Any] = {
            "score": score,
            "steps": steps,
            "decisions": decisions,
            "emergencies": int(self._ep_emergencies),
            "emergency_rate": float(self._ep_emergencies) / decisions if decisions else 0.0,
            "decision_ms_mean": 1000.0 * self._ep_decision_time / decisions if decisions else 0.0,
            "decision_ms_max": 1000.0 * self._ep_max_decision_time,
        }
        stats.update(self._reason_stats())
        return stats

    def _reason_stats(self) -> Dict[str, int]:
        return {reason_key(reason): int(self._reasons.get(reason, 0)) for reason in REASONS}
