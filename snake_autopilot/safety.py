"""Tail-reachability checks.

If the head can always reach the tail, the snake can follow its own tail
indefinitely without growing, so it is never forced into a dead end. Both
checks run on the body as it would be *after* the move, growth included.
"""

from __future__ import annotations

from typing import Sequence

from .rules import Cell, Grid, direction_between, simulate_move
from .search import shortest_path


def tail_reachable(body: Sequence[Cell], grid: Grid) -> bool:
    """Return True if a free route leads from the head to the tail."""
    if len(body) < 3:
        return True
    return shortest_path(body[0], body[-1], body, grid) is not None


def food_path_safe(path: Sequence[Cell], body: Sequence[Cell], food: Cell, grid: Grid) -> bool:
    """Replay a route to the food and check the grown body can still reach its tail.

    Every step before the last one moves without growing; the last one lands
    on the food and grows. Any step that would be illegal at that point of the
    replay (off grid, onto the body, not adjacent) makes the route unsafe.
    """
    if not path or path[-1] != food:
        return False

    sim = tuple(body)
    last = len(path) - 1
    for i, cell in enumerate(path):
        direction = direction_between(sim[0], cell)
        if direction is None:
            return False
        eating = i == last
        if not grid.is_free(cell, sim, exclude_tail=not eating):
            return False
        sim = simulate_move(sim, direction, eating=eating)

    return tail_reachable(sim, grid)
