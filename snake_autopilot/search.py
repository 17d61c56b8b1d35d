"""Grid search: shortest paths toward a goal and flood-fill reachable space.

Every search treats the body as walls except its last segment, which vacates
its cell on any move that does not eat. All search state is local to a call.
"""

from __future__ import annotations

import heapq
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence, Set, Tuple

from . import config
from .rules import Cell, Grid, manhattan

_UNSEEN = -1
_ROOT = -2


def _blocked_cells(body: Sequence[Cell]) -> Set[Cell]:
    blocked = set(body)
    if body:
        blocked.discard(body[-1])
    return blocked


def _rebuild_path(parents: List[int], goal_idx: int, width: int) -> List[Cell]:
    path: List[Cell] = []
    idx = goal_idx
    while parents[idx] != _ROOT:
        path.append((idx % width, idx // width))
        idx = parents[idx]
    path.reverse()
    return path


def shortest_path(start: Cell, goal: Cell, body: Sequence[Cell], grid: Grid) -> Optional[List[Cell]]:
    """Breadth-first shortest route from ``start`` to ``goal``.

    Returns the cells after ``start`` up to and including ``goal`` (an empty
    list when they coincide), or None when the goal is not free or cannot be
    reached. Neighbours are expanded UP, DOWN, LEFT, RIGHT, which decides
    between equally short routes.
    """
    if not grid.is_free(goal, body, exclude_tail=True):
        return None
    if start == goal:
        return []
    if not grid.in_bounds(start):
        return None

    blocked = _blocked_cells(body)
    width = grid.width
    # Predecessor per cell index (y * width + x).
    parents = [_UNSEEN] * grid.cells
    start_idx = grid.index(start)
    goal_idx = grid.index(goal)
    parents[start_idx] = _ROOT

    queue: Deque[Cell] = deque([start])
    while queue:
        cur = queue.popleft()
        cur_idx = grid.index(cur)
        for nxt in grid.neighbors(cur):
            nxt_idx = nxt[1] * width + nxt[0]
            if parents[nxt_idx] != _UNSEEN or nxt in blocked:
                continue
            parents[nxt_idx] = cur_idx
            if nxt_idx == goal_idx:
                return _rebuild_path(parents, goal_idx, width)
            queue.append(nxt)
    return None


def a_star_path(start: Cell, goal: Cell, body: Sequence[Cell], grid: Grid) -> Optional[List[Cell]]:
    """Best-first variant of :func:`shortest_path` guided by Manhattan distance.

    The heuristic is admissible and consistent on a 4-connected unit grid, so
    the route has the same length as the BFS one; only the exploration order
    (and therefore the choice among equal routes) can differ.
    """
    if not grid.is_free(goal, body, exclude_tail=True):
        return None
    if start == goal:
        return []
    if not grid.in_bounds(start):
        return None

    blocked = _blocked_cells(body)
    came_from: Dict[Cell, Cell] = {}
    g_score: Dict[Cell, int] = {start: 0}
    closed: Set[Cell] = set()
    counter = 0
    open_set: List[Tuple[int, int, Cell]] = [(manhattan(start, goal), counter, start)]

    while open_set:
        _, _, current = heapq.heappop(open_set)
        if current == goal:
            path: List[Cell] = []
            while current in came_from:
                path.append(current)
                current = came_from[current]
            return path[::-1]
        if current in closed:
            continue
        closed.add(current)

        for neighbor in grid.neighbors(current):
            if neighbor in blocked or neighbor in closed:
                continue
            tentative_g = g_score[current] + 1
            if tentative_g < g_score.get(neighbor, 10**9):
                came_from[neighbor] = current
                g_score[neighbor] = tentative_g
                counter += 1
                heapq.heappush(open_set, (tentative_g + manhattan(neighbor, goal), counter, neighbor))

    return None


def reachable_set(start: Cell, body: Sequence[Cell], grid: Grid) -> Set[Cell]:
    """Flood fill from ``start`` over free cells.

    ``start`` is expanded even when it is occupied (it is usually the head),
    but it is only part of the result when it is itself free.
    """
    if not grid.in_bounds(start):
        return set()
    blocked = _blocked_cells(body)
    seen = {start}
    q: Deque[Cell] = deque([start])
    while q:
        cur = q.popleft()
        for nxt in grid.neighbors(cur):
            if nxt in seen or nxt in blocked:
                continue
            seen.add(nxt)
            q.append(nxt)
    if start in blocked:
        seen.discard(start)
    return seen


def reachable_count(start: Cell, body: Sequence[Cell], grid: Grid) -> int:
    return len(reachable_set(start, body, grid))


def free_cell_count(body: Sequence[Cell], grid: Grid) -> int:
    """Cells not covered by the body, counting the tail cell as free."""
    return grid.cells - len(_blocked_cells(body))


def would_create_enclosure(
    body: Sequence[Cell],
    grid: Grid,
    ratio: Optional[float] = None,
    reachable: Optional[int] = None,
) -> bool:
    """True when the head reaches less than ``ratio`` of the free cells.

    ``reachable`` may pass in a count already measured from the head.
    """
    ratio = config.ENCLOSURE_RATIO if ratio is None else ratio
    if reachable is None:
        reachable = reachable_count(body[0], body, grid)
    return reachable < free_cell_count(body, grid) * ratio
