from __future__ import annotations

from typing import Optional, Sequence, Tuple

from .rules import Cell, Grid

Color = Tuple[int, int, int]


def segment_age_ratio(index: int, length: int) -> float:
    """Return a normalized "age" for a body segment: head=0, tail=1."""
    if length <= 1:
        return 0.0
    return float(index) / float(length - 1)


def lerp_color(start: Color, end: Color, ratio: float) -> Color:
    ratio = max(0.0, min(1.0, ratio))
    return tuple(int(a + (b - a) * ratio) for a, b in zip(start, end))  # type: ignore[return-value]


def board_text(body: Sequence[Cell], food: Optional[Cell], grid: Grid) -> str:
    """Plain-text board for logs: H head, o body, t tail, * food, . empty."""
    rows = [["."] * grid.width for _ in range(grid.height)]
    if food is not None and grid.in_bounds(food):
        rows[food[1]][food[0]] = "*"
    last = len(body) - 1
    for i, (x, y) in enumerate(body):
        if not grid.in_bounds((x, y)):
            continue
        rows[y][x] = "H" if i == 0 else ("t" if i == last else "o")
    return "\n".join("".join(row) for row in rows)
