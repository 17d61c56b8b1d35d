from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Sequence, Tuple

Cell = Tuple[int, int]

UP = "UP"
DOWN = "DOWN"
LEFT = "LEFT"
RIGHT = "RIGHT"

# Fixed visiting order; search tie-breaks depend on it.
DIRECTIONS: Tuple[str, ...] = (UP, DOWN, LEFT, RIGHT)

DIRECTION_VECTORS: Dict[str, Tuple[int, int]] = {
    UP: (0, -1),
    DOWN: (0, 1),
    LEFT: (-1, 0),
    RIGHT: (1, 0),
}

OPPOSITE: Dict[str, str] = {
    UP: DOWN,
    DOWN: UP,
    LEFT: RIGHT,
    RIGHT: LEFT,
}


class Grid:
    """Fixed-size board; cells are (x, y) with y growing downward."""

    def __init__(self, width: int, height: int) -> None:
        if int(width) <= 0 or int(height) <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)

    @property
    def cells(self) -> int:
        return self.width * self.height

    def __repr__(self) -> str:
        return f"Grid({self.width}, {self.height})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self.width == other.width and self.height == other.height

    def __hash__(self) -> int:
        return hash((self.width, self.height))

    def in_bounds(self, cell: Cell) -> bool:
        x, y = cell
        return 0 <= x < self.width and 0 <= y < self.height

    def index(self, cell: Cell) -> int:
        return cell[1] * self.width + cell[0]

    def is_free(self, cell: Cell, body: Sequence[Cell], exclude_tail: bool = True) -> bool:
        """Return False if the cell is off the grid or covered by the body.

        With ``exclude_tail`` the last segment does not count, since it vacates
        the cell on any move that does not eat.
        """
        if not self.in_bounds(cell):
            return False
        if cell not in body:
            return True
        # Segments never repeat, so a hit on the tail cell is the tail itself.
        return exclude_tail and cell == body[-1]

    def neighbors(self, cell: Cell) -> Iterator[Cell]:
        """In-bounds 4-neighbours in UP, DOWN, LEFT, RIGHT order."""
        x, y = cell
        for direction in DIRECTIONS:
            dx, dy = DIRECTION_VECTORS[direction]
            nxt = (x + dx, y + dy)
            if 0 <= nxt[0] < self.width and 0 <= nxt[1] < self.height:
                yield nxt


def step(cell: Cell, direction: str) -> Cell:
    dx, dy = DIRECTION_VECTORS[direction]
    return (cell[0] + dx, cell[1] + dy)


def manhattan(a: Cell, b: Cell) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def direction_between(src: Cell, dst: Cell) -> Optional[str]:
    """Return the heading that moves ``src`` onto an adjacent ``dst``, else None."""
    delta = (dst[0] - src[0], dst[1] - src[1])
    for direction in DIRECTIONS:
        if DIRECTION_VECTORS[direction] == delta:
            return direction
    return None


def is_reverse(direction: str, heading: str) -> bool:
    return OPPOSITE.get(heading) == direction


def simulate_move(body: Sequence[Cell], direction: str, eating: bool = False) -> Tuple[Cell, ...]:
    """Return the body after one move; the tail stays put only when eating."""
    new_body = (step(body[0], direction),) + tuple(body)
    if not eating:
        new_body = new_body[:-1]
    return new_body


def is_legal_move(
    body: Sequence[Cell],
    food: Optional[Cell],
    direction: str,
    heading: str,
    grid: Grid,
) -> bool:
    """Return True if the move is legal under the engine's collision rules.

    Reversing is never legal for a body longer than one cell. The tail cell is
    enterable only when the move does not eat, since eating keeps the tail in
    place.
    """
    if not body:
        return False
    if len(body) > 1 and is_reverse(direction, heading):
        return False
    new_head = step(body[0], direction)
    eating = food is not None and new_head == food
    return grid.is_free(new_head, body, exclude_tail=not eating)


def candidate_directions(
    body: Sequence[Cell],
    food: Optional[Cell],
    heading: str,
    grid: Grid,
) -> List[str]:
    """Return the legal non-reversing directions in the fixed order."""
    return [
        direction
        for direction in DIRECTIONS
        if not is_reverse(direction, heading) and is_legal_move(body, food, direction, heading, grid)
    ]
