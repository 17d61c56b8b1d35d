"""Central configuration for the autopilot, the game engine and the CLI."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

# Logging
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)-12s - %(levelname)-8s - %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging if the host application has not done so already.

    This keeps the package library-friendly (it will not override an existing logging setup),
    while preserving CLI ergonomics.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(level=level, format=DEFAULT_LOG_FORMAT, stream=sys.stdout)


configure_logging()

logger = logging.getLogger("snake_autopilot")


# ----------------------------
# Paths / persistence
# ----------------------------
REPO_ROOT = Path(__file__).resolve().parents[1]


def _default_state_dir() -> Path:
    """Resolve the state directory (supports env override)."""
    raw = os.environ.get("SNAKE_STATE_DIR")
    if raw:
        return Path(raw).expanduser().resolve()
    return REPO_ROOT / "state"


STATE_DIR = _default_state_dir()
HIGH_SCORE_FILE = str(STATE_DIR / "high_score.msgpack")

# If False, the high score is never written to disk.
SAVE_HIGH_SCORE = True


def set_state_dir(state_dir: str | Path) -> None:
    """Update the state directory and derived file paths at runtime.

    This is primarily used by the CLI for isolated evaluations.
    """
    global STATE_DIR, HIGH_SCORE_FILE
    STATE_DIR = Path(state_dir).expanduser().resolve()
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    HIGH_SCORE_FILE = str(STATE_DIR / "high_score.msgpack")


# ----------------------------
# Grid & rendering
# ----------------------------
GRID_WIDTH = 20
GRID_HEIGHT = 20
CELL_SIZE = 24
FPS = 12
UI_DEBUG_MODE = False

# Session caps / logging
MAX_STEPS_PER_GAME = 20000
PROGRESS_LOG_INTERVAL = 500
FOOD_SCORE = 10

# ----------------------------
# Move scoring
# ----------------------------
# Tail reachability must dominate every other term. The evaluator adds the
# grid area on top of TAIL_REACHABLE_BONUS so reachable space can never close
# the gap, whatever the grid size.
TAIL_REACHABLE_BONUS = 10000
FOOD_PROGRESS_BONUS = 100
LOOP_PENALTY = 5000
OSCILLATION_PENALTY = 2000
ENCLOSURE_PENALTY = 50
# Reachable space below this share of the free cells counts as an enclosure.
ENCLOSURE_RATIO = 0.8

# ----------------------------
# Decision policy
# ----------------------------
# Bodies shorter than this chase food without replaying the whole path.
SHORT_BODY_LENGTH = 6
# Bodies at least this long prefer stepping toward their own tail.
TAIL_CHASE_MIN_LENGTH = 4
# Best-first search toward food; BFS is the reference and breaks ties by
# direction order, A* only changes exploration order.
USE_ASTAR_FOR_FOOD = False

# ----------------------------
# Loop / oscillation history
# ----------------------------
# Floor for the state history; AutopilotAgent raises it to the grid area.
HISTORY_CAPACITY = 20
HEADING_CAPACITY = 10
OSCILLATION_WINDOW = 4


def validate_config() -> None:
    """Basic sanity checks."""
    ok = True
    if GRID_WIDTH <= 0 or GRID_HEIGHT <= 0:
        logger.error("GRID_WIDTH and GRID_HEIGHT must be > 0")
        ok = False
    if MAX_STEPS_PER_GAME < 1:
        logger.error("MAX_STEPS_PER_GAME must be >= 1")
        ok = False
    if HISTORY_CAPACITY < 1 or HEADING_CAPACITY < 1:
        logger.error("HISTORY_CAPACITY and HEADING_CAPACITY must be >= 1")
        ok = False
    if OSCILLATION_WINDOW < 3:
        logger.error("OSCILLATION_WINDOW must be >= 3")
        ok = False
    if not 0.0 < ENCLOSURE_RATIO <= 1.0:
        logger.error("ENCLOSURE_RATIO must be in (0, 1]")
        ok = False
    worst_safe = TAIL_REACHABLE_BONUS - LOOP_PENALTY - OSCILLATION_PENALTY - ENCLOSURE_PENALTY
    if worst_safe <= FOOD_PROGRESS_BONUS:
        logger.error(
            "TAIL_REACHABLE_BONUS must exceed the loop, oscillation and enclosure penalties "
            "plus FOOD_PROGRESS_BONUS"
        )
        ok = False
    if FOOD_PROGRESS_BONUS <= 0:
        logger.error("FOOD_PROGRESS_BONUS must be > 0")
        ok = False
    if not ok:
        raise SystemExit(1)
