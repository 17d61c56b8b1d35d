"""Snake game engine with optional pygame rendering and high-score persistence.

The engine is the autopilot's collaborator: it owns the body, applies one
direction per tick, grows on food, places new food and reports collisions.
"""

from __future__ import annotations

import errno
import logging
import os
import random
import shutil
from collections import deque
from typing import Any, Deque, Dict, Optional, Set

import msgpack

from . import config
from .rules import DIRECTIONS, DOWN, LEFT, RIGHT, UP, Cell, Grid, is_legal_move, is_reverse, step
from .utils import board_text, lerp_color, segment_age_ratio

logger = logging.getLogger(__name__)

HIGH_SCORE_FORMAT_VERSION = 1


def _import_pygame():
    os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
    try:
        import pygame  # type: ignore
    except ImportError as exc:
        raise RuntimeError("Rendering requires pygame. Install it or run with --no-render.") from exc
    return pygame


def load_high_score() -> int:
    """Read the persisted high score; missing or unreadable files count as 0."""
    for path in (config.HIGH_SCORE_FILE, config.HIGH_SCORE_FILE + ".bak"):
        if not os.path.exists(path):
            continue
        try:
            with open(path, "rb") as f:
                payload = msgpack.unpackb(f.read(), raw=False)
            if isinstance(payload, dict):
                return max(0, int(payload.get("high_score", 0)))
            logger.warning("Ignoring malformed high score payload in %s", path)
        except (OSError, ValueError, TypeError, msgpack.UnpackException) as exc:
            logger.warning("Unable to read high score from %s: %s", path, exc)
    return 0


def save_high_score(score: int) -> bool:
    """Atomically persist the high score (temp file + replace, previous kept as .bak)."""
    if not config.SAVE_HIGH_SCORE:
        return False

    path = config.HIGH_SCORE_FILE
    os.makedirs(os.path.dirname(path), exist_ok=True)
    if os.path.exists(path):
        try:
            shutil.copy(path, path + ".bak")
        except OSError as e:
            logger.error("Backup failed: %s", e)

    blob = msgpack.packb({"v": HIGH_SCORE_FORMAT_VERSION, "high_score": int(score)}, use_bin_type=True)
    tmp_path = path + ".tmp"
    try:
        with open(tmp_path, "wb") as f:
            f.write(blob)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        if exc.errno in {errno.EACCES, errno.EPERM}:
            logger.warning("Atomic replace denied (%s); falling back to overwrite", exc)
            try:
                with open(path, "wb") as f:
                    f.write(blob)
            except OSError as fallback_exc:
                logger.error("Fallback write failed: %s", fallback_exc)
                return False
        else:
            logger.error("Saving high score failed: %s", exc)
            return False
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass
    logger.info("Saved high score %d to %s", score, path)
    return True


class SnakeGame:
    """Game state manager."""

    def __init__(
        self,
        grid: Optional[Grid] = None,
        render_enabled: bool = False,
        seed: Optional[int] = None,
    ) -> None:
        self.grid = grid if grid is not None else Grid(config.GRID_WIDTH, config.GRID_HEIGHT)
        self.render_enabled = bool(render_enabled)
        self.seed = seed
        self.rng = random.Random(seed)

        self.pygame = None
        self.screen = None
        self.clock = None
        self.font = None

        if self.render_enabled:
            self.pygame = _import_pygame()
            self.pygame.init()
            self.screen = self.pygame.display.set_mode(
                (self.grid.width * config.CELL_SIZE, self.grid.height * config.CELL_SIZE + 40)
            )
            self.pygame.display.set_caption("Snake Autopilot")
            self.clock = self.pygame.time.Clock()
            self.font = self.pygame.font.SysFont("Arial", 18, bold=True)

        # Input state (windowed mode only).
        self.autopilot = True
        self.paused = False
        self.restart_requested = False
        self.manual_direction: Optional[str] = None
        self.fps = config.FPS

        self.high_score = load_high_score()
        self.all_coords: Set[Cell] = {
            (x, y) for x in range(self.grid.width) for y in range(self.grid.height)
        }
        self.won = False
        self.terminal_reason: Optional[str] = None
        # Optional detail for terminal_reason == "collision":
        # "wall", "self", "reverse", "tail_entry_eating".
        self.collision_reason: Optional[str] = None
        self.reset()

    def reset(self) -> None:
        cx, cy = self.grid.width // 2, self.grid.height // 2
        start = [(cx - i, cy) for i in range(3) if cx - i >= 0]
        self.snake: Deque[Cell] = deque(start)
        self.direction = RIGHT
        self.terminal_reason = None
        self.collision_reason = None
        self.game_over = False
        self.won = False
        self.score = 0
        self.food_eaten = 0
        self.steps = 0
        self.manual_direction = None
        self.food = self._place_food()

    def _place_food(self) -> Optional[Cell]:
        available_positions = self.all_coords - set(self.snake)
        if not available_positions:
            logger.info("No space for food - snake wins")
            self.game_over = True
            self.won = True
            self.terminal_reason = "win"
            self.collision_reason = None
            self.update_high_score()
            return None
        return self.rng.choice(sorted(available_positions))

    def _check_collision(self, direction: str) -> bool:
        self.collision_reason = None
        if is_legal_move(self.snake, self.food, direction, self.direction, self.grid):
            return False

        new_head = step(self.snake[0], direction)
        if not self.grid.in_bounds(new_head):
            self.collision_reason = "wall"
        elif len(self.snake) > 1 and is_reverse(direction, self.direction):
            self.collision_reason = "reverse"
        elif new_head == self.snake[-1]:
            # The tail only stays put when this move eats.
            self.collision_reason = "tail_entry_eating"
        else:
            self.collision_reason = "self"
        logger.debug("Collision (%s) moving %s:\n%s", self.collision_reason, direction,
                     board_text(self.snake, self.food, self.grid))
        return True

    def step(self, direction: str) -> bool:
        """Advance one tick; return True if food was eaten."""
        if self.game_over:
            return False
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction {direction!r}")

        if self._check_collision(direction):
            self.game_over = True
            self.terminal_reason = "collision"
            self.update_high_score()
            return False

        new_head = step(self.snake[0], direction)
        self.snake.appendleft(new_head)
        self.direction = direction
        self.steps += 1

        ate_food = self.food is not None and new_head == self.food
        if ate_food:
            self.score += config.FOOD_SCORE
            self.food_eaten += 1
        else:
            self.snake.pop()

        if ate_food:
            self.food = self._place_food()
        return ate_food

    def update_high_score(self) -> None:
        if self.score > self.high_score:
            self.high_score = self.score
            save_high_score(self.high_score)

    # ----------------------------
    # Input
    # ----------------------------
    def set_manual_direction(self, direction: str) -> None:
        """Manual steering: turns the autopilot off and refuses reversals."""
        if len(self.snake) > 1 and is_reverse(direction, self.direction):
            return
        self.manual_direction = direction
        self.autopilot = False

    def handle_pygame_events(self) -> None:
        if not self.render_enabled or self.pygame is None:
            return
        pg = self.pygame
        keymap = {
            pg.K_UP: UP,
            pg.K_w: UP,
            pg.K_DOWN: DOWN,
            pg.K_s: DOWN,
            pg.K_LEFT: LEFT,
            pg.K_a: LEFT,
            pg.K_RIGHT: RIGHT,
            pg.K_d: RIGHT,
        }
        for event in pg.event.get():
            if event.type == pg.QUIT:
                raise KeyboardInterrupt
            if event.type != pg.KEYDOWN:
                continue
            if event.key == pg.K_ESCAPE:
                raise KeyboardInterrupt
            if event.key == pg.K_p:
                self.autopilot = not self.autopilot
                self.manual_direction = None
            elif event.key == pg.K_SPACE:
                self.paused = not self.paused
            elif event.key in (pg.K_PLUS, pg.K_EQUALS, pg.K_KP_PLUS):
                self.fps = min(240, self.fps + 2)
            elif event.key in (pg.K_MINUS, pg.K_KP_MINUS):
                self.fps = max(1, self.fps - 2)
            elif event.key == pg.K_RETURN and self.game_over:
                self.restart_requested = True
            elif event.key in keymap and not self.paused:
                self.set_manual_direction(keymap[event.key])

    # ----------------------------
    # Rendering
    # ----------------------------
    def render(self, debug_info: Optional[Dict[str, Any]] = None) -> None:
        if not self.render_enabled or self.screen is None or self.pygame is None:
            return

        pg = self.pygame
        size = config.CELL_SIZE
        top = 40
        self.screen.fill((26, 26, 46))

        for x in range(self.grid.width + 1):
            pg.draw.line(self.screen, (42, 42, 78), (x * size, top), (x * size, top + self.grid.height * size))
        for y in range(self.grid.height + 1):
            pg.draw.line(self.screen, (42, 42, 78), (0, top + y * size), (self.grid.width * size, top + y * size))

        if config.UI_DEBUG_MODE and debug_info and self.font:
            head = self.snake[0]
            for direction, score in debug_info.get("scores", {}).items():
                cx, cy = step(head, direction)
                text_surf = self.font.render(f"{score:.0f}", True, (200, 200, 220))
                self.screen.blit(text_surf, text_surf.get_rect(center=(cx * size + size / 2, top + cy * size + size / 2)))

        if self.food is not None:
            fx, fy = self.food
            pg.draw.circle(self.screen, (255, 107, 107), (fx * size + size // 2, top + fy * size + size // 2), size // 2 - 2)

        for i, (x, y) in enumerate(self.snake):
            rect = pg.Rect(x * size + 1, top + y * size + 1, size - 2, size - 2)
            if i == 0:
                color = (78, 205, 196)
            else:
                color = lerp_color((69, 183, 170), (30, 90, 80), segment_age_ratio(i, len(self.snake)))
            pg.draw.rect(self.screen, color, rect, border_radius=4)

        if self.font:
            mode = "ON" if self.autopilot else "OFF"
            status = f"Score: {self.score}   High: {self.high_score}   Autopilot: {mode}"
            if self.paused:
                status += "   (paused)"
            if self.game_over:
                status += "   GAME OVER - Enter to restart"
            self.screen.blit(self.font.render(status, True, (255, 255, 255)), (8, 10))

        pg.display.flip()
        if self.clock:
            self.clock.tick(self.fps)
