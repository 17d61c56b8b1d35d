"""Command-line interface and run loop."""

from __future__ import annotations

import argparse
import cProfile
import json
import logging
import os
import pstats
import time
from pathlib import Path
from typing import Optional

from . import config
from .agent import AutopilotAgent
from .game import SnakeGame
from .rules import Grid

logger = logging.getLogger(__name__)


def _open_jsonl(path: Optional[str]):
    if not path:
        return None
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p.open("a", encoding="utf-8")


def run(
    num_games: int,
    render: bool,
    debug: bool,
    seed: Optional[int],
    max_steps: Optional[int],
    log_jsonl: Optional[str] = None,
    state_dir: Optional[str] = None,
    no_save: bool = False,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> int:
    config_snapshot = {
        "UI_DEBUG_MODE": config.UI_DEBUG_MODE,
        "SAVE_HIGH_SCORE": config.SAVE_HIGH_SCORE,
        "MAX_STEPS_PER_GAME": config.MAX_STEPS_PER_GAME,
        "GRID_WIDTH": config.GRID_WIDTH,
        "GRID_HEIGHT": config.GRID_HEIGHT,
        "STATE_DIR": config.STATE_DIR,
        "HIGH_SCORE_FILE": config.HIGH_SCORE_FILE,
    }
    config.UI_DEBUG_MODE = bool(debug)
    if debug and not render:
        logging.getLogger("snake_autopilot").setLevel(logging.DEBUG)
    if state_dir:
        config.set_state_dir(state_dir)

    # Evaluation mode: read the high score, never write it.
    if no_save:
        config.SAVE_HIGH_SCORE = False

    if max_steps is not None:
        config.MAX_STEPS_PER_GAME = int(max_steps)
    if width is not None:
        config.GRID_WIDTH = int(width)
    if height is not None:
        config.GRID_HEIGHT = int(height)

    jsonl_f = None
    game = None
    try:
        config.validate_config()

        grid = Grid(config.GRID_WIDTH, config.GRID_HEIGHT)
        agent = AutopilotAgent(grid)
        game = SnakeGame(grid=grid, render_enabled=render, seed=seed)

        scores: list[int] = []
        session_emergencies = 0
        total_steps = 0
        t0 = time.time()
        jsonl_f = _open_jsonl(log_jsonl)

        for i in range(num_games):
            game.reset()
            agent.begin_episode()
            steps_this_game = 0
            start_game_time = time.time()

            while not game.game_over:
                if steps_this_game >= config.MAX_STEPS_PER_GAME:
                    logger.info(
                        "Reached per-game step cap (%d); ending game",
                        config.MAX_STEPS_PER_GAME,
                    )
                    game.game_over = True
                    game.terminal_reason = "step_cap"
                    break

                if render:
                    game.handle_pygame_events()
                    if game.paused:
                        game.render(agent.debug_info() if debug else None)
                        continue

                if game.autopilot:
                    decision = agent.decide(game.snake, game.food, game.direction)
                    direction = decision.direction
                else:
                    direction = game.manual_direction or game.direction

                game.step(direction)

                if render:
                    game.render(agent.debug_info() if debug else None)

                steps_this_game += 1
                total_steps += 1

                if not render and (steps_this_game % config.PROGRESS_LOG_INTERVAL == 0):
                    logger.info(
                        "Game %d | Step %d | Score %d | Length %d",
                        i + 1,
                        steps_this_game,
                        game.score,
                        len(game.snake),
                    )

            if render and game.terminal_reason != "step_cap":
                # Hold the final board until Enter (restart) or quit.
                game.restart_requested = False
                while not game.restart_requested:
                    game.handle_pygame_events()
                    game.render(agent.debug_info() if debug else None)

            scores.append(game.score)
            elapsed_game = time.time() - start_game_time
            stats = agent.record_episode_stats(game.score, steps_this_game)
            session_emergencies += int(stats["emergencies"])
            logger.info(
                "Game %d/%d: Score=%d Steps=%d Length=%d (%.2fs) | end=%s emergencies=%d",
                i + 1,
                num_games,
                game.score,
                steps_this_game,
                len(game.snake),
                elapsed_game,
                game.collision_reason or game.terminal_reason,
                stats["emergencies"],
            )
            if jsonl_f is not None:
                row = {
                    "ts": time.time(),
                    "episode": i + 1,
                    "seed": seed,
                    "render": bool(render),
                    "width": grid.width,
                    "height": grid.height,
                    "length": len(game.snake),
                    "food_eaten": game.food_eaten,
                    "won": bool(game.won),
                    "terminal_reason": game.terminal_reason,
                    "collision_reason": game.collision_reason,
                }
                row.update(stats)
                jsonl_f.write(json.dumps(row) + "\n")
                jsonl_f.flush()

        elapsed = time.time() - t0
        if scores:
            logger.info(
                "Session: avg=%.2f max=%d games=%d total_steps=%d (%.2fs) high=%d",
                sum(scores) / len(scores),
                max(scores),
                len(scores),
                total_steps,
                elapsed,
                game.high_score,
            )
            if total_steps > 0:
                logger.info(
                    "Emergency moves: %d (%.2f%%)",
                    session_emergencies,
                    100.0 * session_emergencies / float(total_steps),
                )
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted; saving high score...")
        if game is not None:
            game.update_high_score()
        return 130
    finally:
        if jsonl_f is not None:
            jsonl_f.close()
        if debug and not render:
            logging.getLogger("snake_autopilot").setLevel(logging.NOTSET)
        for attr, value in config_snapshot.items():
            setattr(config, attr, value)


def main(argv: Optional[list[str]] = None) -> int:
    # Ensure pygame banner stays hidden even when importing via `snake_autopilot.cli`.
    os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

    parser = argparse.ArgumentParser(description="Snake Autopilot")
    parser.add_argument("--num-games", "--games", type=int, default=10, help="Number of games to run")
    parser.add_argument("--no-render", action="store_true", help="Disable window rendering (headless)")
    parser.add_argument("--debug", action="store_true", help="Debug overlay (windowed) or debug logging (headless)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for food placement")
    parser.add_argument("--max-steps", type=int, default=None, help="Per-game step cap (safety)")
    parser.add_argument("--width", type=int, default=None, help="Grid width in cells")
    parser.add_argument("--height", type=int, default=None, help="Grid height in cells")
    parser.add_argument("--profile", action="store_true", help="Enable profiling output")
    parser.add_argument(
        "--log-jsonl",
        type=str,
        default=None,
        help="Append per-episode metrics to a JSONL file (e.g. runs/session.jsonl)",
    )
    parser.add_argument(
        "--state-dir",
        type=str,
        default=None,
        help="Override state directory (default: state/). Useful for isolated runs.",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not write the high score to disk (evaluation mode).",
    )

    args = parser.parse_args(argv)

    kwargs = dict(
        num_games=args.num_games,
        render=not args.no_render,
        debug=args.debug,
        seed=args.seed,
        max_steps=args.max_steps,
        log_jsonl=args.log_jsonl,
        state_dir=args.state_dir,
        no_save=args.no_save,
        width=args.width,
        height=args.height,
    )

    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        rc = run(**kwargs)
        profiler.disable()
        stats = pstats.Stats(profiler).sort_stats("cumulative")
        print("\n=== Profiling Results ===")
        stats.print_stats(30)
        return rc

    return run(**kwargs)
