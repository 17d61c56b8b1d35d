from __future__ import annotations

import unittest

from snake_autopilot import config
from snake_autopilot.agent import AutopilotAgent
from snake_autopilot.game import SnakeGame
from snake_autopilot.rules import Grid, candidate_directions


class SoakTest(unittest.TestCase):
    def setUp(self):
        self._save = config.SAVE_HIGH_SCORE
        config.SAVE_HIGH_SCORE = False

    def tearDown(self):
        config.SAVE_HIGH_SCORE = self._save

    def test_thousand_ticks_without_illegal_moves(self):
        grid = Grid(20, 20)
        game = SnakeGame(grid=grid, seed=4242)
        pilot = AutopilotAgent(grid)
        pilot.begin_episode()

        food_eaten = 0
        games = 1
        for _ in range(1200):
            if game.game_over:
                food_eaten += game.food_eaten
                game.reset()
                pilot.begin_episode()
                games += 1
                continue

            candidates = candidate_directions(game.snake, game.food, game.direction, grid)
            decision = pilot.decide(game.snake, game.food, game.direction)
            game.step(decision.direction)

            if candidates:
                self.assertIn(decision.direction, candidates)
                self.assertNotEqual(game.terminal_reason, "collision", game.collision_reason)

        food_eaten += game.food_eaten
        self.assertGreaterEqual(food_eaten, 2)


if __name__ == "__main__":
    unittest.main()
