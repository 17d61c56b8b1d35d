"""Tail-safe snake autopilot."""

from .agent import AutopilotAgent, Decision, decide_next_direction
from .history import HistoryTracker, create_history_tracker
from .rules import Grid

__all__ = [
    "AutopilotAgent",
    "Decision",
    "Grid",
    "HistoryTracker",
    "create_history_tracker",
    "decide_next_direction",
]
