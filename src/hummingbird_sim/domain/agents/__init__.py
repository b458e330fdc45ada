# src/hummingbird_sim/domain/agents/__init__.py
from __future__ import annotations
from .hummingbird import HummingbirdAgent, SpawnError, FreezeError
from .heuristic import KeyState, heuristic_action
from .policy import Policy, RandomPolicy, HeuristicPolicy

__all__ = [
    "HummingbirdAgent", "SpawnError", "FreezeError",
    "KeyState", "heuristic_action",
    "Policy", "RandomPolicy", "HeuristicPolicy",
]
