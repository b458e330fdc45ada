from __future__ import annotations
from typing import Callable, Protocol
import random

import numpy as np

from hummingbird_sim.config import ACTION_SIZE
from .heuristic import KeyState


class Policy(Protocol):
    """Anything mapping a 10-float observation to a 5-float action."""
    def act(self, observation: np.ndarray) -> np.ndarray: ...


class RandomPolicy:
    """Uniform actions in [-1, 1]; a stand-in when no trained network is attached."""
    def __init__(self, rng: random.Random):
        self.rng = rng

    def act(self, observation: np.ndarray) -> np.ndarray:
        return np.array([self.rng.uniform(-1.0, 1.0) for _ in range(ACTION_SIZE)], dtype=np.float32)


class HeuristicPolicy:
    """Drives the agent from whatever keys are currently held."""
    def __init__(self, heuristic: Callable[[KeyState], np.ndarray]):
        self._heuristic = heuristic
        self.keys = KeyState()

    def set_keys(self, keys: KeyState) -> None:
        self.keys = keys

    def act(self, observation: np.ndarray) -> np.ndarray:
        return self._heuristic(self.keys)
