"""Gymnasium environment wrapping EnvController for external RL trainers."""
from __future__ import annotations
from typing import Optional

import numpy as np
import gymnasium as gym
from gymnasium import spaces

from hummingbird_sim.api import EnvController
from hummingbird_sim.config import AgentConfig, ACTION_SIZE, OBSERVATION_SIZE


class _ExternalPolicy:
    """Holds the action handed in by gym's step() so the controller can pull it."""
    def __init__(self):
        self.action = np.zeros(ACTION_SIZE, dtype=np.float32)

    def act(self, observation: np.ndarray) -> np.ndarray:
        return self.action


class HummingbirdEnv(gym.Env):
    """Single hummingbird in training mode.

    Observation: 10 floats (rotation quaternion, direction to flower, two
    alignment dots, relative distance). Action: 5 floats in [-1, 1].
    Episodes are truncated by the agent's step budget; there is no terminal state.
    """
    metadata = {"render_modes": []}

    def __init__(self, max_step: int = 5000, n_plants: int = 6, flowers_per_plant: int = 3,
                 scene: Optional[dict] = None):
        super().__init__()
        self.max_step = max_step
        self.n_plants = n_plants
        self.flowers_per_plant = flowers_per_plant
        self.scene = scene
        self.action_space = spaces.Box(low=-1.0, high=1.0, shape=(ACTION_SIZE,), dtype=np.float32)
        self.observation_space = spaces.Box(low=-np.inf, high=np.inf, shape=(OBSERVATION_SIZE,), dtype=np.float32)
        self._policy = _ExternalPolicy()
        self.controller: Optional[EnvController] = None

    def reset(self, seed=None, options=None):
        super().reset(seed=seed)
        # draw the controller seed from gym's generator so reset(seed=...) is reproducible
        ctrl_seed = int(self.np_random.integers(0, 2**31 - 1))
        self.controller = EnvController(
            seed=ctrl_seed, training_mode=True, scene=self.scene, policy=self._policy,
            agent_config=AgentConfig(max_step=self.max_step),
            n_plants=self.n_plants, flowers_per_plant=self.flowers_per_plant,
        )
        obs = self.controller.agent.collect_observations()
        return obs, {"nectar": 0.0}

    def step(self, action: np.ndarray):
        if self.controller is None:
            raise RuntimeError("call reset() before step()")
        self._policy.action = np.clip(np.asarray(action, dtype=np.float32), -1.0, 1.0)
        obs, reward, done, info = self.controller.step()
        terminated = False
        truncated = bool(done)
        return obs, float(reward), terminated, truncated, info

    def render(self):
        return None

    def close(self):
        self.controller = None
