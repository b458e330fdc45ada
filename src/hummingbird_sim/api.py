from __future__ import annotations
from typing import Any, Dict, Optional, Set, Tuple
import logging
import random

import numpy as np

from hummingbird_sim.config import AgentConfig, AreaConfig, FIXED_DT
from hummingbird_sim.domain.agents.heuristic import KeyState
from hummingbird_sim.domain.agents.hummingbird import HummingbirdAgent
from hummingbird_sim.domain.agents.policy import HeuristicPolicy, Policy, RandomPolicy
from hummingbird_sim.domain.environment.area import FlowerArea
from hummingbird_sim.domain.environment.physics import Body, Boundary, PhysicsScene
from hummingbird_sim.domain.environment.scene import Transform, demo_meadow

log = logging.getLogger(__name__)


class EnvController:
    """Host-side driver: owns the area, one hummingbird and its policy, and steps them at 50 Hz.

    Each fixed step runs: observe -> act -> integrate body -> dispatch
    boundary/trigger contacts -> physics-step hook -> reward & step budget.
    """
    def __init__(self, seed: int | None = None, training_mode: bool = False,
                 scene: Optional[dict] = None, policy: Optional[Policy] = None,
                 agent_config: Optional[AgentConfig] = None, area_config: Optional[AreaConfig] = None,
                 n_plants: int = 6, flowers_per_plant: int = 3):
        self.rng = random.Random(seed)
        self.training_mode = training_mode
        self.dt = FIXED_DT
        self._t = 0.0; self._paused = False; self._speed = 1.0; self._acc = 0.0

        self.physics = PhysicsScene()
        description = scene if scene is not None else demo_meadow(self.rng, n_plants, flowers_per_plant)
        self.area = FlowerArea.from_description(description, self.physics, self.rng, area_config)

        acfg = self.area.config
        self.boundary = Boundary(self.area.center, acfg.bounds_radius, *acfg.bounds_height)
        self.body_radius = acfg.body_radius

        cfg = agent_config or AgentConfig()
        self.body = Body(Transform(), mass=cfg.mass, drag=cfg.drag)
        self.agent = HummingbirdAgent(self.rng, training_mode=training_mode, config=cfg, fixed_dt=self.dt)
        self.agent.initialize(self.body, self.area, self.physics)

        if policy is None:
            policy = RandomPolicy(self.rng) if training_mode else HeuristicPolicy(self.agent.heuristic)
        self.policy = policy

        self._touching: Set[int] = set()
        self._touching_solids: Set[int] = set()
        self._at_boundary = False
        self.last_reward = 0.0
        self.agent.on_episode_begin()
        log.info("controller ready: %d flowers, training=%s, seed=%s",
                 len(self.area.flowers), training_mode, seed)

    @property
    def t(self) -> float:
        return self._t

    # --- runtime controls ---------------------------------------------------
    def set_paused(self, paused: bool) -> None: self._paused = paused
    def toggle_paused(self) -> bool: self._paused = not self._paused; return self._paused
    def set_speed(self, speed: float) -> None: self._speed = max(0.0, min(4.0, float(speed)))

    def set_keys(self, keys: KeyState) -> bool:
        """Forward held keys to a manual policy. False if the policy is not manual."""
        if isinstance(self.policy, HeuristicPolicy):
            self.policy.set_keys(keys)
            return True
        return False

    def freeze(self) -> None: self.agent.freeze()
    def unfreeze(self) -> None: self.agent.unfreeze()

    def reset(self) -> np.ndarray:
        self.agent.end_episode()
        self._touching.clear()
        self._touching_solids.clear()
        self._at_boundary = False
        return self.agent.collect_observations()

    # --- stepping -----------------------------------------------------------
    def step(self) -> Tuple[np.ndarray, float, bool, Dict[str, Any]]:
        """One fixed physics step. Returns (observation, reward, episode_done, info)."""
        agent = self.agent
        obs = agent.collect_observations()
        agent.on_action_received(self.policy.act(obs))

        self.body.integrate(self.dt)
        self._dispatch_contacts()
        agent.on_physics_step()

        self._t += self.dt
        reward = agent.consume_reward()
        self.last_reward = reward
        # pose and flower count as of this step; end_episode() below respawns and may refill
        info = {
            "nectar": agent.nectar_obtained, "episode": agent.episode, "step": agent.step_count + 1,
            "position": [float(v) for v in self.body.position],
            "flowers_remaining": self.area.remaining(),
        }
        next_obs = agent.collect_observations()
        done = agent.advance_step()
        if done:
            # report the final observation of the finished episode, then start the next one
            info["episode_reward"] = agent.cumulative_reward
            agent.end_episode()
            self._touching.clear()
            self._touching_solids.clear()
            self._at_boundary = False
        return next_obs, reward, done, info

    def advance(self, dt: float) -> int:
        """Run as many fixed steps as fit into real time dt (scaled by speed)."""
        if self._paused or dt <= 0.0:
            return 0
        self._acc += dt * self._speed
        n = 0
        while self._acc >= self.dt:
            self._acc -= self.dt
            self.step()
            n += 1
        return n

    def _dispatch_contacts(self) -> None:
        agent = self.agent
        hit = self.boundary.confine(self.body, self.body_radius)
        if hit and not self._at_boundary:
            agent.on_collision_enter(self.boundary)
        self._at_boundary = hit

        beak = agent.beak_tip.position
        body_triggers, solids = self.physics.contacts(self.body.position, self.body_radius)
        beak_triggers, _ = self.physics.contacts(beak, agent.config.beak_tip_radius)
        solid_handles = {c.handle for c in solids}
        for c in solids:
            if c.handle not in self._touching_solids:
                agent.on_collision_enter(c)
        self._touching_solids = solid_handles

        seen: Set[int] = set()
        for c in body_triggers + beak_triggers:
            if c.handle in seen:
                continue
            seen.add(c.handle)
            if c.handle in self._touching:
                agent.on_trigger_stay(c)
            else:
                agent.on_trigger_enter(c)
        self._touching = seen

    # --- view ---------------------------------------------------------------
    def get_view(self) -> dict:
        line = self.agent.on_render_step()
        return {
            "t": self._t, "paused": self._paused, "speed": self._speed,
            "training": self.training_mode,
            "agent": self.agent.snapshot(),
            "target_line": None if line is None else [[float(v) for v in p] for p in line],
            "flowers": self.area.snapshot(),
            "stats": {
                "flowers_remaining": self.area.remaining(),
                "flowers_total": len(self.area.flowers),
                "last_reward": self.last_reward,
            },
        }
