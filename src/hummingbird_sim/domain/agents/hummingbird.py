from __future__ import annotations
from typing import Optional, Sequence, Tuple
import logging
import random

import numpy as np

from hummingbird_sim.config import (
    AgentConfig, FIXED_DT, OBSERVATION_SIZE, ACTION_SIZE, TAG_NECTAR, TAG_BOUNDARY,
)
from hummingbird_sim.domain import geometry as geo
from hummingbird_sim.domain.environment.area import FlowerArea
from hummingbird_sim.domain.environment.flower import Flower
from hummingbird_sim.domain.environment.physics import Body, Collider, PhysicsScene
from hummingbird_sim.domain.environment.scene import Transform
from .heuristic import KeyState, heuristic_action

log = logging.getLogger(__name__)


class SpawnError(RuntimeError):
    """No collision-free spawn point was found; the area is too crowded."""


class FreezeError(RuntimeError):
    """Freeze/unfreeze requested while in training mode."""


class HummingbirdAgent:
    """Hummingbird that learns to find flowers and drink their nectar.

    The host drives it through explicit lifecycle calls:
      initialize() once, on_episode_begin() at every episode start, then per step
      collect_observations() -> on_action_received() -> trigger/collision callbacks
      -> on_physics_step(). Rewards accumulate via add_reward() and are consumed
      by the trainer with consume_reward().
    """
    def __init__(self, rng: random.Random, training_mode: bool = False,
                 config: Optional[AgentConfig] = None, fixed_dt: float = FIXED_DT):
        self.rng = rng
        self._training_mode = bool(training_mode)
        self.config = config or AgentConfig()
        self.fixed_dt = float(fixed_dt)

        self.body: Optional[Body] = None
        self.area: Optional[FlowerArea] = None
        self.physics: Optional[PhysicsScene] = None
        self.beak_tip: Optional[Transform] = None
        self.max_step = 0

        self.nearest_flower: Optional[Flower] = None
        self.smooth_pitch_change = 0.0
        self.smooth_yaw_change = 0.0
        self.frozen = False
        self._nectar_obtained = 0.0

        # reward bookkeeping
        self.step_count = 0
        self.episode = 0
        self.cumulative_reward = 0.0
        self._step_reward = 0.0

    @property
    def training_mode(self) -> bool:
        return self._training_mode

    @property
    def nectar_obtained(self) -> float:
        return self._nectar_obtained

    @property
    def state(self) -> str:
        if self.body is None:
            return "uninitialized"
        return "frozen" if self.frozen else "active"

    # --- lifecycle ------------------------------------------------------------
    def initialize(self, body: Body, area: FlowerArea, physics: PhysicsScene) -> None:
        self.body = body
        self.area = area
        self.physics = physics
        self.beak_tip = body.transform.child(self.config.beak_tip_offset)
        # 0 means unlimited
        self.max_step = self.config.max_step if self._training_mode else 0

    def _require_initialized(self) -> None:
        if self.body is None or self.area is None:
            raise RuntimeError("agent used before initialize()")

    def on_episode_begin(self) -> None:
        self._require_initialized()
        if self._training_mode:
            self.area.reset_flowers()

        self._nectar_obtained = 0.0
        self.body.velocity = np.zeros(3)
        self.body.angular_velocity = np.zeros(3)

        in_front_of_flower = True
        if self._training_mode:
            in_front_of_flower = self.rng.random() > 0.5

        self.move_to_safe_random_position(in_front_of_flower)
        self.nearest_flower = None
        self.update_nearest_flower()
        log.debug("episode %d begin (in_front=%s)", self.episode, in_front_of_flower)

    def on_physics_step(self) -> None:
        # another bird may have emptied our target
        if self.nearest_flower is not None and not self.nearest_flower.has_nectar:
            self.update_nearest_flower()

    def on_render_step(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Debug line from beak tip to the current target, if any."""
        if self.nearest_flower is None:
            return None
        return self.beak_tip.position, self.nearest_flower.center_position

    # --- rewards / episode bookkeeping ---------------------------------------
    def add_reward(self, r: float) -> None:
        self._step_reward += r
        self.cumulative_reward += r

    def consume_reward(self) -> float:
        r = self._step_reward
        self._step_reward = 0.0
        return r

    def advance_step(self) -> bool:
        """Count one step; True when the step budget is used up."""
        self.step_count += 1
        return self.max_step > 0 and self.step_count >= self.max_step

    def end_episode(self) -> None:
        log.info("episode %d end: steps=%d reward=%.3f nectar=%.3f",
                 self.episode, self.step_count, self.cumulative_reward, self._nectar_obtained)
        self.episode += 1
        self.step_count = 0
        self.cumulative_reward = 0.0
        self._step_reward = 0.0
        self.on_episode_begin()

    # --- actions ---------------------------------------------------------------
    def on_action_received(self, actions: Sequence[float]) -> None:
        """Apply [fx, fy, fz, pitch, yaw]. Ignored while frozen."""
        if self.frozen:
            return
        self._require_initialized()
        a = np.asarray(actions, dtype=float).reshape(-1)
        if a.shape[0] != ACTION_SIZE:
            raise ValueError(f"expected {ACTION_SIZE} actions, got {a.shape[0]}")

        cfg = self.config
        dt = self.fixed_dt
        self.body.add_force(a[0:3] * cfg.move_force)

        pitch0, yaw0, _ = geo.euler_angles(self.body.rotation)
        self.smooth_pitch_change = geo.move_towards(self.smooth_pitch_change, float(a[3]), cfg.smoothing_rate * dt)
        self.smooth_yaw_change = geo.move_towards(self.smooth_yaw_change, float(a[4]), cfg.smoothing_rate * dt)

        pitch = pitch0 + self.smooth_pitch_change * dt * cfg.pitch_speed
        if pitch > 180.0:
            pitch -= 360.0
        pitch = geo.clamp(pitch, -cfg.max_pitch_angle, cfg.max_pitch_angle)
        yaw = yaw0 + self.smooth_yaw_change * dt * cfg.yaw_speed

        self.body.rotation = geo.quat_from_euler(pitch, yaw, 0.0)

    def heuristic(self, keys: KeyState) -> np.ndarray:
        """Manual control: same action layout as the policy output."""
        self._require_initialized()
        return heuristic_action(keys, self.body.transform)

    # --- observations ------------------------------------------------------------
    def collect_observations(self) -> np.ndarray:
        obs = np.zeros(OBSERVATION_SIZE, dtype=np.float32)
        if self.nearest_flower is None:
            return obs

        flower = self.nearest_flower
        beak = self.beak_tip.position
        to_flower = flower.center_position - beak
        to_flower_dir = geo.normalized(to_flower)
        flower_down = -geo.normalized(flower.up_vector)

        obs[0:4] = geo.quat_normalized(self.body.rotation)
        obs[4:7] = to_flower_dir
        # is the beak in front of the opening, and is it pointing at it
        obs[7] = float(np.dot(to_flower_dir, flower_down))
        obs[8] = float(np.dot(geo.normalized(self.beak_tip.forward), flower_down))
        obs[9] = float(np.linalg.norm(to_flower)) / self.area.diameter
        return obs

    # --- freeze ------------------------------------------------------------------
    def freeze(self) -> None:
        if self._training_mode:
            raise FreezeError("Freeze/Unfreeze not supported in training")
        self._require_initialized()
        self.frozen = True
        self.body.sleep()
        log.info("agent frozen")

    def unfreeze(self) -> None:
        if self._training_mode:
            raise FreezeError("Freeze/Unfreeze not supported in training")
        self._require_initialized()
        self.frozen = False
        self.body.wake_up()
        log.info("agent unfrozen")

    # --- spawn -------------------------------------------------------------------
    def move_to_safe_random_position(self, in_front_of_flower: bool) -> None:
        if in_front_of_flower and not self.area.flowers:
            raise SpawnError(f"area {self.area.root.name!r} has no flowers to spawn in front of")
        cfg = self.config
        acfg = self.area.config
        safe = False
        attempts = cfg.spawn_attempts
        position = np.zeros(3)
        rotation = geo.IDENTITY.copy()

        while not safe and attempts > 0:
            attempts -= 1
            if in_front_of_flower:
                flower = self.area.random_flower()
                standoff = self.rng.uniform(*acfg.flower_standoff)
                position = flower.position + flower.up_vector * standoff
                rotation = geo.look_rotation(flower.center_position - position, geo.UP)
            else:
                height = self.rng.uniform(*acfg.free_height)
                radius = self.rng.uniform(*acfg.free_radius)
                direction = geo.quat_from_euler(0.0, self.rng.uniform(-180.0, 180.0), 0.0)
                position = self.area.center + geo.UP * height + geo.rotate(direction, geo.FORWARD) * radius
                rotation = geo.quat_from_euler(self.rng.uniform(*acfg.free_pitch), self.rng.uniform(*acfg.free_yaw), 0.0)

            safe = len(self.physics.overlap_sphere(position, cfg.spawn_clearance)) == 0

        if not safe:
            raise SpawnError(f"no safe spawn position after {cfg.spawn_attempts} attempts")
        if attempts < cfg.spawn_attempts - 1:
            log.debug("spawn needed %d attempts", cfg.spawn_attempts - attempts)

        self.body.position = position
        self.body.rotation = rotation

    # --- targeting ---------------------------------------------------------------
    def update_nearest_flower(self) -> None:
        """Point nearest_flower at the closest flower that still has nectar."""
        beak = self.beak_tip.position
        for flower in self.area.flowers:
            if self.nearest_flower is None and flower.has_nectar:
                self.nearest_flower = flower
            elif flower.has_nectar:
                d = geo.distance(flower.position, beak)
                d_cur = geo.distance(self.nearest_flower.position, beak)
                if not self.nearest_flower.has_nectar or d < d_cur:
                    self.nearest_flower = flower

    # --- physics callbacks -------------------------------------------------------
    def on_trigger_enter(self, collider: Collider) -> None:
        self._trigger_enter_or_stay(collider)

    def on_trigger_stay(self, collider: Collider) -> None:
        self._trigger_enter_or_stay(collider)

    def _trigger_enter_or_stay(self, collider: Collider) -> None:
        if collider.tag != TAG_NECTAR or not collider.enabled:
            return
        beak = self.beak_tip.position
        closest = collider.closest_point(beak)
        if geo.distance(beak, closest) >= self.config.beak_tip_radius:
            return

        cfg = self.config
        flower = self.area.get_flower_from_nectar(collider.handle)
        received = flower.feed(cfg.feed_amount)
        self._nectar_obtained += received

        if self._training_mode:
            target = self.nearest_flower or flower
            align = float(np.dot(geo.normalized(self.body.transform.forward), -geo.normalized(target.up_vector)))
            self.add_reward(cfg.feed_reward + cfg.alignment_bonus * geo.clamp01(align))

        if not flower.has_nectar:
            self.update_nearest_flower()

    def on_collision_enter(self, collider) -> None:
        if self._training_mode and getattr(collider, "tag", "") == TAG_BOUNDARY:
            self.add_reward(self.config.boundary_penalty)

    # --- view --------------------------------------------------------------------
    def snapshot(self) -> dict:
        self._require_initialized()
        pitch, yaw, _ = geo.euler_angles(self.body.rotation)
        if pitch > 180.0:
            pitch -= 360.0
        p = self.body.position
        f = self.body.transform.forward
        return {
            "x": float(p[0]), "y": float(p[1]), "z": float(p[2]),
            "forward": [float(v) for v in f],
            "pitch": pitch, "yaw": yaw,
            "nectar": self._nectar_obtained,
            "reward": self.cumulative_reward,
            "step": self.step_count, "episode": self.episode,
            "state": self.state,
            "nearest": None if self.nearest_flower is None else self.nearest_flower.nectar_handle,
        }
