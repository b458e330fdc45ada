from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

# ---- Tunables -----------------------------------------------------------------
AREA_DIAMETER = 20.0   # normalizes the beak-to-flower distance observation
FIXED_DT      = 0.02   # physics step (50 Hz)
SIM_TICK_HZ   = 50     # real-time loop cadence for the telemetry server

OBSERVATION_SIZE = 10
ACTION_SIZE      = 5

# Scene tags
TAG_FLOWER_PLANT = "flower_plant"
TAG_NECTAR       = "nectar"
TAG_FLOWER       = "flower"
TAG_BOUNDARY     = "boundary"

FLOWER_COLLIDER_NAME = "FlowerCollider"
NECTAR_COLLIDER_NAME = "FlowerNectarCollider"


@dataclass
class AgentConfig:
    """Tunables for the hummingbird controller."""
    move_force: float = 2.0
    pitch_speed: float = 100.0
    yaw_speed: float = 100.0
    max_pitch_angle: float = 80.0
    smoothing_rate: float = 2.0      # max change of smoothed pitch/yaw per second

    beak_tip_radius: float = 0.008
    beak_tip_offset: Tuple[float, float, float] = (0.0, 0.0, 0.1)  # local, ahead of the body

    feed_amount: float = 0.01
    feed_reward: float = 0.01
    alignment_bonus: float = 0.02
    boundary_penalty: float = -0.5

    spawn_attempts: int = 100
    spawn_clearance: float = 0.05
    max_step: int = 5000             # only enforced in training mode

    mass: float = 1.0
    drag: float = 2.0


@dataclass
class AreaConfig:
    """Spawn ranges and per-episode jitter for a flower area."""
    plant_yaw_range: Tuple[float, float] = (-180.0, 180.0)
    plant_tilt_range: Tuple[float, float] = (-5.0, 5.0)

    flower_standoff: Tuple[float, float] = (0.10, 0.20)
    free_height: Tuple[float, float] = (1.2, 2.5)
    free_radius: Tuple[float, float] = (2.0, 7.0)
    free_pitch: Tuple[float, float] = (-6.0, 60.0)
    free_yaw: Tuple[float, float] = (-180.0, 180.0)

    # Agent confinement (boundary walls are reported as "boundary" collisions)
    bounds_radius: float = AREA_DIAMETER * 0.5
    bounds_height: Tuple[float, float] = (0.0, 6.0)
    body_radius: float = 0.05

