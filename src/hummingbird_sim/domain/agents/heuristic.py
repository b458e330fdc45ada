from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Dict, Iterable

import numpy as np

from hummingbird_sim.domain import geometry as geo

# Keyboard layout used by the manual-control path.
KEY_MAP: Dict[str, str] = {
    "w": "forward", "s": "back",
    "a": "left", "d": "right",
    "e": "up", "c": "down",
    "arrowup": "pitch_up", "arrowdown": "pitch_down",
    "arrowleft": "yaw_left", "arrowright": "yaw_right",
}


@dataclass
class KeyState:
    """Which control keys are currently held."""
    forward: bool = False
    back: bool = False
    left: bool = False
    right: bool = False
    up: bool = False
    down: bool = False
    pitch_up: bool = False
    pitch_down: bool = False
    yaw_left: bool = False
    yaw_right: bool = False

    @classmethod
    def from_pressed(cls, keys: Iterable[str]) -> "KeyState":
        """Build from raw key names ('w', 'ArrowUp', ...) or field names."""
        names = {f.name for f in fields(cls)}
        state = cls()
        for k in keys:
            k = str(k).lower()
            attr = KEY_MAP.get(k, k)
            if attr in names:
                setattr(state, attr, True)
        return state


def heuristic_action(keys: KeyState, transform) -> np.ndarray:
    """Map held keys to [fx, fy, fz, pitch, yaw] relative to the bird's own axes."""
    forward = np.zeros(3)
    left = np.zeros(3)
    up = np.zeros(3)
    pitch = 0.0
    yaw = 0.0

    if keys.forward:
        forward = transform.forward
    elif keys.back:
        forward = -transform.forward

    if keys.left:
        left = -transform.right
    elif keys.right:
        left = transform.right

    if keys.up:
        up = transform.up
    elif keys.down:
        up = -transform.up

    if keys.pitch_up:
        pitch = -1.0
    elif keys.pitch_down:
        pitch = 1.0

    if keys.yaw_left:
        yaw = -1.0
    elif keys.yaw_right:
        yaw = 1.0

    combined = geo.normalized(forward + left + up)
    return np.array([combined[0], combined[1], combined[2], pitch, yaw], dtype=np.float32)
