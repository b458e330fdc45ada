"""Small 3D helpers on numpy arrays.

Conventions: Y is up, Z is forward, X is right. Quaternions are [x, y, z, w].
Euler angles are degrees and compose as roll (Z), then pitch (X), then yaw (Y);
positive pitch tips the nose down.
"""
from __future__ import annotations
from typing import Iterable, Tuple
import math

import numpy as np

UP = np.array([0.0, 1.0, 0.0])
FORWARD = np.array([0.0, 0.0, 1.0])
RIGHT = np.array([1.0, 0.0, 0.0])
ZERO = np.zeros(3)
IDENTITY = np.array([0.0, 0.0, 0.0, 1.0])

_EPS = 1e-9


def vec3(v: Iterable[float] | None = None) -> np.ndarray:
    if v is None:
        return np.zeros(3)
    a = np.asarray(v, dtype=float).reshape(3)
    return a.copy()


def normalized(v: np.ndarray) -> np.ndarray:
    """Unit vector along v; the zero vector stays zero."""
    n = float(np.linalg.norm(v))
    if n < _EPS:
        return np.zeros_like(v, dtype=float)
    return np.asarray(v, dtype=float) / n


def distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(a) - np.asarray(b)))


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def clamp01(x: float) -> float:
    return clamp(x, 0.0, 1.0)


def move_towards(current: float, target: float, max_delta: float) -> float:
    """Step `current` toward `target` by at most `max_delta`."""
    if abs(target - current) <= max_delta:
        return target
    return current + math.copysign(max_delta, target - current)


# ---- quaternions ------------------------------------------------------------

def quat_mul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ])


def quat_normalized(q: np.ndarray) -> np.ndarray:
    n = float(np.linalg.norm(q))
    if n < _EPS:
        return IDENTITY.copy()
    return np.asarray(q, dtype=float) / n


def quat_axis_angle(axis: np.ndarray, degrees: float) -> np.ndarray:
    half = math.radians(degrees) * 0.5
    s = math.sin(half)
    ax = normalized(np.asarray(axis, dtype=float))
    return np.array([ax[0] * s, ax[1] * s, ax[2] * s, math.cos(half)])


def quat_from_euler(pitch: float, yaw: float, roll: float = 0.0) -> np.ndarray:
    qx = quat_axis_angle(RIGHT, pitch)
    qy = quat_axis_angle(UP, yaw)
    qz = quat_axis_angle(FORWARD, roll)
    return quat_normalized(quat_mul(quat_mul(qy, qx), qz))


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    x, y, z, w = quat_normalized(q)
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w),     2 * (x * z + y * w)],
        [2 * (x * y + z * w),     1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w),     2 * (y * z + x * w),     1 - 2 * (x * x + y * y)],
    ])


def matrix_to_quat(m: np.ndarray) -> np.ndarray:
    tr = m[0, 0] + m[1, 1] + m[2, 2]
    if tr > 0.0:
        s = math.sqrt(tr + 1.0) * 2.0
        q = [(m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s, 0.25 * s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        q = [0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s, (m[2, 1] - m[1, 2]) / s]
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        q = [(m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s, (m[0, 2] - m[2, 0]) / s]
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        q = [(m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s, (m[1, 0] - m[0, 1]) / s]
    return quat_normalized(np.array(q))


def rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    return quat_to_matrix(q) @ np.asarray(v, dtype=float)


def euler_angles(q: np.ndarray) -> Tuple[float, float, float]:
    """(pitch, yaw, roll) in degrees, each wrapped into [0, 360)."""
    m = quat_to_matrix(q)
    sp = clamp(-m[1, 2], -1.0, 1.0)
    pitch = math.asin(sp)
    if abs(sp) < 1.0 - 1e-6:
        yaw = math.atan2(m[0, 2], m[2, 2])
        roll = math.atan2(m[1, 0], m[1, 1])
    else:
        # gimbal lock: fold roll into yaw
        yaw = math.atan2(-m[2, 0], m[0, 0])
        roll = 0.0
    return tuple(math.degrees(a) % 360.0 for a in (pitch, yaw, roll))  # type: ignore[return-value]


def look_rotation(forward: np.ndarray, up: np.ndarray = UP) -> np.ndarray:
    """Rotation whose forward axis is `forward` with up as close to `up` as possible."""
    z = normalized(np.asarray(forward, dtype=float))
    if not z.any():
        return IDENTITY.copy()
    x = np.cross(up, z)
    if float(np.linalg.norm(x)) < 1e-6:
        # forward parallel to up; any perpendicular right axis will do
        x = np.cross(RIGHT if abs(z[0]) < 0.9 else FORWARD, z)
    x = normalized(x)
    y = np.cross(z, x)
    return matrix_to_quat(np.column_stack([x, y, z]))
