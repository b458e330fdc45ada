from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Tuple
import itertools
import math

import numpy as np

from hummingbird_sim.config import TAG_BOUNDARY
from hummingbird_sim.domain import geometry as geo
from .scene import Transform


@dataclass(eq=False)
class Collider:
    """Sphere volume attached to a transform. Triggers report overlaps but never block."""
    handle: int
    transform: Transform
    radius: float
    tag: str = ""
    name: str = ""
    is_trigger: bool = False
    enabled: bool = True

    @property
    def center(self) -> np.ndarray:
        return self.transform.position

    def closest_point(self, point) -> np.ndarray:
        p = geo.vec3(point)
        c = self.center
        d = p - c
        n = float(np.linalg.norm(d))
        if n <= self.radius:
            return p
        return c + d * (self.radius / n)

    def overlaps(self, point, radius: float) -> bool:
        return geo.distance(self.center, point) < (self.radius + radius)


class PhysicsScene:
    """Registry of colliders answering the overlap queries the agent relies on.

    Stands in for the host physics engine: no dynamics, only geometry.
    """
    def __init__(self):
        self._colliders: Dict[int, Collider] = {}
        self._next_handle = itertools.count(1)

    def add_collider(self, transform: Transform, radius: float, tag: str = "", name: str = "",
                     is_trigger: bool = False) -> Collider:
        c = Collider(next(self._next_handle), transform, float(radius), tag=tag, name=name, is_trigger=is_trigger)
        self._colliders[c.handle] = c
        return c

    def get(self, handle: int) -> Collider:
        return self._colliders[handle]

    @property
    def colliders(self) -> List[Collider]:
        return list(self._colliders.values())

    def overlap_sphere(self, point, radius: float) -> List[Collider]:
        """Enabled colliders (solid or trigger) intersecting the sphere."""
        return [c for c in self._colliders.values() if c.enabled and c.overlaps(point, radius)]

    def contacts(self, point, radius: float) -> Tuple[List[Collider], List[Collider]]:
        """Split overlaps into (triggers, solids) for callback dispatch."""
        triggers: List[Collider] = []
        solids: List[Collider] = []
        for c in self.overlap_sphere(point, radius):
            (triggers if c.is_trigger else solids).append(c)
        return triggers, solids


@dataclass
class Body:
    """Point-mass rigid body with linear drag. Forces accumulate until the next integrate()."""
    transform: Transform
    mass: float = 1.0
    drag: float = 0.0
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    sleeping: bool = False
    _force: np.ndarray = field(default_factory=lambda: np.zeros(3), repr=False)

    @property
    def position(self) -> np.ndarray:
        return self.transform.position

    @position.setter
    def position(self, p) -> None:
        self.transform.position = p

    @property
    def rotation(self) -> np.ndarray:
        return self.transform.rotation

    @rotation.setter
    def rotation(self, q) -> None:
        self.transform.rotation = q

    def add_force(self, force) -> None:
        if self.sleeping:
            return
        self._force = self._force + geo.vec3(force)

    def integrate(self, dt: float) -> None:
        if dt <= 0.0 or self.sleeping:
            self._force = np.zeros(3)
            return
        self.velocity = self.velocity + self._force / max(1e-6, self.mass) * dt
        self.velocity = self.velocity * max(0.0, 1.0 - self.drag * dt)
        self.position = self.position + self.velocity * dt
        self._force = np.zeros(3)

    def sleep(self) -> None:
        self.velocity = np.zeros(3)
        self.angular_velocity = np.zeros(3)
        self._force = np.zeros(3)
        self.sleeping = True

    def wake_up(self) -> None:
        self.sleeping = False


class Boundary:
    """Cylindrical fence around the area. Crossing it pushes the body back and reports a hit."""
    def __init__(self, center, radius: float, floor: float, ceiling: float):
        self.center = geo.vec3(center)
        self.radius = float(radius)
        self.floor = float(floor)
        self.ceiling = float(ceiling)
        self.tag = TAG_BOUNDARY

    def confine(self, body: Body, body_radius: float = 0.0) -> bool:
        p = body.position
        rel = p - self.center
        hit = False
        horiz = math.hypot(rel[0], rel[2])
        lim = self.radius - body_radius
        if horiz > lim > 0.0:
            s = lim / horiz
            rel[0] *= s
            rel[2] *= s
            hit = True
        lo, hi = self.floor + body_radius, self.ceiling - body_radius
        if rel[1] < lo or rel[1] > hi:
            rel[1] = geo.clamp(rel[1], lo, hi)
            hit = True
        if hit:
            body.position = self.center + rel
            body.velocity = np.zeros(3)
        return hit
