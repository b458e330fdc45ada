from __future__ import annotations
from typing import Dict, List, Optional
import logging
import random

import numpy as np

from hummingbird_sim.config import AREA_DIAMETER, AreaConfig
from hummingbird_sim.domain import geometry as geo
from .flower import Flower
from .physics import PhysicsScene
from .scene import SceneNode, build_scene

log = logging.getLogger(__name__)


class FlowerArea:
    """All flowers of one area plus the plant groups that hold them.

    Built in two phases: construct with the scene root, then discover() once the
    scene's flowers exist. Lookups by nectar handle go through a dict index.
    """
    diameter = AREA_DIAMETER

    def __init__(self, root: SceneNode, rng: random.Random, config: Optional[AreaConfig] = None):
        self.root = root
        self.rng = rng
        self.config = config or AreaConfig()
        self.flowers: List[Flower] = []
        self.flower_plants: List[SceneNode] = []
        self._nectar_index: Dict[int, Flower] = {}
        self._discovered = False

    @classmethod
    def from_description(cls, description: dict, physics: PhysicsScene, rng: random.Random,
                         config: Optional[AreaConfig] = None) -> "FlowerArea":
        area = cls(build_scene(description, physics), rng, config)
        area.discover()
        return area

    @property
    def center(self) -> np.ndarray:
        return self.root.transform.position

    # --- discovery ---
    def discover(self) -> None:
        """Walk the scene tree once and register plant groups and flowers."""
        if self._discovered:
            return
        self._find_child_flowers(self.root)
        self._discovered = True
        log.info("area discovered %d flowers on %d plants", len(self.flowers), len(self.flower_plants))

    def _find_child_flowers(self, parent: SceneNode) -> None:
        for child in parent.children:
            if child.is_group:
                self.flower_plants.append(child)
                self._find_child_flowers(child)
            elif child.flower is not None:
                self._register(child.flower)
            else:
                self._find_child_flowers(child)

    def _register(self, flower: Flower) -> None:
        handle = flower.nectar_handle
        if handle in self._nectar_index:
            raise ValueError(f"nectar handle {handle} registered twice")
        self.flowers.append(flower)
        self._nectar_index[handle] = flower

    # --- episode reset ---
    def reset_flowers(self) -> None:
        """Re-orient every plant at random, then refill every flower."""
        cfg = self.config
        for plant in self.flower_plants:
            pitch = self.rng.uniform(*cfg.plant_tilt_range)
            yaw = self.rng.uniform(*cfg.plant_yaw_range)
            roll = self.rng.uniform(*cfg.plant_tilt_range)
            plant.transform.local_rotation = geo.quat_from_euler(pitch, yaw, roll)
        for flower in self.flowers:
            flower.reset()

    # --- lookups ---
    def get_flower_from_nectar(self, handle: int) -> Flower:
        """Flower owning the nectar collider `handle`. Raises KeyError if unknown."""
        return self._nectar_index[handle]

    def random_flower(self) -> Flower:
        if not self.flowers:
            raise ValueError(f"area {self.root.name!r} has no flowers")
        return self.flowers[self.rng.randrange(len(self.flowers))]

    def remaining(self) -> int:
        return sum(1 for f in self.flowers if f.has_nectar)

    def snapshot(self) -> List[dict]:
        return [f.snapshot() for f in self.flowers]
