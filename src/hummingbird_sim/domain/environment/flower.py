from __future__ import annotations
from typing import Tuple
import logging

import numpy as np

from .physics import Collider
from .scene import Transform

log = logging.getLogger(__name__)

FULL_COLOR: Tuple[float, float, float] = (1.0, 0.0, 0.3)
EMPTY_COLOR: Tuple[float, float, float] = (0.5, 0.0, 1.0)

# nectar levels are compared at this precision; drift from repeated small feeds rounds away
NECTAR_DECIMALS = 12


class Flower:
    """A single flower holding up to 1.0 unit of nectar.

    The nectar collider is a trigger the beak dips into; the petal collider is solid.
    Both are switched off once the flower runs dry and back on by reset().
    """
    def __init__(self, transform: Transform, petal_collider: Collider, nectar_collider: Collider, name: str = ""):
        self.transform = transform
        self.petal_collider = petal_collider
        self.nectar_collider = nectar_collider
        self.name = name
        self.color = FULL_COLOR
        self._nectar = 1.0

    # --- geometry (read through, never cached) ---
    @property
    def position(self) -> np.ndarray:
        return self.transform.position

    @property
    def up_vector(self) -> np.ndarray:
        """Points straight out of the bloom's opening."""
        return self.nectar_collider.transform.up

    @property
    def center_position(self) -> np.ndarray:
        return self.nectar_collider.transform.position

    @property
    def nectar_handle(self) -> int:
        return self.nectar_collider.handle

    @property
    def petal_handle(self) -> int:
        return self.petal_collider.handle

    # --- nectar ---
    @property
    def nectar_amount(self) -> float:
        return self._nectar

    @property
    def has_nectar(self) -> bool:
        return self._nectar > 0.0

    def feed(self, amount: float) -> float:
        """Remove `amount` of nectar. Returns what was actually there to take."""
        taken = max(0.0, min(amount, self._nectar))
        self._nectar -= amount
        if round(self._nectar, NECTAR_DECIMALS) <= 0.0:
            self._nectar = 0.0
            self.petal_collider.enabled = False
            self.nectar_collider.enabled = False
            self.color = EMPTY_COLOR
            log.debug("flower %s emptied", self.name or self.nectar_handle)
        return taken

    def reset(self) -> None:
        self._nectar = 1.0
        self.petal_collider.enabled = True
        self.nectar_collider.enabled = True
        self.color = FULL_COLOR

    def snapshot(self) -> dict:
        x, y, z = (float(v) for v in self.position)
        return {
            "id": self.nectar_handle, "name": self.name,
            "x": x, "y": y, "z": z,
            "nectar": self._nectar, "color": list(self.color),
        }
