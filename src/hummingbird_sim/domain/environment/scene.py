from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import math, random

import numpy as np

from hummingbird_sim.config import (
    TAG_FLOWER_PLANT, TAG_FLOWER, TAG_NECTAR,
    FLOWER_COLLIDER_NAME, NECTAR_COLLIDER_NAME,
)
from hummingbird_sim.domain import geometry as geo

if TYPE_CHECKING:  # pragma: no cover
    from .flower import Flower
    from .physics import PhysicsScene


class Transform:
    """Local pose relative to an optional parent. World pose is recomputed on every read."""
    def __init__(self, position=None, rotation=None, parent: Optional["Transform"] = None):
        self.local_position = geo.vec3(position)
        self.local_rotation = geo.IDENTITY.copy() if rotation is None else geo.quat_normalized(np.asarray(rotation, dtype=float))
        self.parent = parent

    @property
    def position(self) -> np.ndarray:
        if self.parent is None:
            return self.local_position.copy()
        return self.parent.position + geo.rotate(self.parent.rotation, self.local_position)

    @position.setter
    def position(self, p) -> None:
        p = geo.vec3(p)
        if self.parent is None:
            self.local_position = p
        else:
            inv = self.parent.rotation * np.array([-1.0, -1.0, -1.0, 1.0])
            self.local_position = geo.rotate(inv, p - self.parent.position)

    @property
    def rotation(self) -> np.ndarray:
        if self.parent is None:
            return self.local_rotation.copy()
        return geo.quat_normalized(geo.quat_mul(self.parent.rotation, self.local_rotation))

    @rotation.setter
    def rotation(self, q) -> None:
        q = geo.quat_normalized(np.asarray(q, dtype=float))
        if self.parent is None:
            self.local_rotation = q
        else:
            inv = self.parent.rotation * np.array([-1.0, -1.0, -1.0, 1.0])
            self.local_rotation = geo.quat_normalized(geo.quat_mul(inv, q))

    @property
    def forward(self) -> np.ndarray:
        return geo.rotate(self.rotation, geo.FORWARD)

    @property
    def up(self) -> np.ndarray:
        return geo.rotate(self.rotation, geo.UP)

    @property
    def right(self) -> np.ndarray:
        return geo.rotate(self.rotation, geo.RIGHT)

    def child(self, position=None, rotation=None) -> "Transform":
        return Transform(position, rotation, parent=self)


@dataclass
class SceneNode:
    """One entity in the area's scene tree.

    A node is either a flower-plant group (tag "flower_plant"), a flower
    (carries a Flower capability), or a plain container.
    """
    name: str
    transform: Transform
    tag: str = ""
    children: List["SceneNode"] = field(default_factory=list)
    flower: Optional["Flower"] = None

    @property
    def is_group(self) -> bool:
        return self.tag == TAG_FLOWER_PLANT

    def add(self, node: "SceneNode") -> "SceneNode":
        node.transform.parent = self.transform
        self.children.append(node)
        return node

    def walk(self):
        yield self
        for c in self.children:
            yield from c.walk()


# ---- declarative builder ------------------------------------------------------

def _rotation_from(desc: Dict[str, Any]):
    rot = desc.get("rotation")
    if rot is None:
        return None
    if len(rot) == 3:
        return geo.quat_from_euler(*rot)
    if len(rot) == 4:
        return np.asarray(rot, dtype=float)
    raise ValueError(f"rotation must be 3 euler angles or a 4-quaternion, got {rot!r}")


def build_scene(description: Dict[str, Any], physics: "PhysicsScene", parent: Optional[Transform] = None) -> SceneNode:
    """Build a SceneNode tree from a nested dict description.

    Keys: name, tag, position, rotation (euler degrees or quaternion),
    children, flower ({} or {"nectar_offset": [...], "nectar_radius": r, "petal_radius": r}).
    """
    from .flower import Flower

    if not isinstance(description, dict):
        raise ValueError(f"scene node must be a dict, got {type(description).__name__}")
    name = str(description.get("name", "node"))
    tr = Transform(description.get("position"), _rotation_from(description), parent=parent)
    node = SceneNode(name=name, transform=tr, tag=str(description.get("tag", "")))

    fdesc = description.get("flower")
    if fdesc is not None:
        if description.get("children"):
            raise ValueError(f"flower node {name!r} cannot have children")
        nectar_tr = tr.child(fdesc.get("nectar_offset", (0.0, 0.02, 0.0)))
        petal = physics.add_collider(tr.child(), radius=float(fdesc.get("petal_radius", 0.03)),
                                     tag=TAG_FLOWER, name=FLOWER_COLLIDER_NAME)
        nectar = physics.add_collider(nectar_tr, radius=float(fdesc.get("nectar_radius", 0.015)),
                                      tag=TAG_NECTAR, name=NECTAR_COLLIDER_NAME, is_trigger=True)
        node.flower = Flower(tr, petal_collider=petal, nectar_collider=nectar, name=name)
        return node

    for cdesc in description.get("children", []):
        node.children.append(build_scene(cdesc, physics, parent=tr))
    return node


def demo_meadow(rng: random.Random, n_plants: int = 6, flowers_per_plant: int = 3,
                radius: float = 6.0) -> Dict[str, Any]:
    """A plausible area: plants scattered in a ring, a few flowers each, on a plain container."""
    plants = []
    for i in range(n_plants):
        ang = rng.uniform(0.0, math.tau)
        r = rng.uniform(radius * 0.3, radius)
        flowers = []
        for j in range(flowers_per_plant):
            a = math.tau * j / max(1, flowers_per_plant)
            flowers.append({
                "name": f"flower_{i}_{j}",
                "position": (0.35 * math.cos(a), rng.uniform(0.6, 1.4), 0.35 * math.sin(a)),
                # tilt the bloom outward so the opening faces away from the stem
                "rotation": (rng.uniform(20.0, 60.0), math.degrees(-a) + 90.0, 0.0),
                "flower": {},
            })
        plants.append({
            "name": f"plant_{i}",
            "tag": TAG_FLOWER_PLANT,
            "position": (r * math.cos(ang), 0.0, r * math.sin(ang)),
            "children": flowers,
        })
    return {
        "name": "area",
        "children": [{"name": "plants", "children": plants}],
    }
