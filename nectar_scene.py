"""
Scene graph for flower areas.

A scene is a tree of owned SceneNode objects. Each node has a local pose
relative to its parent, a name and an optional tag, and may carry a Region
(a collision shape) and/or a Flower entity. Traversal code dispatches on
SceneNode.kind rather than inspecting attached objects.

The world is Z-up. Rotations are scipy Rotation objects; quaternions are
[x, y, z, w].
"""

from enum import Enum
from typing import Iterator, List, Optional, Sequence

import numpy as np
from scipy.spatial.transform import Rotation

# Tags
FLOWER_PLANT_TAG = "flower_plant"
NECTAR_TAG = "nectar"
BOUNDARY_TAG = "boundary"

WORLD_UP = np.array([0.0, 0.0, 1.0])
WORLD_FORWARD = np.array([1.0, 0.0, 0.0])
WORLD_LEFT = np.array([0.0, 1.0, 0.0])


def euler_rotation(pitch: float = 0.0, yaw: float = 0.0, roll: float = 0.0) -> Rotation:
    """Rotation from angles in degrees: yaw about Z, then pitch about Y (positive is nose-down), then roll about X."""
    return Rotation.from_euler("ZYX", [yaw, pitch, roll], degrees=True)


def look_angles(direction: Sequence[float]) -> tuple:
    """Pitch and yaw (degrees) that point the forward axis along `direction` with world up kept up."""
    dx, dy, dz = direction
    yaw = np.degrees(np.arctan2(dy, dx))
    pitch = -np.degrees(np.arctan2(dz, np.hypot(dx, dy)))
    return float(pitch), float(yaw)


def wrap_angle(angle: float) -> float:
    """Wrap an angle in degrees into [-180, 180]."""
    angle = angle % 360.0
    if angle > 180.0:
        angle -= 360.0
    return angle


def normalized(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v)
    if norm < 1e-12:
        return np.zeros(3)
    return v / norm


class NodeKind(Enum):
    PLAIN = "plain"
    PLANT = "plant"
    FLOWER = "flower"


class Sphere:
    def __init__(self, radius: float):
        self.radius = float(radius)

    def closest_local(self, p: np.ndarray) -> np.ndarray:
        dist = np.linalg.norm(p)
        if dist <= self.radius:
            return p
        return p * (self.radius / dist)

    def local_corners(self) -> np.ndarray:
        r = self.radius
        return np.array([[-r, -r, -r], [r, r, r]])

    def __repr__(self):
        return f"Sphere(radius={self.radius})"


class Box:
    def __init__(self, half_extents: Sequence[float]):
        self.half_extents = np.asarray(half_extents, dtype=float)

    def closest_local(self, p: np.ndarray) -> np.ndarray:
        return np.clip(p, -self.half_extents, self.half_extents)

    def local_corners(self) -> np.ndarray:
        h = self.half_extents
        signs = np.array([[sx, sy, sz] for sx in (-1, 1) for sy in (-1, 1) for sz in (-1, 1)])
        return signs * h

    def __repr__(self):
        return f"Box(half_extents={self.half_extents.tolist()})"


class Region:
    """
    A collision region attached to a scene node.

    Trigger regions report overlaps but never push bodies. The name and tag of
    a region are those of the node that carries it. Regions hash by identity,
    so they are usable as lookup keys.
    """

    def __init__(self, shape, is_trigger: bool = False):
        self.shape = shape
        self.is_trigger = is_trigger
        self.active = True
        self.node: Optional["SceneNode"] = None

    @property
    def name(self) -> str:
        return self.node.name if self.node else ""

    @property
    def tag(self) -> Optional[str]:
        return self.node.tag if self.node else None

    @property
    def position(self) -> np.ndarray:
        return self.node.world_position

    @property
    def rotation(self) -> Rotation:
        return self.node.world_rotation

    @property
    def up(self) -> np.ndarray:
        return self.rotation.apply(WORLD_UP)

    def closest_point(self, point: Sequence[float]) -> np.ndarray:
        """Closest point on (or inside) the region. A point inside the region is returned unchanged."""
        point = np.asarray(point, dtype=float)
        rot = self.rotation
        local = rot.inv().apply(point - self.position)
        return self.position + rot.apply(self.shape.closest_local(local))

    def distance(self, point: Sequence[float]) -> float:
        return float(np.linalg.norm(self.closest_point(point) - np.asarray(point, dtype=float)))

    def aabb(self) -> tuple:
        """World-space axis-aligned bounds (min, max)."""
        if isinstance(self.shape, Sphere):
            r = self.shape.radius
            return self.position - r, self.position + r
        corners = self.rotation.apply(self.shape.local_corners()) + self.position
        return corners.min(axis=0), corners.max(axis=0)

    def __repr__(self):
        return f"Region({self.name!r}, {self.shape}, trigger={self.is_trigger})"


class SceneNode:
    """A node in the scene tree. Children are owned by their parent."""

    def __init__(self, name: str, tag: Optional[str] = None,
                 position: Sequence[float] = (0.0, 0.0, 0.0),
                 rotation: Optional[Rotation] = None,
                 region: Optional[Region] = None):
        self.name = name
        self.tag = tag
        self.local_position = np.asarray(position, dtype=float)
        self.local_rotation = rotation if rotation is not None else Rotation.identity()
        self.parent: Optional[SceneNode] = None
        self.children: List[SceneNode] = []
        self.region: Optional[Region] = None
        self.flower = None
        if region is not None:
            self.set_region(region)

    def add_child(self, child: "SceneNode") -> "SceneNode":
        child.parent = self
        self.children.append(child)
        return child

    def set_region(self, region: Region) -> Region:
        region.node = self
        self.region = region
        return region

    @property
    def kind(self) -> NodeKind:
        if self.tag == FLOWER_PLANT_TAG:
            return NodeKind.PLANT
        if self.flower is not None:
            return NodeKind.FLOWER
        return NodeKind.PLAIN

    @property
    def world_rotation(self) -> Rotation:
        if self.parent is None:
            return self.local_rotation
        return self.parent.world_rotation * self.local_rotation

    @property
    def world_position(self) -> np.ndarray:
        if self.parent is None:
            return self.local_position.copy()
        return self.parent.world_position + self.parent.world_rotation.apply(self.local_position)

    @property
    def up(self) -> np.ndarray:
        return self.world_rotation.apply(WORLD_UP)

    def find(self, name: str) -> Optional["SceneNode"]:
        """Direct child with the given name."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def walk(self) -> Iterator["SceneNode"]:
        """Depth-first pre-order over this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    def regions(self) -> List[Region]:
        """Regions on this node and its descendants, in pre-order."""
        return [node.region for node in self.walk() if node.region is not None]

    def __repr__(self):
        return f"SceneNode({self.name!r}, tag={self.tag!r}, children={len(self.children)})"
