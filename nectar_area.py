"""
Flower area: discovery, nectar-region binding and lookup of the flowers in a scene.

The area walks a scene tree, records flower plants, collects Flower entities
and indexes them by nectar region so contact events can be mapped back to the
flower they belong to in O(1).
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from nectar_config import NectarConfig
from nectar_flower import Flower, NECTAR_REGION_NAME, PETAL_REGION_NAME
from nectar_logging import get_logger
from nectar_scene import (
    BOUNDARY_TAG, FLOWER_PLANT_TAG, NECTAR_TAG,
    Box, NodeKind, Region, SceneNode, Sphere, euler_rotation,
)

logger = get_logger("nectar.area")


def resolve_nectar_region(flower: Flower) -> Optional[Region]:
    """
    Find the nectar region of a flower whose reference is not bound.

    Candidates are the regions on the flower node and its descendants, tried in
    this order: tagged "nectar", named like "nectar", trigger, anything.
    """
    regions = flower.node.regions()
    return (next((r for r in regions if (r.tag or "").lower() == NECTAR_TAG), None)
            or next((r for r in regions if NECTAR_TAG in r.name.lower()), None)
            or next((r for r in regions if r.is_trigger), None)
            or next(iter(regions), None))


@dataclass(frozen=True)
class FlowerRef:
    """Non-owning handle to a flower of an area, invalidated by a rebuild."""
    index: int
    generation: int


class FlowerArea:
    """Manages a collection of flower plants and attached flowers."""

    def __init__(self, root: SceneNode, config: Optional[NectarConfig] = None):
        self.root = root
        self.config = config or NectarConfig()
        # Flower plants hold several flowers; they are tilted as a whole on reset
        self.flower_plants: List[SceneNode] = []
        self.flowers: List[Flower] = []
        self._nectar_flower_lookup: Dict[Region, Flower] = {}
        self._plant_ids = set()
        self._flower_ids = set()
        self.generation = 0

    @property
    def area_diameter(self) -> float:
        return self.config.area_diameter

    @property
    def position(self) -> np.ndarray:
        return self.root.world_position

    @property
    def nectar_regions(self) -> List[Region]:
        return list(self._nectar_flower_lookup)

    def rebuild_lookup(self):
        """Clear everything and rediscover flowers under the root node."""
        self.flowers.clear()
        self.flower_plants.clear()
        self._nectar_flower_lookup.clear()
        self._plant_ids.clear()
        self._flower_ids.clear()
        self.generation += 1
        self._find_child_flowers(self.root)
        logger.info("Flowers=%d, NectarRegions=%d", len(self.flowers), len(self._nectar_flower_lookup))

    def reset_flowers(self, rng: np.random.Generator):
        """Give every plant a fresh random tilt and refill every flower."""
        tilt = self.config.plant_tilt_angle
        spin = self.config.plant_yaw_angle
        for plant in self.flower_plants:
            pitch = rng.uniform(-tilt, tilt)
            yaw = rng.uniform(-spin, spin)
            roll = rng.uniform(-tilt, tilt)
            plant.local_rotation = euler_rotation(pitch=pitch, yaw=yaw, roll=roll)

        for flower in self.flowers:
            flower.reset_flower()

    def get_flower_from_nectar(self, region: Optional[Region]) -> Optional[Flower]:
        """Gets the flower a nectar region belongs to."""
        if region is None:
            return None
        return self._nectar_flower_lookup.get(region)

    def ref(self, flower: Flower) -> FlowerRef:
        return FlowerRef(self.flowers.index(flower), self.generation)

    def deref(self, ref: Optional[FlowerRef]) -> Optional[Flower]:
        """The flower behind a handle, or None when the area was rebuilt since."""
        if ref is None or ref.generation != self.generation:
            return None
        if not 0 <= ref.index < len(self.flowers):
            return None
        return self.flowers[ref.index]

    def _find_child_flowers(self, parent: SceneNode):
        """Recursively finds all flowers and flower plants below a parent node."""
        for child in parent.children:
            kind = child.kind

            if kind is NodeKind.PLANT:
                if id(child) not in self._plant_ids:
                    self._plant_ids.add(id(child))
                    self.flower_plants.append(child)
                self._find_child_flowers(child)

            elif kind is NodeKind.FLOWER:
                self._index_flower(child.flower)

            else:
                # Not a flower; keep scanning children
                self._find_child_flowers(child)

    def _index_flower(self, flower: Flower):
        if id(flower) not in self._flower_ids:
            self._flower_ids.add(id(flower))
            self.flowers.append(flower)

        region = flower.nectar_region
        if region is None:
            region = resolve_nectar_region(flower)
            if region is not None:
                # persist to the flower
                flower.nectar_region = region

        if region is None:
            logger.error("'%s' is missing a nectar region reference.", flower.name)
            return

        existing = self._nectar_flower_lookup.get(region)
        if existing is None:
            self._nectar_flower_lookup[region] = flower
        elif existing is not flower:
            logger.warning("Duplicate nectar region '%s' on '%s'. Skipping.", region.name, flower.name)


def autowire_nectar(root: SceneNode) -> Tuple[int, int]:
    """
    Bind a nectar region to every flower below `root` that has none.

    Returns (fixed, missing) counts. Uses the same resolution order as
    FlowerArea.rebuild_lookup so authoring-time and runtime bindings agree.
    """
    fixed, missing = 0, 0
    for node in root.walk():
        flower = node.flower
        if flower is None or flower.nectar_region is not None:
            continue
        region = resolve_nectar_region(flower)
        if region is not None:
            flower.nectar_region = region
            fixed += 1
        else:
            logger.error("'%s' still missing a nectar region.", flower.name)
            missing += 1

    logger.info("Auto-wire complete. Fixed: %d, Still missing: %d", fixed, missing)
    return fixed, missing


def build_flower_area(config: NectarConfig, rng: Optional[np.random.Generator] = None) -> SceneNode:
    """
    Author a flower area scene: ground, boundary walls, ceiling and a ring of
    flower plants, each with a stem and several flowers pointing outwards.
    """
    if rng is None:
        rng = np.random.default_rng(config.scene_seed)

    half = config.area_diameter / 2.0
    height = config.arena_height
    root = SceneNode("FlowerArea")

    root.add_child(SceneNode("Ground", position=(0.0, 0.0, -0.05),
                             region=Region(Box((half, half, 0.05)))))
    walls = [
        ("WallNorth", (0.0, half + 0.05, height / 2), (half, 0.05, height / 2)),
        ("WallSouth", (0.0, -half - 0.05, height / 2), (half, 0.05, height / 2)),
        ("WallEast", (half + 0.05, 0.0, height / 2), (0.05, half, height / 2)),
        ("WallWest", (-half - 0.05, 0.0, height / 2), (0.05, half, height / 2)),
        ("Ceiling", (0.0, 0.0, height + 0.05), (half, half, 0.05)),
    ]
    for name, position, half_extents in walls:
        root.add_child(SceneNode(name, tag=BOUNDARY_TAG, position=position,
                                 region=Region(Box(half_extents))))

    plants = root.add_child(SceneNode("FlowerPlants"))
    for i in range(config.num_plants):
        radius = rng.uniform(*config.plant_ring_radius)
        azimuth = rng.uniform(-math.pi, math.pi)
        plant = plants.add_child(SceneNode(
            f"FlowerPlant_{i}", tag=FLOWER_PLANT_TAG,
            position=(radius * math.cos(azimuth), radius * math.sin(azimuth), 0.0)))

        stem_height = rng.uniform(*config.stem_height)
        plant.add_child(SceneNode("Stem", position=(0.0, 0.0, stem_height / 2),
                                  region=Region(Box((0.02, 0.02, stem_height / 2)))))

        for j in range(config.flowers_per_plant):
            heading = 360.0 * j / config.flowers_per_plant
            flower_height = stem_height * (0.6 + 0.4 * j / max(config.flowers_per_plant - 1, 1))
            offset = euler_rotation(yaw=heading).apply((0.12, 0.0, flower_height))
            # Point the flower's up axis outwards and upwards
            node = plant.add_child(SceneNode(
                f"Flower_{i}_{j}", position=offset,
                rotation=euler_rotation(pitch=rng.uniform(-80.0, -40.0), yaw=heading)
                * euler_rotation(pitch=90.0)))
            node.add_child(SceneNode(PETAL_REGION_NAME, region=Region(Box((0.06, 0.06, 0.01)))))
            node.add_child(SceneNode(NECTAR_REGION_NAME, tag=NECTAR_TAG, position=(0.0, 0.0, 0.01),
                                     region=Region(Sphere(0.015), is_trigger=True)))
            Flower(node).bind_references()

    return root
