"""
Shared fixtures: a scene-only collision layer and a kinematic body, so the
agent and the flower area can be tested without a physics server.
"""

import numpy as np
import pytest

from nectar_config import NectarConfig
from nectar_flower import Flower, NECTAR_REGION_NAME, PETAL_REGION_NAME
from nectar_physics import CollisionLayer
from nectar_scene import NECTAR_TAG, Box, Region, SceneNode, Sphere


class SceneCollision(CollisionLayer):
    """Answers overlap queries analytically from the regions of a scene."""

    def __init__(self, root: SceneNode):
        self.root = root
        self.forced_overlaps = None
        self.overlap_queries = []
        self.syncs = 0

    def overlap_count(self, point, radius):
        self.overlap_queries.append(np.asarray(point, dtype=float))
        if self.forced_overlaps is not None:
            return self.forced_overlaps
        return sum(1 for region in self.root.regions()
                   if region.active and region.distance(point) <= radius)

    def closest_point(self, region, point):
        return region.closest_point(point)

    def sync_scene(self):
        self.syncs += 1


class KinematicBody:
    """Stands in for a rigid body: stores pose and records applied forces."""

    def __init__(self, position=(0.0, 0.0, 1.0)):
        self.position = np.asarray(position, dtype=float)
        self.orientation = np.array([0.0, 0.0, 0.0, 1.0])
        self.velocity = np.zeros(3)
        self.forces = []
        self.asleep = False

    def set_pose(self, position, orientation):
        self.position = np.asarray(position, dtype=float)
        self.orientation = np.asarray(orientation, dtype=float)

    def set_orientation(self, orientation):
        self.orientation = np.asarray(orientation, dtype=float)

    def set_velocity(self, linear, angular=(0.0, 0.0, 0.0)):
        self.velocity = np.asarray(linear, dtype=float)

    def add_force(self, force):
        if not self.asleep:
            self.forces.append(np.asarray(force, dtype=float))

    def sleep(self):
        self.asleep = True

    def wake_up(self):
        self.asleep = False


def make_flower(name, position=(0.0, 0.0, 0.0), rotation=None, with_nectar=True, with_petals=True):
    """A flower node authored the conventional way, with its Flower attached."""
    node = SceneNode(name, position=position, rotation=rotation)
    if with_petals:
        node.add_child(SceneNode(PETAL_REGION_NAME, region=Region(Box((0.06, 0.06, 0.01)))))
    if with_nectar:
        node.add_child(SceneNode(NECTAR_REGION_NAME, tag=NECTAR_TAG, position=(0.0, 0.0, 0.01),
                                 region=Region(Sphere(0.015), is_trigger=True)))
    flower = Flower(node)
    flower.bind_references()
    return flower


@pytest.fixture
def config():
    return NectarConfig()


@pytest.fixture
def flower():
    return make_flower("Flower")

