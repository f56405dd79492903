"""
Physics and collision layer for the flower area, backed by PyBullet.

The world mirrors every Region of a scene as a static PyBullet body and owns
the agent's rigid body. After each simulation tick it reports trigger
contacts (enter or sustained) with nectar regions and new solid collisions,
which the environment forwards to the agent. Overlap and closest-point
queries combine the PyBullet broadphase with the analytic region shapes.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pybullet as p
from scipy.spatial.transform import Rotation

from nectar_config import NectarConfig
from nectar_logging import get_logger
from nectar_scene import Box, Region, SceneNode, Sphere

logger = get_logger("nectar.physics")

COLLISION_GROUP_SCENE = 1
COLLISION_GROUP_AGENT = 2
COLLISION_GROUP_TRIGGER = 4


@dataclass
class RegionContact:
    """The agent overlaps a trigger region. `sustained` is False on the first tick of the overlap."""
    region: Region
    sustained: bool


@dataclass
class BodyCollision:
    """The agent started touching a solid region."""
    region: Region


class CollisionLayer:
    """Queries the agent needs from the physics engine."""

    def overlap_count(self, point: Sequence[float], radius: float) -> int:
        raise NotImplementedError

    def closest_point(self, region: Region, point: Sequence[float]) -> np.ndarray:
        raise NotImplementedError

    def sync_scene(self):
        """Push scene-node poses and region activation to the engine."""
        raise NotImplementedError


class PyBulletBody:
    """Rigid body of the agent."""

    def __init__(self, client: int, body_id: int):
        self.client = client
        self.body_id = body_id
        self.asleep = False

    @property
    def position(self) -> np.ndarray:
        pos, _ = p.getBasePositionAndOrientation(self.body_id, physicsClientId=self.client)
        return np.array(pos)

    @property
    def orientation(self) -> np.ndarray:
        _, orn = p.getBasePositionAndOrientation(self.body_id, physicsClientId=self.client)
        return np.array(orn)

    @property
    def velocity(self) -> np.ndarray:
        lin, _ = p.getBaseVelocity(self.body_id, physicsClientId=self.client)
        return np.array(lin)

    def set_pose(self, position: Sequence[float], orientation: Sequence[float]):
        p.resetBasePositionAndOrientation(self.body_id, list(position), list(orientation),
                                          physicsClientId=self.client)

    def set_orientation(self, orientation: Sequence[float]):
        """Rotate in place, keeping the linear velocity and dropping any spin."""
        lin = self.velocity
        self.set_pose(self.position, orientation)
        p.resetBaseVelocity(self.body_id, linearVelocity=lin.tolist(), angularVelocity=[0, 0, 0],
                            physicsClientId=self.client)

    def set_velocity(self, linear: Sequence[float], angular: Sequence[float] = (0.0, 0.0, 0.0)):
        p.resetBaseVelocity(self.body_id, linearVelocity=list(linear), angularVelocity=list(angular),
                            physicsClientId=self.client)

    def add_force(self, force: Sequence[float]):
        if self.asleep:
            return
        p.applyExternalForce(self.body_id, -1, list(force), self.position.tolist(), p.WORLD_FRAME,
                             physicsClientId=self.client)

    def sleep(self):
        self.asleep = True
        self.set_velocity((0.0, 0.0, 0.0))

    def wake_up(self):
        self.asleep = False


class PyBulletWorld(CollisionLayer):
    """PyBullet simulation of one flower area and one agent."""

    def __init__(self, config: Optional[NectarConfig] = None, gui: bool = False):
        self.config = config or NectarConfig()
        self.gui = gui
        self.client = p.connect(p.GUI if gui else p.DIRECT)
        if self.client < 0:
            raise RuntimeError("Failed to connect to PyBullet physics server.")

        p.setGravity(0, 0, 0, physicsClientId=self.client)
        p.setTimeStep(self.config.fixed_delta_time, physicsClientId=self.client)

        self._region_bodies: Dict[Region, int] = {}
        self._body_regions: Dict[int, Region] = {}
        self._active: Dict[Region, bool] = {}
        self._colors: Dict[Region, tuple] = {}
        self._touching_triggers = set()
        self._touching_solids = set()
        self._debug_line = -1
        self.agent_body: Optional[PyBulletBody] = None

    # ---------- scene ----------

    def load_scene(self, root: SceneNode):
        """Create a static body for every region in the scene."""
        for node in root.walk():
            if node.region is not None and node.region not in self._region_bodies:
                self._create_region_body(node.region)
        self.sync_scene()
        logger.info("Loaded %d regions into PyBullet", len(self._region_bodies))

    def _create_region_body(self, region: Region) -> int:
        shape = region.shape
        if isinstance(shape, Sphere):
            collision = p.createCollisionShape(p.GEOM_SPHERE, radius=shape.radius, physicsClientId=self.client)
            visual_args = dict(shapeType=p.GEOM_SPHERE, radius=shape.radius)
        elif isinstance(shape, Box):
            collision = p.createCollisionShape(p.GEOM_BOX, halfExtents=shape.half_extents.tolist(),
                                               physicsClientId=self.client)
            visual_args = dict(shapeType=p.GEOM_BOX, halfExtents=shape.half_extents.tolist())
        else:
            raise ValueError(f"Unsupported region shape: {shape!r}")

        visual = -1
        if self.gui:
            visual = p.createVisualShape(rgbaColor=self._region_rgba(region), physicsClientId=self.client,
                                         **visual_args)

        body_id = p.createMultiBody(
            baseMass=0,
            baseCollisionShapeIndex=collision,
            baseVisualShapeIndex=visual,
            basePosition=region.position.tolist(),
            baseOrientation=region.rotation.as_quat().tolist(),
            physicsClientId=self.client
        )
        if region.is_trigger:
            # Triggers never push the agent; overlaps are resolved analytically
            p.setCollisionFilterGroupMask(body_id, -1, COLLISION_GROUP_TRIGGER, 0, physicsClientId=self.client)
        else:
            p.setCollisionFilterGroupMask(body_id, -1, COLLISION_GROUP_SCENE, COLLISION_GROUP_AGENT,
                                          physicsClientId=self.client)

        self._region_bodies[region] = body_id
        self._body_regions[body_id] = region
        self._active[region] = True
        return body_id

    @staticmethod
    def _region_rgba(region: Region) -> list:
        owner = region.node.parent.flower if region.node and region.node.parent else None
        if owner is not None:
            return [*owner.color, 1.0]
        if region.is_trigger:
            return [1.0, 1.0, 0.0, 0.5]
        return [0.3, 0.5, 0.3, 1.0]

    def create_agent(self, position: Sequence[float] = (0.0, 0.0, 1.5)) -> PyBulletBody:
        """Create the agent's rigid body: a small sphere without gravity."""
        radius = self.config.agent_radius
        collision = p.createCollisionShape(p.GEOM_SPHERE, radius=radius, physicsClientId=self.client)
        visual = -1
        if self.gui:
            visual = p.createVisualShape(p.GEOM_SPHERE, radius=radius, rgbaColor=[0.1, 0.6, 0.9, 1.0],
                                         physicsClientId=self.client)
        body_id = p.createMultiBody(
            baseMass=self.config.agent_mass,
            baseCollisionShapeIndex=collision,
            baseVisualShapeIndex=visual,
            basePosition=list(position),
            physicsClientId=self.client
        )
        p.changeDynamics(body_id, -1,
                         linearDamping=self.config.linear_damping,
                         angularDamping=1.0,
                         restitution=0.1,
                         physicsClientId=self.client)
        p.setCollisionFilterGroupMask(body_id, -1, COLLISION_GROUP_AGENT, COLLISION_GROUP_SCENE,
                                      physicsClientId=self.client)
        self.agent_body = PyBulletBody(self.client, body_id)
        return self.agent_body

    def sync_scene(self):
        for region, body_id in self._region_bodies.items():
            p.resetBasePositionAndOrientation(body_id, region.position.tolist(),
                                              region.rotation.as_quat().tolist(),
                                              physicsClientId=self.client)
        self._sync_activation()
        p.performCollisionDetection(physicsClientId=self.client)
        self._touching_triggers.clear()
        self._touching_solids.clear()

    def _sync_activation(self):
        for region, body_id in self._region_bodies.items():
            if self._active[region] != region.active:
                self._active[region] = region.active
                if not region.is_trigger:
                    mask = COLLISION_GROUP_AGENT if region.active else 0
                    p.setCollisionFilterGroupMask(body_id, -1, COLLISION_GROUP_SCENE, mask,
                                                  physicsClientId=self.client)
            if self.gui:
                rgba = self._region_rgba(region) if region.active else [0.0, 0.0, 0.0, 0.0]
                if self._colors.get(region) != tuple(rgba):
                    self._colors[region] = tuple(rgba)
                    p.changeVisualShape(body_id, -1, rgbaColor=rgba, physicsClientId=self.client)

    # ---------- simulation ----------

    def step(self) -> Tuple[List[RegionContact], List[BodyCollision]]:
        """
        Advance one fixed tick and return this tick's contact events.

        A trigger is touched by the agent's body sphere or by the small
        beak-tip sphere `beak_length` ahead of it along the body's +X axis.
        """
        self._sync_activation()
        p.stepSimulation(physicsClientId=self.client)
        if self.agent_body is None:
            return [], []

        position = self.agent_body.position
        radius = self.config.agent_radius
        beak_tip = position + Rotation.from_quat(self.agent_body.orientation).apply([self.config.beak_length, 0.0, 0.0])
        reach = max(radius, self.config.beak_length + self.config.beak_tip_radius)

        touching_triggers = set()
        for region in self._regions_near(position, reach):
            if not region.is_trigger:
                continue
            if region.distance(position) <= radius or region.distance(beak_tip) <= self.config.beak_tip_radius:
                touching_triggers.add(region)
        contacts = [RegionContact(region, region in self._touching_triggers) for region in touching_triggers]
        self._touching_triggers = touching_triggers

        touching_solids = set()
        for contact in p.getContactPoints(bodyA=self.agent_body.body_id, physicsClientId=self.client) or ():
            region = self._body_regions.get(contact[2])
            if region is not None and region.active:
                touching_solids.add(region)
        collisions = [BodyCollision(region) for region in touching_solids - self._touching_solids]
        self._touching_solids = touching_solids

        return contacts, collisions

    def _regions_near(self, point: np.ndarray, radius: float) -> List[Region]:
        """Active regions whose bounds overlap a cube around `point` (broadphase only)."""
        overlapping = p.getOverlappingObjects((point - radius).tolist(), (point + radius).tolist(),
                                              physicsClientId=self.client) or []
        regions = []
        for body_id, _link in overlapping:
            region = self._body_regions.get(body_id)
            if region is not None and region.active:
                regions.append(region)
        return regions

    # ---------- queries ----------

    def overlap_count(self, point: Sequence[float], radius: float) -> int:
        point = np.asarray(point, dtype=float)
        return sum(1 for region in self._regions_near(point, radius) if region.distance(point) <= radius)

    def closest_point(self, region: Region, point: Sequence[float]) -> np.ndarray:
        return region.closest_point(point)

    def draw_debug_line(self, start: Sequence[float], end: Sequence[float], color=(0.0, 1.0, 0.0)):
        if not self.gui:
            return
        self._debug_line = p.addUserDebugLine(list(start), list(end), lineColorRGB=list(color),
                                              replaceItemUniqueId=self._debug_line,
                                              physicsClientId=self.client)

    def close(self):
        if self.client >= 0:
            p.disconnect(physicsClientId=self.client)
            self.client = -1
