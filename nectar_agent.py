"""
The hummingbird agent: spawn placement, action application, observations,
nearest-flower tracking and reward shaping.

The agent does not own its body or the flowers. It is driven by a harness
(see nectar_env.HummingbirdEnv) in this order per physics tick:
apply_action -> physics step -> on_region_contact / on_collision -> on_fixed_step.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from nectar_area import FlowerArea, FlowerRef
from nectar_config import NectarConfig
from nectar_flower import Flower
from nectar_logging import get_logger
from nectar_scene import (
    BOUNDARY_TAG, WORLD_FORWARD, WORLD_LEFT, WORLD_UP, Region,
    euler_rotation, look_angles, normalized, wrap_angle,
)

logger = get_logger("nectar.agent")

OBSERVATION_SIZE = 10
ACTION_SIZE = 5


def move_towards(current: float, target: float, max_delta: float) -> float:
    """Move `current` toward `target` by at most `max_delta`."""
    if abs(target - current) <= max_delta:
        return target
    return current + np.sign(target - current) * max_delta


class HummingbirdAgent:
    """
    A hummingbird that learns to feed from flowers.

    Actions are five floats in [-1, 1]: a world-frame move direction (x, y, z),
    a pitch command and a yaw command. Observations are ten floats:

        [0:4]  agent rotation relative to the area, as a quaternion [x, y, z, w]
        [4:7]  unit vector from the beak tip to the nearest nectar center
        [7]    dot(to-flower unit, -flower up): is the beak in front of the flower
        [8]    dot(beak forward, -flower up): is the beak pointing at the flower
        [9]    beak-to-nectar distance / area diameter

    All zeros while no flower with nectar is tracked.
    """

    def __init__(self, area: FlowerArea, body, collision, config: Optional[NectarConfig] = None,
                 training_mode: bool = False, rng: Optional[np.random.Generator] = None):
        self.area = area
        self.body = body
        self.collision = collision
        self.config = config or area.config
        self.training_mode = training_mode
        self.rng = rng if rng is not None else np.random.default_rng()

        self.max_steps = self.config.max_steps
        self.pitch = 0.0
        self.yaw = 0.0
        self.smooth_pitch_change = 0.0
        self.smooth_yaw_change = 0.0
        self.frozen = False

        self.nectar_obtained = 0.0
        self.episode_reward = 0.0
        self.step_count = 0
        self.spawn_failures = 0
        self._pending_reward = 0.0
        self._nearest_ref: Optional[FlowerRef] = None
        self._initialized = False

    def initialize(self):
        if not self.training_mode:
            # Gameplay mode runs forever
            self.max_steps = 0
        self._initialized = True

    # ---------- pose ----------

    @property
    def rotation(self) -> Rotation:
        return euler_rotation(pitch=self.pitch, yaw=self.yaw)

    @property
    def position(self) -> np.ndarray:
        return self.body.position

    @property
    def forward(self) -> np.ndarray:
        return self.rotation.apply(WORLD_FORWARD)

    @property
    def right(self) -> np.ndarray:
        return self.rotation.apply(-WORLD_LEFT)

    @property
    def beak_tip_position(self) -> np.ndarray:
        return self.position + self.forward * self.config.beak_length

    @property
    def nearest_flower(self) -> Optional[Flower]:
        return self.area.deref(self._nearest_ref)

    # ---------- episode ----------

    def begin_episode(self, rng: Optional[np.random.Generator] = None):
        if not self._initialized:
            raise RuntimeError("HummingbirdAgent.initialize() must be called before the first episode")
        if rng is not None:
            self.rng = rng

        if self.training_mode:
            self.area.reset_flowers(self.rng)
        self.collision.sync_scene()

        self.nectar_obtained = 0.0
        self.episode_reward = 0.0
        self._pending_reward = 0.0
        self.step_count = 0
        self.body.set_velocity((0.0, 0.0, 0.0), (0.0, 0.0, 0.0))

        # Gameplay always starts in front of a flower, training half of the time
        in_front_of_flower = not self.training_mode or self.rng.random() > 0.5
        self.move_to_safe_random_position(in_front_of_flower)
        self.update_nearest_flower()

    def is_episode_done(self) -> bool:
        return self.max_steps > 0 and self.step_count >= self.max_steps

    def add_reward(self, reward: float):
        self._pending_reward += reward
        self.episode_reward += reward

    def current_reward(self) -> float:
        """Reward accumulated since the previous call."""
        reward = self._pending_reward
        self._pending_reward = 0.0
        return reward

    # ---------- actions & observations ----------

    def apply_action(self, actions: Sequence[float]):
        """actions: 0:x, 1:y, 2:z, 3:pitch, 4:yaw"""
        actions = np.asarray(actions, dtype=float)
        if actions.shape != (ACTION_SIZE,):
            raise ValueError(f"expected {ACTION_SIZE} continuous actions, got shape {actions.shape}")
        if self.frozen:
            return

        cfg = self.config
        self.body.add_force(actions[:3] * cfg.move_force)

        # Smooth the turn commands, then integrate them into the orientation
        self.smooth_pitch_change = move_towards(self.smooth_pitch_change, actions[3], cfg.max_turn_change)
        self.smooth_yaw_change = move_towards(self.smooth_yaw_change, actions[4], cfg.max_turn_change)

        pitch = wrap_angle(self.pitch + self.smooth_pitch_change * cfg.fixed_delta_time * cfg.pitch_speed)
        self.pitch = float(np.clip(pitch, -cfg.max_pitch_angle, cfg.max_pitch_angle))
        self.yaw = float(self.yaw + self.smooth_yaw_change * cfg.fixed_delta_time * cfg.yaw_speed)

        self.body.set_orientation(self.rotation.as_quat())

    def collect_observations(self) -> np.ndarray:
        obs = np.zeros(OBSERVATION_SIZE, dtype=np.float32)
        flower = self.nearest_flower
        if flower is None:
            return obs

        local_rotation = self.area.root.world_rotation.inv() * self.rotation
        quat = local_rotation.as_quat()
        obs[0:4] = quat / np.linalg.norm(quat)

        beak_tip = self.beak_tip_position
        to_flower = flower.center_position - beak_tip
        to_flower_unit = normalized(to_flower)
        into_flower = -normalized(flower.up_vector)

        obs[4:7] = to_flower_unit
        obs[7] = np.dot(to_flower_unit, into_flower)
        obs[8] = np.dot(normalized(self.forward), into_flower)
        obs[9] = np.linalg.norm(to_flower) / self.area.area_diameter
        return obs

    # ---------- nearest flower ----------

    def update_nearest_flower(self):
        """Track the closest flower (to the beak tip) that still has nectar."""
        beak_tip = self.beak_tip_position
        nearest_index, nearest_distance = None, np.inf
        for index, flower in enumerate(self.area.flowers):
            if not flower.has_nectar:
                continue
            distance = np.linalg.norm(flower.position - beak_tip)
            if nearest_index is None or distance < nearest_distance:
                nearest_index, nearest_distance = index, distance

        if nearest_index is None:
            self._nearest_ref = None
        else:
            self._nearest_ref = FlowerRef(nearest_index, self.area.generation)

    # ---------- physics callbacks ----------

    def on_fixed_step(self):
        self.step_count += 1
        if self._nearest_ref is None:
            return
        flower = self.nearest_flower
        if flower is None or not flower.has_nectar:
            self.update_nearest_flower()

    def on_region_contact(self, region: Region, sustained: bool = False):
        """Called when the agent enters or stays inside a trigger region."""
        flower = self.area.get_flower_from_nectar(region)
        if flower is None:
            return

        beak_tip = self.beak_tip_position
        closest = self.collision.closest_point(region, beak_tip)
        if np.linalg.norm(beak_tip - closest) >= self.config.beak_tip_radius:
            return

        received = flower.feed(self.config.feed_amount)
        self.nectar_obtained += received

        if self.training_mode:
            facing = float(np.clip(np.dot(normalized(self.forward), -normalized(flower.up_vector)), 0.0, 1.0))
            self.add_reward(self.config.nectar_bonus + self.config.facing_bonus * facing)

        if not flower.has_nectar:
            self.update_nearest_flower()

    def on_collision(self, region: Region):
        if self.training_mode and region.tag == BOUNDARY_TAG:
            self.add_reward(self.config.boundary_penalty)

    def on_render_step(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Debug segment from the beak tip to the nearest nectar, if any."""
        flower = self.nearest_flower
        if flower is None:
            return None
        return self.beak_tip_position, flower.center_position

    # ---------- gameplay ----------

    def freeze_agent(self):
        if self.training_mode:
            logger.error("Freeze/Unfreeze not supported in training")
            return
        self.frozen = True
        self.body.sleep()

    def unfreeze_agent(self):
        if self.training_mode:
            logger.error("Freeze/Unfreeze not supported in training")
            return
        self.frozen = False
        self.body.wake_up()

    # ---------- spawning ----------

    def move_to_safe_random_position(self, in_front_of_flower: bool) -> bool:
        """
        Rejection-sample a spawn pose that does not overlap anything.

        Returns False when every attempt collided; the last candidate is used anyway.
        """
        cfg = self.config
        if in_front_of_flower and not self.area.flowers:
            logger.warning("No flowers to spawn in front of; spawning in the open")
            in_front_of_flower = False

        safe = False
        attempts = cfg.spawn_attempts
        position = np.zeros(3)
        pitch, yaw = 0.0, 0.0

        while not safe and attempts > 0:
            attempts -= 1
            if in_front_of_flower:
                candidates = [f for f in self.area.flowers if f.has_nectar] or self.area.flowers
                flower = candidates[self.rng.integers(len(candidates))]
                distance = self.rng.uniform(*cfg.flower_spawn_distance)
                position = flower.position + normalized(flower.up_vector) * distance
                pitch, yaw = look_angles(flower.center_position - position)
            else:
                height = self.rng.uniform(*cfg.free_spawn_height)
                radius = self.rng.uniform(*cfg.free_spawn_radius)
                direction = euler_rotation(yaw=self.rng.uniform(-180.0, 180.0)).apply(WORLD_FORWARD)
                position = self.area.position + WORLD_UP * height + direction * radius
                pitch = self.rng.uniform(-cfg.free_spawn_pitch, cfg.free_spawn_pitch)
                yaw = self.rng.uniform(-180.0, 180.0)

            safe = self.collision.overlap_count(position, cfg.spawn_clearance) == 0

        if not safe:
            logger.warning("Could not find a safe position to spawn")
            self.spawn_failures += 1

        self.pitch, self.yaw = float(pitch), float(yaw)
        self.body.set_pose(position, self.rotation.as_quat())
        return safe
