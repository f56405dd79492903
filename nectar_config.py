from dataclasses import dataclass, fields
from typing import Tuple
import os

import yaml


@dataclass
class NectarConfig:
    # Agent motion
    move_force: float = 2.0            # Force applied per unit of move action
    pitch_speed: float = 100.0         # Degrees per second at full pitch command
    yaw_speed: float = 100.0           # Degrees per second at full yaw command
    max_pitch_angle: float = 80.0
    turn_smoothing_rate: float = 2.0   # Max change of the smoothed command per second
    agent_radius: float = 0.04
    agent_mass: float = 0.3
    linear_damping: float = 0.5
    beak_length: float = 0.06          # Beak tip offset along the agent forward axis
    beak_tip_radius: float = 0.008

    # Feeding and rewards
    feed_amount: float = 0.01
    nectar_bonus: float = 0.10
    facing_bonus: float = 0.02
    boundary_penalty: float = -1.0

    # Area
    area_diameter: float = 20.0
    plant_tilt_angle: float = 5.0      # Max pitch/roll jitter of a plant on reset
    plant_yaw_angle: float = 180.0

    # Spawn placement
    spawn_attempts: int = 100
    spawn_clearance: float = 0.05
    flower_spawn_distance: Tuple[float, float] = (0.1, 0.2)
    free_spawn_height: Tuple[float, float] = (1.2, 2.5)
    free_spawn_radius: Tuple[float, float] = (2.0, 7.0)
    free_spawn_pitch: float = 60.0

    # Episode timing
    fixed_delta_time: float = 0.02
    decision_period: int = 5           # Physics ticks per environment step
    max_steps: int = 5000              # Physics ticks per episode, 0 = unlimited

    # Scene authoring
    scene_seed: int = 0
    num_plants: int = 8
    flowers_per_plant: int = 3
    plant_ring_radius: Tuple[float, float] = (2.0, 7.0)
    stem_height: Tuple[float, float] = (0.8, 1.6)
    arena_height: float = 6.0

    @property
    def max_turn_change(self) -> float:
        return self.turn_smoothing_rate * self.fixed_delta_time


def load_config(path: str = "nectar.yaml") -> NectarConfig:
    """Load configuration from YAML, filtered to NectarConfig fields."""
    cfg = NectarConfig()
    if os.path.exists(path):
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        valid = {f.name: f for f in fields(NectarConfig)}
        filtered = {}
        for key, value in raw.items():
            if key not in valid:
                continue
            # YAML has no tuples; ranges come back as lists
            if isinstance(value, list):
                value = tuple(value)
            filtered[key] = value
        cfg = NectarConfig(**filtered)
    return cfg
