import gymnasium as gym
from gymnasium import spaces
import numpy as np
from typing import Tuple, Dict, Any, Optional

from nectar_agent import HummingbirdAgent, ACTION_SIZE, OBSERVATION_SIZE
from nectar_area import FlowerArea, build_flower_area
from nectar_config import NectarConfig
from nectar_logging import get_logger
from nectar_physics import PyBulletWorld

logger = get_logger("nectar.env")


class HummingbirdEnv(gym.Env):
    """
    A hummingbird foraging for nectar in a 3D flower area.

    One environment step repeats the action for `decision_period` physics ticks.
    The reward is the shaped feeding bonus accumulated over those ticks.
    """

    metadata = {"render_modes": ["human"], "render_fps": 50}

    def __init__(self, config: Optional[NectarConfig] = None, training_mode: bool = True,
                 render_mode: Optional[str] = None):
        super().__init__()

        self.config = config or NectarConfig()
        self.training_mode = training_mode
        self.render_mode = render_mode

        # Action space: move x, move y, move z, pitch, yaw
        self.action_space = spaces.Box(low=-1.0, high=1.0, shape=(ACTION_SIZE,), dtype=np.float32)
        self.observation_space = spaces.Box(
            low=-np.inf, high=np.inf,
            shape=(OBSERVATION_SIZE,),
            dtype=np.float32
        )

        # Build the scene, then the physics mirror of it, then bind the flowers
        self.scene = build_flower_area(self.config)
        self.world = PyBulletWorld(self.config, gui=(render_mode == "human"))
        self.world.load_scene(self.scene)
        self.area = FlowerArea(self.scene, self.config)
        self.area.rebuild_lookup()

        body = self.world.create_agent()
        self.agent = HummingbirdAgent(self.area, body, self.world, self.config,
                                      training_mode=training_mode)
        self.agent.initialize()

        self.episode_steps = 0

    def reset(self, seed: Optional[int] = None, options: Optional[Dict[str, Any]] = None) -> Tuple[np.ndarray, Dict[str, Any]]:
        """Start a new episode: refill flowers (training) and respawn the agent."""
        super().reset(seed=seed)
        self.episode_steps = 0
        self.agent.begin_episode(self.np_random)

        observation = self.agent.collect_observations()
        info = self._get_info()
        return observation, info

    def step(self, action) -> Tuple[np.ndarray, float, bool, bool, Dict[str, Any]]:
        """Execute one decision step in the environment."""
        action = np.clip(np.asarray(action, dtype=np.float32).reshape(-1), -1.0, 1.0)
        if action.shape != (ACTION_SIZE,):
            raise ValueError(f"expected an action of shape ({ACTION_SIZE},), got {action.shape}")

        self.episode_steps += 1
        for _ in range(self.config.decision_period):
            self.agent.apply_action(action)
            contacts, collisions = self.world.step()
            for contact in contacts:
                self.agent.on_region_contact(contact.region, contact.sustained)
            for collision in collisions:
                self.agent.on_collision(collision.region)
            self.agent.on_fixed_step()
            if self.agent.is_episode_done():
                break

        if self.render_mode == "human":
            self.render()

        observation = self.agent.collect_observations()
        reward = float(self.agent.current_reward())
        truncated = self.agent.is_episode_done()
        info = self._get_info()

        return observation, reward, False, truncated, info

    def _get_info(self) -> Dict[str, Any]:
        flowers_remaining = sum(1 for flower in self.area.flowers if flower.has_nectar)
        return {
            'agent_position': self.agent.position,
            'nectar_obtained': self.agent.nectar_obtained,
            'episode_reward': self.agent.episode_reward,
            'flowers_remaining': flowers_remaining,
            'total_flowers': len(self.area.flowers),
            'step_count': self.episode_steps,
            'physics_steps': self.agent.step_count,
            'spawn_failures': self.agent.spawn_failures,
        }

    def render(self):
        segment = self.agent.on_render_step()
        if segment is not None:
            self.world.draw_debug_line(*segment)

    def close(self):
        self.world.close()


gym.register(
    id='Hummingbird-v0',
    entry_point='nectar_env:HummingbirdEnv',
)
