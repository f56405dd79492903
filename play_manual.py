#!/usr/bin/env python3
"""
Fly the hummingbird yourself.

A small pygame window captures the keyboard while the PyBullet GUI shows the
flower area. W/S/A/D move, Space/Left-Ctrl climb and sink, arrow keys pitch
and yaw, F freezes or unfreezes the bird, R starts a new episode, Esc quits.
"""

import argparse

import pygame

from nectar_config import load_config
from nectar_controls import action_from_keys, read_pygame_keys
from nectar_env import HummingbirdEnv
from nectar_logging import print_episode_summary, print_reset_info, print_step_info, setup_logging


def main(config_path: str, seed: int, verbose: bool = False):
    setup_logging()
    config = load_config(config_path)
    env = HummingbirdEnv(config=config, training_mode=False, render_mode="human")

    pygame.init()
    window = pygame.display.set_mode((360, 120))
    pygame.display.set_caption("Hummingbird controls (keep this window focused)")
    font = pygame.font.SysFont(None, 24)
    clock = pygame.time.Clock()

    obs, info = env.reset(seed=seed)
    print_reset_info(info)
    step = 0
    running = True

    try:
        while running:
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        running = False
                    elif event.key == pygame.K_f:
                        if env.agent.frozen:
                            env.agent.unfreeze_agent()
                        else:
                            env.agent.freeze_agent()
                    elif event.key == pygame.K_r:
                        print_episode_summary(step, info)
                        obs, info = env.reset()
                        print_reset_info(info, initial=False)
                        step = 0

            action = action_from_keys(read_pygame_keys(), env.agent.forward, env.agent.right)
            obs, reward, terminated, truncated, info = env.step(action)
            step += 1
            if verbose and step % 50 == 0:
                print_step_info(step, action, reward, info)

            window.fill((20, 20, 30))
            lines = [
                f"Nectar: {info['nectar_obtained']:.2f}",
                f"Flowers left: {info['flowers_remaining']} / {info['total_flowers']}",
                "FROZEN" if env.agent.frozen else f"Distance: {obs[9] * config.area_diameter:.2f}",
            ]
            for i, line in enumerate(lines):
                window.blit(font.render(line, True, (230, 230, 230)), (10, 10 + 30 * i))
            pygame.display.flip()

            clock.tick(int(1.0 / (config.fixed_delta_time * config.decision_period)))

    except KeyboardInterrupt:
        print("\n  Interrupted by user")

    finally:
        print_episode_summary(step, info)
        env.close()
        pygame.quit()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Fly the hummingbird with the keyboard.')
    parser.add_argument('--config', type=str, default='nectar.yaml', help='Optional YAML config file')
    parser.add_argument('--seed', type=int, default=0, help='Episode seed')
    parser.add_argument('--verbose', action='store_true', help='Print step info every 50 steps')
    args = parser.parse_args()
    main(config_path=args.config, seed=args.seed, verbose=args.verbose)
