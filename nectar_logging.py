"""
Logging configuration and console helpers for the nectar environment.

Library modules log through child loggers of "nectar" (nectar.area,
nectar.agent, nectar.physics, nectar.env). Scripts call setup_logging() once
and use the print helpers below for human-readable progress.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


def setup_logging(level: int = logging.INFO, log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Configure the "nectar" logger for a run. Returns the root project logger."""
    logger = logging.getLogger("nectar")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('[%(name)s] %(levelname)s: %(message)s'))
    logger.addHandler(console_handler)

    # Optional file handler (overwrites each run)
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='w')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(name)s] %(levelname)s: %(message)s',
            datefmt='%H:%M:%S'
        ))
        logger.addHandler(file_handler)

    logger.info(f"=== Nectar run started: {datetime.now().isoformat()} ===")
    return logger


def get_logger(name: str = "nectar") -> logging.Logger:
    """Get a logger instance under the nectar hierarchy."""
    if name != "nectar" and not name.startswith("nectar."):
        name = f"nectar.{name}"
    return logging.getLogger(name)


def print_step_info(step: int, action, reward: float, info: dict):
    """Prints formatted information for a single step."""
    print("-" * 20 + f" Step {step} " + "-" * 20)
    print(f"Action: {action}")
    print(f"Reward: {reward:.3f}")
    print_info_dict(info)
    print("-" * (48 + len(str(step))))


def print_reset_info(info: dict, initial: bool = True):
    """Prints formatted information after an environment reset."""
    title = " Initial State " if initial else " Environment Reset "
    print("=" * 20 + title + "=" * 20)
    print_info_dict(info)
    print("=" * (40 + len(title)))


def print_info_dict(info: dict):
    """Prints the contents of the info dictionary in a readable format."""
    if 'agent_position' in info:
        x, y, z = info['agent_position']
        print(f"Agent Position: ({x:.2f}, {y:.2f}, {z:.2f})")
    if 'flowers_remaining' in info and 'total_flowers' in info:
        print(f"Flowers with nectar: {info['flowers_remaining']} / {info['total_flowers']}")
    if 'nectar_obtained' in info:
        print(f"Nectar obtained: {info['nectar_obtained']:.2f}")
    if info.get('spawn_failures'):
        print(f"Unsafe spawns: {info['spawn_failures']}")


def print_episode_summary(step: int, info: dict):
    """Prints a summary at the end of an episode."""
    print("\n" + "#" * 20 + " Episode Finished " + "#" * 20)
    print(f"Finished at step {step}.")
    print_info_dict(info)
    print("#" * (60) + "\n")
