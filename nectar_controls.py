"""
Manual control mapping: keyboard state -> the agent's 5-float action vector.
"""

from dataclasses import dataclass

import numpy as np
import pygame


@dataclass
class KeyState:
    forward: bool = False      # W
    back: bool = False         # S
    left: bool = False         # A
    right: bool = False        # D
    up: bool = False           # Space
    down: bool = False         # Left Ctrl
    pitch_up: bool = False     # Up arrow
    pitch_down: bool = False   # Down arrow
    yaw_right: bool = False    # Right arrow
    yaw_left: bool = False     # Left arrow


def action_from_keys(keys: KeyState, forward: np.ndarray, right: np.ndarray) -> np.ndarray:
    """
    Map key presses to [x, y, z, pitch, yaw].

    Forward/back move along the agent's forward vector, left/right along its
    right vector, up/down along the world up axis. The summed move is clamped
    to unit length.
    """
    move_forward = np.zeros(3)
    if keys.forward:
        move_forward = forward
    elif keys.back:
        move_forward = -forward

    strafe = np.zeros(3)
    if keys.left:
        strafe = -right
    elif keys.right:
        strafe = right

    vertical = np.zeros(3)
    if keys.up:
        vertical = np.array([0.0, 0.0, 1.0])
    elif keys.down:
        vertical = np.array([0.0, 0.0, -1.0])

    pitch = 0.0
    if keys.pitch_up:
        pitch = 1.0
    elif keys.pitch_down:
        pitch = -1.0

    yaw = 0.0
    if keys.yaw_right:
        yaw = 1.0
    elif keys.yaw_left:
        yaw = -1.0

    move = move_forward + strafe + vertical
    magnitude = np.linalg.norm(move)
    if magnitude > 1.0:
        move = move / magnitude

    action = np.array([move[0], move[1], move[2], pitch, yaw], dtype=np.float32)
    return np.clip(action, -1.0, 1.0)


def read_pygame_keys() -> KeyState:
    """Current keyboard state from pygame. Requires an initialized display."""
    pressed = pygame.key.get_pressed()
    return KeyState(
        forward=bool(pressed[pygame.K_w]),
        back=bool(pressed[pygame.K_s]),
        left=bool(pressed[pygame.K_a]),
        right=bool(pressed[pygame.K_d]),
        up=bool(pressed[pygame.K_SPACE]),
        down=bool(pressed[pygame.K_LCTRL]),
        pitch_up=bool(pressed[pygame.K_UP]),
        pitch_down=bool(pressed[pygame.K_DOWN]),
        yaw_right=bool(pressed[pygame.K_RIGHT]),
        yaw_left=bool(pressed[pygame.K_LEFT]),
    )
