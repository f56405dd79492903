from enum import Enum
from typing import Optional

import numpy as np

from nectar_scene import Region, SceneNode

# Child node names used by the flower authoring convention
PETAL_REGION_NAME = "FlowerCollider"
NECTAR_REGION_NAME = "FlowerNectarCollider"


class FlowerState(Enum):
    FULL = "full"
    EMPTY = "empty"


class Flower:
    """Manages a single flower with nectar."""

    FULL_COLOR = (1.0, 0.0, 0.3)
    EMPTY_COLOR = (0.5, 0.0, 1.0)

    def __init__(self, node: SceneNode, nectar_region: Optional[Region] = None):
        self.node = node
        node.flower = self
        # Trigger region representing the nectar; may be bound later by the flower area
        self.nectar_region = nectar_region
        # Solid region representing the petals
        self.petal_region: Optional[Region] = None
        self.nectar_amount = 1.0
        self.state = FlowerState.FULL

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def position(self) -> np.ndarray:
        return self.node.world_position

    @property
    def up_vector(self) -> np.ndarray:
        """A vector pointing straight out of the flower."""
        if self.nectar_region is not None:
            return self.nectar_region.up
        return self.node.up

    @property
    def center_position(self) -> np.ndarray:
        """The center position of the nectar region."""
        if self.nectar_region is not None:
            return self.nectar_region.position
        return self.node.world_position

    @property
    def color(self) -> tuple:
        return self.FULL_COLOR if self.state is FlowerState.FULL else self.EMPTY_COLOR

    @property
    def has_nectar(self) -> bool:
        return self.nectar_amount > 0.0

    def bind_references(self):
        """Wire the petal region, and the nectar region when the conventional child exists."""
        petals = self.node.find(PETAL_REGION_NAME)
        if petals is not None and petals.region is not None:
            self.petal_region = petals.region
        nectar = self.node.find(NECTAR_REGION_NAME)
        if self.nectar_region is None and nectar is not None and nectar.region is not None:
            self.nectar_region = nectar.region

        if self.petal_region is None:
            self.petal_region = next(
                (r for r in self.node.regions() if not r.is_trigger and r is not self.nectar_region), None)

    def feed(self, amount: float) -> float:
        """
        Attempts to remove nectar from the flower.

        Returns the amount actually taken, which is less than `amount` when the
        flower runs dry. An emptied flower disables both of its regions.
        """
        if amount < 0:
            raise ValueError(f"feed amount must be non-negative, got {amount}")
        nectar_taken = min(max(amount, 0.0), self.nectar_amount)
        self.nectar_amount -= nectar_taken

        if self.nectar_amount <= 0.0:
            self.nectar_amount = 0.0
            self._set_regions_active(False)
            self.state = FlowerState.EMPTY
        return nectar_taken

    def reset_flower(self):
        """Refill the flower and re-enable its regions."""
        self.nectar_amount = 1.0
        self._set_regions_active(True)
        self.state = FlowerState.FULL

    def _set_regions_active(self, active: bool):
        if self.petal_region is not None:
            self.petal_region.active = active
        if self.nectar_region is not None:
            self.nectar_region.active = active

    def __repr__(self):
        return f"Flower({self.name!r}, nectar={self.nectar_amount:.3f})"
