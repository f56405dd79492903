#!/usr/bin/env python3
"""
Tests for a single flower: feeding, emptying and refilling.
"""

import numpy as np
import pytest

from conftest import make_flower
from nectar_flower import FlowerState, NECTAR_REGION_NAME, PETAL_REGION_NAME
from nectar_scene import euler_rotation


def test_new_flower_is_full(flower):
    """A freshly created flower holds one unit of nectar."""
    assert flower.nectar_amount == 1.0
    assert flower.has_nectar
    assert flower.state is FlowerState.FULL
    assert flower.color == flower.FULL_COLOR


def test_bind_references_uses_conventional_children(flower):
    assert flower.nectar_region is flower.node.find(NECTAR_REGION_NAME).region
    assert flower.petal_region is flower.node.find(PETAL_REGION_NAME).region


def test_repeated_small_feeds():
    """Ten feeds of 0.01 each take exactly what was asked."""
    flower = make_flower("Flower")
    taken = [flower.feed(0.01) for _ in range(10)]

    assert taken == pytest.approx([0.01] * 10)
    assert flower.nectar_amount == pytest.approx(0.9)
    assert flower.has_nectar
    assert flower.state is FlowerState.FULL
    assert flower.nectar_region.active
    assert flower.petal_region.active


def test_feed_more_than_remaining_empties_flower():
    """Asking for more than is left returns the remainder and disables the flower."""
    flower = make_flower("Flower")
    flower.nectar_amount = 0.001

    taken = flower.feed(5.0)

    assert taken == pytest.approx(0.001)
    assert flower.nectar_amount == 0.0
    assert not flower.has_nectar
    assert flower.state is FlowerState.EMPTY
    assert flower.color == flower.EMPTY_COLOR
    assert not flower.nectar_region.active
    assert not flower.petal_region.active


def test_feed_empty_flower_takes_nothing(flower):
    flower.feed(1.0)
    assert flower.feed(0.5) == 0.0
    assert flower.nectar_amount == 0.0


def test_feed_zero_is_a_no_op(flower):
    assert flower.feed(0.0) == 0.0
    assert flower.nectar_amount == 1.0
    assert flower.state is FlowerState.FULL


def test_negative_feed_rejected(flower):
    with pytest.raises(ValueError):
        flower.feed(-0.1)
    assert flower.nectar_amount == 1.0


def test_reset_refills_and_reactivates(flower):
    flower.feed(2.0)
    flower.reset_flower()

    assert flower.nectar_amount == 1.0
    assert flower.has_nectar
    assert flower.state is FlowerState.FULL
    assert flower.nectar_region.active
    assert flower.petal_region.active


def test_up_vector_and_center_follow_nectar_region():
    """The flower's up axis and center come from its nectar region."""
    flower = make_flower("Flower", position=(1.0, 2.0, 3.0), rotation=euler_rotation(pitch=90.0))

    # Pitching by +90 degrees turns local up (+Z) into world +X
    np.testing.assert_allclose(flower.up_vector, [1.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(flower.center_position, [1.01, 2.0, 3.0], atol=1e-9)


def test_flower_without_nectar_region_falls_back_to_node():
    flower = make_flower("Bare", position=(0.5, 0.0, 0.0), with_nectar=False)

    assert flower.nectar_region is None
    np.testing.assert_allclose(flower.center_position, [0.5, 0.0, 0.0])
    np.testing.assert_allclose(flower.up_vector, [0.0, 0.0, 1.0], atol=1e-9)


def test_petal_fallback_picks_first_solid_region():
    """Without a FlowerCollider child the petals are the first non-trigger region."""
    flower = make_flower("NoPetals", with_petals=False)
    assert flower.petal_region is None

    flower = make_flower("Flower")
    flower.petal_region = None
    flower.node.find(PETAL_REGION_NAME).name = "Petals"
    flower.bind_references()
    assert flower.petal_region is flower.node.find("Petals").region
