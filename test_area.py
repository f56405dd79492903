#!/usr/bin/env python3
"""
Tests for flower discovery, nectar-region binding and the area lookup.
"""

import logging

import numpy as np
import pytest

from conftest import make_flower
from nectar_area import FlowerArea, autowire_nectar, build_flower_area, resolve_nectar_region
from nectar_config import NectarConfig
from nectar_flower import Flower
from nectar_scene import (
    BOUNDARY_TAG, FLOWER_PLANT_TAG, Box, NodeKind, Region, SceneNode, Sphere,
)


def make_area(plants=2, flowers_per_plant=2):
    """Root -> Plants -> FlowerPlant_i -> Flower_i_j, authored the conventional way."""
    root = SceneNode("Area")
    group = root.add_child(SceneNode("Plants"))
    for i in range(plants):
        plant = group.add_child(SceneNode(f"FlowerPlant_{i}", tag=FLOWER_PLANT_TAG, position=(i, 0.0, 0.0)))
        for j in range(flowers_per_plant):
            flower = make_flower(f"Flower_{i}_{j}", position=(0.0, j, 1.0))
            plant.add_child(flower.node)
    return root


def unbound_flower(name, children):
    """A flower node with the given (name, tag, region) children and no binding."""
    node = SceneNode(name)
    for child_name, tag, region in children:
        node.add_child(SceneNode(child_name, tag=tag, region=region))
    return Flower(node)


def test_rebuild_finds_plants_and_flowers():
    area = FlowerArea(make_area(plants=2, flowers_per_plant=3))
    area.rebuild_lookup()

    assert [plant.name for plant in area.flower_plants] == ["FlowerPlant_0", "FlowerPlant_1"]
    assert len(area.flowers) == 6
    assert len(area.nectar_regions) == 6
    for flower in area.flowers:
        assert area.get_flower_from_nectar(flower.nectar_region) is flower


def test_rebuild_is_idempotent():
    area = FlowerArea(make_area())
    area.rebuild_lookup()
    flowers = list(area.flowers)
    mapping = {region: area.get_flower_from_nectar(region) for region in area.nectar_regions}

    area.rebuild_lookup()

    assert area.flowers == flowers
    assert all(a is b for a, b in zip(area.flowers, flowers))
    assert {region: area.get_flower_from_nectar(region) for region in area.nectar_regions} == mapping


def test_plant_reachable_twice_is_recorded_once():
    root = make_area(plants=1, flowers_per_plant=2)
    plant = root.find("Plants").find("FlowerPlant_0")
    root.add_child(SceneNode("Alias")).children.append(plant)

    area = FlowerArea(root)
    area.rebuild_lookup()

    assert len(area.flower_plants) == 1
    assert len(area.flowers) == 2


def test_lookup_of_unknown_or_missing_region():
    area = FlowerArea(make_area())
    area.rebuild_lookup()

    assert area.get_flower_from_nectar(None) is None
    assert area.get_flower_from_nectar(Region(Sphere(0.1), is_trigger=True)) is None


def test_duplicate_binding_keeps_first_flower(caplog):
    root = SceneNode("Area")
    first = make_flower("First")
    root.add_child(first.node)
    shared = first.nectar_region
    others = []
    for i in range(3):
        node = root.add_child(SceneNode(f"Copy_{i}"))
        others.append(Flower(node, nectar_region=shared))

    area = FlowerArea(root)
    with caplog.at_level(logging.WARNING, logger="nectar.area"):
        area.rebuild_lookup()

    assert area.get_flower_from_nectar(shared) is first
    assert area.nectar_regions == [shared]
    assert len(area.flowers) == 4
    assert sum("Duplicate nectar region" in r.message for r in caplog.records) == 3


def test_missing_nectar_region_is_excluded(caplog):
    root = SceneNode("Area")
    good = make_flower("Good")
    root.add_child(good.node)
    bare = Flower(root.add_child(SceneNode("Bare")))

    area = FlowerArea(root)
    with caplog.at_level(logging.ERROR, logger="nectar.area"):
        area.rebuild_lookup()

    assert bare in area.flowers
    assert bare.nectar_region is None
    assert area.nectar_regions == [good.nectar_region]
    assert any("'Bare' is missing a nectar region" in r.message for r in caplog.records)


def test_tag_beats_name_beats_arbitrary():
    solid = ("Petals", None, Region(Box((0.05, 0.05, 0.01))))
    named = ("SweetNectarSpot", None, Region(Box((0.01, 0.01, 0.01))))
    tagged = ("Center", "NECTAR", Region(Box((0.01, 0.01, 0.01))))

    flower = unbound_flower("Flower", [solid, named, tagged])
    assert resolve_nectar_region(flower) is tagged[2]

    flower = unbound_flower("Flower", [solid, named])
    assert resolve_nectar_region(flower) is named[2]

    flower = unbound_flower("Flower", [solid])
    assert resolve_nectar_region(flower) is solid[2]


def test_trigger_beats_arbitrary():
    solid = ("Petals", None, Region(Box((0.05, 0.05, 0.01))))
    trigger = ("Sensor", None, Region(Sphere(0.01), is_trigger=True))

    flower = unbound_flower("Flower", [solid, trigger])
    assert resolve_nectar_region(flower) is trigger[2]


def test_already_bound_region_wins():
    tagged = ("Center", "nectar", Region(Sphere(0.01), is_trigger=True))
    flower = unbound_flower("Flower", [tagged])
    chosen = Region(Sphere(0.02), is_trigger=True)
    flower.node.add_child(SceneNode("Chosen", region=chosen))
    flower.nectar_region = chosen

    root = SceneNode("Area")
    root.add_child(flower.node)
    area = FlowerArea(root)
    area.rebuild_lookup()

    assert area.get_flower_from_nectar(chosen) is flower
    assert area.get_flower_from_nectar(tagged[2]) is None


def test_rebuild_persists_resolved_binding():
    named = ("nectar_blob", None, Region(Sphere(0.01)))
    flower = unbound_flower("Flower", [named])
    root = SceneNode("Area")
    root.add_child(flower.node)

    FlowerArea(root).rebuild_lookup()

    assert flower.nectar_region is named[2]


def test_reset_flowers_tilts_plants_and_refills():
    area = FlowerArea(make_area(plants=3))
    area.rebuild_lookup()
    for flower in area.flowers:
        flower.feed(1.0)

    area.reset_flowers(np.random.default_rng(7))

    for plant in area.flower_plants:
        yaw, pitch, roll = plant.local_rotation.as_euler("ZYX", degrees=True)
        assert abs(pitch) <= 5.0 + 1e-9
        assert abs(roll) <= 5.0 + 1e-9
        assert abs(yaw) <= 180.0 + 1e-9
    assert all(flower.nectar_amount == 1.0 and flower.nectar_region.active for flower in area.flowers)


def test_reset_flowers_is_deterministic_for_a_seed():
    a, b = FlowerArea(make_area()), FlowerArea(make_area())
    a.rebuild_lookup()
    b.rebuild_lookup()

    a.reset_flowers(np.random.default_rng(3))
    b.reset_flowers(np.random.default_rng(3))

    for pa, pb in zip(a.flower_plants, b.flower_plants):
        np.testing.assert_allclose(pa.local_rotation.as_quat(), pb.local_rotation.as_quat())


def test_reset_flowers_on_empty_area():
    area = FlowerArea(SceneNode("Empty"))
    area.rebuild_lookup()
    area.reset_flowers(np.random.default_rng(0))
    assert area.flowers == []


def test_flower_ref_invalidated_by_rebuild():
    area = FlowerArea(make_area())
    area.rebuild_lookup()
    flower = area.flowers[1]
    ref = area.ref(flower)

    assert area.deref(ref) is flower
    area.rebuild_lookup()
    assert area.deref(ref) is None
    assert area.deref(area.ref(flower)) is flower
    assert area.deref(None) is None


def test_autowire_binds_and_reports_missing(caplog):
    root = SceneNode("Area")
    wired = make_flower("Wired")
    root.add_child(wired.node)
    fixable = unbound_flower("Fixable", [("Petals", None, Region(Box((0.05, 0.05, 0.01)))),
                                         ("Nectar", None, Region(Sphere(0.01), is_trigger=True))])
    root.add_child(fixable.node)
    root.add_child(Flower(SceneNode("Hopeless")).node)

    with caplog.at_level(logging.INFO, logger="nectar.area"):
        fixed, missing = autowire_nectar(root)

    assert (fixed, missing) == (1, 1)
    assert fixable.nectar_region is fixable.node.find("Nectar").region
    assert any("Fixed: 1, Still missing: 1" in r.message for r in caplog.records)


def test_build_flower_area_scene():
    config = NectarConfig(num_plants=4, flowers_per_plant=3)
    root = build_flower_area(config)
    area = FlowerArea(root, config)
    area.rebuild_lookup()

    assert len(area.flower_plants) == 4
    assert len(area.flowers) == 12
    assert len(area.nectar_regions) == 12
    assert all(plant.kind is NodeKind.PLANT for plant in area.flower_plants)
    assert sum(1 for region in root.regions() if region.tag == BOUNDARY_TAG) == 5

    for flower in area.flowers:
        assert flower.nectar_region.is_trigger
        assert flower.petal_region is not None
        # Flowers open outwards and upwards
        assert flower.up_vector[2] > 0.0


def test_build_flower_area_is_seeded():
    config = NectarConfig(scene_seed=11)
    a = FlowerArea(build_flower_area(config))
    b = FlowerArea(build_flower_area(config))
    a.rebuild_lookup()
    b.rebuild_lookup()

    for fa, fb in zip(a.flowers, b.flowers):
        np.testing.assert_allclose(fa.position, fb.position)


def test_area_properties():
    config = NectarConfig(area_diameter=12.0)
    area = FlowerArea(SceneNode("Area", position=(1.0, 2.0, 0.0)), config)
    assert area.area_diameter == 12.0
    np.testing.assert_allclose(area.position, [1.0, 2.0, 0.0])


@pytest.mark.parametrize("tag", ["nectar", "Nectar", "NECTAR"])
def test_nectar_tag_is_case_insensitive(tag):
    flower = unbound_flower("Flower", [("A", None, Region(Sphere(0.01), is_trigger=True)),
                                       ("B", tag, Region(Sphere(0.01)))])
    assert resolve_nectar_region(flower) is flower.node.find("B").region
