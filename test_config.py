#!/usr/bin/env python3
"""
Tests for the YAML configuration loader.
"""

import pytest

from nectar_config import NectarConfig, load_config


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config == NectarConfig()


def test_yaml_overrides_known_fields(tmp_path):
    path = tmp_path / "nectar.yaml"
    path.write_text(
        "feed_amount: 0.02\n"
        "nectar_bonus: 0.5\n"
        "free_spawn_height: [1.0, 2.0]\n"
        "not_a_setting: 42\n"
    )

    config = load_config(str(path))

    assert config.feed_amount == 0.02
    assert config.nectar_bonus == 0.5
    assert config.free_spawn_height == (1.0, 2.0)
    assert not hasattr(config, "not_a_setting")
    assert config.facing_bonus == NectarConfig().facing_bonus


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "nectar.yaml"
    path.write_text("")
    assert load_config(str(path)) == NectarConfig()


def test_max_turn_change():
    config = NectarConfig(turn_smoothing_rate=2.0, fixed_delta_time=0.02)
    assert config.max_turn_change == pytest.approx(0.04)
