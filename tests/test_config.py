"""Tests for environment-driven configuration."""

import pytest

from wgpu_linalg import ConfigError, LinalgConfig, load_config


def test_defaults():
    assert load_config({}) == LinalgConfig()
    assert load_config({}).power_preference == "high-performance"


def test_reads_environment():
    config = load_config({
        "WGPU_LINALG_POWER_PREFERENCE": "Low-Power",
        "WGPU_LINALG_FATAL_ERRORS": "yes",
        "WGPU_LINALG_FALLBACK_ADAPTER": "1",
    })
    assert config.power_preference == "low-power"
    assert config.fatal_device_errors is True
    assert config.force_fallback_adapter is True


def test_rejects_unknown_power_preference():
    with pytest.raises(ConfigError):
        load_config({"WGPU_LINALG_POWER_PREFERENCE": "fastest"})


def test_rejects_bad_boolean():
    with pytest.raises(ConfigError):
        load_config({"WGPU_LINALG_FATAL_ERRORS": "maybe"})
