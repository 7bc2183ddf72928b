"""Runtime configuration for compute sessions.

Values come from environment variables so that adapter selection can be
steered without code changes, the same way the Vulkan ICD is selected:

    export WGPU_LINALG_POWER_PREFERENCE=low-power
    export WGPU_LINALG_FATAL_ERRORS=1
"""

import os
from typing import NamedTuple

from wgpu_linalg.wgpu_errors import ConfigError

POWER_PREFERENCES = ("high-performance", "low-power")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


class LinalgConfig(NamedTuple):
    """Settings consumed by :class:`wgpu_linalg.ComputeSession`."""

    power_preference: str = "high-performance"
    fatal_device_errors: bool = False
    force_fallback_adapter: bool = False


def _parse_bool(name, value):
    value = value.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def load_config(environ=None):
    """Build a :class:`LinalgConfig` from environment variables."""
    if environ is None:
        environ = os.environ

    power_preference = environ.get("WGPU_LINALG_POWER_PREFERENCE", "high-performance")
    power_preference = power_preference.strip().lower()
    if power_preference not in POWER_PREFERENCES:
        raise ConfigError(
            f"WGPU_LINALG_POWER_PREFERENCE must be one of {POWER_PREFERENCES}, "
            f"got {power_preference!r}"
        )

    return LinalgConfig(
        power_preference=power_preference,
        fatal_device_errors=_parse_bool(
            "WGPU_LINALG_FATAL_ERRORS", environ.get("WGPU_LINALG_FATAL_ERRORS", "0")
        ),
        force_fallback_adapter=_parse_bool(
            "WGPU_LINALG_FALLBACK_ADAPTER",
            environ.get("WGPU_LINALG_FALLBACK_ADAPTER", "0"),
        ),
    )
