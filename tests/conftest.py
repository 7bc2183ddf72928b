# =============================================================================
# wgpu_linalg - Pytest Configuration
# =============================================================================

import pytest
import sys
import os

# Allow running from repo root without installing
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wgpu_linalg import ComputeSession, LinalgConfig


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "gpu: needs a wgpu adapter (skipped when none is available)"
    )


@pytest.fixture(scope="session")
def session():
    """One ready compute session shared by every GPU test."""
    try:
        s = ComputeSession(LinalgConfig()).init()
    except Exception as e:
        pytest.skip(f"no usable wgpu adapter: {e}")
    yield s
    s.cleanup()
