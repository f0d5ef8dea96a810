"""pytest configuration and fixtures for the face_mapper test suite."""

from __future__ import annotations

import numpy as np
import pytest


def make_rgba(height: int, width: int, seed: int = 0, alpha: int = 255) -> np.ndarray:
    """Random opaque RGBA raster with a fixed seed."""
    rng = np.random.default_rng(seed)
    raster = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    raster[..., 3] = alpha
    return raster


@pytest.fixture
def frame_256() -> np.ndarray:
    return make_rgba(256, 256, seed=7)


@pytest.fixture
def frame_64x32() -> np.ndarray:
    return make_rgba(32, 64, seed=3)


@pytest.fixture
def white_frame() -> np.ndarray:
    return np.full((64, 64, 4), 255, dtype=np.uint8)
