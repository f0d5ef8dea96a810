"""Per-edge parametric correction of lens and projection distortion."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

import cv2
import numpy as np
from loguru import logger

OUT_OF_RANGE_COLOR = (0, 0, 0, 255)


@dataclass(frozen=True, slots=True)
class DistortionParams:
    """Warp coefficients for each frame edge plus a global zoom."""

    top: float = 0.3
    bottom: float = 0.3
    left: float = 0.1
    right: float = 0.1
    scale: float = 1.0

    def __post_init__(self) -> None:
        if self.scale <= 0:
            raise ValueError(f"Distortion scale must be positive, got {self.scale}")

    @property
    def is_identity(self) -> bool:
        return self.top == self.bottom == self.left == self.right == 0.0 and self.scale == 1.0


@dataclass(slots=True)
class SampleMap:
    """Source pixel coordinates for every destination pixel and the out-of-range mask."""

    map_x: np.ndarray
    map_y: np.ndarray
    out_of_range: np.ndarray


def sample_map(width: int, height: int, params: DistortionParams) -> SampleMap:
    """Compute where each destination pixel samples the source.

    Coordinates follow texture conventions: ``v`` points up, so image row 0
    sits near ``v = 1`` and the ``top`` coefficient applies to the upper half
    of the frame.
    """
    u = (np.arange(width, dtype=np.float64) + 0.5) / width
    v = 1.0 - (np.arange(height, dtype=np.float64) + 0.5) / height
    st_x, st_y = np.meshgrid(u * 2.0 - 1.0, v * 2.0 - 1.0)

    st_x /= params.scale
    st_y /= params.scale
    dx2 = st_x * st_x
    dy2 = st_y * st_y

    coef_y = np.where(st_y > 0.0, params.top, params.bottom)
    coef_x = np.where(st_x > 0.0, params.right, params.left)
    factor_x = 1.0 - coef_x * dy2
    factor_y = 1.0 - coef_y * dx2

    final_u = (st_x * factor_x + 1.0) * 0.5
    final_v = (st_y * factor_y + 1.0) * 0.5
    out_of_range = (final_u < 0.0) | (final_u > 1.0) | (final_v < 0.0) | (final_v > 1.0)

    map_x = (final_u * width - 0.5).astype(np.float32)
    map_y = ((1.0 - final_v) * height - 0.5).astype(np.float32)
    return SampleMap(map_x=map_x, map_y=map_y, out_of_range=out_of_range)


class DistortionCorrector:
    """Applies the edge-warp correction to whole frames on the CPU.

    Sampling is bilinear with edge clamping; samples falling outside the unit
    square are painted opaque black.
    """

    def __init__(self, params: Optional[DistortionParams] = None) -> None:
        self._params = params or DistortionParams()
        self._cache_key: Optional[Tuple[int, int, DistortionParams]] = None
        self._cached_map: Optional[SampleMap] = None

    @property
    def params(self) -> DistortionParams:
        return self._params

    def set_params(self, params: Optional[DistortionParams] = None, **overrides: float) -> DistortionParams:
        """Replace the parameters, or merge individual coefficient overrides into them."""
        base = params or self._params
        self._params = replace(base, **overrides) if overrides else base
        logger.debug("Distortion parameters set to {}", self._params)
        return self._params

    def correct(self, source: np.ndarray, params: Optional[DistortionParams] = None) -> np.ndarray:
        """Return a corrected copy of ``source`` with the same dimensions."""
        params = params or self._params
        height, width = source.shape[:2]
        if params.is_identity:
            return source.copy()

        mapping = self._map_for(width, height, params)
        corrected = cv2.remap(
            source,
            mapping.map_x,
            mapping.map_y,
            interpolation=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_REPLICATE,
        )
        corrected[mapping.out_of_range] = OUT_OF_RANGE_COLOR[: corrected.shape[-1]]
        return corrected

    def _map_for(self, width: int, height: int, params: DistortionParams) -> SampleMap:
        key = (width, height, params)
        if key != self._cache_key or self._cached_map is None:
            self._cached_map = sample_map(width, height, params)
            self._cache_key = key
            logger.debug("Built {}x{} distortion map", width, height)
        return self._cached_map
