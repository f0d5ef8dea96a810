"""Rectifies quadrilateral regions of a frame into fronto-parallel rasters."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import cv2
import numpy as np
from loguru import logger

from face_mapper.geometry import HomographySolver, Quad, derive_output_size

Z_EPSILON = 1e-9
SAMPLE_SNAP = 1e-9
FALLBACK_SAMPLE_STRIDE = 10
MAX_CACHED_GRIDS = 16

RGB = Tuple[int, int, int]


def average_color(source: np.ndarray, stride: int = FALLBACK_SAMPLE_STRIDE) -> RGB:
    """Mean RGB over every ``stride``-th pixel with nonzero alpha, truncated to ints.

    Returns (0, 0, 0) when no sampled pixel is visible.
    """
    samples = source.reshape(-1, source.shape[-1])[::stride]
    visible = samples[samples[:, 3] > 0, :3].astype(np.int64)
    if visible.shape[0] == 0:
        return (0, 0, 0)
    totals = visible.sum(axis=0)
    count = visible.shape[0]
    return tuple(int(total // count) for total in totals)  # type: ignore[return-value]


def _snap(coords: np.ndarray) -> np.ndarray:
    """Move coordinates within rounding noise of an integer onto that integer."""
    nearest = np.rint(coords)
    return np.where(np.abs(coords - nearest) <= SAMPLE_SNAP, nearest, coords)


class PerspectiveWarper:
    """Resamples a source quad into a rectangle through a solved homography.

    Sampling is nearest neighbour by integer truncation; destination pixels that
    map outside the source (or whose homogeneous denominator vanishes) receive
    an opaque fallback color.
    """

    def __init__(self, solver: Optional[HomographySolver] = None, z_epsilon: float = Z_EPSILON) -> None:
        self._solver = solver or HomographySolver()
        self._z_epsilon = z_epsilon
        self._grids: Dict[Tuple[int, int], Tuple[np.ndarray, np.ndarray]] = {}

    def warp(
        self,
        source: np.ndarray,
        quad: Quad,
        fallback_color: Optional[RGB] = None,
    ) -> np.ndarray:
        """Rectify ``quad`` (pixel coordinates in ``source``) into a new RGBA raster.

        The output size is derived from the quad's edge lengths.

        Raises:
            InvalidSize: If the quad rectifies to an empty raster.
            DegenerateQuad: If the homography cannot be solved.
        """
        width, height = derive_output_size(quad)
        matrix = self._solver.solve(width, height, quad)
        fill = fallback_color if fallback_color is not None else average_color(source)

        grid_x, grid_y = self._grid(width, height)
        z = matrix[2, 0] * grid_x + matrix[2, 1] * grid_y + matrix[2, 2]
        usable = np.abs(z) >= self._z_epsilon
        z[~usable] = 1.0

        src_x = _snap((matrix[0, 0] * grid_x + matrix[0, 1] * grid_y + matrix[0, 2]) / z)
        src_y = _snap((matrix[1, 0] * grid_x + matrix[1, 1] * grid_y + matrix[1, 2]) / z)

        src_height, src_width = source.shape[:2]
        inside = usable & (src_x >= 0) & (src_x < src_width) & (src_y >= 0) & (src_y < src_height)

        output = np.empty((height, width, 4), dtype=np.uint8)
        output[...] = (fill[0], fill[1], fill[2], 255)
        output[inside] = source[src_y[inside].astype(np.intp), src_x[inside].astype(np.intp)]
        return output

    def warp_into(
        self,
        source: np.ndarray,
        quad: Quad,
        channel: np.ndarray,
        fallback_color: Optional[RGB] = None,
    ) -> np.ndarray:
        """Warp ``quad`` and resample the result into the fixed-size ``channel`` buffer."""
        warped = self.warp(source, quad, fallback_color)
        channel_height, channel_width = channel.shape[:2]
        if warped.shape[:2] == (channel_height, channel_width):
            channel[...] = warped
        else:
            channel[...] = cv2.resize(
                warped,
                (channel_width, channel_height),
                interpolation=cv2.INTER_LINEAR,
            )
            logger.trace(
                "Resampled {}x{} warp into {}x{} channel",
                warped.shape[1],
                warped.shape[0],
                channel_width,
                channel_height,
            )
        return channel

    def _grid(self, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        cached = self._grids.get((width, height))
        if cached is None:
            xs = np.arange(width, dtype=np.float64)
            ys = np.arange(height, dtype=np.float64)
            cached = tuple(np.meshgrid(xs, ys))
            if len(self._grids) >= MAX_CACHED_GRIDS:
                self._grids.clear()
            self._grids[(width, height)] = cached
        return cached
