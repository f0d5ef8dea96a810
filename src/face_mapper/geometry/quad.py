"""Points, quads, and normalized regions used to describe face layouts."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

import numpy as np

from face_mapper.errors import DegenerateQuad, InvalidSize


@dataclass(frozen=True, slots=True)
class Point2D:
    """A 2D point, either normalized to [0, 1] or in absolute pixels."""

    x: float
    y: float

    def to_pixels(self, width: int, height: int) -> "Point2D":
        """Convert a normalized point into pixel space of a width x height raster."""
        return Point2D(self.x * width, self.y * height)

    def distance_to(self, other: "Point2D") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True, slots=True)
class Region:
    """Axis-aligned rectangle normalized to frame dimensions."""

    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.w > 0 and self.h > 0

    def to_pixel_box(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Return ``(x0, y0, x1, y1)`` in pixels, clipped to the frame."""
        x0 = int(round(self.x * width))
        y0 = int(round(self.y * height))
        x1 = int(round((self.x + self.w) * width))
        y1 = int(round((self.y + self.h) * height))
        x0, x1 = max(0, x0), min(width, x1)
        y0, y1 = max(0, y0), min(height, y1)
        return x0, y0, x1, y1


@dataclass(frozen=True, slots=True)
class Quad:
    """Four points ordered clockwise from the top-left: TL, TR, BR, BL."""

    points: Tuple[Point2D, Point2D, Point2D, Point2D]

    def __post_init__(self) -> None:
        if len(self.points) != 4:
            raise DegenerateQuad(f"Quad requires exactly 4 points, got {len(self.points)}")

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float] | Point2D]) -> "Quad":
        """Build a quad from ``Point2D`` values or ``(x, y)`` pairs."""
        converted = []
        for point in points:
            if isinstance(point, Point2D):
                converted.append(point)
                continue
            if len(point) != 2:
                raise DegenerateQuad(f"Quad points must be (x, y) pairs, got {point!r}")
            converted.append(Point2D(float(point[0]), float(point[1])))
        if len(converted) != 4:
            raise DegenerateQuad(f"Quad requires exactly 4 points, got {len(converted)}")
        return cls(tuple(converted))  # type: ignore[arg-type]

    def to_pixels(self, width: int, height: int) -> "Quad":
        return Quad(tuple(point.to_pixels(width, height) for point in self.points))  # type: ignore[arg-type]

    def as_array(self) -> np.ndarray:
        return np.array([[point.x, point.y] for point in self.points], dtype=np.float64)

    def as_list(self) -> list[list[float]]:
        return [[point.x, point.y] for point in self.points]

    def __iter__(self):
        return iter(self.points)

    def __len__(self) -> int:
        return 4

    def __getitem__(self, index: int) -> Point2D:
        return self.points[index]


def derive_output_size(quad: Quad) -> Tuple[int, int]:
    """Return the ``(width, height)`` a quad rectifies to.

    Width is the longer of the top and bottom edges, height the longer of the
    left and right edges, both truncated to whole pixels.
    """
    tl, tr, br, bl = quad.points
    width = int(max(tl.distance_to(tr), br.distance_to(bl)))
    height = int(max(tl.distance_to(bl), tr.distance_to(br)))
    if width <= 0 or height <= 0:
        raise InvalidSize(f"Quad rectifies to an empty raster ({width}x{height})")
    return width, height


def quad_from_region(region: Region) -> Quad:
    """Seed a TL, TR, BR, BL quad from the corners of a rectangular region."""
    return Quad(
        (
            Point2D(region.x, region.y),
            Point2D(region.x + region.w, region.y),
            Point2D(region.x + region.w, region.y + region.h),
            Point2D(region.x, region.y + region.h),
        )
    )


def order_quad(points: Iterable[Sequence[float] | Point2D]) -> Quad:
    """Reorder four arbitrary points into TL, TR, BR, BL.

    Points are sorted by angle around their centroid (clockwise in image
    coordinates, where y grows downward) and rotated so the corner with the
    smallest ``x + y`` comes first.
    """
    arr = Quad.from_points(points).as_array()
    centroid = arr.mean(axis=0)
    angles = np.arctan2(arr[:, 1] - centroid[1], arr[:, 0] - centroid[0])
    ordered = arr[np.argsort(angles)]
    start = int(np.argmin(ordered[:, 0] + ordered[:, 1]))
    ordered = np.roll(ordered, -start, axis=0)
    return Quad.from_points(ordered.tolist())


def validate_quad_order(quad: Quad) -> None:
    """Raise ``DegenerateQuad`` unless the quad is convex, clockwise, and starts at TL."""
    arr = quad.as_array()
    if not np.all(np.isfinite(arr)):
        raise DegenerateQuad("Quad contains non-finite coordinates")

    edges = np.roll(arr, -1, axis=0) - arr
    next_edges = np.roll(edges, -1, axis=0)
    turns = edges[:, 0] * next_edges[:, 1] - edges[:, 1] * next_edges[:, 0]
    if not np.all(turns > 0):
        raise DegenerateQuad(
            "Quad must be convex and ordered clockwise TL, TR, BR, BL (in image coordinates)"
        )

    sums = arr[:, 0] + arr[:, 1]
    if sums[0] > sums.min():
        raise DegenerateQuad("Quad must start at its top-left corner")
