"""Homography utilities for rectifying a source quad into a destination rectangle."""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from face_mapper.errors import DegenerateQuad
from face_mapper.geometry.quad import Point2D, Quad

PIVOT_EPSILON = 1e-10


def _source_array(source_quad: Quad | Iterable[Sequence[float] | Point2D]) -> np.ndarray:
    if isinstance(source_quad, Quad):
        return source_quad.as_array()
    points = [
        (point.x, point.y) if isinstance(point, Point2D) else tuple(point)
        for point in source_quad
    ]
    if len(points) != 4:
        raise DegenerateQuad(f"Need exactly four source points, got {len(points)}")
    arr = np.asarray(points, dtype=np.float64)
    if arr.shape != (4, 2):
        raise DegenerateQuad(f"Source points must be (x, y) pairs, got shape {arr.shape}")
    return arr


def solve_homography(
    dest_width: float,
    dest_height: float,
    source_quad: Quad | Iterable[Sequence[float] | Point2D],
    pivot_epsilon: float = PIVOT_EPSILON,
) -> np.ndarray:
    """Compute the projective transform from a destination rectangle to a source quad.

    Destination corners are taken as (0, 0), (W, 0), (W, H), (0, H) and paired
    positionally with the source points. The returned 3x3 matrix maps
    destination pixels ``(x, y, 1)`` to source homogeneous coordinates, with
    ``H[2, 2]`` fixed at 1.

    Args:
        dest_width: Width of the destination rectangle.
        dest_height: Height of the destination rectangle.
        source_quad: Four source points in TL, TR, BR, BL order.
        pivot_epsilon: Pivots smaller than this (relative to the largest
            coefficient in the system) are treated as singular.

    Returns:
        3x3 homography matrix.

    Raises:
        DegenerateQuad: If the quad does not have four points or the system is singular.
    """
    src = _source_array(source_quad)
    dst = np.array(
        [[0.0, 0.0], [dest_width, 0.0], [dest_width, dest_height], [0.0, dest_height]],
        dtype=np.float64,
    )

    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i, ((dx, dy), (sx, sy)) in enumerate(zip(dst, src)):
        a[2 * i] = [dx, dy, 1.0, 0.0, 0.0, 0.0, -sx * dx, -sx * dy]
        a[2 * i + 1] = [0.0, 0.0, 0.0, dx, dy, 1.0, -sy * dx, -sy * dy]
        b[2 * i] = sx
        b[2 * i + 1] = sy

    if not np.all(np.isfinite(a)) or not np.all(np.isfinite(b)):
        raise DegenerateQuad("Homography system contains non-finite coefficients")

    solution = _solve_gaussian(a, b, pivot_epsilon)
    matrix = np.append(solution, 1.0).reshape(3, 3)
    if not np.all(np.isfinite(matrix)):
        raise DegenerateQuad("Homography solve produced non-finite entries")
    # |det| is bounded by the product of column norms.
    bound = float(np.prod(np.linalg.norm(matrix, axis=0)))
    if abs(np.linalg.det(matrix)) <= pivot_epsilon * bound:
        raise DegenerateQuad("Singular homography (three or more collinear corners)")
    return matrix


def _solve_gaussian(a: np.ndarray, b: np.ndarray, pivot_epsilon: float) -> np.ndarray:
    """Solve ``a @ x = b`` in place by Gaussian elimination with partial pivoting."""
    n = a.shape[0]
    scale = float(np.abs(a).max()) or 1.0
    threshold = pivot_epsilon * scale

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(a[col:, col])))
        if abs(a[pivot_row, col]) <= threshold:
            raise DegenerateQuad("Singular homography system (collinear or repeated points)")
        if pivot_row != col:
            a[[col, pivot_row]] = a[[pivot_row, col]]
            b[[col, pivot_row]] = b[[pivot_row, col]]

        factors = a[col + 1 :, col] / a[col, col]
        a[col + 1 :, col:] -= np.outer(factors, a[col, col:])
        b[col + 1 :] -= factors * b[col]

    x = np.zeros(n, dtype=np.float64)
    for row in range(n - 1, -1, -1):
        x[row] = (b[row] - a[row, row + 1 :] @ x[row + 1 :]) / a[row, row]
    return x


def apply_homography(matrix: np.ndarray, points: Iterable[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Map ``(x, y)`` points through a homography.

    Returns:
        Array of shape (N, 2). Points whose homogeneous denominator vanishes map to NaN.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    homogeneous = np.hstack([pts, np.ones((pts.shape[0], 1))]) @ matrix.T
    w = homogeneous[:, 2:3]
    with np.errstate(divide="ignore", invalid="ignore"):
        mapped = np.where(np.abs(w) > 0, homogeneous[:, :2] / w, np.nan)
    return mapped


class HomographySolver:
    """Solves destination-rectangle to source-quad homographies with a fixed pivot tolerance."""

    def __init__(self, pivot_epsilon: float = PIVOT_EPSILON) -> None:
        self._pivot_epsilon = pivot_epsilon

    def solve(
        self,
        dest_width: float,
        dest_height: float,
        source_quad: Quad | Iterable[Sequence[float] | Point2D],
    ) -> np.ndarray:
        return solve_homography(dest_width, dest_height, source_quad, self._pivot_epsilon)
