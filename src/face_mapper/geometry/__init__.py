"""Geometry primitives and homography solving."""

from .homography import HomographySolver, apply_homography, solve_homography  # noqa: F401
from .quad import (  # noqa: F401
    Point2D,
    Quad,
    Region,
    derive_output_size,
    order_quad,
    quad_from_region,
    validate_quad_order,
)
