"""Perspective dewarping of face quads."""

from .warper import PerspectiveWarper, average_color  # noqa: F401
