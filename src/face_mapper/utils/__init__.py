"""Shared helpers."""

from .image_io import load_image_rgba, save_channels, save_frame, tile_channels, to_bgr, to_rgba  # noqa: F401
