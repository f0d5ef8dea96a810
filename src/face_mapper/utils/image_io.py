"""Image IO helper routines."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import cv2
import numpy as np
from loguru import logger


def to_rgba(frame: np.ndarray) -> np.ndarray:
    """Convert an OpenCV grayscale, BGR, or BGRA frame to RGBA."""
    if frame.ndim == 2:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
    channels = frame.shape[2]
    if channels == 3:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
    if channels == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
    raise ValueError(f"Unsupported frame with {channels} channels")


def to_bgr(raster: np.ndarray) -> np.ndarray:
    """Convert an RGBA raster to BGR for OpenCV display."""
    return cv2.cvtColor(raster, cv2.COLOR_RGBA2BGR)


def load_image_rgba(path: Path) -> np.ndarray:
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ValueError(f"Failed to load image from {path}")
    return to_rgba(image)


def save_frame(raster: np.ndarray, directory: Path, stem: Optional[str] = None) -> Path:
    """Persist an RGBA raster to disk as PNG."""
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
    stem = stem or "frame"
    path = directory / f"{stem}_{timestamp}.png"
    if not cv2.imwrite(str(path), cv2.cvtColor(raster, cv2.COLOR_RGBA2BGRA)):
        raise RuntimeError(f"Failed to write frame to {path}")
    logger.debug("Saved frame to {}", path)
    return path


def save_channels(channels: Mapping[str, np.ndarray], directory: Path) -> Dict[str, Path]:
    """Save each channel raster as ``channel_<name>_<timestamp>.png``."""
    saved: Dict[str, Path] = {}
    for name, raster in channels.items():
        saved[name] = save_frame(raster, directory, stem=f"channel_{name}")
    logger.info("Saved {} channel(s) to {}", len(saved), directory)
    return saved


def tile_channels(channels: List[np.ndarray], columns: int = 3) -> np.ndarray:
    """Lay out equally sized channel rasters in a grid for preview."""
    if not channels:
        raise ValueError("No channels to tile")
    height, width = channels[0].shape[:2]
    rows = (len(channels) + columns - 1) // columns
    sheet = np.zeros((rows * height, columns * width, 4), dtype=np.uint8)
    for index, raster in enumerate(channels):
        row, col = divmod(index, columns)
        sheet[row * height : (row + 1) * height, col * width : (col + 1) * width] = raster
    return sheet
