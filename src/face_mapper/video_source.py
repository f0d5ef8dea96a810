"""Frame providers polled once per tick by the segmenter."""

from __future__ import annotations

import abc
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import cv2
import numpy as np
from loguru import logger

from face_mapper.config import SourceConfig
from face_mapper.errors import SourceNotReady
from face_mapper.utils.image_io import load_image_rgba, to_rgba

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp"}


class FrameSource(abc.ABC):
    """Base class for anything that can hand the segmenter an RGBA frame."""

    def __init__(self) -> None:
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def read(self) -> np.ndarray:
        """Return the current frame as RGBA, or raise ``SourceNotReady``."""
        if self._paused:
            raise SourceNotReady("Frame source is paused")
        frame = self._read_frame()
        if frame is None or frame.size == 0 or frame.shape[0] == 0 or frame.shape[1] == 0:
            raise SourceNotReady("Frame dimensions are unknown")
        return frame

    @abc.abstractmethod
    def _read_frame(self) -> Optional[np.ndarray]:
        """Fetch the next RGBA frame; ``None`` when nothing is available."""

    def release(self) -> None:
        """Free any underlying device or file handle."""


class ArraySource(FrameSource):
    """Serves frames from memory, repeating the last one once the sequence runs out."""

    def __init__(self, frames: Union[np.ndarray, Iterable[np.ndarray]], loop: bool = False) -> None:
        super().__init__()
        if isinstance(frames, np.ndarray):
            frames = [frames]
        self._frames: Sequence[np.ndarray] = list(frames)
        self._loop = loop
        self._index = 0

    def _read_frame(self) -> Optional[np.ndarray]:
        if not self._frames:
            return None
        if self._index >= len(self._frames):
            if not self._loop:
                return self._frames[-1]
            self._index = 0
        frame = self._frames[self._index]
        self._index += 1
        return frame


class StaticImageSource(ArraySource):
    """Serves a single still image from disk on every tick."""

    def __init__(self, path: Path) -> None:
        super().__init__(load_image_rgba(path))
        logger.info("Loaded still image source {}", path)


class VideoCaptureSource(FrameSource):
    """Reads frames from a video file or camera device through OpenCV."""

    def __init__(
        self,
        target: Union[str, Path, int],
        loop: bool = True,
        resolution: Optional[Sequence[int]] = None,
        fps: Optional[int] = None,
    ) -> None:
        super().__init__()
        self._target = target
        self._loop = loop
        self._ended = False
        self._capture = cv2.VideoCapture(target if isinstance(target, int) else str(target))
        if resolution is not None:
            self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, resolution[0])
            self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, resolution[1])
        if fps is not None:
            self._capture.set(cv2.CAP_PROP_FPS, fps)
        if not self._capture.isOpened():
            raise RuntimeError(f"Failed to open video source {target!r}")
        logger.info("Opened video source {} (loop={})", target, loop)

    @property
    def ended(self) -> bool:
        return self._ended

    def _read_frame(self) -> Optional[np.ndarray]:
        if self._ended:
            raise SourceNotReady("Video source has ended")
        ok, frame = self._capture.read()
        if not ok and self._loop and not isinstance(self._target, int):
            self._capture.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, frame = self._capture.read()
        if not ok:
            if not isinstance(self._target, int):
                self._ended = True
                logger.info("Video source {} ended", self._target)
            return None
        return to_rgba(frame)

    def release(self) -> None:
        self._capture.release()


def open_source(config: SourceConfig) -> FrameSource:
    """Build the frame source described by the configuration."""
    if config.device_id is not None:
        return VideoCaptureSource(
            config.device_id,
            loop=False,
            resolution=config.resolution,
            fps=config.fps,
        )
    path = Path(config.path)
    if path.suffix.lower() in IMAGE_SUFFIXES:
        return StaticImageSource(path)
    return VideoCaptureSource(path, loop=config.loop, resolution=config.resolution, fps=config.fps)
