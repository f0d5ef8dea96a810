"""Logical model surfaces that receive a segment of the video frame."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from face_mapper.geometry import Region


class FaceId(str, Enum):
    FRONT = "front"
    BACK = "back"
    LEFT = "left"
    RIGHT = "right"
    FLOOR = "floor"


DEFAULT_REGIONS: Dict[FaceId, Region] = {
    FaceId.FRONT: Region(0.0, 0.0, 0.25, 1.0),
    FaceId.BACK: Region(0.0, 0.0, 0.0, 0.0),
    FaceId.LEFT: Region(0.25, 0.0, 0.25, 1.0),
    FaceId.RIGHT: Region(0.5, 0.0, 0.25, 1.0),
    FaceId.FLOOR: Region(0.75, 0.0, 0.25, 1.0),
}

DEFAULT_ACTIVE_FACES: FrozenSet[FaceId] = frozenset(
    {FaceId.FRONT, FaceId.LEFT, FaceId.RIGHT, FaceId.FLOOR}
)
