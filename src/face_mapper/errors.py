"""Error kinds raised by the face correction pipeline."""

from __future__ import annotations


class FaceMapperError(Exception):
    """Base class for all face_mapper errors."""


class DegenerateQuad(FaceMapperError, ValueError):
    """Quad does not have exactly four usable points or its homography is singular."""


class InvalidSize(FaceMapperError, ValueError):
    """A derived or configured raster dimension is not positive."""


class SourceNotReady(FaceMapperError, RuntimeError):
    """The frame source has no frame for this tick (loading, paused, or ended)."""
