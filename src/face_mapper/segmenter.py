"""Per-tick orchestration: correct the frame, then fill one channel per active face."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import cv2
import numpy as np
from loguru import logger

from face_mapper.config import FaceConfig, RegionConfig, SegmenterConfig
from face_mapper.dewarp import PerspectiveWarper
from face_mapper.distortion import DistortionCorrector, DistortionParams
from face_mapper.errors import DegenerateQuad, InvalidSize, SourceNotReady
from face_mapper.faces import DEFAULT_ACTIVE_FACES, DEFAULT_REGIONS, FaceId
from face_mapper.geometry import Point2D, Quad, Region, validate_quad_order
from face_mapper.video_source import FrameSource

DEFAULT_CHANNEL_SIZE = (512, 512)


@dataclass(frozen=True, slots=True)
class SegmenterState:
    """Immutable snapshot of the face layout read by a single tick."""

    active_faces: frozenset
    regions: Mapping[FaceId, Region]
    quads: Mapping[FaceId, Quad]
    use_dewarp: bool
    use_distortion: bool
    distortion: DistortionParams


@dataclass(slots=True)
class TickReport:
    tick: int
    skipped: bool = False
    reason: Optional[str] = None
    dewarped: List[FaceId] = field(default_factory=list)
    cropped: List[FaceId] = field(default_factory=list)
    stale: List[FaceId] = field(default_factory=list)
    errors: Dict[FaceId, str] = field(default_factory=dict)

    @property
    def updated(self) -> List[FaceId]:
        return self.dewarped + self.cropped


class FrameSegmenter:
    """Splits each source frame into fixed-size per-face channels.

    Configuration mutators publish a new ``SegmenterState`` rather than
    editing the current one, so a tick always sees a whole layout.
    """

    def __init__(
        self,
        source: FrameSource,
        channel_size: Tuple[int, int] = DEFAULT_CHANNEL_SIZE,
        corrector: Optional[DistortionCorrector] = None,
        warper: Optional[PerspectiveWarper] = None,
        regions: Optional[Mapping[FaceId, Region]] = None,
        quads: Optional[Mapping[FaceId, Quad]] = None,
        active_faces: Optional[Iterable[FaceId]] = None,
        use_dewarp: bool = True,
        use_distortion: bool = True,
        fallback_color: Optional[Tuple[int, int, int]] = None,
    ) -> None:
        width, height = channel_size
        if width <= 0 or height <= 0:
            raise InvalidSize(f"Channel size must be positive, got {width}x{height}")
        self._source = source
        self._channel_size = (int(width), int(height))
        self._corrector = corrector or DistortionCorrector()
        self._warper = warper or PerspectiveWarper()
        self._fallback_color = fallback_color
        self._tick_count = 0
        self._channels: Dict[FaceId, np.ndarray] = {
            face: np.zeros((height, width, 4), dtype=np.uint8) for face in FaceId
        }

        merged_regions = dict(DEFAULT_REGIONS)
        merged_regions.update(regions or {})
        checked_quads: Dict[FaceId, Quad] = {}
        for face, quad in (quads or {}).items():
            validate_quad_order(quad)
            checked_quads[face] = quad
        self._state = SegmenterState(
            active_faces=frozenset(DEFAULT_ACTIVE_FACES if active_faces is None else active_faces),
            regions=MappingProxyType(merged_regions),
            quads=MappingProxyType(checked_quads),
            use_dewarp=use_dewarp,
            use_distortion=use_distortion,
            distortion=self._corrector.params,
        )

    @classmethod
    def from_config(cls, config: SegmenterConfig, source: FrameSource) -> "FrameSegmenter":
        fallback = config.dewarp.fallback_color
        segmenter = cls(
            source=source,
            channel_size=(config.channels.width, config.channels.height),
            corrector=DistortionCorrector(config.distortion.to_params()),
            regions={face: face_cfg.region.to_region() for face, face_cfg in config.faces.items()},
            quads={
                face: face_cfg.to_quad()
                for face, face_cfg in config.faces.items()
                if face_cfg.quad is not None
            },
            active_faces=[face for face, face_cfg in config.faces.items() if face_cfg.active],
            use_dewarp=config.dewarp.enabled,
            use_distortion=config.distortion.enabled,
            fallback_color=tuple(fallback) if fallback is not None else None,
        )
        logger.info(
            "Frame segmenter initialized with {} active face(s), channels {}x{}",
            len(segmenter.state.active_faces),
            config.channels.width,
            config.channels.height,
        )
        return segmenter

    @property
    def state(self) -> SegmenterState:
        return self._state

    @property
    def channel_size(self) -> Tuple[int, int]:
        return self._channel_size

    @property
    def corrector(self) -> DistortionCorrector:
        return self._corrector

    # Configuration mutators. Each takes effect from the next tick.

    def set_region(self, face: FaceId, region: Region) -> None:
        regions = dict(self._state.regions)
        regions[FaceId(face)] = region
        self._publish(regions=MappingProxyType(regions))

    def set_quad(self, face: FaceId, quad: Optional[Quad | Sequence[Sequence[float] | Point2D]]) -> None:
        """Set a face's normalized TL, TR, BR, BL quad, or clear it with ``None``.

        Raises:
            DegenerateQuad: If the points are not a convex clockwise quad starting top-left.
        """
        quads = dict(self._state.quads)
        if quad is None:
            quads.pop(FaceId(face), None)
        else:
            checked = quad if isinstance(quad, Quad) else Quad.from_points(quad)
            validate_quad_order(checked)
            quads[FaceId(face)] = checked
        self._publish(quads=MappingProxyType(quads))

    def set_active_faces(self, faces: Iterable[FaceId]) -> None:
        self._publish(active_faces=frozenset(FaceId(face) for face in faces))

    def set_dewarp_enabled(self, enabled: bool) -> None:
        self._publish(use_dewarp=bool(enabled))

    def set_distortion_enabled(self, enabled: bool) -> None:
        self._publish(use_distortion=bool(enabled))

    def set_distortion_params(self, params: DistortionParams) -> None:
        self._publish(distortion=self._corrector.set_params(params))

    def _publish(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)

    # Read side.

    def get_channel(self, face: FaceId, copy: bool = False) -> np.ndarray:
        """Return the face's latest channel raster.

        Without ``copy`` this is a read-only view that the next tick overwrites.
        """
        channel = self._channels[FaceId(face)]
        if copy:
            return channel.copy()
        view = channel.view()
        view.flags.writeable = False
        return view

    def get_channels(self) -> Dict[FaceId, np.ndarray]:
        return {face: self.get_channel(face) for face in FaceId}

    def get_regions(self) -> Dict[FaceId, Region]:
        return dict(self._state.regions)

    def get_quads(self) -> Dict[FaceId, Quad]:
        return dict(self._state.quads)

    def layout(self) -> Dict[FaceId, FaceConfig]:
        """Describe the current layout in configuration form, for saving."""
        state = self._state
        layout: Dict[FaceId, FaceConfig] = {}
        for face in FaceId:
            quad = state.quads.get(face)
            layout[face] = FaceConfig(
                active=face in state.active_faces,
                region=RegionConfig.from_region(state.regions.get(face, Region())),
                quad=quad.as_list() if quad is not None else None,
            )
        return layout

    # Tick.

    def tick(self) -> TickReport:
        """Run one orchestration pass. Never raises pipeline errors to the caller."""
        self._tick_count += 1
        report = TickReport(tick=self._tick_count)
        state = self._state

        try:
            frame = self._source.read()
        except SourceNotReady as exc:
            report.skipped = True
            report.reason = str(exc)
            logger.debug("Tick {} skipped: {}", report.tick, exc)
            return report

        corrected = self._corrector.correct(frame, state.distortion) if state.use_distortion else frame
        frame_height, frame_width = corrected.shape[:2]

        for face in FaceId:
            if face not in state.active_faces:
                continue
            channel = self._channels[face]
            quad = state.quads.get(face) if state.use_dewarp else None
            try:
                if quad is not None:
                    self._warper.warp_into(
                        corrected,
                        quad.to_pixels(frame_width, frame_height),
                        channel,
                        self._fallback_color,
                    )
                    report.dewarped.append(face)
                elif self._crop_into(corrected, state.regions.get(face), channel):
                    report.cropped.append(face)
                else:
                    report.stale.append(face)
            except (DegenerateQuad, InvalidSize) as exc:
                report.stale.append(face)
                report.errors[face] = str(exc)
                logger.warning("Face {} skipped on tick {}: {}", face.value, report.tick, exc)

        return report

    @staticmethod
    def _crop_into(frame: np.ndarray, region: Optional[Region], channel: np.ndarray) -> bool:
        if region is None or not region.is_active:
            return False
        frame_height, frame_width = frame.shape[:2]
        x0, y0, x1, y1 = region.to_pixel_box(frame_width, frame_height)
        if x1 <= x0 or y1 <= y0:
            return False
        channel_height, channel_width = channel.shape[:2]
        channel[...] = cv2.resize(
            frame[y0:y1, x0:x1],
            (channel_width, channel_height),
            interpolation=cv2.INTER_LINEAR,
        )
        return True
