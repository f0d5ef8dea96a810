"""End-to-end tests for per-tick face segmentation."""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from face_mapper.distortion import DistortionParams
from face_mapper.errors import DegenerateQuad
from face_mapper.faces import FaceId
from face_mapper.geometry import Quad, Region
from face_mapper.segmenter import FrameSegmenter
from face_mapper.video_source import ArraySource

IDENTITY = DistortionParams(top=0.0, bottom=0.0, left=0.0, right=0.0, scale=1.0)

STRIPS = {face: Region(0.2 * index, 0.0, 0.2, 1.0) for index, face in enumerate(FaceId)}


def _segmenter(frame: np.ndarray, **kwargs) -> FrameSegmenter:
    segmenter = FrameSegmenter(ArraySource(frame), **kwargs)
    segmenter.set_distortion_params(IDENTITY)
    return segmenter


def _expected_crop(frame: np.ndarray, region: Region, size=(512, 512)) -> np.ndarray:
    x0, y0, x1, y1 = region.to_pixel_box(frame.shape[1], frame.shape[0])
    return cv2.resize(frame[y0:y1, x0:x1], size, interpolation=cv2.INTER_LINEAR)


def test_five_faces_crop_their_regions(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256, regions=STRIPS, active_faces=list(FaceId), use_dewarp=False)

    report = segmenter.tick()

    assert not report.skipped
    assert sorted(report.cropped) == sorted(FaceId)
    for face, region in STRIPS.items():
        channel = segmenter.get_channel(face)
        assert channel.shape == (512, 512, 4)
        np.testing.assert_array_equal(channel, _expected_crop(frame_256, region))


def test_default_layout_uses_four_quarter_strips(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256, channel_size=(64, 128))

    report = segmenter.tick()

    assert sorted(report.cropped) == sorted([FaceId.FRONT, FaceId.LEFT, FaceId.RIGHT, FaceId.FLOOR])
    np.testing.assert_array_equal(
        segmenter.get_channel(FaceId.LEFT),
        _expected_crop(frame_256, Region(0.25, 0.0, 0.25, 1.0), size=(64, 128)),
    )
    assert not segmenter.get_channel(FaceId.BACK).any()


def test_inactive_region_leaves_channel_unchanged(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256, regions=STRIPS, active_faces=list(FaceId), use_dewarp=False)
    segmenter.tick()
    before = segmenter.get_channel(FaceId.BACK, copy=True)

    segmenter.set_region(FaceId.BACK, Region(0.1, 0.1, 0.0, 0.5))
    report = segmenter.tick()

    assert FaceId.BACK in report.stale
    np.testing.assert_array_equal(segmenter.get_channel(FaceId.BACK), before)


def test_quad_face_is_dewarped_into_channel(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)
    segmenter.set_quad(FaceId.FRONT, [(0.0, 0.0), (0.5, 0.0), (0.5, 0.5), (0.0, 0.5)])

    report = segmenter.tick()

    assert report.dewarped == [FaceId.FRONT]
    expected = cv2.resize(frame_256[:128, :128], (512, 512), interpolation=cv2.INTER_LINEAR)
    np.testing.assert_array_equal(segmenter.get_channel(FaceId.FRONT), expected)


def test_disabling_dewarp_falls_back_to_region_crop(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)
    segmenter.set_quad(FaceId.FRONT, [(0.1, 0.1), (0.6, 0.2), (0.5, 0.7), (0.0, 0.6)])
    segmenter.set_dewarp_enabled(False)

    report = segmenter.tick()

    assert FaceId.FRONT in report.cropped
    assert report.dewarped == []
    np.testing.assert_array_equal(
        segmenter.get_channel(FaceId.FRONT),
        _expected_crop(frame_256, Region(0.0, 0.0, 0.25, 1.0)),
    )


def test_face_failure_is_isolated(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)
    segmenter.set_quad(FaceId.FRONT, [(0.0, 0.0), (0.001, 0.0), (0.001, 0.001), (0.0, 0.001)])

    report = segmenter.tick()

    assert FaceId.FRONT in report.stale
    assert FaceId.FRONT in report.errors
    assert not segmenter.get_channel(FaceId.FRONT).any()
    assert sorted(report.cropped) == sorted([FaceId.LEFT, FaceId.RIGHT, FaceId.FLOOR])


def test_paused_source_skips_tick(frame_256: np.ndarray) -> None:
    source = ArraySource(frame_256)
    segmenter = FrameSegmenter(source)
    source.pause()

    report = segmenter.tick()

    assert report.skipped
    assert "paused" in report.reason
    assert not any(channel.any() for channel in segmenter.get_channels().values())


def test_empty_source_skips_tick() -> None:
    report = FrameSegmenter(ArraySource([])).tick()

    assert report.skipped


def test_set_quad_rejects_misordered_points(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)

    with pytest.raises(DegenerateQuad):
        segmenter.set_quad(FaceId.LEFT, [(0.25, 0.0), (0.5, 0.0), (0.25, 1.0), (0.5, 1.0)])
    with pytest.raises(DegenerateQuad):
        segmenter.set_quad(FaceId.LEFT, [(0.25, 0.0), (0.5, 0.0), (0.5, 1.0)])

    assert FaceId.LEFT not in segmenter.get_quads()


def test_set_quad_none_clears_quad(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)
    segmenter.set_quad(FaceId.LEFT, Quad.from_points([(0.25, 0.0), (0.5, 0.0), (0.5, 1.0), (0.25, 1.0)]))

    segmenter.set_quad(FaceId.LEFT, None)

    assert segmenter.get_quads() == {}


def test_mutators_publish_new_state_snapshots(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)
    snapshot = segmenter.state

    segmenter.set_region(FaceId.FRONT, Region(0.5, 0.5, 0.5, 0.5))
    segmenter.set_active_faces([FaceId.BACK])
    segmenter.set_distortion_enabled(False)

    assert snapshot.regions[FaceId.FRONT] == Region(0.0, 0.0, 0.25, 1.0)
    assert FaceId.FRONT in snapshot.active_faces
    assert snapshot.use_distortion
    assert segmenter.state.active_faces == frozenset({FaceId.BACK})
    with pytest.raises(TypeError):
        snapshot.regions[FaceId.FRONT] = Region()  # type: ignore[index]


def test_distortion_runs_before_segmentation(white_frame: np.ndarray) -> None:
    segmenter = FrameSegmenter(ArraySource(white_frame), channel_size=(64, 64), active_faces=[FaceId.FRONT])
    segmenter.set_region(FaceId.FRONT, Region(0.0, 0.0, 1.0, 1.0))
    segmenter.set_distortion_params(DistortionParams(0.0, 0.0, 0.0, 0.0, scale=0.5))

    segmenter.tick()
    assert np.array_equal(segmenter.get_channel(FaceId.FRONT)[0, 0], [0, 0, 0, 255])

    segmenter.set_distortion_enabled(False)
    segmenter.tick()
    assert np.array_equal(segmenter.get_channel(FaceId.FRONT)[0, 0], [255, 255, 255, 255])


def test_get_channel_is_read_only(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)
    segmenter.tick()

    channel = segmenter.get_channel(FaceId.FRONT)

    with pytest.raises(ValueError):
        channel[0, 0] = 0
    copied = segmenter.get_channel(FaceId.FRONT, copy=True)
    copied[0, 0] = 0


def test_layout_reflects_current_state(frame_256: np.ndarray) -> None:
    segmenter = _segmenter(frame_256)
    segmenter.set_quad(FaceId.FLOOR, [(0.75, 0.0), (1.0, 0.0), (1.0, 1.0), (0.75, 1.0)])

    layout = segmenter.layout()

    assert layout[FaceId.FLOOR].quad == [[0.75, 0.0], [1.0, 0.0], [1.0, 1.0], [0.75, 1.0]]
    assert layout[FaceId.BACK].active is False
    assert layout[FaceId.LEFT].region.x == 0.25
