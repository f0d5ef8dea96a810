"""Tests for the edge-warp distortion corrector."""

from __future__ import annotations

import numpy as np
import pytest

from face_mapper.distortion import DistortionCorrector, DistortionParams, sample_map

from conftest import make_rgba

ZERO = DistortionParams(top=0.0, bottom=0.0, left=0.0, right=0.0, scale=1.0)


def test_default_params() -> None:
    params = DistortionParams()

    assert (params.top, params.bottom, params.left, params.right, params.scale) == (0.3, 0.3, 0.1, 0.1, 1.0)
    assert not params.is_identity
    assert ZERO.is_identity


def test_non_positive_scale_is_rejected() -> None:
    with pytest.raises(ValueError):
        DistortionParams(scale=0.0)


def test_zero_coefficients_are_identity() -> None:
    source = make_rgba(48, 64, seed=5)

    corrected = DistortionCorrector(ZERO).correct(source)

    np.testing.assert_array_equal(corrected, source)
    assert corrected is not source


def test_zero_coefficient_map_samples_each_pixel_itself() -> None:
    mapping = sample_map(64, 48, ZERO)

    ys, xs = np.mgrid[0:48, 0:64]
    np.testing.assert_allclose(mapping.map_x, xs, atol=1e-4)
    np.testing.assert_allclose(mapping.map_y, ys, atol=1e-4)
    assert not mapping.out_of_range.any()


def test_negative_top_pushes_upper_corners_out_of_range(white_frame: np.ndarray) -> None:
    params = DistortionParams(top=-0.3, bottom=0.0, left=0.0, right=0.0)

    corrected = DistortionCorrector(params).correct(white_frame)

    assert corrected.shape == white_frame.shape
    assert np.array_equal(corrected[0, 0], [0, 0, 0, 255])
    assert np.array_equal(corrected[0, -1], [0, 0, 0, 255])
    assert np.array_equal(corrected[0, 32], [255, 255, 255, 255])
    assert np.array_equal(corrected[-1, 0], [255, 255, 255, 255])


def test_positive_coefficients_keep_samples_in_range() -> None:
    mapping = sample_map(64, 64, DistortionParams())

    assert not mapping.out_of_range.any()


def test_top_coefficient_only_affects_upper_half() -> None:
    mapping = sample_map(64, 64, DistortionParams(top=0.4, bottom=0.0, left=0.0, right=0.0))

    ys, _ = np.mgrid[0:64, 0:64]
    np.testing.assert_allclose(mapping.map_y[32:], ys[32:], atol=1e-4)
    assert mapping.map_y[0, 0] > 0.5
    assert mapping.map_y[0, 32] == pytest.approx(0.0, abs=0.05)


def test_right_coefficient_only_affects_right_half() -> None:
    mapping = sample_map(64, 64, DistortionParams(top=0.0, bottom=0.0, left=0.0, right=0.4))

    _, xs = np.mgrid[0:64, 0:64]
    np.testing.assert_allclose(mapping.map_x[:, :32], xs[:, :32], atol=1e-4)
    assert mapping.map_x[0, 63] < 62.5


def test_zoom_out_blackens_border(white_frame: np.ndarray) -> None:
    corrected = DistortionCorrector(ZERO).correct(white_frame, DistortionParams(0.0, 0.0, 0.0, 0.0, scale=0.5))

    assert np.array_equal(corrected[0, 0], [0, 0, 0, 255])
    assert np.array_equal(corrected[32, 2], [0, 0, 0, 255])
    assert np.array_equal(corrected[32, 32], [255, 255, 255, 255])


def test_bilinear_sampling_blends_neighbours() -> None:
    source = np.zeros((8, 64, 4), dtype=np.uint8)
    source[..., 3] = 255
    source[:, ::2, :3] = 200

    corrected = DistortionCorrector(ZERO).correct(source, DistortionParams(0.0, 0.0, 0.0, 0.0, scale=1.5))

    center = corrected[4, 20:44, 0]
    assert np.any((center > 0) & (center < 200))


def test_set_params_merges_overrides() -> None:
    corrector = DistortionCorrector()

    updated = corrector.set_params(top=0.0, scale=2.0)

    assert updated == DistortionParams(top=0.0, bottom=0.3, left=0.1, right=0.1, scale=2.0)
    assert corrector.params is updated
