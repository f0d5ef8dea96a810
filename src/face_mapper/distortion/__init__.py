"""Frame-wide distortion correction applied before segmentation."""

from .corrector import DistortionCorrector, DistortionParams, SampleMap, sample_map  # noqa: F401
