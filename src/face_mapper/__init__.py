"""Video frame segmentation into perspective-corrected model face textures."""

from .config import SegmenterConfig, load_config  # noqa: F401
from .segmenter import FrameSegmenter, TickReport  # noqa: F401
