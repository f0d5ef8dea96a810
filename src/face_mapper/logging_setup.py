"""Configure the loguru sink from the pipeline configuration."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from face_mapper.config import LoggingConfig


def configure_logging(config: LoggingConfig) -> int:
    """Replace loguru's default sink with the configured one and return its handler id."""
    logger.remove()
    output = config.output.lower()
    if output == "stdout":
        sink = sys.stdout
    elif output == "stderr":
        sink = sys.stderr
    else:
        path = Path(config.output)
        path.parent.mkdir(parents=True, exist_ok=True)
        return logger.add(path, level=config.level, rotation="10 MB", enqueue=False)
    return logger.add(sink, level=config.level)
