"""Segment a single still image with a saved face layout and write the channels to disk."""

from __future__ import annotations

import argparse
from pathlib import Path

from loguru import logger

from face_mapper.config import load_config
from face_mapper.logging_setup import configure_logging
from face_mapper.segmenter import FrameSegmenter
from face_mapper.utils import save_channels, save_frame
from face_mapper.video_source import StaticImageSource


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Segment one image into face channels")
    parser.add_argument("--config", type=Path, required=True, help="Path to segmenter YAML configuration")
    parser.add_argument("--image", type=Path, required=True, help="Input image")
    parser.add_argument("--output", type=Path, default=None, help="Output directory (default: storage.output_dir)")
    parser.add_argument("--no-dewarp", action="store_true", help="Use rectangle crops even when quads are set")
    parser.add_argument("--save-corrected", action="store_true", help="Also save the distortion-corrected frame")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    cfg = load_config(args.config)
    configure_logging(cfg.logging)

    source = StaticImageSource(args.image)
    segmenter = FrameSegmenter.from_config(cfg, source)
    if args.no_dewarp:
        segmenter.set_dewarp_enabled(False)

    report = segmenter.tick()
    if report.skipped:
        raise SystemExit(f"Image could not be processed: {report.reason}")
    for face, message in report.errors.items():
        logger.warning("{} left blank: {}", face.value, message)

    output_dir = args.output or (cfg.storage.output_dir if cfg.storage is not None else Path("output"))
    save_channels({face.value: segmenter.get_channel(face) for face in report.updated}, output_dir)

    if args.save_corrected:
        frame = source.read()
        corrected = segmenter.corrector.correct(frame, segmenter.state.distortion)
        save_frame(corrected, output_dir, stem="corrected")

    logger.info(
        "Dewarped {} face(s), cropped {} face(s), {} stale",
        len(report.dewarped),
        len(report.cropped),
        len(report.stale),
    )


if __name__ == "__main__":
    main()
