"""Run the face segmenter against a live camera or video and preview every channel."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

import cv2
from loguru import logger

from face_mapper.config import load_config, save_config
from face_mapper.faces import FaceId
from face_mapper.logging_setup import configure_logging
from face_mapper.segmenter import FrameSegmenter, TickReport
from face_mapper.utils import save_channels, tile_channels, to_bgr
from face_mapper.video_source import open_source


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live face segmentation loop")
    parser.add_argument("--config", type=Path, required=True, help="Path to segmenter YAML configuration")
    parser.add_argument("--headless", action="store_true", help="Disable on-screen preview windows")
    parser.add_argument("--max-ticks", type=int, default=None, help="Stop after this many ticks")
    parser.add_argument(
        "--save-layout",
        type=Path,
        default=None,
        help="Where to write the face layout on exit (defaults to the input config)",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    cfg = load_config(args.config)
    configure_logging(cfg.logging)
    if cfg.source is None:
        raise SystemExit("Configuration has no 'source' section")

    source = open_source(cfg.source)
    segmenter = FrameSegmenter.from_config(cfg, source)
    output_dir = cfg.storage.output_dir if cfg.storage is not None else Path("output")

    logger.info("Starting segmentation loop. Q=quit D=dewarp C=correction S=save channels P=pause")
    ticks = 0
    last_report: Optional[TickReport] = None
    try:
        while args.max_ticks is None or ticks < args.max_ticks:
            last_report = segmenter.tick()
            ticks += 1
            if last_report.errors:
                logger.debug("Tick {} face errors: {}", last_report.tick, last_report.errors)
            if getattr(source, "ended", False):
                logger.info("Source ended after {} tick(s)", ticks)
                break

            if args.headless:
                continue

            _render_preview(segmenter)
            key = cv2.waitKey(1) & 0xFF
            if key in (ord("q"), 27):
                break
            elif key == ord("d"):
                segmenter.set_dewarp_enabled(not segmenter.state.use_dewarp)
                logger.info("Dewarp {}", "enabled" if segmenter.state.use_dewarp else "disabled")
            elif key == ord("c"):
                segmenter.set_distortion_enabled(not segmenter.state.use_distortion)
                logger.info("Distortion correction {}", "enabled" if segmenter.state.use_distortion else "disabled")
            elif key == ord("p"):
                if source.paused:
                    source.resume()
                else:
                    source.pause()
            elif key == ord("s"):
                save_channels(
                    {face.value: segmenter.get_channel(face) for face in segmenter.state.active_faces},
                    output_dir,
                )
    finally:
        if last_report is not None and not last_report.skipped:
            save_channels(
                {face.value: segmenter.get_channel(face) for face in segmenter.state.active_faces},
                output_dir,
            )
        layout_path = args.save_layout or args.config
        save_config(cfg.model_copy(update={"faces": segmenter.layout()}), layout_path)
        logger.info("Saved face layout to {}", layout_path)
        source.release()
        cv2.destroyAllWindows()
        logger.info("Segmentation loop stopped")


def _render_preview(segmenter: FrameSegmenter) -> None:
    state = segmenter.state
    faces = [face for face in FaceId if face in state.active_faces]
    if not faces:
        return
    sheet = tile_channels([segmenter.get_channel(face) for face in faces])
    width, height = segmenter.channel_size
    for index, face in enumerate(faces):
        row, col = divmod(index, 3)
        mode = "quad" if state.use_dewarp and face in state.quads else "rect"
        cv2.putText(
            sheet,
            f"{face.value} ({mode})",
            (col * width + 10, row * height + 30),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.7,
            (0, 255, 0, 255),
            2,
        )
    cv2.imshow("Channels", to_bgr(sheet))


if __name__ == "__main__":
    main()
