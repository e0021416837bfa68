#!/usr/bin/env python3
"""CLI for running live facial emotion recognition on a camera or video file."""

from __future__ import annotations

import argparse
import logging
import queue
from pathlib import Path
from typing import Optional, Sequence

import cv2

from emotionrec.config import PipelineConfig, load_config
from emotionrec.detectors import build_detector
from emotionrec.inference.engine import InferenceEngine
from emotionrec.io_utils import ensure_dir, setup_logging, write_json_line
from emotionrec.pipeline.analyzer import FrameAnalyzer
from emotionrec.pipeline.preprocess import normalize_orientation
from emotionrec.types import Frame, FrameResult
from emotionrec.viz.overlay import draw_results

LOGGER = logging.getLogger("scripts.run_live")

WINDOW_NAME = "emotionrec"
STATS_EVERY_FRAMES = 300


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run real-time facial emotion recognition")
    parser.add_argument(
        "source",
        nargs="?",
        default="0",
        help="Camera index or video file path (default: camera 0)",
    )
    parser.add_argument(
        "--pipeline-config",
        type=Path,
        default=Path("configs/pipeline.yaml"),
        help="Pipeline configuration YAML",
    )
    parser.add_argument("--model", type=str, default=None, help="Override classifier model path")
    parser.add_argument("--detector", choices=("haar", "retina"), default=None, help="Face detector backend")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="ONNX execution providers (overrides platform defaults)",
    )
    parser.add_argument("--ratio", type=int, default=None, help="Process one frame out of every N")
    parser.add_argument("--timeout-ms", type=int, default=None, help="Per-frame classification deadline")
    parser.add_argument(
        "--min-face-size",
        type=float,
        default=None,
        help="Smallest face width as a proportion of the frame width",
    )
    parser.add_argument("--rotation", type=int, choices=(0, 90, 180, 270), default=None)
    parser.add_argument(
        "--mirror",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Mirror frames after rotation (--no-mirror overrides the pipeline config)",
    )
    parser.add_argument("--output-json", type=Path, default=None, help="Append each frame result as a JSON line")
    parser.add_argument("--output-video", type=Path, default=None, help="Write the annotated preview to mp4")
    parser.add_argument("--no-display", action="store_true", help="Do not open a preview window")
    parser.add_argument("--max-frames", type=int, default=None, help="Stop after N camera frames")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> PipelineConfig:
    """Apply CLI overrides on top of the pipeline YAML."""
    config = load_config(args.pipeline_config)
    if args.model is not None:
        config.model_path = args.model
    if args.detector is not None:
        config.detector = args.detector
    if args.providers:
        config.providers = list(args.providers)
    if args.ratio is not None:
        config.frame_processing_ratio = args.ratio
    if args.timeout_ms is not None:
        config.frame_processing_timeout_ms = args.timeout_ms
    if args.min_face_size is not None:
        config.smallest_face_size = args.min_face_size
    if args.rotation is not None:
        config.rotation_degrees = args.rotation
    if args.mirror is not None:
        config.mirror = args.mirror
    return config.validate()


def _open_source(source: str) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(int(source)) if source.isdigit() else cv2.VideoCapture(source)
    if not cap.isOpened():
        raise RuntimeError(f"Unable to open video source {source}")
    return cap


def _log_init_failure(future) -> None:
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Emotion classifier unavailable; frames will not be classified: %s", exc)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(getattr(logging, str(args.log_level).upper(), logging.INFO))
    config = resolve_config(args)

    LOGGER.info(
        "Runtime config: model=%s detector=%s ratio=%d timeout_ms=%d min_face=%.2f providers=%s",
        config.model_path,
        config.detector,
        config.frame_processing_ratio,
        config.frame_processing_timeout_ms,
        config.smallest_face_size,
        config.providers,
    )

    cap = _open_source(args.source)
    engine: Optional[InferenceEngine] = None
    detector = None
    analyzer: Optional[FrameAnalyzer] = None
    json_fh = None
    writer = None
    results: "queue.Queue[FrameResult]" = queue.Queue()
    latest: Optional[FrameResult] = None
    sequence = 0
    try:
        engine = InferenceEngine(
            config.model_path,
            providers=config.providers,
            workers=config.workers,
            serialize=config.serialize_inference,
        )
        engine.initialize().add_done_callback(_log_init_failure)
        detector = build_detector(config)
        analyzer = FrameAnalyzer(engine, detector, sink=results.put, config=config)

        if args.output_json is not None:
            ensure_dir(args.output_json.parent)
            json_fh = args.output_json.open("a", encoding="utf-8")

        while True:
            ret, raw = cap.read()
            if not ret:
                break
            sequence += 1
            preview = normalize_orientation(raw, config.rotation_degrees, config.mirror)
            analyzer.analyze(
                Frame(
                    image=raw,
                    sequence=sequence,
                    rotation_degrees=config.rotation_degrees,
                    mirror=config.mirror,
                )
            )

            while True:
                try:
                    latest = results.get_nowait()
                except queue.Empty:
                    break
                if json_fh is not None:
                    write_json_line(json_fh, latest.to_dict())

            if latest is not None:
                draw_results(preview, latest)
            if args.output_video is not None:
                if writer is None:
                    ensure_dir(args.output_video.parent)
                    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
                    fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                    writer = cv2.VideoWriter(
                        str(args.output_video), fourcc, fps, (preview.shape[1], preview.shape[0])
                    )
                writer.write(preview)
            if not args.no_display:
                cv2.imshow(WINDOW_NAME, preview)
                key = cv2.waitKey(1) & 0xFF
                if key in (27, ord("q")):
                    break
            if sequence % STATS_EVERY_FRAMES == 0:
                LOGGER.info("Pipeline progress frames=%d stats=%s", sequence, analyzer.stats.as_dict())
            if args.max_frames is not None and sequence >= args.max_frames:
                break
    finally:
        cap.release()
        if detector is not None:
            detector.close()
        if analyzer is not None:
            analyzer.close()
        if engine is not None:
            engine.close().result()
        while not results.empty():
            pending = results.get_nowait()
            if json_fh is not None:
                write_json_line(json_fh, pending.to_dict())
        if json_fh is not None:
            json_fh.close()
        if writer is not None:
            writer.release()
            LOGGER.info("Annotated video written to %s", args.output_video)
        if not args.no_display:
            cv2.destroyAllWindows()


if __name__ == "__main__":
    main()
