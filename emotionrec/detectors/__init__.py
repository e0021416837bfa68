"""Face detector adapters."""

from __future__ import annotations

from emotionrec.config import PipelineConfig
from emotionrec.detectors.base import AsyncFaceDetector, FaceDetector


def build_detector(config: PipelineConfig) -> AsyncFaceDetector:
    """Instantiate the configured detector behind the async adapter."""
    detector: FaceDetector
    if config.detector == "retina":
        from emotionrec.detectors.face_retina import RetinaFaceDetector

        detector = RetinaFaceDetector(
            providers=config.providers,
            det_size=config.det_size,
            det_thresh=config.det_thresh,
        )
    else:
        from emotionrec.detectors.face_haar import HaarFaceDetector

        detector = HaarFaceDetector(smallest_face_size=config.smallest_face_size)
    return AsyncFaceDetector(detector, smallest_face_size=config.smallest_face_size)


__all__ = ["AsyncFaceDetector", "FaceDetector", "build_detector"]
